"""SQLite snapshot of a whole :class:`SwitchIndex`.

The snapshot is one SQLite file holding a single row: a format version,
the switch it describes, and the zlib-compressed JSON dump of the index.
There is no incremental update; :func:`save_snapshot` always replaces the
whole file, and :func:`load_snapshot` refuses any snapshot whose format
version differs from :data:`CACHE_FORMAT_VERSION`.

Unlike a read-through cache, a snapshot that cannot be read is fatal to the
command that asked for it: callers passed ``--cached`` and expect exactly
that index.
"""

from __future__ import annotations

import contextlib
import os
import zlib
from datetime import UTC, datetime
from pathlib import Path

import aiosqlite
import structlog
from pydantic import ValidationError

from digodoc.errors import DigodocError, ErrorCode
from digodoc.models.cache import SnapshotInfo
from digodoc.models.index import SwitchIndex

log = structlog.get_logger()

# Bump whenever Package, Library, Module or SwitchIndex change shape.
CACHE_FORMAT_VERSION = 2

_CREATE_SNAPSHOT_TABLE = """
CREATE TABLE IF NOT EXISTS snapshot (
    id             INTEGER PRIMARY KEY CHECK (id = 1),
    format_version INTEGER NOT NULL,
    switch_prefix  TEXT NOT NULL,
    created_at     TEXT NOT NULL,
    payload        BLOB NOT NULL
)
"""


class Cache:
    """Reads and writes the snapshot row on an open connection."""

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db

    async def init_db(self) -> None:
        """Create the snapshot table. Called before the first write."""
        await self._db.execute(_CREATE_SNAPSHOT_TABLE)
        await self._db.commit()

    async def set_index(self, index: SwitchIndex) -> SnapshotInfo:
        payload = zlib.compress(index.model_dump_json().encode("utf-8"))
        now = datetime.now(UTC)
        await self._db.execute(
            "INSERT OR REPLACE INTO snapshot "
            "(id, format_version, switch_prefix, created_at, payload) "
            "VALUES (1, ?, ?, ?, ?)",
            (CACHE_FORMAT_VERSION, index.switch_prefix, now.isoformat(), payload),
        )
        await self._db.commit()
        return SnapshotInfo(
            format_version=CACHE_FORMAT_VERSION,
            switch_prefix=index.switch_prefix,
            created_at=now,
            payload_size=len(payload),
        )

    async def get_info(self) -> SnapshotInfo:
        """Header of the stored snapshot, without decoding the index."""
        try:
            cursor = await self._db.execute(
                "SELECT format_version, switch_prefix, created_at, length(payload) "
                "FROM snapshot WHERE id = 1"
            )
            row = await cursor.fetchone()
        except aiosqlite.Error as exc:
            raise DigodocError(
                ErrorCode.CACHE_INCOMPATIBLE, f"not a digodoc snapshot: {exc}"
            ) from exc
        if row is None:
            raise DigodocError(ErrorCode.CACHE_INCOMPATIBLE, "snapshot is empty")
        try:
            return SnapshotInfo(
                format_version=row[0],
                switch_prefix=row[1],
                created_at=datetime.fromisoformat(row[2]),
                payload_size=row[3],
            )
        except (TypeError, ValueError) as exc:
            raise DigodocError(
                ErrorCode.CACHE_INCOMPATIBLE, f"snapshot header is unreadable: {exc}"
            ) from exc

    async def get_index(self) -> SwitchIndex:
        info = await self.get_info()
        if info.format_version != CACHE_FORMAT_VERSION:
            raise DigodocError(
                ErrorCode.CACHE_INCOMPATIBLE,
                f"snapshot format {info.format_version} is not supported "
                f"(expected {CACHE_FORMAT_VERSION}), run a full scan again",
            )
        cursor = await self._db.execute("SELECT payload FROM snapshot WHERE id = 1")
        row = await cursor.fetchone()
        try:
            return SwitchIndex.model_validate_json(zlib.decompress(row[0]))
        except (zlib.error, ValidationError) as exc:
            raise DigodocError(
                ErrorCode.CACHE_INCOMPATIBLE, f"snapshot payload is unreadable: {exc}"
            ) from exc


async def save_snapshot(path: Path, index: SwitchIndex) -> SnapshotInfo:
    """Write ``index`` to ``path``, replacing any previous snapshot atomically."""
    path = Path(path)
    tmp = path.with_name(path.name + ".tmp")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp.unlink(missing_ok=True)
        async with aiosqlite.connect(tmp) as db:
            cache = Cache(db)
            await cache.init_db()
            info = await cache.set_index(index)
        os.replace(tmp, path)
    except (OSError, aiosqlite.Error) as exc:
        with contextlib.suppress(OSError):
            tmp.unlink(missing_ok=True)
        raise DigodocError(
            ErrorCode.CACHE_WRITE_FAILED, f"cannot write {path}: {exc}", recoverable=True
        ) from exc
    log.info("snapshot_saved", path=str(path), payload_size=info.payload_size)
    return info


async def load_snapshot(path: Path) -> SwitchIndex:
    """Read back the index stored at ``path``."""
    path = Path(path)
    if not path.is_file():
        raise DigodocError(
            ErrorCode.CACHE_MISSING, f"no cached state at {path}, run digodoc without --cached"
        )
    try:
        async with aiosqlite.connect(path) as db:
            index = await Cache(db).get_index()
    except aiosqlite.Error as exc:
        raise DigodocError(ErrorCode.CACHE_INCOMPATIBLE, f"cannot read {path}: {exc}") from exc
    log.info("snapshot_loaded", path=str(path), modules=index.module_count)
    return index
