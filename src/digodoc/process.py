"""Running the external programs digodoc hands work to.

The pager, the browser and the documentation generator are spawned and
waited for. Their failures are recorded in the run's :class:`FailureLog`
and reported after the command, unless the caller asks for them to be
fatal.
"""

from __future__ import annotations

import json
import subprocess
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

from digodoc.errors import DigodocError, ErrorCode, FailureLog

if TYPE_CHECKING:
    from collections.abc import Sequence

    from digodoc.config import DocsSettings
    from digodoc.models.index import SwitchIndex

log = structlog.get_logger()


def call(argv: Sequence[str], failures: FailureLog, *, check: bool = False) -> bool:
    """Run ``argv`` to completion; return True when it exited with status 0."""
    argv = list(argv)
    log.debug("process_call", argv=argv)
    try:
        returncode = subprocess.run(argv, check=False).returncode
        message = f"exited with code {returncode}"
    except OSError as exc:
        returncode = None
        message = exc.strerror or str(exc)
    if returncode == 0:
        return True
    if check:
        raise DigodocError(ErrorCode.TOOL_FAILED, f"{' '.join(argv)}: {message}")
    failures.record(ErrorCode.TOOL_FAILED, " ".join(argv), message)
    return False


def view_file(pager: str, path: Path, failures: FailureLog) -> bool:
    return call([pager, str(path)], failures)


def open_browser(browser: str, html_dir: Path, failures: FailureLog) -> bool:
    index = html_dir / "index.html"
    if not index.is_file():
        raise DigodocError(
            ErrorCode.DOCS_MISSING,
            "Use `digodoc --html` to generate the documentation first.",
        )
    return call([browser, str(index)], failures)


def export_index(index: SwitchIndex, path: Path) -> Path:
    """Write the index as JSON for the documentation generator."""
    path.parent.mkdir(parents=True, exist_ok=True)
    data = index.model_dump(mode="json")
    path.write_text(json.dumps(data, indent=1, sort_keys=True), encoding="utf-8")
    return path


def generate_docs(
    index: SwitchIndex,
    settings: DocsSettings,
    failures: FailureLog,
    *,
    continue_on_error: bool = False,
) -> bool:
    """Export the index and run the configured generator on it."""
    if not settings.generator:
        raise DigodocError(
            ErrorCode.CONFIG_INVALID,
            "no documentation generator configured (set docs.generator)",
        )
    html_dir = Path(settings.html_dir)
    export = export_index(index, html_dir.parent / "index.json")
    html_dir.mkdir(parents=True, exist_ok=True)
    log.info("docs_generate", export=str(export), html_dir=str(html_dir))
    return call(
        [*settings.generator, str(export), str(html_dir)],
        failures,
        check=not continue_on_error,
    )
