"""Attaching module files to the libraries that provide them."""

from __future__ import annotations

import posixpath
from collections import defaultdict
from typing import TYPE_CHECKING

import structlog

from digodoc.errors import ErrorCode, FailureLog
from digodoc.models.index import MODULE_EXTS, Library, Module

if TYPE_CHECKING:
    from pathlib import Path

    from digodoc.objinfo import ObjInfo

log = structlog.get_logger()

_MODULE_EXT_SET = frozenset(MODULE_EXTS)


def module_name(stem: str) -> str:
    return stem[:1].upper() + stem[1:]


def _archive_stem(archive: str) -> str:
    return posixpath.splitext(posixpath.basename(archive))[0].lower()


def resolve_archives(
    library: Library, ownership: dict[str, str], failures: FailureLog
) -> tuple[list[str], list[str]]:
    """Owned (byte, native) archive paths of ``library``, switch-relative."""
    byte: list[str] = []
    native: list[str] = []
    for archives, out in ((library.byte_archives, byte), (library.native_archives, native)):
        for archive in archives:
            path = posixpath.normpath(posixpath.join(library.directory, archive))
            if path in ownership:
                out.append(path)
            else:
                failures.record(
                    ErrorCode.ARCHIVE_MISSING, library.name, f"{path} is not owned by any package"
                )
    return byte, native


def _inspected_units(
    libraries: list[Library],
    ownership: dict[str, str],
    switch_prefix: Path,
    objinfo: ObjInfo | None,
    failures: FailureLog,
) -> dict[tuple[str, str], str]:
    """``(directory, unit name) → library`` for every unit an archive embeds."""
    units_by_dir: dict[tuple[str, str], str] = {}
    for library in libraries:
        byte, native = resolve_archives(library, ownership, failures)
        if objinfo is None:
            continue
        # one archive per library is enough: .cma and .cmxa list the same units
        for archive in (byte or native)[:1]:
            units = objinfo.units(switch_prefix / archive)
            for unit in units or ():
                units_by_dir.setdefault((library.directory, unit), library.name)
    return units_by_dir


def _static_owner(stem: str, candidates: list[Library]) -> Library:
    if len(candidates) == 1:
        return candidates[0]
    lowered = stem.lower()
    if "__" in lowered:
        prefix = lowered.split("__", 1)[0]
        for library in candidates:
            if any(_archive_stem(a) == prefix for a in library.archives):
                return library
    for library in candidates:
        if any(_archive_stem(a) == lowered for a in library.archives):
            return library
    for library in candidates:
        if library.archives:
            return library
    return candidates[0]


def correlate_modules(
    libraries: dict[str, Library],
    ownership: dict[str, str],
    switch_prefix: Path,
    failures: FailureLog,
    objinfo: ObjInfo | None = None,
) -> list[Module]:
    """Group module files by (directory, module name) and give each group one library.

    ``foo.ml`` and ``Foo.cmi`` name the same module and land in one group.
    With ``objinfo``, the units an archive really embeds take precedence
    over the naming heuristics of :func:`_static_owner`.
    """
    ordered = [libraries[name] for name in sorted(libraries)]
    by_dir: dict[str, list[Library]] = defaultdict(list)
    for library in ordered:
        by_dir[library.directory].append(library)

    units = _inspected_units(ordered, ownership, switch_prefix, objinfo, failures)

    # (directory, module name) → {ext: path}
    groups: dict[tuple[str, str], dict[str, str]] = defaultdict(dict)
    for path in sorted(ownership):
        directory, basename = posixpath.split(path)
        if directory not in by_dir:
            continue
        stem, ext = posixpath.splitext(basename)
        ext = ext[1:]
        if ext in _MODULE_EXT_SET and stem:
            # sorted paths: "Foo.ml" beats "foo.ml" if both exist
            groups[(directory, module_name(stem))].setdefault(ext, path)

    modules: list[Module] = []
    for (directory, name), files in sorted(groups.items()):
        library_name = units.get((directory, name))
        if library_name is None:
            library_name = _static_owner(name, by_dir[directory]).name
        first_file = min(files.values())
        modules.append(
            Module(
                name=name,
                package=ownership[first_file],
                library=library_name,
                directory=directory,
                files=files,
            )
        )

    log.debug("modules_correlated", modules=len(modules), inspected_units=len(units))
    return sorted(modules, key=lambda m: (m.name, m.package, m.library))
