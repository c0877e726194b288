"""Full scan of a switch: packages → files → META libraries → modules → index."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

import structlog

from digodoc.changes import build_ownership, read_package_files
from digodoc.correlate import correlate_modules
from digodoc.errors import ErrorCode, FailureLog
from digodoc.index import build_index
from digodoc.meta import meta_library_name, read_meta_libraries
from digodoc.models.index import Library, Package
from digodoc.objinfo import ObjInfo
from digodoc.switch import list_installed_packages

if TYPE_CHECKING:
    from pathlib import Path

    from digodoc.models.index import SwitchIndex

log = structlog.get_logger()


def scan_switch(
    prefix: Path,
    failures: FailureLog,
    *,
    objinfo_command: str | None = None,
) -> SwitchIndex:
    """Build a fresh index of everything installed under ``prefix``.

    Per-package problems are recorded in ``failures`` and never abort the
    scan. ``objinfo_command`` enables archive inspection.
    """
    started = time.monotonic()
    installed = list_installed_packages(prefix)

    files = {pkg.name: read_package_files(pkg, failures) for pkg in installed}
    ownership = build_ownership((pkg.name, files[pkg.name]) for pkg in installed)

    libraries: dict[str, Library] = {}
    declared: dict[str, set[str]] = {pkg.name: set() for pkg in installed}
    for pkg in installed:
        meta_files = sorted(f for f in files[pkg.name] if meta_library_name(f) is not None)
        for meta_file in meta_files:
            for library in read_meta_libraries(
                str(prefix), meta_file, package=pkg.name, failures=failures
            ):
                existing = libraries.get(library.name)
                if existing is not None:
                    failures.record(
                        ErrorCode.LIBRARY_DUPLICATE,
                        pkg.name,
                        f"library {library.name!r} already declared by {existing.package}",
                    )
                    continue
                libraries[library.name] = library
                declared[pkg.name].add(library.name)

    packages = [
        Package(
            name=pkg.name,
            version=pkg.version,
            files=files[pkg.name],
            libraries=frozenset(declared[pkg.name]),
        )
        for pkg in installed
    ]

    objinfo = ObjInfo(objinfo_command, failures) if objinfo_command else None
    modules = correlate_modules(libraries, ownership, prefix, failures, objinfo=objinfo)

    index = build_index(str(prefix), packages, libraries.values(), modules)
    log.info(
        "scan_complete",
        prefix=str(prefix),
        packages=len(index.packages),
        libraries=len(index.libraries),
        modules=index.module_count,
        failures=len(failures),
        objinfo=objinfo is not None,
        elapsed_ms=round((time.monotonic() - started) * 1000),
    )
    return index
