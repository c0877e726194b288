"""Locating the opam switch to scan and the packages installed in it."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

import structlog

from digodoc.errors import DigodocError, ErrorCode

log = structlog.get_logger()

SWITCH_ENV_VAR = "OPAM_SWITCH_PREFIX"


class SwitchResolver:
    """Resolves the switch prefix once and hands the same value to every caller.

    An explicit ``override`` wins; otherwise ``OPAM_SWITCH_PREFIX`` is read
    from ``environ`` the first time :meth:`resolve` is called.
    """

    def __init__(self, override: str | None = None, environ: dict[str, str] | None = None) -> None:
        self._override = override
        self._environ = os.environ if environ is None else environ
        self._prefix: Path | None = None

    def resolve(self) -> Path:
        if self._prefix is None:
            if self._override:
                raw = self._override
                source = "override"
            else:
                raw = self._environ.get(SWITCH_ENV_VAR)
                source = SWITCH_ENV_VAR
                if not raw:
                    raise DigodocError(ErrorCode.NO_SWITCH, "not in an opam switch")
            self._prefix = Path(raw).expanduser().resolve()
            log.debug("switch_resolved", prefix=str(self._prefix), source=source)
        return self._prefix

    def absolute(self, relative: str) -> Path:
        """Turn a switch-relative path into an absolute one."""
        return self.resolve() / relative


# ---------------------------------------------------------------------------
# Package enumeration
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class InstalledPackage:
    """An installed package before its manifest has been read."""

    name: str
    version: str
    changes_file: Path  # may not exist


def opam_switch_dir(prefix: Path) -> Path:
    return prefix / ".opam-switch"


def list_installed_packages(prefix: Path) -> list[InstalledPackage]:
    """List installed packages, sorted by name.

    Names come from ``.opam-switch/packages/<name>.<version>/`` and from
    ``.opam-switch/install/<name>.changes``. A switch without
    ``.opam-switch`` is treated as empty.
    """
    switch_dir = opam_switch_dir(prefix)
    install_dir = switch_dir / "install"
    versions: dict[str, str] = {}

    packages_dir = switch_dir / "packages"
    if packages_dir.is_dir():
        for entry in packages_dir.iterdir():
            if not entry.is_dir() or "." not in entry.name:
                continue
            name, _, version = entry.name.partition(".")
            versions[name] = version

    if install_dir.is_dir():
        for entry in install_dir.glob("*.changes"):
            versions.setdefault(entry.name.removesuffix(".changes"), "")

    if not versions and not switch_dir.is_dir():
        log.info("switch_empty", prefix=str(prefix))

    return [
        InstalledPackage(
            name=name,
            version=versions[name],
            changes_file=install_dir / f"{name}.changes",
        )
        for name in sorted(versions)
    ]
