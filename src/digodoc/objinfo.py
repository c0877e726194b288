"""Listing the compilation units embedded in an archive with ``ocamlobjinfo``."""

from __future__ import annotations

import re
import subprocess
from typing import TYPE_CHECKING

import structlog

from digodoc.errors import ErrorCode, FailureLog

if TYPE_CHECKING:
    from pathlib import Path

log = structlog.get_logger()

# "Unit name: Foo" in .cma listings, "Name: Foo" in .cmxa listings
_UNIT_RE = re.compile(r"^\s*(?:Unit name|Name):\s*([A-Za-z_][A-Za-z0-9_']*)\s*$", re.MULTILINE)


def parse_objinfo(output: str) -> list[str]:
    """Unit names in ``ocamlobjinfo`` output, in order, without duplicates."""
    return list(dict.fromkeys(_UNIT_RE.findall(output)))


class ObjInfo:
    """Runs the inspection tool one archive at a time.

    A missing executable is recorded once; every later call then returns
    None without trying again.
    """

    def __init__(self, command: str, failures: FailureLog) -> None:
        self.command = command
        self.failures = failures
        self.available = True

    def units(self, archive: Path) -> list[str] | None:
        """Units embedded in ``archive``, or None when they cannot be listed."""
        if not self.available:
            return None
        argv = [self.command, str(archive)]
        try:
            proc = subprocess.run(argv, capture_output=True, check=False)
        except FileNotFoundError:
            self.available = False
            self.failures.record(
                ErrorCode.OBJINFO_FAILED, self.command, "command not found, objinfo disabled"
            )
            log.warning("objinfo_missing", command=self.command)
            return None
        except OSError as exc:
            self.failures.record(ErrorCode.OBJINFO_FAILED, " ".join(argv), str(exc))
            return None
        if proc.returncode != 0:
            self.failures.record(
                ErrorCode.OBJINFO_FAILED,
                " ".join(argv),
                f"exited with code {proc.returncode}",
            )
            return None
        try:
            output = proc.stdout.decode("utf-8")
        except UnicodeDecodeError as exc:
            self.failures.record(
                ErrorCode.OBJINFO_FAILED, " ".join(argv), f"unreadable output: {exc.reason}"
            )
            return None
        units = parse_objinfo(output)
        if not units:
            self.failures.record(ErrorCode.OBJINFO_FAILED, " ".join(argv), "no unit listed")
            return None
        log.debug("objinfo_units", archive=str(archive), count=len(units))
        return units
