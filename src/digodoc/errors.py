"""Error codes, the fatal error type, and the per-run failure collector.

Fatal conditions raise :class:`DigodocError`. Recoverable per-item
conditions (one bad manifest, one unreadable META, one archive that
ocamlobjinfo cannot read) are recorded in a :class:`FailureLog` that the
caller threads through every scan stage and reports once at the end.
"""

from __future__ import annotations

from enum import StrEnum
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict

if TYPE_CHECKING:
    from collections.abc import Iterator


class ErrorCode(StrEnum):
    # fatal
    NO_SWITCH = "NO_SWITCH"
    INDEX_INCONSISTENT = "INDEX_INCONSISTENT"
    CACHE_MISSING = "CACHE_MISSING"
    CACHE_INCOMPATIBLE = "CACHE_INCOMPATIBLE"
    CACHE_WRITE_FAILED = "CACHE_WRITE_FAILED"
    CONFIG_INVALID = "CONFIG_INVALID"
    DOCS_MISSING = "DOCS_MISSING"
    # query-time
    MODULE_NOT_FOUND = "MODULE_NOT_FOUND"
    # recoverable, per package / library / archive
    MANIFEST_INVALID = "MANIFEST_INVALID"
    META_INVALID = "META_INVALID"
    OBJINFO_FAILED = "OBJINFO_FAILED"
    ARCHIVE_MISSING = "ARCHIVE_MISSING"
    LIBRARY_DUPLICATE = "LIBRARY_DUPLICATE"
    TOOL_FAILED = "TOOL_FAILED"


class DigodocError(Exception):
    """Raised for conditions that abort the current command."""

    def __init__(self, code: ErrorCode, message: str, recoverable: bool = False) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.recoverable = recoverable


class IndexIntegrityError(DigodocError):
    """An earlier scan stage produced records that do not reference each other.

    This is an internal bug, never bad input.
    """

    def __init__(self, message: str) -> None:
        super().__init__(ErrorCode.INDEX_INCONSISTENT, message)


class Failure(BaseModel):
    """One recoverable failure recorded during a run."""

    model_config = ConfigDict(frozen=True)

    code: ErrorCode
    subject: str  # package name, library name, archive path or argv
    message: str

    def __str__(self) -> str:
        return f"{self.subject}: {self.message}"


class FailureLog:
    """Ordered collection of recoverable failures for one run."""

    def __init__(self) -> None:
        self._failures: list[Failure] = []

    def record(self, code: ErrorCode, subject: str, message: str) -> Failure:
        failure = Failure(code=code, subject=subject, message=message)
        self._failures.append(failure)
        return failure

    def extend(self, other: FailureLog) -> None:
        self._failures.extend(other)

    def codes(self) -> list[ErrorCode]:
        return [f.code for f in self._failures]

    def __iter__(self) -> Iterator[Failure]:
        return iter(self._failures)

    def __len__(self) -> int:
        return len(self._failures)

    def __bool__(self) -> bool:
        return bool(self._failures)
