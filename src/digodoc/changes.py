"""Ownership of installed files, read from opam ``.changes`` files.

A changes file is written in opam file syntax::

    opam-version: "2.0"
    added: [
      "lib/foo" {"D"}
      "lib/foo/META" {"F:md5=..."}
      "lib/foo/foo.so" {"L:../stublibs/foo.so"}
    ]

Files (``F``) and links (``L``) belong to the package; directories (``D``)
are shared and are not recorded.
"""

from __future__ import annotations

import posixpath
import re
from typing import TYPE_CHECKING

import structlog

from digodoc.errors import ErrorCode, FailureLog

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

    from digodoc.switch import InstalledPackage

log = structlog.get_logger()

_TOKEN_RE = re.compile(
    r"""
    (?P<ws>\s+)
  | (?P<comment>\#[^\n]*)
  | (?P<block>\(\*.*?\*\))
  | (?P<triple>\"\"\"(?:.|\n)*?\"\"\")
  | (?P<string>"(?:[^"\\]|\\.)*")
  | (?P<sym>[\[\]{}():])
  | (?P<word>[^\s\[\]{}():"\#]+)
    """,
    re.VERBOSE | re.DOTALL,
)

_ESCAPE_RE = re.compile(r"\\(.)", re.DOTALL)


class ManifestSyntaxError(ValueError):
    """A changes file could not be parsed; ``partial`` holds what was read before the error."""

    def __init__(self, message: str, line: int, partial: dict[str, str]) -> None:
        super().__init__(f"line {line}: {message}")
        self.line = line
        self.partial = partial


def _tokenize(text: str) -> Iterator[tuple[str, str, int]]:
    pos = 0
    line = 1
    while pos < len(text):
        m = _TOKEN_RE.match(text, pos)
        if m is None:
            raise ManifestSyntaxError(f"unexpected character {text[pos]!r}", line, {})
        kind = m.lastgroup
        value = m.group()
        if kind == "string":
            yield "string", _ESCAPE_RE.sub(r"\1", value[1:-1]), line
        elif kind == "triple":
            yield "string", value[3:-3], line
        elif kind in ("sym", "word"):
            yield kind, value, line
        line += value.count("\n")
        pos = m.end()


class _Parser:
    def __init__(self, text: str) -> None:
        self.tokens = list(_tokenize(text))
        self.pos = 0
        self.entries: dict[str, str] = {}

    def error(self, message: str) -> ManifestSyntaxError:
        line = self.tokens[self.pos][2] if self.pos < len(self.tokens) else -1
        return ManifestSyntaxError(message, line, dict(self.entries))

    def peek(self) -> tuple[str, str, int] | None:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def take(self) -> tuple[str, str, int]:
        tok = self.peek()
        if tok is None:
            raise self.error("unexpected end of file")
        self.pos += 1
        return tok

    def expect_sym(self, sym: str) -> None:
        kind, value, _ = self.take()
        if kind != "sym" or value != sym:
            self.pos -= 1
            raise self.error(f"expected {sym!r}, found {value!r}")

    def parse(self) -> dict[str, str]:
        while self.peek() is not None:
            kind, field, _ = self.take()
            if kind != "word":
                self.pos -= 1
                raise self.error(f"expected a field name, found {field!r}")
            self.expect_sym(":")
            if field == "added":
                self.parse_added()
            else:
                self.skip_value()
        return self.entries

    def parse_added(self) -> None:
        self.expect_sym("[")
        while True:
            kind, value, _ = self.take()
            if kind == "sym" and value == "]":
                return
            if kind != "string":
                self.pos -= 1
                raise self.error(f"expected a path, found {value!r}")
            entry_kind = "F"
            tok = self.peek()
            if tok is not None and tok[:2] == ("sym", "{"):
                self.take()
                options = self.collect_until("}")
                if options:
                    entry_kind = options[0][:1] or "F"
            self.entries[value] = entry_kind

    def collect_until(self, closing: str) -> list[str]:
        values: list[str] = []
        depth = 0
        while True:
            kind, value, _ = self.take()
            if kind == "sym" and value in "[{(":
                depth += 1
            elif kind == "sym" and value in "]})":
                if depth == 0:
                    if value != closing:
                        self.pos -= 1
                        raise self.error(f"expected {closing!r}, found {value!r}")
                    return values
                depth -= 1
            elif kind == "string":
                values.append(value)

    def skip_value(self) -> None:
        kind, value, _ = self.take()
        if kind == "sym":
            if value == "[":
                self.collect_until("]")
            elif value == "(":
                self.collect_until(")")
            else:
                self.pos -= 1
                raise self.error(f"unexpected {value!r}")
        tok = self.peek()
        if tok is not None and tok[:2] == ("sym", "{"):
            self.take()
            self.collect_until("}")


def parse_changes(text: str) -> dict[str, str]:
    """Return ``{path: kind}`` for every entry of the ``added`` field.

    ``kind`` is the first letter of the entry's option (``F``, ``L`` or ``D``).
    """
    return _Parser(text).parse()


def owned_files(entries: dict[str, str]) -> frozenset[str]:
    return frozenset(
        posixpath.normpath(path) for path, kind in entries.items() if kind in ("F", "L")
    )


def read_package_files(package: InstalledPackage, failures: FailureLog) -> frozenset[str]:
    """Files installed by ``package``; best effort when its changes file is bad."""
    try:
        text = package.changes_file.read_text(encoding="utf-8", errors="replace")
    except OSError as exc:
        failures.record(
            ErrorCode.MANIFEST_INVALID,
            package.name,
            f"cannot read {package.changes_file.name}: {exc.strerror or exc}",
        )
        return frozenset()
    try:
        return owned_files(parse_changes(text))
    except ManifestSyntaxError as exc:
        failures.record(
            ErrorCode.MANIFEST_INVALID, package.name, f"{package.changes_file.name}: {exc}"
        )
        log.warning("changes_parse_error", package=package.name, error=str(exc))
        return owned_files(exc.partial)


def build_ownership(packages: Iterable[tuple[str, frozenset[str]]]) -> dict[str, str]:
    """Map every owned file to its package; the first package listed keeps a contested file."""
    owner: dict[str, str] = {}
    for name, files in packages:
        for path in files:
            owner.setdefault(path, name)
    return owner
