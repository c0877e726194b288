"""Findlib META files: parsing and the libraries they declare.

A META file is a list of ``var(preds) = "value"`` assignments plus nested
``package "sub" ( ... )`` blocks. Each block becomes one :class:`Library`
named after its parents (``lwt``, ``lwt.unix``, ...).
"""

from __future__ import annotations

import posixpath
import re
from typing import TYPE_CHECKING

import structlog

from digodoc.errors import ErrorCode, FailureLog
from digodoc.models.index import Library
from digodoc.models.meta import MetaAssignment, MetaPackage

if TYPE_CHECKING:
    from collections.abc import Iterator

log = structlog.get_logger()

STDLIB_DIR = "lib/ocaml"

BYTE = frozenset({"byte"})
NATIVE = frozenset({"native"})

_TOKEN_RE = re.compile(
    r"""
    (?P<ws>\s+)
  | (?P<comment>\#[^\n]*)
  | (?P<string>"(?:[^"\\]|\\.)*")
  | (?P<sym>\+=|[=(),])
  | (?P<word>[A-Za-z0-9_.\-]+)
    """,
    re.VERBOSE | re.DOTALL,
)

_ESCAPE_RE = re.compile(r"\\(.)", re.DOTALL)
_SPLIT_RE = re.compile(r"[\s,]+")


class MetaSyntaxError(ValueError):
    def __init__(self, message: str, line: int) -> None:
        super().__init__(f"line {line}: {message}")
        self.line = line


def _tokenize(text: str) -> Iterator[tuple[str, str, int]]:
    pos = 0
    line = 1
    while pos < len(text):
        m = _TOKEN_RE.match(text, pos)
        if m is None:
            raise MetaSyntaxError(f"unexpected character {text[pos]!r}", line)
        kind = m.lastgroup
        value = m.group()
        if kind == "string":
            yield "string", _ESCAPE_RE.sub(r"\1", value[1:-1]), line
        elif kind in ("sym", "word"):
            yield kind, value, line
        line += value.count("\n")
        pos = m.end()


class _Parser:
    def __init__(self, text: str) -> None:
        self.tokens = list(_tokenize(text))
        self.pos = 0

    def error(self, message: str) -> MetaSyntaxError:
        if self.pos < len(self.tokens):
            return MetaSyntaxError(message, self.tokens[self.pos][2])
        return MetaSyntaxError(message, self.tokens[-1][2] if self.tokens else 1)

    def take(self, kind: str, value: str | None = None) -> str:
        if self.pos >= len(self.tokens):
            raise self.error(f"unexpected end of file, expected {value or kind}")
        tok_kind, tok_value, _ = self.tokens[self.pos]
        if tok_kind != kind or (value is not None and tok_value != value):
            raise self.error(f"expected {value or kind}, found {tok_value!r}")
        self.pos += 1
        return tok_value

    def at(self, kind: str, value: str | None = None) -> bool:
        if self.pos >= len(self.tokens):
            return False
        tok_kind, tok_value, _ = self.tokens[self.pos]
        return tok_kind == kind and (value is None or tok_value == value)

    def parse_body(self, name: str, nested: bool) -> MetaPackage:
        pkg = MetaPackage(name=name)
        while self.pos < len(self.tokens):
            if nested and self.at("sym", ")"):
                return pkg
            variable = self.take("word")
            if variable == "package" and self.at("string"):
                child_name = self.take("string")
                self.take("sym", "(")
                pkg.children.append(self.parse_body(child_name, nested=True))
                self.take("sym", ")")
                continue
            predicates: list[str] = []
            if self.at("sym", "("):
                self.take("sym", "(")
                predicates.append(self.take("word"))
                while self.at("sym", ","):
                    self.take("sym", ",")
                    predicates.append(self.take("word"))
                self.take("sym", ")")
            if self.at("sym", "+="):
                op = self.take("sym")
            else:
                op = self.take("sym", "=")
            value = self.take("string")
            pkg.assignments.append(
                MetaAssignment(
                    variable=variable, predicates=tuple(predicates), op=op, value=value
                )
            )
        if nested:
            raise self.error("unterminated package block")
        return pkg


def parse_meta(text: str, name: str) -> MetaPackage:
    """Parse the contents of a META file describing findlib package ``name``."""
    return _Parser(text).parse_body(name, nested=False)


# ---------------------------------------------------------------------------
# Libraries
# ---------------------------------------------------------------------------


def meta_library_name(meta_file: str) -> tuple[str, str] | None:
    """Return ``(library name, base directory)`` for a switch-relative META path.

    ``lib/foo/META`` declares ``foo`` in ``lib/foo``; ``lib/META.foo``
    declares ``foo`` in ``lib``. Anything else is not a META file.
    """
    directory, basename = posixpath.split(meta_file)
    if basename == "META":
        parent, name = posixpath.split(directory)
        if parent == "lib" and name:
            return name, directory
    elif basename.startswith("META.") and directory == "lib":
        name = basename[len("META.") :]
        if name:
            return name, directory
    return None


def split_words(value: str | None) -> tuple[str, ...]:
    if not value:
        return ()
    return tuple(w for w in _SPLIT_RE.split(value) if w)


def resolve_directory(
    value: str | None, parent_dir: str, switch_prefix: str | None
) -> str | None:
    """Switch-relative directory for a ``directory`` field, or None if outside the switch."""
    if not value:
        return parent_dir
    if value == "^":
        return STDLIB_DIR
    if value.startswith("^") or value.startswith("+"):
        return posixpath.normpath(posixpath.join(STDLIB_DIR, value[1:]))
    if posixpath.isabs(value):
        if switch_prefix:
            prefix = switch_prefix.rstrip("/")
            if value == prefix or value.startswith(prefix + "/"):
                return posixpath.normpath(posixpath.relpath(value, prefix))
        return None
    return posixpath.normpath(posixpath.join(parent_dir, value))


def libraries_from_meta(
    meta: MetaPackage,
    *,
    package: str,
    meta_file: str,
    base_dir: str,
    failures: FailureLog,
    switch_prefix: str | None = None,
) -> list[Library]:
    """Flatten a parsed META file into one Library per (sub)package."""
    libraries: list[Library] = []

    def visit(node: MetaPackage, full_name: str, parent_dir: str) -> None:
        raw_dir = node.lookup("directory")
        directory = resolve_directory(raw_dir, parent_dir, switch_prefix)
        if directory is None:
            failures.record(
                ErrorCode.META_INVALID,
                full_name,
                f"directory {raw_dir!r} in {meta_file} is outside the switch",
            )
            directory = parent_dir
        libraries.append(
            Library(
                name=full_name,
                package=package,
                version=node.lookup("version") or "",
                description=node.lookup("description") or "",
                directory=directory,
                requires=split_words(node.lookup("requires")),
                byte_archives=split_words(node.lookup("archive", BYTE)),
                native_archives=split_words(node.lookup("archive", NATIVE)),
                meta_file=meta_file,
            )
        )
        for child in node.children:
            visit(child, f"{full_name}.{child.name}", directory)

    visit(meta, meta.name, base_dir)
    return libraries


def read_meta_libraries(
    root: str,
    meta_file: str,
    *,
    package: str,
    failures: FailureLog,
) -> list[Library]:
    """Read and flatten one owned META file; a bad file yields no libraries."""
    located = meta_library_name(meta_file)
    if located is None:
        return []
    name, base_dir = located
    path = posixpath.join(root, meta_file)
    try:
        with open(path, encoding="utf-8", errors="replace") as f:
            text = f.read()
        meta = parse_meta(text, name)
    except OSError as exc:
        failures.record(ErrorCode.META_INVALID, package, f"cannot read {meta_file}: {exc}")
        return []
    except MetaSyntaxError as exc:
        failures.record(ErrorCode.META_INVALID, package, f"{meta_file}: {exc}")
        log.warning("meta_parse_error", package=package, meta_file=meta_file, error=str(exc))
        return []
    return libraries_from_meta(
        meta,
        package=package,
        meta_file=meta_file,
        base_dir=base_dir,
        failures=failures,
        switch_prefix=root,
    )
