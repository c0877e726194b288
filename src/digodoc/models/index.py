from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict

if TYPE_CHECKING:
    from collections.abc import Iterator

# Module file extensions, in the order a reader would prefer to open them.
MODULE_EXTS: tuple[str, ...] = ("mli", "ml", "cmti", "cmt", "cmi", "cmx", "cmo")
SOURCE_EXTS: tuple[str, ...] = ("mli", "ml")


class Package(BaseModel):
    """One installed opam package."""

    model_config = ConfigDict(frozen=True)

    name: str
    version: str = ""
    files: frozenset[str] = frozenset()  # switch-relative paths
    libraries: frozenset[str] = frozenset()  # findlib names declared by its META files


class Library(BaseModel):
    """One findlib library (a META ``package``), owned by the opam package shipping its META."""

    model_config = ConfigDict(frozen=True)

    name: str  # full findlib name, e.g. "lwt.unix"
    package: str  # owning opam package name
    version: str = ""
    description: str = ""
    directory: str  # switch-relative
    requires: tuple[str, ...] = ()
    byte_archives: tuple[str, ...] = ()
    native_archives: tuple[str, ...] = ()
    meta_file: str = ""

    @property
    def archives(self) -> tuple[str, ...]:
        return self.byte_archives + tuple(
            a for a in self.native_archives if a not in self.byte_archives
        )


class Module(BaseModel):
    """One compilation unit: a base name plus every file variant found for it."""

    model_config = ConfigDict(frozen=True)

    name: str  # capitalised, e.g. "Foo" or "Lib__Foo"
    package: str
    library: str
    directory: str  # switch-relative
    # ext → switch-relative path; stems may differ in case ("foo.ml", "Foo.cmi")
    files: dict[str, str]

    @property
    def qualified_name(self) -> str:
        return f"{self.package}::{self.library}::{self.name}"

    @property
    def exts(self) -> frozenset[str]:
        return frozenset(self.files)

    def file(self, ext: str) -> str:
        """Switch-relative path of the ``ext`` variant of this module."""
        return self.files[ext]

    def source_file(self) -> str | None:
        for ext in SOURCE_EXTS:
            if ext in self.files:
                return self.files[ext]
        return None


class SwitchIndex(BaseModel):
    """Everything installed in one switch, with name-based lookup tables.

    Built once per scan by :func:`digodoc.index.build_index`; never mutated.
    """

    model_config = ConfigDict(frozen=True)

    switch_prefix: str
    packages: dict[str, Package] = {}
    libraries: dict[str, Library] = {}
    # module name → every module with that name; names repeat across packages
    modules_by_name: dict[str, list[Module]] = {}

    def iter_modules(self) -> Iterator[Module]:
        for modules in self.modules_by_name.values():
            yield from modules

    @property
    def module_count(self) -> int:
        return sum(len(v) for v in self.modules_by_name.values())

    def modules_of_library(self, library: str) -> list[Module]:
        return sorted(
            (m for m in self.iter_modules() if m.library == library),
            key=lambda m: m.name,
        )
