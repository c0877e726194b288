"""Index building and module lookup.

:func:`build_index` is a pure aggregation step over records produced by the
scan stages; :func:`find_modules` answers "who owns module X?".
"""

from __future__ import annotations

from collections import defaultdict
from typing import TYPE_CHECKING

from digodoc.errors import DigodocError, ErrorCode, IndexIntegrityError
from digodoc.models.index import Library, Module, Package, SwitchIndex

if TYPE_CHECKING:
    from collections.abc import Iterable


def build_index(
    switch_prefix: str,
    packages: Iterable[Package],
    libraries: Iterable[Library],
    modules: Iterable[Module],
) -> SwitchIndex:
    """Assemble the lookup tables, refusing records that reference missing owners."""
    by_package: dict[str, Package] = {}
    for package in packages:
        if package.name in by_package:
            raise IndexIntegrityError(f"package {package.name!r} listed twice")
        by_package[package.name] = package

    by_library: dict[str, Library] = {}
    for library in libraries:
        if library.name in by_library:
            raise IndexIntegrityError(f"library {library.name!r} listed twice")
        if library.package not in by_package:
            raise IndexIntegrityError(
                f"library {library.name!r} belongs to unknown package {library.package!r}"
            )
        by_library[library.name] = library

    for package in by_package.values():
        for name in package.libraries:
            owner = by_library.get(name)
            if owner is None or owner.package != package.name:
                raise IndexIntegrityError(
                    f"package {package.name!r} declares library {name!r} it does not own"
                )

    by_name: dict[str, list[Module]] = defaultdict(list)
    for module in modules:
        if module.library not in by_library:
            raise IndexIntegrityError(
                f"module {module.name!r} belongs to unknown library {module.library!r}"
            )
        if module.package not in by_package:
            raise IndexIntegrityError(
                f"module {module.name!r} belongs to unknown package {module.package!r}"
            )
        by_name[module.name].append(module)

    return SwitchIndex(
        switch_prefix=switch_prefix,
        packages=dict(sorted(by_package.items())),
        libraries=dict(sorted(by_library.items())),
        modules_by_name={
            name: sorted(found, key=lambda m: (m.package, m.library, m.directory))
            for name, found in sorted(by_name.items())
        },
    )


def find_modules(index: SwitchIndex, name: str) -> list[Module]:
    """Every module named exactly ``name``.

    One element is the usual case; several mean the name is ambiguous and
    the caller tells them apart with :attr:`Module.qualified_name`.
    """
    found = index.modules_by_name.get(name)
    if not found:
        raise DigodocError(ErrorCode.MODULE_NOT_FOUND, f"module {name!r} not found")
    return list(found)
