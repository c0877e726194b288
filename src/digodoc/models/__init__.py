from __future__ import annotations

from digodoc.models.cache import SnapshotInfo
from digodoc.models.index import MODULE_EXTS, Library, Module, Package, SwitchIndex
from digodoc.models.meta import MetaAssignment, MetaPackage

__all__ = [
    # index
    "Package",
    "Library",
    "Module",
    "SwitchIndex",
    "MODULE_EXTS",
    # META syntax
    "MetaAssignment",
    "MetaPackage",
    # cache
    "SnapshotInfo",
]
