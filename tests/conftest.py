"""Shared fixtures: synthetic opam switches written under tmp_path."""

from __future__ import annotations

import posixpath
import stat
from typing import TYPE_CHECKING

import pytest

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

ALPHA_META = """\
version = "1.0"
description = "Alpha library"
requires = "unix"
archive(byte) = "alpha.cma"
archive(native) = "alpha.cmxa"
"""

BETA_META = """\
version = "2.0"
archive(byte) = "beta.cma"
archive(native) = "beta.cmxa"
"""


class FakeSwitch:
    """Writes installed packages the way opam lays them out."""

    def __init__(self, root: Path) -> None:
        self.root = root

    @property
    def prefix(self) -> Path:
        return self.root.resolve()

    def add_package(
        self,
        name: str,
        version: str = "1.0",
        files: dict[str, str] | None = None,
        changes: str | None = None,
    ) -> None:
        """Install ``files`` (path → content) and record them in a changes file.

        ``changes`` replaces the generated changes file verbatim.
        """
        files = files or {}
        switch_dir = self.root / ".opam-switch"
        (switch_dir / "packages" / f"{name}.{version}").mkdir(parents=True, exist_ok=True)
        install_dir = switch_dir / "install"
        install_dir.mkdir(parents=True, exist_ok=True)

        dirs: set[str] = set()
        for rel, content in files.items():
            path = self.root / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
            parent = posixpath.dirname(rel)
            while parent:
                dirs.add(parent)
                parent = posixpath.dirname(parent)

        if changes is None:
            lines = ['opam-version: "2.0"', "added: ["]
            lines += [f'  "{d}" {{"D"}}' for d in sorted(dirs)]
            lines += [f'  "{f}" {{"F:md5=0"}}' for f in sorted(files)]
            lines.append("]")
            changes = "\n".join(lines) + "\n"
        (install_dir / f"{name}.changes").write_text(changes, encoding="utf-8")


@pytest.fixture()
def fake_switch(tmp_path: Path) -> FakeSwitch:
    root = tmp_path / "switch"
    root.mkdir()
    return FakeSwitch(root)


@pytest.fixture()
def sample_switch(fake_switch: FakeSwitch) -> FakeSwitch:
    """``alpha`` and ``beta`` both ship a module named Foo."""
    fake_switch.add_package(
        "alpha",
        "1.0",
        {
            "lib/alpha/META": ALPHA_META,
            "lib/alpha/alpha.cma": "",
            "lib/alpha/alpha.cmxa": "",
            "lib/alpha/foo.ml": "let x = 1\n",
            "lib/alpha/foo.mli": "val x : int\n",
            "lib/alpha/bar.ml": "let y = 2\n",
            "doc/alpha/README.md": "alpha\n",
        },
    )
    fake_switch.add_package(
        "beta",
        "2.0",
        {
            "lib/beta/META": BETA_META,
            "lib/beta/beta.cma": "",
            "lib/beta/beta.cmxa": "",
            "lib/beta/foo.ml": "let z = 3\n",
        },
    )
    return fake_switch


@pytest.fixture()
def make_script() -> Callable[[Path, str], Path]:
    """Factory writing executable POSIX shell scripts."""

    def write(path: Path, body: str) -> Path:
        path.write_text("#!/bin/sh\n" + body, encoding="utf-8")
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return path

    return write


@pytest.fixture()
def fake_objinfo(tmp_path: Path, make_script: Callable[[Path, str], Path]) -> Path:
    """Stand-in for ocamlobjinfo: alpha archives embed Foo and Bar, anything else fails."""
    return make_script(
        tmp_path / "fake-objinfo",
        'case "$1" in\n'
        '  *alpha.cma|*alpha.cmxa) printf "File %s\\nUnit name: Foo\\nUnit name: Bar\\n" "$1" ;;\n'
        '  *beta.cma|*beta.cmxa) printf "File %s\\nUnit name: Foo\\n" "$1" ;;\n'
        "  *) echo cannot read >&2; exit 2 ;;\n"
        "esac\n",
    )
