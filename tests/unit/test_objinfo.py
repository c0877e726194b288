"""Unit tests for digodoc.objinfo."""

from __future__ import annotations

import os
from typing import TYPE_CHECKING

import pytest

from digodoc.errors import ErrorCode, FailureLog
from digodoc.objinfo import ObjInfo, parse_objinfo

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

pytestmark = pytest.mark.skipif(os.name == "nt", reason="Fake tools are POSIX shell scripts.")

CMA_OUTPUT = """\
File /sw/lib/alpha/alpha.cma
Force custom: no
Extra C object files:
Extra C options:
Extra dynamically-loaded libraries:
Unit name: Alpha__Foo
Force link: no
Imported units:
\t8f1e...\tStdlib
Unit name: Alpha
Force link: no
"""

CMXA_OUTPUT = """\
File /sw/lib/alpha/alpha.cmxa
Name: Alpha__Foo
CRC of implementation: 1234
Name: Alpha
CRC of implementation: 5678
Extra C object files:
"""


class TestParseObjinfo:
    def test_bytecode_archive(self) -> None:
        assert parse_objinfo(CMA_OUTPUT) == ["Alpha__Foo", "Alpha"]

    def test_native_archive(self) -> None:
        assert parse_objinfo(CMXA_OUTPUT) == ["Alpha__Foo", "Alpha"]

    def test_duplicates_removed(self) -> None:
        assert parse_objinfo("Unit name: A\nUnit name: A\nUnit name: B\n") == ["A", "B"]

    def test_no_units(self) -> None:
        assert parse_objinfo("File x.cma\n") == []


class TestObjInfo:
    def test_lists_units(self, tmp_path: Path, fake_objinfo: Path) -> None:
        failures = FailureLog()
        units = ObjInfo(str(fake_objinfo), failures).units(tmp_path / "lib/alpha/alpha.cma")
        assert units == ["Foo", "Bar"]
        assert not failures

    def test_nonzero_exit_is_recorded(self, tmp_path: Path, fake_objinfo: Path) -> None:
        failures = FailureLog()
        objinfo = ObjInfo(str(fake_objinfo), failures)
        assert objinfo.units(tmp_path / "lib/gamma/gamma.cma") is None
        assert failures.codes() == [ErrorCode.OBJINFO_FAILED]
        # still usable for the next archive
        assert objinfo.units(tmp_path / "lib/alpha/alpha.cma") == ["Foo", "Bar"]

    def test_empty_listing_is_recorded(
        self, tmp_path: Path, make_script: Callable[[Path, str], Path]
    ) -> None:
        script = make_script(tmp_path / "silent", "echo nothing here\n")
        failures = FailureLog()
        assert ObjInfo(str(script), failures).units(tmp_path / "x.cma") is None
        assert failures.codes() == [ErrorCode.OBJINFO_FAILED]

    def test_undecodable_output_is_recorded(
        self, tmp_path: Path, make_script: Callable[[Path, str], Path]
    ) -> None:
        script = make_script(tmp_path / "garbled", "printf 'Unit name: Foo\\n\\377\\376\\n'\n")
        failures = FailureLog()
        objinfo = ObjInfo(str(script), failures)
        assert objinfo.units(tmp_path / "x.cma") is None
        assert failures.codes() == [ErrorCode.OBJINFO_FAILED]
        assert objinfo.available is True

    def test_missing_command_disables_inspection(self, tmp_path: Path) -> None:
        failures = FailureLog()
        objinfo = ObjInfo(str(tmp_path / "no-such-objinfo"), failures)
        assert objinfo.units(tmp_path / "a.cma") is None
        assert objinfo.units(tmp_path / "b.cma") is None
        assert objinfo.available is False
        assert failures.codes() == [ErrorCode.OBJINFO_FAILED]
