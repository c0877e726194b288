"""Integration test fixtures.

Runs the click entry point against the synthetic switches from
tests/conftest.py (fake_switch, sample_switch) with an isolated
environment: no ambient opam switch, cache and html dirs under tmp_path.
"""

from __future__ import annotations

import os
from typing import TYPE_CHECKING

import pytest
import structlog
from click.testing import CliRunner

if TYPE_CHECKING:
    from pathlib import Path


@pytest.fixture(autouse=True)
def _reset_structlog():
    """The CLI binds structlog to the runner's stderr, which is closed after each invoke."""
    yield
    structlog.reset_defaults()


@pytest.fixture()
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture()
def cli_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> dict[str, str]:
    """Environment for one CLI run; tests add OPAM_SWITCH_PREFIX as needed."""
    for key in list(os.environ):
        if key.startswith("DIGODOC__") or key == "OPAM_SWITCH_PREFIX":
            monkeypatch.delenv(key)
    return {
        "DIGODOC__CACHE__PATH": str(tmp_path / "_digodoc" / "digodoc.state"),
        "DIGODOC__DOCS__HTML_DIR": str(tmp_path / "_digodoc" / "html"),
        "DIGODOC__DOCS__PAGER": "true",
        "DIGODOC__SCAN__OBJINFO": "false",
    }
