"""Pytest configuration for test isolation.

Puts ``packages/`` and ``libs/db/src`` on ``sys.path`` so tests run from a
plain checkout, strips ``DATABASE_URL``/``FINFLOW_*``/``OPENAI_API_KEY`` from
the environment so a developer's ``.env`` never leaks into a test, and
disposes cached engines after each test so SQLite files can be removed.
"""

from __future__ import annotations

import os
import sys
from collections.abc import Iterator
from pathlib import Path

import pytest

_ROOT = Path(__file__).resolve().parents[1]
sys.path[:0] = [
    p
    for p in [str(_ROOT / "packages"), str(_ROOT / "libs" / "db" / "src"), str(_ROOT)]
    if p not in sys.path
]

from db.client import dispose_engines  # noqa: E402
from tests.helpers.db import bootstrap_sqlite_db  # noqa: E402


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    for name in list(os.environ):
        if name == "DATABASE_URL" or name == "OPENAI_API_KEY" or name.startswith("FINFLOW_"):
            monkeypatch.delenv(name, raising=False)
    yield
    dispose_engines()


@pytest.fixture()
def database_url(tmp_path: Path) -> str:
    return bootstrap_sqlite_db(tmp_path / "finflow.sqlite3")
