"""Pytest configuration: make ``src/`` importable and keep env config out of tests."""

import os
import sys

import pytest

# Project root = parent directory of this tests/ folder
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
SRC = os.path.join(PROJECT_ROOT, "src")

if SRC not in sys.path:
    sys.path.insert(0, SRC)


@pytest.fixture(autouse=True)
def _clean_checkrun_env(monkeypatch):
    for name in list(os.environ):
        if name.startswith("CHECKRUN_"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture
def repo(tmp_path):
    """A tiny repository tree to run jobs against."""
    root = tmp_path / "repo"
    root.mkdir()
    (root / "README.md").write_text("hello\n")
    (root / "sub").mkdir()
    (root / "sub" / "data.txt").write_text("data\n")
    return root
