"""Pytest configuration making the modules under src/ importable during test runs."""

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parent
SOURCE_ROOT = ROOT.parent / "src"

if str(SOURCE_ROOT) not in sys.path:
    sys.path.insert(0, str(SOURCE_ROOT))


@pytest.fixture
def write_file(tmp_path):
    """Write `content` to a fresh file under tmp_path and return its path."""

    def _write(content, name="input.txt", encoding="utf-8"):
        path = tmp_path / name
        if isinstance(content, bytes):
            path.write_bytes(content)
        else:
            path.write_bytes(content.encode(encoding))
        return path

    return _write
