# tests/conftest.py
from __future__ import annotations

import sys
from pathlib import Path

import numpy as np
import pytest


def pytest_configure() -> None:
    # Ensure `src` is importable when running tests from the repo root.
    repo_root = Path(__file__).resolve().parents[1]
    src_dir = repo_root / "src"
    if src_dir.exists():
        sys.path.insert(0, str(src_dir))


@pytest.fixture
def gradient_image() -> np.ndarray:
    """1000x800 (w x h) image whose pixel value encodes its own column and row."""
    rows = np.arange(800, dtype=np.float64)[:, None]
    cols = np.arange(1000, dtype=np.float64)[None, :]
    return rows * 1000.0 + cols
