from __future__ import annotations

import os
from pathlib import Path

import pytest

import secure_tools_mcp_server as sm


@pytest.fixture
def work(tmp_path: Path) -> Path:
    """Sandbox root, spelled canonically so realpath comparisons are exact."""
    root = tmp_path / "work"
    root.mkdir()
    return Path(os.path.realpath(root))


@pytest.fixture
def outside(tmp_path: Path) -> Path:
    other = tmp_path / "outside"
    other.mkdir()
    (other / "secret.txt").write_text("top secret\n")
    return Path(os.path.realpath(other))


@pytest.fixture
def boundary(work: Path) -> sm.BoundarySet:
    return sm.build_boundary_set(cwd=str(work))


@pytest.fixture
def secure_tools(boundary: sm.BoundarySet) -> sm.SecureTools:
    return sm.SecureTools(boundary, default_timeout=10.0)
