from __future__ import annotations

import os
from pathlib import Path

import pytest


@pytest.fixture(scope="session")
def repo_root() -> Path:
    return Path(__file__).resolve().parents[1]


@pytest.fixture
def sample_tree(tmp_path: Path) -> Path:
    """app.exe plus one nested asset, the smallest realistic bundle."""
    root = tmp_path / "rustdesk"
    (root / "assets").mkdir(parents=True)
    (root / "app.exe").write_bytes(b"AAAAAAAAAA")
    (root / "assets" / "logo.png").write_bytes(b"\x01\x02\x03")
    return root


@pytest.fixture
def output_dir(tmp_path: Path) -> Path:
    out = tmp_path / "out"
    out.mkdir()
    return out


@pytest.fixture
def restore_cwd():
    previous = os.getcwd()
    yield previous
    os.chdir(previous)
