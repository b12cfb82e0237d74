"""Tests for storage initialization."""

import pytest

from lingcao import storage
from lingcao.storage import core


def test_init_creates_dirs(tmp_path):
    storage.init_storage(tmp_path / "fresh")
    assert (tmp_path / "fresh").is_dir()
    assert (tmp_path / "fresh" / "saves").is_dir()
    assert storage.saves_dir() == tmp_path / "fresh" / "saves"


def test_init_is_idempotent(tmp_path):
    storage.init_storage(tmp_path / "again")
    storage.init_storage(tmp_path / "again")
    assert storage.data_dir() == tmp_path / "again"


def test_data_dir_requires_init(monkeypatch):
    monkeypatch.setattr(core, "_data_dir", None)
    with pytest.raises(AssertionError):
        storage.data_dir()
