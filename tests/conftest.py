import pytest

import config
import db


@pytest.fixture
def temp_db(tmp_path, monkeypatch):
    """Point the app at a fresh SQLite file with all tables created"""
    monkeypatch.setattr(config, "DB_FILE", tmp_path / "test.db")
    db.init_db("not-a-real-hash")
    return tmp_path / "test.db"
