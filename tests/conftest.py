import pytest

from nodes.db import init_db, reset_engine, use_storage


@pytest.fixture
def db(tmp_path, monkeypatch):
    """Fresh database in tmp_path; the user's config file is never read."""
    db_path = tmp_path / "nodes.sqlite"
    monkeypatch.setenv("NODES_DB_PATH", str(db_path))
    monkeypatch.setenv("NODES_CONFIG", str(tmp_path / "missing-config"))
    reset_engine()
    init_db()
    yield db_path
    use_storage(None)
    reset_engine()
