from pathlib import Path
from typing import Optional
import logging
import os
from sqlalchemy import event
from sqlmodel import SQLModel, Session, create_engine
from contextlib import contextmanager

from . import models  # noqa: F401  registers the tables on SQLModel.metadata
from .config import Config, DB_FILENAME, load_config
from .exceptions import StorageNotFoundError

logger = logging.getLogger(__name__)

_ENGINE = None
_ENGINE_URL = None  # track current engine's URL so we can switch when env changes

# set by the CLI for this process; see use_storage()
_STORAGE: Optional[str] = None
_LOCAL = False
_CONFIG: Optional[Config] = None


def use_storage(name: Optional[str] = None, local: bool = False) -> None:
    """Select the storage the engine points at.

    ``local`` uses ``nodes.db`` in the current directory, ``name`` a storage
    from the config file; neither means the configured default storage.
    NODES_DB_PATH still wins over both.
    """
    global _STORAGE, _LOCAL
    _STORAGE = name
    _LOCAL = local


def get_config() -> Config:
    global _CONFIG
    if _CONFIG is None:
        _CONFIG = load_config()
    return _CONFIG


def database_path() -> Path:
    env_path = os.getenv("NODES_DB_PATH")
    if env_path:
        return Path(env_path)
    if _LOCAL:
        return Path.cwd() / DB_FILENAME

    config = get_config()
    if _STORAGE is None:
        folder = config.storage.default_folder()
    else:
        folder = config.storage.folder(_STORAGE)
        if folder is None:
            raise StorageNotFoundError(_STORAGE)
    return folder / DB_FILENAME


def _compute_url() -> str:
    db_path = database_path()
    db_path.parent.mkdir(parents=True, exist_ok=True)
    return f"sqlite:///{db_path}"


def _set_sqlite_pragma(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    # sqlite leaves foreign keys unenforced unless asked, per connection
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute(f"PRAGMA synchronous={get_config().synchronous}")
    cursor.close()


def get_engine():
    global _ENGINE, _ENGINE_URL
    url = _compute_url()
    if _ENGINE is None or _ENGINE_URL != url:
        # swap engine if URL changed (common in tests)
        if _ENGINE is not None:
            _ENGINE.dispose()
        logger.debug("Opening database %s", url)
        _ENGINE = create_engine(url, echo=False)
        event.listen(_ENGINE, "connect", _set_sqlite_pragma)
        _ENGINE_URL = url
    return _ENGINE


def reset_engine():
    """For tests: drop the cached engine so a new NODES_DB_PATH is picked up."""
    global _ENGINE, _ENGINE_URL, _CONFIG
    if _ENGINE is not None:
        _ENGINE.dispose()
    _ENGINE = None
    _ENGINE_URL = None
    _CONFIG = None


def init_db():
    engine = get_engine()
    SQLModel.metadata.create_all(engine)


def get_session():
    # keep objects alive after commit so returned models retain values
    return Session(get_engine(), expire_on_commit=False)


@contextmanager
def session_scope():
    session = get_session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
