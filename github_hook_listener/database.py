"""
Database Module

Engine cache and transactional sessions for the hook store.
"""

import logging
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from github_hook_listener.models import Base

logger = logging.getLogger(__name__)

_engines = {}


def get_engine(database_url):
    """
    Get or create a database engine for the given URL.

    SQLite connections are shared with FastAPI's worker threads, so the
    same-thread check is turned off for them.
    """
    if database_url not in _engines:
        logger.debug(f"Creating database engine for {database_url}")
        _engines[database_url] = create_engine(
            database_url,
            echo=False,
            connect_args={"check_same_thread": False}
            if database_url.startswith("sqlite")
            else {},
        )
    return _engines[database_url]


def init_db(engine):
    with engine.begin() as conn:
        Base.metadata.create_all(bind=conn)


def dispose_engines():
    for url, engine in list(_engines.items()):
        engine.dispose()
        del _engines[url]


@contextmanager
def session_scope(engine):
    """
    Session wrapped in a transaction: committed when the block exits
    normally, rolled back when it raises.
    """
    SessionLocal = sessionmaker(bind=engine, expire_on_commit=False)
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
