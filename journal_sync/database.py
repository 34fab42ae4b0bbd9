"""
Database handle

The engine and session factory are created explicitly and handed to the
stores that need them; nothing here is a module level singleton.
"""
from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from .utils.logger import get_logger

logger = get_logger('database')

Base = declarative_base()


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    """Owns the SQLAlchemy engine and hands out transactional sessions.

    Example:
        >>> database = Database('sqlite:///journal.db')
        >>> database.create_all()
        >>> with database.session_scope() as session:
        ...     session.add(entry)
    """

    def __init__(self, url: str, echo: bool = False):
        self.url = url
        self.engine: Engine = self._create_engine(url, echo)
        self._session_factory = sessionmaker(
            bind=self.engine,
            expire_on_commit=False,
        )

    @staticmethod
    def _create_engine(url: str, echo: bool) -> Engine:
        kwargs = {'echo': echo}
        if url.startswith('sqlite'):
            kwargs['connect_args'] = {'check_same_thread': False}
            if ':memory:' in url or url in ('sqlite://', 'sqlite:///'):
                # Every thread must see the same in-memory database
                kwargs['poolclass'] = StaticPool

        engine = create_engine(url, **kwargs)
        if url.startswith('sqlite'):
            event.listen(engine, 'connect', _enable_sqlite_foreign_keys)
        return engine

    def create_all(self) -> None:
        """Create every table registered on ``Base``."""
        from . import models  # noqa: F401  (registers the mappers)

        Base.metadata.create_all(self.engine)
        logger.debug(f"Tables ensured on {self.url}")

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        """One transaction: commit on success, rollback on any error."""
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    @contextmanager
    def scope(self, session: Optional[Session] = None) -> Iterator[Session]:
        """Join the caller's transaction when one is given, else open a new one."""
        if session is not None:
            yield session
            return
        with self.session_scope() as own_session:
            yield own_session

    def dispose(self) -> None:
        self.engine.dispose()
