"""Database connection and session management."""

from typing import Generator, Optional
from contextlib import contextmanager
from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from ..config import config
from .models import Base


class Database:
    """Database connection manager."""

    def __init__(self, database_url: Optional[str] = None, timeout: Optional[float] = None):
        """Initialize database connection."""
        self.database_url = database_url or config.DATABASE_URL
        self.timeout = timeout if timeout is not None else config.STORE_TIMEOUT_SECONDS

        if make_url(self.database_url).get_backend_name() == "sqlite":
            connect_args = {"check_same_thread": False, "timeout": self.timeout}
            if self.is_in_memory:
                # One shared connection, otherwise every checkout gets an empty database
                self.engine = create_engine(
                    self.database_url, connect_args=connect_args, poolclass=StaticPool, echo=False
                )
            else:
                # Pooled connection per thread; the busy timeout serializes concurrent writers
                self.engine = create_engine(self.database_url, connect_args=connect_args, echo=False)
        else:
            self.engine = create_engine(self.database_url, pool_timeout=self.timeout, echo=False)

        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)

    @property
    def is_in_memory(self) -> bool:
        """In-memory SQLite: a single connection shared by every thread."""
        url = make_url(self.database_url)
        return url.get_backend_name() == "sqlite" and url.database in (None, "", ":memory:")

    def create_tables(self):
        """Create all database tables."""
        Base.metadata.create_all(bind=self.engine)

    def drop_tables(self):
        """Drop all database tables."""
        Base.metadata.drop_all(bind=self.engine)

    @contextmanager
    def get_session(self) -> Generator[Session, None, None]:
        """Get a database session context manager."""
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def close(self):
        """Close database connection."""
        self.engine.dispose()


# Global database instance
_db: Optional[Database] = None


def get_db() -> Database:
    """Get or create the global database instance."""
    global _db
    if _db is None:
        _db = Database()
        _db.create_tables()
    return _db


def close_db():
    """Close the global database connection."""
    global _db
    if _db is not None:
        _db.close()
        _db = None
