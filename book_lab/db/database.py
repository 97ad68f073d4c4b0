"""
Database connection management for Book Lab.
"""

import contextlib
import os
import sqlite3
from typing import Iterator, Optional, Union
from pathlib import Path

from loguru import logger
from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.engine.url import make_url
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    """Cascading deletes rely on SQLite enforcing foreign keys."""
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _enable_sqlite_wal(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.close()


class Database:
    """Owns the engine for one SQLite database file (or an in-memory database)."""

    def __init__(self, url: str, echo: bool = False):
        self.url = url
        self.echo = echo
        self.engine = self._create_engine()

    @property
    def is_memory(self) -> bool:
        return self.path is None

    @property
    def path(self) -> Optional[str]:
        """Filesystem path of the database, or None for an in-memory database."""
        database = make_url(self.url).database
        if not database or database == ":memory:":
            return None
        return database

    def _create_engine(self) -> Engine:
        if not self.url.startswith("sqlite"):
            raise ValueError(f"Unsupported database URL: {self.url} (only SQLite is supported)")

        connect_args = {"check_same_thread": False}

        if self.is_memory:
            # A single shared connection, otherwise every session sees an empty database
            engine = create_engine(
                self.url,
                connect_args=connect_args,
                poolclass=StaticPool,
                echo=self.echo,
            )
        else:
            os.makedirs(os.path.dirname(os.path.abspath(self.path)), exist_ok=True)
            engine = create_engine(
                self.url,
                connect_args=connect_args,
                pool_recycle=3600,
                echo=self.echo,
            )
            event.listen(engine, "connect", _enable_sqlite_wal)

        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
        return engine

    def create_db_and_tables(self) -> None:
        """Create database tables if they don't exist."""
        logger.info("Creating database tables...")
        # Import models to register them with SQLModel
        from book_lab.db.models import (
            Book, Chapter, Note, Topic, NoteTopicLink, Setting
        )
        SQLModel.metadata.create_all(self.engine)
        logger.info("Database tables created!")

    @contextlib.contextmanager
    def session(self) -> Iterator[Session]:
        """Get a database session.

        Objects stay usable after commit so they can be returned to callers.
        """
        session = Session(self.engine, expire_on_commit=False)
        try:
            yield session
        finally:
            session.close()

    def backup_to(self, destination: Union[str, Path]) -> str:
        """Copy the live database to ``destination`` using SQLite's backup API."""
        destination = str(destination)
        dest_dir = os.path.dirname(os.path.abspath(destination))
        os.makedirs(dest_dir, exist_ok=True)

        raw = self.engine.raw_connection()
        try:
            target = sqlite3.connect(destination)
            try:
                raw.driver_connection.backup(target)
            finally:
                target.close()
        finally:
            raw.close()

        logger.info(f"Backup created: {destination}")
        return destination

    def restore_from(self, source: Union[str, Path]) -> None:
        """Replace the contents of the live database with a backup file."""
        source = str(source)
        if not os.path.exists(source):
            raise FileNotFoundError(f"Backup file not found: {source}")

        origin = sqlite3.connect(source)
        try:
            raw = self.engine.raw_connection()
            try:
                try:
                    origin.backup(raw.driver_connection)
                except sqlite3.DatabaseError as e:
                    raise ValueError(f"{source} is not a valid Book Lab backup: {e}") from e
            finally:
                raw.close()
        finally:
            origin.close()

        # Pooled connections may hold stale schema caches
        if not self.is_memory:
            self.engine.dispose()

        logger.info(f"Backup restored from: {source}")

    def dispose(self) -> None:
        self.engine.dispose()
