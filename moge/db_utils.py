"""Database helper utilities for schema consistency and transactional work."""
from __future__ import annotations

from contextlib import contextmanager
from typing import Iterable, Iterator, Set

from sqlalchemy import inspect, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .extensions import db


def _get_column_names(table_name: str) -> Set[str]:
    inspector = inspect(db.engine)
    return {column["name"] for column in inspector.get_columns(table_name)}


LATE_COLUMNS = {
    "chapters": {
        "published_at": "ALTER TABLE chapters ADD COLUMN published_at DATETIME",
    },
    "manuscripts": {
        "last_edited_chapter_id": "ALTER TABLE manuscripts ADD COLUMN last_edited_chapter_id INTEGER",
        "last_edited_at": "ALTER TABLE manuscripts ADD COLUMN last_edited_at DATETIME",
    },
}


def ensure_database_schema() -> None:
    """Ensure that essential schema updates are applied.

    Runs on every application start. Missing tables are created from the
    model metadata and columns introduced after the first release
    (``chapters.published_at`` and the manuscript "last edited" pair) are
    added to databases created before them.
    """

    try:
        inspector = inspect(db.engine)
        table_names: Iterable[str] = inspector.get_table_names()

        if "manuscripts" not in table_names:
            db.create_all()
            inspector = inspect(db.engine)
            table_names = inspector.get_table_names()

        # Import locally to avoid circular import issues during application setup.
        from .models import ChapterContent, ChapterContentVersion, Outline, OutlineChapter, OutlineVolume

        required_tables = {
            "outlines": Outline.__table__,
            "outline_volumes": OutlineVolume.__table__,
            "outline_chapters": OutlineChapter.__table__,
            "chapter_contents": ChapterContent.__table__,
            "chapter_content_versions": ChapterContentVersion.__table__,
        }

        for table_name, table in required_tables.items():
            if table_name not in table_names:
                table.create(bind=db.engine)

        for table_name, columns in LATE_COLUMNS.items():
            if table_name not in table_names:
                continue
            existing = _get_column_names(table_name)
            for column_name, statement in columns.items():
                if column_name in existing:
                    continue
                with db.engine.begin() as connection:
                    connection.execute(text(statement))
    except SQLAlchemyError:
        # Refuse to continue in a partially configured state.
        raise


@contextmanager
def unit_of_work() -> Iterator[Session]:
    """Yield the request session, committing on success and rolling back on error."""

    session = db.session
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
