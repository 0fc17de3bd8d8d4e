"""Chapter body storage with an append-only revision history."""
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from flask import current_app
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..models import ChapterContent, ChapterContentVersion
from . import aggregates
from .errors import InvalidRequestError, NotFoundError, VersionConflictError
from .structure import get_owned_chapter
from .text import count_words


def get_content(session: Session, chapter_id: int, user_id: int) -> Optional[ChapterContent]:
    chapter, _ = get_owned_chapter(session, chapter_id, user_id)
    return chapter.content


def save_content(
    session: Session,
    chapter_id: int,
    body: str,
    user_id: int,
    *,
    expected_version: Optional[int] = None,
) -> ChapterContent:
    """Replace a chapter's body, archiving the superseded revision.

    The first save creates version 1 with no history row. Every later save
    archives the current ``(version, body)`` pair and increments the version
    by one. When ``expected_version`` is given the save is rejected if the
    stored version has moved on; without it the last writer wins.
    """

    if body is None:
        raise InvalidRequestError("Chapter content is required.")

    chapter, manuscript = get_owned_chapter(session, chapter_id, user_id)
    content = chapter.content

    if expected_version is not None:
        current_version = content.version if content is not None else 0
        if current_version != expected_version:
            raise VersionConflictError(
                f"Chapter content is at version {current_version}, not {expected_version}. "
                "Reload the chapter before saving."
            )

    if content is not None:
        session.add(
            ChapterContentVersion(
                content=content,
                version=content.version,
                body=content.body,
            )
        )
        content.body = body
        content.version = content.version + 1
        content.updated_at = datetime.utcnow()
    else:
        content = ChapterContent(chapter=chapter, body=body, version=1)
        session.add(content)

    chapter.word_count = count_words(body)

    manuscript.last_edited_chapter_id = chapter.id
    manuscript.last_edited_at = datetime.utcnow()
    session.flush()

    aggregates.recompute(session, manuscript.id)
    current_app.logger.debug("Saved chapter %s content at version %s", chapter.id, content.version)
    return content


def list_versions(session: Session, chapter_id: int, user_id: int) -> List[ChapterContentVersion]:
    """Archived revisions of a chapter, newest first."""

    chapter, _ = get_owned_chapter(session, chapter_id, user_id)
    if chapter.content is None:
        return []
    statement = (
        select(ChapterContentVersion)
        .where(ChapterContentVersion.content_id == chapter.content.id)
        .order_by(ChapterContentVersion.version.desc())
    )
    return list(session.execute(statement).scalars())


def restore_version(session: Session, chapter_id: int, version: int, user_id: int) -> ChapterContent:
    """Make an archived revision current again through a regular save."""

    chapter, _ = get_owned_chapter(session, chapter_id, user_id)
    if chapter.content is None:
        raise NotFoundError(f"Chapter with id {chapter_id} has no saved content.")

    archived = session.execute(
        select(ChapterContentVersion).where(
            ChapterContentVersion.content_id == chapter.content.id,
            ChapterContentVersion.version == version,
        )
    ).scalar_one_or_none()
    if archived is None:
        raise NotFoundError(f"Version {version} of chapter {chapter_id} not found.")

    return save_content(session, chapter_id, archived.body, user_id)


__all__ = ["get_content", "list_versions", "restore_version", "save_content"]
