"""Manuscript-level word count aggregates derived from chapters."""
from __future__ import annotations

from dataclasses import dataclass
from typing import List

from flask import current_app
from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from ..models import CHAPTER_PUBLISHED, Chapter, Manuscript, Volume


@dataclass
class WordTotals:
    total_words: int
    published_words: int


def reachable_chapters(session: Session, manuscript_id: int) -> List[Chapter]:
    """Return direct chapters plus chapters nested under the manuscript's volumes."""

    volume_ids = select(Volume.id).where(Volume.manuscript_id == manuscript_id)
    statement = select(Chapter).where(
        or_(Chapter.manuscript_id == manuscript_id, Chapter.volume_id.in_(volume_ids))
    )
    return list(session.execute(statement).scalars())


def recompute(session: Session, manuscript_id: int) -> WordTotals | None:
    """Recompute and persist ``total_words`` and ``published_words``.

    Idempotent. Returns ``None`` when the manuscript no longer exists.
    """

    manuscript = session.get(Manuscript, manuscript_id)
    if manuscript is None:
        return None

    total_words = 0
    published_words = 0
    for chapter in reachable_chapters(session, manuscript_id):
        words = chapter.word_count or 0
        total_words += words
        if chapter.status == CHAPTER_PUBLISHED:
            published_words += words

    manuscript.total_words = total_words
    manuscript.published_words = published_words
    session.flush()

    current_app.logger.debug(
        "Recomputed manuscript %s word counts: total=%s published=%s",
        manuscript_id,
        total_words,
        published_words,
    )
    return WordTotals(total_words=total_words, published_words=published_words)


__all__ = ["WordTotals", "reachable_chapters", "recompute"]
