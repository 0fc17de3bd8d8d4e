"""Writing statistics for a user's workspace overview."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from ..models import Chapter, ChapterContent, Manuscript, Outline, Project, Volume
from .text import count_plain_words


@dataclass
class WritingStats:
    today_words: int
    week_words: int
    total_words: int
    project_count: int
    manuscript_count: int


@dataclass
class WorkspaceSummary:
    stats: WritingStats
    recent_manuscripts: List[Manuscript] = field(default_factory=list)
    recent_projects: List[Project] = field(default_factory=list)
    recent_outlines: List[Outline] = field(default_factory=list)


def _owned_contents_since(session: Session, user_id: int, since: datetime) -> List[ChapterContent]:
    owned_manuscripts = select(Manuscript.id).where(
        Manuscript.owner_id == user_id, Manuscript.deleted_at.is_(None)
    )
    owned_volumes = select(Volume.id).where(Volume.manuscript_id.in_(owned_manuscripts))
    statement = (
        select(ChapterContent)
        .join(Chapter, ChapterContent.chapter_id == Chapter.id)
        .where(
            or_(Chapter.manuscript_id.in_(owned_manuscripts), Chapter.volume_id.in_(owned_volumes)),
            ChapterContent.updated_at >= since,
        )
    )
    return list(session.execute(statement).scalars())


def writing_stats(session: Session, user_id: int, *, now: Optional[datetime] = None) -> WritingStats:
    now = now or datetime.utcnow()
    today = datetime(now.year, now.month, now.day)
    week_ago = today - timedelta(days=7)

    today_words = sum(count_plain_words(c.body) for c in _owned_contents_since(session, user_id, today))
    week_words = sum(count_plain_words(c.body) for c in _owned_contents_since(session, user_id, week_ago))

    total_words = session.execute(
        select(func.coalesce(func.sum(Manuscript.total_words), 0)).where(
            Manuscript.owner_id == user_id, Manuscript.deleted_at.is_(None)
        )
    ).scalar()
    project_count = session.execute(
        select(func.count(Project.id)).where(Project.owner_id == user_id)
    ).scalar()
    manuscript_count = session.execute(
        select(func.count(Manuscript.id)).where(
            Manuscript.owner_id == user_id, Manuscript.deleted_at.is_(None)
        )
    ).scalar()

    return WritingStats(
        today_words=today_words,
        week_words=week_words,
        total_words=int(total_words or 0),
        project_count=int(project_count or 0),
        manuscript_count=int(manuscript_count or 0),
    )


def recent_manuscripts(session: Session, user_id: int, limit: int = 3) -> List[Manuscript]:
    statement = (
        select(Manuscript)
        .where(Manuscript.owner_id == user_id, Manuscript.deleted_at.is_(None))
        .order_by(Manuscript.last_edited_at.desc().nulls_last(), Manuscript.updated_at.desc())
        .limit(limit)
    )
    return list(session.execute(statement).scalars())


def recent_projects(session: Session, user_id: int, limit: int = 3) -> List[Project]:
    statement = (
        select(Project)
        .where(Project.owner_id == user_id)
        .order_by(Project.updated_at.desc(), Project.id.desc())
        .limit(limit)
    )
    return list(session.execute(statement).scalars())


def recent_outlines(session: Session, user_id: int, limit: int = 3) -> List[Outline]:
    # Outlines carry no update timestamp.
    statement = (
        select(Outline)
        .where(Outline.owner_id == user_id)
        .order_by(Outline.created_at.desc(), Outline.id.desc())
        .limit(limit)
    )
    return list(session.execute(statement).scalars())


def workspace_summary(session: Session, user_id: int) -> WorkspaceSummary:
    return WorkspaceSummary(
        stats=writing_stats(session, user_id),
        recent_manuscripts=recent_manuscripts(session, user_id),
        recent_projects=recent_projects(session, user_id),
        recent_outlines=recent_outlines(session, user_id),
    )


__all__ = [
    "WorkspaceSummary",
    "WritingStats",
    "recent_manuscripts",
    "recent_outlines",
    "recent_projects",
    "workspace_summary",
    "writing_stats",
]
