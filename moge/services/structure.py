"""Manuscript -> Volume -> Chapter tree operations.

Every function takes the session explicitly and never commits, so a caller
can run a cascade delete and the aggregate recomputation it triggers in one
transaction (see :func:`moge.db_utils.unit_of_work`). Mutating operations
resolve ownership first and fail fast with the specific error kind.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..models import (
    CHAPTER_DRAFT,
    CHAPTER_PUBLISHED,
    MANUSCRIPT_STATUSES,
    Chapter,
    ChapterParent,
    DirectParent,
    Manuscript,
    Outline,
    Project,
    Volume,
    VolumeParent,
)
from . import aggregates
from .errors import InvalidRequestError, NotFoundError, PermissionDeniedError
from .ordering import next_sort_key, renumbered

LORE_FIELDS = ("characters", "systems", "worlds", "misc")
MANUSCRIPT_SCALAR_FIELDS = ("name", "description", "type", "target_words")


@dataclass
class VolumeNode:
    volume: Volume
    chapters: List[Chapter] = field(default_factory=list)


@dataclass
class ManuscriptTree:
    manuscript: Manuscript
    direct_chapters: List[Chapter] = field(default_factory=list)
    volumes: List[VolumeNode] = field(default_factory=list)

    def iter_chapters(self) -> Iterable[Chapter]:
        """Yield direct chapters first, then each volume's chapters in order."""

        yield from self.direct_chapters
        for node in self.volumes:
            yield from node.chapters

    @property
    def chapter_count(self) -> int:
        return len(self.direct_chapters) + sum(len(node.chapters) for node in self.volumes)


# ---------------------------------------------------------------------------
# Ownership resolution
# ---------------------------------------------------------------------------


def _require_owner(owner_id: int, user_id: int, label: str) -> None:
    if owner_id != user_id:
        raise PermissionDeniedError(f"You do not have permission to access this {label}.")


def get_owned_manuscript(session: Session, manuscript_id: int, user_id: int) -> Manuscript:
    manuscript = session.get(Manuscript, manuscript_id)
    if manuscript is None or manuscript.deleted_at is not None:
        raise NotFoundError(f"Manuscript with id {manuscript_id} not found.")
    _require_owner(manuscript.owner_id, user_id, "manuscript")
    return manuscript


def get_owned_volume(session: Session, volume_id: int, user_id: int) -> Volume:
    volume = session.get(Volume, volume_id)
    if volume is None or volume.manuscript is None or volume.manuscript.deleted_at is not None:
        raise NotFoundError(f"Volume with id {volume_id} not found.")
    _require_owner(volume.manuscript.owner_id, user_id, "volume")
    return volume


def resolve_owning_manuscript(chapter: Chapter) -> Manuscript:
    """Walk volume -> manuscript for nested chapters."""

    manuscript = chapter.owning_manuscript
    if manuscript is None:
        raise NotFoundError(f"Chapter with id {chapter.id} has no owning manuscript.")
    return manuscript


def get_owned_chapter(session: Session, chapter_id: int, user_id: int) -> Tuple[Chapter, Manuscript]:
    chapter = session.get(Chapter, chapter_id)
    if chapter is None:
        raise NotFoundError(f"Chapter with id {chapter_id} not found.")
    manuscript = resolve_owning_manuscript(chapter)
    if manuscript.deleted_at is not None:
        raise NotFoundError(f"Chapter with id {chapter_id} not found.")
    _require_owner(manuscript.owner_id, user_id, "chapter")
    return chapter, manuscript


def parent_from_ids(manuscript_id: Optional[int], volume_id: Optional[int]) -> ChapterParent:
    """Build the chapter parent from the two optional ids a client sends."""

    if manuscript_id is not None and volume_id is not None:
        raise InvalidRequestError("Provide either manuscript_id or volume_id, not both.")
    if volume_id is not None:
        return VolumeParent(volume_id)
    if manuscript_id is not None:
        return DirectParent(manuscript_id)
    raise InvalidRequestError("Either manuscript_id or volume_id must be provided.")


# ---------------------------------------------------------------------------
# Manuscripts
# ---------------------------------------------------------------------------


def _clean_id_list(values: Optional[Iterable[Any]]) -> List[str]:
    if values is None:
        return []
    if isinstance(values, (str, bytes)):
        raise InvalidRequestError("Setting references must be a list of ids.")
    return [str(value).strip() for value in values if str(value).strip()]


def _validate_status(status: str) -> str:
    normalized = (status or "").strip().upper()
    if normalized not in MANUSCRIPT_STATUSES:
        raise InvalidRequestError(
            f"Unknown manuscript status '{status}'. Expected one of: {', '.join(MANUSCRIPT_STATUSES)}."
        )
    return normalized


def _check_project(session: Session, project_id: Optional[int], user_id: int) -> None:
    if project_id is None:
        return
    project = session.get(Project, project_id)
    if project is None:
        raise NotFoundError(f"Project with id {project_id} not found.")
    _require_owner(project.owner_id, user_id, "project")


def create_manuscript(
    session: Session,
    user_id: int,
    *,
    name: str,
    description: Optional[str] = None,
    type: Optional[str] = None,
    tags: Optional[Sequence[str]] = None,
    project_id: Optional[int] = None,
    outline_id: Optional[int] = None,
    target_words: Optional[int] = None,
    characters: Optional[Sequence[str]] = None,
    systems: Optional[Sequence[str]] = None,
    worlds: Optional[Sequence[str]] = None,
    misc: Optional[Sequence[str]] = None,
) -> Manuscript:
    cleaned_name = (name or "").strip()
    if not cleaned_name:
        raise InvalidRequestError("A manuscript name is required.")
    _check_project(session, project_id, user_id)

    manuscript = Manuscript(
        owner_id=user_id,
        name=cleaned_name,
        description=description,
        type=type,
        tags=list(tags or []),
        project_id=project_id,
        outline_id=outline_id,
        target_words=target_words,
        characters=_clean_id_list(characters),
        systems=_clean_id_list(systems),
        worlds=_clean_id_list(worlds),
        misc=_clean_id_list(misc),
        status="DRAFT",
        total_words=0,
        published_words=0,
    )
    session.add(manuscript)
    session.flush()
    return manuscript


def _outline_order(items):
    return sorted(items, key=lambda item: (item.sort_key, item.id))


def create_manuscript_from_outline(session: Session, user_id: int, outline_id: int) -> Manuscript:
    """Copy an outline's name, lore references and volume/chapter skeleton."""

    outline = session.get(Outline, outline_id)
    if outline is None:
        raise NotFoundError(f"Outline with id {outline_id} not found.")
    _require_owner(outline.owner_id, user_id, "outline")

    manuscript = create_manuscript(
        session,
        user_id,
        name=outline.name,
        description=f"根据大纲《{outline.name}》创建",
        type=outline.type,
        tags=outline.tags,
        outline_id=outline.id,
        characters=outline.characters,
        systems=outline.systems,
        worlds=outline.worlds,
        misc=outline.misc,
    )

    # Outline keys may collide, so copies are renumbered 1..n in outline order.
    for outline_volume, volume_key in renumbered(_outline_order(outline.volumes)):
        volume = Volume(
            manuscript=manuscript,
            title=outline_volume.title,
            description=outline_volume.description,
            sort_key=volume_key,
        )
        session.add(volume)
        for outline_chapter, chapter_key in renumbered(_outline_order(outline_volume.chapters)):
            session.add(
                Chapter(
                    volume=volume,
                    title=outline_chapter.title,
                    sort_key=chapter_key,
                    status=CHAPTER_DRAFT,
                    word_count=0,
                )
            )

    for outline_chapter, chapter_key in renumbered(_outline_order(outline.chapters)):
        session.add(
            Chapter(
                manuscript=manuscript,
                title=outline_chapter.title,
                sort_key=chapter_key,
                status=CHAPTER_DRAFT,
                word_count=0,
            )
        )

    session.flush()
    return manuscript


def list_manuscripts(session: Session, user_id: int) -> List[Manuscript]:
    statement = (
        select(Manuscript)
        .where(Manuscript.owner_id == user_id, Manuscript.deleted_at.is_(None))
        .order_by(Manuscript.updated_at.desc(), Manuscript.id.desc())
    )
    return list(session.execute(statement).scalars())


def update_manuscript(session: Session, manuscript_id: int, user_id: int, changes: Dict[str, Any]) -> Manuscript:
    """Apply ``changes`` to the manuscript. Unknown keys are rejected."""

    manuscript = get_owned_manuscript(session, manuscript_id, user_id)

    allowed = set(MANUSCRIPT_SCALAR_FIELDS) | set(LORE_FIELDS) | {"status", "tags", "project_id"}
    unknown = set(changes) - allowed
    if unknown:
        raise InvalidRequestError(f"Cannot update field(s): {', '.join(sorted(unknown))}.")

    for key, value in changes.items():
        if key == "name":
            value = (value or "").strip()
            if not value:
                raise InvalidRequestError("A manuscript name is required.")
        elif key == "status":
            value = _validate_status(value)
        elif key in LORE_FIELDS:
            value = _clean_id_list(value)
        elif key == "tags":
            value = list(value or [])
        elif key == "project_id":
            _check_project(session, value, user_id)
        setattr(manuscript, key, value)

    session.flush()
    return manuscript


def delete_manuscript(session: Session, manuscript_id: int, user_id: int) -> Manuscript:
    """Soft delete: the record is retained with ``deleted_at`` set."""

    manuscript = get_owned_manuscript(session, manuscript_id, user_id)
    manuscript.deleted_at = datetime.utcnow()
    session.flush()
    return manuscript


def load_tree(session: Session, manuscript: Manuscript) -> ManuscriptTree:
    """Build the ordered tree for an already-authorized manuscript."""

    volumes = list(
        session.execute(
            select(Volume)
            .where(Volume.manuscript_id == manuscript.id)
            .order_by(Volume.sort_key.asc(), Volume.id.asc())
        ).scalars()
    )
    direct = list(
        session.execute(
            select(Chapter)
            .where(Chapter.manuscript_id == manuscript.id)
            .order_by(Chapter.sort_key.asc(), Chapter.id.asc())
        ).scalars()
    )

    nested: Dict[int, List[Chapter]] = {volume.id: [] for volume in volumes}
    if volumes:
        statement = (
            select(Chapter)
            .where(Chapter.volume_id.in_(list(nested)))
            .order_by(Chapter.sort_key.asc(), Chapter.id.asc())
        )
        for chapter in session.execute(statement).scalars():
            nested[chapter.volume_id].append(chapter)

    return ManuscriptTree(
        manuscript=manuscript,
        direct_chapters=direct,
        volumes=[VolumeNode(volume=volume, chapters=nested[volume.id]) for volume in volumes],
    )


def fetch_tree(session: Session, manuscript_id: int, user_id: int) -> ManuscriptTree:
    manuscript = get_owned_manuscript(session, manuscript_id, user_id)
    return load_tree(session, manuscript)


# ---------------------------------------------------------------------------
# Volumes
# ---------------------------------------------------------------------------


def _max_volume_key(session: Session, manuscript_id: int):
    return session.execute(
        select(func.max(Volume.sort_key)).where(Volume.manuscript_id == manuscript_id)
    ).scalar()


def create_volume(
    session: Session,
    user_id: int,
    manuscript_id: int,
    *,
    title: str,
    description: Optional[str] = None,
) -> Volume:
    manuscript = get_owned_manuscript(session, manuscript_id, user_id)
    cleaned_title = (title or "").strip()
    if not cleaned_title:
        raise InvalidRequestError("A volume title is required.")

    volume = Volume(
        manuscript=manuscript,
        title=cleaned_title,
        description=description,
        sort_key=next_sort_key(_max_volume_key(session, manuscript.id)),
    )
    session.add(volume)
    session.flush()
    return volume


def update_volume(
    session: Session,
    volume_id: int,
    user_id: int,
    *,
    title: Optional[str] = None,
    description: Optional[str] = None,
) -> Volume:
    volume = get_owned_volume(session, volume_id, user_id)
    if title is not None:
        cleaned_title = title.strip()
        if not cleaned_title:
            raise InvalidRequestError("A volume title is required.")
        volume.title = cleaned_title
    if description is not None:
        volume.description = description
    session.flush()
    return volume


def delete_volume(session: Session, volume_id: int, user_id: int) -> int:
    """Hard delete a volume with its chapters, contents and history.

    Returns the id of the manuscript whose aggregates were recomputed.
    """

    volume = get_owned_volume(session, volume_id, user_id)
    manuscript_id = volume.manuscript_id

    chapters = list(session.execute(select(Chapter).where(Chapter.volume_id == volume.id)).scalars())
    for chapter in chapters:
        session.delete(chapter)
    session.delete(volume)
    session.flush()

    aggregates.recompute(session, manuscript_id)
    return manuscript_id


def reorder_volumes(session: Session, volume_ids: Sequence[int], user_id: int) -> List[Volume]:
    """Renumber the given sibling volumes 1..n in the supplied order."""

    if not volume_ids:
        raise InvalidRequestError("Provide at least one volume id to reorder.")
    if len(set(volume_ids)) != len(volume_ids):
        raise InvalidRequestError("Volume ids must not repeat.")

    volumes = [get_owned_volume(session, volume_id, user_id) for volume_id in volume_ids]
    if len({volume.manuscript_id for volume in volumes}) != 1:
        raise InvalidRequestError("Volumes to reorder must belong to the same manuscript.")
    sibling_count = session.execute(
        select(func.count(Volume.id)).where(Volume.manuscript_id == volumes[0].manuscript_id)
    ).scalar()
    if sibling_count != len(volumes):
        raise InvalidRequestError("Reordering must list every volume of the manuscript.")

    for volume, key in renumbered(volumes):
        volume.sort_key = key
    session.flush()
    return volumes


# ---------------------------------------------------------------------------
# Chapters
# ---------------------------------------------------------------------------


def _sibling_condition(parent: ChapterParent):
    if isinstance(parent, VolumeParent):
        return Chapter.volume_id == parent.volume_id
    return Chapter.manuscript_id == parent.manuscript_id


def _max_chapter_key(session: Session, parent: ChapterParent):
    return session.execute(select(func.max(Chapter.sort_key)).where(_sibling_condition(parent))).scalar()


def create_chapter(session: Session, user_id: int, parent: ChapterParent, *, title: str) -> Chapter:
    if isinstance(parent, VolumeParent):
        volume = get_owned_volume(session, parent.volume_id, user_id)
        owner_fields: Dict[str, Any] = {"volume": volume}
    elif isinstance(parent, DirectParent):
        manuscript = get_owned_manuscript(session, parent.manuscript_id, user_id)
        owner_fields = {"manuscript": manuscript}
    else:
        raise InvalidRequestError("Either manuscript_id or volume_id must be provided.")

    cleaned_title = (title or "").strip()
    if not cleaned_title:
        raise InvalidRequestError("A chapter title is required.")

    chapter = Chapter(
        title=cleaned_title,
        status=CHAPTER_DRAFT,
        word_count=0,
        sort_key=next_sort_key(_max_chapter_key(session, parent)),
        **owner_fields,
    )
    session.add(chapter)
    session.flush()
    return chapter


def update_chapter(session: Session, chapter_id: int, user_id: int, *, title: Optional[str] = None) -> Chapter:
    chapter, _ = get_owned_chapter(session, chapter_id, user_id)
    if title is not None:
        cleaned_title = title.strip()
        if not cleaned_title:
            raise InvalidRequestError("A chapter title is required.")
        chapter.title = cleaned_title
    session.flush()
    return chapter


def delete_chapter(session: Session, chapter_id: int, user_id: int) -> int:
    """Hard delete a chapter with its content and history, then recompute."""

    chapter, manuscript = get_owned_chapter(session, chapter_id, user_id)
    manuscript_id = manuscript.id
    session.delete(chapter)
    session.flush()
    aggregates.recompute(session, manuscript_id)
    return manuscript_id


def publish_chapter(session: Session, chapter_id: int, user_id: int) -> Chapter:
    """DRAFT -> PUBLISHED. ``published_at`` records the first publish only."""

    chapter, manuscript = get_owned_chapter(session, chapter_id, user_id)
    chapter.status = CHAPTER_PUBLISHED
    if chapter.published_at is None:
        chapter.published_at = datetime.utcnow()
    session.flush()
    aggregates.recompute(session, manuscript.id)
    return chapter


def unpublish_chapter(session: Session, chapter_id: int, user_id: int) -> Chapter:
    """PUBLISHED -> DRAFT, keeping the first-publish timestamp."""

    chapter, manuscript = get_owned_chapter(session, chapter_id, user_id)
    chapter.status = CHAPTER_DRAFT
    session.flush()
    aggregates.recompute(session, manuscript.id)
    return chapter


def batch_publish_chapters(session: Session, chapter_ids: Sequence[int], user_id: int) -> int:
    """Publish every chapter in ``chapter_ids``; all must belong to the caller."""

    if not chapter_ids:
        raise InvalidRequestError("Provide at least one chapter id to publish.")

    resolved = [get_owned_chapter(session, chapter_id, user_id) for chapter_id in dict.fromkeys(chapter_ids)]
    now = datetime.utcnow()
    manuscript_ids = set()
    for chapter, manuscript in resolved:
        chapter.status = CHAPTER_PUBLISHED
        if chapter.published_at is None:
            chapter.published_at = now
        manuscript_ids.add(manuscript.id)
    session.flush()

    for manuscript_id in sorted(manuscript_ids):
        aggregates.recompute(session, manuscript_id)
    return len(resolved)


def reorder_chapters(session: Session, chapter_ids: Sequence[int], user_id: int) -> List[Chapter]:
    """Renumber the given sibling chapters 1..n in the supplied order."""

    if not chapter_ids:
        raise InvalidRequestError("Provide at least one chapter id to reorder.")
    if len(set(chapter_ids)) != len(chapter_ids):
        raise InvalidRequestError("Chapter ids must not repeat.")

    chapters = [get_owned_chapter(session, chapter_id, user_id)[0] for chapter_id in chapter_ids]
    parents = {chapter.parent for chapter in chapters}
    if len(parents) != 1:
        raise InvalidRequestError("Chapters to reorder must share the same parent.")
    (parent,) = parents
    sibling_count = session.execute(
        select(func.count(Chapter.id)).where(_sibling_condition(parent))
    ).scalar()
    if sibling_count != len(chapters):
        raise InvalidRequestError("Reordering must list every chapter under the same parent.")

    for chapter, key in renumbered(chapters):
        chapter.sort_key = key
    session.flush()
    return chapters


__all__ = [
    "ManuscriptTree",
    "VolumeNode",
    "batch_publish_chapters",
    "create_chapter",
    "create_manuscript",
    "create_manuscript_from_outline",
    "create_volume",
    "delete_chapter",
    "delete_manuscript",
    "delete_volume",
    "fetch_tree",
    "get_owned_chapter",
    "get_owned_manuscript",
    "get_owned_volume",
    "list_manuscripts",
    "load_tree",
    "parent_from_ids",
    "publish_chapter",
    "reorder_chapters",
    "reorder_volumes",
    "resolve_owning_manuscript",
    "unpublish_chapter",
    "update_chapter",
    "update_manuscript",
    "update_volume",
]
