"""Resolve the lore entities that apply to a manuscript.

Manuscripts and projects reference lore by id-as-string in four lists. A
manuscript that points at a project takes the project's lists wholesale;
otherwise its own lists are used. Each category is looked up in its own
table only, and ids that no longer resolve are dropped.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..models import CharacterSetting, Manuscript, MiscSetting, Project, SystemSetting, WorldSetting
from .errors import NotFoundError
from .structure import get_owned_manuscript


class LoreCategory(str, Enum):
    CHARACTER = "characters"
    SYSTEM = "systems"
    WORLD = "worlds"
    MISC = "misc"


CATEGORY_MODELS = {
    LoreCategory.CHARACTER: CharacterSetting,
    LoreCategory.SYSTEM: SystemSetting,
    LoreCategory.WORLD: WorldSetting,
    LoreCategory.MISC: MiscSetting,
}

CATEGORY_LABELS = {
    LoreCategory.CHARACTER: "角色设定",
    LoreCategory.SYSTEM: "系统设定",
    LoreCategory.WORLD: "世界设定",
    LoreCategory.MISC: "辅助设定",
}

EMPTY_CONTEXT_MESSAGE = "暂无关联设定。"


@dataclass(frozen=True)
class LoreRef:
    category: LoreCategory
    id: str


@dataclass
class ResolvedSettings:
    characters: List[CharacterSetting] = field(default_factory=list)
    systems: List[SystemSetting] = field(default_factory=list)
    worlds: List[WorldSetting] = field(default_factory=list)
    misc: List[MiscSetting] = field(default_factory=list)

    def by_category(self) -> Dict[LoreCategory, list]:
        return {category: getattr(self, category.value) for category in LoreCategory}

    def is_empty(self) -> bool:
        return not any(self.by_category().values())


def _as_refs(category: LoreCategory, raw_ids: Iterable[str] | None) -> List[LoreRef]:
    refs: List[LoreRef] = []
    for raw in raw_ids or []:
        cleaned = str(raw).strip()
        if cleaned:
            refs.append(LoreRef(category=category, id=cleaned))
    return refs


def reference_source(session: Session, manuscript: Manuscript) -> Manuscript | Project:
    """Return the record whose four id lists are authoritative."""

    if manuscript.project_id is None:
        return manuscript
    project = session.get(Project, manuscript.project_id)
    if project is None:
        raise NotFoundError(f"Project with id {manuscript.project_id} not found.")
    return project


def collect_refs(session: Session, manuscript: Manuscript) -> List[LoreRef]:
    source = reference_source(session, manuscript)
    refs: List[LoreRef] = []
    for category in LoreCategory:
        refs.extend(_as_refs(category, getattr(source, category.value)))
    return refs


def lookup(session: Session, owner_id: int, category: LoreCategory, ids: Sequence[str]) -> list:
    """Fetch the ``category`` records for ``ids`` in reference order, dropping dangling ids."""

    numeric_ids = []
    for raw in ids:
        try:
            numeric_ids.append(int(raw))
        except (TypeError, ValueError):
            continue
    if not numeric_ids:
        return []

    model = CATEGORY_MODELS[category]
    rows = session.execute(
        select(model).where(model.id.in_(numeric_ids), model.owner_id == owner_id)
    ).scalars()
    found = {row.id: row for row in rows}

    ordered = []
    seen = set()
    for entity_id in numeric_ids:
        if entity_id in found and entity_id not in seen:
            ordered.append(found[entity_id])
            seen.add(entity_id)
    return ordered


def parse_category(raw: str) -> LoreCategory:
    try:
        return LoreCategory(raw)
    except ValueError as exc:
        raise NotFoundError(f"Unknown setting category '{raw}'.") from exc


def library(session: Session, user_id: int, category: LoreCategory) -> list:
    """Every ``category`` record the user owns, newest first."""

    model = CATEGORY_MODELS[category]
    return list(
        session.execute(
            select(model)
            .where(model.owner_id == user_id)
            .order_by(model.created_at.desc(), model.id.desc())
        ).scalars()
    )


def resolve_for_manuscript(session: Session, manuscript: Manuscript) -> ResolvedSettings:
    """Resolve settings for an already-authorized manuscript."""

    grouped: Dict[LoreCategory, List[str]] = {category: [] for category in LoreCategory}
    for ref in collect_refs(session, manuscript):
        grouped[ref.category].append(ref.id)

    resolved = ResolvedSettings()
    for category, ids in grouped.items():
        setattr(resolved, category.value, lookup(session, manuscript.owner_id, category, ids))
    return resolved


def resolve(session: Session, manuscript_id: int, user_id: int) -> ResolvedSettings:
    manuscript = get_owned_manuscript(session, manuscript_id, user_id)
    return resolve_for_manuscript(session, manuscript)


def build_settings_context(settings: ResolvedSettings) -> str:
    """Render resolved settings as grouped ``name: description`` lines."""

    if settings.is_empty():
        return EMPTY_CONTEXT_MESSAGE

    sections: List[str] = []
    for category, entities in settings.by_category().items():
        if not entities:
            continue
        lines = [f"【{CATEGORY_LABELS[category]}】"]
        for entity in entities:
            summary = entity.summary
            lines.append(f"- {entity.name}: {summary}" if summary else f"- {entity.name}")
        sections.append("\n".join(lines))
    return "\n\n".join(sections)


__all__ = [
    "EMPTY_CONTEXT_MESSAGE",
    "LoreCategory",
    "LoreRef",
    "ResolvedSettings",
    "build_settings_context",
    "collect_refs",
    "library",
    "lookup",
    "parse_category",
    "reference_source",
    "resolve",
    "resolve_for_manuscript",
]
