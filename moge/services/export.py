"""Render a manuscript tree into plain-text and Markdown documents."""
from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from flask import current_app
from sqlalchemy.orm import Session

from ..models import Chapter, Manuscript, Outline
from .errors import ManuscriptServiceError
from .structure import ManuscriptTree, get_owned_chapter, get_owned_manuscript, load_tree
from .text import strip_markdown

CHINESE_DIGITS = ["零", "一", "二", "三", "四", "五", "六", "七", "八", "九", "十"]

SECTION_RULE = "-" * 20
VOLUME_RULE = "=" * 20
BANNER_RULE = "=" * 40
EMPTY_CHAPTER_TEXT = "（本章暂无内容）"
EMPTY_CHAPTER_MARKDOWN = "> 本章暂无内容"

_ANCHOR_WHITESPACE = re.compile(r"\s")
_ANCHOR_DISALLOWED = re.compile(r"[^A-Za-z0-9_一-龥-]")


@dataclass
class ExportOptions:
    include_metadata: bool = False
    preserve_formatting: bool = False


def to_chinese_ordinal(number: int) -> str:
    """Convert 1..99 to Chinese numerals; other values stay Arabic."""

    if 0 <= number <= 10:
        return CHINESE_DIGITS[number]
    if 10 < number < 20:
        return "十" + CHINESE_DIGITS[number - 10]
    if 20 <= number < 100:
        tens, ones = divmod(number, 10)
        return CHINESE_DIGITS[tens] + "十" + (CHINESE_DIGITS[ones] if ones else "")
    return str(number)


def volume_heading(index: int, title: str) -> str:
    return f"第{to_chinese_ordinal(index)}卷 {title}"


def chapter_heading(index: int, title: str) -> str:
    return f"第{to_chinese_ordinal(index)}章 {title}"


def slugify_anchor(title: str) -> str:
    return _ANCHOR_DISALLOWED.sub("", _ANCHOR_WHITESPACE.sub("-", title))


def format_date(value: Optional[datetime]) -> str:
    if value is None:
        return "未知"
    return value.strftime("%Y/%m/%d %H:%M")


def _chapter_body(chapter: Chapter) -> str:
    if chapter.content is None:
        return ""
    return chapter.content.body or ""


def _text_block(chapter: Chapter, heading: str, options: ExportOptions) -> List[str]:
    body = _chapter_body(chapter)
    if body:
        rendered = body if options.preserve_formatting else strip_markdown(body)
    else:
        rendered = EMPTY_CHAPTER_TEXT
    return [f"{heading}\n", f"{SECTION_RULE}\n\n", f"{rendered}\n\n"]


def render_text(
    tree: ManuscriptTree,
    options: Optional[ExportOptions] = None,
    *,
    outline_name: Optional[str] = None,
    exported_at: Optional[datetime] = None,
) -> str:
    """Plain-text rendition: direct chapters first, then numbered volumes."""

    options = options or ExportOptions()
    manuscript = tree.manuscript
    parts: List[str] = [f"{manuscript.name}\n", "=" * (len(manuscript.name) * 2) + "\n\n"]

    if options.include_metadata:
        parts.append("【作品信息】\n")
        parts.append(f"创建时间：{format_date(manuscript.created_at)}\n")
        parts.append(f"最后编辑：{format_date(manuscript.last_edited_at or manuscript.updated_at)}\n")
        parts.append(f"总字数：{manuscript.total_words or 0} 字\n")
        parts.append(f"章节数：{tree.chapter_count} 章\n")
        if outline_name:
            parts.append(f"大纲：{outline_name}\n")
        parts.append(f"\n{BANNER_RULE}\n\n")

    for chapter in tree.direct_chapters:
        parts.extend(_text_block(chapter, chapter.title, options))

    volume_index = 1
    for node in tree.volumes:
        if not node.chapters:
            continue
        parts.append(f"\n{volume_heading(volume_index, node.volume.title)}\n")
        parts.append(f"{VOLUME_RULE}\n\n")
        volume_index += 1
        for chapter_index, chapter in enumerate(node.chapters, start=1):
            parts.extend(_text_block(chapter, chapter_heading(chapter_index, chapter.title), options))

    parts.append(f"\n{BANNER_RULE}\n")
    parts.append("【全书完】\n")
    parts.append(f"总字数：{manuscript.total_words or 0} 字\n")
    parts.append(f"导出时间：{format_date(exported_at or datetime.now())}\n")
    return "".join(parts)


def _markdown_titles(tree: ManuscriptTree) -> List[tuple]:
    """Pair each chapter with its display title; only volume chapters are numbered."""

    titled = [(chapter, chapter.title) for chapter in tree.direct_chapters]
    number = 1
    for node in tree.volumes:
        for chapter in node.chapters:
            titled.append((chapter, chapter_heading(number, chapter.title)))
            number += 1
    return titled


def render_markdown(tree: ManuscriptTree) -> str:
    titled = _markdown_titles(tree)
    parts: List[str] = [f"# {tree.manuscript.name}\n\n", "## 目录\n\n"]
    for _, title in titled:
        parts.append(f"- [{title}](#{slugify_anchor(title)})\n")
    parts.append("\n---\n\n")

    for chapter, title in titled:
        parts.append(f"## {title}\n\n")
        body = _chapter_body(chapter)
        parts.append(f"{body}\n\n" if body else f"{EMPTY_CHAPTER_MARKDOWN}\n\n")
        parts.append("---\n\n")
    return "".join(parts)


def render_chapter_text(manuscript: Manuscript, chapter: Chapter) -> str:
    parts = [
        f"{manuscript.name}\n",
        "=" * len(manuscript.name) + "\n\n",
        f"{chapter.title}\n",
        "-" * len(chapter.title) + "\n\n",
    ]
    body = _chapter_body(chapter)
    if body:
        parts.append(strip_markdown(body) + "\n")
    parts.append(f"\n{SECTION_RULE}\n")
    parts.append(f"字数：{chapter.word_count or 0} 字\n")
    return "".join(parts)


# ---------------------------------------------------------------------------
# Authorized entry points
# ---------------------------------------------------------------------------


def export_manuscript_text(
    session: Session,
    manuscript_id: int,
    user_id: int,
    options: Optional[ExportOptions] = None,
) -> tuple[Manuscript, str]:
    manuscript = get_owned_manuscript(session, manuscript_id, user_id)
    outline_name = None
    if manuscript.outline_id is not None:
        outline = session.get(Outline, manuscript.outline_id)
        outline_name = outline.name if outline is not None else None
    tree = load_tree(session, manuscript)
    return manuscript, render_text(tree, options, outline_name=outline_name)


def export_manuscript_markdown(session: Session, manuscript_id: int, user_id: int) -> tuple[Manuscript, str]:
    manuscript = get_owned_manuscript(session, manuscript_id, user_id)
    return manuscript, render_markdown(load_tree(session, manuscript))


def export_chapter_text(session: Session, chapter_id: int, user_id: int) -> tuple[Chapter, str]:
    chapter, manuscript = get_owned_chapter(session, chapter_id, user_id)
    return chapter, render_chapter_text(manuscript, chapter)


def export_chapters_batch(session: Session, chapter_ids: Iterable[int], user_id: int) -> Dict[int, str]:
    """Export each chapter independently; failures are logged and skipped."""

    results: Dict[int, str] = {}
    for chapter_id in chapter_ids:
        try:
            _, text = export_chapter_text(session, chapter_id, user_id)
        except ManuscriptServiceError as exc:
            current_app.logger.warning("Skipping chapter %s in batch export: %s", chapter_id, exc)
            continue
        results[chapter_id] = text
    return results


__all__ = [
    "ExportOptions",
    "chapter_heading",
    "export_chapter_text",
    "export_chapters_batch",
    "export_manuscript_markdown",
    "export_manuscript_text",
    "format_date",
    "render_chapter_text",
    "render_markdown",
    "render_text",
    "slugify_anchor",
    "to_chinese_ordinal",
    "volume_heading",
]
