from __future__ import annotations

from typing import Any, Dict, List, Optional

from flask import jsonify
from flask_login import current_user, login_required
from werkzeug.datastructures import MultiDict

from ..db_utils import unit_of_work
from ..extensions import db
from ..form_utils import json_formdata, json_payload
from ..models import Chapter, ChapterContent, ChapterContentVersion, Manuscript, Volume
from ..services import assist, lore, structure, versions
from ..services.errors import InvalidRequestError
from ..services.structure import LORE_FIELDS, ManuscriptTree
from . import bp
from .forms import (
    AssistForm,
    ChapterForm,
    ChapterUpdateForm,
    ManuscriptForm,
    ManuscriptUpdateForm,
    VolumeForm,
    VolumeUpdateForm,
)


# ---------------------------------------------------------------------------
# Serialisation helpers
# ---------------------------------------------------------------------------


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


def _serialize_manuscript(manuscript: Manuscript) -> Dict[str, Any]:
    return {
        "id": manuscript.id,
        "name": manuscript.name,
        "description": manuscript.description,
        "type": manuscript.type,
        "tags": list(manuscript.tags or []),
        "status": manuscript.status,
        "outline_id": manuscript.outline_id,
        "project_id": manuscript.project_id,
        "characters": list(manuscript.characters or []),
        "systems": list(manuscript.systems or []),
        "worlds": list(manuscript.worlds or []),
        "misc": list(manuscript.misc or []),
        "total_words": manuscript.total_words,
        "published_words": manuscript.published_words,
        "target_words": manuscript.target_words,
        "last_edited_chapter_id": manuscript.last_edited_chapter_id,
        "last_edited_at": _iso(manuscript.last_edited_at),
        "created_at": _iso(manuscript.created_at),
        "updated_at": _iso(manuscript.updated_at),
    }


def _serialize_chapter(chapter: Chapter) -> Dict[str, Any]:
    return {
        "id": chapter.id,
        "manuscript_id": chapter.manuscript_id,
        "volume_id": chapter.volume_id,
        "title": chapter.title,
        "status": chapter.status,
        "word_count": chapter.word_count,
        "sort_key": str(chapter.sort_key),
        "published_at": _iso(chapter.published_at),
    }


def _serialize_volume(volume: Volume, chapters: Optional[List[Chapter]] = None) -> Dict[str, Any]:
    payload = {
        "id": volume.id,
        "manuscript_id": volume.manuscript_id,
        "title": volume.title,
        "description": volume.description,
        "sort_key": str(volume.sort_key),
    }
    if chapters is not None:
        payload["chapters"] = [_serialize_chapter(chapter) for chapter in chapters]
    return payload


def _serialize_tree(tree: ManuscriptTree) -> Dict[str, Any]:
    payload = _serialize_manuscript(tree.manuscript)
    payload["chapters"] = [_serialize_chapter(chapter) for chapter in tree.direct_chapters]
    payload["volumes"] = [_serialize_volume(node.volume, node.chapters) for node in tree.volumes]
    return payload


def _serialize_content(content: Optional[ChapterContent]) -> Optional[Dict[str, Any]]:
    if content is None:
        return None
    return {
        "id": content.id,
        "chapter_id": content.chapter_id,
        "content": content.body,
        "version": content.version,
        "updated_at": _iso(content.updated_at),
    }


def _serialize_version(entry: ChapterContentVersion) -> Dict[str, Any]:
    return {
        "id": entry.id,
        "version": entry.version,
        "content": entry.body,
        "created_at": _iso(entry.created_at),
    }


def _serialize_entity(entity) -> Dict[str, Any]:
    return {"id": entity.id, "name": entity.name, "type": entity.type, "description": entity.summary}


# ---------------------------------------------------------------------------
# Payload helpers
# ---------------------------------------------------------------------------


def _payload() -> Dict[str, Any]:
    return json_payload()


def _form_data() -> MultiDict:
    return json_formdata(_payload())


def _invalid(form):
    return jsonify({"error": "Please correct the highlighted fields.", "fields": form.errors}), 400


def _id_list(payload: Dict[str, Any], key: str) -> List[int]:
    raw = payload.get(key)
    if not isinstance(raw, list):
        raise InvalidRequestError(f"'{key}' must be a list of ids.")
    try:
        return [int(value) for value in raw]
    except (TypeError, ValueError) as exc:
        raise InvalidRequestError(f"'{key}' must contain integer ids only.") from exc


def _lore_lists(payload: Dict[str, Any]) -> Dict[str, Any]:
    return {key: payload[key] for key in LORE_FIELDS if key in payload}


# ---------------------------------------------------------------------------
# Manuscripts
# ---------------------------------------------------------------------------


@bp.route("", methods=["GET"])
@login_required
def list_manuscripts():
    manuscripts = structure.list_manuscripts(db.session, current_user.id)
    return jsonify([_serialize_manuscript(manuscript) for manuscript in manuscripts])


@bp.route("", methods=["POST"])
@login_required
def create_manuscript():
    form = ManuscriptForm(formdata=_form_data())
    if not form.validate_on_submit():
        return _invalid(form)
    payload = _payload()

    with unit_of_work() as session:
        manuscript = structure.create_manuscript(
            session,
            current_user.id,
            name=form.name.data,
            description=form.description.data or None,
            type=form.type.data or None,
            tags=payload.get("tags") or [],
            project_id=form.project_id.data,
            target_words=form.target_words.data,
            **_lore_lists(payload),
        )
    return jsonify(_serialize_manuscript(manuscript)), 201


@bp.route("/from-outline/<int:outline_id>", methods=["POST"])
@login_required
def create_from_outline(outline_id: int):
    with unit_of_work() as session:
        manuscript = structure.create_manuscript_from_outline(session, current_user.id, outline_id)
    return jsonify(_serialize_tree(structure.fetch_tree(db.session, manuscript.id, current_user.id))), 201


@bp.route("/<int:manuscript_id>", methods=["GET"])
@login_required
def get_manuscript(manuscript_id: int):
    tree = structure.fetch_tree(db.session, manuscript_id, current_user.id)
    return jsonify(_serialize_tree(tree))


@bp.route("/<int:manuscript_id>", methods=["PUT"])
@login_required
def update_manuscript(manuscript_id: int):
    form = ManuscriptUpdateForm(formdata=_form_data())
    if not form.validate_on_submit():
        return _invalid(form)
    payload = _payload()

    changes: Dict[str, Any] = {}
    for key in ("name", "description", "type", "status", "target_words", "project_id"):
        if key in payload:
            changes[key] = getattr(form, key).data
    if "tags" in payload:
        changes["tags"] = payload["tags"]
    changes.update(_lore_lists(payload))

    with unit_of_work() as session:
        manuscript = structure.update_manuscript(session, manuscript_id, current_user.id, changes)
    return jsonify(_serialize_manuscript(manuscript))


@bp.route("/<int:manuscript_id>", methods=["DELETE"])
@login_required
def delete_manuscript(manuscript_id: int):
    with unit_of_work() as session:
        structure.delete_manuscript(session, manuscript_id, current_user.id)
    return jsonify({"success": True})


@bp.route("/settings/<category>", methods=["GET"])
@login_required
def settings_library(category: str):
    entities = lore.library(db.session, current_user.id, lore.parse_category(category))
    return jsonify([_serialize_entity(entity) for entity in entities])


@bp.route("/<int:manuscript_id>/settings", methods=["GET"])
@login_required
def get_settings(manuscript_id: int):
    resolved = lore.resolve(db.session, manuscript_id, current_user.id)
    payload = {
        category.value: [_serialize_entity(entity) for entity in entities]
        for category, entities in resolved.by_category().items()
    }
    payload["context"] = lore.build_settings_context(resolved)
    return jsonify(payload)


# ---------------------------------------------------------------------------
# Volumes
# ---------------------------------------------------------------------------


@bp.route("/volumes", methods=["POST"])
@login_required
def create_volume():
    form = VolumeForm(formdata=_form_data())
    if not form.validate_on_submit():
        return _invalid(form)

    with unit_of_work() as session:
        volume = structure.create_volume(
            session,
            current_user.id,
            form.manuscript_id.data,
            title=form.title.data,
            description=form.description.data or None,
        )
    return jsonify(_serialize_volume(volume, [])), 201


@bp.route("/volumes/<int:volume_id>", methods=["PUT"])
@login_required
def update_volume(volume_id: int):
    form = VolumeUpdateForm(formdata=_form_data())
    if not form.validate_on_submit():
        return _invalid(form)
    payload = _payload()

    with unit_of_work() as session:
        volume = structure.update_volume(
            session,
            volume_id,
            current_user.id,
            title=form.title.data if "title" in payload else None,
            description=form.description.data if "description" in payload else None,
        )
    return jsonify(_serialize_volume(volume))


@bp.route("/volumes/<int:volume_id>", methods=["DELETE"])
@login_required
def delete_volume(volume_id: int):
    with unit_of_work() as session:
        structure.delete_volume(session, volume_id, current_user.id)
    return jsonify({"success": True})


@bp.route("/volumes/reorder", methods=["PUT"])
@login_required
def reorder_volumes():
    volume_ids = _id_list(_payload(), "volume_ids")
    with unit_of_work() as session:
        structure.reorder_volumes(session, volume_ids, current_user.id)
    return jsonify({"success": True})


# ---------------------------------------------------------------------------
# Chapters
# ---------------------------------------------------------------------------


@bp.route("/chapters", methods=["POST"])
@login_required
def create_chapter():
    form = ChapterForm(formdata=_form_data())
    if not form.validate_on_submit():
        return _invalid(form)
    parent = structure.parent_from_ids(form.manuscript_id.data, form.volume_id.data)

    with unit_of_work() as session:
        chapter = structure.create_chapter(session, current_user.id, parent, title=form.title.data)
    return jsonify(_serialize_chapter(chapter)), 201


@bp.route("/chapters/<int:chapter_id>", methods=["PUT"])
@login_required
def update_chapter(chapter_id: int):
    form = ChapterUpdateForm(formdata=_form_data())
    if not form.validate_on_submit():
        return _invalid(form)

    with unit_of_work() as session:
        chapter = structure.update_chapter(session, chapter_id, current_user.id, title=form.title.data)
    return jsonify(_serialize_chapter(chapter))


@bp.route("/chapters/<int:chapter_id>", methods=["DELETE"])
@login_required
def delete_chapter(chapter_id: int):
    with unit_of_work() as session:
        structure.delete_chapter(session, chapter_id, current_user.id)
    return jsonify({"success": True})


@bp.route("/chapters/<int:chapter_id>/content", methods=["GET"])
@login_required
def get_chapter_content(chapter_id: int):
    content = versions.get_content(db.session, chapter_id, current_user.id)
    return jsonify(_serialize_content(content))


@bp.route("/chapters/<int:chapter_id>/content", methods=["PUT"])
@login_required
def save_chapter_content(chapter_id: int):
    payload = _payload()
    body = payload.get("content")
    if not isinstance(body, str):
        raise InvalidRequestError("'content' must be a string.")

    expected_version = payload.get("expected_version")
    if expected_version is not None:
        try:
            expected_version = int(expected_version)
        except (TypeError, ValueError) as exc:
            raise InvalidRequestError("'expected_version' must be an integer.") from exc

    with unit_of_work() as session:
        content = versions.save_content(
            session,
            chapter_id,
            body,
            current_user.id,
            expected_version=expected_version,
        )
    return jsonify(_serialize_content(content))


@bp.route("/chapters/<int:chapter_id>/publish", methods=["POST"])
@login_required
def publish_chapter(chapter_id: int):
    with unit_of_work() as session:
        chapter = structure.publish_chapter(session, chapter_id, current_user.id)
    return jsonify(_serialize_chapter(chapter))


@bp.route("/chapters/<int:chapter_id>/unpublish", methods=["POST"])
@login_required
def unpublish_chapter(chapter_id: int):
    with unit_of_work() as session:
        chapter = structure.unpublish_chapter(session, chapter_id, current_user.id)
    return jsonify(_serialize_chapter(chapter))


@bp.route("/chapters/batch-publish", methods=["POST"])
@login_required
def batch_publish_chapters():
    chapter_ids = _id_list(_payload(), "chapter_ids")
    with unit_of_work() as session:
        count = structure.batch_publish_chapters(session, chapter_ids, current_user.id)
    return jsonify({"success": True, "count": count})


@bp.route("/chapters/reorder", methods=["PUT"])
@login_required
def reorder_chapters():
    chapter_ids = _id_list(_payload(), "chapter_ids")
    with unit_of_work() as session:
        structure.reorder_chapters(session, chapter_ids, current_user.id)
    return jsonify({"success": True})


@bp.route("/chapters/<int:chapter_id>/versions", methods=["GET"])
@login_required
def chapter_versions(chapter_id: int):
    entries = versions.list_versions(db.session, chapter_id, current_user.id)
    return jsonify([_serialize_version(entry) for entry in entries])


@bp.route("/chapters/<int:chapter_id>/versions/<int:version>/restore", methods=["POST"])
@login_required
def restore_chapter_version(chapter_id: int, version: int):
    with unit_of_work() as session:
        content = versions.restore_version(session, chapter_id, version, current_user.id)
    return jsonify(_serialize_content(content))


# ---------------------------------------------------------------------------
# Writing assistant
# ---------------------------------------------------------------------------


@bp.route("/chapters/<int:chapter_id>/ai/continue", methods=["POST"])
@login_required
def ai_continue(chapter_id: int):
    form = AssistForm(formdata=_form_data())
    if not form.validate_on_submit():
        return _invalid(form)
    text = assist.continue_chapter(
        db.session,
        chapter_id,
        current_user.id,
        custom_prompt=form.custom_prompt.data,
    )
    return jsonify({"text": text})


@bp.route("/chapters/<int:chapter_id>/ai/polish", methods=["POST"])
@login_required
def ai_polish(chapter_id: int):
    form = AssistForm(formdata=_form_data())
    if not form.validate_on_submit():
        return _invalid(form)
    text = assist.polish_text(
        db.session,
        chapter_id,
        current_user.id,
        form.text.data,
        custom_prompt=form.custom_prompt.data,
    )
    return jsonify({"text": text})


@bp.route("/chapters/<int:chapter_id>/ai/expand", methods=["POST"])
@login_required
def ai_expand(chapter_id: int):
    form = AssistForm(formdata=_form_data())
    if not form.validate_on_submit():
        return _invalid(form)
    text = assist.expand_text(
        db.session,
        chapter_id,
        current_user.id,
        form.text.data,
        custom_prompt=form.custom_prompt.data,
    )
    return jsonify({"text": text})
