from __future__ import annotations

from datetime import datetime
from urllib.parse import quote

from flask import Response, jsonify, request
from flask_login import current_user, login_required

from ..extensions import db
from ..services import export
from ..services.errors import InvalidRequestError
from . import bp

_TRUTHY = {"1", "true", "yes", "on"}


def _flag(name: str) -> bool:
    return (request.args.get(name) or "").strip().lower() in _TRUTHY


def _download(body: str, name: str, extension: str, mimetype: str) -> Response:
    filename = f"{name}_{datetime.now().strftime('%Y%m%d%H%M%S')}.{extension}"
    response = Response(body, mimetype=mimetype)
    response.headers["Content-Disposition"] = f"attachment; filename*=UTF-8''{quote(filename)}"
    return response


@bp.route("/manuscripts/<int:manuscript_id>/txt")
@login_required
def manuscript_txt(manuscript_id: int):
    options = export.ExportOptions(
        include_metadata=_flag("include_metadata"),
        preserve_formatting=_flag("preserve_formatting"),
    )
    manuscript, body = export.export_manuscript_text(db.session, manuscript_id, current_user.id, options)
    return _download(body, manuscript.name, "txt", "text/plain; charset=utf-8")


@bp.route("/manuscripts/<int:manuscript_id>/markdown")
@login_required
def manuscript_markdown(manuscript_id: int):
    manuscript, body = export.export_manuscript_markdown(db.session, manuscript_id, current_user.id)
    return _download(body, manuscript.name, "md", "text/markdown; charset=utf-8")


@bp.route("/chapters/<int:chapter_id>/txt")
@login_required
def chapter_txt(chapter_id: int):
    chapter, body = export.export_chapter_text(db.session, chapter_id, current_user.id)
    return _download(body, chapter.title, "txt", "text/plain; charset=utf-8")


@bp.route("/chapters/batch", methods=["POST"])
@login_required
def chapters_batch():
    payload = request.get_json(silent=True) or {}
    raw_ids = payload.get("chapter_ids") if isinstance(payload, dict) else None
    if not isinstance(raw_ids, list):
        raise InvalidRequestError("'chapter_ids' must be a list of ids.")
    try:
        chapter_ids = [int(value) for value in raw_ids]
    except (TypeError, ValueError) as exc:
        raise InvalidRequestError("'chapter_ids' must contain integer ids only.") from exc

    exported = export.export_chapters_batch(db.session, chapter_ids, current_user.id)
    return jsonify(
        {
            "chapters": [{"chapter_id": chapter_id, "content": text} for chapter_id, text in exported.items()],
            "count": len(exported),
        }
    )
