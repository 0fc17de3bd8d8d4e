from flask import jsonify
from flask_login import current_user, login_required

from ..extensions import db
from ..services.workspace import workspace_summary
from . import bp


@bp.route("/")
def index():
    return jsonify({"name": "moge", "status": "ok"})


@bp.route("/workspace")
@login_required
def workspace():
    summary = workspace_summary(db.session, current_user.id)
    stats = summary.stats
    return jsonify(
        {
            "stats": {
                "today_words": stats.today_words,
                "week_words": stats.week_words,
                "total_words": stats.total_words,
                "project_count": stats.project_count,
                "manuscript_count": stats.manuscript_count,
            },
            "recent_manuscripts": [
                {
                    "id": manuscript.id,
                    "name": manuscript.name,
                    "status": manuscript.status,
                    "total_words": manuscript.total_words,
                    "last_edited_at": manuscript.last_edited_at.isoformat() if manuscript.last_edited_at else None,
                }
                for manuscript in summary.recent_manuscripts
            ],
            "recent_projects": [
                {
                    "id": project.id,
                    "name": project.name,
                    "description": project.description,
                    "updated_at": project.updated_at.isoformat(),
                }
                for project in summary.recent_projects
            ],
            "recent_outlines": [
                {
                    "id": outline.id,
                    "name": outline.name,
                    "type": outline.type,
                    "created_at": outline.created_at.isoformat(),
                }
                for outline in summary.recent_outlines
            ],
        }
    )
