from flask import Blueprint

bp = Blueprint("manuscripts", __name__, url_prefix="/manuscripts")

from . import routes  # noqa: E402,F401
