from flask import jsonify
from flask_wtf.csrf import generate_csrf
from flask_login import current_user, login_required, login_user, logout_user

from ..db_utils import unit_of_work
from ..extensions import db
from ..form_utils import json_formdata
from ..models import User
from . import bp
from .forms import LoginForm, RegistrationForm


def _user_payload(user: User) -> dict:
    return {"id": user.id, "email": user.email, "display_name": user.display_name}


def _form_errors(form) -> dict:
    return {"error": "Please correct the highlighted fields.", "fields": form.errors}


@bp.route("/register", methods=["POST"])
def register():
    form = RegistrationForm(formdata=json_formdata())
    if not form.validate_on_submit():
        return jsonify(_form_errors(form)), 400

    with unit_of_work() as session:
        user = User(email=form.email.data.lower(), display_name=form.display_name.data.strip())
        user.set_password(form.password.data)
        session.add(user)
    return jsonify(_user_payload(user)), 201


@bp.route("/login", methods=["POST"])
def login():
    if current_user.is_authenticated:
        return jsonify(_user_payload(current_user))

    form = LoginForm(formdata=json_formdata())
    if not form.validate_on_submit():
        return jsonify(_form_errors(form)), 400

    user = db.session.execute(db.select(User).filter_by(email=form.email.data.lower())).scalar_one_or_none()
    if user is None or not user.check_password(form.password.data):
        return jsonify({"error": "Invalid email or password."}), 401

    login_user(user, remember=bool(form.remember.data))
    return jsonify(_user_payload(user))


@bp.route("/logout", methods=["POST"])
@login_required
def logout():
    logout_user()
    return jsonify({"success": True})


@bp.route("/me")
@login_required
def me():
    return jsonify(_user_payload(current_user))


@bp.route("/csrf-token")
def csrf_token():
    return jsonify({"csrf_token": generate_csrf()})
