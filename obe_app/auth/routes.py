from flask import request, current_app
from flask_login import login_user, logout_user, login_required, current_user
from sqlalchemy import select
from werkzeug.security import check_password_hash

from .. import db, limiter
from ..api_utils import api_success, api_error
from ..authz import find_faculty
from ..inputs import json_object
from ..models import User
from . import auth_bp


def _login_limit():
    return current_app.config.get("LOGIN_RATE_LIMIT", "10 per minute")


def _user_dict(user):
    data = {
        "user_id": user.user_id,
        "name": user.name,
        "email": user.email,
        "role": user.role,
        "department_id": user.department_id_fk,
    }
    faculty = find_faculty(db.session, user)
    if faculty:
        data["faculty_id"] = faculty.faculty_id
    return data


@auth_bp.route("/login", methods=["POST"])
@limiter.limit(_login_limit, methods=["POST"])
def login():
    payload = json_object(request.get_json(silent=True))
    email = payload.get("email")
    password = payload.get("password")
    email = email.strip().lower() if isinstance(email, str) else ""
    if not email or not isinstance(password, str) or not password:
        return api_error("ValidationFailed", "Email and password are required.", 400)

    user = db.session.execute(select(User).filter_by(email=email)).scalars().first()
    if not user or not user.password_hash or not check_password_hash(user.password_hash, password):
        return api_error("Unauthenticated", "Invalid credentials.", 401)
    if not user.is_active:
        return api_error("Unauthenticated", "Account is disabled.", 401)

    login_user(user)
    current_app.logger.info("User %s logged in", user.user_id)
    return api_success(_user_dict(user), message="Logged in successfully.")


@auth_bp.route("/logout", methods=["POST"])
@login_required
def logout():
    logout_user()
    return api_success(message="Logged out.")


@auth_bp.route("/profile", methods=["GET"])
@login_required
def profile():
    return api_success(_user_dict(current_user))
