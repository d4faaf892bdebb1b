from flask import request
from flask_login import login_required, current_user

from .. import db
from ..api_utils import api_success
from ..decorators import role_required
from ..inputs import query_int
from . import faculty_bp
from . import services


@faculty_bp.route("/dashboard", methods=["GET"])
@login_required
@role_required("faculty", "hod")
def dashboard():
    return api_success(services.dashboard(db.session, current_user))


@faculty_bp.route("/profile", methods=["GET"])
@login_required
@role_required("faculty", "hod")
def profile():
    return api_success(services.profile(db.session, current_user))


@faculty_bp.route("/assignments/current", methods=["GET"])
@login_required
@role_required("faculty", "hod")
def current_assignments():
    return api_success(services.current_assignments(db.session, current_user))


@faculty_bp.route("/assignments", methods=["GET"])
@login_required
@role_required("faculty", "hod")
def all_assignments():
    data = services.all_assignments(
        db.session, current_user,
        year=query_int(request.args, "year"),
        semester=query_int(request.args, "semester"),
    )
    return api_success(data)


@faculty_bp.route("/department", methods=["GET"])
@login_required
@role_required("faculty", "hod")
def department():
    return api_success(services.department_info(db.session, current_user))


@faculty_bp.route("/courses/<int:course_id>", methods=["GET"])
@login_required
@role_required("faculty", "hod")
def course_detail(course_id):
    return api_success(services.course_detail(db.session, current_user, course_id))
