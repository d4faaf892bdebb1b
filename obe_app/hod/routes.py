from flask import request
from flask_login import login_required, current_user

from .. import db
from ..api_utils import api_success
from ..decorators import role_required
from ..inputs import query_int, json_object
from ..models import Po, Pso
from . import hod_bp
from . import services, mapping, stats


def _payload():
    return json_object(request.get_json(silent=True))


def _department_arg():
    return query_int(request.args, "department_id")


# ==========================================
# DASHBOARD & STATS
# ==========================================

@hod_bp.route("/dashboard", methods=["GET"])
@login_required
@role_required("hod", "admin")
def dashboard():
    return api_success(stats.dashboard_stats(db.session, current_user, _department_arg()))


@hod_bp.route("/assignments/stats", methods=["GET"])
@login_required
@role_required("hod", "admin")
def assignment_stats():
    data = stats.assignment_stats(
        db.session, current_user, year=query_int(request.args, "year"), department_id=_department_arg()
    )
    return api_success(data)


@hod_bp.route("/faculty/<int:faculty_id>/workload", methods=["GET"])
@login_required
@role_required("hod", "admin", "faculty")
def faculty_workload(faculty_id):
    return api_success(stats.faculty_workload(db.session, current_user, faculty_id))


# ==========================================
# PROGRAMS, DEPARTMENTS, OUTCOMES
# ==========================================

@hod_bp.route("/programs", methods=["GET"])
@login_required
@role_required("hod", "admin")
def programs():
    return api_success(services.list_programs(db.session, current_user))


@hod_bp.route("/programs/<int:program_id>/departments", methods=["GET"])
@login_required
@role_required("hod", "admin")
def departments(program_id):
    return api_success(services.list_departments(db.session, current_user, program_id))


@hod_bp.route("/programs/<int:program_id>/outcomes", methods=["GET"])
@login_required
@role_required("hod", "admin")
def program_outcomes(program_id):
    return api_success(services.list_outcomes(db.session, current_user, program_id))


@hod_bp.route("/programs/<int:program_id>/pos", methods=["POST"])
@login_required
@role_required("hod", "admin")
def create_po(program_id):
    data = services.create_outcome(db.session, current_user, program_id, _payload(), Po)
    return api_success(data, message="PO created successfully", status=201)


@hod_bp.route("/programs/<int:program_id>/psos", methods=["POST"])
@login_required
@role_required("hod", "admin")
def create_pso(program_id):
    data = services.create_outcome(db.session, current_user, program_id, _payload(), Pso)
    return api_success(data, message="PSO created successfully", status=201)


@hod_bp.route("/programs/<int:program_id>/next-course-code", methods=["GET"])
@login_required
@role_required("hod")
def next_course_code(program_id):
    return api_success({"code": services.next_course_code(db.session, current_user, program_id)})


# ==========================================
# COURSES
# ==========================================

@hod_bp.route("/courses", methods=["GET"])
@login_required
@role_required("hod", "admin")
def list_courses():
    data = services.list_courses(
        db.session, current_user,
        program_id=query_int(request.args, "program_id"),
        department_id=_department_arg(),
    )
    return api_success(data)


@hod_bp.route("/courses", methods=["POST"])
@login_required
@role_required("hod", "admin")
def create_course():
    data = services.create_course(db.session, current_user, _payload())
    return api_success(data, message="Course created successfully", status=201)


@hod_bp.route("/courses/<int:course_id>", methods=["GET"])
@login_required
@role_required("hod", "admin")
def get_course(course_id):
    return api_success(services.get_course(db.session, current_user, course_id))


@hod_bp.route("/courses/<int:course_id>", methods=["PUT"])
@login_required
@role_required("hod", "admin")
def update_course(course_id):
    data = services.update_course(db.session, current_user, course_id, _payload())
    return api_success(data, message="Course updated successfully")


@hod_bp.route("/courses/<int:course_id>", methods=["DELETE"])
@login_required
@role_required("hod", "admin")
def delete_course(course_id):
    data = services.delete_course(db.session, current_user, course_id)
    return api_success(data, message="Course deleted successfully")


# ==========================================
# CLOs & MAPPINGS
# ==========================================

@hod_bp.route("/courses/<int:course_id>/clos", methods=["GET"])
@login_required
@role_required("hod", "admin")
def list_clos(course_id):
    return api_success(services.list_clos(db.session, current_user, course_id))


@hod_bp.route("/courses/<int:course_id>/clos", methods=["POST"])
@login_required
@role_required("hod", "admin")
def create_clo(course_id):
    data = services.create_clo(db.session, current_user, course_id, _payload())
    return api_success(data, message="CLO created successfully", status=201)


@hod_bp.route("/clos/<int:clo_id>", methods=["PUT"])
@login_required
@role_required("hod", "admin")
def update_clo(clo_id):
    data = services.update_clo(db.session, current_user, clo_id, _payload())
    return api_success(data, message="CLO updated successfully")


@hod_bp.route("/courses/<int:course_id>/outcomes", methods=["GET"])
@login_required
@role_required("hod", "admin")
def course_outcomes(course_id):
    return api_success(mapping.list_available_outcomes(db.session, current_user, course_id))


@hod_bp.route("/mappings", methods=["POST"])
@login_required
@role_required("hod", "admin")
def replace_mappings():
    data = mapping.replace_mappings(db.session, current_user, _payload())
    return api_success(data, message="CLO mappings saved successfully")


@hod_bp.route("/courses/<int:course_id>/mappings", methods=["GET"])
@login_required
@role_required("hod", "admin", "faculty")
def course_mappings(course_id):
    return api_success(mapping.get_mappings(db.session, current_user, course_id))


# ==========================================
# FACULTY ASSIGNMENTS
# ==========================================

@hod_bp.route("/faculty", methods=["GET"])
@login_required
@role_required("hod", "admin")
def department_faculty():
    return api_success(services.list_department_faculty(db.session, current_user, _department_arg()))


@hod_bp.route("/courses/<int:course_id>/available-faculty", methods=["GET"])
@login_required
@role_required("hod", "admin")
def available_faculty(course_id):
    data = services.available_faculty(
        db.session, current_user, course_id,
        query_int(request.args, "semester"), query_int(request.args, "year"),
    )
    return api_success(data)


@hod_bp.route("/courses/<int:course_id>/assignments", methods=["GET"])
@login_required
@role_required("hod", "admin")
def course_assignments(course_id):
    return api_success(services.course_assignments(db.session, current_user, course_id))


@hod_bp.route("/assignments", methods=["GET"])
@login_required
@role_required("hod", "admin")
def department_assignments():
    filters = {
        name: query_int(request.args, name)
        for name in ("semester", "year", "faculty_id", "course_id", "page", "per_page", "department_id")
    }
    return api_success(services.department_assignments(db.session, current_user, filters))


@hod_bp.route("/assignments", methods=["POST"])
@login_required
@role_required("hod", "admin")
def assign_faculty():
    data = services.assign_faculty(db.session, current_user, _payload())
    return api_success(data, message="Faculty assigned successfully", status=201)


@hod_bp.route("/assignments/<int:assignment_id>", methods=["PUT"])
@login_required
@role_required("hod", "admin", "faculty")
def update_assignment(assignment_id):
    data = services.update_assignment(db.session, current_user, assignment_id, _payload())
    return api_success(data, message="Assignment updated successfully")


@hod_bp.route("/assignments/<int:assignment_id>", methods=["DELETE"])
@login_required
@role_required("hod", "admin")
def remove_assignment(assignment_id):
    data = services.remove_assignment(db.session, current_user, assignment_id)
    return api_success(data, message="Assignment removed successfully")
