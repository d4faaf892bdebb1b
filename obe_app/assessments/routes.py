from flask import request, Response
from flask_login import login_required, current_user

from .. import db
from ..api_utils import api_success
from ..decorators import role_required
from ..inputs import query_int, json_object
from ..serializers import assessment_dict
from . import assessments_bp
from . import services, clo_services, marks, validation

XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _payload():
    return json_object(request.get_json(silent=True))


# ==========================================
# ASSESSMENTS
# ==========================================

@assessments_bp.route("/", methods=["POST"])
@login_required
@role_required("faculty", "hod")
def create_assessment():
    assessment, summary = services.create_assessment(db.session, current_user, _payload())
    data = assessment_dict(assessment)
    data["marks_summary"] = summary
    return api_success(data, message="Assessment created successfully", status=201)


@assessments_bp.route("/course/<int:course_id>", methods=["GET"])
@login_required
def course_assessments(course_id):
    data = services.list_course_assessments(
        db.session, current_user, course_id,
        semester=query_int(request.args, "semester"),
        year=query_int(request.args, "year"),
    )
    return api_success(data)


@assessments_bp.route("/<int:assessment_id>", methods=["GET"])
@login_required
def get_assessment(assessment_id):
    return api_success(services.get_assessment(db.session, current_user, assessment_id))


@assessments_bp.route("/<int:assessment_id>", methods=["PUT"])
@login_required
@role_required("faculty", "hod")
def update_assessment(assessment_id):
    data = services.update_assessment(db.session, current_user, assessment_id, _payload())
    return api_success(data, message="Assessment updated successfully")


@assessments_bp.route("/<int:assessment_id>", methods=["DELETE"])
@login_required
@role_required("faculty", "hod")
def delete_assessment(assessment_id):
    data = services.delete_assessment(db.session, current_user, assessment_id)
    return api_success(data, message="Assessment deleted successfully")


@assessments_bp.route("/<int:course_id>/available-marks", methods=["GET"])
@login_required
@role_required("faculty", "hod")
def available_marks(course_id):
    data = services.available_marks(
        db.session, current_user, course_id,
        query_int(request.args, "semester"), query_int(request.args, "year"),
    )
    return api_success(data)


@assessments_bp.route("/<int:assessment_id>/finalize-marks", methods=["PATCH"])
@login_required
@role_required("faculty", "hod")
def finalize_marks(assessment_id):
    data = services.finalize_marks(db.session, current_user, assessment_id)
    return api_success(data, message="Marks finalized successfully")


@assessments_bp.route("/<int:assessment_id>/unfinalize-marks", methods=["PATCH"])
@login_required
@role_required("faculty", "hod")
def unfinalize_marks(assessment_id):
    data = services.unfinalize_marks(db.session, current_user, assessment_id)
    return api_success(data, message="Marks unfinalized successfully")


@assessments_bp.route("/<int:assessment_id>/finalization-status", methods=["GET"])
@login_required
def finalization_status(assessment_id):
    return api_success(services.finalization_status(db.session, current_user, assessment_id))


# ==========================================
# CLO ALLOCATION
# ==========================================

@assessments_bp.route("/<int:assessment_id>/clos", methods=["POST"])
@login_required
@role_required("faculty", "hod")
def allocate_clos(assessment_id):
    data = clo_services.allocate_clos(db.session, current_user, assessment_id, _payload())
    return api_success(data, message="CLOs mapped to assessment successfully")


@assessments_bp.route("/assess/<int:assessment_id>/clos", methods=["GET"])
@login_required
def assessment_clos(assessment_id):
    return api_success(clo_services.get_assessment_clos(db.session, current_user, assessment_id))


@assessments_bp.route("/<int:course_id>/clos", methods=["GET"])
@login_required
def course_clos(course_id):
    data = clo_services.get_course_clos(
        db.session, current_user, course_id,
        semester=query_int(request.args, "semester"),
        year=query_int(request.args, "year"),
    )
    return api_success(data)


# ==========================================
# MARKS
# ==========================================

@assessments_bp.route("/<int:assessment_id>/marks/bulk", methods=["POST"])
@login_required
@role_required("faculty", "hod")
def bulk_marks(assessment_id):
    data = marks.enter_bulk_marks(db.session, current_user, assessment_id, _payload())
    message = f"{data['successful']} marks saved"
    if data["failed"]:
        message += f", {data['failed']} rejected"
    return api_success(data, message=message)


@assessments_bp.route("/<int:assessment_id>/marks", methods=["GET"])
@login_required
def assessment_marks(assessment_id):
    return api_success(marks.get_assessment_marks(db.session, current_user, assessment_id))


@assessments_bp.route("/<int:assessment_id>/marks/export", methods=["GET"])
@login_required
def export_marks(assessment_id):
    filename, bio = marks.export_marks_workbook(db.session, current_user, assessment_id)
    return Response(bio.read(), mimetype=XLSX_MIMETYPE, headers={
        "Content-Disposition": f"attachment; filename={filename}"
    })


@assessments_bp.route("/<int:assessment_id>/students/<int:student_id>/marks", methods=["GET"])
@login_required
def student_marks(assessment_id, student_id):
    return api_success(marks.get_student_marks(db.session, current_user, assessment_id, student_id))


@assessments_bp.route("/<int:course_id>/students", methods=["GET"])
@login_required
def course_students(course_id):
    data = marks.get_course_students(
        db.session, current_user, course_id,
        semester=query_int(request.args, "semester"),
        year=query_int(request.args, "year"),
    )
    return api_success(data)


# ==========================================
# DRY-RUN VALIDATION
# ==========================================

@assessments_bp.route("/validation/course/<int:course_id>/has-practical", methods=["GET"])
@login_required
def has_practical(course_id):
    data = validation.check_practical(
        db.session, current_user, course_id,
        semester=query_int(request.args, "semester"),
        year=query_int(request.args, "year"),
    )
    return api_success(data)


@assessments_bp.route("/validation/assessment", methods=["POST"])
@login_required
@role_required("faculty", "hod")
def validate_assessment():
    data = validation.validate_assessment(db.session, current_user, _payload())
    return api_success(data, message=data["marks_validation"]["message"])


@assessments_bp.route("/validation/marks", methods=["POST"])
@login_required
@role_required("faculty", "hod")
def validate_marks():
    data = validation.validate_marks_entry(db.session, current_user, _payload())
    return api_success(data, message=data["message"])
