from datetime import datetime, timezone
from flask_login import UserMixin
from . import db

def utc_now():
    return datetime.now(timezone.utc)


ROLES = ("ADMIN", "HOD", "FACULTY", "STUDENT")
PROGRAM_TYPES = ("LEVEL", "DEGREE")
COURSE_TYPES = ("THEORY", "PRACTICAL", "BOTH")
COURSE_CATEGORIES = ("MAD", "VAC", "SEC", "CORE", "VOCATIONAL")
ENROLLED = "ENROLLED"

# Assessment lifecycle
STATE_OPEN = "OPEN"
STATE_MARKS_ENTERED = "MARKS_ENTERED"
STATE_FINALIZED = "FINALIZED"

# ==========================================
# ORGANIZATION
# ==========================================

class Program(db.Model):
    """
    A node of the program tree: a LEVEL (UG/PG) or a DEGREE under a level.
    """
    __tablename__ = "programs"
    program_id = db.Column(db.Integer, primary_key=True)
    parent_id_fk = db.Column(db.Integer, db.ForeignKey("programs.program_id"))
    name = db.Column(db.String(128), nullable=False)
    code = db.Column(db.String(32))
    slug = db.Column(db.String(128), unique=True, nullable=False)
    type = db.Column(db.String(16), nullable=False, default="DEGREE")  # LEVEL, DEGREE
    level = db.Column(db.String(8))  # UG, PG
    duration_years = db.Column(db.Integer)
    created_at = db.Column(db.DateTime, default=utc_now)

    children = db.relationship("Program", backref=db.backref("parent", remote_side=[program_id]), lazy=True)
    departments = db.relationship("Department", backref="program", lazy=True)
    pos = db.relationship("Po", backref="program", lazy=True)
    psos = db.relationship("Pso", backref="program", lazy=True)


class Department(db.Model):
    __tablename__ = "departments"
    department_id = db.Column(db.Integer, primary_key=True)
    program_id_fk = db.Column(db.Integer, db.ForeignKey("programs.program_id"), nullable=False)
    name = db.Column(db.String(128), nullable=False)
    code = db.Column(db.String(32))
    slug = db.Column(db.String(128), unique=True, nullable=False)
    hod_id_fk = db.Column(db.Integer, db.ForeignKey("users.user_id"))
    created_at = db.Column(db.DateTime, default=utc_now)

    courses = db.relationship("Course", backref="department", lazy=True)
    faculties = db.relationship("Faculty", backref="department", lazy=True)


class User(UserMixin, db.Model):
    __tablename__ = "users"
    user_id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128))
    email = db.Column(db.String(128), unique=True, nullable=False)
    password_hash = db.Column(db.String(256))
    role = db.Column(db.String(16), nullable=False, default="STUDENT")  # ADMIN, HOD, FACULTY, STUDENT
    department_id_fk = db.Column(db.Integer, db.ForeignKey("departments.department_id", use_alter=True))
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=utc_now)

    department = db.relationship("Department", foreign_keys=[department_id_fk], lazy=True)

    def get_id(self):
        return str(self.user_id)


class Faculty(db.Model):
    __tablename__ = "faculty"
    faculty_id = db.Column(db.Integer, primary_key=True)
    user_id_fk = db.Column(db.Integer, db.ForeignKey("users.user_id"), unique=True, nullable=False)
    department_id_fk = db.Column(db.Integer, db.ForeignKey("departments.department_id"), nullable=False)
    name = db.Column(db.String(128), nullable=False)
    designation = db.Column(db.String(64))
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=utc_now)

    user = db.relationship("User", lazy=True)
    course_assignments = db.relationship("CourseFaculty", backref="faculty", lazy=True)


class Student(db.Model):
    __tablename__ = "students"
    student_id = db.Column(db.Integer, primary_key=True)
    user_id_fk = db.Column(db.Integer, db.ForeignKey("users.user_id"))
    department_id_fk = db.Column(db.Integer, db.ForeignKey("departments.department_id"))
    roll_number = db.Column(db.String(32))
    admission_year = db.Column(db.Integer)
    current_semester = db.Column(db.Integer)
    is_active = db.Column(db.Boolean, default=True)

    user = db.relationship("User", lazy=True)

    @property
    def name(self):
        return self.user.name if self.user and self.user.name else "N/A"


# ==========================================
# COURSES & OUTCOMES
# ==========================================

class Course(db.Model):
    __tablename__ = "courses"
    course_id = db.Column(db.Integer, primary_key=True)
    department_id_fk = db.Column(db.Integer, db.ForeignKey("departments.department_id"), nullable=False)
    code = db.Column(db.String(32), nullable=False)
    name = db.Column(db.String(128), nullable=False)
    slug = db.Column(db.String(128), unique=True, nullable=False)
    semester = db.Column(db.Integer, default=0)
    credits = db.Column(db.Integer)
    type = db.Column(db.String(16))  # THEORY, PRACTICAL, BOTH
    category = db.Column(db.String(16))  # MAD, VAC, SEC, CORE, VOCATIONAL
    description = db.Column(db.Text)
    is_active = db.Column(db.Boolean, default=True)
    created_by_id_fk = db.Column(db.Integer, db.ForeignKey("users.user_id"))
    created_at = db.Column(db.DateTime, default=utc_now)
    updated_at = db.Column(db.DateTime, onupdate=utc_now)

    clos = db.relationship("Clo", backref="course", lazy=True)
    faculty_assignments = db.relationship("CourseFaculty", backref="course", lazy=True)
    created_by = db.relationship("User", foreign_keys=[created_by_id_fk], lazy=True)

    def max_assessment_marks(self, marks_per_credit=25):
        return (self.credits or 0) * marks_per_credit


class Clo(db.Model):
    __tablename__ = "clos"
    clo_id = db.Column(db.Integer, primary_key=True)
    course_id_fk = db.Column(db.Integer, db.ForeignKey("courses.course_id"), nullable=False)
    code = db.Column(db.String(32), nullable=False)
    statement = db.Column(db.Text, nullable=False)
    bloom_level = db.Column(db.String(32), nullable=False)
    attainment_threshold = db.Column(db.Float)  # target percentage, 0-100
    order = db.Column(db.Integer, default=0)
    version = db.Column(db.Integer, default=1)
    is_active = db.Column(db.Boolean, default=True)
    created_by_id_fk = db.Column(db.Integer, db.ForeignKey("users.user_id"))
    created_at = db.Column(db.DateTime, default=utc_now)

    __table_args__ = (
        db.UniqueConstraint("course_id_fk", "code", name="uq_clo_course_code"),
    )


class Po(db.Model):
    __tablename__ = "pos"
    po_id = db.Column(db.Integer, primary_key=True)
    program_id_fk = db.Column(db.Integer, db.ForeignKey("programs.program_id"), nullable=False)
    code = db.Column(db.String(32), nullable=False)
    statement = db.Column(db.Text)

    __table_args__ = (
        db.UniqueConstraint("program_id_fk", "code", name="uq_po_program_code"),
    )


class Pso(db.Model):
    __tablename__ = "psos"
    pso_id = db.Column(db.Integer, primary_key=True)
    program_id_fk = db.Column(db.Integer, db.ForeignKey("programs.program_id"), nullable=False)
    code = db.Column(db.String(32), nullable=False)
    statement = db.Column(db.Text)

    __table_args__ = (
        db.UniqueConstraint("program_id_fk", "code", name="uq_pso_program_code"),
    )


class CloPoMapping(db.Model):
    __tablename__ = "clo_po_mappings"
    mapping_id = db.Column(db.Integer, primary_key=True)
    clo_id_fk = db.Column(db.Integer, db.ForeignKey("clos.clo_id"), nullable=False)
    po_id_fk = db.Column(db.Integer, db.ForeignKey("pos.po_id"), nullable=False)
    level = db.Column(db.Integer, nullable=False)  # mapping strength 0-3

    __table_args__ = (
        db.UniqueConstraint("clo_id_fk", "po_id_fk", name="uq_clo_po"),
    )


class CloPsoMapping(db.Model):
    __tablename__ = "clo_pso_mappings"
    mapping_id = db.Column(db.Integer, primary_key=True)
    clo_id_fk = db.Column(db.Integer, db.ForeignKey("clos.clo_id"), nullable=False)
    pso_id_fk = db.Column(db.Integer, db.ForeignKey("psos.pso_id"), nullable=False)
    level = db.Column(db.Integer, nullable=False)

    __table_args__ = (
        db.UniqueConstraint("clo_id_fk", "pso_id_fk", name="uq_clo_pso"),
    )


class CourseFaculty(db.Model):
    __tablename__ = "course_faculty"
    assignment_id = db.Column(db.Integer, primary_key=True)
    course_id_fk = db.Column(db.Integer, db.ForeignKey("courses.course_id"), nullable=False)
    faculty_id_fk = db.Column(db.Integer, db.ForeignKey("faculty.faculty_id"), nullable=False)
    semester = db.Column(db.Integer, nullable=False)
    year = db.Column(db.Integer, nullable=False)
    teaching_methodology = db.Column(db.String(255))
    assessment_mode = db.Column(db.String(64))
    created_at = db.Column(db.DateTime, default=utc_now)
    updated_at = db.Column(db.DateTime, onupdate=utc_now)

    __table_args__ = (
        db.UniqueConstraint("course_id_fk", "faculty_id_fk", "semester", "year", name="uq_course_faculty_term"),
    )


class StudentCourseEnrollment(db.Model):
    __tablename__ = "student_course_enrollments"
    enrollment_id = db.Column(db.Integer, primary_key=True)
    student_id_fk = db.Column(db.Integer, db.ForeignKey("students.student_id"), nullable=False)
    course_id_fk = db.Column(db.Integer, db.ForeignKey("courses.course_id"), nullable=False)
    semester = db.Column(db.Integer, nullable=False)
    year = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(16), default=ENROLLED)
    created_at = db.Column(db.DateTime, default=utc_now)

    student = db.relationship("Student", lazy=True)

    __table_args__ = (
        db.UniqueConstraint("student_id_fk", "course_id_fk", "semester", "year", name="uq_enrollment_term"),
    )


# ==========================================
# ASSESSMENTS & MARKS
# ==========================================

class Assessment(db.Model):
    __tablename__ = "assessments"
    assessment_id = db.Column(db.Integer, primary_key=True)
    course_id_fk = db.Column(db.Integer, db.ForeignKey("courses.course_id"), nullable=False)
    faculty_id_fk = db.Column(db.Integer, db.ForeignKey("faculty.faculty_id"), nullable=False)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    max_marks = db.Column(db.Float, nullable=False)
    weightage = db.Column(db.Float)
    type = db.Column(db.String(32))  # e.g. theory, practical, quiz
    mode = db.Column(db.String(32))
    sub_type = db.Column(db.String(32))
    semester = db.Column(db.Integer, nullable=False)
    year = db.Column(db.Integer, nullable=False)
    scheduled_date = db.Column(db.DateTime)
    submission_deadline = db.Column(db.DateTime)
    is_active = db.Column(db.Boolean, default=True)

    # Finalization lock
    is_marks_finalized = db.Column(db.Boolean, default=False)
    marks_finalized_at = db.Column(db.DateTime)
    marks_finalized_by_id_fk = db.Column(db.Integer, db.ForeignKey("faculty.faculty_id"))

    created_at = db.Column(db.DateTime, default=utc_now)
    updated_at = db.Column(db.DateTime, onupdate=utc_now)

    course = db.relationship("Course", lazy=True)
    faculty = db.relationship("Faculty", foreign_keys=[faculty_id_fk], lazy=True)
    marks_finalized_by = db.relationship("Faculty", foreign_keys=[marks_finalized_by_id_fk], lazy=True)
    assessment_clos = db.relationship("AssessmentClo", backref="assessment", lazy=True)

    __table_args__ = (
        db.Index("ix_assessments_course_term", "course_id_fk", "semester", "year"),
    )


class AssessmentClo(db.Model):
    __tablename__ = "assessment_clos"
    assessment_clo_id = db.Column(db.Integer, primary_key=True)
    assessment_id_fk = db.Column(db.Integer, db.ForeignKey("assessments.assessment_id"), nullable=False)
    clo_id_fk = db.Column(db.Integer, db.ForeignKey("clos.clo_id"), nullable=False)
    marks_allocated = db.Column(db.Float, nullable=False)
    weightage = db.Column(db.Float)
    bloom_level = db.Column(db.String(32))

    clo = db.relationship("Clo", lazy=True)

    __table_args__ = (
        db.UniqueConstraint("assessment_id_fk", "clo_id_fk", name="uq_assessment_clo"),
    )


class Mark(db.Model):
    __tablename__ = "marks"
    mark_id = db.Column(db.Integer, primary_key=True)
    student_id_fk = db.Column(db.Integer, db.ForeignKey("students.student_id"), nullable=False)
    assessment_id_fk = db.Column(db.Integer, db.ForeignKey("assessments.assessment_id"), nullable=False)
    clo_id_fk = db.Column(db.Integer, db.ForeignKey("clos.clo_id"), nullable=False)
    marks_obtained = db.Column(db.Float, nullable=False)
    entered_by_id_fk = db.Column(db.Integer, db.ForeignKey("users.user_id"))
    entered_at = db.Column(db.DateTime, default=utc_now)
    updated_at = db.Column(db.DateTime, default=utc_now, onupdate=utc_now)

    __table_args__ = (
        db.UniqueConstraint("student_id_fk", "assessment_id_fk", "clo_id_fk", name="uq_mark_student_assessment_clo"),
    )
