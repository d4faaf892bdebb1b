"""
Authorization guard.

Every request resolves a Principal from the logged-in user; handlers ask it a
capability question per operation instead of branching on role strings.
"""
from sqlalchemy import select

from .models import Faculty, Department, CourseFaculty, Student
from .errors import Forbidden, NotFound, FacultyProfileNotFound


def find_faculty(session, user):
    if user is None:
        return None
    return session.execute(
        select(Faculty).filter_by(user_id_fk=user.user_id, is_active=True)
    ).scalars().first()


def resolve_faculty(session, user):
    faculty = find_faculty(session, user)
    if not faculty:
        raise FacultyProfileNotFound()
    return faculty


def is_assigned(session, faculty_id, course_id, semester, year):
    row = session.execute(
        select(CourseFaculty.assignment_id).filter_by(
            course_id_fk=course_id,
            faculty_id_fk=faculty_id,
            semester=semester,
            year=year,
        )
    ).first()
    return row is not None


class Principal:
    role = None

    def __init__(self, session, user):
        self.session = session
        self.user = user
        self._faculty = None
        self._faculty_loaded = False

    @property
    def user_id(self):
        return self.user.user_id

    @property
    def faculty(self):
        if not self._faculty_loaded:
            self._faculty = find_faculty(self.session, self.user)
            self._faculty_loaded = True
        return self._faculty

    def can_manage_department(self, department_id):
        return False

    def can_manage_course(self, course):
        return self.can_manage_department(course.department_id_fk)

    def can_manage_faculty(self, faculty):
        return self.can_manage_department(faculty.department_id_fk)

    def is_assigned(self, course_id, semester, year):
        if not self.faculty:
            return False
        return is_assigned(self.session, self.faculty.faculty_id, course_id, semester, year)

    def is_assigned_any(self, course_id):
        if not self.faculty:
            return False
        row = self.session.execute(
            select(CourseFaculty.assignment_id).filter_by(
                course_id_fk=course_id, faculty_id_fk=self.faculty.faculty_id
            )
        ).first()
        return row is not None

    def can_manage_assessment(self, assessment):
        # Creator only
        return bool(self.faculty) and self.faculty.faculty_id == assessment.faculty_id_fk

    def can_enter_marks(self, assessment):
        return self.can_manage_assessment(assessment) or self.is_assigned(
            assessment.course_id_fk, assessment.semester, assessment.year
        )

    def can_view_assessment(self, assessment):
        return self.can_enter_marks(assessment) or self.can_manage_course(assessment.course)

    def can_view_student_marks(self, assessment, student_id):
        return self.can_view_assessment(assessment)


class FacultyPrincipal(Principal):
    role = "FACULTY"


class HodPrincipal(Principal):
    role = "HOD"

    def can_manage_department(self, department_id):
        department = self.session.get(Department, department_id)
        return department is not None and department.hod_id_fk == self.user_id


class AdminPrincipal(Principal):
    role = "ADMIN"

    def can_manage_department(self, department_id):
        return True

    def can_view_assessment(self, assessment):
        return True


class StudentPrincipal(Principal):
    role = "STUDENT"

    @property
    def faculty(self):
        return None

    def can_view_student_marks(self, assessment, student_id):
        student = self.session.execute(
            select(Student).filter_by(user_id_fk=self.user_id, is_active=True)
        ).scalars().first()
        return student is not None and student.student_id == student_id


_PRINCIPALS = {
    "ADMIN": AdminPrincipal,
    "HOD": HodPrincipal,
    "FACULTY": FacultyPrincipal,
    "STUDENT": StudentPrincipal,
}


def principal_for(session, user):
    role = (getattr(user, "role", "") or "").strip().upper()
    cls = _PRINCIPALS.get(role, StudentPrincipal)
    return cls(session, user)


def require(flag, message=None):
    if not flag:
        raise Forbidden(message)


def get_or_404(session, model, ident, active_only=True, message=None):
    obj = session.get(model, ident) if ident is not None else None
    if obj is None or (active_only and getattr(obj, "is_active", True) is False):
        raise NotFound(message or f"{model.__name__} not found")
    return obj
