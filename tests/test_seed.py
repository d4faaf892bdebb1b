from sqlalchemy import select, func
from werkzeug.security import check_password_hash

from obe_app import db
from obe_app.models import Program, Department, User, Course
from obe_app.seed import seed_database


def _count(model):
    return db.session.execute(select(func.count()).select_from(model)).scalar()


def test_seed_is_idempotent(app):
    with app.app_context():
        first = seed_database(db.session, hod_password="first")
        second = seed_database(db.session, hod_password="second")
        assert first == second

        assert _count(Program) == 3
        assert _count(Department) == 1
        assert _count(User) == 1
        assert _count(Course) == 1

        hod = db.session.execute(select(User).filter_by(email="hod@college.edu")).scalars().one()
        dept = db.session.get(Department, first["department_id"])
        assert dept.hod_id_fk == hod.user_id
        assert hod.department_id_fk == dept.department_id
        assert check_password_hash(hod.password_hash, "second")

        course = db.session.execute(select(Course).filter_by(slug="data-science")).scalars().one()
        assert (course.code, course.credits) == ("DS101", 4)


def test_seed_command(app):
    result = app.test_cli_runner().invoke(args=["seed"])
    assert result.exit_code == 0
    assert "Seeding completed" in result.output
    with app.app_context():
        assert _count(Course) == 1
