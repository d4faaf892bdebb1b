import os
from sqlalchemy import select
from werkzeug.security import generate_password_hash

from .models import Program, Department, User, Course


def _upsert(session, model, lookup, create, update=None):
    obj = session.execute(select(model).filter_by(**lookup)).scalars().first()
    if obj is None:
        obj = model(**lookup, **create)
        session.add(obj)
    else:
        for key, value in (update or {}).items():
            setattr(obj, key, value)
    session.flush()
    return obj


def seed_database(session, hod_password=None):
    """Base programs, the CS department, its HOD and a test course. Safe to re-run."""
    hod_password = hod_password or os.environ.get("SEED_HOD_PASSWORD", "hod123")

    # 1. Program levels
    ug = _upsert(session, Program, {"slug": "ug"}, {"name": "Undergraduate", "code": "UG", "type": "LEVEL", "level": "UG"})
    _upsert(session, Program, {"slug": "pg"}, {"name": "Postgraduate", "code": "PG", "type": "LEVEL", "level": "PG"})

    # 2. Degree
    bsc = _upsert(
        session, Program, {"slug": "bsc-computer-science"},
        {"name": "BSc Computer Science", "code": "BSC-CS", "type": "DEGREE", "parent_id_fk": ug.program_id, "duration_years": 3},
    )

    # 3. Department
    dept = _upsert(
        session, Department, {"slug": "computer-science"},
        {"name": "Computer Science", "code": "CS", "program_id_fk": bsc.program_id},
        update={"program_id_fk": bsc.program_id},
    )

    # 4. HOD
    hod_fields = {
        "name": "Test HOD",
        "password_hash": generate_password_hash(hod_password),
        "role": "HOD",
        "department_id_fk": dept.department_id,
    }
    hod = _upsert(session, User, {"email": "hod@college.edu"}, hod_fields, update=hod_fields)
    dept.hod_id_fk = hod.user_id

    # 5. Test course
    course_fields = {
        "semester": 5,
        "credits": 4,
        "type": "THEORY",
        "department_id_fk": dept.department_id,
        "created_by_id_fk": hod.user_id,
        "description": "Test course for API development",
    }
    _upsert(session, Course, {"slug": "data-science"}, dict(course_fields, name="Data Science", code="DS101"), update=course_fields)

    session.commit()
    return {"department_id": dept.department_id, "hod_id": hod.user_id}


def register_commands(app):
    from . import db

    @app.cli.command("seed")
    def seed_command():
        """Seed base programs, department, HOD and a test course."""
        result = seed_database(db.session)
        app.logger.info("Seed completed: %s", result)
        print(f"Seeding completed: {result}")
