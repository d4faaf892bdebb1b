from sqlalchemy import select, func

from obe_app import db
from obe_app.models import Course, Clo, CloPoMapping, CourseFaculty, StudentCourseEnrollment, Assessment


def _course_body(**overrides):
    body = {"name": "Machine Learning", "code": "ML201", "credits": 3, "type": "theory", "semester": 4}
    body.update(overrides)
    return body


def test_create_course(app, world, login):
    c = login("hod@test.edu")
    resp = c.post("/hod/courses", json=_course_body(category="core"))
    assert resp.status_code == 201
    data = resp.get_json()["data"]
    assert data["slug"] == "machine-learning"
    assert data["type"] == "THEORY"
    assert data["category"] == "CORE"
    assert data["department_id"] == world.dept


def test_create_course_validates_enums(world, login):
    c = login("hod@test.edu")
    resp = c.post("/hod/courses", json=_course_body(type="lecture"))
    assert resp.status_code == 400
    assert resp.get_json()["error"]["details"]["field"] == "type"

    resp = c.post("/hod/courses", json=_course_body(category="elective"))
    assert resp.status_code == 400

    resp = c.post("/hod/courses", json={"name": "No Code"})
    assert resp.status_code == 400
    assert "code" in resp.get_json()["error"]["details"]["missing_fields"]


def test_duplicate_slug_is_conflict(world, login):
    c = login("hod@test.edu")
    resp = c.post("/hod/courses", json=_course_body(name="Data Science", code="DS999"))
    assert resp.status_code == 409
    assert resp.get_json()["error"]["code"] == "UniqueConstraintViolation"


def test_faculty_cannot_manage_courses(world, login):
    assert login("f1@test.edu").post("/hod/courses", json=_course_body()).status_code == 403
    assert login("f1@test.edu").get("/hod/courses").status_code == 403


def test_list_courses_scoped_to_department(world, login):
    resp = login("hod@test.edu").get("/hod/courses")
    assert resp.status_code == 200
    courses = resp.get_json()["data"]
    assert [c["code"] for c in courses] == ["DS101"]
    assert courses[0]["clo_count"] == 2
    assert courses[0]["faculty_count"] == 1

    resp = login("admin@test.edu").get(f"/hod/courses?department_id={world.other_dept}")
    assert [c["code"] for c in resp.get_json()["data"]] == ["AC101"]


def test_other_hod_cannot_touch_course(world, login):
    c = login("hod2@test.edu")
    assert c.get(f"/hod/courses/{world.course}").status_code == 403
    assert c.put(f"/hod/courses/{world.course}", json={"name": "X"}).status_code == 403
    assert c.delete(f"/hod/courses/{world.course}").status_code == 403


def test_update_course(world, login):
    c = login("hod@test.edu")
    resp = c.put(f"/hod/courses/{world.course}", json={"name": "Applied Data Science", "credits": 3})
    assert resp.status_code == 200
    data = resp.get_json()["data"]
    assert data["name"] == "Applied Data Science"
    assert data["credits"] == 3

    resp = c.put(f"/hod/courses/{world.course}", json={"department_id": world.other_dept})
    assert resp.status_code == 400


def test_credit_cut_below_scheduled_marks_is_rejected(app, world, login, make_assessment):
    f1 = login("f1@test.edu")
    assert make_assessment(f1, title="Mid Term", max_marks=40).status_code == 201
    assert make_assessment(f1, title="End Term", max_marks=20).status_code == 201

    c = login("hod@test.edu")
    resp = c.put(f"/hod/courses/{world.course}", json={"credits": 2, "name": "Renamed"})
    assert resp.status_code == 400
    err = resp.get_json()["error"]
    assert err["code"] == "MarksCapExceeded"
    assert (err["details"]["semester"], err["details"]["year"]) == (world.semester, world.year)
    assert err["details"]["current_total"] == 60
    assert err["details"]["max_course_marks"] == 50
    with app.app_context():
        course = db.session.get(Course, world.course)
        assert course.credits == 4
        assert course.name != "Renamed"

    resp = c.put(f"/hod/courses/{world.course}", json={"credits": 3})
    assert resp.status_code == 200
    assert resp.get_json()["data"]["credits"] == 3


def test_is_active_must_be_boolean(app, world, login):
    c = login("hod@test.edu")
    resp = c.put(f"/hod/courses/{world.course}", json={"is_active": "false"})
    assert resp.status_code == 400
    assert resp.get_json()["error"]["code"] == "ValidationFailed"

    resp = c.put(f"/hod/clos/{world.clo1}", json={"is_active": 0})
    assert resp.status_code == 400

    assert c.put(f"/hod/courses/{world.course}", json={"is_active": False}).status_code == 200
    with app.app_context():
        assert db.session.get(Course, world.course).is_active is False


def test_delete_course_cascades(app, world, login, make_assessment):
    aid = make_assessment(login("f1@test.edu")).get_json()["data"]["assessment_id"]
    c = login("hod@test.edu")
    c.post("/hod/mappings", json={"po_mappings": [{"clo_id": world.clo1, "po_id": world.po1, "level": 2}]})

    resp = c.delete(f"/hod/courses/{world.course}")
    assert resp.status_code == 200
    deleted = resp.get_json()["data"]["deleted"]
    assert deleted["clos"] == 2
    assert deleted["po_mappings"] == 1
    assert deleted["assessments"] == 1
    assert deleted["assignments"] == 1
    assert deleted["enrollments"] == 3

    with app.app_context():
        assert db.session.get(Course, world.course) is None
        assert db.session.get(Assessment, aid) is None
        for model, column in (
            (Clo, Clo.course_id_fk),
            (CourseFaculty, CourseFaculty.course_id_fk),
            (StudentCourseEnrollment, StudentCourseEnrollment.course_id_fk),
        ):
            assert db.session.execute(select(func.count()).select_from(model).filter(column == world.course)).scalar() == 0
        assert db.session.execute(select(func.count()).select_from(CloPoMapping)).scalar() == 0


def test_delete_course_with_marks_is_locked(app, world, login, allocated_assessment):
    c, aid = allocated_assessment
    c.post(f"/assessments/{aid}/marks/bulk", json={"marks_entries": [
        {"student_id": world.s1, "clo_id": world.clo1, "marks_obtained": 3},
    ]})
    resp = login("hod@test.edu").delete(f"/hod/courses/{world.course}")
    assert resp.status_code == 400
    assert resp.get_json()["error"]["code"] == "LockedByMarks"
    with app.app_context():
        assert db.session.get(Course, world.course) is not None


def test_next_course_code(world, login):
    c = login("hod@test.edu")
    assert c.get(f"/hod/programs/{world.bsc}/next-course-code").get_json()["data"]["code"] == "C001"
    c.post("/hod/courses", json=_course_body(code="C007"))
    assert c.get(f"/hod/programs/{world.bsc}/next-course-code").get_json()["data"]["code"] == "C008"


def test_create_and_update_clo(world, login):
    c = login("hod@test.edu")
    resp = c.post(f"/hod/courses/{world.course}/clos", json={
        "code": "CLO3", "statement": "Evaluate models", "bloom_level": "Evaluate",
    })
    assert resp.status_code == 201
    clo = resp.get_json()["data"]
    assert clo["order"] == 3
    assert clo["version"] == 1

    resp = c.post(f"/hod/courses/{world.course}/clos", json={
        "code": "CLO3", "statement": "Again", "bloom_level": "Apply",
    })
    assert resp.status_code == 409

    resp = c.put(f"/hod/clos/{clo['clo_id']}", json={"statement": "Evaluate and compare models"})
    assert resp.status_code == 200
    assert resp.get_json()["data"]["version"] == 2

    # same statement leaves the version alone
    resp = c.put(f"/hod/clos/{clo['clo_id']}", json={"statement": "Evaluate and compare models", "order": 9})
    assert resp.get_json()["data"]["version"] == 2
    assert resp.get_json()["data"]["order"] == 9

    codes = [x["code"] for x in c.get(f"/hod/courses/{world.course}/clos").get_json()["data"]]
    assert codes == ["CLO1", "CLO2", "CLO3"]


def test_create_outcomes(world, login):
    c = login("hod@test.edu")
    resp = c.post(f"/hod/programs/{world.bsc}/pos", json={"code": "PO3", "statement": "Design"})
    assert resp.status_code == 201
    resp = c.post(f"/hod/programs/{world.bsc}/psos", json={"code": "PSO2", "statement": "ML skills"})
    assert resp.status_code == 201

    outcomes = c.get(f"/hod/programs/{world.bsc}/outcomes").get_json()["data"]
    assert [p["code"] for p in outcomes["pos"]] == ["PO1", "PO2", "PO3"]
    assert [p["code"] for p in outcomes["psos"]] == ["PSO1", "PSO2"]

    assert c.post(f"/hod/programs/{world.bcom}/pos", json={"code": "PO9", "statement": "x"}).status_code == 403


def test_programs_and_departments(world, login):
    c = login("hod@test.edu")
    programs = c.get("/hod/programs").get_json()["data"]
    assert [p["code"] for p in programs] == ["BSC-CS", "UG"]

    departments = c.get(f"/hod/programs/{world.bsc}/departments").get_json()["data"]
    assert [d["code"] for d in departments] == ["CS"]


def test_dashboard_stats(world, login):
    data = login("hod@test.edu").get("/hod/dashboard").get_json()["data"]
    assert data["total_courses"] == 1
    assert data["total_clos"] == 2
    assert data["total_faculty"] == 2
    assert data["total_pos"] == 2
    assert data["total_psos"] == 1
    assert data["program"]["code"] == "BSC-CS"
