from datetime import date

from obe_app.faculty.services import current_term


def test_current_term():
    assert current_term(date(2025, 1, 15)) == (2025, 2)
    assert current_term(date(2025, 6, 30)) == (2025, 2)
    assert current_term(date(2025, 7, 1)) == (2025, 1)
    assert current_term(date(2025, 12, 31)) == (2025, 1)


def test_profile(world, login):
    resp = login("f1@test.edu").get("/faculty/profile")
    assert resp.status_code == 200
    data = resp.get_json()["data"]
    assert data["faculty_id"] == world.f1
    assert data["email"] == "f1@test.edu"
    assert data["department"]["code"] == "CS"
    assert data["department"]["program"]["code"] == "BSC-CS"
    assert len(data["assignments"]) == 1


def test_profile_without_faculty_record(world, login):
    resp = login("noprofile@test.edu").get("/faculty/profile")
    assert resp.status_code == 404
    assert resp.get_json()["error"]["code"] == "FacultyProfileNotFound"


def test_students_cannot_use_faculty_routes(world, login):
    assert login("cs001@test.edu").get("/faculty/dashboard").status_code == 403


def test_all_assignments_filters(world, login):
    c = login("f1@test.edu")
    assert len(c.get("/faculty/assignments").get_json()["data"]) == 1
    assert c.get(f"/faculty/assignments?year={world.year}&semester={world.semester}").get_json()["data"][0]["course_id"] == world.course
    assert c.get("/faculty/assignments?year=1999").get_json()["data"] == []


def test_current_assignments_shape(world, login):
    data = login("f1@test.edu").get("/faculty/assignments/current").get_json()["data"]
    assert data["faculty"]["name"] == "Faculty One"
    assert data["current_semester"] in (1, 2)
    assert isinstance(data["assignments"], list)


def test_department_info(world, login):
    data = login("f2@test.edu").get("/faculty/department").get_json()["data"]
    assert data["code"] == "CS"
    assert data["faculty_count"] == 2
    assert data["course_count"] == 1


def test_course_detail(world, login):
    resp = login("f1@test.edu").get(f"/faculty/courses/{world.course}")
    assert resp.status_code == 200
    data = resp.get_json()["data"]
    assert [c["code"] for c in data["clos"]] == ["CLO1", "CLO2"]
    assert data["assignments"][0]["year"] == world.year

    resp = login("f2@test.edu").get(f"/faculty/courses/{world.course}")
    assert resp.status_code == 403
    assert resp.get_json()["error"]["code"] == "NotAssigned"


def test_dashboard(world, allocated_assessment, login):
    c, aid = allocated_assessment
    c.patch(f"/assessments/{aid}/finalize-marks")
    data = c.get("/faculty/dashboard").get_json()["data"]
    assert data["total_courses"] == 1
    assert data["total_assessments"] == 1
    assert data["finalized_assessments"] == 1
    assert data["pending_finalization"] == 0
    assert data["workload"][0]["course_count"] == 1
