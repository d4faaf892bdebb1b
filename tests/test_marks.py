from io import BytesIO

from openpyxl import load_workbook
from sqlalchemy import select

from obe_app import db
from obe_app.models import Mark


def _marks(app, aid):
    with app.app_context():
        return db.session.execute(select(Mark).filter_by(assessment_id_fk=aid)).scalars().all()


def test_marks_over_allocation_rejected(app, world, allocated_assessment):
    c, aid = allocated_assessment
    resp = c.post(f"/assessments/{aid}/marks/bulk", json={"marks_entries": [
        {"student_id": world.s1, "clo_id": world.clo1, "marks_obtained": 15},
    ]})
    assert resp.status_code == 400
    err = resp.get_json()["error"]
    assert err["code"] == "NoValidMarks"
    assert "exceed allocated" in err["details"]["errors"][0]["error"]
    assert _marks(app, aid) == []

    resp = c.post(f"/assessments/{aid}/marks/bulk", json={"marks_entries": [
        {"student_id": world.s1, "clo_id": world.clo1, "marks_obtained": 10},
    ]})
    assert resp.status_code == 200
    assert resp.get_json()["data"]["successful"] == 1
    assert [m.marks_obtained for m in _marks(app, aid)] == [10]


def test_partial_success(app, world, allocated_assessment):
    c, aid = allocated_assessment
    entries = [
        {"student_id": world.s1, "clo_id": world.clo1, "marks_obtained": 10},
        {"student_id": world.s1, "clo_id": world.clo2, "marks_obtained": 8},
        {"student_id": world.s2, "clo_id": world.clo1, "marks_obtained": 0},
        {"student_id": world.s2, "clo_id": world.other_clo, "marks_obtained": 3},   # CLO not allocated
        {"student_id": world.s3, "clo_id": world.clo1, "marks_obtained": 5},        # not enrolled
        {"student_id": world.s2, "clo_id": world.clo2, "marks_obtained": 9},        # over 8
        {"student_id": world.s2, "clo_id": world.clo2, "marks_obtained": -1},       # negative
        {"student_id": world.s2, "clo_id": world.clo2, "marks_obtained": "ten"},    # not numeric
    ]
    resp = c.post(f"/assessments/{aid}/marks/bulk", json={"marks_entries": entries})
    assert resp.status_code == 200
    data = resp.get_json()["data"]
    assert data["successful"] == 3
    assert data["failed"] == 5
    assert len(data["errors"]) == 5
    assert data["summary"] == {"total_entries": 8, "processed": 3}
    assert len(_marks(app, aid)) == 3


def test_bulk_entry_is_idempotent(app, world, allocated_assessment):
    c, aid = allocated_assessment
    entry = {"student_id": world.s1, "clo_id": world.clo1, "marks_obtained": 7}
    c.post(f"/assessments/{aid}/marks/bulk", json={"marks_entries": [entry]})
    first = _marks(app, aid)[0].updated_at

    entry["marks_obtained"] = 9
    c.post(f"/assessments/{aid}/marks/bulk", json={"marks_entries": [entry]})
    rows = _marks(app, aid)
    assert len(rows) == 1
    assert rows[0].marks_obtained == 9
    assert rows[0].updated_at >= first


def test_duplicate_entries_in_one_request_last_wins(app, world, allocated_assessment):
    c, aid = allocated_assessment
    resp = c.post(f"/assessments/{aid}/marks/bulk", json={"marks_entries": [
        {"student_id": world.s1, "clo_id": world.clo1, "marks_obtained": 4},
        {"student_id": world.s1, "clo_id": world.clo1, "marks_obtained": 6},
    ]})
    assert resp.status_code == 200
    rows = _marks(app, aid)
    assert [m.marks_obtained for m in rows] == [6]


def test_marks_entries_must_be_a_list(world, allocated_assessment):
    c, aid = allocated_assessment
    resp = c.post(f"/assessments/{aid}/marks/bulk", json={"marks_entries": "nope"})
    assert resp.status_code == 400
    assert resp.get_json()["error"]["code"] == "ValidationFailed"


def test_unassigned_faculty_cannot_enter_marks(world, login, allocated_assessment):
    _, aid = allocated_assessment
    resp = login("f2@test.edu").post(f"/assessments/{aid}/marks/bulk", json={"marks_entries": [
        {"student_id": world.s1, "clo_id": world.clo1, "marks_obtained": 4},
    ]})
    assert resp.status_code == 403


def test_assessment_marks_report(world, allocated_assessment):
    c, aid = allocated_assessment
    c.post(f"/assessments/{aid}/marks/bulk", json={"marks_entries": [
        {"student_id": world.s1, "clo_id": world.clo1, "marks_obtained": 10},
        {"student_id": world.s1, "clo_id": world.clo2, "marks_obtained": 6},
    ]})
    resp = c.get(f"/assessments/{aid}/marks")
    assert resp.status_code == 200
    data = resp.get_json()["data"]

    students = {s["student_id"]: s for s in data["students"]}
    assert set(students) == {world.s1, world.s2}
    assert students[world.s1]["total_obtained"] == 16
    assert students[world.s1]["total_allocated"] == 20
    assert students[world.s1]["percentage"] == 80
    assert students[world.s2]["total_obtained"] == 0
    assert students[world.s2]["has_marks"] is False

    stats = data["statistics"]
    assert stats["total_students"] == 2
    assert stats["students_with_marks"] == 1
    assert stats["average_marks"] == 8
    assert stats["highest_marks"] == 16
    assert stats["lowest_marks"] == 0
    assert data["marks_summary"]["total_possible"] == 40
    assert data["marks_summary"]["completion_percentage"] == 50


def test_marks_report_without_allocation_has_no_division_error(world, login, make_assessment):
    c = login("f1@test.edu")
    aid = make_assessment(c).get_json()["data"]["assessment_id"]
    data = c.get(f"/assessments/{aid}/marks").get_json()["data"]
    assert all(s["percentage"] == 0 for s in data["students"])
    assert data["marks_summary"]["completion_percentage"] == 0


def test_student_marks(world, login, allocated_assessment):
    c, aid = allocated_assessment
    c.post(f"/assessments/{aid}/marks/bulk", json={"marks_entries": [
        {"student_id": world.s1, "clo_id": world.clo1, "marks_obtained": 11},
    ]})
    resp = c.get(f"/assessments/{aid}/students/{world.s1}/marks")
    assert resp.status_code == 200
    data = resp.get_json()["data"]
    assert data["enrolled"] is True
    entered = [m for m in data["clo_marks"] if m["entered"]]
    assert len(entered) == 1
    assert entered[0]["entered_at"] is not None

    # students see only their own marks
    assert login("cs001@test.edu").get(f"/assessments/{aid}/students/{world.s1}/marks").status_code == 200
    assert login("cs002@test.edu").get(f"/assessments/{aid}/students/{world.s1}/marks").status_code == 403


def test_course_students(world, login):
    resp = login("f1@test.edu").get(f"/assessments/{world.course}/students?semester={world.semester}&year={world.year}")
    assert resp.status_code == 200
    data = resp.get_json()["data"]
    assert data["total"] == 2
    assert [s["roll_number"] for s in data["students"]] == ["CS001", "CS002"]


def test_finalize_rejects_marks_over_allocation(app, world, allocated_assessment):
    c, aid = allocated_assessment
    c.post(f"/assessments/{aid}/marks/bulk", json={"marks_entries": [
        {"student_id": world.s1, "clo_id": world.clo2, "marks_obtained": 8},
    ]})
    # stored directly, bypassing bulk entry validation
    with app.app_context():
        mark = db.session.execute(select(Mark).filter_by(assessment_id_fk=aid)).scalars().one()
        mark.marks_obtained = 9.5
        db.session.commit()

    resp = c.patch(f"/assessments/{aid}/finalize-marks")
    assert resp.status_code == 400
    err = resp.get_json()["error"]
    assert err["code"] == "InvalidMarksPresent"
    assert err["details"]["invalid_marks"] == [{
        "student_id": world.s1, "clo_id": world.clo2, "marks_obtained": 9.5, "marks_allocated": 8,
    }]


def test_export_workbook(world, allocated_assessment):
    c, aid = allocated_assessment
    c.post(f"/assessments/{aid}/marks/bulk", json={"marks_entries": [
        {"student_id": world.s1, "clo_id": world.clo1, "marks_obtained": 10},
    ]})
    resp = c.get(f"/assessments/{aid}/marks/export")
    assert resp.status_code == 200
    assert "spreadsheetml" in resp.mimetype

    wb = load_workbook(BytesIO(resp.data))
    ws = wb.active
    header = [cell.value for cell in ws[2]]
    assert header[:3] == ["Sr No", "Roll No", "Student"]
    assert header[-2:] == ["Total", "Percentage"]
    first = [cell.value for cell in ws[3]]
    assert first[1] == "CS001"
    assert first[3] == 10
