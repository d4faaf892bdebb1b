"""
CLO -> PO/PSO mapping.

A replace call is a full replace per touched CLO: every existing PO and PSO
mapping of each CLO named in the request is removed and the submitted set is
written in the same transaction.
"""
from flask import current_app
from sqlalchemy import select, delete

from ..models import Clo, Course, Department, Po, Pso, CloPoMapping, CloPsoMapping
from ..authz import principal_for, require, get_or_404
from ..errors import NoValidMappings, Forbidden, ValidationFailed
from ..serializers import course_brief, clo_dict
from .services import list_program_outcomes

MAPPING_LEVELS = (0, 1, 2, 3)


def _valid_level(level):
    if isinstance(level, bool):
        return None
    if isinstance(level, float) and level.is_integer():
        level = int(level)
    if isinstance(level, str) and level.strip().isdigit():
        level = int(level.strip())
    return level if isinstance(level, int) and level in MAPPING_LEVELS else None


def _as_id(value):
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, float) and not value.is_integer():
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def sanitize(entries, target_key):
    """
    Drops entries without ids or with a level outside 0-3.
    Returns: (clean, dropped)
    """
    if entries is not None and not isinstance(entries, list):
        raise ValidationFailed(f"{target_key} mappings must be a list", field=target_key)
    clean = []
    dropped = []
    for entry in entries or []:
        if not isinstance(entry, dict):
            dropped.append({"entry": entry, "reason": "not an object"})
            continue
        clo_id = _as_id(entry.get("clo_id"))
        target_id = _as_id(entry.get(target_key))
        level = _valid_level(entry.get("level"))
        if clo_id is None or target_id is None:
            dropped.append({"entry": entry, "reason": f"missing clo_id or {target_key}"})
        elif level is None:
            dropped.append({"entry": entry, "reason": "level must be 0, 1, 2 or 3"})
        else:
            clean.append((clo_id, target_id, level))
    return clean, dropped


def list_available_outcomes(session, user, course_id):
    course = get_or_404(session, Course, course_id, message="Course not found")
    require(principal_for(session, user).can_manage_course(course), "You can only manage courses in your department")

    program = course.department.program
    data = list_program_outcomes(session, program.program_id)
    data["course"] = course_brief(course)
    data["program"] = {"program_id": program.program_id, "name": program.name, "code": program.code}
    return data


def replace_mappings(session, user, payload):
    payload = payload or {}
    po_entries, po_dropped = sanitize(payload.get("po_mappings"), "po_id")
    pso_entries, pso_dropped = sanitize(payload.get("pso_mappings"), "pso_id")
    dropped = po_dropped + pso_dropped

    clo_ids = {e[0] for e in po_entries} | {e[0] for e in pso_entries}
    if not clo_ids:
        raise NoValidMappings(dropped=dropped)

    # 1. Every touched CLO must belong to a course the caller manages
    principal = principal_for(session, user)
    rows = session.execute(
        select(Clo.clo_id, Course.department_id_fk, Department.program_id_fk)
        .join(Course, Course.course_id == Clo.course_id_fk)
        .join(Department, Department.department_id == Course.department_id_fk)
        .filter(Clo.clo_id.in_(clo_ids))
    ).all()
    clo_program = {r.clo_id: r.program_id_fk for r in rows}
    missing = sorted(clo_ids - set(clo_program))
    if missing:
        raise Forbidden("Some CLOs do not exist or are outside your department", clo_ids=missing)
    for r in rows:
        if not principal.can_manage_department(r.department_id_fk):
            raise Forbidden("Some CLOs are outside your department", clo_ids=[r.clo_id])

    # 2. Targets must be outcomes of the CLO's program
    programs = set(clo_program.values())
    po_program = dict(session.execute(
        select(Po.po_id, Po.program_id_fk).filter(Po.program_id_fk.in_(programs))
    ).all())
    pso_program = dict(session.execute(
        select(Pso.pso_id, Pso.program_id_fk).filter(Pso.program_id_fk.in_(programs))
    ).all())

    def _dedupe(entries, owner, label):
        seen = {}
        for clo_id, target_id, level in entries:
            if owner.get(target_id) != clo_program[clo_id]:
                dropped.append({"clo_id": clo_id, label: target_id, "reason": f"{label} not in the CLO's program"})
                continue
            # First entry for a pair wins
            seen.setdefault((clo_id, target_id), level)
        return seen

    po_final = _dedupe(po_entries, po_program, "po_id")
    pso_final = _dedupe(pso_entries, pso_program, "pso_id")
    if not po_final and not pso_final:
        raise NoValidMappings(dropped=dropped)

    # 3. Delete then insert, atomically
    try:
        session.execute(delete(CloPoMapping).where(CloPoMapping.clo_id_fk.in_(clo_ids)))
        session.execute(delete(CloPsoMapping).where(CloPsoMapping.clo_id_fk.in_(clo_ids)))
        for (clo_id, po_id), level in po_final.items():
            session.add(CloPoMapping(clo_id_fk=clo_id, po_id_fk=po_id, level=level))
        for (clo_id, pso_id), level in pso_final.items():
            session.add(CloPsoMapping(clo_id_fk=clo_id, pso_id_fk=pso_id, level=level))
        session.commit()
    except Exception:
        session.rollback()
        raise

    current_app.logger.info(
        "Mappings replaced for %d CLO(s): %d PO, %d PSO, %d dropped",
        len(clo_ids), len(po_final), len(pso_final), len(dropped),
    )
    return {
        "clos": len(clo_ids),
        "po_mappings": len(po_final),
        "pso_mappings": len(pso_final),
        "dropped": len(dropped),
        "dropped_entries": dropped,
    }


def get_mappings(session, user, course_id):
    course = get_or_404(session, Course, course_id, active_only=False, message="Course not found")
    principal = principal_for(session, user)
    require(
        principal.can_manage_course(course) or principal.is_assigned_any(course.course_id),
        "You do not have access to this course",
    )

    clos = session.execute(
        select(Clo).filter_by(course_id_fk=course.course_id).order_by(Clo.order, Clo.code)
    ).scalars().all()
    clo_ids = [c.clo_id for c in clos]

    po_rows = session.execute(
        select(CloPoMapping, Po).join(Po, Po.po_id == CloPoMapping.po_id_fk)
        .filter(CloPoMapping.clo_id_fk.in_(clo_ids)).order_by(CloPoMapping.clo_id_fk, Po.code)
    ).all() if clo_ids else []
    pso_rows = session.execute(
        select(CloPsoMapping, Pso).join(Pso, Pso.pso_id == CloPsoMapping.pso_id_fk)
        .filter(CloPsoMapping.clo_id_fk.in_(clo_ids)).order_by(CloPsoMapping.clo_id_fk, Pso.code)
    ).all() if clo_ids else []

    return {
        "course": course_brief(course),
        "clos": [clo_dict(c) for c in clos],
        "po_mappings": [
            {"clo_id": m.clo_id_fk, "po_id": m.po_id_fk, "po_code": po.code, "level": m.level}
            for m, po in po_rows
        ],
        "pso_mappings": [
            {"clo_id": m.clo_id_fk, "pso_id": m.pso_id_fk, "pso_code": pso.code, "level": m.level}
            for m, pso in pso_rows
        ],
    }
