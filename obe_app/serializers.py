def iso(value):
    return value.isoformat() if value else None


def course_brief(course):
    if course is None:
        return None
    return {
        "course_id": course.course_id,
        "code": course.code,
        "name": course.name,
        "credits": course.credits,
        "semester": course.semester,
        "type": course.type,
        "department_id": course.department_id_fk,
    }


def course_dict(course):
    data = course_brief(course)
    data.update({
        "slug": course.slug,
        "category": course.category,
        "description": course.description,
        "is_active": course.is_active,
        "created_at": iso(course.created_at),
        "updated_at": iso(course.updated_at),
    })
    return data


def faculty_brief(faculty):
    if faculty is None:
        return None
    return {
        "faculty_id": faculty.faculty_id,
        "name": faculty.name,
        "designation": faculty.designation,
        "department_id": faculty.department_id_fk,
    }


def clo_dict(clo):
    return {
        "clo_id": clo.clo_id,
        "course_id": clo.course_id_fk,
        "code": clo.code,
        "statement": clo.statement,
        "bloom_level": clo.bloom_level,
        "attainment_threshold": clo.attainment_threshold,
        "order": clo.order,
        "version": clo.version,
        "is_active": clo.is_active,
    }


def allocation_dict(ac):
    return {
        "clo_id": ac.clo_id_fk,
        "code": ac.clo.code if ac.clo else None,
        "statement": ac.clo.statement if ac.clo else None,
        "marks_allocated": ac.marks_allocated,
        "weightage": ac.weightage,
        "bloom_level": ac.bloom_level,
    }


def assessment_dict(assessment, include_clos=True):
    data = {
        "assessment_id": assessment.assessment_id,
        "course_id": assessment.course_id_fk,
        "faculty_id": assessment.faculty_id_fk,
        "title": assessment.title,
        "description": assessment.description,
        "max_marks": assessment.max_marks,
        "weightage": assessment.weightage,
        "type": assessment.type,
        "mode": assessment.mode,
        "sub_type": assessment.sub_type,
        "semester": assessment.semester,
        "year": assessment.year,
        "scheduled_date": iso(assessment.scheduled_date),
        "submission_deadline": iso(assessment.submission_deadline),
        "is_active": assessment.is_active,
        "is_marks_finalized": bool(assessment.is_marks_finalized),
        "marks_finalized_at": iso(assessment.marks_finalized_at),
        "marks_finalized_by": assessment.marks_finalized_by_id_fk,
        "created_at": iso(assessment.created_at),
    }
    if include_clos:
        data["clos"] = [allocation_dict(ac) for ac in assessment.assessment_clos]
    return data


def assignment_dict(cf):
    return {
        "assignment_id": cf.assignment_id,
        "course_id": cf.course_id_fk,
        "faculty_id": cf.faculty_id_fk,
        "semester": cf.semester,
        "year": cf.year,
        "teaching_methodology": cf.teaching_methodology,
        "assessment_mode": cf.assessment_mode,
        "course": course_brief(cf.course),
        "faculty": faculty_brief(cf.faculty),
    }
