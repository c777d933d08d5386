from utils.dates import format_display


def reservation_to_dict(r):
    return {
        "id": r.id,
        "studio_id": r.studio_id,
        "room_id": r.room_id,
        "date": r.date.isoformat(),
        "section_key": r.section_key,
        "section_label": r.section_label,
        "status": r.status,
        "requester_id": r.requester_id,
        "teacher_id": r.teacher_id,
        "dependent_id": r.dependent_id,
        "reason": r.reason,
        "cancel_reason": r.cancel_reason,
        "remark": r.remark,
        "lesson_comment": r.lesson_comment,
        "options": r.options or [],
        "version": r.version,
        "created_at": format_display(r.created_at),
        "updated_at": format_display(r.updated_at),
    }


def lesson_to_dict(lesson):
    return {
        "id": lesson.id,
        "reservation_id": lesson.reservation_id,
        "teacher_id": lesson.teacher_id,
        "studio_id": lesson.studio_id,
        "room_id": lesson.room_id,
        "dependent_id": lesson.dependent_id,
        "date": lesson.date.isoformat(),
        "section_key": lesson.section_key,
        "section_label": lesson.section_label,
        "status": lesson.status,
        "created_at": format_display(lesson.created_at),
        "updated_at": format_display(lesson.updated_at),
        "canceled_at": format_display(lesson.canceled_at),
    }


def refund_to_dict(f):
    return {
        "id": f.id,
        "source_reservation_id": f.source_reservation_id,
        "studio_id": f.studio_id,
        "room_id": f.room_id,
        "date": f.date.isoformat(),
        "section_key": f.section_key,
        "section_label": f.section_label,
        "status": f.status,
        "requester_id": f.requester_id,
        "teacher_id": f.teacher_id,
        "dependent_id": f.dependent_id,
        "reason": f.reason,
        "cancel_reason": f.cancel_reason,
        "remark": f.remark,
        "admin_remark": f.admin_remark,
        "approved_by": f.approved_by,
        "created_at": format_display(f.created_at),
        "updated_at": format_display(f.updated_at),
        "approved_at": format_display(f.approved_at),
    }


def audit_to_dict(a):
    return {
        "id": a.id,
        "created_at": format_display(a.timestamp),
        "user_id": a.actor_id,
        "role": a.actor_role,
        "action": a.action,
        "entity": a.entity,
        "entity_id": a.entity_id,
        "ip": a.ip,
        "user_agent": a.user_agent,
        "metadata": a.metadata_json,
    }
