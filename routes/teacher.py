from flask import Blueprint, request, jsonify, g

from security.rbac import require_roles
from services import lessons, reservations, store
from services.errors import AlreadyClaimedError
from utils.audit import log_event
from utils.roles import TEACHER
from utils.serializers import lesson_to_dict, reservation_to_dict

teacher_bp = Blueprint("teacher", __name__, url_prefix="/teacher")


# ---------- TEACHERS: claimable reservations ----------
@teacher_bp.get("/reservations/available")
@require_roles(TEACHER)
def available_reservations():
    rows = store.list_by_status("requested")
    return jsonify(count=len(rows), data=[reservation_to_dict(r) for r in rows]), 200


# ---------- TEACHERS: claim (single writer per slot) ----------
@teacher_bp.post("/reservations/<int:reservation_id>/claim")
@require_roles(TEACHER)
def claim(reservation_id: int):
    try:
        row, lesson = reservations.claim_lesson(reservation_id, g.user.id)
    except AlreadyClaimedError:
        log_event("CLAIM_FAIL_ALREADY_CLAIMED", user_id=g.user.id, entity="reservation", entity_id=reservation_id)
        raise

    log_event("LESSON_CLAIM", user_id=g.user.id, entity="reservation", entity_id=row.id,
              metadata={"lesson_id": lesson.id})
    return jsonify(reservation=reservation_to_dict(row), lesson=lesson_to_dict(lesson)), 201


# ---------- TEACHERS: lessons ----------
@teacher_bp.get("/lessons")
@require_roles(TEACHER)
def my_lessons():
    rows = lessons.list_lessons(g.user.id, status=request.args.get("status"))
    return jsonify([lesson_to_dict(lesson) for lesson in rows]), 200


@teacher_bp.post("/lessons/<int:lesson_id>/complete")
@require_roles(TEACHER)
def complete(lesson_id: int):
    lesson = lessons.complete_lesson(lesson_id, g.user.id)
    log_event("LESSON_COMPLETE", user_id=g.user.id, entity="lesson", entity_id=lesson.id)
    return jsonify(lesson_to_dict(lesson)), 200


@teacher_bp.post("/lessons/<int:lesson_id>/close")
@require_roles(TEACHER)
def close(lesson_id: int):
    lesson = lessons.close_lesson(lesson_id, g.user.id)
    log_event("LESSON_CLOSE", user_id=g.user.id, entity="lesson", entity_id=lesson.id)
    return jsonify(lesson_to_dict(lesson)), 200


@teacher_bp.post("/lessons/<int:lesson_id>/cancel")
@require_roles(TEACHER)
def cancel(lesson_id: int):
    lesson = lessons.cancel_lesson(lesson_id, g.user.id)
    log_event("LESSON_CANCEL", user_id=g.user.id, entity="lesson", entity_id=lesson.id,
              metadata={"reservation_id": lesson.reservation_id})
    return jsonify(lesson_to_dict(lesson)), 200


@teacher_bp.post("/lessons/<int:lesson_id>/comment")
@require_roles(TEACHER)
def comment(lesson_id: int):
    data = request.get_json(silent=True) or {}
    variant = (data.get("type") or "").strip()
    payload = {k: v for k, v in data.items() if k != "type"}

    row = lessons.annotate_lesson(lesson_id, g.user.id, variant, payload)

    log_event("LESSON_COMMENT", user_id=g.user.id, entity="lesson", entity_id=lesson_id,
              metadata={"type": variant})
    return jsonify(reservation_to_dict(row)), 200
