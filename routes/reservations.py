from flask import Blueprint, request, jsonify, g

from security.rbac import require_roles
from services import availability, reconciliation, reservations, store
from services.errors import NotFoundError, ValidationError
from services.slots import build_slot_key
from utils.audit import log_event
from utils.auth_context import login_required
from utils.dates import parse_date
from utils.roles import ADMIN, STUDENT, TEACHER
from utils.serializers import reservation_to_dict

reservations_bp = Blueprint("reservations", __name__, url_prefix="/reservations")


def _slot_from(data):
    return build_slot_key(
        data.get("studio_id"),
        data.get("room_id"),
        data.get("date"),
        data.get("section_key"),
    )


def _studio_and_date():
    studio_id = request.args.get("studio_id", type=int)
    date_str = request.args.get("date")
    if not studio_id or not date_str:
        raise ValidationError("Please provide studio_id and date")
    try:
        return studio_id, parse_date(date_str)
    except ValueError:
        raise ValidationError("Invalid date. Use YYYY-MM-DD")


# ---------- PUBLIC: availability ----------
@reservations_bp.get("/availability")
def check_availability():
    studio_id, day = _studio_and_date()
    section_key = (request.args.get("section_key") or "").strip()
    if not section_key:
        raise ValidationError("Please provide section_key")

    return jsonify(is_available=availability.is_available(studio_id, day, section_key)), 200


@reservations_bp.get("/free-sections")
def free_sections():
    studio_id, day = _studio_and_date()
    slots = availability.free_sections_with_labels(studio_id, day)
    return jsonify(
        sections=[s["section_key"] for s in slots],
        time_slots=slots,
        has_history=availability.has_history(studio_id),
    ), 200


# ---------- STUDENTS: requests ----------
@reservations_bp.post("")
@require_roles(STUDENT)
def submit_request():
    data = request.get_json(silent=True) or {}
    slot = _slot_from(data)

    row = reservations.submit_request(
        slot,
        data.get("section_label"),
        g.user.id,
        dependent_id=data.get("dependent_id"),
        remark=data.get("remark"),
        status=data.get("status") or "requested",
    )

    log_event(
        "RESERVATION_REQUEST",
        user_id=g.user.id,
        entity="reservation",
        entity_id=row.id,
        metadata={"status": row.status, "section_key": row.section_key, "date": row.date.isoformat()},
    )
    return jsonify(reservation_to_dict(row)), 201


@reservations_bp.post("/<int:reservation_id>/cancel")
@require_roles(STUDENT)
def cancel_request(reservation_id: int):
    data = request.get_json(silent=True) or {}
    reason = data.get("cancel_reason") or data.get("reason")

    row = reservations.cancel_request(reservation_id, g.user.id, reason)

    log_event("RESERVATION_CANCEL_REQUEST", user_id=g.user.id, entity="reservation", entity_id=row.id,
              metadata={"reason": row.cancel_reason})
    return jsonify(reservation_to_dict(row)), 200


@reservations_bp.get("/mine")
@require_roles(STUDENT)
def my_reservations():
    status = request.args.get("status")
    rows = store.list_by_requester(g.user.id, status=status)
    return jsonify([reservation_to_dict(r) for r in rows]), 200


@reservations_bp.get("/<int:reservation_id>")
@login_required
def get_reservation(reservation_id: int):
    row = store.require_reservation(reservation_id)

    # Students only see their own rows; teachers see what they can claim or hold
    if g.user.role == STUDENT and row.requester_id != g.user.id:
        raise NotFoundError("Reservation not found")
    if g.user.role == TEACHER and row.status != "requested" and row.teacher_id != g.user.id:
        raise NotFoundError("Reservation not found")

    return jsonify(reservation_to_dict(row)), 200


# ---------- STUDENTS/ADMIN: batch reconciliation ----------
@reservations_bp.post("/batch")
@require_roles(STUDENT, ADMIN)
def reconcile_batch():
    data = request.get_json(silent=True) or {}
    updates = data.get("updates")

    result = reconciliation.reconcile_batch(updates, g.user.id, g.user.role)

    log_event(
        "BATCH_RECONCILE",
        user_id=g.user.id,
        entity="batch",
        metadata={k: v for k, v in result.items() if k != "outcomes"},
    )
    return jsonify(message="Batch update completed successfully", result=result), 200
