from flask import Blueprint, jsonify, g, request, current_app

from models.audit_log import AuditLog
from security.rbac import require_roles
from services import reservations, store
from services.slots import build_slot_key
from utils.audit import log_event
from utils.roles import ADMIN
from utils.serializers import audit_to_dict, refund_to_dict, reservation_to_dict

admin_bp = Blueprint("admin", __name__, url_prefix="/admin")


# ---------- ADMIN: block / unblock ----------
@admin_bp.post("/block")
@require_roles(ADMIN)
def block_slot():
    data = request.get_json(silent=True) or {}
    slot = build_slot_key(data.get("studio_id"), data.get("room_id"), data.get("date"), data.get("section_key"))

    row = reservations.block_slot(slot, data.get("section_label"), g.user.id, data.get("reason"))

    log_event("SLOT_BLOCK", user_id=g.user.id, entity="reservation", entity_id=row.id,
              metadata={"reason": row.reason})
    return jsonify(reservation_to_dict(row)), 201


@admin_bp.delete("/block/<int:reservation_id>")
@require_roles(ADMIN)
def unblock_slot(reservation_id: int):
    reservations.unblock_slot(reservation_id, g.user.id)
    log_event("SLOT_UNBLOCK", user_id=g.user.id, entity="reservation", entity_id=reservation_id)
    return jsonify(message="Slot unblocked"), 200


# ---------- ADMIN: cancellation requests & refunds ----------
@admin_bp.get("/cancel-requests")
@require_roles(ADMIN)
def cancel_requests():
    rows = store.list_by_status("requestCanceled")
    return jsonify(count=len(rows), data=[reservation_to_dict(r) for r in rows]), 200


@admin_bp.post("/reservations/<int:reservation_id>/approve-refund")
@require_roles(ADMIN)
def approve_refund(reservation_id: int):
    refund = reservations.approve_refund(reservation_id, g.user.id)
    log_event("REFUND_APPROVE", user_id=g.user.id, entity="refund", entity_id=refund.id,
              metadata={"reservation_id": reservation_id})
    return jsonify(message="Refund approved and record moved.", refund=refund_to_dict(refund)), 200


@admin_bp.get("/refunds")
@require_roles(ADMIN)
def list_refunds():
    rows = reservations.list_refunds(limit=current_app.config.get("LIST_LIMIT", 200))
    return jsonify([refund_to_dict(f) for f in rows]), 200


@admin_bp.post("/refunds/<int:refund_id>/remark")
@require_roles(ADMIN)
def refund_remark(refund_id: int):
    data = request.get_json(silent=True) or {}
    refund = reservations.update_refund_remark(refund_id, g.user.id, data.get("admin_remark"))
    log_event("REFUND_REMARK", user_id=g.user.id, entity="refund", entity_id=refund.id)
    return jsonify(refund_to_dict(refund)), 200


# ---------- ADMIN: schedules ----------
@admin_bp.get("/studios/<int:studio_id>/reservations")
@require_roles(ADMIN)
def studio_reservations(studio_id: int):
    rows = store.list_by_studio(studio_id, status=request.args.get("status"))
    return jsonify([reservation_to_dict(r) for r in rows]), 200


@admin_bp.get("/rooms/<int:room_id>/reservations")
@require_roles(ADMIN)
def room_reservations(room_id: int):
    rows = store.list_by_room(room_id, status=request.args.get("status"))
    return jsonify([reservation_to_dict(r) for r in rows]), 200


# ---------- ADMIN: audit trail ----------
@admin_bp.get("/audit-logs")
@require_roles(ADMIN)
def list_audit_logs():
    limit = request.args.get("limit", type=int) or 200
    limit = max(1, min(limit, 500))

    q = AuditLog.query
    action = request.args.get("action")
    if action:
        q = q.filter(AuditLog.action == action)
    actor_id = request.args.get("user_id", type=int)
    if actor_id is not None:
        q = q.filter(AuditLog.actor_id == actor_id)

    rows = q.order_by(AuditLog.timestamp.desc(), AuditLog.id.desc()).limit(limit).all()
    return jsonify([audit_to_dict(r) for r in rows]), 200
