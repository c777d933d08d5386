"""
Single-reservation transitions.

    (none)          --request-->   pending / requested      requester
    pending|requested --cancel-->  requestCanceled          requester
    requestCanceled --approve-->   (deleted, refund copied)  operator
    requested       --claim-->     confirmed + Lesson        teacher
    (none)          --block-->     blocked                   operator
    blocked         --unblock-->   (deleted)                 operator

Lesson cancellation (services.lessons) moves confirmed back to requested.
"""
from datetime import datetime

from sqlalchemy import delete, update
from sqlalchemy.exc import IntegrityError

from models import db
from models.lesson import Lesson
from models.refund_record import RefundRecord
from models.reservation import (
    Reservation,
    PENDING, REQUESTED, REQUEST_CANCELED, CONFIRMED, BLOCKED, DRAFT_STATUSES,
)
from services import availability, store
from services.dependents import get_dependent
from services.errors import (
    AlreadyClaimedError, ForbiddenError, InvalidStateError, NotFoundError,
    ReservationError, SlotUnavailableError, ValidationError,
)
from services.slots import check_studios

REQUESTER_TARGETS = DRAFT_STATUSES + (REQUEST_CANCELED,)


def check_requester_transition(current: str, desired: str):
    if current == desired:
        return
    if current in DRAFT_STATUSES and desired in REQUESTER_TARGETS:
        return
    raise InvalidStateError(f"Cannot move reservation from {current} to {desired}")


def pick_own_row(rows, desired_status):
    """
    A requester's row for a slot. Withdrawn (requestCanceled) rows are only
    matched when the caller is withdrawing again; a fresh request next to a
    pending refund gets its own row.
    """
    live = [r for r in rows if r.status != REQUEST_CANCELED]
    if live:
        return live[0]
    if desired_status == REQUEST_CANCELED and rows:
        return rows[0]
    return None


def _touch(row, now=None):
    row.version = (row.version or 0) + 1
    row.updated_at = max(now or datetime.utcnow(), row.updated_at or datetime.min)


def _clean(value, field="value"):
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    return value.strip() or None


# ---------- requester ----------

def update_or_create(slot, section_label, actor_id, status=PENDING, dependent_id=None, remark=None):
    """
    Write the requester's desired state for one slot.

    An existing row of theirs is overwritten in place (last writer wins).
    Otherwise a new row is inserted, provided nothing confirmed or blocked
    holds the slot.
    """
    remark_given = remark is not None
    remark = _clean(remark, "remark")
    section_label = _clean(section_label, "section_label")
    if not section_label:
        raise ValidationError("section_label is required")
    if status not in REQUESTER_TARGETS:
        raise ValidationError(f"status must be one of {', '.join(REQUESTER_TARGETS)}")

    check_studios([slot])
    if dependent_id is not None:
        try:
            dependent_id = int(dependent_id)
        except (TypeError, ValueError):
            raise ValidationError("dependent_id must be an integer")
        get_dependent(actor_id, dependent_id)

    rows = (
        Reservation.query
        .filter_by(
            studio_id=slot.studio_id,
            room_id=slot.room_id,
            date=slot.date,
            section_key=slot.section_key,
            requester_id=actor_id,
        )
        .order_by(Reservation.id.desc())
        .all()
    )
    existing = pick_own_row(rows, status)

    if existing is not None:
        check_requester_transition(existing.status, status)
        existing.section_label = section_label
        existing.status = status
        if dependent_id is not None:
            existing.dependent_id = dependent_id
        if remark_given:
            existing.remark = remark
        _touch(existing)
        db.session.commit()
        return existing

    if status not in DRAFT_STATUSES:
        raise InvalidStateError("A new reservation must start as pending or requested")

    if not availability.is_available(slot.studio_id, slot.date, slot.section_key):
        raise SlotUnavailableError("Time slot is not available")

    now = datetime.utcnow()
    row = Reservation(
        studio_id=slot.studio_id,
        room_id=slot.room_id,
        date=slot.date,
        section_key=slot.section_key,
        section_label=section_label,
        requester_id=actor_id,
        dependent_id=dependent_id,
        status=status,
        remark=remark,
        version=1,
        created_at=now,
        updated_at=now,
    )
    db.session.add(row)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise SlotUnavailableError("Time slot is not available")
    return row


def submit_request(slot, section_label, requester_id, dependent_id=None, remark=None, status=REQUESTED):
    return update_or_create(
        slot,
        section_label,
        requester_id,
        status=status,
        dependent_id=dependent_id,
        remark=remark,
    )


def cancel_request(reservation_id, requester_id, cancel_reason=None):
    row = store.require_reservation(reservation_id)
    if row.requester_id != requester_id:
        raise ForbiddenError("Reservation belongs to another account")
    if row.status not in DRAFT_STATUSES:
        raise InvalidStateError(f"Reservation is {row.status} and cannot be cancelled")

    result = db.session.execute(
        update(Reservation)
        .where(
            Reservation.id == reservation_id,
            Reservation.requester_id == requester_id,
            Reservation.status.in_(DRAFT_STATUSES),
        )
        .values(
            status=REQUEST_CANCELED,
            cancel_reason=_clean(cancel_reason, "cancel_reason"),
            version=Reservation.version + 1,
            updated_at=datetime.utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.session.rollback()
        raise InvalidStateError("Reservation changed before it could be cancelled")
    db.session.commit()
    return store.require_reservation(reservation_id)


# ---------- operator ----------

def approve_refund(reservation_id, operator_id) -> RefundRecord:
    """Copy a withdrawn reservation into a refund record and delete it, atomically."""
    row = store.require_reservation(reservation_id)
    if row.status != REQUEST_CANCELED:
        raise InvalidStateError(f"Only requestCanceled reservations can be refunded (got {row.status})")

    refund = RefundRecord(
        source_reservation_id=row.id,
        studio_id=row.studio_id,
        room_id=row.room_id,
        date=row.date,
        section_key=row.section_key,
        section_label=row.section_label,
        requester_id=row.requester_id,
        teacher_id=row.teacher_id,
        dependent_id=row.dependent_id,
        status="refund",
        reason=row.reason,
        cancel_reason=row.cancel_reason,
        remark=row.remark,
        lesson_comment=row.lesson_comment,
        options=list(row.options) if row.options is not None else None,
        created_at=row.created_at,
        updated_at=row.updated_at,
        approved_by=operator_id,
        approved_at=datetime.utcnow(),
    )

    try:
        db.session.add(refund)
        db.session.flush()
        # Cancelled lessons outlive the reservation as history
        db.session.execute(
            update(Lesson)
            .where(Lesson.reservation_id == reservation_id)
            .values(reservation_id=None)
            .execution_options(synchronize_session=False)
        )
        result = db.session.execute(
            delete(Reservation)
            .where(Reservation.id == reservation_id, Reservation.status == REQUEST_CANCELED)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise InvalidStateError("Reservation changed before the refund could be approved")
        db.session.expunge(row)
        db.session.commit()
    except ReservationError:
        db.session.rollback()
        raise
    except IntegrityError:
        db.session.rollback()
        raise InvalidStateError("Refund could not be recorded")
    return refund


def block_slot(slot, section_label, operator_id, reason=None) -> Reservation:
    section_label = _clean(section_label, "section_label")
    if not section_label:
        raise ValidationError("section_label is required")
    check_studios([slot])

    if not availability.is_available(slot.studio_id, slot.date, slot.section_key):
        raise SlotUnavailableError("Time slot is not available")

    now = datetime.utcnow()
    row = Reservation(
        studio_id=slot.studio_id,
        room_id=slot.room_id,
        date=slot.date,
        section_key=slot.section_key,
        section_label=section_label,
        status=BLOCKED,
        reason=_clean(reason, "reason"),
        version=1,
        created_at=now,
        updated_at=now,
    )
    db.session.add(row)
    try:
        db.session.commit()
    except IntegrityError:
        # Lost the race to another block or claim
        db.session.rollback()
        raise SlotUnavailableError("Time slot is not available")
    return row


def unblock_slot(reservation_id, operator_id):
    row = store.require_reservation(reservation_id)
    if row.status != BLOCKED:
        raise InvalidStateError("Only blocked slots can be unblocked")

    result = db.session.execute(
        delete(Reservation)
        .where(Reservation.id == reservation_id, Reservation.status == BLOCKED)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.session.rollback()
        raise InvalidStateError("Reservation changed before it could be unblocked")
    db.session.expunge(row)
    db.session.commit()


def update_refund_remark(refund_id, operator_id, admin_remark) -> RefundRecord:
    refund = db.session.get(RefundRecord, refund_id)
    if refund is None:
        raise NotFoundError("Refund record not found")
    refund.admin_remark = _clean(admin_remark, "admin_remark")
    db.session.commit()
    return refund


def list_refunds(limit=200):
    return RefundRecord.query.order_by(RefundRecord.approved_at.desc()).limit(limit).all()


# ---------- teacher ----------

def claim_lesson(reservation_id, teacher_id):
    """
    Commit a teacher to a requested reservation.

    The status flip is a compare-and-swap on status == requested, so of two
    teachers racing for the same row exactly one wins. Returns (reservation, lesson).
    """
    row = store.require_reservation(reservation_id)
    if row.status == CONFIRMED:
        raise AlreadyClaimedError()
    if row.status != REQUESTED:
        raise InvalidStateError(f"Reservation is {row.status}, not requested")

    holder = store.find_exclusive(row.studio_id, row.date, row.section_key)
    if holder is not None:
        if holder.status == BLOCKED:
            raise SlotUnavailableError("Slot has been blocked")
        raise AlreadyClaimedError("Slot already claimed by another teacher")

    now = datetime.utcnow()
    lesson = Lesson(
        reservation_id=row.id,
        teacher_id=teacher_id,
        studio_id=row.studio_id,
        room_id=row.room_id,
        dependent_id=row.dependent_id,
        date=row.date,
        section_key=row.section_key,
        section_label=row.section_label,
        status="open",
        created_at=now,
        updated_at=now,
    )

    try:
        result = db.session.execute(
            update(Reservation)
            .where(Reservation.id == reservation_id, Reservation.status == REQUESTED)
            .values(
                status=CONFIRMED,
                teacher_id=teacher_id,
                version=Reservation.version + 1,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise AlreadyClaimedError()
        db.session.add(lesson)
        db.session.commit()
    except ReservationError:
        db.session.rollback()
        raise
    except IntegrityError:
        db.session.rollback()
        raise AlreadyClaimedError()

    return store.require_reservation(reservation_id), lesson
