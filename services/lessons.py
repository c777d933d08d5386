"""
Lesson fulfilment: open -> pendingForComment -> closed, or canceled from
either of the first two. Every transition is restricted to the lesson's teacher.
"""
from datetime import datetime

from sqlalchemy import update

from models import db
from models.lesson import Lesson, OPEN, PENDING_FOR_COMMENT, CLOSED, CANCELED
from models.reservation import Reservation, CONFIRMED, REQUESTED
from models.user import Dependent
from services.errors import (
    ConflictError, ForbiddenError, InvalidStateError, NotFoundError,
    ReservationError, ValidationError,
)

ACTIVE_STATUSES = (OPEN, PENDING_FOR_COMMENT)

ASSESSMENT = "assessment"
LESSON = "lesson"
COMMENT_VARIANTS = (ASSESSMENT, LESSON)


def require_lesson(lesson_id) -> Lesson:
    lesson = db.session.get(Lesson, lesson_id)
    if lesson is None:
        raise NotFoundError("Lesson not found")
    return lesson


def _owned_lesson(lesson_id, teacher_id) -> Lesson:
    lesson = require_lesson(lesson_id)
    if lesson.teacher_id != teacher_id:
        raise ForbiddenError("Lesson belongs to another teacher")
    return lesson


def list_lessons(teacher_id, status=None):
    q = Lesson.query.filter_by(teacher_id=teacher_id)
    if status:
        q = q.filter_by(status=status)
    return q.order_by(Lesson.date.asc(), Lesson.section_key.asc()).all()


def _move(lesson, from_statuses, to_status, now):
    values = {"status": to_status, "updated_at": now}
    if to_status == CANCELED:
        values["canceled_at"] = now
    result = db.session.execute(
        update(Lesson)
        .where(Lesson.id == lesson.id, Lesson.status.in_(from_statuses))
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise InvalidStateError("Lesson changed before the update could be applied")


def complete_lesson(lesson_id, teacher_id) -> Lesson:
    """Teacher marks the lesson delivered; it now waits for comments."""
    lesson = _owned_lesson(lesson_id, teacher_id)
    if lesson.status != OPEN:
        raise InvalidStateError(f"Lesson is {lesson.status}, not open")
    try:
        _move(lesson, (OPEN,), PENDING_FOR_COMMENT, datetime.utcnow())
        db.session.commit()
    except ReservationError:
        db.session.rollback()
        raise
    return require_lesson(lesson_id)


def close_lesson(lesson_id, teacher_id) -> Lesson:
    lesson = _owned_lesson(lesson_id, teacher_id)
    if lesson.status != PENDING_FOR_COMMENT:
        raise InvalidStateError(f"Lesson is {lesson.status}, not pendingForComment")
    try:
        _move(lesson, (PENDING_FOR_COMMENT,), CLOSED, datetime.utcnow())
        db.session.commit()
    except ReservationError:
        db.session.rollback()
        raise
    return require_lesson(lesson_id)


def cancel_lesson(lesson_id, teacher_id) -> Lesson:
    """
    Cancel the lesson and hand the slot back: the reservation returns to
    requested with no teacher, so another teacher can claim it.
    """
    lesson = _owned_lesson(lesson_id, teacher_id)
    if lesson.status not in ACTIVE_STATUSES:
        raise InvalidStateError(f"Lesson is {lesson.status} and cannot be cancelled")

    now = datetime.utcnow()
    try:
        _move(lesson, ACTIVE_STATUSES, CANCELED, now)
        result = db.session.execute(
            update(Reservation)
            .where(
                Reservation.id == lesson.reservation_id,
                Reservation.status == CONFIRMED,
                Reservation.teacher_id == teacher_id,
            )
            .values(
                status=REQUESTED,
                teacher_id=None,
                version=Reservation.version + 1,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ConflictError("Reservation is no longer confirmed to this teacher")
        db.session.commit()
    except ReservationError:
        db.session.rollback()
        raise
    return require_lesson(lesson_id)


def _validate_comment(variant, payload):
    if variant not in COMMENT_VARIANTS:
        raise ValidationError(f"type must be one of {', '.join(COMMENT_VARIANTS)}")
    if not isinstance(payload, dict):
        raise ValidationError("payload must be an object")

    remark = payload.get("remark")
    if remark is not None and not isinstance(remark, str):
        raise ValidationError("remark must be a string")

    if variant == ASSESSMENT:
        grade = payload.get("grade")
        if grade is None or not str(grade).strip():
            raise ValidationError("grade is required for an assessment")
        return {"grade": str(grade).strip(), "remark": remark}

    options = payload.get("options") or []
    if not isinstance(options, list) or not all(isinstance(o, str) for o in options):
        raise ValidationError("options must be a list of strings")
    if remark is None and not options:
        raise ValidationError("remark or options required for a lesson comment")
    return {"remark": remark, "options": options}


def annotate_lesson(lesson_id, teacher_id, variant, payload) -> Reservation:
    """
    Record a teacher's comment.

    assessment: grade goes onto the dependent the lesson is for, remark onto
    the reservation. lesson: the teacher's remark is stored as the
    reservation's lesson_comment, with the option tags in options.
    """
    data = _validate_comment(variant, payload)

    lesson = _owned_lesson(lesson_id, teacher_id)
    if lesson.status not in ACTIVE_STATUSES:
        raise InvalidStateError(f"Lesson is {lesson.status} and cannot be commented on")

    reservation = db.session.get(Reservation, lesson.reservation_id) if lesson.reservation_id else None
    if reservation is None or reservation.teacher_id != teacher_id:
        raise ConflictError("Reservation is no longer confirmed to this teacher")

    now = datetime.utcnow()
    if variant == ASSESSMENT:
        if reservation.dependent_id is None:
            raise ValidationError("Reservation has no dependent to assess")
        dependent = db.session.get(Dependent, reservation.dependent_id)
        if dependent is None:
            raise NotFoundError("Dependent not found")
        dependent.grade = data["grade"]
        if data["remark"] is not None:
            reservation.remark = data["remark"].strip() or None
    else:
        # Lesson notes live apart from the requester's own remark
        if data["remark"] is not None:
            reservation.lesson_comment = data["remark"].strip() or None
        reservation.options = data["options"]

    reservation.version = (reservation.version or 0) + 1
    reservation.updated_at = max(now, reservation.updated_at)
    lesson.updated_at = now
    db.session.commit()
    return reservation
