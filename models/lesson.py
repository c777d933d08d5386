from datetime import datetime
from models.db import db

OPEN = "open"
PENDING_FOR_COMMENT = "pendingForComment"
CLOSED = "closed"
CANCELED = "canceled"

LESSON_STATUSES = (OPEN, PENDING_FOR_COMMENT, CLOSED, CANCELED)

_ACTIVE_SQL = "status != 'canceled'"


class Lesson(db.Model):
    __tablename__ = "lessons"

    id = db.Column(db.Integer, primary_key=True)
    # Nulled when a refunded reservation is removed
    reservation_id = db.Column(
        db.Integer, db.ForeignKey("reservations.id", ondelete="SET NULL"), nullable=True, index=True
    )
    teacher_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    # Snapshot of the slot at claim time
    studio_id = db.Column(db.Integer, nullable=False)
    room_id = db.Column(db.Integer, nullable=False)
    dependent_id = db.Column(db.Integer, nullable=True)
    date = db.Column(db.Date, nullable=False)
    section_key = db.Column(db.String(40), nullable=False)
    section_label = db.Column(db.String(120), nullable=False)

    status = db.Column(db.String(20), nullable=False, default=OPEN)
    # status values: open, pendingForComment, closed, canceled

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    canceled_at = db.Column(db.DateTime, nullable=True)

    reservation = db.relationship("Reservation", back_populates="lessons")

    __table_args__ = (
        # One live lesson per reservation; cancelled ones are kept as history
        db.Index(
            "uq_lesson_active_reservation",
            "reservation_id",
            unique=True,
            sqlite_where=db.text(_ACTIVE_SQL),
            postgresql_where=db.text(_ACTIVE_SQL),
        ),
    )
