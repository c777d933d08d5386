from datetime import datetime
from models.db import db

PENDING = "pending"
REQUESTED = "requested"
REQUEST_CANCELED = "requestCanceled"
CONFIRMED = "confirmed"
BLOCKED = "blocked"

STATUSES = (PENDING, REQUESTED, REQUEST_CANCELED, CONFIRMED, BLOCKED)

# Statuses that occupy a slot; at most one per (studio, date, section)
EXCLUSIVE_STATUSES = (CONFIRMED, BLOCKED)

# Draft states a requester may move between freely
DRAFT_STATUSES = (PENDING, REQUESTED)

_EXCLUSIVE_SQL = "status IN ('confirmed', 'blocked')"


class Reservation(db.Model):
    __tablename__ = "reservations"

    id = db.Column(db.Integer, primary_key=True)

    studio_id = db.Column(db.Integer, db.ForeignKey("studios.id"), nullable=False)
    room_id = db.Column(db.Integer, db.ForeignKey("rooms.id"), nullable=False, index=True)

    # Slot coordinates
    date = db.Column(db.Date, nullable=False)
    section_key = db.Column(db.String(40), nullable=False)
    section_label = db.Column(db.String(120), nullable=False)

    # Actors
    requester_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    teacher_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    dependent_id = db.Column(db.Integer, db.ForeignKey("dependents.id"), nullable=True)

    status = db.Column(db.String(20), nullable=False, default=PENDING, index=True)
    # status values: pending, requested, requestCanceled, confirmed, blocked

    # Annotations
    reason = db.Column(db.String(255), nullable=True)
    cancel_reason = db.Column(db.String(255), nullable=True)
    remark = db.Column(db.Text, nullable=True)
    lesson_comment = db.Column(db.Text, nullable=True)
    options = db.Column(db.JSON, nullable=True)

    # Bumped on every write; batch directives compare-and-swap on it
    version = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    lessons = db.relationship("Lesson", back_populates="reservation", order_by="Lesson.id")

    __table_args__ = (
        db.Index("ix_reservation_slot", "studio_id", "date", "section_key"),
        # Storage backstop for slot exclusivity
        db.Index(
            "uq_reservation_exclusive_slot",
            "studio_id", "date", "section_key",
            unique=True,
            sqlite_where=db.text(_EXCLUSIVE_SQL),
            postgresql_where=db.text(_EXCLUSIVE_SQL),
        ),
        # Ids of deleted reservations are never reused
        {"sqlite_autoincrement": True},
    )

    @property
    def slot_key(self):
        return (self.studio_id, self.room_id, self.date, self.section_key)

    @property
    def active_lesson(self):
        for lesson in self.lessons:
            if lesson.status != "canceled":
                return lesson
        return None
