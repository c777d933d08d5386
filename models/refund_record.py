from datetime import datetime
from models.db import db

class RefundRecord(db.Model):
    """
    Copy of a cancelled reservation, written when an operator approves the payout.
    Only the admin_remark column changes after creation.
    """
    __tablename__ = "refund_records"

    id = db.Column(db.Integer, primary_key=True)
    source_reservation_id = db.Column(db.Integer, nullable=False, index=True)  # row is gone, no FK

    studio_id = db.Column(db.Integer, db.ForeignKey("studios.id"), nullable=False, index=True)
    room_id = db.Column(db.Integer, db.ForeignKey("rooms.id"), nullable=False)
    date = db.Column(db.Date, nullable=False)
    section_key = db.Column(db.String(40), nullable=False)
    section_label = db.Column(db.String(120), nullable=False)

    requester_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    teacher_id = db.Column(db.Integer, nullable=True)
    dependent_id = db.Column(db.Integer, nullable=True)

    status = db.Column(db.String(20), nullable=False, default="refund")

    reason = db.Column(db.String(255), nullable=True)
    cancel_reason = db.Column(db.String(255), nullable=True)
    remark = db.Column(db.Text, nullable=True)
    lesson_comment = db.Column(db.Text, nullable=True)
    options = db.Column(db.JSON, nullable=True)

    # Copied from the reservation
    created_at = db.Column(db.DateTime, nullable=False)
    updated_at = db.Column(db.DateTime, nullable=False)

    approved_by = db.Column(db.Integer, nullable=False)
    approved_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    admin_remark = db.Column(db.Text, nullable=True)
