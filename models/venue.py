from datetime import datetime
from models.db import db

class Room(db.Model):
    """A venue that groups studios."""
    __tablename__ = "rooms"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False, unique=True)
    district = db.Column(db.String(120), nullable=True)
    address = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    studios = db.relationship("Studio", back_populates="room", order_by="Studio.id")

class Studio(db.Model):
    __tablename__ = "studios"

    id = db.Column(db.Integer, primary_key=True)
    room_id = db.Column(db.Integer, db.ForeignKey("rooms.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    description = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    room = db.relationship("Room", back_populates="studios")

    __table_args__ = (
        db.UniqueConstraint("room_id", "name", name="uq_studio_name_per_room"),
    )
