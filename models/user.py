from datetime import datetime
from models.db import db

class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(120), nullable=False)
    contact_number = db.Column(db.String(30), nullable=True, unique=True)
    role = db.Column(db.String(20), nullable=False, default="STUDENT")  # STUDENT, TEACHER, ADMIN

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    dependents = db.relationship(
        "Dependent",
        back_populates="user",
        order_by="Dependent.id",
        cascade="all, delete-orphan",
    )

class Dependent(db.Model):
    """A learner registered under a requester account (e.g. a child)."""
    __tablename__ = "dependents"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    name = db.Column(db.String(120), nullable=False)
    age = db.Column(db.Integer, nullable=True)
    grade = db.Column(db.String(40), nullable=True)  # written by assessment comments

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    user = db.relationship("User", back_populates="dependents")
