from datetime import datetime
from models.db import db

class AuditLog(db.Model):
    """Append-only trail of reservation and lesson transitions."""
    __tablename__ = "audit_logs"

    id = db.Column(db.Integer, primary_key=True)
    actor_id = db.Column(db.Integer, nullable=True, index=True)  # null for system/CLI events
    actor_role = db.Column(db.String(20), nullable=True)
    action = db.Column(db.String(80), nullable=False, index=True)  # e.g. LESSON_CLAIM, REFUND_APPROVE
    entity = db.Column(db.String(40), nullable=True)   # reservation, lesson, refund, batch
    entity_id = db.Column(db.String(80), nullable=True)

    ip = db.Column(db.String(64), nullable=True)
    user_agent = db.Column(db.String(255), nullable=True)
    metadata_json = db.Column(db.Text, nullable=True)

    timestamp = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
