from .db import db
from .user import User, Dependent
from .audit_log import AuditLog
from .venue import Room, Studio
from .reservation import Reservation
from .refund_record import RefundRecord
from .lesson import Lesson
