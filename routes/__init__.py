from .health import health_bp
from .reservations import reservations_bp
from .teacher import teacher_bp
from .admin import admin_bp
