import os

BASE_DIR = os.path.abspath(os.path.dirname(__file__))

class Config:
    # Secrets
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-only-change-me")

    # SQLite database file stored next to the app as studioslot.db
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///" + os.path.join(BASE_DIR, "studioslot.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Principal descriptor set by the upstream identity gateway
    PRINCIPAL_ID_HEADER = os.getenv("PRINCIPAL_ID_HEADER", "X-Principal-Id")
    PRINCIPAL_ROLE_HEADER = os.getenv("PRINCIPAL_ROLE_HEADER", "X-Principal-Role")

    # Timestamps are shown at a single fixed offset (UTC+8)
    DISPLAY_UTC_OFFSET_HOURS = int(os.getenv("DISPLAY_UTC_OFFSET_HOURS", "8"))

    # Reconciliation
    BATCH_MAX_ITEMS = int(os.getenv("BATCH_MAX_ITEMS", "200"))

    # Listing cap for admin/teacher views
    LIST_LIMIT = int(os.getenv("LIST_LIMIT", "200"))

    # Audit trail
    AUDIT_ENABLED = os.getenv("AUDIT_ENABLED", "true").lower() == "true"

    # Basic app settings
    DEBUG = False
