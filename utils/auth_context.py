from functools import wraps
from typing import NamedTuple
from flask import current_app, g, jsonify, request
from utils.roles import normalize_role


class Principal(NamedTuple):
    """Authenticated caller as described by the identity gateway."""
    id: int
    role: str


def get_principal_from_request():
    id_header = current_app.config.get("PRINCIPAL_ID_HEADER", "X-Principal-Id")
    role_header = current_app.config.get("PRINCIPAL_ROLE_HEADER", "X-Principal-Role")

    raw_id = request.headers.get(id_header)
    role = normalize_role(request.headers.get(role_header))
    if not raw_id or not role:
        return None
    try:
        return Principal(int(raw_id), role)
    except ValueError:
        return None

def load_current_user():
    g.user = get_principal_from_request()

def login_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if getattr(g, "user", None) is None:
            return jsonify(error="Authentication required"), 401
        return fn(*args, **kwargs)
    return wrapper
