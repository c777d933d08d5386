STUDENT = "STUDENT"   # requester
TEACHER = "TEACHER"   # fulfiller
ADMIN = "ADMIN"       # operator

ALLOWED_ROLES = {STUDENT, TEACHER, ADMIN}

# Names used by the identity gateway for the same actors
ROLE_ALIASES = {
    "REQUESTER": STUDENT,
    "FULFILLER": TEACHER,
    "OPERATOR": ADMIN,
}


def normalize_role(name):
    if not isinstance(name, str):
        return None
    name = name.strip().upper()
    name = ROLE_ALIASES.get(name, name)
    return name if name in ALLOWED_ROLES else None
