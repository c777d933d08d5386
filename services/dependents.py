from models import db
from models.user import Dependent
from services.errors import NotFoundError


def get_dependent(actor_id, dependent_id) -> Dependent:
    """Look up a dependent by its stable id, scoped to the owning account."""
    dep = db.session.get(Dependent, dependent_id)
    if dep is None or dep.user_id != actor_id:
        raise NotFoundError("Dependent not found")
    return dep


def owned_dependent_ids(actor_id, dependent_ids):
    ids = {d for d in dependent_ids if d is not None}
    if not ids:
        return set()
    rows = Dependent.query.filter(Dependent.id.in_(ids), Dependent.user_id == actor_id).all()
    return {r.id for r in rows}
