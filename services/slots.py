from models.venue import Studio
from services.errors import NotFoundError, ValidationError
from services.store import SlotKey
from utils.dates import parse_date

SLOT_FIELDS = ("studio_id", "room_id", "date", "section_key")


def _as_int(value, field):
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer")


def build_slot_key(studio_id, room_id, date, section_key) -> SlotKey:
    """Validate raw slot coordinates. Does not touch the database."""
    missing = [
        name for name, value in zip(SLOT_FIELDS, (studio_id, room_id, date, section_key))
        if value in (None, "")
    ]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    try:
        day = parse_date(date)
    except ValueError:
        raise ValidationError("Invalid date. Use YYYY-MM-DD")

    section_key = str(section_key).strip()
    if not section_key:
        raise ValidationError("section_key must not be blank")

    return SlotKey(_as_int(studio_id, "studio_id"), _as_int(room_id, "room_id"), day, section_key)


def check_studios(slots):
    """Every slot must name an existing studio under the given room."""
    studio_ids = {s.studio_id for s in slots}
    studios = {s.id: s for s in Studio.query.filter(Studio.id.in_(studio_ids)).all()}
    for slot in slots:
        studio = studios.get(slot.studio_id)
        if studio is None:
            raise NotFoundError(f"Studio {slot.studio_id} not found")
        if studio.room_id != slot.room_id:
            raise ValidationError(f"Studio {slot.studio_id} does not belong to room {slot.room_id}")
