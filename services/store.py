"""
Reservation record store.

All reads and writes of reservation rows go through here. Single-row
transitions in services.reservations use compare-and-swap updates; many-row
changes go through bulk_apply, which lands every directive or none.
"""
from datetime import datetime
from typing import Iterable, List, NamedTuple, Optional

from flask import current_app
from sqlalchemy import and_, delete, func, inspect, or_, update
from sqlalchemy.exc import IntegrityError

from models import db
from models.lesson import Lesson
from models.reservation import Reservation, EXCLUSIVE_STATUSES
from services.errors import ConflictError, NotFoundError


class SlotKey(NamedTuple):
    studio_id: int
    room_id: int
    date: object  # datetime.date
    section_key: str

    @property
    def occupancy_key(self):
        # Exclusivity is per studio/date/section; room is implied by studio
        return (self.studio_id, self.date, self.section_key)


class InsertDirective(NamedTuple):
    values: dict


class UpdateDirective(NamedTuple):
    reservation_id: int
    expected_version: int
    values: dict
    slot: SlotKey


class DeleteDirective(NamedTuple):
    reservation_id: int
    expected_version: int
    slot: SlotKey


# ---------- point lookups ----------

def get_reservation(reservation_id) -> Optional[Reservation]:
    return db.session.get(Reservation, reservation_id)


def require_reservation(reservation_id) -> Reservation:
    row = get_reservation(reservation_id)
    if row is None:
        raise NotFoundError("Reservation not found")
    return row


def find_by_slot(studio_id, date, section_key) -> List[Reservation]:
    """All rows on a slot. At most one of them holds an exclusive status."""
    return (
        Reservation.query
        .filter_by(studio_id=studio_id, date=date, section_key=section_key)
        .order_by(Reservation.id.asc())
        .all()
    )


def find_exclusive(studio_id, date, section_key) -> Optional[Reservation]:
    return (
        Reservation.query
        .filter(
            Reservation.studio_id == studio_id,
            Reservation.date == date,
            Reservation.section_key == section_key,
            Reservation.status.in_(EXCLUSIVE_STATUSES),
        )
        .first()
    )


def find_by_slot_keys(keys: Iterable[SlotKey]) -> List[Reservation]:
    """Fetch every row matching any of the given slot keys in a single query."""
    keys = list(dict.fromkeys(keys))
    if not keys:
        return []
    clauses = [
        and_(
            Reservation.studio_id == k.studio_id,
            Reservation.room_id == k.room_id,
            Reservation.date == k.date,
            Reservation.section_key == k.section_key,
        )
        for k in keys
    ]
    return Reservation.query.filter(or_(*clauses)).order_by(Reservation.id.asc()).all()


# ---------- range queries ----------

def _ordered(q):
    limit = current_app.config.get("LIST_LIMIT", 200)
    return q.order_by(Reservation.date.asc(), Reservation.section_key.asc(), Reservation.id.asc()).limit(limit).all()


def list_by_studio(studio_id, status=None):
    q = Reservation.query.filter_by(studio_id=studio_id)
    if status:
        q = q.filter_by(status=status)
    return _ordered(q)


def list_by_room(room_id, status=None):
    q = Reservation.query.filter_by(room_id=room_id)
    if status:
        q = q.filter_by(status=status)
    return _ordered(q)


def list_by_requester(requester_id, status=None):
    q = Reservation.query.filter_by(requester_id=requester_id)
    if status:
        q = q.filter_by(status=status)
    return _ordered(q)


def list_by_status(status):
    return _ordered(Reservation.query.filter_by(status=status))


def distinct_sections(studio_id):
    """Every section key ever recorded for a studio, with its latest label."""
    latest = (
        db.session.query(
            Reservation.section_key,
            func.max(Reservation.id).label("last_id"),
        )
        .filter(Reservation.studio_id == studio_id)
        .group_by(Reservation.section_key)
        .subquery()
    )
    rows = (
        db.session.query(Reservation.section_key, Reservation.section_label)
        .join(latest, Reservation.id == latest.c.last_id)
        .all()
    )
    return {key: label for key, label in rows}


def occupied_sections(studio_id, date):
    rows = (
        db.session.query(Reservation.section_key)
        .filter(
            Reservation.studio_id == studio_id,
            Reservation.date == date,
            Reservation.status.in_(EXCLUSIVE_STATUSES),
        )
        .all()
    )
    return {r.section_key for r in rows}


# ---------- writes ----------

def _forget_deleted(reservation_ids):
    # Core deletes bypass the identity map; drop the stale objects
    for obj in list(db.session.identity_map.values()):
        if isinstance(obj, Reservation) and inspect(obj).identity[0] in reservation_ids:
            db.session.expunge(obj)


def _assert_exclusive(occupancy_keys):
    for studio_id, date, section_key in occupancy_keys:
        count = (
            Reservation.query
            .filter(
                Reservation.studio_id == studio_id,
                Reservation.date == date,
                Reservation.section_key == section_key,
                Reservation.status.in_(EXCLUSIVE_STATUSES),
            )
            .count()
        )
        if count > 1:
            raise ConflictError(
                f"Slot {studio_id}/{date.isoformat()}/{section_key} would hold more than one booking"
            )


def bulk_apply(directives) -> List[Reservation]:
    """
    Apply insert/update/delete directives in order as one transaction.

    Update and delete directives only land if the row still has the version
    the diff was computed against. Any stale row or exclusivity violation
    rolls the whole set back and raises ConflictError. Returns inserted rows.
    """
    now = datetime.utcnow()
    inserted = []
    touched = set()
    deleted = set()

    try:
        for d in directives:
            if isinstance(d, InsertDirective):
                row = Reservation(**d.values)
                row.created_at = now
                row.updated_at = now
                row.version = 1
                db.session.add(row)
                db.session.flush()
                inserted.append(row)
                if row.status in EXCLUSIVE_STATUSES:
                    touched.add((row.studio_id, row.date, row.section_key))

            elif isinstance(d, UpdateDirective):
                values = dict(d.values)
                values["version"] = Reservation.version + 1
                values["updated_at"] = now
                result = db.session.execute(
                    update(Reservation)
                    .where(
                        Reservation.id == d.reservation_id,
                        Reservation.version == d.expected_version,
                    )
                    .values(**values)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    raise ConflictError(f"Reservation {d.reservation_id} changed since it was read")
                if d.values.get("status") in EXCLUSIVE_STATUSES:
                    touched.add(d.slot.occupancy_key)

            elif isinstance(d, DeleteDirective):
                # Cancelled lessons outlive the reservation as history
                db.session.execute(
                    update(Lesson)
                    .where(Lesson.reservation_id == d.reservation_id)
                    .values(reservation_id=None)
                    .execution_options(synchronize_session=False)
                )
                result = db.session.execute(
                    delete(Reservation)
                    .where(
                        Reservation.id == d.reservation_id,
                        Reservation.version == d.expected_version,
                    )
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    raise ConflictError(f"Reservation {d.reservation_id} changed since it was read")
                deleted.add(d.reservation_id)

            else:
                raise TypeError(f"Unknown directive {d!r}")

        _assert_exclusive(touched)
        db.session.commit()
        _forget_deleted(deleted)
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Change set would double-book a slot")
    except Exception:
        db.session.rollback()
        raise

    return inserted
