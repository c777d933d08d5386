from datetime import timedelta

import pytest
from sqlalchemy import event

from models import db
from models.reservation import Reservation
from services import store
from services.errors import ConflictError, NotFoundError
from services.store import DeleteDirective, InsertDirective, UpdateDirective
from tests.conftest import DAY, make_reservation, slot_for


@pytest.fixture
def count_queries():
    statements = []

    def _before(conn, cursor, statement, parameters, context, executemany):
        statements.append(statement)

    engine = db.engine
    event.listen(engine, "before_cursor_execute", _before)
    yield statements
    event.remove(engine, "before_cursor_execute", _before)


def test_find_by_slot_keys_uses_one_query(studio, student, count_queries):
    make_reservation(studio, "am", requester_id=student.id)
    make_reservation(studio, "pm", requester_id=student.id)
    make_reservation(studio, "eve", requester_id=student.id)
    keys = [slot_for(studio, "am"), slot_for(studio, "pm"), slot_for(studio, "late")]
    count_queries.clear()

    rows = store.find_by_slot_keys(keys)

    assert sorted(r.section_key for r in rows) == ["am", "pm"]
    assert len(count_queries) == 1


def test_find_by_slot_keys_empty(app):
    assert store.find_by_slot_keys([]) == []


def test_require_reservation(app):
    with pytest.raises(NotFoundError):
        store.require_reservation(12345)


def test_range_queries(studio, other_studio, student, other_student):
    a = make_reservation(studio, "am", requester_id=student.id)
    b = make_reservation(other_studio, "am", status="pending", requester_id=other_student.id)
    c = make_reservation(studio, "pm", status="requestCanceled", requester_id=student.id)

    assert [r.id for r in store.list_by_studio(studio.id)] == [a.id, c.id]
    assert [r.id for r in store.list_by_room(studio.room_id)] == [a.id, b.id, c.id]
    assert [r.id for r in store.list_by_requester(student.id, status="requestCanceled")] == [c.id]
    assert [r.id for r in store.list_by_status("pending")] == [b.id]


def test_bulk_apply_mixed_directives(studio, student):
    keep = make_reservation(studio, "am", status="pending", requester_id=student.id)
    drop = make_reservation(studio, "pm", status="pending", requester_id=student.id)
    drop_id = drop.id

    inserted = store.bulk_apply([
        InsertDirective({
            "studio_id": studio.id, "room_id": studio.room_id, "date": DAY,
            "section_key": "eve", "section_label": "EVE", "status": "requested",
            "requester_id": student.id,
        }),
        UpdateDirective(keep.id, 1, {"status": "requested"}, slot_for(studio, "am")),
        DeleteDirective(drop.id, 1, slot_for(studio, "pm")),
    ])

    assert [r.section_key for r in inserted] == ["eve"]
    assert inserted[0].version == 1
    db.session.expire_all()
    updated = db.session.get(Reservation, keep.id)
    assert updated.status == "requested"
    assert updated.version == 2
    assert updated.updated_at >= updated.created_at
    assert drop not in db.session
    assert db.session.get(Reservation, drop_id) is None


def test_bulk_apply_exclusive_violation_is_all_or_nothing(studio, admin):
    make_reservation(studio, "am", status="blocked")
    other_day = DAY + timedelta(days=1)

    with pytest.raises(ConflictError):
        store.bulk_apply([
            InsertDirective({
                "studio_id": studio.id, "room_id": studio.room_id, "date": other_day,
                "section_key": "am", "section_label": "AM", "status": "blocked",
            }),
            InsertDirective({
                "studio_id": studio.id, "room_id": studio.room_id, "date": DAY,
                "section_key": "am", "section_label": "AM", "status": "blocked",
            }),
        ])

    assert store.find_exclusive(studio.id, other_day, "am") is None
    assert Reservation.query.count() == 1


def test_bulk_apply_missing_row(studio):
    with pytest.raises(ConflictError):
        store.bulk_apply([DeleteDirective(999, 1, slot_for(studio))])
