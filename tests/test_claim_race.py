"""
Claims racing through two separate database connections.

The in-memory test database shares one connection, so these tests run on a
SQLite file. A second session commits its write between the claim's slot
check and its status flip.
"""
from datetime import datetime

import pytest
from sqlalchemy import update
from sqlalchemy.orm import Session

from app import create_app
from models import db
from models.lesson import Lesson
from models.reservation import Reservation
from models.user import User
from models.venue import Room, Studio
from services import reservations, store
from services.errors import AlreadyClaimedError
from tests.conftest import DAY, TestingConfig, make_reservation


@pytest.fixture
def file_app(tmp_path):
    class FileConfig(TestingConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'claims.db'}"

    app = create_app(FileConfig)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


@pytest.fixture
def venue(file_app):
    room = Room(name="Harbour Music Centre")
    db.session.add(room)
    db.session.flush()
    studio = Studio(room_id=room.id, name="Studio 1")
    users = [User(name=n, role=r) for n, r in
             (("Mei", "STUDENT"), ("Kai", "STUDENT"), ("T1", "TEACHER"), ("T2", "TEACHER"))]
    db.session.add(studio)
    db.session.add_all(users)
    db.session.commit()
    return studio, [u.id for u in users]


def _confirm_elsewhere(reservation_id, teacher_id):
    with Session(db.engine) as other:
        result = other.execute(
            update(Reservation)
            .where(Reservation.id == reservation_id, Reservation.status == "requested")
            .values(status="confirmed", teacher_id=teacher_id,
                    version=Reservation.version + 1, updated_at=datetime.utcnow())
        )
        assert result.rowcount == 1
        other.commit()


def _interleave(monkeypatch, reservation_id, teacher_id):
    real_find_exclusive = store.find_exclusive

    def find_then_lose_race(*args):
        holder = real_find_exclusive(*args)
        _confirm_elsewhere(reservation_id, teacher_id)
        return holder

    monkeypatch.setattr(store, "find_exclusive", find_then_lose_race)


def test_same_reservation_claimed_on_another_connection(monkeypatch, venue):
    studio, (mei, _, t1, t2) = venue
    row = make_reservation(studio, requester_id=mei)
    row_id = row.id
    _interleave(monkeypatch, row_id, t2)

    with pytest.raises(AlreadyClaimedError):
        reservations.claim_lesson(row_id, t1)

    db.session.expire_all()
    again = db.session.get(Reservation, row_id)
    assert again.status == "confirmed"
    assert again.teacher_id == t2
    assert Lesson.query.count() == 0


def test_competing_reservation_claimed_on_another_connection(monkeypatch, venue):
    studio, (mei, kai, t1, t2) = venue
    mine = make_reservation(studio, requester_id=mei)
    theirs = make_reservation(studio, requester_id=kai)
    mine_id, theirs_id = mine.id, theirs.id
    _interleave(monkeypatch, theirs_id, t2)

    with pytest.raises(AlreadyClaimedError):
        reservations.claim_lesson(mine_id, t1)

    db.session.expire_all()
    assert db.session.get(Reservation, mine_id).status == "requested"
    monkeypatch.undo()
    holder = store.find_exclusive(studio.id, DAY, "am")
    assert holder.id == theirs_id
    assert Lesson.query.count() == 0
