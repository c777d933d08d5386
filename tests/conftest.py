from datetime import date, datetime

import pytest

from app import create_app
from config import Config
from models import db
from models.reservation import Reservation
from models.user import Dependent, User
from models.venue import Room, Studio
from services.store import SlotKey

DAY = date(2025, 6, 1)


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    BATCH_MAX_ITEMS = 10


@pytest.fixture
def app():
    app = create_app(TestingConfig)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def studio(app):
    room = Room(name="Harbour Music Centre")
    db.session.add(room)
    db.session.flush()
    s = Studio(room_id=room.id, name="Studio 1")
    db.session.add(s)
    db.session.commit()
    return s


@pytest.fixture
def other_studio(studio):
    s = Studio(room_id=studio.room_id, name="Studio 2")
    db.session.add(s)
    db.session.commit()
    return s


def _user(name, role):
    u = User(name=name, role=role)
    db.session.add(u)
    db.session.commit()
    return u


@pytest.fixture
def student(app):
    return _user("Mei", "STUDENT")


@pytest.fixture
def other_student(app):
    return _user("Kai", "STUDENT")


@pytest.fixture
def teacher(app):
    return _user("T1", "TEACHER")


@pytest.fixture
def other_teacher(app):
    return _user("T2", "TEACHER")


@pytest.fixture
def admin(app):
    return _user("Front desk", "ADMIN")


@pytest.fixture
def dependent(student):
    d = Dependent(user_id=student.id, name="Little Mei", age=8)
    db.session.add(d)
    db.session.commit()
    return d


def slot_for(studio, section_key="am", day=DAY):
    return SlotKey(studio.id, studio.room_id, day, section_key)


def make_reservation(studio, section_key="am", status="requested", day=DAY, **kw):
    now = datetime.utcnow()
    kw.setdefault("section_label", section_key.upper())
    row = Reservation(
        studio_id=studio.id,
        room_id=studio.room_id,
        date=day,
        section_key=section_key,
        status=status,
        version=1,
        created_at=now,
        updated_at=now,
        **kw,
    )
    db.session.add(row)
    db.session.commit()
    return row


def headers_for(user):
    return {"X-Principal-Id": str(user.id), "X-Principal-Role": user.role}
