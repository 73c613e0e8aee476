import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from app import create_app
from app.errors import (
    CapacityExhausted,
    DeadlinePassed,
    EventNotFound,
    InvalidCapacityEdit,
    NotEnrolled,
)
from app.extensions import db
from app.models import Subgroup, User
from app.services import enrollments as enrollment_service
from app.services import events as event_service
from app.services import waitlist as waitlist_service
from app.services.capacity import get_capacity_stats


NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


class TestConfig:
    TESTING = True
    SECRET_KEY = "test-secret"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    WTF_CSRF_ENABLED = False
    MAIL_DEFAULT_SENDER = "test@example.com"
    MAIL_SUPPRESS_SEND = True
    SERVER_NAME = "localhost"
    CELERY = {"broker_url": "memory://", "task_always_eager": True, "task_ignore_result": True}


@pytest.fixture
def app():
    app = create_app(TestConfig)
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


def _create_user(email: str) -> int:
    user = User(email=email, name=email.split("@")[0].capitalize())
    user.set_password("secreto")
    db.session.add(user)
    db.session.commit()
    return user.id


def _create_event(**kwargs) -> int:
    data = {
        "name": "Campamento",
        "date": NOW + timedelta(days=30),
        "capacity": 1,
        "alternate_capacity": 5,
    }
    data.update(kwargs)
    event = event_service.create_event(**data)
    db.session.commit()
    return event.id


def _users(*names):
    return [_create_user(f"{name}@example.com") for name in names]


def _waitlist(event_id, subgroup_id=None):
    return [
        (e.user_id, e.alternate_order)
        for e in waitlist_service.list_alternates(event_id, subgroup_id)
    ]


def _assert_contiguous(event_id, subgroup_id=None):
    orders = [order for _, order in _waitlist(event_id, subgroup_id)]
    assert orders == list(range(1, len(orders) + 1))


def test_withdrawing_titular_promotes_first_alternate(app):
    with app.app_context():
        event_id = _create_event()
        titular, u1, u2, u3 = _users("titular", "u1", "u2", "u3")
        for user_id in (titular, u1, u2, u3):
            enrollment_service.enroll(event_id, user_id, now=NOW)

        result = waitlist_service.withdraw(event_id, titular, now=NOW)

        assert result.was_alternate is False
        assert result.promoted_user_id == u1
        assert "primer suplente" in result.message
        promoted = enrollment_service.get_enrollment(event_id, u1)
        assert promoted.is_alternate is False
        assert promoted.alternate_order is None
        assert promoted.promoted_at is not None
        assert _waitlist(event_id) == [(u2, 1), (u3, 2)]
        assert enrollment_service.get_enrollment(event_id, titular) is None


def test_withdrawing_alternate_closes_the_gap_without_promotion(app):
    with app.app_context():
        event_id = _create_event()
        titular, u1, u2, u3 = _users("titular", "u1", "u2", "u3")
        for user_id in (titular, u1, u2, u3):
            enrollment_service.enroll(event_id, user_id, now=NOW)

        result = waitlist_service.withdraw(event_id, u2, now=NOW)

        assert result.was_alternate is True
        assert result.promoted_user_id is None
        assert _waitlist(event_id) == [(u1, 1), (u3, 2)]
        assert get_capacity_stats(event_id).titular_occupied == 1


def test_withdrawing_titular_without_alternates_leaves_seat_open(app):
    with app.app_context():
        event_id = _create_event()
        (titular,) = _users("titular")
        enrollment_service.enroll(event_id, titular, now=NOW)

        result = waitlist_service.withdraw(event_id, titular, now=NOW)

        assert result.promoted_user_id is None
        assert get_capacity_stats(event_id).titular_available == 1


def test_withdraw_of_user_not_enrolled_is_rejected(app):
    with app.app_context():
        event_id = _create_event()
        (user_id,) = _users("ana")

        with pytest.raises(NotEnrolled):
            waitlist_service.withdraw(event_id, user_id, now=NOW)


def test_withdraw_from_unknown_event(app):
    with app.app_context():
        (user_id,) = _users("ana")
        with pytest.raises(EventNotFound):
            waitlist_service.withdraw(404, user_id, now=NOW)


def test_withdraw_after_deadline_leaves_enrollment_unchanged(app):
    with app.app_context():
        event_id = _create_event(withdrawal_deadline=NOW + timedelta(days=1))
        titular, alternate = _users("titular", "suplente")
        enrollment_service.enroll(event_id, titular, now=NOW)
        enrollment_service.enroll(event_id, alternate, now=NOW)

        with pytest.raises(DeadlinePassed) as excinfo:
            waitlist_service.withdraw(event_id, titular, now=NOW + timedelta(days=2))

        assert excinfo.value.deadline == DeadlinePassed.WITHDRAWAL
        assert enrollment_service.get_enrollment(event_id, titular).is_alternate is False
        assert _waitlist(event_id) == [(alternate, 1)]


def test_withdraw_from_cancelled_event_frees_row_without_promoting(app):
    with app.app_context():
        event_id = _create_event()
        titular, alternate = _users("ana", "beto")
        enrollment_service.enroll(event_id, titular, now=NOW)
        enrollment_service.enroll(event_id, alternate, now=NOW)
        event_service.cancel_event(event_id)

        result = waitlist_service.withdraw(event_id, titular, now=NOW)

        assert result.promoted_user_id is None
        assert enrollment_service.get_enrollment(event_id, titular) is None
        assert _waitlist(event_id) == [(alternate, 1)]


def test_full_booking_scenario(app):
    with app.app_context():
        event_id = _create_event(
            capacity=2,
            alternate_capacity=1,
            withdrawal_deadline=NOW + timedelta(days=10),
        )
        a, b, c, d, e = _users("a", "b", "c", "d", "e")

        assert not enrollment_service.enroll(event_id, a, now=NOW).is_alternate
        assert not enrollment_service.enroll(event_id, b, now=NOW).is_alternate
        c_result = enrollment_service.enroll(event_id, c, now=NOW)
        assert c_result.is_alternate and c_result.alternate_order == 1
        with pytest.raises(CapacityExhausted):
            enrollment_service.enroll(event_id, d, now=NOW)

        result = waitlist_service.withdraw(event_id, a, now=NOW)
        assert result.promoted_user_id == c
        assert enrollment_service.get_enrollment(event_id, b).is_alternate is False
        assert _waitlist(event_id) == []

        e_result = enrollment_service.enroll(event_id, e, now=NOW)
        assert e_result.is_alternate and e_result.alternate_order == 1


def test_capacity_increase_promotes_in_fifo_order(app):
    with app.app_context():
        event_id = _create_event(capacity=2, alternate_capacity=2)
        a, b, c, f = _users("a", "b", "c", "f")
        for user_id in (a, b, c, f):
            enrollment_service.enroll(event_id, user_id, now=NOW)
        assert _waitlist(event_id) == [(c, 1), (f, 2)]

        promoted = waitlist_service.on_capacity_increase(event_id, 3, now=NOW)

        assert promoted == [c]
        assert _waitlist(event_id) == [(f, 1)]
        assert get_capacity_stats(event_id).capacity == 3


def test_capacity_increase_beyond_waitlist_promotes_everyone(app):
    with app.app_context():
        event_id = _create_event(capacity=1, alternate_capacity=3)
        users = _users("a", "b", "c", "d")
        for user_id in users:
            enrollment_service.enroll(event_id, user_id, now=NOW)

        promoted = waitlist_service.on_capacity_increase(event_id, 10, now=NOW)

        assert promoted == users[1:]
        assert _waitlist(event_id) == []
        stats = get_capacity_stats(event_id)
        assert stats.titular_occupied == 4
        assert stats.titular_available == 6


def test_capacity_below_titular_occupancy_is_rejected(app):
    with app.app_context():
        event_id = _create_event(capacity=2)
        a, b = _users("a", "b")
        enrollment_service.enroll(event_id, a, now=NOW)
        enrollment_service.enroll(event_id, b, now=NOW)

        with pytest.raises(InvalidCapacityEdit):
            waitlist_service.on_capacity_increase(event_id, 1, now=NOW)

        assert get_capacity_stats(event_id).capacity == 2


def test_remove_alternate_renumbers_remaining(app):
    with app.app_context():
        event_id = _create_event()
        titular, u1, u2, u3 = _users("titular", "u1", "u2", "u3")
        for user_id in (titular, u1, u2, u3):
            enrollment_service.enroll(event_id, user_id, now=NOW)

        waitlist_service.remove_alternate(event_id, u1)

        assert _waitlist(event_id) == [(u2, 1), (u3, 2)]
        assert enrollment_service.get_enrollment(event_id, titular).is_alternate is False


def test_remove_alternate_rejects_titulars(app):
    with app.app_context():
        event_id = _create_event()
        (titular,) = _users("titular")
        enrollment_service.enroll(event_id, titular, now=NOW)

        with pytest.raises(NotEnrolled):
            waitlist_service.remove_alternate(event_id, titular)


def test_waitlist_stays_contiguous_after_mixed_operations(app):
    with app.app_context():
        event_id = _create_event(capacity=2, alternate_capacity=6)
        users = _users("a", "b", "c", "d", "e", "f", "g", "h")
        for user_id in users:
            enrollment_service.enroll(event_id, user_id, now=NOW)
        _assert_contiguous(event_id)

        waitlist_service.withdraw(event_id, users[4], now=NOW)
        _assert_contiguous(event_id)
        waitlist_service.withdraw(event_id, users[0], now=NOW)
        _assert_contiguous(event_id)
        waitlist_service.withdraw(event_id, users[7], now=NOW)
        _assert_contiguous(event_id)
        waitlist_service.remove_alternate(event_id, users[3])
        _assert_contiguous(event_id)
        waitlist_service.on_capacity_increase(event_id, 3, now=NOW)
        _assert_contiguous(event_id)

        stats = get_capacity_stats(event_id)
        assert stats.titular_occupied <= stats.capacity
        assert stats.alternate_occupied <= stats.alternate_capacity
        assert _waitlist(event_id) == [(users[6], 1)]


def test_subgroup_waitlists_are_numbered_independently(app):
    with app.app_context():
        jovenes = Subgroup(name="Jóvenes")
        adultos = Subgroup(name="Adultos")
        db.session.add_all([jovenes, adultos])
        db.session.commit()
        event_id = _create_event(subgroup_pools=[(jovenes.id, 1, 2), (adultos.id, 1, 2)])
        a, b, c, d = _users("a", "b", "c", "d")
        enrollment_service.enroll(event_id, a, jovenes.id, now=NOW)
        enrollment_service.enroll(event_id, b, jovenes.id, now=NOW)
        enrollment_service.enroll(event_id, c, adultos.id, now=NOW)
        enrollment_service.enroll(event_id, d, adultos.id, now=NOW)

        assert _waitlist(event_id, jovenes.id) == [(b, 1)]
        assert _waitlist(event_id, adultos.id) == [(d, 1)]

        result = waitlist_service.withdraw(event_id, a, now=NOW)

        assert result.subgroup_id == jovenes.id
        assert result.promoted_user_id == b
        assert _waitlist(event_id, adultos.id) == [(d, 1)]
