import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from app import create_app
from app.errors import (
    EventNotActive,
    EventNotFound,
    InvalidCapacityEdit,
    InvalidEventData,
    SubgroupNotFound,
)
from app.extensions import db, mail
from app.models import Event, EventCategory, EventEnrollment, EventStatus, Subgroup, User
from app.services import enrollments as enrollment_service
from app.services import events as event_service
from app.services.capacity import get_capacity_stats
from app.services.lifecycle import can_transition


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
        "name": "Jornada",
        "date": NOW + timedelta(days=30),
        "capacity": 2,
        "alternate_capacity": 2,
    }
    data.update(kwargs)
    event = event_service.create_event(**data)
    db.session.commit()
    return event.id


# --- Creación ---
def test_create_event_starts_active(app):
    with app.app_context():
        event_id = _create_event(description="Jornada de servicio", place="Sede central")
        event = db.session.get(Event, event_id)
        assert event.status == EventStatus.active
        assert event.category == EventCategory.normal
        assert event.cost is None


def test_create_event_rejects_negative_capacity(app):
    with app.app_context():
        with pytest.raises(InvalidEventData):
            _create_event(capacity=-1)


def test_create_event_rejects_deadline_after_date(app):
    with app.app_context():
        with pytest.raises(InvalidEventData):
            _create_event(inscription_deadline=NOW + timedelta(days=31))
        with pytest.raises(InvalidEventData):
            _create_event(withdrawal_deadline=NOW + timedelta(days=31))


def test_paid_event_requires_cost(app):
    with app.app_context():
        with pytest.raises(InvalidEventData):
            _create_event(category=EventCategory.paid)

        event_id = _create_event(category=EventCategory.paid, cost=15000,
                                 destination_account="Cuenta 123")
        assert db.session.get(Event, event_id).cost == 15000


def test_subgroup_pools_set_aggregate_capacity(app):
    with app.app_context():
        jovenes = Subgroup(name="Jóvenes")
        adultos = Subgroup(name="Adultos")
        db.session.add_all([jovenes, adultos])
        db.session.commit()

        event_id = _create_event(
            capacity=0,
            alternate_capacity=0,
            subgroup_pools=[(jovenes.id, 3, 1), (adultos.id, 2, 2)],
        )

        event = db.session.get(Event, event_id)
        assert event.capacity == 5
        assert event.alternate_capacity == 3
        assert len(event.subgroup_pools) == 2


def test_subgroup_pool_requires_existing_subgroup(app):
    with app.app_context():
        with pytest.raises(SubgroupNotFound):
            _create_event(subgroup_pools=[(99, 1, 1)])


# --- Edición ---
def test_update_event_edits_fields_and_promotes(app):
    with app.app_context():
        event_id = _create_event(capacity=1, alternate_capacity=2)
        a, b, c = (_create_user(f"{n}@example.com") for n in ("a", "b", "c"))
        for user_id in (a, b, c):
            enrollment_service.enroll(event_id, user_id, now=NOW)

        event, promoted = event_service.update_event(
            event_id, {"capacity": 2, "place": "Parroquia"}, now=NOW
        )

        assert promoted == [b]
        assert event.place == "Parroquia"
        assert enrollment_service.get_enrollment(event_id, c).alternate_order == 1


def test_update_event_rejects_alternate_capacity_below_occupancy(app):
    with app.app_context():
        event_id = _create_event(capacity=1, alternate_capacity=2)
        for name in ("a", "b", "c"):
            enrollment_service.enroll(event_id, _create_user(f"{name}@example.com"), now=NOW)

        with pytest.raises(InvalidCapacityEdit):
            event_service.update_event(event_id, {"alternate_capacity": 1})

        assert get_capacity_stats(event_id).alternate_capacity == 2


def test_update_event_rejects_unknown_fields(app):
    with app.app_context():
        event_id = _create_event()
        with pytest.raises(InvalidEventData):
            event_service.update_event(event_id, {"status": "cancelado"})


def test_update_event_clears_optional_fields(app):
    with app.app_context():
        event_id = _create_event(
            description="Traer colación",
            inscription_deadline=NOW + timedelta(days=5),
            withdrawal_deadline=NOW + timedelta(days=20),
        )

        event, _ = event_service.update_event(
            event_id, {"description": None, "withdrawal_deadline": None, "name": None}
        )

        assert event.description is None
        assert event.withdrawal_deadline is None
        assert event.inscription_deadline is not None
        assert event.name == "Jornada"


def test_update_event_rejects_deadline_after_new_date(app):
    with app.app_context():
        event_id = _create_event(withdrawal_deadline=NOW + timedelta(days=20))
        with pytest.raises(InvalidEventData):
            event_service.update_event(event_id, {"date": NOW + timedelta(days=10)})
        assert db.session.get(Event, event_id).date.replace(tzinfo=None) == (
            NOW + timedelta(days=30)
        ).replace(tzinfo=None)


def test_capacity_edit_only_while_active(app):
    with app.app_context():
        event_id = _create_event()
        event_service.cancel_event(event_id)
        with pytest.raises(EventNotActive):
            event_service.update_event(event_id, {"capacity": 5})


def test_update_subgroup_pool_promotes_within_pool(app):
    with app.app_context():
        jovenes = Subgroup(name="Jóvenes")
        db.session.add(jovenes)
        db.session.commit()
        subgroup_id = jovenes.id
        event_id = _create_event(subgroup_pools=[(subgroup_id, 1, 2)])
        a, b = (_create_user(f"{n}@example.com") for n in ("a", "b"))
        enrollment_service.enroll(event_id, a, subgroup_id, now=NOW)
        enrollment_service.enroll(event_id, b, subgroup_id, now=NOW)

        pool, promoted = event_service.update_subgroup_pool(event_id, subgroup_id, capacity=2, now=NOW)

        assert promoted == [b]
        assert pool.capacity == 2
        assert get_capacity_stats(event_id, subgroup_id).alternate_occupied == 0


# --- Estados ---
def test_transitions_out_of_terminal_states_are_forbidden():
    assert can_transition(EventStatus.active, EventStatus.canceled)
    assert can_transition(EventStatus.active, EventStatus.elapsed)
    assert not can_transition(EventStatus.canceled, EventStatus.active)
    assert not can_transition(EventStatus.elapsed, EventStatus.canceled)


def test_cancel_event_notifies_every_enrollee_and_keeps_rows(app):
    with app.app_context():
        event_id = _create_event(capacity=1, alternate_capacity=1)
        a = _create_user("ana@example.com")
        b = _create_user("beto@example.com")
        enrollment_service.enroll(event_id, a, now=NOW)
        enrollment_service.enroll(event_id, b, now=NOW)

        with mail.record_messages() as outbox:
            event = event_service.cancel_event(event_id)

        assert event.status == EventStatus.canceled
        assert sorted(m.recipients[0] for m in outbox) == ["ana@example.com", "beto@example.com"]
        assert all("cancelado" in m.subject for m in outbox)
        assert EventEnrollment.query.filter_by(event_id=event_id).count() == 2


def test_cancel_twice_is_rejected(app):
    with app.app_context():
        event_id = _create_event()
        event_service.cancel_event(event_id)
        with pytest.raises(EventNotActive):
            event_service.cancel_event(event_id)


def test_mark_elapsed_events_only_touches_past_active_events(app):
    with app.app_context():
        past_id = _create_event(name="Pasado", date=NOW - timedelta(days=1))
        future_id = _create_event(name="Futuro")
        cancelled_id = _create_event(name="Cancelado", date=NOW - timedelta(days=2))
        event_service.cancel_event(cancelled_id)

        elapsed = event_service.mark_elapsed_events(NOW)

        assert elapsed == [past_id]
        assert db.session.get(Event, past_id).status == EventStatus.elapsed
        assert db.session.get(Event, future_id).status == EventStatus.active
        assert db.session.get(Event, cancelled_id).status == EventStatus.canceled


def test_elapsed_cli_command(app):
    with app.app_context():
        _create_event(name="Pasado", date=datetime.now(timezone.utc) - timedelta(days=1))

    result = app.test_cli_runner().invoke(args=["eventos", "transcurrir"])

    assert result.exit_code == 0
    assert "1 evento(s)" in result.output


def test_delete_event_only_without_enrollments(app):
    with app.app_context():
        event_id = _create_event()
        user_id = _create_user("ana@example.com")
        enrollment_service.enroll(event_id, user_id, now=NOW)

        with pytest.raises(InvalidEventData):
            event_service.delete_event(event_id)

        empty_id = _create_event(name="Vacío")
        event_service.delete_event(empty_id)
        assert db.session.get(Event, empty_id) is None

        with pytest.raises(EventNotFound):
            event_service.delete_event(empty_id)


def test_create_admin_cli_command(app):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["crear-admin", "root@example.com", "--password", "clave-segura"])
    again = runner.invoke(args=["crear-admin", "root@example.com", "--password", "otra"])

    assert result.exit_code == 0
    assert "creado" in result.output
    assert "ya existe" in again.output
    with app.app_context():
        admin = User.query.filter_by(email="root@example.com").one()
        assert admin.is_admin is True
        assert admin.check_password("clave-segura")
