# services/lifecycle.py
"""Estado del evento y plazos que habilitan inscripciones y bajas."""
from datetime import datetime, timezone

from ..errors import DeadlinePassed, EventNotActive
from ..models import Event, EventStatus

# vigente -> transcurrido | cancelado; los dos últimos son terminales.
TRANSITIONS = {
    EventStatus.active: {EventStatus.elapsed, EventStatus.canceled},
    EventStatus.elapsed: set(),
    EventStatus.canceled: set(),
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    # SQLite devuelve datetimes sin zona horaria.
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def can_transition(current: EventStatus, target: EventStatus) -> bool:
    return target in TRANSITIONS[current]


def ensure_active(event: Event):
    if event.status == EventStatus.canceled:
        raise EventNotActive("El evento fue cancelado")
    if event.status == EventStatus.elapsed:
        raise EventNotActive("El evento ya finalizó")


def inscription_open(event: Event, now: datetime | None = None) -> bool:
    deadline = as_utc(event.inscription_deadline)
    return deadline is None or as_utc(now or utcnow()) <= deadline


def withdrawal_open(event: Event, now: datetime | None = None) -> bool:
    deadline = as_utc(event.withdrawal_deadline)
    return deadline is None or as_utc(now or utcnow()) <= deadline


def ensure_inscription_open(event: Event, now: datetime | None = None):
    if not inscription_open(event, now):
        raise DeadlinePassed(DeadlinePassed.INSCRIPTION)


def ensure_withdrawal_open(event: Event, now: datetime | None = None, message: str | None = None):
    if not withdrawal_open(event, now):
        raise DeadlinePassed(DeadlinePassed.WITHDRAWAL, message)
