# services/events.py
"""Ciclo de vida del evento y edición administrativa de cupos."""
from datetime import datetime

from flask import current_app
from sqlalchemy import func, select

from ..errors import EventNotActive, InvalidEventData, SubgroupNotFound
from ..extensions import db
from ..models import (
    Event,
    EventCategory,
    EventEnrollment,
    EventStatus,
    EventSubgroup,
    Subgroup,
)
from .lifecycle import as_utc, can_transition, ensure_active, utcnow
from .notifications import EVENT_CANCELLED, notify
from .unit_of_work import capacity_pool
from .waitlist import apply_capacity_change

EDITABLE_FIELDS = {
    "name",
    "date",
    "description",
    "place",
    "capacity",
    "alternate_capacity",
    "inscription_deadline",
    "withdrawal_deadline",
    "cost",
    "destination_account",
}

CLEARABLE_FIELDS = {
    "description",
    "place",
    "inscription_deadline",
    "withdrawal_deadline",
    "destination_account",
}


def _check_non_negative(value, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise InvalidEventData(f"El campo {field} debe ser un entero no negativo")
    return value


def _check_deadlines(date: datetime, inscription_deadline, withdrawal_deadline):
    date = as_utc(date)
    if inscription_deadline and as_utc(inscription_deadline) > date:
        raise InvalidEventData(
            "La fecha límite de inscripción no puede ser posterior a la fecha del evento"
        )
    if withdrawal_deadline and as_utc(withdrawal_deadline) > date:
        raise InvalidEventData(
            "La fecha límite de baja no puede ser posterior a la fecha del evento"
        )


def _check_cost(category: EventCategory, cost):
    if category == EventCategory.paid and (not cost or cost <= 0):
        raise InvalidEventData("Los eventos pagos deben tener un costo mayor a cero")


# --------- Creación ---------
def create_event(name: str, date: datetime, capacity: int = 0, alternate_capacity: int = 0,
                 category: EventCategory = EventCategory.normal,
                 description: str = None, place: str = None,
                 inscription_deadline: datetime = None,
                 withdrawal_deadline: datetime = None,
                 cost: int = None, destination_account: str = None,
                 subgroup_pools: list[tuple[int, int, int]] | None = None) -> Event:
    """Crea un evento vigente.

    ``subgroup_pools`` es una lista de ``(subgroup_id, cupos, cupos_suplente)``;
    si se indica, los cupos del evento pasan a ser la suma de los subgrupos.
    """
    if not name or not name.strip():
        raise InvalidEventData("El evento debe tener nombre")
    if date is None:
        raise InvalidEventData("El evento debe tener fecha")
    _check_non_negative(capacity, "cupos")
    _check_non_negative(alternate_capacity, "cupos_suplente")
    _check_deadlines(date, inscription_deadline, withdrawal_deadline)
    _check_cost(category, cost)

    event = Event(
        name=name.strip(),
        date=date,
        description=description,
        place=place,
        capacity=capacity,
        alternate_capacity=alternate_capacity,
        inscription_deadline=inscription_deadline,
        withdrawal_deadline=withdrawal_deadline,
        status=EventStatus.active,
        category=category,
        cost=cost if category == EventCategory.paid else None,
        destination_account=destination_account if category == EventCategory.paid else None,
    )
    db.session.add(event)

    if subgroup_pools:
        for subgroup_id, pool_capacity, pool_alternates in subgroup_pools:
            add_subgroup_pool(event, subgroup_id, pool_capacity, pool_alternates)
        event.capacity = sum(p.capacity for p in event.subgroup_pools)
        event.alternate_capacity = sum(p.alternate_capacity for p in event.subgroup_pools)

    db.session.flush()
    return event


def add_subgroup_pool(event: Event, subgroup_id: int, capacity: int, alternate_capacity: int) -> EventSubgroup:
    if db.session.get(Subgroup, subgroup_id) is None:
        raise SubgroupNotFound("El subgrupo no existe")
    _check_non_negative(capacity, "cupos")
    _check_non_negative(alternate_capacity, "cupos_suplente")
    pool = EventSubgroup(
        event=event,
        subgroup_id=subgroup_id,
        capacity=capacity,
        alternate_capacity=alternate_capacity,
    )
    db.session.add(pool)
    return pool


# --------- Edición ---------
def _new_value(event: Event, changes: dict, field: str):
    return changes[field] if field in changes else getattr(event, field)


def update_event(event_id: int, changes: dict, *, now=None) -> tuple[Event, list[int]]:
    """Edición parcial de un evento vigente.

    Retorna el evento y los ids de usuarios promovidos si subieron los cupos.
    """
    unknown = set(changes) - EDITABLE_FIELDS
    if unknown:
        raise InvalidEventData(f"Campos no editables: {', '.join(sorted(unknown))}")

    with capacity_pool(event_id) as uow:
        event = uow.event
        if event.status != EventStatus.active:
            raise EventNotActive("Solo se pueden editar eventos vigentes")

        date = changes.get("date") or event.date
        _check_deadlines(
            date,
            _new_value(event, changes, "inscription_deadline"),
            _new_value(event, changes, "withdrawal_deadline"),
        )
        if "cost" in changes and changes["cost"] is not None:
            _check_cost(event.category, changes["cost"])

        for field in ("name", "date", "description", "place", "inscription_deadline",
                      "withdrawal_deadline", "cost", "destination_account"):
            if field not in changes:
                continue
            if changes[field] is None and field not in CLEARABLE_FIELDS:
                continue
            setattr(event, field, changes[field])

        promoted = apply_capacity_change(
            uow,
            capacity=changes.get("capacity"),
            alternate_capacity=changes.get("alternate_capacity"),
            now=now,
        )
        promoted_ids = [e.user_id for e in promoted]

    current_app.logger.info(
        "Evento %s actualizado; suplentes promovidos: %s", event_id, promoted_ids
    )
    return event, promoted_ids


def update_subgroup_pool(event_id: int, subgroup_id: int, capacity: int = None,
                         alternate_capacity: int = None, *, now=None) -> tuple[EventSubgroup, list[int]]:
    with capacity_pool(event_id, subgroup_id) as uow:
        ensure_active(uow.event)
        promoted = apply_capacity_change(
            uow, capacity=capacity, alternate_capacity=alternate_capacity, now=now
        )
        pool = uow.pool
        promoted_ids = [e.user_id for e in promoted]

    current_app.logger.info(
        "Cupos del subgrupo %s en evento %s actualizados; suplentes promovidos: %s",
        subgroup_id,
        event_id,
        promoted_ids,
    )
    return pool, promoted_ids


# --------- Estados ---------
def cancel_event(event_id: int) -> Event:
    """Cancela el evento y avisa a todos los inscritos, titulares y suplentes.

    Las inscripciones no se borran.
    """
    with capacity_pool(event_id) as uow:
        event = uow.event
        if not can_transition(event.status, EventStatus.canceled):
            raise EventNotActive("Solo se pueden cancelar eventos vigentes")
        event.status = EventStatus.canceled

        user_ids = db.session.execute(
            select(EventEnrollment.user_id).where(EventEnrollment.event_id == event_id)
        ).scalars().all()
        for user_id in user_ids:
            uow.after_commit(notify, EVENT_CANCELLED, user_id, event_id)

    current_app.logger.info(
        "Evento %s cancelado; %s inscrito(s) notificado(s)", event_id, len(user_ids)
    )
    return event


def mark_elapsed_events(now: datetime = None) -> list[int]:
    """Pasa a transcurrido los eventos vigentes cuya fecha ya pasó."""
    now = as_utc(now or utcnow())
    candidates = db.session.execute(
        select(Event.id, Event.date).where(Event.status == EventStatus.active)
    ).all()

    elapsed = []
    for event_id, date in candidates:
        if as_utc(date) >= now:
            continue
        with capacity_pool(event_id) as uow:
            if can_transition(uow.event.status, EventStatus.elapsed):
                uow.event.status = EventStatus.elapsed
                elapsed.append(event_id)

    if elapsed:
        current_app.logger.info("Eventos marcados como transcurridos: %s", elapsed)
    return elapsed


def delete_event(event_id: int):
    with capacity_pool(event_id) as uow:
        enrolled = db.session.execute(
            select(func.count(EventEnrollment.id)).where(EventEnrollment.event_id == event_id)
        ).scalar_one()
        if enrolled > 0:
            raise InvalidEventData(
                "No se puede eliminar el evento porque tiene usuarios inscritos"
            )
        db.session.delete(uow.event)
    current_app.logger.info("Evento %s eliminado", event_id)
