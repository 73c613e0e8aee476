# services/waitlist.py
"""Lista de suplentes: promoción en orden y renumeración.

Invariante: dentro de un cupo (evento, subgrupo) los ``alternate_order``
de los suplentes forman 1..k sin huecos ni repetidos después de cada
commit. Todas las funciones que reciben ``uow`` deben llamarse dentro de
``capacity_pool`` para ese mismo cupo.
"""
from dataclasses import dataclass

from flask import current_app
from sqlalchemy import func, select, update

from ..errors import EventNotFound, InvalidCapacityEdit, InvalidEventData, NotEnrolled
from ..extensions import db
from ..models import Event, EventEnrollment, EventStatus
from .capacity import listing_criteria, pool_criteria, stats_for_pool
from .lifecycle import ensure_active, ensure_withdrawal_open, utcnow
from .notifications import ALTERNATE_PROMOTED, notify
from .unit_of_work import capacity_pool


@dataclass
class WithdrawalResult:
    event_id: int
    user_id: int
    subgroup_id: int | None
    was_alternate: bool
    promoted_user_id: int | None = None

    @property
    def message(self) -> str:
        if self.promoted_user_id is None:
            return "Baja realizada con éxito."
        return "Baja realizada con éxito. Se promovió al primer suplente a titular."

    def to_dict(self) -> dict:
        return {
            "event_id": self.event_id,
            "user_id": self.user_id,
            "subgroup_id": self.subgroup_id,
            "was_alternate": self.was_alternate,
            "promoted_user_id": self.promoted_user_id,
            "message": self.message,
        }


def _alternates_query(event_id: int, subgroup_id: int | None):
    return (
        select(EventEnrollment)
        .where(
            *pool_criteria(event_id, subgroup_id),
            EventEnrollment.is_alternate.is_(True),
        )
        .order_by(EventEnrollment.alternate_order.asc())
    )


def next_alternate_order(event_id: int, subgroup_id: int | None) -> int:
    return db.session.execute(
        select(func.coalesce(func.max(EventEnrollment.alternate_order), 0) + 1).where(
            *pool_criteria(event_id, subgroup_id),
            EventEnrollment.is_alternate.is_(True),
        )
    ).scalar_one()


def close_gap(event_id: int, subgroup_id: int | None, removed_order: int):
    """Corre un puesto hacia adelante a los suplentes detrás de ``removed_order``."""
    db.session.execute(
        update(EventEnrollment)
        .where(
            *pool_criteria(event_id, subgroup_id),
            EventEnrollment.is_alternate.is_(True),
            EventEnrollment.alternate_order > removed_order,
        )
        .values(alternate_order=EventEnrollment.alternate_order - 1)
        .execution_options(synchronize_session="fetch")
    )


def promote_head(uow, now=None) -> EventEnrollment | None:
    """Pasa a titular al suplente con menor orden, si existe."""
    head = db.session.execute(
        _alternates_query(uow.event_id, uow.subgroup_id).limit(1)
    ).scalar_one_or_none()
    if head is None:
        return None

    original_order = head.alternate_order
    head.is_alternate = False
    head.alternate_order = None
    head.promoted_at = now or utcnow()
    db.session.flush()
    close_gap(uow.event_id, uow.subgroup_id, original_order)

    uow.after_commit(notify, ALTERNATE_PROMOTED, head.user_id, head.event_id)
    return head


def fill_open_seats(uow, now=None) -> list[EventEnrollment]:
    """Promueve suplentes mientras haya cupos titulares libres."""
    stats = stats_for_pool(uow.pool, uow.subgroup_id)
    promoted = []
    for _ in range(max(stats.titular_available, 0)):
        head = promote_head(uow, now)
        if head is None:
            break
        promoted.append(head)
    return promoted


def _check_capacity_value(value, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise InvalidEventData(f"El campo {field} debe ser un entero no negativo")
    return value


def apply_capacity_change(uow, capacity=None, alternate_capacity=None, now=None) -> list[EventEnrollment]:
    """Cambia los cupos del cupo bloqueado y promueve si aumentaron los titulares."""
    pool = uow.pool
    stats = stats_for_pool(pool, uow.subgroup_id)

    if capacity is not None:
        capacity = _check_capacity_value(capacity, "cupos")
        if capacity < stats.titular_occupied:
            raise InvalidCapacityEdit(
                "El número de cupos no puede ser menor a la cantidad de inscritos titulares actuales"
            )
    if alternate_capacity is not None:
        alternate_capacity = _check_capacity_value(alternate_capacity, "cupos_suplente")
        if alternate_capacity < stats.alternate_occupied:
            raise InvalidCapacityEdit(
                "El número de cupos suplentes no puede ser menor a la cantidad de suplentes inscritos actuales"
            )

    previous_capacity = pool.capacity
    if capacity is not None:
        pool.capacity = capacity
    if alternate_capacity is not None:
        pool.alternate_capacity = alternate_capacity
    db.session.flush()

    if capacity is not None and capacity > previous_capacity:
        return fill_open_seats(uow, now)
    return []


def on_capacity_increase(event_id: int, new_capacity: int, subgroup_id: int | None = None, *, now=None):
    """Sube los cupos titulares y promueve a los primeros suplentes."""
    with capacity_pool(event_id, subgroup_id) as uow:
        ensure_active(uow.event)
        promoted = apply_capacity_change(uow, capacity=new_capacity, now=now)
        promoted_ids = [e.user_id for e in promoted]

    if promoted_ids:
        current_app.logger.info(
            "Evento %s: %s suplente(s) promovido(s) por aumento de cupos", event_id, len(promoted_ids)
        )
    return promoted_ids


def _find_enrollment(event_id: int, user_id: int, subgroup_id: int | None):
    return db.session.execute(
        select(EventEnrollment).where(
            *pool_criteria(event_id, subgroup_id),
            EventEnrollment.user_id == user_id,
        )
    ).scalar_one_or_none()


def _enrollment_scope(event_id: int, user_id: int) -> int | None:
    row = db.session.execute(
        select(EventEnrollment.subgroup_id).where(
            EventEnrollment.event_id == event_id,
            EventEnrollment.user_id == user_id,
        )
    ).first()
    if row is None:
        if db.session.get(Event, event_id) is None:
            raise EventNotFound()
        raise NotEnrolled()
    return row.subgroup_id


def withdraw(event_id: int, user_id: int, subgroup_id: int | None = None, *, now=None) -> WithdrawalResult:
    """Da de baja la inscripción y, si era titular de un evento vigente,
    promueve al primer suplente. El estado del evento no impide la baja."""
    if subgroup_id is None:
        subgroup_id = _enrollment_scope(event_id, user_id)

    with capacity_pool(event_id, subgroup_id) as uow:
        enrollment = _find_enrollment(event_id, user_id, subgroup_id)
        if enrollment is None:
            raise NotEnrolled()
        ensure_withdrawal_open(uow.event, now)

        result = WithdrawalResult(
            event_id=event_id,
            user_id=user_id,
            subgroup_id=subgroup_id,
            was_alternate=enrollment.is_alternate,
        )
        removed_order = enrollment.alternate_order
        db.session.delete(enrollment)
        db.session.flush()

        if result.was_alternate:
            close_gap(event_id, subgroup_id, removed_order)
        elif uow.event.status == EventStatus.active:
            # Un evento cancelado o transcurrido ya no promueve suplentes.
            promoted = promote_head(uow, now)
            if promoted is not None:
                result.promoted_user_id = promoted.user_id

    current_app.logger.info(
        "Baja de usuario %s en evento %s (subgrupo=%s); promovido=%s",
        user_id,
        event_id,
        subgroup_id,
        result.promoted_user_id,
    )
    return result


def remove_alternate(event_id: int, user_id: int, subgroup_id: int | None = None) -> WithdrawalResult:
    """Quita a un suplente de la lista (uso administrativo, sin plazo)."""
    if subgroup_id is None:
        subgroup_id = _enrollment_scope(event_id, user_id)

    with capacity_pool(event_id, subgroup_id) as uow:
        enrollment = _find_enrollment(event_id, user_id, subgroup_id)
        if enrollment is None or not enrollment.is_alternate:
            raise NotEnrolled("El suplente no existe para este evento")

        removed_order = enrollment.alternate_order
        db.session.delete(enrollment)
        db.session.flush()
        close_gap(uow.event_id, uow.subgroup_id, removed_order)

    current_app.logger.info(
        "Suplente %s eliminado del evento %s (subgrupo=%s)", user_id, event_id, subgroup_id
    )
    return WithdrawalResult(
        event_id=event_id, user_id=user_id, subgroup_id=subgroup_id, was_alternate=True
    )


def list_alternates(event_id: int, subgroup_id: int | None = None) -> list[EventEnrollment]:
    event = db.session.get(Event, event_id)
    if event is None:
        raise EventNotFound()
    return list(
        db.session.execute(
            select(EventEnrollment)
            .where(
                *listing_criteria(event, subgroup_id),
                EventEnrollment.is_alternate.is_(True),
            )
            .order_by(EventEnrollment.subgroup_id.asc(), EventEnrollment.alternate_order.asc())
        ).scalars()
    )
