# services/enrollments.py
from dataclasses import dataclass

from flask import current_app
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from ..errors import AlreadyEnrolled, CapacityExhausted, EventNotFound, SubgroupNotFound
from ..extensions import db
from ..models import Event, EventEnrollment, EventStatus
from .capacity import get_capacity_stats, listing_criteria, stats_for_pool
from .lifecycle import ensure_active, ensure_inscription_open, utcnow, withdrawal_open
from .notifications import ALTERNATE_CONFIRMED, INSCRIPTION_CONFIRMED, notify
from .unit_of_work import capacity_pool
from .waitlist import next_alternate_order

REGISTRATION_FIELDS = (
    "residence",
    "role",
    "first_time",
    "career",
    "career_year",
    "sender_name",
)


@dataclass(frozen=True)
class EnrollmentResult:
    enrollment_id: int
    event_id: int
    user_id: int
    subgroup_id: int | None
    is_alternate: bool
    alternate_order: int | None = None

    @property
    def message(self) -> str:
        if self.is_alternate:
            return (
                f"Inscripción realizada como SUPLENTE "
                f"(posición #{self.alternate_order} en lista de espera)"
            )
        return "Inscripción realizada con éxito"

    def to_dict(self) -> dict:
        return {
            "enrollment_id": self.enrollment_id,
            "event_id": self.event_id,
            "user_id": self.user_id,
            "subgroup_id": self.subgroup_id,
            "status": "alternate" if self.is_alternate else "titular",
            "alternate_order": self.alternate_order,
            "message": self.message,
        }


def _existing_enrollment(event_id: int, user_id: int):
    return db.session.execute(
        select(EventEnrollment.id).where(
            EventEnrollment.event_id == event_id,
            EventEnrollment.user_id == user_id,
        )
    ).first()


def enroll(event_id: int, user_id: int, subgroup_id: int | None = None,
           details: dict | None = None, *, now=None) -> EnrollmentResult:
    """Inscribe al usuario como titular o, si no hay cupos, como suplente.

    Todas las validaciones, la lectura de cupos y el insert ocurren dentro
    de la misma transacción del cupo (evento, subgrupo). El correo de
    confirmación se encola después del commit.
    """
    details = details or {}
    now = now or utcnow()

    with capacity_pool(event_id, subgroup_id) as uow:
        event = uow.event
        ensure_active(event)
        if _existing_enrollment(event_id, user_id) is not None:
            raise AlreadyEnrolled()
        if subgroup_id is None and event.subgroup_pools:
            raise SubgroupNotFound("Debes elegir un subgrupo para inscribirte en este evento")

        ensure_inscription_open(event, now)

        stats = stats_for_pool(uow.pool, subgroup_id)
        is_alternate = False
        order = None
        if stats.titular_available <= 0:
            # Pasada la fecha de baja ya no hay promociones posibles.
            if not withdrawal_open(event, now):
                raise CapacityExhausted(
                    "Ya no se aceptan inscripciones como suplente. La fecha límite de baja ha pasado."
                )
            if stats.alternate_available <= 0:
                raise CapacityExhausted()
            is_alternate = True
            order = next_alternate_order(event_id, subgroup_id)

        enrollment = EventEnrollment(
            event_id=event_id,
            user_id=user_id,
            subgroup_id=subgroup_id,
            enrolled_at=now,
            is_alternate=is_alternate,
            alternate_order=order,
            **{k: details.get(k) for k in REGISTRATION_FIELDS},
        )
        db.session.add(enrollment)
        try:
            db.session.flush()
        except IntegrityError as exc:
            # Otra inscripción del mismo usuario en un subgrupo distinto ganó la carrera.
            raise AlreadyEnrolled() from exc

        kind = ALTERNATE_CONFIRMED if is_alternate else INSCRIPTION_CONFIRMED
        uow.after_commit(notify, kind, user_id, event_id, order)

        result = EnrollmentResult(
            enrollment_id=enrollment.id,
            event_id=event_id,
            user_id=user_id,
            subgroup_id=subgroup_id,
            is_alternate=is_alternate,
            alternate_order=order,
        )

    current_app.logger.info(
        "Usuario %s inscrito en evento %s (subgrupo=%s) como %s",
        user_id,
        event_id,
        subgroup_id,
        f"suplente #{order}" if is_alternate else "titular",
    )
    return result


# --------- Consultas ---------
def get_enrollment(event_id: int, user_id: int) -> EventEnrollment | None:
    return db.session.execute(
        select(EventEnrollment).where(
            EventEnrollment.event_id == event_id,
            EventEnrollment.user_id == user_id,
        )
    ).scalar_one_or_none()


def list_titulars(event_id: int, subgroup_id: int | None = None) -> list[EventEnrollment]:
    event = db.session.get(Event, event_id)
    if event is None:
        raise EventNotFound()
    return list(
        db.session.execute(
            select(EventEnrollment)
            .where(
                *listing_criteria(event, subgroup_id),
                EventEnrollment.is_alternate.is_(False),
            )
            .order_by(
                EventEnrollment.subgroup_id.asc(),
                EventEnrollment.enrolled_at.asc(),
                EventEnrollment.id.asc(),
            )
        ).scalars()
    )


def list_user_events(user_id: int) -> list[tuple[Event, EventEnrollment]]:
    """Eventos vigentes en los que el usuario está inscrito."""
    rows = db.session.execute(
        select(Event, EventEnrollment)
        .join(EventEnrollment, EventEnrollment.event_id == Event.id)
        .where(EventEnrollment.user_id == user_id, Event.status == EventStatus.active)
        .order_by(Event.date.asc())
    ).all()
    return [(event, enrollment) for event, enrollment in rows]


def list_events_by_status(status: EventStatus):
    """Eventos en ``status`` con sus estadísticas de cupos.

    Los vigentes van del más próximo al más lejano; cancelados y
    transcurridos, del más reciente al más antiguo.
    """
    order = Event.date.asc() if status == EventStatus.active else Event.date.desc()
    events = db.session.execute(
        select(Event).where(Event.status == status).order_by(order, Event.id.asc())
    ).scalars().all()
    return [(event, get_capacity_stats(event.id)) for event in events]


def list_active_events():
    return list_events_by_status(EventStatus.active)


def list_available_events(user_id: int):
    """Eventos vigentes en los que el usuario aún no está inscrito."""
    enrolled = select(EventEnrollment.event_id).where(EventEnrollment.user_id == user_id)
    events = db.session.execute(
        select(Event)
        .where(Event.status == EventStatus.active, Event.id.not_in(enrolled))
        .order_by(Event.date.asc(), Event.id.asc())
    ).scalars().all()
    return [(event, get_capacity_stats(event.id)) for event in events]
