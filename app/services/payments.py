# services/payments.py
"""Pagos de eventos con costo: la inscripción se crea recién al confirmar el pago."""
import json

from flask import current_app

from ..errors import AlreadyEnrolled, EnrollmentError, EventNotFound, InvalidEventData
from ..extensions import db
from ..models import Event, EventCategory, EventPayment, PaymentStatus
from .enrollments import EnrollmentResult, enroll, get_enrollment
from .lifecycle import ensure_active, ensure_inscription_open


def start_payment(event_id: int, user_id: int, details: dict | None = None,
                  subgroup_id: int | None = None, *, now=None) -> EventPayment:
    """Crea un pago pendiente con los datos de inscripción. El llamador hace commit."""
    event = db.session.get(Event, event_id)
    if event is None:
        raise EventNotFound()
    ensure_active(event)
    if event.category != EventCategory.paid:
        raise InvalidEventData("El evento no requiere pago")
    if get_enrollment(event_id, user_id) is not None:
        raise AlreadyEnrolled()
    ensure_inscription_open(event, now)

    payload = dict(details or {})
    payload["subgroup_id"] = subgroup_id
    payment = EventPayment(
        event_id=event_id,
        user_id=user_id,
        amount_clp=event.cost,
        payment_status=PaymentStatus.pending,
        detail=json.dumps(payload),
    )
    db.session.add(payment)
    db.session.flush()
    return payment


def mark_payment_paid(payment: EventPayment):
    payment.payment_status = PaymentStatus.paid
    return payment


def mark_payment_failed(payment: EventPayment):
    payment.payment_status = PaymentStatus.failed
    return payment


def find_by_token(token: str, *, for_update: bool = False) -> EventPayment | None:
    query = EventPayment.query.filter_by(external_id=token)
    if for_update:
        query = query.with_for_update()
    return query.first()


def enroll_paid(payment: EventPayment, *, now=None) -> EnrollmentResult:
    """Inscribe al usuario de un pago ya confirmado.

    Si la inscripción falla (sin cupos, plazo vencido) el pago queda pagado
    y se guarda el código del rechazo para gestionar la devolución.
    """
    details = json.loads(payment.detail or "{}")
    subgroup_id = details.pop("subgroup_id", None)
    try:
        result = enroll(payment.event_id, payment.user_id, subgroup_id, details, now=now)
    except EnrollmentError as exc:
        payment.rejection_code = exc.code
        db.session.commit()
        current_app.logger.warning(
            "Pago %s confirmado pero la inscripción fue rechazada: %s", payment.id, exc.code
        )
        raise

    payment.enrollment_id = result.enrollment_id
    payment.detail = None
    db.session.commit()
    return result
