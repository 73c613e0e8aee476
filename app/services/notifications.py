# services/notifications.py
import socket
from contextlib import contextmanager

from flask import current_app, render_template
from flask_mail import Message

from ..extensions import db, mail
from ..models import Event, User

INSCRIPTION_CONFIRMED = "inscription_confirmed"
ALTERNATE_CONFIRMED = "alternate_confirmed"
ALTERNATE_PROMOTED = "alternate_promoted"
EVENT_CANCELLED = "event_cancelled"

SUBJECTS = {
    INSCRIPTION_CONFIRMED: "Confirmación de inscripción - {name}",
    ALTERNATE_CONFIRMED: "Inscripción como suplente - {name}",
    ALTERNATE_PROMOTED: "¡Pasaste a titular! - {name}",
    EVENT_CANCELLED: "Evento cancelado: {name}",
}


@contextmanager
def _temporary_socket_timeout(timeout: int | None):
    if not timeout or timeout <= 0:
        yield
        return

    previous_timeout = socket.getdefaulttimeout()
    socket.setdefaulttimeout(timeout)
    try:
        yield
    finally:
        socket.setdefaulttimeout(previous_timeout)


def build_message(kind: str, user: User, event: Event, order: int | None = None) -> Message:
    if kind not in SUBJECTS:
        raise ValueError(f"Tipo de notificación desconocido: {kind}")
    context = {
        "user": user,
        "event": event,
        "order": order,
        "frontend_url": current_app.config.get("FRONTEND_URL"),
    }
    msg = Message(
        subject=SUBJECTS[kind].format(name=event.name),
        recipients=[user.email],
    )
    msg.body = render_template(f"emails/{kind}.txt", **context)
    msg.html = render_template(f"emails/{kind}.html", **context)
    return msg


def send_notification(kind: str, user_id: int, event_id: int, order: int | None = None) -> bool:
    """Envía el correo de inmediato. Lo usa la tarea de Celery."""
    user = db.session.get(User, user_id)
    event = db.session.get(Event, event_id)
    if user is None or event is None:
        current_app.logger.warning(
            "Notificación %s omitida: usuario=%s evento=%s no existen",
            kind,
            user_id,
            event_id,
        )
        return False

    msg = build_message(kind, user, event, order)
    timeout = current_app.config.get("MAIL_SEND_TIMEOUT")
    with _temporary_socket_timeout(timeout):
        mail.send(msg)
    return True


def notify(kind: str, user_id: int, event_id: int, order: int | None = None):
    """Encola el correo. Nunca propaga errores al flujo de inscripción."""
    from ..tasks import send_event_email

    try:
        send_event_email.delay(kind, user_id, event_id, order)
    except Exception as exc:
        current_app.logger.error(
            "No se pudo encolar la notificación %s para usuario=%s evento=%s: %s",
            kind,
            user_id,
            event_id,
            exc,
            exc_info=True,
        )
        return False
    return True
