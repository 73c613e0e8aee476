"""
Tareas de Celery para los correos del flujo de inscripciones.
Se consumen fuera de la transacción de inscripción.
"""

import logging
import smtplib

from celery import shared_task

logger = logging.getLogger(__name__)


@shared_task(bind=True, max_retries=3)
def send_event_email(self, kind, user_id, event_id, order=None):
    from .services.notifications import send_notification

    try:
        sent = send_notification(kind, user_id, event_id, order)
    except (smtplib.SMTPException, OSError) as exc:
        logger.warning(
            "Fallo enviando %s a usuario %s (evento %s): %s", kind, user_id, event_id, exc
        )
        raise self.retry(exc=exc, countdown=60 * (self.request.retries + 1))

    if sent:
        logger.info("Correo %s enviado a usuario %s (evento %s)", kind, user_id, event_id)
    return sent
