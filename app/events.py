# app/events.py
from flask import Blueprint, jsonify, request
from flask_login import login_required, current_user

from .errors import EventNotFound, InvalidEventData, NotEnrolled
from .extensions import db
from .forms import InscriptionForm
from .models import Event, EventCategory, EventStatus
from .services import enrollments as enrollment_service
from .services import waitlist as waitlist_service
from .services.capacity import get_capacity_stats

bp = Blueprint("events", __name__)


def _subgroup_arg():
    return request.args.get("subgrupo", type=int)


def form_errors(form):
    return jsonify({"error": "invalid_form", "message": "Datos inválidos", "errors": form.errors}), 400


def events_with_stats(rows):
    data = []
    for event, stats in rows:
        item = event.to_dict()
        item["stats"] = stats.to_dict()
        data.append(item)
    return data


@bp.route("/eventos")
def list_events():
    return jsonify(events_with_stats(enrollment_service.list_active_events()))


@bp.route("/eventos/transcurridos")
@login_required
def elapsed_events():
    return jsonify(events_with_stats(enrollment_service.list_events_by_status(EventStatus.elapsed)))


@bp.route("/eventos/cancelados")
@login_required
def cancelled_events():
    return jsonify(events_with_stats(enrollment_service.list_events_by_status(EventStatus.canceled)))


@bp.route("/eventos/disponibles")
@login_required
def available_events():
    return jsonify(events_with_stats(enrollment_service.list_available_events(current_user.id)))


@bp.route("/eventos/mis-eventos")
@login_required
def my_events():
    data = []
    for event, enrollment in enrollment_service.list_user_events(current_user.id):
        item = event.to_dict()
        item["enrollment"] = enrollment.to_dict()
        data.append(item)
    return jsonify(data)


@bp.route("/eventos/<int:event_id>")
def event_detail(event_id):
    event = db.session.get(Event, event_id)
    if event is None:
        raise EventNotFound()
    item = event.to_dict()
    item["stats"] = get_capacity_stats(event_id).to_dict()
    return jsonify(item)


@bp.route("/eventos/<int:event_id>/cupos")
@login_required
def capacity(event_id):
    return jsonify(get_capacity_stats(event_id, _subgroup_arg()).to_dict())


# --- Inscripción del usuario actual ---
@bp.route("/eventos/<int:event_id>/inscripcion", methods=["POST"])
@login_required
def enroll(event_id):
    form = InscriptionForm()
    if not form.validate_on_submit():
        return form_errors(form)

    event = db.session.get(Event, event_id)
    if event is not None and event.category == EventCategory.paid:
        raise InvalidEventData("Este evento requiere pago. Inicia la inscripción con Webpay.")

    result = enrollment_service.enroll(
        event_id,
        current_user.id,
        form.subgroup_id.data,
        form.registration_details(),
    )
    return jsonify(result.to_dict()), 201


@bp.route("/eventos/<int:event_id>/inscripcion", methods=["GET"])
@login_required
def my_enrollment(event_id):
    enrollment = enrollment_service.get_enrollment(event_id, current_user.id)
    if enrollment is None:
        raise NotEnrolled()
    return jsonify(enrollment.to_dict())


@bp.route("/eventos/<int:event_id>/inscripcion", methods=["DELETE"])
@login_required
def withdraw(event_id):
    result = waitlist_service.withdraw(event_id, current_user.id, _subgroup_arg())
    return jsonify(result.to_dict())
