# app/admin.py
from flask import Blueprint, jsonify, request
from flask_login import login_required, current_user
from werkzeug.datastructures import MultiDict

from .events import form_errors
from .extensions import db
from .forms import EventForm, EventUpdateForm, SubgroupPoolForm, SubgroupPoolUpdateForm
from .models import EventCategory
from .services import enrollments as enrollment_service
from .services import events as event_service
from .services import waitlist as waitlist_service
from .services.capacity import get_capacity_stats

bp = Blueprint("admin", __name__)


@bp.before_request
def ensure_admin_permissions():
    if not current_user.is_authenticated:
        return None
    if not current_user.is_admin:
        return jsonify({"error": "forbidden", "message": "No tienes permisos para acceder a esta sección."}), 403


def _subgroup_pools_from_request():
    """Lee ``subgrupos: [{subgroup_id, capacity, alternate_capacity}, ...]`` del JSON."""
    payload = request.get_json(silent=True) or {}
    pools, errors = [], {}
    for index, entry in enumerate(payload.get("subgrupos") or []):
        entry = entry if isinstance(entry, dict) else {}
        form = SubgroupPoolForm(MultiDict({k: str(v) for k, v in entry.items() if v is not None}))
        if not form.validate():
            errors[index] = form.errors
            continue
        pools.append((form.subgroup_id.data, form.capacity.data, form.alternate_capacity.data))
    return pools, errors


def _json_formdata():
    """JSON como formulario; un ``null`` explícito llega como campo vacío."""
    payload = request.get_json(silent=True) or {}
    return MultiDict({k: "" if v is None else str(v) for k, v in payload.items()})


# --- Eventos ---
@bp.route("/eventos", methods=["POST"])
@login_required
def create_event():
    form = EventForm()
    if not form.validate_on_submit():
        return form_errors(form)
    pools, pool_errors = _subgroup_pools_from_request()
    if pool_errors:
        return jsonify({"error": "invalid_form", "message": "Datos inválidos",
                        "errors": {"subgrupos": pool_errors}}), 400

    try:
        event = event_service.create_event(
            name=form.name.data,
            date=form.date.data,
            capacity=form.capacity.data,
            alternate_capacity=form.alternate_capacity.data,
            category=EventCategory(form.category.data),
            description=form.description.data or None,
            place=form.place.data or None,
            inscription_deadline=form.inscription_deadline.data,
            withdrawal_deadline=form.withdrawal_deadline.data,
            cost=form.cost.data,
            destination_account=form.destination_account.data or None,
            subgroup_pools=pools or None,
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return jsonify(event.to_dict()), 201


@bp.route("/eventos/<int:event_id>", methods=["PUT"])
@login_required
def update_event(event_id):
    form = EventUpdateForm(formdata=_json_formdata())
    if not form.validate_on_submit():
        return form_errors(form)
    event, promoted = event_service.update_event(event_id, form.changes())
    data = event.to_dict()
    data["promoted_user_ids"] = promoted
    return jsonify(data)


@bp.route("/eventos/<int:event_id>/cancelar", methods=["POST"])
@login_required
def cancel_event(event_id):
    event = event_service.cancel_event(event_id)
    return jsonify(event.to_dict())


@bp.route("/eventos/<int:event_id>", methods=["DELETE"])
@login_required
def delete_event(event_id):
    event_service.delete_event(event_id)
    return jsonify({"message": "Evento eliminado"})


@bp.route("/eventos/<int:event_id>/subgrupos/<int:subgroup_id>", methods=["PUT"])
@login_required
def update_subgroup_pool(event_id, subgroup_id):
    form = SubgroupPoolUpdateForm()
    if not form.validate_on_submit():
        return form_errors(form)
    _, promoted = event_service.update_subgroup_pool(
        event_id,
        subgroup_id,
        capacity=form.capacity.data,
        alternate_capacity=form.alternate_capacity.data,
    )
    data = get_capacity_stats(event_id, subgroup_id).to_dict()
    data["promoted_user_ids"] = promoted
    return jsonify(data)


# --- Inscripciones ---
@bp.route("/eventos/<int:event_id>/inscriptos/<int:user_id>", methods=["DELETE"])
@login_required
def withdraw_user(event_id, user_id):
    result = waitlist_service.withdraw(event_id, user_id, request.args.get("subgrupo", type=int))
    return jsonify(result.to_dict())


@bp.route("/eventos/<int:event_id>/suplentes/<int:user_id>", methods=["DELETE"])
@login_required
def remove_alternate(event_id, user_id):
    result = waitlist_service.remove_alternate(
        event_id, user_id, request.args.get("subgrupo", type=int)
    )
    return jsonify(result.to_dict())


# --- Listas de inscritos ---
@bp.route("/eventos/<int:event_id>/titulares")
@login_required
def titulars(event_id):
    enrollments = enrollment_service.list_titulars(event_id, request.args.get("subgrupo", type=int))
    return jsonify([e.to_dict() for e in enrollments])


@bp.route("/eventos/<int:event_id>/suplentes")
@login_required
def alternates(event_id):
    enrollments = waitlist_service.list_alternates(event_id, request.args.get("subgrupo", type=int))
    return jsonify([e.to_dict() for e in enrollments])
