# app/payments.py
from flask import Blueprint, current_app, jsonify, request
from flask_login import login_required, current_user

from .errors import EnrollmentError
from .events import form_errors
from .extensions import csrf, db
from .forms import InscriptionForm
from .models import PaymentStatus
from .services import payments as payment_service
from .services import webpay as webpay_service

bp = Blueprint("payments", __name__)


@bp.route("/pago/eventos/<int:event_id>/webpay/iniciar", methods=["POST"])
@login_required
def start_webpay(event_id):
    form = InscriptionForm()
    if not form.validate_on_submit():
        return form_errors(form)

    try:
        payment = payment_service.start_payment(
            event_id,
            current_user.id,
            form.registration_details(),
            form.subgroup_id.data,
        )
        # Crear transacción en Webpay
        token, url = webpay_service.create_for_payment(payment)
        payment.external_id = token
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info(
        "Pago %s iniciado para usuario %s en evento %s", payment.id, current_user.id, event_id
    )
    return jsonify({"payment_id": payment.id, "token": token, "url": url}), 201


# Webpay vuelve con un POST de formulario sin token CSRF.
@bp.route("/pago/webpay/retorno", methods=["GET", "POST"])
@csrf.exempt
def webpay_return():
    token = request.form.get("token_ws") or request.args.get("token_ws")
    if not token:
        return jsonify({"error": "missing_token", "message": "Falta token de Webpay."}), 400

    payment = payment_service.find_by_token(token, for_update=True)
    if not payment:
        return jsonify({"error": "payment_not_found", "message": "Pago no encontrado."}), 404

    if payment.payment_status != PaymentStatus.pending:
        db.session.rollback()
        return jsonify({
            "payment_id": payment.id,
            "payment_status": payment.payment_status.name,
            "enrollment_id": payment.enrollment_id,
            "message": "El pago ya fue procesado.",
        })

    resp = webpay_service.commit_token(token)

    status = (resp.get("status") or "").upper()
    authorized = status == "AUTHORIZED" or resp.get("response_code") == 0

    if not authorized:
        payment_service.mark_payment_failed(payment)
        payment.detail = None
        db.session.commit()

        error_message = resp.get("status") or resp.get("response_code")
        if isinstance(error_message, int):
            error_message = f"Código de respuesta: {error_message}"
        elif error_message:
            error_message = error_message.upper()
        else:
            error_message = "El pago fue rechazado o cancelado."
        current_app.logger.info("Pago %s rechazado por Webpay: %s", payment.id, error_message)
        return jsonify({"error": "payment_rejected", "message": error_message}), 402

    payment_service.mark_payment_paid(payment)
    db.session.commit()

    try:
        result = payment_service.enroll_paid(payment)
    except EnrollmentError as exc:
        data = exc.to_dict()
        data["payment_id"] = payment.id
        data["payment_status"] = PaymentStatus.paid.name
        return jsonify(data), exc.status

    data = result.to_dict()
    data["payment_id"] = payment.id
    return jsonify(data), 201
