# app/services/webpay.py
from datetime import datetime, timezone
from flask import current_app, url_for
from transbank.webpay.webpay_plus.transaction import Transaction
from transbank.common.options import WebpayOptions, IntegrationType
from transbank.common.integration_commerce_codes import IntegrationCommerceCodes
from transbank.common.integration_api_keys import IntegrationApiKeys


def _build_transaction() -> Transaction:
    """
    Construye la instancia de Transaction según el ambiente (integration o production).
    """
    env = (current_app.config.get("TBK_ENV") or "integration").lower()

    if env == "integration":
        opts = WebpayOptions(
            IntegrationCommerceCodes.WEBPAY_PLUS,
            IntegrationApiKeys.WEBPAY,
            IntegrationType.TEST
        )
    else:
        opts = WebpayOptions(
            current_app.config["TBK_COMMERCE_CODE"],
            current_app.config["TBK_API_KEY"],
            IntegrationType.PRODUCTION
        )

    return Transaction(opts)


def create_for_payment(payment):
    """
    Crea la transacción Webpay para el pago de un evento.
    Retorna (token, url) para redirigir al usuario a Webpay.
    """
    tx = _build_transaction()

    buy_order = f"EVT-{payment.event_id}-{payment.id}-{int(datetime.now(timezone.utc).timestamp())}"
    session_id = f"u{payment.user_id}-p{payment.id}"
    return_url = url_for("payments.webpay_return", _external=True)

    resp = tx.create(buy_order, session_id, payment.amount_clp, return_url)
    return resp["token"], resp["url"]


def commit_token(token: str):
    """
    Confirma la transacción en Webpay usando el token (token_ws).
    Devuelve el dict de respuesta de Transbank (status, amount, etc).
    """
    tx = _build_transaction()
    return tx.commit(token)
