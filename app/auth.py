# app/auth.py
from datetime import datetime, timezone

from flask import Blueprint, jsonify, current_app
from flask_login import login_user, logout_user, login_required, current_user
from flask_wtf.csrf import generate_csrf

from .events import form_errors
from .extensions import db
from .forms import LoginForm
from .models import User

bp = Blueprint("auth", __name__)


def _finalize_login(user: User) -> None:
    login_user(user)
    user.last_login_at = datetime.now(timezone.utc)
    db.session.commit()


@bp.route("/csrf")
def csrf_token():
    return jsonify({"csrf_token": generate_csrf()})


@bp.route("/login", methods=["POST"])
def login():
    form = LoginForm()
    if not form.validate_on_submit():
        return form_errors(form)

    user = User.query.filter_by(email=form.email.data).first()
    if not user or not user.check_password(form.password.data):
        return jsonify({"error": "invalid_credentials", "message": "Credenciales inválidas"}), 401

    try:
        _finalize_login(user)
    except Exception as exc:
        current_app.logger.error(
            "Error completando inicio de sesión para %s: %s",
            user.email,
            exc,
            exc_info=True,
        )
        db.session.rollback()
        return jsonify({
            "error": "login_failed",
            "message": "Ocurrió un problema al iniciar sesión. Intenta nuevamente.",
        }), 500

    return jsonify({
        "id": user.id,
        "email": user.email,
        "name": user.full_name,
        "is_admin": user.is_admin,
    })


@bp.route("/logout", methods=["POST"])
@login_required
def logout():
    current_app.logger.info("Cierre de sesión de %s", current_user.email)
    logout_user()
    return jsonify({"message": "Sesión cerrada con éxito"})
