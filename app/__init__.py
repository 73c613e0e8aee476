from pathlib import Path

from dotenv import load_dotenv
from flask import Flask, jsonify

from .extensions import db, migrate, csrf, login_manager, mail, celery_init_app
from .errors import EnrollmentError
from .models import User

BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(BASE_DIR / ".env", override=False)
load_dotenv(BASE_DIR / "instance" / ".env", override=False)

def create_app(config_class="config.Config"):
    app = Flask(__name__)
    app.config.from_object(config_class)

    # Inicializar extensiones
    db.init_app(app)
    migrate.init_app(app, db)
    csrf.init_app(app)
    login_manager.init_app(app)
    mail.init_app(app)
    celery_init_app(app)
    from . import tasks  # noqa: F401  registra las tareas de Celery

    # Cargar usuario
    @login_manager.user_loader
    def load_user(user_id):
        if not user_id:
            return None
        try:
            return db.session.get(User, int(user_id))
        except (TypeError, ValueError):
            return None

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({"error": "unauthorized", "message": "Debes iniciar sesión."}), 401

    @app.errorhandler(EnrollmentError)
    def handle_enrollment_error(exc):
        return jsonify(exc.to_dict()), exc.status

    # Registrar blueprints
    from . import auth, events, admin, payments
    app.register_blueprint(auth.bp, url_prefix="/auth")
    app.register_blueprint(events.bp)
    app.register_blueprint(admin.bp, url_prefix="/admin")
    app.register_blueprint(payments.bp)

    from .cli import register_cli
    register_cli(app)

    return app
