import os


def _env_bool(key: str, default: bool = False) -> bool:
    value = os.environ.get(key)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "t", "yes", "y"}


BASE_DIR = os.path.abspath(os.path.dirname(__file__))

_DEFAULT_PRODUCTION = os.environ.get("FLASK_ENV") == "production"

class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key")

    SQLALCHEMY_DATABASE_URI = (
        os.environ.get("SQLALCHEMY_DATABASE_URI")
        or os.environ.get("DATABASE_URL")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    MAIL_PROVIDER = os.environ.get("MAIL_PROVIDER")
    MAIL_SERVER = os.environ.get("MAIL_SERVER")
    MAIL_PORT = (
        int(os.environ.get("MAIL_PORT")) if os.environ.get("MAIL_PORT") else None
    )
    MAIL_USE_TLS = _env_bool("MAIL_USE_TLS", False)
    MAIL_USE_SSL = _env_bool("MAIL_USE_SSL", False)
    MAIL_USERNAME = os.environ.get("MAIL_USERNAME")
    MAIL_PASSWORD = os.environ.get("MAIL_PASSWORD")
    MAIL_DEFAULT_SENDER = os.environ.get("MAIL_DEFAULT_SENDER")

    # Webpay
    TBK_ENV = os.environ.get("TBK_ENV", "integration")
    TBK_COMMERCE_CODE = os.environ.get("TBK_COMMERCE_CODE")
    TBK_API_KEY = os.environ.get("TBK_API_KEY")

    # Cola de notificaciones
    CELERY = {
        "broker_url": os.environ.get("CELERY_BROKER_URL", "redis://localhost:6379/0"),
        "result_backend": os.environ.get("CELERY_RESULT_BACKEND"),
        "task_always_eager": _env_bool("CELERY_ALWAYS_EAGER", False),
        "task_ignore_result": True,
    }

    # Inscripciones
    ENROLLMENT_LOCK_TIMEOUT = int(os.environ.get("ENROLLMENT_LOCK_TIMEOUT", 10))
    FRONTEND_URL = os.environ.get("FRONTEND_URL", "http://localhost:5173")

    SESSION_COOKIE_SECURE = _env_bool(
        "SESSION_COOKIE_SECURE", _DEFAULT_PRODUCTION
    )
    SESSION_COOKIE_SAMESITE = os.environ.get(
        "SESSION_COOKIE_SAMESITE",
        "None" if SESSION_COOKIE_SECURE else "Lax",
    )


if Config.MAIL_PROVIDER == "google_workspace":
    Config.MAIL_SERVER = Config.MAIL_SERVER or "smtp.gmail.com"
    Config.MAIL_PORT = Config.MAIL_PORT or 465
    Config.MAIL_USE_TLS = _env_bool("MAIL_USE_TLS", False)
    Config.MAIL_USE_SSL = _env_bool("MAIL_USE_SSL", True)
