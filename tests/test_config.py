import importlib
import pytest

@pytest.mark.usefixtures("reset_config_module")
def test_google_workspace_mail_defaults(monkeypatch):
    monkeypatch.setenv("MAIL_PROVIDER", "google_workspace")
    for key in ["MAIL_SERVER", "MAIL_PORT", "MAIL_USE_TLS", "MAIL_USE_SSL"]:
        monkeypatch.delenv(key, raising=False)

    config_module = importlib.import_module("config")
    importlib.reload(config_module)

    assert config_module.Config.MAIL_SERVER == "smtp.gmail.com"
    assert config_module.Config.MAIL_PORT == 465
    assert config_module.Config.MAIL_USE_TLS is False
    assert config_module.Config.MAIL_USE_SSL is True


@pytest.mark.usefixtures("reset_config_module")
def test_celery_and_lock_settings_from_env(monkeypatch):
    monkeypatch.setenv("CELERY_BROKER_URL", "redis://broker:6379/2")
    monkeypatch.setenv("CELERY_ALWAYS_EAGER", "yes")
    monkeypatch.setenv("ENROLLMENT_LOCK_TIMEOUT", "3")

    config_module = importlib.import_module("config")
    importlib.reload(config_module)

    assert config_module.Config.CELERY["broker_url"] == "redis://broker:6379/2"
    assert config_module.Config.CELERY["task_always_eager"] is True
    assert config_module.Config.ENROLLMENT_LOCK_TIMEOUT == 3


@pytest.mark.usefixtures("reset_config_module")
def test_defaults_without_env():
    config_module = importlib.import_module("config")
    importlib.reload(config_module)

    assert config_module.Config.CELERY["task_always_eager"] is False
    assert config_module.Config.ENROLLMENT_LOCK_TIMEOUT == 10
    assert config_module.Config.TBK_ENV == "integration"


@pytest.fixture
def reset_config_module(monkeypatch):
    for key in [
        "MAIL_PROVIDER",
        "MAIL_SERVER",
        "MAIL_PORT",
        "MAIL_USE_TLS",
        "MAIL_USE_SSL",
        "CELERY_BROKER_URL",
        "CELERY_ALWAYS_EAGER",
        "ENROLLMENT_LOCK_TIMEOUT",
        "TBK_ENV",
    ]:
        monkeypatch.delenv(key, raising=False)
    import sys

    sys.modules.pop("config", None)
    yield
    sys.modules.pop("config", None)
