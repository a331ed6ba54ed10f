import logging

import pytest

from scrum_progress import config
from scrum_progress.config import DevelopmentConfig, ProductionConfig, Settings, get_settings
from scrum_progress.utils.logging import get_logger, setup_logging


def test_defaults_need_no_environment(monkeypatch):
    monkeypatch.delenv("API_BASE_URL", raising=False)
    settings = Settings(_env_file=None)

    assert settings.api_base_url == "http://localhost:8080/api"
    assert settings.read_retry_attempts == 0
    assert settings.velocity_decimals == 1
    assert settings.completion_decimals == 0
    assert settings.trend_granularity == "sprint"
    assert settings.strict_assignee_columns is False


@pytest.mark.parametrize(
    "environment, expected",
    [
        ("production", ProductionConfig),
        ("testing", config.TestingConfig),
        ("development", DevelopmentConfig),
        ("anything-else", DevelopmentConfig),
    ],
)
def test_get_settings_by_environment(monkeypatch, environment, expected):
    monkeypatch.setenv("ENVIRONMENT", environment)
    assert type(get_settings()) is expected


def test_environment_variables_override(monkeypatch):
    monkeypatch.setenv("READ_RETRY_ATTEMPTS", "2")
    monkeypatch.setenv("STRICT_ASSIGNEE_COLUMNS", "true")

    settings = Settings(_env_file=None)

    assert settings.read_retry_attempts == 2
    assert settings.strict_assignee_columns is True


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


def test_setup_logging_writes_to_file(tmp_path, restore_root_logger):
    log_file = tmp_path / "scrum.log"
    setup_logging("DEBUG", str(log_file))

    get_logger("scrum_progress.test").debug("hello board")
    for handler in logging.getLogger().handlers:
        handler.flush()

    assert "scrum_progress.test - DEBUG - hello board" in log_file.read_text()
