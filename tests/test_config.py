import os
from unittest import mock

from automation_engine import config


def test_settings_defaults():
    # Mock environment to be empty
    with mock.patch.dict(os.environ, {}, clear=True):
        settings = config._read_settings()
        assert settings.TICK_INTERVAL_S == 30.0
        assert settings.METRIC_DEBOUNCE_S == 300.0
        assert settings.SCHEDULE_DEBOUNCE_S == 60.0
        assert settings.RETRY_BACKOFF_S == (2.0, 4.0)
        assert settings.CHANNEL_TIMEOUT_S == 15.0
        assert settings.SMTP_HOST == "smtp.gmail.com"
        assert settings.SMTP_PORT == 587


def test_settings_custom():
    env = {
        "TICK_INTERVAL_S": "10",
        "RETRY_BACKOFF_S": "1, 3,bad,5",
        "CHANNEL_TIMEOUT_S": "60",
        "SMTP_HOST": "mail.local",
        "AI_SMTP_HOST": "ai-mail.local",
        "SMTP_PORT": "2525",
        "SMTP_USER": "bot@local",
    }
    with mock.patch.dict(os.environ, env, clear=True):
        settings = config._read_settings()
        assert settings.TICK_INTERVAL_S == 10.0
        assert settings.RETRY_BACKOFF_S == (1.0, 3.0, 5.0)
        assert settings.CHANNEL_TIMEOUT_S == 15.0
        assert settings.SMTP_HOST == "ai-mail.local"
        assert settings.SMTP_PORT == 2525
        assert settings.SMTP_FROM == "bot@local"


def test_invalid_numbers_fall_back():
    env = {"TICK_INTERVAL_S": "soon", "SMTP_PORT": "x", "METRIC_DEBOUNCE_S": "-5"}
    with mock.patch.dict(os.environ, env, clear=True):
        settings = config._read_settings()
        assert settings.TICK_INTERVAL_S == 30.0
        assert settings.SMTP_PORT == 587
        assert settings.METRIC_DEBOUNCE_S == 0.0


def test_split_floats_skips_negatives():
    assert config._split_floats("2,-1,4", (9.0,)) == (2.0, 4.0)
    assert config._split_floats("", (9.0,)) == (9.0,)
