import io
import logging

import pytest

from makura import config
from makura.config import Settings, get_settings, setup_logging
from makura.exceptions import ConfigurationError

VARIABLES = (
    "MAKURA_MAPPINGS_PATH",
    "MAKURA_KEYS_PATH",
    "MAKURA_CONNECT_TIMEOUT",
    "MAKURA_READ_TIMEOUT",
    "MAKURA_LOG_LEVEL",
)


@pytest.fixture
def clean_env(monkeypatch):
    for name in VARIABLES:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


@pytest.fixture
def makura_logger():
    logger = logging.getLogger("makura")
    before = list(logger.handlers)
    yield logger
    for handler in logger.handlers[:]:
        if handler not in before:
            logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)
    config._handler = None


def test_settings_defaults(clean_env):
    settings = get_settings()
    assert settings.mappings_path == "./mappings"
    assert settings.keys_path is None
    assert settings.connect_timeout == 5.0
    assert settings.read_timeout == 30.0
    assert settings.log_level == "INFO"


def test_settings_from_environment(clean_env):
    clean_env.setenv("MAKURA_MAPPINGS_PATH", "/etc/makura/mappings")
    clean_env.setenv("MAKURA_KEYS_PATH", "/etc/makura/keys")
    clean_env.setenv("MAKURA_CONNECT_TIMEOUT", "1.5")
    clean_env.setenv("MAKURA_READ_TIMEOUT", "12")
    clean_env.setenv("makura_log_level", "debug")

    settings = get_settings()
    assert settings.mappings_path == "/etc/makura/mappings"
    assert settings.keys_path == "/etc/makura/keys"
    assert settings.connect_timeout == 1.5
    assert settings.read_timeout == 12.0
    assert settings.log_level == "DEBUG"


def test_empty_variables_fall_back_to_defaults(clean_env):
    clean_env.setenv("MAKURA_KEYS_PATH", "")
    clean_env.setenv("MAKURA_CONNECT_TIMEOUT", "")
    settings = get_settings()
    assert settings.keys_path is None
    assert settings.connect_timeout == 5.0


def test_settings_rejects_bad_timeout(clean_env):
    clean_env.setenv("MAKURA_READ_TIMEOUT", "soon")
    with pytest.raises(ConfigurationError, match="MAKURA_READ_TIMEOUT"):
        get_settings()


def test_explicit_values_win_over_environment(clean_env):
    clean_env.setenv("MAKURA_MAPPINGS_PATH", "/from/env")
    assert Settings(mappings_path="/explicit").mappings_path == "/explicit"


def test_setup_logging_installs_one_handler(makura_logger):
    before = list(makura_logger.handlers)
    stream = io.StringIO()
    setup_logging("debug", stream=stream)
    setup_logging("debug", stream=stream)
    added = [h for h in makura_logger.handlers if h not in before]
    assert len(added) == 1

    logging.getLogger("makura.engine").debug("hello from engine")
    assert "makura.engine - DEBUG - hello from engine" in stream.getvalue()


def test_setup_logging_again_switches_stream(makura_logger):
    first, second = io.StringIO(), io.StringIO()
    setup_logging("info", stream=first)
    setup_logging("warning", stream=second)

    logging.getLogger("makura.loader").warning("route missing")
    logging.getLogger("makura.loader").info("route loaded")
    assert first.getvalue() == ""
    assert "makura.loader - WARNING - route missing" in second.getvalue()
    assert "route loaded" not in second.getvalue()
