import logging
import sys
from typing import Optional, TextIO

from pydantic import ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from makura.exceptions import ConfigurationError

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
ENV_PREFIX = "MAKURA_"

_handler: Optional[logging.Handler] = None


class Settings(BaseSettings):
    """
    Process-level settings, read from ``MAKURA_*`` environment variables.
    Empty variables fall back to the defaults.
    """

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX, case_sensitive=False, env_ignore_empty=True
    )

    mappings_path: str = "./mappings"
    keys_path: Optional[str] = None
    connect_timeout: float = 5.0
    read_timeout: float = 30.0
    log_level: str = "INFO"

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        return value.strip().upper()


def get_settings() -> Settings:
    """
    Reads the settings from the environment.

    Raises:
        ConfigurationError: If a variable holds a value of the wrong type.
    """
    try:
        return Settings()
    except ValidationError as e:
        names = ", ".join(
            ENV_PREFIX + "_".join(str(part) for part in error["loc"]).upper()
            for error in e.errors()
        )
        raise ConfigurationError(f"Invalid environment settings ({names}): {e}") from e


def setup_logging(level: str = "INFO", stream: Optional[TextIO] = None) -> None:
    """
    Sends makura's log records to ``stream`` (stdout by default). Calling it
    again replaces the handler installed by the previous call.
    Meant for applications; the library itself never installs handlers.
    """
    global _handler

    logger = logging.getLogger("makura")
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    if _handler is not None:
        logger.removeHandler(_handler)

    _handler = logging.StreamHandler(stream or sys.stdout)
    _handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(_handler)
