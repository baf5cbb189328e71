# settings.py
# Runtime configuration, read from GAME2048_* environment variables.

from typing import Mapping, Optional
import os

from pydantic import BaseModel, Field

from core import DEFAULT_BOARD_SIZE, MAX_BOARD_SIZE, MIN_BOARD_SIZE

ENV_PREFIX = "GAME2048_"


class Settings(BaseModel):
    """Configuration shared by the API server and the CLI driver."""
    default_size: int = Field(
        default=DEFAULT_BOARD_SIZE,
        ge=MIN_BOARD_SIZE,
        le=MAX_BOARD_SIZE,
        description="Board size used when a client does not ask for one.",
    )
    rate_limit: str = Field(
        default="100/minute",
        description="slowapi rate limit applied to every game endpoint.",
    )
    max_sessions: int = Field(
        default=1000,
        gt=0,
        description="Games kept in memory before the oldest is dropped.",
    )
    log_level: str = Field(default="INFO", description="Root logging level.")


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Builds Settings from the environment; unset variables keep their defaults.
    Raises:
        pydantic.ValidationError: If a variable holds an invalid value.
    """
    env = os.environ if environ is None else environ
    values = {}
    for name in Settings.model_fields:
        raw = env.get(ENV_PREFIX + name.upper())
        if raw is not None and raw != "":
            values[name] = raw
    return Settings(**values)
