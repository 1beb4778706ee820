"""
Rolloff Settings Configuration

Centralized settings for the rolloff engine.
All settings are loaded from environment variables (a .env file at the
project root is honoured) and validated once at load time.
"""
import os
from functools import lru_cache
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

from rolloff.services.random_draw import parse_die

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
ENV_FILE = PROJECT_ROOT / ".env"


def get_bool_env(key: str, default: bool = False) -> bool:
    """Get a boolean value from environment variable."""
    value = os.getenv(key, str(default)).lower()
    return value in ('true', '1', 'yes', 'on', 'enabled')


def get_raw_env(key: str) -> Optional[str]:
    """Get a stripped environment value, None when unset or blank."""
    value = os.getenv(key)
    if value is None or value.strip() == "":
        return None
    return value.strip()


# Non-boolean settings: field name -> environment variable
ENV_FIELDS = {
    "rolloff_die": "ROLLOFF_DIE",
    "rolloff_timeout": "ROLLOFF_TIMEOUT",
    "update_settle_delay": "ROLLOFF_UPDATE_SETTLE_DELAY",
    "create_settle_delay": "ROLLOFF_CREATE_SETTLE_DELAY",
    "broadcast_timeout": "ROLLOFF_BROADCAST_TIMEOUT",
    "announcement_timeout": "ROLLOFF_ANNOUNCEMENT_TIMEOUT",
}


class RolloffSettings(BaseModel):
    """
    Settings consumed read-only by the rolloff engine.

    To add a new setting:
    1. Add it here as a field with a default
    2. Load it from an environment variable in load_settings()
    3. Use it in your code
    """

    # Start rolloffs as soon as ties are found; otherwise notify the authority
    auto_rolloff: bool = True

    # Die used for every draw, e.g. "d20"
    rolloff_die: str = "d20"

    # Consider non-player entrants when detecting ties
    include_npcs: bool = False

    # Seconds an owner gets to answer a draw request
    rolloff_timeout: int = Field(30, ge=3, le=60)

    # Ask participants to display the winner
    show_winner_announcement: bool = True

    # Settle delays before re-running detection (seconds)
    update_settle_delay: float = Field(0.2, ge=0)
    create_settle_delay: float = Field(0.3, ge=0)

    # Per-recipient delivery timeouts (seconds)
    broadcast_timeout: float = Field(1.0, gt=0)
    announcement_timeout: float = Field(5.0, gt=0)

    @field_validator("rolloff_die")
    @classmethod
    def validate_die(cls, value: str) -> str:
        """Ensure the die looks like d<N> with at least two faces."""
        normalized = value.strip().lower()
        parse_die(normalized)
        return normalized

    @property
    def die_faces(self) -> int:
        return parse_die(self.rolloff_die)


def load_settings(env_file: Optional[Path] = ENV_FILE) -> RolloffSettings:
    """
    Build settings from the environment.

    Args:
        env_file: Optional .env file loaded before reading variables
    Returns:
        Validated RolloffSettings
    Raises:
        pydantic.ValidationError: If any value is malformed or out of range
    """
    if env_file is not None and Path(env_file).exists():
        load_dotenv(dotenv_path=env_file, override=False)

    values = {
        "auto_rolloff": get_bool_env('ROLLOFF_AUTO', True),
        "include_npcs": get_bool_env('ROLLOFF_INCLUDE_NPCS', False),
        "show_winner_announcement": get_bool_env('ROLLOFF_SHOW_WINNER_ANNOUNCEMENT', True),
    }
    # Raw strings; the model coerces and validates them
    for field_name, key in ENV_FIELDS.items():
        raw = get_raw_env(key)
        if raw is not None:
            values[field_name] = raw

    return RolloffSettings(**values)


@lru_cache()
def get_settings() -> RolloffSettings:
    """Get process-wide settings instance."""
    return load_settings()
