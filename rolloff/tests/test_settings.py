"""
Settings Test Suite

Environment loading, defaults and validation.
"""
import os
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from rolloff.config.settings import RolloffSettings, load_settings

ENV_KEYS = [
    "ROLLOFF_AUTO",
    "ROLLOFF_DIE",
    "ROLLOFF_INCLUDE_NPCS",
    "ROLLOFF_TIMEOUT",
    "ROLLOFF_SHOW_WINNER_ANNOUNCEMENT",
    "ROLLOFF_UPDATE_SETTLE_DELAY",
    "ROLLOFF_CREATE_SETTLE_DELAY",
    "ROLLOFF_BROADCAST_TIMEOUT",
    "ROLLOFF_ANNOUNCEMENT_TIMEOUT",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


def test_defaults():
    settings = load_settings(env_file=None)

    assert settings.auto_rolloff is True
    assert settings.rolloff_die == "d20"
    assert settings.die_faces == 20
    assert settings.include_npcs is False
    assert settings.rolloff_timeout == 30
    assert settings.show_winner_announcement is True
    assert settings.update_settle_delay == 0.2
    assert settings.create_settle_delay == 0.3


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("ROLLOFF_AUTO", "false")
    monkeypatch.setenv("ROLLOFF_DIE", "D100")
    monkeypatch.setenv("ROLLOFF_INCLUDE_NPCS", "yes")
    monkeypatch.setenv("ROLLOFF_TIMEOUT", "10")
    monkeypatch.setenv("ROLLOFF_BROADCAST_TIMEOUT", "2.5")

    settings = load_settings(env_file=None)

    assert settings.auto_rolloff is False
    assert settings.die_faces == 100
    assert settings.include_npcs is True
    assert settings.rolloff_timeout == 10
    assert settings.broadcast_timeout == 2.5


def test_env_file_does_not_override_environment(monkeypatch, tmp_path):
    env_file = tmp_path / ".env"
    env_file.write_text("ROLLOFF_TIMEOUT=45\nROLLOFF_DIE=d6\n")
    monkeypatch.setenv("ROLLOFF_DIE", "d12")

    with patch.dict(os.environ):
        settings = load_settings(env_file=env_file)

    assert settings.rolloff_timeout == 45
    assert settings.die_faces == 12


@pytest.mark.parametrize("timeout", [2, 61])
def test_timeout_bounds(timeout):
    with pytest.raises(ValidationError):
        RolloffSettings(rolloff_timeout=timeout)


@pytest.mark.parametrize("die", ["20", "d1", "dd", "coin"])
def test_invalid_die(die):
    with pytest.raises(ValidationError):
        RolloffSettings(rolloff_die=die)


@pytest.mark.parametrize("key, value", [
    ("ROLLOFF_TIMEOUT", "soon"),
    ("ROLLOFF_UPDATE_SETTLE_DELAY", "fast"),
    ("ROLLOFF_BROADCAST_TIMEOUT", "1,5"),
    ("ROLLOFF_DIE", "twenty"),
])
def test_malformed_environment_raises_validation_error(monkeypatch, key, value):
    """Garbage in the environment surfaces as a pydantic error, not a bare ValueError."""
    monkeypatch.setenv(key, value)

    with pytest.raises(ValidationError):
        load_settings(env_file=None)


def test_blank_environment_values_use_defaults(monkeypatch):
    monkeypatch.setenv("ROLLOFF_TIMEOUT", "  ")
    monkeypatch.setenv("ROLLOFF_ANNOUNCEMENT_TIMEOUT", "")

    settings = load_settings(env_file=None)

    assert settings.rolloff_timeout == 30
    assert settings.announcement_timeout == 5.0


@pytest.mark.parametrize("die, faces", [("d6", 6), (" D12 ", 12), ("d100", 100)])
def test_die_faces_match_die_parsing(die, faces):
    settings = RolloffSettings(rolloff_die=die)

    assert settings.die_faces == faces
    assert settings.rolloff_die == die.strip().lower()
