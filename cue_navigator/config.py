"""
Configuration settings for the cue card navigator.
"""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, Union

from .errors import SettingsError
from .models import PresentationStyle


logger = logging.getLogger(__name__)


class Config:
    """Configuration class for application-wide constants."""

    # Phrase extraction
    PHRASE_WORD_COUNT = 15

    # Recognition defaults
    DEFAULT_EXIT_THRESHOLD = 0.6
    DEFAULT_ANCHOR_THRESHOLD = 0.5
    DEFAULT_DEBOUNCE_INTERVAL = 1.5  # seconds

    # Audio quality bands
    AUDIO_LOW_THRESHOLD = 0.05
    AUDIO_HIGH_THRESHOLD = 0.9
    AUDIO_LEVEL_GAIN = 6.0
    AUDIO_SMOOTHING_FACTOR = 0.1

    # Analytics
    PROBLEM_EXIT_CONFIDENCE = 0.5
    LOW_AUDIO_RECOMMENDATION = 0.1
    HIGH_AUDIO_RECOMMENDATION = 0.8
    LOW_CONFIDENCE_RECOMMENDATION = 0.5
    LOW_AUTOMATIC_PERCENTAGE = 30.0
    HIGH_AUTOMATIC_PERCENTAGE = 80.0
    MIN_TRANSITIONS_FOR_PHRASE_ADVICE = 3


_THRESHOLD_NAMES = (
    "exit_threshold",
    "anchor_threshold",
    "audio_low_threshold",
    "audio_high_threshold",
)


@dataclass
class SessionSettings:
    """User-tunable settings, snapshotted once when a session starts."""

    exit_threshold: float = Config.DEFAULT_EXIT_THRESHOLD
    anchor_threshold: float = Config.DEFAULT_ANCHOR_THRESHOLD
    debounce_interval: float = Config.DEFAULT_DEBOUNCE_INTERVAL
    auto_advance_enabled: bool = True
    audio_low_threshold: float = Config.AUDIO_LOW_THRESHOLD
    audio_high_threshold: float = Config.AUDIO_HIGH_THRESHOLD
    presentation_style: PresentationStyle = PresentationStyle.CUE_CARDS

    def validate(self) -> None:
        """Raise SettingsError if any value is out of range."""
        for name in _THRESHOLD_NAMES:
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise SettingsError.for_value(name, value, "must be between 0.0 and 1.0")

        if self.debounce_interval < 0:
            raise SettingsError.for_value(
                "debounce_interval", self.debounce_interval, "must not be negative"
            )

        if self.audio_low_threshold >= self.audio_high_threshold:
            raise SettingsError.for_value(
                "audio_low_threshold",
                self.audio_low_threshold,
                f"must be below audio_high_threshold ({self.audio_high_threshold})",
            )

    def update_threshold(self, threshold_name: str, value: float) -> None:
        """Update a specific threshold value."""
        if threshold_name not in _THRESHOLD_NAMES:
            raise ValueError(f"Unknown threshold: {threshold_name}")
        setattr(self, threshold_name, value)

    def reset_to_defaults(self) -> None:
        """Reset all settings to defaults."""
        defaults = SessionSettings()
        for name in defaults.to_dict():
            setattr(self, name, getattr(defaults, name))

    def copy(self) -> "SessionSettings":
        return replace(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "exit_threshold": self.exit_threshold,
            "anchor_threshold": self.anchor_threshold,
            "debounce_interval": self.debounce_interval,
            "auto_advance_enabled": self.auto_advance_enabled,
            "audio_low_threshold": self.audio_low_threshold,
            "audio_high_threshold": self.audio_high_threshold,
            "presentation_style": self.presentation_style.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SessionSettings":
        """Build settings from a plain mapping; unknown keys are ignored."""
        defaults = cls()
        style = data.get("presentation_style", defaults.presentation_style)
        if not isinstance(style, PresentationStyle):
            try:
                style = PresentationStyle(style)
            except ValueError:
                raise SettingsError.for_value("presentation_style", style, "is not a known style")

        return cls(
            exit_threshold=float(data.get("exit_threshold", defaults.exit_threshold)),
            anchor_threshold=float(data.get("anchor_threshold", defaults.anchor_threshold)),
            debounce_interval=float(data.get("debounce_interval", defaults.debounce_interval)),
            auto_advance_enabled=bool(data.get("auto_advance_enabled", defaults.auto_advance_enabled)),
            audio_low_threshold=float(data.get("audio_low_threshold", defaults.audio_low_threshold)),
            audio_high_threshold=float(data.get("audio_high_threshold", defaults.audio_high_threshold)),
            presentation_style=style,
        )

    def get_config_summary(self) -> Dict[str, Any]:
        """Get a summary of current configuration."""
        return {
            "recognition": {
                "exit_threshold": self.exit_threshold,
                "anchor_threshold": self.anchor_threshold,
                "debounce_interval": self.debounce_interval,
                "auto_advance_enabled": self.auto_advance_enabled,
            },
            "audio": {
                "low_threshold": self.audio_low_threshold,
                "high_threshold": self.audio_high_threshold,
            },
            "presentation_style": self.presentation_style.display_name,
        }


def load_settings(path: Union[str, Path]) -> SessionSettings:
    """Load settings from a JSON file. A missing file yields defaults."""
    path = Path(path)
    if not path.exists():
        logger.info(f"Settings file {path} not found, using defaults")
        return SessionSettings()

    with open(path, "r", encoding="utf-8") as handle:
        data = json.load(handle) or {}

    settings = SessionSettings.from_dict(data)
    settings.validate()
    return settings


def save_settings(path: Union[str, Path], settings: SessionSettings) -> None:
    with open(path, "w", encoding="utf-8") as handle:
        json.dump(settings.to_dict(), handle, indent=2)


class SettingsProvider(ABC):
    """Read-only source of session settings."""

    @abstractmethod
    def snapshot(self) -> SessionSettings:
        """
        Return an independent copy of the current settings.

        Sessions call this once at start; later changes are picked up by the
        next session only.
        """
        pass


class StaticSettingsProvider(SettingsProvider):
    """Settings held in memory, e.g. edited by a settings screen."""

    def __init__(self, settings: SessionSettings = None):
        self.settings = settings or SessionSettings()

    def snapshot(self) -> SessionSettings:
        return self.settings.copy()


class JsonFileSettingsProvider(SettingsProvider):
    """Settings re-read from a JSON file on every snapshot."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def snapshot(self) -> SessionSettings:
        return load_settings(self.path)
