"""
Audio quality monitoring for live sessions.
"""

import logging
from typing import Callable, List, Optional

import numpy as np

from ..config import Config
from ..models import AudioLevelClass, AudioLevelSample


class AudioQualityMonitor:
    """
    Classifies audio level samples and keeps their history.

    Classification of a single level is pure. The monitor is stateful only
    in the history it accumulates for session-end aggregation and in the
    exponentially smoothed level used for the live indicator.
    """

    def __init__(self,
                 low_threshold: float = Config.AUDIO_LOW_THRESHOLD,
                 high_threshold: float = Config.AUDIO_HIGH_THRESHOLD,
                 smoothing_factor: float = Config.AUDIO_SMOOTHING_FACTOR):
        if low_threshold >= high_threshold:
            raise ValueError(
                f"low_threshold ({low_threshold}) must be below high_threshold ({high_threshold})"
            )
        self.logger = logging.getLogger(__name__)
        self.low_threshold = low_threshold
        self.high_threshold = high_threshold
        self.smoothing_factor = smoothing_factor

        self.samples: List[AudioLevelSample] = []
        self.smoothed_level = 0.0
        self._listeners: List[Callable[[AudioLevelSample], None]] = []

    def classify(self, level: float) -> AudioLevelClass:
        """Classify a level against the configured bands."""
        if level < self.low_threshold:
            return AudioLevelClass.TOO_LOW
        if level > self.high_threshold:
            return AudioLevelClass.TOO_HIGH
        return AudioLevelClass.NOMINAL

    def record(self, level: float, timestamp: float) -> AudioLevelSample:
        """Classify and store one level sample, then notify listeners."""
        level = min(max(float(level), 0.0), 1.0)
        sample = AudioLevelSample(level=level, timestamp=timestamp,
                                  classification=self.classify(level))
        self.samples.append(sample)

        if len(self.samples) == 1:
            self.smoothed_level = level
        else:
            alpha = self.smoothing_factor
            self.smoothed_level = alpha * level + (1 - alpha) * self.smoothed_level

        for listener in self._listeners:
            listener(sample)
        return sample

    def add_sample_listener(self, callback: Callable[[AudioLevelSample], None]) -> None:
        """Add a callback invoked with every recorded sample."""
        self._listeners.append(callback)

    @property
    def current_level(self) -> float:
        return self.samples[-1].level if self.samples else 0.0

    @property
    def is_too_low(self) -> bool:
        return bool(self.samples) and self.smoothed_level < self.low_threshold

    @property
    def is_too_high(self) -> bool:
        return bool(self.samples) and self.smoothed_level > self.high_threshold

    @property
    def live_classification(self) -> Optional[AudioLevelClass]:
        """Classification of the smoothed level, or None before any sample."""
        if not self.samples:
            return None
        return self.classify(self.smoothed_level)

    def mean_level(self) -> float:
        if not self.samples:
            return 0.0
        return float(np.mean([s.level for s in self.samples]))

    def peak_level(self) -> float:
        if not self.samples:
            return 0.0
        return float(np.max([s.level for s in self.samples]))

    def reset(self) -> None:
        self.samples.clear()
        self.smoothed_level = 0.0
