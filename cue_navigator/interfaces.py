"""
Collaborator interfaces consumed by a performance session.

Implementations wrap the platform's speech recognizer, microphone and
setlist storage. The session only depends on these abstractions.
"""

from abc import ABC, abstractmethod
from typing import AsyncIterator, Dict, List, Mapping

from .models import PhraseOverride, ScriptSegment, TranscriptFragment


class RecognitionService(ABC):
    """Streaming speech-to-text service."""

    @abstractmethod
    async def start(self, contextual_phrases: List[str]) -> None:
        """
        Prepare the recognizer, biased towards ``contextual_phrases``.

        Raises:
            RecognitionUnavailableError: permission missing or service down
        """
        pass

    @abstractmethod
    def fragments(self) -> AsyncIterator[TranscriptFragment]:
        """
        Yield partial and final fragments as they arrive.

        A session restamps every fragment with its own clock on arrival, so
        automatic and manual navigation share one time base. The timestamp
        set here is not used for navigation by a live session.

        The iterator ending, or raising, while the session runs is treated
        as a dropped stream.
        """
        pass

    @abstractmethod
    async def stop(self) -> None:
        """Cancel the recognition subscription."""
        pass

    async def update_context(self, contextual_phrases: List[str]) -> None:
        """Refresh recognition hints after the current card changes."""
        return None


class AudioLevelSource(ABC):
    """Microphone level meter delivering samples at a steady cadence."""

    @abstractmethod
    async def start(self) -> None:
        """
        Acquire the audio hardware.

        Raises:
            AudioCaptureFailureError: the device could not be acquired
        """
        pass

    @abstractmethod
    def levels(self) -> AsyncIterator[float]:
        """
        Yield levels in [0, 1].

        Raising AudioCaptureFailureError from the iterator reports a
        mid-session hardware failure.
        """
        pass

    @abstractmethod
    async def stop(self) -> None:
        """Release the audio hardware."""
        pass


class SegmentSource(ABC):
    """The setlist: ordered script segments plus per-segment phrase overrides."""

    @abstractmethod
    def load_segments(self) -> List[ScriptSegment]:
        pass

    @abstractmethod
    def load_overrides(self) -> Dict[str, PhraseOverride]:
        pass

    @abstractmethod
    def save_overrides(self, overrides: Mapping[str, PhraseOverride]) -> None:
        """Persist edited overrides; takes effect from the next session."""
        pass
