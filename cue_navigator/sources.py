"""
Concrete segment sources and scripted recognition/audio sources.

The scripted sources replay prepared data through the async interfaces;
they back offline rehearsal replays and the test suite.
"""

import asyncio
import hashlib
import json
import logging
import re
from pathlib import Path
from typing import AsyncIterator, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from .errors import AudioCaptureFailureError, RecognitionUnavailableError, SegmentSourceError
from .interfaces import AudioLevelSource, RecognitionService, SegmentSource
from .models import PhraseOverride, ScriptSegment, TranscriptFragment


logger = logging.getLogger(__name__)

_SEGMENT_SEPARATOR = re.compile(r"\n[ \t]*\n")
_ID_LINE = re.compile(r"^#\s*(\S+)\s*$")


class InMemorySegmentSource(SegmentSource):
    """Segments and overrides held in memory."""

    def __init__(self, segments: Sequence[ScriptSegment],
                 overrides: Optional[Mapping[str, PhraseOverride]] = None):
        self.segments = list(segments)
        self.overrides: Dict[str, PhraseOverride] = dict(overrides or {})

    @classmethod
    def from_texts(cls, texts: Iterable[str]) -> "InMemorySegmentSource":
        """Build a source with ids ``segment-1``, ``segment-2``, ..."""
        return cls([ScriptSegment(f"segment-{i}", text) for i, text in enumerate(texts, 1)])

    def load_segments(self) -> List[ScriptSegment]:
        return list(self.segments)

    def load_overrides(self) -> Dict[str, PhraseOverride]:
        return dict(self.overrides)

    def save_overrides(self, overrides: Mapping[str, PhraseOverride]) -> None:
        self.overrides = dict(overrides)


def segment_id_for(text: str) -> str:
    """Content-derived id, stable when other segments are reordered."""
    return hashlib.sha1(text.strip().encode("utf-8")).hexdigest()[:12]


def parse_script_text(content: str) -> List[ScriptSegment]:
    """
    Split a plain-text script into segments at blank lines.

    A segment whose first line is ``# some-id`` uses that id; otherwise the
    id is derived from the segment text.
    """
    content = content.replace("\r\n", "\n").replace("\r", "\n")
    segments = []
    seen = set()
    for block in _SEGMENT_SEPARATOR.split(content):
        lines = block.strip("\n").split("\n")
        match = _ID_LINE.match(lines[0]) if lines else None
        if match:
            segment_id = match.group(1)
            text = "\n".join(lines[1:]).strip()
        else:
            text = block.strip()
            segment_id = segment_id_for(text)

        if not text:
            continue
        if segment_id in seen:
            raise SegmentSourceError.from_reason(
                f"Duplicate segment id '{segment_id}'", context={"segment_id": segment_id}
            )
        seen.add(segment_id)
        segments.append(ScriptSegment(segment_id, text))
    return segments


def parse_overrides(data: Mapping[str, Mapping[str, Optional[str]]]) -> Dict[str, PhraseOverride]:
    """Parse ``{"id": {"anchor": "...", "exit": "..."}}`` into overrides."""
    overrides = {}
    for segment_id, entry in data.items():
        if not isinstance(entry, Mapping):
            raise SegmentSourceError.from_reason(
                f"Override for '{segment_id}' must be an object", context={"segment_id": segment_id}
            )
        overrides[segment_id] = PhraseOverride(
            anchor_phrase=entry.get("anchor"),
            exit_phrase=entry.get("exit"),
        )
    return overrides


class TextFileSegmentSource(SegmentSource):
    """Script stored as a text file, with an optional JSON overrides file beside it."""

    def __init__(self, script_path: Union[str, Path],
                 overrides_path: Optional[Union[str, Path]] = None):
        self.script_path = Path(script_path)
        self.overrides_path = Path(overrides_path) if overrides_path else None

    def load_segments(self) -> List[ScriptSegment]:
        try:
            content = self.script_path.read_text(encoding="utf-8")
        except OSError as e:
            raise SegmentSourceError.from_reason(
                f"Cannot read script {self.script_path}: {e}",
                context={"path": str(self.script_path)},
            ) from e

        segments = parse_script_text(content)
        logger.info(f"Loaded {len(segments)} segments from {self.script_path}")
        return segments

    def load_overrides(self) -> Dict[str, PhraseOverride]:
        if self.overrides_path is None or not self.overrides_path.exists():
            return {}
        try:
            with open(self.overrides_path, "r", encoding="utf-8") as handle:
                data = json.load(handle)
        except (OSError, json.JSONDecodeError) as e:
            raise SegmentSourceError.from_reason(
                f"Cannot read overrides {self.overrides_path}: {e}",
                context={"path": str(self.overrides_path)},
            ) from e
        return parse_overrides(data or {})

    def save_overrides(self, overrides: Mapping[str, PhraseOverride]) -> None:
        if self.overrides_path is None:
            raise SegmentSourceError.from_reason("No overrides file configured")

        data = {}
        for segment_id, override in overrides.items():
            entry = {}
            if override.anchor_phrase is not None:
                entry["anchor"] = override.anchor_phrase
            if override.exit_phrase is not None:
                entry["exit"] = override.exit_phrase
            if entry:
                data[segment_id] = entry

        with open(self.overrides_path, "w", encoding="utf-8") as handle:
            json.dump(data, handle, indent=2, ensure_ascii=False)
        logger.info(f"Saved {len(data)} phrase overrides to {self.overrides_path}")


class ScriptedRecognitionService(RecognitionService):
    """
    Recognition service that yields prepared fragments.

    With ``hold_open`` the stream stays open after the last fragment,
    delivering fragments passed to ``push`` until ``stop`` is called;
    otherwise it ends, which a session treats as a dropped stream.
    ``stream_error`` is raised after the last prepared fragment.
    """

    def __init__(self, fragments: Sequence[TranscriptFragment] = (),
                 unavailable_reason: Optional[str] = None,
                 stream_error: Optional[Exception] = None,
                 hold_open: bool = True,
                 delay: float = 0.0):
        self._fragments = list(fragments)
        self.unavailable_reason = unavailable_reason
        self.stream_error = stream_error
        self.hold_open = hold_open
        self.delay = delay

        self.start_count = 0
        self.stop_count = 0
        self.contextual_phrases: List[List[str]] = []
        self._pushed: asyncio.Queue = asyncio.Queue()

    async def start(self, contextual_phrases: List[str]) -> None:
        self.start_count += 1
        if self.unavailable_reason is not None:
            raise RecognitionUnavailableError.from_reason(self.unavailable_reason)
        self.contextual_phrases.append(list(contextual_phrases))
        self._pushed = asyncio.Queue()

    def push(self, fragment: TranscriptFragment) -> None:
        """Deliver a fragment on the running stream."""
        self._pushed.put_nowait(fragment)

    async def fragments(self) -> AsyncIterator[TranscriptFragment]:
        for fragment in self._fragments:
            if self.delay:
                await asyncio.sleep(self.delay)
            yield fragment
        # Replays deliver each fragment once
        self._fragments = []

        if self.stream_error is not None:
            error, self.stream_error = self.stream_error, None
            raise error
        if not self.hold_open:
            return

        while True:
            fragment = await self._pushed.get()
            if fragment is None:  # stopped
                return
            yield fragment

    async def update_context(self, contextual_phrases: List[str]) -> None:
        self.contextual_phrases.append(list(contextual_phrases))

    async def stop(self) -> None:
        self.stop_count += 1
        self._pushed.put_nowait(None)


class ScriptedAudioSource(AudioLevelSource):
    """Audio source that yields prepared levels; may fail at start or mid-stream."""

    def __init__(self, levels: Sequence[float] = (),
                 acquire_error: Optional[str] = None,
                 fail_after: Optional[int] = None,
                 hold_open: bool = True,
                 delay: float = 0.0):
        self._levels = list(levels)
        self.acquire_error = acquire_error
        self.fail_after = fail_after
        self.hold_open = hold_open
        self.delay = delay

        self.start_count = 0
        self.stop_count = 0
        self._stopped = asyncio.Event()

    async def start(self) -> None:
        self.start_count += 1
        if self.acquire_error is not None:
            raise AudioCaptureFailureError.from_reason(self.acquire_error)
        self._stopped = asyncio.Event()

    async def levels(self) -> AsyncIterator[float]:
        for count, level in enumerate(self._levels):
            if self.fail_after is not None and count >= self.fail_after:
                self._levels = []
                self.fail_after = None
                raise AudioCaptureFailureError.from_reason("Audio device disconnected")
            if self.delay:
                await asyncio.sleep(self.delay)
            yield level
        self._levels = []

        if self.hold_open:
            await self._stopped.wait()

    async def stop(self) -> None:
        self.stop_count += 1
        self._stopped.set()
