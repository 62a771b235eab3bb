"""
Offline replay of recorded performance logs.

A log is a timestamp-ordered list of entries (transcript fragments, audio
levels and manual actions). Replaying feeds them through a NavigationEngine,
an AudioQualityMonitor and SessionAnalytics synchronously, so the same log
always produces the same report.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Union

from .analytics.models import SessionReport
from .analytics.session_analytics import SessionAnalytics
from .audio.quality import AudioQualityMonitor
from .config import SessionSettings
from .models import SegmentCard, TranscriptFragment
from .navigation.engine import NavigationEngine
from .phrases.matcher import PhraseMatcher


logger = logging.getLogger(__name__)

REPLAY_KINDS = ("fragment", "level", "advance", "retreat", "jump", "pause", "resume")


@dataclass(frozen=True)
class ReplayEntry:
    """One recorded event of a performance log."""
    timestamp: float
    kind: str
    text: Optional[str] = None
    level: Optional[float] = None
    index: Optional[int] = None
    is_final: bool = False


def parse_replay_entry(data: Mapping[str, Any]) -> ReplayEntry:
    """Parse one JSON object into a ReplayEntry, raising ValueError if malformed."""
    kind = data.get("kind")
    if kind not in REPLAY_KINDS:
        raise ValueError(f"Unknown entry kind {kind!r}; expected one of {', '.join(REPLAY_KINDS)}")
    if "timestamp" not in data:
        raise ValueError("Entry has no timestamp")

    entry = ReplayEntry(
        timestamp=float(data["timestamp"]),
        kind=kind,
        text=data.get("text"),
        level=float(data["level"]) if data.get("level") is not None else None,
        index=int(data["index"]) if data.get("index") is not None else None,
        is_final=bool(data.get("is_final", False)),
    )

    if kind == "fragment" and entry.text is None:
        raise ValueError("Fragment entry has no text")
    if kind == "level" and entry.level is None:
        raise ValueError("Level entry has no level")
    if kind == "jump" and entry.index is None:
        raise ValueError("Jump entry has no index")
    return entry


def load_replay_log(path: Union[str, Path]) -> List[ReplayEntry]:
    """Read a JSON-lines log. Blank lines are ignored."""
    entries = []
    with open(path, "r", encoding="utf-8") as handle:
        for line_number, line in enumerate(handle, 1):
            line = line.strip()
            if not line:
                continue
            try:
                entries.append(parse_replay_entry(json.loads(line)))
            except (json.JSONDecodeError, ValueError) as e:
                raise ValueError(f"{path}:{line_number}: {e}") from e

    logger.debug(f"Loaded {len(entries)} replay entries from {path}")
    return entries


def replay_session(cards: Sequence[SegmentCard],
                   settings: Optional[SessionSettings] = None,
                   entries: Iterable[ReplayEntry] = (),
                   matcher: Optional[PhraseMatcher] = None) -> SessionReport:
    """
    Replay a log and return the finalized report.

    Entries are applied in timestamp order (ties keep log order). The
    session starts at the first entry and ends at the last.

    Raises:
        NavigationError: a jump entry names a card that does not exist
    """
    settings = settings.copy() if settings else SessionSettings()
    ordered = sorted(entries, key=lambda entry: entry.timestamp)
    started_at = ordered[0].timestamp if ordered else 0.0
    now = [started_at]

    engine = NavigationEngine(cards, settings, matcher, clock=lambda: now[0])
    monitor = AudioQualityMonitor(settings.audio_low_threshold, settings.audio_high_threshold)
    analytics = SessionAnalytics(engine.cards, settings, started_at)
    analytics.attach(engine)
    analytics.attach_monitor(monitor)

    engine.start(timestamp=started_at)
    for entry in ordered:
        now[0] = entry.timestamp
        if entry.kind == "fragment":
            engine.process_fragment(TranscriptFragment(entry.text, entry.timestamp, entry.is_final))
        elif entry.kind == "level":
            monitor.record(entry.level, entry.timestamp)
        elif entry.kind == "advance":
            engine.advance(entry.timestamp)
        elif entry.kind == "retreat":
            engine.retreat(entry.timestamp)
        elif entry.kind == "jump":
            engine.jump_to(entry.index, entry.timestamp)
        elif entry.kind == "pause":
            analytics.record_recognition_error()
            engine.pause_recognition(entry.text or "recognition lost")
        elif entry.kind == "resume":
            engine.resume_recognition()

    ended_at = ordered[-1].timestamp if ordered else started_at
    engine.stop(ended_at)
    return analytics.finalize(ended_at)
