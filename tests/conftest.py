"""
Pytest configuration and shared fixtures.

Registers the Hypothesis profile used by the property-based tests and
provides card builders and a controllable clock.
"""

import asyncio
from typing import List, Optional, Sequence

import pytest
from hypothesis import settings, Verbosity

from cue_navigator.config import SessionSettings
from cue_navigator.models import PhraseOverride, ScriptSegment, SegmentCard
from cue_navigator.phrases.extractor import build_cards


settings.register_profile("cue_navigator",
    max_examples=100,
    verbosity=Verbosity.normal,
    deadline=None
)
settings.load_profile("cue_navigator")


class FakeClock:
    """Manually advanced clock for engine and session tests."""

    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def make_cards(texts: Sequence[str], overrides: Optional[dict] = None) -> List[SegmentCard]:
    segments = [ScriptSegment(f"segment-{i}", text) for i, text in enumerate(texts, 1)]
    return build_cards(segments, overrides)


async def wait_for(predicate, timeout: float = 2.0) -> None:
    """Yield to the event loop until ``predicate()`` holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("Condition not reached before timeout")
        await asyncio.sleep(0.001)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def default_settings():
    return SessionSettings()


@pytest.fixture
def end_cards():
    """Three cards whose whole text is the exit phrase 'that is the end'."""
    return make_cards(["That is the end."] * 3)


@pytest.fixture
def override_cards():
    """Cards with longer text and a custom exit phrase on the first one."""
    return make_cards(
        [
            "Good evening everyone and welcome to the show. Tonight we talk about trains.",
            "Trains were once the fastest way to cross a continent, and that is the end.",
        ],
        overrides={"segment-1": PhraseOverride(exit_phrase="talk about trains")},
    )
