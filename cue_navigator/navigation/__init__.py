"""
Card navigation: the state machine and the live session around it.
"""

from .engine import NavigationEngine, FragmentEvaluation
from .events import EventStream
from .session import PerformanceSession, SessionStartResult

__all__ = [
    'NavigationEngine',
    'FragmentEvaluation',
    'EventStream',
    'PerformanceSession',
    'SessionStartResult'
]
