"""
Audio level computation and quality monitoring.
"""

from .levels import compute_level, buffer_to_float
from .quality import AudioQualityMonitor

__all__ = [
    'compute_level',
    'buffer_to_float',
    'AudioQualityMonitor'
]
