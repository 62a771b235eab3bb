"""
Audio level computation from raw capture buffers.

This is the only work done on the capture side: a buffer comes in, a
single level in [0, 1] goes out and is pushed onto the session queue.
"""

from typing import Union

import numpy as np

from ..config import Config


AudioBuffer = Union[np.ndarray, bytes, bytearray, memoryview]


def buffer_to_float(buffer: AudioBuffer) -> np.ndarray:
    """
    Convert a capture buffer to float32 samples in [-1, 1].

    Raw bytes are interpreted as little-endian 16-bit PCM. Integer arrays
    are scaled by their dtype's range; float arrays are used as is.
    """
    if isinstance(buffer, (bytes, bytearray, memoryview)):
        return np.frombuffer(buffer, dtype=np.int16).astype(np.float32) / 32768.0

    audio_data = np.asarray(buffer)
    if np.issubdtype(audio_data.dtype, np.integer):
        scale = float(np.iinfo(audio_data.dtype).max) + 1.0
        return audio_data.astype(np.float32) / scale
    return audio_data.astype(np.float32, copy=False)


def compute_level(buffer: AudioBuffer, gain: float = Config.AUDIO_LEVEL_GAIN) -> float:
    """RMS of the buffer scaled by ``gain`` and clamped to [0, 1]."""
    audio_data = buffer_to_float(buffer)
    if audio_data.size == 0:
        return 0.0

    rms_level = float(np.sqrt(np.mean(audio_data.astype(np.float64) ** 2)))
    return float(np.clip(rms_level * gain, 0.0, 1.0))
