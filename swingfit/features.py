"""
Swing feature extraction.

Conventions:
- ``swing_duration`` is the buffer-relative timestamp of the last sample, in
  seconds. Wall-clock time since recording started is not used.
- ``smoothness`` is derived from the population standard deviation of the
  3-axis acceleration magnitude series (not a single axis).
"""

from typing import Sequence

import numpy as np

from swingfit.models import SwingBuffer, SwingFeatures

EMPTY_FEATURES = SwingFeatures(
    max_acceleration=0.0,
    max_rotation_rate=0.0,
    swing_duration=0.0,
    tempo=0.0,
    smoothness=0.0,
    sample_count=0
)


def smoothness_score(accelerations: np.ndarray) -> float:
    if accelerations.size == 0:
        return 0.0

    # np.var defaults to ddof=0 (population variance)
    deviation = float(np.sqrt(np.var(accelerations)))
    return float(np.clip(100.0 - deviation, 0.0, 100.0))


def features_from_magnitudes(accelerations: Sequence[float], rotation_rates: Sequence[float],
                             duration: float) -> SwingFeatures:
    """Features from pre-combined magnitude series and a duration in seconds."""
    accel = np.asarray(accelerations, dtype=float)
    gyro = np.asarray(rotation_rates, dtype=float)

    if accel.size == 0:
        return EMPTY_FEATURES

    tempo = accel.size / duration if duration > 0 else 0.0

    return SwingFeatures(
        max_acceleration=float(np.max(accel)),
        max_rotation_rate=float(np.max(gyro)) if gyro.size else 0.0,
        swing_duration=float(duration),
        tempo=float(tempo),
        smoothness=smoothness_score(accel),
        sample_count=int(accel.size)
    )


def magnitude_series(buffer: SwingBuffer):
    if not buffer.samples:
        return np.zeros(0), np.zeros(0)

    accel = np.array([sample.accelerometer.as_array() for sample in buffer.samples])
    gyro = np.array([sample.gyroscope.as_array() for sample in buffer.samples])
    return np.linalg.norm(accel, axis=1), np.linalg.norm(gyro, axis=1)


def extract_features(buffer: SwingBuffer) -> SwingFeatures:
    accel_magnitudes, gyro_magnitudes = magnitude_series(buffer)
    return features_from_magnitudes(accel_magnitudes, gyro_magnitudes, buffer.duration / 1000.0)
