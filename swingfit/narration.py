"""
Swing profile and narrated analysis.

The narration service itself (a generative-language API) lives outside this
package. ``SwingNarrator`` accepts any callable that returns either a
``SwingAnalysis`` or the raw reply text, and falls back to a deterministic
rule-based analysis when the callable fails or the reply cannot be parsed.
"""

import json
import math
import re
from typing import Callable, List, Optional, Union

import numpy as np
from loguru import logger

from swingfit.models import SwingAnalysis, SwingBuffer, SwingFeatures, SwingProfile

NarrateFn = Callable[[SwingFeatures, SwingProfile], Union[str, SwingAnalysis]]

SWING_TYPES = {'aggressive', 'smooth', 'inconsistent', 'balanced', 'technical'}
TEMPOS = {'fast', 'medium', 'slow'}

DEFAULT_TIPS = [
    "Work on a steady swing rhythm",
    "Keep the club head on plane through the follow-through",
    "Time the weight shift toward the lead side",
]

JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


def _clamp(value: int, low: int = 1, high: int = 10) -> int:
    return max(low, min(high, value))


def build_profile(buffer: SwingBuffer, features: SwingFeatures) -> SwingProfile:
    if buffer.samples:
        gyro = np.array([sample.gyroscope.as_array() for sample in buffer.samples])
        max_gyro = float(np.max(np.abs(gyro)))
        gyro_x_spread = float(np.std(gyro[:, 0]))
    else:
        max_gyro = 0.0
        gyro_x_spread = 0.0

    duration_ms = features.swing_duration * 1000
    if duration_ms < 1000:
        tempo = "fast"
    elif duration_ms > 2000:
        tempo = "slow"
    else:
        tempo = "medium"

    if max_gyro > 25:
        swing_type = "aggressive"
    elif max_gyro < 8:
        swing_type = "smooth"
    else:
        swing_type = "balanced"

    return SwingProfile(
        power_level=_clamp(int(math.floor(max_gyro / 3))),
        consistency=_clamp(10 - int(math.floor(gyro_x_spread / 2))),
        tempo=tempo,
        swing_type=swing_type
    )


def fallback_analysis(features: SwingFeatures, profile: SwingProfile) -> SwingAnalysis:
    tempo_text = {
        'fast': "a quick tempo",
        'slow': "an unhurried tempo",
    }.get(profile.tempo, "a well-balanced tempo")

    if profile.power_level > 7:
        power_text = "a powerful"
    elif profile.power_level < 4:
        power_text = "a soft"
    else:
        power_text = "a steady"

    if features.smoothness > 90:
        stability_text = "a very stable"
    elif features.smoothness > 60:
        stability_text = "a stable"
    else:
        stability_text = "a slightly unsteady"

    text = (
        f"Your swing shows {tempo_text} with {power_text} delivery. "
        f"The sensor data traces {stability_text} path, peaking at "
        f"{features.max_acceleration:.1f} m/s² and {features.max_rotation_rate:.1f} rad/s."
    )

    return SwingAnalysis(
        swing_characteristics=text,
        swing_type=profile.swing_type,
        tempo=profile.tempo,
        consistency=profile.consistency,
        power_level=profile.power_level,
        recommendations=list(DEFAULT_TIPS),
        source="fallback"
    )


def parse_analysis_text(text: str) -> Optional[SwingAnalysis]:
    """Pull the first JSON object out of a free-text reply."""
    match = JSON_OBJECT.search(text or "")
    if not match:
        return None

    try:
        parsed = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        logger.warning(f"Narration reply is not valid JSON: {e}")
        return None

    if not isinstance(parsed, dict):
        return None

    swing_type = parsed.get('swingType') or "balanced"
    tempo = parsed.get('tempo') or "medium"
    recommendations: List[str] = parsed.get('recommendations') or ["Basic swing practice is recommended"]

    try:
        consistency = _clamp(int(parsed.get('consistency') or 7))
        power_level = _clamp(int(parsed.get('powerLevel') or 6))
    except (TypeError, ValueError):
        return None

    return SwingAnalysis(
        swing_characteristics=parsed.get('swingCharacteristics') or "Swing analysis complete",
        swing_type=swing_type if swing_type in SWING_TYPES else "balanced",
        tempo=tempo if tempo in TEMPOS else "medium",
        consistency=consistency,
        power_level=power_level,
        recommendations=[str(tip) for tip in recommendations],
        source="narrator"
    )


class SwingNarrator:
    def __init__(self, narrate: Optional[NarrateFn] = None):
        self.narrate = narrate

    def analyze(self, features: SwingFeatures, profile: SwingProfile) -> SwingAnalysis:
        if self.narrate is None:
            return fallback_analysis(features, profile)

        try:
            reply = self.narrate(features, profile)
        except Exception as e:
            logger.error(f"Narration failed, using fallback analysis: {e}")
            return fallback_analysis(features, profile)

        if isinstance(reply, SwingAnalysis):
            reply.source = "narrator"
            return reply

        analysis = parse_analysis_text(reply)
        if analysis is None:
            logger.warning("Narration reply could not be parsed, using fallback analysis")
            return fallback_analysis(features, profile)
        return analysis
