from typing import Callable, Optional
from loguru import logger

from swingfit.debug_log import Observer, notify
from swingfit.features import extract_features
from swingfit.models import EquipmentCatalog, MotionSample, SwingBuffer, SwingFeatures, SwingReport
from swingfit.narration import SwingNarrator, build_profile
from swingfit.ranker import MAX_RECOMMENDATIONS, rank
from swingfit.segmenter import SwingSegmenter
from swingfit.streams import MotionStream


class SwingDetector:
    def __init__(self, config: dict, stream: MotionStream, observer: Optional[Observer] = None):
        self.config = config
        self.stream = stream
        self.observer = observer
        self.auto_stop = config['swing_detection'].get('auto_stop', True)

        self.segmenter = SwingSegmenter(config, on_swing=self._handle_swing, observer=observer)

        self.last_buffer: Optional[SwingBuffer] = None
        self.last_features: Optional[SwingFeatures] = None

        # Callbacks
        self.data_callback: Optional[Callable[[MotionSample], None]] = None
        self.swing_callback: Optional[Callable[[SwingFeatures], None]] = None
        self.error_callback: Optional[Callable[[str], None]] = None

    def on_data(self, callback: Callable[[MotionSample], None]):
        self.data_callback = callback

    def on_swing_detected(self, callback: Callable[[SwingFeatures], None]):
        self.swing_callback = callback

    def on_error(self, callback: Callable[[str], None]):
        self.error_callback = callback

    @property
    def is_recording(self) -> bool:
        return self.segmenter.recording

    def start(self) -> bool:
        if self.is_recording:
            return False

        self.segmenter.begin()
        if not self.stream.start(self._handle_sample, self._handle_error):
            self.segmenter.stop(finalize=False)
            return False

        logger.info("Swing recording started")
        return True

    def stop(self, finalize: bool = True) -> Optional[SwingFeatures]:
        """Stop recording; returns features of the open buffer when it has samples."""
        if not self.is_recording:
            return None

        self.stream.stop()
        buffer = self.segmenter.stop(finalize=finalize)
        if buffer is None:
            return None

        self.last_buffer = buffer
        self.last_features = extract_features(buffer)
        return self.last_features

    def advance(self, now: Optional[float] = None):
        """Drive the quiet-period and ceiling timers, on stream time by default."""
        self.stream.poll()
        self.segmenter.advance(self.stream.now() if now is None else now)

    def _handle_sample(self, sample: MotionSample):
        if self.data_callback:
            self.data_callback(sample)
        self.segmenter.on_sample(sample)

    def _handle_error(self, message: str):
        notify(self.observer, 'error', message)
        if self.error_callback:
            self.error_callback(message)

    def _handle_swing(self, buffer: SwingBuffer):
        features = extract_features(buffer)
        self.last_buffer = buffer
        self.last_features = features

        if self.auto_stop:
            self.stream.stop()
            self.segmenter.stop(finalize=False)

        logger.info(f"Swing features - accel: {features.max_acceleration:.1f} m/s², "
                    f"rotation: {features.max_rotation_rate:.1f} rad/s, smoothness: {features.smoothness:.0f}")

        if self.swing_callback:
            self.swing_callback(features)


def analyze_swing(buffer: SwingBuffer, catalog: EquipmentCatalog,
                  top_n: int = MAX_RECOMMENDATIONS,
                  narrator: Optional[SwingNarrator] = None) -> SwingReport:
    features = extract_features(buffer)
    profile = build_profile(buffer, features)

    return SwingReport(
        features=features,
        recommendations=rank(features, catalog, top_n),
        profile=profile,
        analysis=narrator.analyze(features, profile) if narrator else None
    )
