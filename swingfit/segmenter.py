from typing import Callable, List, Optional, Tuple
from loguru import logger

from swingfit.debug_log import Observer, notify
from swingfit.models import MotionSample, SegmenterState, SwingBuffer

SwingCallback = Callable[[SwingBuffer], None]


class SingleSlotTimer:
    """Cancellable delay with one pending deadline; scheduling replaces it."""

    def __init__(self, name: str):
        self.name = name
        self.deadline: Optional[float] = None
        self.action: Optional[Callable[[], None]] = None

    def schedule(self, deadline: float, action: Callable[[], None]):
        self.deadline = deadline
        self.action = action

    def cancel(self):
        self.deadline = None
        self.action = None

    @property
    def pending(self) -> bool:
        return self.deadline is not None

    def due(self, now: float) -> bool:
        return self.deadline is not None and now >= self.deadline

    def fire(self):
        action = self.action
        self.cancel()
        if action:
            action()


class SwingSegmenter:
    def __init__(self, config: dict, on_swing: Optional[SwingCallback] = None,
                 observer: Optional[Observer] = None):
        detection = config['swing_detection']
        self.threshold = detection['threshold']
        self.accel_threshold = detection.get('accel_threshold', 2.0)
        self.min_duration = detection['min_duration']
        self.max_duration = detection['max_duration']
        self.quiet_window = detection.get('quiet_window', 1000)

        self.on_swing = on_swing
        self.observer = observer

        self.state = SegmenterState.IDLE
        self.recording = False
        self.buffer: Optional[SwingBuffer] = None

        self.quiet_timer = SingleSlotTimer("quiet")
        self.ceiling_timer = SingleSlotTimer("ceiling")

        self.swings_emitted = 0
        self.swings_discarded = 0

    def begin(self):
        self.recording = True
        notify(self.observer, 'info', "Recording requested")

    def on_sample(self, sample: MotionSample):
        self.advance(sample.timestamp)

        if not self.recording:
            return

        if self.state == SegmenterState.IDLE:
            self._open_buffer(sample.timestamp)

        self.buffer.append(sample)

        # Swing motion restarts the quiet-period countdown
        if sample.gyro_magnitude > self.threshold and sample.accel_magnitude > self.accel_threshold:
            self.quiet_timer.schedule(sample.timestamp + self.quiet_window, self._on_quiet)

    def advance(self, now: float):
        """Fire every timer whose deadline has passed, earliest first."""
        while True:
            due: List[Tuple[float, SingleSlotTimer]] = [
                (timer.deadline, timer) for timer in (self.quiet_timer, self.ceiling_timer) if timer.due(now)
            ]
            if not due:
                return
            due.sort(key=lambda item: item[0])
            due[0][1].fire()

    def stop(self, finalize: bool = True) -> Optional[SwingBuffer]:
        self.recording = False
        self.quiet_timer.cancel()
        self.ceiling_timer.cancel()

        buffer = self.buffer
        self.buffer = None
        self.state = SegmenterState.IDLE

        if buffer is None or len(buffer) == 0 or not finalize:
            notify(self.observer, 'info', "Recording stopped without a swing")
            return None

        notify(self.observer, 'info', "Recording stopped", {'samples': len(buffer), 'duration': buffer.duration})
        return buffer.close()

    def _open_buffer(self, timestamp: float):
        self.buffer = SwingBuffer(recording_started_at=timestamp)
        self.state = SegmenterState.ARMED
        self.ceiling_timer.schedule(timestamp + self.max_duration, self._on_ceiling)
        logger.debug(f"Swing buffer opened at {timestamp:.0f}ms")

    def _on_quiet(self):
        self._close_buffer("quiet period elapsed")

    def _on_ceiling(self):
        logger.warning("Swing reached maximum duration - closing buffer")
        self._close_buffer("maximum duration reached")

    def _close_buffer(self, reason: str):
        if self.buffer is None:
            return

        self.state = SegmenterState.CLOSING
        self.quiet_timer.cancel()
        self.ceiling_timer.cancel()

        buffer = self.buffer.close()
        self.buffer = None
        self.state = SegmenterState.IDLE

        if buffer.duration > self.min_duration:
            self.swings_emitted += 1
            logger.info(f"Swing completed ({reason}) - {len(buffer)} samples, {buffer.duration:.0f}ms")
            notify(self.observer, 'info', "Swing detected", {'samples': len(buffer), 'duration': buffer.duration})
            if self.on_swing:
                self.on_swing(buffer)
        else:
            self.swings_discarded += 1
            logger.debug(f"Discarding short motion ({buffer.duration:.0f}ms <= {self.min_duration}ms)")
