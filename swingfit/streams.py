"""
Motion sample sources.

Every stream delivers ``MotionSample`` values to a single ``on_sample`` handler
on the caller's thread and enforces the sampling interval client-side: a sample
is accepted only when at least ``sampling_rate`` ms have passed since the last
accepted one.
"""

import math
import queue
import re
import threading
import time
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional

import numpy as np
import serial
import serial.tools.list_ports
from loguru import logger

from swingfit.debug_log import Observer, notify
from swingfit.models import MotionSample, Vector3

SampleCallback = Callable[[MotionSample], None]
ErrorCallback = Callable[[str], None]

UNSUPPORTED_MESSAGE = "Motion sensor not supported"

INTERVAL_TOLERANCE = 1e-6  # ms, absorbs float error in fractional intervals


class MotionStream:
    def __init__(self, sampling_rate: float = 100, observer: Optional[Observer] = None):
        self.sampling_rate = sampling_rate
        self.observer = observer
        self.is_running = False

        self._on_sample: Optional[SampleCallback] = None
        self._on_error: Optional[ErrorCallback] = None
        self._last_accepted: Optional[float] = None
        self.started_at = 0.0

    def is_supported(self) -> bool:
        return True

    def start(self, on_sample: SampleCallback, on_error: Optional[ErrorCallback] = None) -> bool:
        if not self.is_supported():
            logger.warning(f"{type(self).__name__}: {UNSUPPORTED_MESSAGE}")
            notify(self.observer, 'error', UNSUPPORTED_MESSAGE)
            if on_error:
                on_error(UNSUPPORTED_MESSAGE)
            return False

        if self.is_running:
            notify(self.observer, 'warn', "Stream already started")
            return False

        self._on_sample = on_sample
        self._on_error = on_error
        self._last_accepted = None
        self.is_running = True
        self.started_at = time.monotonic()

        if not self._open():
            self.is_running = False
            return False

        return True

    def stop(self):
        if not self.is_running:
            return

        self.is_running = False
        self._close()
        notify(self.observer, 'info', "Stream stopped")

    def now(self) -> float:
        """Stream time in ms since start, the clock sample timestamps are measured on."""
        return (time.monotonic() - self.started_at) * 1000

    def poll(self) -> int:
        """Deliver samples buffered by a background source. Returns the count delivered."""
        return 0

    def _open(self) -> bool:
        return True

    def _close(self):
        pass

    def _deliver(self, sample: MotionSample) -> bool:
        if not self.is_running or self._on_sample is None:
            return False

        if (self._last_accepted is not None
                and sample.timestamp - self._last_accepted < self.sampling_rate - INTERVAL_TOLERANCE):
            return False

        self._last_accepted = sample.timestamp
        self._on_sample(sample)
        return True

    def _report_error(self, message: str):
        logger.error(message)
        notify(self.observer, 'error', message)
        if self._on_error:
            self._on_error(message)


@dataclass(frozen=True)
class MockSwingConfig:
    duration: float = 2000  # ms
    max_rotation: float = 15  # rad/s
    max_acceleration: float = 10  # m/s²
    pattern: str = "normal"  # slow, normal, fast, aggressive


MOCK_SWING_PRESETS = {
    'beginner': MockSwingConfig(duration=2500, max_rotation=8, max_acceleration=6, pattern="slow"),
    'intermediate': MockSwingConfig(duration=2000, max_rotation=15, max_acceleration=10, pattern="normal"),
    'advanced': MockSwingConfig(duration=1800, max_rotation=22, max_acceleration=15, pattern="fast"),
    'pro': MockSwingConfig(duration=1500, max_rotation=30, max_acceleration=20, pattern="aggressive"),
}

PATTERN_INTENSITY = {
    'slow': 0.6,
    'normal': 1.0,
    'fast': 1.4,
    'aggressive': 1.8,
}

GYRO_NOISE = 0.25  # rad/s
ACCEL_NOISE = 0.15  # m/s²


def swing_phase(progress: float) -> str:
    if progress < 0.3:
        return "takeaway"
    if progress < 0.5:
        return "backswing"
    if progress < 0.65:
        return "downswing"
    if progress < 0.75:
        return "impact"
    return "follow_through"


class SyntheticMotionStream(MotionStream):
    """Deterministic-shape swing waveform with seeded noise."""

    def __init__(self, config: Optional[MockSwingConfig] = None, sampling_rate: float = 50,
                 seed: Optional[int] = None, observer: Optional[Observer] = None):
        super().__init__(sampling_rate=sampling_rate, observer=observer)
        self.config = config or MockSwingConfig()
        self.seed = seed

    @classmethod
    def from_preset(cls, name: str, **kwargs) -> "SyntheticMotionStream":
        if name not in MOCK_SWING_PRESETS:
            raise KeyError(f"Unknown swing preset: {name}")
        return cls(MOCK_SWING_PRESETS[name], **kwargs)

    def generate(self) -> List[MotionSample]:
        rng = np.random.default_rng(self.seed)
        total_samples = int(math.floor(self.config.duration / self.sampling_rate))

        notify(self.observer, 'info', "Generating synthetic swing", {
            'duration': self.config.duration,
            'pattern': self.config.pattern,
            'samples': total_samples
        })

        readings = []
        for i in range(total_samples):
            progress = i / total_samples
            intensity = self._intensity(swing_phase(progress), progress)
            readings.append(MotionSample(
                gyroscope=self._gyroscope(progress, intensity, rng),
                accelerometer=self._accelerometer(progress, intensity, rng),
                timestamp=i * self.sampling_rate
            ))

        return readings

    def _open(self) -> bool:
        readings = self.generate()
        delivered = sum(1 for reading in readings if self._deliver(reading))
        logger.debug(f"Synthetic stream delivered {delivered}/{len(readings)} samples")
        return True

    def _intensity(self, phase: str, progress: float) -> float:
        base = PATTERN_INTENSITY.get(self.config.pattern, 1.0)

        if phase == "takeaway":
            return base * 0.2
        if phase == "backswing":
            return base * 0.4
        if phase == "downswing":
            return base * 0.8
        if phase == "impact":
            return base * 1.0
        return base * 0.6 * (1 - (progress - 0.75) / 0.25)

    def _gyroscope(self, progress: float, intensity: float, rng: np.random.Generator) -> Vector3:
        angle = progress * math.pi * 2
        amplitude = self.config.max_rotation * intensity
        noise = rng.uniform(-GYRO_NOISE, GYRO_NOISE, size=3)

        return Vector3(
            x=amplitude * math.sin(angle * 2) + noise[0],
            y=amplitude * math.cos(angle) + noise[1],
            z=amplitude * 0.3 * math.sin(angle * 3) + noise[2]
        )

    def _accelerometer(self, progress: float, intensity: float, rng: np.random.Generator) -> Vector3:
        pattern = math.sin(progress * math.pi * 1.5)
        amplitude = self.config.max_acceleration * intensity * pattern
        noise = rng.uniform(-ACCEL_NOISE, ACCEL_NOISE, size=3)

        return Vector3(
            x=amplitude * 0.8 + noise[0],
            y=amplitude + noise[1],
            z=amplitude * 0.5 + noise[2]
        )


class ReplayMotionStream(MotionStream):
    """Replays a recorded sample sequence."""

    def __init__(self, samples: Iterable[MotionSample], sampling_rate: float = 0,
                 observer: Optional[Observer] = None):
        super().__init__(sampling_rate=sampling_rate, observer=observer)
        self.samples = list(samples)

    def _open(self) -> bool:
        for sample in self.samples:
            if not self.is_running:
                break
            self._deliver(sample)
        return True


# ESP32 / MPU6050 line format: "Accel X: -1234 | Y: 5678 | Z: 9012 | Gyro X: -345 | Y: 678 | Z: -901"
IMU_LINE_PATTERN = re.compile(
    r"Accel X:\s*(-?\d+)\s*\|\s*Y:\s*(-?\d+)\s*\|\s*Z:\s*(-?\d+)\s*\|\s*"
    r"Gyro X:\s*(-?\d+)\s*\|\s*Y:\s*(-?\d+)\s*\|\s*Z:\s*(-?\d+)"
)

# MPU6050 default scales: ±2g = ±16384, ±250°/s = ±131
ACCEL_SCALE = 2.0 * 9.81 / 16384.0
GYRO_SCALE = 250.0 * (math.pi / 180.0) / 131.0

ESP32_IDENTIFIERS = ('cp210x', 'ch340', 'esp32', 'silicon labs', 'usb2.0-serial')


def parse_imu_line(line: str, timestamp: float) -> Optional[MotionSample]:
    match = IMU_LINE_PATTERN.search(line)
    if not match:
        return None

    ax, ay, az, gx, gy, gz = map(int, match.groups())
    return MotionSample(
        gyroscope=Vector3(gx * GYRO_SCALE, gy * GYRO_SCALE, gz * GYRO_SCALE),
        accelerometer=Vector3(ax * ACCEL_SCALE, ay * ACCEL_SCALE, az * ACCEL_SCALE),
        timestamp=timestamp
    )


class SerialMotionStream(MotionStream):
    """IMU readings from an ESP32 over USB serial.

    A background thread reads lines into a queue; ``poll`` hands them to the
    sample callback on the caller's thread so the segmenter stays single-threaded.
    """

    def __init__(self, config: dict, observer: Optional[Observer] = None):
        super().__init__(sampling_rate=config['swing_detection']['sampling_rate'], observer=observer)
        serial_config = config['serial']
        self.port: Optional[str] = serial_config.get('port')
        self.baudrate = serial_config.get('baudrate', 115200)
        self.timeout = serial_config.get('timeout', 2.0)

        self.serial_connection: Optional[serial.Serial] = None
        self.read_thread: Optional[threading.Thread] = None
        self.pending: "queue.Queue[MotionSample]" = queue.Queue()

    def find_port(self) -> Optional[str]:
        if self.port:
            return self.port

        for port in serial.tools.list_ports.comports():
            description = (port.description or "").lower()
            logger.debug(f"Found port: {port.device} - {port.description}")
            if any(identifier in description for identifier in ESP32_IDENTIFIERS):
                logger.info(f"ESP32 device found: {port.device}")
                return port.device

        return None

    def is_supported(self) -> bool:
        return self.find_port() is not None

    def _open(self) -> bool:
        port = self.find_port()
        try:
            logger.info(f"Connecting to ESP32 on {port}...")
            self.serial_connection = serial.Serial(
                port=port,
                baudrate=self.baudrate,
                timeout=self.timeout,
                write_timeout=self.timeout
            )
        except serial.SerialException as e:
            self._report_error(f"Failed to open serial port {port}: {e}")
            return False

        # Lines left over from a previous session carry its stream time
        self.pending = queue.Queue()
        self.read_thread = threading.Thread(target=self._reading_loop, daemon=True)
        self.read_thread.start()
        notify(self.observer, 'info', "Serial stream started", {'port': port})
        return True

    def _reading_loop(self):
        logger.info("Starting serial data reading loop")

        while self.is_running and self.serial_connection is not None:
            try:
                line = self.serial_connection.readline().decode('utf-8', errors='ignore').strip()
            except serial.SerialException as e:
                logger.error(f"Serial read failed: {e}")
                self.is_running = False
                break

            if not self.is_running:
                break
            if not line:
                continue

            elapsed_ms = self.now()
            sample = parse_imu_line(line, elapsed_ms)
            if sample is not None:
                self.pending.put(sample)

        logger.info("Serial reading loop ended")

    def poll(self) -> int:
        delivered = 0
        while True:
            try:
                sample = self.pending.get_nowait()
            except queue.Empty:
                break
            if self._deliver(sample):
                delivered += 1
        return delivered

    def _close(self):
        if self.read_thread and self.read_thread.is_alive():
            self.read_thread.join(timeout=2.0)

        if self.serial_connection:
            try:
                self.serial_connection.close()
                logger.info("Serial connection closed")
            except serial.SerialException as e:
                logger.error(f"Error closing serial connection: {e}")

        self.serial_connection = None
