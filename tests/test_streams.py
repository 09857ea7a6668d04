import math
import time
import pytest
import serial

from swingfit.config import load_config
from swingfit.models import MotionSample, Vector3
from swingfit.streams import (
    ACCEL_SCALE,
    GYRO_SCALE,
    MOCK_SWING_PRESETS,
    MockSwingConfig,
    MotionStream,
    ReplayMotionStream,
    SerialMotionStream,
    SyntheticMotionStream,
    UNSUPPORTED_MESSAGE,
    parse_imu_line,
    swing_phase,
)


class UnsupportedStream(MotionStream):
    def is_supported(self) -> bool:
        return False


class IdleSerial:
    def __init__(self, **kwargs):
        self.kwargs = kwargs

    def readline(self):
        time.sleep(0.01)
        return b""

    def close(self):
        pass


class LastLineSerial:
    """Returns one reading while the stream is being stopped."""

    def __init__(self, stream):
        self.stream = stream

    def readline(self):
        self.stream.is_running = False
        return b"Accel X: 16384 | Y: 0 | Z: 0 | Gyro X: 131 | Y: 0 | Z: 0\n"


@pytest.fixture
def serial_config():
    config = load_config()
    config['serial']['port'] = '/dev/ttyUSB0'
    return config


def create_sample(timestamp, value=0.0):
    return MotionSample(Vector3(value, 0, 0), Vector3(value, 0, 0), timestamp)


def test_swing_phase_boundaries():
    assert swing_phase(0.0) == "takeaway"
    assert swing_phase(0.3) == "backswing"
    assert swing_phase(0.5) == "downswing"
    assert swing_phase(0.65) == "impact"
    assert swing_phase(0.75) == "follow_through"
    assert swing_phase(0.99) == "follow_through"


def test_generate_sample_count_and_timestamps():
    stream = SyntheticMotionStream(MOCK_SWING_PRESETS['pro'], sampling_rate=50, seed=1)
    samples = stream.generate()

    assert len(samples) == 30
    assert samples[0].timestamp == 0
    assert samples[-1].timestamp == 1450


def test_generate_is_reproducible_with_seed():
    first = SyntheticMotionStream(MOCK_SWING_PRESETS['advanced'], seed=42).generate()
    second = SyntheticMotionStream(MOCK_SWING_PRESETS['advanced'], seed=42).generate()
    assert first == second


def test_noise_is_bounded():
    # Zero amplitude leaves only the noise term
    stream = SyntheticMotionStream(MockSwingConfig(duration=1000, max_rotation=0, max_acceleration=0), seed=3)
    for sample in stream.generate():
        for axis in (sample.gyroscope.x, sample.gyroscope.y, sample.gyroscope.z):
            assert abs(axis) <= 0.25
        for axis in (sample.accelerometer.x, sample.accelerometer.y, sample.accelerometer.z):
            assert abs(axis) <= 0.15


def test_aggressive_pattern_is_stronger_than_slow():
    def peak(pattern):
        config = MockSwingConfig(duration=2000, max_rotation=15, max_acceleration=10, pattern=pattern)
        return max(s.accel_magnitude for s in SyntheticMotionStream(config, seed=0).generate())

    assert peak("aggressive") > peak("normal") > peak("slow")


def test_follow_through_decays():
    stream = SyntheticMotionStream(MockSwingConfig(pattern="normal"))
    assert stream._intensity("impact", 0.7) == pytest.approx(1.0)
    assert stream._intensity("follow_through", 0.75) == pytest.approx(0.6)
    assert stream._intensity("follow_through", 1.0) == pytest.approx(0.0)


def test_start_delivers_samples():
    received = []
    stream = SyntheticMotionStream(MOCK_SWING_PRESETS['pro'], seed=1)

    assert stream.start(received.append)
    assert len(received) == 30
    assert stream.is_running


def test_start_twice_fails():
    stream = SyntheticMotionStream(MOCK_SWING_PRESETS['pro'], seed=1)
    assert stream.start(lambda sample: None)
    assert not stream.start(lambda sample: None)


def test_rate_limiting_drops_fast_samples():
    received = []
    samples = [create_sample(t) for t in (0, 30, 60, 100, 150, 199, 200)]
    stream = ReplayMotionStream(samples, sampling_rate=100)
    stream.start(received.append)

    assert [s.timestamp for s in received] == [0, 100, 200]


def test_fractional_sampling_rate_keeps_every_sample():
    received = []
    stream = SyntheticMotionStream(MockSwingConfig(duration=2000), sampling_rate=33.3, seed=1)

    assert stream.start(received.append)
    assert len(received) == len(stream.generate()) == 60


def test_serial_restart_discards_stale_samples(monkeypatch, serial_config):
    monkeypatch.setattr(serial, "Serial", IdleSerial)
    received = []
    stream = SerialMotionStream(serial_config)
    stream.pending.put(create_sample(5000))

    assert stream.start(received.append)
    stream.pending.put(create_sample(100))
    stream.pending.put(create_sample(200))

    assert stream.poll() == 2
    stream.stop()
    assert [s.timestamp for s in received] == [100, 200]


def test_serial_reader_stops_enqueueing_after_stop(serial_config):
    stream = SerialMotionStream(serial_config)
    stream.is_running = True
    stream.serial_connection = LastLineSerial(stream)

    stream._reading_loop()

    assert stream.pending.empty()


def test_unsupported_stream_reports_error():
    errors = []
    stream = UnsupportedStream()

    assert not stream.start(lambda sample: None, errors.append)
    assert errors == [UNSUPPORTED_MESSAGE]
    assert not stream.is_running


def test_stop_is_idempotent():
    stream = ReplayMotionStream([create_sample(0)])
    stream.stop()
    stream.start(lambda sample: None)
    stream.stop()
    stream.stop()
    assert not stream.is_running


def test_unknown_preset():
    with pytest.raises(KeyError):
        SyntheticMotionStream.from_preset("tour")


def test_parse_imu_line():
    sample = parse_imu_line("Accel X: 16384 | Y: 0 | Z: -8192 | Gyro X: 131 | Y: 0 | Z: -262", 120.0)

    assert sample.accelerometer.x == pytest.approx(16384 * ACCEL_SCALE)
    assert sample.accelerometer.z == pytest.approx(-8192 * ACCEL_SCALE)
    assert sample.gyroscope.x == pytest.approx(131 * GYRO_SCALE)
    assert sample.gyroscope.z == pytest.approx(math.radians(-500.0))
    assert sample.timestamp == 120.0


def test_parse_imu_line_rejects_noise():
    assert parse_imu_line("ESP32 booting...", 0) is None


if __name__ == "__main__":
    pytest.main([__file__])
