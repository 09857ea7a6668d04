from dataclasses import dataclass, field, asdict
from typing import List, Optional, Tuple
from enum import Enum
import math
import numpy as np


@dataclass(frozen=True)
class Vector3:
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0

    def magnitude(self) -> float:
        return math.sqrt(self.x ** 2 + self.y ** 2 + self.z ** 2)

    def as_array(self) -> np.ndarray:
        return np.array([self.x, self.y, self.z], dtype=float)


@dataclass(frozen=True)
class MotionSample:
    gyroscope: Vector3  # rad/s
    accelerometer: Vector3  # m/s²
    timestamp: float  # ms since recording start

    @property
    def gyro_magnitude(self) -> float:
        return self.gyroscope.magnitude()

    @property
    def accel_magnitude(self) -> float:
        return self.accelerometer.magnitude()

    def shifted(self, offset_ms: float) -> "MotionSample":
        return MotionSample(self.gyroscope, self.accelerometer, self.timestamp - offset_ms)


class SegmenterState(Enum):
    IDLE = "idle"
    ARMED = "armed"
    CLOSING = "closing"


@dataclass
class SwingBuffer:
    """Samples of one swing attempt, rebased onto ``recording_started_at``."""

    recording_started_at: float
    samples: List[MotionSample] = field(default_factory=list)
    closed: bool = False

    def append(self, sample: MotionSample):
        if self.closed:
            raise ValueError("Cannot append to a closed swing buffer")

        rebased = sample.shifted(self.recording_started_at)
        if self.samples and rebased.timestamp < self.samples[-1].timestamp:
            raise ValueError(
                f"Sample at {rebased.timestamp}ms precedes last sample at {self.samples[-1].timestamp}ms"
            )
        self.samples.append(rebased)

    def close(self) -> "SwingBuffer":
        self.closed = True
        return self

    @property
    def duration(self) -> float:
        return self.samples[-1].timestamp if self.samples else 0.0

    def __len__(self) -> int:
        return len(self.samples)


@dataclass(frozen=True)
class SwingFeatures:
    max_acceleration: float  # m/s²
    max_rotation_rate: float  # rad/s
    swing_duration: float  # seconds
    tempo: float  # samples per second
    smoothness: float  # 0-100
    sample_count: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class ClubHead:
    id: str
    name: str
    brand: str
    type: str  # driver, fairway, iron, wedge, putter
    loft: float  # degrees
    characteristics: Tuple[str, ...]
    price: int
    url: str = ""


@dataclass(frozen=True)
class Shaft:
    id: str
    name: str
    brand: str
    flex: str  # L, A, R, S, X
    weight: float  # grams
    torque: float  # degrees
    kick_point: str  # low, mid, high
    characteristics: Tuple[str, ...]
    price: int
    url: str = ""


@dataclass(frozen=True)
class EquipmentCatalog:
    heads: Tuple[ClubHead, ...] = ()
    shafts: Tuple[Shaft, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.heads or not self.shafts

    def find_head(self, preferred_tags: Tuple[str, ...] = ()) -> Optional[ClubHead]:
        if not self.heads:
            return None

        for tag in preferred_tags:
            for head in self.heads:
                if tag in head.characteristics:
                    return head
        return self.heads[0]

    def find_shaft(self, flex: str, preferred_tags: Tuple[str, ...] = ()) -> Optional[Shaft]:
        if not self.shafts:
            return None

        same_flex = [shaft for shaft in self.shafts if shaft.flex == flex]
        for tag in preferred_tags:
            for shaft in same_flex:
                if tag in shaft.characteristics:
                    return shaft
        if same_flex:
            return same_flex[0]
        return self.shafts[0]


@dataclass(frozen=True)
class Recommendation:
    """One ranked head/shaft pairing.

    ``flex`` is the flex the rule asks for. It differs from ``shaft.flex`` only
    when the catalog holds no shaft of that flex and the first shaft is used.
    """
    id: int
    style: str  # power, control, balanced
    head: ClubHead
    shaft: Shaft
    flex: str
    match_percentage: float
    reason: str
    characteristics: Tuple[str, ...]

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'style': self.style,
            'head': self.head.name,
            'head_id': self.head.id,
            'shaft': self.shaft.name,
            'shaft_id': self.shaft.id,
            'flex': self.flex,
            'match_percentage': self.match_percentage,
            'reason': self.reason,
            'characteristics': list(self.characteristics)
        }


@dataclass(frozen=True)
class SwingProfile:
    power_level: int  # 1-10
    consistency: int  # 1-10
    tempo: str  # fast, medium, slow
    swing_type: str  # aggressive, smooth, balanced


@dataclass
class SwingAnalysis:
    swing_characteristics: str
    swing_type: str
    tempo: str
    consistency: int
    power_level: int
    recommendations: List[str]
    source: str = "fallback"

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class SwingReport:
    features: SwingFeatures
    recommendations: List[Recommendation]
    profile: Optional[SwingProfile] = None
    analysis: Optional[SwingAnalysis] = None

    def to_dict(self) -> dict:
        return {
            'features': self.features.to_dict(),
            'recommendations': [rec.to_dict() for rec in self.recommendations],
            'profile': asdict(self.profile) if self.profile else None,
            'analysis': self.analysis.to_dict() if self.analysis else None
        }


@dataclass
class SystemStatus:
    sensor_connected: bool
    recording: bool
    websocket_clients: int
    segmenter_state: SegmenterState
    last_data_time: Optional[float]
    error_messages: List[str]
