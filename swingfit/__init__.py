"""Golf swing feature extraction and equipment recommendations from motion sensor data."""

from swingfit.models import (
    Vector3,
    MotionSample,
    SwingBuffer,
    SwingFeatures,
    ClubHead,
    Shaft,
    EquipmentCatalog,
    Recommendation,
    SegmenterState,
)
from swingfit.streams import MotionStream, SyntheticMotionStream, ReplayMotionStream, SerialMotionStream
from swingfit.segmenter import SwingSegmenter
from swingfit.features import extract_features, features_from_magnitudes
from swingfit.ranker import rank
from swingfit.catalog import load_catalog
from swingfit.detector import SwingDetector, analyze_swing

__version__ = "1.0.0"
