# anpr_pipeline/models.py
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

BBox = Tuple[float, float, float, float]  # (x1, y1, x2, y2)


def validate_bbox(bbox) -> BBox:
    """Check a box is (x1, y1, x2, y2) with positive width and height"""
    if bbox is None or len(bbox) != 4:
        raise ValueError(f"Bounding box must have 4 coordinates, got {bbox!r}")

    x1, y1, x2, y2 = (float(v) for v in bbox)
    if x2 <= x1 or y2 <= y1:
        raise ValueError(f"Bounding box has non-positive width or height: {bbox!r}")
    return (x1, y1, x2, y2)


def calculate_iou(box_a: BBox, box_b: BBox) -> float:
    """Intersection-over-Union of two axis-aligned boxes"""
    ax1, ay1, ax2, ay2 = box_a
    bx1, by1, bx2, by2 = box_b

    x_left = max(ax1, bx1)
    y_top = max(ay1, by1)
    x_right = min(ax2, bx2)
    y_bottom = min(ay2, by2)

    if x_right < x_left or y_bottom < y_top:
        return 0.0

    intersection = (x_right - x_left) * (y_bottom - y_top)
    area_a = (ax2 - ax1) * (ay2 - ay1)
    area_b = (bx2 - bx1) * (by2 - by1)
    union = area_a + area_b - intersection
    if union <= 0:
        return 0.0
    return intersection / union


class DetectionKind(Enum):
    VEHICLE = "vehicle"
    PLATE = "plate"


@dataclass
class Detection:
    """A single detector output for one frame"""
    kind: DetectionKind
    bbox: BBox
    confidence: float
    track_id: Optional[int] = None  # written by the tracker only


class TrackStatus(Enum):
    ACTIVE = "active"
    LOST = "lost"
    FINISHED = "finished"


@dataclass
class Track:
    """Persistent identity linking plate detections across frames"""
    track_id: int
    status: TrackStatus
    start_ms: int
    last_seen_ms: int
    bbox: BBox
    confidence: float
    detections: List[Detection] = field(default_factory=list)

    @property
    def duration_ms(self) -> int:
        return self.last_seen_ms - self.start_ms


@dataclass
class CropQuality:
    sharpness: float
    contrast: float
    area: float  # normalized to [0, 1]


@dataclass
class RecognitionCandidate:
    text: str
    confidence: float
    script: Optional[str] = None


@dataclass
class EvidenceCrop:
    """A captured plate crop with its quality metrics and recognizer output"""
    crop_id: str
    time_ms: int
    bbox: BBox
    quality: Optional[CropQuality] = None
    candidates: List[RecognitionCandidate] = field(default_factory=list)


class SessionStatus(Enum):
    ACTIVE = "active"
    FINALIZED = "finalized"


@dataclass
class Session:
    """Evidence-collection episode for one track"""
    track_id: int
    start_ms: int
    end_ms: int
    crops: List[EvidenceCrop] = field(default_factory=list)
    status: SessionStatus = SessionStatus.ACTIVE
    finalize_reason: Optional[str] = None

    @property
    def is_finalized(self) -> bool:
        return self.status is SessionStatus.FINALIZED

    @property
    def duration_ms(self) -> int:
        return self.end_ms - self.start_ms


class VoteMethod(Enum):
    FREQUENCY = "frequency"
    CONFIDENCE = "confidence"
    TIEBREAK = "tiebreak"


@dataclass(frozen=True)
class VoteTally:
    text: str
    count: int
    avg_confidence: float
    max_confidence: float


@dataclass(frozen=True)
class VoteResult:
    winner: str
    confidence: float
    method: VoteMethod
    candidates: Tuple[VoteTally, ...] = ()

    @property
    def votes(self) -> Dict[str, int]:
        return {tally.text: tally.count for tally in self.candidates}

    def to_dict(self) -> Dict[str, Any]:
        return {
            'winner': self.winner,
            'confidence': self.confidence,
            'method': self.method.value,
            'votes': self.votes,
            'candidates': [
                {
                    'text': t.text,
                    'count': t.count,
                    'avg_confidence': t.avg_confidence,
                    'max_confidence': t.max_confidence
                }
                for t in self.candidates
            ]
        }


class ValidationMode(Enum):
    STRICT = "strict"
    FALLBACK = "fallback"


@dataclass(frozen=True)
class ValidationMetadata:
    format: str
    region: Optional[str] = None
    series: Optional[str] = None
    vehicle_type: Optional[str] = None
    script_char_count: Optional[int] = None
    has_separators: Optional[bool] = None


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    mode: ValidationMode
    plate: str
    reasons: Tuple[str, ...] = ()
    warnings: Tuple[str, ...] = ()
    metadata: Optional[ValidationMetadata] = None

    def to_dict(self) -> Dict[str, Any]:
        metadata = None
        if self.metadata is not None:
            metadata = {k: v for k, v in self.metadata.__dict__.items() if v is not None}
        return {
            'valid': self.valid,
            'mode': self.mode.value,
            'plate': self.plate,
            'reasons': list(self.reasons),
            'warnings': list(self.warnings),
            'metadata': metadata
        }


class Direction(Enum):
    ENTRY = "ENTRY"
    EXIT = "EXIT"


@dataclass(frozen=True)
class EvidencePointer:
    frame_time_ms: int
    crop_id: str


@dataclass(frozen=True)
class DeduplicationResult:
    is_duplicate: bool
    reason: str
    previous_event: Optional["Event"] = None
    time_diff_ms: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'is_duplicate': self.is_duplicate,
            'reason': self.reason,
            'previous_event_id': self.previous_event.event_id if self.previous_event else None,
            'time_diff_ms': self.time_diff_ms
        }


@dataclass(frozen=True)
class Event:
    """Recognition event for one finalized session; never mutated"""
    event_id: str
    plate: str
    direction: Direction
    time_ms: int
    timestamp: datetime
    gate: str
    confidence: float
    track_id: int
    evidence: EvidencePointer
    voting: VoteResult
    validation: ValidationResult
    deduplication: Optional[DeduplicationResult] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.event_id,
            'plate': self.plate,
            'status': self.direction.value,
            'time_ms': self.time_ms,
            'timestamp': self.timestamp.isoformat(),
            'gate': self.gate,
            'confidence': self.confidence,
            'track_id': self.track_id,
            'evidence': {
                'frame_time_ms': self.evidence.frame_time_ms,
                'crop_id': self.evidence.crop_id
            },
            'voting': self.voting.to_dict(),
            'validation': self.validation.to_dict(),
            'deduplication': self.deduplication.to_dict() if self.deduplication else None
        }
