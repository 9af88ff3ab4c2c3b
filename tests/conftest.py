import pytest
from datetime import datetime, timedelta

from anpr_pipeline.models import (
    CropQuality, Detection, DetectionKind, Direction, EvidenceCrop, EvidencePointer,
    Event, RecognitionCandidate, ValidationMode, ValidationResult, VoteMethod, VoteResult
)

VALID_PLATE = 'ঢাকা-সখী-১২৩৪'
BASE_TIME = datetime(2024, 1, 15, 8, 0, 0)


@pytest.fixture
def valid_plate():
    return VALID_PLATE


@pytest.fixture
def make_detection():
    def _make(x1=100, y1=100, x2=200, y2=150, confidence=0.9, kind=DetectionKind.PLATE):
        return Detection(kind=kind, bbox=(x1, y1, x2, y2), confidence=confidence)
    return _make


@pytest.fixture
def make_crop():
    def _make(crop_id='crop_1', time_ms=0, bbox=(100, 100, 200, 150),
              quality=None, texts=None):
        candidates = [RecognitionCandidate(text=t, confidence=c) for t, c in (texts or [])]
        if quality is not None:
            quality = CropQuality(*quality)
        return EvidenceCrop(crop_id=crop_id, time_ms=time_ms, bbox=bbox,
                            quality=quality, candidates=candidates)
    return _make


@pytest.fixture
def make_event():
    def _make(plate=VALID_PLATE, direction=Direction.ENTRY, time_ms=0, event_id=None):
        return Event(
            event_id=event_id or f"evt_{time_ms}_{plate}",
            plate=plate,
            direction=direction,
            time_ms=time_ms,
            timestamp=BASE_TIME + timedelta(milliseconds=time_ms),
            gate='Test Gate',
            confidence=0.9,
            track_id=1,
            evidence=EvidencePointer(frame_time_ms=time_ms, crop_id='crop_1'),
            voting=VoteResult(winner=plate, confidence=0.9, method=VoteMethod.FREQUENCY),
            validation=ValidationResult(valid=True, mode=ValidationMode.STRICT, plate=plate)
        )
    return _make
