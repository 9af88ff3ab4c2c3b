# anpr_pipeline/loaders/precomputed.py
"""Readers for precomputed detection and recognition data.

These sit at the boundary of the pipeline: they turn JSON produced by an
offline detector/recognizer into model objects, rejecting malformed input
up front so the core never sees it.
"""
import json
import logging
from typing import Dict, List, Any, Optional, Set

from ..models import (
    CropQuality, Detection, DetectionKind, EvidenceCrop, RecognitionCandidate,
    calculate_iou, validate_bbox
)

logger = logging.getLogger(__name__)


class DataLoadError(Exception):
    """Raised when precomputed data cannot be read or is malformed"""


def _read_json(path) -> Dict[str, Any]:
    try:
        with open(path, encoding='utf-8') as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.error(f"Failed to load {path}: {str(e)}")
        raise DataLoadError(f"Failed to load {path}: {e}") from e


def _confidence(value) -> float:
    confidence = float(value)
    if not 0 <= confidence <= 1:
        raise ValueError(f"Confidence must be within [0, 1], got {value!r}")
    return confidence


class PrecomputedDetections:
    """Per-frame detections keyed by sample time"""

    def __init__(self, time_tolerance_ms: int = 100, bucket_ms: int = 100):
        self.time_tolerance_ms = time_tolerance_ms
        self.bucket_ms = bucket_ms
        self.video_id: Optional[str] = None
        self.fps: float = 30
        self.frames: List[Dict[str, Any]] = []
        self._frame_index: Dict[int, Dict[str, Any]] = {}

    def load(self, path) -> None:
        logger.info(f"Loading detections from {path}")
        data = _read_json(path)

        try:
            frames = []
            for raw_frame in data['frames']:
                frames.append({
                    'time_ms': int(raw_frame['timeMs']),
                    'frame_number': raw_frame.get('frameNumber'),
                    'detections': [self._parse_detection(d) for d in raw_frame.get('detections', [])]
                })
        except (KeyError, TypeError, ValueError) as e:
            logger.error(f"Malformed detection data in {path}: {str(e)}")
            raise DataLoadError(f"Malformed detection data in {path}: {e}") from e

        self.video_id = data.get('videoId')
        self.fps = data.get('fps', 30)
        self.frames = sorted(frames, key=lambda f: f['time_ms'])
        self._build_frame_index()
        logger.info(f"Loaded {len(self.frames)} frames for video {self.video_id}")

    @staticmethod
    def _parse_detection(raw: Dict[str, Any]) -> Detection:
        return Detection(
            kind=DetectionKind(raw['type']),
            bbox=validate_bbox(raw['bbox']),
            confidence=_confidence(raw['conf'])
        )

    def _build_frame_index(self) -> None:
        self._frame_index.clear()
        for frame in self.frames:
            bucket = round(frame['time_ms'] / self.bucket_ms) * self.bucket_ms
            self._frame_index[bucket] = frame

    def is_loaded(self) -> bool:
        return bool(self.frames)

    def _find_nearest_frame(self, time_ms: int) -> Optional[Dict[str, Any]]:
        for frame in self.frames:
            if frame['time_ms'] == time_ms:
                return frame

        bucket = round(time_ms / self.bucket_ms) * self.bucket_ms
        frame = self._frame_index.get(bucket)
        if frame is not None and abs(frame['time_ms'] - time_ms) <= self.time_tolerance_ms:
            return frame

        nearest = None
        min_diff = float('inf')
        for frame in self.frames:
            diff = abs(frame['time_ms'] - time_ms)
            if diff <= self.time_tolerance_ms and diff < min_diff:
                min_diff = diff
                nearest = frame
        return nearest

    def get_detections(self, time_ms: int) -> List[Detection]:
        """Fresh copies of the detections of the frame nearest to time_ms"""
        frame = self._find_nearest_frame(time_ms)
        if frame is None:
            return []
        return [Detection(kind=d.kind, bbox=d.bbox, confidence=d.confidence)
                for d in frame['detections']]

    def get_plate_detections(self, time_ms: int) -> List[Detection]:
        return [d for d in self.get_detections(time_ms) if d.kind is DetectionKind.PLATE]

    def get_vehicle_detections(self, time_ms: int) -> List[Detection]:
        return [d for d in self.get_detections(time_ms) if d.kind is DetectionKind.VEHICLE]

    def get_frame_times(self) -> List[int]:
        return [frame['time_ms'] for frame in self.frames]

    def get_detection_range(self, start_ms: int, end_ms: int) -> List[Dict[str, Any]]:
        return [f for f in self.frames if start_ms <= f['time_ms'] <= end_ms]

    def get_fps(self) -> float:
        return self.fps

    def get_statistics(self) -> Dict[str, Any]:
        detections = [d for frame in self.frames for d in frame['detections']]
        plates = sum(1 for d in detections if d.kind is DetectionKind.PLATE)

        return {
            'total_frames': len(self.frames),
            'total_detections': len(detections),
            'plate_detections': plates,
            'vehicle_detections': len(detections) - plates,
            'time_range': {
                'start': self.frames[0]['time_ms'] if self.frames else 0,
                'end': self.frames[-1]['time_ms'] if self.frames else 0
            },
            'avg_detections_per_frame': len(detections) / len(self.frames) if self.frames else 0
        }


class PrecomputedRecognitions:
    """Evidence crops and recognizer candidates grouped by source track"""

    def __init__(self, time_tolerance_ms: int = 100):
        self.time_tolerance_ms = time_tolerance_ms
        self.video_id: Optional[str] = None
        self.language: str = 'unknown'
        self.tracks: Dict[str, List[EvidenceCrop]] = {}
        self._claimed: Set[str] = set()

    def load(self, path) -> None:
        logger.info(f"Loading recognition data from {path}")
        data = _read_json(path)

        try:
            tracks = {
                str(track_id): [self._parse_crop(c) for c in track.get('crops', [])]
                for track_id, track in data['tracks'].items()
            }
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            logger.error(f"Malformed recognition data in {path}: {str(e)}")
            raise DataLoadError(f"Malformed recognition data in {path}: {e}") from e

        self.video_id = data.get('videoId')
        self.language = data.get('metadata', {}).get('language', 'unknown')
        self.tracks = tracks
        self._claimed.clear()
        logger.info(
            f"Loaded recognition data: {len(self.tracks)} tracks, "
            f"{sum(len(c) for c in self.tracks.values())} crops"
        )

    @staticmethod
    def _parse_crop(raw: Dict[str, Any]) -> EvidenceCrop:
        quality = raw.get('quality')
        return EvidenceCrop(
            crop_id=str(raw['cropId']),
            time_ms=int(raw['timeMs']),
            bbox=validate_bbox(raw['bbox']),
            quality=CropQuality(
                sharpness=float(quality['sharpness']),
                contrast=float(quality['contrast']),
                area=float(quality['area'])
            ) if quality else None,
            candidates=[
                RecognitionCandidate(text=c['text'], confidence=_confidence(c['conf']),
                                     script=c.get('script'))
                for c in raw.get('candidates', [])
            ]
        )

    def _all_crops(self) -> List[EvidenceCrop]:
        return [crop for crops in self.tracks.values() for crop in crops]

    def get_candidates_for_crop(self, crop_id: str) -> List[RecognitionCandidate]:
        for crop in self._all_crops():
            if crop.crop_id == crop_id:
                return list(crop.candidates)
        logger.warning(f"Crop {crop_id} not found in recognition data")
        return []

    def get_candidates_for_track(self, track_id) -> List[List[RecognitionCandidate]]:
        crops = self.tracks.get(str(track_id))
        if crops is None:
            logger.warning(f"Track {track_id} not found in recognition data")
            return []
        return [list(crop.candidates) for crop in crops]

    def get_best_candidate_for_track(self, track_id) -> Optional[RecognitionCandidate]:
        candidates = [c for crop in self.get_candidates_for_track(track_id) for c in crop]
        if not candidates:
            return None
        return max(candidates, key=lambda c: c.confidence)

    def get_track_ids(self) -> List[str]:
        return list(self.tracks.keys())

    def find_crop(self, detection: Detection, time_ms: int) -> Optional[EvidenceCrop]:
        """
        Crop captured for a detection: nearest in time within tolerance, ties
        on time broken by the larger box overlap. Each crop is handed out once.
        """
        best = None
        best_key = None
        for crop in self._all_crops():
            if crop.crop_id in self._claimed:
                continue
            diff = abs(crop.time_ms - time_ms)
            if diff > self.time_tolerance_ms:
                continue
            iou = calculate_iou(detection.bbox, crop.bbox)
            if iou <= 0:
                continue
            key = (diff, -iou)
            if best_key is None or key < best_key:
                best_key = key
                best = crop
        if best is not None:
            self._claimed.add(best.crop_id)
        return best

    def reset_claims(self) -> None:
        self._claimed.clear()

    def get_statistics(self) -> Dict[str, Any]:
        crops = self._all_crops()
        confidences = [c.confidence for crop in crops for c in crop.candidates]

        return {
            'total_tracks': len(self.tracks),
            'total_crops': len(crops),
            'total_candidates': len(confidences),
            'avg_candidates_per_crop': len(confidences) / len(crops) if crops else 0,
            'avg_confidence': sum(confidences) / len(confidences) if confidences else 0,
            'language': self.language
        }
