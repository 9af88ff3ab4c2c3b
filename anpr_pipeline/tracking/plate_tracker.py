# anpr_pipeline/tracking/plate_tracker.py
from typing import Dict, List, Any, Optional
import logging

from ..models import BBox, Detection, DetectionKind, Track, TrackStatus, calculate_iou


# Exponential smoothing of track confidence: 0.7 * old + 0.3 * new
CONFIDENCE_KEEP = 0.7
CONFIDENCE_NEW = 0.3


class PlateTracker:
    """Assigns plate detections to persistent track identities using box overlap"""

    def __init__(self,
                 iou_threshold: float = 0.3,
                 max_lost_frames: int = 10,
                 frame_period_ms: float = 33,
                 max_finished_tracks: int = 10,
                 logger: Optional[logging.Logger] = None):
        self.iou_threshold = iou_threshold
        self.max_lost_frames = max_lost_frames
        self.frame_period_ms = frame_period_ms
        self.max_finished_tracks = max_finished_tracks
        self.logger = logger or logging.getLogger(__name__)

        self.tracks: Dict[int, Track] = {}
        self.next_track_id = 1
        self.frame_count = 0
        self.logger.info(
            f"Initialized PlateTracker with iou_threshold={iou_threshold}, "
            f"max_lost_frames={max_lost_frames}"
        )

    @classmethod
    def from_config(cls, section: Dict[str, Any],
                    logger: Optional[logging.Logger] = None) -> 'PlateTracker':
        return cls(
            iou_threshold=section.get('iou_threshold', 0.3),
            max_lost_frames=section.get('max_lost_frames', 10),
            frame_period_ms=section.get('frame_period_ms', 33),
            max_finished_tracks=section.get('max_finished_tracks', 10),
            logger=logger
        )

    def update(self, detections: List[Detection], time_ms: int) -> List[Track]:
        """Run one tracking cycle and return the active tracks"""
        self.frame_count += 1
        self.logger.debug(
            f"Update cycle {self.frame_count} at {time_ms}ms with {len(detections)} detections",
            extra={'data': {
                'frame_count': self.frame_count,
                'time_ms': time_ms,
                'detection_count': len(detections),
                'active_track_count': len(self.get_active_tracks())
            }}
        )

        # Every live track is lost until a detection claims it
        for track in self.tracks.values():
            if track.status is TrackStatus.ACTIVE:
                track.status = TrackStatus.LOST

        unmatched: List[Detection] = []
        for detection in detections:
            if detection.kind is not DetectionKind.PLATE:
                continue

            best_match: Optional[Track] = None
            best_iou = 0.0
            for track in self.tracks.values():
                if track.status is TrackStatus.FINISHED:
                    continue
                iou = calculate_iou(detection.bbox, track.bbox)
                if iou > self.iou_threshold and iou > best_iou:
                    best_iou = iou
                    best_match = track

            if best_match is not None:
                self._update_track(best_match, detection, time_ms)
                detection.track_id = best_match.track_id
                self.logger.debug(
                    f"Matched detection to track {best_match.track_id} (iou={best_iou:.3f})",
                    extra={'data': {
                        'track_id': best_match.track_id,
                        'iou': best_iou,
                        'confidence': detection.confidence
                    }}
                )
            else:
                unmatched.append(detection)

        for detection in unmatched:
            track = self._create_track(detection, time_ms)
            detection.track_id = track.track_id
            self.logger.info(
                f"Created new track {track.track_id}",
                extra={'data': {
                    'track_id': track.track_id,
                    'bbox': list(detection.bbox),
                    'confidence': detection.confidence
                }}
            )

        self._handle_lost_tracks(time_ms)
        return self.get_active_tracks()

    def _create_track(self, detection: Detection, time_ms: int) -> Track:
        track = Track(
            track_id=self.next_track_id,
            status=TrackStatus.ACTIVE,
            start_ms=time_ms,
            last_seen_ms=time_ms,
            bbox=tuple(detection.bbox),
            confidence=detection.confidence,
            detections=[detection]
        )
        self.next_track_id += 1
        self.tracks[track.track_id] = track
        return track

    def _update_track(self, track: Track, detection: Detection, time_ms: int) -> None:
        track.status = TrackStatus.ACTIVE
        track.last_seen_ms = time_ms
        track.detections.append(detection)
        track.bbox = tuple(detection.bbox)
        track.confidence = track.confidence * CONFIDENCE_KEEP + detection.confidence * CONFIDENCE_NEW

    def _handle_lost_tracks(self, time_ms: int) -> None:
        """Finish tracks lost for too long and evict the oldest finished ones"""
        for track in self.tracks.values():
            if track.status is not TrackStatus.LOST:
                continue
            frames_lost = round((time_ms - track.last_seen_ms) / self.frame_period_ms)
            if frames_lost > self.max_lost_frames:
                track.status = TrackStatus.FINISHED
                self.logger.info(
                    f"Track {track.track_id} finished",
                    extra={'data': {
                        'track_id': track.track_id,
                        'duration_ms': time_ms - track.start_ms,
                        'detection_count': len(track.detections)
                    }}
                )

        finished = sorted(self.get_finished_tracks(),
                          key=lambda t: t.last_seen_ms, reverse=True)
        for track in finished[self.max_finished_tracks:]:
            del self.tracks[track.track_id]
            self.logger.debug(f"Removed old track {track.track_id}")

    def get_track(self, track_id: int) -> Optional[Track]:
        return self.tracks.get(track_id)

    def get_active_tracks(self) -> List[Track]:
        return [t for t in self.tracks.values() if t.status is TrackStatus.ACTIVE]

    def get_lost_tracks(self) -> List[Track]:
        return [t for t in self.tracks.values() if t.status is TrackStatus.LOST]

    def get_finished_tracks(self) -> List[Track]:
        return [t for t in self.tracks.values() if t.status is TrackStatus.FINISHED]

    def get_all_tracks(self) -> List[Track]:
        return list(self.tracks.values())

    def reset(self) -> None:
        self.tracks.clear()
        self.next_track_id = 1
        self.frame_count = 0
        self.logger.info("Tracker reset")

    def get_statistics(self) -> Dict[str, Any]:
        """Get track counts and averages"""
        tracks = list(self.tracks.values())
        total_duration = sum(t.duration_ms for t in tracks)
        total_detections = sum(len(t.detections) for t in tracks)

        return {
            'total_tracks': len(tracks),
            'active_tracks': len(self.get_active_tracks()),
            'lost_tracks': len(self.get_lost_tracks()),
            'finished_tracks': len(self.get_finished_tracks()),
            'avg_track_duration': total_duration / len(tracks) if tracks else 0,
            'avg_detections_per_track': total_detections / len(tracks) if tracks else 0
        }

    def contains_point(self, x: float, y: float, track_id: int) -> bool:
        track = self.get_track(track_id)
        if track is None:
            return False
        x1, y1, x2, y2 = track.bbox
        return x1 <= x <= x2 and y1 <= y <= y2

    def get_track_history(self, track_id: int, max_points: int = 50) -> List[Dict[str, Any]]:
        """Recent boxes and confidences of a track, oldest first"""
        track = self.get_track(track_id)
        if track is None:
            return []
        return [
            {'bbox': det.bbox, 'confidence': det.confidence}
            for det in track.detections[-max_points:]
        ]

    def predict_next_position(self, track_id: int) -> Optional[BBox]:
        """Linear extrapolation from the last two matched boxes"""
        track = self.get_track(track_id)
        if track is None or len(track.detections) < 2:
            return None

        prev, curr = track.detections[-2].bbox, track.detections[-1].bbox
        return tuple(c + (c - p) for p, c in zip(prev, curr))
