# anpr_pipeline/pipeline.py
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Callable, Dict, Any, List, Optional
import logging
import time

from .dedup.deduplicator import Deduplicator
from .models import (
    Detection, DetectionKind, Direction, EvidenceCrop, EvidencePointer, Event,
    Session, Track, TrackStatus
)
from .monitoring.performance_monitor import PerformanceMonitor
from .selection.frame_selector import FrameSelector
from .session.session_manager import SessionManager
from .tracking.plate_tracker import PlateTracker
from .validation.validator import PlateValidator
from .voting.voter import Voter

# Supplies the evidence crop captured for a detection at a sample time
CropProvider = Callable[[Detection, int], Optional[EvidenceCrop]]

DEFAULT_BASE_TIME = '2024-01-15T08:00:00+00:00'


@dataclass
class FrameResult:
    """Outcome of one pipeline cycle"""
    time_ms: int
    tracks: List[Track]
    events: List[Event] = field(default_factory=list)
    suppressed: List[Event] = field(default_factory=list)


class PlatePipeline:
    """Main class that drives detections through tracking, sessions and event composition"""

    def __init__(self,
                 tracker: PlateTracker,
                 sessions: SessionManager,
                 selector: FrameSelector,
                 voter: Voter,
                 validator: PlateValidator,
                 deduplicator: Deduplicator,
                 crop_provider: Optional[CropProvider] = None,
                 direction: Direction = Direction.ENTRY,
                 gate: str = 'Gate 1',
                 base_time: Optional[datetime] = None,
                 vote_on_selected: bool = False,
                 logger: Optional[logging.Logger] = None):
        self.tracker = tracker
        self.sessions = sessions
        self.selector = selector
        self.voter = voter
        self.validator = validator
        self.deduplicator = deduplicator
        self.crop_provider = crop_provider
        self.direction = direction
        self.gate = gate
        self.base_time = base_time or datetime.fromisoformat(DEFAULT_BASE_TIME)
        self.vote_on_selected = vote_on_selected
        self.logger = logger or logging.getLogger(__name__)
        self.performance = PerformanceMonitor()

        self.logger.info(f"Initialized PlatePipeline for {gate} ({direction.value})")

    @classmethod
    def from_config(cls, config: Dict[str, Any],
                    crop_provider: Optional[CropProvider] = None,
                    logger: Optional[logging.Logger] = None) -> 'PlatePipeline':
        """Build every component from a loaded configuration dictionary"""
        def child(name: str) -> Optional[logging.Logger]:
            return logger.getChild(name) if logger else None

        settings = config.get('pipeline', {})
        base_time = settings.get('base_time')
        if isinstance(base_time, str):
            base_time = datetime.fromisoformat(base_time)

        return cls(
            tracker=PlateTracker.from_config(config.get('tracker', {}), child('tracker')),
            sessions=SessionManager.from_config(config.get('session', {}), child('session')),
            selector=FrameSelector.from_config(config.get('selector', {}), child('selector')),
            voter=Voter(child('voter')),
            validator=PlateValidator.from_config(config.get('validator', {}), child('validator')),
            deduplicator=Deduplicator.from_config(config.get('deduplicator', {}), child('dedup')),
            crop_provider=crop_provider,
            direction=Direction(settings.get('direction', 'ENTRY').upper()),
            gate=settings.get('gate', 'Gate 1'),
            base_time=base_time,
            vote_on_selected=settings.get('vote_on_selected', False),
            logger=logger
        )

    def process_frame(self, detections: List[Detection], time_ms: int) -> FrameResult:
        """Run one full cycle for the detections sampled at time_ms"""
        started = time.perf_counter()

        plates = [d for d in detections if d.kind is DetectionKind.PLATE]
        active_tracks = self.tracker.update(plates, time_ms)

        finalized: List[Session] = []
        for detection in plates:
            track = self.tracker.get_track(detection.track_id)
            if track is None:
                continue
            crop = self.crop_provider(detection, time_ms) if self.crop_provider else None
            session = self.sessions.update(track, detection, time_ms, crop)
            if session is not None:
                finalized.append(session)

        # Finished tracks may already be evicted; the session's own end time
        # is the last real detection in that case
        for open_session in self.sessions.get_active_sessions():
            track = self.tracker.get_track(open_session.track_id)
            if track is not None and track.status is TrackStatus.ACTIVE:
                continue
            last_seen = track.last_seen_ms if track is not None else open_session.end_ms
            session = self.sessions.handle_track_lost(open_session.track_id, last_seen, time_ms)
            if session is not None:
                finalized.append(session)

        self.sessions.clear_old_sessions(time_ms)

        result = FrameResult(time_ms=time_ms, tracks=active_tracks)
        self._compose_all(finalized, result)

        self.performance.update_metrics(len(active_tracks), time.perf_counter() - started)
        self.logger.debug(
            f"Frame processed at {time_ms}ms",
            extra={'data': {
                'time_ms': time_ms,
                'detection_count': len(detections),
                'track_count': len(active_tracks),
                'finalized_sessions': len(finalized),
                'events': len(result.events)
            }}
        )
        return result

    def flush(self, time_ms: int) -> FrameResult:
        """Finalize every open session, e.g. at the end of a stream"""
        result = FrameResult(time_ms=time_ms, tracks=self.tracker.get_active_tracks())
        self._compose_all(self.sessions.finalize_all(), result)
        return result

    def _compose_all(self, sessions: List[Session], result: FrameResult) -> None:
        for session in sessions:
            event = self.compose_event(session)
            if event is None:
                continue
            if event.deduplication.is_duplicate:
                result.suppressed.append(event)
            else:
                result.events.append(event)

    def compose_event(self, session: Session) -> Optional[Event]:
        """
        Turn a finalized session into an event.

        Returns None when voting yields no text or the text fails validation.
        The returned event carries its deduplication verdict.
        """
        if not session.crops:
            self.performance.record_rejection()
            return None

        best = self.selector.select_best_frame(session.crops)
        vote_crops = self.selector.select(session.crops) if self.vote_on_selected else session.crops
        vote = self.voter.vote([crop.candidates for crop in vote_crops])
        if not vote.winner:
            self.logger.warning(f"Session {session.track_id} produced no plate text")
            self.performance.record_rejection()
            return None

        validation = self.validator.validate_plate(vote.winner)
        if not validation.valid:
            self.logger.warning(
                f"Session {session.track_id} rejected: {vote.winner!r} failed validation",
                extra={'data': {'track_id': session.track_id, 'reasons': list(validation.reasons)}}
            )
            self.performance.record_rejection()
            return None

        draft = Event(
            event_id=f"evt_{session.end_ms}_{session.track_id}",
            plate=vote.winner,
            direction=self.direction,
            time_ms=session.end_ms,
            timestamp=self.base_time + timedelta(milliseconds=session.end_ms),
            gate=self.gate,
            confidence=vote.confidence,
            track_id=session.track_id,
            evidence=EvidencePointer(frame_time_ms=best.time_ms, crop_id=best.crop_id),
            voting=vote,
            validation=validation
        )
        event = replace(draft, deduplication=self.deduplicator.check_duplicate(draft))
        self.performance.record_event(event.deduplication.is_duplicate)

        self.logger.info(
            f"Event created: {event.event_id} ({event.plate})",
            extra={'data': {
                'event_id': event.event_id,
                'plate': event.plate,
                'mode': validation.mode.value,
                'duplicate': event.deduplication.is_duplicate
            }}
        )
        return event

    def get_statistics(self) -> Dict[str, Any]:
        return {
            'tracker': self.tracker.get_statistics(),
            'sessions': self.sessions.get_statistics(),
            'validator': self.validator.get_statistics(),
            'deduplicator': self.deduplicator.get_statistics(),
            'performance': self.performance.get_statistics()
        }

    def reset(self) -> None:
        self.tracker.reset()
        self.sessions.reset()
        self.deduplicator.clear_history()
        self.logger.info("Pipeline reset")
