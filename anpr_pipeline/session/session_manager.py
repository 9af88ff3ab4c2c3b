# anpr_pipeline/session/session_manager.py
from typing import Dict, List, Any, Optional
import logging

from ..models import Detection, EvidenceCrop, Session, SessionStatus, Track

REASON_CAPACITY = 'max_frames_reached'
REASON_TRACK_LOST = 'track_lost'
REASON_FLUSH = 'flush'


class SessionManager:
    """Collects evidence crops per track and decides when a capture episode ends"""

    def __init__(self,
                 max_session_frames: int = 20,
                 disappear_threshold_ms: int = 5000,
                 min_session_frames: int = 3,
                 retention_ms: int = 30000,
                 logger: Optional[logging.Logger] = None):
        self.max_session_frames = max_session_frames
        self.disappear_threshold_ms = disappear_threshold_ms
        self.min_session_frames = min_session_frames
        self.retention_ms = retention_ms
        self.logger = logger or logging.getLogger(__name__)

        # Active sessions keyed by track id; finalized ones are kept apart so
        # that they are never reopened
        self.sessions: Dict[int, Session] = {}
        self.finalized: List[Session] = []
        self.discarded_count = 0

    @classmethod
    def from_config(cls, section: Dict[str, Any],
                    logger: Optional[logging.Logger] = None) -> 'SessionManager':
        return cls(
            max_session_frames=section.get('max_session_frames', 20),
            disappear_threshold_ms=section.get('disappear_threshold_ms', 5000),
            min_session_frames=section.get('min_session_frames', 3),
            retention_ms=section.get('retention_ms', 30000),
            logger=logger
        )

    def update(self, track: Track, detection: Detection, time_ms: int,
               crop: Optional[EvidenceCrop] = None) -> Optional[Session]:
        """
        Record a contact with a track.

        Args:
            track: The track the detection was assigned to
            detection: The latest matched detection
            time_ms: Sample time of the cycle
            crop: Evidence captured for this detection, if any

        Returns:
            The session finalized by this update (capacity reached), otherwise None
        """
        session = self.sessions.get(track.track_id)
        if session is None:
            self._create_session(track, time_ms, crop)
            return None
        return self._update_session(session, time_ms, crop)

    def _create_session(self, track: Track, time_ms: int,
                        crop: Optional[EvidenceCrop]) -> Session:
        session = Session(
            track_id=track.track_id,
            start_ms=time_ms,
            end_ms=time_ms,
            crops=[crop] if crop is not None else []
        )
        self.sessions[track.track_id] = session
        self.logger.info(
            f"Created new session for track {track.track_id}",
            extra={'data': {
                'track_id': track.track_id,
                'time_ms': time_ms,
                'has_crop': crop is not None
            }}
        )
        return session

    def _update_session(self, session: Session, time_ms: int,
                        crop: Optional[EvidenceCrop]) -> Optional[Session]:
        session.end_ms = time_ms

        if crop is not None:
            session.crops.append(crop)
            if len(session.crops) >= self.max_session_frames:
                return self.finalize_session(session.track_id, REASON_CAPACITY)

        self.logger.debug(
            f"Updated session {session.track_id}",
            extra={'data': {
                'track_id': session.track_id,
                'crop_count': len(session.crops),
                'duration_ms': session.duration_ms
            }}
        )
        return None

    def handle_track_lost(self, track_id: int, last_seen_ms: int,
                          now_ms: int) -> Optional[Session]:
        """Finalize the session of a track that has been gone long enough"""
        session = self.sessions.get(track_id)
        if session is None:
            return None

        if now_ms - last_seen_ms >= self.disappear_threshold_ms:
            return self.finalize_session(track_id, REASON_TRACK_LOST)
        return None

    def finalize_session(self, track_id: int, reason: str) -> Optional[Session]:
        """
        Close the active session of a track.

        Sessions below the minimum evidence count are discarded and None is
        returned; nothing downstream should ever see them.
        """
        session = self.sessions.pop(track_id, None)
        if session is None:
            return None

        if len(session.crops) < self.min_session_frames:
            self.discarded_count += 1
            self.logger.warning(
                f"Session {track_id} too short, discarding",
                extra={'data': {
                    'track_id': track_id,
                    'crop_count': len(session.crops),
                    'min_required': self.min_session_frames
                }}
            )
            return None

        session.status = SessionStatus.FINALIZED
        session.finalize_reason = reason
        self.finalized.append(session)
        self.logger.info(
            f"Finalized session {track_id} ({reason})",
            extra={'data': {
                'track_id': track_id,
                'crop_count': len(session.crops),
                'duration_ms': session.duration_ms,
                'reason': reason
            }}
        )
        return session

    def finalize_all(self, reason: str = REASON_FLUSH) -> List[Session]:
        """Explicitly complete every active session"""
        finalized = []
        for track_id in list(self.sessions.keys()):
            session = self.finalize_session(track_id, reason)
            if session is not None:
                finalized.append(session)
        return finalized

    def get_active_sessions(self) -> List[Session]:
        return list(self.sessions.values())

    def get_finalized_sessions(self) -> List[Session]:
        return list(self.finalized)

    def get_session(self, track_id: int) -> Optional[Session]:
        """Active session of a track, else its most recent finalized one"""
        session = self.sessions.get(track_id)
        if session is not None:
            return session
        for session in reversed(self.finalized):
            if session.track_id == track_id:
                return session
        return None

    def get_all_sessions(self) -> List[Session]:
        return self.get_active_sessions() + self.get_finalized_sessions()

    def clear_old_sessions(self, now_ms: int, max_age_ms: Optional[int] = None) -> int:
        """Purge finalized sessions that ended more than max_age_ms ago"""
        max_age = self.retention_ms if max_age_ms is None else max_age_ms
        cutoff = now_ms - max_age

        old_count = len(self.finalized)
        self.finalized = [s for s in self.finalized if s.end_ms >= cutoff]
        removed = old_count - len(self.finalized)
        if removed > 0:
            self.logger.info(f"Cleared {removed} old sessions",
                             extra={'data': {'count': removed}})
        return removed

    def reset(self) -> None:
        self.sessions.clear()
        self.finalized.clear()
        self.discarded_count = 0
        self.logger.info("Reset all sessions")

    def get_statistics(self) -> Dict[str, Any]:
        sessions = self.get_all_sessions()
        total_duration = sum(s.duration_ms for s in sessions)
        total_crops = sum(len(s.crops) for s in sessions)

        return {
            'total_sessions': len(sessions),
            'active_sessions': len(self.sessions),
            'finalized_sessions': len(self.finalized),
            'discarded_sessions': self.discarded_count,
            'total_crops': total_crops,
            'avg_session_duration': total_duration / len(sessions) if sessions else 0,
            'avg_crops_per_session': total_crops / len(sessions) if sessions else 0
        }
