# anpr_pipeline/dedup/deduplicator.py
from collections import deque
from typing import Deque, Dict, List, Any, Optional
import logging

import numpy as np

from ..models import DeduplicationResult, Direction, Event


class Deduplicator:
    """
    Suppresses repeat events for the same plate.

    Events are compared against accepted history only. Same-direction pairs
    (ENTRY/ENTRY, EXIT/EXIT) use the longer window; opposite-direction pairs
    use the shorter one.
    """

    def __init__(self,
                 max_history_size: int = 100,
                 same_direction_window_ms: int = 5 * 60 * 1000,
                 opposite_direction_window_ms: int = 3 * 60 * 1000,
                 logger: Optional[logging.Logger] = None):
        self.max_history_size = max_history_size
        self.same_direction_window_ms = same_direction_window_ms
        self.opposite_direction_window_ms = opposite_direction_window_ms
        self.logger = logger or logging.getLogger(__name__)

        self.recent_events: Deque[Event] = deque(maxlen=max_history_size)

    @classmethod
    def from_config(cls, section: Dict[str, Any],
                    logger: Optional[logging.Logger] = None) -> 'Deduplicator':
        return cls(
            max_history_size=section.get('max_history_size', 100),
            same_direction_window_ms=section.get('same_direction_window_ms', 300000),
            opposite_direction_window_ms=section.get('opposite_direction_window_ms', 180000),
            logger=logger
        )

    def _window_for(self, previous: Event, new_event: Event) -> int:
        if previous.direction is new_event.direction:
            return self.same_direction_window_ms
        return self.opposite_direction_window_ms

    def check_duplicate(self, new_event: Event) -> DeduplicationResult:
        """Decide whether new_event repeats a recent event; record it if not"""
        relevant = [
            event for event in self.recent_events
            if abs(new_event.time_ms - event.time_ms) <= self._window_for(event, new_event)
        ]

        duplicate = next((e for e in relevant if e.plate == new_event.plate), None)
        if duplicate is not None:
            time_diff = abs(new_event.time_ms - duplicate.time_ms)
            self.logger.warning(
                f"Duplicate event detected for {new_event.plate!r}",
                extra={'data': {
                    'new_event_id': new_event.event_id,
                    'duplicate_event_id': duplicate.event_id,
                    'plate': new_event.plate,
                    'time_diff_s': time_diff / 1000,
                    'direction': new_event.direction.value
                }}
            )
            return DeduplicationResult(
                is_duplicate=True,
                reason=(
                    f"Duplicate plate detected within {round(time_diff / 1000)}s "
                    f"of event {duplicate.event_id}"
                ),
                previous_event=duplicate,
                time_diff_ms=time_diff
            )

        self._add_to_history(new_event)
        self.logger.debug(
            f"No duplicate found for {new_event.plate!r}",
            extra={'data': {
                'event_id': new_event.event_id,
                'plate': new_event.plate,
                'direction': new_event.direction.value,
                'checked_events': len(relevant)
            }}
        )
        return DeduplicationResult(is_duplicate=False, reason='No duplicate detected')

    def _add_to_history(self, event: Event) -> None:
        # deque(maxlen) drops the oldest entry once full
        self.recent_events.append(event)
        self.logger.debug(f"Added event {event.event_id} to history "
                          f"(size={len(self.recent_events)})")

    def get_recent_events(self, limit: int = 10) -> List[Event]:
        return list(self.recent_events)[-limit:]

    def get_events_by_plate(self, plate: str) -> List[Event]:
        return [e for e in self.recent_events if e.plate == plate]

    def get_events_by_direction(self, direction: Direction) -> List[Event]:
        return [e for e in self.recent_events if e.direction is direction]

    def get_statistics(self) -> Dict[str, Any]:
        events = list(self.recent_events)

        by_plate: Dict[str, List[int]] = {}
        for event in events:
            by_plate.setdefault(event.plate, []).append(event.time_ms)

        gaps = []
        for times in by_plate.values():
            times.sort()
            gaps.extend(b - a for a, b in zip(times, times[1:]))

        return {
            'total_events': len(events),
            'entry_events': len(self.get_events_by_direction(Direction.ENTRY)),
            'exit_events': len(self.get_events_by_direction(Direction.EXIT)),
            'unique_plates': len(by_plate),
            'avg_time_between_repeats': float(np.mean(gaps)) if gaps else 0
        }

    def clear_history(self) -> None:
        self.recent_events.clear()
        self.logger.info("History cleared")
