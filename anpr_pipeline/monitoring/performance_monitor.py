# anpr_pipeline/monitoring/performance_monitor.py
from typing import Dict, Any, List
import time
import numpy as np
import logging

logger = logging.getLogger(__name__)


class PerformanceMonitor:
    """Monitors and tracks pipeline throughput metrics"""

    def __init__(self, window_size: int = 30):
        self.window_size = window_size
        self.track_counts: List[int] = []
        self.cycle_times: List[float] = []
        self.start_time = time.time()
        self.frames_processed = 0
        self.events_emitted = 0
        self.duplicates_suppressed = 0
        self.rejected_sessions = 0
        logger.info("Initialized PerformanceMonitor")

    def update_metrics(self, num_tracks: int, cycle_seconds: float) -> None:
        """Record one processed frame cycle"""
        self.frames_processed += 1
        self.track_counts.append(num_tracks)
        self.cycle_times.append(cycle_seconds)

        if len(self.track_counts) > self.window_size:
            self.track_counts.pop(0)
        if len(self.cycle_times) > self.window_size:
            self.cycle_times.pop(0)

    def record_event(self, duplicate: bool) -> None:
        if duplicate:
            self.duplicates_suppressed += 1
        else:
            self.events_emitted += 1

    def record_rejection(self) -> None:
        """A finalized session that produced no valid plate"""
        self.rejected_sessions += 1

    def get_statistics(self) -> Dict[str, Any]:
        """Get current performance statistics"""
        elapsed_time = time.time() - self.start_time

        stats = {
            'elapsed_time': elapsed_time,
            'frames_processed': self.frames_processed,
            'events_emitted': self.events_emitted,
            'duplicates_suppressed': self.duplicates_suppressed,
            'rejected_sessions': self.rejected_sessions,
            'avg_active_tracks': float(np.mean(self.track_counts)) if self.track_counts else 0,
            'avg_cycle_ms': float(np.mean(self.cycle_times)) * 1000 if self.cycle_times else 0,
            'fps': self.frames_processed / elapsed_time if elapsed_time > 0 else 0
        }

        logger.debug(f"Performance stats: {stats}")
        return stats
