# anpr_pipeline/monitoring/trace_log.py
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Deque, Dict, List, Any, Optional
import logging


@dataclass
class TraceRecord:
    timestamp: float
    module: str
    message: str
    level: str
    data: Dict[str, Any] = field(default_factory=dict)


class TraceLogHandler(logging.Handler):
    """Keeps the most recent log records in memory for inspection panels"""

    def __init__(self, max_records: int = 1000, level: int = logging.DEBUG):
        super().__init__(level)
        self.max_records = max_records
        self.records: Deque[TraceRecord] = deque(maxlen=max_records)

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self.records.append(TraceRecord(
                timestamp=record.created,
                module=record.name,
                message=record.getMessage(),
                level=record.levelname.lower(),
                data=dict(getattr(record, 'data', None) or {})
            ))
        except Exception:
            self.handleError(record)

    def get_logs(self, module: Optional[str] = None,
                 level: Optional[str] = None) -> List[TraceRecord]:
        return [
            r for r in self.records
            if (module is None or r.module == module) and (level is None or r.level == level)
        ]

    def get_recent_logs(self, count: int = 50) -> List[TraceRecord]:
        return list(self.records)[-count:]

    def get_logs_by_module(self) -> Dict[str, List[TraceRecord]]:
        grouped: Dict[str, List[TraceRecord]] = {}
        for record in self.records:
            grouped.setdefault(record.module, []).append(record)
        return grouped

    def clear(self) -> None:
        self.records.clear()

    def export_report(self) -> Dict[str, Any]:
        """Summary of the buffered records by level and module"""
        records = list(self.records)
        by_level = {'debug': 0, 'info': 0, 'warning': 0, 'error': 0}
        by_module: Dict[str, int] = {}
        for record in records:
            by_level[record.level] = by_level.get(record.level, 0) + 1
            by_module[record.module] = by_module.get(record.module, 0) + 1

        start = records[0].timestamp if records else 0
        end = records[-1].timestamp if records else 0
        return {
            'summary': {
                'total_logs': len(records),
                'by_level': by_level,
                'by_module': by_module
            },
            'logs': [r.__dict__ for r in records],
            'timeline': {
                'start_time': start,
                'end_time': end,
                'duration': end - start
            }
        }

    @staticmethod
    def format_record(record: TraceRecord) -> str:
        time_str = datetime.fromtimestamp(record.timestamp).strftime('%H:%M:%S.%f')[:-3]
        return f"{time_str} {record.level.upper():<7} [{record.module}] {record.message}"
