"""
Grade History — the append-only trust debt timeline.

Records go in, nothing comes out except reads. There is deliberately no
update or delete: a timeline you can rewrite is not evidence.

The persisted equivalent lives in RunService; this in-memory one serves
pipeline runs and tests.
"""

import logging
import threading
from typing import Optional

from intentguard.services.grading.models import GradeRecord, Trend

logger = logging.getLogger(__name__)

# Changes smaller than this (in units) count as stable
TREND_TOLERANCE = 1e-9


def compute_trend(records: list[GradeRecord]) -> Trend:
    """Compare the last two records: less debt = improving."""
    if len(records) < 2:
        return Trend.STABLE

    previous, latest = records[-2], records[-1]
    delta = latest.total_units - previous.total_units
    if delta < -TREND_TOLERANCE:
        return Trend.IMPROVING
    if delta > TREND_TOLERANCE:
        return Trend.DEGRADING
    return Trend.STABLE


class GradeHistory:
    """Append-only, thread-safe sequence of grade records."""

    def __init__(self):
        self._lock = threading.Lock()
        self._records: list[GradeRecord] = []

    def __len__(self) -> int:
        return len(self._records)

    def append(self, record: GradeRecord) -> None:
        with self._lock:
            self._records.append(record)
        logger.info(
            f"Recorded grade {record.grade.value} for '{record.subject}' "
            f"({len(self._records)} records in timeline)"
        )

    def timeline(self, subject: Optional[str] = None) -> tuple[GradeRecord, ...]:
        """Records in append order, optionally for one subject only."""
        with self._lock:
            records = list(self._records)
        if subject is not None:
            records = [r for r in records if r.subject == subject]
        return tuple(records)

    def latest(self, subject: Optional[str] = None) -> Optional[GradeRecord]:
        records = self.timeline(subject)
        return records[-1] if records else None

    def trend(self, subject: Optional[str] = None) -> Trend:
        return compute_trend(list(self.timeline(subject)))
