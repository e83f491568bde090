"""
Failure reporting sink.

Ingestion and classification failures are isolated per report or per
start, so they never propagate far enough to show up anywhere on their
own. Everything that gets dropped is reported here: logged, and counted
per kind for the status endpoint.
"""

import logging
import threading
import time
from collections import Counter
from dataclasses import dataclass
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FailureReport:
    """A single reported failure."""
    kind: str
    message: str
    aircraft_id: Optional[str]
    reported_at: float


class ErrorSink:
    """
    Thread-safe failure counter with a short memory of recent reports.

    Kinds in use:
        invalid_report           malformed beacon or position report
        store_unavailable        store failure while tracking a report
        classification_failed    classification dropped after retries
        classification_abandoned classification still pending at shutdown
    """

    def __init__(self, keep_recent: int = 50):
        self._counts: Counter = Counter()
        self._recent: List[FailureReport] = []
        self._keep_recent = keep_recent
        self._lock = threading.Lock()

    def report(
        self,
        kind: str,
        message: str,
        aircraft_id: Optional[str] = None,
    ) -> None:
        entry = FailureReport(
            kind=kind,
            message=message,
            aircraft_id=aircraft_id,
            reported_at=time.time(),
        )
        with self._lock:
            self._counts[kind] += 1
            self._recent.append(entry)
            if len(self._recent) > self._keep_recent:
                del self._recent[0]

        if aircraft_id:
            logger.warning(f'{kind} [{aircraft_id}]: {message}')
        else:
            logger.warning(f'{kind}: {message}')

    def count(self, kind: str) -> int:
        with self._lock:
            return self._counts[kind]

    def recent(self) -> List[FailureReport]:
        with self._lock:
            return list(self._recent)

    @property
    def stats(self) -> Dict[str, int]:
        """Failure counts by kind."""
        with self._lock:
            return dict(self._counts)
