"""
User-submitted incident reports.

The log only ever grows. Expiry is applied when reading: ``recent`` hides
anything older than the visibility window but never removes it.
"""
from __future__ import annotations

import enum
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Union

from .exceptions import InvalidKind
from .geo import Coordinate

DEFAULT_WINDOW = timedelta(hours=1)


class ReportKind(enum.Enum):
    TRAFFIC = "TRAFFIC"
    ACCIDENT = "ACCIDENT"
    OTHER = "OTHER"

    @classmethod
    def parse(cls, value: Union["ReportKind", str]) -> "ReportKind":
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise InvalidKind(value) from None


@dataclass(frozen=True)
class Report:
    id: str
    kind: ReportKind
    position: Coordinate
    description: str
    created_at: datetime

    def as_dict(self) -> Dict:
        return {
            "id": self.id,
            "type": self.kind.value,
            "location": self.position.as_dict(),
            "description": self.description,
            "timestamp": int(self.created_at.timestamp() * 1000),
        }


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ReportLog:
    def __init__(
        self,
        clock: Optional[Callable[[], datetime]] = None,
        window: timedelta = DEFAULT_WINDOW,
        id_factory: Optional[Callable[[], str]] = None,
    ):
        self.clock = clock or _utcnow
        self.window = window
        self.id_factory = id_factory or (lambda: str(uuid.uuid4()))
        self._reports: List[Report] = []
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._reports)

    def append(
        self,
        kind: Union[ReportKind, str],
        position: Coordinate,
        description: str,
    ) -> Report:
        report = Report(
            id=self.id_factory(),
            kind=ReportKind.parse(kind),
            position=position,
            description=description,
            created_at=self.clock(),
        )
        with self._lock:
            self._reports.append(report)
        return report

    def recent(self, now: Optional[datetime] = None) -> List[Report]:
        """Reports younger than the window at ``now``; naive times are read as UTC."""
        now = now or self.clock()
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        with self._lock:
            reports = list(self._reports)
        return [report for report in reports if now - report.created_at < self.window]
