"""
Appointment Repositories.

Storage contract for appointments, partitioned by dietitian, plus the
in-memory backend used for local runs and tests. The Cosmos DB backend
lives in ``cosmos_store.py``.
"""

import logging
import threading
from abc import abstractmethod
from collections import defaultdict
from datetime import datetime
from typing import Any, Dict, List, Optional

from core.data import ConcurrencyConflict, QueryOptions, QueryResult, Repository, Snapshot
from use_cases.scheduling.domain import Appointment

logger = logging.getLogger(__name__)


def in_window(appointment: Appointment, start: Optional[datetime], end: Optional[datetime]) -> bool:
    """Whether the appointment starts inside [start, end)."""
    if start is not None and appointment.start < start:
        return False
    if end is not None and appointment.start >= end:
        return False
    return True


class AppointmentStore(Repository[Appointment]):
    """
    Repository of appointments keyed by (dietitian_id, appointment_id).

    ``snapshot`` returns every appointment of a dietitian together with a
    schedule version; ``save`` with that version commits only if no other
    write reached the schedule in between.
    """

    @abstractmethod
    def count(self, dietitian_id: str, options: Optional[QueryOptions] = None) -> int:
        """Number of appointments matching the options, ignoring pagination."""
        pass

    def between(self, dietitian_id: str, start: datetime, end: datetime) -> List[Appointment]:
        """Appointments starting in [start, end), ordered by start."""
        options = QueryOptions(limit=10_000, window_start=start, window_end=end)
        return self.find(dietitian_id, options).data


class InMemoryAppointmentStore(AppointmentStore):
    """Process-local store. A single lock guards every dietitian schedule."""

    def __init__(self):
        self._lock = threading.Lock()
        self._appointments: Dict[str, Dict[str, Appointment]] = defaultdict(dict)
        self._versions: Dict[str, int] = defaultdict(int)

    def get(self, partition_key: str, id: str) -> Optional[Appointment]:
        with self._lock:
            return self._appointments[partition_key].get(id)

    def _matching(self, dietitian_id: str, options: QueryOptions) -> List[Appointment]:
        status = options.filters.get("status")
        with self._lock:
            items = list(self._appointments[dietitian_id].values())
        items = [
            a for a in items
            if in_window(a, options.window_start, options.window_end)
            and (status is None or a.status == status)
        ]
        items.sort(key=lambda a: a.start, reverse=options.order_desc)
        return items

    def find(self, partition_key: str, options: Optional[QueryOptions] = None) -> QueryResult[Appointment]:
        options = options or QueryOptions()
        return QueryResult.paginate(self._matching(partition_key, options), options)

    def count(self, dietitian_id: str, options: Optional[QueryOptions] = None) -> int:
        return len(self._matching(dietitian_id, options or QueryOptions()))

    def snapshot(self, partition_key: str) -> Snapshot[Appointment]:
        with self._lock:
            return Snapshot(
                partition_key=partition_key,
                items=list(self._appointments[partition_key].values()),
                version=self._versions[partition_key],
            )

    def save(self, entity: Appointment, expected_version: Any = None) -> Appointment:
        dietitian_id = entity.dietitian_id
        with self._lock:
            if expected_version is not None and self._versions[dietitian_id] != expected_version:
                logger.info(f"Stale commit for dietitian {dietitian_id} at version {expected_version}")
                raise ConcurrencyConflict(dietitian_id, expected_version)
            self._appointments[dietitian_id][entity.id] = entity
            self._versions[dietitian_id] += 1
        return entity

    def delete(self, partition_key: str, id: str) -> bool:
        with self._lock:
            removed = self._appointments[partition_key].pop(id, None)
            if removed is not None:
                self._versions[partition_key] += 1
        return removed is not None
