"""Append-only deployment history."""

from __future__ import annotations
from datetime import datetime, timezone
from typing import Iterable, List, Mapping, Optional
import threading

from ..contracts.lifecycle_contracts import DeploymentHistoryEntry, DeploymentType


class DeploymentHistoryLog:
    """
    Records every successful deployment.

    Entries are never modified or removed. The sequence counter orders
    entries that share a timestamp.
    """

    def __init__(self):
        self._entries: List[DeploymentHistoryEntry] = []
        self._sequence: int = 0
        self._lock = threading.Lock()

    def record(
        self,
        version_id: str,
        deployment_type: DeploymentType,
        timestamp: Optional[datetime] = None,
    ) -> DeploymentHistoryEntry:
        with self._lock:
            entry = DeploymentHistoryEntry(
                version_id=version_id,
                deployment_type=deployment_type,
                timestamp=timestamp or datetime.now(timezone.utc),
                sequence=self._sequence,
            )
            self._entries.append(entry)
            self._sequence += 1
            return entry

    def get_entries(
        self,
        deployment_type: Optional[DeploymentType] = None,
    ) -> List[DeploymentHistoryEntry]:
        with self._lock:
            entries = list(self._entries)
        if deployment_type is not None:
            entries = [e for e in entries if e.deployment_type is deployment_type]
        return entries

    def newest_first(
        self,
        deployment_type: Optional[DeploymentType] = None,
    ) -> List[DeploymentHistoryEntry]:
        return sorted(
            self.get_entries(deployment_type),
            key=lambda e: (e.timestamp, e.sequence),
            reverse=True,
        )

    @property
    def entry_count(self) -> int:
        return len(self._entries)

    def export(self) -> list:
        return [entry.to_dict() for entry in self.get_entries()]

    def load(self, entries: Iterable[Mapping]):
        """Replace the log with exported entries, continuing their sequence."""
        decoded = [DeploymentHistoryEntry.from_dict(data) for data in entries]
        with self._lock:
            self._entries = decoded
            self._sequence = max((e.sequence for e in decoded), default=-1) + 1
