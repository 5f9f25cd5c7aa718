"""Immutable, fully derived view of the queue for one synchronization cycle."""

from pydantic import BaseModel, Field
from typing import Dict, FrozenSet, List, Mapping, Optional
from datetime import datetime

from clinic_queue.models.priority import Assignment, RankedEntry
from clinic_queue.models.queue import Doctor, QueueEntry, QueueSnapshot, QueueStatus
from clinic_queue.models.treatment import TreatmentProfile
from clinic_queue.services.assignment_matcher import (
    available_doctors,
    next_for_consultation,
)
from clinic_queue.services.priority_resolver import (
    emergency_entries,
    profile_for,
    rank_waiting,
)


class QueueView(BaseModel):
    """Mirror of the remote queue plus everything derived from it.

    A new view is built every cycle and swapped in as a whole; nothing in it
    is mutated afterwards.
    """

    snapshot: QueueSnapshot = Field(default_factory=QueueSnapshot)
    profiles: Dict[str, TreatmentProfile] = Field(default_factory=dict)
    excluded_ids: FrozenSet[str] = frozenset()

    active_entries: List[QueueEntry] = Field(default_factory=list)
    ranked_waiting: List[RankedEntry] = Field(default_factory=list)
    available_doctors: List[Doctor] = Field(default_factory=list)
    next_for_consultation: List[Assignment] = Field(default_factory=list)
    emergency_patients: List[RankedEntry] = Field(default_factory=list)
    status_counts: Dict[str, int] = Field(default_factory=dict)
    built_at: datetime = Field(default_factory=datetime.utcnow)

    class Config:
        frozen = True

    @property
    def doctors(self) -> List[Doctor]:
        return self.snapshot.doctors

    @property
    def completed_count(self) -> int:
        return self.status_counts.get(QueueStatus.COMPLETED.value, 0)

    @property
    def in_progress_count(self) -> int:
        return self.status_counts.get(QueueStatus.IN_PROGRESS.value, 0)

    @property
    def current_patients(self) -> List[QueueEntry]:
        return [e for e in self.active_entries if e.status == QueueStatus.IN_PROGRESS]

    def get_entry(self, queue_id: str) -> Optional[QueueEntry]:
        """Entry by id from the raw mirror, active or not."""
        return self.snapshot.get_entry(queue_id)

    def is_active(self, queue_id: str) -> bool:
        return any(e.queue_id == queue_id for e in self.active_entries)

    def get_ranked(self, queue_id: str) -> Optional[RankedEntry]:
        for ranked in self.ranked_waiting:
            if ranked.queue_id == queue_id:
                return ranked
        return None

    def profile_for(self, entry: QueueEntry) -> TreatmentProfile:
        return profile_for(entry, self.profiles)

    def assigned_patients(self, doctor_id: str) -> List[QueueEntry]:
        """Active entries assigned to ``doctor_id`` (the doctor's worklist)."""
        return sorted(
            (e for e in self.active_entries if e.doctor_id == doctor_id),
            key=lambda e: e.queue_number,
        )


def count_by_status(entries: List[QueueEntry]) -> Dict[str, int]:
    counts = {"all": len(entries)}
    for status in QueueStatus:
        counts[status.value] = sum(1 for e in entries if e.status == status)
    return counts


def build_queue_view(
    snapshot: QueueSnapshot,
    profiles: Mapping[str, TreatmentProfile],
    excluded_ids: FrozenSet[str] = frozenset(),
) -> QueueView:
    """
    Derive the full view from a fetched snapshot.

    Args:
        snapshot: Queue entries and doctor roster from the backend
        profiles: Treatment profiles keyed by patient id
        excluded_ids: Queue ids that must never appear as active again

    Returns:
        QueueView
    """
    active = sorted(
        (
            entry
            for entry in snapshot.entries
            if not entry.is_checkup_completed and entry.queue_id not in excluded_ids
        ),
        key=lambda e: e.queue_number,
    )
    ranked = rank_waiting(active, profiles)
    # Availability considers every in-progress entry, active or not
    free = available_doctors(snapshot.doctors, snapshot.entries)

    return QueueView(
        snapshot=snapshot,
        profiles=dict(profiles),
        excluded_ids=frozenset(excluded_ids),
        active_entries=active,
        ranked_waiting=ranked,
        available_doctors=free,
        next_for_consultation=next_for_consultation(ranked, free),
        emergency_patients=emergency_entries(ranked),
        status_counts=count_by_status(active),
    )
