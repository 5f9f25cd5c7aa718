"""Matching of available doctors to the next ranked waiting patients."""

from typing import Iterable, List, Sequence, Set

from clinic_queue.models.priority import Assignment, RankedEntry
from clinic_queue.models.queue import Doctor, QueueEntry, QueueStatus


def busy_doctor_ids(entries: Iterable[QueueEntry]) -> Set[str]:
    """Doctors currently holding an in-progress consultation."""
    return {
        entry.doctor_id
        for entry in entries
        if entry.status == QueueStatus.IN_PROGRESS and entry.doctor_id
    }


def available_doctors(
    doctors: Sequence[Doctor], entries: Iterable[QueueEntry]
) -> List[Doctor]:
    """Doctors on duty with no in-progress consultation, in roster order."""
    busy = busy_doctor_ids(entries)
    return [doctor for doctor in doctors if doctor.doctor_id not in busy]


def next_for_consultation(
    ranked_waiting: Sequence[RankedEntry], available: Sequence[Doctor]
) -> List[Assignment]:
    """
    Pair the top ranked waiting entries with available doctors.

    Args:
        ranked_waiting: Waiting entries already in consultation order
        available: Doctors currently free

    Returns:
        ``min(len(available), len(ranked_waiting))`` advisory assignments.
        Empty when no doctor is free. Pure: same inputs, same list.
    """
    capacity = len(available)
    if capacity == 0:
        return []
    return [
        Assignment(ranked=ranked, doctor=doctor)
        for ranked, doctor in zip(ranked_waiting[:capacity], available)
    ]
