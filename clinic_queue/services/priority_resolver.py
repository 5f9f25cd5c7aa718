"""Priority resolution for waiting patients.

The queue entry carries an explicit emergency flag and weight set by the
clinic backend; the treatment profile carries a flag and weight inferred from
the patient's recent treatment history. ``resolve_priority`` is the one place
both sources are merged.
"""

from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from clinic_queue.models.priority import EffectivePriority, PriorityTier, RankedEntry
from clinic_queue.models.queue import QueueEntry, QueueStatus
from clinic_queue.models.treatment import EMPTY_PROFILE, TreatmentProfile


# Lower bounds (inclusive) of each tier, highest first
TIER_THRESHOLDS: Tuple[Tuple[int, PriorityTier], ...] = (
    (15, PriorityTier.CRITICAL),
    (10, PriorityTier.HIGH),
    (5, PriorityTier.MEDIUM),
)


def priority_tier(weight: int) -> PriorityTier:
    """Map a priority weight to its tier."""
    for threshold, tier in TIER_THRESHOLDS:
        if weight >= threshold:
            return tier
    return PriorityTier.NORMAL


def resolve_priority(
    entry: QueueEntry, profile: Optional[TreatmentProfile] = None
) -> EffectivePriority:
    """
    Merge the entry-level and profile-level emergency signals.

    Args:
        entry: Queue entry with the backend's explicit flag and weight
        profile: Treatment profile for the entry's patient, if any

    Returns:
        EffectivePriority with the OR of both flags and the max of both weights
    """
    profile = profile or EMPTY_PROFILE
    weight = max(entry.emergency_priority, profile.emergency_priority)
    return EffectivePriority(
        is_emergency=entry.emergency_status or profile.is_emergency,
        priority_weight=weight,
        priority_tier=priority_tier(weight),
    )


def consultation_sort_key(ranked: RankedEntry) -> Tuple[bool, int, int]:
    """Emergencies first, then heavier weight, then earlier arrival."""
    return (
        not ranked.priority.is_emergency,
        -ranked.priority.priority_weight,
        ranked.entry.queue_number,
    )


def profile_for(
    entry: QueueEntry, profiles: Mapping[str, TreatmentProfile]
) -> TreatmentProfile:
    if not entry.patient_id:
        return EMPTY_PROFILE
    return profiles.get(entry.patient_id, EMPTY_PROFILE)


def is_rankable(entry: QueueEntry) -> bool:
    """Only waiting entries that are not checkup-completed compete for a doctor."""
    return entry.status == QueueStatus.WAITING and not entry.is_checkup_completed


def rank_waiting(
    entries: Iterable[QueueEntry], profiles: Mapping[str, TreatmentProfile]
) -> List[RankedEntry]:
    """
    Annotate and order every rankable entry for consultation.

    The order is total because queue numbers are unique, so sorting the same
    input always yields the same list.
    """
    ranked = []
    for entry in entries:
        if not is_rankable(entry):
            continue
        profile = profile_for(entry, profiles)
        ranked.append(
            RankedEntry(
                entry=entry,
                priority=resolve_priority(entry, profile),
                profile=profile,
            )
        )
    ranked.sort(key=consultation_sort_key)
    return ranked


def emergency_entries(ranked: Iterable[RankedEntry]) -> List[RankedEntry]:
    """Ranked entries whose merged signal marks them as emergencies."""
    return [r for r in ranked if r.priority.is_emergency]


def tier_counts(ranked: Iterable[RankedEntry]) -> Dict[str, int]:
    counts = {tier.value: 0 for tier in PriorityTier}
    for r in ranked:
        counts[r.priority.priority_tier.value] += 1
    return counts
