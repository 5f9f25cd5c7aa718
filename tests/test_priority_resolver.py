# pylint: disable=missing-function-docstring
import random

import pytest

from clinic_queue.models.priority import PriorityTier
from clinic_queue.models.queue import QueueEntry
from clinic_queue.models.treatment import TreatmentProfile
from clinic_queue.services.priority_resolver import (
    consultation_sort_key,
    priority_tier,
    rank_waiting,
    resolve_priority,
    tier_counts,
)
from tests.factories import make_entry


def entry(queue_id, number, **kw) -> QueueEntry:
    return QueueEntry.model_validate(make_entry(queue_id, number, **kw))


@pytest.mark.parametrize(
    "weight,tier",
    [
        (0, PriorityTier.NORMAL),
        (4, PriorityTier.NORMAL),
        (5, PriorityTier.MEDIUM),
        (9, PriorityTier.MEDIUM),
        (10, PriorityTier.HIGH),
        (14, PriorityTier.HIGH),
        (15, PriorityTier.CRITICAL),
        (40, PriorityTier.CRITICAL),
    ],
)
def test_priority_tier_thresholds(weight, tier):
    assert priority_tier(weight) == tier


def test_resolve_priority_merges_flag_and_weight():
    e = entry("q1", 1, emergency_status=False, emergency_priority=4)
    profile = TreatmentProfile(is_emergency=True, emergency_priority=11)

    priority = resolve_priority(e, profile)

    assert priority.is_emergency is True
    assert priority.priority_weight == 11
    assert priority.priority_tier == PriorityTier.HIGH


def test_resolve_priority_keeps_entry_weight_when_higher():
    e = entry("q1", 1, emergency_status=True, emergency_priority=16)
    profile = TreatmentProfile(is_emergency=False, emergency_priority=6)

    priority = resolve_priority(e, profile)

    assert priority.is_emergency is True
    assert priority.priority_weight == 16
    assert priority.priority_tier == PriorityTier.CRITICAL


def test_resolve_priority_without_profile():
    priority = resolve_priority(entry("q1", 1))
    assert priority.is_emergency is False
    assert priority.priority_weight == 0
    assert priority.priority_tier == PriorityTier.NORMAL


def test_emergency_beats_heavier_non_emergency():
    entries = [
        entry("Q1", 1),
        entry("Q2", 5, emergency_status=True, emergency_priority=18),
        entry("Q3", 2, emergency_priority=12),
    ]
    ranked = rank_waiting(entries, {})
    assert [r.queue_id for r in ranked] == ["Q2", "Q3", "Q1"]


def test_profile_emergency_outranks_plain_entry():
    entries = [entry("a", 1), entry("b", 2)]
    profiles = {"patient-b": TreatmentProfile(is_emergency=True, emergency_priority=5)}
    ranked = rank_waiting(entries, profiles)
    assert [r.queue_id for r in ranked] == ["b", "a"]


def test_equal_priority_falls_back_to_queue_number():
    entries = [
        entry("late", 7, emergency_status=True, emergency_priority=10),
        entry("early", 3, emergency_status=True, emergency_priority=10),
    ]
    ranked = rank_waiting(entries, {})
    assert [r.entry.queue_number for r in ranked] == [3, 7]


def test_only_waiting_active_entries_are_ranked():
    entries = [
        entry("w", 1),
        entry("ip", 2, status="in-progress", doctor_id="d1"),
        entry("done", 3, status="completed", checkup_status="Completed"),
        entry("marked", 4, checkup_status="Completed"),
        entry("cx", 5, status="cancelled"),
    ]
    assert [r.queue_id for r in rank_waiting(entries, {})] == ["w"]


def test_ranking_is_a_strict_total_order():
    rng = random.Random(7)
    entries = [
        entry(
            f"q{n}",
            n,
            emergency_status=rng.random() < 0.3,
            emergency_priority=rng.choice([0, 5, 10, 15]),
        )
        for n in range(1, 40)
    ]
    shuffled = list(entries)
    rng.shuffle(shuffled)

    ranked = rank_waiting(shuffled, {})
    keys = [consultation_sort_key(r) for r in ranked]

    assert len(set(keys)) == len(keys)
    assert keys == sorted(keys)
    again = rank_waiting([r.entry for r in ranked], {})
    assert [r.queue_id for r in again] == [r.queue_id for r in ranked]
    assert [r.queue_id for r in rank_waiting(entries, {})] == [r.queue_id for r in ranked]


def test_tier_counts():
    entries = [
        entry("a", 1, emergency_priority=16),
        entry("b", 2, emergency_priority=11),
        entry("c", 3),
    ]
    counts = tier_counts(rank_waiting(entries, {}))
    assert counts == {"Critical": 1, "High": 1, "Medium": 0, "Normal": 1}
