"""Priority and assignment models computed from the mirrored queue."""

from pydantic import BaseModel
from typing import Optional
from enum import Enum

from clinic_queue.models.queue import Doctor, QueueEntry
from clinic_queue.models.treatment import TreatmentProfile


class PriorityTier(str, Enum):
    """Coarse priority bucket derived from the priority weight."""

    CRITICAL = "Critical"  # weight >= 15
    HIGH = "High"  # weight >= 10
    MEDIUM = "Medium"  # weight >= 5
    NORMAL = "Normal"


class EffectivePriority(BaseModel):
    """Emergency signal merged from the queue entry and the treatment profile."""

    is_emergency: bool
    priority_weight: int
    priority_tier: PriorityTier

    class Config:
        frozen = True


class RankedEntry(BaseModel):
    """A waiting entry annotated with everything used to rank it."""

    entry: QueueEntry
    priority: EffectivePriority
    profile: TreatmentProfile

    class Config:
        frozen = True

    @property
    def queue_id(self) -> str:
        return self.entry.queue_id

    @property
    def emergency_note(self) -> str:
        if self.profile.emergency_note and self.profile.emergency_note != "Normal":
            return self.profile.emergency_note
        if self.priority.is_emergency:
            return "Emergency case detected"
        return "Normal"


class Assignment(BaseModel):
    """Advisory pairing of a ranked waiting entry with an available doctor.

    Nothing is reserved: the entry stays waiting until a status transition
    starts it.
    """

    ranked: RankedEntry
    doctor: Optional[Doctor] = None

    class Config:
        frozen = True

    @property
    def queue_id(self) -> str:
        return self.ranked.entry.queue_id
