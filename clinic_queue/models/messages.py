"""API request and response models."""

from pydantic import BaseModel, Field
from typing import Optional, List, Dict
from datetime import datetime

from clinic_queue.models.notifications import SignalEvent
from clinic_queue.models.priority import PriorityTier
from clinic_queue.models.queue import QueueStatus


class StatusUpdateRequest(BaseModel):
    """Request to transition one queue entry."""

    queue_id: str = Field(..., description="Queue entry ID")
    status: QueueStatus
    doctor_id: Optional[str] = Field(
        None, description="Required when status is in-progress"
    )


class SkipRequest(BaseModel):
    """Request to move a waiting entry back in the queue."""

    queue_id: str
    positions: Optional[int] = Field(None, ge=1, le=50)


class QueueActionRequest(BaseModel):
    """Request that only identifies a queue entry."""

    queue_id: str


class QueueEntryResponse(BaseModel):
    """Queue entry with its merged priority signal."""

    queue_id: str
    patient_id: Optional[str] = None
    patient_name: str
    queue_number: int
    status: QueueStatus
    doctor_id: Optional[str] = None
    start_time: Optional[datetime] = None
    is_emergency: bool = False
    priority_weight: int = 0
    priority_tier: PriorityTier = PriorityTier.NORMAL
    treatment_count_28_days: int = 0
    emergency_note: str = "Normal"
    profile_available: bool = True


class DoctorResponse(BaseModel):
    doctor_id: str
    name: str
    specialization: Optional[str] = None
    available: bool


class AssignmentResponse(BaseModel):
    """Advisory pairing shown as "next for consultation"."""

    entry: QueueEntryResponse
    doctor: Optional[DoctorResponse] = None


class QueueOverviewResponse(BaseModel):
    """Everything the front desk screen needs for one refresh."""

    synced_at: Optional[datetime] = None
    last_error: Optional[str] = None
    status_counts: Dict[str, int] = Field(default_factory=dict)
    tier_counts: Dict[str, int] = Field(default_factory=dict)
    entries: List[QueueEntryResponse] = Field(default_factory=list)
    waiting: List[QueueEntryResponse] = Field(default_factory=list)
    next_for_consultation: List[AssignmentResponse] = Field(default_factory=list)
    emergency_patients: List[QueueEntryResponse] = Field(default_factory=list)
    current_patients: List[QueueEntryResponse] = Field(default_factory=list)
    doctors: List[DoctorResponse] = Field(default_factory=list)
    available_doctor_count: int = 0


class DoctorPatientsResponse(BaseModel):
    doctor_id: str
    patients: List[QueueEntryResponse]


class SignalFeedResponse(BaseModel):
    last_sequence: int
    events: List[SignalEvent]
