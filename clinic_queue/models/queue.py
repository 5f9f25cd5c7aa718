"""Queue entry and doctor schemas mirrored from the clinic backend."""

from pydantic import AliasChoices, BaseModel, Field, model_validator
from typing import Optional, List, Dict, FrozenSet
from datetime import datetime
from enum import Enum


CHECKUP_COMPLETED = "Completed"


class QueueStatus(str, Enum):
    """Lifecycle status of a queue entry."""

    WAITING = "waiting"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# Allowed status transitions. completed and cancelled are absorbing.
# Emergency bypass is handled out-of-band and is not part of this table.
ALLOWED_TRANSITIONS: Dict[QueueStatus, FrozenSet[QueueStatus]] = {
    QueueStatus.WAITING: frozenset({QueueStatus.IN_PROGRESS, QueueStatus.CANCELLED}),
    QueueStatus.IN_PROGRESS: frozenset({QueueStatus.COMPLETED, QueueStatus.WAITING}),
    QueueStatus.COMPLETED: frozenset(),
    QueueStatus.CANCELLED: frozenset(),
}


def can_transition(current: QueueStatus, target: QueueStatus) -> bool:
    """Return True if ``current -> target`` is a legal status transition."""
    return target in ALLOWED_TRANSITIONS[current]


class QueueEntry(BaseModel):
    """One patient's presence in today's queue."""

    queue_id: str = Field(validation_alias=AliasChoices("queue_id", "queueId", "id"))
    patient_id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("userID", "patient_id", "patientId")
    )
    patient_name: str = Field(
        default="Unknown", validation_alias=AliasChoices("patient_name", "patientName")
    )
    queue_number: int = Field(
        validation_alias=AliasChoices("queue_number", "queueNumber")
    )
    status: QueueStatus = QueueStatus.WAITING
    doctor_id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("doctor_id", "doctorId")
    )
    start_time: Optional[datetime] = Field(
        default=None, validation_alias=AliasChoices("start_time", "startTime")
    )
    checkup_status: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("checkup_status", "checkupStatus")
    )
    emergency_status: bool = Field(
        default=False,
        validation_alias=AliasChoices("emergency_status", "emergencyStatus"),
    )
    emergency_priority: int = Field(
        default=0,
        validation_alias=AliasChoices("emergency_priority", "emergencyPriority"),
    )

    class Config:
        frozen = True
        populate_by_name = True

    @model_validator(mode="before")
    @classmethod
    def _coerce_wire_values(cls, data):
        # The backend sends numeric ids and nullable flags/priorities.
        if not isinstance(data, dict):
            return data
        data = dict(data)
        for key in ("queue_id", "queueId", "id", "userID", "patient_id",
                    "patientId", "doctor_id", "doctorId"):
            if data.get(key) is not None:
                data[key] = str(data[key])
        for key in ("emergency_status", "emergencyStatus"):
            if key in data and data[key] is None:
                data[key] = False
        for key in ("emergency_priority", "emergencyPriority"):
            if key in data and data[key] is None:
                data[key] = 0
        # Blank names and statuses fall back to the field defaults
        for key in ("patient_name", "patientName", "status"):
            if key in data and data[key] in (None, ""):
                data.pop(key)
        return data

    @property
    def is_checkup_completed(self) -> bool:
        return self.checkup_status == CHECKUP_COMPLETED


class Doctor(BaseModel):
    """A clinician on duty today. Availability is derived, never stored."""

    doctor_id: str = Field(
        validation_alias=AliasChoices("userID", "doctor_id", "doctorId", "id")
    )
    name: str = "Unknown"
    specialization: Optional[str] = None

    class Config:
        frozen = True
        populate_by_name = True

    @model_validator(mode="before")
    @classmethod
    def _coerce_wire_values(cls, data):
        if not isinstance(data, dict):
            return data
        data = dict(data)
        for key in ("userID", "doctor_id", "doctorId", "id"):
            if data.get(key) is not None:
                data[key] = str(data[key])
        if not data.get("name"):
            full_name = " ".join(
                part for part in (data.get("first_name"), data.get("last_name")) if part
            )
            if full_name:
                data["name"] = full_name
        return data


class QueueSnapshot(BaseModel):
    """Queue and doctor roster as fetched in one synchronization cycle."""

    entries: List[QueueEntry] = Field(default_factory=list)
    doctors: List[Doctor] = Field(default_factory=list)
    fetched_at: datetime = Field(default_factory=datetime.utcnow)

    class Config:
        frozen = True

    def patient_ids(self) -> List[str]:
        """Distinct patient identities present in the queue, in arrival order."""
        seen = []
        for entry in sorted(self.entries, key=lambda e: e.queue_number):
            if entry.patient_id and entry.patient_id not in seen:
                seen.append(entry.patient_id)
        return seen

    def get_entry(self, queue_id: str) -> Optional[QueueEntry]:
        for entry in self.entries:
            if entry.queue_id == queue_id:
                return entry
        return None

    def replace_entry(self, updated: QueueEntry) -> "QueueSnapshot":
        """Return a new snapshot with ``updated`` swapped in for its queue_id."""
        entries = [
            updated if entry.queue_id == updated.queue_id else entry
            for entry in self.entries
        ]
        return self.model_copy(update={"entries": entries})
