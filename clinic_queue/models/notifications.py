"""Notification signals raised by the queue synchronizer."""

from pydantic import BaseModel, Field
from datetime import datetime
from enum import Enum


class NotificationSignal(str, Enum):
    """Trigger signals consumed by the front desk (e.g. to play a chime)."""

    CONSULTATION_COMPLETED = "consultation_completed"
    CONSULTATION_STARTED = "consultation_started"


class SignalEvent(BaseModel):
    """A signal as recorded in the feed, with a monotonically increasing sequence."""

    sequence: int
    signal: NotificationSignal
    emitted_at: datetime = Field(default_factory=datetime.utcnow)
