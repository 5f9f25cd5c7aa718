"""Queue engine: wires the client, cache, synchronizer and mutator together."""

from pydantic import BaseModel
from typing import Optional
from datetime import datetime
import logging

from clinic_queue.services.notification_service import NotificationService
from clinic_queue.services.queue_mutator import QueueMutator
from clinic_queue.services.queue_synchronizer import QueueSynchronizer
from clinic_queue.services.queue_view import QueueView
from clinic_queue.services.treatment_cache import TreatmentProfileCache
from clinic_queue.tools.clinic_api import ClinicQueueClient

logger = logging.getLogger(__name__)


class EngineStatus(BaseModel):
    """Health of the synchronization loop."""

    running: bool
    cycle_in_flight: bool
    last_synced_at: Optional[datetime] = None
    last_error: Optional[str] = None
    cycles_succeeded: int
    cycles_failed: int
    ticks_dropped: int
    last_signal_sequence: int


class QueueEngine:
    """Front desk queue engine for one clinic session."""

    def __init__(
        self,
        client: Optional[ClinicQueueClient] = None,
        interval_seconds: Optional[float] = None,
        profile_concurrency: Optional[int] = None,
    ):
        self.client = client or ClinicQueueClient()
        self.notifications = NotificationService()
        self.profile_cache = TreatmentProfileCache(
            self.client, max_concurrency=profile_concurrency
        )
        self.synchronizer = QueueSynchronizer(
            self.client,
            self.profile_cache,
            self.notifications,
            interval_seconds=interval_seconds,
        )
        self.mutator = QueueMutator(self.client, self.synchronizer)

    @property
    def view(self) -> QueueView:
        return self.synchronizer.view

    def start(self) -> None:
        self.synchronizer.start()

    async def stop(self) -> None:
        await self.synchronizer.stop()

    def status(self) -> EngineStatus:
        state = self.synchronizer.state
        return EngineStatus(
            running=self.synchronizer.running,
            cycle_in_flight=self.synchronizer.cycle_in_flight,
            last_synced_at=state.last_synced_at,
            last_error=state.last_error,
            cycles_succeeded=self.synchronizer.cycles_succeeded,
            cycles_failed=self.synchronizer.cycles_failed,
            ticks_dropped=self.synchronizer.ticks_dropped,
            last_signal_sequence=self.notifications.last_sequence,
        )


# Global engine instance
_queue_engine: Optional[QueueEngine] = None


def get_queue_engine() -> QueueEngine:
    """Get or create the QueueEngine instance."""
    global _queue_engine
    if _queue_engine is None:
        _queue_engine = QueueEngine()
        logger.info("Queue engine created")
    return _queue_engine


def reset_queue_engine() -> None:
    """Forget the global engine (used on shutdown)."""
    global _queue_engine
    _queue_engine = None
