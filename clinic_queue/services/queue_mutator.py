"""Queue mutations issued against the clinic backend.

Every operation is "fire, then resynchronize": the request goes to the
backend, and a forced synchronization cycle follows so the mirror reflects
what the backend actually did. Local preconditions reject obviously invalid
requests before any round trip; everything else is decided by the backend and
its rejections are surfaced unchanged.
"""

from pydantic import BaseModel, Field
from typing import Any, Awaitable, Callable, List, Optional
from datetime import datetime
import asyncio
import logging

from clinic_queue.config.settings import settings
from clinic_queue.models.queue import (
    CHECKUP_COMPLETED,
    QueueEntry,
    QueueStatus,
    can_transition,
)
from clinic_queue.services.queue_synchronizer import CycleOutcome, QueueSynchronizer
from clinic_queue.tools.clinic_api import ClinicQueueClient
from clinic_queue.utils.errors import QueueRuleViolation, RemoteNotFoundError

logger = logging.getLogger(__name__)


class MutationResult(BaseModel):
    """Outcome of a queue mutation."""

    operation: str
    queue_id: Optional[str] = None
    message: str
    entries: List[QueueEntry] = Field(default_factory=list)
    resynced: bool = False


class QueueMutator:
    """Issues status transitions, repositioning and emergency bypass requests."""

    def __init__(self, client: ClinicQueueClient, synchronizer: QueueSynchronizer):
        self.client = client
        self.synchronizer = synchronizer
        # One mutation in flight per engine; keeps skips from racing each other
        self._lock = asyncio.Lock()

    def _require_entry(self, queue_id: str) -> QueueEntry:
        entry = self.synchronizer.view.get_entry(queue_id)
        if entry is None:
            raise RemoteNotFoundError(
                f"Queue entry {queue_id} not found", status_code=404
            )
        if not self.synchronizer.view.is_active(queue_id):
            raise QueueRuleViolation(
                f"Queue entry {queue_id} is no longer in the active queue"
            )
        return entry

    async def _resync(self) -> CycleOutcome:
        return await self.synchronizer.run_cycle()

    async def _round_trip(
        self, operation: str, call: Callable[[], Awaitable[Any]]
    ) -> Any:
        """Send one request and force a cycle afterwards, even on rejection."""
        async with self._lock:
            try:
                result = await call()
            except QueueRuleViolation as e:
                logger.info(f"{operation} rejected: {e.message}")
                await self._resync()
                raise
        logger.info(f"{operation} accepted by clinic backend")
        return result

    async def _finish(
        self,
        operation: str,
        message: str,
        queue_id: Optional[str] = None,
        entries: Optional[List[QueueEntry]] = None,
    ) -> MutationResult:
        outcome = await self._resync()
        return MutationResult(
            operation=operation,
            queue_id=queue_id,
            message=message,
            entries=entries or [],
            resynced=outcome.success,
        )

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def start_next(self) -> MutationResult:
        """
        Ask the backend to start the top-ranked waiting patients.

        Raises:
            QueueRuleViolation: No doctor is available, nobody is waiting, or
                the backend refused
        """
        view = self.synchronizer.view
        if not view.available_doctors:
            raise QueueRuleViolation("No available doctors")
        if not view.next_for_consultation:
            raise QueueRuleViolation("No patients waiting for consultation")

        started = await self._round_trip("start-queue", self.client.start_queue)
        return await self._finish(
            "start-queue",
            f"Started {len(started)} consultation(s)",
            entries=started,
        )

    async def set_status(
        self, queue_id: str, status: QueueStatus, doctor_id: Optional[str] = None
    ) -> MutationResult:
        """
        Transition one entry.

        Completing an entry also marks its checkup as completed. Starting one
        requires a doctor and records the start time.
        """
        if status == QueueStatus.IN_PROGRESS and not doctor_id:
            raise QueueRuleViolation("A doctor is required to start a consultation")
        entry = self._require_entry(queue_id)
        if not can_transition(entry.status, status):
            # The mirror may be a poll behind; judge against a fresh copy
            await self._resync()
            entry = self._require_entry(queue_id)
        if not can_transition(entry.status, status):
            raise QueueRuleViolation(
                f"Cannot change queue entry {queue_id} from "
                f"{entry.status.value} to {status.value}"
            )

        checkup_status = CHECKUP_COMPLETED if status == QueueStatus.COMPLETED else None
        returned = await self._round_trip(
            "update-queue-status",
            lambda: self.client.update_queue_status(
                queue_id, status, doctor_id=doctor_id, checkup_status=checkup_status
            ),
        )

        if returned is not None:
            local = returned
        else:
            update = {"status": status, "doctor_id": None}
            if status == QueueStatus.IN_PROGRESS:
                update.update(doctor_id=doctor_id, start_time=datetime.utcnow())
            local = entry.model_copy(update=update)
        if checkup_status and not local.is_checkup_completed:
            local = local.model_copy(update={"checkup_status": checkup_status})
        self.synchronizer.apply_local_update(local)

        return await self._finish(
            "update-queue-status",
            f"Queue entry {queue_id} is now {status.value}",
            queue_id=queue_id,
            entries=[local],
        )

    async def skip(self, queue_id: str, positions: Optional[int] = None) -> MutationResult:
        """Move a waiting entry ``positions`` places back among waiting entries."""
        if positions is None:
            positions = settings.default_skip_positions
        if positions < 1:
            raise QueueRuleViolation("Positions to skip must be at least 1")

        entry = self._require_entry(queue_id)
        if entry.status != QueueStatus.WAITING:
            raise QueueRuleViolation(f"Queue entry {queue_id} is not currently waiting")

        await self._round_trip(
            "skip-queue",
            lambda: self.client.skip_queue(
                queue_id, positions, expected_queue_number=entry.queue_number
            ),
        )
        return await self._finish(
            "skip-queue",
            f"Queue entry {queue_id} moved back {positions} position(s)",
            queue_id=queue_id,
        )

    async def prioritize(self, queue_id: str) -> MutationResult:
        """Place a waiting emergency patient at the front of the queue once."""
        ranked = self.synchronizer.view.get_ranked(queue_id)
        if ranked is None:
            raise QueueRuleViolation(f"Queue entry {queue_id} is not currently waiting")
        if not ranked.priority.is_emergency:
            raise QueueRuleViolation(
                f"Queue entry {queue_id} is not flagged as an emergency"
            )

        await self._round_trip(
            "prioritize-emergency-patient",
            lambda: self.client.prioritize_emergency_patient(queue_id),
        )
        return await self._finish(
            "prioritize-emergency-patient",
            f"Queue entry {queue_id} moved to the front of the queue",
            queue_id=queue_id,
        )

    async def send_to_emergency(self, queue_id: str) -> MutationResult:
        """Remove an entry from the active queue and route it to emergency."""
        entry = self._require_entry(queue_id)
        if entry.status in (QueueStatus.COMPLETED, QueueStatus.CANCELLED):
            raise QueueRuleViolation(
                f"Queue entry {queue_id} is already {entry.status.value}"
            )

        await self._round_trip(
            "send-to-emergency", lambda: self.client.send_to_emergency(queue_id)
        )
        self.synchronizer.exclude([queue_id])
        return await self._finish(
            "send-to-emergency",
            "Patient sent directly to emergency department",
            queue_id=queue_id,
        )

    async def refresh_emergency_statuses(self) -> MutationResult:
        """Have the backend recompute emergency flags, then resynchronize."""
        await self._round_trip(
            "update-emergency-statuses", self.client.update_emergency_statuses
        )
        return await self._finish(
            "update-emergency-statuses", "Emergency statuses recomputed"
        )
