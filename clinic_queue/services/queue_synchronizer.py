"""Queue synchronizer: polls the clinic backend and keeps the local mirror current.

Each cycle fetches the queue and doctor roster, refreshes treatment profiles,
rebuilds the QueueView and compares this cycle's counters with the previous
cycle's to decide which notification signals to raise. The view and the
counters live in one immutable SyncState that is replaced in a single
assignment, so readers never observe a half-updated mirror.

Only one cycle runs at a time. Periodic ticks that find a cycle in flight are
dropped; on-demand cycles (after a mutation) wait for it and then run.
"""

from pydantic import BaseModel, Field
from typing import FrozenSet, Iterable, List, Optional
from datetime import datetime
import asyncio
import logging

from clinic_queue.config.settings import settings
from clinic_queue.models.notifications import NotificationSignal
from clinic_queue.models.queue import QueueEntry, QueueSnapshot
from clinic_queue.services.notification_service import NotificationService
from clinic_queue.services.queue_view import QueueView, build_queue_view
from clinic_queue.services.treatment_cache import TreatmentProfileCache
from clinic_queue.tools.clinic_api import ClinicQueueClient
from clinic_queue.utils.errors import AuthorizationError, ClinicQueueError

logger = logging.getLogger(__name__)

ALL_PROFILES_UNAVAILABLE = "Treatment data is temporarily unavailable for all patients"


class CycleCounters(BaseModel):
    """Counts over active entries used for notification deltas."""

    completed: int = 0
    in_progress: int = 0

    class Config:
        frozen = True

    @classmethod
    def from_view(cls, view: QueueView) -> "CycleCounters":
        return cls(completed=view.completed_count, in_progress=view.in_progress_count)


def detect_signals(
    previous: CycleCounters, current: CycleCounters
) -> List[NotificationSignal]:
    """
    Compare two consecutive cycles and return the signals to raise.

    - completed count strictly increased -> one CONSULTATION_COMPLETED
    - in-progress count strictly increased from exactly 0 -> one CONSULTATION_STARTED

    Both counters start at zero, so the first successful cycle is compared
    against an empty queue like any other.
    """
    signals = []
    if current.completed > previous.completed:
        signals.append(NotificationSignal.CONSULTATION_COMPLETED)
    if current.in_progress > previous.in_progress and previous.in_progress == 0:
        signals.append(NotificationSignal.CONSULTATION_STARTED)
    return signals


class SyncState(BaseModel):
    """Everything the synchronizer owns, replaced wholesale each cycle."""

    view: QueueView = Field(default_factory=QueueView)
    counters: CycleCounters = Field(default_factory=CycleCounters)
    excluded_ids: FrozenSet[str] = frozenset()
    last_synced_at: Optional[datetime] = None
    last_error: Optional[str] = None

    class Config:
        frozen = True


class CycleOutcome(BaseModel):
    """What one cycle did."""

    success: bool
    discarded: bool = False
    error: Optional[str] = None
    signals: List[NotificationSignal] = Field(default_factory=list)


class QueueSynchronizer:
    """Owns the mirrored queue state and the periodic polling driver."""

    def __init__(
        self,
        client: ClinicQueueClient,
        profile_cache: TreatmentProfileCache,
        notifications: NotificationService,
        interval_seconds: Optional[float] = None,
    ):
        self.client = client
        self.profile_cache = profile_cache
        self.notifications = notifications
        self.interval_seconds = interval_seconds or settings.sync_interval_seconds

        self._state = SyncState()
        self._lock = asyncio.Lock()
        self._driver: Optional[asyncio.Task] = None
        self._inflight: Optional[asyncio.Task] = None
        self._closed = False

        self.cycles_succeeded = 0
        self.cycles_failed = 0
        self.ticks_dropped = 0

    # ------------------------------------------------------------------
    # State access
    # ------------------------------------------------------------------

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def view(self) -> QueueView:
        return self._state.view

    @property
    def cycle_in_flight(self) -> bool:
        return self._lock.locked()

    @property
    def running(self) -> bool:
        return self._driver is not None and not self._driver.done()

    def _replace_state(self, **changes) -> SyncState:
        self._state = self._state.model_copy(update=changes)
        return self._state

    def apply_local_update(self, entry: QueueEntry) -> None:
        """Optimistically reflect a confirmed write until the next cycle lands."""
        state = self._state
        snapshot = state.view.snapshot.replace_entry(entry)
        excluded = state.excluded_ids
        if entry.is_checkup_completed:
            excluded = excluded | {entry.queue_id}
        self._replace_state(
            view=build_queue_view(snapshot, state.view.profiles, excluded),
            excluded_ids=excluded,
        )

    def exclude(self, queue_ids: Iterable[str]) -> None:
        """Permanently drop entries from active views (e.g. routed to emergency)."""
        state = self._state
        excluded = state.excluded_ids | frozenset(queue_ids)
        self._replace_state(
            view=build_queue_view(state.view.snapshot, state.view.profiles, excluded),
            excluded_ids=excluded,
        )

    # ------------------------------------------------------------------
    # Cycles
    # ------------------------------------------------------------------

    async def run_cycle(self) -> CycleOutcome:
        """Run one cycle now, waiting for any cycle already in flight."""
        async with self._lock:
            return await self._cycle()

    async def _cycle(self) -> CycleOutcome:
        started = datetime.utcnow()
        try:
            snapshot: QueueSnapshot = await self.client.get_today_queue()
            batch = await self.profile_cache.refresh(snapshot.patient_ids())
        except AuthorizationError as e:
            self.cycles_failed += 1
            self._replace_state(last_error=e.message)
            raise
        except ClinicQueueError as e:
            self.cycles_failed += 1
            logger.warning(f"Sync cycle failed, keeping last good mirror: {e.message}")
            self._replace_state(last_error=e.message)
            return CycleOutcome(success=False, error=e.message)

        if self._closed:
            logger.info("Synchronizer stopped during cycle - discarding result")
            return CycleOutcome(success=False, discarded=True)

        # Read at commit time so local exclusions made during the fetch survive
        state = self._state
        excluded = state.excluded_ids | {
            e.queue_id for e in snapshot.entries if e.is_checkup_completed
        }
        view = build_queue_view(snapshot, batch.profiles, excluded)
        counters = CycleCounters.from_view(view)
        signals = detect_signals(state.counters, counters)

        self._state = SyncState(
            view=view,
            counters=counters,
            excluded_ids=excluded,
            last_synced_at=snapshot.fetched_at,
            last_error=ALL_PROFILES_UNAVAILABLE if batch.all_failed else None,
        )
        self.cycles_succeeded += 1

        elapsed = (datetime.utcnow() - started).total_seconds()
        logger.info(
            f"Sync cycle done in {elapsed:.2f}s: {len(view.active_entries)} active, "
            f"{len(view.ranked_waiting)} waiting, "
            f"{len(view.available_doctors)} doctors free"
        )

        for signal in signals:
            await self.notifications.emit(signal)
        return CycleOutcome(success=True, signals=signals)

    # ------------------------------------------------------------------
    # Periodic driver
    # ------------------------------------------------------------------

    def tick(self) -> bool:
        """
        Periodic trigger.

        Returns:
            True if a cycle was started, False if dropped because one is in flight
        """
        if self._lock.locked() or (self._inflight and not self._inflight.done()):
            self.ticks_dropped += 1
            logger.debug("Sync tick dropped - cycle already in flight")
            return False
        self._inflight = asyncio.create_task(self._run_in_background())
        return True

    async def _run_in_background(self) -> None:
        try:
            await self.run_cycle()
        except AuthorizationError as e:
            logger.warning(f"Sync cycle not authorized: {e.message}")
        except Exception as e:
            logger.error(f"Unexpected sync cycle error: {e}", exc_info=True)

    async def _drive(self) -> None:
        logger.info(f"Queue sync driver started (every {self.interval_seconds}s)")
        while not self._closed:
            self.tick()
            await asyncio.sleep(self.interval_seconds)

    def start(self) -> None:
        """Start the periodic driver (first tick fires immediately)."""
        if self.running:
            return
        self._closed = False
        self._driver = asyncio.create_task(self._drive())

    async def stop(self) -> None:
        """
        Stop issuing cycles.

        A cycle already in flight is left to finish and its result discarded.
        """
        self._closed = True
        if self._driver is not None:
            self._driver.cancel()
            try:
                await self._driver
            except asyncio.CancelledError:
                pass
            self._driver = None
        logger.info("Queue sync driver stopped")
