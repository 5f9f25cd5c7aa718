"""Front desk queue API endpoints.

Read endpoints serve the engine's current mirror; they never call the clinic
backend. Write endpoints forward to the queue mutator, which round-trips to
the backend and then resynchronizes.
"""

from fastapi import APIRouter, Depends, HTTPException, Query, status
import logging

from clinic_queue.api.dependencies import get_engine
from clinic_queue.models.messages import (
    AssignmentResponse,
    DoctorPatientsResponse,
    DoctorResponse,
    QueueActionRequest,
    QueueEntryResponse,
    QueueOverviewResponse,
    SignalFeedResponse,
    SkipRequest,
    StatusUpdateRequest,
)
from clinic_queue.models.priority import RankedEntry
from clinic_queue.models.queue import Doctor, QueueEntry
from clinic_queue.services.priority_resolver import resolve_priority, tier_counts
from clinic_queue.services.queue_engine import EngineStatus, QueueEngine
from clinic_queue.services.queue_mutator import MutationResult
from clinic_queue.services.queue_synchronizer import CycleOutcome
from clinic_queue.services.queue_view import QueueView
from clinic_queue.utils.errors import (
    AuthorizationError,
    ClinicQueueError,
    QueueRuleViolation,
    RemoteNotFoundError,
    RemoteUnavailableError,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/queue", tags=["Queue"])


def _to_http_error(e: ClinicQueueError) -> HTTPException:
    """Map the engine's error taxonomy onto HTTP status codes."""
    if isinstance(e, AuthorizationError):
        return HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=e.message,
            headers={"WWW-Authenticate": "Bearer"},
        )
    if isinstance(e, RemoteNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    if isinstance(e, QueueRuleViolation):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=e.message)
    if isinstance(e, RemoteUnavailableError):
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=e.message
        )
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=e.message
    )


def _entry_response(entry: QueueEntry, view: QueueView) -> QueueEntryResponse:
    profile = view.profile_for(entry)
    ranked = RankedEntry(
        entry=entry, priority=resolve_priority(entry, profile), profile=profile
    )
    return _ranked_response(ranked)


def _ranked_response(ranked: RankedEntry) -> QueueEntryResponse:
    entry = ranked.entry
    return QueueEntryResponse(
        queue_id=entry.queue_id,
        patient_id=entry.patient_id,
        patient_name=entry.patient_name,
        queue_number=entry.queue_number,
        status=entry.status,
        doctor_id=entry.doctor_id,
        start_time=entry.start_time,
        is_emergency=ranked.priority.is_emergency,
        priority_weight=ranked.priority.priority_weight,
        priority_tier=ranked.priority.priority_tier,
        treatment_count_28_days=ranked.profile.treatment_count_28_days,
        emergency_note=ranked.emergency_note,
        profile_available=ranked.profile.available,
    )


def _doctor_response(doctor: Doctor, view: QueueView) -> DoctorResponse:
    free_ids = {d.doctor_id for d in view.available_doctors}
    return DoctorResponse(
        doctor_id=doctor.doctor_id,
        name=doctor.name,
        specialization=doctor.specialization,
        available=doctor.doctor_id in free_ids,
    )


@router.get("/overview", response_model=QueueOverviewResponse)
async def get_overview(engine: QueueEngine = Depends(get_engine)):
    """Current queue as seen by the last synchronization cycle."""
    view = engine.view
    state = engine.synchronizer.state
    return QueueOverviewResponse(
        synced_at=state.last_synced_at,
        last_error=state.last_error,
        status_counts=view.status_counts,
        tier_counts=tier_counts(view.ranked_waiting),
        entries=[_entry_response(e, view) for e in view.active_entries],
        waiting=[_ranked_response(r) for r in view.ranked_waiting],
        next_for_consultation=[
            AssignmentResponse(
                entry=_ranked_response(a.ranked),
                doctor=_doctor_response(a.doctor, view) if a.doctor else None,
            )
            for a in view.next_for_consultation
        ],
        emergency_patients=[_ranked_response(r) for r in view.emergency_patients],
        current_patients=[_entry_response(e, view) for e in view.current_patients],
        doctors=[_doctor_response(d, view) for d in view.doctors],
        available_doctor_count=len(view.available_doctors),
    )


@router.get("/doctors/{doctor_id}/patients", response_model=DoctorPatientsResponse)
async def get_doctor_patients(doctor_id: str, engine: QueueEngine = Depends(get_engine)):
    """Active patients assigned to one doctor."""
    view = engine.view
    return DoctorPatientsResponse(
        doctor_id=doctor_id,
        patients=[_entry_response(e, view) for e in view.assigned_patients(doctor_id)],
    )


@router.get("/signals", response_model=SignalFeedResponse)
async def get_signals(
    after: int = Query(0, ge=0, description="Return signals after this sequence"),
    engine: QueueEngine = Depends(get_engine),
):
    """Notification signals, each delivered once per sequence number."""
    return SignalFeedResponse(
        last_sequence=engine.notifications.last_sequence,
        events=engine.notifications.events_after(after),
    )


@router.get("/status", response_model=EngineStatus)
async def get_status(engine: QueueEngine = Depends(get_engine)):
    return engine.status()


@router.post("/sync", response_model=CycleOutcome)
async def sync_now(engine: QueueEngine = Depends(get_engine)):
    """Run a synchronization cycle immediately."""
    try:
        return await engine.synchronizer.run_cycle()
    except ClinicQueueError as e:
        raise _to_http_error(e)


async def _mutate(operation, *args, **kwargs) -> MutationResult:
    try:
        return await operation(*args, **kwargs)
    except ClinicQueueError as e:
        logger.warning(f"{operation.__name__} failed: {e.message}")
        raise _to_http_error(e)


@router.post("/start", response_model=MutationResult)
async def start_next(engine: QueueEngine = Depends(get_engine)):
    """Start consultations for the next ranked patients."""
    return await _mutate(engine.mutator.start_next)


@router.post("/status-update", response_model=MutationResult)
async def update_status(
    request: StatusUpdateRequest, engine: QueueEngine = Depends(get_engine)
):
    return await _mutate(
        engine.mutator.set_status,
        request.queue_id,
        request.status,
        doctor_id=request.doctor_id,
    )


@router.post("/skip", response_model=MutationResult)
async def skip(request: SkipRequest, engine: QueueEngine = Depends(get_engine)):
    return await _mutate(engine.mutator.skip, request.queue_id, request.positions)


@router.post("/prioritize", response_model=MutationResult)
async def prioritize(
    request: QueueActionRequest, engine: QueueEngine = Depends(get_engine)
):
    """Move an emergency patient to the front of the queue."""
    return await _mutate(engine.mutator.prioritize, request.queue_id)


@router.post("/send-to-emergency", response_model=MutationResult)
async def send_to_emergency(
    request: QueueActionRequest, engine: QueueEngine = Depends(get_engine)
):
    """Route a patient straight to the emergency department."""
    return await _mutate(engine.mutator.send_to_emergency, request.queue_id)


@router.post("/refresh-emergency", response_model=MutationResult)
async def refresh_emergency(engine: QueueEngine = Depends(get_engine)):
    return await _mutate(engine.mutator.refresh_emergency_statuses)
