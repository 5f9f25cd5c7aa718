# pylint: disable=missing-function-docstring
import pytest

from clinic_queue.models.queue import QueueStatus
from clinic_queue.utils.errors import QueueRuleViolation, RemoteNotFoundError
from tests.factories import make_doctor


@pytest.fixture
async def synced(engine):
    await engine.synchronizer.run_cycle()
    return engine


@pytest.mark.anyio
async def test_start_next_starts_ranked_patients_and_resyncs(synced, fake_api):
    result = await synced.mutator.start_next()

    assert [e.queue_id for e in result.entries] == ["q2", "q3"]
    assert result.resynced is True
    assert fake_api.count("today-queue") == 2
    view = synced.view
    assert {e.queue_id for e in view.current_patients} == {"q2", "q3"}
    assert view.available_doctors == []
    assert view.next_for_consultation == []


@pytest.mark.anyio
async def test_start_next_without_doctors_is_a_noop(synced, fake_api):
    fake_api.doctors = []
    await synced.synchronizer.run_cycle()

    with pytest.raises(QueueRuleViolation, match="No available doctors"):
        await synced.mutator.start_next()
    assert fake_api.count("start-queue") == 0


@pytest.mark.anyio
async def test_start_next_with_nobody_waiting_is_a_noop(engine, fake_api):
    fake_api.entries = []
    await engine.synchronizer.run_cycle()

    with pytest.raises(QueueRuleViolation, match="No patients waiting"):
        await engine.mutator.start_next()
    assert fake_api.count("start-queue") == 0


@pytest.mark.anyio
async def test_start_requires_doctor(synced, fake_api):
    with pytest.raises(QueueRuleViolation):
        await synced.mutator.set_status("q1", QueueStatus.IN_PROGRESS)
    assert fake_api.count("update-queue-status") == 0


@pytest.mark.anyio
async def test_set_in_progress_assigns_doctor(synced, fake_api):
    result = await synced.mutator.set_status("q1", QueueStatus.IN_PROGRESS, doctor_id="d1")

    assert result.entries[0].doctor_id == "d1"
    assert result.entries[0].start_time is not None
    assert [d.doctor_id for d in synced.view.available_doctors] == ["d2"]
    assert fake_api.count("update-queue-status") == 1


@pytest.mark.anyio
async def test_completing_marks_checkup_completed_for_good(synced, fake_api):
    await synced.mutator.set_status("q1", QueueStatus.IN_PROGRESS, doctor_id="d1")
    result = await synced.mutator.set_status("q1", QueueStatus.COMPLETED)

    call = [c for c in fake_api.calls if c[0] == "update-queue-status"][-1]
    assert call[4] == "Completed"
    assert result.entries[0].checkup_status == "Completed"
    assert not synced.view.is_active("q1")

    # A later status change on the backend does not bring it back
    fake_api.entries[0].update(status="waiting", checkup_status=None)
    await synced.synchronizer.run_cycle()
    assert not synced.view.is_active("q1")

    with pytest.raises(QueueRuleViolation):
        await synced.mutator.set_status("q1", QueueStatus.COMPLETED)


@pytest.mark.anyio
async def test_illegal_transition_is_rejected_after_resync(synced, fake_api):
    fetches = fake_api.count("today-queue")

    with pytest.raises(QueueRuleViolation, match="from waiting to completed"):
        await synced.mutator.set_status("q1", QueueStatus.COMPLETED)

    assert fake_api.count("update-queue-status") == 0
    assert fake_api.count("today-queue") == fetches + 1


@pytest.mark.anyio
async def test_transition_is_judged_against_fresh_backend_state(synced, fake_api):
    # Started on the backend after the last poll
    fake_api.entries[0].update(status="in-progress", doctor_id="d1")
    assert synced.view.get_entry("q1").status == QueueStatus.WAITING

    result = await synced.mutator.set_status("q1", QueueStatus.COMPLETED)

    assert fake_api.count("update-queue-status") == 1
    assert result.entries[0].status == QueueStatus.COMPLETED
    assert not synced.view.is_active("q1")


@pytest.mark.anyio
async def test_backend_rejection_is_surfaced_and_resynced(synced, fake_api):
    fake_api.rejections["update-queue-status"] = QueueRuleViolation(
        "Doctor already has a patient", status_code=422
    )
    fetches = fake_api.count("today-queue")

    with pytest.raises(QueueRuleViolation, match="Doctor already has a patient"):
        await synced.mutator.set_status("q1", QueueStatus.IN_PROGRESS, doctor_id="d1")

    assert fake_api.count("update-queue-status") == 1
    assert fake_api.count("today-queue") == fetches + 1
    assert synced.view.get_entry("q1").status == QueueStatus.WAITING


@pytest.mark.anyio
async def test_unknown_entry(synced):
    with pytest.raises(RemoteNotFoundError):
        await synced.mutator.set_status("nope", QueueStatus.CANCELLED)


@pytest.mark.anyio
async def test_skip_rejects_non_waiting_entry_without_renumbering(synced, fake_api):
    await synced.mutator.set_status("q1", QueueStatus.IN_PROGRESS, doctor_id="d1")
    numbers = {r["queue_id"]: r["queue_number"] for r in fake_api.entries}

    with pytest.raises(QueueRuleViolation, match="not currently waiting"):
        await synced.mutator.skip("q1")

    assert fake_api.count("skip-queue") == 0
    assert {r["queue_id"]: r["queue_number"] for r in fake_api.entries} == numbers


@pytest.mark.anyio
async def test_skip_sends_default_positions_and_expected_number(synced, fake_api):
    result = await synced.mutator.skip("q3")

    assert ("skip-queue", "q3", 5, 2) in fake_api.calls
    assert result.resynced is True
    assert synced.view.get_entry("q3").queue_number == 502


@pytest.mark.anyio
async def test_prioritize_requires_emergency(synced, fake_api):
    with pytest.raises(QueueRuleViolation, match="not flagged as an emergency"):
        await synced.mutator.prioritize("q1")

    await synced.mutator.prioritize("q2")
    assert ("prioritize", "q2") in fake_api.calls


@pytest.mark.anyio
async def test_prioritize_accepts_profile_derived_emergency(synced, fake_api):
    fake_api.profiles["patient-q1"] = {"is_emergency": True, "emergency_priority": 10}
    await synced.synchronizer.run_cycle()

    await synced.mutator.prioritize("q1")
    assert ("prioritize", "q1") in fake_api.calls


@pytest.mark.anyio
async def test_send_to_emergency_removes_entry(synced, fake_api):
    result = await synced.mutator.send_to_emergency("q2")

    assert result.message == "Patient sent directly to emergency department"
    assert not synced.view.is_active("q2")
    assert "q2" in synced.synchronizer.state.excluded_ids
    assert [r.queue_id for r in synced.view.ranked_waiting] == ["q3", "q1"]

    with pytest.raises(QueueRuleViolation):
        await synced.mutator.send_to_emergency("q2")


@pytest.mark.anyio
async def test_refresh_emergency_statuses_triggers_cycle(synced, fake_api):
    fake_api.entries[0].update(emergency_status=True, emergency_priority=20)
    fake_api.doctors.append(make_doctor("d3"))

    result = await synced.mutator.refresh_emergency_statuses()

    assert result.resynced is True
    assert fake_api.count("update-emergency-statuses") == 1
    assert [r.queue_id for r in synced.view.ranked_waiting][0] == "q1"
    assert len(synced.view.next_for_consultation) == 3
