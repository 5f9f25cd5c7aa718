# pylint: disable=missing-function-docstring
import pytest

from clinic_queue.models.notifications import NotificationSignal
from clinic_queue.services.notification_service import NotificationService


@pytest.mark.anyio
async def test_listeners_receive_each_signal_once():
    service = NotificationService(history_size=3)
    received = []

    async def async_listener(event):
        received.append(("async", event.sequence))

    def broken_listener(event):
        raise RuntimeError("speaker unplugged")

    service.subscribe(broken_listener)
    service.subscribe(async_listener)
    service.subscribe(lambda event: received.append(("sync", event.signal)))

    event = await service.emit(NotificationSignal.CONSULTATION_COMPLETED)

    assert event.sequence == 1
    assert received == [
        ("async", 1),
        ("sync", NotificationSignal.CONSULTATION_COMPLETED),
    ]


@pytest.mark.anyio
async def test_feed_is_bounded_and_filtered_by_sequence():
    service = NotificationService(history_size=3)
    for _ in range(5):
        await service.emit(NotificationSignal.CONSULTATION_STARTED)

    assert service.last_sequence == 5
    assert [e.sequence for e in service.events_after(0)] == [3, 4, 5]
    assert [e.sequence for e in service.events_after(4)] == [5]


@pytest.mark.anyio
async def test_unsubscribed_listener_is_not_called():
    service = NotificationService()
    calls = []
    listener = calls.append
    service.subscribe(listener)
    service.unsubscribe(listener)

    await service.emit(NotificationSignal.CONSULTATION_STARTED)

    assert calls == []
