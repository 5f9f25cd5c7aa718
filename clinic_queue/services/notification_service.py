"""Dispatch of notification signals to listeners and to the polling feed."""

from collections import deque
from typing import Awaitable, Callable, Deque, List, Optional, Union
import asyncio
import logging

from clinic_queue.config.settings import settings
from clinic_queue.models.notifications import NotificationSignal, SignalEvent

logger = logging.getLogger(__name__)

SignalListener = Callable[[SignalEvent], Union[None, Awaitable[None]]]


class NotificationService:
    """Records each emitted signal once and fans it out to listeners."""

    def __init__(self, history_size: Optional[int] = None):
        self._history: Deque[SignalEvent] = deque(
            maxlen=history_size or settings.signal_history_size
        )
        self._listeners: List[SignalListener] = []
        self._sequence = 0

    def subscribe(self, listener: SignalListener) -> None:
        self._listeners.append(listener)

    def unsubscribe(self, listener: SignalListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    @property
    def last_sequence(self) -> int:
        return self._sequence

    def events_after(self, sequence: int = 0) -> List[SignalEvent]:
        """Signals with a sequence number greater than ``sequence``."""
        return [event for event in self._history if event.sequence > sequence]

    async def emit(self, signal: NotificationSignal) -> SignalEvent:
        """
        Record a signal and notify every listener.

        A failing listener is logged and does not stop the others.
        """
        self._sequence += 1
        event = SignalEvent(sequence=self._sequence, signal=signal)
        self._history.append(event)
        logger.info(f"🔔 Signal #{event.sequence}: {signal.value}")

        for listener in list(self._listeners):
            try:
                result = listener(event)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.error(
                    f"Signal listener failed for {signal.value}: {e}", exc_info=True
                )
        return event
