"""FastAPI dependencies.

Authentication is handled upstream by the clinic's session manager; this
service only forwards its configured bearer token to the clinic backend.
"""

from fastapi import Request
import logging

from clinic_queue.services.queue_engine import QueueEngine, get_queue_engine

logger = logging.getLogger(__name__)


def get_engine(request: Request) -> QueueEngine:
    """Return the engine started by the app lifespan, or the global one."""
    engine = getattr(request.app.state, "queue_engine", None)
    if engine is None:
        engine = get_queue_engine()
    return engine
