"""Tools package for talking to the clinic backend."""

from clinic_queue.tools.clinic_api import ClinicQueueClient

__all__ = [
    "ClinicQueueClient",
]
