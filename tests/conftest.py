# pylint: disable=redefined-outer-name,unused-argument,missing-class-docstring
"""Shared fixtures for queue engine tests.

Sets environment defaults before any clinic_queue module is imported.
"""
import os

os.environ.setdefault("CLINIC_API_BASE_URL", "http://clinic.test/api")
os.environ.setdefault("CLINIC_API_TOKEN", "test-token")
os.environ.setdefault("SYNC_INTERVAL_SECONDS", "0.05")

import pytest  # noqa: E402

from clinic_queue.services.queue_engine import QueueEngine  # noqa: E402
from tests.factories import FakeClinicApi, make_doctor, make_entry  # noqa: E402


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def fake_api():
    return FakeClinicApi(
        entries=[
            make_entry("q1", 1),
            make_entry("q2", 5, emergency_status=True, emergency_priority=18),
            make_entry("q3", 2, emergency_priority=12),
        ],
        doctors=[make_doctor("d1"), make_doctor("d2")],
        profiles={
            "patient-q1": {"treatment_count_28_days": 8, "emergency_note": "Regular"},
            "patient-q2": {"treatment_count_28_days": 2},
            "patient-q3": {
                "treatment_count_28_days": 0,
                "is_emergency": False,
                "emergency_priority": 3,
            },
        },
    )


@pytest.fixture
def engine(fake_api):
    return QueueEngine(client=fake_api, interval_seconds=0.05)
