"""HTTP client for the clinic backend that owns queue, doctor and patient records.

Every call is a bounded request/response round trip. Failures are translated
into the engine's error taxonomy:

- timeouts, connection errors, 5xx and unreadable bodies -> RemoteUnavailableError
- 401/403 -> AuthorizationError
- 404 -> RemoteNotFoundError
- other 4xx -> QueueRuleViolation carrying the backend's message
"""

from typing import Any, Dict, List, Optional
import asyncio
import logging

import httpx

from clinic_queue.config.settings import settings
from clinic_queue.models.queue import Doctor, QueueEntry, QueueSnapshot, QueueStatus
from clinic_queue.models.treatment import TreatmentProfile
from clinic_queue.utils.errors import (
    AuthorizationError,
    QueueRuleViolation,
    RemoteNotFoundError,
    RemoteUnavailableError,
)

logger = logging.getLogger(__name__)


class ClinicQueueClient:
    """Client for the clinic backend staff endpoints."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        auth_token: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the client.

        Args:
            base_url: Backend base URL (overrides settings)
            auth_token: Bearer token (overrides settings)
            timeout: Per-request timeout in seconds (overrides settings)
            transport: Optional httpx transport, used to stub the backend
        """
        self.base_url = (base_url or settings.clinic_api_base_url).rstrip("/")
        self.auth_token = (
            auth_token if auth_token is not None else settings.clinic_api_token
        )
        self.timeout = timeout or settings.request_timeout_seconds
        self._transport = transport

        logger.info(
            f"Clinic API client initialized - Server: {self.base_url}, "
            f"timeout: {self.timeout}s"
        )

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "X-Requested-With": "XMLHttpRequest",
        }
        if self.auth_token:
            headers["Authorization"] = f"Bearer {self.auth_token}"
        return headers

    @staticmethod
    def _error_message(response: httpx.Response, fallback: str) -> str:
        try:
            body = response.json()
        except ValueError:
            return fallback
        if isinstance(body, dict):
            return body.get("error") or body.get("message") or fallback
        return fallback

    async def _request(
        self, method: str, path: str, payload: Optional[Dict[str, Any]] = None
    ) -> Any:
        """
        Make one HTTP request to the clinic backend.

        Args:
            method: HTTP method
            path: Path relative to the base URL
            payload: JSON body for POST requests

        Returns:
            Decoded JSON body (None for an empty body)
        """
        url = f"{self.base_url}{path}"
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.request(
                    method, url, json=payload, headers=self._headers()
                )
        except httpx.TimeoutException as e:
            logger.warning(f"Clinic API request timeout: {method} {path}")
            raise RemoteUnavailableError(
                f"Clinic backend timed out after {self.timeout}s"
            ) from e
        except httpx.HTTPError as e:
            logger.warning(f"Clinic API request error: {method} {path}: {e}")
            raise RemoteUnavailableError(f"Clinic backend unreachable: {e}") from e

        if response.status_code in (401, 403):
            logger.warning(f"Clinic API rejected credentials: {method} {path}")
            raise AuthorizationError(
                self._error_message(response, "Not authorized for the clinic backend")
            )
        if response.status_code == 404:
            raise RemoteNotFoundError(
                self._error_message(response, "Resource not found"), status_code=404
            )
        if 400 <= response.status_code < 500:
            message = self._error_message(response, "Request rejected by clinic backend")
            logger.info(f"Clinic API rejected {method} {path}: {message}")
            raise QueueRuleViolation(message, status_code=response.status_code)
        if response.status_code >= 500:
            logger.warning(
                f"Clinic API request failed: {method} {path} -> {response.status_code}"
            )
            raise RemoteUnavailableError(
                self._error_message(
                    response, f"Clinic backend error ({response.status_code})"
                )
            )

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise RemoteUnavailableError(f"Unreadable response from {path}") from e

    @staticmethod
    def _items(data: Any, key: str) -> List[Dict[str, Any]]:
        if isinstance(data, list):
            return data
        if isinstance(data, dict) and isinstance(data.get(key), list):
            return data[key]
        return []

    @staticmethod
    def _parse_rows(model, items: List[Any], kind: str) -> list:
        """Validate rows one at a time, skipping any the backend sent malformed."""
        rows = []
        for item in items:
            try:
                rows.append(model.model_validate(item))
            except ValueError as e:
                logger.warning(f"Skipping malformed {kind} row: {e}")
        return rows

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_queue_entries(self) -> List[QueueEntry]:
        data = await self._request("GET", "/staff/today-queues")
        return self._parse_rows(QueueEntry, self._items(data, "queues"), "queue")

    async def get_doctors_on_duty(self) -> List[Doctor]:
        data = await self._request("GET", "/staff/doctors-on-duty")
        return self._parse_rows(Doctor, self._items(data, "doctors"), "doctor")

    async def get_today_queue(self) -> QueueSnapshot:
        """Fetch today's queue and doctor roster. Both must succeed."""
        entries, doctors = await asyncio.gather(
            self.get_queue_entries(), self.get_doctors_on_duty()
        )
        logger.info(f"Fetched {len(entries)} queue entries, {len(doctors)} doctors")
        return QueueSnapshot(entries=entries, doctors=doctors)

    async def get_treatment_profile(self, patient_id: str) -> Optional[TreatmentProfile]:
        """
        Fetch the treatment profile for one patient.

        Returns:
            TreatmentProfile, or None if the body is not a profile object

        Raises:
            RemoteNotFoundError: If the backend has no data for the patient
        """
        data = await self._request("GET", f"/staff/enhanced-patient-data/{patient_id}")
        if not isinstance(data, dict):
            return None
        try:
            return TreatmentProfile.model_validate(data)
        except ValueError:
            logger.warning(f"Malformed treatment profile for patient {patient_id}")
            return None

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def update_queue_status(
        self,
        queue_id: str,
        status: QueueStatus,
        doctor_id: Optional[str] = None,
        checkup_status: Optional[str] = None,
    ) -> Optional[QueueEntry]:
        payload: Dict[str, Any] = {"queue_id": queue_id, "status": status.value}
        if doctor_id:
            payload["doctor_id"] = doctor_id
        if checkup_status:
            payload["checkup_status"] = checkup_status

        data = await self._request("POST", "/staff/update-queue-status", payload)
        if isinstance(data, dict):
            item = data.get("queue") if isinstance(data.get("queue"), dict) else data
            if "queue_number" in item:
                try:
                    return QueueEntry.model_validate(item)
                except ValueError:
                    logger.warning(f"Unparseable queue entry returned for {queue_id}")
        return None

    async def skip_queue(
        self, queue_id: str, positions: int, expected_queue_number: Optional[int] = None
    ) -> Any:
        payload: Dict[str, Any] = {"queue_id": queue_id, "positions": positions}
        if expected_queue_number is not None:
            payload["expected_queue_number"] = expected_queue_number
        return await self._request("POST", "/staff/skip-queue", payload)

    async def prioritize_emergency_patient(self, queue_id: str) -> Any:
        return await self._request(
            "POST", "/staff/prioritize-emergency-patient", {"queue_id": queue_id}
        )

    async def send_to_emergency(self, queue_id: str) -> Any:
        return await self._request(
            "POST", "/staff/send-to-emergency", {"queue_id": queue_id}
        )

    async def start_queue(self) -> List[QueueEntry]:
        data = await self._request("POST", "/staff/start-queue", {})
        items = self._items(data, "queues") or self._items(data, "started")
        return self._parse_rows(QueueEntry, items, "started queue")

    async def update_emergency_statuses(self) -> Any:
        return await self._request("POST", "/staff/update-emergency-statuses", {})
