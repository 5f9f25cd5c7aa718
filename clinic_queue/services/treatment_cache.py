"""Treatment profile cache, rebuilt for every synchronization cycle."""

from typing import Dict, Iterable, Mapping, Optional, Tuple
import asyncio
import logging

from clinic_queue.config.settings import settings
from clinic_queue.models.treatment import (
    NOTE_FORMAT_ERROR,
    NOTE_NOT_FOUND,
    NOTE_UNAVAILABLE,
    TreatmentProfile,
)
from clinic_queue.tools.clinic_api import ClinicQueueClient
from clinic_queue.utils.errors import (
    AuthorizationError,
    ClinicQueueError,
    RemoteNotFoundError,
)

logger = logging.getLogger(__name__)


class ProfileBatch:
    """Result of one batch of lookups, merged only after every lookup settled."""

    def __init__(self, profiles: Mapping[str, TreatmentProfile]):
        self.profiles: Dict[str, TreatmentProfile] = dict(profiles)

    @property
    def degraded_ids(self):
        return [pid for pid, p in self.profiles.items() if not p.available]

    @property
    def all_failed(self) -> bool:
        return bool(self.profiles) and len(self.degraded_ids) == len(self.profiles)


class TreatmentProfileCache:
    """Fetches one TreatmentProfile per patient present in the queue."""

    def __init__(
        self, client: ClinicQueueClient, max_concurrency: Optional[int] = None
    ):
        self.client = client
        self.max_concurrency = max(
            1, max_concurrency or settings.profile_lookup_concurrency
        )
        self._profiles: Dict[str, TreatmentProfile] = {}

    @property
    def profiles(self) -> Dict[str, TreatmentProfile]:
        """Snapshot from the last completed batch."""
        return self._profiles

    def get(self, patient_id: str) -> Optional[TreatmentProfile]:
        return self._profiles.get(patient_id)

    async def _lookup(
        self, patient_id: str, semaphore: asyncio.Semaphore
    ) -> Tuple[str, TreatmentProfile]:
        async with semaphore:
            try:
                profile = await self.client.get_treatment_profile(patient_id)
            except AuthorizationError:
                raise
            except RemoteNotFoundError:
                logger.info(f"No treatment data for patient {patient_id}")
                return patient_id, TreatmentProfile.safe_default(NOTE_NOT_FOUND)
            except ClinicQueueError as e:
                logger.warning(
                    f"Treatment lookup failed for patient {patient_id}: {e.message}"
                )
                return patient_id, TreatmentProfile.safe_default(NOTE_UNAVAILABLE)
            except Exception as e:
                logger.error(
                    f"Unexpected error looking up patient {patient_id}: {e}",
                    exc_info=True,
                )
                return patient_id, TreatmentProfile.safe_default(NOTE_UNAVAILABLE)

        if profile is None:
            return patient_id, TreatmentProfile.safe_default(NOTE_FORMAT_ERROR)
        return patient_id, profile

    async def refresh(self, patient_ids: Iterable[str]) -> ProfileBatch:
        """
        Look up every distinct patient concurrently and replace the cache.

        A failed lookup degrades to a safe-default profile and never aborts
        the batch. The cache is swapped only once all lookups have settled.

        Args:
            patient_ids: Patient identities present in the queue

        Returns:
            ProfileBatch for this cycle

        Raises:
            AuthorizationError: If the backend rejects the bearer token
        """
        distinct = list(dict.fromkeys(pid for pid in patient_ids if pid))
        semaphore = asyncio.Semaphore(self.max_concurrency)

        results = await asyncio.gather(
            *(self._lookup(pid, semaphore) for pid in distinct),
            return_exceptions=True,
        )
        for result in results:
            # Only AuthorizationError escapes _lookup
            if isinstance(result, BaseException):
                raise result

        batch = ProfileBatch(dict(results))
        self._profiles = batch.profiles

        if batch.degraded_ids:
            logger.warning(
                f"{len(batch.degraded_ids)}/{len(distinct)} treatment profiles "
                f"degraded to defaults"
            )
        logger.debug(f"Treatment profiles refreshed for {len(distinct)} patients")
        return batch
