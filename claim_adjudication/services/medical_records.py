"""
Medical Record Store Client.

Read-only access to the patient medical history service, used by the risk
engine. A missing record is a business outcome (None); transport failures and
unexpected responses surface as DependencyError.
"""

import logging
from typing import Any, Optional
from urllib.parse import quote

import httpx
from pydantic import ValidationError as PydanticValidationError

from claim_adjudication.api.config import settings
from claim_adjudication.schemas.fraud import MedicalRecord
from claim_adjudication.utils.errors import DependencyError

logger = logging.getLogger(__name__)


class HttpMedicalRecordStore:
    """
    httpx client for the medical record service.

    Expects `GET {base_url}/patients/{patient_id}/medical-record` to return
    `{"patientId": ..., "conditions": [{"name": ..., "status": ...}]}` and
    404 when the patient has no record.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._base_url = (base_url or settings.MEDICAL_RECORDS_URL).rstrip("/")
        self._timeout = timeout_seconds or settings.MEDICAL_RECORDS_TIMEOUT
        self._http_client = client

    def _client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
            )
        return self._http_client

    async def close(self) -> None:
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    async def get_medical_record(self, patient_id: str) -> Optional[MedicalRecord]:
        """Fetch a patient's medical record, or None if the patient has none."""
        path = f"/patients/{quote(patient_id, safe='')}/medical-record"
        try:
            response = await self._client().get(path)
        except httpx.TimeoutException as e:
            raise DependencyError(
                "Medical record service timed out",
                dependency="medical_records",
                original_error=e,
            ) from e
        except httpx.HTTPError as e:
            raise DependencyError(
                f"Could not reach medical record service: {e}",
                dependency="medical_records",
                original_error=e,
            ) from e

        if response.status_code == httpx.codes.NOT_FOUND:
            return None
        if response.status_code != httpx.codes.OK:
            raise DependencyError(
                f"Medical record service returned {response.status_code}",
                dependency="medical_records",
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise DependencyError(
                "Medical record service returned invalid JSON",
                dependency="medical_records",
                original_error=e,
            ) from e
        return self._parse_record(patient_id, payload)

    @staticmethod
    def _parse_record(patient_id: str, payload: Any) -> MedicalRecord:
        if not isinstance(payload, dict):
            raise DependencyError(
                "Malformed medical record payload", dependency="medical_records"
            )
        try:
            return MedicalRecord(
                patient_id=str(payload.get("patientId") or patient_id),
                conditions=payload.get("conditions") or [],
            )
        except PydanticValidationError as e:
            logger.error(f"Invalid medical record for patient {patient_id}: {e}")
            raise DependencyError(
                "Malformed medical record payload",
                dependency="medical_records",
                original_error=e,
            ) from e
