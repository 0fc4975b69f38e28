"""
Upload client for the signed document.

Posts {pdfBase64, fileName, recordId?, thumbnailBase64?} to the configured
upload endpoint, which stores the blob and answers with its URL. An optional
metadata callback is called afterwards; its failure is reported on the result
but never undoes the upload.

Includes reliable delivery with retry logic.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import List, Optional

import httpx

from signdesk.config import Settings, get_settings
from signdesk.models import UploadRequest, UploadResult
from signdesk.utils.datetime_utils import iso_timestamp

logger = logging.getLogger(__name__)


# Retry configuration
MAX_RETRY_ATTEMPTS = 3
RETRY_DELAYS_SECONDS = [0, 2, 4]  # Exponential backoff: immediate, 2s, 4s

# Client errors worth retrying; every other 4xx fails straight away
RETRYABLE_STATUS = {408, 429}


class UploadError(Exception):
    """Signed document could not be uploaded."""

    def __init__(self, message: str, status_code: Optional[int] = None, attempts: int = 0):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.attempts = attempts


@dataclass
class UploadAttempt:
    """Record of a single upload attempt."""
    attempt_number: int
    success: bool
    status_code: Optional[int] = None
    error: Optional[str] = None


class UploadClient:
    """Upload endpoint client (httpx)."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    def is_configured(self) -> bool:
        return bool(self.settings.upload_endpoint_url)

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.settings.upload_api_key:
            headers["Authorization"] = f"Bearer {self.settings.upload_api_key}"
        return headers

    async def upload(self, request: UploadRequest) -> UploadResult:
        """
        Upload the signed PDF with retry logic.

        - 3 attempts with exponential backoff (0s, 2s, 4s) on 5xx, 408, 429,
          timeouts and connection errors
        - other 4xx responses fail immediately

        Raises:
            UploadError: Endpoint not configured, or every attempt failed
        """
        if not self.is_configured():
            raise UploadError("Upload endpoint not configured")

        payload = request.model_dump(mode="json", by_alias=True, exclude_none=True)
        attempts: List[UploadAttempt] = []
        last_error: Optional[str] = None
        last_status: Optional[int] = None

        for attempt_num in range(1, MAX_RETRY_ATTEMPTS + 1):
            if attempt_num > 1:
                delay = RETRY_DELAYS_SECONDS[attempt_num - 1] if attempt_num - 1 < len(RETRY_DELAYS_SECONDS) else 4
                logger.info(f"Upload retry {attempt_num}/{MAX_RETRY_ATTEMPTS} for {request.file_name}, waiting {delay}s")
                await asyncio.sleep(delay)

            try:
                async with httpx.AsyncClient() as client:
                    response = await client.post(
                        self.settings.upload_endpoint_url,
                        json=payload,
                        headers=self._headers(),
                        timeout=self.settings.upload_timeout_seconds,
                    )

                if 200 <= response.status_code < 300:
                    attempts.append(UploadAttempt(attempt_num, True, response.status_code))
                    result = self._parse_success(response, request, attempt_num)
                    logger.info(f"Upload of {request.file_name} succeeded on attempt {attempt_num}")
                    await self._send_metadata(result, request)
                    return result

                last_status = response.status_code
                last_error = f"Upload failed: {response.status_code} - {response.text[:200]}"
                attempts.append(UploadAttempt(attempt_num, False, response.status_code, last_error))
                logger.warning(f"Upload attempt {attempt_num}/{MAX_RETRY_ATTEMPTS} failed: {last_error}")

                if 400 <= response.status_code < 500 and response.status_code not in RETRYABLE_STATUS:
                    break

            except httpx.TimeoutException as e:
                last_error = f"Timeout: {e}"
                attempts.append(UploadAttempt(attempt_num, False, error=last_error))
                logger.warning(f"Upload attempt {attempt_num}/{MAX_RETRY_ATTEMPTS} timed out")

            except httpx.HTTPError as e:
                last_error = str(e) or e.__class__.__name__
                attempts.append(UploadAttempt(attempt_num, False, error=last_error))
                logger.warning(f"Upload attempt {attempt_num}/{MAX_RETRY_ATTEMPTS} failed: {last_error}")

        logger.error(
            f"Upload of {request.file_name} failed after {len(attempts)} attempts. "
            f"Last error: {last_error}"
        )
        raise UploadError(
            last_error or "Upload failed",
            status_code=last_status,
            attempts=len(attempts),
        )

    def _parse_success(
        self,
        response: httpx.Response,
        request: UploadRequest,
        attempt_num: int,
    ) -> UploadResult:
        try:
            data = response.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}

        result = UploadResult(
            success=True,
            file_name=data.get("fileName") or request.file_name,
            blob_url=data.get("blobUrl"),
            db_inserted=bool(data.get("dbInserted", False)),
            metadata_error=data.get("dbError"),
            attempts=attempt_num,
        )
        if result.metadata_error:
            logger.warning(f"Upload endpoint stored the blob but reported a metadata error: {result.metadata_error}")
        return result

    async def _send_metadata(self, result: UploadResult, request: UploadRequest) -> None:
        """Follow-up metadata callback. Failure is recorded on the result only."""
        url = self.settings.get_metadata_callback_url()
        if not url:
            return

        payload = {
            "fileName": result.file_name,
            "blobUrl": result.blob_url,
            "recordId": request.record_id,
            "uploadedAt": iso_timestamp(),
        }
        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(url, json=payload, headers=self._headers(), timeout=30.0)
            response.raise_for_status()
            result.db_inserted = True
            logger.info(f"Metadata callback succeeded for {result.file_name}")
        except httpx.HTTPStatusError as e:
            result.metadata_error = f"Metadata callback failed: {e.response.status_code}"
            logger.error(result.metadata_error)
        except httpx.HTTPError as e:
            result.metadata_error = f"Metadata callback failed: {e}"
            logger.error(result.metadata_error)

