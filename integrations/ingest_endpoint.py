"""
Client for the remote chunk-processing endpoint.

POSTs {uploadId, effectiveDate, offset, limit, mapping} and expects
{ok, processed, nextOffset, totalRows, done}. Every failure mode (network,
timeout, non-2xx, unreadable body, ok=false) surfaces as TransportError so
the ingestion loop can apply its retry policy uniformly.
"""

from typing import Optional
import requests
import structlog
from pydantic import ValidationError as PydanticValidationError

from config import settings
from exceptions import TransportError, ChunkTimeoutError
from models.ingest import ChunkRequest, ChunkResponse

logger = structlog.get_logger(__name__)


class ChunkEndpointClient:
    """Blocking HTTP client for one ingestion endpoint."""

    def __init__(
        self,
        url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        self.url = url or settings.chunk_endpoint_url
        self.api_key = api_key if api_key is not None else settings.supabase_key
        self.timeout_seconds = timeout_seconds or settings.ingest_request_timeout_seconds
        self.session = session or requests.Session()

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def process_chunk(self, request: ChunkRequest) -> ChunkResponse:
        """
        Ask the endpoint to apply one window of rows.

        Args:
            request: Window to apply

        Returns:
            ChunkResponse

        Raises:
            ChunkTimeoutError: If no answer within timeout_seconds
            TransportError: On any other transport or protocol failure
        """
        payload = request.model_dump(by_alias=True)

        logger.debug(
            "chunk_request_sending",
            upload_id=request.upload_id,
            offset=request.offset,
            limit=request.limit
        )

        try:
            response = self.session.post(
                self.url,
                json=payload,
                headers=self._headers(),
                timeout=self.timeout_seconds
            )
        except requests.exceptions.Timeout as e:
            logger.warning("chunk_request_timed_out", offset=request.offset, error=str(e))
            raise ChunkTimeoutError(request.offset, self.timeout_seconds) from e
        except requests.exceptions.RequestException as e:
            logger.warning("chunk_request_failed", offset=request.offset, error=str(e))
            raise TransportError(f"Chunk request failed: {e}", offset=request.offset) from e

        if not response.ok:
            body = response.text[:500]
            logger.warning(
                "chunk_request_rejected",
                offset=request.offset,
                status=response.status_code,
                body=body
            )
            raise TransportError(
                f"Chunk endpoint returned {response.status_code}: {body}",
                offset=request.offset,
                status=response.status_code
            )

        try:
            result = ChunkResponse.model_validate(response.json())
        except (ValueError, PydanticValidationError) as e:
            logger.warning("chunk_response_unreadable", offset=request.offset, error=str(e))
            raise TransportError(
                f"Unreadable chunk response: {e}",
                offset=request.offset,
                status=response.status_code
            ) from e

        if not result.ok:
            raise TransportError(
                "Chunk endpoint reported ok=false",
                offset=request.offset,
                status=response.status_code
            )

        return result
