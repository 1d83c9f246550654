"""
Vendor HTTP Client
Shared request handling for the JSON vendor APIs called by the pipeline.
"""

import logging
from typing import Any, Optional, Sequence

import httpx

from app.core.exceptions import RetryableError

logger = logging.getLogger(__name__)


class VendorService:
    """
    Thin JSON-over-HTTP client.

    Network failures, timeouts, unexpected status codes and undecodable
    bodies all surface as RetryableError; callers decide what is fatal.
    """

    NAME = "vendor"

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.transport = transport

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    async def _request(
        self,
        method: str,
        path: str,
        json: Optional[dict] = None,
        expected: Sequence[int] = (200,),
    ) -> Any:
        url = f"{self.base_url}{path}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.request(method, url, headers=self._headers(), json=json)
        except httpx.TimeoutException as e:
            raise RetryableError(f"{self.NAME} request timed out: {method} {path}") from e
        except httpx.HTTPError as e:
            raise RetryableError(f"{self.NAME} request failed: {e}") from e

        if response.status_code not in expected:
            body = response.text[:300]
            logger.warning(f"[{self.NAME}] {method} {path} -> {response.status_code}: {body}")
            raise RetryableError(
                f"{self.NAME} returned HTTP {response.status_code}",
                details={"status_code": response.status_code, "body": body},
            )

        try:
            return response.json()
        except ValueError as e:
            raise RetryableError(f"{self.NAME} returned a non-JSON body") from e
