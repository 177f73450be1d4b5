"""
HTTP calls to payment gateways.

Transient failures (network errors, timeouts, 5xx) are retried with
exponential backoff. Anything that still fails is raised as
ExternalVerificationError: a gateway we could not reach never confirms a
payment.
"""

import asyncio
from typing import Any, Dict, Optional

import httpx

from utils.exceptions import ExternalVerificationError
from utils.logging_config import setup_logging

logger = setup_logging(
    name=__name__, log_level="INFO", log_file="payments.log", log_dir="logs"
)

# Retry configuration
_RETRY_DELAY = 1.0  # seconds
_RETRY_BACKOFF = 2.0  # exponential backoff multiplier


class GatewayClient:
    """Thin retrying wrapper around an httpx.AsyncClient."""

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
        max_retries: int = 3,
        retry_delay: float = _RETRY_DELAY,
    ):
        self._client = client
        self._owns_client = client is None
        self.timeout = timeout
        self.max_retries = max(max_retries, 1)
        self.retry_delay = retry_delay

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def request_json(
        self,
        method: str,
        url: str,
        gateway: str,
        **kwargs: Any,
    ) -> Dict[str, Any]:
        """
        Send a request and return the decoded JSON body.

        Args:
            method: HTTP method
            url: Gateway endpoint
            gateway: Name used in logs and error messages
            **kwargs: Passed to httpx (json, params, headers)

        Raises:
            ExternalVerificationError: On a 4xx answer, a non-JSON body, or
                when every attempt failed
        """
        delay = self.retry_delay

        for attempt in range(self.max_retries):
            try:
                response = await self.client.request(
                    method, url, timeout=self.timeout, **kwargs
                )
            except httpx.HTTPError as e:
                if attempt < self.max_retries - 1:
                    logger.warning(
                        f"{gateway} request error (attempt {attempt + 1}/{self.max_retries}): "
                        f"{e}. Retrying in {delay}s..."
                    )
                    await asyncio.sleep(delay)
                    delay *= _RETRY_BACKOFF
                    continue
                logger.error(
                    f"{gateway} unreachable after {self.max_retries} attempts: {e}"
                )
                raise ExternalVerificationError(
                    f"{gateway} could not be reached. Payment was not confirmed."
                ) from e

            if response.status_code >= 500 and attempt < self.max_retries - 1:
                logger.warning(
                    f"{gateway} returned {response.status_code} (attempt "
                    f"{attempt + 1}/{self.max_retries}). Retrying in {delay}s..."
                )
                await asyncio.sleep(delay)
                delay *= _RETRY_BACKOFF
                continue

            if response.status_code >= 400:
                # Don't retry on client errors: the gateway rejected the payment
                logger.warning(
                    f"{gateway} rejected verification with {response.status_code}: "
                    f"{response.text[:200]}"
                )
                raise ExternalVerificationError(f"{gateway} payment verification failed.")

            try:
                payload = response.json()
            except ValueError as e:
                raise ExternalVerificationError(
                    f"{gateway} returned an unreadable response."
                ) from e

            if not isinstance(payload, dict):
                raise ExternalVerificationError(
                    f"{gateway} returned an unexpected response."
                )
            return payload

        raise ExternalVerificationError(f"{gateway} payment verification failed.")
