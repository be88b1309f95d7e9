"""
Upstream model provider client for the learning assistant.

One POST to Gemini's ``generateContent`` per request, with a hard timeout and
no retries. Every failure is normalized to an ``UpstreamError`` carrying the
status the gateway should answer with and the raw upstream error text.
"""

import asyncio
import time
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx
from loguru import logger

from ..exceptions import UpstreamError


PROVIDER_ERROR = "Gemini API error"
EMPTY_REPLY_ERROR = "Empty response from Gemini"

# Upstream statuses that mean the gateway sent a bad model/request
GATEWAY_FAULT_STATUSES = {400, 404}


def outward_status(upstream_status: int) -> int:
    """Status reported to the caller for a non-2xx provider response."""
    if upstream_status in GATEWAY_FAULT_STATUSES:
        return 502
    return upstream_status


def extract_reply_text(data: Any) -> str:
    """Pull ``candidates[0].content.parts[0].text`` out of a response body."""
    try:
        text = data["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError):
        return ""
    return text if isinstance(text, str) else ""


class GeminiClient:
    """
    Async client for the Gemini generate endpoint.

    A single ``httpx.AsyncClient`` is shared by all requests and closed with
    ``aclose()`` at shutdown.
    """

    def __init__(
        self,
        base_url: str = "https://generativelanguage.googleapis.com/v1",
        timeout_seconds: float = 20.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        Initialize the client.

        Args:
            base_url: Provider API root, without a trailing slash
            timeout_seconds: Hard limit for the whole request
            transport: Optional transport override (tests use ``httpx.MockTransport``)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.client = httpx.AsyncClient(timeout=httpx.Timeout(timeout_seconds), transport=transport)
        self.call_count = 0

    def endpoint_for(self, model: str) -> str:
        return f"{self.base_url}/models/{quote(model, safe='')}:generateContent"

    async def generate(self, api_key: str, model: str, payload: Dict[str, Any]) -> str:
        """
        Send the payload and return the reply text.

        Raises:
            UpstreamError: non-2xx response (400/404 reported as 502, others
                passed through), empty reply (502), unreadable body (502),
                or transport failure/timeout (500)
        """
        self.call_count += 1
        start_time = time.time()
        url = self.endpoint_for(model)

        try:
            # httpx timeouts are per phase; wait_for bounds the whole exchange
            response = await asyncio.wait_for(
                self.client.post(
                    url,
                    params={"key": api_key},
                    json=payload,
                    headers={"Content-Type": "application/json"},
                ),
                timeout=self.timeout_seconds,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            logger.error(f"Gemini request timed out after {self.timeout_seconds}s (model={model})")
            reason = f": {e}" if str(e) else ""
            raise UpstreamError(
                PROVIDER_ERROR,
                http_status=500,
                details=f"Request timed out after {self.timeout_seconds:g}s{reason}",
                original_error=e,
            )
        except httpx.HTTPError as e:
            logger.error(f"Network error connecting to Gemini (model={model}): {e}")
            raise UpstreamError(PROVIDER_ERROR, http_status=500, details=str(e), original_error=e)

        duration = time.time() - start_time

        if not response.is_success:
            error_text = response.text
            logger.error(
                f"Gemini API call failed with status {response.status_code} in {duration:.2f}s. "
                f"Details: {error_text[:500]}"
            )
            raise UpstreamError(
                PROVIDER_ERROR,
                http_status=outward_status(response.status_code),
                details=error_text,
                upstream_status=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            logger.error(f"Gemini returned a non-JSON body: {response.text[:200]}")
            raise UpstreamError(
                PROVIDER_ERROR,
                http_status=502,
                details=response.text or str(e),
                upstream_status=response.status_code,
                original_error=e,
            )

        reply = extract_reply_text(data)
        if not reply:
            logger.error(f"Gemini returned an empty reply (model={model})")
            raise UpstreamError(
                EMPTY_REPLY_ERROR,
                http_status=502,
                upstream_status=response.status_code,
            )

        logger.info(f"Gemini reply: {len(reply)} characters in {duration:.2f}s (model={model})")
        return reply

    async def aclose(self) -> None:
        """Close the shared HTTP client."""
        await self.client.aclose()
