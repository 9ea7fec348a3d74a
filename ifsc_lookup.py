import asyncio
import logging
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx

import config
from utils.result import Result

logger = logging.getLogger(__name__)


class IfscLookupClient:
    """
    Async client for the public IFSC lookup API (``GET <base-url>/<IFSC>``).

    Use as an async context manager so one connection pool serves a whole
    enrichment batch::

        async with IfscLookupClient() as client:
            result = await client.lookup("SBIN0000001")

    ``max_concurrency`` of 0 leaves the batch unthrottled.
    """

    def __init__(
        self,
        base_url: str = config.IFSC_API_BASE_URL,
        timeout: float = config.IFSC_LOOKUP_TIMEOUT,
        max_concurrency: int = config.IFSC_MAX_CONCURRENCY,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url
        self.timeout = timeout
        self.max_concurrency = max_concurrency
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._semaphore: Optional[asyncio.Semaphore] = None

    async def __aenter__(self) -> "IfscLookupClient":
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self._transport,
        )
        if self.max_concurrency > 0:
            self._semaphore = asyncio.Semaphore(self.max_concurrency)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        self._semaphore = None

    async def lookup(self, key: Any) -> Result[Dict[str, Any]]:
        """
        Look up a single IFSC code.

        Args:
            key: The lookup key taken from the row, usually a string

        Returns:
            Result[Dict[str, Any]]: The decoded JSON object on a 2xx response,
            otherwise a failure describing what went wrong
        """
        if self._client is None:
            raise RuntimeError("IfscLookupClient must be used inside 'async with'")

        if key is None or str(key) == "":
            return Result.invalid_input("Empty lookup key")

        if self._semaphore is None:
            return await self._fetch(key)
        async with self._semaphore:
            return await self._fetch(key)

    async def _fetch(self, key: Any) -> Result[Dict[str, Any]]:
        path = "/" + quote(str(key), safe="")
        try:
            response = await self._client.get(path)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as e:
            logger.info(
                "IFSC lookup rejected",
                extra={"ifsc": key, "http_status": e.response.status_code}
            )
            return Result.fail(f"Lookup returned {e.response.status_code}", status_code=502)
        except httpx.HTTPError as e:
            logger.warning(
                "IFSC lookup failed",
                extra={"ifsc": key, "error": str(e), "error_type": type(e).__name__}
            )
            return Result.fail(f"Lookup failed: {type(e).__name__}", status_code=502)
        except ValueError as e:
            logger.warning("IFSC lookup returned malformed JSON", extra={"ifsc": key, "error": str(e)})
            return Result.fail("Malformed lookup response", status_code=502)

        if not isinstance(payload, dict):
            logger.warning("IFSC lookup returned a non-object body", extra={"ifsc": key})
            return Result.fail("Malformed lookup response", status_code=502)

        return Result.ok(payload)
