"""Shared aiohttp JSON client used by the DEX connectors.

Every failure surfaces as UpstreamError carrying the HTTP status (or None
for timeouts and connection errors) so that RetryPolicy can tell rate
limiting and outages apart from permanent errors.
"""

import asyncio
from typing import Any

import aiohttp

from funding_arb.exceptions import MalformedPayloadError, UpstreamError
from funding_arb.logging import get_logger

logger = get_logger(__name__)

_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


class HttpClient:
    """JSON-over-HTTP client bound to one exchange's base URL.

    The aiohttp session is created lazily and reused for every request;
    call close() when done.
    """

    def __init__(self, exchange: str, base_url: str, timeout: float = 15.0) -> None:
        self._exchange = exchange
        self._base_url = base_url.rstrip("/")
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session: aiohttp.ClientSession | None = None
        self._session_lock = asyncio.Lock()

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is not None and not self._session.closed:
            return self._session
        async with self._session_lock:
            if self._session is None or self._session.closed:
                self._session = aiohttp.ClientSession(
                    timeout=self._timeout,
                    headers={"User-Agent": _USER_AGENT},
                )
            return self._session

    async def close(self) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None

    async def get_json(self, path: str, params: dict | None = None) -> Any:
        """GET base_url + path and decode the JSON body."""
        return await self._request("GET", path, params=self._clean_params(params))

    async def post_json(self, path: str, payload: dict) -> Any:
        """POST a JSON payload to base_url + path and decode the JSON body."""
        return await self._request("POST", path, json=payload)

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        url = f"{self._base_url}{path}"
        session = await self._get_session()
        try:
            async with session.request(method, url, **kwargs) as resp:
                if resp.status >= 400:
                    body = await resp.text()
                    raise UpstreamError(self._exchange, resp.status, body[:200] or resp.reason or "")
                try:
                    return await resp.json(content_type=None)
                except ValueError as exc:
                    raise MalformedPayloadError(self._exchange, f"invalid JSON from {path}") from exc
        except (asyncio.TimeoutError, aiohttp.ClientError) as exc:
            raise UpstreamError(
                self._exchange, None, f"{type(exc).__name__} on {method} {path}"
            ) from exc

    @staticmethod
    def _clean_params(params: dict | None) -> dict | None:
        """aiohttp rejects None values; drop them."""
        if params is None:
            return None
        return {key: value for key, value in params.items() if value is not None}
