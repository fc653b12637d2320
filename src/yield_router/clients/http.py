"""Shared :mod:`aiohttp` plumbing for the HTTP clients.

Every client owns a single :class:`aiohttp.ClientSession` for its lifetime and
must be used as an async context manager::

    async with JsonRpcClient(rpc_urls) as rpc:
        balance = await rpc.get_balance("base", address)

Rate limiting (HTTP 429), server errors and transport timeouts are retried
with a growing delay; other 4xx responses raise :class:`HttpStatusError`
immediately.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

import aiohttp

from ..errors import HttpStatusError, UpstreamError

logger = logging.getLogger(__name__)

MAX_RETRY_WAIT_S = 60.0


class HttpClient:
    DEFAULT_HEADERS = {"Accept": "application/json"}

    def __init__(
        self,
        timeout: float = 30.0,
        retries: int = 3,
        base_delay: float = 1.0,
        headers: dict[str, str] | None = None,
    ) -> None:
        self._session: aiohttp.ClientSession | None = None
        self._headers = {**self.DEFAULT_HEADERS, **(headers or {})}
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self.retries = max(1, retries)
        self.base_delay = base_delay

    async def __aenter__(self):
        self._session = aiohttp.ClientSession(timeout=self._timeout, headers=self._headers)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self._session:
            await self._session.close()
            self._session = None

    @property
    def session(self) -> aiohttp.ClientSession:
        if self._session is None:
            raise RuntimeError(f"{type(self).__name__} must be used with 'async with'")
        return self._session

    def _retry_delay(self, response: aiohttp.ClientResponse, attempt: int) -> float:
        retry_after = response.headers.get("Retry-After")
        wait = self.base_delay * (2**attempt)
        if retry_after:
            try:
                wait = float(retry_after)
            except ValueError:
                pass
        return min(wait, MAX_RETRY_WAIT_S)

    async def request_json(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        payload: Any = None,
        retry: bool = True,
    ) -> Any:
        """Send a request and decode its JSON body.

        Raises :class:`HttpStatusError` for non-retryable statuses and
        :class:`UpstreamError` once retries are exhausted or the body is not
        JSON. Pass ``retry=False`` for calls that must not be repeated, such
        as a transaction broadcast.
        """

        attempts = self.retries if retry else 1
        last_error: Exception | None = None
        for attempt in range(attempts):
            try:
                async with self.session.request(method, url, params=params, json=payload) as resp:
                    if resp.status == 429 or resp.status >= 500:
                        wait = self._retry_delay(resp, attempt)
                        logger.warning(
                            "%s %s returned %s, retrying in %.1fs", method, url, resp.status, wait
                        )
                        last_error = HttpStatusError(
                            f"{method} {url} returned {resp.status}", status=resp.status
                        )
                        if attempt < attempts - 1:
                            await asyncio.sleep(wait)
                        continue
                    if resp.status >= 400:
                        body = await resp.text()
                        raise HttpStatusError(
                            f"{method} {url} returned {resp.status}: {body[:200]}",
                            status=resp.status,
                        )
                    text = await resp.text()
            except (asyncio.TimeoutError, aiohttp.ClientError) as exc:
                last_error = exc
                logger.warning(
                    "%s %s failed (attempt %d/%d): %s", method, url, attempt + 1, attempts, exc
                )
                if attempt < attempts - 1:
                    await asyncio.sleep(self.base_delay * (attempt + 1))
                continue
            try:
                return json.loads(text)
            except json.JSONDecodeError as exc:
                raise UpstreamError(f"{method} {url} returned malformed JSON") from exc
        raise UpstreamError(
            f"{method} {url} failed after {attempts} attempts: {last_error}"
        ) from last_error

    async def get_json(self, url: str, params: dict[str, Any] | None = None) -> Any:
        return await self.request_json("GET", url, params=params)

    async def post_json(self, url: str, payload: Any, *, retry: bool = True) -> Any:
        return await self.request_json("POST", url, payload=payload, retry=retry)


__all__ = ["HttpClient", "MAX_RETRY_WAIT_S"]
