from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional

import httpx

from restbridge.config import Settings, settings as default_settings
from .errors import (
    BackendStatusError,
    BackendTimeoutError,
    GatewayConnectionError,
    RestBridgeError,
)

logger = logging.getLogger(__name__)

DOCUMENTUM_JSON = "application/vnd.emc.documentum+json"

JsonMap = Dict[str, Any]


class BackendClient:
    """
    Authenticated wrapper around httpx.AsyncClient for one Documentum REST
    endpoint. Safe for concurrent use by several requests of the same session.

    Non-2xx answers raise BackendStatusError, timeouts raise
    BackendTimeoutError and other transport failures raise
    GatewayConnectionError. Idempotent GETs are retried on connect failures.
    """

    def __init__(
        self,
        base_url: str,
        username: str,
        password: str,
        *,
        config: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url
        self._settings = config or default_settings
        self._client = httpx.AsyncClient(
            base_url=base_url,
            auth=httpx.BasicAuth(username, password),
            headers={"Accept": "application/json"},
            timeout=self._settings.timeout_seconds,
            transport=transport,
        )
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def get_json(
        self,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        timeout: float | None = None,
        accept: str | None = None,
        retry: bool = True,
    ) -> Optional[JsonMap]:
        headers = {"Accept": accept} if accept else None
        return await self._request_json(
            "GET", path, params=params, timeout=timeout, headers=headers, retry=retry
        )

    async def post_json(
        self,
        path: str,
        payload: Mapping[str, Any],
        *,
        params: Mapping[str, Any] | None = None,
        timeout: float | None = None,
    ) -> Optional[JsonMap]:
        return await self._request_json(
            "POST", path, params=params, json_body=payload, timeout=timeout, retry=False
        )

    async def put_json(self, path: str, *, timeout: float | None = None) -> Optional[JsonMap]:
        return await self._request_json("PUT", path, timeout=timeout, retry=False)

    async def delete(
        self,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        timeout: float | None = None,
    ) -> None:
        await self._send("DELETE", path, params=params, timeout=timeout, retry=False)

    async def aclose(self) -> None:
        if not self._closed:
            self._closed = True
            await self._client.aclose()

    # ---------- internals ----------

    async def _request_json(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        json_body: Mapping[str, Any] | None = None,
        timeout: float | None = None,
        headers: Dict[str, str] | None = None,
        retry: bool,
    ) -> Optional[JsonMap]:
        resp = await self._send(
            method,
            path,
            params=params,
            json_body=json_body,
            timeout=timeout,
            headers=headers,
            retry=retry,
        )
        if resp.status_code == 204 or not resp.content:
            return None
        try:
            data = resp.json()
        except ValueError as e:
            raise RestBridgeError(
                "REST_ERROR", f"Backend returned invalid JSON for {method} {path}", str(e)
            ) from e
        if not isinstance(data, dict):
            raise RestBridgeError(
                "REST_ERROR", f"Backend returned unexpected {type(data).__name__} for {method} {path}"
            )
        return data

    async def _send(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        json_body: Mapping[str, Any] | None = None,
        timeout: float | None = None,
        headers: Dict[str, str] | None = None,
        retry: bool,
    ) -> httpx.Response:
        if self._closed:
            raise GatewayConnectionError("Backend client is closed")

        effective_timeout = timeout or self._settings.timeout_seconds

        async def do_request() -> httpx.Response:
            return await self._client.request(
                method,
                path,
                params=params,
                json=json_body,
                headers=headers,
                timeout=effective_timeout,
            )

        try:
            if retry:
                resp = await _retry_connect_errors(
                    do_request,
                    retries=self._settings.retry_attempts,
                    base_delay=self._settings.retry_backoff_base,
                )
            else:
                resp = await do_request()
        except httpx.TimeoutException as e:
            logger.warning("Backend timeout after %ss: %s %s", effective_timeout, method, path)
            raise BackendTimeoutError(
                f"Backend did not answer within {effective_timeout:g}s ({method} {path})"
            ) from e
        except httpx.RequestError as e:
            logger.warning("Backend request failed: %s %s: %s", method, path, e)
            raise GatewayConnectionError(f"Cannot connect to REST endpoint: {self.base_url}", str(e)) from e

        if resp.is_error:
            logger.debug("Backend %s %s -> HTTP %s", method, path, resp.status_code)
            raise BackendStatusError(resp.status_code, resp.text)
        return resp


async def _retry_connect_errors(
    func: Callable[[], Awaitable[httpx.Response]],
    *,
    retries: int,
    base_delay: float,
) -> httpx.Response:
    """Exponential backoff, only for failures where the request never left."""
    attempt = 0
    delay = base_delay
    while True:
        try:
            return await func()
        except httpx.ConnectError:
            if attempt >= retries:
                raise
            await asyncio.sleep(delay)
            delay *= 2
            attempt += 1
