"""
KIS Open API HTTP 클라이언트 래퍼
"""

from __future__ import annotations

import asyncio
from collections import deque
import logging
import time
from typing import Any, Optional

import httpx

from stockboard.config import Settings
from stockboard.kis.errors import KISError, TransientNetworkError
from stockboard.kis.retry import RetryPolicy, is_transient_network_error

logger = logging.getLogger(__name__)


class KISClient:
    def __init__(
        self,
        settings: Settings,
        *,
        retry_policy: RetryPolicy | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings
        self._retry_policy = retry_policy or RetryPolicy()
        self._transport = transport
        self._http_client: httpx.AsyncClient | None = None
        self._client_lock = asyncio.Lock()
        self._rate_limit_lock = asyncio.Lock()
        self._request_timestamps: deque[float] = deque()

    async def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is not None:
            return self._http_client

        async with self._client_lock:
            if self._http_client is None:
                self._http_client = httpx.AsyncClient(
                    timeout=self._settings.kis_timeout,
                    transport=self._transport,
                )
            return self._http_client

    async def aclose(self) -> None:
        async with self._client_lock:
            if self._http_client is not None:
                await self._http_client.aclose()
                self._http_client = None

    async def request(
        self,
        method: str,
        path: str,
        tr_id: str,
        token: str,
        *,
        params: Optional[dict[str, Any]] = None,
        json: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        """
        공통 헤더와 재시도 정책을 적용해 KIS API를 호출합니다.

        KIS 헤더:
        - authorization: Bearer <access_token>
        - appkey / appsecret: KIS 발급 키
        - tr_id: API 거래 ID
        - custtype: 기본 P(개인)

        일시적 네트워크 오류가 재시도 후에도 계속되면 TransientNetworkError,
        HTTP 오류는 KISError 로 올립니다.
        """
        if not self._settings.kis_base_url:
            raise KISError("KIS base URL not configured", status_code=500)

        base_url = self._settings.kis_base_url.rstrip("/")
        url = f"{base_url}{path}"
        headers = {
            "content-type": "application/json; charset=utf-8",
            "authorization": f"Bearer {token}",
            "appkey": self._settings.kis_app_key,
            "appsecret": self._settings.kis_app_secret,
            "tr_id": tr_id,
            "custtype": "P",
        }

        async def _attempt() -> httpx.Response:
            client = await self._get_http_client()
            await self._acquire_rate_limit_slot()
            return await client.request(method, url, headers=headers, params=params, json=json)

        try:
            resp = await self._retry_policy.call(_attempt)
        except (httpx.HTTPError, OSError) as exc:
            if is_transient_network_error(exc):
                logger.error(
                    "KIS request retries exhausted (tr_id=%s attempts=%d): %s",
                    tr_id,
                    self._retry_policy.max_attempts,
                    exc,
                )
                raise TransientNetworkError(f"KIS request failed ({tr_id}): {exc}") from exc
            raise KISError(f"KIS request failed ({tr_id}): {exc}", status_code=502) from exc

        if resp.status_code >= 400:
            message = f"KIS request HTTP {resp.status_code}"
            kis_code: str | None = None
            try:
                payload = resp.json()
            except ValueError:
                payload = None
            if isinstance(payload, dict):
                msg = payload.get("msg1")
                if msg:
                    message = f"{message}: {msg}"
                raw_code = payload.get("msg_cd")
                kis_code = str(raw_code) if raw_code else None
            raise KISError(message, status_code=resp.status_code, code=kis_code)

        try:
            data = resp.json()
        except ValueError as exc:
            raise KISError("KIS response is not JSON", status_code=502) from exc
        if not isinstance(data, dict):
            raise KISError("KIS response is not an object", status_code=502)
        return data

    async def _acquire_rate_limit_slot(self) -> None:
        max_rps = int(self._settings.kis_max_requests_per_second or 0)
        if max_rps <= 0:
            return

        window_seconds = 1.0
        while True:
            sleep_seconds = 0.0
            async with self._rate_limit_lock:
                now = time.monotonic()
                cutoff = now - window_seconds
                while self._request_timestamps and self._request_timestamps[0] <= cutoff:
                    self._request_timestamps.popleft()

                if len(self._request_timestamps) < max_rps:
                    self._request_timestamps.append(now)
                    return

                oldest = self._request_timestamps[0]
                sleep_seconds = max((oldest + window_seconds) - now, 0.001)
            await asyncio.sleep(sleep_seconds)
