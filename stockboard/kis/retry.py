"""
일시적 네트워크 오류 재시도 정책

연결 끊김/타임아웃/DNS 실패만 재시도하고(최대 2회 추가, 2초 -> 4초),
정상 응답인데 데이터가 없는 경우는 재시도하지 않습니다.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, TypeVar

import httpx
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_incrementing,
)

from stockboard.kis.errors import KISError, TransientNetworkError

logger = logging.getLogger(__name__)

T = TypeVar("T")

_TRANSIENT_HTTPX_ERRORS = (
    httpx.ConnectError,  # DNS 실패 포함
    httpx.TimeoutException,
    httpx.ReadError,
    httpx.WriteError,
    httpx.RemoteProtocolError,  # 연결 리셋
)

_TRANSIENT_MESSAGE_MARKERS = (
    "econnreset",
    "connection reset",
    "etimedout",
    "timed out",
    "enotfound",
    "name or service not known",
    "temporary failure in name resolution",
    "getaddrinfo",
)


def is_transient_network_error(exc: BaseException) -> bool:
    if isinstance(exc, TransientNetworkError):
        return True
    if isinstance(exc, _TRANSIENT_HTTPX_ERRORS):
        return True
    if isinstance(exc, KISError):
        return False
    if isinstance(exc, (ConnectionResetError, TimeoutError, asyncio.TimeoutError)):
        return True
    text = str(exc).lower()
    return any(marker in text for marker in _TRANSIENT_MESSAGE_MARKERS)


@dataclass
class RetryPolicy:
    max_attempts: int = 3
    backoff_start: float = 2.0
    backoff_increment: float = 2.0
    retryable: Callable[[BaseException], bool] = is_transient_network_error
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep)

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_incrementing(start=self.backoff_start, increment=self.backoff_increment),
            retry=retry_if_exception(self.retryable),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            sleep=self.sleep,
            reraise=True,
        )

    async def call(self, fn: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        return await self._retrying()(fn, *args, **kwargs)
