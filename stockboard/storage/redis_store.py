"""
Redis 저장소 (여러 무상태 인스턴스가 공유)

연결은 처음 사용할 때 만들고, 끊긴 것이 확인되면 다시 연결합니다.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from redis.asyncio import Redis
from redis.exceptions import ConnectionError as RedisConnectionError

from stockboard.storage.base import KeyValueStore

logger = logging.getLogger(__name__)


class RedisStore(KeyValueStore):
    def __init__(
        self,
        url: str,
        *,
        socket_timeout: float = 10.0,
        client_factory: Optional[Callable[[], Redis]] = None,
    ) -> None:
        self._url = url
        self._socket_timeout = socket_timeout
        self._client_factory = client_factory or self._default_factory
        self._client: Redis | None = None
        self._client_lock = asyncio.Lock()

    def _default_factory(self) -> Redis:
        return Redis.from_url(
            self._url,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=self._socket_timeout,
        )

    async def _get_client(self) -> Redis:
        if self._client is not None:
            return self._client

        async with self._client_lock:
            if self._client is None:
                self._client = self._client_factory()
                logger.info("redis client created: %s", self._redacted_url())
            return self._client

    async def _reset_client(self) -> None:
        async with self._client_lock:
            client, self._client = self._client, None
        if client is not None:
            try:
                await client.aclose()
            except RedisConnectionError:
                pass

    async def _call(self, op: Callable[[Redis], Awaitable[Any]]) -> Any:
        client = await self._get_client()
        try:
            return await op(client)
        except RedisConnectionError as exc:
            # 닫힌 연결이면 한 번만 새로 연결해 재실행
            logger.warning("redis connection lost; reconnecting: %s", exc)
            await self._reset_client()
            client = await self._get_client()
            return await op(client)

    async def get(self, key: str) -> Optional[str]:
        value = await self._call(lambda c: c.get(key))
        if value is None:
            return None
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return str(value)

    async def set(self, key: str, value: str, ttl_seconds: Optional[float] = None) -> None:
        if ttl_seconds is None:
            await self._call(lambda c: c.set(key, value))
            return
        if ttl_seconds <= 0:
            return
        await self._call(lambda c: c.set(key, value, ex=max(int(ttl_seconds), 1)))

    async def delete(self, key: str) -> bool:
        removed = await self._call(lambda c: c.delete(key))
        return bool(removed)

    async def ping(self) -> bool:
        try:
            return bool(await self._call(lambda c: c.ping()))
        except RedisConnectionError:
            return False

    async def aclose(self) -> None:
        await self._reset_client()

    def _redacted_url(self) -> str:
        if "@" not in self._url:
            return self._url
        scheme, _, rest = self._url.partition("://")
        return f"{scheme}://***@{rest.split('@', 1)[1]}"
