"""
저장소 인터페이스와 백엔드 팩토리
"""

from __future__ import annotations

import abc
from typing import Optional

from stockboard.config import Settings


class KeyValueStore(abc.ABC):
    """
    문자열 키-값 저장소.

    - get: 없거나 만료되었으면 None
    - set: ttl_seconds 가 None 이면 만료 없음
    - 동시 쓰기는 마지막 쓰기가 이긴다 (트랜잭션 없음)
    """

    @abc.abstractmethod
    async def get(self, key: str) -> Optional[str]:
        ...

    @abc.abstractmethod
    async def set(self, key: str, value: str, ttl_seconds: Optional[float] = None) -> None:
        ...

    @abc.abstractmethod
    async def delete(self, key: str) -> bool:
        ...

    async def ping(self) -> bool:
        return True

    async def aclose(self) -> None:
        return None


def build_store(settings: Settings) -> KeyValueStore:
    backend = (settings.store_backend or "memory").strip().lower()
    if backend == "memory":
        from stockboard.storage.memory import MemoryStore

        return MemoryStore()
    if backend == "file":
        from stockboard.storage.file import FileStore

        return FileStore(settings.store_dir)
    if backend == "redis":
        from stockboard.storage.redis_store import RedisStore

        return RedisStore(settings.redis_url, socket_timeout=settings.redis_socket_timeout)
    raise ValueError(f"Unsupported store backend: {settings.store_backend}")
