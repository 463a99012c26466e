"""
프로세스 메모리 TTL 저장소 (테스트/단일 프로세스용)
"""

from __future__ import annotations

import asyncio
import time
from typing import Callable, Optional

from stockboard.storage.base import KeyValueStore


class MemoryStore(KeyValueStore):
    def __init__(
        self,
        cleanup_interval_seconds: float = 30.0,
        max_cleanup_per_run: int = 200,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        # key -> (만료시각 또는 None, 값)
        self._store: dict[str, tuple[Optional[float], str]] = {}
        self._lock = asyncio.Lock()
        self._cleanup_interval_seconds = cleanup_interval_seconds
        self._max_cleanup_per_run = max_cleanup_per_run
        self._next_cleanup_at = 0.0
        self._clock = clock

    async def get(self, key: str) -> Optional[str]:
        now = self._clock()
        async with self._lock:
            self._cleanup_expired_locked(now)
            entry = self._store.get(key)
            if not entry:
                return None
            expires_at, value = entry
            if expires_at is not None and expires_at <= now:
                self._store.pop(key, None)
                return None
            return value

    async def set(self, key: str, value: str, ttl_seconds: Optional[float] = None) -> None:
        if ttl_seconds is not None and ttl_seconds <= 0:
            return
        now = self._clock()
        expires_at = now + ttl_seconds if ttl_seconds is not None else None
        async with self._lock:
            self._store[key] = (expires_at, value)
            self._cleanup_expired_locked(now)

    async def delete(self, key: str) -> bool:
        async with self._lock:
            return self._store.pop(key, None) is not None

    def _cleanup_expired_locked(self, now: float) -> None:
        if now < self._next_cleanup_at:
            return

        removed = 0
        for key, (expires_at, _) in list(self._store.items()):
            if expires_at is not None and expires_at <= now:
                self._store.pop(key, None)
                removed += 1
                if removed >= self._max_cleanup_per_run:
                    break

        self._next_cleanup_at = now + self._cleanup_interval_seconds
