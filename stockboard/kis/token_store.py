"""
접근토큰 영속화 (내구성 저장소 위)

키:
- kis:access-token          정상 재사용 구간(12h) TTL
- kis:access-token:fallback 최후 상한(24h) TTL, 발급 제한 시 대체용
- kis:token-last-request    마지막 발급 시도 시각, 발급 간격(65s) TTL
"""

from __future__ import annotations

import json
import logging
from typing import Optional

from stockboard.models import AccessToken
from stockboard.storage import KeyValueStore

logger = logging.getLogger(__name__)

TOKEN_KEY = "kis:access-token"
FALLBACK_TOKEN_KEY = "kis:access-token:fallback"
LAST_REQUEST_KEY = "kis:token-last-request"


class TokenStore:
    def __init__(self, store: KeyValueStore) -> None:
        self._store = store

    async def _load(self, key: str) -> Optional[AccessToken]:
        raw = await self._store.get(key)
        if not raw:
            return None
        try:
            return AccessToken.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError) as exc:
            logger.warning("stored token is malformed (key=%s): %s", key, exc)
            return None

    async def load(self) -> Optional[AccessToken]:
        return await self._load(TOKEN_KEY)

    async def load_fallback(self) -> Optional[AccessToken]:
        return await self._load(FALLBACK_TOKEN_KEY)

    async def save(self, token: AccessToken, *, ttl_seconds: float, fallback_ttl_seconds: float) -> None:
        raw = json.dumps(token.to_dict())
        await self._store.set(TOKEN_KEY, raw, ttl_seconds=ttl_seconds)
        await self._store.set(FALLBACK_TOKEN_KEY, raw, ttl_seconds=fallback_ttl_seconds)

    async def last_request_at(self) -> Optional[float]:
        raw = await self._store.get(LAST_REQUEST_KEY)
        if not raw:
            return None
        try:
            return float(raw)
        except ValueError:
            return None

    async def mark_request(self, at: float, *, ttl_seconds: float) -> None:
        await self._store.set(LAST_REQUEST_KEY, repr(at), ttl_seconds=ttl_seconds)
