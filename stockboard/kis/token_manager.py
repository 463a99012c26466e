"""
KIS Open API 접근토큰 캐시 (메모리 -> 내구성 저장소 -> 원격 발급)
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from typing import Awaitable, Callable, Optional

from stockboard.config import Settings
from stockboard.kis.errors import ConfigError, IssuanceError
from stockboard.kis.token_issuer import TokenIssuer
from stockboard.kis.token_store import TokenStore
from stockboard.models import AccessToken

logger = logging.getLogger(__name__)


class TokenCacheManager:
    """
    여러 무상태 호출이 하나의 접근토큰을 공유하도록 관리합니다.

    조회 순서:
    1. 인스턴스 메모리 (12시간 이내 발급분) - I/O 없음
    2. 내구성 저장소 (12시간 이내 발급분) - 메모리로 가져옴
    3. 원격 발급 - 저장소와 메모리에 기록

    발급 제한(1분당 1회)에 걸리면 24시간 이내 발급된 토큰을 대신 반환하고,
    그런 토큰이 없으면 예상 대기시간과 함께 IssuanceError 를 올립니다.
    직전 발급 시도 후 1분이 지나지 않았을 때도 쓸 수 있는 토큰이 있으면 그것을 쓰고,
    없으면 저장소를 한 번 더 확인한 뒤 발급합니다.
    인스턴스 간 잠금은 없습니다. 중복 발급은 허용되며 저장소는 마지막 쓰기가 이깁니다.
    """

    def __init__(
        self,
        settings: Settings,
        token_store: TokenStore,
        issuer: TokenIssuer,
        *,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._settings = settings
        self._tokens = token_store
        self._issuer = issuer
        self._clock = clock
        self._sleep = sleep
        self._memory: Optional[AccessToken] = None
        self._issuing = False

    @property
    def validity_seconds(self) -> float:
        return self._settings.token_validity_hours * 3600

    @property
    def hard_ceiling_seconds(self) -> float:
        return self._settings.token_hard_ceiling_hours * 3600

    @property
    def issue_interval_seconds(self) -> float:
        return self._settings.token_issue_interval_seconds

    async def get_access_token(self) -> str:
        if not self._settings.kis_app_key or not self._settings.kis_app_secret:
            raise ConfigError(
                "KIS app key/secret not configured (set KIS_APP_KEY and KIS_APP_SECRET)"
            )

        now = self._clock()
        if self._memory is not None and self._memory.is_fresh(now, self.validity_seconds):
            return self._memory.value

        stored = await self._tokens.load()
        if stored is not None and stored.is_fresh(now, self.validity_seconds):
            logger.info("access token adopted from store (age=%.0fs)", stored.age(now))
            self._memory = stored
            return stored.value

        if self._issuing:
            # 같은 프로세스에서 발급 중이면 잠시 기다렸다가 메모리를 다시 확인
            await self._sleep(self._settings.token_inflight_wait_seconds)
            now = self._clock()
            if self._memory is not None and self._memory.is_fresh(now, self.validity_seconds):
                return self._memory.value

        last_request_at = await self._tokens.last_request_at()
        if last_request_at is not None:
            elapsed = now - last_request_at
            if 0 <= elapsed < self.issue_interval_seconds:
                paced = await self._freshest_within_ceiling(now)
                if paced is not None:
                    logger.info(
                        "token issuance paced: last attempt %.0fs ago, reusing token (age=%.0fs)",
                        elapsed,
                        paced.age(now),
                    )
                    self._memory = paced
                    return paced.value
                # 다른 인스턴스가 발급 중일 수 있으니 한 번 기다렸다가 저장소를 다시 확인
                await self._sleep(self._settings.token_inflight_wait_seconds)
                now = self._clock()
                stored = await self._tokens.load()
                if stored is not None and stored.is_fresh(now, self.validity_seconds):
                    logger.info("access token adopted from store after wait (age=%.0fs)", stored.age(now))
                    self._memory = stored
                    return stored.value

        return await self._issue(now)

    async def _issue(self, now: float) -> str:
        self._issuing = True
        try:
            await self._tokens.mark_request(now, ttl_seconds=self.issue_interval_seconds)
            logger.info("requesting new KIS access token")
            try:
                issued = await self._issuer.issue()
            except IssuanceError as exc:
                if exc.rate_limited:
                    logger.warning("token issuance rate limited (code=%s): %s", exc.code, exc.message)
                    return await self._fallback_or_raise(
                        now, math.ceil(self.issue_interval_seconds), cause=exc
                    )
                logger.error("token issuance failed (status=%s): %s", exc.status_code, exc.message)
                raise
        finally:
            self._issuing = False

        token = AccessToken(value=issued.access_token, issued_at=now)
        await self._tokens.save(
            token,
            ttl_seconds=self.validity_seconds,
            fallback_ttl_seconds=self.hard_ceiling_seconds,
        )
        self._memory = token
        logger.info("access token issued (expires_in=%ds, reuse window=%.0fh)",
                    issued.expires_in, self._settings.token_validity_hours)
        return token.value

    async def _fallback_or_raise(
        self,
        now: float,
        retry_after: int,
        cause: Optional[IssuanceError] = None,
    ) -> str:
        fallback = await self._freshest_within_ceiling(now)
        if fallback is not None:
            logger.warning(
                "using degraded fallback token (age=%.0fs, ceiling=%.0fh)",
                fallback.age(now),
                self._settings.token_hard_ceiling_hours,
            )
            self._memory = fallback
            return fallback.value

        message = (
            "KIS 정책상 접근토큰 발급은 1분당 1회만 가능합니다. "
            f"{retry_after}초 후 다시 시도해주세요."
        )
        error = IssuanceError(
            message,
            rate_limited=True,
            retry_after=retry_after,
            status_code=429,
            code=cause.code if cause is not None else None,
        )
        if cause is not None:
            raise error from cause
        raise error

    async def _freshest_within_ceiling(self, now: float) -> Optional[AccessToken]:
        candidates = [self._memory, await self._tokens.load(), await self._tokens.load_fallback()]
        usable = [
            token
            for token in candidates
            if token is not None and token.is_fresh(now, self.hard_ceiling_seconds)
        ]
        if not usable:
            return None
        return max(usable, key=lambda token: token.issued_at)
