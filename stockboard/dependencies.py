"""
서비스 객체 조립

설정 하나로 저장소 -> 토큰 캐시 -> KIS 클라이언트 -> 로그/조건/대시보드를 연결합니다.
테스트에서는 build_services 에 가짜 저장소/전송 계층을 넣거나
app.dependency_overrides[get_services] 로 교체합니다.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

import httpx

from stockboard.config import Settings, get_settings
from stockboard.kis.client import KISClient
from stockboard.kis.quotes import QuoteClient
from stockboard.kis.retry import RetryPolicy
from stockboard.kis.token_issuer import TokenIssuer
from stockboard.kis.token_manager import TokenCacheManager
from stockboard.kis.token_store import TokenStore
from stockboard.services.conditions import ConditionEvaluator
from stockboard.services.dashboard import StockDashboardService
from stockboard.services.market_clock import Clock, now_kst
from stockboard.services.price_log import PriceLog
from stockboard.storage import KeyValueStore, build_store


@dataclass
class Services:
    settings: Settings
    store: KeyValueStore
    token_manager: TokenCacheManager
    kis_client: KISClient
    quotes: QuoteClient
    price_log: PriceLog
    evaluator: ConditionEvaluator
    dashboard: StockDashboardService

    async def aclose(self) -> None:
        await self.kis_client.aclose()
        await self.store.aclose()


def build_services(
    settings: Settings,
    *,
    store: Optional[KeyValueStore] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    retry_policy: Optional[RetryPolicy] = None,
    clock: Clock = now_kst,
) -> Services:
    store = store if store is not None else build_store(settings)
    token_manager = TokenCacheManager(
        settings,
        TokenStore(store),
        TokenIssuer(settings, transport=transport),
        clock=lambda: clock().timestamp(),
    )
    kis_client = KISClient(settings, retry_policy=retry_policy, transport=transport)
    quotes = QuoteClient(kis_client, max_intraday_pages=settings.kis_intraday_max_pages)
    price_log = PriceLog(store, settings, token_manager=token_manager, quotes=quotes, clock=clock)
    evaluator = ConditionEvaluator(price_log)
    dashboard = StockDashboardService(
        settings, store, token_manager, quotes, price_log, evaluator, clock=clock
    )
    return Services(
        settings=settings,
        store=store,
        token_manager=token_manager,
        kis_client=kis_client,
        quotes=quotes,
        price_log=price_log,
        evaluator=evaluator,
        dashboard=dashboard,
    )


@lru_cache()
def get_services() -> Services:
    return build_services(get_settings())
