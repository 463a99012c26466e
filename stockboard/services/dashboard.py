"""
==============================================================================
대시보드 서비스 (dashboard.py)
==============================================================================

화면(프레젠테이션 계층)에 넘길 데이터를 조립합니다.

    - get_stock           단일 종목: 최근 개장일 시가/종가/고가/저가
    - get_stocks          여러 종목 일괄: 직전 개장일 OHLC + 전일종가 + 현재가
                          + 조건 플래그 + 가격 로그 (종목별 실패는 errors 로 분리)
    - log_prices          크론: 09:30~10:30 5분 간격으로 현재가 기록
    - fetch_today_prices  11시 이후 당일 로그 누락 슬롯 보충

토큰/설정 오류는 작업 전체를 중단시키고, 종목별 오류는 해당 종목만 실패로 기록합니다.

==============================================================================
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

from stockboard.config import Settings
from stockboard.kis.errors import DataUnavailable
from stockboard.kis.quotes import QuoteClient
from stockboard.kis.token_manager import TokenCacheManager
from stockboard.models import Conditions, DailyPriceRecord
from stockboard.services.conditions import VOLUME_WINDOW, ConditionEvaluator
from stockboard.services.market_clock import (
    Clock,
    api_date_to_log_date,
    format_api_date,
    format_log_date,
    is_trading_day,
    now_kst,
    seconds_until_midnight,
)
from stockboard.services.price_log import (
    ALREADY_COMPLETE,
    BACKFILLED,
    SKIPPED_BEFORE_CUTOFF,
    SKIPPED_NON_TRADING_DAY,
    PriceLog,
    extract_price_at_slot,
)
from stockboard.storage import KeyValueStore

logger = logging.getLogger(__name__)

DAILY_REF_KEY_PREFIX = "stock-daily-ref-"

_BACKFILL_MESSAGES = {
    SKIPPED_NON_TRADING_DAY: "오늘은 주식시장 휴장일입니다.",
    SKIPPED_BEFORE_CUTOFF: "11시 이후에만 사용 가능합니다.",
    ALREADY_COMPLETE: "이미 로그가 존재합니다.",
    BACKFILLED: "가격 로그를 조회하고 저장했습니다.",
}


def _record_payload(record: DailyPriceRecord) -> dict[str, Any]:
    return {
        "date": api_date_to_log_date(record.date),
        "open": record.open,
        "close": record.close,
        "high": record.high,
        "low": record.low,
        "middle": round(record.middle),
        "change": record.change,
    }


class StockDashboardService:
    def __init__(
        self,
        settings: Settings,
        store: KeyValueStore,
        token_manager: TokenCacheManager,
        quotes: QuoteClient,
        price_log: PriceLog,
        evaluator: ConditionEvaluator,
        *,
        clock: Clock = now_kst,
    ) -> None:
        self._settings = settings
        self._store = store
        self._token_manager = token_manager
        self._quotes = quotes
        self._price_log = price_log
        self._evaluator = evaluator
        self._clock = clock

    # ------------------------------------------------------------------
    # 일봉 기준값 (최근 개장일 + 직전 개장일)
    # ------------------------------------------------------------------

    async def _reference_days(
        self, code: str, token: str
    ) -> tuple[DailyPriceRecord, Optional[DailyPriceRecord]]:
        now = self._clock()
        today = format_api_date(now.date())
        cache_key = f"{DAILY_REF_KEY_PREFIX}{code}-{today}"

        raw = await self._store.get(cache_key)
        if raw:
            try:
                latest_raw, prev_raw = json.loads(raw)
                return DailyPriceRecord.from_dict(latest_raw), DailyPriceRecord.from_dict(prev_raw)
            except (ValueError, KeyError, TypeError) as exc:
                logger.warning("daily reference cache malformed for %s: %s", code, exc)

        records = await self._quotes.get_daily_price_range(code, token)
        if not records:
            raise DataUnavailable("주식 정보를 찾을 수 없습니다. 종목코드를 확인해주세요.")

        latest = records[0]
        prev = records[1] if len(records) > 1 else None
        # 개장일에는 장 시작 전후로 최근 개장일이 바뀌므로 휴장일에만 캐시한다
        if prev is not None and not is_trading_day(now.date()):
            await self._store.set(
                cache_key,
                json.dumps([latest.to_dict(), prev.to_dict()]),
                ttl_seconds=seconds_until_midnight(now),
            )
        return latest, prev

    # ------------------------------------------------------------------
    # 조건 플래그
    # ------------------------------------------------------------------

    def _volume_window_closed(self, latest: DailyPriceRecord) -> bool:
        now = self._clock()
        if latest.date != format_api_date(now.date()):
            return True
        return now.strftime("%H%M") > VOLUME_WINDOW[1]

    async def _conditions_for(
        self,
        code: str,
        token: str,
        latest: DailyPriceRecord,
        prev: DailyPriceRecord,
    ) -> Optional[Conditions]:
        latest_date = api_date_to_log_date(latest.date)
        cached = await self._evaluator.cached_conditions(code, latest_date)
        if cached is not None:
            return cached
        if not self._volume_window_closed(latest):
            return None

        start, end = VOLUME_WINDOW
        latest_intraday = await self._quotes.get_intraday(code, latest.date, token, start, end)
        if latest_intraday is None:
            return None
        prev_intraday = await self._quotes.get_intraday(code, prev.date, token, start, end)

        conditions = await self._evaluator.evaluate_conditions(
            code,
            latest_date,
            api_date_to_log_date(prev.date),
            latest_intraday,
            prev_intraday or [],
            prev.middle,
        )
        fields: dict[str, Any] = conditions.to_dict()
        fields["priceAt10am"] = extract_price_at_slot(latest_intraday, "1000")
        if latest.date != format_api_date(self._clock().date()):
            fields["closePrice"] = latest.close
        await self._price_log.save_conditions(code, latest_date, fields)
        return conditions

    # ------------------------------------------------------------------
    # 조회 API
    # ------------------------------------------------------------------

    async def get_stock(self, code: str) -> dict[str, Any]:
        token = await self._token_manager.get_access_token()
        name = await self._quotes.get_stock_name(code, token)
        latest, _ = await self._reference_days(code, token)
        payload = {"code": code, "name": name}
        payload.update(_record_payload(latest))
        return payload

    async def _stock_summary(self, code: str, token: str) -> dict[str, Any]:
        name = await self._quotes.get_stock_name(code, token)
        latest, prev = await self._reference_days(code, token)
        if prev is None:
            raise DataUnavailable("최근 개장일 바로 이전의 개장일 데이터를 찾을 수 없습니다.")

        current_price = await self._quotes.get_current_price(code, token)
        conditions = await self._conditions_for(code, token, latest, prev)
        logs = await self._price_log.get_log(code)

        summary: dict[str, Any] = {"code": code, "name": name}
        summary.update(_record_payload(prev))
        summary.update(
            {
                "latestDate": api_date_to_log_date(latest.date),
                "prevClose": latest.close,
                "currentPrice": current_price,
                "condition1": conditions.condition1 if conditions else None,
                "condition2": conditions.condition2 if conditions else None,
                "condition3": conditions.condition3 if conditions else None,
                "logs": logs,
            }
        )
        return summary

    async def get_stocks(self, codes: list[str]) -> dict[str, Any]:
        """
        한 번 받은 토큰으로 모든 종목을 순서대로 조회합니다.
        종목별 실패는 errors 에 메시지로 남기고 다음 종목을 계속 처리한다.
        """
        token = await self._token_manager.get_access_token()
        logger.info("batch lookup started: %d codes", len(codes))

        results: dict[str, Any] = {}
        errors: dict[str, str] = {}
        for code in codes:
            try:
                results[code] = await self._stock_summary(code, token)
            except Exception as exc:
                message = getattr(exc, "message", None) or str(exc) or "알 수 없는 오류"
                logger.warning("batch lookup failed for %s: %s", code, message)
                errors[code] = message

        logger.info("batch lookup finished: success=%d failed=%d", len(results), len(errors))
        return {
            "success": len(results),
            "failed": len(errors),
            "results": results,
            "errors": errors or None,
        }

    # ------------------------------------------------------------------
    # 가격 로그
    # ------------------------------------------------------------------

    async def log_prices(self) -> dict[str, Any]:
        """
        크론 작업: 현재 KST 시각이 로그 슬롯(09:30~10:30, 5분 간격)이면
        관심 종목 전체의 현재가를 기록합니다.
        """
        now = self._clock()
        today = now.date()
        if not is_trading_day(today):
            logger.info("market closed today; price logging skipped")
            return {"success": False, "message": "Market is closed today"}

        hhmm = now.strftime("%H%M")
        if hhmm not in self._price_log.slots:
            logger.info("KST %s is not a logging slot", hhmm)
            return {"success": False, "message": f"Current time KST {hhmm} is not a logging time"}

        date_str = format_log_date(today)
        token = await self._token_manager.get_access_token()
        logger.info("price logging started: %s %s (KST)", date_str, hhmm)

        results: dict[str, Any] = {}
        errors: dict[str, str] = {}
        for code in self._settings.watch_list_codes:
            try:
                price = await self._quotes.get_current_price(code, token)
                if price is None:
                    errors[code] = "현재가 조회 실패"
                    continue
                await self._price_log.record_snapshot(code, date_str, hhmm, price)
                results[code] = {"time": hhmm, "price": price}
            except Exception as exc:
                logger.warning("price logging failed for %s: %s", code, exc)
                errors[code] = str(exc)

        logger.info("price logging finished: %s %s success=%d failed=%d", date_str, hhmm, len(results), len(errors))
        return {
            "success": True,
            "date": date_str,
            "time": hhmm,
            "results": results,
            "errors": errors or None,
        }

    async def fetch_today_prices(self, code: str) -> dict[str, Any]:
        outcome = await self._price_log.backfill_today(code)
        return {
            "success": outcome.status in (BACKFILLED, ALREADY_COMPLETE),
            "status": outcome.status,
            "date": outcome.date,
            "log": outcome.entry,
            "message": _BACKFILL_MESSAGES[outcome.status],
        }
