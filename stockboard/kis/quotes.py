"""
KIS 시세 조회 (현재가 / 일자별 / 분봉 / 종목명)

일시적 네트워크 오류는 KISClient 의 재시도 정책이 처리하고,
재시도가 끝나도 실패하면 예외 대신 None(또는 빈 목록)을 반환해
여러 종목을 도는 배치 작업이 다음 종목으로 넘어갈 수 있게 합니다.
"""

from __future__ import annotations

from datetime import datetime, timedelta
import logging
from typing import Any, Optional

from stockboard.kis.client import KISClient
from stockboard.kis.errors import DataUnavailable, KISError, TransientNetworkError
from stockboard.kis.transformers import (
    KST,
    extract_current_price,
    extract_first,
    extract_stock_name,
    is_valid_stock_name,
    normalize_hhmm,
    normalize_yyyymmdd,
    response_rows,
    transform_daily_records,
    transform_intraday_rows,
    MINUTE_DATE_FIELDS,
    MINUTE_TIME_FIELDS,
)
from stockboard.models import DailyPriceRecord, IntradaySnapshot

logger = logging.getLogger(__name__)

# 종목명 매핑 (API 종목명이 유효하지 않을 때 사용)
STOCK_NAME_MAP = {
    "005930": "삼성전자",
    "000660": "SK하이닉스",
    "005380": "현대차",
    "207940": "삼성바이오로직스",
    "006400": "삼성SDI",
}
UNKNOWN_STOCK_NAME = "알 수 없음"


def _ensure_kis_ok(data: dict) -> None:
    rt_cd = data.get("rt_cd")
    if rt_cd is not None and str(rt_cd) != "0":
        raise DataUnavailable(data.get("msg1") or "KIS API error", code=data.get("msg_cd"))


def _previous_minute(hhmm: str) -> str:
    prev = datetime.strptime(hhmm, "%H%M") - timedelta(minutes=1)
    return prev.strftime("%H%M")


class QuoteClient:
    def __init__(self, client: KISClient, *, max_intraday_pages: int = 5) -> None:
        self._client = client
        self._max_intraday_pages = max(int(max_intraday_pages), 1)

    async def _get(self, path: str, tr_id: str, token: str, params: dict[str, Any]) -> dict:
        data = await self._client.request("GET", path, tr_id, token, params=params)
        _ensure_kis_ok(data)
        return data

    async def get_current_price(self, code: str, token: str) -> Optional[int]:
        try:
            data = await self._get(
                "/uapi/domestic-stock/v1/quotations/inquire-price",
                "FHKST01010100",  # KIS: 주식현재가 시세
                token,
                {"FID_COND_MRKT_DIV_CODE": "J", "FID_INPUT_ISCD": code},
            )
        except TransientNetworkError as exc:
            logger.error("current price fetch failed for %s: %s", code, exc.message)
            return None
        except KISError as exc:
            logger.warning("current price unavailable for %s (code=%s): %s", code, exc.code, exc.message)
            return None

        price = extract_current_price(data)
        if price is None:
            logger.warning("current price missing in response for %s", code)
        return price

    async def get_daily_price_range(self, code: str, token: str) -> list[DailyPriceRecord]:
        """
        최근 일자별 시세 (최신 날짜가 앞).
        KIS 일자별 시세는 최근 30 거래일을 내려준다.
        """
        today = datetime.now(tz=KST).strftime("%Y%m%d")
        try:
            data = await self._get(
                "/uapi/domestic-stock/v1/quotations/inquire-daily-price",
                "FHKST01010400",  # KIS: 주식현재가 일자별
                token,
                {
                    "FID_COND_MRKT_DIV_CODE": "J",
                    "FID_INPUT_ISCD": code,
                    "FID_INPUT_DATE_1": today,
                    "FID_INPUT_DATE_2": today,
                    "FID_PERIOD_DIV_CODE": "D",
                    "FID_ORG_ADJ_PRC": "0",
                },
            )
        except TransientNetworkError as exc:
            logger.error("daily price fetch failed for %s: %s", code, exc.message)
            return []
        except KISError as exc:
            logger.warning("daily price unavailable for %s (code=%s): %s", code, exc.code, exc.message)
            return []

        records = transform_daily_records(data)
        if not records:
            logger.warning("daily price response has no usable rows for %s", code)
        return records

    async def get_intraday(
        self,
        code: str,
        date: str,
        token: str,
        start_slot: str,
        end_slot: str,
    ) -> Optional[list[IntradaySnapshot]]:
        """
        date 하루의 [start_slot, end_slot] 분봉을 시간 오름차순으로 반환합니다.

        주식일별분봉조회는 기준시간부터 과거로 한 페이지씩 내려주므로,
        end_slot 에서 시작해 start_slot 이 포함될 때까지 기준시간을 당겨가며 조회한다.
        첫 페이지 이후 실패하면 그때까지 모은 데이터를 반환한다.
        """
        day = normalize_yyyymmdd(date)
        start = normalize_hhmm(start_slot)
        end = normalize_hhmm(end_slot)
        if day is None or start is None or end is None:
            raise ValueError(f"invalid intraday window: date={date} start={start_slot} end={end_slot}")

        rows: list[dict[str, Any]] = []
        cursor = end
        for page in range(self._max_intraday_pages):
            try:
                data = await self._get(
                    "/uapi/domestic-stock/v1/quotations/inquire-time-dailychartprice",
                    "FHKST03010230",  # KIS: 주식일별분봉조회
                    token,
                    {
                        "FID_COND_MRKT_DIV_CODE": "J",
                        "FID_INPUT_ISCD": code,
                        "FID_INPUT_HOUR_1": f"{cursor}00",
                        "FID_INPUT_DATE_1": day,
                        "FID_PW_DATA_INCU_YN": "Y",
                        "FID_FAKE_TICK_INCU_YN": "",
                    },
                )
            except KISError as exc:
                if rows:
                    logger.warning(
                        "intraday pagination stopped; returning partial data (code=%s cursor=%s reason=%s)",
                        code,
                        cursor,
                        exc.message,
                    )
                    break
                if isinstance(exc, TransientNetworkError):
                    logger.error("intraday fetch failed for %s %s: %s", code, day, exc.message)
                else:
                    logger.warning("intraday unavailable for %s %s (code=%s): %s", code, day, exc.code, exc.message)
                return None

            page_rows = response_rows(data)
            page_times = []
            for row in page_rows:
                row_date = extract_first(row, MINUTE_DATE_FIELDS, normalize_yyyymmdd)
                if row_date is not None and row_date != day:
                    continue
                hhmm = extract_first(row, MINUTE_TIME_FIELDS, normalize_hhmm)
                if hhmm is not None:
                    page_times.append(hhmm)
            rows.extend(page_rows)

            if not page_times:
                break
            oldest = min(page_times)
            if oldest <= start:
                break
            next_cursor = _previous_minute(oldest)
            if next_cursor >= cursor:
                break
            cursor = next_cursor

        snapshots = [s for s in transform_intraday_rows(rows, date=day) if start <= s.time <= end]
        if not snapshots:
            logger.warning("intraday response has no rows in %s-%s for %s %s", start, end, code, day)
            return None
        logger.info("intraday rows for %s %s: %d in %s-%s", code, day, len(snapshots), start, end)
        return snapshots

    async def get_stock_name(self, code: str, token: str) -> str:
        mapped = STOCK_NAME_MAP.get(code)
        try:
            data = await self._get(
                "/uapi/domestic-stock/v1/quotations/inquire-price",
                "FHKST01010100",
                token,
                {"FID_COND_MRKT_DIV_CODE": "J", "FID_INPUT_ISCD": code},
            )
        except KISError as exc:
            logger.info("stock name lookup failed for %s, using mapping: %s", code, exc.message)
            return mapped or UNKNOWN_STOCK_NAME

        api_name = extract_stock_name(data)
        if is_valid_stock_name(api_name):
            return api_name
        logger.info("API stock name invalid for %s (%r), using mapping", code, api_name)
        return mapped or UNKNOWN_STOCK_NAME
