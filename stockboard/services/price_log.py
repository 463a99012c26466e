"""
==============================================================================
종목별 장초반 가격 로그 (price_log.py)
==============================================================================

저장 형태 (키: stock-log-{종목코드}, TTL 없음):

    [
        {
            "date": "2026-10-16",
            "prices": {"0930": 68100, "0935": null, ..., "1030": 68200},
            "condition1": true, "condition2": false, "condition3": true,
            "priceAt10am": 68060, "priceAt11am": null, "closePrice": 68300
        },
        ...
    ]

규칙:
    - 날짜당 항목은 하나, 최신 날짜가 앞
    - 쓸 때마다 보관 기간(기본 60일)이 지난 항목은 삭제
    - 슬롯은 한 번 값이 들어가면 null 로 덮어쓰지 않음
    - 조회 실패 슬롯은 빠뜨리지 않고 null 로 기록 (화면에서 '-'로 표시)
    - 한 종목의 배열 전체를 한 번에 저장 (동시 쓰기는 마지막 쓰기가 이김)

==============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
import json
import logging
from typing import Any, Iterable, Optional

from stockboard.config import Settings
from stockboard.kis.quotes import QuoteClient
from stockboard.kis.token_manager import TokenCacheManager
from stockboard.kis.transformers import normalize_hhmm
from stockboard.models import IntradaySnapshot
from stockboard.services.market_clock import (
    Clock,
    build_slots,
    format_api_date,
    format_log_date,
    is_trading_day,
    now_kst,
    parse_log_date,
)
from stockboard.storage import KeyValueStore

logger = logging.getLogger(__name__)

LOG_KEY_PREFIX = "stock-log-"

CONDITION_FIELDS = (
    "condition1",
    "condition2",
    "condition3",
    "priceAt10am",
    "priceAt11am",
    "closePrice",
)

# backfill_today 결과 상태
SKIPPED_NON_TRADING_DAY = "skipped_non_trading_day"
SKIPPED_BEFORE_CUTOFF = "skipped_before_cutoff"
ALREADY_COMPLETE = "already_complete"
BACKFILLED = "backfilled"


@dataclass
class BackfillOutcome:
    status: str
    date: str
    entry: Optional[dict[str, Any]] = None

    @property
    def performed(self) -> bool:
        return self.status == BACKFILLED


def log_key(code: str) -> str:
    return f"{LOG_KEY_PREFIX}{code}"


def extract_price_at_slot(snapshots: Iterable[IntradaySnapshot], slot: str) -> Optional[int]:
    """
    분봉 목록에서 slot(HHMM) 가격을 찾는다.

    1. 같은 HHMM
    2. 같은 시(hour)이고 1분 이내인 가장 가까운 분봉 (동률이면 이른 쪽)
    3. 없으면 None
    """
    candidates = [s for s in snapshots if s.price > 0]
    for snapshot in candidates:
        if snapshot.time == slot:
            return snapshot.price

    target_hour = slot[:2]
    target_minute = int(slot[2:4])
    nearby = [
        (abs(int(s.time[2:4]) - target_minute), s.time, s.price)
        for s in candidates
        if s.time[:2] == target_hour and abs(int(s.time[2:4]) - target_minute) <= 1
    ]
    if not nearby:
        return None
    return min(nearby)[2]


def merge_prices(existing: dict[str, Optional[int]], fetched: dict[str, Optional[int]]) -> None:
    """fetched 슬롯을 existing 에 반영한다. 기존의 null 이 아닌 값은 null 로 덮지 않는다."""
    for slot, price in fetched.items():
        if price is None and existing.get(slot) is not None:
            continue
        existing[slot] = price


def _merge_duplicate(base: dict[str, Any], other: dict[str, Any]) -> None:
    prices = base.setdefault("prices", {})
    merge_prices(prices, other.get("prices") or {})
    for field, value in other.items():
        if field in ("date", "prices"):
            continue
        if base.get(field) is None and value is not None:
            base[field] = value


class PriceLog:
    def __init__(
        self,
        store: KeyValueStore,
        settings: Settings,
        *,
        token_manager: Optional[TokenCacheManager] = None,
        quotes: Optional[QuoteClient] = None,
        clock: Clock = now_kst,
    ) -> None:
        self._store = store
        self._settings = settings
        self._token_manager = token_manager
        self._quotes = quotes
        self._clock = clock
        self.slots = build_slots(settings.slot_start, settings.slot_end, settings.slot_interval_minutes)

    # ------------------------------------------------------------------
    # 저장/정리
    # ------------------------------------------------------------------

    async def _read(self, code: str) -> list[dict[str, Any]]:
        raw = await self._store.get(log_key(code))
        if not raw:
            return []
        try:
            data = json.loads(raw)
        except ValueError as exc:
            logger.warning("price log for %s is not valid JSON; starting empty: %s", code, exc)
            return []
        if not isinstance(data, list):
            logger.warning("price log for %s is not a list; starting empty", code)
            return []
        return [entry for entry in data if isinstance(entry, dict)]

    async def _write(self, code: str, entries: list[dict[str, Any]]) -> None:
        raw = json.dumps(entries, ensure_ascii=False, sort_keys=True)
        await self._store.set(log_key(code), raw)

    def normalize(self, entries: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """보관 기간 정리 + 날짜 중복 병합 + 최신순 정렬."""
        today = self._clock().date()
        cutoff = today - timedelta(days=self._settings.log_retention_days)

        by_date: dict[str, dict[str, Any]] = {}
        for entry in entries:
            entry_date = parse_log_date(entry.get("date"))
            if entry_date is None:
                logger.warning("dropping price log entry with invalid date: %r", entry.get("date"))
                continue
            if entry_date < cutoff:
                continue
            key = format_log_date(entry_date)
            if key in by_date:
                _merge_duplicate(by_date[key], entry)
            else:
                entry["date"] = key
                by_date[key] = entry

        return [by_date[key] for key in sorted(by_date, reverse=True)]

    async def _save(self, code: str, entries: list[dict[str, Any]]) -> list[dict[str, Any]]:
        normalized = self.normalize(entries)
        await self._write(code, normalized)
        return normalized

    # ------------------------------------------------------------------
    # 조회/기록/삭제
    # ------------------------------------------------------------------

    async def get_log(self, code: str) -> list[dict[str, Any]]:
        """보관 기간 이내 항목을 최신순으로 반환합니다."""
        return self.normalize(await self._read(code))

    async def get_entry(self, code: str, date: str) -> Optional[dict[str, Any]]:
        for entry in await self.get_log(code):
            if entry.get("date") == date:
                return entry
        return None

    async def record_snapshot(self, code: str, date: str, slot: str, price: int) -> dict[str, Any]:
        if parse_log_date(date) is None:
            raise ValueError(f"date must be YYYY-MM-DD: {date!r}")
        hhmm = normalize_hhmm(slot)
        if hhmm is None:
            raise ValueError(f"slot must be HHMM: {slot!r}")
        if price is None or int(price) < 0:
            raise ValueError(f"price must be a non-negative integer: {price!r}")

        entries = await self._read(code)
        entry = next((e for e in entries if e.get("date") == date), None)
        if entry is None:
            entry = {"date": date, "prices": {}}
            entries.append(entry)
        entry.setdefault("prices", {})[hhmm] = int(price)

        await self._save(code, entries)
        logger.info("price logged: %s %s %s = %s", code, date, hhmm, price)
        return entry

    async def save_conditions(self, code: str, date: str, fields: dict[str, Any]) -> list[dict[str, Any]]:
        """날짜 항목의 파생 필드(condition1~3, priceAt10am 등)를 갱신합니다. prices 는 유지."""
        if parse_log_date(date) is None:
            raise ValueError(f"date must be YYYY-MM-DD: {date!r}")

        entries = await self._read(code)
        entry = next((e for e in entries if e.get("date") == date), None)
        if entry is None:
            entry = {"date": date, "prices": {}}
            entries.append(entry)
        for field in CONDITION_FIELDS:
            if field in fields:
                entry[field] = fields[field]

        saved = await self._save(code, entries)
        logger.info("conditions logged: %s %s", code, date)
        return saved

    async def delete_log(self, code: str, date: str) -> bool:
        """date 항목 하나만 삭제합니다. 다른 날짜 항목은 그대로 둔다."""
        entries = await self._read(code)
        remaining = [entry for entry in entries if entry.get("date") != date]
        if len(remaining) == len(entries):
            return False
        await self._write(code, remaining)
        logger.info("price log entry deleted: %s %s", code, date)
        return True

    # ------------------------------------------------------------------
    # 당일 누락 슬롯 보충
    # ------------------------------------------------------------------

    async def backfill_today(self, code: str) -> BackfillOutcome:
        """
        당일 로그가 없거나 마지막 슬롯(10:30)이 비어 있으면
        09:30~10:30 분봉을 한 번에 조회해 모든 슬롯을 채웁니다.

        개장일이 아니거나 기준 시각(11시) 전에는 아무것도 하지 않는다.
        """
        now = self._clock()
        today = now.date()
        date_str = format_log_date(today)

        if not is_trading_day(today):
            return BackfillOutcome(SKIPPED_NON_TRADING_DAY, date_str)
        if now.hour < self._settings.backfill_cutoff_hour:
            return BackfillOutcome(SKIPPED_BEFORE_CUTOFF, date_str)

        entries = await self._read(code)
        entry = next((e for e in entries if e.get("date") == date_str), None)
        last_slot = self.slots[-1]
        if entry is not None and (entry.get("prices") or {}).get(last_slot) is not None:
            return BackfillOutcome(ALREADY_COMPLETE, date_str, entry)

        if self._token_manager is None or self._quotes is None:
            raise RuntimeError("backfill requires a token manager and a quote client")

        token = await self._token_manager.get_access_token()
        snapshots = await self._quotes.get_intraday(
            code, format_api_date(today), token, self.slots[0], last_slot
        )
        if snapshots is None:
            logger.warning("%s intraday data unavailable; all slots recorded as null", code)
            snapshots = []

        fetched = {slot: extract_price_at_slot(snapshots, slot) for slot in self.slots}
        missing = [slot for slot, price in fetched.items() if price is None]
        if missing:
            logger.info("%s slots without data (stored as null): %s", code, ",".join(missing))

        if entry is None:
            entry = {"date": date_str, "prices": {}}
            entries.append(entry)
        merge_prices(entry.setdefault("prices", {}), fetched)

        await self._save(code, entries)
        logger.info("%s today's price log backfilled (%s)", code, date_str)
        return BackfillOutcome(BACKFILLED, date_str, entry)
