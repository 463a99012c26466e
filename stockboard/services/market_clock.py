"""
한국 주식시장 시간 유틸리티 (KST, 개장일, 로그 시간대)
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Callable, Optional

from stockboard.kis.transformers import KST


def now_kst() -> datetime:
    return datetime.now(tz=KST)


def is_trading_day(day: date) -> bool:
    """주말(토/일)만 휴장으로 본다. 공휴일 달력은 다루지 않는다."""
    return day.weekday() < 5


def format_log_date(day: date) -> str:
    return day.strftime("%Y-%m-%d")


def format_api_date(day: date) -> str:
    return day.strftime("%Y%m%d")


def parse_log_date(text: object) -> Optional[date]:
    if not isinstance(text, str):
        return None
    try:
        return datetime.strptime(text, "%Y-%m-%d").date()
    except ValueError:
        return None


def api_date_to_log_date(text: str) -> str:
    """YYYYMMDD -> YYYY-MM-DD"""
    return f"{text[:4]}-{text[4:6]}-{text[6:8]}"


def build_slots(start: str, end: str, interval_minutes: int) -> list[str]:
    """
    [start, end] 구간의 HHMM 슬롯을 interval 간격으로 만든다.
    예: build_slots("0930", "1030", 5) -> ["0930", "0935", ..., "1030"]
    """
    if interval_minutes <= 0:
        raise ValueError("interval_minutes must be positive")
    current = datetime.strptime(start, "%H%M")
    last = datetime.strptime(end, "%H%M")
    slots: list[str] = []
    while current <= last:
        slots.append(current.strftime("%H%M"))
        current += timedelta(minutes=interval_minutes)
    return slots


def seconds_until_midnight(now: datetime) -> int:
    midnight = (now + timedelta(days=1)).replace(hour=0, minute=0, second=0, microsecond=0)
    return max(int((midnight - now).total_seconds()), 1)


Clock = Callable[[], datetime]
