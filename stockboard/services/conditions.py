"""
장초반 조건 플래그 계산

- condition1: 09:30~09:50 중 한 번이라도 가격 > 전일 중간값
- condition2: 09:50~10:00 중 가격 <= 전일 중간값인 분봉이 하나도 없음 (데이터 없으면 참)
- condition3: 09:30~10:00 거래량이 전일 같은 구간 거래량 이상

전일 중간값 = (전일 고가 + 전일 저가) / 2
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from stockboard.models import Conditions, IntradaySnapshot
from stockboard.services.price_log import PriceLog

logger = logging.getLogger(__name__)

CONDITION1_WINDOW = ("0930", "0950")
CONDITION2_WINDOW = ("0950", "1000")
VOLUME_WINDOW = ("0930", "1000")


def _in_window(snapshots: Sequence[IntradaySnapshot], window: tuple[str, str]) -> list[IntradaySnapshot]:
    start, end = window
    return sorted((s for s in snapshots if start <= s.time <= end), key=lambda s: s.time)


def window_volume(snapshots: Sequence[IntradaySnapshot], window: tuple[str, str]) -> int:
    """
    구간 거래량 = 구간 마지막 누적거래량 - 구간 직전 누적거래량.
    구간 직전 분봉이 없으면 구간 첫 분봉의 누적값에서 그 분의 체결량을 뺀 값을 기준으로 한다.
    """
    inside = _in_window(snapshots, window)
    if not inside:
        return 0
    before = [s for s in snapshots if s.time < window[0]]
    if before:
        baseline = max(before, key=lambda s: s.time).cumulative_volume
    else:
        baseline = inside[0].cumulative_volume - inside[0].volume
    return max(inside[-1].cumulative_volume - baseline, 0)


def compute_conditions(
    latest_intraday: Sequence[IntradaySnapshot],
    prev_intraday: Sequence[IntradaySnapshot],
    prev_middle: float,
) -> Conditions:
    condition1 = any(s.price > prev_middle for s in _in_window(latest_intraday, CONDITION1_WINDOW))
    condition2 = not any(s.price <= prev_middle for s in _in_window(latest_intraday, CONDITION2_WINDOW))
    condition3 = window_volume(latest_intraday, VOLUME_WINDOW) >= window_volume(prev_intraday, VOLUME_WINDOW)
    return Conditions(condition1=condition1, condition2=condition2, condition3=condition3)


def conditions_from_entry(entry: Optional[dict]) -> Optional[Conditions]:
    if not entry:
        return None
    values = [entry.get(field) for field in ("condition1", "condition2", "condition3")]
    if any(not isinstance(value, bool) for value in values):
        return None
    return Conditions(*values)


class ConditionEvaluator:
    def __init__(self, price_log: PriceLog) -> None:
        self._price_log = price_log

    async def cached_conditions(self, code: str, latest_date: str) -> Optional[Conditions]:
        """이미 저장된 날짜의 플래그가 있으면 그대로 반환 (분봉 재조회 생략용)."""
        return conditions_from_entry(await self._price_log.get_entry(code, latest_date))

    async def evaluate_conditions(
        self,
        code: str,
        latest_date: str,
        prev_date: str,
        latest_intraday: Sequence[IntradaySnapshot],
        prev_intraday: Sequence[IntradaySnapshot],
        prev_middle: float,
    ) -> Conditions:
        cached = await self.cached_conditions(code, latest_date)
        if cached is not None:
            logger.info("conditions cache hit: %s %s", code, latest_date)
            return cached

        result = compute_conditions(latest_intraday, prev_intraday, prev_middle)
        logger.info(
            "conditions computed: %s %s (prev=%s middle=%.1f) -> %s",
            code,
            latest_date,
            prev_date,
            prev_middle,
            result.to_dict(),
        )
        return result
