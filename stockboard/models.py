"""
==============================================================================
도메인 모델 정의 (models.py)
==============================================================================

KIS 응답에서 추출한 값과 캐시/로그에 저장하는 값의 형태를 정의합니다.

    1. AccessToken       - 접근토큰 + 발급시각
    2. DailyPriceRecord  - 일별 시가/종가/고가/저가
    3. IntradaySnapshot  - 분봉 한 건 (HHMM, 가격, 누적거래량)
    4. Conditions        - 장초반 조건 플래그 3종

가격 로그(StockLogEntry)는 저장소에 JSON 그대로 보관하므로
별도 클래스 없이 dict 로 다룹니다. (services/price_log.py 참고)

==============================================================================
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any


@dataclass(frozen=True)
class AccessToken:
    value: str
    issued_at: float  # epoch 초

    def age(self, now: float) -> float:
        return now - self.issued_at

    def is_fresh(self, now: float, window_seconds: float) -> bool:
        return self.age(now) < window_seconds

    def to_dict(self) -> dict[str, Any]:
        return {"value": self.value, "issued_at": self.issued_at}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AccessToken":
        return cls(value=str(data["value"]), issued_at=float(data["issued_at"]))


@dataclass(frozen=True)
class DailyPriceRecord:
    date: str  # YYYYMMDD
    open: int
    close: int
    high: int
    low: int

    @property
    def middle(self) -> float:
        return (self.high + self.low) / 2

    @property
    def change(self) -> int:
        return self.close - self.open

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DailyPriceRecord":
        return cls(
            date=str(data["date"]),
            open=int(data["open"]),
            close=int(data["close"]),
            high=int(data["high"]),
            low=int(data["low"]),
        )


@dataclass(frozen=True)
class IntradaySnapshot:
    time: str  # HHMM
    price: int
    cumulative_volume: int
    volume: int = 0  # 해당 분의 체결량


@dataclass(frozen=True)
class Conditions:
    condition1: bool
    condition2: bool
    condition3: bool

    def to_dict(self) -> dict[str, bool]:
        return asdict(self)
