"""
==============================================================================
API 스키마 정의 (schemas.py)
==============================================================================

이 파일은 API에서 주고받는 데이터의 형식을 정의합니다.

    - StockInfoResponse:    단일 종목 일봉 정보
    - StockLogEntry:        종목별 날짜 로그 한 건
    - LogsResponse:         로그 목록 (최근 60일, 최신순)
    - LogConditionsRequest: 화면에서 계산/확인한 조건 플래그 저장 요청

==============================================================================
"""

import re
from typing import Optional

from pydantic import BaseModel, field_validator


class StockInfoResponse(BaseModel):
    """
    단일 종목 응답 스키마

    API 응답 예시:
    {
        "code": "005930",
        "name": "삼성전자",
        "date": "2026-10-16",
        "open": 67800, "close": 68200, "high": 68500, "low": 67600,
        "middle": 68050, "change": 400
    }
    """
    code: str
    name: str
    date: str
    open: int
    close: int
    high: int
    low: int
    middle: int
    change: int


class StockLogEntry(BaseModel):
    """
    종목별 날짜 로그

    prices 의 슬롯 값이 null 이면 해당 시각 데이터가 없다는 뜻입니다 (화면에서 '-').
    """
    date: str
    prices: dict[str, Optional[int]] = {}
    condition1: Optional[bool] = None
    condition2: Optional[bool] = None
    condition3: Optional[bool] = None
    priceAt10am: Optional[int] = None
    priceAt11am: Optional[int] = None
    closePrice: Optional[int] = None


class LogsResponse(BaseModel):
    logs: list[StockLogEntry]


class LogConditionsRequest(BaseModel):
    """조건 플래그 저장 요청 스키마"""
    date: str
    condition1: bool = False
    condition2: bool = False
    condition3: bool = False
    priceAt10am: Optional[int] = None
    priceAt11am: Optional[int] = None
    closePrice: int = 0

    @field_validator("date")
    @classmethod
    def _validate_date(cls, value: str) -> str:
        if not re.fullmatch(r"\d{4}-\d{2}-\d{2}", value):
            raise ValueError("date must be in YYYY-MM-DD format")
        return value
