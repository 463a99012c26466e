"""
종목별 가격 로그 라우터
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Path, Query

from stockboard.dependencies import Services, get_services
from stockboard.kis.errors import KISError
from stockboard.routers.common import raise_kis_http_error
from stockboard.schemas import LogConditionsRequest, LogsResponse

router = APIRouter(
    prefix="/api/logs",
    tags=["logs"],
)

logger = logging.getLogger(__name__)

_CODE_PATTERN = r"^[A-Za-z0-9]{6}$"
_DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}$"


@router.get("/fetch-today-prices")
async def fetch_today_prices(
    code: str = Query(..., pattern=_CODE_PATTERN, description="종목코드 (6자리)"),
    services: Services = Depends(get_services),
):
    """
    11시 이후 화면 접속 시, 당일 로그가 없거나 10:30 가격이 비어 있으면
    09:30~10:30 분봉으로 슬롯을 채워 저장합니다.
    """
    try:
        return await services.dashboard.fetch_today_prices(code)
    except KISError as exc:
        raise_kis_http_error(exc)


@router.get("/{code}", response_model=LogsResponse)
async def get_logs(
    code: str = Path(..., pattern=_CODE_PATTERN),
    services: Services = Depends(get_services),
):
    return {"logs": await services.price_log.get_log(code)}


@router.post("/{code}")
async def save_log(
    body: LogConditionsRequest,
    code: str = Path(..., pattern=_CODE_PATTERN),
    services: Services = Depends(get_services),
):
    logs = await services.price_log.save_conditions(code, body.date, body.model_dump())
    return {"success": True, "logs": logs}


@router.delete("/{code}")
async def delete_log(
    code: str = Path(..., pattern=_CODE_PATTERN),
    date: str = Query(..., pattern=_DATE_PATTERN),
    services: Services = Depends(get_services),
):
    found = await services.price_log.delete_log(code, date)
    if not found:
        raise HTTPException(status_code=404, detail=f"{date} 로그를 찾을 수 없습니다.")
    return {"success": True, "date": date}
