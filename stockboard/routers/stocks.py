"""
KIS Open API를 사용하는 주식 라우터
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Path, Query

from stockboard.dependencies import Services, get_services
from stockboard.kis.errors import KISError
from stockboard.routers.common import raise_kis_http_error
from stockboard.schemas import StockInfoResponse

router = APIRouter(
    prefix="/api",
    tags=["stocks"],
)

logger = logging.getLogger(__name__)


@router.get("/stock/{code}", response_model=StockInfoResponse)
async def get_stock(
    code: str = Path(..., pattern=r"^[A-Za-z0-9]{6}$", description="종목코드 (6자리)"),
    services: Services = Depends(get_services),
):
    """
    최근 개장일의 시가/종가/고가/저가와 중간값/변화량.
    """
    try:
        return await services.dashboard.get_stock(code)
    except KISError as exc:
        logger.warning("stock lookup failed for %s: %s", code, exc.message)
        raise_kis_http_error(exc)


@router.get("/stocks")
async def get_stocks(
    codes: str = Query("", description="쉼표로 구분한 종목코드 (예: 005930,000660)"),
    services: Services = Depends(get_services),
):
    """
    여러 종목 일괄 조회. 종목별 실패는 errors 에 담기고 나머지는 계속 처리됩니다.
    """
    stock_codes = [code.strip() for code in codes.split(",") if code.strip()]
    if not stock_codes:
        raise HTTPException(
            status_code=400,
            detail="종목 코드가 없습니다. codes 파라미터를 제공해주세요. (예: ?codes=005930,000660)",
        )

    try:
        return await services.dashboard.get_stocks(stock_codes)
    except KISError as exc:
        raise_kis_http_error(exc)
