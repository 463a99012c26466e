"""
스케줄러(cron) 라우터
"""

from __future__ import annotations

import hmac
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException

from stockboard.dependencies import Services, get_services
from stockboard.kis.errors import KISError
from stockboard.routers.common import raise_kis_http_error

router = APIRouter(
    prefix="/api/cron",
    tags=["cron"],
)

logger = logging.getLogger(__name__)


def _check_cron_secret(secret: str, authorization: Optional[str], x_cron_secret: Optional[str]) -> None:
    """CRON_SECRET 이 설정된 경우에만 Bearer 또는 X-Cron-Secret 헤더를 검사한다."""
    if not secret:
        return
    bearer = (authorization or "").strip()
    header = (x_cron_secret or "").strip()
    if hmac.compare_digest(bearer, f"Bearer {secret}") or hmac.compare_digest(header, secret):
        return
    logger.warning("cron authentication failed: missing or mismatched secret")
    raise HTTPException(
        status_code=401,
        detail={"error": "Unauthorized", "message": "Invalid or missing cron secret"},
    )


@router.get("/log-prices")
async def log_prices(
    authorization: Optional[str] = Header(None),
    x_cron_secret: Optional[str] = Header(None),
    services: Services = Depends(get_services),
):
    """
    개장일 09:30~10:30 (5분 간격)에 호출되어 관심 종목 현재가를 기록합니다.
    """
    _check_cron_secret(services.settings.cron_secret, authorization, x_cron_secret)
    try:
        return await services.dashboard.log_prices()
    except KISError as exc:
        logger.error("cron price logging aborted: %s", exc.message)
        raise_kis_http_error(exc)
