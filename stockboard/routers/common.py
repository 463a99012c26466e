"""
KIS 오류 -> HTTP 오류 변환
"""

from __future__ import annotations

from typing import NoReturn

from fastapi import HTTPException

from stockboard.kis.errors import ConfigError, DataUnavailable, IssuanceError, KISError


def raise_kis_http_error(exc: KISError) -> NoReturn:
    if isinstance(exc, ConfigError):
        raise HTTPException(
            status_code=500,
            detail={
                "error": "API 키가 설정되지 않았습니다.",
                "message": exc.message,
                "hint": "환경변수 KIS_APP_KEY와 KIS_APP_SECRET을 설정해주세요.",
            },
        )
    if isinstance(exc, IssuanceError) and exc.rate_limited:
        retry_after = exc.retry_after or 60
        raise HTTPException(
            status_code=503,
            detail={
                "error": "토큰 발급 제한",
                "message": exc.message,
                "code": exc.code,
                "retry_after": retry_after,
            },
            headers={"Retry-After": str(retry_after)},
        )
    if isinstance(exc, IssuanceError):
        raise HTTPException(
            status_code=502,
            detail={"error": "토큰 발급 실패", "message": exc.message, "code": exc.code},
        )
    if isinstance(exc, DataUnavailable):
        raise HTTPException(
            status_code=404,
            detail={"error": exc.message, "message": exc.message, "code": exc.code},
        )
    raise HTTPException(
        status_code=502,
        detail={
            "status_code": exc.status_code,
            "code": exc.code,
            "message": exc.message,
        },
    )
