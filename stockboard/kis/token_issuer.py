"""
KIS Open API 접근토큰 발급 (상태 없음)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

import httpx

from stockboard.config import Settings
from stockboard.kis.errors import ConfigError, IssuanceError

# 접근토큰 발급 제한(1분당 1회) 오류 코드
TOKEN_RATE_LIMIT_CODE = "EGW00133"


@dataclass(frozen=True)
class IssuedToken:
    access_token: str
    expires_in: int


def _error_code(payload: Any) -> Optional[str]:
    if not isinstance(payload, dict):
        return None
    for field in ("error_code", "msg_cd"):
        raw = payload.get(field)
        if raw:
            return str(raw)
    return None


def _error_message(payload: Any) -> Optional[str]:
    if not isinstance(payload, dict):
        return None
    for field in ("error_description", "msg1"):
        raw = payload.get(field)
        if raw:
            return str(raw)
    return None


class TokenIssuer:
    def __init__(self, settings: Settings, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._settings = settings
        self._transport = transport

    async def issue(self) -> IssuedToken:
        """
        client_credentials 로 새 접근토큰을 발급받습니다.

        - 앱키/시크릿 미설정: ConfigError
        - 발급 제한(EGW00133): IssuanceError(rate_limited=True)
        - 그 외 실패: IssuanceError
        """
        settings = self._settings
        if not settings.kis_app_key or not settings.kis_app_secret:
            raise ConfigError(
                "KIS app key/secret not configured (set KIS_APP_KEY and KIS_APP_SECRET)"
            )

        base_url = settings.kis_base_url.rstrip("/")
        url = f"{base_url}/oauth2/tokenP"
        payload = {
            "grant_type": "client_credentials",
            "appkey": settings.kis_app_key,
            "appsecret": settings.kis_app_secret,
        }

        try:
            async with httpx.AsyncClient(timeout=settings.kis_timeout, transport=self._transport) as client:
                resp = await client.post(
                    url,
                    json=payload,
                    headers={"content-type": "application/json; charset=utf-8"},
                )
        except httpx.RequestError as exc:
            raise IssuanceError(f"KIS token request failed: {exc}", status_code=502) from exc

        try:
            data = resp.json()
        except ValueError:
            data = None

        if resp.status_code >= 400 or _error_code(data) == TOKEN_RATE_LIMIT_CODE:
            code = _error_code(data)
            detail = _error_message(data)
            message = f"KIS token request HTTP {resp.status_code}"
            if detail:
                message = f"{message}: {detail}"
            raise IssuanceError(
                message,
                rate_limited=code == TOKEN_RATE_LIMIT_CODE,
                status_code=resp.status_code,
                code=code,
            )

        if not isinstance(data, dict):
            raise IssuanceError("KIS token response is not JSON", status_code=502)

        access_token = data.get("access_token")
        expires_in = data.get("expires_in")
        if not access_token:
            raise IssuanceError("KIS token response missing fields", status_code=502)
        try:
            expires_in_seconds = int(expires_in) if expires_in is not None else 86400
        except (TypeError, ValueError):
            expires_in_seconds = 86400

        return IssuedToken(str(access_token), expires_in_seconds)
