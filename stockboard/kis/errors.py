"""
KIS API 오류 타입
"""

from __future__ import annotations


class KISError(Exception):
    """KIS 통신용 기본 오류."""

    def __init__(self, message: str, status_code: int = 500, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code


class ConfigError(KISError):
    """앱키/시크릿 등 필수 설정 누락. 재시도하지 않는다."""

    def __init__(self, message: str) -> None:
        super().__init__(message, status_code=500, code="CONFIG")


class IssuanceError(KISError):
    """
    접근토큰 발급 실패.

    rate_limited=True 이면 발급 제한(1분당 1회)에 걸린 것이며,
    retry_after 는 다시 시도할 수 있을 때까지의 예상 대기 시간(초)이다.
    """

    def __init__(
        self,
        message: str,
        *,
        rate_limited: bool = False,
        retry_after: int | None = None,
        status_code: int = 502,
        code: str | None = None,
    ) -> None:
        super().__init__(message, status_code=status_code, code=code)
        self.rate_limited = rate_limited
        self.retry_after = retry_after


class TransientNetworkError(KISError):
    """연결 끊김/타임아웃/DNS 실패 등 재시도 가능한 네트워크 오류."""

    def __init__(self, message: str) -> None:
        super().__init__(message, status_code=502, code="NETWORK")


class DataUnavailable(KISError):
    """정상 응답이지만 사용할 수 있는 행이 없음. 재시도 대상이 아니다."""

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message, status_code=200, code=code)
