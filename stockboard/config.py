"""
==============================================================================
설정 관리 모듈 (config.py)
==============================================================================

이 파일은 서비스의 모든 설정을 관리합니다.
설정값들은 환경변수(.env 파일)에서 가져오거나, 기본값을 사용합니다.

설정 우선순위:
    1. 환경변수 (예: export KIS_APP_KEY="...")  <- 가장 높은 우선순위
    2. .env 파일에 적힌 값
    3. 코드에 적힌 기본값                      <- 가장 낮은 우선순위

예시:
    - 로컬 개발: store_backend=memory (프로세스 메모리)
    - 서버리스/크론: store_backend=redis (여러 인스턴스가 같은 저장소 공유)

==============================================================================
"""

from functools import lru_cache  # 캐싱 기능 (설정을 한 번만 읽어옴)

from pydantic_settings import BaseSettings  # 설정 관리 라이브러리


class Settings(BaseSettings):
    """
    애플리케이션 설정 클래스

    이 클래스에 정의된 변수들은 자동으로 환경변수에서 값을 가져옵니다.
    환경변수 이름은 대소문자를 구분하지 않습니다.

    예: kis_app_key -> KIS_APP_KEY 환경변수에서 값을 가져옴
    """

    # =========================================================================
    # KIS Open API 설정
    # =========================================================================
    #
    # KIS_BASE_URL:
    #   - 실전: https://openapi.koreainvestment.com:9443
    #   - 모의: https://openapivts.koreainvestment.com:29443
    #
    kis_base_url: str = "https://openapi.koreainvestment.com:9443"
    kis_app_key: str = ""
    kis_app_secret: str = ""
    kis_timeout: float = 30.0
    kis_max_requests_per_second: int = 2
    # 분봉 조회는 1회 호출당 최대 30건이므로 09:30~10:30 구간은 3페이지면 충분
    kis_intraday_max_pages: int = 5

    # =========================================================================
    # 접근토큰 캐시 설정
    # =========================================================================
    #
    # 토큰은 발급 후 약 24시간 유효하지만, 12시간까지만 정상 재사용합니다.
    # 24시간은 발급 제한(1분당 1회)에 걸렸을 때만 쓰는 최후의 상한입니다.
    #
    token_validity_hours: float = 12.0
    token_hard_ceiling_hours: float = 24.0
    token_issue_interval_seconds: float = 65.0
    token_inflight_wait_seconds: float = 2.0

    # =========================================================================
    # 저장소 설정
    # =========================================================================
    #
    # store_backend:
    #   - memory: 프로세스 메모리 (테스트/로컬 개발용)
    #   - file:   store_dir 아래 JSON 파일
    #   - redis:  redis_url (여러 인스턴스가 공유하는 내구성 저장소)
    #
    store_backend: str = "memory"
    store_dir: str = "./.stockboard-store"
    redis_url: str = "redis://localhost:6379/0"
    redis_socket_timeout: float = 10.0

    # =========================================================================
    # 가격 로그 설정
    # =========================================================================
    watch_list: str = "005930,000660,005380,207940,006400"
    log_retention_days: int = 60
    backfill_cutoff_hour: int = 11
    slot_start: str = "0930"
    slot_end: str = "1030"
    slot_interval_minutes: int = 5

    # =========================================================================
    # 서버 설정
    # =========================================================================
    #
    # cron_secret: 설정된 경우에만 /api/cron/log-prices 호출 시 검사
    #
    cron_secret: str = ""
    cors_origins: str = "*"
    log_level: str = "INFO"

    @property
    def watch_list_codes(self) -> list[str]:
        return [code.strip() for code in self.watch_list.split(",") if code.strip()]

    @property
    def cors_origin_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    class Config:
        """
        Pydantic 설정 클래스

        env_file: 환경변수를 읽어올 파일 경로
        env_file_encoding: 파일 인코딩 (한글 지원을 위해 utf-8 사용)
        """
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


@lru_cache()  # 이 함수의 결과를 캐싱 (매번 파일을 읽지 않고 한 번만 읽음)
def get_settings() -> Settings:
    """
    설정 객체를 가져오는 함수

    @lru_cache() 덕분에 처음 호출될 때만 Settings()를 생성하고,
    이후에는 캐시된 값을 반환합니다.

    Returns:
        Settings: 설정 객체
    """
    return Settings()
