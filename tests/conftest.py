"""
Pytest 공용 픽스처

프로젝트 루트를 sys.path 에 넣고, 테스트용 설정/재시도 정책/가짜 KIS 서버를 제공합니다.
"""

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from stockboard.config import Settings  # noqa: E402
from stockboard.dependencies import Services, build_services  # noqa: E402
from stockboard.kis.retry import RetryPolicy  # noqa: E402
from stockboard.storage import MemoryStore  # noqa: E402

from kis_fakes import FakeKIS, no_sleep  # noqa: E402


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        kis_app_key="test-key",
        kis_app_secret="test-secret",
        kis_base_url="https://kis.test",
        kis_max_requests_per_second=0,
        store_backend="memory",
        cron_secret="",
    )


@pytest.fixture
def fast_retry() -> RetryPolicy:
    return RetryPolicy(sleep=no_sleep)


@pytest.fixture
def fake_kis() -> FakeKIS:
    return FakeKIS()


@pytest.fixture
def make_services(settings, fake_kis, fast_retry):
    """가짜 KIS 서버와 메모리 저장소로 전체 서비스 묶음을 만든다."""

    def factory(clock, **overrides) -> Services:
        return build_services(
            settings.model_copy(update=overrides) if overrides else settings,
            store=MemoryStore(),
            transport=fake_kis.transport,
            retry_policy=fast_retry,
            clock=clock,
        )

    return factory
