"""
Pytest 설정 및 공통 Fixture
"""

import time
from pathlib import Path
from typing import Callable

import pytest

from confsync import CollectingReporter, StoreSettings


@pytest.fixture
def reporter() -> CollectingReporter:
    """에러 이벤트 수집 리포터"""
    return CollectingReporter()


@pytest.fixture
def settings() -> StoreSettings:
    """테스트용 StoreSettings

    fsync는 테스트 속도를 위해 비활성화.
    """
    return StoreSettings(default_format="toml", fsync=False)


@pytest.fixture
def config_dir(tmp_path: Path) -> Path:
    """설정 파일 디렉토리"""
    directory = tmp_path / "config"
    directory.mkdir()
    return directory


@pytest.fixture
def toml_path(config_dir: Path) -> Path:
    """존재하지 않는 TOML 설정 파일 경로"""
    return config_dir / "app.toml"


@pytest.fixture
def wait_until() -> Callable[..., bool]:
    """predicate가 참이 될 때까지 대기하는 함수 (파일 감시 테스트용)"""

    def _wait(
        predicate: Callable[[], bool], timeout: float = 5.0, interval: float = 0.05
    ) -> bool:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if predicate():
                return True
            time.sleep(interval)
        return predicate()

    return _wait
