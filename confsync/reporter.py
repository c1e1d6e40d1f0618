"""
에러 리포터

ConfigStore는 흡수한 에러(로드 실패, 로그 전용 update/reload 실패)를
전역 로거 대신 주입된 리포터로 전달합니다.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

from .errors import ConfigError, ErrorClassifier

logger = logging.getLogger(__name__)


@dataclass
class ErrorEvent:
    """리포터로 전달되는 에러 이벤트"""

    operation: str  # "load", "update", "save", "reload" 등
    error: ConfigError
    path: Path | None = None
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def error_type(self) -> str:
        return type(self.error).__name__


class ErrorReporter(Protocol):
    """에러 이벤트 수신자"""

    def report(self, event: ErrorEvent) -> None: ...


class LoggingReporter:
    """logging 모듈로 에러 이벤트를 기록하는 기본 리포터"""

    def __init__(self, log: logging.Logger | None = None, level: int = logging.ERROR):
        self.log = log or logger
        self.level = level

    def report(self, event: ErrorEvent) -> None:
        self.log.log(
            self.level,
            f"[ConfigStore] {event.operation} 실패: {event.path} - "
            f"{ErrorClassifier.format_message(event.error)}",
        )


class CollectingReporter:
    """이벤트를 메모리에 모아두는 리포터

    애플리케이션 상태 표시나 테스트 검증에 사용합니다.
    """

    def __init__(self) -> None:
        self.events: list[ErrorEvent] = []

    def report(self, event: ErrorEvent) -> None:
        self.events.append(event)

    def errors_of(self, error_type: type[ConfigError]) -> list[ConfigError]:
        """특정 타입의 에러만 조회"""
        return [e.error for e in self.events if isinstance(e.error, error_type)]

    def clear(self) -> None:
        self.events.clear()
