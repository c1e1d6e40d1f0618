"""
confsync 동작 설정

환경변수 기반 설정 관리.
"""

import logging
import os
from dataclasses import dataclass

from .errors import ConfigurationError
from .serializers import STRATEGIES

logger = logging.getLogger(__name__)

_TRUE_VALUES = ("1", "true", "yes", "on")


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in _TRUE_VALUES


@dataclass
class StoreSettings:
    """ConfigStore / ChangeWatcher 공통 설정"""

    # 확장자로 포맷을 판별할 수 없을 때 사용
    default_format: str = "toml"

    # 원자적 쓰기
    fsync: bool = True

    # 파일 감시 (네트워크 드라이브 등 네이티브 감시가 안 되는 경우 polling)
    watch_polling: bool = False
    polling_interval: float = 1.0  # 초

    @classmethod
    def from_env(cls, prefix: str = "CONFSYNC_") -> "StoreSettings":
        """환경변수에서 설정 로드

        Raises:
            ConfigurationError: 숫자값 형식 오류
        """
        interval_str = os.getenv(f"{prefix}POLLING_INTERVAL", "1.0")
        try:
            polling_interval = float(interval_str)
        except ValueError as e:
            raise ConfigurationError(
                f"잘못된 {prefix}POLLING_INTERVAL 값: {interval_str}"
            ) from e

        return cls(
            default_format=os.getenv(f"{prefix}FORMAT", "toml"),
            fsync=_env_bool(f"{prefix}FSYNC", True),
            watch_polling=_env_bool(f"{prefix}WATCH_POLLING", False),
            polling_interval=polling_interval,
        )

    def validate(self, strict: bool = True) -> list[str]:
        """설정값 검증

        Args:
            strict: True면 오류 시 예외 발생, False면 로그만

        Returns:
            list[str]: 검증 경고/오류 메시지 목록

        Raises:
            ConfigurationError: strict=True이고 오류가 있을 때
        """
        errors = []
        warnings = []

        if self.default_format.lower().lstrip(".") not in STRATEGIES:
            errors.append(f"지원하지 않는 기본 포맷: {self.default_format}")

        if self.polling_interval <= 0:
            errors.append(f"polling 간격은 0보다 커야 함: {self.polling_interval}초")
        elif self.polling_interval > 60:
            warnings.append(f"polling 간격이 너무 김: {self.polling_interval}초")

        if not self.fsync:
            warnings.append("fsync 비활성화: 전원 장애 시 최근 쓰기가 유실될 수 있음")

        for warning in warnings:
            logger.warning(f"[Settings] {warning}")

        if errors:
            for error in errors:
                logger.error(f"[Settings] {error}")
            if strict:
                raise ConfigurationError(
                    f"설정 검증 실패: {len(errors)}개 오류\n" + "\n".join(errors)
                )

        return errors + warnings

    @classmethod
    def from_env_validated(cls, strict: bool = True) -> "StoreSettings":
        """환경변수에서 설정 로드 및 검증"""
        settings = cls.from_env()
        settings.validate(strict=strict)
        return settings
