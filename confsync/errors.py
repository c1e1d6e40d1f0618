"""
에러 분류 시스템

설정 파일 읽기/쓰기/감시 과정의 실패를 예외 계층으로 표현합니다.
리포터는 카테고리 라벨을 붙여 메시지를 남깁니다.
"""

from enum import Enum
from pathlib import Path


class ErrorCategory(str, Enum):
    """에러 카테고리"""

    TRANSIENT = "transient"  # 디스크, 권한, I/O 장애
    CONFIGURATION = "configuration"  # 잘못된 경로, 설정값
    DATA = "data"  # 파일 내용 또는 값 자체의 문제
    UNKNOWN = "unknown"


class ConfigError(Exception):
    """confsync 기본 에러"""

    category: ErrorCategory = ErrorCategory.UNKNOWN

    def __init__(self, message: str, path: str | Path | None = None):
        super().__init__(message)
        self.path = Path(path) if path is not None else None


class ReadError(ConfigError):
    """파일이 존재하지만 읽을 수 없음"""

    category = ErrorCategory.TRANSIENT


class DecodeError(ConfigError):
    """파일 내용이 선택된 포맷/스키마로 해석되지 않음"""

    category = ErrorCategory.DATA


class EncodeError(ConfigError):
    """메모리 값을 직렬화할 수 없음"""

    category = ErrorCategory.DATA


class WriteError(ConfigError):
    """원자적 쓰기 실패"""

    category = ErrorCategory.TRANSIENT


class PathError(ConfigError):
    """사용 가능한 상위 디렉토리가 없는 경로"""

    category = ErrorCategory.CONFIGURATION


class WatchSubscriptionError(ConfigError):
    """파일 시스템 감시 등록 실패"""

    category = ErrorCategory.TRANSIENT


class ConfigurationError(ConfigError):
    """잘못된 설정값 또는 알 수 없는 포맷"""

    category = ErrorCategory.CONFIGURATION


class ErrorClassifier:
    """에러 분류기"""

    LABELS = {
        ErrorCategory.TRANSIENT: "[일시적 오류]",
        ErrorCategory.CONFIGURATION: "[설정 오류]",
        ErrorCategory.DATA: "[데이터 오류]",
        ErrorCategory.UNKNOWN: "[분류되지 않음]",
    }

    @classmethod
    def classify(cls, error: Exception) -> ErrorCategory:
        """에러를 분류하여 카테고리 반환

        Args:
            error: 분류할 예외 객체

        Returns:
            ErrorCategory: ConfigError는 자체 카테고리, 그 외는 예외 타입 기반
        """
        if isinstance(error, ConfigError):
            return error.category

        if isinstance(error, (UnicodeError, ValueError)):
            return ErrorCategory.DATA

        if isinstance(error, OSError):
            return ErrorCategory.TRANSIENT

        return ErrorCategory.UNKNOWN

    @classmethod
    def format_message(
        cls, error: Exception, include_traceback: bool = False
    ) -> str:
        """에러 메시지 포맷팅

        Args:
            error: 포맷팅할 예외 객체
            include_traceback: 상세 스택 트레이스 포함 여부

        Returns:
            str: 카테고리 라벨이 포함된 에러 메시지
        """
        category = cls.classify(error)
        message = f"{cls.LABELS[category]} {type(error).__name__}: {error}"

        cause = error.__cause__
        if cause is not None:
            message += f" (원인: {type(cause).__name__}: {cause})"

        if include_traceback:
            import traceback

            message += f"\n\n상세 정보:\n{traceback.format_exc()}"

        return message
