"""
직렬화 전략

설정 값(순수 데이터)과 파일 바이트 간 변환을 담당합니다.
JSON, YAML, TOML 세 가지 포맷을 지원하며 ConfigStore 생성 시 하나를 선택합니다.

사용법:
    ```python
    strategy = strategy_for_path("settings.toml")
    payload = strategy.encode({"active": True})
    data = strategy.decode(payload)
    ```
"""

import json
import tomllib
from abc import ABC, abstractmethod
from datetime import date, datetime, time
from pathlib import Path
from typing import Any, ClassVar

import tomli_w
import yaml

from .errors import ConfigurationError, DecodeError, EncodeError


class SerializationStrategy(ABC):
    """직렬화 전략 기본 클래스

    encode/decode는 상태가 없으며, 실패 시 EncodeError/DecodeError만 발생시킵니다.
    """

    name: ClassVar[str] = ""
    extensions: ClassVar[tuple[str, ...]] = ()
    # 문자열로 바꾸지 않고 그대로 기록할 수 있는 값 타입
    native_types: ClassVar[tuple[type, ...]] = ()

    def encode(self, data: Any) -> bytes:
        """순수 데이터 → UTF-8 바이트"""
        try:
            return self._dumps(data).encode("utf-8")
        except EncodeError:
            raise
        except (TypeError, ValueError, RecursionError, yaml.YAMLError) as e:
            raise EncodeError(f"{self.name} 인코딩 실패: {e}") from e

    def decode(self, payload: bytes) -> Any:
        """UTF-8 바이트 → 순수 데이터"""
        try:
            text = payload.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecodeError(f"{self.name} 디코딩 실패: UTF-8이 아닌 내용") from e

        try:
            return self._loads(text)
        except DecodeError:
            raise
        except (ValueError, yaml.YAMLError) as e:
            # json.JSONDecodeError, tomllib.TOMLDecodeError는 ValueError 하위 클래스
            raise DecodeError(f"{self.name} 디코딩 실패: {e}") from e
        except RecursionError as e:
            raise DecodeError(f"{self.name} 디코딩 실패: 중첩이 너무 깊습니다") from e

    @abstractmethod
    def _dumps(self, data: Any) -> str: ...

    @abstractmethod
    def _loads(self, text: str) -> Any: ...

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class JsonStrategy(SerializationStrategy):
    """JSON (들여쓰기 2칸)"""

    name = "json"
    extensions = (".json",)

    def _dumps(self, data: Any) -> str:
        return json.dumps(data, indent=2, ensure_ascii=False) + "\n"

    def _loads(self, text: str) -> Any:
        return json.loads(text)


class YamlStrategy(SerializationStrategy):
    """YAML (블록 스타일, 키 순서 유지)"""

    name = "yaml"
    extensions = (".yaml", ".yml")
    native_types = (datetime, date)

    def _dumps(self, data: Any) -> str:
        return yaml.safe_dump(
            data, default_flow_style=False, allow_unicode=True, sort_keys=False
        )

    def _loads(self, text: str) -> Any:
        # 빈 문서는 빈 매핑으로 취급
        loaded = yaml.safe_load(text)
        return {} if loaded is None else loaded


class TomlStrategy(SerializationStrategy):
    """TOML

    TOML에는 null이 없으므로 None 값은 인코딩 시 제외됩니다.
    루트는 반드시 테이블(dict)이어야 합니다.
    """

    name = "toml"
    extensions = (".toml",)
    native_types = (datetime, date, time)

    def _dumps(self, data: Any) -> str:
        if not isinstance(data, dict):
            raise EncodeError(
                f"toml 인코딩 실패: 루트는 테이블이어야 합니다 ({type(data).__name__})"
            )
        return tomli_w.dumps(_strip_none(data))

    def _loads(self, text: str) -> Any:
        return tomllib.loads(text)


def _strip_none(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _strip_none(v) for k, v in value.items() if v is not None}
    if isinstance(value, list):
        return [_strip_none(v) for v in value if v is not None]
    return value


STRATEGIES: dict[str, type[SerializationStrategy]] = {
    "json": JsonStrategy,
    "yaml": YamlStrategy,
    "yml": YamlStrategy,
    "toml": TomlStrategy,
}


def get_strategy(name: str) -> SerializationStrategy:
    """포맷 이름으로 전략 조회

    Args:
        name: "json", "yaml"("yml"), "toml" (대소문자, 앞의 점 무시)

    Raises:
        ConfigurationError: 지원하지 않는 포맷
    """
    key = name.lower().lstrip(".")
    try:
        return STRATEGIES[key]()
    except KeyError:
        supported = ", ".join(sorted(STRATEGIES))
        raise ConfigurationError(
            f"지원하지 않는 포맷: {name} (지원: {supported})"
        ) from None


def strategy_for_path(
    path: str | Path, default: str | None = None
) -> SerializationStrategy:
    """파일 확장자로 전략 선택

    Args:
        path: 설정 파일 경로
        default: 확장자로 판별할 수 없을 때 사용할 포맷 이름

    Raises:
        ConfigurationError: 확장자도 default도 없을 때
    """
    suffix = Path(path).suffix.lower()
    for strategy_cls in (JsonStrategy, YamlStrategy, TomlStrategy):
        if suffix in strategy_cls.extensions:
            return strategy_cls()

    if default:
        return get_strategy(default)

    raise ConfigurationError(f"확장자로 포맷을 판별할 수 없습니다: {path}", path=path)
