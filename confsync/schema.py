"""
설정 값 타입 어댑터

pydantic TypeAdapter로 타입 값 ↔ 순수 데이터(dict/list/스칼라)를 변환합니다.
BaseModel, dataclass, dict 등 TypeAdapter가 지원하는 타입을 모두 사용할 수 있습니다.
"""

import copy
from typing import Any, Generic, TypeVar

from pydantic import TypeAdapter, ValidationError
from pydantic_core import PydanticSerializationError, to_jsonable_python

from .errors import ConfigurationError, DecodeError, EncodeError

T = TypeVar("T")


class ValueSchema(Generic[T]):
    """설정 값 타입 정보

    Args:
        value_type: 설정 값 타입 (기본값은 인자 없이 호출하여 생성)
    """

    def __init__(self, value_type: type[T]):
        self.value_type = value_type
        self._adapter: TypeAdapter[T] = TypeAdapter(value_type)

    @property
    def type_name(self) -> str:
        return getattr(self.value_type, "__name__", repr(self.value_type))

    def default(self) -> T:
        """타입 기본값 생성"""
        try:
            return self.value_type()
        except TypeError as e:
            raise ConfigurationError(
                f"{self.type_name} 타입은 기본값을 만들 수 없습니다. "
                "default_factory를 지정하세요"
            ) from e

    def to_plain(self, value: T, native_types: tuple[type, ...] = ()) -> Any:
        """타입 값 → 직렬화 가능한 순수 데이터

        Args:
            value: 설정 값
            native_types: 포맷이 직접 표현할 수 있어 변환하지 않고 남길 타입
                (예: TOML/YAML의 날짜). 나머지는 JSON 호환 값으로 변환
        """
        try:
            if not native_types:
                return self._adapter.dump_python(value, mode="json")
            dumped = self._adapter.dump_python(value, mode="python")
            return _jsonable_tree(dumped, native_types)
        except (PydanticSerializationError, TypeError, ValueError, RecursionError) as e:
            raise EncodeError(f"{self.type_name} 값을 직렬화할 수 없습니다: {e}") from e

    def from_plain(self, data: Any) -> T:
        """순수 데이터 → 타입 값 (스키마 불일치 시 DecodeError)"""
        try:
            return self._adapter.validate_python(data)
        except ValidationError as e:
            raise DecodeError(
                f"{self.type_name} 스키마와 일치하지 않습니다: "
                f"{e.error_count()}개 오류"
            ) from e
        except RecursionError as e:
            raise DecodeError(f"{self.type_name} 값의 중첩이 너무 깊습니다") from e

    @staticmethod
    def copy(value: T) -> T:
        return copy.deepcopy(value)


_JSON_SCALARS = (str, bool, int, float)


def _jsonable_tree(value: Any, native_types: tuple[type, ...]) -> Any:
    # str/int를 상속한 Enum 등은 JSON 값으로 변환해야 하므로 정확한 타입으로 비교
    if value is None or type(value) in _JSON_SCALARS:
        return value
    if isinstance(value, native_types):
        return value
    if isinstance(value, dict):
        return {
            _jsonable_key(key): _jsonable_tree(item, native_types)
            for key, item in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [_jsonable_tree(item, native_types) for item in value]
    return to_jsonable_python(value)


def _jsonable_key(key: Any) -> str:
    if type(key) is str:
        return key
    return str(to_jsonable_python(key))
