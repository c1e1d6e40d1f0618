"""
설정 관리 및 파일 동기화

메모리의 설정 값을 디스크 파일과 동기화하는 저장소입니다.

설계 원칙:
- 생성 시 파일 로드, 실패하면 기본값 사용 (생성 자체는 실패하지 않음)
- update는 메모리 변경을 먼저 확정하고 파일은 원자적으로 교체
- 파일 변경 감시는 선택 사항, 알림은 큐로 소유 스레드에 전달
- 내부 동기화 없음 (한 스레드가 소유)

사용법:
    ```python
    class AppSettings(BaseModel):
        active: bool = False

    store = ConfigStore("config/app.toml", AppSettings)
    store.update(lambda s: setattr(s, "active", True))

    # 외부 편집 반영
    changes = store.watch_queue()
    ...
    store.apply_pending_changes(changes)
    ```
"""

import asyncio
import logging
import queue
import weakref
from pathlib import Path
from typing import Any, Callable, Generic, TypeVar

from .atomic import AtomicFileWriter, ensure_parent
from .errors import ConfigError, DecodeError, PathError, ReadError
from .reporter import ErrorEvent, ErrorReporter, LoggingReporter
from .schema import ValueSchema
from .serializers import SerializationStrategy, get_strategy, strategy_for_path
from .settings import StoreSettings
from .watcher import ChangeWatcher

logger = logging.getLogger(__name__)

T = TypeVar("T")

Mutator = Callable[[T], Any]


class ConfigStore(Generic[T]):
    """파일 기반 설정 저장소

    Args:
        path: 설정 파일 경로
        value_type: 설정 값 타입 (pydantic 모델, dataclass, dict 등)
        default_factory: 유효한 파일이 없을 때 기본값 생성 함수 (최대 1회 호출).
            None이면 value_type()을 사용
        strategy: 직렬화 전략 또는 포맷 이름. None이면 확장자로 판별
        reporter: 흡수한 에러를 받을 리포터 (기본: LoggingReporter)
        settings: fsync, polling 등 동작 설정
        writer: 원자적 파일 쓰기 구현
    """

    def __init__(
        self,
        path: str | Path,
        value_type: type[T] = dict,
        *,
        default_factory: Callable[[], T] | None = None,
        strategy: SerializationStrategy | str | None = None,
        reporter: ErrorReporter | None = None,
        settings: StoreSettings | None = None,
        writer: AtomicFileWriter | None = None,
    ):
        self._path = Path(path)
        self.settings = settings or StoreSettings()
        self.schema: ValueSchema[T] = ValueSchema(value_type)
        self.strategy = self._resolve_strategy(strategy)
        self.reporter: ErrorReporter = reporter or LoggingReporter()
        self.writer = writer or AtomicFileWriter(fsync=self.settings.fsync)
        self._watcher: ChangeWatcher | None = None
        self._watch_callback: Callable[[], None] | None = None

        self._data: T = self._initial_load(default_factory)

    @classmethod
    def with_fallback(
        cls,
        path: str | Path,
        value_type: type[T],
        factory: Callable[[], T],
        **kwargs: Any,
    ) -> "ConfigStore[T]":
        """기본값 생성 함수를 지정하여 생성"""
        return cls(path, value_type, default_factory=factory, **kwargs)

    def _resolve_strategy(
        self, strategy: SerializationStrategy | str | None
    ) -> SerializationStrategy:
        if isinstance(strategy, SerializationStrategy):
            return strategy
        if strategy:
            return get_strategy(strategy)
        return strategy_for_path(self._path, default=self.settings.default_format)

    def _initial_load(self, default_factory: Callable[[], T] | None) -> T:
        make_default = default_factory or self.schema.default

        if not self._path.exists():
            logger.info(f"[ConfigStore] 설정 파일 없음, 기본값 사용: {self._path}")
            return make_default()

        try:
            data = self._load()
        except (ReadError, DecodeError) as e:
            self._report("load", e)
            return make_default()

        logger.info(f"[ConfigStore] 설정 로드 완료: {self._path}")
        return data

    # ------------------------------------------------------------------
    # 조회

    @property
    def path(self) -> Path:
        """현재 설정 파일 경로"""
        return self._path

    def read(self) -> T:
        """현재 설정 값

        반환 값은 다음 변경 호출 전까지 유효합니다. 직접 수정하지 말고
        update 계열 메서드를 사용하세요.
        """
        return self._data

    def snapshot(self) -> T:
        """현재 설정 값의 깊은 복사본"""
        return self.schema.copy(self._data)

    # ------------------------------------------------------------------
    # 변경

    def _apply(self, mutator: Mutator[T]) -> None:
        # 복사본에 적용하여 mutator 예외 시 기존 값 유지
        candidate = self.schema.copy(self._data)
        mutator(candidate)
        self._data = candidate

    def update(self, mutator: Mutator[T]) -> bool:
        """설정 변경 후 파일 저장 (실패는 리포터로 전달)

        저장에 실패해도 메모리 변경은 유지됩니다.

        Args:
            mutator: 값을 직접 수정하는 함수 (반환값은 무시)

        Returns:
            bool: 저장 성공 여부

        Raises:
            PathError: 상위 디렉토리가 없는 경로
        """
        self._apply(mutator)
        return self.save()

    def update_or_raise(self, mutator: Mutator[T]) -> None:
        """설정 변경 후 파일 저장 (실패 시 예외)

        Raises:
            EncodeError: 직렬화 실패
            WriteError: 쓰기 실패
            PathError: 상위 디렉토리가 없는 경로
        """
        self._apply(mutator)
        self.save_or_raise()

    def update_without_persisting(self, mutator: Mutator[T]) -> None:
        """메모리만 변경 (여러 변경 후 save로 한 번에 저장할 때 사용)"""
        self._apply(mutator)

    def save(self) -> bool:
        """현재 값을 파일에 저장 (실패는 리포터로 전달)

        Raises:
            PathError: 상위 디렉토리가 없는 경로
        """
        try:
            self.save_or_raise()
        except PathError:
            raise
        except ConfigError as e:
            self._report("save", e)
            return False
        return True

    def save_or_raise(self) -> None:
        """현재 값을 파일에 저장 (실패 시 예외)"""
        plain = self.schema.to_plain(self._data, self.strategy.native_types)
        payload = self.strategy.encode(plain)
        self.writer.write(self._path, payload)
        logger.debug(f"[ConfigStore] 설정 저장 완료: {self._path}")

    # ------------------------------------------------------------------
    # 리로드

    def _load(self) -> T:
        try:
            payload = self._path.read_bytes()
        except OSError as e:
            raise ReadError(f"설정 파일 읽기 실패: {self._path} - {e}", path=self._path) from e

        try:
            return self.schema.from_plain(self.strategy.decode(payload))
        except ConfigError as e:
            e.path = self._path
            raise

    def reload(self) -> bool:
        """파일을 다시 읽어 값 교체 (실패 시 기존 값 유지, 리포터로 전달)

        Returns:
            bool: 리로드 성공 여부
        """
        try:
            self.reload_or_raise()
        except ConfigError as e:
            self._report("reload", e)
            return False
        return True

    def reload_or_raise(self) -> None:
        """파일을 다시 읽어 값 교체 (실패 시 예외, 기존 값 유지)

        Raises:
            ReadError: 파일 읽기 실패 (삭제된 경우 포함)
            DecodeError: 포맷/스키마 불일치
        """
        self._data = self._load()
        logger.info(f"[ConfigStore] 설정 리로드 완료: {self._path}")

    # ------------------------------------------------------------------
    # 경로

    def change_path(self, new_path: str | Path) -> None:
        """저장 경로 변경 후 즉시 저장

        기존 파일은 이동하거나 삭제하지 않습니다. 감시 중이면 새 경로로 다시 등록합니다.

        Raises:
            PathError: 상위 디렉토리가 없는 경로 (경로는 변경되지 않음)
            EncodeError, WriteError: 저장 실패 (경로는 변경된 상태)
            WatchSubscriptionError: 새 경로 감시 등록 실패
        """
        new_path = Path(new_path)
        ensure_parent(new_path)

        old_path, self._path = self._path, new_path
        logger.info(f"[ConfigStore] 설정 경로 변경: {old_path} → {new_path}")
        self.save_or_raise()

        if self._watcher is not None and self._watch_callback is not None:
            self.watch(self._watch_callback)

    # ------------------------------------------------------------------
    # 파일 감시

    @property
    def is_watching(self) -> bool:
        return self._watcher is not None and self._watcher.is_active

    def watch(self, callback: Callable[[], None]) -> None:
        """설정 파일 변경 감시

        콜백은 observer 스레드에서 호출됩니다. 저장소는 스레드 안전하지 않으므로
        콜백에서 직접 reload하지 말고 watch_queue/watch_async를 사용하세요.
        자신이 저장한 변경도 알림으로 전달됩니다.

        콜백은 감시가 중지될 때까지 강하게 참조됩니다. 콜백이 이 저장소를 참조하면
        stop_watching()/close() 전까지 저장소가 회수되지 않으므로 명시적으로 닫으세요.
        watch_queue/watch_async는 저장소를 약하게 참조합니다.

        Raises:
            WatchSubscriptionError: 감시 등록 실패
        """
        self.stop_watching()
        watcher = ChangeWatcher(self._path, settings=self.settings)
        watcher.watch(callback)
        self._watcher = watcher
        self._watch_callback = callback

    def watch_queue(self) -> "queue.SimpleQueue[Path]":
        """변경 알림을 큐로 받기

        Returns:
            변경 1회당 경로가 하나씩 들어오는 큐 (apply_pending_changes로 처리)
        """
        changes: queue.SimpleQueue[Path] = queue.SimpleQueue()
        store_ref = weakref.ref(self)

        def notify() -> None:
            store = store_ref()
            if store is not None:
                changes.put(store.path)

        self.watch(notify)
        return changes

    def watch_async(
        self, loop: asyncio.AbstractEventLoop | None = None
    ) -> "asyncio.Queue[Path]":
        """변경 알림을 asyncio 큐로 받기

        Args:
            loop: 알림을 전달할 이벤트 루프 (기본: 실행 중인 루프)
        """
        loop = loop or asyncio.get_running_loop()
        changes: asyncio.Queue[Path] = asyncio.Queue()
        store_ref = weakref.ref(self)

        def notify() -> None:
            store = store_ref()
            if store is not None and not loop.is_closed():
                loop.call_soon_threadsafe(changes.put_nowait, store.path)

        self.watch(notify)
        return changes

    def apply_pending_changes(self, changes: "queue.SimpleQueue[Path]") -> int:
        """큐에 쌓인 변경 알림을 비우고 있으면 한 번 리로드

        Returns:
            처리한 알림 수
        """
        pending = 0
        while True:
            try:
                changes.get_nowait()
            except queue.Empty:
                break
            pending += 1

        if pending:
            logger.debug(f"[ConfigStore] 변경 알림 {pending}건 처리")
            self.reload()
        return pending

    def stop_watching(self) -> None:
        """파일 감시 중지"""
        if self._watcher is not None:
            self._watcher.stop()
            self._watcher = None
        self._watch_callback = None

    def close(self) -> None:
        self.stop_watching()

    def __enter__(self) -> "ConfigStore[T]":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ------------------------------------------------------------------

    def _report(self, operation: str, error: ConfigError) -> None:
        self.reporter.report(ErrorEvent(operation=operation, error=error, path=self._path))

    def __repr__(self) -> str:
        return (
            f"ConfigStore(path={str(self._path)!r}, type={self.schema.type_name}, "
            f"strategy={self.strategy.name})"
        )
