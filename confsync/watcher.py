"""
파일 변경 감시

watchdog으로 설정 파일의 상위 디렉토리를 감시하고,
대상 파일의 내용이 실제로 바뀌었을 때만 콜백을 호출합니다.

설계 원칙:
- 상위 디렉토리 감시 (파일 생성, 원자적 교체, 삭제 모두 감지)
- 접근 이벤트(open, 읽기 후 close)와 디렉토리 이벤트 무시
- 내용 지문(BLAKE2) 비교로 메타데이터 변경과 중복 알림 제거
- 콜백은 observer 스레드에서 호출됨 (인자 없음)

사용법:
    ```python
    changes = queue.SimpleQueue()
    watcher = ChangeWatcher("config/app.toml")
    watcher.watch(lambda: changes.put(None))

    # 앱 종료 시
    watcher.stop()
    ```
"""

import hashlib
import logging
import os
import threading
import weakref
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable

from watchdog.events import (
    EVENT_TYPE_CLOSED_NO_WRITE,
    EVENT_TYPE_MOVED,
    EVENT_TYPE_OPENED,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver
from watchdog.observers.polling import PollingObserver

from .errors import PathError, WatchSubscriptionError
from .settings import StoreSettings

logger = logging.getLogger(__name__)

# 내용 변경과 무관한 이벤트
IGNORED_EVENT_TYPES = (EVENT_TYPE_OPENED, EVENT_TYPE_CLOSED_NO_WRITE)


class WatcherState(str, Enum):
    """감시 상태"""

    INACTIVE = "inactive"
    ACTIVE = "active"


def file_fingerprint(path: Path) -> bytes | None:
    """파일 내용 지문 (파일이 없으면 None)

    Raises:
        OSError: 파일이 있지만 읽을 수 없는 경우
    """
    try:
        data = path.read_bytes()
    except FileNotFoundError:
        return None
    return hashlib.blake2b(data, digest_size=16).digest()


class _TargetEventHandler(FileSystemEventHandler):
    """대상 파일 이벤트 필터"""

    def __init__(
        self,
        target: Path,
        callback: Callable[[], None],
        fingerprint: bytes | None,
    ):
        self.target = target
        self.callback = callback
        self.enabled = True
        self._target_key = os.path.normcase(str(target))
        self._last_fingerprint = fingerprint
        self._lock = threading.Lock()

    def _matches(self, event: FileSystemEvent) -> bool:
        paths = [event.src_path]
        if event.event_type == EVENT_TYPE_MOVED:
            paths.append(event.dest_path)
        return any(
            os.path.normcase(os.fsdecode(p)) == self._target_key for p in paths if p
        )

    def on_any_event(self, event: FileSystemEvent) -> None:
        if not self.enabled or event.is_directory:
            return
        if event.event_type in IGNORED_EVENT_TYPES or not self._matches(event):
            return

        with self._lock:
            if not self.enabled:
                return
            try:
                current = file_fingerprint(self.target)
            except OSError as e:
                logger.warning(f"[ChangeWatcher] 파일 확인 실패: {self.target} - {e}")
                return

            if current == self._last_fingerprint:
                logger.debug(
                    f"[ChangeWatcher] 내용 변경 없음 ({event.event_type}): {self.target}"
                )
                return
            self._last_fingerprint = current

        logger.debug(f"[ChangeWatcher] 파일 변경 감지 ({event.event_type}): {self.target}")
        try:
            self.callback()
        except Exception as e:
            logger.error(f"[ChangeWatcher] 콜백 실행 실패: {e}")


@dataclass(frozen=True)
class Inactive:
    """감시 중이 아님"""


@dataclass(frozen=True)
class Active:
    """감시 중 (구독 핸들 보유)"""

    observer: BaseObserver
    handler: _TargetEventHandler
    directory: Path


INACTIVE = Inactive()


def _stop_subscription(state: Active) -> None:
    state.handler.enabled = False
    state.observer.stop()
    # 콜백 안에서 stop한 경우 자기 자신은 join 불가
    if threading.current_thread() is not state.observer:
        state.observer.join()
    logger.info(f"[ChangeWatcher] 파일 감시 중지: {state.handler.target}")


class ChangeWatcher:
    """설정 파일 변경 감시자

    상태 전이: Inactive → watch() → Active → stop()/소멸 → Inactive

    Args:
        path: 감시할 설정 파일 경로 (없어도 됨, 상위 디렉토리는 존재해야 함)
        settings: polling 사용 여부 등
    """

    def __init__(self, path: str | Path, settings: StoreSettings | None = None):
        self.path = Path(path)
        self.settings = settings or StoreSettings()
        self._state: Inactive | Active = INACTIVE
        self._finalizer: weakref.finalize | None = None

    @property
    def state(self) -> WatcherState:
        if isinstance(self._state, Active):
            return WatcherState.ACTIVE
        return WatcherState.INACTIVE

    @property
    def is_active(self) -> bool:
        return isinstance(self._state, Active)

    def _create_observer(self) -> BaseObserver:
        if self.settings.watch_polling:
            return PollingObserver(timeout=self.settings.polling_interval)
        return Observer()

    def watch(self, callback: Callable[[], None]) -> None:
        """파일 감시 시작

        이미 감시 중이면 기존 구독을 중지하고 새로 등록합니다.

        Args:
            callback: 내용 변경 1회당 1번 호출 (observer 스레드에서 실행)
                감시가 중지될 때까지 강하게 참조됩니다. 콜백이 이 감시자를 소유한
                객체를 참조하면 stop() 전까지 그 객체는 회수되지 않습니다

        Raises:
            PathError: 파일 이름이 없는 경로
            WatchSubscriptionError: 감시 등록 실패 (상태는 Inactive 유지)
        """
        if self.is_active:
            self.stop()

        if not self.path.name:
            raise PathError(f"감시할 파일 이름이 없는 경로: '{self.path}'", path=self.path)

        directory = self.path.parent.resolve()
        target = directory / self.path.name
        if not directory.is_dir():
            raise WatchSubscriptionError(
                f"감시할 디렉토리 없음: {directory}", path=self.path
            )

        try:
            fingerprint = file_fingerprint(target)
        except OSError as e:
            logger.warning(f"[ChangeWatcher] 초기 파일 확인 실패: {target} - {e}")
            fingerprint = None

        handler = _TargetEventHandler(target, callback, fingerprint)
        observer = self._create_observer()
        try:
            observer.schedule(handler, str(directory), recursive=False)
            observer.start()
        except OSError as e:
            self._discard(observer)
            raise WatchSubscriptionError(
                f"파일 감시 등록 실패: {directory} - {e}", path=self.path
            ) from e

        state = Active(observer=observer, handler=handler, directory=directory)
        self._state = state
        self._finalizer = weakref.finalize(self, _stop_subscription, state)
        logger.info(f"[ChangeWatcher] 파일 감시 시작: {target}")

    def stop(self) -> None:
        """파일 감시 중지

        반환 시점 이후로는 콜백이 호출되지 않습니다.
        """
        if not self.is_active:
            return
        self._state = INACTIVE
        finalizer, self._finalizer = self._finalizer, None
        if finalizer is not None:
            finalizer()

    @staticmethod
    def _discard(observer: BaseObserver) -> None:
        try:
            observer.stop()
        except Exception as e:
            logger.debug(f"[ChangeWatcher] observer 정리 실패: {e}")

    def __enter__(self) -> "ChangeWatcher":
        return self

    def __exit__(self, *exc_info) -> None:
        self.stop()
