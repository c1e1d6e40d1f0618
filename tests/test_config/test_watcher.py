"""
ChangeWatcher 및 ConfigStore 감시 테스트

실제 watchdog observer로 파일 변경 감지, 필터링, 중지 동작을 검증합니다.
"""

import asyncio
import gc
import os
import threading
import time
import weakref
from pathlib import Path

import pytest

from confsync import (
    AtomicFileWriter,
    ChangeWatcher,
    ConfigStore,
    StoreSettings,
    WatcherState,
    WatchSubscriptionError,
)
from tests.sample_data import AppSettings, Toggle

# 추가 이벤트가 오지 않는지 확인하는 대기 시간
SETTLE_SECONDS = 0.5


class CallCounter:
    """스레드 안전 콜백 카운터"""

    def __init__(self):
        self._lock = threading.Lock()
        self.count = 0

    def __call__(self) -> None:
        with self._lock:
            self.count += 1


@pytest.fixture
def writer() -> AtomicFileWriter:
    return AtomicFileWriter(fsync=False)


@pytest.fixture
def existing_file(toml_path: Path) -> Path:
    toml_path.write_text("active = false\n", encoding="utf-8")
    return toml_path


class TestChangeWatcherState:
    """상태 전이 테스트"""

    def test_initial_state(self, toml_path: Path):
        watcher = ChangeWatcher(toml_path)

        assert watcher.state == WatcherState.INACTIVE
        assert watcher.is_active is False

    def test_watch_and_stop(self, existing_file: Path):
        watcher = ChangeWatcher(existing_file)

        watcher.watch(CallCounter())
        assert watcher.state == WatcherState.ACTIVE

        watcher.stop()
        assert watcher.state == WatcherState.INACTIVE

        # 중복 stop은 무시
        watcher.stop()

    def test_context_manager_stops(self, existing_file: Path):
        with ChangeWatcher(existing_file) as watcher:
            watcher.watch(CallCounter())
            assert watcher.is_active

        assert not watcher.is_active

    def test_missing_directory_raises(self, tmp_path: Path):
        """상위 디렉토리가 없으면 WatchSubscriptionError, Inactive 유지"""
        watcher = ChangeWatcher(tmp_path / "missing" / "app.toml")

        with pytest.raises(WatchSubscriptionError):
            watcher.watch(CallCounter())

        assert watcher.state == WatcherState.INACTIVE

    def test_observer_start_failure(self, existing_file: Path, monkeypatch: pytest.MonkeyPatch):
        """OS 감시 등록 실패 → WatchSubscriptionError"""
        watcher = ChangeWatcher(existing_file)

        class ExhaustedObserver:
            def schedule(self, *args, **kwargs):
                pass

            def start(self):
                raise OSError(24, "inotify instance limit reached")

            def stop(self):
                pass

        monkeypatch.setattr(watcher, "_create_observer", lambda: ExhaustedObserver())

        with pytest.raises(WatchSubscriptionError) as exc_info:
            watcher.watch(CallCounter())

        assert isinstance(exc_info.value.__cause__, OSError)
        assert not watcher.is_active

    def test_garbage_collected_watcher_stops(self, existing_file: Path, wait_until):
        """소유자가 사라지면 observer 스레드 종료"""
        watcher = ChangeWatcher(existing_file)
        watcher.watch(CallCounter())
        observer = watcher._state.observer

        del watcher
        gc.collect()

        assert wait_until(lambda: not observer.is_alive())


class TestChangeWatcherEvents:
    """이벤트 필터링 테스트"""

    def test_single_write_fires_once(self, existing_file: Path, writer: AtomicFileWriter, wait_until):
        """원자적 쓰기 1회 → 콜백 정확히 1회"""
        counter = CallCounter()
        with ChangeWatcher(existing_file) as watcher:
            watcher.watch(counter)

            writer.write(existing_file, b"active = true\n")

            assert wait_until(lambda: counter.count >= 1)
            time.sleep(SETTLE_SECONDS)
            assert counter.count == 1

    def test_in_place_write_fires(self, existing_file: Path, wait_until):
        """일반 쓰기도 감지"""
        counter = CallCounter()
        with ChangeWatcher(existing_file) as watcher:
            watcher.watch(counter)

            existing_file.write_text("active = true\n", encoding="utf-8")

            assert wait_until(lambda: counter.count >= 1)

    @pytest.mark.skipif(os.name != "posix", reason="POSIX 권한 비트 필요")
    def test_metadata_change_ignored(self, existing_file: Path):
        """권한 변경(메타데이터)은 무시"""
        counter = CallCounter()
        with ChangeWatcher(existing_file) as watcher:
            watcher.watch(counter)

            os.chmod(existing_file, 0o600)
            os.utime(existing_file, None)

            time.sleep(SETTLE_SECONDS)
            assert counter.count == 0

    def test_read_ignored(self, existing_file: Path):
        """읽기는 무시"""
        counter = CallCounter()
        with ChangeWatcher(existing_file) as watcher:
            watcher.watch(counter)

            existing_file.read_bytes()
            existing_file.read_text(encoding="utf-8")

            time.sleep(SETTLE_SECONDS)
            assert counter.count == 0

    def test_same_content_rewrite_ignored(self, existing_file: Path, writer: AtomicFileWriter):
        """같은 내용으로 다시 쓰면 무시"""
        counter = CallCounter()
        with ChangeWatcher(existing_file) as watcher:
            watcher.watch(counter)

            writer.write(existing_file, existing_file.read_bytes())

            time.sleep(SETTLE_SECONDS)
            assert counter.count == 0

    def test_other_files_ignored(self, existing_file: Path, writer: AtomicFileWriter):
        """같은 디렉토리의 다른 파일은 무시"""
        counter = CallCounter()
        with ChangeWatcher(existing_file) as watcher:
            watcher.watch(counter)

            writer.write(existing_file.parent / "other.toml", b"x = 1\n")
            (existing_file.parent / "notes.txt").write_text("hello", encoding="utf-8")

            time.sleep(SETTLE_SECONDS)
            assert counter.count == 0

    def test_file_created_later(self, toml_path: Path, writer: AtomicFileWriter, wait_until):
        """감시 시작 시 없던 파일의 생성 감지"""
        counter = CallCounter()
        with ChangeWatcher(toml_path) as watcher:
            watcher.watch(counter)

            writer.write(toml_path, b"active = true\n")

            assert wait_until(lambda: counter.count >= 1)
            time.sleep(SETTLE_SECONDS)
            assert counter.count == 1

    def test_deletion_fires(self, existing_file: Path, wait_until):
        """삭제도 내용 변경으로 감지"""
        counter = CallCounter()
        with ChangeWatcher(existing_file) as watcher:
            watcher.watch(counter)

            existing_file.unlink()

            assert wait_until(lambda: counter.count >= 1)

    def test_no_callback_after_stop(self, existing_file: Path, writer: AtomicFileWriter):
        """stop 이후에는 콜백 없음"""
        counter = CallCounter()
        watcher = ChangeWatcher(existing_file)
        watcher.watch(counter)
        watcher.stop()

        writer.write(existing_file, b"active = true\n")

        time.sleep(SETTLE_SECONDS)
        assert counter.count == 0

    def test_callback_error_does_not_stop_watching(
        self, existing_file: Path, writer: AtomicFileWriter, wait_until
    ):
        """콜백 예외 후에도 감시 유지"""
        calls = CallCounter()

        def flaky() -> None:
            calls()
            raise RuntimeError("callback failure")

        with ChangeWatcher(existing_file) as watcher:
            watcher.watch(flaky)

            writer.write(existing_file, b"active = true\n")
            assert wait_until(lambda: calls.count >= 1)

            writer.write(existing_file, b"active = false\n")
            assert wait_until(lambda: calls.count >= 2)

    def test_polling_observer(self, existing_file: Path, writer: AtomicFileWriter, wait_until):
        """polling 모드 감지"""
        counter = CallCounter()
        settings = StoreSettings(watch_polling=True, polling_interval=0.1, fsync=False)
        with ChangeWatcher(existing_file, settings=settings) as watcher:
            watcher.watch(counter)

            # mtime 해상도가 낮은 파일 시스템 대비 크기도 변경
            writer.write(existing_file, b"active = true\nname = \"polled\"\n")

            assert wait_until(lambda: counter.count >= 1)


class TestConfigStoreWatch:
    """ConfigStore 감시 연동 테스트"""

    def test_watch_queue_and_apply(self, toml_path: Path, settings: StoreSettings, wait_until):
        """큐로 알림 수신 후 소유 스레드에서 리로드"""
        store = ConfigStore(toml_path, AppSettings, settings=settings)
        store.update(lambda s: setattr(s, "name", "initial"))

        with store:
            changes = store.watch_queue()
            assert store.is_watching

            AtomicFileWriter(fsync=False).write(toml_path, b'name = "external"\n')

            assert wait_until(lambda: not changes.empty())
            assert store.apply_pending_changes(changes) >= 1
            assert store.read().name == "external"

        assert not store.is_watching

    def test_apply_pending_changes_empty(self, toml_path: Path, settings: StoreSettings):
        """알림이 없으면 리로드하지 않음"""
        import queue

        store = ConfigStore(toml_path, Toggle, settings=settings)
        store.update_without_persisting(lambda t: setattr(t, "active", True))

        assert store.apply_pending_changes(queue.SimpleQueue()) == 0
        assert store.read().active is True

    def test_watch_callback(self, toml_path: Path, settings: StoreSettings, wait_until):
        """콜백 등록 및 중지"""
        store = ConfigStore(toml_path, Toggle, settings=settings)
        counter = CallCounter()

        store.watch(counter)
        store.update(lambda t: setattr(t, "active", True))
        assert wait_until(lambda: counter.count >= 1)

        store.stop_watching()
        seen = counter.count
        store.update(lambda t: setattr(t, "active", False))
        time.sleep(SETTLE_SECONDS)
        assert counter.count == seen

    def test_change_path_rewatches(
        self, config_dir: Path, settings: StoreSettings, wait_until
    ):
        """경로 변경 시 새 경로 감시"""
        store = ConfigStore(config_dir / "old.toml", Toggle, settings=settings)
        counter = CallCounter()
        store.watch(counter)

        new_path = config_dir / "sub" / "new.toml"
        store.change_path(new_path)
        assert store.is_watching
        time.sleep(SETTLE_SECONDS)
        seen = counter.count

        AtomicFileWriter(fsync=False).write(new_path, b"active = true\n")

        assert wait_until(lambda: counter.count > seen)
        store.close()

    def test_watch_missing_directory(self, tmp_path: Path, settings: StoreSettings):
        """상위 디렉토리가 없으면 WatchSubscriptionError"""
        store = ConfigStore(tmp_path / "missing" / "app.toml", Toggle, settings=settings)

        with pytest.raises(WatchSubscriptionError):
            store.watch(CallCounter())

        assert not store.is_watching

    def test_garbage_collected_store_stops_watching(
        self, toml_path: Path, settings: StoreSettings, wait_until
    ):
        """저장소가 사라지면 감시 중지"""
        store = ConfigStore(toml_path, Toggle, settings=settings)
        store.watch_queue()
        observer = store._watcher._state.observer

        del store
        gc.collect()

        assert wait_until(lambda: not observer.is_alive())

    def test_plain_callback_does_not_keep_store(
        self, toml_path: Path, settings: StoreSettings, wait_until
    ):
        """저장소를 참조하지 않는 콜백은 저장소 회수를 막지 않음"""
        store = ConfigStore(toml_path, Toggle, settings=settings)
        store.watch(CallCounter())
        observer = store._watcher._state.observer
        store_ref = weakref.ref(store)

        del store
        gc.collect()

        assert store_ref() is None
        assert wait_until(lambda: not observer.is_alive())

    def test_store_referencing_callback_kept_until_close(
        self, toml_path: Path, settings: StoreSettings, wait_until
    ):
        """저장소를 참조하는 콜백은 close 전까지 저장소를 유지"""
        store = ConfigStore(toml_path, Toggle, settings=settings)
        store.watch(lambda owner=store: owner.reload())
        observer = store._watcher._state.observer
        store_ref = weakref.ref(store)

        del store
        gc.collect()

        kept = store_ref()
        assert kept is not None
        assert observer.is_alive()

        kept.close()
        assert not kept.is_watching
        assert wait_until(lambda: not observer.is_alive())

    @pytest.mark.asyncio
    async def test_watch_async(self, toml_path: Path, settings: StoreSettings):
        """asyncio 큐로 알림 수신"""
        store = ConfigStore(toml_path, Toggle, settings=settings)
        changes = store.watch_async()
        try:
            AtomicFileWriter(fsync=False).write(toml_path, b"active = true\n")

            notified = await asyncio.wait_for(changes.get(), timeout=5.0)

            assert notified == toml_path
            assert store.reload() is True
            assert store.read().active is True
        finally:
            store.close()
