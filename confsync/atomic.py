"""
원자적 파일 쓰기

같은 디렉토리에 임시 파일을 쓴 뒤 os.replace로 한 번에 교체합니다.
동시에 읽는 쪽은 이전 내용 또는 새 내용만 보게 되며,
실패 시 기존 파일은 그대로 남습니다.
"""

import logging
import os
import stat
import tempfile
from pathlib import Path

from .errors import PathError, WriteError

logger = logging.getLogger(__name__)


def ensure_parent(path: str | Path) -> Path:
    """상위 디렉토리 확인 및 생성

    Args:
        path: 대상 파일 경로

    Returns:
        생성(또는 기존) 상위 디렉토리

    Raises:
        PathError: 파일 이름이 없거나 루트 경로인 경우
        WriteError: 디렉토리 생성 실패
    """
    target = Path(path)
    parent = target.parent
    if not target.name or parent == target:
        raise PathError(f"상위 디렉토리가 없는 경로: '{path}'", path=path)

    try:
        parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise WriteError(f"디렉토리 생성 실패: {parent} - {e}", path=path) from e
    return parent


class AtomicFileWriter:
    """임시 파일 + rename 방식의 원자적 쓰기

    Args:
        fsync: 교체 전 임시 파일을 디스크에 동기화할지 여부
    """

    TEMP_SUFFIX = ".tmp"

    def __init__(self, fsync: bool = True):
        self.fsync = fsync

    def write(self, path: str | Path, payload: bytes) -> None:
        """payload로 파일 전체를 원자적으로 교체

        Raises:
            PathError: 상위 디렉토리가 없는 경로
            WriteError: 쓰기 또는 교체 실패 (기존 파일은 변경되지 않음)
        """
        target = Path(path)
        parent = ensure_parent(target)

        try:
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{target.name}.", suffix=self.TEMP_SUFFIX, dir=parent
            )
        except OSError as e:
            raise WriteError(f"임시 파일 생성 실패: {parent} - {e}", path=target) from e

        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(payload)
                f.flush()
                if self.fsync:
                    os.fsync(f.fileno())

            self._copy_mode(target, tmp_path)
            os.replace(tmp_path, target)
        except OSError as e:
            self._cleanup(tmp_path)
            raise WriteError(f"파일 쓰기 실패: {target} - {e}", path=target) from e

        if self.fsync:
            self._fsync_dir(parent)

        logger.debug(f"[AtomicWriter] 쓰기 완료: {target} ({len(payload)} bytes)")

    def _copy_mode(self, target: Path, tmp_path: Path) -> None:
        """기존 파일 권한 유지 (mkstemp 기본값은 0600)"""
        try:
            mode = stat.S_IMODE(target.stat().st_mode)
        except FileNotFoundError:
            return
        os.chmod(tmp_path, mode)

    def _cleanup(self, tmp_path: Path) -> None:
        try:
            tmp_path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"[AtomicWriter] 임시 파일 삭제 실패: {tmp_path} - {e}")

    def _fsync_dir(self, directory: Path) -> None:
        # 디렉토리 fsync는 POSIX에서만 가능
        if os.name != "posix":
            return
        try:
            dir_fd = os.open(directory, os.O_RDONLY)
        except OSError as e:
            logger.debug(f"[AtomicWriter] 디렉토리 동기화 생략: {directory} - {e}")
            return
        try:
            os.fsync(dir_fd)
        except OSError as e:
            logger.debug(f"[AtomicWriter] 디렉토리 동기화 실패: {directory} - {e}")
        finally:
            os.close(dir_fd)
