#!/usr/bin/env python
"""
설정 파일 로드/수정/감시 예제 스크립트

설정 파일을 로드하여 출력하고, 값을 수정하거나
외부 편집을 감시하여 리로드합니다.

사용법:
    # 현재 값 출력 (없으면 기본값)
    python scripts/watch_config.py settings.toml

    # 값 수정 후 저장 (점으로 중첩 키 지정, 값은 YAML 스칼라로 해석)
    python scripts/watch_config.py settings.toml --set name=Example --set value=42

    # 외부 편집 감시
    python scripts/watch_config.py settings.yaml --watch --log-level DEBUG
"""

import argparse
import logging
import signal
import sys
import threading
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

# 프로젝트 루트를 Python 경로에 추가
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from confsync import ConfigError, ConfigStore, StoreSettings  # noqa: E402

logger = logging.getLogger(__name__)


def setup_logging(level: str = "INFO") -> None:
    """로깅 설정"""
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def load_env_file(env: str) -> None:
    """환경별 .env 파일 로드"""
    env_files = [
        PROJECT_ROOT / f".env.{env}",
        PROJECT_ROOT / ".env.local",
        PROJECT_ROOT / ".env",
    ]

    for env_file in env_files:
        if env_file.exists():
            load_dotenv(env_file)
            logger.info(f"[Config] 환경 파일 로드: {env_file}")
            break


def parse_assignment(assignment: str) -> tuple[list[str], Any]:
    """a.b=value 형식 → (키 목록, 파싱된 값)"""
    if "=" not in assignment:
        raise argparse.ArgumentTypeError(f"key=value 형식이 아님: {assignment}")
    key, raw_value = assignment.split("=", 1)
    keys = [k for k in key.strip().split(".") if k]
    if not keys:
        raise argparse.ArgumentTypeError(f"키가 비어 있음: {assignment}")
    return keys, yaml.safe_load(raw_value) if raw_value else ""


def apply_assignments(data: dict[str, Any], assignments: list[tuple[list[str], Any]]) -> None:
    for keys, value in assignments:
        node = data
        for key in keys[:-1]:
            child = node.get(key)
            if not isinstance(child, dict):
                child = {}
                node[key] = child
            node = child
        node[keys[-1]] = value


def print_value(store: ConfigStore) -> None:
    print(f"# {store.path} ({store.strategy.name})")
    print(yaml.safe_dump(store.read(), allow_unicode=True, sort_keys=False).rstrip())


def run_watch(store: ConfigStore) -> int:
    """변경 알림을 받아 리로드 (Ctrl+C로 종료)"""
    shutdown_event = threading.Event()

    def signal_handler(sig, frame):
        logger.info(f"[Watch] 종료 신호 수신: {sig}")
        shutdown_event.set()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    changes = store.watch_queue()
    logger.info(f"[Watch] 감시 시작: {store.path}")

    while not shutdown_event.wait(0.5):
        if store.apply_pending_changes(changes):
            print_value(store)

    store.stop_watching()
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="confsync 설정 파일 도구")
    parser.add_argument("path", type=Path, help="설정 파일 경로")
    parser.add_argument("--format", choices=["json", "yaml", "toml"], help="포맷 (기본: 확장자)")
    parser.add_argument(
        "--set",
        dest="assignments",
        action="append",
        type=parse_assignment,
        default=[],
        metavar="KEY=VALUE",
        help="값 수정 (반복 가능)",
    )
    parser.add_argument("--watch", action="store_true", help="외부 편집 감시")
    parser.add_argument("--env", default="dev", help="환경 이름 (.env.<env> 로드)")
    parser.add_argument("--log-level", default="INFO", help="로그 레벨")
    args = parser.parse_args()

    setup_logging(args.log_level)
    load_env_file(args.env)

    try:
        settings = StoreSettings.from_env_validated()
        store = ConfigStore(args.path, dict, strategy=args.format, settings=settings)
    except ConfigError as e:
        logger.error(f"설정 초기화 실패: {e}")
        return 1

    if args.assignments:
        try:
            store.update_or_raise(lambda data: apply_assignments(data, args.assignments))
        except ConfigError as e:
            logger.error(f"저장 실패: {e}")
            return 1

    print_value(store)

    if args.watch:
        try:
            return run_watch(store)
        except ConfigError as e:
            logger.error(f"감시 실패: {e}")
            return 1
        finally:
            store.close()

    return 0


if __name__ == "__main__":
    sys.exit(main())
