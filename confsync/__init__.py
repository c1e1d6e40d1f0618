"""
confsync - 파일 기반 설정 저장소

ConfigStore로 설정 값을 로드/저장하고, ChangeWatcher로 외부 변경을 감지합니다.
"""

from .atomic import AtomicFileWriter, ensure_parent
from .config_manager import ConfigStore
from .errors import (
    ConfigError,
    ConfigurationError,
    DecodeError,
    EncodeError,
    ErrorCategory,
    ErrorClassifier,
    PathError,
    ReadError,
    WatchSubscriptionError,
    WriteError,
)
from .reporter import CollectingReporter, ErrorEvent, ErrorReporter, LoggingReporter
from .schema import ValueSchema
from .serializers import (
    JsonStrategy,
    SerializationStrategy,
    TomlStrategy,
    YamlStrategy,
    get_strategy,
    strategy_for_path,
)
from .settings import StoreSettings
from .watcher import ChangeWatcher, WatcherState

__version__ = "0.1.0"

__all__ = [
    # Store
    "ConfigStore",
    "StoreSettings",
    "ValueSchema",
    # Serialization
    "SerializationStrategy",
    "JsonStrategy",
    "TomlStrategy",
    "YamlStrategy",
    "get_strategy",
    "strategy_for_path",
    # Atomic write
    "AtomicFileWriter",
    "ensure_parent",
    # Watcher
    "ChangeWatcher",
    "WatcherState",
    # Errors
    "ConfigError",
    "ConfigurationError",
    "DecodeError",
    "EncodeError",
    "ErrorCategory",
    "ErrorClassifier",
    "PathError",
    "ReadError",
    "WatchSubscriptionError",
    "WriteError",
    # Reporter
    "CollectingReporter",
    "ErrorEvent",
    "ErrorReporter",
    "LoggingReporter",
]
