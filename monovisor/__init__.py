__version__ = "0.1.0"

from .alert import AlertDispatcher
from .config import LogFileConfig, MailConfig, SupervisorConfig, build_config
from .events import ExitRecord
from .exceptions import (
    AlertDeliveryError,
    BadConfig,
    BadPath,
    BadSize,
    MonovisorError,
    SinkIOError,
    SpawnFailure,
)
from .pump import pump
from .sink import RotatingSink
from .size import format_size, parse_size
from .supervision import RestartMode, RestartPolicy, decide, is_unexpected
from .supervisor import Supervisor

__all__ = [
    "AlertDispatcher",
    "AlertDeliveryError",
    "BadConfig",
    "BadPath",
    "BadSize",
    "ExitRecord",
    "LogFileConfig",
    "MailConfig",
    "MonovisorError",
    "RestartMode",
    "RestartPolicy",
    "RotatingSink",
    "SinkIOError",
    "SpawnFailure",
    "Supervisor",
    "SupervisorConfig",
    "build_config",
    "decide",
    "format_size",
    "is_unexpected",
    "parse_size",
    "pump",
]
