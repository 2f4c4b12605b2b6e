"""ngrok process supervision."""

from .dialect import DIALECTS, CommandDialect
from .logs import MARKERS, LogMarkers, NgrokLog, parse_log_line
from .supervisor import ProcessState, ProcessStatus, ProcessSupervisor, parse_version

__all__ = [
    "ProcessSupervisor",
    "ProcessState",
    "ProcessStatus",
    "parse_version",
    "CommandDialect",
    "DIALECTS",
    "LogMarkers",
    "MARKERS",
    "NgrokLog",
    "parse_log_line",
]
