"""Parsing of ngrok's structured log output.

ngrok writes one record per line, either logfmt::

    t=2024-01-05T10:00:00+0000 lvl=info msg="starting web service" obj=web addr=127.0.0.1:4040

or JSON when ``log_format: json`` is configured. Field names that matter for
startup detection live in :class:`LogMarkers` so a new ngrok release only needs
a new table, not parser changes.
"""

import json
import shlex
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

LEVELS = {
    "dbug": "DEBUG",
    "debug": "DEBUG",
    "info": "INFO",
    "warn": "WARNING",
    "warning": "WARNING",
    "eror": "ERROR",
    "error": "ERROR",
    "crit": "CRITICAL",
    "critical": "CRITICAL",
}


class LogMarkers(BaseModel):
    """Field names and messages that identify startup milestones."""

    model_config = ConfigDict(frozen=True)

    time_field: str = "t"
    level_field: str = "lvl"
    msg_field: str = "msg"
    error_field: str = "err"
    addr_field: str = "addr"
    web_service_msg: str = Field(
        default="starting web service",
        description="Record carrying the local API address",
    )
    session_msgs: tuple[str, ...] = Field(
        default=("tunnel session started",),
        description="Records that must all appear before ngrok is ready",
    )
    error_levels: tuple[str, ...] = ("ERROR", "CRITICAL")


MARKERS: dict[str, LogMarkers] = {
    "v2": LogMarkers(),
    "v3": LogMarkers(session_msgs=("client session established",)),
}


class NgrokLog(BaseModel):
    """A single parsed ngrok log record."""

    model_config = ConfigDict(frozen=True)

    line: str
    t: str | None = None
    lvl: str = "NOTSET"
    msg: str | None = None
    err: str | None = None
    addr: str | None = None
    fields: dict[str, Any] = Field(default_factory=dict)


def _parse_logfmt(line: str) -> dict[str, Any]:
    try:
        tokens = shlex.split(line)
    except ValueError:
        # Unbalanced quotes, keep whatever splits on whitespace
        tokens = line.split()

    fields: dict[str, Any] = {}
    for token in tokens:
        key, sep, value = token.partition("=")
        if sep:
            fields[key] = value
    return fields


def parse_log_line(line: str, markers: LogMarkers | None = None) -> NgrokLog:
    """Parse one line of ngrok output into an :class:`NgrokLog`.

    Lines that are neither JSON nor logfmt produce a record with only ``line`` set.
    """
    markers = markers or MARKERS["v3"]
    line = line.strip()

    fields: dict[str, Any] = {}
    if line.startswith("{"):
        try:
            decoded = json.loads(line)
            if isinstance(decoded, dict):
                fields = decoded
        except json.JSONDecodeError:
            fields = {}
    if not fields:
        fields = _parse_logfmt(line)

    raw_level = str(fields.get(markers.level_field, "")).lower()
    err = fields.get(markers.error_field)

    return NgrokLog(
        line=line,
        t=fields.get(markers.time_field),
        lvl=LEVELS.get(raw_level, raw_level.upper() or "NOTSET"),
        msg=fields.get(markers.msg_field),
        err=None if err in (None, "<nil>") else str(err),
        addr=fields.get(markers.addr_field),
        fields=fields,
    )
