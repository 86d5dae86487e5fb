"""Shared state and response types for the manager's web API."""

from __future__ import annotations

import dataclasses
import enum
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from http import HTTPStatus
from pathlib import PurePath
from typing import Any


def _now_rfc3339() -> str:
    return datetime.now(timezone.utc).isoformat()


def to_jsonable(value: Any) -> Any:
    """Turn ``value`` into plain JSON-compatible data.

    Dataclasses and plain objects become dictionaries, enums their value (or
    name when the value is not a JSON primitive), dates ISO strings and
    durations seconds; containers are converted element by element.
    """
    if value is None or isinstance(value, (bool, int, float, str)):
        if isinstance(value, enum.Enum):
            return _enum_to_jsonable(value)
        return value
    if isinstance(value, enum.Enum):
        return _enum_to_jsonable(value)
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, timedelta):
        return value.total_seconds()
    if isinstance(value, PurePath):
        return str(value)
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {
            item.name: to_jsonable(getattr(value, item.name))
            for item in dataclasses.fields(value)
        }
    if isinstance(value, dict):
        return {str(key): to_jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [to_jsonable(item) for item in value]
    to_dict = getattr(value, "to_dict", None)
    if callable(to_dict):
        return to_jsonable(to_dict())
    if hasattr(value, "__dict__"):
        return {
            key: to_jsonable(item)
            for key, item in vars(value).items()
            if not key.startswith("_")
        }
    return str(value)


def _enum_to_jsonable(member: enum.Enum) -> Any:
    if isinstance(member.value, (bool, int, float, str)):
        return member.value
    return member.name


class ApiError(Exception):
    """An API failure carrying the HTTP status it should be reported with."""

    def __init__(self, status_code: HTTPStatus | int, message: str):
        super().__init__(message)
        self.status_code = HTTPStatus(status_code)
        self.message = message


class ApiResponse:
    """The envelope every API endpoint answers with."""

    def __init__(
        self,
        success: bool,
        data: Any = None,
        message: str | None = None,
        timestamp: str | None = None,
    ):
        self.success = success
        self.data = data
        self.message = message
        self.timestamp = timestamp if timestamp is not None else _now_rfc3339()

    @classmethod
    def success(cls, data: Any) -> "ApiResponse":
        """A successful response carrying ``data``."""
        return cls(True, data, None)

    @classmethod
    def error(cls, message: str) -> "ApiResponse":
        """A failed response carrying ``message``."""
        return cls(False, None, message)

    def to_dict(self) -> dict[str, Any]:
        """The response as JSON-compatible data."""
        return {
            "success": self.success,
            "data": to_jsonable(self.data),
            "message": self.message,
            "timestamp": self.timestamp,
        }

    def __repr__(self) -> str:
        return (
            f"ApiResponse(success={self.success!r}, data={self.data!r}, "
            f"message={self.message!r}, timestamp={self.timestamp!r})"
        )


@dataclass
class AppState:
    """Services shared by every request handler."""

    config: Any
    health_service: Any
    agent_manager: Any
    snapshot_service: Any


@dataclass
class MaintenanceInfo:
    operation_type: str
    started_at: str
    estimated_duration_minutes: int
    elapsed_minutes: int


@dataclass
class NodeHealthSummary:
    node_name: str
    status: str
    latest_block_height: int | None
    catching_up: bool | None
    last_check: str
    error_message: str | None
    server_host: str
    maintenance_info: MaintenanceInfo | None
    snapshot_enabled: bool
    auto_restore_enabled: bool
    scheduled_snapshots_enabled: bool
    snapshot_retention_count: int | None


@dataclass
class HermesInstance:
    name: str
    server_host: str
    service_name: str
    status: str
    uptime_formatted: str | None
    dependent_nodes: list[str] = field(default_factory=list)
    in_maintenance: bool = False


@dataclass
class EtlServiceSummary:
    service_name: str
    status: str
    service_url: str
    response_time_ms: int | None
    status_code: int | None
    last_check: str
    error_message: str | None
    server_host: str
    enabled: bool
    description: str | None