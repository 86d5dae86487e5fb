"""Health and configuration endpoints of the web API."""

from __future__ import annotations

import enum
import logging
from datetime import datetime, timedelta, timezone
from http import HTTPStatus
from typing import Any

from nodewarden.models import (
    ApiError,
    ApiResponse,
    AppState,
    EtlServiceSummary,
    HermesInstance,
    MaintenanceInfo,
    NodeHealthSummary,
)

logger = logging.getLogger(__name__)

_MAINTENANCE_ESTIMATED_MINUTES = 60
_MAINTENANCE_ELAPSED_MINUTES = 5


def _rfc3339(value: Any) -> str:
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def _flag(obj: Any, name: str) -> bool:
    return bool(getattr(obj, name, None) or False)


def convert_health_to_summary(health: Any, config: Any) -> NodeHealthSummary:
    """Summarise a node health status for the API."""
    node = config.nodes.get(health.node_name)

    maintenance_info = None
    if health.in_maintenance:
        maintenance_info = MaintenanceInfo(
            operation_type="maintenance",
            started_at=datetime.now(timezone.utc).isoformat(),
            estimated_duration_minutes=_MAINTENANCE_ESTIMATED_MINUTES,
            elapsed_minutes=_MAINTENANCE_ELAPSED_MINUTES,
        )

    if health.in_maintenance:
        status = "Maintenance"
    elif not health.is_healthy:
        status = "Unhealthy"
    elif health.is_catching_up:
        status = "Catching Up"
    else:
        status = "Synced"

    block_height = getattr(health, "block_height", None)
    retention = getattr(node, "snapshot_retention_count", None) if node else None

    return NodeHealthSummary(
        node_name=health.node_name,
        status=status,
        latest_block_height=int(block_height) if block_height is not None else None,
        catching_up=getattr(health, "is_syncing", None),
        last_check=_rfc3339(health.last_check),
        error_message=getattr(health, "error_message", None),
        server_host=health.server_host,
        maintenance_info=maintenance_info,
        snapshot_enabled=node is not None and _flag(node, "snapshots_enabled"),
        auto_restore_enabled=node is not None and _flag(node, "auto_restore_enabled"),
        scheduled_snapshots_enabled=(
            node is not None and getattr(node, "snapshot_schedule", None) is not None
        ),
        snapshot_retention_count=int(retention) if retention is not None else None,
    )


def convert_etl_health_to_summary(health: Any, config: Any) -> EtlServiceSummary:
    """Summarise an ETL service health status for the API."""
    etl = config.etl.get(health.service_name)
    return EtlServiceSummary(
        service_name=health.service_name,
        status="Healthy" if health.is_healthy else "Unhealthy",
        service_url=health.service_url,
        response_time_ms=getattr(health, "response_time_ms", None),
        status_code=getattr(health, "status_code", None),
        last_check=_rfc3339(health.last_check),
        error_message=getattr(health, "error_message", None),
        server_host=health.server_host,
        enabled=bool(health.enabled),
        description=getattr(etl, "description", None) if etl is not None else None,
    )


def format_uptime(total_seconds: int) -> str:
    """Render a number of seconds as ``Xh Ym Zs``, dropping leading zero units."""
    total_seconds = int(total_seconds)
    hours, rest = divmod(total_seconds, 3600)
    minutes, seconds = divmod(rest, 60)
    if hours > 0:
        return f"{hours}h {minutes}m {seconds}s"
    if minutes > 0:
        return f"{minutes}m {seconds}s"
    return f"{seconds}s"


def _status_name(status: Any) -> str:
    if isinstance(status, enum.Enum):
        return status.name
    return str(status)


def _uptime_seconds(uptime: Any) -> int:
    if isinstance(uptime, timedelta):
        return int(uptime.total_seconds())
    return int(uptime)


async def get_hermes_instances(state: AppState) -> list[HermesInstance]:
    """Collect status and uptime of every configured Hermes relayer."""
    instances = []
    for hermes_name, hermes in state.config.hermes.items():
        try:
            status = _status_name(
                await state.agent_manager.check_service_status(
                    hermes.server_host, hermes.service_name
                )
            )
        except Exception:
            status = "Unknown"

        try:
            uptime = await state.agent_manager.get_service_uptime(
                hermes.server_host, hermes.service_name
            )
        except Exception:
            uptime = None
        uptime_formatted = (
            format_uptime(_uptime_seconds(uptime)) if uptime is not None else "Unknown"
        )

        instances.append(
            HermesInstance(
                name=hermes_name,
                server_host=hermes.server_host,
                service_name=hermes.service_name,
                status=status,
                uptime_formatted=uptime_formatted,
                dependent_nodes=list(getattr(hermes, "dependent_nodes", None) or []),
                in_maintenance=False,
            )
        )
    return instances


def _internal(context: str, exc: Exception) -> ApiError:
    logger.error("%s: %s", context, exc)
    return ApiError(HTTPStatus.INTERNAL_SERVER_ERROR, str(exc))


async def get_all_nodes_health(state: AppState, include_disabled: bool = False) -> ApiResponse:
    try:
        statuses = await state.health_service.check_all_nodes()
    except Exception as exc:
        raise _internal("Failed to get all nodes health", exc) from exc
    summaries = [
        convert_health_to_summary(health, state.config)
        for health in statuses
        if include_disabled or health.enabled
    ]
    return ApiResponse.success(summaries)


async def get_node_health(state: AppState, node_name: str) -> ApiResponse:
    try:
        health = await state.health_service.get_node_health(node_name)
    except Exception as exc:
        raise _internal(f"Failed to get node health for {node_name}", exc) from exc
    if health is None:
        raise ApiError(HTTPStatus.NOT_FOUND, f"Node {node_name} not found")
    return ApiResponse.success(convert_health_to_summary(health, state.config))


async def get_all_hermes_health(state: AppState) -> ApiResponse:
    try:
        instances = await get_hermes_instances(state)
    except Exception as exc:
        raise _internal("Failed to get all hermes health", exc) from exc
    return ApiResponse.success(instances)


async def get_hermes_health(state: AppState, hermes_name: str) -> ApiResponse:
    try:
        instances = await get_hermes_instances(state)
    except Exception as exc:
        raise _internal(f"Failed to get hermes health for {hermes_name}", exc) from exc
    for instance in instances:
        if instance.name == hermes_name:
            return ApiResponse.success(instance)
    raise ApiError(HTTPStatus.NOT_FOUND, f"Hermes {hermes_name} not found")


async def get_all_etl_health(state: AppState, include_disabled: bool = False) -> ApiResponse:
    try:
        statuses = await state.health_service.check_all_etl_services()
    except Exception as exc:
        raise _internal("Failed to get all ETL services health", exc) from exc
    summaries = [
        convert_etl_health_to_summary(status, state.config)
        for status in statuses
        if include_disabled or status.enabled
    ]
    return ApiResponse.success(summaries)


async def get_etl_health(state: AppState, service_name: str) -> ApiResponse:
    try:
        status = await state.health_service.get_etl_service_health(service_name)
    except Exception as exc:
        raise _internal(f"Failed to get ETL service health for {service_name}", exc) from exc
    if status is None:
        raise ApiError(HTTPStatus.NOT_FOUND, f"ETL service {service_name} not found")
    return ApiResponse.success(convert_etl_health_to_summary(status, state.config))


async def refresh_etl_health(state: AppState) -> ApiResponse:
    logger.info("Manual ETL health refresh requested")
    try:
        statuses = await state.health_service.check_all_etl_services()
    except Exception as exc:
        raise _internal("Failed to refresh ETL services health", exc) from exc
    return ApiResponse.success(
        [convert_etl_health_to_summary(status, state.config) for status in statuses]
    )


async def get_all_node_configs(state: AppState) -> ApiResponse:
    return ApiResponse.success({"nodes": state.config.nodes})


async def get_all_hermes_configs(state: AppState) -> ApiResponse:
    return ApiResponse.success({"hermes": state.config.hermes})


async def get_all_etl_configs(state: AppState) -> ApiResponse:
    return ApiResponse.success({"etl": state.config.etl})