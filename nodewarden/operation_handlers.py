"""Operation, snapshot and maintenance endpoints of the web API.

Long-running operations are started in the background and the request is
answered at once with a "started" status.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from http import HTTPStatus
from typing import Any, Coroutine

from nodewarden.models import ApiError, ApiResponse, AppState

logger = logging.getLogger(__name__)

DEFAULT_EMERGENCY_MAX_HOURS = 12

_background_tasks: set[asyncio.Task] = set()


def _now_rfc3339() -> str:
    return datetime.now(timezone.utc).isoformat()


def _report_finished(task: asyncio.Task, description: str) -> None:
    _background_tasks.discard(task)
    if task.cancelled():
        logger.warning("%s was cancelled", description)
        return
    error = task.exception()
    if error is not None:
        logger.error("%s failed: %s", description, error)
    else:
        logger.info("%s completed successfully", description)


def spawn_background(coro: Coroutine[Any, Any, Any], description: str) -> asyncio.Task:
    """Run ``coro`` without waiting for it, logging how it ends."""
    task = asyncio.get_running_loop().create_task(coro)
    _background_tasks.add(task)
    task.add_done_callback(lambda done: _report_finished(done, description))
    return task


def _internal(context: str, exc: Exception) -> ApiError:
    logger.error("%s: %s", context, exc)
    return ApiError(HTTPStatus.INTERNAL_SERVER_ERROR, str(exc))


async def _ensure_idle(state: AppState, target: str, kind: str = "Node") -> None:
    if await state.agent_manager.is_target_busy(target):
        raise ApiError(
            HTTPStatus.CONFLICT,
            f"{kind} {target} is already busy with another operation",
        )


def _started(message: str, **fields: Any) -> ApiResponse:
    return ApiResponse.success({"message": message, **fields, "status": "started"})


async def execute_manual_node_restart(state: AppState, node_name: str) -> ApiResponse:
    logger.info("Manual node restart requested for: %s", node_name)
    await _ensure_idle(state, node_name)
    spawn_background(
        state.agent_manager.restart_node(node_name), f"Node restart for {node_name}"
    )
    logger.info("Node %s restart started in background", node_name)
    return _started(
        f"Node {node_name} restart started successfully", node_name=node_name
    )


async def execute_manual_hermes_restart(state: AppState, hermes_name: str) -> ApiResponse:
    logger.info("Manual hermes restart requested for: %s", hermes_name)
    hermes_config = state.config.hermes.get(hermes_name)
    if hermes_config is None:
        raise ApiError(HTTPStatus.NOT_FOUND, f"Hermes {hermes_name} not found")
    await _ensure_idle(state, hermes_name, "Hermes")
    spawn_background(
        state.agent_manager.restart_hermes(hermes_config),
        f"Hermes restart for {hermes_name}",
    )
    logger.info("Hermes %s restart started in background", hermes_name)
    return _started(
        f"Hermes {hermes_name} restart started successfully", hermes_name=hermes_name
    )


async def execute_manual_node_pruning(state: AppState, node_name: str) -> ApiResponse:
    logger.info("Manual node pruning requested for: %s", node_name)
    await _ensure_idle(state, node_name)
    spawn_background(
        state.agent_manager.execute_node_pruning(node_name), f"Pruning for {node_name}"
    )
    logger.info("Node %s pruning started in background", node_name)
    return _started(
        f"Node {node_name} pruning started successfully", node_name=node_name
    )


async def create_snapshot(state: AppState, node_name: str) -> ApiResponse:
    logger.info("Snapshot creation requested for: %s", node_name)
    await _ensure_idle(state, node_name)
    spawn_background(
        state.agent_manager.create_node_snapshot(node_name),
        f"Snapshot creation for {node_name}",
    )
    logger.info("Node %s snapshot creation started in background", node_name)
    return _started(
        f"Snapshot creation started for node {node_name}", node_name=node_name
    )


async def list_snapshots(state: AppState, node_name: str) -> ApiResponse:
    try:
        snapshots = await state.snapshot_service.list_snapshots(node_name)
    except Exception as exc:
        raise _internal(f"Failed to list snapshots for {node_name}", exc) from exc
    return ApiResponse.success(snapshots)


async def delete_snapshot(state: AppState, node_name: str, filename: str) -> ApiResponse:
    logger.info("Snapshot deletion requested for %s: %s", node_name, filename)
    spawn_background(
        state.snapshot_service.delete_snapshot(node_name, filename),
        f"Deletion of snapshot {filename} for {node_name}",
    )
    logger.info("Snapshot %s deletion started in background for %s", filename, node_name)
    return _started(
        f"Snapshot {filename} deletion started", node_name=node_name, filename=filename
    )


async def get_snapshot_stats(state: AppState, node_name: str) -> ApiResponse:
    try:
        stats = await state.snapshot_service.get_snapshot_stats(node_name)
    except Exception as exc:
        raise _internal(f"Failed to get snapshot stats for {node_name}", exc) from exc
    return ApiResponse.success(stats)


async def cleanup_old_snapshots(
    state: AppState, node_name: str, retention_count: int
) -> ApiResponse:
    if isinstance(retention_count, bool) or not isinstance(retention_count, int) or retention_count < 0:
        raise ApiError(
            HTTPStatus.BAD_REQUEST,
            f"Invalid retention_count: {retention_count!r}",
        )
    logger.info(
        "Snapshot cleanup requested for %s (retention: %s)", node_name, retention_count
    )
    spawn_background(
        state.snapshot_service.cleanup_old_snapshots(node_name, retention_count),
        f"Snapshot cleanup for {node_name}",
    )
    logger.info("Snapshot cleanup started in background for %s", node_name)
    return _started(
        f"Snapshot cleanup started for node {node_name}",
        node_name=node_name,
        retention_count=retention_count,
    )


async def execute_manual_restore_from_latest(state: AppState, node_name: str) -> ApiResponse:
    logger.info("Manual restore from latest snapshot requested for: %s", node_name)
    await _ensure_idle(state, node_name)
    spawn_background(
        state.snapshot_service.restore_from_snapshot(node_name),
        f"Manual restore for {node_name}",
    )
    logger.info("Node %s restore started in background", node_name)
    return _started(
        f"Restore from latest snapshot started for node {node_name}",
        node_name=node_name,
    )


async def execute_manual_state_sync(state: AppState, node_name: str) -> ApiResponse:
    logger.info("Manual state sync requested for: %s", node_name)
    await _ensure_idle(state, node_name)

    node = state.config.nodes.get(node_name)
    if node is None:
        raise ApiError(HTTPStatus.NOT_FOUND, f"Node {node_name} not found")
    if not getattr(node, "state_sync_enabled", None):
        raise ApiError(
            HTTPStatus.BAD_REQUEST, f"State sync is not enabled for node {node_name}"
        )

    spawn_background(
        state.agent_manager.execute_state_sync(node_name), f"State sync for {node_name}"
    )
    logger.info("Node %s state sync started in background", node_name)
    return _started(f"State sync started for node {node_name}", node_name=node_name)


async def check_auto_restore_triggers(state: AppState, node_name: str) -> ApiResponse:
    logger.info("Checking auto-restore triggers for: %s", node_name)
    try:
        triggers_found = await state.snapshot_service.check_auto_restore_trigger(node_name)
    except Exception as exc:
        raise _internal(
            f"Failed to check auto-restore triggers for {node_name}", exc
        ) from exc
    logger.info(
        "Auto-restore trigger check completed for %s: triggers_found=%s",
        node_name,
        triggers_found,
    )
    return ApiResponse.success(
        {
            "node_name": node_name,
            "triggers_found": triggers_found,
            "timestamp": _now_rfc3339(),
        }
    )


async def get_auto_restore_status(state: AppState, node_name: str) -> ApiResponse:
    node = state.config.nodes.get(node_name)
    snapshots_enabled = node is not None and bool(getattr(node, "snapshots_enabled", None))
    auto_restore_enabled = (
        node is not None
        and bool(getattr(node, "auto_restore_enabled", None))
        and snapshots_enabled
    )
    trigger_words = list(getattr(state.config, "auto_restore_trigger_words", None) or [])
    return ApiResponse.success(
        {
            "node_name": node_name,
            "auto_restore_enabled": auto_restore_enabled,
            "trigger_words": trigger_words,
            "snapshots_enabled": snapshots_enabled,
            "log_path": getattr(node, "log_path", None) if node is not None else None,
            "timestamp": _now_rfc3339(),
        }
    )


async def get_active_operations(state: AppState) -> ApiResponse:
    return ApiResponse.success(await state.agent_manager.get_active_operations())


async def cancel_operation(state: AppState, target_name: str) -> ApiResponse:
    logger.info("Operation cancellation requested for: %s", target_name)
    try:
        await state.agent_manager.cancel_operation(target_name)
    except Exception as exc:
        raise _internal(f"Failed to cancel operation for {target_name}", exc) from exc
    logger.info("Operation cancelled successfully for %s", target_name)
    return ApiResponse.success({"message": f"Operation cancelled for {target_name}"})


async def emergency_cleanup_operations(
    state: AppState, max_hours: int = DEFAULT_EMERGENCY_MAX_HOURS
) -> ApiResponse:
    logger.info(
        "Emergency cleanup requested for operations older than %s hours", max_hours
    )
    cleaned_count = await state.agent_manager.emergency_cleanup_operations(max_hours)
    return ApiResponse.success(
        {
            "message": f"Emergency cleanup completed: {cleaned_count} operations removed",
            "cleaned_count": cleaned_count,
        }
    )


async def check_target_status(state: AppState, target_name: str) -> ApiResponse:
    is_busy = await state.agent_manager.is_target_busy(target_name)
    active_operation = None
    if is_busy:
        active_operation = await state.agent_manager.operation_tracker.get_active_operation(
            target_name
        )
    return ApiResponse.success(
        {
            "target_name": target_name,
            "is_busy": is_busy,
            "active_operation": active_operation,
        }
    )


async def get_maintenance_schedule(state: AppState) -> ApiResponse:
    return ApiResponse.success({"scheduled": [], "active": []})