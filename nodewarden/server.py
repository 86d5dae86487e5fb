"""HTTP routing and serving of the manager's web API."""

from __future__ import annotations

import logging
from http import HTTPStatus
from pathlib import Path
from typing import Any, Awaitable, Callable, Mapping

import uvicorn
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import HTMLResponse, JSONResponse, Response
from starlette.routing import BaseRoute, Mount, Route
from starlette.staticfiles import StaticFiles

from nodewarden import health_handlers, operation_handlers
from nodewarden.models import ApiError, ApiResponse, AppState

logger = logging.getLogger(__name__)

STATIC_DIR = Path("static")
INDEX_FILE = STATIC_DIR / "index.html"

_Handler = Callable[..., Awaitable[ApiResponse]]
_QueryParser = Callable[[Mapping[str, str]], dict[str, Any]]


def _bad_query(detail: str) -> ApiError:
    return ApiError(
        HTTPStatus.BAD_REQUEST, f"Failed to deserialize query string: {detail}"
    )


def _parse_int(text: str, name: str, *, minimum: int | None = None) -> int:
    candidate = text[1:] if text.startswith(("+", "-")) else text
    if not candidate.isdigit() or not candidate.isascii():
        raise _bad_query(f"{name}: invalid digit found in string")
    value = int(text)
    if minimum is not None and value < minimum:
        raise _bad_query(f"{name}: invalid value {text!r}")
    return value


def _include_disabled_query(params: Mapping[str, str]) -> dict[str, Any]:
    raw = params.get("include_disabled")
    if raw is None:
        return {"include_disabled": False}
    if raw not in ("true", "false"):
        raise _bad_query(f"include_disabled: provided string was not `true` or `false`")
    return {"include_disabled": raw == "true"}


def _retention_query(params: Mapping[str, str]) -> dict[str, Any]:
    raw = params.get("retention_count")
    if raw is None:
        raise _bad_query("missing field `retention_count`")
    return {"retention_count": _parse_int(raw, "retention_count", minimum=0)}


def _emergency_cleanup_query(params: Mapping[str, str]) -> dict[str, Any]:
    raw = params.get("max_hours")
    if raw is None:
        return {"max_hours": operation_handlers.DEFAULT_EMERGENCY_MAX_HOURS}
    return {"max_hours": _parse_int(raw, "max_hours")}


def _endpoint(
    state: AppState,
    handler: _Handler,
    *path_params: str,
    query: _QueryParser | None = None,
) -> Callable[[Request], Awaitable[Response]]:
    async def endpoint(request: Request) -> Response:
        kwargs = {name: request.path_params[name] for name in path_params}
        if query is not None:
            kwargs.update(query(request.query_params))
        result = await handler(state, **kwargs)
        return JSONResponse(result.to_dict())

    endpoint.__name__ = handler.__name__
    return endpoint


async def _serve_index(request: Request) -> Response:
    try:
        return HTMLResponse(INDEX_FILE.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ApiError(HTTPStatus.NOT_FOUND, "index.html not found") from exc


async def _api_error_handler(request: Request, exc: Exception) -> Response:
    assert isinstance(exc, ApiError)
    return JSONResponse(
        ApiResponse.error(exc.message).to_dict(), status_code=int(exc.status_code)
    )


def _routes(state: AppState) -> list[BaseRoute]:
    h = health_handlers
    o = operation_handlers

    def get(path: str, handler: _Handler, *params: str, **kw: Any) -> Route:
        return Route(path, _endpoint(state, handler, *params, **kw), methods=["GET"])

    def post(path: str, handler: _Handler, *params: str, **kw: Any) -> Route:
        return Route(path, _endpoint(state, handler, *params, **kw), methods=["POST"])

    def delete(path: str, handler: _Handler, *params: str) -> Route:
        return Route(path, _endpoint(state, handler, *params), methods=["DELETE"])

    routes: list[BaseRoute] = [
        Route("/", _serve_index, methods=["GET"]),
        get("/api/health/nodes", h.get_all_nodes_health, query=_include_disabled_query),
        get("/api/health/nodes/{node_name}", h.get_node_health, "node_name"),
        get("/api/health/hermes", h.get_all_hermes_health),
        get("/api/health/hermes/{hermes_name}", h.get_hermes_health, "hermes_name"),
        get("/api/health/etl", h.get_all_etl_health, query=_include_disabled_query),
        get("/api/health/etl/{service_name}", h.get_etl_health, "service_name"),
        post("/api/health/etl/refresh", h.refresh_etl_health),
        get("/api/config/nodes", h.get_all_node_configs),
        get("/api/config/hermes", h.get_all_hermes_configs),
        get("/api/config/etl", h.get_all_etl_configs),
        post(
            "/api/maintenance/nodes/{node_name}/restart",
            o.execute_manual_node_restart,
            "node_name",
        ),
        post(
            "/api/maintenance/nodes/{node_name}/prune",
            o.execute_manual_node_pruning,
            "node_name",
        ),
        post(
            "/api/maintenance/hermes/{hermes_name}/restart",
            o.execute_manual_hermes_restart,
            "hermes_name",
        ),
        post("/api/snapshots/{node_name}/create", o.create_snapshot, "node_name"),
        get("/api/snapshots/{node_name}/list", o.list_snapshots, "node_name"),
        get("/api/snapshots/{node_name}/stats", o.get_snapshot_stats, "node_name"),
        delete(
            "/api/snapshots/{node_name}/{filename}",
            o.delete_snapshot,
            "node_name",
            "filename",
        ),
        post(
            "/api/snapshots/{node_name}/cleanup",
            o.cleanup_old_snapshots,
            "node_name",
            query=_retention_query,
        ),
        post(
            "/api/snapshots/{node_name}/restore",
            o.execute_manual_restore_from_latest,
            "node_name",
        ),
        get(
            "/api/snapshots/{node_name}/check-triggers",
            o.check_auto_restore_triggers,
            "node_name",
        ),
        get(
            "/api/snapshots/{node_name}/auto-restore-status",
            o.get_auto_restore_status,
            "node_name",
        ),
        post(
            "/api/state-sync/{node_name}/execute",
            o.execute_manual_state_sync,
            "node_name",
        ),
        get("/api/operations/active", o.get_active_operations),
        post("/api/operations/{target_name}/cancel", o.cancel_operation, "target_name"),
        get(
            "/api/operations/{target_name}/status", o.check_target_status, "target_name"
        ),
        post(
            "/api/operations/emergency-cleanup",
            o.emergency_cleanup_operations,
            query=_emergency_cleanup_query,
        ),
        get("/api/maintenance/schedule", o.get_maintenance_schedule),
    ]
    if STATIC_DIR.is_dir():
        routes.append(Mount("/static", app=StaticFiles(directory=STATIC_DIR)))
    return routes


def create_app(state: AppState) -> Starlette:
    """Build the web application serving the API for ``state``."""
    return Starlette(
        routes=_routes(state),
        middleware=[
            Middleware(
                CORSMiddleware,
                allow_origins=["*"],
                allow_methods=["*"],
                allow_headers=["*"],
                expose_headers=["*"],
            )
        ],
        exception_handlers={ApiError: _api_error_handler},
    )


async def start_web_server(state: AppState) -> None:
    """Serve the API on the host and port named in the configuration."""
    app = create_app(state)
    host = state.config.host
    port = int(state.config.port)
    server = uvicorn.Server(uvicorn.Config(app, host=host, port=port))
    logger.info("Server running on http://%s:%s", host, port)
    await server.serve()