# nodewarden

`nodewarden` is the manager side of a blockchain node fleet, as a library. It provides:

- a Starlette application serving a JSON HTTP API for node, Hermes relayer and ETL service health, configuration views and maintenance operations (`nodewarden.server`);
- request handlers that start long-running operations in the background and answer at once (`nodewarden.health_handlers`, `nodewarden.operation_handlers`);
- state sync orchestration: fetching a trusted height and hash from RPC sources and handing the work to the agent on the node's server (`nodewarden.rpc_client`, `nodewarden.state_sync`).

Install with `pip install .`; the test dependencies are in the `test` extra.

## State sync parameters

`nodewarden.rpc_client.fetch_state_sync_params(rpc_sources, trust_height_offset, client=None)` tries each RPC source once, in order. For each source it:

1. reads the latest block height from `<rpc>/block` (`result.block.header.height`, a decimal string);
2. subtracts the trust height offset from that height;
3. reads the block hash at that height from `<rpc>/block?height=<h>` (`result.block_id.hash`).

The first source that answers in full wins. The returned `StateSyncParams` lists every configured source in `rpc_servers`, so the agent has fallbacks, together with `trust_height` and `trust_hash`. A source fails on a transport error, a non-2xx status, a body that is not JSON, or a missing or malformed field. If every source fails, the `RpcError` of the last one is raised; with no sources at all, `RpcError("No RPC sources available")`.

Without a `client`, a private `httpx.AsyncClient` with a 10 second timeout is used. `query_latest_height(client, rpc_url)` and `query_block_hash(client, rpc_url, height)` are available on their own.

```python
import asyncio
import httpx

from nodewarden.rpc_client import fetch_state_sync_params


async def main():
    async with httpx.AsyncClient(timeout=10) as client:
        params = await fetch_state_sync_params(
            ["http://rpc-a.example.com:26657", "http://rpc-b.example.com:26657"],
            2000,
            client,
        )
    print(params.trust_height, params.trust_hash, params.rpc_servers)


asyncio.run(main())
```

## Running a state sync

`StateSyncManager(config, poll_interval=30.0)` reads node and server settings from `config.nodes` and `config.servers`. `await manager.execute_state_sync(node_name, http_manager)` stops at the first error. It raises `StateSyncError` when:

- the node is unknown, state sync is not enabled for it, or it has no RPC sources or no deploy path;
- the node's server is not in `http_manager.config.servers`;
- the request to the agent fails, returns a non-2xx status, or returns a body whose `success` is not `true`;
- a polled job reports `Failed`.

Errors from fetching the RPC parameters are raised unchanged as `RpcError`.

The trust height offset defaults to 2000 blocks and the sync timeout sent to the agent to 600 seconds. The request goes to `http://<host>:<agent_port>/state-sync/execute` with a `Bearer` API key and a JSON body naming the service, home directory, `config/config.toml` path, daemon binary, RPC servers, trust height and hash, timeout and log path. When the agent returns a `job_id`, the manager polls `/operation/status/<job_id>` every `poll_interval` seconds until `job_status` is `Completed` or `Failed`; non-2xx poll answers are skipped and polling goes on.

`determine_daemon_binary` picks the daemon from the network name:

| Network prefix        | Daemon     |
|-----------------------|------------|
| `pirin`, `nolus`      | `nolusd`   |
| `osmosis`             | `osmosisd` |
| `neutron`             | `neutrond` |
| `rila`                | `rila`     |
| `cosmos`              | `gaiad`    |
| anything else         | first dash-separated part plus `d` |

```python
from nodewarden.state_sync import determine_daemon_binary

determine_daemon_binary("osmosis-1")   # "osmosisd"
determine_daemon_binary("juno-1")      # "junod"
```

## The web API

`nodewarden.server.create_app(state)` builds a Starlette application from a `nodewarden.models.AppState`, which holds `config`, `health_service`, `agent_manager` and `snapshot_service`. `await start_web_server(state)` serves that application with uvicorn on `state.config.host` and `state.config.port`.

Every endpoint answers with the `ApiResponse` envelope:

```json
{"success": true, "data": {}, "message": null, "timestamp": "2025-01-01T00:00:00+00:00"}
```

Handlers raise `ApiError(status_code, message)`; the application turns it into the same envelope with `success` false and `message` set. Unknown targets get 404. A target already busy with an operation gets 409. A state sync request for a node without state sync enabled gets 400, as does a malformed query string. Other failures of the services get 500. Data is converted with `to_jsonable`, which turns dataclasses, enums, dates, durations and plain objects into JSON-compatible values.

| Method | Path | Purpose |
|--------|------|---------|
| GET    | `/` | `static/index.html` from the working directory (404 if missing) |
| GET    | `/api/health/nodes` | Health of all nodes (`?include_disabled=true` to include disabled ones) |
| GET    | `/api/health/nodes/{node_name}` | Health of one node |
| GET    | `/api/health/hermes` | All Hermes instances with status and uptime |
| GET    | `/api/health/hermes/{hermes_name}` | One Hermes instance |
| GET    | `/api/health/etl` | Health of ETL services (`?include_disabled=true` too) |
| GET    | `/api/health/etl/{service_name}` | One ETL service |
| POST   | `/api/health/etl/refresh` | Re-check every ETL service |
| GET    | `/api/config/nodes`, `/api/config/hermes`, `/api/config/etl` | Configuration views |
| POST   | `/api/maintenance/nodes/{node_name}/restart` | Restart a node |
| POST   | `/api/maintenance/nodes/{node_name}/prune` | Prune a node |
| POST   | `/api/maintenance/hermes/{hermes_name}/restart` | Restart a Hermes instance |
| POST   | `/api/snapshots/{node_name}/create` | Create a snapshot |
| GET    | `/api/snapshots/{node_name}/list` | List snapshots |
| GET    | `/api/snapshots/{node_name}/stats` | Snapshot statistics |
| DELETE | `/api/snapshots/{node_name}/{filename}` | Delete a snapshot |
| POST   | `/api/snapshots/{node_name}/cleanup?retention_count=N` | Keep only the newest N snapshots (`retention_count` required) |
| POST   | `/api/snapshots/{node_name}/restore` | Restore from the latest snapshot |
| GET    | `/api/snapshots/{node_name}/check-triggers` | Check logs for auto-restore trigger words |
| GET    | `/api/snapshots/{node_name}/auto-restore-status` | Auto-restore settings for a node |
| POST   | `/api/state-sync/{node_name}/execute` | Start a state sync |
| GET    | `/api/operations/active` | Operations in progress |
| POST   | `/api/operations/{target_name}/cancel` | Cancel an operation |
| GET    | `/api/operations/{target_name}/status` | Whether a target is busy, and with what |
| POST   | `/api/operations/emergency-cleanup?max_hours=12` | Drop operations older than `max_hours` (default 12) |
| GET    | `/api/maintenance/schedule` | Maintenance schedule (always empty lists) |

If a `static` directory exists in the working directory when the application is built, it is served under `/static`. CORS is open to every origin.

The operation endpoints do not wait for the work to finish. They check that the target is free, start the work with `operation_handlers.spawn_background`, which logs how it ends, and return `"status": "started"` straight away. Follow the work through `/api/operations/active` and `/api/operations/{target_name}/status`.

Node health statuses are reported as `Maintenance`, `Unhealthy`, `Catching Up` or `Synced`, in that order of precedence; ETL services as `Healthy` or `Unhealthy`. Hermes uptime is formatted by `health_handlers.format_uptime` as `1h 2m 3s`, `2m 3s` or `3s`; a status or uptime the agent manager cannot give is reported as `Unknown`.

## What the package does not do

The package has no command to start it and does not read configuration files. It has no health monitor, agent manager, snapshot service, operation tracker or database of its own. The caller builds an `AppState` from its own objects, which must provide the attributes and coroutines the handlers use: for example `check_all_nodes`, `get_node_health`, `check_all_etl_services` and `get_etl_service_health` on the health service; `is_target_busy`, `restart_node`, `restart_hermes`, `execute_node_pruning`, `create_node_snapshot`, `execute_state_sync`, `get_active_operations`, `cancel_operation`, `emergency_cleanup_operations`, `check_service_status`, `get_service_uptime` and `operation_tracker.get_active_operation` on the agent manager; and `list_snapshots`, `delete_snapshot`, `get_snapshot_stats`, `cleanup_old_snapshots`, `restore_from_snapshot` and `check_auto_restore_trigger` on the snapshot service. The package does not ship the `static/index.html` page.