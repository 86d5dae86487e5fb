"""Drive state sync of a node through its server's agent.

The trust height and hash are fetched from the node's RPC sources, the agent
is asked to wipe and resync the node, and a returned job is polled until it
finishes. Any failure stops the process at once.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from nodewarden.rpc_client import fetch_state_sync_params

logger = logging.getLogger(__name__)

DEFAULT_TRUST_HEIGHT_OFFSET = 2000
DEFAULT_MAX_SYNC_TIMEOUT_SECONDS = 600
DEFAULT_POLL_INTERVAL_SECONDS = 30.0

_DAEMON_PREFIXES = (
    (("pirin", "nolus"), "nolusd"),
    (("osmosis",), "osmosisd"),
    (("neutron",), "neutrond"),
    (("rila",), "rila"),
    (("cosmos",), "gaiad"),
)


class StateSyncError(Exception):
    """Raised when a state sync cannot be started or does not succeed."""


def determine_daemon_binary(network: str) -> str:
    """Map a network name to the daemon binary that runs it."""
    for prefixes, binary in _DAEMON_PREFIXES:
        if network.startswith(prefixes):
            return binary
    return f"{network.split('-')[0]}d"


def _status_text(response: httpx.Response) -> str:
    return f"{response.status_code} {response.reason_phrase}"


class StateSyncManager:
    """Runs state sync for configured nodes."""

    def __init__(self, config: Any, poll_interval: float = DEFAULT_POLL_INTERVAL_SECONDS):
        self.config = config
        self.poll_interval = poll_interval

    async def execute_state_sync(self, node_name: str, http_manager: Any) -> None:
        """Sync ``node_name`` from a trusted height, raising on any failure."""
        logger.info("Starting state sync for %s", node_name)

        node = self.config.nodes.get(node_name)
        if node is None:
            raise StateSyncError(f"Node {node_name} not found")

        if not getattr(node, "state_sync_enabled", None):
            raise StateSyncError(f"State sync not enabled for {node_name}")

        rpc_sources = getattr(node, "state_sync_rpc_sources", None)
        if rpc_sources is None:
            raise StateSyncError(
                f"No RPC sources configured for state sync on {node_name}"
            )

        trust_height_offset = getattr(node, "state_sync_trust_height_offset", None)
        if trust_height_offset is None:
            trust_height_offset = DEFAULT_TRUST_HEIGHT_OFFSET
        max_sync_timeout = getattr(node, "state_sync_max_sync_timeout_seconds", None)
        if max_sync_timeout is None:
            max_sync_timeout = DEFAULT_MAX_SYNC_TIMEOUT_SECONDS

        home_dir = getattr(node, "deploy_path", None)
        if home_dir is None:
            raise StateSyncError(f"No deploy path configured for {node_name}")
        config_path = f"{home_dir}/config/config.toml"

        logger.info("Fetching state sync parameters from RPC sources")
        try:
            sync_params = await fetch_state_sync_params(rpc_sources, trust_height_offset)
        except Exception as exc:
            logger.error("Failed to fetch state sync parameters: %s", exc)
            raise
        logger.info(
            "State sync parameters fetched: height=%s, hash=%s",
            sync_params.trust_height,
            sync_params.trust_hash,
        )

        daemon_binary = determine_daemon_binary(node.network)

        logger.info("Sending state sync request to agent on %s", node.server_host)
        payload = {
            "service_name": node.service_name,
            "home_dir": home_dir,
            "config_path": config_path,
            "daemon_binary": daemon_binary,
            "rpc_servers": sync_params.rpc_servers,
            "trust_height": sync_params.trust_height,
            "trust_hash": sync_params.trust_hash,
            "timeout_seconds": max_sync_timeout,
            "log_path": getattr(node, "log_path", None),
        }

        server = http_manager.config.servers.get(node.server_host)
        if server is None:
            raise StateSyncError(f"Server {node.server_host} not found")

        agent_url = f"http://{server.host}:{server.agent_port}/state-sync/execute"
        try:
            response = await http_manager.client.post(
                agent_url,
                headers={"Authorization": f"Bearer {server.api_key}"},
                json=payload,
            )
        except httpx.HTTPError as exc:
            raise StateSyncError(f"HTTP request failed: {exc}") from exc

        if not response.is_success:
            raise StateSyncError(
                f"State sync failed with status {_status_text(response)}: {response.text}"
            )

        try:
            result = response.json()
        except ValueError as exc:
            raise StateSyncError(f"Failed to parse response: {exc}") from exc
        if not isinstance(result, dict):
            result = {}

        if result.get("success") is not True:
            error_message = result.get("error")
            if not isinstance(error_message, str):
                error_message = "Unknown error"
            raise StateSyncError(f"State sync failed: {error_message}")

        job_id = result.get("job_id")
        if isinstance(job_id, str):
            logger.info("State sync job started with ID: %s", job_id)
            await self._poll_job(http_manager, node.server_host, job_id)

        logger.info("State sync completed successfully for %s", node_name)

    async def _poll_job(self, http_manager: Any, server_host: str, job_id: str) -> None:
        server = self.config.servers.get(server_host)
        if server is None:
            raise StateSyncError(f"Server {server_host} not found")

        status_url = f"http://{server.host}:{server.agent_port}/operation/status/{job_id}"
        headers = {"Authorization": f"Bearer {server.api_key}"}

        poll_count = 0
        while True:
            poll_count += 1
            logger.info("Polling state sync job status (poll #%s)", poll_count)
            await asyncio.sleep(self.poll_interval)

            try:
                response = await http_manager.client.get(status_url, headers=headers)
            except httpx.HTTPError as exc:
                raise StateSyncError(f"Failed to poll job status: {exc}") from exc

            if not response.is_success:
                continue

            try:
                status = response.json()
            except ValueError as exc:
                raise StateSyncError(f"Failed to parse status response: {exc}") from exc
            if not isinstance(status, dict):
                continue

            job_status = status.get("job_status")
            if job_status == "Completed":
                logger.info("State sync job completed")
                return
            if job_status == "Failed":
                error_message = status.get("error")
                if not isinstance(error_message, str):
                    error_message = "Job failed"
                raise StateSyncError(f"State sync job failed: {error_message}")
            if job_status == "Running":
                logger.info("State sync still running...")