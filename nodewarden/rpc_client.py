"""Fetch state sync trust parameters from Tendermint-style RPC endpoints."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Iterable

import httpx

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT_SECONDS = 10.0

_HEIGHT_PATTERN = re.compile(r"[+-]?[0-9]+")


class RpcError(Exception):
    """Raised when an RPC source cannot provide the requested data."""


@dataclass
class StateSyncParams:
    """Trust parameters handed to a node for state sync."""

    rpc_servers: list[str] = field(default_factory=list)
    trust_height: int = 0
    trust_hash: str = ""


def _dig(document: Any, *keys: str) -> Any:
    for key in keys:
        if not isinstance(document, dict):
            return None
        document = document.get(key)
    return document


async def _get_block_json(client: httpx.AsyncClient, url: str, failure: str) -> Any:
    try:
        response = await client.get(url)
    except httpx.HTTPError as exc:
        raise RpcError(f"{failure}: {exc}") from exc

    if not response.is_success:
        raise RpcError(
            f"RPC returned status: {response.status_code} {response.reason_phrase}"
        )

    try:
        return response.json()
    except ValueError as exc:
        raise RpcError(f"Failed to parse block response: {exc}") from exc


async def query_latest_height(client: httpx.AsyncClient, rpc_url: str) -> int:
    """Return the latest block height reported by ``rpc_url``."""
    document = await _get_block_json(
        client, f"{rpc_url}/block", "Failed to query latest block"
    )

    height_text = _dig(document, "result", "block", "header", "height")
    if not isinstance(height_text, str):
        raise RpcError("Could not extract height from response")

    if not _HEIGHT_PATTERN.fullmatch(height_text):
        raise RpcError(f"Failed to parse height: invalid digit in {height_text!r}")
    return int(height_text)


async def query_block_hash(client: httpx.AsyncClient, rpc_url: str, height: int) -> str:
    """Return the block hash at ``height`` reported by ``rpc_url``."""
    document = await _get_block_json(
        client,
        f"{rpc_url}/block?height={height}",
        f"Failed to query block at height {height}",
    )

    block_hash = _dig(document, "result", "block_id", "hash")
    if not isinstance(block_hash, str):
        raise RpcError("Could not extract hash from response")
    return block_hash


async def _fetch_from_rpc(
    client: httpx.AsyncClient,
    rpc_url: str,
    all_sources: list[str],
    trust_height_offset: int,
) -> StateSyncParams:
    latest_height = await query_latest_height(client, rpc_url)
    logger.info("Latest height from %s: %s", rpc_url, latest_height)

    trust_height = latest_height - trust_height_offset
    logger.info(
        "Trust height: %s (latest %s - offset %s)",
        trust_height,
        latest_height,
        trust_height_offset,
    )

    trust_hash = await query_block_hash(client, rpc_url, trust_height)
    logger.info("Trust hash at height %s: %s", trust_height, trust_hash)

    return StateSyncParams(
        rpc_servers=list(all_sources),
        trust_height=trust_height,
        trust_hash=trust_hash,
    )


async def _fetch_first(
    client: httpx.AsyncClient, sources: list[str], trust_height_offset: int
) -> StateSyncParams:
    last_error: RpcError | None = None
    for rpc_url in sources:
        logger.info("Trying RPC source: %s", rpc_url)
        try:
            params = await _fetch_from_rpc(client, rpc_url, sources, trust_height_offset)
        except RpcError as exc:
            logger.warning("RPC %s failed: %s", rpc_url, exc)
            last_error = exc
            continue
        logger.info("Successfully fetched parameters from %s", rpc_url)
        return params

    raise last_error or RpcError("No RPC sources available")


async def fetch_state_sync_params(
    rpc_sources: Iterable[str],
    trust_height_offset: int,
    client: httpx.AsyncClient | None = None,
) -> StateSyncParams:
    """Try each RPC source once and return the first complete set of parameters.

    Every configured source is listed in the result for redundancy. When all
    sources fail the error of the last one is raised.
    """
    sources = list(rpc_sources)
    if client is None:
        async with httpx.AsyncClient(timeout=REQUEST_TIMEOUT_SECONDS) as own_client:
            return await _fetch_first(own_client, sources, trust_height_offset)
    return await _fetch_first(client, sources, trust_height_offset)