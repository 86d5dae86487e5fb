import enum
import re
from datetime import datetime, timedelta, timezone
from http import HTTPStatus
from types import SimpleNamespace

import pytest

from nodewarden.health_handlers import (
    convert_etl_health_to_summary,
    convert_health_to_summary,
    format_uptime,
    get_all_etl_configs,
    get_all_etl_health,
    get_all_hermes_configs,
    get_all_hermes_health,
    get_all_node_configs,
    get_all_nodes_health,
    get_etl_health,
    get_hermes_health,
    get_hermes_instances,
    get_node_health,
    refresh_etl_health,
)
from nodewarden.models import ApiError, AppState

CHECKED = datetime(2025, 1, 9, 12, 0, tzinfo=timezone.utc)


class ServiceStatus(enum.Enum):
    Running = "running"
    Stopped = "stopped"


def node_health(name, enabled=True, healthy=True, catching_up=False, maintenance=False):
    return SimpleNamespace(
        node_name=name,
        enabled=enabled,
        is_healthy=healthy,
        is_catching_up=catching_up,
        is_syncing=catching_up,
        in_maintenance=maintenance,
        block_height=1234,
        last_check=CHECKED,
        error_message=None,
        server_host="test-server-1",
    )


def etl_health(name, enabled=True, healthy=True):
    return SimpleNamespace(
        service_name=name,
        is_healthy=healthy,
        service_url="http://localhost:8080/health",
        response_time_ms=12,
        status_code=200,
        last_check=CHECKED,
        error_message=None,
        server_host="test-server-1",
        enabled=enabled,
    )


class FakeHealthService:
    def __init__(self, nodes=(), etl=(), error=None):
        self.nodes = list(nodes)
        self.etl = list(etl)
        self.error = error

    async def check_all_nodes(self):
        if self.error:
            raise self.error
        return self.nodes

    async def get_node_health(self, name):
        if self.error:
            raise self.error
        return next((n for n in self.nodes if n.node_name == name), None)

    async def check_all_etl_services(self):
        if self.error:
            raise self.error
        return self.etl

    async def get_etl_service_health(self, name):
        if self.error:
            raise self.error
        return next((e for e in self.etl if e.service_name == name), None)


class FakeAgentManager:
    def __init__(self, statuses=None, uptimes=None):
        self.statuses = statuses or {}
        self.uptimes = uptimes or {}

    async def check_service_status(self, host, service):
        value = self.statuses.get(service)
        if isinstance(value, Exception):
            raise value
        return value

    async def get_service_uptime(self, host, service):
        return self.uptimes.get(service)


def make_config():
    return SimpleNamespace(
        nodes={
            "test-node-1": SimpleNamespace(
                snapshots_enabled=True,
                auto_restore_enabled=None,
                snapshot_schedule="0 0 * * *",
                snapshot_retention_count=5,
            )
        },
        hermes={
            "relayer-a": SimpleNamespace(
                server_host="test-server-1",
                service_name="hermes-a",
                dependent_nodes=["test-node-1"],
            ),
            "relayer-b": SimpleNamespace(
                server_host="test-server-2",
                service_name="hermes-b",
                dependent_nodes=None,
            ),
        },
        etl={"indexer": SimpleNamespace(description="Block indexer")},
    )


def make_state(health_service=None, agent_manager=None):
    return AppState(
        config=make_config(),
        health_service=health_service or FakeHealthService(),
        agent_manager=agent_manager or FakeAgentManager(),
        snapshot_service=None,
    )


@pytest.mark.parametrize(
    "kwargs, expected",
    [
        ({"maintenance": True, "healthy": False}, "Maintenance"),
        ({"healthy": False, "catching_up": True}, "Unhealthy"),
        ({"catching_up": True}, "Catching Up"),
        ({}, "Synced"),
    ],
)
def test_node_status_precedence(kwargs, expected):
    summary = convert_health_to_summary(node_health("test-node-1", **kwargs), make_config())
    assert summary.status == expected


def test_maintenance_info_only_in_maintenance():
    config = make_config()
    in_maintenance = convert_health_to_summary(node_health("n", maintenance=True), config)
    normal = convert_health_to_summary(node_health("n"), config)
    assert in_maintenance.maintenance_info.operation_type == "maintenance"
    assert in_maintenance.maintenance_info.estimated_duration_minutes == 60
    assert in_maintenance.maintenance_info.elapsed_minutes == 5
    assert normal.maintenance_info is None


def test_node_summary_uses_node_config():
    summary = convert_health_to_summary(node_health("test-node-1", catching_up=True), make_config())
    assert summary.snapshot_enabled is True
    assert summary.auto_restore_enabled is False
    assert summary.scheduled_snapshots_enabled is True
    assert summary.snapshot_retention_count == 5
    assert summary.catching_up is True
    assert summary.latest_block_height == 1234
    assert datetime.fromisoformat(summary.last_check) == CHECKED


def test_node_summary_without_config():
    summary = convert_health_to_summary(node_health("unknown"), make_config())
    assert (summary.snapshot_enabled, summary.auto_restore_enabled) == (False, False)
    assert summary.scheduled_snapshots_enabled is False
    assert summary.snapshot_retention_count is None


def test_etl_summary():
    config = make_config()
    healthy = convert_etl_health_to_summary(etl_health("indexer"), config)
    unhealthy = convert_etl_health_to_summary(etl_health("other", healthy=False), config)
    assert healthy.status == "Healthy"
    assert healthy.description == "Block indexer"
    assert unhealthy.status == "Unhealthy"
    assert unhealthy.description is None


@pytest.mark.parametrize("total", [0, 7, 59, 60, 61, 3599, 3600, 3725, 90061])
def test_format_uptime_round_trip(total):
    text = format_uptime(total)
    units = {"h": 3600, "m": 60, "s": 1}
    parts = re.findall(r"(\d+)([hms])", text)
    assert sum(int(n) * units[u] for n, u in parts) == total
    assert parts[-1][1] == "s"
    assert parts[0][0] != "0" or len(parts) == 1


def test_format_uptime_pins():
    assert format_uptime(59) == "59s"
    assert format_uptime(3600) == "1h 0m 0s"
    assert format_uptime(61) == "1m 1s"


@pytest.mark.asyncio
async def test_hermes_instances():
    agent = FakeAgentManager(
        statuses={"hermes-a": ServiceStatus.Running, "hermes-b": RuntimeError("down")},
        uptimes={"hermes-a": timedelta(seconds=125)},
    )
    instances = await get_hermes_instances(make_state(agent_manager=agent))
    by_name = {i.name: i for i in instances}
    assert by_name["relayer-a"].status == "Running"
    assert by_name["relayer-a"].uptime_formatted == format_uptime(125)
    assert by_name["relayer-a"].dependent_nodes == ["test-node-1"]
    assert by_name["relayer-b"].status == "Unknown"
    assert by_name["relayer-b"].uptime_formatted == "Unknown"
    assert by_name["relayer-b"].dependent_nodes == []


@pytest.mark.asyncio
async def test_get_hermes_health_found_and_missing():
    state = make_state(agent_manager=FakeAgentManager({"hermes-a": ServiceStatus.Stopped}))
    response = await get_hermes_health(state, "relayer-a")
    assert response.data.status == "Stopped"
    with pytest.raises(ApiError) as info:
        await get_hermes_health(state, "ghost")
    assert info.value.status_code == HTTPStatus.NOT_FOUND
    assert info.value.message == "Hermes ghost not found"


@pytest.mark.asyncio
async def test_all_hermes_health():
    response = await get_all_hermes_health(make_state())
    assert [i.name for i in response.data] == ["relayer-a", "relayer-b"]


@pytest.mark.asyncio
async def test_all_nodes_health_filters_disabled():
    service = FakeHealthService(nodes=[node_health("a"), node_health("b", enabled=False)])
    state = make_state(health_service=service)
    enabled = await get_all_nodes_health(state)
    everything = await get_all_nodes_health(state, include_disabled=True)
    assert [s.node_name for s in enabled.data] == ["a"]
    assert [s.node_name for s in everything.data] == ["a", "b"]
    assert enabled.success is True


@pytest.mark.asyncio
async def test_all_nodes_health_error_is_internal():
    state = make_state(health_service=FakeHealthService(error=RuntimeError("db gone")))
    with pytest.raises(ApiError) as info:
        await get_all_nodes_health(state)
    assert info.value.status_code == HTTPStatus.INTERNAL_SERVER_ERROR
    assert info.value.message == "db gone"


@pytest.mark.asyncio
async def test_node_health_found_and_missing():
    state = make_state(health_service=FakeHealthService(nodes=[node_health("test-node-1")]))
    response = await get_node_health(state, "test-node-1")
    assert response.data.status == "Synced"
    with pytest.raises(ApiError) as info:
        await get_node_health(state, "ghost")
    assert info.value.status_code == HTTPStatus.NOT_FOUND
    assert info.value.message == "Node ghost not found"


@pytest.mark.asyncio
async def test_etl_health_endpoints():
    service = FakeHealthService(etl=[etl_health("indexer"), etl_health("off", enabled=False)])
    state = make_state(health_service=service)
    listed = await get_all_etl_health(state)
    refreshed = await refresh_etl_health(state)
    assert [s.service_name for s in listed.data] == ["indexer"]
    assert [s.service_name for s in refreshed.data] == ["indexer", "off"]
    single = await get_etl_health(state, "indexer")
    assert single.data.description == "Block indexer"
    with pytest.raises(ApiError) as info:
        await get_etl_health(state, "ghost")
    assert info.value.message == "ETL service ghost not found"


@pytest.mark.asyncio
async def test_config_endpoints():
    state = make_state()
    assert (await get_all_node_configs(state)).data == {"nodes": state.config.nodes}
    assert (await get_all_hermes_configs(state)).data == {"hermes": state.config.hermes}
    etl = (await get_all_etl_configs(state)).to_dict()
    assert etl["data"] == {"etl": {"indexer": {"description": "Block indexer"}}}