"""Tests for CLI commands."""

import io
from unittest.mock import AsyncMock

import pytest
from rich.console import Console

from penguin import (
    ApiError,
    BandwidthPackageSelection,
    CreateElasticIPResponse,
    CreateVirtualMachineResponse,
    InternalHealthResponse,
    PenguinClient,
    VirtualMachineMetrics,
    Zone,
)
from penguin.models import ResetVirtualMachinePasswordResponse
from penguinctl.command_base import CommandError
from penguinctl.commands import (
    ApplyCommandConfig,
    HealthCommandConfig,
    command_adapter,
)
from penguinctl.config import ResourceKind
from penguinctl.reconcilers import ElasticIPModel, VirtualMachineModel
from penguinctl.state import StateStore

from conftest import make_status


VM_SPEC = {
    "name": "web-1",
    "zone": "ap-guangzhou-6",
    "instance_type": "SA2.MEDIUM2",
    "security_group": "sg-1",
    "system_image": "img-1",
    "vpc_id": "vpc-1",
    "subnet_id": "subnet-1",
    "system_disk_size_gib": 50,
    "bandwidth_limit_mbps": 100,
    "total_transfer_kb": -1,
}


@pytest.fixture
def client():
    client = AsyncMock(spec=PenguinClient)
    client.__aenter__.return_value = client
    return client


@pytest.fixture
def state_dir(tmp_path):
    return tmp_path / "state"


@pytest.fixture
def build(client, state_dir):
    """Build a command from CLI-shaped config with the mock client wired in."""

    def _build(command: str, **fields):
        config = command_adapter.validate_python(
            {
                "command": command,
                "api": {"endpoint": "http://127.0.0.1:8080"},
                "wait": {"poll_interval": 0.01},
                "state": {"directory": str(state_dir)},
                **fields,
            }
        )
        output = io.StringIO()
        cmd = config.create_command(console=Console(file=output, width=200))
        cmd.create_client = lambda: client
        return cmd, output

    return _build


def not_found() -> ApiError:
    return ApiError(404, "not found")


class TestCommandAdapter:
    """Config parsing into command configs."""

    def test_discriminates_on_command(self):
        config = command_adapter.validate_python(
            {
                "command": "health",
                "api": {"endpoint": "http://127.0.0.1:8080"},
                "wait": {},
                "state": {},
            }
        )
        assert isinstance(config, HealthCommandConfig)
        assert config.internal is True

    def test_apply_config(self):
        config = command_adapter.validate_python(
            {
                "command": "apply",
                "api": {"endpoint": "http://127.0.0.1:8080"},
                "wait": {},
                "state": {},
                "resource": "elastic_ip",
                "name": "edge",
                "spec": {"region": "ap-guangzhou"},
            }
        )
        assert isinstance(config, ApplyCommandConfig)
        assert config.resource is ResourceKind.elastic_ip


class TestLookupCommands:
    """Commands that only read from the service."""

    @pytest.mark.asyncio
    async def test_health(self, build, client):
        client.internal_health.return_value = InternalHealthResponse(
            status="ok", database="ok"
        )
        cmd, output = build("health")

        await cmd.run()

        client.health.assert_awaited_once()
        assert "Service is up" in output.getvalue()
        assert "Database: ok" in output.getvalue()

    @pytest.mark.asyncio
    async def test_zones_region_filter(self, build, client):
        client.list_zones.return_value = [
            Zone(region="ap-guangzhou", zone="ap-guangzhou-6", state="AVAILABLE"),
            Zone(region="ap-shanghai", zone="ap-shanghai-2", state="AVAILABLE"),
        ]
        cmd, output = build("zones", region="ap-shanghai")

        await cmd.run()

        assert "ap-shanghai-2" in output.getvalue()
        assert "ap-guangzhou-6" not in output.getvalue()

    @pytest.mark.asyncio
    async def test_status(self, build, client):
        client.get_virtual_machine_status.return_value = make_status()
        cmd, output = build("status", vm_id="ins-1")

        await cmd.run()

        client.get_virtual_machine_status.assert_awaited_once_with("ins-1")
        assert "RUNNING" in output.getvalue()
        assert "203.0.113.7" in output.getvalue()

    @pytest.mark.asyncio
    async def test_status_not_found_surfaces(self, build, client):
        client.get_virtual_machine_status.side_effect = not_found()
        cmd, _ = build("status", vm_id="ins-1")
        with pytest.raises(ApiError) as exc_info:
            await cmd.run()
        assert exc_info.value.is_not_found

    @pytest.mark.asyncio
    async def test_metrics_range(self, build, client):
        client.get_virtual_machine_metrics.return_value = VirtualMachineMetrics(
            range="24h", cpu_average_percent=12.5
        )
        cmd, output = build("metrics", vm_id="ins-1", range="24h")

        await cmd.run()

        client.get_virtual_machine_metrics.assert_awaited_once_with("ins-1", "24h")
        assert "12.5" in output.getvalue()


class TestApply:
    """Create, update and replace through apply."""

    @pytest.mark.asyncio
    async def test_create_saves_state(self, build, client, state_dir):
        client.create_virtual_machine.return_value = CreateVirtualMachineResponse(
            id="ins-1"
        )
        client.get_virtual_machine_status.side_effect = [not_found(), make_status()]
        cmd, output = build(
            "apply", resource="virtual_machine", name="web-1", spec=VM_SPEC
        )

        await cmd.run()

        stored = StateStore(state_dir).load(
            ResourceKind.virtual_machine, "web-1", VirtualMachineModel
        )
        assert stored.id == "ins-1"
        assert stored.instance_state == "RUNNING"
        assert "Created" in output.getvalue()

    @pytest.mark.asyncio
    async def test_update_adjusts_bandwidth(self, build, client, state_dir):
        StateStore(state_dir).save(
            ResourceKind.virtual_machine,
            "web-1",
            VirtualMachineModel(id="ins-1", **VM_SPEC),
        )
        client.get_virtual_machine_status.return_value = make_status()
        cmd, output = build(
            "apply",
            resource="virtual_machine",
            name="web-1",
            spec={**VM_SPEC, "bandwidth_limit_mbps": 200},
        )

        await cmd.run()

        client.adjust_virtual_machine_bandwidth.assert_awaited_once_with("ins-1", 200)
        client.create_virtual_machine.assert_not_awaited()
        assert "Updated" in output.getvalue()

    @pytest.mark.asyncio
    async def test_immutable_change_replaces(self, build, client, state_dir):
        StateStore(state_dir).save(
            ResourceKind.virtual_machine,
            "web-1",
            VirtualMachineModel(id="ins-1", **VM_SPEC),
        )
        client.create_virtual_machine.return_value = CreateVirtualMachineResponse(
            id="ins-2"
        )
        # First read confirms the old instance is gone, second sees the new one
        client.get_virtual_machine_status.side_effect = [
            not_found(),
            make_status(id="ins-2", instance_type="SA2.LARGE8"),
        ]
        cmd, output = build(
            "apply",
            resource="virtual_machine",
            name="web-1",
            spec={**VM_SPEC, "instance_type": "SA2.LARGE8"},
        )

        await cmd.run()

        client.delete_virtual_machine.assert_awaited_once_with("ins-1")
        client.create_virtual_machine.assert_awaited_once()
        stored = StateStore(state_dir).load(
            ResourceKind.virtual_machine, "web-1", VirtualMachineModel
        )
        assert stored.id == "ins-2"
        assert "Replacing" in output.getvalue()

    @pytest.mark.asyncio
    async def test_renders_cloud_init(self, build, client):
        client.create_virtual_machine.return_value = CreateVirtualMachineResponse(
            id="ins-1"
        )
        client.get_virtual_machine_status.return_value = make_status()
        cmd, _ = build(
            "apply",
            resource="virtual_machine",
            name="web-1",
            spec=VM_SPEC,
            cloud_init={
                "context": {
                    "hostname": "web-1",
                    "ssh_authorized_keys": [],
                    "packages": ["htop"],
                }
            },
        )

        await cmd.run()

        request = client.create_virtual_machine.await_args.args[0]
        assert "hostname: web-1" in request.cloud_init_data

    @pytest.mark.asyncio
    async def test_invalid_spec(self, build, client):
        cmd, _ = build(
            "apply", resource="virtual_machine", name="web-1", spec={"name": "web-1"}
        )
        with pytest.raises(CommandError, match="Invalid spec"):
            await cmd.run()
        client.create_virtual_machine.assert_not_awaited()


class TestRefreshAndDestroy:
    """Stored state follows the remote resource."""

    @pytest.mark.asyncio
    async def test_refresh_removes_state_of_gone_resource(self, build, client, state_dir):
        store = StateStore(state_dir)
        store.save(
            ResourceKind.virtual_machine,
            "web-1",
            VirtualMachineModel(id="ins-1", **VM_SPEC),
        )
        client.get_virtual_machine_status.side_effect = not_found()
        cmd, output = build("refresh", resource="virtual_machine", name="web-1")

        await cmd.run()

        assert not store.path_for(ResourceKind.virtual_machine, "web-1").exists()
        assert "no longer exists" in output.getvalue()

    @pytest.mark.asyncio
    async def test_refresh_without_state(self, build):
        cmd, _ = build("refresh", resource="virtual_machine", name="web-1")
        with pytest.raises(CommandError, match="No stored state"):
            await cmd.run()

    @pytest.mark.asyncio
    async def test_destroy(self, build, client, state_dir):
        store = StateStore(state_dir)
        store.save(
            ResourceKind.elastic_ip,
            "edge",
            ElasticIPModel(id="eip-1", region="ap-guangzhou"),
        )
        cmd, output = build("destroy", resource="elastic_ip", name="edge")

        await cmd.run()

        client.delete_elastic_ip.assert_awaited_once_with("ap-guangzhou", "eip-1")
        assert not store.path_for(ResourceKind.elastic_ip, "edge").exists()
        assert "Destroyed" in output.getvalue()

    @pytest.mark.asyncio
    async def test_destroy_without_state_is_noop(self, build, client):
        cmd, output = build("destroy", resource="elastic_ip", name="edge")
        await cmd.run()
        client.delete_elastic_ip.assert_not_awaited()
        assert "nothing to do" in output.getvalue()


class TestImport:
    """Adopting existing elastic IPs."""

    @pytest.mark.asyncio
    async def test_import_records_state(self, build, client, state_dir):
        cmd, _ = build(
            "import",
            resource="elastic_ip",
            name="edge",
            identifier="ap-guangzhou:eip-1",
        )
        await cmd.run()

        stored = StateStore(state_dir).load(
            ResourceKind.elastic_ip, "edge", ElasticIPModel
        )
        assert stored.id == "eip-1"
        assert stored.region == "ap-guangzhou"
        client.create_elastic_ip.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_existing_state(self, build, state_dir):
        StateStore(state_dir).save(
            ResourceKind.elastic_ip, "edge", ElasticIPModel(id="eip-0", region="r")
        )
        cmd, _ = build(
            "import", resource="elastic_ip", name="edge", identifier="r:eip-1"
        )
        with pytest.raises(CommandError, match="already exists"):
            await cmd.run()

    @pytest.mark.asyncio
    async def test_unsupported_kind(self, build):
        cmd, _ = build(
            "import", resource="virtual_machine", name="web-1", identifier="r:ins-1"
        )
        with pytest.raises(CommandError, match="not supported"):
            await cmd.run()


class TestVmAction:
    """Day-2 actions."""

    @pytest.mark.asyncio
    async def test_reset_password(self, build, client):
        client.reset_virtual_machine_password.return_value = (
            ResetVirtualMachinePasswordResponse(password="n3w-pass")
        )
        cmd, output = build(
            "vm-action", vm_id="ins-1", action="reset_password", force_stop=True
        )

        await cmd.run()

        vm_id, request = client.reset_virtual_machine_password.await_args.args
        assert vm_id == "ins-1"
        assert request.force_stop is True
        assert "n3w-pass" in output.getvalue()

    @pytest.mark.asyncio
    async def test_reset_transfer(self, build, client):
        cmd, _ = build("vm-action", vm_id="ins-1", action="reset_transfer")
        await cmd.run()
        client.reset_virtual_machine_transfer.assert_awaited_once_with("ins-1")

    @pytest.mark.asyncio
    async def test_reinstall_requires_image(self, build, client):
        cmd, _ = build("vm-action", vm_id="ins-1", action="reinstall")
        with pytest.raises(CommandError, match="image_id"):
            await cmd.run()
        client.reinstall_virtual_machine.assert_not_awaited()


class TestEipApply:
    """Elastic IP apply flow."""

    @pytest.mark.asyncio
    async def test_create(self, build, client, state_dir):
        client.create_elastic_ip.return_value = CreateElasticIPResponse(
            id="eip-1", address="198.51.100.4"
        )
        cmd, output = build(
            "apply",
            resource="elastic_ip",
            name="edge",
            spec={"region": "ap-guangzhou", "bandwidth_limit_mbps": 50, "address_name": "edge"},
        )

        await cmd.run()

        stored = StateStore(state_dir).load(
            ResourceKind.elastic_ip, "edge", ElasticIPModel
        )
        assert stored.address == "198.51.100.4"
        assert "198.51.100.4" in output.getvalue()


class TestBandwidthSelectionApply:
    """Re-applying a selection keeps the snapshot."""

    @pytest.mark.asyncio
    async def test_blank_network_type_reapplies_without_query(self, build, client):
        client.select_bandwidth_package.return_value = BandwidthPackageSelection(
            id="bwp-1", available_count=4
        )
        spec = {"region": " ap-guangzhou ", "network_type": ""}

        first, _ = build(
            "apply", resource="bandwidth_package_selection", name="bwp", spec=spec
        )
        await first.run()
        second, output = build(
            "apply", resource="bandwidth_package_selection", name="bwp", spec=spec
        )
        await second.run()

        client.select_bandwidth_package.assert_awaited_once_with("ap-guangzhou", "BGP")
        assert "Replacing" not in output.getvalue()
        assert "Updated" in output.getvalue()
