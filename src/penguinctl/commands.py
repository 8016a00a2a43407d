"""Command implementations using command pattern."""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path
from typing import Annotated, Any, ClassVar, Literal

from pydantic import BaseModel, Field, TypeAdapter, ValidationError
from rich.panel import Panel
from rich.table import Table

from penguin import PenguinClient
from penguin.models import (
    ReinstallVirtualMachineRequest,
    RenewVirtualMachineRequest,
    ResetVirtualMachinePasswordRequest,
)
from penguinctl import lookups
from penguinctl.cloud_init import render_cloud_init
from penguinctl.command_base import BaseCommand, BaseCommandConfig, CommandError
from penguinctl.config import ResourceKind
from penguinctl.reconcilers import (
    ElasticIPReconciler,
    Reconciler,
    ResourceModel,
    reconciler_for,
)
from penguinctl.state import StateStore


log = logging.getLogger(__name__)


def _row_value(value: Any) -> str:
    if value is None:
        return "-"
    if isinstance(value, list):
        return ", ".join(value) if value else "-"
    return str(value)


# ============================================================================
# Health Command
# ============================================================================


class HealthCommand(BaseCommand):
    """Check service health."""

    config: HealthCommandConfig

    async def run(self) -> None:
        """Execute health command."""
        async with self.create_client() as client:
            await client.health()
            self.console.print("[green]✓[/green] Service is up")

            if self.config.internal:
                health = await client.internal_health()
                style = "green" if health.status == "ok" else "yellow"
                self.console.print(
                    f"Status: [{style}]{health.status}[/{style}]  "
                    f"Database: {health.database}"
                )


class HealthCommandConfig(BaseCommandConfig):
    """Configuration for health command."""

    command: Literal["health"] = "health"
    internal: bool = Field(
        default=True, description="Also query the internal health endpoint"
    )

    _command_class: ClassVar[type[BaseCommand]] = HealthCommand


# ============================================================================
# Zones Command
# ============================================================================


class ZonesCommand(BaseCommand):
    """List availability zones."""

    config: ZonesCommandConfig

    async def run(self) -> None:
        """Execute zones command."""
        async with self.create_client() as client:
            zones = await client.list_zones()

        if self.config.region:
            zones = [z for z in zones if z.region == self.config.region]

        if not zones:
            self.console.print("[dim]No zones found[/dim]")
            return

        table = Table(title="Zones")
        table.add_column("Zone", style="cyan", no_wrap=True)
        table.add_column("Name", style="white")
        table.add_column("Region", style="blue")
        table.add_column("State", style="magenta")

        for zone in sorted(zones, key=lambda z: (z.region, z.zone)):
            state_style = "green" if zone.state == "AVAILABLE" else "dim"
            table.add_row(
                zone.zone,
                zone.zone_name,
                f"{zone.region} ({zone.region_name})",
                f"[{state_style}]{zone.state}[/{state_style}]",
            )

        self.console.print(table)


class ZonesCommandConfig(BaseCommandConfig):
    """Configuration for zones command."""

    command: Literal["zones"] = "zones"
    region: str | None = Field(default=None, description="Only show this region")

    _command_class: ClassVar[type[BaseCommand]] = ZonesCommand


# ============================================================================
# Bandwidth Command
# ============================================================================


class BandwidthCommand(BaseCommand):
    """Show the currently best shared bandwidth package."""

    config: BandwidthCommandConfig

    async def run(self) -> None:
        """Execute bandwidth command."""
        async with self.create_client() as client:
            found = await lookups.lookup_bandwidth_package(
                client, self.config.region, self.config.network_type
            )

        self.console.print(
            f"[green]✓[/green] [cyan]{found.bandwidth_package_id}[/cyan] in "
            f"{found.region} ([bold]{found.available_count}[/bold] bindings left)"
        )


class BandwidthCommandConfig(BaseCommandConfig):
    """Configuration for bandwidth command."""

    command: Literal["bandwidth"] = "bandwidth"
    region: str = Field(description="Region to query")
    network_type: str = Field(default="", description="Network type, e.g. BGP")

    _command_class: ClassVar[type[BaseCommand]] = BandwidthCommand


# ============================================================================
# Status / Metrics / VNC Commands
# ============================================================================


class StatusCommand(BaseCommand):
    """Show virtual machine status."""

    config: StatusCommandConfig

    async def run(self) -> None:
        """Execute status command."""
        async with self.create_client() as client:
            with self.console.status(
                f"[bold cyan]Fetching virtual machine {self.config.vm_id}..."
            ):
                status = await client.get_virtual_machine_status(self.config.vm_id)

        table = Table(show_header=False, box=None, padding=(0, 1), expand=False)
        table.add_column(style="dim", justify="right", no_wrap=True)
        table.add_column(style="white")

        self.console.print(f"\n[bold cyan]{status.id}[/bold cyan]")
        table.add_row("Instance:", status.instance_id)
        table.add_row("State:", status.instance_state)
        table.add_row("Zone:", status.zone)
        table.add_row("Type:", status.instance_type)
        table.add_row("CPU / RAM:", f"{status.cpu} vCPU / {status.memory_gib} GiB")
        table.add_row("Disk:", f"{status.system_disk_size_gib} GiB")
        table.add_row("Private IPs:", _row_value(status.private_ips))
        table.add_row("Public IPs:", _row_value(status.public_ips))
        table.add_row("Image:", _row_value(status.os_name or status.image_id))
        table.add_row("Created:", _row_value(status.created_at))
        table.add_row("Expires:", _row_value(status.expired_at))
        table.add_row(
            "Transfer:",
            f"{status.used_transfer_kb} / {status.total_transfer_kb} KB",
        )
        table.add_row("Login user:", _row_value(status.default_login_user))

        self.console.print(table)


class StatusCommandConfig(BaseCommandConfig):
    """Configuration for status command."""

    command: Literal["status"] = "status"
    vm_id: str = Field(description="Virtual machine ID")

    _command_class: ClassVar[type[BaseCommand]] = StatusCommand


class MetricsCommand(BaseCommand):
    """Show aggregated virtual machine metrics."""

    config: MetricsCommandConfig

    async def run(self) -> None:
        """Execute metrics command."""
        async with self.create_client() as client:
            metrics = await client.get_virtual_machine_metrics(
                self.config.vm_id, self.config.range
            )

        table = Table(title=f"Metrics {metrics.range} ({metrics.start} - {metrics.end})")
        table.add_column("CPU %", style="cyan")
        table.add_column("Memory %", style="magenta")
        table.add_column("Out KB", style="green")
        table.add_column("In KB", style="yellow")
        table.add_row(
            f"{metrics.cpu_average_percent:.1f}",
            f"{metrics.memory_average_percent:.1f}",
            str(metrics.network_out_kb),
            str(metrics.network_in_kb),
        )
        self.console.print(table)


class MetricsCommandConfig(BaseCommandConfig):
    """Configuration for metrics command."""

    command: Literal["metrics"] = "metrics"
    vm_id: str = Field(description="Virtual machine ID")
    range: str | None = Field(default=None, description="Metrics range, e.g. 1h")

    _command_class: ClassVar[type[BaseCommand]] = MetricsCommand


class VncCommand(BaseCommand):
    """Show the console URL of a virtual machine."""

    config: VncCommandConfig

    async def run(self) -> None:
        """Execute vnc command."""
        async with self.create_client() as client:
            vnc = await client.get_virtual_machine_vnc(self.config.vm_id)

        self.console.print(
            Panel(vnc.url, title=f"Console for {self.config.vm_id}", border_style="cyan")
        )


class VncCommandConfig(BaseCommandConfig):
    """Configuration for vnc command."""

    command: Literal["vnc"] = "vnc"
    vm_id: str = Field(description="Virtual machine ID")

    _command_class: ClassVar[type[BaseCommand]] = VncCommand


# ============================================================================
# JWT Command
# ============================================================================


class JwtCommand(BaseCommand):
    """Issue a JWT with provisioning limits."""

    config: JwtCommandConfig

    async def run(self) -> None:
        """Execute jwt command."""
        async with self.create_client() as client:
            issued = await lookups.issue_jwt(
                client,
                self.config.ttl_minutes,
                max_transfer_kb=self.config.max_transfer_kb,
                allowed_instance_types=self.config.allowed_instance_types,
                allowed_zones=self.config.allowed_zones,
                max_bandwidth_mbps=self.config.max_bandwidth_mbps,
                project_id=self.config.project_id,
            )

        self.console.print(
            Panel(
                issued.token,
                title=f"JWT (expires {issued.expires_at})",
                border_style="green",
            )
        )


class JwtCommandConfig(BaseCommandConfig):
    """Configuration for jwt command."""

    command: Literal["jwt"] = "jwt"
    ttl_minutes: int = Field(description="Token lifetime in minutes", gt=0)
    max_transfer_kb: int | None = Field(default=None)
    allowed_instance_types: list[str] | None = Field(default=None)
    allowed_zones: list[str] | None = Field(default=None)
    max_bandwidth_mbps: int | None = Field(default=None)
    project_id: int | None = Field(default=None)

    _command_class: ClassVar[type[BaseCommand]] = JwtCommand


# ============================================================================
# Resource Commands (apply / refresh / destroy / import)
# ============================================================================


class CloudInitConfig(BaseModel):
    """Cloud-init rendering for virtual machines."""

    template: Path | None = Field(
        default=None, description="Jinja2 template file; packaged default when unset"
    )
    context: dict[str, Any] = Field(
        default_factory=dict, description="Template variables"
    )


class ResourceCommand(BaseCommand):
    """Shared plumbing for commands acting on one stored resource."""

    config: ResourceCommandConfig

    @property
    def store(self) -> StateStore:
        return StateStore(self.config.state.directory)

    def reconciler(self, client: PenguinClient) -> Reconciler:
        return reconciler_for(self.config.resource, client, self.config.wait)

    def load_state(self, reconciler: Reconciler) -> ResourceModel | None:
        return self.store.load(self.config.resource, self.config.name, reconciler.model)

    def print_state(self, state: ResourceModel) -> None:
        table = Table(show_header=False, box=None, padding=(0, 1), expand=False)
        table.add_column(style="dim", justify="right", no_wrap=True)
        table.add_column(style="white")
        for field, value in state.model_dump(exclude_none=True).items():
            if type(state).model_fields[field].repr:
                table.add_row(f"{field}:", _row_value(value))
        self.console.print(table)


class ResourceCommandConfig(BaseCommandConfig):
    """Fields shared by resource commands."""

    resource: ResourceKind = Field(description="Resource kind")
    name: str = Field(description="Local name the state is stored under")


class ApplyCommand(ResourceCommand):
    """Create or update a resource to match the desired attributes."""

    config: ApplyCommandConfig

    async def run(self) -> None:
        """Execute apply command."""
        cancel = self.cancel_on_sigterm()

        async with self.create_client() as client:
            reconciler = self.reconciler(client)
            try:
                plan = reconciler.model.model_validate(self._desired())
            except ValidationError as e:
                raise CommandError(f"Invalid spec for {self.config.resource.value}: {e}") from e
            state = self.load_state(reconciler)

            if state is not None:
                replace = state.changed_replace_fields(plan)
                if replace:
                    log.warning(
                        "%s %s must be replaced: %s",
                        self.config.resource.value,
                        self.config.name,
                        ", ".join(replace),
                    )
                    self.console.print(
                        f"[yellow]⚠[/yellow] Replacing [cyan]{self.config.name}[/cyan] "
                        f"({', '.join(replace)} changed)"
                    )
                    await reconciler.delete(state, cancel=cancel)
                    self.store.remove(self.config.resource, self.config.name)
                    state = None

            if state is None:
                with self.console.status(
                    f"[bold green]Creating {self.config.resource.value} {self.config.name}..."
                ):
                    new_state = await reconciler.create(plan, cancel=cancel)
                verb = "Created"
            else:
                with self.console.status(
                    f"[bold green]Updating {self.config.resource.value} {self.config.name}..."
                ):
                    new_state = await reconciler.update(state, plan, cancel=cancel)
                verb = "Updated"

        self.store.save(self.config.resource, self.config.name, new_state)
        self.console.print(
            f"[green]✓[/green] {verb}: [cyan]{self.config.name}[/cyan] ({new_state.id})"
        )
        self.print_state(new_state)

    def _desired(self) -> dict[str, Any]:
        desired = dict(self.config.spec)
        if (
            self.config.resource is ResourceKind.virtual_machine
            and self.config.cloud_init is not None
        ):
            if desired.get("cloud_init_data") is not None:
                raise CommandError("Set either spec.cloud_init_data or cloud_init, not both")
            desired["cloud_init_data"] = render_cloud_init(
                self.config.cloud_init.context, self.config.cloud_init.template
            )
        return desired


class ApplyCommandConfig(ResourceCommandConfig):
    """Configuration for apply command."""

    command: Literal["apply"] = "apply"
    spec: dict[str, Any] = Field(
        default_factory=dict, description="Desired resource attributes"
    )
    cloud_init: CloudInitConfig | None = Field(
        default=None, description="Render cloud_init_data from a template"
    )

    _command_class: ClassVar[type[BaseCommand]] = ApplyCommand


class RefreshCommand(ResourceCommand):
    """Refresh stored state from the service."""

    config: RefreshCommandConfig

    async def run(self) -> None:
        """Execute refresh command."""
        async with self.create_client() as client:
            reconciler = self.reconciler(client)
            state = self.load_state(reconciler)
            if state is None:
                raise CommandError(
                    f"No stored state for {self.config.resource.value} {self.config.name}"
                )
            new_state = await reconciler.read(state)

        if new_state is None:
            self.store.remove(self.config.resource, self.config.name)
            self.console.print(
                f"[yellow]⚠[/yellow] [cyan]{self.config.name}[/cyan] no longer exists; state removed"
            )
            return

        self.store.save(self.config.resource, self.config.name, new_state)
        self.console.print(f"[green]✓[/green] Refreshed: [cyan]{self.config.name}[/cyan]")
        self.print_state(new_state)


class RefreshCommandConfig(ResourceCommandConfig):
    """Configuration for refresh command."""

    command: Literal["refresh"] = "refresh"

    _command_class: ClassVar[type[BaseCommand]] = RefreshCommand


class DestroyCommand(ResourceCommand):
    """Delete a resource and forget its state."""

    config: DestroyCommandConfig

    async def run(self) -> None:
        """Execute destroy command."""
        cancel = self.cancel_on_sigterm()

        async with self.create_client() as client:
            reconciler = self.reconciler(client)
            state = self.load_state(reconciler)
            if state is None:
                self.console.print(
                    f"[dim]No stored state for {self.config.name}; nothing to do[/dim]"
                )
                return
            with self.console.status(
                f"[bold red]Destroying {self.config.resource.value} {self.config.name}..."
            ):
                await reconciler.delete(state, cancel=cancel)

        self.store.remove(self.config.resource, self.config.name)
        self.console.print(f"[green]✓[/green] Destroyed: [cyan]{self.config.name}[/cyan]")


class DestroyCommandConfig(ResourceCommandConfig):
    """Configuration for destroy command."""

    command: Literal["destroy"] = "destroy"

    _command_class: ClassVar[type[BaseCommand]] = DestroyCommand


class ImportCommand(ResourceCommand):
    """Adopt an existing elastic IP into local state."""

    config: ImportCommandConfig

    async def run(self) -> None:
        """Execute import command."""
        if self.config.resource is not ResourceKind.elastic_ip:
            raise CommandError(f"Import is not supported for {self.config.resource.value}")
        if self.store.path_for(self.config.resource, self.config.name).exists():
            raise CommandError(f"State for {self.config.name} already exists")

        state = ElasticIPReconciler.import_state(self.config.identifier)
        self.store.save(self.config.resource, self.config.name, state)
        self.console.print(
            f"[green]✓[/green] Imported [cyan]{state.id}[/cyan] as {self.config.name}"
        )


class ImportCommandConfig(ResourceCommandConfig):
    """Configuration for import command."""

    command: Literal["import"] = "import"
    identifier: str = Field(description="Import identifier, e.g. region:eip-id")

    _command_class: ClassVar[type[BaseCommand]] = ImportCommand


# ============================================================================
# VM Action Command
# ============================================================================


class VmAction(str, Enum):
    """Day-2 virtual machine actions."""

    renew = "renew"
    reinstall = "reinstall"
    reset_password = "reset_password"
    reset_transfer = "reset_transfer"


class VmActionCommand(BaseCommand):
    """Run a day-2 action against a virtual machine."""

    config: VmActionCommandConfig

    async def run(self) -> None:
        """Execute vm-action command."""
        vm_id = self.config.vm_id

        async with self.create_client() as client:
            match self.config.action:
                case VmAction.renew:
                    out = await client.renew_virtual_machine(
                        vm_id,
                        RenewVirtualMachineRequest(
                            period_months=self.config.period_months,
                            auto_renew=self.config.auto_renew,
                        ),
                    )
                    self.console.print(
                        f"[green]✓[/green] Renewed [cyan]{vm_id}[/cyan], "
                        f"expires {out.expired_at or 'unknown'}"
                    )

                case VmAction.reinstall:
                    if not self.config.image_id:
                        raise CommandError("image_id is required to reinstall")
                    cloud_init_data = None
                    if self.config.cloud_init is not None:
                        cloud_init_data = render_cloud_init(
                            self.config.cloud_init.context, self.config.cloud_init.template
                        )
                    await client.reinstall_virtual_machine(
                        vm_id,
                        ReinstallVirtualMachineRequest(
                            image_id=self.config.image_id,
                            cloud_init_data=cloud_init_data,
                        ),
                    )
                    self.console.print(
                        f"[green]✓[/green] Reinstall of [cyan]{vm_id}[/cyan] accepted"
                    )

                case VmAction.reset_password:
                    out = await client.reset_virtual_machine_password(
                        vm_id,
                        ResetVirtualMachinePasswordRequest(
                            force_stop=self.config.force_stop
                        ),
                    )
                    self.console.print(
                        Panel(out.password, title="New root password", border_style="green")
                    )

                case VmAction.reset_transfer:
                    await client.reset_virtual_machine_transfer(vm_id)
                    self.console.print(
                        f"[green]✓[/green] Transfer counter of [cyan]{vm_id}[/cyan] reset"
                    )

                case _:
                    raise CommandError(f"Unknown action: {self.config.action}")


class VmActionCommandConfig(BaseCommandConfig):
    """Configuration for vm-action command."""

    command: Literal["vm-action"] = "vm-action"
    vm_id: str = Field(description="Virtual machine ID")
    action: VmAction = Field(description="Action to run")
    period_months: int | None = Field(default=None, description="Renewal period")
    auto_renew: bool | None = Field(default=None)
    image_id: str | None = Field(default=None, description="Image for reinstall")
    cloud_init: CloudInitConfig | None = Field(default=None)
    force_stop: bool | None = Field(default=None)

    _command_class: ClassVar[type[BaseCommand]] = VmActionCommand


# ============================================================================
# Discriminated Union
# ============================================================================

CommandConfig = Annotated[
    HealthCommandConfig
    | ZonesCommandConfig
    | BandwidthCommandConfig
    | StatusCommandConfig
    | MetricsCommandConfig
    | VncCommandConfig
    | JwtCommandConfig
    | ApplyCommandConfig
    | RefreshCommandConfig
    | DestroyCommandConfig
    | ImportCommandConfig
    | VmActionCommandConfig,
    Field(discriminator="command"),
]

# Type adapter for validation
command_adapter: TypeAdapter[CommandConfig] = TypeAdapter(CommandConfig)
