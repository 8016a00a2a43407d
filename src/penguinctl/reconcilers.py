"""Resource reconcilers.

Each reconciler turns one create/read/update/delete request into the remote
calls and bounded polling needed for the Penguin service to converge. The
caller owns state between invocations and serializes operations per
resource.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import ClassVar, Generic, TypeVar

from pydantic import BaseModel, Field, field_validator

from penguin import (
    ApiError,
    CreateElasticIPRequest,
    CreateVirtualMachineRequest,
    PenguinClient,
    VirtualMachineStatus,
)
from penguinctl.config import ResourceKind, WaitConfig
from penguinctl.wait import wait_until


log = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound="ResourceModel")

DEFAULT_NETWORK_TYPE = "BGP"
MAX_CLOUD_INIT_BYTES = 16 * 1024


class ReconcileError(Exception):
    """Reconciliation failed."""


class InvalidConfigurationError(ReconcileError):
    """Desired configuration rejected locally, before any remote call."""


class ResourceModel(BaseModel):
    """Base for resource state records."""

    id: str | None = Field(default=None, description="Identity assigned on create")

    # Attributes whose change forces destroy-then-recreate
    replace_fields: ClassVar[frozenset[str]] = frozenset()

    def changed_replace_fields(self, plan: ResourceModel) -> list[str]:
        """List replace-trigger attributes that differ between self and plan."""
        return sorted(
            name
            for name in self.replace_fields
            if getattr(self, name) != getattr(plan, name)
        )


class Reconciler(ABC, Generic[ModelT]):
    """Base class for resource reconcilers."""

    kind: ClassVar[ResourceKind]
    model: ClassVar[type[ResourceModel]]

    def __init__(self, client: PenguinClient, wait: WaitConfig | None = None) -> None:
        """Initialize reconciler.

        Args:
            client: Open API client shared by all reconcilers
            wait: Polling configuration (defaults when None)
        """
        self.client = client
        self.wait = wait or WaitConfig()

    @abstractmethod
    async def create(
        self, plan: ModelT, *, cancel: asyncio.Event | None = None
    ) -> ModelT:
        """Create the resource and return its first state."""
        ...

    @abstractmethod
    async def read(
        self, state: ModelT, *, cancel: asyncio.Event | None = None
    ) -> ModelT | None:
        """Refresh state; None means the resource is gone."""
        ...

    @abstractmethod
    async def update(
        self, state: ModelT, plan: ModelT, *, cancel: asyncio.Event | None = None
    ) -> ModelT:
        """Move an existing resource towards plan and return the new state."""
        ...

    @abstractmethod
    async def delete(
        self, state: ModelT, *, cancel: asyncio.Event | None = None
    ) -> None:
        """Destroy the resource. Already-absent resources count as deleted."""
        ...

    def _require_id(self, state: ModelT) -> str:
        if not state.id:
            raise InvalidConfigurationError(
                f"{self.kind.value} state has no id; was it ever created?"
            )
        return state.id


# ============================================================================
# Virtual Machine
# ============================================================================


class VirtualMachineModel(ResourceModel):
    """Virtual machine desired attributes and observed status."""

    name: str = Field(description="Instance name and hostname")
    zone: str = Field(description="Availability zone, e.g. ap-guangzhou-6")
    instance_type: str = Field(description="Machine type, e.g. SA2.MEDIUM2")
    security_group: str = Field(description="Security group ID")
    system_image: str = Field(description="Image ID")
    vpc_id: str = Field(description="VPC ID")
    subnet_id: str = Field(description="Subnet ID within the VPC")
    private_ip_address: str | None = Field(default=None)
    system_disk_size_gib: int = Field(description="System disk size in GiB")
    shared_bandwidth_package_id: str | None = Field(default=None)
    elastic_ip_id: str | None = Field(default=None)
    bandwidth_limit_mbps: int | None = Field(
        default=None, description="Outbound limit in Mbps; the only in-place mutable field"
    )
    charge_type: str | None = Field(default=None)
    root_login_password: str | None = Field(default=None, repr=False)
    total_transfer_kb: int = Field(description="Transfer quota in KB, -1 for unlimited")
    project_id: int | None = Field(default=None)
    period_months: int | None = Field(default=None)
    cloud_init_data: str | None = Field(default=None, repr=False)
    auto_renew: bool | None = Field(default=None)

    instance_id: str | None = None
    instance_state: str | None = None
    cpu: int | None = None
    memory_gib: int | None = None
    private_ips: list[str] = Field(default_factory=list)
    public_ips: list[str] = Field(default_factory=list)
    image_id: str | None = None
    os_name: str | None = None
    created_at: str | None = None
    expired_at: str | None = None
    used_transfer_kb: int | None = None
    remaining_transfer_kb: int | None = None
    password: str | None = Field(default=None, repr=False)
    default_login_user: str | None = None

    replace_fields: ClassVar[frozenset[str]] = frozenset(
        {
            "name",
            "zone",
            "instance_type",
            "security_group",
            "system_image",
            "vpc_id",
            "subnet_id",
            "private_ip_address",
            "system_disk_size_gib",
            "shared_bandwidth_package_id",
            "elastic_ip_id",
            "charge_type",
            "root_login_password",
            "total_transfer_kb",
            "project_id",
            "period_months",
            "cloud_init_data",
        }
    )

    def with_status(self, status: VirtualMachineStatus) -> VirtualMachineModel:
        """Return a copy with observed attributes taken from status."""
        return self.model_copy(
            update={
                "instance_id": status.instance_id,
                "zone": status.zone,
                "instance_type": status.instance_type,
                "instance_state": status.instance_state,
                "cpu": status.cpu,
                "memory_gib": status.memory_gib,
                "private_ips": list(status.private_ips),
                "public_ips": list(status.public_ips),
                "image_id": status.image_id,
                "os_name": status.os_name,
                "created_at": status.created_at,
                "expired_at": status.expired_at,
                "used_transfer_kb": status.used_transfer_kb,
                "remaining_transfer_kb": status.remaining_transfer_kb,
                "password": status.password,
                "default_login_user": status.default_login_user,
            }
        )


def validate_network(plan: VirtualMachineModel) -> None:
    """Check that exactly one of elastic IP or bandwidth limit is configured.

    Raises:
        InvalidConfigurationError: If both or neither are set
    """
    if plan.elastic_ip_id is not None and (
        plan.shared_bandwidth_package_id is not None
        or plan.bandwidth_limit_mbps is not None
    ):
        raise InvalidConfigurationError(
            "When elastic_ip_id is set, omit shared_bandwidth_package_id "
            "and bandwidth_limit_mbps"
        )
    if plan.elastic_ip_id is None and plan.bandwidth_limit_mbps is None:
        raise InvalidConfigurationError(
            "Set bandwidth_limit_mbps when not providing elastic_ip_id"
        )


class VirtualMachineReconciler(Reconciler[VirtualMachineModel]):
    """Virtual machine lifecycle.

    Requested -> Provisioning -> Active -> (Updating -> Active)* -> Deleting -> Gone
    """

    kind = ResourceKind.virtual_machine
    model = VirtualMachineModel

    async def create(
        self, plan: VirtualMachineModel, *, cancel: asyncio.Event | None = None
    ) -> VirtualMachineModel:
        """Create a virtual machine and wait until its status is readable.

        Args:
            plan: Desired attributes
            cancel: Event aborting the provisioning wait

        Returns:
            State with identity and observed attributes

        Raises:
            InvalidConfigurationError: If the network settings are inconsistent
            ApiError: If the create call or a status read fails (other than 404)
            WaitCancelledError: If the provisioning wait is cancelled or times out
        """
        validate_network(plan)
        if (
            plan.cloud_init_data is not None
            and len(plan.cloud_init_data.encode("utf-8")) > MAX_CLOUD_INIT_BYTES
        ):
            raise InvalidConfigurationError(
                f"cloud_init_data exceeds {MAX_CLOUD_INIT_BYTES} bytes"
            )

        request = CreateVirtualMachineRequest(
            name=plan.name,
            zone=plan.zone,
            instance_type=plan.instance_type,
            security_group=plan.security_group,
            system_image=plan.system_image,
            vpc_id=plan.vpc_id,
            subnet_id=plan.subnet_id,
            private_ip_address=plan.private_ip_address,
            system_disk_size_gib=plan.system_disk_size_gib,
            shared_bandwidth_package_id=plan.shared_bandwidth_package_id,
            elastic_ip_id=plan.elastic_ip_id,
            bandwidth_limit_mbps=plan.bandwidth_limit_mbps,
            charge_type=plan.charge_type,
            root_login_password=plan.root_login_password,
            total_transfer_kb=plan.total_transfer_kb,
            project_id=plan.project_id,
            period_months=plan.period_months,
            cloud_init_data=plan.cloud_init_data,
            auto_renew=plan.auto_renew,
        )
        out = await self.client.create_virtual_machine(request)
        log.info("Created virtual machine %s (%s), waiting for status", out.id, plan.name)

        status = await self._wait_for_status(out.id, cancel)
        log.info("Virtual machine %s is %s", out.id, status.instance_state)

        return plan.model_copy(update={"id": out.id}).with_status(status)

    async def read(
        self, state: VirtualMachineModel, *, cancel: asyncio.Event | None = None
    ) -> VirtualMachineModel | None:
        """Refresh observed attributes.

        Returns:
            Updated state, or None if the instance no longer exists
        """
        vm_id = self._require_id(state)
        try:
            status = await self.client.get_virtual_machine_status(vm_id)
        except ApiError as e:
            if e.is_not_found:
                log.info("Virtual machine %s is gone", vm_id)
                return None
            raise
        return state.with_status(status)

    async def update(
        self,
        state: VirtualMachineModel,
        plan: VirtualMachineModel,
        *,
        cancel: asyncio.Event | None = None,
    ) -> VirtualMachineModel:
        """Apply an in-place bandwidth change, then refresh status.

        The adjust call is only issued when the desired bandwidth limit is set
        and differs from the stored one.
        """
        vm_id = self._require_id(state)

        if plan.bandwidth_limit_mbps is not None and (
            state.bandwidth_limit_mbps != plan.bandwidth_limit_mbps
        ):
            log.info(
                "Adjusting bandwidth of %s: %s -> %s Mbps",
                vm_id,
                state.bandwidth_limit_mbps,
                plan.bandwidth_limit_mbps,
            )
            await self.client.adjust_virtual_machine_bandwidth(
                vm_id, plan.bandwidth_limit_mbps
            )

        status = await self.client.get_virtual_machine_status(vm_id)
        return plan.model_copy(update={"id": vm_id}).with_status(status)

    async def delete(
        self, state: VirtualMachineModel, *, cancel: asyncio.Event | None = None
    ) -> None:
        """Delete the instance and wait until its status reads as not found."""
        vm_id = self._require_id(state)
        try:
            await self.client.delete_virtual_machine(vm_id)
        except ApiError as e:
            if e.is_not_found:
                log.info("Virtual machine %s already deleted", vm_id)
                return
            raise

        async def gone() -> bool:
            try:
                await self.client.get_virtual_machine_status(vm_id)
            except ApiError as e:
                if e.is_not_found:
                    return True
                raise
            log.debug("Virtual machine %s still present", vm_id)
            return False

        await wait_until(
            gone, self.wait.poll_interval, cancel=cancel, timeout=self.wait.timeout
        )
        log.info("Virtual machine %s deleted", vm_id)

    async def _wait_for_status(
        self, vm_id: str, cancel: asyncio.Event | None
    ) -> VirtualMachineStatus:
        # Freshly created instances may 404 until the service indexes them
        last: VirtualMachineStatus | None = None

        async def ready() -> bool:
            nonlocal last
            try:
                last = await self.client.get_virtual_machine_status(vm_id)
            except ApiError as e:
                if e.is_not_found:
                    log.debug("Virtual machine %s not visible yet", vm_id)
                    return False
                raise
            return True

        await wait_until(
            ready, self.wait.poll_interval, cancel=cancel, timeout=self.wait.timeout
        )
        assert last is not None
        return last


# ============================================================================
# Elastic IP
# ============================================================================


class ElasticIPModel(ResourceModel):
    """Elastic IP.

    The service has no read endpoint for EIPs, so the allocated address is
    trusted from the create response until the resource is replaced.
    """

    region: str = Field(description="Region, e.g. ap-guangzhou")
    bandwidth_limit_mbps: int | None = Field(default=None, description="Outbound cap in Mbps")
    address_name: str | None = Field(default=None, description="Human-readable name")
    shared_bandwidth_package_id: str | None = Field(default=None)
    address: str | None = Field(default=None, description="Allocated public IPv4")

    replace_fields: ClassVar[frozenset[str]] = frozenset(
        {"region", "bandwidth_limit_mbps", "address_name", "shared_bandwidth_package_id"}
    )


class ElasticIPReconciler(Reconciler[ElasticIPModel]):
    """Elastic IP lifecycle; everything but create and delete is local."""

    kind = ResourceKind.elastic_ip
    model = ElasticIPModel

    async def create(
        self, plan: ElasticIPModel, *, cancel: asyncio.Event | None = None
    ) -> ElasticIPModel:
        if plan.bandwidth_limit_mbps is None or plan.address_name is None:
            raise InvalidConfigurationError(
                "All input values must be known to create an elastic IP"
            )

        out = await self.client.create_elastic_ip(
            CreateElasticIPRequest(
                region=plan.region,
                bandwidth_limit_mbps=plan.bandwidth_limit_mbps,
                address_name=plan.address_name,
                shared_bandwidth_package_id=plan.shared_bandwidth_package_id,
            )
        )
        log.info("Created elastic IP %s (%s)", out.id, out.address or "no address")
        return plan.model_copy(update={"id": out.id, "address": out.address})

    async def read(
        self, state: ElasticIPModel, *, cancel: asyncio.Event | None = None
    ) -> ElasticIPModel | None:
        return state

    async def update(
        self,
        state: ElasticIPModel,
        plan: ElasticIPModel,
        *,
        cancel: asyncio.Event | None = None,
    ) -> ElasticIPModel:
        return plan.model_copy(update={"id": state.id, "address": state.address})

    async def delete(
        self, state: ElasticIPModel, *, cancel: asyncio.Event | None = None
    ) -> None:
        eip_id = self._require_id(state)
        try:
            await self.client.delete_elastic_ip(state.region, eip_id)
        except ApiError as e:
            if e.is_not_found:
                log.info("Elastic IP %s already released", eip_id)
                return
            raise
        log.info("Released elastic IP %s", eip_id)

    @staticmethod
    def import_state(identifier: str) -> ElasticIPModel:
        """Build state for an existing elastic IP.

        Args:
            identifier: ``<region>:<id>``, e.g. ``ap-guangzhou:eip-12345678``

        Returns:
            State carrying only region and identity

        Raises:
            InvalidConfigurationError: If the identifier is malformed
        """
        region, sep, eip_id = identifier.partition(":")
        if not sep or not region or not eip_id:
            raise InvalidConfigurationError(
                "Expected import identifier with format region:id "
                "(e.g. ap-guangzhou:eip-12345678)"
            )
        return ElasticIPModel(id=eip_id, region=region)


# ============================================================================
# Bandwidth Package Selection
# ============================================================================


class BandwidthPackageSelectionModel(ResourceModel):
    """Point-in-time choice of a shared bandwidth package.

    The selection endpoint returns whatever is best right now; keeping the
    choice in state keeps dependents stable until the resource is replaced.
    """

    region: str = Field(description="Region to select in")
    network_type: str = Field(default=DEFAULT_NETWORK_TYPE)
    bandwidth_package_id: str | None = None
    available_count: int | None = None

    replace_fields: ClassVar[frozenset[str]] = frozenset({"region", "network_type"})

    @field_validator("region", mode="before")
    @classmethod
    def _strip_region(cls, value: str) -> str:
        return value.strip() if isinstance(value, str) else value

    @field_validator("network_type", mode="before")
    @classmethod
    def _default_network_type(cls, value: str | None) -> str:
        return (value or "").strip() or DEFAULT_NETWORK_TYPE


class BandwidthPackageSelectionReconciler(Reconciler[BandwidthPackageSelectionModel]):
    """Snapshot resource: one remote query on create, nothing afterwards."""

    kind = ResourceKind.bandwidth_package_selection
    model = BandwidthPackageSelectionModel

    async def create(
        self,
        plan: BandwidthPackageSelectionModel,
        *,
        cancel: asyncio.Event | None = None,
    ) -> BandwidthPackageSelectionModel:
        region = plan.region
        if not region:
            raise InvalidConfigurationError("region must not be empty")
        network_type = plan.network_type

        out = await self.client.select_bandwidth_package(region, network_type)
        log.info(
            "Selected bandwidth package %s in %s/%s (%d available)",
            out.id,
            region,
            network_type,
            out.available_count,
        )
        return BandwidthPackageSelectionModel(
            id=out.id,
            region=region,
            network_type=network_type,
            bandwidth_package_id=out.id,
            available_count=out.available_count,
        )

    async def read(
        self,
        state: BandwidthPackageSelectionModel,
        *,
        cancel: asyncio.Event | None = None,
    ) -> BandwidthPackageSelectionModel | None:
        return state

    async def update(
        self,
        state: BandwidthPackageSelectionModel,
        plan: BandwidthPackageSelectionModel,
        *,
        cancel: asyncio.Event | None = None,
    ) -> BandwidthPackageSelectionModel:
        return plan.model_copy(
            update={
                "id": state.id,
                "bandwidth_package_id": state.bandwidth_package_id,
                "available_count": state.available_count,
            }
        )

    async def delete(
        self,
        state: BandwidthPackageSelectionModel,
        *,
        cancel: asyncio.Event | None = None,
    ) -> None:
        # Nothing to release remotely
        return None


# ============================================================================
# Selection
# ============================================================================

RECONCILERS: dict[ResourceKind, type[Reconciler]] = {
    ResourceKind.virtual_machine: VirtualMachineReconciler,
    ResourceKind.elastic_ip: ElasticIPReconciler,
    ResourceKind.bandwidth_package_selection: BandwidthPackageSelectionReconciler,
}


def reconciler_for(
    kind: ResourceKind, client: PenguinClient, wait: WaitConfig | None = None
) -> Reconciler:
    """Create the reconciler for a resource kind.

    Args:
        kind: Resource kind
        client: Open API client
        wait: Polling configuration

    Returns:
        Reconciler instance
    """
    return RECONCILERS[kind](client, wait)
