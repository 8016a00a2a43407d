"""Penguin API wire models.

Field names follow the service's camelCase JSON; Python attributes are
snake_case and map through explicit aliases.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class WireModel(BaseModel):
    """Base for all request and response bodies."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


# ============================================================================
# Errors
# ============================================================================


class ApiErrorBody(WireModel):
    """Structured error body returned by the service."""

    status: int = 0
    message: str = ""


# ============================================================================
# Health
# ============================================================================


class InternalHealthResponse(WireModel):
    status: str = ""
    database: str = ""


# ============================================================================
# Zones and bandwidth packages
# ============================================================================


class Zone(WireModel):
    region: str = ""
    region_name: str = Field(default="", alias="regionName")
    zone: str = ""
    zone_name: str = Field(default="", alias="zoneName")
    zone_id: str | None = Field(default=None, alias="zoneId")
    state: str = ""


class ZonesResponse(WireModel):
    zones: list[Zone] = Field(default_factory=list)


class BandwidthPackageSelection(WireModel):
    """Currently best schedulable shared bandwidth package in a region."""

    id: str = ""
    available_count: int = Field(default=0, alias="availableCount")


# ============================================================================
# Virtual machines
# ============================================================================


class CreateVirtualMachineRequest(WireModel):
    name: str
    zone: str
    instance_type: str = Field(alias="instanceType")
    security_group: str = Field(alias="securityGroup")
    system_image: str = Field(alias="systemImage")
    vpc_id: str = Field(alias="vpcId")
    subnet_id: str = Field(alias="subnetId")
    private_ip_address: str | None = Field(default=None, alias="privateIpAddress")
    system_disk_size_gib: int = Field(alias="systemDiskSize")
    shared_bandwidth_package_id: str | None = Field(
        default=None, alias="sharedBandwidthPackageId"
    )
    elastic_ip_id: str | None = Field(default=None, alias="elasticIpId")
    bandwidth_limit_mbps: int | None = Field(default=None, alias="bandwidthLimit")
    charge_type: str | None = Field(default=None, alias="chargeType")
    root_login_password: str | None = Field(
        default=None, alias="rootLoginPassword", repr=False
    )
    total_transfer_kb: int = Field(alias="totalTransfer")
    project_id: int | None = Field(default=None, alias="projectId")
    period_months: int | None = Field(default=None, alias="period")
    cloud_init_data: str | None = Field(
        default=None, alias="cloudInitData", repr=False
    )
    auto_renew: bool | None = Field(default=None, alias="autoRenew")


class CreateVirtualMachineResponse(WireModel):
    id: str = ""


class VirtualMachineStatus(WireModel):
    """Observed state of a virtual machine."""

    id: str = ""
    zone: str = ""
    instance_id: str = Field(default="", alias="instanceId")
    instance_type: str = Field(default="", alias="instanceType")
    # SuspendOverUsage when traffic suspension is active
    instance_state: str = Field(default="", alias="instanceState")
    restrict_state: str | None = Field(default=None, alias="restrictState")
    stop_charging_mode: str | None = Field(default=None, alias="stopChargingMode")
    renew_flag: str | None = Field(default=None, alias="renewFlag")
    cpu: int = 0
    memory_gib: int = Field(default=0, alias="memoryGiB")
    system_disk_size_gib: int = Field(default=0, alias="systemDiskSizeGiB")
    private_ips: list[str] = Field(default_factory=list, alias="privateIps")
    public_ips: list[str] = Field(default_factory=list, alias="publicIps")
    image_id: str | None = Field(default=None, alias="imageId")
    os_name: str | None = Field(default=None, alias="osName")
    created_at: str | None = Field(default=None, alias="createdAt")
    expired_at: str | None = Field(default=None, alias="expiredAt")
    total_transfer_kb: int = Field(default=0, alias="totalTransfer")
    used_transfer_kb: int = Field(default=0, alias="usedTransfer")
    tx_transfer_kb: int | None = Field(default=None, alias="txTransfer")
    rx_transfer_kb: int | None = Field(default=None, alias="rxTransfer")
    remaining_transfer_kb: int | None = Field(default=None, alias="remainingTransfer")
    password: str | None = Field(default=None, repr=False)
    default_login_user: str | None = Field(default=None, alias="defaultLoginUser")


class VirtualMachineMetrics(WireModel):
    range: str = ""
    cpu_average_percent: float = Field(default=0.0, alias="cpuAveragePercent")
    memory_average_percent: float = Field(default=0.0, alias="memoryAveragePercent")
    network_out_kb: int = Field(default=0, alias="networkOutKB")
    network_in_kb: int = Field(default=0, alias="networkInKB")
    start: str = ""
    end: str = ""


class VirtualMachineVNC(WireModel):
    url: str = ""


class AdjustBandwidthRequest(WireModel):
    bandwidth_limit_mbps: int = Field(alias="bandwidthLimit")


class RenewVirtualMachineRequest(WireModel):
    period_months: int | None = Field(default=None, alias="period")
    auto_renew: bool | None = Field(default=None, alias="autoRenew")


class RenewVirtualMachineResponse(WireModel):
    expired_at: str | None = Field(default=None, alias="expiredAt")


class ReinstallVirtualMachineRequest(WireModel):
    image_id: str = Field(alias="imageId")
    cloud_init_data: str | None = Field(
        default=None, alias="cloudInitData", repr=False
    )


class ResetVirtualMachinePasswordRequest(WireModel):
    force_stop: bool | None = Field(default=None, alias="forceStop")


class ResetVirtualMachinePasswordResponse(WireModel):
    password: str = Field(default="", repr=False)


# ============================================================================
# Elastic IPs
# ============================================================================


class CreateElasticIPRequest(WireModel):
    region: str
    # Omit to let the service pick a schedulable package in the region
    shared_bandwidth_package_id: str | None = Field(
        default=None, alias="sharedBandwidthPackageId"
    )
    bandwidth_limit_mbps: int = Field(alias="bandwidthLimit")
    address_name: str = Field(alias="addressName")


class CreateElasticIPResponse(WireModel):
    id: str = ""
    address: str | None = None


# ============================================================================
# Auth
# ============================================================================


class IssueJWTRequest(WireModel):
    max_transfer_kb: int | None = Field(default=None, alias="maxTransferKB")
    allowed_instance_types: list[str] | None = Field(
        default=None, alias="allowedInstanceTypes"
    )
    allowed_zones: list[str] | None = Field(default=None, alias="allowedZones")
    max_bandwidth_mbps: int | None = Field(default=None, alias="maxBandwidthMbps")
    project_id: int | None = Field(default=None, alias="projectId")
    ttl_minutes: int = Field(alias="ttlMinutes")


class IssueJWTResponse(WireModel):
    token: str = Field(default="", repr=False)
    expires_at: str = Field(default="", alias="expiresAt")
