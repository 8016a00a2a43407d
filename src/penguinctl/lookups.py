"""Lookups that shape client responses for display.

Unlike the reconcilers these hold no state: every call queries the service
and surfaces errors, including 404s, unchanged.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from penguin import IssueJWTRequest, PenguinClient
from penguinctl.reconcilers import InvalidConfigurationError


class BandwidthPackageLookup(BaseModel):
    id: str
    region: str
    network_type: str
    bandwidth_package_id: str
    available_count: int


class IssuedToken(BaseModel):
    token: str = Field(repr=False)
    expires_at: str


async def lookup_bandwidth_package(
    client: PenguinClient, region: str, network_type: str = ""
) -> BandwidthPackageLookup:
    """Query the currently best shared bandwidth package.

    Args:
        client: Open API client
        region: Region, must not be blank
        network_type: Network type; left to the service default when blank

    Returns:
        Selected package, identified by ``<region>:<network_type>``

    Raises:
        InvalidConfigurationError: If region is blank
    """
    region = region.strip()
    network_type = network_type.strip()
    if not region:
        raise InvalidConfigurationError("region must not be empty")

    out = await client.select_bandwidth_package(region, network_type)
    return BandwidthPackageLookup(
        id=f"{region}:{network_type}",
        region=region,
        network_type=network_type,
        bandwidth_package_id=out.id,
        available_count=out.available_count,
    )


async def issue_jwt(
    client: PenguinClient,
    ttl_minutes: int,
    *,
    max_transfer_kb: int | None = None,
    allowed_instance_types: list[str] | None = None,
    allowed_zones: list[str] | None = None,
    max_bandwidth_mbps: int | None = None,
    project_id: int | None = None,
) -> IssuedToken:
    """Issue a JWT limiting what its bearer may provision.

    Unset limits are omitted from the request; empty lists count as unset.

    Returns:
        Token and expiry timestamp
    """
    out = await client.issue_jwt(
        IssueJWTRequest(
            ttl_minutes=ttl_minutes,
            max_transfer_kb=max_transfer_kb,
            allowed_instance_types=allowed_instance_types or None,
            allowed_zones=allowed_zones or None,
            max_bandwidth_mbps=max_bandwidth_mbps,
            project_id=project_id,
        )
    )
    return IssuedToken(token=out.token, expires_at=out.expires_at)
