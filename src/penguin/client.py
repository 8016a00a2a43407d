"""Penguin provisioning API async client."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Collection, Mapping
from http import HTTPStatus
from typing import Any, TypeVar
from urllib.parse import quote, urlsplit

import aiohttp
from pydantic import BaseModel, TypeAdapter, ValidationError
from pydantic_core import PydanticSerializationError

from penguin.models import (
    AdjustBandwidthRequest,
    ApiErrorBody,
    BandwidthPackageSelection,
    CreateElasticIPRequest,
    CreateElasticIPResponse,
    CreateVirtualMachineRequest,
    CreateVirtualMachineResponse,
    InternalHealthResponse,
    IssueJWTRequest,
    IssueJWTResponse,
    ReinstallVirtualMachineRequest,
    RenewVirtualMachineRequest,
    RenewVirtualMachineResponse,
    ResetVirtualMachinePasswordRequest,
    ResetVirtualMachinePasswordResponse,
    VirtualMachineMetrics,
    VirtualMachineStatus,
    VirtualMachineVNC,
    Zone,
    ZonesResponse,
)


T = TypeVar("T")

log = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60.0
DEFAULT_USER_AGENT = "penguinctl"
MAX_RESPONSE_BYTES = 2 << 20  # 2 MiB

# Type adapters for error and response bodies
api_error_body_adapter = TypeAdapter(ApiErrorBody)
internal_health_adapter = TypeAdapter(InternalHealthResponse)
zones_adapter = TypeAdapter(ZonesResponse)
bandwidth_package_adapter = TypeAdapter(BandwidthPackageSelection)
create_vm_response_adapter = TypeAdapter(CreateVirtualMachineResponse)
vm_status_adapter = TypeAdapter(VirtualMachineStatus)
vm_metrics_adapter = TypeAdapter(VirtualMachineMetrics)
vm_vnc_adapter = TypeAdapter(VirtualMachineVNC)
renew_vm_response_adapter = TypeAdapter(RenewVirtualMachineResponse)
reset_password_response_adapter = TypeAdapter(ResetVirtualMachinePasswordResponse)
create_eip_response_adapter = TypeAdapter(CreateElasticIPResponse)
issue_jwt_response_adapter = TypeAdapter(IssueJWTResponse)


class PenguinError(Exception):
    """Base class for all client errors."""


class ApiError(PenguinError):
    """Non-success response from the Penguin API.

    Attributes:
        status: HTTP status code (from the error body when it carries one)
        message: Error message, never empty
        method: HTTP method of the failed call, if known
        path: API endpoint path of the failed call, if known
    """

    def __init__(
        self,
        status: int,
        message: str,
        *,
        method: str | None = None,
        path: str | None = None,
    ):
        self.status = status
        self.message = message
        self.method = method
        self.path = path

        if message:
            text = f"penguin API error {status}: {message}"
        else:
            text = f"penguin API error {status}"
        super().__init__(text)

    @property
    def is_not_found(self) -> bool:
        return self.status == HTTPStatus.NOT_FOUND


class TransportError(PenguinError):
    """Request failed before a complete response was received."""


class EncodeError(PenguinError):
    """Request body could not be serialized."""


class DecodeError(PenguinError):
    """Success response body could not be decoded."""


def is_not_found(err: BaseException) -> bool:
    """Check whether an exception is an API error with status 404."""
    return isinstance(err, ApiError) and err.is_not_found


def build_auth_header(auth_token: str | None, jwt: str | None) -> str | None:
    """Compose the Authorization header value.

    Both credentials are accepted at once by the service, which parses two
    comma-separated bearer schemes out of a single header.

    Args:
        auth_token: Legacy bearer token
        jwt: JWT bearer token

    Returns:
        Header value, or None when neither credential is set
    """
    auth_token = (auth_token or "").strip()
    jwt = (jwt or "").strip()
    if auth_token and jwt:
        return f"Bearer {auth_token}, Bearer {jwt}"
    if auth_token:
        return f"Bearer {auth_token}"
    if jwt:
        return f"Bearer {jwt}"
    return None


def _status_text(status: int) -> str:
    try:
        return HTTPStatus(status).phrase
    except ValueError:
        return f"HTTP {status}"


def classify_error(
    status: int,
    body: bytes,
    *,
    method: str | None = None,
    path: str | None = None,
) -> ApiError:
    """Turn a non-success response into an ApiError.

    A structured ``{"status", "message"}`` body wins when its message is
    non-empty; otherwise the trimmed raw body is used, and failing that the
    canonical reason phrase of the HTTP status.

    Args:
        status: HTTP status code of the response
        body: Raw response body
        method: HTTP method, for error context
        path: API endpoint path, for error context

    Returns:
        ApiError with a non-zero status and non-empty message
    """
    if body:
        try:
            parsed = api_error_body_adapter.validate_json(body)
        except ValidationError:
            parsed = None
        if parsed is not None and parsed.message:
            return ApiError(
                parsed.status or status,
                parsed.message,
                method=method,
                path=path,
            )

    message = body.decode("utf-8", errors="replace").strip()
    if not message:
        message = _status_text(status)
    return ApiError(status, message, method=method, path=path)


def _escape(segment: str) -> str:
    return quote(segment, safe="")


async def _read_limited(resp: aiohttp.ClientResponse, limit: int) -> bytes:
    buf = bytearray()
    while len(buf) < limit:
        chunk = await resp.content.read(limit - len(buf))
        if not chunk:
            break
        buf.extend(chunk)
    return bytes(buf)


class PenguinClient:
    """Async Penguin API client.

    Configuration (endpoint, credentials, user agent) is fixed at
    construction, so one instance can serve many concurrent reconciliation
    flows.

    Example:
        async with PenguinClient("http://127.0.0.1:8080", auth_token="t") as client:
            for zone in await client.list_zones():
                print(zone.zone, zone.state)
    """

    def __init__(
        self,
        endpoint: str,
        auth_token: str | None = None,
        jwt: str | None = None,
        *,
        user_agent: str | None = None,
        timeout: aiohttp.ClientTimeout | None = None,
    ) -> None:
        """Initialize client.

        Args:
            endpoint: Service base URL including scheme and host
            auth_token: Legacy bearer token
            jwt: JWT bearer token
            user_agent: User-Agent header value
            timeout: Optional custom timeout configuration

        Raises:
            ValueError: If the endpoint is blank or lacks scheme or host
        """
        endpoint = (endpoint or "").strip()
        if not endpoint:
            raise ValueError("endpoint is required")
        parts = urlsplit(endpoint)
        if not parts.scheme or not parts.netloc:
            raise ValueError(f"endpoint must include scheme and host, got {endpoint!r}")

        self.base_url = f"{parts.scheme}://{parts.netloc}{parts.path.rstrip('/')}"
        self.auth_header = build_auth_header(auth_token, jwt)
        self.user_agent = (user_agent or "").strip() or DEFAULT_USER_AGENT
        self.timeout = timeout or aiohttp.ClientTimeout(total=DEFAULT_TIMEOUT)
        self._session: aiohttp.ClientSession | None = None

    async def __aenter__(self) -> PenguinClient:
        """Enter async context."""
        self._session = aiohttp.ClientSession(timeout=self.timeout)
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        """Exit async context."""
        if self._session:
            await self._session.close()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        query: Mapping[str, str] | None = None,
        body: BaseModel | None = None,
        response_adapter: TypeAdapter[T] | None = None,
        ok_statuses: Collection[int] = (HTTPStatus.OK,),
    ) -> T | None:
        """Make an API request.

        Args:
            method: HTTP method
            path: API endpoint path (already escaped)
            query: Optional query parameters
            body: Optional Pydantic model for request body
            response_adapter: TypeAdapter for the success body, None to discard it
            ok_statuses: Statuses accepted as success

        Returns:
            Parsed response data, or None when no adapter is given

        Raises:
            ApiError: If the response status is not accepted
            TransportError: If the request fails before a response arrives
            EncodeError: If the request body cannot be serialized
            DecodeError: If the success body cannot be parsed
        """
        assert self._session is not None, "Client must be used as async context manager"

        url = f"{self.base_url}{path}"
        headers = {
            "Accept": "application/json",
            "User-Agent": self.user_agent,
        }
        if self.auth_header:
            headers["Authorization"] = self.auth_header

        payload = None
        if body is not None:
            try:
                payload = json.dumps(
                    body.model_dump(exclude_none=True, by_alias=True, mode="json")
                ).encode("utf-8")
            except (PydanticSerializationError, TypeError, ValueError) as e:
                raise EncodeError(f"marshal request: {e}") from e
            headers["Content-Type"] = "application/json"

        log.debug("%s %s", method, path)
        try:
            async with self._session.request(
                method,
                url,
                params=dict(query) if query else None,
                headers=headers,
                data=payload,
                skip_auto_headers=("Content-Type",) if payload is None else None,
            ) as resp:
                status = resp.status
                data = await _read_limited(resp, MAX_RESPONSE_BYTES)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransportError(f"request failed: {method} {path}: {e}") from e

        if status not in ok_statuses:
            raise classify_error(status, data, method=method, path=path)

        if response_adapter is None:
            return None
        try:
            if not data:
                return response_adapter.validate_python({})
            return response_adapter.validate_json(data)
        except ValidationError as e:
            raise DecodeError(f"decode response: {method} {path}: {e}") from e

    # Health

    async def health(self) -> None:
        """Check service liveness."""
        await self._request("GET", "/health")

    async def internal_health(self) -> InternalHealthResponse:
        """Get service and database health.

        Returns:
            Health report
        """
        return await self._request(
            "GET", "/_internal/health", response_adapter=internal_health_adapter
        )

    # Zones and bandwidth packages

    async def list_zones(self) -> list[Zone]:
        """List availability zones.

        Returns:
            List of Zone objects
        """
        out = await self._request(
            "GET", "/tencentcloud/zones", response_adapter=zones_adapter
        )
        return out.zones

    async def select_bandwidth_package(
        self, region: str, network_type: str | None = None
    ) -> BandwidthPackageSelection:
        """Select the currently best shared bandwidth package.

        Args:
            region: Region, e.g. ``ap-guangzhou``
            network_type: Network type; omitted from the query when blank

        Returns:
            Selected package ID and its remaining capacity
        """
        query = {"region": region}
        if network_type:
            query["networkType"] = network_type
        return await self._request(
            "GET",
            "/tencentcloud/bandwidth-packages",
            query=query,
            response_adapter=bandwidth_package_adapter,
        )

    # Virtual machines

    async def create_virtual_machine(
        self, request: CreateVirtualMachineRequest
    ) -> CreateVirtualMachineResponse:
        """Create a virtual machine.

        Args:
            request: Create request

        Returns:
            Response carrying the new identity
        """
        return await self._request(
            "POST",
            "/tencentcloud/vms",
            body=request,
            response_adapter=create_vm_response_adapter,
            ok_statuses=(HTTPStatus.CREATED,),
        )

    async def delete_virtual_machine(self, vm_id: str) -> None:
        """Request deletion of a virtual machine (accepted asynchronously)."""
        await self._request(
            "DELETE",
            f"/tencentcloud/vms/{_escape(vm_id)}",
            ok_statuses=(HTTPStatus.ACCEPTED,),
        )

    async def get_virtual_machine_status(self, vm_id: str) -> VirtualMachineStatus:
        """Get virtual machine status.

        Args:
            vm_id: Virtual machine ID

        Returns:
            Observed status
        """
        return await self._request(
            "GET",
            f"/tencentcloud/vms/{_escape(vm_id)}/status",
            response_adapter=vm_status_adapter,
        )

    async def get_virtual_machine_metrics(
        self, vm_id: str, metrics_range: str | None = None
    ) -> VirtualMachineMetrics:
        """Get aggregated virtual machine metrics.

        Args:
            vm_id: Virtual machine ID
            metrics_range: Optional range, e.g. ``1h``

        Returns:
            Metrics summary
        """
        query = {"range": metrics_range} if metrics_range else None
        return await self._request(
            "GET",
            f"/tencentcloud/vms/{_escape(vm_id)}/metrics",
            query=query,
            response_adapter=vm_metrics_adapter,
        )

    async def get_virtual_machine_vnc(self, vm_id: str) -> VirtualMachineVNC:
        """Get the console websocket URL of a virtual machine."""
        return await self._request(
            "GET",
            f"/tencentcloud/vms/{_escape(vm_id)}/vnc",
            response_adapter=vm_vnc_adapter,
        )

    async def adjust_virtual_machine_bandwidth(
        self, vm_id: str, bandwidth_limit_mbps: int
    ) -> None:
        """Change the outbound bandwidth limit of a virtual machine.

        Args:
            vm_id: Virtual machine ID
            bandwidth_limit_mbps: New limit in Mbps
        """
        await self._request(
            "POST",
            f"/tencentcloud/vms/{_escape(vm_id)}/bandwidth",
            body=AdjustBandwidthRequest(bandwidth_limit_mbps=bandwidth_limit_mbps),
            ok_statuses=(HTTPStatus.ACCEPTED,),
        )

    async def renew_virtual_machine(
        self, vm_id: str, request: RenewVirtualMachineRequest
    ) -> RenewVirtualMachineResponse:
        """Renew a prepaid virtual machine."""
        return await self._request(
            "POST",
            f"/tencentcloud/vms/{_escape(vm_id)}/renew",
            body=request,
            response_adapter=renew_vm_response_adapter,
        )

    async def reinstall_virtual_machine(
        self, vm_id: str, request: ReinstallVirtualMachineRequest
    ) -> None:
        """Reinstall a virtual machine from an image."""
        await self._request(
            "POST",
            f"/tencentcloud/vms/{_escape(vm_id)}/reinstall",
            body=request,
            ok_statuses=(HTTPStatus.ACCEPTED,),
        )

    async def reset_virtual_machine_password(
        self, vm_id: str, request: ResetVirtualMachinePasswordRequest
    ) -> ResetVirtualMachinePasswordResponse:
        """Reset the root password of a virtual machine.

        Returns:
            Response carrying the generated password
        """
        return await self._request(
            "POST",
            f"/tencentcloud/vms/{_escape(vm_id)}/reset-password",
            body=request,
            response_adapter=reset_password_response_adapter,
        )

    async def reset_virtual_machine_transfer(self, vm_id: str) -> None:
        """Reset the transfer usage counter of a virtual machine."""
        await self._request(
            "POST",
            f"/tencentcloud/vms/{_escape(vm_id)}/reset-transfer",
            ok_statuses=(HTTPStatus.NO_CONTENT,),
        )

    # Elastic IPs

    async def create_elastic_ip(
        self, request: CreateElasticIPRequest
    ) -> CreateElasticIPResponse:
        """Allocate an elastic IP.

        Args:
            request: Create request

        Returns:
            Response with the EIP identity and allocated address
        """
        return await self._request(
            "POST",
            "/tencentcloud/eips",
            body=request,
            response_adapter=create_eip_response_adapter,
            ok_statuses=(HTTPStatus.CREATED,),
        )

    async def delete_elastic_ip(self, region: str, eip_id: str) -> None:
        """Release an elastic IP.

        Args:
            region: Region the EIP lives in
            eip_id: Elastic IP ID
        """
        await self._request(
            "DELETE",
            f"/tencentcloud/eips/{_escape(eip_id)}",
            query={"region": region},
            ok_statuses=(HTTPStatus.NO_CONTENT,),
        )

    # Auth

    async def issue_jwt(self, request: IssueJWTRequest) -> IssueJWTResponse:
        """Issue a JWT carrying provisioning limits.

        Args:
            request: Token limits and lifetime

        Returns:
            Token and its expiry
        """
        return await self._request(
            "POST",
            "/auth/jwt",
            body=request,
            response_adapter=issue_jwt_response_adapter,
            ok_statuses=(HTTPStatus.CREATED,),
        )
