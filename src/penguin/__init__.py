"""Penguin provisioning API client library."""

from penguin.client import (
    ApiError,
    DecodeError,
    EncodeError,
    PenguinClient,
    PenguinError,
    TransportError,
    build_auth_header,
    classify_error,
    is_not_found,
)
from penguin.models import (
    BandwidthPackageSelection,
    CreateElasticIPRequest,
    CreateElasticIPResponse,
    CreateVirtualMachineRequest,
    CreateVirtualMachineResponse,
    InternalHealthResponse,
    IssueJWTRequest,
    IssueJWTResponse,
    VirtualMachineMetrics,
    VirtualMachineStatus,
    VirtualMachineVNC,
    Zone,
)


__version__ = "0.1.0"

__all__ = [
    "ApiError",
    "DecodeError",
    "EncodeError",
    "PenguinClient",
    "PenguinError",
    "TransportError",
    "build_auth_header",
    "classify_error",
    "is_not_found",
    "BandwidthPackageSelection",
    "CreateElasticIPRequest",
    "CreateElasticIPResponse",
    "CreateVirtualMachineRequest",
    "CreateVirtualMachineResponse",
    "InternalHealthResponse",
    "IssueJWTRequest",
    "IssueJWTResponse",
    "VirtualMachineMetrics",
    "VirtualMachineStatus",
    "VirtualMachineVNC",
    "Zone",
]
