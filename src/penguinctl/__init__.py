"""Reconciliation of Penguin-managed cloud resources."""

from penguinctl.config import ApiConfig, ResourceKind, WaitConfig
from penguinctl.reconcilers import (
    BandwidthPackageSelectionModel,
    BandwidthPackageSelectionReconciler,
    ElasticIPModel,
    ElasticIPReconciler,
    InvalidConfigurationError,
    ReconcileError,
    Reconciler,
    VirtualMachineModel,
    VirtualMachineReconciler,
    reconciler_for,
)
from penguinctl.wait import WaitCancelledError, WaitTimeoutError, wait_until


__version__ = "0.1.0"

__all__ = [
    "ApiConfig",
    "ResourceKind",
    "WaitConfig",
    "BandwidthPackageSelectionModel",
    "BandwidthPackageSelectionReconciler",
    "ElasticIPModel",
    "ElasticIPReconciler",
    "InvalidConfigurationError",
    "ReconcileError",
    "Reconciler",
    "VirtualMachineModel",
    "VirtualMachineReconciler",
    "reconciler_for",
    "WaitCancelledError",
    "WaitTimeoutError",
    "wait_until",
]
