"""Lifecycle coordinator."""

from gateway.managers.lifecycle.lifecycle import (
    CreateEndpointResult,
    LifecycleCoordinator,
    StepWarning,
)

__all__ = ["CreateEndpointResult", "LifecycleCoordinator", "StepWarning"]
