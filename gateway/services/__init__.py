"""Gateway services."""

from gateway.services.activity import ActivityRecorder
from gateway.services.api_key import ApiKeyService
from gateway.services.probe import ProbeResult, ProbeService

__all__ = ["ActivityRecorder", "ApiKeyService", "ProbeResult", "ProbeService"]
