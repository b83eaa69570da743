"""In-memory fake control plane for testing.

Provides deterministic stand-ins for the collaborators the waiter and the
batch applier drive, so tests never sleep or touch a network:

- FakeClock: time only advances when the code under test sleeps
- ScriptedDescribe: replays a fixed sequence of payloads and errors
- RecordingApplier: records every chunk and injects errors per call
- ProviderCallError / make_http_error: errors shaped like real SDK errors

Usage:
    from cloud_mock import FakeClock, ScriptedDescribe

    clock = FakeClock()
    describe = ScriptedDescribe([{"LoadBalancerId": "lb-1", "LoadBalancerStatus": "active"}])
    waiter = ReconciliationWaiter(kind, describe, clock=clock)
"""

from .clock import FakeClock
from .control_plane import (
    ProviderCallError,
    RecordingApplier,
    ScriptedDescribe,
    make_http_error,
)

__all__ = [
    "FakeClock",
    "ProviderCallError",
    "RecordingApplier",
    "ScriptedDescribe",
    "make_http_error",
]
