"""Chat-facing tools: local action directives applied to the scheduler."""

from goldagent.tools.local_actions import (
    ActionAck,
    ActionDispatcher,
    DispatchResult,
    dispatch_response,
    extract_local_action,
)

__all__ = [
    "ActionAck",
    "ActionDispatcher",
    "DispatchResult",
    "dispatch_response",
    "extract_local_action",
]
