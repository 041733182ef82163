"""
Error taxonomy for the settlement core.

Only GroupLifecycle transitions and the remote client raise. The pure
calculators never do for malformed-but-present data.
"""


class EngineError(Exception):
    """Base class for every error raised by the core."""

    def __init__(self, message: str, **context):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict:
        return {"error": self.message, **self.context}


class Unauthorized(EngineError):
    """Remote 401: the session is no longer valid and must be cleared."""


class InvalidTransition(EngineError):
    """A lifecycle guard was violated."""

    def __init__(self, group_id, event: str, status: str, reason: str | None = None):
        message = f"Cannot {event} group {group_id} in status {status}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message, group_id=group_id, event=event, status=status)
        self.group_id = group_id
        self.event = event
        self.status = status
        self.reason = reason


class ValidationError(EngineError, ValueError):
    """Malformed input to a mutation, or a 4xx the server rejected."""


class TransientNetworkError(EngineError):
    """Connectivity problem or timeout. The caller decides whether to retry."""
