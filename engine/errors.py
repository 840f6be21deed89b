"""
Error taxonomy for the scoring and live-commentary paths.

Synchronous scoring errors carry the HTTP status and error code the API
answers with. The two degraded-service errors never leave the background
pipeline or the broadcast hub.
"""


class ScoringError(Exception):
    """Base class for errors raised while handling a scoring action."""

    status_code = 500
    error_code = "SCORING_ERROR"

    def __init__(self, message, error_code=None):
        super().__init__(message)
        self.message = message
        if error_code:
            self.error_code = error_code

    def to_dict(self):
        return {"success": False, "message": self.message, "errorCode": self.error_code}


class ValidationError(ScoringError):
    """A required action field is missing or malformed. Nothing was mutated."""

    status_code = 400
    error_code = "VALIDATION_ERROR"


class NotFoundOrForbidden(ScoringError):
    """Record is absent or owned by someone else; both are reported the same way."""

    status_code = 404
    error_code = "NOT_FOUND"


class ScoringStateError(ScoringError):
    """The action is not legal in the match's current state."""

    status_code = 409
    error_code = "INVALID_STATE"


class InvariantViolation(ScoringError):
    """An innings record is missing or corrupt. Not retried."""

    status_code = 500
    error_code = "INVARIANT_VIOLATION"


class ExternalServiceDegraded(Exception):
    """Raised by the generative-text and speech adapters when a call fails."""

    def __init__(self, service, message):
        super().__init__(f"{service}: {message}")
        self.service = service


class BroadcastDeliveryFailure(Exception):
    """A subscriber's channel is dead. Only ever seen inside the broadcast hub."""
    pass
