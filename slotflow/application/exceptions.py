class SlotflowError(Exception):
    """Base class for errors raised by the booking core."""


class ConfigurationError(SlotflowError):
    """Raised when the availability rule or a required calendar id is missing or malformed."""


class NotFound(SlotflowError):
    """Raised by stores when a requested record does not exist."""


class ExternalServiceError(SlotflowError):
    """Raised when a calendar, store or messaging backend is unreachable. Retryable."""


class InvalidFlowToken(SlotflowError):
    """Raised when a flow token fails signature, expiry or state verification."""


class BusinessRuleViolation(SlotflowError):
    """Raised when a request is well-formed but not allowed (slot taken, invite used)."""

    def __init__(self, message: str, code: str = "business_rule") -> None:
        super().__init__(message)
        self.code = code


class ConsistencyError(SlotflowError):
    """Raised when a booking record exists but its calendar event could not be written."""

    def __init__(self, message: str, session_id: str) -> None:
        super().__init__(message)
        self.session_id = session_id
