"""
Error taxonomy for the notification pipeline.

Only ValidationError and NotFound ever surface to callers as request
failures. EvaluationTimeout and DeliveryError are caught per recipient and
turned into recorded outcomes.
"""


class NotificationError(Exception):
    """Base exception for the notification pipeline."""

    def __init__(self, message: str, recoverable: bool = True):
        super().__init__(message)
        self.recoverable = recoverable


class ValidationError(NotificationError):
    """Malformed ingestion request; rejected synchronously, never queued."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message, recoverable=False)
        self.field = field


class NotFound(NotificationError):
    """A target referenced an identity that does not exist."""

    def __init__(self, message: str, identity: str | None = None):
        super().__init__(message, recoverable=False)
        self.identity = identity


class EvaluationTimeout(NotificationError):
    """The valuation capability timed out or failed on every attempt."""

    def __init__(self, message: str, attempts: int = 0):
        super().__init__(message, recoverable=True)
        self.attempts = attempts


class DeliveryError(NotificationError):
    """The outbound channel could not deliver to a recipient."""

    def __init__(self, message: str, error_class: str = "channel_error", recoverable: bool = True):
        super().__init__(message, recoverable=recoverable)
        self.error_class = error_class
