class BillingError(Exception):
    """Base class for billing failures surfaced to callers."""


class BillingConfigurationError(BillingError):
    """Stripe integration is not configured. Fatal, not retryable."""

    def __init__(self, message: str = "Stripe is not configured") -> None:
        super().__init__(message)


class NotFoundError(BillingError):
    pass


class RateLimitExceededError(BillingError):
    def __init__(self, message: str = "Rate limit exceeded. Please try again later.") -> None:
        super().__init__(message)


class InvalidSignatureError(BillingError):
    def __init__(self, message: str = "Invalid signature.") -> None:
        super().__init__(message)
