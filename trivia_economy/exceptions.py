"""Errors raised by the economy services.

Routers translate these into HTTP responses (see routers/errors.py).
A replayed idempotency key is never an error: it shows up as
CreditResult.applied == False.
"""


class EconomyError(Exception):
    pass


class ValidationError(EconomyError, ValueError):
    code = "VALIDATION_ERROR"

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        if code is not None:
            self.code = code


class InvalidIdempotencyKeyError(ValidationError):
    code = "INVALID_IDEMPOTENCY_KEY"


class InsufficientBalanceError(ValidationError):
    """The combined delta would drive coins or lives below zero."""

    code = "NOT_ENOUGH_GOLD"


class WalletNotFoundError(EconomyError, LookupError):
    code = "WALLET_NOT_FOUND"


class BoosterStateError(EconomyError):
    """Booster state transition not allowed.

    code is one of NO_PENDING_PREMIUM, PENDING_PREMIUM_EXISTS,
    NO_PENDING_TOKEN, SPEED_ALREADY_ACTIVE, UNKNOWN_BOOSTER.
    """

    def __init__(self, code: str, message: str | None = None):
        super().__init__(message or code)
        self.code = code


class TransientInfraError(EconomyError, RuntimeError):
    """Datastore unreachable or similar. Safe to retry with the same key."""

    code = "TEMPORARILY_UNAVAILABLE"


class RateLimitExceeded(EconomyError):
    code = "RATE_LIMIT_EXCEEDED"
