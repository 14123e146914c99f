"""
Exception types for the commission engine.

Outcomes that are normal (no plan, empty chain, duplicate distribution,
non-positive rate) are results, not exceptions. These types cover the
failures surfaced to administrative and query callers.
"""


class IBEngineError(Exception):
    """Base class for commission engine errors."""
    pass


class PlanValidationError(IBEngineError, ValueError):
    """Raised when an administrative plan update is malformed."""
    pass


class UserNotFoundError(IBEngineError, LookupError):
    """Raised when a referenced user does not exist."""

    def __init__(self, user_id: int) -> None:
        super().__init__(f"User {user_id} not found")
        self.user_id = user_id


class InvalidReferralCodeError(IBEngineError, ValueError):
    """Raised when a referral code does not belong to any user."""
    pass


class ReferralLoopError(IBEngineError, ValueError):
    """Raised when attaching a referrer would create a cycle."""
    pass


class ReferrerAlreadySetError(IBEngineError, ValueError):
    """Raised when a user already has a referrer (the edge is permanent)."""
    pass


class InsufficientBalanceError(IBEngineError):
    """Raised when a wallet debit would break the non-negative invariant."""
    pass
