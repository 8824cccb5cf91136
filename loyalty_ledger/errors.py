"""
Domain errors for the loyalty ledger.

Services raise these; the API layer renders them as
{"detail": message, "code": code} with the mapped HTTP status.
"""


class LedgerError(Exception):
    """Base class for every business-rule error."""

    status_code = 400

    def __init__(self, message: str, code: str = "LEDGER_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


class ValidationError(LedgerError):
    """Malformed or missing input."""

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        code = f"INVALID_{field.upper()}" if field else "VALIDATION_ERROR"
        super().__init__(message, code)


class NotFoundError(LedgerError):
    status_code = 404

    def __init__(self, resource: str, identifier=None):
        message = f"{resource} not found"
        if identifier:
            message = f"{resource} {identifier} not found"
        super().__init__(message, f"{resource.upper().replace(' ', '_')}_NOT_FOUND")


class InsufficientBalanceError(LedgerError):
    def __init__(self, current: int, required: int):
        self.current = current
        self.required = required
        super().__init__(
            f"Insufficient points. Current: {current}, Required: {required}",
            "INSUFFICIENT_BALANCE",
        )


class InsufficientPointsError(InsufficientBalanceError):
    def __init__(self, current: int, required: int):
        super().__init__(current, required)
        self.code = "INSUFFICIENT_POINTS"


class InvalidStateTransitionError(LedgerError):
    status_code = 409

    def __init__(self, resource: str, current: str, target: str, code: str = "INVALID_STATE_TRANSITION"):
        self.resource = resource
        self.current = current
        self.target = target
        super().__init__(f"Cannot move {resource} from '{current}' to '{target}'", code)


class AlreadyReviewedError(InvalidStateTransitionError):
    def __init__(self, current: str):
        super().__init__("claim", current, "reviewed", code="ALREADY_REVIEWED")
        self.message = f"Claim already reviewed (status: {current})"
        self.args = (self.message,)


class AlreadyFulfilledError(InvalidStateTransitionError):
    def __init__(self, code: str):
        super().__init__("redemption", "fulfilled", "fulfilled", code="ALREADY_FULFILLED")
        self.message = f"Redemption {code} already fulfilled"
        self.args = (self.message,)


class ExpiredError(InvalidStateTransitionError):
    status_code = 410

    def __init__(self, resource: str, identifier: str):
        super().__init__(resource, "expired", "active", code="EXPIRED")
        self.message = f"{resource.capitalize()} {identifier} has expired"
        self.args = (self.message,)


class RewardUnavailableError(LedgerError):
    def __init__(self, reason: str):
        super().__init__(f"Reward unavailable: {reason}", "REWARD_UNAVAILABLE")


class RedemptionLimitReachedError(LedgerError):
    def __init__(self, limit: int):
        self.limit = limit
        super().__init__(
            f"Customer has reached the maximum of {limit} redemptions for this reward",
            "REDEMPTION_LIMIT_REACHED",
        )


class ConflictError(LedgerError):
    status_code = 409

    def __init__(self, message: str):
        super().__init__(message, "CONFLICT")


class RateLimitError(LedgerError):
    status_code = 429

    def __init__(self, message: str):
        super().__init__(message, "RATE_LIMITED")


class NotificationDeliveryError(LedgerError):
    """Raised by gateways; always caught by the outbox dispatcher."""

    status_code = 502

    def __init__(self, message: str):
        super().__init__(message, "NOTIFICATION_FAILED")
