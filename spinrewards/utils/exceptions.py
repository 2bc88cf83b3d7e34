"""
Custom exceptions for loyalty business logic.

Each exception carries a machine-readable code and the HTTP status the
routing layer answers with. Business-rule failures also carry the numbers
the caller needs to explain the rejection (see ``details``).
"""


class LoyaltyError(Exception):
    """Base exception for all loyalty business logic errors."""

    status_code = 400

    def __init__(self, message: str, code: str = "LOYALTY_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)

    @property
    def details(self) -> dict:
        return {}


class NotFoundError(LoyaltyError):
    """Resource not found."""

    status_code = 404

    def __init__(self, resource: str, identifier=None):
        message = f"{resource} not found"
        if identifier:
            message = f"{resource} with ID {identifier} not found"
        super().__init__(message, f"{resource.upper()}_NOT_FOUND")


class CustomerNotFoundError(NotFoundError):
    """Customer not found."""

    def __init__(self, identifier=None):
        super().__init__("Customer", identifier)


class RewardNotFoundError(NotFoundError):
    """Spin reward not found in the shop's catalog."""

    def __init__(self, identifier=None):
        super().__init__("Reward", identifier)


class ValidationError(LoyaltyError):
    """Invalid input data."""

    def __init__(self, message: str, field: str = None):
        self.field = field
        code = f"INVALID_{field.upper()}" if field else "VALIDATION_ERROR"
        super().__init__(message, code)


class InvalidAmountError(ValidationError):
    """Points amount below the minimum of one."""

    def __init__(self, message: str = "Must redeem at least 1 point"):
        super().__init__(message, "amount")


class InsufficientBalanceError(LoyaltyError):
    """Not enough points for the operation."""

    def __init__(self, available: int, requested: int):
        self.available = available
        self.requested = requested
        message = f"Insufficient points balance. Available: {available}, Requested: {requested}"
        super().__init__(message, "INSUFFICIENT_BALANCE")

    @property
    def details(self) -> dict:
        return {'available': self.available, 'requested': self.requested}


class NegativeResultError(LoyaltyError):
    """Adjustment would leave a negative balance."""

    def __init__(self, current_balance: int, requested_change: int):
        self.current_balance = current_balance
        self.requested_change = requested_change
        message = "Adjustment would result in negative balance"
        super().__init__(message, "NEGATIVE_RESULT")

    @property
    def details(self) -> dict:
        return {
            'current_balance': self.current_balance,
            'requested_change': self.requested_change,
        }


class NotEligibleError(LoyaltyError):
    """Customer cannot spin right now."""

    def __init__(self, reason: str = "Customer is not eligible to spin today"):
        self.reason = reason
        super().__init__(reason, "NOT_ELIGIBLE")


class NoRewardsConfiguredError(LoyaltyError):
    """The wheel has no active reward with a positive weight."""

    status_code = 409

    def __init__(self, shop_domain: str = None):
        message = "No active rewards configured for the spin wheel"
        if shop_domain:
            message = f"No active rewards configured for the spin wheel of {shop_domain}"
        super().__init__(message, "NO_REWARDS_CONFIGURED")


class UnauthorizedError(LoyaltyError):
    """Request failed authentication (bad webhook signature, missing shop)."""

    status_code = 401

    def __init__(self, message: str = "Invalid signature", code: str = "INVALID_SIGNATURE"):
        super().__init__(message, code)


class InternalError(LoyaltyError):
    """Persistence or unexpected failure. Message is never shown to users."""

    status_code = 500

    def __init__(self, message: str = "An unexpected error occurred"):
        super().__init__(message, "INTERNAL_ERROR")


class ConcurrencyError(InternalError):
    """Optimistic update kept losing to concurrent writers."""

    def __init__(self, customer_id=None, attempts: int = 0):
        self.customer_id = customer_id
        self.attempts = attempts
        super().__init__(
            f"Could not apply ledger operation for customer {customer_id} after {attempts} attempts"
        )
