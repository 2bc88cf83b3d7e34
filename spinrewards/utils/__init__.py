"""
Utility modules for Spin Rewards.
"""
from .logging_config import setup_logging, get_logger
from .errors import (
    ErrorCode,
    error_response,
    bad_request,
    unauthorized,
    forbidden,
    internal_error
)
from .exceptions import (
    LoyaltyError,
    NotFoundError,
    CustomerNotFoundError,
    RewardNotFoundError,
    ValidationError,
    InvalidAmountError,
    InsufficientBalanceError,
    NegativeResultError,
    NotEligibleError,
    NoRewardsConfiguredError,
    UnauthorizedError,
    ConcurrencyError,
    InternalError
)
