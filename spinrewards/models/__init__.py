"""
Database models for the Spin Rewards loyalty app.
Points ledger, spin wheel catalog and spin history for Shopify stores.
"""
from .shop import Shop, get_shop_setting
from .customer import Customer
from .transaction import Transaction, TransactionType, METADATA_KEYS
from .spin import (
    RewardType,
    SpinWheel,
    SpinReward,
    SpinHistory,
    DEFAULT_SPIN_REWARDS,
)

__all__ = [
    'Shop',
    'get_shop_setting',
    'Customer',
    # Ledger
    'Transaction',
    'TransactionType',
    'METADATA_KEYS',
    # Spin wheel
    'RewardType',
    'SpinWheel',
    'SpinReward',
    'SpinHistory',
    'DEFAULT_SPIN_REWARDS',
]
