"""
Business logic services for Spin Rewards.
"""
from .ledger_service import LedgerService
from .catalog_service import CatalogService
from .spin_service import SpinService, SpinState, Eligibility
from .order_events import OrderEventService
from .analytics_service import AnalyticsService
from .privacy_service import PrivacyService

__all__ = [
    'LedgerService',
    'CatalogService',
    'SpinService',
    'SpinState',
    'Eligibility',
    'OrderEventService',
    'AnalyticsService',
    'PrivacyService',
]
