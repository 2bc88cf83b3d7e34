"""
Spin Wheel Service.

Daily spin eligibility and resolution for one shop.

Lifecycle of a spin (SpinState):
    NOT_ELIGIBLE -> (next UTC day) -> ELIGIBLE
    ELIGIBLE -> resolve_spin() -> RESOLVING -> RESOLVED

The day boundary is the UTC calendar day. The spin is claimed with a
conditional UPDATE on customers.last_spin_date in the same database
transaction as the reward payout, so two concurrent spins on the same day
cannot both succeed and a failed payout never consumes the spin.
"""
import random
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional, Dict, Any, List

from flask import current_app
from sqlalchemy import or_

from ..extensions import db, unit_of_work
from ..models import Customer, SpinHistory
from ..utils.exceptions import NotEligibleError, NoRewardsConfiguredError
from .catalog_service import CatalogService
from .ledger_service import LedgerService
from .rewards import SpinContext, build_reward, select_reward


class SpinState(str, Enum):
    NOT_ELIGIBLE = 'not_eligible'
    ELIGIBLE = 'eligible'
    RESOLVING = 'resolving'
    RESOLVED = 'resolved'


def utc_day_start(now: datetime = None) -> datetime:
    now = now or datetime.utcnow()
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


@dataclass
class Eligibility:
    eligible: bool
    state: SpinState
    reason: Optional[str] = None
    next_spin_at: Optional[datetime] = None
    last_spin_date: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'can_spin': self.eligible,
            'state': self.state.value,
            'reason': self.reason,
            'last_spin_date': self.last_spin_date.isoformat() if self.last_spin_date else None,
            'next_spin_at': self.next_spin_at.isoformat() if self.next_spin_at else None,
        }


class SpinService:
    """
    Daily spin wheel for one shop.

    Usage:
        spins = SpinService('store.myshopify.com')
        if spins.check_eligibility('7890123').eligible:
            result = spins.resolve_spin('7890123')

    Tests pass a seeded random.Random as rng.
    """

    def __init__(self, shop_domain: str, rng: random.Random = None):
        self.shop_domain = shop_domain
        self.rng = rng or random.SystemRandom()
        self.ledger = LedgerService(shop_domain)
        self.catalog = CatalogService(shop_domain)

    def check_eligibility(self, customer_ref, now: datetime = None) -> Eligibility:
        """
        Eligible when the wheel is active, the customer has not spun since
        today's UTC midnight and has at least minimum_orders_required orders.
        Unknown customers have no orders, so only a zero minimum lets them in.
        """
        now = now or datetime.utcnow()
        day_start = utc_day_start(now)
        wheel = self.catalog.get_or_create_catalog()
        customer = self.ledger.get_customer(customer_ref)

        last_spin = customer.last_spin_date if customer else None
        total_orders = customer.total_orders if customer else 0

        if not wheel.is_active:
            return Eligibility(False, SpinState.NOT_ELIGIBLE, 'Spin wheel is not active',
                               last_spin_date=last_spin)

        if last_spin is not None and last_spin >= day_start:
            return Eligibility(
                False,
                SpinState.NOT_ELIGIBLE,
                'Already spun today',
                next_spin_at=day_start + timedelta(days=1),
                last_spin_date=last_spin,
            )

        if total_orders < wheel.minimum_orders_required:
            return Eligibility(
                False,
                SpinState.NOT_ELIGIBLE,
                f'At least {wheel.minimum_orders_required} orders required to spin',
                last_spin_date=last_spin,
            )

        return Eligibility(True, SpinState.ELIGIBLE, last_spin_date=last_spin)

    def _claim_spin(self, customer_id: int, now: datetime) -> bool:
        """Set last_spin_date only if no spin happened since UTC midnight."""
        claimed = Customer.query.filter(
            Customer.id == customer_id,
            or_(
                Customer.last_spin_date.is_(None),
                Customer.last_spin_date < utc_day_start(now),
            )
        ).update(
            {
                'last_spin_date': now,
                'version': Customer.version + 1,
                'updated_at': now,
            },
            synchronize_session=False
        )
        return claimed == 1

    def resolve_spin(self, customer_ref, customer_data: Dict[str, Any] = None) -> Dict[str, Any]:
        """
        Spin the wheel once for a customer.

        Raises:
            NotEligibleError: already spun today, wheel inactive or not enough orders
            NoRewardsConfiguredError: no active reward with a positive weight

        Returns:
            Dict with the won reward, what was paid out and the spin record
        """
        now = datetime.utcnow()

        eligibility = self.check_eligibility(customer_ref, now)
        if not eligibility.eligible:
            raise NotEligibleError(eligibility.reason)

        rewards = self.catalog.snapshot()
        definition = select_reward(rewards, self.rng)
        if definition is None:
            raise NoRewardsConfiguredError(self.shop_domain)

        reward = build_reward(definition)

        with unit_of_work():
            customer, _ = self.ledger.get_or_create_customer(customer_ref, customer_data)
            db.session.flush()

            # state: RESOLVING
            if not self._claim_spin(customer.id, now):
                raise NotEligibleError('Already spun today')

            spin = SpinHistory(
                customer_id=customer.id,
                shop_domain=self.shop_domain,
                shopify_customer_id=customer.shopify_customer_id,
                reward_id=definition.reward_id,
                reward_type=definition.reward_type,
                reward_value=definition.value,
                reward_label=definition.label,
                created_at=now,
                expires_at=now + timedelta(
                    days=current_app.config.get('SPIN_CODE_EXPIRY_DAYS', 30)
                ),
            )
            db.session.add(spin)
            db.session.flush()

            outcome = reward.resolve(SpinContext(ledger=self.ledger, customer=customer, spin_id=spin.id))
            spin.discount_code = outcome.discount_code
            if outcome.transaction is not None:
                spin.transaction_id = outcome.transaction.id

        current_app.logger.info(
            f'Spin resolved for customer {spin.shopify_customer_id} ({self.shop_domain}): '
            f'{definition.reward_id} [{definition.reward_type}]'
        )

        return {
            'state': SpinState.RESOLVED.value,
            'reward': definition.to_dict(),
            'result': outcome.to_dict(),
            'spin': spin.to_dict(),
        }

    # ==================== History & codes ====================

    def list_history(self, customer_ref, limit: int = 20) -> List[Dict[str, Any]]:
        limit = min(max(limit or 20, 1), 100)
        spins = SpinHistory.query.filter_by(
            shop_domain=self.shop_domain,
            shopify_customer_id=str(customer_ref)
        ).order_by(SpinHistory.created_at.desc(), SpinHistory.id.desc()).limit(limit).all()
        return [s.to_dict() for s in spins]

    def outstanding_codes(self) -> List[SpinHistory]:
        """Issued spin discount codes that are neither redeemed nor expired."""
        return SpinHistory.query.filter(
            SpinHistory.shop_domain == self.shop_domain,
            SpinHistory.discount_code.isnot(None),
            SpinHistory.is_redeemed.is_(False),
            SpinHistory.expires_at > datetime.utcnow(),
        ).order_by(SpinHistory.created_at.asc()).all()

    def mark_code_redeemed(self, code: str, order_id: str) -> Optional[SpinHistory]:
        """
        Flag a spin code as used by an order. Expired or already redeemed
        codes are left alone and None is returned.
        """
        spin = SpinHistory.query.filter_by(
            shop_domain=self.shop_domain,
            discount_code=code,
            is_redeemed=False
        ).first()
        if not spin or spin.is_expired:
            return None

        with unit_of_work():
            spin.is_redeemed = True
            spin.redeemed_at = datetime.utcnow()
            spin.redeemed_order_id = str(order_id)

        current_app.logger.info(f'Spin code {code} redeemed on order {order_id} ({self.shop_domain})')
        return spin
