"""
Spin wheel models.

- SpinWheel: one per shop, holds wheel settings
- SpinReward: the wheel's weighted reward catalog, in display order
- SpinHistory: one row per resolved spin (reward snapshot + issued code)
"""
from datetime import datetime
from enum import Enum
from typing import Dict, Any
from ..extensions import db


class RewardType(str, Enum):
    """Closed set of spin reward kinds."""
    POINTS = 'points'
    DISCOUNT_PERCENTAGE = 'discount_percentage'
    DISCOUNT_FIXED = 'discount_fixed'
    FREE_SHIPPING = 'free_shipping'


DEFAULT_REWARD_COLOR = '#3b82f6'


class SpinWheel(db.Model):
    """Per-shop wheel settings. Rewards live in SpinReward."""
    __tablename__ = 'spin_wheels'

    id = db.Column(db.Integer, primary_key=True)
    shop_domain = db.Column(db.String(255), unique=True, nullable=False, index=True)

    minimum_orders_required = db.Column(db.Integer, default=0, nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    rewards = db.relationship(
        'SpinReward',
        backref='wheel',
        order_by='SpinReward.position',
        cascade='all, delete-orphan',
    )

    def __repr__(self):
        return f'<SpinWheel {self.shop_domain}>'

    def settings_dict(self) -> Dict[str, Any]:
        return {
            'minimum_orders_required': self.minimum_orders_required,
            'is_active': self.is_active,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            'rewards': [r.to_dict() for r in self.rewards],
            'settings': self.settings_dict(),
        }


class SpinReward(db.Model):
    """
    One weighted slice of a shop's wheel.

    probability is a weight in [0, 100]; active weights should add up to
    100 but the draw works on whatever they sum to.
    """
    __tablename__ = 'spin_rewards'

    id = db.Column(db.Integer, primary_key=True)
    wheel_id = db.Column(db.Integer, db.ForeignKey('spin_wheels.id'), nullable=False)

    reward_id = db.Column(db.String(100), nullable=False)  # 'points_50', 'discount_10'
    reward_type = db.Column(db.String(30), nullable=False)  # RewardType
    value = db.Column(db.Float, nullable=False, default=0)
    label = db.Column(db.String(100), nullable=False)
    probability = db.Column(db.Float, nullable=False, default=0)
    color = db.Column(db.String(20), default=DEFAULT_REWARD_COLOR)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    position = db.Column(db.Integer, default=0, nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint('wheel_id', 'reward_id', name='uq_wheel_reward_id'),
    )

    def __repr__(self):
        return f'<SpinReward {self.reward_id} p={self.probability}>'

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.reward_id,
            'type': self.reward_type,
            'value': self.value,
            'label': self.label,
            'probability': self.probability,
            'color': self.color,
            'is_active': self.is_active,
        }


class SpinHistory(db.Model):
    """
    Record of one resolved spin.

    The reward is copied, not referenced, so later catalog edits do not
    rewrite what the customer won. Discount-code rows double as the list of
    outstanding discount liabilities until redeemed or expired.
    """
    __tablename__ = 'spin_history'

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey('customers.id'), nullable=False)
    shop_domain = db.Column(db.String(255), nullable=False)
    shopify_customer_id = db.Column(db.String(50), nullable=False)

    # Snapshot of the reward at the time of the win
    reward_id = db.Column(db.String(100))
    reward_type = db.Column(db.String(30), nullable=False)
    reward_value = db.Column(db.Float, nullable=False)
    reward_label = db.Column(db.String(100), nullable=False)

    discount_code = db.Column(db.String(64), index=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey('transactions.id'))

    is_redeemed = db.Column(db.Boolean, default=False, nullable=False)
    redeemed_at = db.Column(db.DateTime)
    redeemed_order_id = db.Column(db.String(50))

    # Set by the resolver from SPIN_CODE_EXPIRY_DAYS
    expires_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    transaction = db.relationship('Transaction')

    __table_args__ = (
        db.Index('ix_spin_history_shop_customer_created', 'shop_domain', 'shopify_customer_id', 'created_at'),
    )

    def __repr__(self):
        return f'<SpinHistory {self.id}: {self.reward_label} for customer {self.customer_id}>'

    @property
    def is_expired(self) -> bool:
        return bool(self.expires_at and self.expires_at <= datetime.utcnow())

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'customer_id': self.shopify_customer_id,
            'reward': {
                'id': self.reward_id,
                'type': self.reward_type,
                'value': self.reward_value,
                'label': self.reward_label,
            },
            'discount_code': self.discount_code,
            'is_redeemed': self.is_redeemed,
            'redeemed_at': self.redeemed_at.isoformat() if self.redeemed_at else None,
            'expires_at': self.expires_at.isoformat() if self.expires_at else None,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }


# ==================== Default Configuration ====================

DEFAULT_SPIN_REWARDS = [
    {
        'reward_id': 'points_50',
        'reward_type': 'points',
        'value': 50,
        'label': '50 Points',
        'probability': 30,
        'color': '#3b82f6',
    },
    {
        'reward_id': 'points_100',
        'reward_type': 'points',
        'value': 100,
        'label': '100 Points',
        'probability': 20,
        'color': '#10b981',
    },
    {
        'reward_id': 'discount_10',
        'reward_type': 'discount_percentage',
        'value': 10,
        'label': '10% Off',
        'probability': 25,
        'color': '#f59e0b',
    },
    {
        'reward_id': 'discount_15',
        'reward_type': 'discount_percentage',
        'value': 15,
        'label': '15% Off',
        'probability': 15,
        'color': '#ef4444',
    },
    {
        'reward_id': 'free_shipping',
        'reward_type': 'free_shipping',
        'value': 1,
        'label': 'Free Shipping',
        'probability': 8,
        'color': '#8b5cf6',
    },
    {
        'reward_id': 'better_luck',
        'reward_type': 'points',
        'value': 0,
        'label': 'Better Luck Next Time',
        'probability': 2,
        'color': '#6b7280',
    },
]
