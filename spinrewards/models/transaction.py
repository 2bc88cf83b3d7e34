"""
Points transaction model - the append-only ledger.
"""
from datetime import datetime
from enum import Enum
from typing import Dict, Any
from ..extensions import db


class TransactionType(str, Enum):
    """Kinds of balance-affecting ledger entries."""
    EARNED = 'earned'            # Order award, welcome bonus (positive)
    REDEEMED = 'redeemed'        # Points exchanged for a discount code (negative)
    SPIN_REWARD = 'spin_reward'  # Points won on the wheel (positive)
    ADJUSTMENT = 'adjustment'    # Admin change or order reversal (+/-)


# Documented metadata keys per transaction type. Other keys are stored as-is.
METADATA_KEYS = {
    TransactionType.EARNED: ('order_total', 'order_currency', 'source'),
    TransactionType.REDEEMED: ('discount_amount', 'discount_type', 'ratio'),
    TransactionType.SPIN_REWARD: ('spin_id', 'reward_id', 'reward_label'),
    TransactionType.ADJUSTMENT: ('adjustment_type', 'previous_balance', 'reversed_transaction_id'),
}


class Transaction(db.Model):
    """
    One immutable entry in a customer's points ledger.

    Design notes:
    - Never updated or deleted once written; corrections are new entries
    - points is signed (+ earn/spin, - redeem, +/- adjustment)
    - balance_after is the customer's balance right after this entry was
      applied, written in the same database transaction as the balance
    - idempotency_key makes webhook-driven writes safe to replay
    """
    __tablename__ = 'transactions'

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey('customers.id'), nullable=False)
    shop_domain = db.Column(db.String(255), nullable=False)
    shopify_customer_id = db.Column(db.String(50), nullable=False)

    transaction_type = db.Column(db.String(30), nullable=False)  # TransactionType
    points = db.Column(db.Integer, nullable=False)
    description = db.Column(db.String(500), nullable=False)

    # References
    order_id = db.Column(db.String(50))
    order_number = db.Column(db.String(50))
    discount_code = db.Column(db.String(64), index=True)
    spin_reward_type = db.Column(db.String(30))

    balance_after = db.Column(db.Integer, nullable=False)
    meta = db.Column('metadata', db.JSON, default=dict)

    # "{shop}:{order_id}:{kind}" for order-driven entries
    idempotency_key = db.Column(db.String(255), unique=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    __table_args__ = (
        db.Index('ix_transactions_shop_customer_created', 'shop_domain', 'shopify_customer_id', 'created_at'),
        db.Index('ix_transactions_shop_created', 'shop_domain', 'created_at'),
        db.Index('ix_transactions_order', 'shop_domain', 'order_id'),
    )

    def __repr__(self):
        return f'<Transaction {self.id}: {self.points:+d} pts for customer {self.customer_id}>'

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dictionary for API responses."""
        return {
            'id': self.id,
            'customer_id': self.shopify_customer_id,
            'type': self.transaction_type,
            'points': self.points,
            'description': self.description,
            'order_id': self.order_id,
            'order_number': self.order_number,
            'discount_code': self.discount_code,
            'spin_reward_type': self.spin_reward_type,
            'balance_after': self.balance_after,
            'metadata': self.meta or {},
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
