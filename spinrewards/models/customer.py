"""
Customer model - per-shop points balance.
"""
from datetime import datetime
from ..extensions import db


class Customer(db.Model):
    """
    Loyalty customer, one per (shop, Shopify customer id).

    Balance columns are written only by the ledger engine (see
    services/ledger_service.py). ``version`` is bumped on every balance
    write so concurrent writers can detect each other.
    """
    __tablename__ = 'customers'

    id = db.Column(db.Integer, primary_key=True)
    shop_domain = db.Column(db.String(255), nullable=False, index=True)
    shopify_customer_id = db.Column(db.String(50), nullable=False, index=True)

    # Contact info (synced from Shopify order payloads)
    email = db.Column(db.String(255))
    first_name = db.Column(db.String(255))
    last_name = db.Column(db.String(255))

    # Balance and running totals
    points_balance = db.Column(db.Integer, default=0, nullable=False)
    total_points_earned = db.Column(db.Integer, default=0, nullable=False)
    total_points_redeemed = db.Column(db.Integer, default=0, nullable=False)
    total_orders = db.Column(db.Integer, default=0, nullable=False)

    # UTC timestamp of the last resolved spin
    last_spin_date = db.Column(db.DateTime)

    is_active = db.Column(db.Boolean, default=True)
    redacted_at = db.Column(db.DateTime)
    version = db.Column(db.Integer, default=0, nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    transactions = db.relationship('Transaction', backref='customer', lazy='dynamic')
    spins = db.relationship('SpinHistory', backref='customer', lazy='dynamic')

    __table_args__ = (
        db.UniqueConstraint('shop_domain', 'shopify_customer_id', name='uq_shop_customer'),
        db.CheckConstraint('points_balance >= 0', name='ck_customer_points_non_negative'),
    )

    def __repr__(self):
        return f'<Customer {self.shop_domain}/{self.shopify_customer_id}>'

    @property
    def name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()

    def to_dict(self):
        return {
            'id': self.id,
            'customer_id': self.shopify_customer_id,
            'email': self.email,
            'name': self.name,
            'points_balance': self.points_balance,
            'total_points_earned': self.total_points_earned,
            'total_points_redeemed': self.total_points_redeemed,
            'total_orders': self.total_orders,
            'last_spin_date': self.last_spin_date.isoformat() if self.last_spin_date else None,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }

    def balance_snapshot(self):
        """Shape returned by the balance endpoint."""
        return {
            'customer_id': self.shopify_customer_id,
            'points_balance': self.points_balance,
            'total_points_earned': self.total_points_earned,
            'total_points_redeemed': self.total_points_redeemed,
            'total_orders': self.total_orders,
            'last_spin_date': self.last_spin_date.isoformat() if self.last_spin_date else None,
            'is_new': False,
        }

    @staticmethod
    def empty_snapshot(shopify_customer_id: str):
        """Balance shape for a customer with no row yet."""
        return {
            'customer_id': shopify_customer_id,
            'points_balance': 0,
            'total_points_earned': 0,
            'total_points_redeemed': 0,
            'total_orders': 0,
            'last_spin_date': None,
            'is_new': True,
        }
