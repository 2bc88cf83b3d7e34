"""
GDPR data handling (Shopify mandatory privacy webhooks).

Ledger rows are financial records and are never deleted; redaction removes
personal data from customers and free-text from their transactions.
"""
from datetime import datetime
from typing import Dict, Any, Optional

from flask import current_app

from ..extensions import unit_of_work
from ..models import Shop, Customer, Transaction, SpinHistory

REDACTED = 'REDACTED'


class PrivacyService:
    """
    Data export and redaction for one shop.

    Usage:
        export = PrivacyService(shop_domain).export_customer_data('7890123')
    """

    def __init__(self, shop_domain: str):
        self.shop_domain = shop_domain

    def _customer(self, shopify_customer_id) -> Optional[Customer]:
        return Customer.query.filter_by(
            shop_domain=self.shop_domain,
            shopify_customer_id=str(shopify_customer_id)
        ).first()

    def export_customer_data(self, shopify_customer_id) -> Optional[Dict[str, Any]]:
        """Everything stored about a customer, or None if nothing is."""
        customer = self._customer(shopify_customer_id)
        if not customer:
            return None

        transactions = customer.transactions.order_by(Transaction.created_at.asc()).all()
        spins = customer.spins.order_by(SpinHistory.created_at.asc()).all()

        return {
            'customer': customer.to_dict(),
            'transactions': [t.to_dict() for t in transactions],
            'spins': [s.to_dict() for s in spins],
        }

    def _scrub(self, customer: Customer, now: datetime) -> None:
        customer.email = f'redacted-{customer.id}@redacted.invalid'
        customer.first_name = REDACTED
        customer.last_name = REDACTED
        customer.is_active = False
        customer.redacted_at = now
        Transaction.query.filter_by(customer_id=customer.id).update(
            {'description': REDACTED}, synchronize_session=False
        )

    def redact_customer(self, shopify_customer_id) -> bool:
        """Returns False when there was no such customer."""
        customer = self._customer(shopify_customer_id)
        if not customer:
            return False

        with unit_of_work():
            self._scrub(customer, datetime.utcnow())

        current_app.logger.info(f'Customer {shopify_customer_id} data redacted for {self.shop_domain}')
        return True

    def redact_shop(self) -> int:
        """Scrub every customer of the shop and deactivate it. Returns customers redacted."""
        now = datetime.utcnow()
        customers = Customer.query.filter_by(shop_domain=self.shop_domain).all()

        with unit_of_work():
            for customer in customers:
                self._scrub(customer, now)

            shop = Shop.query.filter_by(shop_domain=self.shop_domain).first()
            if shop:
                shop.access_token = None
                shop.email = None
                shop.is_active = False

        current_app.logger.info(f'Shop data redacted for {self.shop_domain}: {len(customers)} customers')
        return len(customers)
