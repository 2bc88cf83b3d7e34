"""
Order event handling.

Translates Shopify order payloads into ledger operations:
- orders/create    -> award points_per_order (+ welcome points for new customers)
- orders/updated   -> reverse the award when the order got cancelled
- orders/cancelled -> reverse the award

Ledger writes are keyed by (shop, order id, kind) so redelivered webhooks
never award or reverse twice.
"""
from typing import Dict, Any

from flask import current_app

from ..models import Shop, Transaction, TransactionType, get_shop_setting
from .ledger_service import LedgerService
from .spin_service import SpinService


def _order_customer(order: Dict[str, Any]):
    customer = order.get('customer') or {}
    return customer if customer.get('id') else None


def _order_number(order: Dict[str, Any]):
    return order.get('order_number') or order.get('name') or order.get('id')


class OrderEventService:
    """
    Order webhook handling for one shop.

    Usage:
        result = OrderEventService(shop_domain).handle_order_create(order_payload)
    """

    def __init__(self, shop_domain: str):
        self.shop_domain = shop_domain
        self.ledger = LedgerService(shop_domain)

    def idempotency_key(self, order_id, kind: str) -> str:
        return f'{self.shop_domain}:{order_id}:{kind}'

    def _shop_active(self) -> bool:
        shop = Shop.query.filter_by(shop_domain=self.shop_domain).first()
        return shop is None or bool(shop.is_active)

    def handle_order_create(self, order: Dict[str, Any]) -> Dict[str, Any]:
        order_id = str(order.get('id'))
        customer_data = _order_customer(order)

        if not customer_data:
            current_app.logger.info(f'Order {order_id} has no customer, skipping ({self.shop_domain})')
            return {'status': 'skipped', 'reason': 'guest_order'}

        if not self._shop_active():
            return {'status': 'skipped', 'reason': 'shop_inactive'}

        customer, created = self.ledger.get_or_create_customer(
            str(customer_data['id']),
            {
                'email': customer_data.get('email'),
                'first_name': customer_data.get('first_name'),
                'last_name': customer_data.get('last_name'),
            }
        )

        if created:
            welcome_points = int(get_shop_setting(self.shop_domain, 'welcome_points') or 0)
            if welcome_points > 0:
                self.ledger.earn_points(
                    customer,
                    welcome_points,
                    description='Welcome bonus',
                    metadata={'source': 'welcome'},
                    idempotency_key=self.idempotency_key(customer.shopify_customer_id, 'welcome'),
                )

        points = int(get_shop_setting(self.shop_domain, 'points_per_order') or 0)
        order_number = _order_number(order)

        transaction = self.ledger.apply_ledger_operation(
            customer,
            max(points, 0),
            TransactionType.EARNED,
            f'Points earned from order #{order_number}',
            {
                'order_total': order.get('total_price'),
                'order_currency': order.get('currency'),
                'source': 'order',
            },
            order_id=order_id,
            order_number=order_number,
            orders_delta=1,
            idempotency_key=self.idempotency_key(order_id, 'earned'),
        )

        redeemed_codes = self._redeem_spin_codes(order, order_id)

        return {
            'status': 'processed',
            'customer_id': transaction.shopify_customer_id,
            'points_awarded': transaction.points,
            'new_balance': transaction.balance_after,
            'transaction_id': transaction.id,
            'redeemed_spin_codes': redeemed_codes,
        }

    def _redeem_spin_codes(self, order: Dict[str, Any], order_id: str):
        codes = [d.get('code') for d in order.get('discount_codes') or [] if d.get('code')]
        if not codes:
            return []

        spins = SpinService(self.shop_domain)
        redeemed = []
        for code in codes:
            if spins.mark_code_redeemed(code, order_id):
                redeemed.append(code)
        return redeemed

    def handle_order_update(self, order: Dict[str, Any]) -> Dict[str, Any]:
        """Only cancellations matter; any other update is ignored."""
        if not order.get('cancelled_at'):
            return {'status': 'skipped', 'reason': 'not_cancelled'}
        return self._reverse_order(order)

    def handle_order_cancelled(self, order: Dict[str, Any]) -> Dict[str, Any]:
        return self._reverse_order(order)

    def _reverse_order(self, order: Dict[str, Any]) -> Dict[str, Any]:
        order_id = str(order.get('id'))
        customer_data = _order_customer(order)
        if not customer_data:
            return {'status': 'skipped', 'reason': 'guest_order'}

        customer = self.ledger.get_customer(str(customer_data['id']))
        if not customer:
            current_app.logger.info(
                f'Cancelled order {order_id}: customer {customer_data["id"]} unknown, skipping'
            )
            return {'status': 'skipped', 'reason': 'customer_not_found'}

        earned = Transaction.query.filter_by(
            shop_domain=self.shop_domain,
            order_id=order_id,
            transaction_type=TransactionType.EARNED.value
        ).first()
        if earned:
            points = earned.points
        else:
            points = int(get_shop_setting(self.shop_domain, 'points_per_order') or 0)

        order_number = _order_number(order)
        transaction = self.ledger.reverse_points(
            customer,
            points,
            f'Points reversed for cancelled order #{order_number}',
            order_id=order_id,
            order_number=order_number,
            orders_delta=-1,
            idempotency_key=self.idempotency_key(order_id, 'reversal'),
            reversed_transaction_id=earned.id if earned else None,
        )

        if transaction is None:
            return {'status': 'skipped', 'reason': 'insufficient_balance'}

        return {
            'status': 'reversed',
            'customer_id': transaction.shopify_customer_id,
            'points_reversed': -transaction.points,
            'new_balance': transaction.balance_after,
            'transaction_id': transaction.id,
        }
