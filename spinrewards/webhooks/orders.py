"""
Order webhook handlers.

orders/create awards points; orders/updated (with cancelled_at) and
orders/cancelled reverse them. Redelivery is safe: ledger writes are keyed
by shop, order id and kind.
"""
from flask import Blueprint, request, jsonify, g, current_app
from ..services.order_events import OrderEventService
from ..utils.errors import bad_request
from . import require_webhook_verification

orders_webhook_bp = Blueprint('orders_webhook', __name__)


def _order_payload():
    payload = request.get_json(silent=True)
    return payload if isinstance(payload, dict) else None


@orders_webhook_bp.route('/orders/create', methods=['POST'])
@require_webhook_verification
def handle_order_created():
    order = _order_payload()
    if order is None or not order.get('id'):
        return bad_request('Invalid order payload')

    current_app.logger.info(f'orders/create {order.get("id")} from {g.shop_domain}')
    result = OrderEventService(g.shop_domain).handle_order_create(order)
    return jsonify({'success': True, **result})


@orders_webhook_bp.route('/orders/updated', methods=['POST'])
@require_webhook_verification
def handle_order_updated():
    order = _order_payload()
    if order is None or not order.get('id'):
        return bad_request('Invalid order payload')

    result = OrderEventService(g.shop_domain).handle_order_update(order)
    return jsonify({'success': True, **result})


@orders_webhook_bp.route('/orders/cancelled', methods=['POST'])
@require_webhook_verification
def handle_order_cancelled():
    order = _order_payload()
    if order is None or not order.get('id'):
        return bad_request('Invalid order payload')

    current_app.logger.info(f'orders/cancelled {order.get("id")} from {g.shop_domain}')
    result = OrderEventService(g.shop_domain).handle_order_cancelled(order)
    return jsonify({'success': True, **result})
