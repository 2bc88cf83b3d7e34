"""
GDPR mandatory webhooks.

- customers/data_request: return what we store about a customer
- customers/redact: scrub the customer's personal data
- shop/redact: scrub every customer of the shop (48h after uninstall)
"""
from flask import Blueprint, request, jsonify, g, current_app
from ..services.privacy_service import PrivacyService
from . import require_webhook_verification

privacy_webhook_bp = Blueprint('privacy_webhook', __name__)


def _customer_id(payload: dict) -> str:
    customer = payload.get('customer') or {}
    return str(customer.get('id', ''))


@privacy_webhook_bp.route('/customers/data_request', methods=['POST'])
@require_webhook_verification
def handle_customer_data_request():
    payload = request.get_json(silent=True) or {}
    customer_id = _customer_id(payload)
    request_id = (payload.get('data_request') or {}).get('id')

    current_app.logger.info(f'Data request {request_id} for customer {customer_id} ({g.shop_domain})')
    export = PrivacyService(g.shop_domain).export_customer_data(customer_id)

    if export is None:
        return jsonify({
            'success': True,
            'customer_data': None,
            'message': 'Customer not found in loyalty program'
        })

    return jsonify({
        'success': True,
        'data_request_id': request_id,
        'customer_data': export,
    })


@privacy_webhook_bp.route('/customers/redact', methods=['POST'])
@require_webhook_verification
def handle_customer_redact():
    payload = request.get_json(silent=True) or {}
    customer_id = _customer_id(payload)

    if not PrivacyService(g.shop_domain).redact_customer(customer_id):
        return jsonify({'success': True, 'message': 'Customer not found in loyalty program'})

    return jsonify({'success': True, 'action': 'customer_data_redacted'})


@privacy_webhook_bp.route('/shop/redact', methods=['POST'])
@require_webhook_verification
def handle_shop_redact():
    redacted = PrivacyService(g.shop_domain).redact_shop()
    return jsonify({
        'success': True,
        'action': 'shop_data_redacted',
        'customers_redacted': redacted,
    })
