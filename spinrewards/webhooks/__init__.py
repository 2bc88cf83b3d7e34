"""
Shopify webhook handlers for Spin Rewards.
Order events feed the points ledger; privacy webhooks cover GDPR requests.
"""
import hmac
import hashlib
import base64
from functools import wraps
from flask import request, g, current_app
from ..models import Shop
from ..utils.errors import ErrorCode, bad_request
from ..utils.exceptions import UnauthorizedError


def verify_shopify_webhook_signature(data: bytes, hmac_header: str, secret: str) -> bool:
    """
    Verify Shopify webhook HMAC-SHA256 signature.

    The expected value is the base64 HMAC-SHA256 of the raw body, compared
    in constant time.

    Args:
        data: Raw request body bytes
        hmac_header: The X-Shopify-Hmac-SHA256 header value
        secret: The webhook secret (per shop, or the configured fallback)

    Returns:
        True if signature is valid, False otherwise
    """
    if not secret:
        current_app.logger.warning('No webhook secret configured for verification')
        return False

    if not hmac_header:
        current_app.logger.warning('No HMAC header in webhook request')
        return False

    computed_hmac = base64.b64encode(
        hmac.new(secret.encode('utf-8'), data, hashlib.sha256).digest()
    ).decode('utf-8')

    return hmac.compare_digest(computed_hmac, hmac_header)


def webhook_secret_for(shop: Shop) -> str:
    if shop and shop.webhook_secret:
        return shop.webhook_secret
    return current_app.config.get('SHOPIFY_WEBHOOK_SECRET') or current_app.config.get('SHOPIFY_API_SECRET')


def require_webhook_verification(f):
    """
    Decorator to require Shopify webhook signature verification.

    1. Extracts the shop domain from X-Shopify-Shop-Domain (400 if missing)
    2. Picks the shop's webhook secret, or the configured fallback
    3. Verifies the HMAC signature over the raw body (401 if it fails)

    Nothing reaches the handler, and nothing is written, unless the
    signature matches.

    Usage:
        @orders_webhook_bp.route('/orders/create', methods=['POST'])
        @require_webhook_verification
        def handle_order_created():
            shop_domain = g.shop_domain
            ...
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        shop_domain = request.headers.get('X-Shopify-Shop-Domain', '')
        if not shop_domain:
            current_app.logger.warning('Webhook missing X-Shopify-Shop-Domain header')
            return bad_request('Missing shop domain header', ErrorCode.MISSING_FIELD)

        shop = Shop.query.filter_by(shop_domain=shop_domain).first()

        hmac_header = request.headers.get('X-Shopify-Hmac-SHA256', '')
        if not verify_shopify_webhook_signature(request.get_data(), hmac_header, webhook_secret_for(shop)):
            current_app.logger.warning(f'Invalid webhook signature from {shop_domain}')
            raise UnauthorizedError()

        g.shop_domain = shop_domain
        g.shop = shop
        return f(*args, **kwargs)

    return decorated_function


from .orders import orders_webhook_bp  # noqa: E402
from .privacy import privacy_webhook_bp  # noqa: E402

__all__ = [
    'orders_webhook_bp',
    'privacy_webhook_bp',
    'verify_shopify_webhook_signature',
    'require_webhook_verification',
]
