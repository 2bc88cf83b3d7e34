"""
Shop Authentication Middleware.

Resolves which shop a request acts on. Admin requests from the embedded app
carry a Shopify session token (JWT signed with the app secret); storefront
and development calls name the shop via the ``shop`` query parameter, the
X-Shop-Domain header or ``shop_domain`` in the JSON body.

Session tokens are issued by Shopify App Bridge and contain:
- dest: Shop URL (https://shop.myshopify.com)
- iss: Shop admin URL
- aud: API key
- sub: Staff member GID
"""
from functools import wraps
from typing import Optional

import jwt
from flask import request, g, current_app

from ..models import Shop
from ..utils.errors import ErrorCode, forbidden, unauthorized
from ..utils.logging_config import get_logger

logger = get_logger(__name__)


def decode_session_token(token: str) -> Optional[dict]:
    """
    Decode and verify a Shopify session token.

    Returns:
        Decoded payload, or None if the token is missing, expired or forged
    """
    secret = current_app.config.get('SHOPIFY_API_SECRET')
    if not token or not secret:
        return None

    api_key = current_app.config.get('SHOPIFY_API_KEY')
    try:
        return jwt.decode(
            token,
            secret,
            algorithms=['HS256'],
            audience=api_key or None,
            options={'verify_aud': bool(api_key), 'verify_exp': True},
        )
    except jwt.ExpiredSignatureError:
        logger.info('Session token expired')
    except jwt.InvalidTokenError as e:
        logger.warning(f'Invalid session token: {e}')
    return None


def _host(url: str) -> Optional[str]:
    if not url:
        return None
    return url.replace('https://', '').replace('http://', '').split('/')[0] or None


def get_shop_from_token(payload: dict) -> Optional[str]:
    return _host(payload.get('dest', '')) or _host(payload.get('iss', ''))


def get_shop_from_request() -> Optional[str]:
    """
    Shop domain for the current request.

    Priority:
    1. Session token in Authorization header
    2. shop query parameter
    3. X-Shop-Domain header
    4. shop_domain in the JSON body
    """
    auth_header = request.headers.get('Authorization', '')
    if auth_header.startswith('Bearer '):
        payload = decode_session_token(auth_header.split(' ', 1)[1])
        if payload:
            shop = get_shop_from_token(payload)
            if shop:
                g.staff_id = payload.get('sub')
                g.auth_method = 'session_token'
                return shop

    shop = request.args.get('shop') or request.headers.get('X-Shop-Domain')
    if shop:
        g.auth_method = 'shop_param'
        return shop

    body = request.get_json(silent=True) or {}
    shop = body.get('shop_domain') if isinstance(body, dict) else None
    if shop:
        g.auth_method = 'body'
        return shop

    return None


def require_shop_auth(f):
    """
    Decorator for endpoints scoped to a shop.

    Sets g.shop_domain, g.auth_method and g.staff_id (session tokens only).
    Shops deactivated by uninstall or redaction are refused.

    Usage:
        @require_shop_auth
        def my_endpoint():
            ledger = LedgerService(g.shop_domain)
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        g.staff_id = None
        g.auth_method = None
        shop = get_shop_from_request()
        if not shop:
            return unauthorized('Missing shop domain', ErrorCode.AUTH_REQUIRED)

        shop_row = Shop.query.filter_by(shop_domain=shop).first()
        if shop_row and not shop_row.is_active:
            logger.info(f'Request for inactive shop {shop} refused')
            return forbidden("This shop's access has been disabled", ErrorCode.SHOP_INACTIVE)

        g.shop_domain = shop
        return f(*args, **kwargs)

    return decorated_function


def require_admin_auth(f):
    """
    Decorator for merchant-only endpoints.

    Must be used after @require_shop_auth. Only a verified session token
    from the embedded admin counts; a shop named in a header, query string
    or body does not.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if g.get('auth_method') != 'session_token':
            return forbidden('Admin session token required', ErrorCode.ADMIN_REQUIRED)
        return f(*args, **kwargs)

    return decorated_function
