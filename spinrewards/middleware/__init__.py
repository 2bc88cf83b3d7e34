"""
Middleware package for Spin Rewards.
"""
from .shop_auth import require_shop_auth, require_admin_auth, get_shop_from_request, decode_session_token

__all__ = ['require_shop_auth', 'require_admin_auth', 'get_shop_from_request', 'decode_session_token']
