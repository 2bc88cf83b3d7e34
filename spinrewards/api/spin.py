"""
Spin wheel API endpoints.

Storefront: eligibility check, spin, history.
Admin (session token only): wheel catalog writes, settings and outstanding codes.
"""
from flask import Blueprint, request, jsonify, g
from ..middleware.shop_auth import require_shop_auth, require_admin_auth
from ..services.catalog_service import CatalogService
from ..services.spin_service import SpinService
from ..utils.errors import ErrorCode, bad_request

spin_bp = Blueprint('spin', __name__)


# ==================== STOREFRONT ====================

@spin_bp.route('/check/<customer_id>', methods=['GET'])
@require_shop_auth
def check_spin(customer_id):
    eligibility = SpinService(g.shop_domain).check_eligibility(customer_id)
    return jsonify({'customer_id': customer_id, **eligibility.to_dict()})


@spin_bp.route('/play', methods=['POST'])
@require_shop_auth
def play_spin():
    """
    Spin the wheel.

    Request body:
        {"customer_id": "7890123", "shop_domain": "store.myshopify.com"}

    Errors:
        400 NOT_ELIGIBLE: already spun today, wheel off or too few orders
        409 NO_REWARDS_CONFIGURED: nothing on the wheel can be won
    """
    data = request.get_json(silent=True) or {}
    customer_id = data.get('customer_id')
    if not customer_id:
        return bad_request('customer_id is required', ErrorCode.MISSING_FIELD)

    customer_data = {
        key: data[key] for key in ('email', 'first_name', 'last_name') if data.get(key)
    }
    result = SpinService(g.shop_domain).resolve_spin(str(customer_id), customer_data)
    return jsonify({'success': True, **result})


@spin_bp.route('/history/<customer_id>', methods=['GET'])
@require_shop_auth
def spin_history(customer_id):
    limit = request.args.get('limit', 20, type=int)
    return jsonify({
        'customer_id': customer_id,
        'spins': SpinService(g.shop_domain).list_history(customer_id, limit),
    })


# ==================== ADMIN: CATALOG ====================

@spin_bp.route('/config', methods=['GET'])
@require_shop_auth
def get_config():
    """Wheel rewards and settings; the default wheel is created on first access."""
    return jsonify(CatalogService(g.shop_domain).catalog_dict())


@spin_bp.route('/config/reward', methods=['POST'])
@require_shop_auth
@require_admin_auth
def add_reward():
    """
    Request body:
        {"type": "points", "value": 25, "label": "25 Points", "probability": 5, "color": "#22c55e"}
    """
    data = request.get_json(silent=True) or {}
    reward, warning = CatalogService(g.shop_domain).add_reward(data)
    return jsonify({'success': True, 'reward': reward.to_dict(), 'warning': warning}), 201


@spin_bp.route('/config/reward/<reward_id>', methods=['PUT'])
@require_shop_auth
@require_admin_auth
def update_reward(reward_id):
    data = request.get_json(silent=True) or {}
    reward, warning = CatalogService(g.shop_domain).update_reward(reward_id, data)
    return jsonify({'success': True, 'reward': reward.to_dict(), 'warning': warning})


@spin_bp.route('/config/reward/<reward_id>', methods=['DELETE'])
@require_shop_auth
@require_admin_auth
def remove_reward(reward_id):
    warning = CatalogService(g.shop_domain).remove_reward(reward_id)
    return jsonify({'success': True, 'warning': warning})


@spin_bp.route('/config/settings', methods=['PUT'])
@require_shop_auth
@require_admin_auth
def update_settings():
    """Request body: {"minimum_orders_required": 1, "is_active": true}"""
    data = request.get_json(silent=True) or {}
    wheel = CatalogService(g.shop_domain).update_settings(data)
    return jsonify({'success': True, 'settings': wheel.settings_dict()})


@spin_bp.route('/codes', methods=['GET'])
@require_shop_auth
@require_admin_auth
def outstanding_codes():
    """Issued spin discount codes that are still usable."""
    spins = SpinService(g.shop_domain).outstanding_codes()
    return jsonify({'codes': [s.to_dict() for s in spins], 'total': len(spins)})
