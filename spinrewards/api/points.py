"""
Points API endpoints.

Handles:
- Balance and history queries (storefront widget)
- Redeeming points for a discount code
- Manual point adjustments (admin)
- Customer list, shop-wide transactions and analytics (admin)

Business-rule failures (insufficient balance, negative result, unknown
customer) are raised by LedgerService and rendered by the app-level
LoyaltyError handler.
"""
from flask import Blueprint, request, jsonify, g
from ..middleware.shop_auth import require_shop_auth, require_admin_auth
from ..services.ledger_service import LedgerService
from ..services.analytics_service import AnalyticsService
from ..utils.errors import ErrorCode, bad_request

points_bp = Blueprint('points', __name__)


# ==============================================================================
# CUSTOMER-FACING
# ==============================================================================

@points_bp.route('/balance/<customer_id>', methods=['GET'])
@require_shop_auth
def get_balance(customer_id):
    """
    Current balance and running totals.

    Unknown customers get a zeroed balance with is_new=True; no row is created.
    """
    return jsonify(LedgerService(g.shop_domain).get_balance(customer_id))


@points_bp.route('/transactions/<customer_id>', methods=['GET'])
@require_shop_auth
def get_transactions(customer_id):
    """
    Customer's ledger, newest first.

    Query params:
        page: Page number (default 1)
        limit: Items per page (default 20, max 100)
    """
    page = request.args.get('page', 1, type=int)
    limit = request.args.get('limit', 20, type=int)
    return jsonify(LedgerService(g.shop_domain).list_transactions(customer_id, page, limit))


@points_bp.route('/redeem', methods=['POST'])
@require_shop_auth
def redeem_points():
    """
    Exchange points for a fixed-amount discount code.

    Request body:
        {
            "customer_id": "7890123",
            "points_to_redeem": 100,
            "shop_domain": "store.myshopify.com"
        }
    """
    data = request.get_json(silent=True) or {}
    customer_id = data.get('customer_id')
    if not customer_id or 'points_to_redeem' not in data:
        return bad_request('customer_id and points_to_redeem are required', ErrorCode.MISSING_FIELD)

    result = LedgerService(g.shop_domain).redeem_points(str(customer_id), data['points_to_redeem'])
    transaction = result.pop('transaction')

    return jsonify({
        'success': True,
        **result,
        'transaction': transaction.to_dict(),
        'message': f"Redeemed {result['points_redeemed']} points",
    })


# ==============================================================================
# ADMIN
# ==============================================================================

@points_bp.route('/adjust', methods=['POST'])
@require_shop_auth
@require_admin_auth
def adjust_points():
    """
    Manually add or remove points.

    Request body:
        {
            "customer_id": "7890123",
            "points": -25,
            "reason": "Damaged item goodwill reversal"
        }
    """
    data = request.get_json(silent=True) or {}
    customer_id = data.get('customer_id')
    if not customer_id or data.get('points') is None:
        return bad_request('customer_id and points are required', ErrorCode.MISSING_FIELD)

    result = LedgerService(g.shop_domain).adjust_points(
        str(customer_id),
        data['points'],
        reason=data.get('reason'),
        created_by=g.get('staff_id'),
    )
    transaction = result.pop('transaction')
    verb = 'added' if result['points_adjusted'] > 0 else 'removed'

    return jsonify({
        'success': True,
        **result,
        'transaction': transaction.to_dict(),
        'message': f"Successfully {verb} {abs(result['points_adjusted'])} points",
    })


@points_bp.route('/customers', methods=['GET'])
@require_shop_auth
@require_admin_auth
def list_customers():
    page = request.args.get('page', 1, type=int)
    limit = request.args.get('limit', 50, type=int)
    return jsonify(LedgerService(g.shop_domain).list_customers(page, limit))


@points_bp.route('/transactions/all', methods=['GET'])
@require_shop_auth
@require_admin_auth
def list_all_transactions():
    """
    Shop-wide ledger with filters.

    Query params:
        type: earned, redeemed, spin_reward or adjustment
        days: Only the last N days
        min_points / max_points: Signed points range
        customer_email: Substring match on the customer's email
    """
    return jsonify(LedgerService(g.shop_domain).list_shop_transactions(
        page=request.args.get('page', 1, type=int),
        limit=request.args.get('limit', 25, type=int),
        transaction_type=request.args.get('type'),
        days=request.args.get('days', type=int),
        min_points=request.args.get('min_points', type=int),
        max_points=request.args.get('max_points', type=int),
        customer_email=request.args.get('customer_email'),
    ))


@points_bp.route('/analytics', methods=['GET'])
@require_shop_auth
@require_admin_auth
def get_analytics():
    days = request.args.get('days', 30, type=int)
    return jsonify(AnalyticsService(g.shop_domain).get_summary(days))
