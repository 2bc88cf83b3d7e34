"""
Tests for the Points API endpoints.

Tests cover:
- Balance and history (storefront)
- Redemption, including rejected redemptions
- Admin adjustments, customer list, all-transactions and analytics
- Admin routes need a session token; deactivated shops are refused
"""
import json
import pytest

from spinrewards.extensions import db
from spinrewards.models import Customer, Transaction


class TestBalance:

    def test_balance_existing_customer(self, client, sample_customer, auth_headers):
        response = client.get('/api/points/balance/1001', headers=auth_headers)

        assert response.status_code == 200
        data = response.get_json()
        assert data['points_balance'] == 200
        assert data['is_new'] is False

    def test_balance_unknown_customer(self, client, auth_headers):
        response = client.get('/api/points/balance/4242', headers=auth_headers)

        assert response.status_code == 200
        data = response.get_json()
        assert data == {
            'customer_id': '4242',
            'points_balance': 0,
            'total_points_earned': 0,
            'total_points_redeemed': 0,
            'total_orders': 0,
            'last_spin_date': None,
            'is_new': True,
        }
        assert Customer.query.count() == 0

    def test_balance_shop_from_query_param(self, client, sample_customer):
        response = client.get('/api/points/balance/1001?shop=test-shop.myshopify.com')
        assert response.get_json()['points_balance'] == 200

    def test_balance_requires_shop(self, client):
        response = client.get('/api/points/balance/1001')
        assert response.status_code == 401
        assert response.get_json()['error']['code'] == 'AUTH_REQUIRED'


class TestTransactions:

    def test_transactions_paginated(self, client, sample_customer, auth_headers):
        response = client.get('/api/points/transactions/1001?page=1&limit=10', headers=auth_headers)

        assert response.status_code == 200
        data = response.get_json()
        assert len(data['transactions']) == 1
        assert data['transactions'][0]['type'] == 'earned'
        assert data['pagination'] == {'page': 1, 'limit': 10, 'total': 1, 'pages': 1}

    def test_all_transactions_filtered(self, client, sample_customer, admin_headers):
        response = client.get('/api/points/transactions/all?type=redeemed', headers=admin_headers)

        assert response.status_code == 200
        assert response.get_json()['transactions'] == []


class TestRedeem:

    def test_redeem_success(self, client, sample_customer):
        response = client.post('/api/points/redeem', data=json.dumps({
            'customer_id': '1001',
            'points_to_redeem': 100,
            'shop_domain': 'test-shop.myshopify.com',
        }), content_type='application/json')

        assert response.status_code == 200
        data = response.get_json()
        assert data['success'] is True
        assert data['discount_code'].startswith('LOYALTY')
        assert data['discount_amount'] == 100
        assert data['new_balance'] == 100
        assert data['transaction']['points'] == -100

    def test_redeem_insufficient_balance(self, client, sample_customer, auth_headers):
        response = client.post('/api/points/redeem', data=json.dumps({
            'customer_id': '1001',
            'points_to_redeem': 201,
        }), headers=auth_headers)

        assert response.status_code == 400
        data = response.get_json()
        assert data['error']['code'] == 'INSUFFICIENT_BALANCE'
        assert data['available'] == 200
        assert data['requested'] == 201

        db.session.expire_all()
        assert Customer.query.get(sample_customer.id).points_balance == 200

    @pytest.mark.parametrize('points', [0, -1])
    def test_redeem_invalid_amount(self, client, sample_customer, auth_headers, points):
        response = client.post('/api/points/redeem', data=json.dumps({
            'customer_id': '1001',
            'points_to_redeem': points,
        }), headers=auth_headers)

        assert response.status_code == 400
        assert response.get_json()['error']['code'] == 'INVALID_AMOUNT'

    def test_redeem_unknown_customer(self, client, auth_headers):
        response = client.post('/api/points/redeem', data=json.dumps({
            'customer_id': '4242',
            'points_to_redeem': 10,
        }), headers=auth_headers)

        assert response.status_code == 404
        assert response.get_json()['error']['code'] == 'CUSTOMER_NOT_FOUND'

    def test_redeem_missing_fields(self, client, auth_headers):
        response = client.post('/api/points/redeem', data=json.dumps({}), headers=auth_headers)
        assert response.status_code == 400
        assert response.get_json()['error']['code'] == 'MISSING_FIELD'


class TestAdjust:

    def test_adjust_success(self, client, sample_customer, admin_headers):
        response = client.post('/api/points/adjust', data=json.dumps({
            'customer_id': '1001',
            'points': -50,
            'reason': 'Goodwill correction',
        }), headers=admin_headers)

        assert response.status_code == 200
        data = response.get_json()
        assert data['previous_balance'] == 200
        assert data['new_balance'] == 150
        assert data['message'] == 'Successfully removed 50 points'
        assert data['transaction']['description'] == 'Goodwill correction'

    def test_adjust_negative_result(self, client, sample_customer, admin_headers):
        response = client.post('/api/points/adjust', data=json.dumps({
            'customer_id': '1001',
            'points': -500,
        }), headers=admin_headers)

        assert response.status_code == 400
        data = response.get_json()
        assert data['error']['code'] == 'NEGATIVE_RESULT'
        assert data['current_balance'] == 200
        assert data['requested_change'] == -500
        assert Transaction.query.filter_by(transaction_type='adjustment').count() == 0

    def test_adjust_unknown_customer(self, client, admin_headers):
        response = client.post('/api/points/adjust', data=json.dumps({
            'customer_id': '4242',
            'points': 5,
        }), headers=admin_headers)

        assert response.status_code == 404


class TestAdminViews:

    def test_customers_list(self, client, sample_customer, admin_headers):
        response = client.get('/api/points/customers', headers=admin_headers)

        assert response.status_code == 200
        data = response.get_json()
        assert data['customers'][0]['customer_id'] == '1001'
        assert data['stats']['total_customers'] == 1
        assert data['stats']['total_points_outstanding'] == 200

    def test_analytics(self, client, sample_customer, admin_headers):
        response = client.get('/api/points/analytics?days=7', headers=admin_headers)

        assert response.status_code == 200
        data = response.get_json()
        assert data['period_days'] == 7
        assert data['total_customers'] == 1
        assert data['total_points_issued'] == 200
        assert data['total_points_outstanding'] == 200
        assert data['customer_segments'][1] == {'name': '100-499', 'count': 1, 'percentage': 100.0}
        assert data['daily_activity'][0]['points_earned'] == 200
        assert data['engagement_rate'] == 0


class TestAccessControl:

    def test_adjust_requires_session_token(self, client, sample_customer, auth_headers):
        response = client.post('/api/points/adjust', data=json.dumps({
            'customer_id': '1001',
            'points': 100000,
        }), headers=auth_headers)

        assert response.status_code == 403
        assert response.get_json()['error']['code'] == 'ADMIN_REQUIRED'
        db.session.expire_all()
        assert Customer.query.get(sample_customer.id).points_balance == 200
        assert Transaction.query.filter_by(transaction_type='adjustment').count() == 0

    def test_shop_in_body_is_not_admin(self, client, sample_customer):
        response = client.post('/api/points/adjust', data=json.dumps({
            'shop_domain': 'test-shop.myshopify.com',
            'customer_id': '1001',
            'points': 50,
        }), headers={'Content-Type': 'application/json'})

        assert response.status_code == 403

    @pytest.mark.parametrize('path', [
        '/api/points/customers',
        '/api/points/transactions/all',
        '/api/points/analytics',
    ])
    def test_admin_views_require_session_token(self, client, sample_customer, auth_headers, path):
        response = client.get(path, headers=auth_headers)
        assert response.status_code == 403

    def test_inactive_shop_refused(self, client, sample_shop, sample_customer, auth_headers, admin_headers):
        sample_shop.is_active = False
        db.session.commit()

        response = client.get('/api/points/balance/1001', headers=auth_headers)
        assert response.status_code == 403
        assert response.get_json()['error']['code'] == 'SHOP_INACTIVE'

        response = client.post('/api/points/redeem', data=json.dumps({
            'customer_id': '1001', 'points_to_redeem': 50,
        }), headers=auth_headers)
        assert response.status_code == 403

        response = client.get('/api/points/customers', headers=admin_headers)
        assert response.status_code == 403
        assert response.get_json()['error']['code'] == 'SHOP_INACTIVE'


class TestSessionToken:

    def _token(self, secret, **claims):
        import jwt
        from datetime import datetime, timedelta

        payload = {
            'iss': 'https://test-shop.myshopify.com/admin',
            'dest': 'https://test-shop.myshopify.com',
            'aud': 'api-key',
            'sub': 'gid://shopify/StaffMember/1',
            'exp': datetime.utcnow() + timedelta(minutes=1),
        }
        payload.update(claims)
        return jwt.encode(payload, secret, algorithm='HS256')

    def test_session_token_resolves_shop(self, app, client, sample_customer):
        app.config['SHOPIFY_API_KEY'] = 'api-key'
        app.config['SHOPIFY_API_SECRET'] = 'session-token-secret-used-in-tests-only'

        response = client.get('/api/points/balance/1001', headers={
            'Authorization': f"Bearer {self._token('session-token-secret-used-in-tests-only')}"
        })

        assert response.status_code == 200
        assert response.get_json()['points_balance'] == 200

    def test_forged_session_token_rejected(self, app, client, sample_customer):
        app.config['SHOPIFY_API_KEY'] = 'api-key'
        app.config['SHOPIFY_API_SECRET'] = 'session-token-secret-used-in-tests-only'

        response = client.get('/api/points/balance/1001', headers={
            'Authorization': f"Bearer {self._token('some-other-secret-of-the-same-length-x')}"
        })

        assert response.status_code == 401
