"""
Tests for the Spin Wheel API endpoints, including admin-only catalog access.
"""
import json
from unittest.mock import patch

from spinrewards.models import SpinHistory


class TestSpinCheck:

    def test_new_customer_can_spin(self, client, auth_headers):
        response = client.get('/api/spin/check/1001', headers=auth_headers)

        assert response.status_code == 200
        data = response.get_json()
        assert data['can_spin'] is True
        assert data['state'] == 'eligible'
        assert data['customer_id'] == '1001'


class TestSpinPlay:

    def test_spin_then_second_spin_rejected(self, client, sample_customer, auth_headers):
        with patch('random.SystemRandom.random', return_value=0.1):
            response = client.post('/api/spin/play', data=json.dumps({'customer_id': '1001'}),
                                   headers=auth_headers)

        assert response.status_code == 200
        data = response.get_json()
        assert data['success'] is True
        assert data['reward']['id'] == 'points_50'
        assert data['result']['new_balance'] == 250

        response = client.post('/api/spin/play', data=json.dumps({'customer_id': '1001'}),
                               headers=auth_headers)
        assert response.status_code == 400
        assert response.get_json()['error']['code'] == 'NOT_ELIGIBLE'

        check = client.get('/api/spin/check/1001', headers=auth_headers).get_json()
        assert check['can_spin'] is False
        assert check['next_spin_at'] is not None

    def test_spin_without_rewards(self, client, sample_customer, auth_headers, admin_headers):
        config = client.get('/api/spin/config', headers=auth_headers).get_json()
        for reward in config['rewards']:
            client.put(f"/api/spin/config/reward/{reward['id']}",
                       data=json.dumps({'is_active': False}), headers=admin_headers)

        response = client.post('/api/spin/play', data=json.dumps({'customer_id': '1001'}),
                               headers=auth_headers)

        assert response.status_code == 409
        assert response.get_json()['error']['code'] == 'NO_REWARDS_CONFIGURED'
        assert SpinHistory.query.count() == 0

    def test_spin_missing_customer(self, client, auth_headers):
        response = client.post('/api/spin/play', data=json.dumps({}), headers=auth_headers)
        assert response.status_code == 400

    def test_history(self, client, sample_customer, auth_headers, admin_headers):
        with patch('random.SystemRandom.random', return_value=0.6):
            client.post('/api/spin/play', data=json.dumps({'customer_id': '1001'}), headers=auth_headers)

        response = client.get('/api/spin/history/1001', headers=auth_headers)

        spins = response.get_json()['spins']
        assert len(spins) == 1
        assert spins[0]['reward']['type'] == 'discount_percentage'
        assert spins[0]['discount_code'].startswith('SPIN')

        codes = client.get('/api/spin/codes', headers=admin_headers).get_json()
        assert codes['total'] == 1


class TestSpinConfig:

    def test_get_default_config(self, client, admin_headers):
        response = client.get('/api/spin/config', headers=admin_headers)

        assert response.status_code == 200
        data = response.get_json()
        assert len(data['rewards']) == 6
        assert data['settings']['minimum_orders_required'] == 0
        assert data['warning'] is None

    def test_add_update_remove_reward(self, client, admin_headers):
        response = client.post('/api/spin/config/reward', data=json.dumps({
            'type': 'points', 'value': 25, 'label': '25 Points', 'probability': 0,
        }), headers=admin_headers)
        assert response.status_code == 201
        reward_id = response.get_json()['reward']['id']

        response = client.put(f'/api/spin/config/reward/{reward_id}', data=json.dumps({
            'label': 'Quarter Century',
        }), headers=admin_headers)
        assert response.get_json()['reward']['label'] == 'Quarter Century'

        response = client.delete(f'/api/spin/config/reward/{reward_id}', headers=admin_headers)
        assert response.get_json()['success'] is True
        assert len(client.get('/api/spin/config', headers=admin_headers).get_json()['rewards']) == 6

    def test_invalid_probability(self, client, admin_headers):
        response = client.post('/api/spin/config/reward', data=json.dumps({
            'type': 'points', 'value': 25, 'label': '25 Points', 'probability': 150,
        }), headers=admin_headers)

        assert response.status_code == 400
        assert response.get_json()['error']['code'] == 'INVALID_PROBABILITY'

    def test_unknown_reward(self, client, admin_headers):
        response = client.delete('/api/spin/config/reward/nope', headers=admin_headers)
        assert response.status_code == 404
        assert response.get_json()['error']['code'] == 'REWARD_NOT_FOUND'

    def test_update_settings(self, client, admin_headers):
        response = client.put('/api/spin/config/settings', data=json.dumps({
            'minimum_orders_required': 3,
        }), headers=admin_headers)

        assert response.get_json()['settings'] == {'minimum_orders_required': 3, 'is_active': True}
        check = client.get('/api/spin/check/1001', headers=admin_headers).get_json()
        assert check['can_spin'] is False


class TestHealth:

    def test_health(self, client):
        response = client.get('/health')
        assert response.status_code == 200
        assert response.get_json()['database']['status'] == 'connected'


class TestSpinAccessControl:

    def test_catalog_writes_require_session_token(self, client, auth_headers):
        response = client.post('/api/spin/config/reward', data=json.dumps({
            'type': 'points', 'value': 100000, 'label': 'Jackpot', 'probability': 100,
        }), headers=auth_headers)
        assert response.status_code == 403
        assert response.get_json()['error']['code'] == 'ADMIN_REQUIRED'

        response = client.put('/api/spin/config/settings', data=json.dumps({
            'is_active': False,
        }), headers=auth_headers)
        assert response.status_code == 403

        response = client.get('/api/spin/codes', headers=auth_headers)
        assert response.status_code == 403

    def test_redacted_shop_cannot_spin(self, client, sample_shop, sample_customer, auth_headers, send_webhook):
        send_webhook('/webhook/shop/redact', {'shop_domain': sample_shop.shop_domain})

        response = client.post('/api/spin/play', data=json.dumps({'customer_id': '1001'}),
                               headers=auth_headers)

        assert response.status_code == 403
        assert response.get_json()['error']['code'] == 'SHOP_INACTIVE'
        assert SpinHistory.query.count() == 0
