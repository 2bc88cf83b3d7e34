"""
Shared fixtures for the Spin Rewards test suite.

Each test gets a fresh app bound to an in-memory SQLite database; tables
are created by the app factory (AUTO_CREATE_TABLES) and dropped afterwards.
"""
import json
import hmac
import hashlib
import base64
from datetime import datetime, timedelta

import jwt
import pytest

from spinrewards import create_app
from spinrewards.extensions import db

SHOP_DOMAIN = 'test-shop.myshopify.com'
WEBHOOK_SECRET = 'test_webhook_secret'


def generate_hmac_signature(payload: bytes, secret: str = WEBHOOK_SECRET) -> str:
    """Generate Shopify-compatible HMAC signature."""
    return base64.b64encode(
        hmac.new(secret.encode('utf-8'), payload, hashlib.sha256).digest()
    ).decode('utf-8')


@pytest.fixture
def app():
    app = create_app('testing')
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def auth_headers():
    return {
        'X-Shop-Domain': SHOP_DOMAIN,
        'Content-Type': 'application/json'
    }


@pytest.fixture
def admin_headers(app):
    """Headers carrying a Shopify session token signed with the test app secret."""
    token = jwt.encode({
        'iss': f'https://{SHOP_DOMAIN}/admin',
        'dest': f'https://{SHOP_DOMAIN}',
        'aud': app.config['SHOPIFY_API_KEY'],
        'sub': 'gid://shopify/StaffMember/42',
        'exp': datetime.utcnow() + timedelta(minutes=1),
    }, app.config['SHOPIFY_API_SECRET'], algorithm='HS256')
    return {
        'Authorization': f'Bearer {token}',
        'Content-Type': 'application/json'
    }


@pytest.fixture
def sample_shop(app):
    from spinrewards.models import Shop

    shop = Shop(
        shop_domain=SHOP_DOMAIN,
        name='Test Shop',
        email='owner@test-shop.com',
        currency='INR',
        settings={},
    )
    db.session.add(shop)
    db.session.commit()
    return shop


@pytest.fixture
def ledger(app):
    from spinrewards.services import LedgerService
    return LedgerService(SHOP_DOMAIN)


@pytest.fixture
def sample_customer(app, ledger):
    """Customer 1001 with 200 points earned through the ledger."""
    customer, _ = ledger.get_or_create_customer('1001', {
        'email': 'jane@example.com',
        'first_name': 'Jane',
        'last_name': 'Doe',
    })
    ledger.earn_points(customer, 200, description='Opening balance')
    return customer


@pytest.fixture
def send_webhook(client):
    """POST a signed webhook; pass secret=None to leave the signature off."""
    def _send(path, payload, secret=WEBHOOK_SECRET, shop=SHOP_DOMAIN):
        body = json.dumps(payload).encode('utf-8')
        headers = {'Content-Type': 'application/json'}
        if shop:
            headers['X-Shopify-Shop-Domain'] = shop
        if secret:
            headers['X-Shopify-Hmac-SHA256'] = generate_hmac_signature(body, secret)
        return client.post(path, data=body, headers=headers)
    return _send
