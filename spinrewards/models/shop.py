"""
Shop model - one row per installed Shopify store.
"""
from datetime import datetime
from flask import current_app
from ..extensions import db


# Shop.settings keys and the config values they fall back to
SETTING_DEFAULTS = {
    'points_per_order': 'POINTS_PER_ORDER',
    'points_to_currency_ratio': 'POINTS_TO_CURRENCY_RATIO',
    'welcome_points': 'WELCOME_POINTS',
}


class Shop(db.Model):
    """
    Shopify store that installed the app.
    Global table - customers and wheels are scoped by shop_domain.
    """
    __tablename__ = 'shops'

    id = db.Column(db.Integer, primary_key=True)
    shop_domain = db.Column(db.String(255), unique=True, nullable=False, index=True)
    access_token = db.Column(db.Text)  # Encrypted in production
    shopify_shop_id = db.Column(db.String(50))
    webhook_secret = db.Column(db.String(100))

    name = db.Column(db.String(255))
    email = db.Column(db.String(255))
    currency = db.Column(db.String(10), default='INR')
    timezone = db.Column(db.String(64))

    # points_per_order, points_to_currency_ratio, welcome_points, is_active
    settings = db.Column(db.JSON, default=dict)

    plan = db.Column(db.String(20), default='free')  # free, basic, premium
    is_active = db.Column(db.Boolean, default=True)

    installed_at = db.Column(db.DateTime, default=datetime.utcnow)
    last_active_at = db.Column(db.DateTime, default=datetime.utcnow)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f'<Shop {self.shop_domain}>'

    def get_setting(self, key: str):
        settings = self.settings or {}
        if settings.get(key) is not None:
            return settings[key]
        return current_app.config.get(SETTING_DEFAULTS[key])

    def to_dict(self):
        return {
            'id': self.id,
            'shop_domain': self.shop_domain,
            'name': self.name,
            'currency': self.currency,
            'plan': self.plan,
            'is_active': self.is_active,
            'settings': {key: self.get_setting(key) for key in SETTING_DEFAULTS},
        }


def get_shop_setting(shop_domain: str, key: str):
    """
    Read a loyalty setting for a shop, falling back to app config.

    A shop without a row still gets the configured defaults so that
    storefront calls for freshly installed shops keep working.
    """
    shop = Shop.query.filter_by(shop_domain=shop_domain).first()
    if shop:
        return shop.get_setting(key)
    return current_app.config.get(SETTING_DEFAULTS[key])
