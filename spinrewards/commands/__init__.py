"""
CLI Commands for Spin Rewards.

Usage:
    flask loyalty init-db                                   # Create missing tables
    flask loyalty seed-wheel --shop store.myshopify.com     # Default spin wheel
    flask loyalty verify-ledger --shop store.myshopify.com  # Replay every ledger
    flask loyalty outstanding-codes --shop store.myshopify.com
"""
from .loyalty import init_app as init_loyalty_commands


def init_app(app):
    """Register all CLI commands with the Flask app."""
    init_loyalty_commands(app)
