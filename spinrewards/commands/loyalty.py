"""
Loyalty maintenance commands.

verify-ledger is safe to run from cron; it only reads:

# Nightly ledger consistency check
0 3 * * * cd /app && flask loyalty verify-ledger --shop=store.myshopify.com
"""
import sys

import click
from flask.cli import with_appcontext
from ..extensions import db
from ..models import Customer
from ..services.catalog_service import CatalogService, probability_warning
from ..services.ledger_service import LedgerService
from ..services.spin_service import SpinService


@click.group('loyalty')
def loyalty_cli():
    """Points ledger and spin wheel commands."""
    pass


@loyalty_cli.command('init-db')
@with_appcontext
def init_db():
    """Create any missing tables."""
    db.create_all()
    click.echo('Database tables created')


@loyalty_cli.command('seed-wheel')
@click.option('--shop', required=True, help='Shop domain')
@with_appcontext
def seed_wheel(shop):
    """Create the default spin wheel for a shop (no-op if it exists)."""
    wheel = CatalogService(shop).get_or_create_catalog()
    click.echo(f'Spin wheel for {shop}: {len(wheel.rewards)} rewards')
    for reward in wheel.rewards:
        status = '' if reward.is_active else ' (inactive)'
        click.echo(f'  {reward.reward_id:<20} {reward.reward_type:<20} {reward.probability:>6g}%{status}')

    warning = probability_warning(wheel.rewards)
    if warning:
        click.echo(f'WARNING: {warning}')


@loyalty_cli.command('verify-ledger')
@click.option('--shop', required=True, help='Shop domain')
@click.option('--customer', 'customer_id', help='Single Shopify customer ID (or all if not specified)')
@with_appcontext
def verify_ledger(shop, customer_id):
    """
    Replay ledgers and compare with stored balances.

    Exits with status 1 when any customer is inconsistent.
    """
    ledger = LedgerService(shop)

    if customer_id:
        customer_ids = [customer_id]
    else:
        customer_ids = [
            c.shopify_customer_id
            for c in Customer.query.filter_by(shop_domain=shop).order_by(Customer.id).all()
        ]

    inconsistent = 0
    for cid in customer_ids:
        report = ledger.verify_ledger(cid)
        if report['consistent']:
            continue
        inconsistent += 1
        click.echo(
            f"Customer {cid}: balance {report['points_balance']}, "
            f"replayed {report['replayed_balance']}, "
            f"{len(report['mismatches'])} bad balance_after entries"
        )

    click.echo(f'Checked {len(customer_ids)} customers, {inconsistent} inconsistent')
    if inconsistent:
        sys.exit(1)


@loyalty_cli.command('outstanding-codes')
@click.option('--shop', required=True, help='Shop domain')
@with_appcontext
def outstanding_codes(shop):
    """List unredeemed, unexpired spin discount codes."""
    spins = SpinService(shop).outstanding_codes()
    for spin in spins:
        click.echo(
            f'{spin.discount_code}  {spin.reward_label:<20} '
            f'customer {spin.shopify_customer_id}  expires {spin.expires_at:%Y-%m-%d}'
        )
    click.echo(f'{len(spins)} outstanding codes')


def init_app(app):
    """Register loyalty commands with Flask app."""
    app.cli.add_command(loyalty_cli)
