"""
Tests for the points ledger.

Covers:
- Earning, redeeming, adjusting and reversing points
- Rejected operations leave balance and ledger untouched
- Keyed writes apply once
- Conflicting concurrent writes are retried, then abandoned
- Ledger replay matches stored balances
"""
import pytest
from sqlalchemy import event

from spinrewards.extensions import db
from spinrewards.models import Customer, Transaction, TransactionType, Shop
from spinrewards.services import LedgerService
from spinrewards.utils.exceptions import (
    ValidationError,
    InvalidAmountError,
    CustomerNotFoundError,
    InsufficientBalanceError,
    NegativeResultError,
    ConcurrencyError,
)

SHOP = 'test-shop.myshopify.com'


def _reload(customer_id):
    db.session.expire_all()
    return Customer.query.get(customer_id)


def _transaction_count(customer_id):
    return Transaction.query.filter_by(customer_id=customer_id).count()


class TestEarnPoints:

    def test_earn_points_updates_balance_and_totals(self, app, ledger):
        transaction = ledger.earn_points('2001', 50, description='Order #1')

        customer = _reload(transaction.customer_id)
        assert customer.points_balance == 50
        assert customer.total_points_earned == 50
        assert customer.total_points_redeemed == 0
        assert transaction.transaction_type == 'earned'
        assert transaction.points == 50
        assert transaction.balance_after == 50

    def test_earn_points_creates_customer_lazily(self, app, ledger):
        assert ledger.get_customer('2002') is None

        ledger.earn_points('2002', 10, customer_data={'email': 'new@example.com'})

        customer = ledger.get_customer('2002')
        assert customer is not None
        assert customer.email == 'new@example.com'

    @pytest.mark.parametrize('points', [0, -5])
    def test_earn_points_rejects_non_positive(self, app, ledger, points):
        with pytest.raises(ValidationError):
            ledger.earn_points('2003', points)

    def test_apply_rejects_non_integer_delta(self, app, sample_customer, ledger):
        with pytest.raises(ValidationError):
            ledger.apply_ledger_operation(sample_customer, 1.5, TransactionType.ADJUSTMENT, 'half point')
        with pytest.raises(ValidationError):
            ledger.apply_ledger_operation(sample_customer, True, TransactionType.ADJUSTMENT, 'bool')


class TestRedeemPoints:

    def test_redeem_issues_discount_code(self, app, sample_customer, ledger):
        result = ledger.redeem_points('1001', 80)

        assert result['discount_code'].startswith('LOYALTY')
        assert len(result['discount_code']) == len('LOYALTY') + 13 + 4
        assert result['discount_amount'] == 80
        assert result['points_redeemed'] == 80
        assert result['new_balance'] == 120

        customer = _reload(sample_customer.id)
        assert customer.points_balance == 120
        assert customer.total_points_redeemed == 80

        transaction = result['transaction']
        assert transaction.transaction_type == 'redeemed'
        assert transaction.points == -80
        assert transaction.balance_after == 120
        assert transaction.discount_code == result['discount_code']
        assert transaction.meta['discount_type'] == 'fixed_amount'

    def test_redeem_uses_shop_ratio(self, app, sample_customer, ledger):
        db.session.add(Shop(shop_domain=SHOP, settings={'points_to_currency_ratio': 2}))
        db.session.commit()

        result = ledger.redeem_points('1001', 30)

        assert result['discount_amount'] == 60
        assert result['transaction'].meta['ratio'] == 2

    def test_redeem_with_fractional_ratio(self, app, sample_customer, ledger):
        app.config['POINTS_TO_CURRENCY_RATIO'] = 0.01

        result = ledger.redeem_points('1001', 150)

        assert result['discount_amount'] == 1.5
        assert result['new_balance'] == 50

    def test_configured_ratio_is_parsed_as_float(self):
        from spinrewards.config import BaseConfig
        assert isinstance(BaseConfig.POINTS_TO_CURRENCY_RATIO, float)

    def test_redeem_insufficient_balance_has_no_side_effects(self, app, sample_customer, ledger):
        before = _transaction_count(sample_customer.id)

        with pytest.raises(InsufficientBalanceError) as exc_info:
            ledger.redeem_points('1001', 500)

        assert exc_info.value.details == {'available': 200, 'requested': 500}
        customer = _reload(sample_customer.id)
        assert customer.points_balance == 200
        assert customer.total_points_redeemed == 0
        assert _transaction_count(sample_customer.id) == before

    @pytest.mark.parametrize('amount', [0, -10, True, '20'])
    def test_redeem_invalid_amount(self, app, sample_customer, ledger, amount):
        with pytest.raises(InvalidAmountError):
            ledger.redeem_points('1001', amount)

    def test_redeem_unknown_customer(self, app, ledger):
        with pytest.raises(CustomerNotFoundError):
            ledger.redeem_points('nobody', 10)

    def test_redeem_entire_balance(self, app, sample_customer, ledger):
        result = ledger.redeem_points('1001', 200)
        assert result['new_balance'] == 0


class TestAdjustPoints:

    def test_adjust_with_reason(self, app, sample_customer, ledger):
        result = ledger.adjust_points('1001', -50, 'Damaged item goodwill reversal')

        assert result['previous_balance'] == 200
        assert result['new_balance'] == 150
        transaction = result['transaction']
        assert transaction.description == 'Damaged item goodwill reversal'
        assert transaction.meta['adjustment_type'] == 'manual'
        assert transaction.meta['previous_balance'] == 200

    def test_adjust_default_description(self, app, sample_customer, ledger):
        result = ledger.adjust_points('1001', 25, '   ')
        assert result['transaction'].description == 'Admin adjustment: added 25 points'

        result = ledger.adjust_points('1001', -5)
        assert result['transaction'].description == 'Admin adjustment: removed 5 points'

    def test_positive_adjust_counts_as_earned(self, app, sample_customer, ledger):
        ledger.adjust_points('1001', 30, 'Bonus')
        customer = _reload(sample_customer.id)
        assert customer.total_points_earned == 230
        assert customer.total_points_redeemed == 0

    def test_adjust_below_zero_rejected(self, app, sample_customer, ledger):
        before = _transaction_count(sample_customer.id)

        with pytest.raises(NegativeResultError) as exc_info:
            ledger.adjust_points('1001', -201, 'Too much')

        assert exc_info.value.details == {'current_balance': 200, 'requested_change': -201}
        assert _reload(sample_customer.id).points_balance == 200
        assert _transaction_count(sample_customer.id) == before

    def test_adjust_zero_rejected(self, app, sample_customer, ledger):
        with pytest.raises(ValidationError):
            ledger.adjust_points('1001', 0, 'Nothing')

    def test_adjust_unknown_customer(self, app, ledger):
        with pytest.raises(CustomerNotFoundError):
            ledger.adjust_points('nobody', 10, 'Gift')


class TestReversePoints:

    def test_reverse_points(self, app, sample_customer, ledger):
        transaction = ledger.reverse_points(sample_customer, 50, 'Order cancelled', orders_delta=0)

        assert transaction.points == -50
        assert transaction.transaction_type == 'adjustment'
        assert transaction.meta['adjustment_type'] == 'order_reversal'
        assert _reload(sample_customer.id).points_balance == 150

    def test_reverse_skipped_when_points_already_spent(self, app, sample_customer, ledger):
        ledger.redeem_points('1001', 180)
        before = _transaction_count(sample_customer.id)

        result = ledger.reverse_points(_reload(sample_customer.id), 50, 'Order cancelled')

        assert result is None
        assert _reload(sample_customer.id).points_balance == 20
        assert _transaction_count(sample_customer.id) == before


class TestIdempotency:

    def test_keyed_write_applies_once(self, app, ledger):
        first = ledger.earn_points('3001', 50, idempotency_key=f'{SHOP}:9001:earned', orders_delta=1)
        second = ledger.earn_points('3001', 50, idempotency_key=f'{SHOP}:9001:earned', orders_delta=1)

        assert first.id == second.id
        customer = _reload(first.customer_id)
        assert customer.points_balance == 50
        assert customer.total_orders == 1
        assert _transaction_count(customer.id) == 1


class TestOptimisticConcurrency:
    """Another writer bumps the customer row between our read and our update."""

    @staticmethod
    def _bump_before_update(customer_id, points=15, times=1):
        calls = {'remaining': times}

        def listener(conn, cursor, statement, parameters, context, executemany):
            if calls['remaining'] and statement.startswith('UPDATE customers'):
                calls['remaining'] -= 1
                cursor.execute(
                    'UPDATE customers SET version = version + 1, '
                    'points_balance = points_balance + ? WHERE id = ?',
                    (points, customer_id)
                )

        event.listen(db.engine, 'before_cursor_execute', listener)
        return listener

    def test_conflicting_write_is_retried_on_fresh_balance(self, app, sample_customer, ledger):
        listener = self._bump_before_update(sample_customer.id)
        try:
            transaction = ledger.earn_points('1001', 10)
        finally:
            event.remove(db.engine, 'before_cursor_execute', listener)

        customer = _reload(sample_customer.id)
        assert customer.points_balance == 225
        assert transaction.balance_after == customer.points_balance
        assert _transaction_count(sample_customer.id) == 1

    def test_gives_up_after_max_retries(self, app, sample_customer, ledger):
        app.config['LEDGER_MAX_RETRIES'] = 3
        listener = self._bump_before_update(sample_customer.id, points=0, times=10)
        try:
            with pytest.raises(ConcurrencyError):
                ledger.earn_points('1001', 10)
        finally:
            event.remove(db.engine, 'before_cursor_execute', listener)

        customer = _reload(sample_customer.id)
        assert customer.points_balance == 200
        assert _transaction_count(sample_customer.id) == 0


class TestReadSide:

    def test_balance_for_unknown_customer_is_zeroed(self, app, ledger):
        balance = ledger.get_balance('ghost')

        assert balance['is_new'] is True
        assert balance['points_balance'] == 0
        assert Customer.query.filter_by(shopify_customer_id='ghost').count() == 0

    def test_balance_for_known_customer(self, app, sample_customer, ledger):
        balance = ledger.get_balance('1001')
        assert balance['is_new'] is False
        assert balance['points_balance'] == 200

    def test_transactions_newest_first(self, app, sample_customer, ledger):
        ledger.redeem_points('1001', 10)
        ledger.adjust_points('1001', 5, 'Bonus')

        result = ledger.list_transactions('1001', page=1, limit=2)

        assert [t['type'] for t in result['transactions']] == ['adjustment', 'redeemed']
        assert result['pagination']['total'] == 3
        assert result['pagination']['pages'] == 2

    def test_shop_transactions_filters(self, app, sample_customer, ledger):
        ledger.redeem_points('1001', 10)

        result = ledger.list_shop_transactions(transaction_type='redeemed')
        assert result['pagination']['total'] == 1
        assert result['transactions'][0]['customer_email'] == 'jane@example.com'

        result = ledger.list_shop_transactions(customer_email='nomatch')
        assert result['pagination']['total'] == 0

    def test_list_customers_with_stats(self, app, sample_customer, ledger):
        ledger.earn_points('1002', 40)
        ledger.redeem_points('1001', 20)

        result = ledger.list_customers()

        assert [c['customer_id'] for c in result['customers']] == ['1001', '1002']
        assert result['stats'] == {
            'total_customers': 2,
            'total_points_issued': 240,
            'total_points_redeemed': 20,
            'total_points_outstanding': 220,
        }


class TestLedgerReplay:

    def test_replay_matches_balance(self, app, sample_customer, ledger):
        ledger.redeem_points('1001', 75)
        ledger.adjust_points('1001', 12, 'Bonus')
        ledger.reverse_points(_reload(sample_customer.id), 30, 'Cancelled')
        with pytest.raises(InsufficientBalanceError):
            ledger.redeem_points('1001', 1000)

        report = ledger.verify_ledger('1001')

        assert report['consistent'] is True
        assert report['mismatches'] == []
        assert report['replayed_balance'] == 107
        assert report['points_balance'] == 107

    def test_replay_detects_tampering(self, app, sample_customer, ledger):
        Customer.query.filter_by(id=sample_customer.id).update({'points_balance': 999})
        db.session.commit()

        report = ledger.verify_ledger('1001')

        assert report['consistent'] is False
        assert report['replayed_balance'] == 200
