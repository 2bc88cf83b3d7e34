"""
Points Ledger Service.

The single writer of customer balances and ledger entries. Every operation
that changes a balance (order award, redemption, spin win, admin adjustment,
order reversal) goes through apply_ledger_operation(), which:

- checks the non-negative balance precondition
- updates balance and running totals with a version-guarded UPDATE
  (optimistic concurrency, retried on conflict)
- appends exactly one Transaction whose balance_after is the balance the
  UPDATE wrote

all inside one database transaction.
"""
from datetime import datetime, timedelta
from typing import Optional, Dict, Any, Tuple, Union

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..extensions import db, unit_of_work
from ..models import Customer, Transaction, TransactionType, get_shop_setting
from ..utils.exceptions import (
    LoyaltyError,
    ValidationError,
    InvalidAmountError,
    CustomerNotFoundError,
    InsufficientBalanceError,
    NegativeResultError,
    ConcurrencyError,
    InternalError,
)
from .discount_codes import mint_discount_code


CustomerRef = Union[Customer, str, int]


def _require_int(value, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f'{field} must be a whole number of points', field)
    return value


class LedgerService:
    """
    Points ledger for one shop.

    Usage:
        ledger = LedgerService('store.myshopify.com')

        ledger.earn_points('7890123', 50, description='Order #1001')
        result = ledger.redeem_points('7890123', 30)
        result = ledger.adjust_points('7890123', -10, 'Goodwill correction')
    """

    def __init__(self, shop_domain: str):
        self.shop_domain = shop_domain

    # ==================== Customers ====================

    def get_customer(self, customer_ref: CustomerRef) -> Optional[Customer]:
        if isinstance(customer_ref, Customer):
            return customer_ref
        return Customer.query.filter_by(
            shop_domain=self.shop_domain,
            shopify_customer_id=str(customer_ref)
        ).first()

    def get_or_create_customer(
        self,
        customer_ref: CustomerRef,
        customer_data: Dict[str, Any] = None
    ) -> Tuple[Customer, bool]:
        """
        Find the customer row, creating it on first use.

        Creation runs in a savepoint; losing a concurrent insert race falls
        back to reading the winner's row.

        Returns:
            (customer, created)
        """
        customer = self.get_customer(customer_ref)
        if customer:
            return customer, False

        customer_data = customer_data or {}
        customer = Customer(
            shop_domain=self.shop_domain,
            shopify_customer_id=str(customer_ref),
            email=customer_data.get('email'),
            first_name=customer_data.get('first_name'),
            last_name=customer_data.get('last_name'),
            points_balance=0,
            total_points_earned=0,
            total_points_redeemed=0,
            total_orders=0,
            version=0,
        )
        try:
            with db.session.begin_nested():
                db.session.add(customer)
        except IntegrityError:
            existing = self.get_customer(customer_ref)
            if existing is None:
                raise
            return existing, False

        current_app.logger.info(
            f'Created loyalty customer {customer.shopify_customer_id} for {self.shop_domain}'
        )
        return customer, True

    # ==================== Core ledger operation ====================

    def apply_ledger_operation(
        self,
        customer_ref: CustomerRef,
        delta: int,
        transaction_type: Union[TransactionType, str],
        description: str,
        metadata: Dict[str, Any] = None,
        *,
        order_id: str = None,
        order_number: str = None,
        discount_code: str = None,
        spin_reward_type: str = None,
        orders_delta: int = 0,
        idempotency_key: str = None,
        customer_data: Dict[str, Any] = None,
        commit: bool = True
    ) -> Transaction:
        """
        Apply one signed points change and record it.

        Args:
            customer_ref: Customer row or Shopify customer id (created if missing)
            delta: Signed points change
            transaction_type: earned, redeemed, spin_reward or adjustment
            description: Human-readable text stored verbatim
            metadata: Open key/value map, see METADATA_KEYS for known keys
            orders_delta: Change applied to total_orders in the same update
            idempotency_key: Replaying a key returns the original entry untouched
            commit: False when the caller owns the unit of work (spin resolution)

        Returns:
            The new Transaction, or the existing one for a replayed key

        Raises:
            InsufficientBalanceError: balance + delta would be negative
            ConcurrencyError: optimistic update kept conflicting
        """
        delta = _require_int(delta, 'points')
        try:
            transaction_type = TransactionType(transaction_type)
        except ValueError:
            raise ValidationError(f'Unknown transaction type: {transaction_type}', 'type')

        if idempotency_key:
            existing = Transaction.query.filter_by(idempotency_key=idempotency_key).first()
            if existing:
                current_app.logger.info(f'Ledger write {idempotency_key} already applied, skipping')
                return existing

        kwargs = dict(
            metadata=metadata,
            order_id=order_id,
            order_number=order_number,
            discount_code=discount_code,
            spin_reward_type=spin_reward_type,
            orders_delta=orders_delta,
            idempotency_key=idempotency_key,
            customer_data=customer_data,
        )

        if not commit:
            return self._apply(customer_ref, delta, transaction_type, description, **kwargs)

        try:
            with unit_of_work():
                transaction = self._apply(customer_ref, delta, transaction_type, description, **kwargs)
        except IntegrityError:
            # A concurrent delivery of the same keyed write won the insert
            if idempotency_key:
                existing = Transaction.query.filter_by(idempotency_key=idempotency_key).first()
                if existing:
                    return existing
            current_app.logger.exception(f'Ledger write failed for {self.shop_domain}')
            raise InternalError()
        except LoyaltyError:
            raise
        except SQLAlchemyError:
            current_app.logger.exception(
                f'Ledger write failed for {self.shop_domain} customer {customer_ref}: '
                f'{transaction_type.value} {delta:+d}'
            )
            raise InternalError()

        return transaction

    def _apply(
        self,
        customer_ref: CustomerRef,
        delta: int,
        transaction_type: TransactionType,
        description: str,
        metadata: Dict[str, Any] = None,
        order_id: str = None,
        order_number: str = None,
        discount_code: str = None,
        spin_reward_type: str = None,
        orders_delta: int = 0,
        idempotency_key: str = None,
        customer_data: Dict[str, Any] = None
    ) -> Transaction:
        customer, _ = self.get_or_create_customer(customer_ref, customer_data)
        db.session.flush()
        customer_id = customer.id
        max_retries = current_app.config.get('LEDGER_MAX_RETRIES', 5)

        for attempt in range(1, max_retries + 1):
            current = Customer.query.filter_by(id=customer_id).populate_existing().one()
            new_balance = current.points_balance + delta
            if new_balance < 0:
                current_app.logger.warning(
                    f'Rejected {transaction_type.value} of {delta:+d} for customer '
                    f'{current.shopify_customer_id}: balance {current.points_balance}'
                )
                raise InsufficientBalanceError(available=current.points_balance, requested=-delta)

            values = {
                'points_balance': new_balance,
                'version': current.version + 1,
                'updated_at': datetime.utcnow(),
            }
            if delta > 0:
                values['total_points_earned'] = current.total_points_earned + delta
            if transaction_type == TransactionType.REDEEMED:
                values['total_points_redeemed'] = current.total_points_redeemed - delta
            if orders_delta:
                values['total_orders'] = max(0, current.total_orders + orders_delta)

            updated = Customer.query.filter_by(
                id=customer_id,
                version=current.version
            ).update(values, synchronize_session=False)

            if updated:
                break

            current_app.logger.warning(
                f'Concurrent update on customer {customer_id}, retrying ({attempt}/{max_retries})'
            )
        else:
            raise ConcurrencyError(customer_id, max_retries)

        meta = dict(metadata or {})
        if transaction_type == TransactionType.ADJUSTMENT:
            meta['previous_balance'] = current.points_balance

        transaction = Transaction(
            customer_id=customer_id,
            shop_domain=self.shop_domain,
            shopify_customer_id=current.shopify_customer_id,
            transaction_type=transaction_type.value,
            points=delta,
            description=description,
            order_id=order_id,
            order_number=str(order_number) if order_number is not None else None,
            discount_code=discount_code,
            spin_reward_type=spin_reward_type,
            balance_after=new_balance,
            meta=meta,
            idempotency_key=idempotency_key,
            created_at=datetime.utcnow(),
        )
        db.session.add(transaction)
        db.session.flush()
        db.session.expire(current)

        current_app.logger.info(
            f'Ledger {transaction_type.value}: customer {transaction.shopify_customer_id} '
            f'{delta:+d} pts, balance {new_balance} ({self.shop_domain})'
        )
        return transaction

    # ==================== Operations ====================

    def earn_points(
        self,
        customer_ref: CustomerRef,
        points: int,
        description: str = None,
        metadata: Dict[str, Any] = None,
        **kwargs
    ) -> Transaction:
        """Award a positive number of points (type earned)."""
        points = _require_int(points, 'points')
        if points <= 0:
            raise ValidationError('Points amount must be positive', 'points')

        return self.apply_ledger_operation(
            customer_ref,
            points,
            TransactionType.EARNED,
            description or f'Earned {points} points',
            metadata,
            **kwargs
        )

    def redeem_points(self, customer_ref: CustomerRef, points_to_redeem) -> Dict[str, Any]:
        """
        Exchange points for a fixed-amount discount code.

        Raises:
            InvalidAmountError: fewer than 1 point requested
            CustomerNotFoundError: no customer row
            InsufficientBalanceError: balance below the requested points
        """
        if isinstance(points_to_redeem, bool) or not isinstance(points_to_redeem, int):
            raise InvalidAmountError('Points to redeem must be a whole number')
        if points_to_redeem < 1:
            raise InvalidAmountError()

        customer = self.get_customer(customer_ref)
        if not customer:
            raise CustomerNotFoundError(customer_ref)

        if customer.points_balance < points_to_redeem:
            raise InsufficientBalanceError(available=customer.points_balance, requested=points_to_redeem)

        ratio = get_shop_setting(self.shop_domain, 'points_to_currency_ratio')
        discount_amount = round(points_to_redeem * ratio, 2)
        discount_code = mint_discount_code()

        transaction = self.apply_ledger_operation(
            customer,
            -points_to_redeem,
            TransactionType.REDEEMED,
            f'Redeemed {points_to_redeem} points for {discount_amount} discount',
            {
                'discount_amount': discount_amount,
                'discount_type': 'fixed_amount',
                'ratio': ratio,
            },
            discount_code=discount_code,
        )

        return {
            'discount_code': discount_code,
            'discount_amount': discount_amount,
            'points_redeemed': points_to_redeem,
            'new_balance': transaction.balance_after,
            'transaction': transaction,
        }

    def adjust_points(
        self,
        customer_ref: CustomerRef,
        delta,
        reason: str = None,
        created_by: str = None
    ) -> Dict[str, Any]:
        """
        Admin adjustment by any signed, non-zero amount.

        Raises:
            NegativeResultError: the adjustment would take the balance below zero
            CustomerNotFoundError: no customer row
        """
        delta = _require_int(delta, 'points')
        if delta == 0:
            raise ValidationError('Adjustment must be non-zero', 'points')

        customer = self.get_customer(customer_ref)
        if not customer:
            raise CustomerNotFoundError(customer_ref)

        if reason and reason.strip():
            description = reason
        else:
            verb = 'added' if delta > 0 else 'removed'
            description = f'Admin adjustment: {verb} {abs(delta)} points'

        metadata = {'adjustment_type': 'manual'}
        if created_by:
            metadata['created_by'] = created_by

        try:
            transaction = self.apply_ledger_operation(
                customer,
                delta,
                TransactionType.ADJUSTMENT,
                description,
                metadata,
            )
        except InsufficientBalanceError as e:
            raise NegativeResultError(current_balance=e.available, requested_change=delta)

        previous_balance = transaction.balance_after - delta

        return {
            'customer_id': transaction.shopify_customer_id,
            'points_adjusted': delta,
            'previous_balance': previous_balance,
            'new_balance': transaction.balance_after,
            'transaction': transaction,
        }

    def reverse_points(
        self,
        customer_ref: CustomerRef,
        points: int,
        description: str,
        *,
        order_id: str = None,
        order_number: str = None,
        orders_delta: int = -1,
        idempotency_key: str = None,
        reversed_transaction_id: int = None
    ) -> Optional[Transaction]:
        """
        Undo a prior award as a negative adjustment.

        Bounded by the current balance: when the customer has already spent
        the points (balance < points) the reversal is skipped and None is
        returned. Skipping is not an error.
        """
        points = _require_int(points, 'points')
        if points <= 0:
            return None

        metadata = {'adjustment_type': 'order_reversal'}
        if reversed_transaction_id:
            metadata['reversed_transaction_id'] = reversed_transaction_id

        try:
            return self.apply_ledger_operation(
                customer_ref,
                -points,
                TransactionType.ADJUSTMENT,
                description,
                metadata,
                order_id=order_id,
                order_number=order_number,
                orders_delta=orders_delta,
                idempotency_key=idempotency_key,
            )
        except InsufficientBalanceError as e:
            current_app.logger.info(
                f'Reversal of {points} pts skipped for customer {customer_ref} '
                f'({self.shop_domain}): balance {e.available}'
            )
            return None

    # ==================== Read side ====================

    def get_balance(self, customer_ref: CustomerRef) -> Dict[str, Any]:
        """Balance snapshot; unknown customers get the zeroed new-customer shape."""
        customer = self.get_customer(customer_ref)
        if not customer:
            return Customer.empty_snapshot(str(customer_ref))
        return customer.balance_snapshot()

    def list_transactions(self, customer_ref: CustomerRef, page: int = 1, limit: int = 20) -> Dict[str, Any]:
        """Newest-first page of one customer's ledger."""
        page = max(page or 1, 1)
        limit = min(max(limit or 20, 1), 100)
        shopify_customer_id = (
            customer_ref.shopify_customer_id if isinstance(customer_ref, Customer) else str(customer_ref)
        )

        query = Transaction.query.filter_by(
            shop_domain=self.shop_domain,
            shopify_customer_id=shopify_customer_id
        ).order_by(Transaction.created_at.desc(), Transaction.id.desc())

        pagination = query.paginate(page=page, per_page=limit, error_out=False)

        return {
            'transactions': [t.to_dict() for t in pagination.items],
            'pagination': {
                'page': page,
                'limit': limit,
                'total': pagination.total,
                'pages': pagination.pages,
            }
        }

    def list_shop_transactions(
        self,
        page: int = 1,
        limit: int = 25,
        transaction_type: str = None,
        days: int = None,
        min_points: int = None,
        max_points: int = None,
        customer_email: str = None
    ) -> Dict[str, Any]:
        """Admin view across all customers of the shop, with filters."""
        page = max(page or 1, 1)
        limit = min(max(limit or 25, 1), 100)

        query = db.session.query(Transaction, Customer.email).join(
            Customer, Transaction.customer_id == Customer.id
        ).filter(Transaction.shop_domain == self.shop_domain)

        if transaction_type:
            query = query.filter(Transaction.transaction_type == transaction_type)
        if days:
            since = datetime.utcnow() - timedelta(days=days)
            query = query.filter(Transaction.created_at >= since)
        if min_points is not None:
            query = query.filter(Transaction.points >= min_points)
        if max_points is not None:
            query = query.filter(Transaction.points <= max_points)
        if customer_email:
            query = query.filter(Customer.email.ilike(f'%{customer_email}%'))

        total = query.count()
        rows = query.order_by(
            Transaction.created_at.desc(), Transaction.id.desc()
        ).offset((page - 1) * limit).limit(limit).all()

        transactions = []
        for transaction, email in rows:
            data = transaction.to_dict()
            data['customer_email'] = email
            transactions.append(data)

        return {
            'transactions': transactions,
            'pagination': {
                'page': page,
                'limit': limit,
                'total': total,
                'pages': (total + limit - 1) // limit,
            }
        }

    def list_customers(self, page: int = 1, limit: int = 50) -> Dict[str, Any]:
        """Customers ranked by lifetime points, with shop-wide totals."""
        page = max(page or 1, 1)
        limit = min(max(limit or 50, 1), 100)

        pagination = Customer.query.filter_by(shop_domain=self.shop_domain).order_by(
            Customer.total_points_earned.desc(), Customer.id.asc()
        ).paginate(page=page, per_page=limit, error_out=False)

        return {
            'customers': [c.to_dict() for c in pagination.items],
            'pagination': {
                'page': page,
                'limit': limit,
                'total': pagination.total,
                'pages': pagination.pages,
            },
            'stats': self.shop_stats(),
        }

    def shop_stats(self) -> Dict[str, int]:
        row = db.session.query(
            func.count(Customer.id),
            func.coalesce(func.sum(Customer.total_points_earned), 0),
            func.coalesce(func.sum(Customer.total_points_redeemed), 0),
            func.coalesce(func.sum(Customer.points_balance), 0),
        ).filter(Customer.shop_domain == self.shop_domain).one()

        return {
            'total_customers': int(row[0]),
            'total_points_issued': int(row[1]),
            'total_points_redeemed': int(row[2]),
            'total_points_outstanding': int(row[3]),
        }

    def verify_ledger(self, customer_ref: CustomerRef) -> Dict[str, Any]:
        """
        Replay a customer's ledger.

        The running sum of points must match every balance_after, and the
        final sum must match the stored balance.
        """
        customer = self.get_customer(customer_ref)
        if not customer:
            raise CustomerNotFoundError(customer_ref)

        running = 0
        mismatches = []
        entries = customer.transactions.order_by(Transaction.id.asc()).all()
        for entry in entries:
            running += entry.points
            if entry.balance_after != running:
                mismatches.append({
                    'transaction_id': entry.id,
                    'balance_after': entry.balance_after,
                    'replayed_balance': running,
                })

        return {
            'customer_id': customer.shopify_customer_id,
            'transactions': len(entries),
            'points_balance': customer.points_balance,
            'replayed_balance': running,
            'mismatches': mismatches,
            'consistent': not mismatches and running == customer.points_balance,
        }
