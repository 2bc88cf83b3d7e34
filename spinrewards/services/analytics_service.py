"""
Loyalty analytics for the admin dashboard.

- Totals: customers, points issued, outstanding
- Daily earned/redeemed activity over the last N days
- Balance segments (0-99, 100-499, 500-999, 1000-4999, 5000+)
- Top customers and recent ledger activity
- Spin engagement: share of customers who spun in the window
"""
from datetime import datetime, timedelta
from typing import Dict, Any, List

from sqlalchemy import func, case

from ..extensions import db
from ..models import Customer, Transaction, TransactionType, get_shop_setting

BALANCE_SEGMENTS = [
    ('0-99', 0, 100),
    ('100-499', 100, 500),
    ('500-999', 500, 1000),
    ('1000-4999', 1000, 5000),
    ('5000+', 5000, None),
]


class AnalyticsService:
    """
    Points program analytics for one shop.

    Usage:
        summary = AnalyticsService(shop_domain).get_summary(days=30)
    """

    def __init__(self, shop_domain: str):
        self.shop_domain = shop_domain

    def get_summary(self, days: int = 30) -> Dict[str, Any]:
        days = min(max(days or 30, 1), 365)
        start_date = datetime.utcnow() - timedelta(days=days)

        total_customers = Customer.query.filter_by(shop_domain=self.shop_domain).count()

        totals = db.session.query(
            func.coalesce(func.sum(Customer.total_points_earned), 0),
            func.coalesce(func.sum(Customer.points_balance), 0),
        ).filter(Customer.shop_domain == self.shop_domain).one()
        total_points_issued = int(totals[0])
        total_points_outstanding = int(totals[1])

        ratio = get_shop_setting(self.shop_domain, 'points_to_currency_ratio') or 1

        active_spinners = Customer.query.filter(
            Customer.shop_domain == self.shop_domain,
            Customer.last_spin_date >= start_date
        ).count()
        engagement_rate = round(active_spinners / total_customers * 100, 1) if total_customers else 0

        return {
            'period_days': days,
            'total_customers': total_customers,
            'total_points_issued': total_points_issued,
            'total_points_outstanding': total_points_outstanding,
            'total_value': total_points_outstanding * ratio,
            'engagement_rate': engagement_rate,
            'daily_activity': self._daily_activity(start_date),
            'customer_segments': self._balance_segments(total_customers),
            'redemptions': self._redemption_count(start_date),
            'top_customers': self._top_customers(),
            'recent_activity': self._recent_activity(),
        }

    def _daily_activity(self, start_date: datetime) -> List[Dict[str, Any]]:
        day = func.date(Transaction.created_at)
        rows = db.session.query(
            day.label('day'),
            func.coalesce(func.sum(case((Transaction.points > 0, Transaction.points), else_=0)), 0),
            func.coalesce(func.sum(case(
                (Transaction.transaction_type == TransactionType.REDEEMED.value, -Transaction.points),
                else_=0
            )), 0),
        ).filter(
            Transaction.shop_domain == self.shop_domain,
            Transaction.created_at >= start_date
        ).group_by(day).order_by(day).all()

        return [
            {'date': str(row[0]), 'points_earned': int(row[1]), 'points_redeemed': int(row[2])}
            for row in rows
        ]

    def _balance_segments(self, total_customers: int) -> List[Dict[str, Any]]:
        segments = []
        for name, low, high in BALANCE_SEGMENTS:
            query = Customer.query.filter(
                Customer.shop_domain == self.shop_domain,
                Customer.points_balance >= low
            )
            if high is not None:
                query = query.filter(Customer.points_balance < high)
            count = query.count()
            segments.append({
                'name': name,
                'count': count,
                'percentage': round(count / total_customers * 100, 1) if total_customers else 0,
            })
        return segments

    def _redemption_count(self, start_date: datetime) -> int:
        return Transaction.query.filter(
            Transaction.shop_domain == self.shop_domain,
            Transaction.transaction_type == TransactionType.REDEEMED.value,
            Transaction.created_at >= start_date
        ).count()

    def _top_customers(self, limit: int = 10) -> List[Dict[str, Any]]:
        customers = Customer.query.filter_by(shop_domain=self.shop_domain).order_by(
            Customer.total_points_earned.desc()
        ).limit(limit).all()
        return [c.to_dict() for c in customers]

    def _recent_activity(self, limit: int = 20) -> List[Dict[str, Any]]:
        rows = db.session.query(Transaction, Customer.email).join(
            Customer, Transaction.customer_id == Customer.id
        ).filter(
            Transaction.shop_domain == self.shop_domain
        ).order_by(Transaction.created_at.desc(), Transaction.id.desc()).limit(limit).all()

        activity = []
        for transaction, email in rows:
            data = transaction.to_dict()
            data['customer_email'] = email or 'Unknown'
            activity.append(data)
        return activity
