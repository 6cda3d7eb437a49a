# Overview: Service-layer read models for income, revenue and dashboard figures.

"""
Finance Aggregator

Income comes from two places and is counted exactly once:
- service income: Payment rows targeted at service orders, by method
- sales income: paid, non-cancelled SalesOrders (POS and online), reported
  under the single bucket 'pos_web' at their total

Payment rows targeted at sales orders exist for the money trail but are not
added again. Day buckets are calendar days in the tenant's timezone; sales
are dated by paid_at, payments by created_at.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import date, timedelta

from sqlalchemy import case, func

from ..extensions import db
from ..errors import ValidationError
from ..models import Customer, Payment, Product, SalesOrder, ServiceOrder, ServiceOrderItem, User
from ..time_utils import day_bounds_utc, local_date, today_local
from .tenant_service import get_tenant

SALES_BUCKET = "pos_web"
MAX_HISTORY_DAYS = 366


def _service_payments(tenant_id: int, start, end):
    return (
        db.session.query(Payment.amount_cents, Payment.method, Payment.created_at)
        .filter(
            Payment.tenant_id == tenant_id,
            Payment.service_order_id.isnot(None),
            Payment.created_at >= start,
            Payment.created_at < end,
        )
        .all()
    )


def _paid_sales(tenant_id: int, start, end):
    return (
        db.session.query(SalesOrder.total_amount_cents, SalesOrder.paid_at)
        .filter(
            SalesOrder.tenant_id == tenant_id,
            SalesOrder.payment_status == "paid",
            SalesOrder.status != "cancelled",
            SalesOrder.paid_at >= start,
            SalesOrder.paid_at < end,
        )
        .all()
    )


def daily_income(tenant_id: int, day: date | None = None) -> dict:
    """
    Income for one calendar day.

    Returns {"date", "total_cents", "breakdown"} where breakdown maps each
    service payment method and 'pos_web' to cents. Methods with no income
    that day are left out.
    """
    tz = get_tenant(tenant_id).timezone
    day = day or today_local(tz)
    start, end = day_bounds_utc(day, tz)

    breakdown: dict[str, int] = defaultdict(int)
    for amount, method, _created in _service_payments(tenant_id, start, end):
        breakdown[method] += amount
    sales_total = sum(amount for amount, _paid in _paid_sales(tenant_id, start, end))
    if sales_total:
        breakdown[SALES_BUCKET] += sales_total

    return {
        "date": day.isoformat(),
        "total_cents": sum(breakdown.values()),
        "breakdown": dict(breakdown),
    }


def _daily_series(tenant_id: int, start_day: date, end_day: date) -> list[dict]:
    if end_day < start_day:
        raise ValidationError("end date must not be before start date")
    if (end_day - start_day).days >= MAX_HISTORY_DAYS:
        raise ValidationError(f"date range cannot exceed {MAX_HISTORY_DAYS} days")

    tz = get_tenant(tenant_id).timezone
    start, _ = day_bounds_utc(start_day, tz)
    _, end = day_bounds_utc(end_day, tz)

    buckets = {}
    cursor = start_day
    while cursor <= end_day:
        buckets[cursor] = {"date": cursor.isoformat(), "services_cents": 0, "sales_cents": 0, "total_cents": 0}
        cursor += timedelta(days=1)

    for amount, _method, created in _service_payments(tenant_id, start, end):
        row = buckets[local_date(created, tz)]
        row["services_cents"] += amount
        row["total_cents"] += amount
    for amount, paid_at in _paid_sales(tenant_id, start, end):
        row = buckets[local_date(paid_at, tz)]
        row["sales_cents"] += amount
        row["total_cents"] += amount

    return [buckets[d] for d in sorted(buckets)]


def income_history(tenant_id: int, start_day: date, end_day: date) -> list[dict]:
    """Per-day services/sales/total in cents for [start_day, end_day], sorted by date."""
    return _daily_series(tenant_id, start_day, end_day)


def revenue_chart(tenant_id: int, days: int = 7) -> list[dict]:
    """
    One bucket per calendar day for the last `days` days (today included),
    empty days included with zero revenue.
    """
    if days < 1 or days > MAX_HISTORY_DAYS:
        raise ValidationError(f"days must be between 1 and {MAX_HISTORY_DAYS}")
    tz = get_tenant(tenant_id).timezone
    end_day = today_local(tz)
    start_day = end_day - timedelta(days=days - 1)
    return [
        {"date": row["date"], "revenue_cents": row["total_cents"]}
        for row in _daily_series(tenant_id, start_day, end_day)
    ]


def dashboard_stats(tenant_id: int) -> dict:
    tz = get_tenant(tenant_id).timezone
    today = today_local(tz)
    month_start, _ = day_bounds_utc(today.replace(day=1), tz)
    _, now_end = day_bounds_utc(today, tz)

    active = (
        db.session.query(func.count(ServiceOrder.id))
        .filter(ServiceOrder.tenant_id == tenant_id, ServiceOrder.status != "delivered")
        .scalar()
    )
    delivered = (
        db.session.query(func.count(ServiceOrder.id))
        .filter(ServiceOrder.tenant_id == tenant_id, ServiceOrder.status == "delivered")
        .scalar()
    )
    customers = db.session.query(func.count(Customer.id)).filter(Customer.tenant_id == tenant_id).scalar()

    services = sum(a for a, _m, _c in _service_payments(tenant_id, month_start, now_end))
    sales = sum(a for a, _p in _paid_sales(tenant_id, month_start, now_end))

    return {
        "active_orders": int(active or 0),
        "delivered_orders": int(delivered or 0),
        "total_customers": int(customers or 0),
        "monthly_revenue_cents": services + sales,
    }


def status_distribution(tenant_id: int) -> list[dict]:
    rows = (
        db.session.query(ServiceOrder.status, func.count(ServiceOrder.id))
        .filter(ServiceOrder.tenant_id == tenant_id)
        .group_by(ServiceOrder.status)
        .order_by(ServiceOrder.status)
        .all()
    )
    return [{"status": status, "count": int(count)} for status, count in rows]


def technician_workload(tenant_id: int) -> list[dict]:
    """Open and delivered order counts per assigned technician."""
    rows = (
        db.session.query(
            User.id,
            User.full_name,
            func.sum(case((ServiceOrder.status == "delivered", 0), else_=1)),
            func.sum(case((ServiceOrder.status == "delivered", 1), else_=0)),
        )
        .join(ServiceOrder, ServiceOrder.assigned_to == User.id)
        .filter(ServiceOrder.tenant_id == tenant_id)
        .group_by(User.id, User.full_name)
        .order_by(User.full_name)
        .all()
    )
    return [
        {"user_id": uid, "name": name, "open_orders": int(open_ or 0), "delivered_orders": int(done or 0)}
        for uid, name, open_, done in rows
    ]


def top_services(tenant_id: int, limit: int = 5) -> list[dict]:
    """Most used catalog services on service orders, by line count."""
    rows = (
        db.session.query(Product.id, Product.name, func.count(ServiceOrderItem.id))
        .join(ServiceOrderItem, ServiceOrderItem.product_id == Product.id)
        .filter(Product.tenant_id == tenant_id, Product.type == "service")
        .group_by(Product.id, Product.name)
        .order_by(func.count(ServiceOrderItem.id).desc(), Product.name)
        .limit(limit)
        .all()
    )
    return [{"product_id": pid, "name": name, "count": int(count)} for pid, name, count in rows]
