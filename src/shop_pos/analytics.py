"""Read-side aggregates over committed sales.

Every function here is pure: it receives an already-loaded sequence of
:class:`~shop_pos.data_manager.SaleRecord` objects and recomputes its result
from scratch. Nothing is cached between calls.

The only monetary figure used for a sale is its *effective amount*,
``custom_total`` when present, otherwise ``total_amount``. Line revenue uses
``custom_price`` when present, otherwise ``unit_price``.

Historical rows that do not satisfy the sale invariants are tolerated rather
than rejected. A sale without items contributes nothing and is not counted
as an order, and a sale whose timestamp cannot be read is left out of the
date-based figures.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .constants import (
    ADMIN_TOP_PRODUCTS,
    DEFAULT_TREND_DAYS,
    EMPLOYEE_TOP_PRODUCTS,
    LEADERBOARD_SIZE,
    VELOCITY_MIN_HOURS,
)
from .data_manager import SaleRecord, SaleRow
from .pricing import charged_price


ZERO = Decimal("0")
SECONDS_PER_HOUR = Decimal("3600")


@dataclass(frozen=True)
class LeaderboardEntry:
    employee_id: str
    name: Optional[str]
    revenue: Decimal
    orders: int


@dataclass(frozen=True)
class TrendPoint:
    day: date
    amount: Decimal


@dataclass(frozen=True)
class ProductSales:
    product_id: str
    name: Optional[str]
    quantity: int
    revenue: Decimal


@dataclass(frozen=True)
class SalesSummary:
    total_count: int
    total_revenue: Decimal
    today_revenue: Decimal
    average_order_value: Decimal


@dataclass(frozen=True)
class AnalyticsReport:
    leaderboard: Tuple[LeaderboardEntry, ...]
    trend: Tuple[TrendPoint, ...]
    top_products: Tuple[ProductSales, ...]
    summary: SalesSummary
    velocity: Optional[Decimal] = None


def effective_amount(sale: SaleRow) -> Decimal:
    """Amount reported for a sale: the whole-sale override when present."""
    return sale.custom_total if sale.custom_total is not None else sale.total_amount


def resolve_now(now: Optional[datetime] = None) -> datetime:
    """Return a timezone-aware "now"; naive values are taken as local time."""
    if now is None:
        return datetime.now().astimezone()
    if now.tzinfo is None:
        return now.astimezone()
    return now


def local_day(sale: SaleRow, now: datetime) -> Optional[date]:
    """Calendar date of ``sale`` in the timezone of ``now``."""
    created = sale.created_at
    if created is None:
        return None
    return created.astimezone(now.tzinfo).date()


def _countable(records: Iterable[SaleRecord]) -> Iterable[SaleRecord]:
    return (record for record in records if record.items)


def filter_sales(
    records: Iterable[SaleRecord],
    *,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    employee_id: Optional[str] = None,
) -> List[SaleRecord]:
    """Keep sales created within ``[start, end]`` and made by ``employee_id``.

    Each bound is optional. Naive bounds are interpreted as local time. When a
    date bound is given, sales without a readable timestamp are dropped.
    """
    start = start.astimezone() if start is not None and start.tzinfo is None else start
    end = end.astimezone() if end is not None and end.tzinfo is None else end

    selected = []
    for record in records:
        sale = record.sale
        if employee_id is not None and sale.employee_id != employee_id:
            continue
        if start is not None or end is not None:
            created = sale.created_at
            if created is None:
                continue
            if start is not None and created < start:
                continue
            if end is not None and created > end:
                continue
        selected.append(record)
    return selected


def build_leaderboard(
    records: Iterable[SaleRecord],
    *,
    limit: int = LEADERBOARD_SIZE,
    employee_names: Optional[Mapping[str, str]] = None,
) -> Tuple[LeaderboardEntry, ...]:
    """Rank employees by summed effective revenue, highest first.

    Employees keep the order in which they first appear in ``records``, and
    the sort is stable, so ties stay in that order.
    """
    revenue: Dict[str, Decimal] = {}
    orders: Dict[str, int] = {}
    for record in _countable(records):
        employee_id = record.sale.employee_id
        revenue[employee_id] = revenue.get(employee_id, ZERO) + effective_amount(record.sale)
        orders[employee_id] = orders.get(employee_id, 0) + 1

    names = employee_names or {}
    entries = [
        LeaderboardEntry(
            employee_id=employee_id,
            name=names.get(employee_id),
            revenue=total,
            orders=orders[employee_id],
        )
        for employee_id, total in revenue.items()
    ]
    entries.sort(key=lambda entry: entry.revenue, reverse=True)
    return tuple(entries[:max(limit, 0)])


def build_trend(
    records: Iterable[SaleRecord],
    *,
    days: int = DEFAULT_TREND_DAYS,
    now: Optional[datetime] = None,
) -> Tuple[TrendPoint, ...]:
    """Per-day effective revenue for the last ``days`` calendar days.

    The result always holds exactly ``days`` points in chronological order,
    the last one being today. Days without sales report zero.

    Raises:
        ValueError: If ``days`` is smaller than one.
    """
    if days < 1:
        raise ValueError("days must be at least 1")
    now = resolve_now(now)
    today = now.date()
    window = [today - timedelta(days=offset) for offset in range(days - 1, -1, -1)]
    totals: Dict[date, Decimal] = {day: ZERO for day in window}

    for record in _countable(records):
        day = local_day(record.sale, now)
        if day in totals:
            totals[day] += effective_amount(record.sale)

    return tuple(TrendPoint(day=day, amount=totals[day]) for day in window)


def today_revenue(
    records: Iterable[SaleRecord],
    *,
    now: Optional[datetime] = None,
    employee_id: Optional[str] = None,
) -> Decimal:
    now = resolve_now(now)
    today = now.date()
    total = ZERO
    for record in _countable(records):
        if employee_id is not None and record.sale.employee_id != employee_id:
            continue
        if local_day(record.sale, now) == today:
            total += effective_amount(record.sale)
    return total


def hours_since_midnight(now: datetime) -> Decimal:
    """Real hours elapsed since local midnight, across any DST change."""
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    elapsed = now.astimezone(timezone.utc) - midnight.astimezone(timezone.utc)
    return Decimal(str(elapsed.total_seconds())) / SECONDS_PER_HOUR


def sales_velocity(
    records: Iterable[SaleRecord],
    employee_id: str,
    *,
    now: Optional[datetime] = None,
) -> Decimal:
    """Today's effective revenue for ``employee_id`` per elapsed hour.

    The divisor is the number of hours since local midnight, floored at one
    hour.
    """
    now = resolve_now(now)
    total = today_revenue(records, now=now, employee_id=employee_id)
    return total / max(VELOCITY_MIN_HOURS, hours_since_midnight(now))


def top_products(
    records: Iterable[SaleRecord],
    *,
    limit: int = ADMIN_TOP_PRODUCTS,
    product_names: Optional[Mapping[str, str]] = None,
) -> Tuple[ProductSales, ...]:
    """Rank products by line revenue across all items, highest first."""
    quantity: Dict[str, int] = {}
    revenue: Dict[str, Decimal] = {}
    for record in records:
        for item in record.items:
            line_revenue = charged_price(item.unit_price, item.custom_price) * item.quantity
            quantity[item.product_id] = quantity.get(item.product_id, 0) + item.quantity
            revenue[item.product_id] = revenue.get(item.product_id, ZERO) + line_revenue

    names = product_names or {}
    ranked = [
        ProductSales(
            product_id=product_id,
            name=names.get(product_id),
            quantity=quantity[product_id],
            revenue=total,
        )
        for product_id, total in revenue.items()
    ]
    ranked.sort(key=lambda entry: entry.revenue, reverse=True)
    return tuple(ranked[:max(limit, 0)])


def summarize(records: Sequence[SaleRecord], *, now: Optional[datetime] = None) -> SalesSummary:
    """Headline figures: order count, revenue, today's revenue, average order."""
    countable = list(_countable(records))
    total = sum((effective_amount(record.sale) for record in countable), ZERO)
    count = len(countable)
    return SalesSummary(
        total_count=count,
        total_revenue=total,
        today_revenue=today_revenue(countable, now=now),
        average_order_value=total / count if count else ZERO,
    )


def query_analytics(
    records: Sequence[SaleRecord],
    *,
    now: Optional[datetime] = None,
    employee_id: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    leaderboard_size: int = LEADERBOARD_SIZE,
    top_products_size: Optional[int] = None,
    trend_days: int = DEFAULT_TREND_DAYS,
    employee_names: Optional[Mapping[str, str]] = None,
    product_names: Optional[Mapping[str, str]] = None,
) -> AnalyticsReport:
    """Compute the full dashboard report over an optionally filtered history.

    ``velocity`` is only populated when ``employee_id`` is supplied. Unless
    ``top_products_size`` is given, an employee view ranks
    :data:`EMPLOYEE_TOP_PRODUCTS` products and the shop view
    :data:`ADMIN_TOP_PRODUCTS`.
    """
    now = resolve_now(now)
    if top_products_size is None:
        top_products_size = EMPLOYEE_TOP_PRODUCTS if employee_id is not None else ADMIN_TOP_PRODUCTS
    selected = filter_sales(records, start=start, end=end, employee_id=employee_id)
    return AnalyticsReport(
        leaderboard=build_leaderboard(selected, limit=leaderboard_size, employee_names=employee_names),
        trend=build_trend(selected, days=trend_days, now=now),
        top_products=top_products(selected, limit=top_products_size, product_names=product_names),
        summary=summarize(selected, now=now),
        velocity=sales_velocity(selected, employee_id, now=now) if employee_id is not None else None,
    )
