"""Integration tests describing the end-to-end sale and analytics workflows.

These scenarios document how the data access layer, the sale committer, and
the analytics functions collaborate over a real workbook on disk.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from shop_pos import analytics, core_logic, data_manager
from shop_pos.errors import ProductInvalid
from shop_pos.pricing import LineRequest


SHOP_TZ = timezone(timedelta(hours=-5))
NOW = datetime(2025, 6, 14, 15, 0, tzinfo=SHOP_TZ)


def _sell(context, employee_id, *lines, when, **fields):
    request = core_logic.SaleRequest(employee_id=employee_id, items=tuple(lines), timestamp=when, **fields)
    return core_logic.commit_sale(context, request)


def test_sale_history_feeds_dashboard(seeded_context):
    """Commit a week of sales, reload from disk, and check every aggregate."""

    context = seeded_context
    _sell(context, "E1", LineRequest("P1", 2), when=NOW - timedelta(days=6), custom_total=Decimal("15"))
    _sell(context, "E2", LineRequest("P2", 2), when=NOW - timedelta(days=3))
    _sell(context, "E1", LineRequest("P1", 1), LineRequest("P2", 1, custom_price=Decimal("4")), when=NOW.replace(hour=9))
    _sell(context, "E2", LineRequest("P1", 3), when=NOW.replace(hour=10), total_amount=Decimal("30.00"))

    # Reload so every figure comes from what was actually persisted.
    context = core_logic.refresh_context(context)
    report = core_logic.sale_analytics(context, now=NOW)

    assert [(entry.name, entry.revenue, entry.orders) for entry in report.leaderboard] == [
        ("Bob", Decimal("39"), 2),
        ("Alice", Decimal("29"), 2),
    ]
    assert [point.amount for point in report.trend] == [
        Decimal("15"), 0, 0, Decimal("9"), 0, 0, Decimal("44"),
    ]
    assert report.trend[-1].day == NOW.date()
    assert [(entry.name, entry.quantity, entry.revenue) for entry in report.top_products] == [
        ("Coffee", 6, Decimal("60")),
        ("Bagel", 3, Decimal("13")),
    ]
    assert report.summary.total_count == 4
    assert report.summary.today_revenue == Decimal("44")

    alice = core_logic.sale_analytics(context, now=NOW, employee_id="E1", top_products_size=3)
    assert alice.velocity == Decimal("14") / Decimal("15")
    assert alice.summary.total_count == 2


def test_rejected_sale_leaves_history_and_file_untouched(seeded_context):
    context = seeded_context
    _sell(context, "E1", LineRequest("P1", 1), when=NOW)
    before = context.settings.data_file.read_bytes()

    with pytest.raises(ProductInvalid):
        _sell(context, "E1", LineRequest("P1", 1), LineRequest("P3", 2), when=NOW)

    assert context.settings.data_file.read_bytes() == before
    reloaded = data_manager.open_workbook(context.settings.data_file)
    assert len(list(data_manager.iter_sales(reloaded))) == 1
    assert len(list(data_manager.iter_sale_items(reloaded))) == 1


def test_deleted_sale_disappears_from_analytics(seeded_context):
    context = seeded_context
    keep = _sell(context, "E1", LineRequest("P1", 1), when=NOW)
    drop = _sell(context, "E2", LineRequest("P1", 5), when=NOW)

    core_logic.delete_sale(context, drop.sale.sale_id)
    core_logic.persist_context(context)
    context = core_logic.refresh_context(context)

    records = core_logic.list_sale_records(context)
    assert [record.sale.sale_id for record in records] == [keep.sale.sale_id]
    assert analytics.build_leaderboard(records)[0].employee_id == "E1"


def test_dashboard_listener_sees_each_commit(seeded_context):
    """A subscribed view recomputes its leaderboard after every commit."""

    context = seeded_context
    snapshots = []
    context.events.subscribe(
        lambda sale: snapshots.append(
            [entry.employee_id for entry in analytics.build_leaderboard(core_logic.list_sale_records(context))]
        )
    )

    _sell(context, "E1", LineRequest("P2", 1), when=NOW)
    _sell(context, "E2", LineRequest("P1", 1), when=NOW)

    assert snapshots == [["E1"], ["E2", "E1"]]
