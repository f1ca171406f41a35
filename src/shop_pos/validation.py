"""Sale validation performed before anything is written.

:func:`validate_sale` checks structure first, then resolves the employee and
every product against a :class:`CatalogAccessor`, and finally hands the lines
to the price reconciler. The first failing check raises; no state is touched
along the way, so a rejected request leaves the store exactly as it was.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from typing import Dict, Optional, Protocol, Sequence

from . import log
from .data_manager import EmployeeRow, ProductRow
from .errors import EmployeeInvalid, EmptyOrder, ItemInvalid, ProductInvalid, TotalMismatch
from .pricing import LineRequest, MoneyLike, Reconciliation, reconcile_prices, to_money


class CatalogAccessor(Protocol):
    """Resolves current employee and product records by id."""

    def find_employee(self, employee_id: str) -> Optional[EmployeeRow]:
        ...

    def find_product(self, product_id: str) -> Optional[ProductRow]:
        ...


@dataclass(frozen=True)
class SaleRequest:
    """User intent for committing a multi-line sale.

    Amounts may arrive as plain numbers or strings; they are converted to
    :class:`~decimal.Decimal` during validation.
    """

    employee_id: Optional[str]
    items: Optional[Sequence[LineRequest]] = field(default_factory=tuple)
    total_amount: Optional[MoneyLike] = None
    custom_total: Optional[MoneyLike] = None
    notes: Optional[str] = None
    timestamp: Optional[datetime] = None


def _sale_amount(value: Optional[MoneyLike], field_name: str) -> Optional[Decimal]:
    """Convert a whole-sale amount, rejecting anything that is not a number."""
    try:
        return to_money(value)
    except ValueError as exc:
        log.error("Sale rejected: unreadable %s %r", field_name, value)
        raise TotalMismatch(
            f"{field_name} must be a number",
            details={"field": field_name, "value": repr(value)},
        ) from exc


def check_line(item: LineRequest, line_no: int) -> LineRequest:
    """Validate the structure of a single requested line.

    Returns:
        LineRequest: The same line with its custom price as a ``Decimal``.

    Raises:
        ItemInvalid: If the product id is blank, the quantity is not a
            positive integer, or the custom price is not a number or is
            negative.
    """
    if not item.product_id or not str(item.product_id).strip():
        log.error("Line %d rejected: missing product id", line_no)
        raise ItemInvalid(
            f"Line {line_no}: product ID is required",
            details={"line": line_no, "field": "productId"},
        )
    quantity = item.quantity
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        log.error("Line %d rejected: invalid quantity %r", line_no, quantity)
        raise ItemInvalid(
            f"Line {line_no}: quantity must be a positive integer",
            details={"line": line_no, "field": "quantity", "value": repr(quantity)},
        )
    try:
        custom_price = to_money(item.custom_price)
    except ValueError as exc:
        log.error("Line %d rejected: unreadable custom price %r", line_no, item.custom_price)
        raise ItemInvalid(
            f"Line {line_no}: custom price must be a number",
            details={"line": line_no, "field": "customPrice", "value": repr(item.custom_price)},
        ) from exc
    if custom_price is not None and custom_price < 0:
        log.error("Line %d rejected: negative custom price %s", line_no, custom_price)
        raise ItemInvalid(
            f"Line {line_no}: custom price must be zero or positive",
            details={"line": line_no, "field": "customPrice", "value": str(custom_price)},
        )
    return replace(item, custom_price=custom_price)


def validate_sale(request: SaleRequest, catalog: CatalogAccessor) -> Reconciliation:
    """Run every pre-commit check and return the reconciled line set.

    Args:
        request (SaleRequest): Sale intent as received from the client.
        catalog (CatalogAccessor): Source of live employee and product state.

    Returns:
        Reconciliation: Lines priced from the catalog plus the calculated
            total.

    Raises:
        EmployeeInvalid: Missing, unknown, or inactive employee.
        EmptyOrder: No items supplied.
        ItemInvalid: A structurally broken line.
        ProductInvalid: A line referencing an unknown or inactive product.
        TotalMismatch: Declared total outside the tolerance, or a whole-sale
            amount that is not a number.
    """
    if not request.employee_id:
        log.error("Sale rejected: missing employee id")
        raise EmployeeInvalid("Employee ID is required", details={"field": "employeeId"})

    items = list(request.items or ())
    if not items:
        log.error("Sale rejected: no items for employee '%s'", request.employee_id)
        raise EmptyOrder("A sale needs at least one item", details={"field": "items"})

    items = [check_line(item, line_no) for line_no, item in enumerate(items, start=1)]

    employee = catalog.find_employee(request.employee_id)
    if employee is None or not employee.is_active:
        log.warning("Sale rejected: invalid or inactive employee '%s'", request.employee_id)
        raise EmployeeInvalid(
            f"Invalid or inactive employee: {request.employee_id}",
            details={"field": "employeeId", "value": request.employee_id},
        )

    products: Dict[str, ProductRow] = {}
    for line_no, item in enumerate(items, start=1):
        product = catalog.find_product(item.product_id)
        if product is None or not product.is_active:
            log.warning("Sale rejected: line %d product '%s' not found or inactive", line_no, item.product_id)
            raise ProductInvalid(
                f"Product {item.product_id} not found or inactive",
                details={"line": line_no, "field": "productId", "value": item.product_id},
            )
        products[item.product_id] = product

    declared_total = _sale_amount(request.total_amount, "totalAmount")
    custom_total = _sale_amount(request.custom_total, "customTotal")
    try:
        reconciliation = reconcile_prices(
            items,
            lambda product_id: products[product_id].price,
            declared_total=declared_total,
            custom_total=custom_total,
        )
    except TotalMismatch as exc:
        log.error("Sale rejected for employee '%s': %s", request.employee_id, exc)
        raise
    log.debug(
        "Validated sale for employee '%s': %d lines, calculated total %s",
        request.employee_id,
        len(reconciliation.lines),
        reconciliation.calculated_total,
    )
    return reconciliation
