"""Price reconciliation for multi-line sales.

Client-supplied prices are never used for computation. Each line is priced
from the catalog at the moment of the call, and a client-declared total is
only cross-checked against the computed figure within
:data:`~shop_pos.constants.MONEY_TOLERANCE`. A whole-sale ``custom_total`` is
an intentional override and passes through untouched.

Nothing in this module performs I/O; the catalog is reached through the
``price_lookup`` callable supplied by the caller.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Callable, Optional, Sequence, Tuple, Union

from .constants import MONEY_TOLERANCE
from .errors import TotalMismatch


MoneyLike = Union[Decimal, int, float, str]


@dataclass(frozen=True)
class LineRequest:
    """One requested line: a product, a quantity, and an optional override."""

    product_id: Optional[str]
    quantity: object
    custom_price: Optional[MoneyLike] = None


@dataclass(frozen=True)
class PricedLine:
    """A line carrying the authoritative unit price captured from the catalog."""

    product_id: str
    quantity: int
    unit_price: Decimal
    custom_price: Optional[Decimal] = None

    @property
    def line_total(self) -> Decimal:
        return charged_price(self.unit_price, self.custom_price) * self.quantity


@dataclass(frozen=True)
class Reconciliation:
    """Outcome of pricing a request against the catalog."""

    lines: Tuple[PricedLine, ...]
    calculated_total: Decimal
    declared_total: Optional[Decimal] = None
    custom_total: Optional[Decimal] = None


def to_money(value: Optional[MoneyLike]) -> Optional[Decimal]:
    """Coerce a client-supplied amount into a :class:`~decimal.Decimal`.

    Floats go through ``str`` so ``0.1`` becomes ``Decimal("0.1")`` rather
    than its binary expansion.

    Raises:
        ValueError: If ``value`` is not a finite number.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError(f"Not a monetary amount: {value!r}")
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except InvalidOperation as exc:
        raise ValueError(f"Not a monetary amount: {value!r}") from exc
    if not amount.is_finite():
        raise ValueError(f"Not a monetary amount: {value!r}")
    return amount


def charged_price(unit_price: Decimal, custom_price: Optional[Decimal]) -> Decimal:
    """Price actually charged per unit: the override when present."""
    return custom_price if custom_price is not None else unit_price


def totals_match(declared: Decimal, calculated: Decimal, tolerance: Decimal = MONEY_TOLERANCE) -> bool:
    """Return ``True`` when ``declared`` is within ``tolerance`` of ``calculated``."""
    return abs(declared - calculated) <= tolerance


def reconcile_prices(
    lines: Sequence[LineRequest],
    price_lookup: Callable[[str], Decimal],
    *,
    declared_total: Optional[Decimal] = None,
    custom_total: Optional[Decimal] = None,
) -> Reconciliation:
    """Price every line from the catalog and verify the declared total.

    Args:
        lines: Structurally valid line requests (product id present, positive
            integer quantity).
        price_lookup: Returns the current catalog price of a product id.
        declared_total: Total the client believes it is charging, if any.
        custom_total: Whole-sale override. Preserved, never validated.

    Returns:
        Reconciliation: Priced lines in request order and their sum.

    Raises:
        TotalMismatch: If ``declared_total`` is outside the tolerance.
    """
    priced = []
    calculated = Decimal("0")
    for line in lines:
        unit_price = price_lookup(line.product_id)
        priced_line = PricedLine(
            product_id=line.product_id,
            quantity=line.quantity,
            unit_price=unit_price,
            custom_price=line.custom_price,
        )
        calculated += priced_line.line_total
        priced.append(priced_line)

    if declared_total is not None and not totals_match(declared_total, calculated):
        raise TotalMismatch(
            f"Total amount {declared_total} does not match calculated total {calculated}",
            details={
                "field": "totalAmount",
                "declared_total": str(declared_total),
                "calculated_total": str(calculated),
            },
        )

    return Reconciliation(
        lines=tuple(priced),
        calculated_total=calculated,
        declared_total=declared_total,
        custom_total=custom_total,
    )
