"""Enumerations and numeric constants shared across the shop modules.

Keeps the data access layer, the sale engine, the analytics functions, and
the CLI pointed at a single source of truth for sheet names, tolerances, and
dashboard sizes.
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum


# Central schema version expected by all layers when validating workbooks.
EXPECTED_SCHEMA_VERSION = "1.0.0"

# Absolute slack allowed between a client-declared total and the computed one.
MONEY_TOLERANCE = Decimal("0.01")

DEFAULT_TREND_DAYS = 7
LEADERBOARD_SIZE = 5
EMPLOYEE_TOP_PRODUCTS = 3
ADMIN_TOP_PRODUCTS = 10

# Divisor floor, in hours, for the sales velocity figure.
VELOCITY_MIN_HOURS = Decimal("1")

MOBILE_PATTERN = r"^[0-9+\-\s()]+$"

DEFAULT_RATE_LIMIT_WINDOW_SECONDS = 15 * 60
DEFAULT_RATE_LIMIT_MAX_REQUESTS = 100
DEFAULT_RATE_LIMIT_MAX_CLIENTS = 1024


class SheetName(str, Enum):
    """Enumerate the workbook sheet names managed by the DAL."""

    EMPLOYEES = "Employees"
    PRODUCTS = "Products"
    SALES = "Sales"
    SALE_ITEMS = "SaleItems"


__all__ = [
    "EXPECTED_SCHEMA_VERSION",
    "MONEY_TOLERANCE",
    "DEFAULT_TREND_DAYS",
    "LEADERBOARD_SIZE",
    "EMPLOYEE_TOP_PRODUCTS",
    "ADMIN_TOP_PRODUCTS",
    "VELOCITY_MIN_HOURS",
    "MOBILE_PATTERN",
    "DEFAULT_RATE_LIMIT_WINDOW_SECONDS",
    "DEFAULT_RATE_LIMIT_MAX_REQUESTS",
    "DEFAULT_RATE_LIMIT_MAX_CLIENTS",
    "SheetName",
]
