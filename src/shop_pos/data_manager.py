"""Data access layer for the shop workbook.

This module provides low-level helpers that read from and write to the
``shop_master_data.xlsx`` workbook. Business logic belongs elsewhere.

The public API is designed around three responsibilities:

1. Configuration handling: finding and parsing ``config.ini``.
2. Workbook lifecycle: opening, validating, and atomically persisting the
   Excel file.
3. Sheet operations: loading structured records and appending, updating, or
   removing individual rows.
"""


from __future__ import annotations

import configparser
import logging
import os
import tempfile
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from openpyxl.workbook import Workbook
import openpyxl

from . import log
from .constants import (
    DEFAULT_RATE_LIMIT_MAX_CLIENTS,
    DEFAULT_RATE_LIMIT_MAX_REQUESTS,
    DEFAULT_RATE_LIMIT_WINDOW_SECONDS,
    SheetName,
)


CONFIG_FILE_NAME = "config.ini"
EMPLOYEES_SHEET = SheetName.EMPLOYEES.value
PRODUCTS_SHEET = SheetName.PRODUCTS.value
SALES_SHEET = SheetName.SALES.value
SALE_ITEMS_SHEET = SheetName.SALE_ITEMS.value


@dataclass(frozen=True)
class RateLimitSettings:
    """Bounds handed to the request filter sitting in front of the core."""

    window_seconds: int = DEFAULT_RATE_LIMIT_WINDOW_SECONDS
    max_requests: int = DEFAULT_RATE_LIMIT_MAX_REQUESTS
    max_clients: int = DEFAULT_RATE_LIMIT_MAX_CLIENTS


@dataclass(frozen=True)
class LoggingSettings:
    """Log threshold and destination from the optional ``[Logging]`` section."""

    level: str = "INFO"
    log_file: Optional[Path] = None


@dataclass(frozen=True)
class ConfigSettings:
    """Typed representation of the ``config.ini`` settings we care about."""

    data_file: Path
    shop_name: str
    schema_version: str
    rate_limit: RateLimitSettings = RateLimitSettings()
    logging_settings: Optional[LoggingSettings] = None


@dataclass(frozen=True)
class EmployeeRow:
    """In-memory view of a row from the ``Employees`` sheet."""

    employee_id: str
    name: str
    mobile: str
    is_active: bool


@dataclass(frozen=True)
class ProductRow:
    """In-memory view of a row from the ``Products`` sheet."""

    product_id: str
    name: str
    price: Decimal
    is_active: bool
    sku: Optional[str] = None
    barcode: Optional[str] = None


@dataclass(frozen=True)
class SaleRow:
    """In-memory view of a sale header from the ``Sales`` sheet."""

    sale_id: str
    employee_id: str
    created_at_iso: str
    total_amount: Decimal
    custom_total: Optional[Decimal] = None
    notes: Optional[str] = None

    @property
    def created_at(self) -> Optional[datetime]:
        """Parsed creation timestamp, ``None`` when the cell is unreadable.

        Sales are written in UTC, so a timestamp stored without an offset
        (for example a date cell typed by hand) is read as UTC too.
        """
        if not self.created_at_iso:
            return None
        try:
            parsed = datetime.fromisoformat(self.created_at_iso)
        except ValueError:
            return None
        if parsed.tzinfo is None:
            return parsed.replace(tzinfo=timezone.utc)
        return parsed


@dataclass(frozen=True)
class SaleItemRow:
    """In-memory view of a line item from the ``SaleItems`` sheet."""

    sale_id: str
    line_no: int
    product_id: str
    quantity: int
    unit_price: Decimal
    custom_price: Optional[Decimal] = None


@dataclass(frozen=True)
class SaleRecord:
    """A sale header joined with its ordered line items."""

    sale: SaleRow
    items: Tuple[SaleItemRow, ...] = ()


def find_config_file(explicit_path: Optional[Path] = None) -> Path:
    """Locate the configuration file that controls how the data layer behaves.

    If the caller provides ``explicit_path`` the value is returned immediately
    without any verification. Otherwise the function walks up from the current
    working directory toward the filesystem root looking for a file named
    ``CONFIG_FILE_NAME``; the first match is considered authoritative.

    Args:
        explicit_path (Path | None): Optional path to use instead of performing
            the upward search.

    Returns:
        Path: The path provided by the caller or the discovered configuration
            file.

    Raises:
        FileNotFoundError: If the search exhausts all parent directories without
            finding ``CONFIG_FILE_NAME``.
    """

    if explicit_path:
        return explicit_path

    current = Path.cwd()
    for p in (current, *current.parents):
        candidate = p / CONFIG_FILE_NAME
        if candidate.exists():
            return candidate

    raise FileNotFoundError(
        f"Configuration file not found: {CONFIG_FILE_NAME}")


def read_config(config_path: Path) -> configparser.ConfigParser:
    """Load ``config.ini`` and return a populated ``ConfigParser`` instance.

    Args:
        config_path (Path): Path to the configuration file, relative or
            absolute.

    Returns:
        configparser.ConfigParser: Parser containing the raw configuration.

    Raises:
        FileNotFoundError: If ``config_path`` does not exist after expansion and
            resolution.
    """

    config_path = config_path.expanduser().resolve()
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    parser = configparser.ConfigParser()
    parser.read(config_path)
    return parser


def parse_settings(parser: configparser.ConfigParser, *, base_path: Optional[Path] = None) -> ConfigSettings:
    """Convert a ``ConfigParser`` into strongly typed :class:`ConfigSettings`.

    The ``[System]`` section is mandatory. The ``[RateLimit]`` section is
    optional and each of its options falls back to the package defaults.
    ``[Logging]`` is optional too; a blank ``File`` turns file logging off.
    Relative ``DataFile`` entries are expanded against ``base_path`` (or the
    current working directory) and resolved to an absolute path.

    Args:
        parser (configparser.ConfigParser): Parsed configuration data.
        base_path (Path | None): Directory used as the anchor for relative
            ``DataFile`` and log ``File`` entries.

    Returns:
        ConfigSettings: Immutable settings container.

    Raises:
        KeyError: If a required section or option is missing.
        ValueError: If a rate limit option is not an integer or the log level
            is unknown.
    """

    try:
        data_file_raw = parser.get("System", "DataFile")
        shop_name = parser.get("System", "ShopName")
        schema_version = parser.get("System", "SchemaVersion")
    except (configparser.NoSectionError, configparser.NoOptionError) as exc:
        raise KeyError(f"Missing required configuration entry: {exc}") from exc

    rate_limit = RateLimitSettings(
        window_seconds=parser.getint(
            "RateLimit", "WindowSeconds", fallback=DEFAULT_RATE_LIMIT_WINDOW_SECONDS),
        max_requests=parser.getint(
            "RateLimit", "MaxRequests", fallback=DEFAULT_RATE_LIMIT_MAX_REQUESTS),
        max_clients=parser.getint(
            "RateLimit", "MaxClients", fallback=DEFAULT_RATE_LIMIT_MAX_CLIENTS),
    )

    if base_path is None:
        base_path = Path.cwd()
    data_file_path = _anchor(Path(data_file_raw), base_path)
    logging_settings = _parse_logging(parser, base_path) if parser.has_section("Logging") else None

    return ConfigSettings(
        data_file=data_file_path,
        shop_name=shop_name,
        schema_version=schema_version,
        rate_limit=rate_limit,
        logging_settings=logging_settings,
    )


def _anchor(path: Path, base_path: Path) -> Path:
    return path if path.is_absolute() else (base_path / path).resolve()


def _parse_logging(parser: configparser.ConfigParser, base_path: Path) -> LoggingSettings:
    level = parser.get("Logging", "Level", fallback="INFO").strip().upper()
    if level not in logging.getLevelNamesMapping():
        raise ValueError(f"Unknown log level in [Logging]: {level!r}")
    raw_file = parser.get("Logging", "File", fallback="").strip()
    log_file = _anchor(Path(raw_file), base_path) if raw_file else None
    return LoggingSettings(level=level, log_file=log_file)


def open_workbook(data_file: Path) -> Workbook:
    """Open the master Excel workbook and return a live ``openpyxl`` workbook.

    Raises:
        FileNotFoundError: If ``data_file`` does not exist after expansion and
            resolution.
    """

    data_file = Path(data_file).expanduser().resolve()
    if not data_file.exists():
        raise FileNotFoundError(f"Workbook not found: {data_file}")

    wb = openpyxl.load_workbook(data_file)
    return wb


def save_workbook(workbook: Workbook, destination: Path) -> None:
    """Atomically persist the workbook to ``destination``.

    The workbook is first serialized to a temporary file in the destination
    directory and then moved over the target with :func:`os.replace`. Readers
    therefore observe either the previous file or the complete new one. If
    serialization fails the temporary file is removed and the existing
    workbook on disk is left untouched.

    Args:
        workbook (Workbook): Workbook instance to persist.
        destination (Path): Filesystem path that should receive the serialized
            workbook. Parent directories are created on demand.
    """

    dest = Path(destination).expanduser().resolve()
    dest.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{dest.stem}-", suffix=dest.suffix, dir=dest.parent)
    os.close(fd)
    tmp_path = Path(tmp_name)
    try:
        workbook.save(tmp_path)
        os.replace(tmp_path, dest)
    except Exception:
        tmp_path.unlink(missing_ok=True)
        raise
    log.debug("Saved workbook to '%s'", dest)


def refresh_workbook(data_file: Path) -> Workbook:
    """Reload the workbook from disk, discarding any unsaved in-memory changes."""

    return open_workbook(data_file)


def _iter_sheet(workbook: Workbook, sheet_name: str) -> Iterable[Sequence[object]]:
    sheet = workbook[sheet_name]
    for raw in sheet.iter_rows(min_row=2, values_only=True):
        # skip fully empty rows
        if any(cell is not None for cell in raw):
            yield raw


def iter_employees(workbook: Workbook) -> Iterable[EmployeeRow]:
    """Iterate over the ``Employees`` worksheet and yield typed records."""

    for raw in _iter_sheet(workbook, EMPLOYEES_SHEET):
        yield deserialize_employee(raw)


def iter_products(workbook: Workbook) -> Iterable[ProductRow]:
    """Iterate over product records stored on the ``Products`` worksheet.

    Header and fully empty rows are skipped. Each remaining row is converted
    into a :class:`ProductRow` via :func:`deserialize_product`.
    """

    for raw in _iter_sheet(workbook, PRODUCTS_SHEET):
        yield deserialize_product(raw)


def iter_sales(workbook: Workbook) -> Iterable[SaleRow]:
    """Stream sale headers from the ``Sales`` worksheet in sheet order."""

    for raw in _iter_sheet(workbook, SALES_SHEET):
        yield deserialize_sale(raw)


def iter_sale_items(workbook: Workbook) -> Iterable[SaleItemRow]:
    """Stream line items from the ``SaleItems`` worksheet in sheet order."""

    for raw in _iter_sheet(workbook, SALE_ITEMS_SHEET):
        yield deserialize_sale_item(raw)


def iter_sale_records(workbook: Workbook) -> Iterable[SaleRecord]:
    """Join sale headers with their line items.

    Sales keep their sheet order; items are grouped by ``SaleID`` and sorted
    by ``LineNo``. Items whose sale header is missing are ignored, and a
    header without items yields a record with an empty ``items`` tuple.

    Args:
        workbook (Workbook): Workbook containing both sale sheets.

    Yields:
        SaleRecord: One joined record per sale header.
    """

    items_by_sale: Dict[str, List[SaleItemRow]] = {}
    for item in iter_sale_items(workbook):
        items_by_sale.setdefault(item.sale_id, []).append(item)

    for sale in iter_sales(workbook):
        items = sorted(items_by_sale.get(sale.sale_id, []), key=lambda item: item.line_no)
        yield SaleRecord(sale=sale, items=tuple(items))


def _append_row(sheet, values: Sequence[object]) -> None:
    # Worksheet.append keeps a private cursor that delete_rows never rewinds,
    # so rows are placed after the last occupied row instead.
    row_idx = sheet.max_row + 1
    for col_idx, value in enumerate(values, start=1):
        sheet.cell(row=row_idx, column=col_idx, value=value)


def append_employee(workbook: Workbook, record: EmployeeRow) -> None:
    """Append an employee record to the ``Employees`` worksheet."""

    _append_row(workbook[EMPLOYEES_SHEET], serialize_employee(record))


def append_product(workbook: Workbook, record: ProductRow) -> None:
    """Append a product record to the ``Products`` worksheet.

    The dataclass is serialized into the exact column ordering expected by the
    sheet before being appended.
    """

    _append_row(workbook[PRODUCTS_SHEET], serialize_product(record))


def append_sale(workbook: Workbook, record: SaleRow) -> None:
    """Append a sale header to the ``Sales`` worksheet."""

    _append_row(workbook[SALES_SHEET], serialize_sale(record))


def append_sale_item(workbook: Workbook, record: SaleItemRow) -> None:
    """Append a line item to the ``SaleItems`` worksheet.

    Monetary fields stay :class:`~decimal.Decimal` instances so openpyxl writes
    them as numeric cells.
    """

    _append_row(workbook[SALE_ITEMS_SHEET], serialize_sale_item(record))


def row_count(workbook: Workbook, sheet_name: str) -> int:
    """Return the 1-based index of the last row currently in ``sheet_name``."""

    return workbook[sheet_name].max_row


def truncate_rows(workbook: Workbook, sheet_name: str, keep_rows: int) -> None:
    """Delete every row after ``keep_rows`` in ``sheet_name``.

    Used to roll back in-memory appends when a save fails.
    """

    sheet = workbook[sheet_name]
    extra = sheet.max_row - keep_rows
    if extra > 0:
        sheet.delete_rows(keep_rows + 1, extra)


def update_employee(workbook: Workbook, employee_id: str, *, field_values: dict[str, Any]) -> None:
    """Update selected columns for an existing employee.

    Raises:
        KeyError: If the employee or any referenced column is missing.
    """

    _update_row(workbook, EMPLOYEES_SHEET, "EmployeeID", employee_id, field_values, label="employee")


def update_product(workbook: Workbook, product_id: str, *, field_values: dict[str, Any]) -> None:
    """Update selected columns for an existing product.

    The function locates the row whose ``ProductID`` matches ``product_id``,
    validates that each requested field exists in the header row, and writes
    the provided values into the corresponding cells. Other columns are left
    untouched.

    Raises:
        KeyError: If the product or any referenced column cannot be found.
    """

    _update_row(workbook, PRODUCTS_SHEET, "ProductID", product_id, field_values, label="product")


def _update_row(
    workbook: Workbook,
    sheet_name: str,
    key_column: str,
    key_value: str,
    field_values: dict[str, Any],
    *,
    label: str,
) -> None:
    row_index = locate_row(workbook, sheet_name, key_column, key_value)
    if row_index is None:
        raise KeyError(f"{label.capitalize()} not found: {key_value}")

    sheet = workbook[sheet_name]
    header_map = _header_map(sheet)

    for field, value in field_values.items():
        if field not in header_map:
            raise KeyError(f"Unknown {label} field: {field}")
        sheet.cell(row=row_index, column=header_map[field], value=value)


def delete_sale(workbook: Workbook, sale_id: str) -> int:
    """Remove a sale header together with all of its line items.

    Item rows are deleted bottom-up so that row indices stay valid while the
    sheet shrinks.

    Args:
        workbook (Workbook): Workbook containing the sale sheets.
        sale_id (str): Identifier of the sale to remove.

    Returns:
        int: Number of line item rows removed alongside the header.

    Raises:
        KeyError: If no sale header carries ``sale_id``.
    """

    header_row = locate_row(workbook, SALES_SHEET, "SaleID", sale_id)
    if header_row is None:
        raise KeyError(f"Sale not found: {sale_id}")

    items_sheet = workbook[SALE_ITEMS_SHEET]
    key_col = _header_map(items_sheet)["SaleID"]
    item_rows = [
        row_idx
        for row_idx, row in enumerate(items_sheet.iter_rows(min_row=2, values_only=True), start=2)
        if row[key_col - 1] == sale_id
    ]
    for row_idx in reversed(item_rows):
        items_sheet.delete_rows(row_idx, 1)

    workbook[SALES_SHEET].delete_rows(header_row, 1)
    return len(item_rows)


def _header_map(sheet) -> Dict[Any, int]:
    return {cell.value: idx + 1 for idx, cell in enumerate(sheet[1])}


def locate_row(workbook: Workbook, sheet_name: str, key_column: str, key_value: str) -> Optional[int]:
    """Find a row by matching a key value within the specified worksheet.

    Args:
        workbook (Workbook): Workbook providing access to ``sheet_name``.
        sheet_name (str): Name of the worksheet to search.
        key_column (str): Header title identifying the lookup column.
        key_value (str): Value to match within the key column.

    Returns:
        int | None: 1-based Excel row index when a match is found, otherwise
            ``None``.

    Raises:
        KeyError: If ``key_column`` is not present in the worksheet header.
    """

    sheet = workbook[sheet_name]
    header_map = _header_map(sheet)
    if key_column not in header_map:
        raise KeyError(f"Unknown column: {key_column}")

    key_col_index = header_map[key_column]

    for row_idx, row in enumerate(sheet.iter_rows(min_row=2, values_only=True), start=2):
        if row[key_col_index - 1] == key_value:
            return row_idx

    return None


def serialize_employee(record: EmployeeRow) -> list[object]:
    """Return ``[EmployeeID, Name, Mobile, IsActive]``."""

    return [record.employee_id, record.name, record.mobile, record.is_active]


def serialize_product(record: ProductRow) -> list[object]:
    """Return ``[ProductID, Name, Price, IsActive, SKU, Barcode]``."""

    return [record.product_id, record.name, record.price, record.is_active, record.sku, record.barcode]


def serialize_sale(record: SaleRow) -> list[object]:
    """Convert a sale header into the ``Sales`` column order."""

    return [
        record.sale_id,
        record.employee_id,
        record.created_at_iso,
        record.total_amount,
        record.custom_total,
        record.notes,
    ]


def serialize_sale_item(record: SaleItemRow) -> list[object]:
    """Convert a line item into the ``SaleItems`` column order."""

    return [
        record.sale_id,
        record.line_no,
        record.product_id,
        record.quantity,
        record.unit_price,
        record.custom_price,
    ]


def _to_decimal(raw: object, default: Optional[Decimal]) -> Optional[Decimal]:
    if raw is None or raw == "":
        return default
    try:
        return Decimal(str(raw))
    except InvalidOperation:
        log.warning("Unreadable numeric cell value %r; using %s", raw, default)
        return default


def _to_int(raw: object) -> int:
    try:
        return int(raw)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        log.warning("Unreadable integer cell value %r; using 0", raw)
        return 0


def _to_optional_str(raw: object) -> Optional[str]:
    return str(raw) if raw is not None else None


def _pad(raw_row: Sequence[object], width: int) -> Sequence[object]:
    if len(raw_row) >= width:
        return raw_row
    return tuple(raw_row) + (None,) * (width - len(raw_row))


def deserialize_employee(raw_row: Sequence[object]) -> EmployeeRow:
    """Convert a raw worksheet row into an :class:`EmployeeRow`."""

    employee_id, name, mobile, is_active = _pad(raw_row, 4)[:4]
    return EmployeeRow(
        employee_id=str(employee_id),
        name=str(name) if name is not None else "",
        mobile=str(mobile) if mobile is not None else "",
        is_active=bool(is_active),
    )


def deserialize_product(raw_row: Sequence[object]) -> ProductRow:
    """Convert a raw worksheet row into a strongly typed product record.

    Prices become :class:`~decimal.Decimal` instances and id/name fields are
    coerced to ``str`` so numbers typed into Excel do not leak through.
    """

    product_id, name, price_raw, is_active, sku, barcode = _pad(raw_row, 6)[:6]
    return ProductRow(
        product_id=str(product_id),
        name=str(name) if name is not None else "",
        price=_to_decimal(price_raw, Decimal("0.00")),
        is_active=bool(is_active),
        sku=_to_optional_str(sku),
        barcode=_to_optional_str(barcode),
    )


def deserialize_sale(raw_row: Sequence[object]) -> SaleRow:
    """Convert a raw worksheet row into a :class:`SaleRow`.

    Missing totals default to zero and blank optional columns stay ``None``.
    """

    sale_id, employee_id, created_at, total_raw, custom_raw, notes = _pad(raw_row, 6)[:6]
    if isinstance(created_at, datetime):
        created_at_iso = created_at.isoformat()
    else:
        created_at_iso = str(created_at) if created_at is not None else ""
    return SaleRow(
        sale_id=str(sale_id),
        employee_id=str(employee_id) if employee_id is not None else "",
        created_at_iso=created_at_iso,
        total_amount=_to_decimal(total_raw, Decimal("0.00")),
        custom_total=_to_decimal(custom_raw, None),
        notes=_to_optional_str(notes),
    )


def deserialize_sale_item(raw_row: Sequence[object]) -> SaleItemRow:
    """Convert a raw worksheet row into a :class:`SaleItemRow`."""

    sale_id, line_no, product_id, quantity, unit_raw, custom_raw = _pad(raw_row, 6)[:6]
    return SaleItemRow(
        sale_id=str(sale_id),
        line_no=_to_int(line_no),
        product_id=str(product_id) if product_id is not None else "",
        quantity=_to_int(quantity),
        unit_price=_to_decimal(unit_raw, Decimal("0.00")),
        custom_price=_to_decimal(custom_raw, None),
    )
