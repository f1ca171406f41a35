"""Business logic layer for the shop workbook.

This module hosts the sale committer and the catalog administration rules.
It consumes the Data Access Layer (DAL) for all I/O, the validator and price
reconciler for pre-commit checks, and the analytics functions for reporting.
Completed sales are immutable: the only write paths for them are
:func:`commit_sale` and the cascading :func:`delete_sale`.
"""

from __future__ import annotations

import re
import threading
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

from openpyxl.workbook import Workbook

from . import analytics, data_manager, log
from .constants import EXPECTED_SCHEMA_VERSION, MOBILE_PATTERN
from .errors import (
    BusinessRuleViolation,
    CommitFailed,
    MissingReferenceError,
    ShopError,
)
from .events import SaleEventBus
from .pricing import to_money
from .rate_limit import RateDecision, RateLimiter
from .validation import SaleRequest, validate_sale


@dataclass(frozen=True)
class RuntimeContext:
    """Container for configuration and workbook references used by the BLL."""

    settings: data_manager.ConfigSettings
    workbook: Workbook
    events: SaleEventBus = field(default_factory=SaleEventBus, repr=False, compare=False)
    rate_limiter: Optional[RateLimiter] = field(default=None, repr=False, compare=False)
    write_lock: Any = field(default_factory=threading.RLock, repr=False, compare=False)
    _cache: Dict[str, Dict[str, Any]] = field(default_factory=dict, repr=False, compare=False)


@dataclass(frozen=True)
class CommittedSale:
    """A persisted sale with its items and names for immediate display."""

    sale: data_manager.SaleRow
    items: Tuple[data_manager.SaleItemRow, ...]
    employee_name: str
    product_names: Mapping[str, str] = field(default_factory=dict)

    @property
    def effective_amount(self) -> Decimal:
        return analytics.effective_amount(self.sale)

    def as_dict(self) -> Dict[str, Any]:
        """Plain mapping in the shape returned to clients."""
        payload: Dict[str, Any] = {
            "id": self.sale.sale_id,
            "employeeId": self.sale.employee_id,
            "employeeName": self.employee_name,
            "items": [],
            "totalAmount": float(self.sale.total_amount),
            "createdAt": self.sale.created_at_iso,
        }
        for item in self.items:
            line: Dict[str, Any] = {
                "productId": item.product_id,
                "productName": self.product_names.get(item.product_id),
                "quantity": item.quantity,
                "unitPrice": float(item.unit_price),
            }
            if item.custom_price is not None:
                line["customPrice"] = float(item.custom_price)
            payload["items"].append(line)
        if self.sale.custom_total is not None:
            payload["customTotal"] = float(self.sale.custom_total)
        if self.sale.notes is not None:
            payload["notes"] = self.sale.notes
        return payload


def _resolve_timestamp(candidate: Optional[datetime]) -> datetime:
    """Return ``candidate`` or the current UTC time when it is ``None``."""

    return candidate if candidate is not None else datetime.now(UTC)


def _get_cache_bucket(context: RuntimeContext, name: str) -> Dict[str, Any]:
    """Return a mutable cache bucket dedicated to the supplied name."""

    bucket = context._cache.get(name)
    if bucket is None:
        log.debug("Initializing cache bucket '%s'", name)
        bucket = {}
        context._cache[name] = bucket
    return bucket


def _invalidate_cache(context: RuntimeContext, *names: str) -> None:
    """Evict one or more cache buckets after mutating workbook state.

    Missing buckets are ignored so callers can request targeted invalidation
    without checking first.
    """

    if not names:
        return

    log.debug("Invalidating cache buckets: %s", ", ".join(names))

    for name in names:
        context._cache.pop(name, None)


def _ensure_employees_cache(context: RuntimeContext) -> Dict[str, Any]:
    """Populate the employee cache bucket on demand.

    Returns:
        dict[str, Any]: Bucket containing ``all`` employees, ``active``
            employees, and a ``by_id`` lookup dictionary.
    """

    bucket = _get_cache_bucket(context, "employees")
    if "all" not in bucket:
        all_employees = list(data_manager.iter_employees(context.workbook))
        bucket["all"] = all_employees
        bucket["active"] = [employee for employee in all_employees if employee.is_active]
        bucket["by_id"] = {employee.employee_id: employee for employee in all_employees}
        log.debug(
            "Populated employees cache with %d entries (%d active)",
            len(all_employees),
            len(bucket["active"]),
        )
    return bucket


def _ensure_products_cache(context: RuntimeContext) -> Dict[str, Any]:
    """Populate the product cache bucket on demand.

    The bucket mirrors the employee one so both can serve listings and
    primary key lookups without touching the workbook again.
    """

    bucket = _get_cache_bucket(context, "products")
    if "all" not in bucket:
        all_products = list(data_manager.iter_products(context.workbook))
        bucket["all"] = all_products
        bucket["active"] = [product for product in all_products if product.is_active]
        bucket["by_id"] = {product.product_id: product for product in all_products}
        log.debug(
            "Populated products cache with %d entries (%d active)",
            len(all_products),
            len(bucket["active"]),
        )
    return bucket


def _ensure_sales_cache(context: RuntimeContext) -> Dict[str, Any]:
    """Populate the joined sale history bucket on demand.

    Sales are immutable once committed, so the joined records stay valid
    until the next commit or deletion invalidates the bucket.
    """

    bucket = _get_cache_bucket(context, "sales")
    if "all" not in bucket:
        records = list(data_manager.iter_sale_records(context.workbook))
        bucket["all"] = records
        bucket["by_id"] = {record.sale.sale_id: record for record in records}
        log.debug("Populated sales cache with %d entries", len(records))
    return bucket


def load_runtime_context(config_path: Optional[Path] = None) -> RuntimeContext:
    """Load configuration settings and a live workbook for the BLL.

    Resolves ``config.ini``, parses settings, opens the workbook, and builds
    the rate limiter described by the ``[RateLimit]`` section.

    Raises:
        FileNotFoundError: If the configuration file or workbook cannot be
            located.
        KeyError: When mandatory configuration options are missing.
    """
    located_config = data_manager.find_config_file(config_path)
    resolved_config = Path(located_config).expanduser().resolve()
    parser = data_manager.read_config(resolved_config)
    settings = data_manager.parse_settings(parser, base_path=resolved_config.parent)
    workbook = data_manager.open_workbook(settings.data_file)
    log.info("Loaded runtime context for workbook '%s'", settings.data_file)
    return RuntimeContext(
        settings=settings,
        workbook=workbook,
        rate_limiter=RateLimiter.from_settings(settings.rate_limit),
    )


def ensure_schema_version(context: RuntimeContext) -> None:
    """Validate workbook compatibility before mutating state.

    Raises:
        RuntimeError: If the schema version declared in the configuration does
            not match ``EXPECTED_SCHEMA_VERSION``.
    """
    if context.settings.schema_version != EXPECTED_SCHEMA_VERSION:
        log.error(
            "Workbook schema mismatch: expected %s, found %s",
            EXPECTED_SCHEMA_VERSION,
            context.settings.schema_version,
        )
        raise RuntimeError(
            "Workbook schema mismatch: expected %s, found %s"
            % (EXPECTED_SCHEMA_VERSION, context.settings.schema_version)
        )

    log.debug("Schema version '%s' validated", context.settings.schema_version)


def list_employees(context: RuntimeContext, *, include_inactive: bool = False) -> List[data_manager.EmployeeRow]:
    """Return cached employee rows, active ones only unless asked otherwise."""
    cache = _ensure_employees_cache(context)
    source = cache["all"] if include_inactive else cache["active"]
    return list(source)


def list_products(context: RuntimeContext, *, include_inactive: bool = False) -> List[data_manager.ProductRow]:
    """Return cached product rows optionally filtered by active status.

    Args:
        context (RuntimeContext): Runtime context providing workbook access and
            caches.
        include_inactive (bool): When ``True`` the result includes
            soft-deactivated products.

    Returns:
        list[data_manager.ProductRow]: Copy of the cached product dataset in
            sheet order.
    """
    cache = _ensure_products_cache(context)
    source = cache["all"] if include_inactive else cache["active"]
    return list(source)


def list_sale_records(context: RuntimeContext) -> List[data_manager.SaleRecord]:
    """Snapshot of the committed sale history in sheet order.

    The snapshot is taken under the context's write lock so it never contains
    a sale whose items are only partly appended.
    """
    with context.write_lock:
        cache = _ensure_sales_cache(context)
        return list(cache["all"])


def get_employee(context: RuntimeContext, employee_id: str) -> data_manager.EmployeeRow:
    """Resolve an employee record by its identifier.

    Raises:
        MissingReferenceError: If ``employee_id`` is absent from the workbook.
    """
    cache = _ensure_employees_cache(context)
    try:
        return cache["by_id"][employee_id]
    except KeyError as exc:
        log.warning("Employee lookup failed for id '%s'", employee_id)
        raise MissingReferenceError(f"Unknown employee id: {employee_id}") from exc


def get_product(context: RuntimeContext, product_id: str) -> data_manager.ProductRow:
    """Resolve a product record by its identifier.

    Raises:
        MissingReferenceError: If ``product_id`` is absent from the workbook.
    """
    cache = _ensure_products_cache(context)
    try:
        return cache["by_id"][product_id]
    except KeyError as exc:
        log.warning("Product lookup failed for id '%s'", product_id)
        raise MissingReferenceError(f"Unknown product id: {product_id}") from exc


def get_sale(context: RuntimeContext, sale_id: str) -> data_manager.SaleRecord:
    """Retrieve a committed sale with its items.

    Raises:
        MissingReferenceError: If no sale carries ``sale_id``.
    """
    with context.write_lock:
        cache = _ensure_sales_cache(context)
        try:
            return cache["by_id"][sale_id]
        except KeyError as exc:
            log.warning("Sale lookup failed for id '%s'", sale_id)
            raise MissingReferenceError(f"Unknown sale id: {sale_id}") from exc

@dataclass(frozen=True)
class EmployeeListing:
    """One page of employees plus figures over the whole matching set."""

    employees: Tuple[data_manager.EmployeeRow, ...]
    sales_counts: Mapping[str, int]
    total_count: int
    active_count: int
    inactive_count: int


@dataclass(frozen=True)
class ProductListing:
    """One page of products plus catalog-wide price figures."""

    products: Tuple[data_manager.ProductRow, ...]
    total_count: int
    active_count: int
    inactive_count: int
    average_price: Decimal
    min_price: Decimal
    max_price: Decimal


def _paginate(rows: List[Any], limit: Optional[int], offset: int) -> List[Any]:
    if offset < 0 or (limit is not None and limit < 0):
        raise ValueError("limit and offset must not be negative")
    end = None if limit is None else offset + limit
    return rows[offset:end]


def _matches(needle: Optional[str], *haystack: Optional[str]) -> bool:
    if not needle:
        return True
    needle = needle.casefold()
    return any(needle in value.casefold() for value in haystack if value)


def search_employees(
    context: RuntimeContext,
    *,
    search: Optional[str] = None,
    is_active: Optional[bool] = None,
    limit: Optional[int] = None,
    offset: int = 0,
) -> EmployeeListing:
    """Filter employees by status and a case-insensitive name/mobile search.

    ``total_count`` counts every match before paging. ``active_count`` and
    ``inactive_count`` cover the whole staff. ``sales_counts`` holds the
    number of recorded sales for each employee on the page.
    """
    everyone = list_employees(context, include_inactive=True)
    matching = [
        employee
        for employee in everyone
        if (is_active is None or employee.is_active == is_active)
        and _matches(search, employee.name, employee.mobile)
    ]
    page = _paginate(matching, limit, offset)

    counts = {employee.employee_id: 0 for employee in page}
    for record in list_sale_records(context):
        if record.sale.employee_id in counts:
            counts[record.sale.employee_id] += 1

    active = sum(1 for employee in everyone if employee.is_active)
    return EmployeeListing(
        employees=tuple(page),
        sales_counts=counts,
        total_count=len(matching),
        active_count=active,
        inactive_count=len(everyone) - active,
    )


def search_products(
    context: RuntimeContext,
    *,
    search: Optional[str] = None,
    is_active: Optional[bool] = None,
    min_price: Optional[Decimal] = None,
    max_price: Optional[Decimal] = None,
    limit: Optional[int] = None,
    offset: int = 0,
) -> ProductListing:
    """Filter products by status, name/SKU search and an inclusive price range.

    Price figures are taken over the whole catalog and are zero when it is
    empty.
    """
    catalog = list_products(context, include_inactive=True)
    matching = [
        product
        for product in catalog
        if (is_active is None or product.is_active == is_active)
        and (min_price is None or product.price >= min_price)
        and (max_price is None or product.price <= max_price)
        and _matches(search, product.name, product.sku)
    ]
    prices = [product.price for product in catalog]
    active = sum(1 for product in catalog if product.is_active)
    zero = Decimal("0")
    return ProductListing(
        products=tuple(_paginate(matching, limit, offset)),
        total_count=len(matching),
        active_count=active,
        inactive_count=len(catalog) - active,
        average_price=sum(prices, zero) / len(prices) if prices else zero,
        min_price=min(prices, default=zero),
        max_price=max(prices, default=zero),
    )


def list_sales_page(
    context: RuntimeContext,
    *,
    employee_id: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    limit: Optional[int] = None,
    offset: int = 0,
) -> List[data_manager.SaleRecord]:
    """Committed sales newest first, filtered and then paged.

    Sales whose timestamp cannot be read sort after all others.
    """
    records = analytics.filter_sales(
        list_sale_records(context),
        start=start,
        end=end,
        employee_id=employee_id,
    )
    oldest = datetime.min.replace(tzinfo=UTC)
    records.sort(
        key=lambda record: (record.sale.created_at is not None, record.sale.created_at or oldest),
        reverse=True,
    )
    return _paginate(records, limit, offset)



class WorkbookCatalog:
    """Catalog accessor backed by the context caches.

    Unknown ids resolve to ``None``; deciding what that means is left to the
    validator.
    """

    def __init__(self, context: RuntimeContext) -> None:
        self._context = context

    def find_employee(self, employee_id: str) -> Optional[data_manager.EmployeeRow]:
        return _ensure_employees_cache(self._context)["by_id"].get(employee_id)

    def find_product(self, product_id: str) -> Optional[data_manager.ProductRow]:
        return _ensure_products_cache(self._context)["by_id"].get(product_id)


def add_employee(
    context: RuntimeContext,
    *,
    employee_id: str,
    name: str,
    mobile: str,
    is_active: bool = True,
) -> data_manager.EmployeeRow:
    """Append a new employee after checking name, mobile format and uniqueness.

    Raises:
        BusinessRuleViolation: On a blank name, a malformed mobile number, or a
            duplicate id or mobile number.
    """
    name = (name or "").strip()
    mobile = (mobile or "").strip()
    if not employee_id or not name or not mobile:
        raise BusinessRuleViolation("Employee ID, name and mobile number are required")
    if not re.match(MOBILE_PATTERN, mobile):
        log.error("Rejected employee '%s': invalid mobile '%s'", employee_id, mobile)
        raise BusinessRuleViolation("Invalid mobile number format", details={"field": "mobile"})

    existing = list_employees(context, include_inactive=True)
    if any(employee.employee_id == employee_id for employee in existing):
        raise BusinessRuleViolation(f"Employee '{employee_id}' already exists")
    if any(employee.mobile == mobile for employee in existing):
        raise BusinessRuleViolation("Employee with this mobile number already exists", details={"field": "mobile"})

    record = data_manager.EmployeeRow(employee_id=employee_id, name=name, mobile=mobile, is_active=is_active)
    data_manager.append_employee(context.workbook, record)
    _invalidate_cache(context, "employees")
    log.info("Added employee '%s' (%s)", employee_id, name)
    return record


def add_product(
    context: RuntimeContext,
    *,
    product_id: str,
    name: str,
    price: Any,
    is_active: bool = True,
    sku: Optional[str] = None,
    barcode: Optional[str] = None,
) -> data_manager.ProductRow:
    """Append a new product with a positive price and unique sku/barcode.

    Raises:
        BusinessRuleViolation: On a blank name, a non-positive price, or a
            duplicate id, sku, or barcode.
    """
    name = (name or "").strip()
    if not product_id or not name:
        raise BusinessRuleViolation("Product ID and name are required")
    parsed_price = require_positive_price(price)
    sku = sku.strip() if sku and sku.strip() else None
    barcode = barcode.strip() if barcode and barcode.strip() else None

    existing = list_products(context, include_inactive=True)
    if any(product.product_id == product_id for product in existing):
        raise BusinessRuleViolation(f"Product '{product_id}' already exists")
    if sku and any(product.sku == sku for product in existing):
        raise BusinessRuleViolation("Product with this SKU already exists", details={"field": "sku"})
    if barcode and any(product.barcode == barcode for product in existing):
        raise BusinessRuleViolation("Product with this barcode already exists", details={"field": "barcode"})

    record = data_manager.ProductRow(
        product_id=product_id,
        name=name,
        price=parsed_price,
        is_active=is_active,
        sku=sku,
        barcode=barcode,
    )
    data_manager.append_product(context.workbook, record)
    _invalidate_cache(context, "products")
    log.info("Added product '%s' (%s) at %s", product_id, name, parsed_price)
    return record


def set_employee_active(context: RuntimeContext, employee_id: str, is_active: bool) -> None:
    """Soft-(de)activate an employee; historical sales keep referencing it."""
    get_employee(context, employee_id)
    data_manager.update_employee(context.workbook, employee_id, field_values={"IsActive": is_active})
    _invalidate_cache(context, "employees")
    log.info("Set employee '%s' active=%s", employee_id, is_active)


def set_product_active(context: RuntimeContext, product_id: str, is_active: bool) -> None:
    """Soft-(de)activate a product; historical sale items are unaffected."""
    get_product(context, product_id)
    data_manager.update_product(context.workbook, product_id, field_values={"IsActive": is_active})
    _invalidate_cache(context, "products")
    log.info("Set product '%s' active=%s", product_id, is_active)


def update_product_price(context: RuntimeContext, product_id: str, price: Any) -> data_manager.ProductRow:
    """Change the catalog price of a product.

    Committed sale items keep the unit price captured when they were sold.
    """
    get_product(context, product_id)
    parsed_price = require_positive_price(price)
    data_manager.update_product(context.workbook, product_id, field_values={"Price": parsed_price})
    _invalidate_cache(context, "products")
    log.info("Updated price of product '%s' to %s", product_id, parsed_price)
    return get_product(context, product_id)


def require_positive_price(price: Any) -> Decimal:
    """Coerce ``price`` to Decimal and require it to be strictly positive.

    Raises:
        BusinessRuleViolation: If the value is not a number or not above zero.
    """
    try:
        parsed = to_money(price)
    except ValueError as exc:
        raise BusinessRuleViolation(f"Invalid price: {price!r}", details={"field": "price"}) from exc
    if parsed is None or parsed <= Decimal("0"):
        log.error("Price validation failed: %s", price)
        raise BusinessRuleViolation("Price must be a positive number", details={"field": "price"})
    return parsed


def generate_sale_id(*, prefix: str = "S", when: Optional[datetime] = None) -> str:
    """Generate a sortable, collision-resistant sale identifier.

    Returns:
        str: ``{prefix}{YYYYMMDDHHMMSSffffff}{6 hex chars}``. The timestamp part
            keeps identifiers in chronological order and the random suffix
            separates commits landing in the same microsecond.
    """
    when = when or _resolve_timestamp(None)
    return f"{prefix}{when.strftime('%Y%m%d%H%M%S%f')}{uuid.uuid4().hex[:6].upper()}"


def gate_request(context: RuntimeContext, client_id: str) -> Optional[RateDecision]:
    """Run the request filter for ``client_id`` before the core is invoked.

    Returns ``None`` when the context has no limiter configured.

    Raises:
        RequestRejected: If the client exhausted its request budget.
    """
    if context.rate_limiter is None:
        return None
    return context.rate_limiter.enforce(client_id)


def commit_sale(context: RuntimeContext, request: SaleRequest) -> CommittedSale:
    """Validate a sale and persist its header and items as one unit.

    Validation, row appends, and the atomic workbook save all run under the
    context's write lock, so two commits never interleave their item writes.
    When anything fails after validation the appended rows are removed again
    and the file on disk keeps its previous content. Once the save succeeds
    the sale is published on ``context.events``.

    Args:
        context (RuntimeContext): Runtime context providing workbook access,
            caches, the write lock, and the event bus.
        request (SaleRequest): Sale intent as received from the client.

    Returns:
        CommittedSale: The persisted sale, its items, and display names.

    Raises:
        SaleRejected: Any validation failure (nothing written).
        CommitFailed: The catalog or the atomic write failed unexpectedly.
    """
    timestamp = _resolve_timestamp(request.timestamp)
    catalog = WorkbookCatalog(context)
    workbook = context.workbook

    with context.write_lock:
        try:
            reconciliation = validate_sale(request, catalog)
            employee = catalog.find_employee(request.employee_id)
            product_names = {
                line.product_id: catalog.find_product(line.product_id).name
                for line in reconciliation.lines
            }
        except ShopError:
            raise
        except Exception as exc:
            log.error("Unexpected error while preparing sale: %s", exc)
            raise CommitFailed("Failed to complete sale", details={"reason": str(exc)}) from exc

        sale_id = generate_sale_id(when=timestamp)
        header = data_manager.SaleRow(
            sale_id=sale_id,
            employee_id=request.employee_id,
            created_at_iso=timestamp.isoformat(),
            total_amount=reconciliation.calculated_total,
            custom_total=reconciliation.custom_total,
            notes=request.notes or None,
        )
        items = tuple(
            data_manager.SaleItemRow(
                sale_id=sale_id,
                line_no=line_no,
                product_id=line.product_id,
                quantity=line.quantity,
                unit_price=line.unit_price,
                custom_price=line.custom_price,
            )
            for line_no, line in enumerate(reconciliation.lines, start=1)
        )

        sales_mark = data_manager.row_count(workbook, data_manager.SALES_SHEET)
        items_mark = data_manager.row_count(workbook, data_manager.SALE_ITEMS_SHEET)
        try:
            data_manager.append_sale(workbook, header)
            for item in items:
                data_manager.append_sale_item(workbook, item)
            data_manager.save_workbook(workbook, destination=context.settings.data_file)
        except Exception as exc:
            data_manager.truncate_rows(workbook, data_manager.SALES_SHEET, sales_mark)
            data_manager.truncate_rows(workbook, data_manager.SALE_ITEMS_SHEET, items_mark)
            log.error("Atomic write failed for sale '%s': %s", sale_id, exc)
            raise CommitFailed("Failed to complete sale", details={"reason": str(exc)}) from exc
        finally:
            _invalidate_cache(context, "sales")

    committed = CommittedSale(
        sale=header,
        items=items,
        employee_name=employee.name,
        product_names=product_names,
    )
    log.info(
        "Committed sale '%s' for employee '%s' (%d lines, total=%s, custom_total=%s)",
        sale_id,
        request.employee_id,
        len(items),
        header.total_amount,
        header.custom_total,
    )
    context.events.publish(committed)
    return committed


def delete_sale(context: RuntimeContext, sale_id: str) -> int:
    """Remove a sale and, by cascade, all of its line items.

    Returns:
        int: Number of line items removed with the header.

    Raises:
        MissingReferenceError: If ``sale_id`` is unknown.
    """
    with context.write_lock:
        get_sale(context, sale_id)
        removed = data_manager.delete_sale(context.workbook, sale_id)
        _invalidate_cache(context, "sales")
    log.info("Deleted sale '%s' and %d line items", sale_id, removed)
    return removed


def employee_names(context: RuntimeContext) -> Dict[str, str]:
    return {employee.employee_id: employee.name for employee in list_employees(context, include_inactive=True)}


def product_names(context: RuntimeContext) -> Dict[str, str]:
    return {product.product_id: product.name for product in list_products(context, include_inactive=True)}


def sale_analytics(context: RuntimeContext, **options: Any) -> analytics.AnalyticsReport:
    """Run :func:`analytics.query_analytics` over the current history.

    Keyword options are forwarded unchanged; employee and product names are
    filled in from the catalog.
    """
    return analytics.query_analytics(
        list_sale_records(context),
        employee_names=employee_names(context),
        product_names=product_names(context),
        **options,
    )


def persist_context(context: RuntimeContext) -> None:
    """Persist any in-memory workbook changes to disk.

    The save targets :attr:`RuntimeContext.settings.data_file` and goes
    through the same atomic replace as sale commits.
    """
    with context.write_lock:
        data_manager.save_workbook(
            context.workbook,
            destination=context.settings.data_file,
        )
    log.info("Persisted workbook '%s'", context.settings.data_file)


def refresh_context(context: RuntimeContext) -> RuntimeContext:
    """Reload the workbook to discard unsaved modifications.

    Returns:
        RuntimeContext: Fresh context containing a newly opened workbook and
            an empty cache. The event bus and rate limiter carry over.

    Raises:
        FileNotFoundError: If the backing workbook cannot be reloaded.
    """
    workbook = data_manager.refresh_workbook(context.settings.data_file)
    log.info("Reloaded workbook '%s'", context.settings.data_file)
    return RuntimeContext(
        settings=context.settings,
        workbook=workbook,
        events=context.events,
        rate_limiter=context.rate_limiter,
    )
