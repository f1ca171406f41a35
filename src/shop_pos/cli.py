"""Command-line entry points for the shop POS toolkit.

All orchestration in this module is limited to argparse wiring, translating
command-line arguments into the request objects consumed by the business
layer, and printing results. Keeping the CLI thin ensures the same parser
configuration can be reused by tests, scripts, or any alternative front-end.
"""

from __future__ import annotations

import argparse
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Mapping, MutableMapping, Optional, Sequence

from . import analytics, configure_logging, core_logic, log
from .constants import ADMIN_TOP_PRODUCTS, DEFAULT_TREND_DAYS, EMPLOYEE_TOP_PRODUCTS, LEADERBOARD_SIZE
from .errors import BusinessRuleViolation, CommitFailed, RequestRejected
from .pricing import LineRequest, to_money


@dataclass(frozen=True)
class CommandSpec:
    """Describe how a CLI sub-command is configured and executed.

    ``persist`` marks commands whose in-memory workbook changes must be saved
    once they succeed. ``sale`` saves on its own and leaves it unset.
    """

    name: str
    help_text: str
    register: Callable[[argparse._SubParsersAction[argparse.ArgumentParser]], argparse.ArgumentParser]
    execute: Callable[[core_logic.RuntimeContext, argparse.Namespace], int]
    persist: bool = False


def money_argument(raw: str):
    """argparse ``type`` for monetary amounts."""
    try:
        return to_money(raw)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def item_argument(raw: str) -> LineRequest:
    """Parse ``PRODUCT_ID:QTY[:CUSTOM_PRICE]`` into a :class:`LineRequest`."""
    parts = raw.split(":")
    if len(parts) not in (2, 3):
        raise argparse.ArgumentTypeError(f"Expected PRODUCT_ID:QTY[:CUSTOM_PRICE], got {raw!r}")
    try:
        quantity = int(parts[1])
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"Quantity must be an integer in {raw!r}") from exc
    custom_price = money_argument(parts[2]) if len(parts) == 3 and parts[2] else None
    return LineRequest(product_id=parts[0].strip(), quantity=quantity, custom_price=custom_price)


def count_argument(raw: str) -> int:
    """argparse ``type`` for limits and offsets."""
    try:
        value = int(raw)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"Expected a whole number, got {raw!r}") from exc
    if value < 0:
        raise argparse.ArgumentTypeError(f"Expected zero or more, got {raw!r}")
    return value


def datetime_argument(raw: str) -> datetime:
    try:
        return datetime.fromisoformat(raw)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"Expected an ISO-8601 date or date-time, got {raw!r}") from exc


def build_parser() -> argparse.ArgumentParser:
    """Construct the top-level CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="shop-cli",
        description="Command-line tools for the shop POS workbook.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Optional path to config.ini (defaults to ./config.ini).",
    )
    return parser


def configure_subcommands(
    parser: argparse.ArgumentParser,
) -> Mapping[str, CommandSpec]:
    """Wire all CLI sub-commands onto the supplied parser."""
    subparsers = parser.add_subparsers(dest="command", required=True, title="commands")
    write_specs = register_write_commands(subparsers)
    read_specs = register_read_commands(subparsers)
    return build_command_table([*write_specs.values(), *read_specs.values()])


def register_write_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> Dict[str, CommandSpec]:
    """Declare mutating CLI commands such as sales and catalog changes."""
    specs = {
        "add-employee": register_add_employee_command(subparsers),
        "add-product": register_add_product_command(subparsers),
        "deactivate-employee": register_deactivate_employee_command(subparsers),
        "deactivate-product": register_deactivate_product_command(subparsers),
        "set-price": register_set_price_command(subparsers),
        "sale": register_sale_command(subparsers),
        "delete-sale": register_delete_sale_command(subparsers),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def register_read_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> Dict[str, CommandSpec]:
    """Declare read-only CLI commands such as dashboards."""
    specs = {
        "sales": register_sales_command(subparsers),
        "employees": register_employees_command(subparsers),
        "products": register_products_command(subparsers),
        "leaderboard": register_leaderboard_command(subparsers),
        "trend": register_trend_command(subparsers),
        "velocity": register_velocity_command(subparsers),
        "top-products": register_top_products_command(subparsers),
        "analytics": register_analytics_command(subparsers),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def register_add_employee_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``add-employee``."""
    name = "add-employee"
    help_text = "Register a new employee in the Employees sheet."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--employee-id", required=True)
        parser.add_argument("--name", required=True)
        parser.add_argument("--mobile", required=True)
        parser.add_argument("--inactive", action="store_true", help="Mark the employee as inactive on creation.")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_add_employee, persist=True)


def register_add_product_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``add-product``."""
    name = "add-product"
    help_text = "Register a new product in the Products sheet."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--product-id", required=True)
        parser.add_argument("--name", required=True)
        parser.add_argument("--price", required=True)
        parser.add_argument("--sku", default=None)
        parser.add_argument("--barcode", default=None)
        parser.add_argument("--inactive", action="store_true", help="Mark the product as inactive on creation.")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_add_product, persist=True)


def register_deactivate_employee_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``deactivate-employee``."""
    name = "deactivate-employee"
    help_text = "Soft-deactivate an employee (or reactivate with --activate)."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--employee-id", required=True)
        parser.add_argument("--activate", action="store_true")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(
        name=name,
        help_text=help_text,
        register=registrar,
        execute=run_deactivate_employee,
        persist=True,
    )


def register_deactivate_product_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``deactivate-product``."""
    name = "deactivate-product"
    help_text = "Soft-deactivate a product (or reactivate with --activate)."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--product-id", required=True)
        parser.add_argument("--activate", action="store_true")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(
        name=name,
        help_text=help_text,
        register=registrar,
        execute=run_deactivate_product,
        persist=True,
    )


def register_set_price_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``set-price``."""
    name = "set-price"
    help_text = "Change the catalog price of a product."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--product-id", required=True)
        parser.add_argument("--price", required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_set_price, persist=True)


def register_sale_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``sale``."""
    name = "sale"
    help_text = "Record a multi-line sale."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--employee-id", required=True)
        parser.add_argument(
            "--item",
            dest="items",
            action="append",
            type=item_argument,
            default=[],
            metavar="PRODUCT_ID:QTY[:CUSTOM_PRICE]",
            help="Line item; repeat for every product sold.",
        )
        parser.add_argument("--total-amount", type=money_argument, default=None)
        parser.add_argument("--custom-total", type=money_argument, default=None)
        parser.add_argument("--notes", dest="notes", default=None)
        parser.add_argument("--client-id", default=None, help="Caller identity used by the request filter.")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_sale)


def register_delete_sale_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``delete-sale``."""
    name = "delete-sale"
    help_text = "Delete a sale together with its line items."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--sale-id", required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_delete_sale, persist=True)


def _add_filter_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--employee-id", default=None)
    parser.add_argument("--start", type=datetime_argument, default=None)
    parser.add_argument("--end", type=datetime_argument, default=None)


def _add_paging_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--limit", type=count_argument, default=None)
    parser.add_argument("--offset", type=count_argument, default=0)


def _add_status_arguments(parser: argparse.ArgumentParser) -> None:
    status = parser.add_mutually_exclusive_group()
    status.add_argument("--active", dest="is_active", action="store_const", const=True, default=None)
    status.add_argument("--inactive", dest="is_active", action="store_const", const=False)
    parser.add_argument("--search", default=None, help="Case-insensitive text to look for.")


def register_sales_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``sales``."""
    name = "sales"
    help_text = "List committed sales with their items, newest first."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        _add_filter_arguments(parser)
        _add_paging_arguments(parser)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_sales_report)


def register_employees_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``employees``."""
    name = "employees"
    help_text = "List employees with their sales counts."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        _add_status_arguments(parser)
        _add_paging_arguments(parser)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_employees_report)


def register_products_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``products``."""
    name = "products"
    help_text = "List catalog products with price statistics."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        _add_status_arguments(parser)
        parser.add_argument("--min-price", type=money_argument, default=None)
        parser.add_argument("--max-price", type=money_argument, default=None)
        _add_paging_arguments(parser)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_products_report)


def register_leaderboard_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``leaderboard``."""
    name = "leaderboard"
    help_text = "Display the top employees by revenue."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--limit", type=int, default=LEADERBOARD_SIZE)
        parser.add_argument("--start", type=datetime_argument, default=None)
        parser.add_argument("--end", type=datetime_argument, default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_leaderboard_report)


def register_trend_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``trend``."""
    name = "trend"
    help_text = "Display revenue per day for the last N days."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--days", type=int, default=DEFAULT_TREND_DAYS)
        parser.add_argument("--employee-id", default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_trend_report)


def register_velocity_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``velocity``."""
    name = "velocity"
    help_text = "Display an employee's revenue per hour today."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--employee-id", required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_velocity_report)


def register_top_products_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``top-products``."""
    name = "top-products"
    help_text = "Display the best-selling products by revenue."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument(
            "--employee-id",
            default=None,
            help=f"Restrict to one employee (shows {EMPLOYEE_TOP_PRODUCTS} entries by default).",
        )
        parser.add_argument("--limit", type=int, default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_top_products_report)


def register_analytics_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``analytics``."""
    name = "analytics"
    help_text = "Display the full dashboard for the whole shop or one employee."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        _add_filter_arguments(parser)
        parser.add_argument("--days", type=int, default=DEFAULT_TREND_DAYS)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_analytics_report)


def load_runtime_context(config_path: Optional[Path] = None) -> core_logic.RuntimeContext:
    """Resolve the runtime context for CLI operations.

    A ``[Logging]`` section in the configuration replaces the import-time
    log handlers.
    """
    target = Path(config_path) if config_path is not None else Path.cwd() / "config.ini"
    context = core_logic.load_runtime_context(target)
    logging_settings = context.settings.logging_settings
    if logging_settings is not None:
        configure_logging(logging_settings.level, logging_settings.log_file)
    core_logic.ensure_schema_version(context)
    return context


def dispatch_command(
    context: core_logic.RuntimeContext,
    args: argparse.Namespace,
    command_table: Mapping[str, CommandSpec],
) -> int:
    """Dispatch the parsed arguments to the configured executor."""
    if not hasattr(args, "command") or args.command is None:
        raise KeyError("No command specified")
    spec = command_table.get(args.command)
    if spec is None:
        raise KeyError(f"Unknown command: {args.command}")
    return spec.execute(context, args)


def build_command_table(
    specs: Iterable[CommandSpec],
) -> MutableMapping[str, CommandSpec]:
    """Build an index of command specifications keyed by command name."""
    table: Dict[str, CommandSpec] = {}
    for spec in specs:
        if spec.name in table:
            raise ValueError(f"Duplicate command name: {spec.name}")
        table[spec.name] = spec
    return table


def translate_add_employee(args: argparse.Namespace) -> Mapping[str, Any]:
    """Translate CLI args into an add-employee request."""
    return {
        "employee_id": args.employee_id,
        "name": args.name,
        "mobile": args.mobile,
        "is_active": not getattr(args, "inactive", False),
    }


def translate_add_product(args: argparse.Namespace) -> Mapping[str, Any]:
    """Translate CLI args into an add-product request."""
    return {
        "product_id": args.product_id,
        "name": args.name,
        "price": args.price,
        "sku": getattr(args, "sku", None),
        "barcode": getattr(args, "barcode", None),
        "is_active": not getattr(args, "inactive", False),
    }


def translate_sale(args: argparse.Namespace) -> core_logic.SaleRequest:
    """Translate CLI args into a sale request."""
    return core_logic.SaleRequest(
        employee_id=args.employee_id,
        items=tuple(args.items or ()),
        total_amount=args.total_amount,
        custom_total=args.custom_total,
        notes=args.notes,
    )


def run_add_employee(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    payload = translate_add_employee(args)
    record = core_logic.add_employee(context, **payload)
    print(f"Added employee {record.employee_id} ({record.name})")
    return 0


def run_add_product(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    payload = translate_add_product(args)
    record = core_logic.add_product(context, **payload)
    print(f"Added product {record.product_id} ({record.name}) at {record.price}")
    return 0


def run_deactivate_employee(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    core_logic.set_employee_active(context, args.employee_id, bool(getattr(args, "activate", False)))
    return 0


def run_deactivate_product(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    core_logic.set_product_active(context, args.product_id, bool(getattr(args, "activate", False)))
    return 0


def run_set_price(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    record = core_logic.update_product_price(context, args.product_id, args.price)
    print(f"Product {record.product_id} now costs {record.price}")
    return 0


def run_sale(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the sale workflow via the BLL.

    The request filter runs first when a client id is given; the committer
    persists the workbook itself.
    """
    if getattr(args, "client_id", None):
        core_logic.gate_request(context, args.client_id)
    request = translate_sale(args)
    committed = core_logic.commit_sale(context, request)
    print(format_committed_sale(committed.as_dict()))
    return 0


def run_delete_sale(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    removed = core_logic.delete_sale(context, args.sale_id)
    print(f"Deleted sale {args.sale_id} ({removed} items)")
    return 0


def run_sales_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    records = core_logic.list_sales_page(
        context,
        employee_id=args.employee_id,
        start=args.start,
        end=args.end,
        limit=args.limit,
        offset=args.offset,
    )
    names = core_logic.product_names(context)
    for record in records:
        sale = record.sale
        print(f"{sale.sale_id}  {sale.created_at_iso}  {sale.employee_id}  {analytics.effective_amount(sale)}")
        for item in record.items:
            print(f"    {item.line_no}. {names.get(item.product_id, item.product_id)} x{item.quantity} @ {item.unit_price}")
    return 0


def run_employees_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    listing = core_logic.search_employees(
        context,
        search=args.search,
        is_active=args.is_active,
        limit=args.limit,
        offset=args.offset,
    )
    for employee in listing.employees:
        status = "active" if employee.is_active else "inactive"
        sales = listing.sales_counts[employee.employee_id]
        print(f"{employee.employee_id}  {employee.name}  {employee.mobile}  {status}  {sales} sales")
    print(
        f"Matched: {listing.total_count}  Active: {listing.active_count}  Inactive: {listing.inactive_count}"
    )
    return 0


def run_products_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    listing = core_logic.search_products(
        context,
        search=args.search,
        is_active=args.is_active,
        min_price=args.min_price,
        max_price=args.max_price,
        limit=args.limit,
        offset=args.offset,
    )
    for product in listing.products:
        status = "active" if product.is_active else "inactive"
        print(f"{product.product_id}  {product.name}  {product.price}  {status}  {product.sku or '-'}")
    print(
        f"Matched: {listing.total_count}  Active: {listing.active_count}  Inactive: {listing.inactive_count}"
    )
    print(f"Price avg {listing.average_price:.2f}  min {listing.min_price:.2f}  max {listing.max_price:.2f}")
    return 0


def run_leaderboard_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    records = analytics.filter_sales(core_logic.list_sale_records(context), start=args.start, end=args.end)
    entries = analytics.build_leaderboard(
        records,
        limit=args.limit,
        employee_names=core_logic.employee_names(context),
    )
    for rank, entry in enumerate(entries, start=1):
        print(f"{rank}. {entry.name or entry.employee_id}  {entry.revenue}  ({entry.orders} orders)")
    return 0


def run_trend_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    records = analytics.filter_sales(core_logic.list_sale_records(context), employee_id=args.employee_id)
    for point in analytics.build_trend(records, days=args.days):
        print(f"{point.day.isoformat()}  {point.amount}")
    return 0


def run_velocity_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    velocity = analytics.sales_velocity(core_logic.list_sale_records(context), args.employee_id)
    print(f"{args.employee_id}  {velocity:.2f} per hour")
    return 0


def run_top_products_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    limit = args.limit
    if limit is None:
        limit = EMPLOYEE_TOP_PRODUCTS if args.employee_id else ADMIN_TOP_PRODUCTS
    records = analytics.filter_sales(core_logic.list_sale_records(context), employee_id=args.employee_id)
    ranked = analytics.top_products(records, limit=limit, product_names=core_logic.product_names(context))
    for rank, entry in enumerate(ranked, start=1):
        print(f"{rank}. {entry.name or entry.product_id}  qty={entry.quantity}  {entry.revenue}")
    return 0


def run_analytics_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    report = core_logic.sale_analytics(
        context,
        employee_id=args.employee_id,
        start=args.start,
        end=args.end,
        trend_days=args.days,
    )
    summary = report.summary
    print(f"Orders: {summary.total_count}  Revenue: {summary.total_revenue}  Today: {summary.today_revenue}")
    print(f"Average order: {summary.average_order_value:.2f}")
    if report.velocity is not None:
        print(f"Velocity: {report.velocity:.2f} per hour")
    print("Leaderboard:")
    for rank, entry in enumerate(report.leaderboard, start=1):
        print(f"  {rank}. {entry.name or entry.employee_id}  {entry.revenue}")
    print("Trend:")
    for point in report.trend:
        print(f"  {point.day.isoformat()}  {point.amount}")
    print("Top products:")
    for rank, entry in enumerate(report.top_products, start=1):
        print(f"  {rank}. {entry.name or entry.product_id}  qty={entry.quantity}  {entry.revenue}")
    return 0


def format_committed_sale(payload: Mapping[str, Any]) -> str:
    """Render the client-facing sale mapping as a short receipt."""
    lines = [f"Sale {payload['id']} by {payload['employeeName']} at {payload['createdAt']}"]
    for item in payload["items"]:
        price = item.get("customPrice", item["unitPrice"])
        lines.append(f"  {item['productName']} x{item['quantity']} @ {price:.2f}")
    lines.append(f"Total: {payload['totalAmount']:.2f}")
    if "customTotal" in payload:
        lines.append(f"Charged: {payload['customTotal']:.2f}")
    return "\n".join(lines)


def handle_cli_error(error: Exception) -> int:
    """Convert raised exceptions into user-friendly exit codes."""
    log.error("%s", error)
    if isinstance(error, RequestRejected):
        return 5
    if isinstance(error, CommitFailed):
        return 4
    if isinstance(error, BusinessRuleViolation):
        return 2
    if isinstance(error, FileNotFoundError):
        return 3
    return 1


def persist_workbook(context: core_logic.RuntimeContext) -> None:
    """Persist workbook changes after successful execution."""
    try:
        core_logic.persist_context(context)
    except PermissionError as error:
        raise RuntimeError(str(error)) from error


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point that orchestrates parsing and execution."""
    parser = build_parser()
    command_table = configure_subcommands(parser)
    args = parser.parse_args(argv)
    try:
        context = load_runtime_context(getattr(args, "config", None))
        exit_code = dispatch_command(context, args, command_table)
        if exit_code == 0 and command_table[args.command].persist:
            persist_workbook(context)
        return exit_code
    except Exception as error:  # pragma: no cover - centralised error handler tested separately
        return handle_cli_error(error)
