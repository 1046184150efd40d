"""Command-line entry points for the stationery ERP toolkit.

All orchestration in this module is limited to argparse wiring and translating
command-line arguments into the command objects consumed by the business
layer. Keeping the CLI thin ensures the same parser configuration can be
reused by tests, scripts, or any alternative front-end that wants to expose
the package capabilities.
"""

from __future__ import annotations

import argparse
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, MutableMapping, Optional, Sequence

from . import core_logic, data_manager, inventory, log, purchase_orders, returns, sales
from .constants import PaymentMethod, PurchaseOrderStatus, SaleStatus


@dataclass(frozen=True)
class CommandSpec:
    """Describe how a CLI sub-command is configured and executed."""

    name: str
    help_text: str
    register: Callable[[argparse._SubParsersAction[argparse.ArgumentParser]], argparse.ArgumentParser]
    execute: Callable[[core_logic.RuntimeContext, argparse.Namespace], int]


@dataclass(frozen=True)
class ItemSpec:
    """One ``--item`` value: ``[ID=]PRODUCT:QTY[:UNIT_PRICE[:SUBTOTAL]]``."""

    product_id: str
    quantity: int
    unit_price: Optional[Decimal] = None
    subtotal: Optional[Decimal] = None
    item_id: Optional[int] = None


def parse_item_spec(raw: str) -> ItemSpec:
    """Parse an ``--item`` argument, raising ``ArgumentTypeError`` when malformed."""
    item_id: Optional[int] = None
    body = raw
    if "=" in raw:
        id_part, body = raw.split("=", 1)
        try:
            item_id = int(id_part)
        except ValueError as exc:
            raise argparse.ArgumentTypeError(f"Invalid item id in '{raw}'") from exc

    parts = body.split(":")
    if len(parts) < 2 or len(parts) > 4 or not parts[0]:
        raise argparse.ArgumentTypeError(f"Expected PRODUCT:QTY[:UNIT_PRICE[:SUBTOTAL]], got '{raw}'")
    try:
        quantity = int(parts[1])
        unit_price = Decimal(parts[2]) if len(parts) > 2 and parts[2] else None
        subtotal = Decimal(parts[3]) if len(parts) > 3 and parts[3] else None
    except (ValueError, InvalidOperation) as exc:
        raise argparse.ArgumentTypeError(f"Invalid number in item '{raw}'") from exc
    return ItemSpec(product_id=parts[0], quantity=quantity, unit_price=unit_price, subtotal=subtotal, item_id=item_id)


def parse_amount(raw: str) -> Decimal:
    """Parse a money argument, raising ``ArgumentTypeError`` when it is not a number."""
    try:
        amount = Decimal(raw)
    except InvalidOperation as exc:
        raise argparse.ArgumentTypeError(f"Invalid amount '{raw}'") from exc
    if not amount.is_finite():
        raise argparse.ArgumentTypeError(f"Invalid amount '{raw}'")
    return amount


def _parse_date(raw: str) -> date:
    try:
        return date.fromisoformat(raw)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"Expected YYYY-MM-DD, got '{raw}'") from exc


def build_parser() -> argparse.ArgumentParser:
    """Construct the top-level CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="stationery-cli",
        description="Command-line tools for the stationery ERP workbook.",
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
    """Declare mutating CLI commands such as sales and purchase orders."""
    specs = {
        "add-product": register_add_product_command(subparsers),
        "add-supplier": register_add_party_command("supplier", "Register a new supplier."),
        "add-customer": register_add_party_command("customer", "Register a new customer."),
        "add-employee": register_add_party_command("employee", "Register a new employee."),
        "sale-create": register_sale_create_command(subparsers),
        "sale-update": register_sale_update_command(subparsers),
        "sale-delete": register_sale_delete_command(subparsers),
        "return-create": register_return_create_command(subparsers),
        "return-update": register_return_update_command(subparsers),
        "return-delete": register_return_delete_command(subparsers),
        "po-create": register_po_create_command(subparsers),
        "po-update": register_po_update_command(subparsers),
        "po-delete": register_po_delete_command(subparsers),
        "po-submit": register_po_transition_command("po-submit", "submit", "Submit a draft order to its supplier."),
        "po-confirm": register_po_transition_command("po-confirm", "confirm", "Mark a submitted order as confirmed."),
        "po-ship": register_po_transition_command("po-ship", "mark_shipped", "Mark a confirmed order as shipped."),
        "po-deliver": register_po_transition_command("po-deliver", "mark_delivered", "Mark a shipped order as delivered."),
        "po-pay": register_po_transition_command("po-pay", "mark_paid", "Mark a delivered order as paid."),
        "po-cancel": register_po_transition_command("po-cancel", "cancel", "Cancel an order."),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def register_read_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> Dict[str, CommandSpec]:
    """Declare read-only CLI commands such as reports."""
    specs = {
        "stock": register_stock_command(subparsers),
        "sales": register_sales_report_command(subparsers),
        "returns": register_returns_report_command(subparsers),
        "orders": register_orders_report_command(subparsers),
        "order-events": register_order_events_command(subparsers),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def _add_sale_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--customer-id", default=None, help="Defaults to the configured walk-in customer.")
    parser.add_argument("--employee-id", default=None, help="Defaults to the configured store employee.")
    parser.add_argument(
        "--item",
        dest="items",
        action="append",
        type=parse_item_spec,
        required=True,
        help="[ID=]PRODUCT:QTY:UNIT_PRICE[:SUBTOTAL]; repeat for each line.",
    )
    parser.add_argument("--total-amount", type=parse_amount, default=None, help="Defaults to the sum of item subtotals.")
    parser.add_argument("--tax-amount", type=parse_amount, default="0.00")
    parser.add_argument("--discount-amount", type=parse_amount, default="0.00")
    parser.add_argument("--final-amount", type=parse_amount, default=None, help="Defaults to total + tax - discount.")
    parser.add_argument(
        "--payment-method",
        choices=[member.value for member in PaymentMethod],
        default=PaymentMethod.CASH.value,
    )
    parser.add_argument(
        "--status",
        choices=[member.value for member in SaleStatus],
        default=SaleStatus.COMPLETED.value,
    )
    parser.add_argument("--notes", dest="notes", default=None)


def register_add_product_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``add-product``."""
    name = "add-product"
    help_text = "Register a new product in the Products sheet."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--product-id", required=True)
        parser.add_argument("--product-name", required=True)
        parser.add_argument("--cost-price", type=parse_amount, required=True)
        parser.add_argument("--sale-price", type=parse_amount, required=True)
        parser.add_argument("--stock", type=int, default=0, help="Opening stock.")
        parser.add_argument("--inactive", action="store_true", help="Mark the product as inactive on creation.")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_add_product)


def register_add_party_command(kind: str, help_text: str) -> CommandSpec:
    """Register ``add-supplier``, ``add-customer``, or ``add-employee``."""
    name = f"add-{kind}"

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument(f"--{kind}-id", dest="entity_id", required=True)
        parser.add_argument(f"--{kind}-name", dest="entity_name", required=True)
        parser.add_argument("--inactive", action="store_true", help=f"Mark the {kind} as inactive on creation.")
        parser.set_defaults(command=name, kind=kind)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_add_party)


def register_sale_create_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``sale-create``."""
    name = "sale-create"
    help_text = "Record a sale and take its items out of stock."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        _add_sale_arguments(parser)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_sale_create)


def register_sale_update_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``sale-update``."""
    name = "sale-update"
    help_text = "Replace a sale's items and amounts, reconciling stock."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--sale-id", type=int, required=True)
        _add_sale_arguments(parser)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_sale_update)


def register_sale_delete_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``sale-delete``."""
    name = "sale-delete"
    help_text = "Delete one or more sales and return their items to stock."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("sale_ids", type=int, nargs="+")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_sale_delete)


def _add_return_item_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--item",
        dest="items",
        action="append",
        type=parse_item_spec,
        required=True,
        help="PRODUCT:QTY[:UNIT_PRICE[:SUBTOTAL]]; the price defaults to the one on the sale.",
    )


def register_return_create_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``return-create``."""
    name = "return-create"
    help_text = "Record goods returned from a sale and put them back in stock."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--sale-id", type=int, required=True)
        parser.add_argument("--reason", required=True)
        parser.add_argument("--customer-id", default=None, help="Defaults to the customer of the sale.")
        parser.add_argument("--employee-id", default=None, help="Defaults to the configured store employee.")
        _add_return_item_argument(parser)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_return_create)


def register_return_update_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``return-update``."""
    name = "return-update"
    help_text = "Replace a return's items, reconciling stock."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--return-id", type=int, required=True)
        parser.add_argument("--reason", default=None, help="Defaults to the current reason.")
        parser.add_argument("--employee-id", default=None, help="Defaults to the current employee.")
        _add_return_item_argument(parser)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_return_update)


def register_return_delete_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``return-delete``."""
    name = "return-delete"
    help_text = "Delete one or more returns and take their items back out of stock."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("return_ids", type=int, nargs="+")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_return_delete)


def register_po_create_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``po-create``."""
    name = "po-create"
    help_text = "Create a draft purchase order."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--supplier-id", required=True)
        parser.add_argument("--item", dest="items", action="append", type=parse_item_spec, default=[])
        parser.add_argument("--order-date", type=_parse_date, default=None)
        parser.add_argument("--delivery-date", type=_parse_date, default=None)
        parser.add_argument("--notes", dest="notes", default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_po_create)


def register_po_update_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``po-update``."""
    name = "po-update"
    help_text = "Edit a draft purchase order; --item replaces the item set."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--order-id", type=int, required=True)
        parser.add_argument("--supplier-id", default=None)
        parser.add_argument("--item", dest="items", action="append", type=parse_item_spec, default=None)
        parser.add_argument("--delivery-date", type=_parse_date, default=None)
        parser.add_argument("--notes", dest="notes", default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_po_update)


def register_po_delete_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``po-delete``."""
    name = "po-delete"
    help_text = "Delete a draft purchase order."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--order-id", type=int, required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_po_delete)


def register_po_transition_command(name: str, operation: str, help_text: str) -> CommandSpec:
    """Register a lifecycle command that only takes ``--order-id``."""

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--order-id", type=int, required=True)
        parser.set_defaults(command=name, operation=operation)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_po_transition)


def register_stock_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``stock``."""
    name = "stock"
    help_text = "Display current stock levels."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_stock_report)


def register_sales_report_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``sales``."""
    name = "sales"
    help_text = "List sales, optionally filtered by customer or employee."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        group = parser.add_mutually_exclusive_group()
        group.add_argument("--customer-id", default=None)
        group.add_argument("--employee-id", default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_sales_report)


def register_returns_report_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``returns``."""
    name = "returns"
    help_text = "List sale returns, optionally only those of one sale."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--sale-id", type=int, default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_returns_report)


def register_orders_report_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``orders``."""
    name = "orders"
    help_text = "List purchase orders, optionally filtered by supplier or status."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        group = parser.add_mutually_exclusive_group()
        group.add_argument("--supplier-id", default=None)
        group.add_argument("--status", choices=[member.value for member in PurchaseOrderStatus], default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_orders_report)


def register_order_events_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``order-events``."""
    name = "order-events"
    help_text = "Display the tracking events of a purchase order."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--order-id", type=int, required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_order_events_report)


def load_runtime_context(config_path: Optional[Path] = None) -> core_logic.RuntimeContext:
    """Resolve the runtime context for CLI operations and check its schema version."""
    target = Path(config_path) if config_path is not None else Path.cwd() / "config.ini"
    context = core_logic.load_runtime_context(target)
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


def translate_add_product(args: argparse.Namespace) -> Mapping[str, Any]:
    """Translate CLI args into an add-product request."""
    return {
        "product_id": args.product_id,
        "product_name": args.product_name,
        "cost_price": args.cost_price,
        "sale_price": args.sale_price,
        "stock": args.stock,
        "is_active": not getattr(args, "inactive", False),
    }


def translate_sale(args: argparse.Namespace, settings: data_manager.ConfigSettings) -> sales.SaleCommand:
    """Translate CLI args into a sale command object.

    Omitted subtotals become ``unit_price * quantity``; omitted header amounts
    are derived from the lines so that quick counter sales need only items.
    """
    lines: List[sales.SaleItemCommand] = []
    for spec in args.items:
        if spec.unit_price is None:
            raise core_logic.ValidationError("unit_price", f"missing for product '{spec.product_id}'")
        subtotal = spec.subtotal if spec.subtotal is not None else spec.unit_price * spec.quantity
        lines.append(
            sales.SaleItemCommand(
                product_id=spec.product_id,
                quantity=spec.quantity,
                unit_price=spec.unit_price,
                subtotal=subtotal,
                item_id=spec.item_id,
            )
        )
    tax = args.tax_amount
    discount = args.discount_amount
    total = args.total_amount if args.total_amount is not None else sum(
        (line.subtotal for line in lines), Decimal("0.00")
    )
    final = args.final_amount if args.final_amount is not None else total + tax - discount
    return sales.SaleCommand(
        customer_id=args.customer_id or settings.default_customer_id,
        employee_id=args.employee_id or settings.default_employee_id,
        items=lines,
        total_amount=total,
        tax_amount=tax,
        discount_amount=discount,
        final_amount=final,
        payment_method=PaymentMethod(args.payment_method),
        status=SaleStatus(args.status),
        notes=args.notes,
    )


def translate_return(
    args: argparse.Namespace,
    *,
    original_sale_id: int,
    customer_id: str,
    employee_id: str,
    reason: str,
) -> returns.SaleReturnCommand:
    """Translate CLI args into a return command object.

    The caller resolves the sale, customer, employee, and reason because their
    defaults come from the workbook rather than from the command line.
    """
    for spec in args.items:
        if spec.item_id is not None:
            raise core_logic.ValidationError("items", f"return lines take no item id, got '{spec.item_id}'")
    return returns.SaleReturnCommand(
        original_sale_id=original_sale_id,
        customer_id=customer_id,
        employee_id=employee_id,
        reason=reason,
        items=[
            returns.SaleReturnItemCommand(
                product_id=spec.product_id,
                quantity=spec.quantity,
                unit_price=spec.unit_price,
                subtotal=spec.subtotal,
            )
            for spec in args.items
        ],
    )


def _translate_order_items(specs: Sequence[ItemSpec]) -> List[purchase_orders.PurchaseOrderItemCommand]:
    return [
        purchase_orders.PurchaseOrderItemCommand(
            product_id=spec.product_id,
            quantity=spec.quantity,
            unit_price=spec.unit_price,
            item_id=spec.item_id,
        )
        for spec in specs
    ]


def translate_po_create(args: argparse.Namespace) -> purchase_orders.PurchaseOrderCommand:
    """Translate CLI args into a purchase order command object."""
    return purchase_orders.PurchaseOrderCommand(
        supplier_id=args.supplier_id,
        items=_translate_order_items(args.items),
        order_date=args.order_date,
        delivery_date=args.delivery_date,
        notes=args.notes,
    )


def translate_po_update(args: argparse.Namespace) -> purchase_orders.PurchaseOrderUpdateCommand:
    """Translate CLI args into a purchase order update command object."""
    return purchase_orders.PurchaseOrderUpdateCommand(
        supplier_id=args.supplier_id,
        delivery_date=args.delivery_date,
        notes=args.notes,
        items=_translate_order_items(args.items) if args.items is not None else None,
    )


def run_add_product(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the add-product workflow in the BLL."""
    payload = translate_add_product(args)
    core_logic.add_product(context, **payload)
    return 0


def run_add_party(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the add-supplier/customer/employee workflow in the BLL."""
    adders = {
        "supplier": core_logic.add_supplier,
        "customer": core_logic.add_customer,
        "employee": core_logic.add_employee,
    }
    adders[args.kind](
        context,
        **{
            f"{args.kind}_id": args.entity_id,
            f"{args.kind}_name": args.entity_name,
            "is_active": not getattr(args, "inactive", False),
        },
    )
    return 0


def run_sale_create(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the sale creation workflow via the BLL."""
    command = translate_sale(args, context.settings)
    sale = sales.create_sale(context, command)
    print(f"Created sale {sale.sale_id}")
    return 0


def run_sale_update(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the sale update workflow via the BLL."""
    command = translate_sale(args, context.settings)
    sales.update_sale(context, args.sale_id, command)
    return 0


def run_sale_delete(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the sale deletion workflow via the BLL."""
    if len(args.sale_ids) == 1:
        sales.delete_sale(context, args.sale_ids[0])
    else:
        sales.delete_all_by_id(context, args.sale_ids)
    return 0


def run_return_create(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the return creation workflow via the BLL."""
    customer_id = args.customer_id or sales.get_sale(context, args.sale_id).header.customer_id
    command = translate_return(
        args,
        original_sale_id=args.sale_id,
        customer_id=customer_id,
        employee_id=args.employee_id or context.settings.default_employee_id,
        reason=args.reason,
    )
    entry = returns.create_return(context, command)
    print(f"Created return {entry.return_id} (total {entry.header.total_return_amount})")
    return 0


def run_return_update(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the return update workflow via the BLL."""
    current = returns.get_return(context, args.return_id).header
    command = translate_return(
        args,
        original_sale_id=current.original_sale_id,
        customer_id=current.customer_id,
        employee_id=args.employee_id or current.employee_id,
        reason=args.reason if args.reason is not None else current.reason,
    )
    returns.update_return(context, args.return_id, command)
    return 0


def run_return_delete(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the return deletion workflow via the BLL."""
    if len(args.return_ids) == 1:
        returns.delete_return(context, args.return_ids[0])
    else:
        returns.delete_all_returns_by_id(context, args.return_ids)
    return 0


def run_po_create(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the purchase order creation workflow via the BLL."""
    order = purchase_orders.create_order(context, translate_po_create(args))
    print(f"Created purchase order {order.order_id} (total {order.total_amount})")
    return 0


def run_po_update(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the purchase order update workflow via the BLL."""
    purchase_orders.update_order(context, args.order_id, translate_po_update(args))
    return 0


def run_po_delete(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the purchase order deletion workflow via the BLL."""
    purchase_orders.delete_order(context, args.order_id)
    return 0


def run_po_transition(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute a purchase order lifecycle transition via the BLL."""
    order = purchase_orders.transition(context, args.order_id, args.operation)
    print(f"Purchase order {order.order_id} is now {order.status.value}")
    return 0


def run_stock_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the stock reporting workflow."""
    for product_id, stock in inventory.stock_report(context).items():
        print(f"{product_id}\t{stock}")
    return 0


def run_sales_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the sales listing workflow."""
    if args.customer_id:
        rows = sales.find_by_customer(context, args.customer_id)
    elif args.employee_id:
        rows = sales.find_by_employee(context, args.employee_id)
    else:
        rows = sales.list_sales(context)
    for sale in rows:
        header = sale.header
        print(f"{header.sale_id}\t{header.created_at}\t{header.customer_id}\t{header.final_amount}\t{len(sale.items)} item(s)")
    return 0


def run_returns_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the return listing workflow."""
    if args.sale_id is not None:
        rows = returns.find_by_original_sale(context, args.sale_id)
    else:
        rows = returns.list_returns(context)
    for entry in rows:
        header = entry.header
        print(
            f"{header.sale_return_id}\t{header.created_at}\tsale {header.original_sale_id}\t"
            f"{header.total_return_amount}\t{header.reason}"
        )
    return 0


def run_orders_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the purchase order listing workflow."""
    if args.supplier_id:
        rows = purchase_orders.find_by_supplier(context, args.supplier_id)
    elif args.status:
        rows = purchase_orders.find_by_status(context, PurchaseOrderStatus(args.status))
    else:
        rows = purchase_orders.list_orders(context)
    for order in rows:
        header = order.header
        print(f"{header.purchase_order_id}\t{header.status}\t{header.supplier_id}\t{header.total_amount}")
    return 0


def run_order_events_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the tracking event listing workflow."""
    for event in purchase_orders.list_events(context, args.order_id):
        print(f"{event.timestamp_iso}\t{event.status}\t{event.description or ''}")
    return 0


def handle_cli_error(error: Exception) -> int:
    """Convert raised exceptions into user-friendly exit codes."""
    log.error("%s", error)
    if isinstance(error, core_logic.NotFound):
        return 4
    if isinstance(error, core_logic.InvalidStateTransition):
        return 5
    if isinstance(error, core_logic.BusinessRuleViolation):
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
        if exit_code == 0:
            persist_workbook(context)
        return exit_code
    except Exception as error:  # pragma: no cover - centralised error handler tested separately
        return handle_cli_error(error)
