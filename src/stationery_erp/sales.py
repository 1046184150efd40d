"""Sale stock-reconciliation service.

Creating, editing, and deleting sales keeps ``Products.Stock`` equal to what
it would be if only the currently stored sale items had ever been sold. Each
mutating operation resolves its references, computes the per-product stock
changes it implies, checks them against current stock, and only then writes
the sale rows and the ledger changes inside one :func:`core_logic.unit_of_work`.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from . import core_logic, data_manager, inventory, log
from .constants import PaymentMethod, SaleStatus, SheetName
from .core_logic import NotFound, RuntimeContext, ValidationError


NOTES_MAX_LENGTH = 500

_SALE_SHEETS = (SheetName.SALES, SheetName.SALE_ITEMS, SheetName.PRODUCTS)


@dataclass(frozen=True)
class SaleItemCommand:
    """One requested sale line.

    ``item_id`` is only meaningful on update, where it pins the line to an
    existing item of the sale.
    """

    product_id: str
    quantity: int
    unit_price: Decimal
    subtotal: Optional[Decimal] = None
    item_id: Optional[int] = None


@dataclass(frozen=True)
class SaleCommand:
    """User intent for creating or replacing a sale."""

    customer_id: str
    employee_id: str
    items: Sequence[SaleItemCommand]
    total_amount: Decimal
    tax_amount: Decimal
    final_amount: Decimal
    discount_amount: Decimal = Decimal("0.00")
    payment_method: PaymentMethod = PaymentMethod.CASH
    status: SaleStatus = SaleStatus.COMPLETED
    notes: Optional[str] = None
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class Sale:
    """A sale header together with its items."""

    header: data_manager.SaleRow
    items: Tuple[data_manager.SaleItemRow, ...]

    @property
    def sale_id(self) -> int:
        return self.header.sale_id

    def quantities_by_product(self) -> Dict[str, int]:
        totals: Dict[str, int] = defaultdict(int)
        for item in self.items:
            totals[item.product_id] += item.quantity
        return dict(totals)


@dataclass(frozen=True)
class SaleItemDiff:
    """Outcome of matching requested lines against the stored items."""

    removed: Tuple[data_manager.SaleItemRow, ...]
    matched: Tuple[Tuple[data_manager.SaleItemRow, SaleItemCommand], ...]
    added: Tuple[SaleItemCommand, ...]


# ---------------------------------------------------------------------------
# Caches and queries
# ---------------------------------------------------------------------------


def _ensure_sales_cache(context: RuntimeContext) -> Dict[str, Any]:
    bucket = core_logic.get_cache_bucket(context, SheetName.SALES.value)
    if "all" not in bucket:
        headers = list(data_manager.iter_sales(context.workbook))
        bucket["all"] = headers
        bucket["by_id"] = {header.sale_id: header for header in headers}
        log.debug("Populated sales cache with %d entries", len(headers))
    return bucket


def _ensure_sale_items_cache(context: RuntimeContext) -> Dict[str, Any]:
    bucket = core_logic.get_cache_bucket(context, SheetName.SALE_ITEMS.value)
    if "by_sale" not in bucket:
        by_sale: Dict[int, List[data_manager.SaleItemRow]] = defaultdict(list)
        for item in data_manager.iter_sale_items(context.workbook):
            by_sale[item.sale_id].append(item)
        bucket["by_sale"] = dict(by_sale)
        log.debug("Populated sale items cache for %d sales", len(by_sale))
    return bucket


def _assemble(context: RuntimeContext, header: data_manager.SaleRow) -> Sale:
    items = _ensure_sale_items_cache(context)["by_sale"].get(header.sale_id, [])
    return Sale(header=header, items=tuple(items))


def get_sale(context: RuntimeContext, sale_id: int) -> Sale:
    """Load a sale and its items.

    Raises:
        NotFound: If no sale carries ``sale_id``.
    """

    try:
        header = _ensure_sales_cache(context)["by_id"][sale_id]
    except KeyError as exc:
        log.warning("Sale lookup failed for id '%s'", sale_id)
        raise NotFound("Sale", sale_id) from exc
    return _assemble(context, header)


def list_sales(context: RuntimeContext) -> List[Sale]:
    """Return every sale in workbook order."""

    return [_assemble(context, header) for header in _ensure_sales_cache(context)["all"]]


def find_by_customer(context: RuntimeContext, customer_id: str) -> List[Sale]:
    """Return the sales of a customer (``NotFound`` if the customer is unknown)."""

    core_logic.get_customer(context, customer_id)
    return [sale for sale in list_sales(context) if sale.header.customer_id == customer_id]


def find_by_employee(context: RuntimeContext, employee_id: str) -> List[Sale]:
    """Return the sales recorded by an employee (``NotFound`` if unknown)."""

    core_logic.get_employee(context, employee_id)
    return [sale for sale in list_sales(context) if sale.header.employee_id == employee_id]


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=UTC)


def find_by_created_range(context: RuntimeContext, start: datetime, end: datetime) -> List[Sale]:
    """Return sales whose creation timestamp lies in ``[start, end]``.

    Naive datetimes are interpreted as UTC.
    """

    lower, upper = _as_utc(start), _as_utc(end)
    return [
        sale
        for sale in list_sales(context)
        if lower <= _as_utc(datetime.fromisoformat(sale.header.created_at)) <= upper
    ]


# ---------------------------------------------------------------------------
# Reconciliation
# ---------------------------------------------------------------------------


def diff_sale_items(existing: Iterable[data_manager.SaleItemRow], requested: Sequence[SaleItemCommand]) -> SaleItemDiff:
    """Match requested lines against the stored items of one sale.

    Lines carrying ``item_id`` are matched first, to exactly that item. Lines
    without one take the first still-unmatched item for the same product, and
    anything left over is new. Stored items nobody claimed are removed.

    Args:
        existing (Iterable[SaleItemRow]): Items currently stored for the sale.
        requested (Sequence[SaleItemCommand]): The desired item set.

    Returns:
        SaleItemDiff: Removed items, matched ``(item, line)`` pairs, and added
            lines.

    Raises:
        NotFound: If a line names an ``item_id`` that is not an item of this
            sale.
        ValidationError: If two lines name the same ``item_id``.
    """

    unmatched = list(existing)
    by_id = {item.sale_item_id: item for item in unmatched}
    matched: List[Tuple[data_manager.SaleItemRow, SaleItemCommand]] = []
    pending: List[SaleItemCommand] = []

    for line in requested:
        if line.item_id is None:
            pending.append(line)
            continue
        item = by_id.get(line.item_id)
        if item is None:
            log.warning("Sale item '%s' does not belong to the sale being updated", line.item_id)
            raise NotFound("SaleItem", line.item_id)
        if item not in unmatched:
            raise ValidationError("items", f"item {line.item_id} is listed more than once")
        unmatched.remove(item)
        matched.append((item, line))

    added: List[SaleItemCommand] = []
    for line in pending:
        candidate = next((item for item in unmatched if item.product_id == line.product_id), None)
        if candidate is None:
            added.append(line)
        else:
            unmatched.remove(candidate)
            matched.append((candidate, line))

    return SaleItemDiff(removed=tuple(unmatched), matched=tuple(matched), added=tuple(added))


def stock_deltas(diff: SaleItemDiff) -> Dict[str, int]:
    """Net the stock changes implied by ``diff`` per product.

    Removed items return their quantity, added lines consume theirs, and a
    matched item that switched product returns stock to the old product while
    consuming it from the new one. Products whose changes cancel out are
    omitted.
    """

    deltas: Dict[str, int] = defaultdict(int)
    for item in diff.removed:
        deltas[item.product_id] += item.quantity
    for item, line in diff.matched:
        if item.product_id != line.product_id:
            deltas[item.product_id] += item.quantity
            deltas[line.product_id] -= line.quantity
        else:
            deltas[item.product_id] += item.quantity - line.quantity
    for line in diff.added:
        deltas[line.product_id] -= line.quantity
    return {product_id: delta for product_id, delta in deltas.items() if delta != 0}


def _validate_command(context: RuntimeContext, command: SaleCommand) -> None:
    if not command.items:
        log.warning("Rejected sale without items")
        raise ValidationError("items", "a sale needs at least one item")
    for line in command.items:
        core_logic.require_positive_quantity(line.quantity)
        core_logic.require_nonnegative_money(line.unit_price, "unit_price")
        if line.subtotal is not None:
            core_logic.require_nonnegative_money(line.subtotal, "subtotal")
    core_logic.require_nonnegative_money(command.total_amount, "total_amount")
    core_logic.require_nonnegative_money(command.tax_amount, "tax_amount")
    core_logic.require_nonnegative_money(command.discount_amount, "discount_amount")
    core_logic.require_nonnegative_money(command.final_amount, "final_amount")
    core_logic.require_max_length(command.notes, NOTES_MAX_LENGTH, "notes")
    if not isinstance(command.payment_method, PaymentMethod):
        raise ValidationError("payment_method", f"unsupported value {command.payment_method!r}")
    if not isinstance(command.status, SaleStatus):
        raise ValidationError("status", f"unsupported value {command.status!r}")
    for line in command.items:
        core_logic.get_product(context, line.product_id)


def _require_no_returns(context: RuntimeContext, sale_ids: Iterable[int]) -> None:
    wanted = set(sale_ids)
    for entry in data_manager.iter_sale_returns(context.workbook):
        if entry.original_sale_id in wanted:
            log.warning("Sale '%s' has return '%s' recorded against it", entry.original_sale_id, entry.sale_return_id)
            raise ValidationError(
                "sale_id", f"sale {entry.original_sale_id} has returns recorded; delete them first"
            )


def _build_item(sale_item_id: int, sale_id: int, line: SaleItemCommand) -> data_manager.SaleItemRow:
    subtotal = line.subtotal if line.subtotal is not None else line.unit_price * line.quantity
    return data_manager.SaleItemRow(
        sale_item_id=sale_item_id,
        sale_id=sale_id,
        product_id=line.product_id,
        quantity=line.quantity,
        unit_price=line.unit_price,
        subtotal=subtotal,
    )


def _build_header(sale_id: int, command: SaleCommand, *, created_at: str, updated_at: str) -> data_manager.SaleRow:
    return data_manager.SaleRow(
        sale_id=sale_id,
        customer_id=command.customer_id,
        employee_id=command.employee_id,
        payment_method=command.payment_method.value,
        status=command.status.value,
        total_amount=command.total_amount,
        tax_amount=command.tax_amount,
        discount_amount=command.discount_amount,
        final_amount=command.final_amount,
        notes=command.notes,
        created_at=created_at,
        updated_at=updated_at,
    )


def create_sale(context: RuntimeContext, command: SaleCommand) -> Sale:
    """Record a new sale and take its quantities out of stock.

    References and input are validated first, then the summed quantity per
    product is checked against stock. Only when every check passes are the
    sale header, its items, and the stock decrements written.

    Args:
        context (RuntimeContext): Runtime context providing workbook access and
            caches.
        command (SaleCommand): Structured sale intent.

    Returns:
        Sale: The persisted sale with its items.

    Raises:
        NotFound: If the customer, employee, or a product is unknown.
        ValidationError: If the sale has no items or carries a non-positive
            quantity or a negative amount.
        InsufficientStock: If any product lacks the requested quantity.
    """

    core_logic.get_customer(context, command.customer_id)
    core_logic.get_employee(context, command.employee_id)
    _validate_command(context, command)

    deltas: Dict[str, int] = defaultdict(int)
    for line in command.items:
        deltas[line.product_id] -= line.quantity

    timestamp = core_logic.resolve_timestamp(command.timestamp).isoformat()
    with core_logic.unit_of_work(context, *_SALE_SHEETS):
        inventory.apply_deltas(context, deltas)
        sale_id = data_manager.next_identifier(context.workbook, SheetName.SALES.value, "SaleID")
        header = _build_header(sale_id, command, created_at=timestamp, updated_at=timestamp)
        data_manager.append_sale(context.workbook, header)
        next_item_id = data_manager.next_identifier(context.workbook, SheetName.SALE_ITEMS.value, "SaleItemID")
        items = tuple(
            _build_item(next_item_id + offset, sale_id, line) for offset, line in enumerate(command.items)
        )
        for item in items:
            data_manager.append_sale_item(context.workbook, item)

    log.info(
        "Recorded sale '%s' for customer '%s' with %d item(s) (final=%s)",
        sale_id,
        command.customer_id,
        len(items),
        command.final_amount,
    )
    return Sale(header=header, items=items)


def update_sale(context: RuntimeContext, sale_id: int, command: SaleCommand) -> Sale:
    """Replace a sale's header and items, reconciling stock with the change.

    The stored items are diffed against ``command.items`` (see
    :func:`diff_sale_items`), the resulting per-product changes are netted,
    and every net decrease is checked against stock before anything is
    written. Header fields are replaced except ``created_at``.

    Args:
        context (RuntimeContext): Runtime context providing workbook access and
            caches.
        sale_id (int): Sale to update.
        command (SaleCommand): The desired sale state.

    Returns:
        Sale: The updated sale.

    Raises:
        NotFound: If the sale, customer, employee, product, or a referenced
            item is unknown.
        ValidationError: If the requested state is malformed or the sale has
            returns recorded against it.
        InsufficientStock: If the net change would make any stock negative.
    """

    current = get_sale(context, sale_id)
    _require_no_returns(context, [sale_id])
    core_logic.get_customer(context, command.customer_id)
    if command.employee_id != current.header.employee_id:
        core_logic.get_employee(context, command.employee_id)
    _validate_command(context, command)

    diff = diff_sale_items(current.items, command.items)
    deltas = stock_deltas(diff)

    timestamp = core_logic.resolve_timestamp(command.timestamp).isoformat()
    with core_logic.unit_of_work(context, *_SALE_SHEETS):
        inventory.apply_deltas(context, deltas)
        header = _build_header(sale_id, command, created_at=current.header.created_at, updated_at=timestamp)
        data_manager.replace_sale(context.workbook, header)

        next_item_id = data_manager.next_identifier(context.workbook, SheetName.SALE_ITEMS.value, "SaleItemID")
        data_manager.delete_records(
            context.workbook,
            SheetName.SALE_ITEMS.value,
            "SaleItemID",
            [item.sale_item_id for item in current.items],
        )
        items = [_build_item(item.sale_item_id, sale_id, line) for item, line in diff.matched]
        items.extend(_build_item(next_item_id + offset, sale_id, line) for offset, line in enumerate(diff.added))
        for item in items:
            data_manager.append_sale_item(context.workbook, item)

    log.info(
        "Updated sale '%s': %d removed, %d kept, %d added, stock changes %s",
        sale_id,
        len(diff.removed),
        len(diff.matched),
        len(diff.added),
        deltas,
    )
    return Sale(header=header, items=tuple(items))


def _returned_quantities(sales: Iterable[Sale]) -> Dict[str, int]:
    deltas: Dict[str, int] = defaultdict(int)
    for sale in sales:
        for product_id, quantity in sale.quantities_by_product().items():
            deltas[product_id] += quantity
    return dict(deltas)


def _remove_sales(context: RuntimeContext, sales: Sequence[Sale]) -> None:
    sale_ids = [sale.sale_id for sale in sales]
    with core_logic.unit_of_work(context, *_SALE_SHEETS):
        inventory.apply_deltas(context, _returned_quantities(sales))
        data_manager.delete_records(context.workbook, SheetName.SALE_ITEMS.value, "SaleID", sale_ids)
        data_manager.delete_records(context.workbook, SheetName.SALES.value, "SaleID", sale_ids)


def delete_sale(context: RuntimeContext, sale_id: int) -> None:
    """Delete a sale and return every item's quantity to stock.

    Raises:
        NotFound: If the sale does not exist.
        ValidationError: If returns are recorded against the sale.
    """

    sale = get_sale(context, sale_id)
    _require_no_returns(context, [sale_id])
    _remove_sales(context, [sale])
    log.info("Deleted sale '%s' and restored %d item(s) to stock", sale_id, len(sale.items))


def delete_all_by_id(context: RuntimeContext, sale_ids: Iterable[int]) -> None:
    """Delete several sales, all or nothing.

    Every id is resolved before anything changes, so one unknown id leaves
    all sales and stock untouched.

    Raises:
        NotFound: If any id does not name a sale.
        ValidationError: If any of the sales has returns recorded against it.
    """

    unique_ids = list(dict.fromkeys(sale_ids))
    sales = [get_sale(context, sale_id) for sale_id in unique_ids]
    if not sales:
        return
    _require_no_returns(context, unique_ids)
    _remove_sales(context, sales)
    log.info("Deleted %d sale(s): %s", len(sales), ", ".join(str(sale_id) for sale_id in unique_ids))
