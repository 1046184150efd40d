"""Customer returns against recorded sales.

A return puts the returned quantities back on the shelf. Each one references
the sale it undoes part of, and for every product it may return at most what
that sale sold minus what earlier returns of the same sale already took back.
Creating, editing, and deleting returns moves ``Products.Stock`` by exactly
the change in returned quantity, and keeps the original sale's status in step
(``PARTIALLY_RETURNED`` or ``RETURNED``, back to ``COMPLETED`` once no returns
remain).
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from . import core_logic, data_manager, inventory, log, sales
from .constants import SaleStatus, SheetName
from .core_logic import NotFound, RuntimeContext, ValidationError


REASON_MAX_LENGTH = 500

_RETURN_SHEETS = (SheetName.SALE_RETURNS, SheetName.SALE_RETURN_ITEMS, SheetName.PRODUCTS, SheetName.SALES)

# Sale statuses that can take a return.
_RETURNABLE = frozenset({SaleStatus.COMPLETED, SaleStatus.PARTIALLY_RETURNED, SaleStatus.RETURNED})


@dataclass(frozen=True)
class SaleReturnItemCommand:
    """One returned product line.

    ``unit_price`` defaults to the price the product was sold at on the
    original sale.
    """

    product_id: str
    quantity: int
    unit_price: Optional[Decimal] = None
    subtotal: Optional[Decimal] = None


@dataclass(frozen=True)
class SaleReturnCommand:
    """User intent for recording or replacing a return."""

    original_sale_id: int
    customer_id: str
    employee_id: str
    reason: str
    items: Sequence[SaleReturnItemCommand]
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class SaleReturn:
    """A return header together with its items."""

    header: data_manager.SaleReturnRow
    items: Tuple[data_manager.SaleReturnItemRow, ...]

    @property
    def return_id(self) -> int:
        return self.header.sale_return_id

    def quantities_by_product(self) -> Dict[str, int]:
        totals: Dict[str, int] = defaultdict(int)
        for item in self.items:
            totals[item.product_id] += item.quantity
        return dict(totals)


# ---------------------------------------------------------------------------
# Caches and queries
# ---------------------------------------------------------------------------


def _ensure_returns_cache(context: RuntimeContext) -> Dict[str, Any]:
    bucket = core_logic.get_cache_bucket(context, SheetName.SALE_RETURNS.value)
    if "all" not in bucket:
        headers = list(data_manager.iter_sale_returns(context.workbook))
        bucket["all"] = headers
        bucket["by_id"] = {header.sale_return_id: header for header in headers}
        log.debug("Populated sale returns cache with %d entries", len(headers))
    return bucket


def _ensure_return_items_cache(context: RuntimeContext) -> Dict[str, Any]:
    bucket = core_logic.get_cache_bucket(context, SheetName.SALE_RETURN_ITEMS.value)
    if "by_return" not in bucket:
        by_return: Dict[int, List[data_manager.SaleReturnItemRow]] = defaultdict(list)
        for item in data_manager.iter_sale_return_items(context.workbook):
            by_return[item.sale_return_id].append(item)
        bucket["by_return"] = dict(by_return)
    return bucket


def _assemble(context: RuntimeContext, header: data_manager.SaleReturnRow) -> SaleReturn:
    items = _ensure_return_items_cache(context)["by_return"].get(header.sale_return_id, [])
    return SaleReturn(header=header, items=tuple(items))


def get_return(context: RuntimeContext, return_id: int) -> SaleReturn:
    """Load a return and its items.

    Raises:
        NotFound: If no return carries ``return_id``.
    """

    try:
        header = _ensure_returns_cache(context)["by_id"][return_id]
    except KeyError as exc:
        log.warning("Sale return lookup failed for id '%s'", return_id)
        raise NotFound("SaleReturn", return_id) from exc
    return _assemble(context, header)


def list_returns(context: RuntimeContext) -> List[SaleReturn]:
    """Return every recorded return in workbook order."""

    return [_assemble(context, header) for header in _ensure_returns_cache(context)["all"]]


def find_by_original_sale(context: RuntimeContext, sale_id: int) -> List[SaleReturn]:
    """Return the returns recorded against a sale (``NotFound`` if the sale is unknown)."""

    sales.get_sale(context, sale_id)
    return [entry for entry in list_returns(context) if entry.header.original_sale_id == sale_id]


def returned_quantities(context: RuntimeContext, sale_id: int, *, exclude: Iterable[int] = ()) -> Dict[str, int]:
    """Sum the quantities already returned against ``sale_id`` per product.

    Returns listed in ``exclude`` are left out, which lets an update or a
    delete reason about the state without them.
    """

    skipped = set(exclude)
    totals: Dict[str, int] = defaultdict(int)
    for entry in list_returns(context):
        if entry.header.original_sale_id != sale_id or entry.return_id in skipped:
            continue
        for product_id, quantity in entry.quantities_by_product().items():
            totals[product_id] += quantity
    return dict(totals)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def _validate_command(context: RuntimeContext, command: SaleReturnCommand) -> None:
    if not command.reason or not command.reason.strip():
        raise ValidationError("reason", "a return needs a reason")
    core_logic.require_max_length(command.reason, REASON_MAX_LENGTH, "reason")
    if not command.items:
        log.warning("Rejected return without items for sale '%s'", command.original_sale_id)
        raise ValidationError("items", "a return needs at least one item")
    for line in command.items:
        core_logic.require_positive_quantity(line.quantity)
        if line.unit_price is not None:
            core_logic.require_nonnegative_money(line.unit_price, "unit_price")
        if line.subtotal is not None:
            core_logic.require_nonnegative_money(line.subtotal, "subtotal")
        core_logic.get_product(context, line.product_id)


def _requested_quantities(items: Iterable[SaleReturnItemCommand]) -> Dict[str, int]:
    totals: Dict[str, int] = defaultdict(int)
    for line in items:
        totals[line.product_id] += line.quantity
    return dict(totals)


def check_returnable(
    sale: sales.Sale,
    requested: Mapping[str, int],
    already_returned: Mapping[str, int],
) -> None:
    """Check that ``requested`` fits within what ``sale`` sold and has not yet been returned.

    Raises:
        ValidationError: If a product was not sold on ``sale`` or the requested
            quantity exceeds what remains returnable.
    """

    sold = sale.quantities_by_product()
    for product_id, quantity in requested.items():
        if product_id not in sold:
            log.warning("Product '%s' is not part of sale '%s'", product_id, sale.sale_id)
            raise ValidationError("items", f"product {product_id} was not sold on sale {sale.sale_id}")
        remaining = sold[product_id] - already_returned.get(product_id, 0)
        if quantity > remaining:
            log.warning(
                "Return of %d x '%s' exceeds the %d still returnable on sale '%s'",
                quantity,
                product_id,
                remaining,
                sale.sale_id,
            )
            raise ValidationError(
                "quantity",
                f"cannot return {quantity} of {product_id}; only {remaining} remain returnable on sale {sale.sale_id}",
            )


def _resolve_sale(context: RuntimeContext, command: SaleReturnCommand) -> sales.Sale:
    sale = sales.get_sale(context, command.original_sale_id)
    if SaleStatus(sale.header.status) not in _RETURNABLE:
        raise ValidationError("original_sale_id", f"sale {sale.sale_id} is {sale.header.status} and cannot take returns")
    core_logic.get_customer(context, command.customer_id)
    if command.customer_id != sale.header.customer_id:
        raise ValidationError("customer_id", f"sale {sale.sale_id} belongs to customer {sale.header.customer_id}")
    return sale


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------


def _build_items(
    start_id: int,
    return_id: int,
    sale: sales.Sale,
    lines: Sequence[SaleReturnItemCommand],
) -> Tuple[data_manager.SaleReturnItemRow, ...]:
    sold_prices: Dict[str, Decimal] = {}
    for item in sale.items:
        sold_prices.setdefault(item.product_id, item.unit_price)

    items = []
    for offset, line in enumerate(lines):
        unit_price = line.unit_price if line.unit_price is not None else sold_prices[line.product_id]
        subtotal = line.subtotal if line.subtotal is not None else unit_price * line.quantity
        items.append(
            data_manager.SaleReturnItemRow(
                sale_return_item_id=start_id + offset,
                sale_return_id=return_id,
                product_id=line.product_id,
                quantity=line.quantity,
                unit_price=unit_price,
                subtotal=subtotal,
            )
        )
    return tuple(items)


def _status_after(sale: sales.Sale, returned: Mapping[str, int]) -> SaleStatus:
    if not any(returned.values()):
        return SaleStatus.COMPLETED
    sold = sale.quantities_by_product()
    if all(returned.get(product_id, 0) >= quantity for product_id, quantity in sold.items()):
        return SaleStatus.RETURNED
    return SaleStatus.PARTIALLY_RETURNED


def _sync_sale_status(context: RuntimeContext, sale: sales.Sale, returned: Mapping[str, int], timestamp: str) -> None:
    status = _status_after(sale, returned)
    if status.value == sale.header.status:
        return
    data_manager.replace_sale(context.workbook, replace(sale.header, status=status.value, updated_at=timestamp))
    log.info("Sale '%s' status changed from %s to %s", sale.sale_id, sale.header.status, status.value)


def _merge(first: Mapping[str, int], second: Mapping[str, int]) -> Dict[str, int]:
    totals: Dict[str, int] = defaultdict(int)
    for source in (first, second):
        for product_id, quantity in source.items():
            totals[product_id] += quantity
    return dict(totals)


def create_return(context: RuntimeContext, command: SaleReturnCommand) -> SaleReturn:
    """Record a return and put its quantities back in stock.

    Args:
        context (RuntimeContext): Runtime context providing workbook access and
            caches.
        command (SaleReturnCommand): Structured return intent.

    Returns:
        SaleReturn: The persisted return with its items.

    Raises:
        NotFound: If the sale, customer, employee, or a product is unknown.
        ValidationError: If the customer differs from the sale's customer, the
            reason or items are missing, a product was not on the sale, or a
            quantity exceeds what remains returnable.
    """

    sale = _resolve_sale(context, command)
    core_logic.get_employee(context, command.employee_id)
    _validate_command(context, command)

    requested = _requested_quantities(command.items)
    already_returned = returned_quantities(context, sale.sale_id)
    check_returnable(sale, requested, already_returned)

    timestamp = core_logic.resolve_timestamp(command.timestamp).isoformat()
    with core_logic.unit_of_work(context, *_RETURN_SHEETS):
        inventory.apply_deltas(context, requested)
        return_id = data_manager.next_identifier(context.workbook, SheetName.SALE_RETURNS.value, "SaleReturnID")
        next_item_id = data_manager.next_identifier(
            context.workbook, SheetName.SALE_RETURN_ITEMS.value, "SaleReturnItemID"
        )
        items = _build_items(next_item_id, return_id, sale, command.items)
        header = data_manager.SaleReturnRow(
            sale_return_id=return_id,
            original_sale_id=sale.sale_id,
            customer_id=command.customer_id,
            employee_id=command.employee_id,
            total_return_amount=sum((item.subtotal for item in items), Decimal("0.00")),
            reason=command.reason.strip(),
            created_at=timestamp,
            updated_at=timestamp,
        )
        data_manager.append_sale_return(context.workbook, header)
        for item in items:
            data_manager.append_sale_return_item(context.workbook, item)
        _sync_sale_status(context, sale, _merge(already_returned, requested), timestamp)

    log.info(
        "Recorded return '%s' against sale '%s' with %d item(s) (total=%s)",
        return_id,
        sale.sale_id,
        len(items),
        header.total_return_amount,
    )
    return SaleReturn(header=header, items=items)


def update_return(context: RuntimeContext, return_id: int, command: SaleReturnCommand) -> SaleReturn:
    """Replace a return's items, reason, and employee.

    The original sale and the customer are fixed for the life of a return.
    Stock moves by the difference between the new and the old returned
    quantity of each product; lowering or removing a line takes stock back
    out and fails with ``InsufficientStock`` if the goods have since been
    sold again.

    Raises:
        NotFound: If the return, employee, or a product is unknown.
        ValidationError: If the sale or customer changes or the new lines do
            not fit within the sale.
        InsufficientStock: If taking stock back out would make it negative.
    """

    current = get_return(context, return_id)
    if command.original_sale_id != current.header.original_sale_id:
        raise ValidationError("original_sale_id", "the original sale of a return cannot change")
    if command.customer_id != current.header.customer_id:
        raise ValidationError("customer_id", "the customer of a return cannot change")
    sale = sales.get_sale(context, current.header.original_sale_id)
    if command.employee_id != current.header.employee_id:
        core_logic.get_employee(context, command.employee_id)
    _validate_command(context, command)

    requested = _requested_quantities(command.items)
    others = returned_quantities(context, sale.sale_id, exclude=[return_id])
    check_returnable(sale, requested, others)

    previous = current.quantities_by_product()
    deltas: Dict[str, int] = {}
    for product_id in set(previous) | set(requested):
        delta = requested.get(product_id, 0) - previous.get(product_id, 0)
        if delta:
            deltas[product_id] = delta

    timestamp = core_logic.resolve_timestamp(command.timestamp).isoformat()
    with core_logic.unit_of_work(context, *_RETURN_SHEETS):
        inventory.apply_deltas(context, deltas)
        next_item_id = data_manager.next_identifier(
            context.workbook, SheetName.SALE_RETURN_ITEMS.value, "SaleReturnItemID"
        )
        data_manager.delete_records(
            context.workbook,
            SheetName.SALE_RETURN_ITEMS.value,
            "SaleReturnItemID",
            [item.sale_return_item_id for item in current.items],
        )
        items = _build_items(next_item_id, return_id, sale, command.items)
        header = replace(
            current.header,
            employee_id=command.employee_id,
            total_return_amount=sum((item.subtotal for item in items), Decimal("0.00")),
            reason=command.reason.strip(),
            updated_at=timestamp,
        )
        data_manager.replace_sale_return(context.workbook, header)
        for item in items:
            data_manager.append_sale_return_item(context.workbook, item)
        _sync_sale_status(context, sale, _merge(others, requested), timestamp)

    log.info("Updated return '%s' of sale '%s', stock changes %s", return_id, sale.sale_id, deltas)
    return SaleReturn(header=header, items=items)


def _remove_returns(context: RuntimeContext, entries: Sequence[SaleReturn]) -> None:
    return_ids = [entry.return_id for entry in entries]
    deltas: Dict[str, int] = defaultdict(int)
    for entry in entries:
        for product_id, quantity in entry.quantities_by_product().items():
            deltas[product_id] -= quantity

    affected: Set[int] = {entry.header.original_sale_id for entry in entries}
    remaining = {
        sale_id: (sales.get_sale(context, sale_id), returned_quantities(context, sale_id, exclude=return_ids))
        for sale_id in affected
    }

    timestamp = core_logic.resolve_timestamp(None).isoformat()
    with core_logic.unit_of_work(context, *_RETURN_SHEETS):
        inventory.apply_deltas(context, deltas)
        data_manager.delete_records(context.workbook, SheetName.SALE_RETURN_ITEMS.value, "SaleReturnID", return_ids)
        data_manager.delete_records(context.workbook, SheetName.SALE_RETURNS.value, "SaleReturnID", return_ids)
        for sale, returned in remaining.values():
            _sync_sale_status(context, sale, returned, timestamp)


def delete_return(context: RuntimeContext, return_id: int) -> None:
    """Delete a return and take its quantities back out of stock.

    Raises:
        NotFound: If the return does not exist.
        InsufficientStock: If the returned goods have since been sold again.
    """

    entry = get_return(context, return_id)
    _remove_returns(context, [entry])
    log.info("Deleted return '%s' and removed %d item(s) from stock", return_id, len(entry.items))


def delete_all_returns_by_id(context: RuntimeContext, return_ids: Iterable[int]) -> None:
    """Delete several returns, all or nothing.

    Raises:
        NotFound: If any id does not name a return; nothing is deleted.
        InsufficientStock: If any product lacks the stock to take back.
    """

    unique_ids = list(dict.fromkeys(return_ids))
    entries = [get_return(context, return_id) for return_id in unique_ids]
    if not entries:
        return
    _remove_returns(context, entries)
    log.info("Deleted %d return(s): %s", len(entries), ", ".join(str(return_id) for return_id in unique_ids))
