"""Purchase order lifecycle service.

Orders move through a fixed state machine (see :data:`TRANSITIONS`). Items can
only be edited while an order is a draft, and the order total is recomputed
from the item totals on every create and update. Purchase orders never touch
product stock. Each creation and transition appends a tracking event to the
``PurchaseOrderEvents`` sheet.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Sequence, Tuple

from . import core_logic, data_manager, log
from .constants import PricingRule, PurchaseOrderStatus, SheetName
from .core_logic import InvalidStateTransition, NotFound, RuntimeContext, ValidationError


NOTES_MAX_LENGTH = 1000

_ORDER_SHEETS = (SheetName.PURCHASE_ORDERS, SheetName.PURCHASE_ORDER_ITEMS, SheetName.PURCHASE_ORDER_EVENTS)


@dataclass(frozen=True)
class Transition:
    """States an operation may start from, and the state it leads to."""

    allowed_from: FrozenSet[PurchaseOrderStatus]
    target: PurchaseOrderStatus
    description: str


TRANSITIONS: Mapping[str, Transition] = {
    "submit": Transition(
        frozenset({PurchaseOrderStatus.DRAFT}),
        PurchaseOrderStatus.SUBMITTED,
        "Order submitted to supplier",
    ),
    "confirm": Transition(
        frozenset({PurchaseOrderStatus.SUBMITTED}),
        PurchaseOrderStatus.CONFIRMED,
        "Order confirmed by supplier",
    ),
    "mark_shipped": Transition(
        frozenset({PurchaseOrderStatus.CONFIRMED, PurchaseOrderStatus.IN_PROCESS}),
        PurchaseOrderStatus.SHIPPED,
        "Order shipped by supplier",
    ),
    "mark_delivered": Transition(
        frozenset({PurchaseOrderStatus.SHIPPED}),
        PurchaseOrderStatus.DELIVERED,
        "Order delivered",
    ),
    "mark_paid": Transition(
        frozenset({PurchaseOrderStatus.DELIVERED}),
        PurchaseOrderStatus.PAID,
        "Order paid",
    ),
    "cancel": Transition(
        frozenset(PurchaseOrderStatus) - {PurchaseOrderStatus.DELIVERED, PurchaseOrderStatus.CANCELLED},
        PurchaseOrderStatus.CANCELLED,
        "Order cancelled",
    ),
}


@dataclass(frozen=True)
class PurchaseOrderItemCommand:
    """One requested order line.

    ``unit_price`` defaults to the product cost price. ``item_id`` is only
    meaningful on update, where it pins the line to an existing item.
    """

    product_id: str
    quantity: int
    unit_price: Optional[Decimal] = None
    item_id: Optional[int] = None


@dataclass(frozen=True)
class PurchaseOrderCommand:
    """User intent for creating a purchase order."""

    supplier_id: str
    items: Sequence[PurchaseOrderItemCommand] = ()
    order_date: Optional[date] = None
    delivery_date: Optional[date] = None
    notes: Optional[str] = None
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class PurchaseOrderUpdateCommand:
    """Changes to a draft order. ``None`` fields are left as they are."""

    supplier_id: Optional[str] = None
    delivery_date: Optional[date] = None
    notes: Optional[str] = None
    items: Optional[Sequence[PurchaseOrderItemCommand]] = None
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class PurchaseOrder:
    """A purchase order header together with its items."""

    header: data_manager.PurchaseOrderRow
    items: Tuple[data_manager.PurchaseOrderItemRow, ...]

    @property
    def order_id(self) -> int:
        return self.header.purchase_order_id

    @property
    def status(self) -> PurchaseOrderStatus:
        return PurchaseOrderStatus(self.header.status)

    @property
    def total_amount(self) -> Decimal:
        return self.header.total_amount


def next_status(current: PurchaseOrderStatus, operation: str) -> PurchaseOrderStatus:
    """Return the state ``operation`` leads to from ``current``.

    Raises:
        InvalidStateTransition: If the operation is unknown or not allowed
            from ``current``.
    """

    transition = TRANSITIONS.get(operation)
    if transition is None or current not in transition.allowed_from:
        raise InvalidStateTransition(current.value, operation)
    return transition.target


def price_line(product: data_manager.ProductRow, line: PurchaseOrderItemCommand, rule: PricingRule) -> Tuple[Decimal, Decimal]:
    """Return ``(unit_price, total_price)`` for an order line under ``rule``.

    The stored unit price is the one supplied, or the product cost price when
    omitted. Under ``cost_price`` the total is always ``cost_price * quantity``;
    under ``unit_price`` it is ``unit_price * quantity``.
    """

    unit_price = line.unit_price if line.unit_price is not None else product.cost_price
    basis = product.cost_price if rule is PricingRule.COST_PRICE else unit_price
    return unit_price, basis * line.quantity


# ---------------------------------------------------------------------------
# Caches and queries
# ---------------------------------------------------------------------------


def _ensure_orders_cache(context: RuntimeContext) -> Dict[str, Any]:
    bucket = core_logic.get_cache_bucket(context, SheetName.PURCHASE_ORDERS.value)
    if "all" not in bucket:
        headers = list(data_manager.iter_purchase_orders(context.workbook))
        bucket["all"] = headers
        bucket["by_id"] = {header.purchase_order_id: header for header in headers}
        log.debug("Populated purchase orders cache with %d entries", len(headers))
    return bucket


def _ensure_order_items_cache(context: RuntimeContext) -> Dict[str, Any]:
    bucket = core_logic.get_cache_bucket(context, SheetName.PURCHASE_ORDER_ITEMS.value)
    if "by_order" not in bucket:
        by_order: Dict[int, List[data_manager.PurchaseOrderItemRow]] = defaultdict(list)
        for item in data_manager.iter_purchase_order_items(context.workbook):
            by_order[item.purchase_order_id].append(item)
        bucket["by_order"] = dict(by_order)
    return bucket


def _assemble(context: RuntimeContext, header: data_manager.PurchaseOrderRow) -> PurchaseOrder:
    items = _ensure_order_items_cache(context)["by_order"].get(header.purchase_order_id, [])
    return PurchaseOrder(header=header, items=tuple(items))


def get_order(context: RuntimeContext, order_id: int) -> PurchaseOrder:
    """Load a purchase order and its items.

    Raises:
        NotFound: If no order carries ``order_id``.
    """

    try:
        header = _ensure_orders_cache(context)["by_id"][order_id]
    except KeyError as exc:
        log.warning("Purchase order lookup failed for id '%s'", order_id)
        raise NotFound("PurchaseOrder", order_id) from exc
    return _assemble(context, header)


def list_orders(context: RuntimeContext) -> List[PurchaseOrder]:
    return [_assemble(context, header) for header in _ensure_orders_cache(context)["all"]]


def find_by_supplier(context: RuntimeContext, supplier_id: str) -> List[PurchaseOrder]:
    """Return the orders placed with a supplier (``NotFound`` if unknown)."""

    core_logic.get_supplier(context, supplier_id)
    return [order for order in list_orders(context) if order.header.supplier_id == supplier_id]


def find_by_status(context: RuntimeContext, status: PurchaseOrderStatus) -> List[PurchaseOrder]:
    return [order for order in list_orders(context) if order.status == PurchaseOrderStatus(status)]


def list_events(context: RuntimeContext, order_id: int) -> List[data_manager.PurchaseOrderEventRow]:
    """Return the tracking events of an order, oldest first.

    Raises:
        NotFound: If the order does not exist.
    """

    get_order(context, order_id)
    bucket = core_logic.get_cache_bucket(context, SheetName.PURCHASE_ORDER_EVENTS.value)
    if "all" not in bucket:
        bucket["all"] = list(data_manager.iter_purchase_order_events(context.workbook))
    return [event for event in bucket["all"] if event.purchase_order_id == order_id]


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------


def _record_event(context: RuntimeContext, order_id: int, status: PurchaseOrderStatus, description: str, timestamp: str) -> None:
    event = data_manager.PurchaseOrderEventRow(
        event_id=data_manager.next_identifier(context.workbook, SheetName.PURCHASE_ORDER_EVENTS.value, "EventID"),
        purchase_order_id=order_id,
        timestamp_iso=timestamp,
        status=status.value,
        description=description,
    )
    data_manager.append_purchase_order_event(context.workbook, event)


def _require_draft(order: PurchaseOrder, operation: str) -> None:
    if order.status is not PurchaseOrderStatus.DRAFT:
        log.warning(
            "Rejected %s of purchase order '%s' in state %s",
            operation,
            order.order_id,
            order.status.value,
        )
        raise InvalidStateTransition(order.status.value, operation)


def _validate_lines(context: RuntimeContext, lines: Sequence[PurchaseOrderItemCommand]) -> Dict[str, data_manager.ProductRow]:
    products: Dict[str, data_manager.ProductRow] = {}
    for line in lines:
        core_logic.require_positive_quantity(line.quantity)
        if line.unit_price is not None:
            core_logic.require_nonnegative_money(line.unit_price, "unit_price")
        products[line.product_id] = core_logic.get_product(context, line.product_id)
    return products


def _build_item(
    item_id: int,
    order_id: int,
    line: PurchaseOrderItemCommand,
    product: data_manager.ProductRow,
    rule: PricingRule,
    received_quantity: int = 0,
) -> data_manager.PurchaseOrderItemRow:
    unit_price, total_price = price_line(product, line, rule)
    return data_manager.PurchaseOrderItemRow(
        purchase_order_item_id=item_id,
        purchase_order_id=order_id,
        product_id=line.product_id,
        quantity=line.quantity,
        unit_price=unit_price,
        total_price=total_price,
        received_quantity=received_quantity,
    )


def create_order(context: RuntimeContext, command: PurchaseOrderCommand) -> PurchaseOrder:
    """Create a draft purchase order with its items and total.

    Item totals follow the configured pricing rule
    (``ConfigSettings.pricing_rule``), and ``total_amount`` is their sum. A
    ``DRAFT`` tracking event is appended.

    Args:
        context (RuntimeContext): Runtime context providing workbook access and
            caches.
        command (PurchaseOrderCommand): Structured order intent.

    Returns:
        PurchaseOrder: The persisted order with its items.

    Raises:
        NotFound: If the supplier or a product is unknown.
        ValidationError: If a quantity is not positive, a unit price is
            negative, or the notes are too long.
    """

    core_logic.get_supplier(context, command.supplier_id)
    core_logic.require_max_length(command.notes, NOTES_MAX_LENGTH, "notes")
    products = _validate_lines(context, command.items)
    rule = context.settings.pricing_rule

    timestamp = core_logic.resolve_timestamp(command.timestamp)
    stamp = timestamp.isoformat()
    order_date = command.order_date or timestamp.date()
    with core_logic.unit_of_work(context, *_ORDER_SHEETS):
        order_id = data_manager.next_identifier(context.workbook, SheetName.PURCHASE_ORDERS.value, "PurchaseOrderID")
        first_item_id = data_manager.next_identifier(
            context.workbook, SheetName.PURCHASE_ORDER_ITEMS.value, "PurchaseOrderItemID"
        )
        items = tuple(
            _build_item(first_item_id + offset, order_id, line, products[line.product_id], rule)
            for offset, line in enumerate(command.items)
        )
        header = data_manager.PurchaseOrderRow(
            purchase_order_id=order_id,
            supplier_id=command.supplier_id,
            status=PurchaseOrderStatus.DRAFT.value,
            order_date=order_date.isoformat(),
            delivery_date=command.delivery_date.isoformat() if command.delivery_date else None,
            total_amount=sum((item.total_price for item in items), Decimal("0.00")),
            notes=command.notes,
            created_at=stamp,
            updated_at=stamp,
        )
        data_manager.append_purchase_order(context.workbook, header)
        for item in items:
            data_manager.append_purchase_order_item(context.workbook, item)
        _record_event(context, order_id, PurchaseOrderStatus.DRAFT, "Order created", stamp)

    log.info(
        "Created purchase order '%s' for supplier '%s' with %d item(s) (total=%s)",
        order_id,
        command.supplier_id,
        len(items),
        header.total_amount,
    )
    return PurchaseOrder(header=header, items=items)


def update_order(context: RuntimeContext, order_id: int, command: PurchaseOrderUpdateCommand) -> PurchaseOrder:
    """Edit a draft order.

    When ``command.items`` is given it becomes the order's new item set:
    lines without ``item_id`` are added, lines with one replace that item's
    product, quantity, and unit price, and stored items not mentioned are
    removed. Every item total is repriced under the configured rule and the
    order total is recomputed.

    Raises:
        NotFound: If the order, the new supplier, a product, or a referenced
            item is unknown.
        InvalidStateTransition: If the order is not a draft.
        ValidationError: If a line or the notes are malformed.
    """

    order = get_order(context, order_id)
    _require_draft(order, "update")
    if command.supplier_id is not None:
        core_logic.get_supplier(context, command.supplier_id)
    core_logic.require_max_length(command.notes, NOTES_MAX_LENGTH, "notes")

    items = order.items
    if command.items is not None:
        products = _validate_lines(context, command.items)
        existing = {item.purchase_order_item_id: item for item in order.items}
        claimed = set()
        for line in command.items:
            if line.item_id is None:
                continue
            if line.item_id not in existing:
                log.warning("Purchase order item '%s' does not belong to order '%s'", line.item_id, order_id)
                raise NotFound("PurchaseOrderItem", line.item_id)
            if line.item_id in claimed:
                raise ValidationError("items", f"item {line.item_id} is listed more than once")
            claimed.add(line.item_id)

    timestamp = core_logic.resolve_timestamp(command.timestamp).isoformat()
    rule = context.settings.pricing_rule
    with core_logic.unit_of_work(context, *_ORDER_SHEETS):
        if command.items is not None:
            next_item_id = data_manager.next_identifier(
                context.workbook, SheetName.PURCHASE_ORDER_ITEMS.value, "PurchaseOrderItemID"
            )
            rebuilt: List[data_manager.PurchaseOrderItemRow] = []
            for line in command.items:
                if line.item_id is None:
                    rebuilt.append(_build_item(next_item_id, order_id, line, products[line.product_id], rule))
                    next_item_id += 1
                else:
                    previous = existing[line.item_id]
                    rebuilt.append(
                        _build_item(
                            line.item_id,
                            order_id,
                            line,
                            products[line.product_id],
                            rule,
                            received_quantity=previous.received_quantity,
                        )
                    )
            data_manager.delete_records(
                context.workbook,
                SheetName.PURCHASE_ORDER_ITEMS.value,
                "PurchaseOrderID",
                [order_id],
            )
            for item in rebuilt:
                data_manager.append_purchase_order_item(context.workbook, item)
            items = tuple(rebuilt)

        header = data_manager.PurchaseOrderRow(
            purchase_order_id=order_id,
            supplier_id=command.supplier_id or order.header.supplier_id,
            status=order.header.status,
            order_date=order.header.order_date,
            delivery_date=command.delivery_date.isoformat() if command.delivery_date else order.header.delivery_date,
            total_amount=sum((item.total_price for item in items), Decimal("0.00")),
            notes=command.notes if command.notes is not None else order.header.notes,
            created_at=order.header.created_at,
            updated_at=timestamp,
        )
        data_manager.replace_purchase_order(context.workbook, header)

    log.info("Updated purchase order '%s' (%d item(s), total=%s)", order_id, len(items), header.total_amount)
    return PurchaseOrder(header=header, items=items)


def delete_order(context: RuntimeContext, order_id: int) -> None:
    """Delete a draft order together with its items and tracking events.

    Raises:
        NotFound: If the order does not exist.
        InvalidStateTransition: If the order is not a draft.
    """

    order = get_order(context, order_id)
    _require_draft(order, "delete")
    with core_logic.unit_of_work(context, *_ORDER_SHEETS):
        data_manager.delete_records(context.workbook, SheetName.PURCHASE_ORDER_EVENTS.value, "PurchaseOrderID", [order_id])
        data_manager.delete_records(context.workbook, SheetName.PURCHASE_ORDER_ITEMS.value, "PurchaseOrderID", [order_id])
        data_manager.delete_records(context.workbook, SheetName.PURCHASE_ORDERS.value, "PurchaseOrderID", [order_id])
    log.info("Deleted purchase order '%s'", order_id)


def transition(context: RuntimeContext, order_id: int, operation: str) -> PurchaseOrder:
    """Move an order to the state ``operation`` leads to.

    The guard is evaluated once against :data:`TRANSITIONS`; a rejected
    operation leaves the order untouched.

    Args:
        context (RuntimeContext): Runtime context providing workbook access and
            caches.
        order_id (int): Order to transition.
        operation (str): One of the keys of :data:`TRANSITIONS`.

    Returns:
        PurchaseOrder: The order in its new state.

    Raises:
        NotFound: If the order does not exist.
        InvalidStateTransition: If the operation is not allowed from the
            current state.
    """

    order = get_order(context, order_id)
    try:
        target = next_status(order.status, operation)
    except InvalidStateTransition:
        log.warning(
            "Rejected %s of purchase order '%s' in state %s",
            operation,
            order_id,
            order.status.value,
        )
        raise

    timestamp = core_logic.resolve_timestamp(None).isoformat()
    with core_logic.unit_of_work(context, *_ORDER_SHEETS):
        data_manager.update_record(
            context.workbook,
            SheetName.PURCHASE_ORDERS.value,
            "PurchaseOrderID",
            order_id,
            field_values={"Status": target.value, "UpdatedAt": timestamp},
        )
        _record_event(context, order_id, target, TRANSITIONS[operation].description, timestamp)

    log.info("Purchase order '%s' moved %s -> %s", order_id, order.status.value, target.value)
    return get_order(context, order_id)


def submit(context: RuntimeContext, order_id: int) -> PurchaseOrder:
    return transition(context, order_id, "submit")


def confirm(context: RuntimeContext, order_id: int) -> PurchaseOrder:
    return transition(context, order_id, "confirm")


def mark_shipped(context: RuntimeContext, order_id: int) -> PurchaseOrder:
    return transition(context, order_id, "mark_shipped")


def mark_delivered(context: RuntimeContext, order_id: int) -> PurchaseOrder:
    return transition(context, order_id, "mark_delivered")


def mark_paid(context: RuntimeContext, order_id: int) -> PurchaseOrder:
    return transition(context, order_id, "mark_paid")


def cancel(context: RuntimeContext, order_id: int) -> PurchaseOrder:
    return transition(context, order_id, "cancel")
