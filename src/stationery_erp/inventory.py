"""Inventory ledger: the only writer of ``Products.Stock``.

Sales and purchase orders never touch stock cells themselves. They hand
signed quantity changes to this module, which refuses any change that would
leave a product below zero.
"""

from __future__ import annotations

from typing import Dict, Mapping

from . import core_logic, data_manager, log
from .constants import SheetName
from .core_logic import InsufficientStock, RuntimeContext


def get_stock(context: RuntimeContext, product_id: str) -> int:
    """Return the current stock of ``product_id`` (``NotFound`` if unknown)."""

    return core_logic.get_product(context, product_id).stock


def ensure_available(context: RuntimeContext, product_id: str, quantity: int) -> None:
    """Raise :class:`InsufficientStock` unless ``quantity`` units are on hand."""

    available = get_stock(context, product_id)
    if available < quantity:
        log.warning(
            "Insufficient stock for product '%s': requested %d, available %d",
            product_id,
            quantity,
            available,
        )
        raise InsufficientStock(product_id, requested=quantity, available=available)


def adjust(context: RuntimeContext, product_id: str, delta: int) -> int:
    """Apply a signed change to a product's stock and return the new level.

    The product is read, ``stock + delta`` is computed and written back in a
    single step. A result below zero is rejected before anything is written.

    Args:
        context (RuntimeContext): Runtime context providing workbook access and
            caches.
        product_id (str): Product whose stock changes.
        delta (int): Positive to return stock, negative to consume it.

    Returns:
        int: Stock after the change.

    Raises:
        NotFound: If the product does not exist.
        InsufficientStock: If the change would make stock negative.
    """

    current = get_stock(context, product_id)
    new_stock = current + delta
    if new_stock < 0:
        log.warning(
            "Rejected stock change %+d for product '%s' (available %d)",
            delta,
            product_id,
            current,
        )
        raise InsufficientStock(product_id, requested=-delta, available=current)

    data_manager.set_product_stock(context.workbook, product_id, new_stock)
    core_logic.invalidate_cache(context, SheetName.PRODUCTS.value)
    log.debug("Stock of '%s' changed %d -> %d", product_id, current, new_stock)
    return new_stock


def apply_deltas(context: RuntimeContext, deltas: Mapping[str, int]) -> Dict[str, int]:
    """Apply several stock changes after checking all of them.

    Every negative delta is verified against current stock before the first
    write, so a shortage on one product leaves every product untouched. Zero
    deltas are skipped.

    Args:
        context (RuntimeContext): Runtime context providing workbook access and
            caches.
        deltas (Mapping[str, int]): Signed change per product id.

    Returns:
        dict[str, int]: New stock level for every product that changed.

    Raises:
        NotFound: If any product does not exist.
        InsufficientStock: If any change would make stock negative.
    """

    pending = {product_id: delta for product_id, delta in deltas.items() if delta != 0}
    for product_id, delta in pending.items():
        if delta < 0:
            ensure_available(context, product_id, -delta)
        else:
            core_logic.get_product(context, product_id)

    return {product_id: adjust(context, product_id, delta) for product_id, delta in pending.items()}


def stock_report(context: RuntimeContext) -> Dict[str, int]:
    """Return ``{product_id: stock}`` for every product, active or not."""

    return {
        product.product_id: product.stock
        for product in core_logic.list_products(context, include_inactive=True)
    }
