"""Business logic foundation for the stationery ERP.

This module owns the pieces every service shares: the domain error hierarchy,
the :class:`RuntimeContext` handed to each operation, the per-sheet read
caches, the rollback-capable :func:`unit_of_work`, and the master data
(products, suppliers, customers, employees) that sales and purchase orders
reference. All I/O goes through the Data Access Layer (DAL).
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple

from openpyxl.workbook import Workbook

from . import data_manager, log
from .constants import EXPECTED_SCHEMA_VERSION, SHEET_COLUMNS, SheetName


class BusinessRuleViolation(Exception):
    """Raised when a requested operation violates a domain constraint."""


class NotFound(BusinessRuleViolation):
    """Raised when a referenced entity does not exist."""

    def __init__(self, entity_type: str, entity_id: object) -> None:
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} not found: {entity_id}")


class InvalidStateTransition(BusinessRuleViolation):
    """Raised when an operation is not allowed from the current state."""

    def __init__(self, current_state: str, operation: str) -> None:
        self.current_state = current_state
        self.operation = operation
        super().__init__(f"Cannot {operation} a purchase order in state {current_state}")


class InsufficientStock(BusinessRuleViolation):
    """Raised when a stock decrease would drive a product below zero."""

    def __init__(self, product_id: str, requested: int, available: int) -> None:
        self.product_id = product_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient stock for product '{product_id}': requested {requested}, available {available}"
        )


class ValidationError(BusinessRuleViolation, ValueError):
    """Raised when a command carries malformed input."""

    def __init__(self, field_name: str, reason: str) -> None:
        self.field = field_name
        self.reason = reason
        super().__init__(f"Invalid {field_name}: {reason}")


@dataclass(frozen=True)
class RuntimeContext:
    """Container for configuration and workbook references used by the BLL."""

    settings: data_manager.ConfigSettings
    workbook: Workbook
    _cache: Dict[str, Dict[str, Any]] = field(default_factory=dict, repr=False, compare=False)


def resolve_timestamp(candidate: Optional[datetime]) -> datetime:
    """Resolve optional timestamps into consistent, timezone-aware values.

    Args:
        candidate (datetime | None): Caller-provided timestamp, usually sourced
            from a command object.

    Returns:
        datetime: ``candidate`` as-is when provided, otherwise the current UTC
            datetime generated via :func:`datetime.now`.
    """

    return candidate if candidate is not None else datetime.now(UTC)


def get_cache_bucket(context: RuntimeContext, name: str) -> Dict[str, Any]:
    """Return a mutable cache bucket dedicated to the supplied name.

    The business logic layer keeps one in-memory bucket per worksheet. This
    helper retrieves or initializes the bucket associated with ``name``.
    Buckets are plain dictionaries that store precomputed query results, which
    avoids rescanning the workbook on every lookup.

    Args:
        context (RuntimeContext): Runtime state carrying the shared cache
            dictionary.
        name (str): Logical bucket name, by convention the sheet name.

    Returns:
        dict[str, Any]: Mutable mapping used to cache derived collections.
    """

    bucket = context._cache.get(name)
    if bucket is None:
        log.debug("Initializing cache bucket '%s'", name)
        bucket = {}
        context._cache[name] = bucket
    return bucket


def invalidate_cache(context: RuntimeContext, *names: str) -> None:
    """Evict one or more cache buckets after mutating workbook state.

    Args:
        context (RuntimeContext): Active runtime context whose cache should be
            pruned.
        *names (str): Bucket identifiers to remove. Missing buckets are
            ignored.
    """

    if not names:
        return

    log.debug("Invalidating cache buckets: %s", ", ".join(names))

    for name in names:
        context._cache.pop(name, None)


@contextmanager
def unit_of_work(context: RuntimeContext, *sheets: SheetName) -> Iterator[RuntimeContext]:
    """Run a block of workbook mutations atomically.

    The data rows of every sheet in ``sheets`` (all sheets when none are
    named) are captured before the block runs. If the block raises, the
    captured rows are written back, every cache bucket is dropped, and the
    exception propagates unchanged. On success the touched buckets are
    invalidated so later reads observe the new rows.

    Args:
        context (RuntimeContext): Runtime context whose workbook is mutated.
        *sheets (SheetName): Sheets the block may modify.

    Yields:
        RuntimeContext: The same context, for convenience.

    Raises:
        Exception: Whatever the block raised, after the rollback completes.
    """

    names = [sheet.value for sheet in sheets] or list(SHEET_COLUMNS)
    snapshot = data_manager.snapshot_sheets(context.workbook, names)
    try:
        yield context
    except Exception:
        data_manager.restore_sheets(context.workbook, snapshot)
        context._cache.clear()
        log.error("Rolled back pending changes to sheets: %s", ", ".join(names))
        raise
    invalidate_cache(context, *names)


def load_runtime_context(config_path: Optional[Path] = None) -> RuntimeContext:
    """Load configuration settings and a live workbook for the BLL.

    The helper resolves ``config.ini``, parses settings, and opens the Excel
    workbook that stores master data, sales, and purchase orders. The
    resulting :class:`RuntimeContext` bundles the immutable settings with a
    mutable workbook handle and an empty cache store.

    Args:
        config_path (Path | None): Optional override path for the configuration
            file. When omitted the data layer performs its upward search from
            the current working directory.

    Returns:
        RuntimeContext: Fully populated context ready for service calls.

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
    return RuntimeContext(settings=settings, workbook=workbook)


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


# ---------------------------------------------------------------------------
# Master data
# ---------------------------------------------------------------------------

# Loader name in data_manager and key attribute per master-data sheet.
_MASTER_DATA: Dict[str, Tuple[str, str]] = {
    SheetName.PRODUCTS.value: ("iter_products", "product_id"),
    SheetName.SUPPLIERS.value: ("iter_suppliers", "supplier_id"),
    SheetName.CUSTOMERS.value: ("iter_customers", "customer_id"),
    SheetName.EMPLOYEES.value: ("iter_employees", "employee_id"),
}


def _ensure_master_cache(context: RuntimeContext, sheet: SheetName) -> Dict[str, Any]:
    """Populate the cache bucket of a master-data sheet on demand.

    Every master-data bucket has the same shape so the public lookups can
    share it: ``all`` rows in sheet order, the ``active`` subset, and a
    ``by_id`` dictionary.

    Args:
        context (RuntimeContext): Runtime state used to access the workbook and
            shared caches.
        sheet (SheetName): One of the products, suppliers, customers, or
            employees sheets.

    Returns:
        dict[str, Any]: The populated bucket.
    """

    bucket = get_cache_bucket(context, sheet.value)
    if "all" not in bucket:
        loader_name, key = _MASTER_DATA[sheet.value]
        rows = list(getattr(data_manager, loader_name)(context.workbook))
        bucket["all"] = rows
        bucket["active"] = [row for row in rows if row.is_active]
        bucket["by_id"] = {getattr(row, key): row for row in rows}
        log.debug(
            "Populated %s cache with %d entries (%d active)",
            sheet.value,
            len(rows),
            len(bucket["active"]),
        )
    return bucket


def _lookup(context: RuntimeContext, sheet: SheetName, entity_type: str, entity_id: str) -> Any:
    try:
        return _ensure_master_cache(context, sheet)["by_id"][entity_id]
    except KeyError as exc:
        log.warning("%s lookup failed for id '%s'", entity_type, entity_id)
        raise NotFound(entity_type, entity_id) from exc


def _listing(context: RuntimeContext, sheet: SheetName, include_inactive: bool) -> List[Any]:
    cache = _ensure_master_cache(context, sheet)
    source = cache["all"] if include_inactive else cache["active"]
    return list(source)


def get_product(context: RuntimeContext, product_id: str) -> data_manager.ProductRow:
    """Resolve a product record by its identifier.

    The lookup leverages the product cache for near constant-time access and
    raises :class:`NotFound` when the workbook does not contain the requested
    identifier. Inactive products still resolve; ``is_active`` only filters
    listings.

    Args:
        context (RuntimeContext): Runtime context providing workbook access and
            caches.
        product_id (str): Identifier populated in the ``Products`` sheet.

    Returns:
        data_manager.ProductRow: Matching product dataclass sourced from cache.

    Raises:
        NotFound: If ``product_id`` is absent from the workbook.
    """
    return _lookup(context, SheetName.PRODUCTS, "Product", product_id)


def get_supplier(context: RuntimeContext, supplier_id: str) -> data_manager.SupplierRow:
    """Resolve a supplier record, raising :class:`NotFound` when unknown."""
    return _lookup(context, SheetName.SUPPLIERS, "Supplier", supplier_id)


def get_customer(context: RuntimeContext, customer_id: str) -> data_manager.CustomerRow:
    """Resolve a customer record, raising :class:`NotFound` when unknown."""
    return _lookup(context, SheetName.CUSTOMERS, "Customer", customer_id)


def get_employee(context: RuntimeContext, employee_id: str) -> data_manager.EmployeeRow:
    """Resolve an employee record, raising :class:`NotFound` when unknown."""
    return _lookup(context, SheetName.EMPLOYEES, "Employee", employee_id)


def list_products(context: RuntimeContext, *, include_inactive: bool = False) -> List[data_manager.ProductRow]:
    """Return cached product rows optionally filtered by active status.

    Args:
        context (RuntimeContext): Runtime context providing workbook access and
            caches.
        include_inactive (bool): When ``True`` the result includes inactive
            products. The default is to surface only active entries.

    Returns:
        list[data_manager.ProductRow]: Copy of the cached product dataset in
            sheet order.
    """
    return _listing(context, SheetName.PRODUCTS, include_inactive)


def list_suppliers(context: RuntimeContext, *, include_inactive: bool = False) -> List[data_manager.SupplierRow]:
    return _listing(context, SheetName.SUPPLIERS, include_inactive)


def list_customers(context: RuntimeContext, *, include_inactive: bool = False) -> List[data_manager.CustomerRow]:
    return _listing(context, SheetName.CUSTOMERS, include_inactive)


def list_employees(context: RuntimeContext, *, include_inactive: bool = False) -> List[data_manager.EmployeeRow]:
    return _listing(context, SheetName.EMPLOYEES, include_inactive)


def _require_new_identifier(context: RuntimeContext, sheet: SheetName, field_name: str, entity_id: str) -> None:
    if not entity_id or not str(entity_id).strip():
        raise ValidationError(field_name, "must not be blank")
    if entity_id in _ensure_master_cache(context, sheet)["by_id"]:
        log.warning("Rejected duplicate %s '%s'", field_name, entity_id)
        raise ValidationError(field_name, f"'{entity_id}' already exists")


def add_product(
    context: RuntimeContext,
    *,
    product_id: str,
    product_name: str,
    cost_price: Decimal,
    sale_price: Decimal,
    stock: int = 0,
    is_active: bool = True,
) -> data_manager.ProductRow:
    """Register a new product in the ``Products`` sheet.

    Opening stock is written directly because no sale or order references the
    product yet. Every later stock change goes through the inventory ledger.

    Args:
        context (RuntimeContext): Runtime context providing workbook access and
            caches.
        product_id (str): Caller-chosen unique identifier.
        product_name (str): Display name.
        cost_price (Decimal): Price paid to suppliers, used to price
            purchase-order lines.
        sale_price (Decimal): Shelf price.
        stock (int): Opening stock, zero or positive.
        is_active (bool): Listing flag.

    Returns:
        data_manager.ProductRow: The stored record.

    Raises:
        ValidationError: If the id is blank or taken, a price is negative, or
            the opening stock is negative.
    """
    _require_new_identifier(context, SheetName.PRODUCTS, "product_id", product_id)
    require_nonnegative_money(cost_price, "cost_price")
    require_nonnegative_money(sale_price, "sale_price")
    if isinstance(stock, bool) or not isinstance(stock, int) or stock < 0:
        raise ValidationError("stock", "must be a whole number, zero or positive")

    record = data_manager.ProductRow(
        product_id=product_id,
        product_name=product_name,
        cost_price=cost_price,
        sale_price=sale_price,
        stock=stock,
        is_active=is_active,
    )
    with unit_of_work(context, SheetName.PRODUCTS):
        data_manager.append_product(context.workbook, record)
    log.info("Added product '%s' (%s) with opening stock %d", product_id, product_name, stock)
    return record


def add_supplier(context: RuntimeContext, *, supplier_id: str, supplier_name: str, is_active: bool = True) -> data_manager.SupplierRow:
    """Register a new supplier."""
    _require_new_identifier(context, SheetName.SUPPLIERS, "supplier_id", supplier_id)
    record = data_manager.SupplierRow(supplier_id=supplier_id, supplier_name=supplier_name, is_active=is_active)
    with unit_of_work(context, SheetName.SUPPLIERS):
        data_manager.append_supplier(context.workbook, record)
    log.info("Added supplier '%s' (%s)", supplier_id, supplier_name)
    return record


def add_customer(context: RuntimeContext, *, customer_id: str, customer_name: str, is_active: bool = True) -> data_manager.CustomerRow:
    """Register a new customer."""
    _require_new_identifier(context, SheetName.CUSTOMERS, "customer_id", customer_id)
    record = data_manager.CustomerRow(customer_id=customer_id, customer_name=customer_name, is_active=is_active)
    with unit_of_work(context, SheetName.CUSTOMERS):
        data_manager.append_customer(context.workbook, record)
    log.info("Added customer '%s' (%s)", customer_id, customer_name)
    return record


def add_employee(context: RuntimeContext, *, employee_id: str, employee_name: str, is_active: bool = True) -> data_manager.EmployeeRow:
    """Register a new employee."""
    _require_new_identifier(context, SheetName.EMPLOYEES, "employee_id", employee_id)
    record = data_manager.EmployeeRow(employee_id=employee_id, employee_name=employee_name, is_active=is_active)
    with unit_of_work(context, SheetName.EMPLOYEES):
        data_manager.append_employee(context.workbook, record)
    log.info("Added employee '%s' (%s)", employee_id, employee_name)
    return record


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def require_positive_quantity(quantity: int, field_name: str = "quantity") -> None:
    """Validate that a quantity is a strictly positive whole number.

    Args:
        quantity (int): Quantity supplied by a command object.
        field_name (str): Name reported in the raised error.

    Raises:
        ValidationError: If ``quantity`` is not an integer or is zero or
            negative.
    """
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        log.error("Quantity validation failed: %s", quantity)
        raise ValidationError(field_name, "must be a whole number greater than zero")


def require_nonnegative_money(amount: Optional[Decimal], field_name: str = "amount") -> None:
    """Validate that a monetary value is present and nonnegative.

    Args:
        amount (Decimal | None): Currency value supplied by a command object.
        field_name (str): Name reported in the raised error.

    Raises:
        ValidationError: If ``amount`` is missing or less than zero.
    """
    if amount is None:
        log.error("Monetary value missing for %s", field_name)
        raise ValidationError(field_name, "is required")
    if amount < Decimal("0"):
        log.error("Monetary value validation failed: %s", amount)
        raise ValidationError(field_name, "must be zero or positive")


def require_max_length(value: Optional[str], limit: int, field_name: str) -> None:
    if value is not None and len(value) > limit:
        raise ValidationError(field_name, f"must be at most {limit} characters")


def persist_context(context: RuntimeContext) -> None:
    """Persist any in-memory workbook changes to disk.

    The function supplies :attr:`RuntimeContext.settings.data_file` directly to
    the data layer to ensure saves always target the configured workbook path.
    """
    data_manager.save_workbook(
        context.workbook,
        destination=context.settings.data_file,
    )
    log.info("Persisted workbook '%s'", context.settings.data_file)


def refresh_context(context: RuntimeContext) -> RuntimeContext:
    """Reload the workbook to discard unsaved modifications.

    Args:
        context (RuntimeContext): Runtime context whose settings should be
            reused.

    Returns:
        RuntimeContext: Fresh context containing a newly opened workbook and
            an empty cache.

    Raises:
        FileNotFoundError: If the backing workbook cannot be reloaded.
    """
    workbook = data_manager.refresh_workbook(context.settings.data_file)
    log.info("Reloaded workbook '%s'", context.settings.data_file)
    return RuntimeContext(settings=context.settings, workbook=workbook)
