"""Data access layer for the stationery ERP.

This module provides low-level helpers that read from and write to the
master workbook. Business logic belongs elsewhere.

The public API is designed around three responsibilities:

1. Configuration handling: finding and parsing ``config.ini``.
2. Workbook lifecycle: opening, persisting, snapshotting, and restoring the
   Excel file.
3. Sheet operations: loading structured records and appending, updating, or
   deleting individual rows.
"""


from __future__ import annotations

import configparser
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, TypeVar

from openpyxl.workbook import Workbook
import openpyxl

from . import log
from .constants import SHEET_COLUMNS, PricingRule, SheetName


CONFIG_FILE_NAME = "config.ini"
PRODUCTS_SHEET = SheetName.PRODUCTS.value
SUPPLIERS_SHEET = SheetName.SUPPLIERS.value
CUSTOMERS_SHEET = SheetName.CUSTOMERS.value
EMPLOYEES_SHEET = SheetName.EMPLOYEES.value
SALES_SHEET = SheetName.SALES.value
SALE_ITEMS_SHEET = SheetName.SALE_ITEMS.value
PURCHASE_ORDERS_SHEET = SheetName.PURCHASE_ORDERS.value
PURCHASE_ORDER_ITEMS_SHEET = SheetName.PURCHASE_ORDER_ITEMS.value
PURCHASE_ORDER_EVENTS_SHEET = SheetName.PURCHASE_ORDER_EVENTS.value
SALE_RETURNS_SHEET = SheetName.SALE_RETURNS.value
SALE_RETURN_ITEMS_SHEET = SheetName.SALE_RETURN_ITEMS.value

RowT = TypeVar("RowT")

# Sheet contents captured by :func:`snapshot_sheets`, keyed by sheet name.
SheetSnapshot = Dict[str, List[Tuple[Any, ...]]]


@dataclass(frozen=True)
class ConfigSettings:
    """Typed representation of the ``config.ini`` settings we care about."""

    data_file: Path
    store_name: str
    schema_version: str
    default_employee_id: str
    default_customer_id: str
    pricing_rule: PricingRule = PricingRule.COST_PRICE


@dataclass(frozen=True)
class ProductRow:
    """In-memory view of a row from the ``Products`` sheet."""

    product_id: str
    product_name: str
    cost_price: Decimal
    sale_price: Decimal
    stock: int
    is_active: bool


@dataclass(frozen=True)
class SupplierRow:
    """In-memory view of a row from the ``Suppliers`` sheet."""

    supplier_id: str
    supplier_name: str
    is_active: bool


@dataclass(frozen=True)
class CustomerRow:
    """In-memory view of a row from the ``Customers`` sheet."""

    customer_id: str
    customer_name: str
    is_active: bool


@dataclass(frozen=True)
class EmployeeRow:
    """In-memory view of a row from the ``Employees`` sheet."""

    employee_id: str
    employee_name: str
    is_active: bool


@dataclass(frozen=True)
class SaleRow:
    """In-memory view of a row from the ``Sales`` sheet."""

    sale_id: int
    customer_id: str
    employee_id: str
    payment_method: str
    status: str
    total_amount: Decimal
    tax_amount: Decimal
    discount_amount: Decimal
    final_amount: Decimal
    notes: Optional[str]
    created_at: str
    updated_at: str


@dataclass(frozen=True)
class SaleItemRow:
    """In-memory view of a row from the ``SaleItems`` sheet."""

    sale_item_id: int
    sale_id: int
    product_id: str
    quantity: int
    unit_price: Decimal
    subtotal: Decimal


@dataclass(frozen=True)
class PurchaseOrderRow:
    """In-memory view of a row from the ``PurchaseOrders`` sheet."""

    purchase_order_id: int
    supplier_id: str
    status: str
    order_date: str
    delivery_date: Optional[str]
    total_amount: Decimal
    notes: Optional[str]
    created_at: str
    updated_at: str


@dataclass(frozen=True)
class PurchaseOrderItemRow:
    """In-memory view of a row from the ``PurchaseOrderItems`` sheet."""

    purchase_order_item_id: int
    purchase_order_id: int
    product_id: str
    quantity: int
    unit_price: Decimal
    total_price: Decimal
    received_quantity: int


@dataclass(frozen=True)
class PurchaseOrderEventRow:
    """In-memory view of a row from the ``PurchaseOrderEvents`` sheet."""

    event_id: int
    purchase_order_id: int
    timestamp_iso: str
    status: str
    description: Optional[str]


@dataclass(frozen=True)
class SaleReturnRow:
    """In-memory view of a row from the ``SaleReturns`` sheet."""

    sale_return_id: int
    original_sale_id: int
    customer_id: str
    employee_id: str
    total_return_amount: Decimal
    reason: str
    created_at: str
    updated_at: str


@dataclass(frozen=True)
class SaleReturnItemRow:
    """In-memory view of a row from the ``SaleReturnItems`` sheet."""

    sale_return_item_id: int
    sale_return_id: int
    product_id: str
    quantity: int
    unit_price: Decimal
    subtotal: Decimal


def find_config_file(explicit_path: Optional[Path] = None) -> Path:
    """Locate the configuration file that controls how the data layer behaves.

    If the caller provides ``explicit_path`` the value is returned immediately
    without any verification. When no explicit path is given the function
    walks up from the current working directory toward the filesystem root
    looking for a file named ``CONFIG_FILE_NAME``. The first match that exists
    on disk is considered authoritative.

    Args:
        explicit_path (Path | None): Optional path to use instead of performing
            the upward search. May be relative to the current working directory.

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
        configparser.ConfigParser: Initialized parser containing the raw
            configuration data.

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

    Required options live under ``[System]`` and ``[Defaults]``. The
    ``[PurchaseOrders]`` section is optional; when ``PricingRule`` is absent
    purchase-order lines are priced from the product cost price. Relative
    ``DataFile`` entries are expanded against ``base_path`` when provided, or
    against the current working directory as a fallback.

    Args:
        parser (configparser.ConfigParser): Parsed configuration data.
        base_path (Path | None): Directory to use as the anchor for relative
            ``DataFile`` entries.

    Returns:
        ConfigSettings: Immutable settings container.

    Raises:
        KeyError: If one of the required sections or options is missing.
        ValueError: If ``PricingRule`` holds an unsupported value.
    """

    try:
        data_file_raw = parser.get("System", "DataFile")
        store_name = parser.get("System", "StoreName")
        schema_version = parser.get("System", "SchemaVersion")
        default_employee = parser.get("Defaults", "DefaultEmployee")
        default_customer = parser.get("Defaults", "DefaultCustomer")
    except (configparser.NoSectionError, configparser.NoOptionError) as exc:
        raise KeyError(f"Missing required configuration entry: {exc}") from exc

    pricing_raw = parser.get("PurchaseOrders", "PricingRule", fallback=PricingRule.COST_PRICE.value)
    try:
        pricing_rule = PricingRule(pricing_raw.strip().lower())
    except ValueError as exc:
        raise ValueError(f"Unsupported purchase order pricing rule: {pricing_raw}") from exc

    data_file_path = Path(data_file_raw)
    if not data_file_path.is_absolute():
        if base_path is None:
            base_path = Path.cwd()
        data_file_path = (base_path / data_file_path).resolve()

    return ConfigSettings(
        data_file=data_file_path,
        store_name=store_name,
        schema_version=schema_version,
        default_employee_id=default_employee,
        default_customer_id=default_customer,
        pricing_rule=pricing_rule,
    )


def open_workbook(data_file: Path) -> Workbook:
    """Open the master Excel workbook and return a live ``openpyxl`` workbook.

    Args:
        data_file (Path): Filesystem path to the master workbook.

    Returns:
        Workbook: ``openpyxl`` workbook instance backed by the provided file.

    Raises:
        FileNotFoundError: If ``data_file`` does not exist after expansion and
            resolution.
    """

    data_file = Path(data_file).expanduser().resolve()
    if not data_file.exists():
        raise FileNotFoundError(f"Workbook not found: {data_file}")

    return openpyxl.load_workbook(data_file)


def save_workbook(workbook: Workbook, destination: Path) -> None:
    """Persist the workbook to disk, creating parent directories on demand."""

    dest = Path(destination).expanduser().resolve()
    dest.parent.mkdir(parents=True, exist_ok=True)
    workbook.save(dest)


def refresh_workbook(data_file: Path) -> Workbook:
    """Reload the workbook from disk, discarding any unsaved in-memory changes."""

    return open_workbook(data_file)


def snapshot_sheets(workbook: Workbook, sheet_names: Iterable[str]) -> SheetSnapshot:
    """Capture the data rows of the named sheets.

    The snapshot holds plain value tuples (header excluded) so it is cheap to
    take before every mutating operation and independent of later cell edits.

    Args:
        workbook (Workbook): Workbook whose sheets should be captured.
        sheet_names (Iterable[str]): Sheets to include.

    Returns:
        dict[str, list[tuple]]: Row values per sheet, in worksheet order.
    """

    snapshot: SheetSnapshot = {}
    for name in sheet_names:
        sheet = workbook[name]
        snapshot[name] = [tuple(row) for row in sheet.iter_rows(min_row=2, values_only=True)]
    return snapshot


def restore_sheets(workbook: Workbook, snapshot: SheetSnapshot) -> None:
    """Rewrite the data rows of each sheet in ``snapshot`` to their captured values."""

    for name, rows in snapshot.items():
        sheet = workbook[name]
        if sheet.max_row > 1:
            sheet.delete_rows(2, sheet.max_row - 1)
        for row_idx, values in enumerate(rows, start=2):
            for col_idx, value in enumerate(values, start=1):
                sheet.cell(row=row_idx, column=col_idx, value=value)
    log.debug("Restored %d sheet(s) from snapshot", len(snapshot))


def _header_map(sheet: Any) -> Dict[str, int]:
    return {cell.value: idx + 1 for idx, cell in enumerate(sheet[1])}


def iter_records(workbook: Workbook, sheet_name: str, deserializer: Callable[[Sequence[object]], RowT]) -> Iterable[RowT]:
    """Iterate over a worksheet and yield typed records.

    The iterator skips the header row and any fully empty rows to avoid
    producing meaningless values.

    Args:
        workbook (Workbook): Workbook containing ``sheet_name``.
        sheet_name (str): Worksheet to read.
        deserializer (Callable): Converter from raw cell values to a record.

    Yields:
        One structured record for each meaningful row in the sheet.
    """

    sheet = workbook[sheet_name]
    for raw in sheet.iter_rows(min_row=2, values_only=True):
        # skip fully empty rows
        if any(cell is not None for cell in raw):
            yield deserializer(raw)


def locate_row(workbook: Workbook, sheet_name: str, key_column: str, key_value: object) -> Optional[int]:
    """Find a row by matching a key value within the specified worksheet.

    Keys are compared by their string form because Excel returns integer
    identifiers as ``int`` and text identifiers as ``str``.

    Args:
        workbook (Workbook): Workbook providing access to ``sheet_name``.
        sheet_name (str): Name of the worksheet to search.
        key_column (str): Header title identifying the key column.
        key_value (object): Value to match within the key column.

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
    wanted = str(key_value)

    for row_idx, row in enumerate(sheet.iter_rows(min_row=2, values_only=True), start=2):
        cell_value = row[key_col_index - 1]
        if cell_value is not None and str(cell_value) == wanted:
            return row_idx

    return None


def append_record(workbook: Workbook, sheet_name: str, values: Sequence[object]) -> None:
    """Append serialized values to ``sheet_name``."""

    sheet = workbook[sheet_name]
    sheet.append(list(values))


def update_record(
    workbook: Workbook,
    sheet_name: str,
    key_column: str,
    key_value: object,
    *,
    field_values: Mapping[str, Any],
) -> None:
    """Update selected columns for an existing row.

    Only the specified fields are modified, leaving other columns untouched.

    Raises:
        KeyError: If the row or any referenced column cannot be found.
    """

    row_index = locate_row(workbook, sheet_name, key_column, key_value)
    if row_index is None:
        raise KeyError(f"{sheet_name} row not found: {key_value}")

    sheet = workbook[sheet_name]
    header_map = _header_map(sheet)

    for field, value in field_values.items():
        if field not in header_map:
            raise KeyError(f"Unknown {sheet_name} field: {field}")
        sheet.cell(row=row_index, column=header_map[field], value=value)


def delete_records(workbook: Workbook, sheet_name: str, key_column: str, key_values: Iterable[object]) -> int:
    """Delete every row whose ``key_column`` matches one of ``key_values``.

    Rows are removed bottom-up so earlier indices stay valid.

    Returns:
        int: Number of deleted rows.
    """

    sheet = workbook[sheet_name]
    header_map = _header_map(sheet)
    if key_column not in header_map:
        raise KeyError(f"Unknown column: {key_column}")
    key_col_index = header_map[key_column]
    wanted = {str(value) for value in key_values}

    matches = [
        row_idx
        for row_idx, row in enumerate(sheet.iter_rows(min_row=2, values_only=True), start=2)
        if row[key_col_index - 1] is not None and str(row[key_col_index - 1]) in wanted
    ]
    for row_idx in reversed(matches):
        sheet.delete_rows(row_idx)
    return len(matches)


def next_identifier(workbook: Workbook, sheet_name: str, key_column: str) -> int:
    """Return the next integer identifier for ``sheet_name`` (max + 1, starting at 1)."""

    sheet = workbook[sheet_name]
    header_map = _header_map(sheet)
    if key_column not in header_map:
        raise KeyError(f"Unknown column: {key_column}")
    key_col_index = header_map[key_column]

    highest = 0
    for row in sheet.iter_rows(min_row=2, values_only=True):
        value = row[key_col_index - 1]
        if value is not None:
            highest = max(highest, int(value))
    return highest + 1


# ---------------------------------------------------------------------------
# Entity helpers
# ---------------------------------------------------------------------------


def iter_products(workbook: Workbook) -> Iterable[ProductRow]:
    """Iterate over product records stored on the ``Products`` worksheet."""

    return iter_records(workbook, PRODUCTS_SHEET, deserialize_product)


def iter_suppliers(workbook: Workbook) -> Iterable[SupplierRow]:
    return iter_records(workbook, SUPPLIERS_SHEET, deserialize_supplier)


def iter_customers(workbook: Workbook) -> Iterable[CustomerRow]:
    return iter_records(workbook, CUSTOMERS_SHEET, deserialize_customer)


def iter_employees(workbook: Workbook) -> Iterable[EmployeeRow]:
    return iter_records(workbook, EMPLOYEES_SHEET, deserialize_employee)


def iter_sales(workbook: Workbook) -> Iterable[SaleRow]:
    """Stream sale headers from the ``Sales`` worksheet."""

    return iter_records(workbook, SALES_SHEET, deserialize_sale)


def iter_sale_items(workbook: Workbook) -> Iterable[SaleItemRow]:
    """Stream sale lines from the ``SaleItems`` worksheet."""

    return iter_records(workbook, SALE_ITEMS_SHEET, deserialize_sale_item)


def iter_purchase_orders(workbook: Workbook) -> Iterable[PurchaseOrderRow]:
    return iter_records(workbook, PURCHASE_ORDERS_SHEET, deserialize_purchase_order)


def iter_purchase_order_items(workbook: Workbook) -> Iterable[PurchaseOrderItemRow]:
    return iter_records(workbook, PURCHASE_ORDER_ITEMS_SHEET, deserialize_purchase_order_item)


def iter_purchase_order_events(workbook: Workbook) -> Iterable[PurchaseOrderEventRow]:
    return iter_records(workbook, PURCHASE_ORDER_EVENTS_SHEET, deserialize_purchase_order_event)


def iter_sale_returns(workbook: Workbook) -> Iterable[SaleReturnRow]:
    """Stream return headers from the ``SaleReturns`` worksheet."""

    return iter_records(workbook, SALE_RETURNS_SHEET, deserialize_sale_return)


def iter_sale_return_items(workbook: Workbook) -> Iterable[SaleReturnItemRow]:
    return iter_records(workbook, SALE_RETURN_ITEMS_SHEET, deserialize_sale_return_item)


def append_product(workbook: Workbook, record: ProductRow) -> None:
    """Append a product record to the ``Products`` worksheet."""

    append_record(workbook, PRODUCTS_SHEET, serialize_product(record))


def append_supplier(workbook: Workbook, record: SupplierRow) -> None:
    append_record(workbook, SUPPLIERS_SHEET, [record.supplier_id, record.supplier_name, record.is_active])


def append_customer(workbook: Workbook, record: CustomerRow) -> None:
    append_record(workbook, CUSTOMERS_SHEET, [record.customer_id, record.customer_name, record.is_active])


def append_employee(workbook: Workbook, record: EmployeeRow) -> None:
    append_record(workbook, EMPLOYEES_SHEET, [record.employee_id, record.employee_name, record.is_active])


def append_sale(workbook: Workbook, record: SaleRow) -> None:
    """Append a sale header to the ``Sales`` worksheet."""

    append_record(workbook, SALES_SHEET, serialize_sale(record))


def append_sale_item(workbook: Workbook, record: SaleItemRow) -> None:
    append_record(workbook, SALE_ITEMS_SHEET, serialize_sale_item(record))


def append_purchase_order(workbook: Workbook, record: PurchaseOrderRow) -> None:
    append_record(workbook, PURCHASE_ORDERS_SHEET, serialize_purchase_order(record))


def append_purchase_order_item(workbook: Workbook, record: PurchaseOrderItemRow) -> None:
    append_record(workbook, PURCHASE_ORDER_ITEMS_SHEET, serialize_purchase_order_item(record))


def append_purchase_order_event(workbook: Workbook, record: PurchaseOrderEventRow) -> None:
    append_record(
        workbook,
        PURCHASE_ORDER_EVENTS_SHEET,
        [record.event_id, record.purchase_order_id, record.timestamp_iso, record.status, record.description],
    )


def append_sale_return(workbook: Workbook, record: SaleReturnRow) -> None:
    append_record(workbook, SALE_RETURNS_SHEET, serialize_sale_return(record))


def append_sale_return_item(workbook: Workbook, record: SaleReturnItemRow) -> None:
    append_record(workbook, SALE_RETURN_ITEMS_SHEET, serialize_sale_return_item(record))


def update_product(workbook: Workbook, product_id: str, *, field_values: dict[str, Any]) -> None:
    """Update selected columns for an existing product.

    Raises:
        KeyError: If the product or any referenced column cannot be found.
    """

    try:
        update_record(workbook, PRODUCTS_SHEET, "ProductID", product_id, field_values=field_values)
    except KeyError as exc:
        if locate_row(workbook, PRODUCTS_SHEET, "ProductID", product_id) is None:
            raise KeyError(f"Product not found: {product_id}") from exc
        raise


def set_product_stock(workbook: Workbook, product_id: str, stock: int) -> None:
    """Overwrite the ``Stock`` cell of a product."""

    update_product(workbook, product_id, field_values={"Stock": stock})


def replace_sale(workbook: Workbook, record: SaleRow) -> None:
    """Overwrite every column of an existing sale header."""

    columns = SHEET_COLUMNS[SALES_SHEET]
    update_record(
        workbook,
        SALES_SHEET,
        "SaleID",
        record.sale_id,
        field_values=dict(zip(columns, serialize_sale(record))),
    )


def replace_purchase_order(workbook: Workbook, record: PurchaseOrderRow) -> None:
    """Overwrite every column of an existing purchase order header."""

    columns = SHEET_COLUMNS[PURCHASE_ORDERS_SHEET]
    update_record(
        workbook,
        PURCHASE_ORDERS_SHEET,
        "PurchaseOrderID",
        record.purchase_order_id,
        field_values=dict(zip(columns, serialize_purchase_order(record))),
    )


def replace_sale_return(workbook: Workbook, record: SaleReturnRow) -> None:
    """Overwrite every column of an existing return header."""

    columns = SHEET_COLUMNS[SALE_RETURNS_SHEET]
    update_record(
        workbook,
        SALE_RETURNS_SHEET,
        "SaleReturnID",
        record.sale_return_id,
        field_values=dict(zip(columns, serialize_sale_return(record))),
    )


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------


def serialize_product(record: ProductRow) -> list[object]:
    """Convert a product dataclass into the worksheet column ordering.

    Returns:
        list[object]: Values arranged as ``[ProductID, ProductName, CostPrice,
        SalePrice, Stock, IsActive]``.
    """

    return [
        record.product_id,
        record.product_name,
        record.cost_price,
        record.sale_price,
        record.stock,
        record.is_active,
    ]


def serialize_sale(record: SaleRow) -> list[object]:
    return [
        record.sale_id,
        record.customer_id,
        record.employee_id,
        record.payment_method,
        record.status,
        record.total_amount,
        record.tax_amount,
        record.discount_amount,
        record.final_amount,
        record.notes,
        record.created_at,
        record.updated_at,
    ]


def serialize_sale_item(record: SaleItemRow) -> list[object]:
    return [
        record.sale_item_id,
        record.sale_id,
        record.product_id,
        record.quantity,
        record.unit_price,
        record.subtotal,
    ]


def serialize_purchase_order(record: PurchaseOrderRow) -> list[object]:
    return [
        record.purchase_order_id,
        record.supplier_id,
        record.status,
        record.order_date,
        record.delivery_date,
        record.total_amount,
        record.notes,
        record.created_at,
        record.updated_at,
    ]


def serialize_purchase_order_item(record: PurchaseOrderItemRow) -> list[object]:
    return [
        record.purchase_order_item_id,
        record.purchase_order_id,
        record.product_id,
        record.quantity,
        record.unit_price,
        record.total_price,
        record.received_quantity,
    ]


def serialize_sale_return(record: SaleReturnRow) -> list[object]:
    return [
        record.sale_return_id,
        record.original_sale_id,
        record.customer_id,
        record.employee_id,
        record.total_return_amount,
        record.reason,
        record.created_at,
        record.updated_at,
    ]


def serialize_sale_return_item(record: SaleReturnItemRow) -> list[object]:
    return [
        record.sale_return_item_id,
        record.sale_return_id,
        record.product_id,
        record.quantity,
        record.unit_price,
        record.subtotal,
    ]


def _to_decimal(raw: object, default: str = "0.00") -> Decimal:
    return Decimal(str(raw)) if raw is not None else Decimal(default)


def _to_int(raw: object) -> int:
    return int(raw) if raw is not None else 0


def _to_optional_str(raw: object) -> Optional[str]:
    return str(raw) if raw is not None else None


def deserialize_product(raw_row: Sequence[object]) -> ProductRow:
    """Convert a raw worksheet row into a strongly typed product record.

    Prices become :class:`~decimal.Decimal` instances, stock an ``int``, and
    the id/name fields are coerced to ``str`` to avoid surprises caused by
    Excel automatically interpreting numbers.
    """

    product_id, product_name, cost_raw, sale_raw, stock_raw, is_active = raw_row[:6]
    return ProductRow(
        product_id=str(product_id),
        product_name=str(product_name),
        cost_price=_to_decimal(cost_raw),
        sale_price=_to_decimal(sale_raw),
        stock=_to_int(stock_raw),
        is_active=bool(is_active),
    )


def deserialize_supplier(raw_row: Sequence[object]) -> SupplierRow:
    supplier_id, supplier_name, is_active = raw_row[:3]
    return SupplierRow(supplier_id=str(supplier_id), supplier_name=str(supplier_name), is_active=bool(is_active))


def deserialize_customer(raw_row: Sequence[object]) -> CustomerRow:
    customer_id, customer_name, is_active = raw_row[:3]
    return CustomerRow(customer_id=str(customer_id), customer_name=str(customer_name), is_active=bool(is_active))


def deserialize_employee(raw_row: Sequence[object]) -> EmployeeRow:
    employee_id, employee_name, is_active = raw_row[:3]
    return EmployeeRow(employee_id=str(employee_id), employee_name=str(employee_name), is_active=bool(is_active))


def deserialize_sale(raw_row: Sequence[object]) -> SaleRow:
    """Convert a raw ``Sales`` row into a :class:`SaleRow`."""

    (
        sale_id,
        customer_id,
        employee_id,
        payment_method,
        status,
        total_raw,
        tax_raw,
        discount_raw,
        final_raw,
        notes,
        created_at,
        updated_at,
    ) = raw_row[:12]
    return SaleRow(
        sale_id=int(sale_id),
        customer_id=str(customer_id),
        employee_id=str(employee_id),
        payment_method=str(payment_method),
        status=str(status),
        total_amount=_to_decimal(total_raw),
        tax_amount=_to_decimal(tax_raw),
        discount_amount=_to_decimal(discount_raw),
        final_amount=_to_decimal(final_raw),
        notes=_to_optional_str(notes),
        created_at=str(created_at) if created_at is not None else "",
        updated_at=str(updated_at) if updated_at is not None else "",
    )


def deserialize_sale_item(raw_row: Sequence[object]) -> SaleItemRow:
    sale_item_id, sale_id, product_id, quantity, unit_raw, subtotal_raw = raw_row[:6]
    return SaleItemRow(
        sale_item_id=int(sale_item_id),
        sale_id=int(sale_id),
        product_id=str(product_id),
        quantity=_to_int(quantity),
        unit_price=_to_decimal(unit_raw),
        subtotal=_to_decimal(subtotal_raw),
    )


def deserialize_purchase_order(raw_row: Sequence[object]) -> PurchaseOrderRow:
    (
        purchase_order_id,
        supplier_id,
        status,
        order_date,
        delivery_date,
        total_raw,
        notes,
        created_at,
        updated_at,
    ) = raw_row[:9]
    return PurchaseOrderRow(
        purchase_order_id=int(purchase_order_id),
        supplier_id=str(supplier_id),
        status=str(status),
        order_date=str(order_date) if order_date is not None else "",
        delivery_date=_to_optional_str(delivery_date),
        total_amount=_to_decimal(total_raw),
        notes=_to_optional_str(notes),
        created_at=str(created_at) if created_at is not None else "",
        updated_at=str(updated_at) if updated_at is not None else "",
    )


def deserialize_purchase_order_item(raw_row: Sequence[object]) -> PurchaseOrderItemRow:
    item_id, order_id, product_id, quantity, unit_raw, total_raw, received = raw_row[:7]
    return PurchaseOrderItemRow(
        purchase_order_item_id=int(item_id),
        purchase_order_id=int(order_id),
        product_id=str(product_id),
        quantity=_to_int(quantity),
        unit_price=_to_decimal(unit_raw),
        total_price=_to_decimal(total_raw),
        received_quantity=_to_int(received),
    )


def deserialize_purchase_order_event(raw_row: Sequence[object]) -> PurchaseOrderEventRow:
    event_id, order_id, timestamp_iso, status, description = raw_row[:5]
    return PurchaseOrderEventRow(
        event_id=int(event_id),
        purchase_order_id=int(order_id),
        timestamp_iso=str(timestamp_iso) if timestamp_iso is not None else "",
        status=str(status),
        description=_to_optional_str(description),
    )


def deserialize_sale_return(raw_row: Sequence[object]) -> SaleReturnRow:
    """Convert a raw ``SaleReturns`` row into a :class:`SaleReturnRow`."""

    return_id, sale_id, customer_id, employee_id, total_raw, reason, created_at, updated_at = raw_row[:8]
    return SaleReturnRow(
        sale_return_id=int(return_id),
        original_sale_id=int(sale_id),
        customer_id=str(customer_id),
        employee_id=str(employee_id),
        total_return_amount=_to_decimal(total_raw),
        reason=str(reason) if reason is not None else "",
        created_at=str(created_at) if created_at is not None else "",
        updated_at=str(updated_at) if updated_at is not None else "",
    )


def deserialize_sale_return_item(raw_row: Sequence[object]) -> SaleReturnItemRow:
    item_id, return_id, product_id, quantity, unit_raw, subtotal_raw = raw_row[:6]
    return SaleReturnItemRow(
        sale_return_item_id=int(item_id),
        sale_return_id=int(return_id),
        product_id=str(product_id),
        quantity=_to_int(quantity),
        unit_price=_to_decimal(unit_raw),
        subtotal=_to_decimal(subtotal_raw),
    )
