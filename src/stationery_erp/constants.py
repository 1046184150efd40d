"""Enumerations shared across the stationery ERP modules.

Centralises domain constants so that the data access layer, the business
services, and the CLI rely on a single source of truth for workbook layout
and lifecycle states.
"""

from __future__ import annotations

from enum import Enum


# Central schema version expected by all layers when validating workbooks.
EXPECTED_SCHEMA_VERSION = "1.0.0"


class PurchaseOrderStatus(str, Enum):
    """Lifecycle states of a supplier-facing purchase order."""

    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    CONFIRMED = "CONFIRMED"
    IN_PROCESS = "IN_PROCESS"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"
    PAID = "PAID"


class PaymentMethod(str, Enum):
    """Enumerate supported payment mechanisms for sales."""

    CASH = "CASH"
    CREDIT_CARD = "CREDIT_CARD"
    DEBIT_CARD = "DEBIT_CARD"
    BANK_TRANSFER = "BANK_TRANSFER"
    MOBILE_PAYMENT = "MOBILE_PAYMENT"
    OTHER = "OTHER"


class SaleStatus(str, Enum):
    """Enumerate the recorded states of a sale."""

    COMPLETED = "COMPLETED"
    IN_PROGRESS = "IN_PROGRESS"
    CANCELLED = "CANCELLED"
    RETURNED = "RETURNED"
    PARTIALLY_RETURNED = "PARTIALLY_RETURNED"


class PricingRule(str, Enum):
    """How purchase-order item totals are priced."""

    COST_PRICE = "cost_price"
    UNIT_PRICE = "unit_price"


class SheetName(str, Enum):
    """Enumerate the workbook sheet names managed by the DAL."""

    PRODUCTS = "Products"
    SUPPLIERS = "Suppliers"
    CUSTOMERS = "Customers"
    EMPLOYEES = "Employees"
    SALES = "Sales"
    SALE_ITEMS = "SaleItems"
    PURCHASE_ORDERS = "PurchaseOrders"
    PURCHASE_ORDER_ITEMS = "PurchaseOrderItems"
    PURCHASE_ORDER_EVENTS = "PurchaseOrderEvents"
    SALE_RETURNS = "SaleReturns"
    SALE_RETURN_ITEMS = "SaleReturnItems"


# Column layout of every sheet, in worksheet order.
SHEET_COLUMNS: dict[str, tuple[str, ...]] = {
    SheetName.PRODUCTS.value: ("ProductID", "ProductName", "CostPrice", "SalePrice", "Stock", "IsActive"),
    SheetName.SUPPLIERS.value: ("SupplierID", "SupplierName", "IsActive"),
    SheetName.CUSTOMERS.value: ("CustomerID", "CustomerName", "IsActive"),
    SheetName.EMPLOYEES.value: ("EmployeeID", "EmployeeName", "IsActive"),
    SheetName.SALES.value: (
        "SaleID",
        "CustomerID",
        "EmployeeID",
        "PaymentMethod",
        "Status",
        "TotalAmount",
        "TaxAmount",
        "DiscountAmount",
        "FinalAmount",
        "Notes",
        "CreatedAt",
        "UpdatedAt",
    ),
    SheetName.SALE_ITEMS.value: ("SaleItemID", "SaleID", "ProductID", "Quantity", "UnitPrice", "Subtotal"),
    SheetName.PURCHASE_ORDERS.value: (
        "PurchaseOrderID",
        "SupplierID",
        "Status",
        "OrderDate",
        "DeliveryDate",
        "TotalAmount",
        "Notes",
        "CreatedAt",
        "UpdatedAt",
    ),
    SheetName.PURCHASE_ORDER_ITEMS.value: (
        "PurchaseOrderItemID",
        "PurchaseOrderID",
        "ProductID",
        "Quantity",
        "UnitPrice",
        "TotalPrice",
        "ReceivedQuantity",
    ),
    SheetName.PURCHASE_ORDER_EVENTS.value: ("EventID", "PurchaseOrderID", "Timestamp", "Status", "Description"),
    SheetName.SALE_RETURNS.value: (
        "SaleReturnID",
        "OriginalSaleID",
        "CustomerID",
        "EmployeeID",
        "TotalReturnAmount",
        "Reason",
        "CreatedAt",
        "UpdatedAt",
    ),
    SheetName.SALE_RETURN_ITEMS.value: (
        "SaleReturnItemID",
        "SaleReturnID",
        "ProductID",
        "Quantity",
        "UnitPrice",
        "Subtotal",
    ),
}


__all__ = [
    "EXPECTED_SCHEMA_VERSION",
    "PurchaseOrderStatus",
    "PaymentMethod",
    "SaleStatus",
    "PricingRule",
    "SheetName",
    "SHEET_COLUMNS",
]
