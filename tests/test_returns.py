"""Tests for customer returns and the stock they put back."""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal

import pytest

from stationery_erp import core_logic, data_manager, inventory, returns, sales
from stationery_erp.constants import SaleStatus
from stationery_erp.returns import SaleReturnCommand, SaleReturnItemCommand
from stationery_erp.sales import SaleCommand, SaleItemCommand

CUSTOMER = "C-WALKIN"
EMPLOYEE = "E-DEFAULT"
OPENING_STOCK = {"PEN": 10, "NB": 5}


def _sale(context, pens: int = 4, notebooks: int = 2, **overrides) -> sales.Sale:
    items = []
    if pens:
        items.append(SaleItemCommand("PEN", pens, Decimal("2.00")))
    if notebooks:
        items.append(SaleItemCommand("NB", notebooks, Decimal("15.00")))
    total = sum((line.unit_price * line.quantity for line in items), Decimal("0.00"))
    values = dict(
        customer_id=CUSTOMER,
        employee_id=EMPLOYEE,
        items=items,
        total_amount=total,
        tax_amount=Decimal("0.00"),
        final_amount=total,
    )
    values.update(overrides)
    return sales.create_sale(context, SaleCommand(**values))


def _return(sale_id: int, *items: SaleReturnItemCommand, **overrides) -> SaleReturnCommand:
    values = dict(
        original_sale_id=sale_id,
        customer_id=CUSTOMER,
        employee_id=EMPLOYEE,
        reason="damaged packaging",
        items=list(items),
    )
    values.update(overrides)
    return SaleReturnCommand(**values)


def _pen(quantity: int, **overrides) -> SaleReturnItemCommand:
    return SaleReturnItemCommand("PEN", quantity, **overrides)


def _notebook(quantity: int, **overrides) -> SaleReturnItemCommand:
    return SaleReturnItemCommand("NB", quantity, **overrides)


def _net_out(context) -> dict[str, int]:
    totals: dict[str, int] = {}
    for item in data_manager.iter_sale_items(context.workbook):
        totals[item.product_id] = totals.get(item.product_id, 0) + item.quantity
    for item in data_manager.iter_sale_return_items(context.workbook):
        totals[item.product_id] = totals.get(item.product_id, 0) - item.quantity
    return totals


def _assert_stock_conserved(context) -> None:
    """Stock plus sold minus returned quantities equals the opening stock."""

    out = _net_out(context)
    for product_id, opening in OPENING_STOCK.items():
        assert inventory.get_stock(context, product_id) + out.get(product_id, 0) == opening


def _status(context, sale_id: int) -> str:
    return sales.get_sale(context, sale_id).header.status


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------


def test_create_return_puts_quantity_back(stocked_context):
    sale = _sale(stocked_context)
    assert inventory.stock_report(stocked_context) == {"PEN": 6, "NB": 3}

    entry = returns.create_return(stocked_context, _return(sale.sale_id, _pen(1)))

    assert inventory.stock_report(stocked_context) == {"PEN": 7, "NB": 3}
    assert entry.items[0].unit_price == Decimal("2.00")
    assert entry.items[0].subtotal == Decimal("2.00")
    assert entry.header.total_return_amount == Decimal("2.00")
    assert returns.get_return(stocked_context, entry.return_id) == entry
    assert _status(stocked_context, sale.sale_id) == SaleStatus.PARTIALLY_RETURNED.value


def test_create_return_keeps_explicit_prices(stocked_context):
    moment = datetime(2026, 4, 2, 12, 0, tzinfo=UTC)
    sale = _sale(stocked_context)

    entry = returns.create_return(
        stocked_context,
        _return(
            sale.sale_id,
            _notebook(1, unit_price=Decimal("12.00"), subtotal=Decimal("10.00")),
            _pen(2, unit_price=Decimal("1.50")),
            timestamp=moment,
        ),
    )

    assert [item.subtotal for item in entry.items] == [Decimal("10.00"), Decimal("3.00")]
    assert entry.header.total_return_amount == Decimal("13.00")
    assert entry.header.created_at == entry.header.updated_at == moment.isoformat()


def test_return_cannot_exceed_sold_quantity(stocked_context):
    sale = _sale(stocked_context)

    with pytest.raises(core_logic.ValidationError) as excinfo:
        returns.create_return(stocked_context, _return(sale.sale_id, _pen(5)))

    assert excinfo.value.field == "quantity"
    assert inventory.stock_report(stocked_context) == {"PEN": 6, "NB": 3}
    assert returns.list_returns(stocked_context) == []


def test_return_cap_counts_earlier_returns(stocked_context):
    """Sold 4, returned 3, so only one more can come back."""

    sale = _sale(stocked_context)
    returns.create_return(stocked_context, _return(sale.sale_id, _pen(3)))

    with pytest.raises(core_logic.ValidationError):
        returns.create_return(stocked_context, _return(sale.sale_id, _pen(2)))
    with pytest.raises(core_logic.ValidationError):
        returns.create_return(stocked_context, _return(sale.sale_id, _pen(1), _pen(1)))

    returns.create_return(stocked_context, _return(sale.sale_id, _pen(1)))
    assert inventory.get_stock(stocked_context, "PEN") == 10


def test_return_rejects_product_not_on_the_sale(stocked_context):
    sale = _sale(stocked_context, notebooks=0)

    with pytest.raises(core_logic.ValidationError) as excinfo:
        returns.create_return(stocked_context, _return(sale.sale_id, _notebook(1)))

    assert excinfo.value.field == "items"
    assert inventory.get_stock(stocked_context, "NB") == 5


def test_return_customer_must_match_the_sale(stocked_context):
    core_logic.add_customer(stocked_context, customer_id="C-1", customer_name="School Office")
    sale = _sale(stocked_context)

    with pytest.raises(core_logic.ValidationError) as excinfo:
        returns.create_return(stocked_context, _return(sale.sale_id, _pen(1), customer_id="C-1"))

    assert excinfo.value.field == "customer_id"


@pytest.mark.parametrize(
    "overrides",
    [
        {"customer_id": "C-NOBODY"},
        {"employee_id": "E-NOBODY"},
    ],
)
def test_return_unknown_reference_raises_not_found(stocked_context, overrides):
    sale = _sale(stocked_context)

    with pytest.raises(core_logic.NotFound):
        returns.create_return(stocked_context, _return(sale.sale_id, _pen(1), **overrides))

    assert inventory.get_stock(stocked_context, "PEN") == 6


def test_return_against_unknown_sale_raises(stocked_context):
    with pytest.raises(core_logic.NotFound):
        returns.create_return(stocked_context, _return(99, _pen(1)))


@pytest.mark.parametrize(
    "overrides, field",
    [
        ({"reason": "   "}, "reason"),
        ({"reason": "x" * (returns.REASON_MAX_LENGTH + 1)}, "reason"),
        ({"items": []}, "items"),
        ({"items": [SaleReturnItemCommand("PEN", 0)]}, "quantity"),
        ({"items": [SaleReturnItemCommand("PEN", 1, unit_price=Decimal("-1.00"))]}, "unit_price"),
    ],
)
def test_return_rejects_malformed_input(stocked_context, overrides, field):
    sale = _sale(stocked_context)

    with pytest.raises(core_logic.ValidationError) as excinfo:
        returns.create_return(stocked_context, _return(sale.sale_id, _pen(1), **overrides))

    assert excinfo.value.field == field
    assert inventory.get_stock(stocked_context, "PEN") == 6


def test_cancelled_sale_cannot_take_returns(stocked_context):
    sale = _sale(stocked_context, status=SaleStatus.CANCELLED)

    with pytest.raises(core_logic.ValidationError) as excinfo:
        returns.create_return(stocked_context, _return(sale.sale_id, _pen(1)))

    assert excinfo.value.field == "original_sale_id"


# ---------------------------------------------------------------------------
# Sale status
# ---------------------------------------------------------------------------


def test_full_return_marks_sale_returned_and_delete_restores_completed(stocked_context):
    sale = _sale(stocked_context)

    first = returns.create_return(stocked_context, _return(sale.sale_id, _pen(4)))
    assert _status(stocked_context, sale.sale_id) == SaleStatus.PARTIALLY_RETURNED.value

    second = returns.create_return(stocked_context, _return(sale.sale_id, _notebook(2)))
    assert _status(stocked_context, sale.sale_id) == SaleStatus.RETURNED.value
    assert inventory.stock_report(stocked_context) == OPENING_STOCK

    returns.delete_return(stocked_context, second.return_id)
    assert _status(stocked_context, sale.sale_id) == SaleStatus.PARTIALLY_RETURNED.value

    returns.delete_return(stocked_context, first.return_id)
    assert _status(stocked_context, sale.sale_id) == SaleStatus.COMPLETED.value
    assert inventory.stock_report(stocked_context) == {"PEN": 6, "NB": 3}


# ---------------------------------------------------------------------------
# Update
# ---------------------------------------------------------------------------


def test_update_return_applies_new_minus_old(stocked_context):
    sale = _sale(stocked_context)
    entry = returns.create_return(stocked_context, _return(sale.sale_id, _pen(1)))

    updated = returns.update_return(stocked_context, entry.return_id, _return(sale.sale_id, _pen(3), _notebook(1)))
    assert inventory.stock_report(stocked_context) == {"PEN": 9, "NB": 4}
    assert updated.header.total_return_amount == Decimal("21.00")

    returns.update_return(stocked_context, entry.return_id, _return(sale.sale_id, _notebook(2), reason="wrong size"))
    assert inventory.stock_report(stocked_context) == {"PEN": 6, "NB": 5}
    stored = returns.get_return(stocked_context, entry.return_id)
    assert stored.header.reason == "wrong size"
    assert stored.quantities_by_product() == {"NB": 2}
    _assert_stock_conserved(stocked_context)


def test_update_return_cap_ignores_its_own_previous_quantity(stocked_context):
    sale = _sale(stocked_context)
    entry = returns.create_return(stocked_context, _return(sale.sale_id, _pen(3)))

    returns.update_return(stocked_context, entry.return_id, _return(sale.sale_id, _pen(4)))

    assert inventory.get_stock(stocked_context, "PEN") == 10
    with pytest.raises(core_logic.ValidationError):
        returns.update_return(stocked_context, entry.return_id, _return(sale.sale_id, _pen(5)))


def test_update_return_can_change_employee_only(stocked_context):
    core_logic.add_customer(stocked_context, customer_id="C-1", customer_name="School Office")
    core_logic.add_employee(stocked_context, employee_id="E-2", employee_name="Bea")
    sale = _sale(stocked_context)
    other = _sale(stocked_context, pens=1, notebooks=0)
    entry = returns.create_return(stocked_context, _return(sale.sale_id, _pen(1)))

    with pytest.raises(core_logic.ValidationError) as excinfo:
        returns.update_return(stocked_context, entry.return_id, _return(other.sale_id, _pen(1)))
    assert excinfo.value.field == "original_sale_id"
    with pytest.raises(core_logic.ValidationError) as excinfo:
        returns.update_return(stocked_context, entry.return_id, _return(sale.sale_id, _pen(1), customer_id="C-1"))
    assert excinfo.value.field == "customer_id"

    updated = returns.update_return(stocked_context, entry.return_id, _return(sale.sale_id, _pen(1), employee_id="E-2"))
    assert updated.header.employee_id == "E-2"


def test_update_return_shortage_leaves_everything_unchanged(stocked_context):
    """Lowering a return whose goods were sold again cannot take stock below zero."""

    sale = _sale(stocked_context, pens=10, notebooks=0)
    entry = returns.create_return(stocked_context, _return(sale.sale_id, _pen(3)))
    _sale(stocked_context, pens=3, notebooks=0)
    assert inventory.get_stock(stocked_context, "PEN") == 0

    with pytest.raises(core_logic.InsufficientStock):
        returns.update_return(stocked_context, entry.return_id, _return(sale.sale_id, _pen(1)))

    assert inventory.get_stock(stocked_context, "PEN") == 0
    assert returns.get_return(stocked_context, entry.return_id).quantities_by_product() == {"PEN": 3}


def test_update_unknown_return_raises(stocked_context):
    sale = _sale(stocked_context)
    with pytest.raises(core_logic.NotFound):
        returns.update_return(stocked_context, 5, _return(sale.sale_id, _pen(1)))


# ---------------------------------------------------------------------------
# Delete
# ---------------------------------------------------------------------------


def test_delete_return_takes_quantity_back_out(stocked_context):
    sale = _sale(stocked_context)
    entry = returns.create_return(stocked_context, _return(sale.sale_id, _pen(2), _notebook(1)))

    returns.delete_return(stocked_context, entry.return_id)

    assert inventory.stock_report(stocked_context) == {"PEN": 6, "NB": 3}
    assert returns.list_returns(stocked_context) == []
    assert list(data_manager.iter_sale_return_items(stocked_context.workbook)) == []


def test_delete_return_of_resold_goods_fails_without_changes(stocked_context):
    sale = _sale(stocked_context, pens=10, notebooks=0)
    entry = returns.create_return(stocked_context, _return(sale.sale_id, _pen(3)))
    _sale(stocked_context, pens=3, notebooks=0)

    with pytest.raises(core_logic.InsufficientStock):
        returns.delete_return(stocked_context, entry.return_id)

    assert inventory.get_stock(stocked_context, "PEN") == 0
    assert [item.return_id for item in returns.list_returns(stocked_context)] == [entry.return_id]
    assert _status(stocked_context, sale.sale_id) == SaleStatus.PARTIALLY_RETURNED.value


def test_delete_all_returns_by_id_is_all_or_nothing(stocked_context):
    sale = _sale(stocked_context)
    first = returns.create_return(stocked_context, _return(sale.sale_id, _pen(1)))
    second = returns.create_return(stocked_context, _return(sale.sale_id, _notebook(1)))

    with pytest.raises(core_logic.NotFound):
        returns.delete_all_returns_by_id(stocked_context, [first.return_id, 99, second.return_id])

    assert len(returns.list_returns(stocked_context)) == 2
    assert inventory.stock_report(stocked_context) == {"PEN": 7, "NB": 4}

    returns.delete_all_returns_by_id(stocked_context, [first.return_id, second.return_id, first.return_id])

    assert returns.list_returns(stocked_context) == []
    assert inventory.stock_report(stocked_context) == {"PEN": 6, "NB": 3}
    assert _status(stocked_context, sale.sale_id) == SaleStatus.COMPLETED.value


def test_delete_unknown_return_raises(stocked_context):
    with pytest.raises(core_logic.NotFound):
        returns.delete_return(stocked_context, 3)


# ---------------------------------------------------------------------------
# Interaction with sales
# ---------------------------------------------------------------------------


def test_sale_with_returns_cannot_be_edited_or_deleted(stocked_context):
    sale = _sale(stocked_context)
    entry = returns.create_return(stocked_context, _return(sale.sale_id, _pen(1)))
    replacement = SaleCommand(
        customer_id=CUSTOMER,
        employee_id=EMPLOYEE,
        items=[SaleItemCommand("PEN", 1, Decimal("2.00"))],
        total_amount=Decimal("2.00"),
        tax_amount=Decimal("0.00"),
        final_amount=Decimal("2.00"),
    )

    with pytest.raises(core_logic.ValidationError):
        sales.update_sale(stocked_context, sale.sale_id, replacement)
    with pytest.raises(core_logic.ValidationError):
        sales.delete_sale(stocked_context, sale.sale_id)
    with pytest.raises(core_logic.ValidationError):
        sales.delete_all_by_id(stocked_context, [sale.sale_id])
    _assert_stock_conserved(stocked_context)

    returns.delete_return(stocked_context, entry.return_id)
    sales.delete_sale(stocked_context, sale.sale_id)
    assert inventory.stock_report(stocked_context) == OPENING_STOCK


def test_stock_is_conserved_across_sales_and_returns(stocked_context):
    a = _sale(stocked_context, pens=5, notebooks=1)
    _assert_stock_conserved(stocked_context)
    b = _sale(stocked_context, pens=2, notebooks=3)
    _assert_stock_conserved(stocked_context)
    ra = returns.create_return(stocked_context, _return(a.sale_id, _pen(2)))
    _assert_stock_conserved(stocked_context)
    rb = returns.create_return(stocked_context, _return(b.sale_id, _notebook(3), _pen(1)))
    _assert_stock_conserved(stocked_context)
    returns.update_return(stocked_context, ra.return_id, _return(a.sale_id, _pen(5), _notebook(1)))
    _assert_stock_conserved(stocked_context)
    _sale(stocked_context, pens=8, notebooks=0)
    _assert_stock_conserved(stocked_context)
    with pytest.raises(core_logic.InsufficientStock):
        returns.delete_return(stocked_context, ra.return_id)
    _assert_stock_conserved(stocked_context)
    returns.delete_return(stocked_context, rb.return_id)
    _assert_stock_conserved(stocked_context)
    assert inventory.stock_report(stocked_context) == {"PEN": 0, "NB": 2}


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


def test_find_by_original_sale_filters_returns(stocked_context):
    first = _sale(stocked_context)
    second = _sale(stocked_context, pens=1, notebooks=0)
    returns.create_return(stocked_context, _return(first.sale_id, _pen(1)))
    wanted = returns.create_return(stocked_context, _return(second.sale_id, _pen(1)))

    found = returns.find_by_original_sale(stocked_context, second.sale_id)

    assert [entry.return_id for entry in found] == [wanted.return_id]
    assert returns.returned_quantities(stocked_context, first.sale_id) == {"PEN": 1}


def test_find_by_original_sale_unknown_raises(stocked_context):
    with pytest.raises(core_logic.NotFound):
        returns.find_by_original_sale(stocked_context, 12)
