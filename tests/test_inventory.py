"""Tests for the inventory ledger against a real temporary workbook."""

from __future__ import annotations

from decimal import Decimal
from unittest.mock import Mock

import pytest

from stationery_erp import core_logic, data_manager, inventory


def test_get_stock_reads_product_row(stocked_context):
    assert inventory.get_stock(stocked_context, "PEN") == 10
    assert inventory.get_stock(stocked_context, "NB") == 5


def test_get_stock_unknown_product_raises(stocked_context):
    with pytest.raises(core_logic.NotFound):
        inventory.get_stock(stocked_context, "STAPLER")


def test_ensure_available_accepts_exact_stock(stocked_context):
    """Requesting exactly what is on hand is allowed."""

    inventory.ensure_available(stocked_context, "NB", 5)


def test_ensure_available_reports_shortage(stocked_context):
    with pytest.raises(core_logic.InsufficientStock) as excinfo:
        inventory.ensure_available(stocked_context, "NB", 6)
    assert (excinfo.value.requested, excinfo.value.available) == (6, 5)


def test_adjust_writes_new_stock_and_refreshes_cache(stocked_context):
    """Later reads should observe the adjusted stock level."""

    assert inventory.adjust(stocked_context, "PEN", -4) == 6
    assert inventory.get_stock(stocked_context, "PEN") == 6
    assert inventory.adjust(stocked_context, "PEN", 3) == 9

    (pen,) = [row for row in data_manager.iter_products(stocked_context.workbook) if row.product_id == "PEN"]
    assert pen.stock == 9


def test_adjust_to_zero_is_allowed(stocked_context):
    assert inventory.adjust(stocked_context, "NB", -5) == 0


def test_adjust_below_zero_leaves_stock_untouched(monkeypatch, stocked_context):
    """A rejected change must not reach the workbook."""

    set_stock = Mock(wraps=data_manager.set_product_stock)
    monkeypatch.setattr(data_manager, "set_product_stock", set_stock)

    with pytest.raises(core_logic.InsufficientStock) as excinfo:
        inventory.adjust(stocked_context, "NB", -6)

    assert excinfo.value.product_id == "NB"
    assert excinfo.value.available == 5
    set_stock.assert_not_called()
    assert inventory.get_stock(stocked_context, "NB") == 5


def test_apply_deltas_checks_every_product_before_writing(stocked_context):
    """One shortage should leave every product at its original level."""

    with pytest.raises(core_logic.InsufficientStock):
        inventory.apply_deltas(stocked_context, {"PEN": -2, "NB": -8})

    assert inventory.stock_report(stocked_context) == {"PEN": 10, "NB": 5}


def test_apply_deltas_rejects_unknown_product_before_writing(stocked_context):
    with pytest.raises(core_logic.NotFound):
        inventory.apply_deltas(stocked_context, {"PEN": 4, "GLUE": 1})

    assert inventory.get_stock(stocked_context, "PEN") == 10


def test_apply_deltas_skips_zero_changes(stocked_context):
    result = inventory.apply_deltas(stocked_context, {"PEN": -3, "NB": 0})

    assert result == {"PEN": 7}
    assert inventory.stock_report(stocked_context) == {"PEN": 7, "NB": 5}


def test_stock_report_includes_inactive_products(stocked_context):
    core_logic.add_product(
        stocked_context,
        product_id="OLD",
        product_name="Retired binder",
        cost_price=Decimal("2.00"),
        sale_price=Decimal("4.00"),
        stock=1,
        is_active=False,
    )

    assert inventory.stock_report(stocked_context) == {"PEN": 10, "NB": 5, "OLD": 1}
