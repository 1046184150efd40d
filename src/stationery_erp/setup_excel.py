"""Bootstrap or upgrade the stationery ERP master workbook.

Run as ``stationery-setup`` (or ``python -m stationery_erp.setup_excel``) to
create the workbook named by ``config.ini``. With ``--upgrade`` an existing
workbook gains any sheet it is missing, which is how workbooks created before
purchase-order tracking events existed pick up the events sheet.
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import List, Mapping, Sequence

import openpyxl
from openpyxl.styles import Font
from openpyxl.workbook import Workbook

from . import data_manager, log
from .constants import SHEET_COLUMNS, SheetName

DEFAULT_EMPLOYEE_NAME = "Store Counter"
DEFAULT_CUSTOMER_NAME = "Walk-in Customer"


def _write_header(workbook: Workbook, sheet_name: str, columns: Sequence[str]) -> None:
    worksheet = workbook.create_sheet(title=sheet_name)
    bold = Font(bold=True)
    for index, name in enumerate(columns, start=1):
        cell = worksheet.cell(row=1, column=index, value=name)
        cell.font = bold


def create_master_workbook(
    destination: Path,
    *,
    default_employee_id: str,
    default_customer_id: str,
    sheet_columns: Mapping[str, Sequence[str]] = SHEET_COLUMNS,
    overwrite: bool = False,
) -> Path:
    """Write an empty master workbook to ``destination``.

    Every sheet gets a bold header row, and the employees and customers
    sheets are seeded with the configured defaults so a fresh store can
    record counter sales straight away.

    Raises:
        FileExistsError: If ``destination`` exists and ``overwrite`` is false.
    """

    destination = destination.expanduser().resolve()
    if destination.exists() and not overwrite:
        raise FileExistsError(f"Refusing to overwrite existing master workbook: {destination}")
    destination.parent.mkdir(parents=True, exist_ok=True)

    workbook = openpyxl.Workbook()
    workbook.remove(workbook.active)
    for sheet_name, columns in sheet_columns.items():
        _write_header(workbook, sheet_name, columns)

    workbook[SheetName.EMPLOYEES.value].append([default_employee_id, DEFAULT_EMPLOYEE_NAME, True])
    workbook[SheetName.CUSTOMERS.value].append([default_customer_id, DEFAULT_CUSTOMER_NAME, True])

    workbook.save(destination)
    log.info("Created master workbook '%s' with %d sheet(s)", destination, len(sheet_columns))
    return destination


def add_missing_sheets(
    data_file: Path,
    sheet_columns: Mapping[str, Sequence[str]] = SHEET_COLUMNS,
) -> List[str]:
    """Append every sheet of ``sheet_columns`` that ``data_file`` lacks.

    Existing sheets and their rows are left alone.

    Returns:
        list[str]: Names of the sheets that were added, in creation order.
    """

    workbook = data_manager.open_workbook(data_file)
    added = [name for name in sheet_columns if name not in workbook.sheetnames]
    for name in added:
        _write_header(workbook, name, sheet_columns[name])
    if added:
        data_manager.save_workbook(workbook, destination=data_file)
        log.info("Added sheet(s) %s to '%s'", ", ".join(added), data_file)
    return added


def run_from_config(config_path: Path, *, overwrite: bool = False, upgrade: bool = False) -> Path:
    """Create (or with ``upgrade`` extend) the workbook named by ``config.ini``."""

    config_path = config_path.expanduser().resolve()
    settings = data_manager.parse_settings(
        data_manager.read_config(config_path),
        base_path=config_path.parent,
    )
    if upgrade and settings.data_file.exists():
        add_missing_sheets(settings.data_file)
        return settings.data_file
    return create_master_workbook(
        settings.data_file,
        default_employee_id=settings.default_employee_id,
        default_customer_id=settings.default_customer_id,
        overwrite=overwrite,
    )


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="stationery-setup",
        description="Initialize the stationery ERP master workbook.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=Path(data_manager.CONFIG_FILE_NAME),
        help="Path to configuration file (default: config.ini)",
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--force", action="store_true", help="Replace an existing workbook.")
    mode.add_argument("--upgrade", action="store_true", help="Add missing sheets to an existing workbook.")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for the setup script."""

    args = parse_args(argv)
    try:
        output_path = run_from_config(args.config, overwrite=args.force, upgrade=args.upgrade)
    except FileExistsError as exc:
        log.error("%s (run with --force to replace it or --upgrade to extend it)", exc)
        return 1
    except (FileNotFoundError, KeyError, ValueError) as exc:
        log.error("%s", exc)
        return 1
    except OSError as exc:
        log.error("Unable to write workbook: %s", exc)
        return 1

    print(f"Master workbook ready at '{output_path}'")
    return 0


if __name__ == "__main__":  # pragma: no cover - exercised via manual runs
    sys.exit(main())
