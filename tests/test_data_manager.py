"""Unit tests documenting the expected behavior of the data access layer."""

from __future__ import annotations

import configparser
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from unittest.mock import Mock

import openpyxl
from openpyxl.workbook import Workbook as OpenpyxlWorkbook
import pytest

from shop_pos import constants, data_manager  # noqa: E402


SALES = constants.SheetName.SALES.value
SALE_ITEMS = constants.SheetName.SALE_ITEMS.value


def _sale(sale_id: str, *, employee_id: str = "E1", total: str = "20") -> data_manager.SaleRow:
    return data_manager.SaleRow(
        sale_id=sale_id,
        employee_id=employee_id,
        created_at_iso="2025-03-01T10:00:00+00:00",
        total_amount=Decimal(total),
    )


def _item(sale_id: str, line_no: int, product_id: str = "P1", quantity: int = 1) -> data_manager.SaleItemRow:
    return data_manager.SaleItemRow(
        sale_id=sale_id,
        line_no=line_no,
        product_id=product_id,
        quantity=quantity,
        unit_price=Decimal("10"),
    )


def test_find_config_file_respects_explicit_path(config_file: Path):
    """Supplying an explicit path should be treated as the winning answer."""

    assert data_manager.find_config_file(config_file) == config_file


def test_find_config_file_discovers_in_parent_directory(tmp_path, monkeypatch):
    """Auto-discovery should walk upward from the working directory."""

    config_file = tmp_path / "config.ini"
    config_file.write_text("[System]\nDataFile=master_workbook.xlsx")
    nested = tmp_path / "a" / "b"
    nested.mkdir(parents=True)
    monkeypatch.chdir(nested)

    assert data_manager.find_config_file() == config_file


def test_find_config_file_raises_when_missing(tmp_path, monkeypatch):
    """Absent configuration should surface a clear FileNotFoundError."""

    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(data_manager, "CONFIG_FILE_NAME", "shop-pos-test-missing.ini")
    with pytest.raises(FileNotFoundError):
        data_manager.find_config_file()


def test_read_config_loads_sections(config_file: Path):
    parser = data_manager.read_config(config_file)
    assert parser.get("System", "ShopName") == "Test Shop"


def test_read_config_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        data_manager.read_config(tmp_path / "not_there.ini")


def test_parse_settings_resolves_relative_paths(config_factory):
    """Relative DataFile entries should be anchored to the config location."""

    bundle = config_factory(make_relative=True)
    parser = configparser.ConfigParser()
    parser.read(bundle.config_path)

    settings = data_manager.parse_settings(parser, base_path=bundle.config_path.parent)

    assert settings.data_file == (bundle.config_path.parent / bundle.workbook_path.name).resolve()
    assert settings.shop_name == "Test Shop"


def test_parse_settings_uses_rate_limit_defaults_when_section_missing(config_file):
    settings = data_manager.parse_settings(data_manager.read_config(config_file), base_path=config_file.parent)

    assert settings.rate_limit == data_manager.RateLimitSettings()
    assert settings.rate_limit.window_seconds == constants.DEFAULT_RATE_LIMIT_WINDOW_SECONDS


def test_parse_settings_reads_rate_limit_section(config_factory):
    bundle = config_factory(rate_limit={"window_seconds": 60, "max_requests": 3, "max_clients": 8})
    parser = data_manager.read_config(bundle.config_path)

    settings = data_manager.parse_settings(parser, base_path=bundle.directory)

    assert settings.rate_limit == data_manager.RateLimitSettings(window_seconds=60, max_requests=3, max_clients=8)


def test_parse_settings_reads_logging_section(config_factory):
    bundle = config_factory(logging_section={"level": "debug", "file": "logs/shop.log"})

    settings = data_manager.parse_settings(data_manager.read_config(bundle.config_path), base_path=bundle.directory)

    assert settings.logging_settings == data_manager.LoggingSettings(
        level="DEBUG",
        log_file=(bundle.directory / "logs" / "shop.log").resolve(),
    )


def test_parse_settings_blank_log_file_disables_file_logging(config_factory):
    bundle = config_factory(logging_section={"level": "WARNING", "file": ""})

    settings = data_manager.parse_settings(data_manager.read_config(bundle.config_path), base_path=bundle.directory)

    assert settings.logging_settings == data_manager.LoggingSettings(level="WARNING", log_file=None)


def test_parse_settings_without_logging_section_leaves_logging_alone(config_file):
    settings = data_manager.parse_settings(data_manager.read_config(config_file), base_path=config_file.parent)
    assert settings.logging_settings is None


def test_parse_settings_rejects_unknown_log_level(config_factory):
    bundle = config_factory(logging_section={"level": "LOUD", "file": ""})

    with pytest.raises(ValueError, match="LOUD"):
        data_manager.parse_settings(data_manager.read_config(bundle.config_path), base_path=bundle.directory)


def test_parse_settings_requires_expected_sections(tmp_path):
    """Missing keys should result in a descriptive KeyError."""

    parser = configparser.ConfigParser()
    parser.read_string("[Other]\nvalue=1")
    with pytest.raises(KeyError):
        data_manager.parse_settings(parser, base_path=tmp_path)


def test_open_workbook_returns_openpyxl_instance(master_workbook_path):
    workbook = data_manager.open_workbook(master_workbook_path)
    assert isinstance(workbook, OpenpyxlWorkbook)
    assert set(workbook.sheetnames) == {member.value for member in constants.SheetName}


def test_open_workbook_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        data_manager.open_workbook(tmp_path / "missing.xlsx")


def test_save_workbook_persists_changes_without_leftover_temp_files(master_workbook_path):
    """save_workbook should replace the target and clean up after itself."""

    workbook = data_manager.open_workbook(master_workbook_path)
    data_manager.append_product(
        workbook,
        data_manager.ProductRow("P100", "Chips", Decimal("2.50"), True, sku="CH-1"),
    )
    data_manager.save_workbook(workbook, master_workbook_path)

    reloaded = data_manager.open_workbook(master_workbook_path)
    assert list(data_manager.iter_products(reloaded)) == [
        data_manager.ProductRow("P100", "Chips", Decimal("2.50"), True, sku="CH-1"),
    ]
    assert sorted(path.name for path in master_workbook_path.parent.iterdir()) == [master_workbook_path.name]


def test_save_workbook_failure_leaves_existing_file_untouched(master_workbook_path):
    """A failed serialization must not corrupt or replace the current file."""

    original_bytes = master_workbook_path.read_bytes()
    broken = Mock(name="workbook")
    broken.save.side_effect = OSError("disk full")

    with pytest.raises(OSError):
        data_manager.save_workbook(broken, master_workbook_path)

    assert master_workbook_path.read_bytes() == original_bytes
    assert sorted(path.name for path in master_workbook_path.parent.iterdir()) == [master_workbook_path.name]


def test_save_workbook_with_destination_creates_copy(master_workbook_path, tmp_path):
    workbook = data_manager.open_workbook(master_workbook_path)
    data_manager.append_employee(workbook, data_manager.EmployeeRow("E2", "Jordan", "555-0102", True))
    copy_path = tmp_path / "copies" / "copy.xlsx"
    data_manager.save_workbook(workbook, destination=copy_path)

    copy = openpyxl.load_workbook(copy_path)
    rows = list(copy[constants.SheetName.EMPLOYEES.value].iter_rows(min_row=2, values_only=True))
    assert ("E2", "Jordan", "555-0102", True) in rows


def test_refresh_workbook_returns_new_instance(master_workbook_path):
    original = data_manager.open_workbook(master_workbook_path)
    data_manager.append_employee(original, data_manager.EmployeeRow("E5", "Pat", "555-0105", True))

    refreshed = data_manager.refresh_workbook(master_workbook_path)

    assert refreshed is not original
    assert list(data_manager.iter_employees(refreshed)) == []


def test_iter_sale_records_joins_items_in_line_order(master_workbook_path):
    """Items are grouped under their sale and sorted by LineNo."""

    workbook = data_manager.open_workbook(master_workbook_path)
    data_manager.append_sale(workbook, _sale("S1"))
    data_manager.append_sale(workbook, _sale("S2", employee_id="E2"))
    data_manager.append_sale_item(workbook, _item("S1", 2, product_id="P2"))
    data_manager.append_sale_item(workbook, _item("S2", 1))
    data_manager.append_sale_item(workbook, _item("S1", 1))
    data_manager.append_sale_item(workbook, _item("ORPHAN", 1))
    data_manager.save_workbook(workbook, master_workbook_path)

    records = list(data_manager.iter_sale_records(data_manager.open_workbook(master_workbook_path)))

    assert [record.sale.sale_id for record in records] == ["S1", "S2"]
    assert [(item.line_no, item.product_id) for item in records[0].items] == [(1, "P1"), (2, "P2")]
    assert len(records[1].items) == 1


def test_iter_sale_records_keeps_sale_without_items(master_workbook_path):
    workbook = data_manager.open_workbook(master_workbook_path)
    data_manager.append_sale(workbook, _sale("S-EMPTY"))

    records = list(data_manager.iter_sale_records(workbook))

    assert records == [data_manager.SaleRecord(sale=_sale("S-EMPTY"), items=())]


def test_truncate_rows_rolls_back_appends(master_workbook_path):
    workbook = data_manager.open_workbook(master_workbook_path)
    data_manager.append_sale(workbook, _sale("S1"))
    mark = data_manager.row_count(workbook, SALES)

    data_manager.append_sale(workbook, _sale("S2"))
    data_manager.append_sale(workbook, _sale("S3"))
    data_manager.truncate_rows(workbook, SALES, mark)

    assert [sale.sale_id for sale in data_manager.iter_sales(workbook)] == ["S1"]
    assert data_manager.row_count(workbook, SALES) == mark


def test_append_after_truncate_does_not_leave_gaps(master_workbook_path):
    workbook = data_manager.open_workbook(master_workbook_path)
    data_manager.append_sale(workbook, _sale("S1"))
    data_manager.append_sale(workbook, _sale("S2"))
    data_manager.truncate_rows(workbook, SALES, 2)

    data_manager.append_sale(workbook, _sale("S3"))

    assert data_manager.locate_row(workbook, SALES, "SaleID", "S3") == 3


def test_delete_sale_cascades_to_items(master_workbook_path):
    """Deleting a sale removes its header and every one of its items."""

    workbook = data_manager.open_workbook(master_workbook_path)
    data_manager.append_sale(workbook, _sale("S1"))
    data_manager.append_sale(workbook, _sale("S2"))
    data_manager.append_sale_item(workbook, _item("S1", 1))
    data_manager.append_sale_item(workbook, _item("S2", 1))
    data_manager.append_sale_item(workbook, _item("S1", 2))

    removed = data_manager.delete_sale(workbook, "S1")

    assert removed == 2
    assert [sale.sale_id for sale in data_manager.iter_sales(workbook)] == ["S2"]
    assert [item.sale_id for item in data_manager.iter_sale_items(workbook)] == ["S2"]


def test_delete_sale_missing_raises(master_workbook_path):
    workbook = data_manager.open_workbook(master_workbook_path)
    with pytest.raises(KeyError):
        data_manager.delete_sale(workbook, "NOPE")


def test_update_product_modifies_existing_row(master_workbook_path):
    """update_product should mutate values for the matching ProductID."""

    workbook = data_manager.open_workbook(master_workbook_path)
    data_manager.append_product(workbook, data_manager.ProductRow("P500", "Old", Decimal("1.00"), True))

    data_manager.update_product(
        workbook,
        "P500",
        field_values={"Name": "New", "Price": Decimal("2.00")},
    )

    [row] = list(data_manager.iter_products(workbook))
    assert row.name == "New"
    assert row.price == Decimal("2.00")


def test_update_product_missing_raises(master_workbook_path):
    workbook = data_manager.open_workbook(master_workbook_path)
    with pytest.raises(KeyError):
        data_manager.update_product(workbook, "NOPE", field_values={"Name": "X"})


def test_update_employee_rejects_unknown_field(master_workbook_path):
    workbook = data_manager.open_workbook(master_workbook_path)
    data_manager.append_employee(workbook, data_manager.EmployeeRow("E1", "Sam", "555", True))
    with pytest.raises(KeyError):
        data_manager.update_employee(workbook, "E1", field_values={"Salary": 1})


def test_update_employee_soft_deactivates(master_workbook_path):
    workbook = data_manager.open_workbook(master_workbook_path)
    data_manager.append_employee(workbook, data_manager.EmployeeRow("E1", "Sam", "555", True))

    data_manager.update_employee(workbook, "E1", field_values={"IsActive": False})

    assert list(data_manager.iter_employees(workbook)) == [data_manager.EmployeeRow("E1", "Sam", "555", False)]


def test_locate_row_returns_none_when_missing(master_workbook_path):
    workbook = data_manager.open_workbook(master_workbook_path)
    assert data_manager.locate_row(workbook, SALES, "SaleID", "NOPE") is None


def test_locate_row_unknown_column_raises(master_workbook_path):
    workbook = data_manager.open_workbook(master_workbook_path)
    with pytest.raises(KeyError):
        data_manager.locate_row(workbook, SALES, "Nope", "x")


def test_serialize_sale_item_preserves_order():
    """serialize_sale_item should follow the column ordering defined by setup."""

    record = data_manager.SaleItemRow("S1", 1, "P1", 2, Decimal("10"), Decimal("7.5"))
    assert data_manager.serialize_sale_item(record) == ["S1", 1, "P1", 2, Decimal("10"), Decimal("7.5")]


def test_deserialize_sale_handles_blank_optionals_and_numbers():
    record = data_manager.deserialize_sale(["S1", "E1", "2025-03-01T10:00:00+00:00", 20, None, None])

    assert record.total_amount == Decimal("20")
    assert record.custom_total is None
    assert record.notes is None
    assert record.created_at == datetime.fromisoformat("2025-03-01T10:00:00+00:00")


def test_deserialize_sale_accepts_datetime_cells():
    moment = datetime(2025, 3, 1, 10, 0)
    record = data_manager.deserialize_sale(["S1", "E1", moment, 5.5, 4, "note"])

    assert record.created_at_iso == moment.isoformat()
    assert record.custom_total == Decimal("4")
    assert record.total_amount == Decimal("5.5")


def test_sale_row_created_at_is_none_for_unreadable_timestamp():
    record = data_manager.deserialize_sale(["S1", "E1", "yesterday", 5, None, None])
    assert record.created_at is None


def test_deserialize_sale_item_tolerates_short_rows():
    record = data_manager.deserialize_sale_item(["S1", 1, "P1", 3, 2.5])

    assert record.quantity == 3
    assert record.unit_price == Decimal("2.5")
    assert record.custom_price is None


def test_deserialize_product_coerces_numeric_ids():
    record = data_manager.deserialize_product([101, "Bar", 2.75, True, None, 4006381333931])

    assert record.product_id == "101"
    assert record.price == Decimal("2.75")
    assert record.barcode == "4006381333931"
