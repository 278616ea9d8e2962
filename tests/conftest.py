"""Shared pytest fixtures and utilities for seller report tests."""

from __future__ import annotations

import argparse
import json
import logging
import sys
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, Optional

import openpyxl
import pytest

# Ensure source packages are importable without installation.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"

if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from seller_report import cli, constants, core_logic, data_manager, strategies  # noqa: E402
from seller_report.setup_excel import create_input_workbook  # noqa: E402

DEFAULT_SCHEMA_VERSION = constants.EXPECTED_SCHEMA_VERSION
_CONFIG_TEMPLATE = (
    "[System]\n"
    "DataFile = {data_file}\n"
    "OutputFile = {output_file}\n"
    "SchemaVersion = {schema_version}\n\n"
    "[Strategies]\n"
    "Revenue = {revenue}\n"
    "Bonus = {bonus}\n"
)


@dataclass(frozen=True)
class ConfigBundle:
    """Container bundling together config metadata for tests."""

    directory: Path
    config_path: Path
    data_path: Path
    output_path: Path
    schema_version: str


@pytest.fixture(scope="session", autouse=True)
def _restore_sys_path() -> Iterator[None]:
    """Ensure sys.path modifications are undone after the test session."""

    original = sys.path.copy()
    try:
        yield
    finally:
        sys.path[:] = original


def make_raw_sales_data() -> Dict[str, Any]:
    """Return a small but complete raw data set in the JSON input shape."""

    return {
        "sellers": [
            {"id": "seller_1", "first_name": "Alexey", "last_name": "Petrov"},
            {"id": "seller_2", "first_name": "Ivan", "last_name": "Smirnov"},
            {"id": "seller_3", "first_name": "Maria", "last_name": "Ivanova"},
        ],
        "products": [
            {"sku": "SKU_001", "name": "Tea", "purchase_price": 10},
            {"sku": "SKU_002", "name": "Coffee", "purchase_price": 20.5},
            {"sku": "SKU_003", "name": "Cocoa", "purchase_price": 3},
        ],
        "purchase_records": [
            {
                "receipt_id": "R1",
                "seller_id": "seller_1",
                "items": [
                    {"sku": "SKU_001", "quantity": 2, "sale_price": 15, "discount": 0},
                    {"sku": "SKU_002", "quantity": 1, "sale_price": 30, "discount": 10},
                ],
            },
            {
                "receipt_id": "R2",
                "seller_id": "seller_2",
                "items": [
                    {"sku": "SKU_003", "quantity": 5, "sale_price": 4, "discount": 0},
                ],
            },
            {
                "receipt_id": "R3",
                "seller_id": "seller_1",
                "items": [
                    {"sku": "SKU_003", "quantity": 1, "sale_price": 5, "discount": 0},
                ],
            },
        ],
    }


@pytest.fixture
def raw_sales_data() -> Dict[str, Any]:
    """Provide a fresh copy of the raw sample data set."""

    return make_raw_sales_data()


@pytest.fixture
def sales_data(raw_sales_data: Dict[str, Any]) -> data_manager.SalesData:
    """Provide the sample data set parsed into dataclasses."""

    return data_manager.parse_sales_data(raw_sales_data)


@pytest.fixture
def default_options() -> core_logic.ReportOptions:
    """Return the built-in revenue and bonus strategies."""

    return core_logic.ReportOptions(
        calculate_revenue=strategies.calculate_simple_revenue,
        calculate_bonus=strategies.calculate_bonus_by_profit,
    )


@pytest.fixture
def json_data_file(tmp_path: Path, raw_sales_data: Dict[str, Any]) -> Path:
    """Write the sample data set to a JSON file."""

    path = tmp_path / "sales_data.json"
    path.write_text(json.dumps(raw_sales_data), encoding="utf-8")
    return path


def fill_input_workbook(path: Path, raw: Dict[str, Any]) -> Path:
    """Append the rows of ``raw`` to an input workbook created on ``path``."""

    create_input_workbook(path, overwrite=True)
    workbook = openpyxl.load_workbook(path)
    for seller in raw["sellers"]:
        workbook[data_manager.SELLERS_SHEET].append(
            [seller["id"], seller["first_name"], seller["last_name"]]
        )
    for product in raw["products"]:
        workbook[data_manager.PRODUCTS_SHEET].append(
            [product["sku"], product.get("name"), product["purchase_price"]]
        )
    for record in raw["purchase_records"]:
        workbook[data_manager.PURCHASE_RECORDS_SHEET].append([record["receipt_id"], record["seller_id"]])
        for item in record["items"]:
            workbook[data_manager.LINE_ITEMS_SHEET].append(
                [record["receipt_id"], item["sku"], item["quantity"], item["sale_price"], item["discount"]]
            )
    workbook.save(path)
    return path


@pytest.fixture
def workbook_factory(tmp_path: Path) -> Callable[..., Path]:
    """Factory that creates a populated input workbook in a temp folder."""

    def _create_workbook(
        raw: Dict[str, Any] | None = None,
        *,
        filename: str = "sales_data.xlsx",
    ) -> Path:
        base_dir = tmp_path / f"workbook_{uuid.uuid4().hex}"
        base_dir.mkdir(parents=True, exist_ok=True)
        return fill_input_workbook(base_dir / filename, raw if raw is not None else make_raw_sales_data())

    return _create_workbook


@pytest.fixture
def config_factory(tmp_path: Path, workbook_factory: Callable[..., Path]) -> Callable[..., ConfigBundle]:
    """Provide a callable that creates config/workbook bundles on demand."""

    def _create_config(
        *,
        make_relative: bool = False,
        schema_version: str = DEFAULT_SCHEMA_VERSION,
        revenue: str = constants.RevenueStrategyName.SIMPLE.value,
        bonus: str = constants.BonusStrategyName.BY_PROFIT.value,
        log_dir: Optional[str] = None,
    ) -> ConfigBundle:
        data_path = workbook_factory()
        bundle_dir = data_path.parent
        output_path = bundle_dir / "seller_report.xlsx"
        config_path = bundle_dir / "config.ini"
        text = _CONFIG_TEMPLATE.format(
            data_file=data_path.name if make_relative else str(data_path),
            output_file=output_path.name if make_relative else str(output_path),
            schema_version=schema_version,
            revenue=revenue,
            bonus=bonus,
        )
        if log_dir is not None:
            text = text.replace("[Strategies]", f"LogDir = {log_dir}\n\n[Strategies]")
        config_path.write_text(text, encoding="utf-8")
        return ConfigBundle(
            directory=bundle_dir,
            config_path=config_path,
            data_path=data_path,
            output_path=output_path,
            schema_version=schema_version,
        )

    return _create_config


@pytest.fixture
def config_file(config_factory: Callable[..., ConfigBundle]) -> Path:
    """Convenience fixture returning only the config path."""

    return config_factory().config_path


@pytest.fixture
def runtime_context(config_file: Path) -> core_logic.RuntimeContext:
    """Load the runtime context for tests through the public API."""

    context = core_logic.load_runtime_context(config_file)
    core_logic.ensure_schema_version(context)
    return context


# ---------------------------------------------------------------------------
# CLI layer fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_parser() -> argparse.ArgumentParser:
    """Return a fresh CLI parser instance for tests."""

    return argparse.ArgumentParser(prog="seller-report", description="Seller report CLI")


@pytest.fixture
def subparsers_action(
    cli_parser: argparse.ArgumentParser,
) -> argparse._SubParsersAction[argparse.ArgumentParser]:
    """Return the subparser action used to register commands."""

    return cli_parser.add_subparsers(dest="command")


@pytest.fixture
def command_spec_iterable() -> list[cli.CommandSpec]:
    """Provide a list of command specs for indexing tests."""

    def _make_spec(name: str) -> cli.CommandSpec:
        return cli.CommandSpec(
            name,
            f"{name} help",
            lambda subparsers: subparsers.add_parser(name),
            lambda *_: 0,
        )

    return [_make_spec("alpha"), _make_spec("beta"), _make_spec("gamma")]


@pytest.fixture
def restore_log_handlers() -> Iterator[None]:
    """Put the package logger's original handlers back after the test."""

    logger = logging.getLogger("seller_report")
    original = list(logger.handlers)
    try:
        yield
    finally:
        for handler in list(logger.handlers):
            if handler not in original:
                logger.removeHandler(handler)
                handler.close()
        for handler in original:
            if handler not in logger.handlers:
                logger.addHandler(handler)
