"""Data access layer for the seller report.

This module owns everything that touches the outside world. The aggregation
pipeline itself lives elsewhere and only ever sees the dataclasses declared
here.

The public API is designed around three responsibilities:

1. Configuration handling: finding and parsing ``config.ini``.
2. Input loading: turning raw JSON mappings or an Excel workbook into a
   :class:`SalesData` bundle.
3. Report output: serializing :class:`ReportRow` records into JSON-friendly
   dictionaries or a ``Report`` worksheet.
"""


from __future__ import annotations

import configparser
import json
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from openpyxl.styles import Font
from openpyxl.workbook import Workbook
import openpyxl

from . import log
from .constants import BonusStrategyName, RevenueStrategyName, SheetName


CONFIG_FILE_NAME = "config.ini"
SELLERS_SHEET = SheetName.SELLERS.value
PRODUCTS_SHEET = SheetName.PRODUCTS.value
PURCHASE_RECORDS_SHEET = SheetName.PURCHASE_RECORDS.value
LINE_ITEMS_SHEET = SheetName.LINE_ITEMS.value
REPORT_SHEET = SheetName.REPORT.value

# Header rows expected on the input workbook, in column order.
INPUT_SHEET_COLUMNS: Mapping[str, Sequence[str]] = {
    SELLERS_SHEET: ["SellerID", "FirstName", "LastName"],
    PRODUCTS_SHEET: ["SKU", "ProductName", "PurchasePrice"],
    PURCHASE_RECORDS_SHEET: ["ReceiptID", "SellerID"],
    LINE_ITEMS_SHEET: ["ReceiptID", "SKU", "Quantity", "SalePrice", "Discount"],
}

REPORT_COLUMNS: Sequence[str] = [
    "Rank",
    "SellerID",
    "Name",
    "Revenue",
    "Profit",
    "SalesCount",
    "Bonus",
    "TopProducts",
]

# Fields consumed by the built-in line item model; anything else is kept in
# ``LineItem.extra`` for custom revenue strategies.
_LINE_ITEM_FIELDS = frozenset({"sku", "quantity", "sale_price", "discount"})


@dataclass(frozen=True)
class ConfigSettings:
    """Typed representation of the ``config.ini`` settings we care about."""

    data_file: Path
    output_file: Path
    schema_version: str
    revenue_strategy: str = RevenueStrategyName.SIMPLE.value
    bonus_strategy: str = BonusStrategyName.BY_PROFIT.value
    log_dir: Optional[Path] = None


@dataclass(frozen=True)
class Product:
    """Catalog entry identified by its SKU."""

    sku: str
    purchase_price: Decimal
    name: Optional[str] = None


@dataclass(frozen=True)
class Seller:
    """Seller identity as supplied by the caller."""

    seller_id: str
    first_name: str
    last_name: str


@dataclass(frozen=True)
class LineItem:
    """One product entry inside a purchase record."""

    sku: str
    quantity: int
    sale_price: Decimal = Decimal("0")
    discount: Decimal = Decimal("0")
    extra: Mapping[str, Any] = field(default_factory=dict, compare=False)


@dataclass(frozen=True)
class PurchaseRecord:
    """A single receipt attributed to one seller."""

    seller_id: str
    items: Sequence[LineItem]
    receipt_id: Optional[str] = None


@dataclass(frozen=True)
class SalesData:
    """Input bundle consumed by :func:`core_logic.analyze_sales_data`.

    The collections are typed loosely on purpose: malformed values are kept
    as-is so that the pipeline's validator can reject them explicitly.
    """

    purchase_records: Any
    sellers: Any
    products: Any


@dataclass(frozen=True)
class TopProduct:
    """A SKU together with the quantity a seller moved."""

    sku: str
    quantity: int


@dataclass(frozen=True)
class ReportRow:
    """One line of the final seller report."""

    seller_id: str
    name: str
    revenue: Decimal
    profit: Decimal
    sales_count: int
    top_products: Sequence[TopProduct]
    bonus: Decimal


def find_config_file(explicit_path: Optional[Path] = None) -> Path:
    """Locate the configuration file that controls report generation.

    If the caller provides ``explicit_path`` the value is returned immediately
    without any verification. Otherwise the function walks up from the current
    working directory toward the filesystem root looking for a file named
    ``CONFIG_FILE_NAME``; the first match is considered authoritative.

    Args:
        explicit_path (Path | None): Optional path to use instead of performing
            the upward search.

    Returns:
        Path: The path provided by the caller or the discovered configuration
            file.

    Raises:
        FileNotFoundError: If no ``CONFIG_FILE_NAME`` exists in the current
            directory or any of its parents.
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
        configparser.ConfigParser: Parser containing the raw configuration.

    Raises:
        FileNotFoundError: If ``config_path`` does not exist after expansion and
            resolution.
    """

    config_path = config_path.expanduser().resolve()
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    parser = configparser.ConfigParser()
    parser.read(config_path, encoding="utf-8")
    return parser


def parse_settings(parser: configparser.ConfigParser, *, base_path: Optional[Path] = None) -> ConfigSettings:
    """Convert a ``ConfigParser`` into strongly typed :class:`ConfigSettings`.

    ``[System]`` entries are mandatory apart from ``LogDir``, which moves the
    package log file when set. The ``[Strategies]`` section is optional and
    falls back to the built-in strategy names. Relative paths are
    anchored to ``base_path`` (or the current working directory) and resolved.

    Args:
        parser (configparser.ConfigParser): Parsed configuration data.
        base_path (Path | None): Directory used to resolve relative paths.

    Returns:
        ConfigSettings: Immutable settings container.

    Raises:
        KeyError: If one of the required sections or options is missing.
    """

    try:
        data_file_raw = parser.get("System", "DataFile")
        output_file_raw = parser.get("System", "OutputFile")
        schema_version = parser.get("System", "SchemaVersion")
    except (configparser.NoSectionError, configparser.NoOptionError) as exc:
        raise KeyError(f"Missing required configuration entry: {exc}") from exc

    revenue_strategy = parser.get(
        "Strategies", "Revenue", fallback=RevenueStrategyName.SIMPLE.value)
    bonus_strategy = parser.get(
        "Strategies", "Bonus", fallback=BonusStrategyName.BY_PROFIT.value)
    log_dir_raw = parser.get("System", "LogDir", fallback="").strip()

    if base_path is None:
        base_path = Path.cwd()

    return ConfigSettings(
        data_file=_resolve_path(data_file_raw, base_path),
        output_file=_resolve_path(output_file_raw, base_path),
        schema_version=schema_version,
        revenue_strategy=revenue_strategy.strip(),
        bonus_strategy=bonus_strategy.strip(),
        log_dir=_resolve_path(log_dir_raw, base_path) if log_dir_raw else None,
    )


def _resolve_path(raw: str, base_path: Path) -> Path:
    path = Path(raw).expanduser()
    if not path.is_absolute():
        path = (base_path / path).resolve()
    return path


def open_workbook(data_file: Path) -> Workbook:
    """Open an Excel workbook and return a live ``openpyxl`` workbook.

    Args:
        data_file (Path): Filesystem path to the workbook.

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
    """Persist the workbook to ``destination``, creating parent folders."""

    dest = Path(destination).expanduser().resolve()
    dest.parent.mkdir(parents=True, exist_ok=True)
    workbook.save(dest)


def to_decimal(raw: object, default: str = "0") -> Decimal:
    """Normalize a JSON or worksheet value into a :class:`Decimal`.

    ``None`` and empty strings map to ``default``. Floats go through ``str`` so
    that ``0.1`` becomes ``Decimal("0.1")`` rather than its binary expansion.
    """

    if raw is None or raw == "":
        return Decimal(default)
    if isinstance(raw, Decimal):
        return raw
    return Decimal(str(raw))


def deserialize_product(raw: Mapping[str, Any]) -> Product:
    """Build a :class:`Product` from a ``{"sku", "purchase_price"}`` mapping."""

    name = raw.get("name")
    return Product(
        sku=str(raw.get("sku")),
        purchase_price=to_decimal(raw.get("purchase_price")),
        name=str(name) if name is not None else None,
    )


def deserialize_seller(raw: Mapping[str, Any]) -> Seller:
    """Build a :class:`Seller` from a ``{"id", "first_name", "last_name"}`` mapping."""

    return Seller(
        seller_id=str(raw.get("id")),
        first_name=str(raw.get("first_name") or ""),
        last_name=str(raw.get("last_name") or ""),
    )


def deserialize_line_item(raw: Mapping[str, Any]) -> LineItem:
    """Build a :class:`LineItem`; unknown keys are preserved in ``extra``."""

    quantity_raw = raw.get("quantity")
    return LineItem(
        sku=str(raw.get("sku")),
        quantity=int(quantity_raw) if quantity_raw is not None else 0,
        sale_price=to_decimal(raw.get("sale_price")),
        discount=to_decimal(raw.get("discount")),
        extra={key: value for key, value in raw.items() if key not in _LINE_ITEM_FIELDS},
    )


def deserialize_purchase_record(raw: Mapping[str, Any]) -> PurchaseRecord:
    """Build a :class:`PurchaseRecord` and its nested line items."""

    receipt_id = raw.get("receipt_id")
    return PurchaseRecord(
        seller_id=str(raw.get("seller_id")),
        items=tuple(deserialize_line_item(item) for item in raw.get("items") or ()),
        receipt_id=str(receipt_id) if receipt_id is not None else None,
    )


def _parse_collection(raw: object, parser: Any) -> Any:
    # Non list-like values are passed through untouched for the validator.
    if isinstance(raw, (list, tuple)):
        return [parser(entry) for entry in raw]
    return raw


def parse_sales_data(raw: Optional[Mapping[str, Any]]) -> Optional[SalesData]:
    """Convert a raw mapping (typically decoded JSON) into :class:`SalesData`.

    Args:
        raw (Mapping | None): Mapping with ``purchase_records``, ``sellers``,
            and ``products`` keys.

    Returns:
        SalesData | None: Parsed bundle, or ``None`` when ``raw`` is not a
            mapping. Missing keys become ``None`` so validation can report
            them.
    """

    if not isinstance(raw, Mapping):
        return None

    return SalesData(
        purchase_records=_parse_collection(raw.get("purchase_records"), deserialize_purchase_record),
        sellers=_parse_collection(raw.get("sellers"), deserialize_seller),
        products=_parse_collection(raw.get("products"), deserialize_product),
    )


def load_json_sales_data(path: Path) -> Optional[SalesData]:
    """Read a UTF-8 JSON document and parse it with :func:`parse_sales_data`.

    Raises:
        FileNotFoundError: If ``path`` does not exist.
        json.JSONDecodeError: If the document is not valid JSON.
    """

    path = Path(path).expanduser().resolve()
    if not path.exists():
        raise FileNotFoundError(f"Sales data file not found: {path}")

    with path.open("r", encoding="utf-8") as handle:
        raw = json.load(handle)
    log.debug("Loaded JSON sales data from '%s'", path)
    return parse_sales_data(raw)


def _iter_sheet_rows(workbook: Workbook, sheet_name: str) -> Iterable[Sequence[object]]:
    sheet = workbook[sheet_name]
    for raw in sheet.iter_rows(min_row=2, values_only=True):
        # skip fully empty rows
        if any(cell is not None for cell in raw):
            yield raw


def iter_sellers(workbook: Workbook) -> Iterable[Seller]:
    """Yield :class:`Seller` records from the ``Sellers`` worksheet."""

    for seller_id, first_name, last_name, *_ in _iter_sheet_rows(workbook, SELLERS_SHEET):
        yield Seller(
            seller_id=str(seller_id),
            first_name=str(first_name) if first_name is not None else "",
            last_name=str(last_name) if last_name is not None else "",
        )


def iter_products(workbook: Workbook) -> Iterable[Product]:
    """Yield :class:`Product` records from the ``Products`` worksheet."""

    for sku, product_name, purchase_price, *_ in _iter_sheet_rows(workbook, PRODUCTS_SHEET):
        yield Product(
            sku=str(sku),
            purchase_price=to_decimal(purchase_price),
            name=str(product_name) if product_name is not None else None,
        )


def iter_purchase_records(workbook: Workbook) -> Iterable[PurchaseRecord]:
    """Yield purchase records in ``PurchaseRecords`` order with their items.

    Line items are grouped by ``ReceiptID`` preserving ``LineItems`` row
    order. Items pointing at a receipt that has no purchase record row are
    dropped.
    """

    items_by_receipt: Dict[str, List[LineItem]] = {}
    for receipt_id, sku, quantity, sale_price, discount, *_ in _iter_sheet_rows(workbook, LINE_ITEMS_SHEET):
        item = LineItem(
            sku=str(sku),
            quantity=int(quantity) if quantity is not None else 0,
            sale_price=to_decimal(sale_price),
            discount=to_decimal(discount),
        )
        items_by_receipt.setdefault(str(receipt_id), []).append(item)

    for receipt_id, seller_id, *_ in _iter_sheet_rows(workbook, PURCHASE_RECORDS_SHEET):
        key = str(receipt_id)
        yield PurchaseRecord(
            seller_id=str(seller_id),
            items=tuple(items_by_receipt.get(key, ())),
            receipt_id=key,
        )


def read_workbook_sales_data(workbook: Workbook) -> SalesData:
    """Assemble :class:`SalesData` from an input workbook.

    Raises:
        KeyError: If one of the input sheets is missing.
    """

    for sheet_name in INPUT_SHEET_COLUMNS:
        if sheet_name not in workbook.sheetnames:
            raise KeyError(f"Workbook is missing required sheet: {sheet_name}")

    return SalesData(
        purchase_records=list(iter_purchase_records(workbook)),
        sellers=list(iter_sellers(workbook)),
        products=list(iter_products(workbook)),
    )


def load_sales_data(path: Path) -> Optional[SalesData]:
    """Load sales data from a ``.json`` or ``.xlsx`` file based on its suffix.

    Raises:
        FileNotFoundError: If ``path`` does not exist.
        ValueError: If the file extension is not supported.
    """

    suffix = Path(path).suffix.lower()
    if suffix == ".json":
        return load_json_sales_data(path)
    if suffix in (".xlsx", ".xlsm"):
        data = read_workbook_sales_data(open_workbook(path))
        log.debug("Loaded workbook sales data from '%s'", path)
        return data
    raise ValueError(f"Unsupported sales data format: {path}")


def format_top_products(top_products: Sequence[TopProduct]) -> str:
    """Render top products as ``"SKU x qty; ..."`` for a single worksheet cell."""

    return "; ".join(f"{product.sku} x {product.quantity}" for product in top_products)


def serialize_report_row(row: ReportRow) -> Dict[str, Any]:
    """Convert a report row into a JSON-friendly dictionary.

    Money values are emitted as floats, which is exact enough after the
    two-decimal rounding applied by the formatter.
    """

    return {
        "seller_id": row.seller_id,
        "name": row.name,
        "revenue": float(row.revenue),
        "profit": float(row.profit),
        "sales_count": row.sales_count,
        "top_products": [
            {"sku": product.sku, "quantity": product.quantity}
            for product in row.top_products
        ],
        "bonus": float(row.bonus),
    }


def dump_report_json(rows: Sequence[ReportRow], *, indent: int = 2) -> str:
    """Serialize the full report as a JSON array."""

    return json.dumps([serialize_report_row(row) for row in rows], indent=indent, ensure_ascii=False)


def serialize_report_sheet_row(rank: int, row: ReportRow) -> list[object]:
    """Convert a report row into the ``Report`` worksheet column ordering."""

    return [
        rank,
        row.seller_id,
        row.name,
        row.revenue,
        row.profit,
        row.sales_count,
        row.bonus,
        format_top_products(row.top_products),
    ]


def write_report_sheet(workbook: Workbook, rows: Sequence[ReportRow]) -> None:
    """Replace the ``Report`` worksheet with the supplied rows.

    Any existing ``Report`` sheet is removed first so repeated runs never mix
    stale rows with fresh ones. Rows are written in rank order, starting at 1.
    """

    if REPORT_SHEET in workbook.sheetnames:
        workbook.remove(workbook[REPORT_SHEET])

    sheet = workbook.create_sheet(title=REPORT_SHEET)
    bold_font = Font(bold=True)
    for column_index, column_name in enumerate(REPORT_COLUMNS, start=1):
        cell = sheet.cell(row=1, column=column_index)
        cell.value = column_name
        cell.font = bold_font

    for rank, row in enumerate(rows, start=1):
        sheet.append(serialize_report_sheet_row(rank, row))


def create_report_workbook(rows: Sequence[ReportRow]) -> Workbook:
    """Build a standalone workbook holding only the ``Report`` sheet."""

    workbook = openpyxl.Workbook()
    if workbook.active and workbook.active.title == "Sheet":
        workbook.remove(workbook.active)
    write_report_sheet(workbook, rows)
    return workbook
