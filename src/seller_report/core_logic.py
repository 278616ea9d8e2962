"""Business logic layer for the seller report.

This module turns raw sales data into a ranked per-seller report. The pipeline
is a sequence of small steps: validation, index construction, statistics
accumulation, ranking with bonus assignment, and report shaping. Every step
works on in-memory structures only; file and configuration handling is
delegated to :mod:`seller_report.data_manager`.

Rounding is deliberately applied at different points: item costs are rounded
per item, revenue is re-rounded after every addition, and profit is only
rounded once when the report row is built.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from . import configure_file_logging, data_manager, log
from .constants import CENT, EXPECTED_SCHEMA_VERSION, TOP_PRODUCTS_LIMIT
from .data_manager import (
    ConfigSettings,
    Product,
    PurchaseRecord,
    ReportRow,
    SalesData,
    Seller,
    TopProduct,
)
from .strategies import BonusStrategy, RevenueStrategy, resolve_bonus_strategy, resolve_revenue_strategy


class ReportInputError(Exception):
    """Raised before processing when the report cannot be computed at all."""


class InvalidSalesDataError(ReportInputError):
    """Raised when the input bundle is missing, malformed, or empty."""


class MissingStrategyError(ReportInputError):
    """Raised when a calculation strategy is absent, unknown, or not callable."""


@dataclass(frozen=True)
class ReportOptions:
    """Calculation strategies injected into the pipeline.

    Both callables receive ``Decimal`` money fields: ``calculate_revenue`` gets
    the :class:`LineItem` and :class:`Product`, ``calculate_bonus`` gets the
    rank index, the seller count, and the :class:`SellerAccumulator`. A float
    literal mixed into that arithmetic (``seller.profit * 0.15``) raises
    ``TypeError``, which propagates out of :func:`analyze_sales_data`.
    """

    calculate_revenue: Optional[RevenueStrategy]
    calculate_bonus: Optional[BonusStrategy]


@dataclass
class SellerAccumulator:
    """Running totals for one seller while records are processed."""

    seller_id: str
    first_name: str
    last_name: str
    revenue: Decimal = Decimal("0")
    profit: Decimal = Decimal("0")
    sales_count: int = 0
    products_sold: Dict[str, int] = field(default_factory=dict)
    bonus: Decimal = Decimal("0")


@dataclass(frozen=True)
class RuntimeContext:
    """Container for configuration and resolved strategies used by the CLI."""

    settings: ConfigSettings
    options: ReportOptions


SalesInput = Union[SalesData, Mapping[str, Any], None]
OptionsInput = Union[ReportOptions, Mapping[str, Any], None]


def round_money(amount: Decimal) -> Decimal:
    """Round ``amount`` to cents using half-up rounding."""

    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def _is_list_like(value: object) -> bool:
    return isinstance(value, (list, tuple))


def validate_sales_data(data: Optional[SalesData]) -> None:
    """Reject a missing input bundle or malformed/empty collections.

    Args:
        data (SalesData | None): Parsed sales data.

    Raises:
        InvalidSalesDataError: If ``data`` is ``None`` or any of
            ``purchase_records``, ``sellers``, ``products`` is not a list or
            tuple, or is empty.
    """
    if data is None:
        log.error("Sales data validation failed: no input supplied")
        raise InvalidSalesDataError("Invalid input data: nothing was supplied")

    for name in ("purchase_records", "sellers", "products"):
        collection = getattr(data, name, None)
        if not _is_list_like(collection):
            log.error("Sales data validation failed: '%s' is not a list", name)
            raise InvalidSalesDataError(f"Invalid input data: '{name}' must be a list")
        if len(collection) == 0:
            log.error("Sales data validation failed: '%s' is empty", name)
            raise InvalidSalesDataError(f"Invalid input data: '{name}' is empty")


def validate_options(options: Optional[ReportOptions]) -> None:
    """Ensure both calculation strategies are present and callable.

    Raises:
        MissingStrategyError: If ``options`` is ``None`` or either strategy is
            missing or not callable.
    """
    if options is None:
        log.error("Strategy validation failed: no options supplied")
        raise MissingStrategyError("Calculation strategies were not supplied")

    for name in ("calculate_revenue", "calculate_bonus"):
        strategy = getattr(options, name, None)
        if strategy is None or not callable(strategy):
            log.error("Strategy validation failed: '%s' is missing or not callable", name)
            raise MissingStrategyError(f"Calculation strategy '{name}' is missing or not callable")


def build_seller_index(sellers: Sequence[Seller]) -> Tuple[List[SellerAccumulator], Dict[str, SellerAccumulator]]:
    """Create one zeroed accumulator per seller plus an id lookup.

    Returns:
        tuple[list[SellerAccumulator], dict[str, SellerAccumulator]]: The
            accumulators in input order and a mapping keyed by seller id. With
            duplicate ids the later seller wins the mapping entry while both
            remain in the list.
    """
    accumulators = [
        SellerAccumulator(
            seller_id=seller.seller_id,
            first_name=seller.first_name,
            last_name=seller.last_name,
        )
        for seller in sellers
    ]
    index = {accumulator.seller_id: accumulator for accumulator in accumulators}
    return accumulators, index


def build_product_index(products: Sequence[Product]) -> Dict[str, Product]:
    """Map SKU to product; the later duplicate wins."""
    return {product.sku: product for product in products}


def accumulate_purchase_records(
    records: Sequence[PurchaseRecord],
    seller_index: Mapping[str, SellerAccumulator],
    product_index: Mapping[str, Product],
    calculate_revenue: RevenueStrategy,
) -> int:
    """Walk every record and item, updating the matching seller's totals.

    Records attributed to an unknown seller are skipped entirely. Items with an
    unknown SKU are skipped individually, but the record still counts as a
    sale for its seller.

    Args:
        records (Sequence[PurchaseRecord]): Purchase records in input order.
        seller_index (Mapping[str, SellerAccumulator]): Accumulators keyed by
            seller id; mutated in place.
        product_index (Mapping[str, Product]): Products keyed by SKU.
        calculate_revenue (RevenueStrategy): Prices a single line item.

    Returns:
        int: Number of records and items that were skipped.
    """
    skipped = 0
    for position, record in enumerate(records):
        seller = seller_index.get(record.seller_id)
        if seller is None:
            log.debug("Skipping record #%d: unknown seller '%s'", position, record.seller_id)
            skipped += 1
            continue

        seller.sales_count += 1

        for item in record.items:
            product = product_index.get(item.sku)
            if product is None:
                log.debug("Skipping item in record #%d: unknown SKU '%s'", position, item.sku)
                skipped += 1
                continue

            item_revenue = data_manager.to_decimal(calculate_revenue(item, product))
            item_cost = round_money(product.purchase_price * item.quantity)
            item_profit = item_revenue - item_cost

            seller.revenue = round_money(seller.revenue + item_revenue)
            seller.profit = seller.profit + item_profit

            seller.products_sold[item.sku] = seller.products_sold.get(item.sku, 0) + item.quantity

    return skipped


def rank_sellers(accumulators: Sequence[SellerAccumulator], calculate_bonus: BonusStrategy) -> List[SellerAccumulator]:
    """Order sellers by profit descending and assign each one a bonus.

    The sort is stable, so sellers with equal profit keep their input order.
    ``calculate_bonus`` receives the zero-based rank index, the number of
    sellers, and the accumulator.
    """
    ranked = sorted(accumulators, key=lambda seller: seller.profit, reverse=True)
    total = len(ranked)
    for index, seller in enumerate(ranked):
        seller.bonus = data_manager.to_decimal(calculate_bonus(index, total, seller))
    return ranked


def select_top_products(products_sold: Mapping[str, int], limit: int = TOP_PRODUCTS_LIMIT) -> List[TopProduct]:
    """Return the best-selling SKUs, quantity descending, ties in first-sold order."""
    entries = [TopProduct(sku=sku, quantity=quantity) for sku, quantity in products_sold.items()]
    entries.sort(key=lambda entry: entry.quantity, reverse=True)
    return entries[:limit]


def format_report(ranked: Sequence[SellerAccumulator]) -> List[ReportRow]:
    """Shape ranked accumulators into immutable report rows."""
    return [
        ReportRow(
            seller_id=seller.seller_id,
            name=f"{seller.first_name} {seller.last_name}",
            revenue=round_money(seller.revenue),
            profit=round_money(seller.profit),
            sales_count=seller.sales_count,
            top_products=tuple(select_top_products(seller.products_sold)),
            bonus=round_money(seller.bonus),
        )
        for seller in ranked
    ]


def _coerce_sales_data(data: SalesInput) -> Optional[SalesData]:
    if isinstance(data, Mapping):
        return data_manager.parse_sales_data(data)
    return data


def _coerce_options(options: OptionsInput) -> Optional[ReportOptions]:
    # camelCase keys are accepted for payloads built by JavaScript callers.
    if isinstance(options, Mapping):
        return ReportOptions(
            calculate_revenue=options.get("calculate_revenue", options.get("calculateRevenue")),
            calculate_bonus=options.get("calculate_bonus", options.get("calculateBonus")),
        )
    return options


def analyze_sales_data(data: SalesInput, options: OptionsInput) -> List[ReportRow]:
    """Compute the ranked seller report.

    Args:
        data (SalesData | Mapping | None): Sales data, either parsed or as the
            raw mapping accepted by :func:`data_manager.parse_sales_data`.
        options (ReportOptions | Mapping | None): Revenue and bonus
            strategies; mappings use the ``calculate_revenue`` and
            ``calculate_bonus`` keys (or ``calculateRevenue`` and
            ``calculateBonus``).

    Returns:
        list[ReportRow]: One row per input seller, ordered by profit
            descending.

    Raises:
        InvalidSalesDataError: If the input collections are missing,
            malformed, or empty.
        MissingStrategyError: If either strategy is missing or not callable.
    """
    sales_data = _coerce_sales_data(data)
    report_options = _coerce_options(options)
    validate_sales_data(sales_data)
    validate_options(report_options)

    accumulators, seller_index = build_seller_index(sales_data.sellers)
    product_index = build_product_index(sales_data.products)
    skipped = accumulate_purchase_records(
        sales_data.purchase_records,
        seller_index,
        product_index,
        report_options.calculate_revenue,
    )
    ranked = rank_sellers(accumulators, report_options.calculate_bonus)
    rows = format_report(ranked)
    log.info(
        "Built seller report: %d sellers, %d records, %d skipped entries",
        len(rows),
        len(sales_data.purchase_records),
        skipped,
    )
    return rows


def resolve_report_options(settings: ConfigSettings) -> ReportOptions:
    """Look up the strategies named in configuration.

    Raises:
        MissingStrategyError: If either configured name is not registered.
    """
    try:
        revenue = resolve_revenue_strategy(settings.revenue_strategy)
        bonus = resolve_bonus_strategy(settings.bonus_strategy)
    except KeyError as exc:
        log.error("Strategy resolution failed: %s", exc.args[0])
        raise MissingStrategyError(exc.args[0]) from exc
    return ReportOptions(calculate_revenue=revenue, calculate_bonus=bonus)


def load_runtime_context(config_path: Optional[Path] = None) -> RuntimeContext:
    """Load configuration settings and resolve the configured strategies.

    Args:
        config_path (Path | None): Optional override path for the configuration
            file. When omitted the data layer searches upward from the current
            working directory.

    Returns:
        RuntimeContext: Settings plus the strategies they name.

    Raises:
        FileNotFoundError: If the configuration file cannot be located.
        KeyError: When mandatory configuration options are missing.
        MissingStrategyError: When a configured strategy name is unknown.
    """
    located_config = data_manager.find_config_file(config_path)
    resolved_config = Path(located_config).expanduser().resolve()
    parser = data_manager.read_config(resolved_config)
    settings = data_manager.parse_settings(parser, base_path=resolved_config.parent)
    if settings.log_dir is not None:
        configure_file_logging(settings.log_dir)
    options = resolve_report_options(settings)
    log.info("Loaded runtime context from '%s'", resolved_config)
    return RuntimeContext(settings=settings, options=options)


def ensure_schema_version(context: RuntimeContext) -> None:
    """Refuse to run against a configuration written for another schema.

    Raises:
        RuntimeError: If the configured schema version does not match
            ``EXPECTED_SCHEMA_VERSION``.
    """
    if context.settings.schema_version != EXPECTED_SCHEMA_VERSION:
        log.error(
            "Schema mismatch: expected %s, found %s",
            EXPECTED_SCHEMA_VERSION,
            context.settings.schema_version,
        )
        raise RuntimeError(
            "Schema mismatch: expected %s, found %s"
            % (EXPECTED_SCHEMA_VERSION, context.settings.schema_version)
        )

    log.debug("Schema version '%s' validated", context.settings.schema_version)


def build_report(context: RuntimeContext, source: Optional[Path] = None) -> List[ReportRow]:
    """Load sales data and run :func:`analyze_sales_data` with configured strategies.

    Args:
        context (RuntimeContext): Runtime settings and strategies.
        source (Path | None): Input file overriding ``settings.data_file``.

    Returns:
        list[ReportRow]: The ranked report.
    """
    data_file = Path(source) if source is not None else context.settings.data_file
    data = data_manager.load_sales_data(data_file)
    return analyze_sales_data(data, context.options)


def persist_report(context: RuntimeContext, rows: Sequence[ReportRow], destination: Optional[Path] = None) -> Path:
    """Write the report to an Excel workbook and return its path.

    ``destination`` defaults to ``settings.output_file``.
    """
    target = Path(destination) if destination is not None else context.settings.output_file
    workbook = data_manager.create_report_workbook(rows)
    data_manager.save_workbook(workbook, target)
    log.info("Persisted seller report with %d rows to '%s'", len(rows), target)
    return target
