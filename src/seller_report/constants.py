"""Enumerations and numeric constants shared across the seller report modules.

Keeping sheet names, strategy identifiers, and bonus rates in one place lets
the data layer, the aggregation pipeline, and the CLI agree on a single source
of truth.
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum


# Workbook/config compatibility marker checked before a report is built.
EXPECTED_SCHEMA_VERSION = "1.0.0"

# Quantization target for every rounded monetary value.
CENT = Decimal("0.01")

TOP_PRODUCTS_LIMIT = 10

FIRST_PLACE_BONUS_RATE = Decimal("0.15")
PODIUM_BONUS_RATE = Decimal("0.10")
DEFAULT_BONUS_RATE = Decimal("0.05")


class SheetName(str, Enum):
    """Enumerate the workbook sheet names managed by the data layer."""

    SELLERS = "Sellers"
    PRODUCTS = "Products"
    PURCHASE_RECORDS = "PurchaseRecords"
    LINE_ITEMS = "LineItems"
    REPORT = "Report"


class RevenueStrategyName(str, Enum):
    """Names under which revenue strategies can be selected in ``config.ini``."""

    SIMPLE = "simple"


class BonusStrategyName(str, Enum):
    """Names under which bonus strategies can be selected in ``config.ini``."""

    BY_PROFIT = "by_profit"


__all__ = [
    "EXPECTED_SCHEMA_VERSION",
    "CENT",
    "TOP_PRODUCTS_LIMIT",
    "FIRST_PLACE_BONUS_RATE",
    "PODIUM_BONUS_RATE",
    "DEFAULT_BONUS_RATE",
    "SheetName",
    "RevenueStrategyName",
    "BonusStrategyName",
]
