"""Material estimator — derives a priced materials list from the design narrative.

Pure and deterministic: every catalog entry whose keyword appears anywhere in
the narrative (case-insensitive) contributes one line item, in catalog order.

Pricing conventions (both intentional):
- Catalog matches are listed at their unit price. ``quantity`` is a
  descriptive string and is never multiplied in.
- When nothing matches, a fixed starter bundle is returned instead, priced
  as unit price x the realistic quantity in its description.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

import structlog

from app.models.contracts import MaterialCategory, MaterialEstimate, MaterialLineItem

logger = structlog.get_logger()


@dataclass(frozen=True)
class CatalogEntry:
    name: str
    pattern: re.Pattern[str]
    unit_price: float
    quantity: str
    category: MaterialCategory

    def matches(self, text: str) -> bool:
        return self.pattern.search(text) is not None

    def line_item(self) -> MaterialLineItem:
        return MaterialLineItem(
            name=self.name,
            quantity=self.quantity,
            unit_price=self.unit_price,
            total_price=self.unit_price,
            category=self.category,
        )


def _kw(word: str) -> re.Pattern[str]:
    return re.compile(re.escape(word), re.IGNORECASE)


MATERIAL_CATALOG: tuple[CatalogEntry, ...] = (
    CatalogEntry("Mulch", _kw("mulch"), 3, "2 cubic yards", "other"),
    CatalogEntry("Topsoil", _kw("topsoil"), 25, "1 cubic yard", "other"),
    CatalogEntry("Landscape Fabric", _kw("fabric"), 0.5, "100 sq ft", "other"),
    CatalogEntry("Decorative Stones", _kw("stone"), 150, "1 ton", "hardscape"),
    CatalogEntry("Pavers", _kw("paver"), 4, "1 sq ft", "hardscape"),
)

STARTER_BUNDLE: tuple[MaterialLineItem, ...] = (
    MaterialLineItem(
        name="Shrubs (Various)",
        quantity="10 plants",
        unit_price=25,
        total_price=250,
        category="plants",
    ),
    MaterialLineItem(
        name="Perennials (Various)",
        quantity="20 plants",
        unit_price=15,
        total_price=300,
        category="plants",
    ),
    MaterialLineItem(
        name="Mulch",
        quantity="2 cubic yards",
        unit_price=3,
        total_price=6,
        category="mulch",
    ),
)


def estimate_materials(
    narrative: str,
    catalog: tuple[CatalogEntry, ...] = MATERIAL_CATALOG,
) -> MaterialEstimate:
    """Match the catalog against ``narrative`` and total the result."""
    if not isinstance(narrative, str):
        logger.warning("estimate_non_string_narrative", type=type(narrative).__name__)
        narrative = ""

    matched = [entry.line_item() for entry in catalog if entry.matches(narrative)]
    items = matched or list(STARTER_BUNDLE)

    total = sum(item.total_price for item in items)
    logger.debug(
        "materials_estimated",
        items=[item.name for item in items],
        starter_bundle=not matched,
        total=total,
    )
    return MaterialEstimate(items=items, total=total)
