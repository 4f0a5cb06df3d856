"""
Market pricing reference table.

Rows are keyed by (market, category, subcategory). Mission debriefs feed
them through ``upsert_pricing``; an existing key is overwritten with the
latest observed range.
"""

import logging

from app.core.exceptions import ValidationError
from app.models import db
from app.models.mission import PRICING_CONFIDENCES, MarketPricing

logger = logging.getLogger(__name__)

DEFAULT_MARKET = "CM"
DEFAULT_CATEGORY = "TALENT"
DEFAULT_SUBCATEGORY = "general"


def upsert_pricing(
    *,
    min_price,
    max_price,
    market: str | None = None,
    category: str | None = None,
    subcategory: str | None = None,
    label: str | None = None,
    currency: str | None = None,
    unit: str = "per_day",
    source: str = "manual",
    confidence: str = "MEDIUM",
    strategy_id: str | None = None,
) -> dict:
    """Insert or update the pricing row for the key. Caller's values win."""
    try:
        low = float(min_price)
        high = float(max_price)
    except (TypeError, ValueError) as exc:
        raise ValidationError(
            "min_price and max_price must be numbers",
            details={"min_price": min_price, "max_price": max_price},
        ) from exc
    if low < 0 or high < low:
        raise ValidationError(
            "Expected 0 <= min_price <= max_price",
            details={"min_price": low, "max_price": high},
        )
    if confidence not in PRICING_CONFIDENCES:
        raise ValidationError(
            f"Unknown confidence '{confidence}'", details={"allowed": sorted(PRICING_CONFIDENCES)},
        )

    market = market or DEFAULT_MARKET
    category = category or DEFAULT_CATEGORY
    subcategory = subcategory or DEFAULT_SUBCATEGORY

    row = MarketPricing.query.filter_by(
        market=market, category=category, subcategory=subcategory,
    ).first()
    if row is None:
        row = MarketPricing(market=market, category=category, subcategory=subcategory)
        db.session.add(row)

    row.label = label or f"{category} / {subcategory}"
    row.min_price = low
    row.max_price = high
    row.avg_price = (low + high) / 2
    row.currency = currency or row.currency or "XAF"
    row.unit = unit
    row.source = source
    row.confidence = confidence
    if strategy_id:
        row.strategy_id = strategy_id
    db.session.commit()
    return row.to_dict()


def list_market_pricing(market: str | None = None, category: str | None = None) -> list[dict]:
    q = MarketPricing.query
    if market:
        q = q.filter_by(market=market)
    if category:
        q = q.filter_by(category=category)
    rows = q.order_by(MarketPricing.market, MarketPricing.category, MarketPricing.subcategory)
    return [r.to_dict() for r in rows.all()]
