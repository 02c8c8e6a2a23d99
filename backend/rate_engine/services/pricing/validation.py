from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from rate_engine.config import PRICING_CONSISTENCY_TOLERANCE
from rate_engine.errors import PricingError
from rate_engine.schemas_pricing import PriceResult

logger = logging.getLogger(__name__)


def validate_pricing_result(result: PriceResult, context: Optional[Dict[str, Any]] = None) -> PriceResult:
    """Ensure a stay price is usable before it is summed into a booking.

    Raises PricingError when the calculation failed or pricing figures are
    missing. A total that does not reconcile (final != original - discount)
    is only logged: it points at data drift, not at the request.
    """
    context = context or {}
    if not result.success:
        raise PricingError(
            "PRICING_CALCULATION_FAILED",
            {"error": result.error, "message": result.message, **context},
        )

    pricing = result.pricing
    if pricing is None:
        raise PricingError("MISSING_PRICING_DATA", context)

    for name in ("original_total", "final_total"):
        if getattr(pricing, name, None) is None:
            raise PricingError(f"MISSING_PRICING_FIELD_{name.upper()}", {"field": name, **context})

    expected = pricing.original_total - (pricing.total_discount or 0.0)
    difference = abs(expected - pricing.final_total)
    if difference > PRICING_CONSISTENCY_TOLERANCE:
        logger.warning(
            "Pricing inconsistency: original=%s discount=%s expected_final=%s actual_final=%s diff=%.4f context=%s",
            pricing.original_total,
            pricing.total_discount,
            expected,
            pricing.final_total,
            difference,
            context,
        )
    return result
