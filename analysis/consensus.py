#!/usr/bin/env python3
import logging
from fractions import Fraction
from typing import Optional, Sequence, Union

from analysis.models import Quote

logger = logging.getLogger(__name__)

Number = Union[int, float, str, Fraction]


def check_consensus(
    quotes: Sequence[Quote],
    threshold: Number = Fraction(2, 3),
    tolerance: Number = Fraction(1, 100),
    label: str = '',
) -> Optional[Quote]:
    """
    Returns the best quote when enough venues agree with it, otherwise None.

    A quote agrees when ``|best - q| / best <= tolerance``. The ratio of
    agreeing quotes must reach ``threshold``. Comparisons are exact rationals,
    so ``0.01`` means one percent and not its nearest binary float.
    """
    if not quotes:
        return None

    ranked = sorted(quotes, key=lambda q: q.amount_out, reverse=True)
    best = ranked[0]
    if best.amount_out <= 0:
        logger.info("consensus pair=%s result=none reason=no_positive_quote", label)
        return None

    tol = _as_fraction(tolerance)
    required = _as_fraction(threshold)
    agreeing = sum(
        1 for q in ranked
        if Fraction(abs(best.amount_out - q.amount_out), best.amount_out) <= tol
    )
    ratio = Fraction(agreeing, len(ranked))

    if ratio >= required:
        logger.info(
            "consensus pair=%s result=agree venues=%d/%d best=%s out=%d",
            label, agreeing, len(ranked), best.venue.value, best.amount_out,
        )
        return best

    logger.info(
        "consensus pair=%s result=none reason=disagreement venues=%d/%d",
        label, agreeing, len(ranked),
    )
    return None


def _as_fraction(value: Number) -> Fraction:
    if isinstance(value, Fraction):
        return value
    if isinstance(value, float):
        # str() keeps the decimal the user typed (0.01 -> 1/100)
        return Fraction(str(value))
    return Fraction(value)
