# ratings.py
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Tuple

ONE_DECIMAL = Decimal("0.1")


def aggregate(reviews: Iterable) -> Tuple[float, int]:
    """Return ``(average_rating, review_count)`` for a set of reviews.

    The mean is taken over the full set every time and rounded half-up to
    one decimal. An empty set yields ``(0.0, 0)``.
    """
    ratings = [int(r.rating) for r in reviews]
    if not ratings:
        return 0.0, 0
    mean = Decimal(sum(ratings)) / Decimal(len(ratings))
    return float(mean.quantize(ONE_DECIMAL, rounding=ROUND_HALF_UP)), len(ratings)
