"""
Rolling average used for service ratings.

Individual review scores are never stored on the service; each new score is
folded into the running mean:

    >>> rolling_average(4.0, 3, 5)
    4.25
"""

from typing import Tuple


def rolling_average(old_rating: float, old_total: int, rating: int) -> float:
    return (old_rating * old_total + rating) / (old_total + 1)


def apply_review(old_rating: float, old_total: int, rating: int) -> Tuple[float, int]:
    """Return ``(new_rating, new_total)`` after one more review."""
    old_rating = old_rating or 0.0
    old_total = old_total or 0
    return rolling_average(old_rating, old_total, rating), old_total + 1
