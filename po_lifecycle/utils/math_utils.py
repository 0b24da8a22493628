# po_lifecycle/utils/math_utils.py
import math
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterator, List, Sequence, TypeVar, Union

T = TypeVar('T')

Number = Union[int, float, Decimal]

def round_half_up(value: Number, places: int = 1) -> float:
    """Round half away from zero to a fixed number of decimal places.

    Args:
        value: Value to round
        places: Decimal places

    Returns:
        Rounded value
    """
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))

def safe_percentage(numerator: Number, denominator: Number, places: int = 1) -> float:
    """Percentage of numerator over denominator, 0 when the denominator is 0.

    Args:
        numerator: Part
        denominator: Whole
        places: Decimal places kept after rounding

    Returns:
        Percentage rounded half up
    """
    if not denominator:
        return 0.0
    return round_half_up(Decimal(str(numerator)) * 100 / Decimal(str(denominator)), places)

def round_to_int(value: float) -> int:
    """Round to the nearest integer, halves rounding towards positive infinity."""
    return int(math.floor(value + 0.5))

def variance_percentage(actual: Number, projected: Number) -> int:
    """Whole-number percentage deviation of actual from projected.

    Returns:
        round((actual - projected) / projected * 100), or 0 when nothing was projected
    """
    if not projected:
        return 0
    return round_to_int((actual - projected) / projected * 100)

def chunked(items: Sequence[T], size: int) -> Iterator[List[T]]:
    """Yield successive slices of at most size items."""
    items = list(items)
    for start in range(0, len(items), size):
        yield items[start:start + size]
