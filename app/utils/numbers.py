from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional, Union

Number = Union[int, float, Decimal]


def round2(value: Number) -> float:
    """Round half-up to two decimals (``2.345 -> 2.35``), returning a float."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return float(value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def mean2(values: Iterable[Number]) -> Optional[float]:
    """Mean of ``values`` rounded to two decimals, or ``None`` when empty."""
    values = list(values)
    if not values:
        return None
    return round2(sum(Decimal(str(v)) for v in values) / len(values))
