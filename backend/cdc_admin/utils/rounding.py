"""
Rounding helpers

Python's ``round`` rounds halves to even; reports here round halves away
from zero, so 2.5 becomes 3 and 84.45 becomes 84.5.
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Union

Number = Union[int, float]


def round_half_up(value: Number, ndigits: int = 0) -> Number:
    """Round half away from zero; an int when ``ndigits`` is 0"""
    quantum = Decimal(1).scaleb(-ndigits)
    rounded = Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP)
    return int(rounded) if ndigits == 0 else float(rounded)


def percentage(part: Number, whole: Number, ndigits: int = 0) -> Number:
    """``part`` as a percentage of ``whole``, 0 when ``whole`` is 0"""
    if not whole:
        return 0 if ndigits == 0 else 0.0
    return round_half_up(part / whole * 100, ndigits)
