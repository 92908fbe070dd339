"""
JSON value helpers shared by the comparator and the auditor.

Extracted records arrive as raw JSON: numbers may be ints, floats or numeric
strings, and booleans must never pass as numbers.
"""

from __future__ import annotations

import json
import math
from decimal import Decimal
from typing import Any


def canonical(value: Any) -> str:
    """Canonical text form used for structural equality."""
    return json.dumps(value, sort_keys=True, default=str, ensure_ascii=False)


def is_number(value: Any) -> bool:
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


def to_number(value: Any) -> float | None:
    """Coerce a JSON value to a finite float. None when it is not a number."""
    if is_number(value):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def format_number(value: float) -> str:
    """Render 150.0 as '150' and 12.5 as '12.5' for human-readable messages."""
    return str(int(value)) if float(value).is_integer() else str(value)
