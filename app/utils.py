import json
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation, ROUND_FLOOR, getcontext
from enum import Enum
from typing import Any, Dict

import numpy as np

getcontext().prec = 28

MONEY_DECIMALS = 6
MULTIPLIER_DECIMALS = 2

def to_decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))

def is_finite_number(value: Any) -> bool:
    try:
        d = to_decimal(value)
    except (InvalidOperation, ValueError, TypeError):
        return False
    return d.is_finite()

def safe_number(value: Any) -> Decimal:
    """
    Coerce an input value to a finite non-negative Decimal; anything else is 0.
    """
    if value is None or isinstance(value, bool):
        return Decimal('0')
    if not is_finite_number(value):
        return Decimal('0')
    return max(Decimal('0'), to_decimal(value))

def safe_divide(num: Decimal, den: Decimal) -> Decimal:
    # Zero, negative or non-finite denominators yield 0 instead of raising
    num = to_decimal(num)
    den = to_decimal(den)
    if not num.is_finite() or not den.is_finite() or den <= Decimal('0'):
        return Decimal('0')
    return num / den

def clamp(value: Decimal, lo: Decimal, hi: Decimal) -> Decimal:
    return min(max(to_decimal(value), to_decimal(lo)), to_decimal(hi))

def currency_units(value: Any) -> Decimal:
    """Floor an amount to whole currency units at the input boundary."""
    return safe_number(value).to_integral_value(rounding=ROUND_FLOOR)

def quantize_multiplier(m: float | str | Decimal) -> Decimal:
    return to_decimal(m).quantize(Decimal(f'1e-{MULTIPLIER_DECIMALS}'))

def money(amount: float | str | Decimal) -> Decimal:
    return to_decimal(amount).quantize(Decimal(f'1e-{MONEY_DECIMALS}'))

def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()

def serialize_state(state: Dict[str, Any]) -> str:
    def default_handler(obj: Any) -> Any:
        if isinstance(obj, Decimal):
            return str(obj)
        if isinstance(obj, Enum):
            return obj.value
        if isinstance(obj, (np.integer,)):
            return int(obj)
        if isinstance(obj, (np.float64, np.float32)):
            return float(obj)
        raise TypeError(f"Object of type {type(obj)} is not JSON serializable")

    def stringify_keys(obj: Any) -> Any:
        if isinstance(obj, dict):
            return {(k.value if isinstance(k, Enum) else str(k)): stringify_keys(v) for k, v in obj.items()}
        if isinstance(obj, (list, tuple)):
            return [stringify_keys(v) for v in obj]
        return obj

    return json.dumps(stringify_keys(state), default=default_handler, indent=2)

def deserialize_state(json_str: str) -> Dict[str, Any]:
    return json.loads(json_str)
