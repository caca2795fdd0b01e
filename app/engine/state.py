from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Iterable, Mapping, Optional
from typing_extensions import TypedDict

from app.utils import currency_units, is_finite_number, safe_divide, to_decimal
from .errors import InvalidAmountError, InvalidSideError, NegativePoolError

# Absorbs float rounding at the negativity boundary
EPSILON = Decimal('1e-9')

class Side(str, Enum):
    YES = "YES"
    NO = "NO"
    POOL = "POOL"  # Single shared liquidity pool of the crash game

EXCHANGE_SIDES = (Side.YES, Side.NO)

class PoolState(TypedDict):
    pools: Dict[Side, Decimal]

def to_side(side: Any) -> Side:
    """
    Resolve a side from an enum member or its name; unknown keys raise.
    """
    if isinstance(side, Side):
        return side
    try:
        return Side(str(side).upper())
    except ValueError:
        raise InvalidSideError(f"Unknown side: {side!r}")

def opposite(side: Side) -> Side:
    side = to_side(side)
    if side == Side.YES:
        return Side.NO
    if side == Side.NO:
        return Side.YES
    raise InvalidSideError(f"Side {side.value} has no opposite")

def init_pools(sides: Iterable[Side], initial: Optional[Mapping[Any, Any]] = None) -> PoolState:
    """
    Initialize a ledger with one pool per side, optionally seeded.
    """
    initial = initial or {}
    seeded = {to_side(k): v for k, v in initial.items()}
    pools: Dict[Side, Decimal] = {}
    for side in sides:
        side = to_side(side)
        pools[side] = currency_units(seeded.get(side, 0))
    return {'pools': pools}

def get_pool(state: PoolState, side: Side) -> Decimal:
    side = to_side(side)
    if side not in state['pools']:
        raise InvalidSideError(f"Pool not found for side {side.value}")
    return state['pools'][side]

def get_total(state: PoolState) -> Decimal:
    return sum(state['pools'].values(), Decimal('0'))

def implied_odds(state: PoolState, side: Side) -> Optional[Decimal]:
    """
    Compute total / pool for a side. None means the odds are unavailable.
    """
    pool = get_pool(state, side)
    total = get_total(state)
    if pool <= 0 or total <= 0:
        return None
    return safe_divide(total, pool)

def odds_table(state: PoolState) -> Dict[Side, Decimal]:
    return {side: implied_odds(state, side) or Decimal('0') for side in state['pools']}

def apply_stakes(state: PoolState, side: Side, amount: Any) -> Decimal:
    if not is_finite_number(amount) or to_decimal(amount) <= 0:
        raise InvalidAmountError(f"Stake must be greater than 0, got {amount!r}")
    side = to_side(side)
    new_pool = get_pool(state, side) + to_decimal(amount)
    state['pools'][side] = new_pool
    return new_pool

def apply_deltas(state: PoolState, deltas: Mapping[Any, Any]) -> Dict[Side, Decimal]:
    """
    Apply signed deltas to several pools as one all-or-nothing operation.

    Every resulting pool must stay >= -EPSILON; otherwise nothing changes.
    Results inside the epsilon band are stored as exactly zero.
    """
    proposed: Dict[Side, Decimal] = {}
    for key, delta in deltas.items():
        side = to_side(key)
        if not is_finite_number(delta):
            raise InvalidAmountError(f"Delta for {side.value} is not a finite number: {delta!r}")
        base = proposed.get(side, get_pool(state, side))
        proposed[side] = base + to_decimal(delta)

    for side, value in proposed.items():
        if value < -EPSILON:
            raise NegativePoolError(f"Pool {side.value} would go negative ({value})")

    for side, value in proposed.items():
        state['pools'][side] = max(value, Decimal('0'))
    return {side: state['pools'][side] for side in proposed}

def apply_delta(state: PoolState, side: Side, delta: Any) -> Decimal:
    return apply_deltas(state, {side: delta})[to_side(side)]

def set_pools(state: PoolState, values: Mapping[Any, Any]) -> None:
    """
    Replace pool totals from the input boundary, floored to whole currency units.
    """
    staged: Dict[Side, Decimal] = {}
    for key, value in values.items():
        side = to_side(key)
        get_pool(state, side)
        if not is_finite_number(value):
            raise InvalidAmountError(f"Pool total for {side.value} is not a number: {value!r}")
        if to_decimal(value) < 0:
            raise NegativePoolError(f"Pool total for {side.value} cannot be negative")
        staged[side] = currency_units(value)
    state['pools'].update(staged)

def snapshot_pools(state: PoolState) -> Dict[Side, Decimal]:
    return dict(state['pools'])
