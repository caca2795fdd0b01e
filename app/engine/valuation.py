from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Dict, Optional
from typing_extensions import TypedDict

from app.utils import is_finite_number, safe_divide, to_decimal
from .state import PoolState, Side, apply_deltas, get_pool, get_total, opposite, to_side
from .errors import InsufficientLiquidityError, InvalidPolicyError, InvalidStakeError, StaleEntryError

class CashoutPolicy(str, Enum):
    RATIO = "RATIO"
    MARK_TO_MARKET = "MARK_TO_MARKET"

def to_policy(policy: Any) -> CashoutPolicy:
    if isinstance(policy, CashoutPolicy):
        return policy
    try:
        return CashoutPolicy(str(policy).upper())
    except ValueError:
        raise InvalidPolicyError(f"Unknown cashout policy: {policy!r}")

class EntrySnapshot(TypedDict):
    side: Side
    stake: Decimal
    entry_odds: Decimal

class Valuation(TypedDict):
    policy: CashoutPolicy
    side: Side
    stake: Decimal
    own_pool: Decimal
    opposite_pool: Decimal
    entry_odds: Optional[Decimal]
    current_odds: Decimal
    reference_value: Decimal
    pre_fee_exit: Decimal
    fee: Decimal
    exit_payout: Decimal
    net_profit: Decimal

def validate_position(pools: PoolState, side: Side, stake: Any) -> tuple[Decimal, Decimal, Decimal]:
    """
    Check that a (side, stake) position can be valued against the live pools.
    Returns (stake, own_pool, opposite_pool).
    """
    side = to_side(side)
    if not is_finite_number(stake) or to_decimal(stake) <= 0:
        raise InvalidStakeError("Stake must be greater than 0.")
    stake = to_decimal(stake)
    own_pool = get_pool(pools, side)
    opposite_pool = get_pool(pools, opposite(side))
    if own_pool <= 0 or opposite_pool <= 0:
        raise InsufficientLiquidityError("Both pools must be greater than 0 to cash out.")
    if stake > own_pool:
        raise InvalidStakeError(f"Stake cannot exceed the {side.value} pool ({own_pool}).")
    return stake, own_pool, opposite_pool

def current_odds(pools: PoolState, side: Side) -> Decimal:
    return safe_divide(get_total(pools), get_pool(pools, side))

def ratio_cashout_value(stake: Decimal, own_pool: Decimal, opposite_pool: Decimal, fee_rate: Decimal) -> Decimal:
    """stake * (opposite / own) * (1 - fee), capped at the opposite pool. 0 when own <= 0."""
    if own_pool <= 0:
        return Decimal('0')
    value = stake * safe_divide(opposite_pool, own_pool) * (Decimal('1') - fee_rate)
    return min(value, opposite_pool)

def ratio_cashout(
    pools: PoolState,
    side: Side,
    stake: Any,
    fee_rate: Decimal,
    entry: Optional[EntrySnapshot] = None
) -> Valuation:
    side = to_side(side)
    fee_rate = to_decimal(fee_rate)
    stake, own_pool, opposite_pool = validate_position(pools, side, stake)
    gross = stake * safe_divide(opposite_pool, own_pool)
    exit_payout = ratio_cashout_value(stake, own_pool, opposite_pool, fee_rate)
    return {
        'policy': CashoutPolicy.RATIO,
        'side': side,
        'stake': stake,
        'own_pool': own_pool,
        'opposite_pool': opposite_pool,
        'entry_odds': None,
        'current_odds': current_odds(pools, side),
        'reference_value': gross,
        'pre_fee_exit': gross,
        'fee': gross - exit_payout,
        'exit_payout': exit_payout,
        'net_profit': exit_payout - stake,
    }

def capture_entry(pools: PoolState, side: Side, stake: Any) -> EntrySnapshot:
    """
    Record the position's reference price: entry_odds = total / own pool, right now.
    """
    side = to_side(side)
    stake, _, _ = validate_position(pools, side, stake)
    return {'side': side, 'stake': stake, 'entry_odds': current_odds(pools, side)}

def entry_matches(entry: Optional[EntrySnapshot], side: Side, stake: Any) -> bool:
    if entry is None or not is_finite_number(stake):
        return False
    return entry['side'] == to_side(side) and entry['stake'] == to_decimal(stake)

def mark_to_market_cashout(
    pools: PoolState,
    side: Side,
    stake: Any,
    fee_rate: Decimal,
    entry: Optional[EntrySnapshot] = None
) -> Valuation:
    """
    Value a position against its entry-time reference price.

    reference_value = stake * (entry_odds / current_odds), capped at the
    opposite pool before the exit fee is taken.
    """
    side = to_side(side)
    fee_rate = to_decimal(fee_rate)
    stake, own_pool, opposite_pool = validate_position(pools, side, stake)
    if not entry_matches(entry, side, stake):
        raise StaleEntryError("Entry snapshot missing or stale; request a fresh valuation.")

    live_odds = current_odds(pools, side)
    reference_value = stake * safe_divide(entry['entry_odds'], live_odds)
    pre_fee_exit = min(reference_value, opposite_pool)
    fee = pre_fee_exit * fee_rate
    exit_payout = pre_fee_exit - fee
    return {
        'policy': CashoutPolicy.MARK_TO_MARKET,
        'side': side,
        'stake': stake,
        'own_pool': own_pool,
        'opposite_pool': opposite_pool,
        'entry_odds': entry['entry_odds'],
        'current_odds': live_odds,
        'reference_value': reference_value,
        'pre_fee_exit': pre_fee_exit,
        'fee': fee,
        'exit_payout': exit_payout,
        'net_profit': exit_payout - stake,
    }

CASHOUT_POLICIES: Dict[CashoutPolicy, Callable[..., Valuation]] = {
    CashoutPolicy.RATIO: ratio_cashout,
    CashoutPolicy.MARK_TO_MARKET: mark_to_market_cashout,
}

def value_cashout(
    policy: CashoutPolicy | str,
    pools: PoolState,
    side: Side,
    stake: Any,
    fee_rate: Decimal,
    entry: Optional[EntrySnapshot] = None
) -> Valuation:
    policy = to_policy(policy)
    return CASHOUT_POLICIES[policy](pools, side, stake, fee_rate, entry)

def execute_cashout(pools: PoolState, valuation: Valuation) -> Dict[Side, Decimal]:
    """
    Commit a cashout: own pool -= stake, opposite pool -= exit payout, atomically.
    """
    side = valuation['side']
    return apply_deltas(pools, {
        side: -valuation['stake'],
        opposite(side): -valuation['exit_payout'],
    })
