from decimal import Decimal
from typing import Any, Dict, Optional
from typing_extensions import TypedDict

import numpy as np

from app.utils import is_finite_number, safe_divide, to_decimal, utc_now_iso
from .state import PoolState, Side, EXCHANGE_SIDES, apply_deltas, get_pool, get_total, odds_table, opposite, snapshot_pools
from .errors import InsufficientLiquidityError, InvalidStakeError, NegativePoolError, VoidMarketError

class OutcomeDraw(TypedDict):
    yes_goals: int
    no_goals: int
    winning_side: Optional[Side]  # None when the market is void (0-0)

class SettlementSnapshot(TypedDict):
    meta: Dict[str, Any]
    pools: Dict[Side, Decimal]
    total_pool: Decimal
    estimated_odds: Dict[Side, Decimal]
    result: Dict[str, Any]
    fees: Dict[str, Decimal]

class PayoutCalc(TypedDict):
    ok: bool
    stake: Decimal
    winning_side: Optional[Side]
    winning_pool: Decimal
    opposite_pool: Decimal
    gross_payout: Decimal
    fee: Decimal
    payout: Decimal
    net_profit: Decimal

class Withdrawal(TypedDict):
    stake: Decimal
    payout: Decimal
    profit_part: Decimal
    winning_side: Side
    pools: Dict[Side, Decimal]

def draw_outcome(rng: np.random.Generator, max_goals: int = 4) -> OutcomeDraw:
    """
    Draw a final score and resolve the "who scores first" market.

    A side that failed to score cannot have scored first; when both scored the
    first scorer is a coin flip. 0-0 voids the market.
    """
    yes_goals = int(rng.integers(0, max_goals, endpoint=True))
    no_goals = int(rng.integers(0, max_goals, endpoint=True))

    winning_side: Optional[Side] = None
    if yes_goals + no_goals > 0:
        if yes_goals == 0:
            winning_side = Side.NO
        elif no_goals == 0:
            winning_side = Side.YES
        else:
            winning_side = Side.YES if rng.random() < 0.5 else Side.NO
    return {'yes_goals': yes_goals, 'no_goals': no_goals, 'winning_side': winning_side}

def settle(
    pools: PoolState,
    draw: OutcomeDraw,
    reason: str,
    fee_rate: Decimal,
    market_name: str = "",
    side_names: Optional[Dict[str, str]] = None,
    minute_ended: Optional[int] = None,
    ended_at: Optional[str] = None,
) -> SettlementSnapshot:
    """
    Freeze the pools, odds and outcome at the end of a round.

    Pure with respect to its inputs: the live pools are copied, never mutated.
    """
    side_names = side_names or {s.value: s.value for s in EXCHANGE_SIDES}
    yes_name = side_names.get(Side.YES.value, Side.YES.value)
    no_name = side_names.get(Side.NO.value, Side.NO.value)
    winner = draw['winning_side']
    winning_label = side_names.get(winner.value, winner.value) if winner is not None else "No goal"

    return {
        'meta': {
            'purpose': "education_and_simulation_only",
            'match': market_name,
            'ended_at': ended_at or utc_now_iso(),
            'end_reason': reason,
            'minute_ended': minute_ended,
        },
        'pools': snapshot_pools(pools),
        'total_pool': get_total(pools),
        'estimated_odds': odds_table(pools),
        'result': {
            'final_score': f"{yes_name} {draw['yes_goals']} – {draw['no_goals']} {no_name}",
            'yes_goals': draw['yes_goals'],
            'no_goals': draw['no_goals'],
            'winning_side': winner,
            'winning_label': winning_label,
        },
        'fees': {'exit_fee_rate': to_decimal(fee_rate)},
    }

def is_void(snapshot: SettlementSnapshot) -> bool:
    return snapshot['result']['winning_side'] is None

def final_payout(stake: Decimal, winning_pool: Decimal, opposite_pool: Decimal, fee_rate: Decimal) -> Dict[str, Decimal]:
    """stake * (1 + opposite / winning) * (1 - fee)."""
    gross_payout = stake * (Decimal('1') + safe_divide(opposite_pool, winning_pool))
    fee = gross_payout * fee_rate
    payout = gross_payout - fee
    return {'gross_payout': gross_payout, 'fee': fee, 'payout': payout, 'net_profit': payout - stake}

def calculate_final_payout(snapshot: SettlementSnapshot, stake: Any) -> PayoutCalc:
    """
    Price a winning stake against the frozen settlement pools.

    A void market refunds the stake with no fee.
    """
    if not is_finite_number(stake) or to_decimal(stake) <= 0:
        raise InvalidStakeError("Stake must be greater than 0.")
    stake = to_decimal(stake)
    winner = snapshot['result']['winning_side']

    if winner is None:
        return {
            'ok': True,
            'stake': stake,
            'winning_side': None,
            'winning_pool': Decimal('0'),
            'opposite_pool': Decimal('0'),
            'gross_payout': stake,
            'fee': Decimal('0'),
            'payout': stake,
            'net_profit': Decimal('0'),
        }

    winning_pool = snapshot['pools'][winner]
    opposite_pool = snapshot['pools'][opposite(winner)]
    if stake > winning_pool:
        raise InvalidStakeError(f"Stake cannot exceed the winning side pool ({winning_pool}).")

    figures = final_payout(stake, winning_pool, opposite_pool, snapshot['fees']['exit_fee_rate'])
    return {
        'ok': True,
        'stake': stake,
        'winning_side': winner,
        'winning_pool': winning_pool,
        'opposite_pool': opposite_pool,
        **figures,
    }

def withdraw_final_payout(pools: PoolState, calc: PayoutCalc) -> Withdrawal:
    """
    Pay a computed settlement out of the live pools.

    The winning pool gives back the stake and the losing pool pays the
    profit part (payout - stake). Nothing changes when any check fails.
    """
    winner = calc['winning_side']
    if winner is None:
        raise VoidMarketError("No goal (0–0). Market void: no winner withdrawal is applied.")

    stake = calc['stake']
    payout = calc['payout']
    current_winning = get_pool(pools, winner)
    current_losing = get_pool(pools, opposite(winner))

    if not current_winning > 0:
        raise InsufficientLiquidityError("Winning side pool is exhausted. No more winner withdrawals remain.")
    if stake > current_winning:
        raise InvalidStakeError("Stake cannot exceed the remaining winning side pool.")

    profit_part = payout - stake
    if profit_part > current_losing + Decimal('1e-9'):
        raise InsufficientLiquidityError("Insufficient losing pool to pay the profit part of this withdrawal.")

    try:
        updated = apply_deltas(pools, {winner: -stake, opposite(winner): -profit_part})
    except NegativePoolError:
        raise NegativePoolError("Withdrawal would make pools negative.")

    return {
        'stake': stake,
        'payout': payout,
        'profit_part': profit_part,
        'winning_side': winner,
        'pools': {**snapshot_pools(pools), **updated},
    }
