"""
Positions and the crash rule for the single-pool liquidity game.

Every stake is added to one shared liquidity pool and every cashout is paid
from it. Each position carries its own multiplier, starting at the round's
start multiplier when the stake is placed and growing once per live tick.
The round crashes as soon as the largest single required payout
(stake * multiplier) exceeds the liquidity left in the pool. Only the largest
position is checked, not the sum over all open positions.
"""

from decimal import Decimal
from enum import Enum
from typing import Iterable, List, Optional
from typing_extensions import TypedDict

from app.utils import quantize_multiplier, to_decimal

class PositionStatus(str, Enum):
    ACTIVE = "active"
    CASHED_OUT = "cashed_out"
    LOST = "lost"

class Position(TypedDict):
    id: int
    stake: Decimal
    entry_multiplier: Decimal
    current_payout: Decimal
    status: PositionStatus
    cashout_multiplier: Optional[Decimal]
    final_payout: Optional[Decimal]

def open_position(player_id: int, stake: Decimal, start_multiplier: Decimal) -> Position:
    start = quantize_multiplier(start_multiplier)
    stake = to_decimal(stake)
    return {
        'id': player_id,
        'stake': stake,
        'entry_multiplier': start,
        'current_payout': stake * start,
        'status': PositionStatus.ACTIVE,
        'cashout_multiplier': None,
        'final_payout': None,
    }

def required_payout(position: Position) -> Decimal:
    return position['stake'] * position['entry_multiplier']

def grow_positions(positions: Iterable[Position], step: Decimal) -> None:
    step = to_decimal(step)
    for p in positions:
        if p['status'] != PositionStatus.ACTIVE:
            continue
        p['entry_multiplier'] = quantize_multiplier(p['entry_multiplier'] + step)
        p['current_payout'] = required_payout(p)

def max_required_payout(positions: Iterable[Position]) -> Decimal:
    needed = Decimal('0')
    for p in positions:
        if p['status'] == PositionStatus.ACTIVE:
            needed = max(needed, required_payout(p))
    return needed

def should_crash(positions: Iterable[Position], liquidity: Decimal) -> bool:
    needed = max_required_payout(positions)
    if not needed > 0:
        return False
    return needed > to_decimal(liquidity)

def find_position(positions: List[Position], player_id: int) -> Optional[Position]:
    for p in positions:
        if p['id'] == player_id:
            return p
    return None

def settle_cashout(position: Position) -> Position:
    payout = required_payout(position)
    return {
        **position,
        'current_payout': payout,
        'status': PositionStatus.CASHED_OUT,
        'cashout_multiplier': position['entry_multiplier'],
        'final_payout': payout,
    }

def mark_lost(position: Position) -> Position:
    return {
        **position,
        'status': PositionStatus.LOST,
        'cashout_multiplier': position['entry_multiplier'],
        'final_payout': Decimal('0'),
    }
