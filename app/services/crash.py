import logging
import threading
from decimal import Decimal
from typing import Any, Dict, List, Optional

from app.config import CrashParams, get_default_crash_params
from app.engine.crash import (
    Position,
    find_position,
    grow_positions,
    mark_lost,
    max_required_payout,
    open_position,
    required_payout,
    settle_cashout,
    should_crash,
)
from app.engine.errors import (
    EngineError,
    InsufficientLiquidityError,
    InvalidAmountError,
    UnknownPositionError,
    WrongPhaseError,
)
from app.engine.params import validate_crash_params
from app.engine.rounds import (
    EndTag,
    Phase,
    RoundState,
    STAKING_PHASES,
    advance_countdown,
    advance_live_clock,
    end_round,
    init_round,
    require_phase,
    start_round,
)
from app.engine.state import PoolState, Side, apply_delta, apply_stakes, get_pool, init_pools
from app.utils import currency_units, to_decimal
from .results import failure, from_error, success

logger = logging.getLogger(__name__)

class CrashSimulator:
    """
    Liquidity-funded crash game.

    All stakes feed one shared pool and cashouts are paid from it. The round
    crashes when the largest single required payout exceeds the pool. The
    liquidity left at the crash is reserved and seeds the next round.
    """

    def __init__(self, params: Optional[CrashParams] = None):
        self.params: CrashParams = params or get_default_crash_params()
        validate_crash_params(self.params)
        self.ledger: PoolState = init_pools([Side.POOL], {Side.POOL: self.params['initial_liquidity']})
        self.reserve: Decimal = Decimal('0')
        self.round: RoundState = init_round(self.params, round_id=1)
        self.next_player_id = 1
        self.active: List[Position] = []
        self.settled: List[Position] = []
        self.crashed_at: Optional[Decimal] = None
        self._lock = threading.RLock()

    # ---- queries ----

    def get_liquidity(self) -> Decimal:
        with self._lock:
            return get_pool(self.ledger, Side.POOL)

    def get_reserve(self) -> Decimal:
        with self._lock:
            return self.reserve

    def get_phase(self) -> Phase:
        with self._lock:
            return self.round['phase']

    def get_round(self) -> RoundState:
        with self._lock:
            return dict(self.round)

    def get_multiplier(self) -> Decimal:
        with self._lock:
            return self.round['multiplier']

    def get_active_positions(self) -> List[Position]:
        with self._lock:
            return [dict(p) for p in self.active]

    def get_settled_positions(self) -> List[Position]:
        with self._lock:
            return [dict(p) for p in self.settled]

    def get_active_stake(self) -> Decimal:
        with self._lock:
            return sum((p['stake'] for p in self.active), Decimal('0'))

    def get_max_required_payout(self) -> Decimal:
        with self._lock:
            return max_required_payout(self.active)

    # ---- commands ----

    def start_round(self) -> Dict[str, Any]:
        with self._lock:
            try:
                start_round(self.round, self.params)
            except EngineError as e:
                return self._reject('start_round', e)
            self.crashed_at = None
            logger.info(f"Round {self.round['round_id']}: countdown {self.round['countdown_remaining']}s")
            return success(phase=self.round['phase'], countdown=self.round['countdown_remaining'])

    def advance_tick(self, round_id: Optional[int] = None) -> Dict[str, Any]:
        """
        Countdown: one second elapses. Live: the round multiplier and every
        active position's multiplier step up, then the crash rule is checked.
        """
        with self._lock:
            if round_id is not None and round_id != self.round['round_id']:
                return failure(WrongPhaseError.reason, f"Tick for round {round_id} ignored; current round is {self.round['round_id']}")
            try:
                if self.round['phase'] == Phase.COUNTDOWN:
                    if advance_countdown(self.round, self.params):
                        logger.info(f"Round {self.round['round_id']}: flying from {self.round['multiplier']}x")
                    return success(phase=self.round['phase'], countdown=self.round['countdown_remaining'], crashed=False)
                require_phase(self.round, Phase.COUNTDOWN, Phase.LIVE)
                advance_live_clock(self.round, self.params)
            except EngineError as e:
                return from_error(e)
            grow_positions(self.active, to_decimal(self.params['multiplier_step']))
            logger.debug(f"Round {self.round['round_id']}: multiplier {self.round['multiplier']}x")
            crashed = self._check_crash()
            return success(phase=self.round['phase'], multiplier=self.round['multiplier'], crashed=crashed)

    def add_stake(self, amount: Any) -> Dict[str, Any]:
        with self._lock:
            try:
                require_phase(self.round, *STAKING_PHASES)
                stake = currency_units(amount)
                if not stake > 0:
                    raise InvalidAmountError("Stake must be greater than 0.")
                apply_stakes(self.ledger, Side.POOL, stake)
            except EngineError as e:
                return self._reject('add_stake', e)

            position = open_position(self.next_player_id, stake, self.params['start_multiplier'])
            self.next_player_id += 1
            # Most recent stakes first
            self.active.insert(0, position)
            logger.info(f"Added User {position['id']} with stake {stake}")

            crashed = self._check_crash()
            return success(position=dict(position), liquidity=self.get_liquidity(), crashed=crashed)

    def cash_out(self, player_id: int) -> Dict[str, Any]:
        with self._lock:
            try:
                require_phase(self.round, Phase.LIVE)
                position = find_position(self.active, player_id)
                if position is None:
                    raise UnknownPositionError(f"No active position for User {player_id}")
                payout = required_payout(position)
                if payout > self.get_liquidity():
                    self._crash()
                    raise InsufficientLiquidityError(f"Payout {payout} exceeds remaining liquidity; round crashed.")
                apply_delta(self.ledger, Side.POOL, -payout)
            except EngineError as e:
                return self._reject('cash_out', e)

            self.active.remove(position)
            record = settle_cashout(position)
            self.settled.insert(0, record)
            logger.info(f"User {player_id} cashed out at {record['cashout_multiplier']}x for {payout}")

            crashed = self._check_crash()
            return success(position=dict(record), payout=payout, liquidity=self.get_liquidity(), crashed=crashed)

    def reset_liquidity(self) -> Dict[str, Any]:
        with self._lock:
            apply_delta(self.ledger, Side.POOL, -self.get_liquidity())
            self.reserve = Decimal('0')
            logger.info("Liquidity reset to 0")
            crashed = self._check_crash()
            return success(liquidity=self.get_liquidity(), reserve=self.reserve, crashed=crashed)

    def end_round(self, reason: str = 'manual') -> Dict[str, Any]:
        """
        Stop the round by hand. Open positions are closed as lost and the
        remaining liquidity is reserved, as on a crash. Idempotent once ended.
        """
        with self._lock:
            if self.round['phase'] == Phase.ENDED:
                return success(phase=Phase.ENDED, already_ended=True, end_tag=self.round['end_tag'])
            try:
                self._terminate(EndTag.SETTLED, reason)
            except EngineError as e:
                return self._reject('end_round', e)
            return success(phase=Phase.ENDED, already_ended=False, end_tag=self.round['end_tag'])

    def reset(self) -> Dict[str, Any]:
        """New round in Idle; liquidity restarts from the reserved carry-over."""
        with self._lock:
            next_id = self.round['round_id'] + 1
            self.active = []
            self.settled = []
            self.next_player_id = 1
            apply_delta(self.ledger, Side.POOL, self.reserve - self.get_liquidity())
            self.round = init_round(self.params, round_id=next_id)
            self.crashed_at = None
            logger.info(f"Round {next_id}: reset with carry-over liquidity {self.reserve}")
            return success(phase=self.round['phase'], round_id=next_id, liquidity=self.get_liquidity())

    # ---- internals ----

    def _check_crash(self) -> bool:
        if self.round['phase'] != Phase.LIVE:
            return False
        if should_crash(self.active, self.get_liquidity()):
            self._crash()
            return True
        return False

    def _crash(self) -> None:
        self._terminate(EndTag.CRASHED, 'crash')
        self.crashed_at = self.round['multiplier']
        logger.info(f"Round {self.round['round_id']}: CRASHED at {self.crashed_at}x, reserve {self.reserve}")

    def _terminate(self, tag: EndTag, reason: str) -> None:
        end_round(self.round, tag, reason)
        self.reserve = self.get_liquidity()
        for p in self.active:
            self.settled.insert(0, mark_lost(p))
        self.active = []

    def _reject(self, command: str, err: EngineError) -> Dict[str, Any]:
        logger.warning(f"{command} rejected ({err.reason.value}): {err.message}")
        return from_error(err)
