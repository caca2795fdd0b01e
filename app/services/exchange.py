import copy
import logging
import threading
from decimal import Decimal
from typing import Any, Dict, List, Optional

import numpy as np

from app.config import ExchangeParams, get_default_exchange_params
from app.engine.errors import EngineError, InvalidAmountError, InvalidSideError, StaleEntryError, WrongPhaseError
from app.engine.params import fee_rate, validate_exchange_params
from app.engine.rounds import (
    EndTag,
    Phase,
    RoundState,
    STAKING_PHASES,
    advance_countdown,
    advance_live_clock,
    end_round,
    init_round,
    pause_round,
    require_phase,
    resume_round,
    start_round,
)
from app.engine.settlement import (
    PayoutCalc,
    SettlementSnapshot,
    calculate_final_payout,
    draw_outcome,
    settle,
    withdraw_final_payout,
)
from app.engine.state import (
    EXCHANGE_SIDES,
    PoolState,
    Side,
    apply_stakes,
    get_total,
    implied_odds,
    init_pools,
    set_pools,
    snapshot_pools,
    to_side,
)
from app.engine.valuation import (
    CashoutPolicy,
    EntrySnapshot,
    capture_entry,
    entry_matches,
    execute_cashout,
    to_policy,
    value_cashout,
)
from app.utils import currency_units, safe_divide, serialize_state
from .results import failure, from_error, success

logger = logging.getLogger(__name__)

class ExchangeSimulator:
    """
    Two-sided pari-mutuel market with live odds, early cashout and settlement.

    One instance owns one market. Commands never raise for expected
    rejections; they return {'ok': False, 'reason': ..., 'message': ...}.
    """

    def __init__(self, params: Optional[ExchangeParams] = None, rng: Optional[np.random.Generator] = None):
        self.params: ExchangeParams = params or get_default_exchange_params()
        validate_exchange_params(self.params)
        self.rng = rng or np.random.default_rng(self.params.get('outcome_seed'))
        self.pools: PoolState = init_pools(EXCHANGE_SIDES, self.params['initial_pools'])
        self.round: RoundState = init_round(self.params, round_id=1)
        self.entry: Optional[EntrySnapshot] = None
        self.settlement: Optional[SettlementSnapshot] = None
        self.last_final_calc: Optional[PayoutCalc] = None
        self.events: List[Dict[str, Any]] = []
        self._lock = threading.RLock()

    # ---- queries ----

    def get_pools(self) -> Dict[Side, Decimal]:
        with self._lock:
            return snapshot_pools(self.pools)

    def get_total(self) -> Decimal:
        with self._lock:
            return get_total(self.pools)

    def get_odds(self) -> Dict[Side, Optional[Decimal]]:
        """
        Implied odds per side. Once the round has ended the odds stay locked to
        the settlement snapshot even while withdrawals drain the live pools.
        """
        with self._lock:
            if self.settlement is not None:
                frozen = self.settlement['pools']
                total = self.settlement['total_pool']
                return {side: (safe_divide(total, pool) if pool > 0 else None) for side, pool in frozen.items()}
            return {side: implied_odds(self.pools, side) for side in EXCHANGE_SIDES}

    def get_phase(self) -> Phase:
        with self._lock:
            return self.round['phase']

    def get_round(self) -> RoundState:
        with self._lock:
            return dict(self.round)

    def get_settlement(self) -> Optional[SettlementSnapshot]:
        with self._lock:
            return copy.deepcopy(self.settlement)

    def get_settlement_json(self) -> str:
        with self._lock:
            if self.settlement is None:
                return ""
            return serialize_state(self.settlement)

    def get_entry(self) -> Optional[EntrySnapshot]:
        with self._lock:
            return self.entry

    # ---- round lifecycle ----

    def start_round(self) -> Dict[str, Any]:
        with self._lock:
            try:
                if self.round['phase'] == Phase.LIVE and self.round['paused']:
                    resume_round(self.round)
                    logger.info(f"Round {self.round['round_id']}: resumed at minute {self.round['minute']}")
                else:
                    start_round(self.round, self.params)
                    logger.info(f"Round {self.round['round_id']}: started ({self.round['phase'].value})")
            except EngineError as e:
                return self._reject('start_round', e)
            self._record('ROUND_STARTED', phase=self.round['phase'].value)
            return success(phase=self.round['phase'], round_id=self.round['round_id'])

    def pause(self) -> Dict[str, Any]:
        with self._lock:
            try:
                pause_round(self.round)
            except EngineError as e:
                return self._reject('pause', e)
            logger.info(f"Round {self.round['round_id']}: paused at minute {self.round['minute']}")
            return success(phase=self.round['phase'], paused=True)

    def advance_tick(self, round_id: Optional[int] = None) -> Dict[str, Any]:
        """
        One clock step: a countdown second, or one match minute while live.
        The round ends itself once the match clock reaches match_minutes.
        """
        with self._lock:
            if round_id is not None and round_id != self.round['round_id']:
                return failure(WrongPhaseError.reason, f"Tick for round {round_id} ignored; current round is {self.round['round_id']}")
            phase = self.round['phase']
            try:
                if phase == Phase.COUNTDOWN:
                    if advance_countdown(self.round, self.params):
                        logger.info(f"Round {self.round['round_id']}: live")
                elif phase == Phase.LIVE:
                    if self.round['paused']:
                        return success(phase=phase, minute=self.round['minute'], paused=True)
                    if self.round['minute'] >= self.params['match_minutes']:
                        return self._end('timer')
                    advance_live_clock(self.round, self.params)
                    logger.debug(f"Round {self.round['round_id']}: minute {self.round['minute']}")
                else:
                    require_phase(self.round, Phase.COUNTDOWN, Phase.LIVE)
            except EngineError as e:
                return from_error(e)
            return success(phase=self.round['phase'], minute=self.round['minute'], paused=self.round['paused'])

    def end_round(self, reason: str = 'manual') -> Dict[str, Any]:
        with self._lock:
            return self._end(reason)

    def reset(self) -> Dict[str, Any]:
        with self._lock:
            next_id = self.round['round_id'] + 1
            self.pools = init_pools(EXCHANGE_SIDES, self.params['initial_pools'])
            self.round = init_round(self.params, round_id=next_id)
            self.entry = None
            self.settlement = None
            self.last_final_calc = None
            self.events = []
            logger.info(f"Round {next_id}: reset to IDLE")
            self._record('ROUND_RESET')
            return success(phase=self.round['phase'], round_id=next_id)

    # ---- pools ----

    def add_stake(self, side: Side | str, amount: Any) -> Dict[str, Any]:
        with self._lock:
            try:
                side = self._side(side)
                require_phase(self.round, *STAKING_PHASES)
                units = currency_units(amount)
                if units <= 0:
                    raise InvalidAmountError("Stake must be greater than 0.")
                new_pool = apply_stakes(self.pools, side, units)
            except EngineError as e:
                return self._reject('add_stake', e)
            logger.info(f"Round {self.round['round_id']}: +{units} on {side.value} (pool {new_pool})")
            self._record('STAKE_ADDED', side=side.value, amount=units)
            return success(side=side, amount=units, pools=snapshot_pools(self.pools), odds=self.get_odds())

    def set_pools(self, values: Dict[Any, Any]) -> Dict[str, Any]:
        """Overwrite global pool totals (operator input). Frozen once the round ends."""
        with self._lock:
            try:
                require_phase(self.round, *STAKING_PHASES)
                set_pools(self.pools, values)
            except EngineError as e:
                return self._reject('set_pools', e)
            return success(pools=snapshot_pools(self.pools), odds=self.get_odds())

    # ---- cashout ----

    def _side(self, side: Side | str) -> Side:
        side = to_side(side)
        if side not in EXCHANGE_SIDES:
            raise InvalidSideError(f"Side {side.value} is not traded on this market")
        return side

    def _policy(self, policy: Optional[CashoutPolicy | str]) -> CashoutPolicy:
        return to_policy(policy if policy is not None else self.params['cashout_policy'])

    def request_cashout_valuation(self, side: Side | str, stake: Any, policy: Optional[CashoutPolicy | str] = None) -> Dict[str, Any]:
        """
        Value an open position. Under mark-to-market the first request for a
        (side, stake) pair captures the entry odds; a different pair replaces it.
        """
        with self._lock:
            captured = False
            try:
                policy = self._policy(policy)
                side = self._side(side)
                require_phase(self.round, Phase.LIVE)
                if policy == CashoutPolicy.MARK_TO_MARKET and not entry_matches(self.entry, side, stake):
                    self.entry = None
                    self.entry = capture_entry(self.pools, side, stake)
                    captured = True
                    logger.info(f"Entry captured: {side.value} stake={self.entry['stake']} odds={self.entry['entry_odds']}")
                valuation = value_cashout(policy, self.pools, side, stake, fee_rate(self.params), self.entry)
            except EngineError as e:
                return self._reject('request_cashout_valuation', e)
            return success(entry_captured=captured, **valuation)

    def execute_cashout(self, side: Side | str, stake: Any, policy: Optional[CashoutPolicy | str] = None) -> Dict[str, Any]:
        with self._lock:
            try:
                policy = self._policy(policy)
                side = self._side(side)
                require_phase(self.round, Phase.LIVE)
                if policy == CashoutPolicy.MARK_TO_MARKET and not entry_matches(self.entry, side, stake):
                    self.entry = None
                    raise StaleEntryError("Side or stake changed since the last valuation; request a fresh valuation.")
                valuation = value_cashout(policy, self.pools, side, stake, fee_rate(self.params), self.entry)
                execute_cashout(self.pools, valuation)
            except EngineError as e:
                return self._reject('execute_cashout', e)
            self.entry = None
            logger.info(f"Cashout executed: {side.value} stake={valuation['stake']} paid={valuation['exit_payout']}")
            self._record('CASHOUT', side=side.value, stake=valuation['stake'], payout=valuation['exit_payout'])
            return success(pools=snapshot_pools(self.pools), **valuation)

    # ---- settlement ----

    def calculate_final_payout(self, stake: Any) -> Dict[str, Any]:
        with self._lock:
            try:
                require_phase(self.round, Phase.ENDED)
                calc = calculate_final_payout(self.settlement, stake)
            except EngineError as e:
                self.last_final_calc = None
                return self._reject('calculate_final_payout', e)
            self.last_final_calc = calc
            return success(**{k: v for k, v in calc.items() if k != 'ok'})

    def withdraw_final_payout(self) -> Dict[str, Any]:
        with self._lock:
            try:
                require_phase(self.round, Phase.ENDED)
                if self.last_final_calc is None:
                    raise StaleEntryError("Calculate final payout first.")
                withdrawal = withdraw_final_payout(self.pools, self.last_final_calc)
            except EngineError as e:
                return self._reject('withdraw_final_payout', e)
            # Pools changed: the next withdrawal needs a fresh calculation
            self.last_final_calc = None
            logger.info(
                f"Withdrawn {withdrawal['payout']} for {withdrawal['winning_side'].value}: "
                f"winning pool -{withdrawal['stake']}, losing pool -{withdrawal['profit_part']}"
            )
            self._record('WITHDRAWAL', side=withdrawal['winning_side'].value, payout=withdrawal['payout'])
            return success(**withdrawal)

    # ---- internals ----

    def _end(self, reason: str) -> Dict[str, Any]:
        if self.round['phase'] == Phase.ENDED:
            return success(phase=Phase.ENDED, already_ended=True, settlement=copy.deepcopy(self.settlement))
        try:
            end_round(self.round, EndTag.SETTLED, reason)
        except EngineError as e:
            return self._reject('end_round', e)
        draw = draw_outcome(self.rng, self.params['max_goals'])
        self.settlement = settle(
            self.pools,
            draw,
            reason,
            fee_rate(self.params),
            market_name=self.params['market_name'],
            side_names=self.params['side_names'],
            minute_ended=self.round['minute'],
        )
        self.entry = None
        self.last_final_calc = None
        result = self.settlement['result']
        logger.info(f"Round {self.round['round_id']}: ended ({reason}) {result['final_score']}, first scorer {result['winning_label']}")
        self._record('ROUND_ENDED', reason=reason, winning_side=result['winning_side'])
        return success(phase=Phase.ENDED, already_ended=False, settlement=copy.deepcopy(self.settlement))

    def _reject(self, command: str, err: EngineError) -> Dict[str, Any]:
        logger.warning(f"{command} rejected ({err.reason.value}): {err.message}")
        return from_error(err)

    def _record(self, event_type: str, **payload: Any) -> None:
        self.events.append({'type': event_type, 'round_id': self.round['round_id'], 'payload': payload})
