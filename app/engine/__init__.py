from .errors import Reason, EngineError
from .state import Side, PoolState, init_pools, get_total, implied_odds, apply_stakes, apply_delta, apply_deltas
from .valuation import CashoutPolicy, EntrySnapshot, Valuation, value_cashout, execute_cashout
from .rounds import Phase, EndTag, RoundState
from .crash import Position, PositionStatus, should_crash
from .settlement import OutcomeDraw, SettlementSnapshot, settle, calculate_final_payout, withdraw_final_payout
