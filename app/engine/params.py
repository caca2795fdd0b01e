from decimal import Decimal

from app.config import CrashParams, ExchangeParams, get_default_crash_params, get_default_exchange_params
from app.utils import to_decimal

CASHOUT_POLICY_NAMES = ('RATIO', 'MARK_TO_MARKET')

def validate_exchange_params(params: ExchangeParams) -> None:
    if not (0 <= params['fee_rate'] < 1):
        raise ValueError("fee_rate must be in [0,1)")
    if params['cashout_policy'] not in CASHOUT_POLICY_NAMES:
        raise ValueError(f"cashout_policy must be one of {', '.join(CASHOUT_POLICY_NAMES)}")
    if params['countdown_seconds'] < 0:
        raise ValueError("countdown_seconds must be >=0")
    if params['countdown_interval_ms'] <= 0 or params['tick_ms'] <= 0:
        raise ValueError("Timer intervals must be positive")
    if params['match_minutes'] < 1:
        raise ValueError("match_minutes must be >=1")
    if params['max_goals'] < 0:
        raise ValueError("max_goals must be >=0")
    if set(params['side_names']) != {'YES', 'NO'}:
        raise ValueError("side_names must name exactly the YES and NO sides")
    for side, amount in params['initial_pools'].items():
        if to_decimal(amount) < 0:
            raise ValueError(f"Initial pool for {side} must be non-negative")

def validate_crash_params(params: CrashParams) -> None:
    if params['initial_liquidity'] < 0:
        raise ValueError("initial_liquidity must be non-negative")
    if params['start_multiplier'] <= 0:
        raise ValueError("start_multiplier must be >0")
    if params['multiplier_step'] <= 0:
        raise ValueError("multiplier_step must be >0")
    if params['countdown_seconds'] < 0:
        raise ValueError("countdown_seconds must be >=0")
    if params['countdown_interval_ms'] <= 0 or params['tick_ms'] <= 0:
        raise ValueError("Timer intervals must be positive")

def fee_rate(params: ExchangeParams) -> Decimal:
    return to_decimal(params['fee_rate'])

__all__ = [
    'CASHOUT_POLICY_NAMES',
    'ExchangeParams',
    'CrashParams',
    'get_default_exchange_params',
    'get_default_crash_params',
    'validate_exchange_params',
    'validate_crash_params',
    'fee_rate',
]
