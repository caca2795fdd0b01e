from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from typing_extensions import TypedDict

from app.utils import quantize_multiplier, to_decimal
from .errors import NotLiveError, WrongPhaseError

class Phase(str, Enum):
    IDLE = "IDLE"
    COUNTDOWN = "COUNTDOWN"
    LIVE = "LIVE"
    ENDED = "ENDED"

class EndTag(str, Enum):
    CRASHED = "CRASHED"
    SETTLED = "SETTLED"

# Allowed forward transitions; ENDED is terminal until an explicit reset
TRANSITIONS = {
    Phase.IDLE: (Phase.COUNTDOWN,),
    Phase.COUNTDOWN: (Phase.LIVE, Phase.ENDED),
    Phase.LIVE: (Phase.ENDED,),
    Phase.ENDED: (),
}

STAKING_PHASES = (Phase.IDLE, Phase.COUNTDOWN, Phase.LIVE)

class RoundState(TypedDict):
    round_id: int
    phase: Phase
    end_tag: Optional[EndTag]
    end_reason: Optional[str]
    multiplier: Decimal
    countdown_remaining: int
    tick_count: int
    minute: int
    paused: bool

def init_round(params: dict[str, Any], round_id: int = 1) -> RoundState:
    """
    Build a fresh Idle round. The multiplier starts at start_multiplier (1 when absent).
    """
    return {
        'round_id': round_id,
        'phase': Phase.IDLE,
        'end_tag': None,
        'end_reason': None,
        'multiplier': quantize_multiplier(params.get('start_multiplier', 1)),
        'countdown_remaining': int(params.get('countdown_seconds', 0)),
        'tick_count': 0,
        'minute': 1,
        'paused': False,
    }

def _transition(round_state: RoundState, target: Phase) -> None:
    current = round_state['phase']
    if target not in TRANSITIONS[current]:
        raise WrongPhaseError(f"Cannot move from {current.value} to {target.value}")
    round_state['phase'] = target

def require_phase(round_state: RoundState, *phases: Phase) -> None:
    if round_state['phase'] in phases:
        return
    allowed = ', '.join(p.value for p in phases)
    if phases == (Phase.LIVE,):
        raise NotLiveError(f"Round must be LIVE (currently {round_state['phase'].value})")
    raise WrongPhaseError(f"Operation requires phase {allowed} (currently {round_state['phase'].value})")

def start_round(round_state: RoundState, params: dict[str, Any]) -> RoundState:
    """
    Idle -> Countdown. Resets the multiplier and the countdown; a zero-length
    countdown expires at once and the round goes straight to Live.
    """
    require_phase(round_state, Phase.IDLE)
    round_state['multiplier'] = quantize_multiplier(params.get('start_multiplier', 1))
    round_state['countdown_remaining'] = int(params.get('countdown_seconds', 0))
    round_state['tick_count'] = 0
    _transition(round_state, Phase.COUNTDOWN)
    if round_state['countdown_remaining'] <= 0:
        go_live(round_state, params)
    return round_state

def go_live(round_state: RoundState, params: dict[str, Any]) -> RoundState:
    _transition(round_state, Phase.LIVE)
    round_state['multiplier'] = quantize_multiplier(params.get('start_multiplier', 1))
    round_state['countdown_remaining'] = 0
    round_state['paused'] = False
    return round_state

def advance_countdown(round_state: RoundState, params: dict[str, Any]) -> bool:
    """
    One countdown second elapses. Returns True when the round has just gone Live.
    """
    require_phase(round_state, Phase.COUNTDOWN)
    round_state['countdown_remaining'] = max(0, round_state['countdown_remaining'] - 1)
    if round_state['countdown_remaining'] <= 0:
        go_live(round_state, params)
        return True
    return False

def advance_live_clock(round_state: RoundState, params: dict[str, Any]) -> RoundState:
    """Live self-loop: the multiplier steps up and the match clock moves one minute."""
    require_phase(round_state, Phase.LIVE)
    step = to_decimal(params.get('multiplier_step', 0))
    round_state['multiplier'] = quantize_multiplier(round_state['multiplier'] + step)
    round_state['tick_count'] += 1
    round_state['minute'] += 1
    return round_state

def pause_round(round_state: RoundState) -> RoundState:
    require_phase(round_state, Phase.LIVE)
    round_state['paused'] = True
    return round_state

def resume_round(round_state: RoundState) -> RoundState:
    require_phase(round_state, Phase.LIVE)
    round_state['paused'] = False
    return round_state

def end_round(round_state: RoundState, tag: EndTag, reason: str) -> bool:
    """
    Move to Ended. Returns False without touching anything when already Ended.
    """
    if round_state['phase'] == Phase.ENDED:
        return False
    if round_state['phase'] == Phase.IDLE:
        raise WrongPhaseError("Round has not started")
    _transition(round_state, Phase.ENDED)
    round_state['end_tag'] = tag
    round_state['end_reason'] = reason
    round_state['paused'] = False
    return True
