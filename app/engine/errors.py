"""Reason codes and exceptions for rejected engine operations.

Every rejection is recoverable: the engine raises one of these, the simulator
catches it at the command boundary and hands a tagged failure to the caller.
"""

from enum import Enum


class Reason(str, Enum):
    INVALID_AMOUNT = "InvalidAmount"
    NOT_LIVE = "NotLive"
    WRONG_PHASE = "WrongPhase"
    INSUFFICIENT_LIQUIDITY = "InsufficientLiquidity"
    STALE_ENTRY = "StaleEntry"
    NEGATIVE_POOL = "NegativePool"
    INVALID_STAKE = "InvalidStake"
    VOID_MARKET = "VoidMarket"
    UNKNOWN_POSITION = "UnknownPosition"
    INVALID_SIDE = "InvalidSide"
    INVALID_POLICY = "InvalidPolicy"


class EngineError(ValueError):
    """Base engine error carrying a reason code."""

    reason: Reason = Reason.WRONG_PHASE

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class InvalidAmountError(EngineError):
    reason = Reason.INVALID_AMOUNT


class NotLiveError(EngineError):
    reason = Reason.NOT_LIVE


class WrongPhaseError(EngineError):
    reason = Reason.WRONG_PHASE


class InsufficientLiquidityError(EngineError):
    reason = Reason.INSUFFICIENT_LIQUIDITY


class StaleEntryError(EngineError):
    reason = Reason.STALE_ENTRY


class NegativePoolError(EngineError):
    reason = Reason.NEGATIVE_POOL


class InvalidStakeError(EngineError):
    reason = Reason.INVALID_STAKE


class VoidMarketError(EngineError):
    reason = Reason.VOID_MARKET


class UnknownPositionError(EngineError):
    reason = Reason.UNKNOWN_POSITION


class InvalidSideError(EngineError):
    reason = Reason.INVALID_SIDE


class InvalidPolicyError(EngineError):
    reason = Reason.INVALID_POLICY
