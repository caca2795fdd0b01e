from typing import Any, Dict

from app.engine.errors import EngineError, Reason

def success(**figures: Any) -> Dict[str, Any]:
    return {'ok': True, **figures}

def failure(reason: Reason, message: str) -> Dict[str, Any]:
    return {'ok': False, 'reason': reason.value, 'message': message}

def from_error(err: EngineError) -> Dict[str, Any]:
    return failure(err.reason, err.message)
