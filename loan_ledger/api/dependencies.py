"""
Request dependencies: the shared loan system and the calling owner
"""

import threading
from typing import Optional

from fastapi import HTTPException, Request, status

from ..config import get_config
from ..system import LoanSystem


_system: Optional[LoanSystem] = None
_system_lock = threading.Lock()


def get_loan_system() -> LoanSystem:
    """Global loan system, created on first use"""
    global _system
    with _system_lock:
        if _system is None:
            _system = LoanSystem()
        return _system


def get_current_user_id(request: Request) -> str:
    """Owner id supplied by the upstream authentication layer"""
    header = get_config().owner_header
    user_id = request.headers.get(header)
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Missing {header} header"
        )
    return user_id
