"""
Shared API dependencies
"""

import threading
from typing import Optional

from ..engine import PlanEngine


# Global engine instance, built on first use from the environment configuration
_engine: Optional[PlanEngine] = None
_engine_lock = threading.Lock()


def get_engine() -> PlanEngine:
    global _engine
    if _engine is None:
        with _engine_lock:
            if _engine is None:
                _engine = PlanEngine()
    return _engine
