"""Services package initialization"""
from before_send.services.check_service import Caller, CheckService
from before_send.services.engine import AnalysisEngine
from before_send.services.rate_limiter import build_rate_limiter
from before_send.services.result_store import DurableResultStore, EphemeralResultStore, ResultStore

__all__ = [
    "Caller",
    "CheckService",
    "AnalysisEngine",
    "build_rate_limiter",
    "DurableResultStore",
    "EphemeralResultStore",
    "ResultStore",
]
