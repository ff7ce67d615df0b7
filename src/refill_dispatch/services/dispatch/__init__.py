"""Dispatch service exports."""

from .service import DispatchEngine, DispatchResult
from .sweep import DispatchSweep, SweepSummary

__all__ = ["DispatchEngine", "DispatchResult", "DispatchSweep", "SweepSummary"]
