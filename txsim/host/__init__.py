"""Execution host interface and the default recording host."""

from txsim.host.base import BudgetSnapshot, ExecutionHost, HostEvent
from txsim.host.recording import RecordingHost

__all__ = ["BudgetSnapshot", "ExecutionHost", "HostEvent", "RecordingHost"]
