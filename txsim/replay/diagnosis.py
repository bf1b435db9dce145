"""Turns host events and a dispatch outcome into a :class:`SimulationResult`."""

from __future__ import annotations

import logging

from txsim.core.errors import HostEventRetrievalError
from txsim.core.types import SimulationResult
from txsim.host.base import ExecutionHost
from txsim.replay.dispatcher import DispatchOutcome

logger = logging.getLogger(__name__)


def collect_events(host: ExecutionHost) -> list[str]:
    """Format the host's events; a retrieval failure degrades to one diagnostic line."""
    try:
        return [str(event) for event in host.get_events()]
    except HostEventRetrievalError as exc:
        logger.warning("Failed to retrieve host events: %s", exc.message)
        return [f"Failed to retrieve events: {exc.message}"]


def assemble(events: list[str], host_logs: list[str], outcome: DispatchOutcome) -> SimulationResult:
    logs = [*host_logs, *outcome.trace]
    if outcome.clean:
        return SimulationResult.success(events=events, logs=logs)

    fault = outcome.fault

    if fault.location is not None:
        error = f"Contract execution failed. Failed at line {fault.location.line} in {fault.location.file}"
    else:
        error = f"Contract execution failed at offset {fault.offset:#x}: {fault.message}"
    return SimulationResult.failure(error, events=events, logs=logs, source_location=fault.location)
