"""Writes one JSON record per request to the output channel."""

from __future__ import annotations

import json
from typing import TextIO

from txsim.core.types import SimulationResult


def error_result(message: str) -> SimulationResult:
    """Result for a request that failed before reaching the host."""
    return SimulationResult.failure(message)


def render(result: SimulationResult, pretty: bool = False) -> str:
    return json.dumps(result.to_wire(), indent=2 if pretty else None)


def respond(result: SimulationResult, stream: TextIO, pretty: bool = False) -> None:
    stream.write(render(result, pretty) + "\n")
    stream.flush()
