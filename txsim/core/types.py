"""Shared request/response schemas used across the simulator."""

from __future__ import annotations

import enum

from pydantic import BaseModel, Field, model_validator


# ── Enums ────────────────────────────────────────────────────────────────────


class SimulationStatus(str, enum.Enum):
    """Outcome of one simulation run."""

    SUCCESS = "success"
    ERROR = "error"


# ── Shared Schemas ───────────────────────────────────────────────────────────


class SourceLocation(BaseModel):
    """Source position a bytecode offset resolved to."""

    file: str
    line: int = Field(ge=0)
    column: int | None = Field(default=None, ge=0)

    def __str__(self) -> str:
        if self.column is not None:
            return f"{self.file}:{self.line}:{self.column}"
        return f"{self.file}:{self.line}"


class SimulationRequest(BaseModel):
    """One simulation request as read from stdin or the HTTP body."""

    envelope_xdr: str
    result_meta_xdr: str = ""
    # base64 LedgerKey -> base64 LedgerEntry
    ledger_entries: dict[str, str] | None = None
    # base64 WASM module, used only for source mapping
    contract_wasm: str | None = None


class SimulationResult(BaseModel):
    """The single record emitted per request."""

    status: SimulationStatus
    error: str | None = None
    events: list[str] = Field(default_factory=list)
    logs: list[str] = Field(default_factory=list)
    source_location: SourceLocation | None = None

    @model_validator(mode="after")
    def _check_status(self) -> "SimulationResult":
        if self.status == SimulationStatus.SUCCESS:
            if self.error is not None:
                raise ValueError("a successful result cannot carry an error")
            if self.source_location is not None:
                raise ValueError("a successful result cannot carry a source location")
        elif not self.error:
            raise ValueError("an error result requires an error message")
        return self

    @property
    def ok(self) -> bool:
        return self.status == SimulationStatus.SUCCESS

    @classmethod
    def success(cls, events: list[str], logs: list[str]) -> "SimulationResult":
        return cls(status=SimulationStatus.SUCCESS, events=events, logs=logs)

    @classmethod
    def failure(
        cls,
        error: str,
        events: list[str] | None = None,
        logs: list[str] | None = None,
        source_location: SourceLocation | None = None,
    ) -> "SimulationResult":
        return cls(
            status=SimulationStatus.ERROR,
            error=error,
            events=events or [],
            logs=logs or [],
            source_location=source_location,
        )

    def to_wire(self) -> dict:
        """Serialize for the output channel: lists always present, absent optionals dropped."""
        data = self.model_dump(mode="json", exclude_none=True)
        data.setdefault("events", [])
        data.setdefault("logs", [])
        return data
