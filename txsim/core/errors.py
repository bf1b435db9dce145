"""Exception hierarchy shared by the decoder, the replay pipeline and the API.

Every failure the simulator can report maps to an :class:`ErrorCode` so the
CLI, the HTTP surface and the logs describe it the same way.
"""

from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    """Standard error codes attached to every simulator error."""

    # Request / decoding
    REQUEST_FORMAT = "REQUEST_FORMAT"
    BASE64 = "BASE64"
    SCHEMA = "SCHEMA"
    MODULE_FORMAT = "MODULE_FORMAT"

    # Execution host
    HOST_FAULT = "HOST_FAULT"
    HOST_EVENTS = "HOST_EVENTS"

    # RPC
    RPC_ERROR = "RPC_ERROR"
    RPC_UNAVAILABLE = "RPC_UNAVAILABLE"

    INTERNAL_ERROR = "INTERNAL_ERROR"


class TxsimError(Exception):
    """Base class for all simulator errors."""

    code: ErrorCode = ErrorCode.INTERNAL_ERROR

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class RequestFormatError(TxsimError):
    """The top-level request is not valid JSON or does not match the schema."""

    code = ErrorCode.REQUEST_FORMAT

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(f"Invalid JSON: {detail}")


class DecodeError(TxsimError):
    """A base64 binary artifact could not be decoded.

    ``artifact`` names the input that failed (``Envelope``, ``LedgerKey``...)
    so the response can say which one it was.
    """

    def __init__(self, artifact: str, detail: str) -> None:
        self.artifact = artifact
        self.detail = detail
        super().__init__(self._render())

    def _render(self) -> str:
        return f"Failed to decode {self.artifact}: {self.detail}"


class Base64Error(DecodeError):
    """Invalid base64 characters or padding."""

    code = ErrorCode.BASE64

    def _render(self) -> str:
        return f"Failed to decode {self.artifact} Base64: {self.detail}"


class SchemaError(DecodeError):
    """Decoded bytes do not match the expected binary layout."""

    code = ErrorCode.SCHEMA

    def _render(self) -> str:
        return f"Failed to parse {self.artifact} XDR: {self.detail}"


class ModuleFormatError(SchemaError):
    """The compiled module container or its debug sections are malformed."""

    code = ErrorCode.MODULE_FORMAT

    def __init__(self, detail: str, artifact: str = "contract WASM") -> None:
        super().__init__(artifact, detail)

    def _render(self) -> str:
        return f"Failed to parse {self.artifact}: {self.detail}"


class HostFaultError(TxsimError):
    """The execution host trapped while running a contract function."""

    code = ErrorCode.HOST_FAULT

    def __init__(self, offset: int, message: str = "trap") -> None:
        self.offset = offset
        super().__init__(message)


class HostEventRetrievalError(TxsimError):
    """The host could not hand back its diagnostic events."""

    code = ErrorCode.HOST_EVENTS


class RPCError(TxsimError):
    """An RPC endpoint answered with an error."""

    code = ErrorCode.RPC_ERROR


class RPCUnavailableError(RPCError):
    """No configured RPC endpoint could serve the request."""

    code = ErrorCode.RPC_UNAVAILABLE
