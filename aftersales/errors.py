"""
Error Taxonomy
==============
Failures are returned as values, not raised, wherever they would otherwise
cross the tool boundary. A Failure always carries a short human-readable
message; `detail` holds advisory diagnostics (raw bodies, exception text) that
is logged but never shown in place of the message.
"""
from enum import Enum

from pydantic import BaseModel


class ErrorKind(str, Enum):
    NOT_FOUND      = "not_found"        # code missing, or failure envelope on lookup
    TRANSIENT      = "transient_error"  # network, non-JSON, malformed JSON
    POLICY         = "policy_error"     # parseable but inconsistent state
    SECURITY_BLOCK = "security_block"   # gate denial
    VALIDATION     = "validation_error" # tool input failed its schema


class Failure(BaseModel):
    kind: ErrorKind
    message: str
    status_code: int | None = None
    detail: str | None = None

    @property
    def retriable(self) -> bool:
        return self.kind is ErrorKind.TRANSIENT
