"""
Data Model
==========
Typed records shared by the client, policy engine, gate, registry and store.

AccessCodeInfo mirrors the remote JSON (camelCase on the wire, snake_case in
Python). It is frozen: a fetched snapshot is never edited, only replaced by a
fresh fetch.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AccessCodeInfo(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    code: str
    uses_remaining: int = Field(alias="usesRemaining", ge=0)
    is_active: bool = Field(alias="isActive")
    # Free-form label reported as-is (e.g. "standard").
    processing_mode: str = Field(alias="processingMode")
    initial_uses: int | None = Field(default=None, alias="initialUses", gt=0)


class RefundEvaluation(BaseModel):
    model_config = ConfigDict(frozen=True)

    eligible: bool
    refund_percentage: int = Field(ge=0, le=100)
    refund_amount: float
    reason: str
    initial_uses: int
    used_times: int
    remaining_uses: int
    total_price: float
    anomaly: str | None = None


class SessionMode(str, Enum):
    QUERY = "query"
    CHAT  = "chat"


class Session(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    mode: SessionMode
    created_at: datetime = Field(default_factory=utcnow, alias="createdAt")
    last_accessed_at: datetime = Field(default_factory=utcnow, alias="lastAccessedAt")


class HistoryEntry(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: str


class ToolInvocationRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    tool_name: str
    tool_input: dict[str, Any] = Field(default_factory=dict)
