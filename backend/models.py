"""
Pydantic models for memo records and request/response validation.
"""
from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Any, Optional, Sequence

from domain.constants import DEFAULT_MESSAGE, DEFAULT_NAME
from domain.enums import ActionOutcome, SessionState


class ApiBase(BaseModel):
    """Shared base for API models — allows construction by Python name or alias."""
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)


# ── Memo Records ────────────────────────────────────────────────────

class MemoRecord(ApiBase):
    """
    One tip record emitted by the contract.

    Immutable once created. Historical tuples from getMemos() and live
    NewMemo event args are both converted through the classmethods below.
    """
    model_config = ConfigDict(populate_by_name=True, from_attributes=True, frozen=True)

    sender: str = Field(..., alias="address", description="Tipper wallet address")
    name: str = Field(default=DEFAULT_NAME)
    message: str = Field(default=DEFAULT_MESSAGE)
    timestamp: int = Field(..., ge=0, description="Block timestamp, seconds since epoch")

    @field_validator("name", mode="before")
    @classmethod
    def _default_name(cls, v: Any) -> str:
        return v or DEFAULT_NAME

    @field_validator("message", mode="before")
    @classmethod
    def _default_message(cls, v: Any) -> str:
        return v or DEFAULT_MESSAGE

    @classmethod
    def from_tuple(cls, raw: Sequence[Any]) -> "MemoRecord":
        """Build from a Memo struct tuple: (from, timestamp, name, message)."""
        sender, timestamp, name, message = raw
        return cls(sender=sender, timestamp=int(timestamp), name=name, message=message)

    @classmethod
    def from_event_args(cls, args: Any) -> "MemoRecord":
        """Build from NewMemo event args (mapping with from/timestamp/name/message)."""
        return cls(
            sender=args["from"],
            timestamp=int(args["timestamp"]),
            name=args["name"],
            message=args["message"],
        )

    @property
    def identity(self) -> tuple[str, int, str, str]:
        """Synthetic key; the contract assigns memos no identifier of their own."""
        return (self.sender.lower(), self.timestamp, self.name, self.message)


# ── Requests ────────────────────────────────────────────────────────

class SubmitTipRequest(ApiBase):
    """Tip form. Empty fields are replaced by defaults, never rejected."""
    name: str = Field(default="", max_length=256)
    message: str = Field(default="", max_length=2048)


# ── Responses ───────────────────────────────────────────────────────

class ActionResult(ApiBase):
    """Result of a state-changing user action."""
    outcome: ActionOutcome
    tx_hash: Optional[str] = Field(default=None, alias="txHash")
    detail: Optional[str] = None


class SessionStatusResponse(ApiBase):
    """Snapshot of the controller for the page."""
    state: SessionState
    account: Optional[str] = None
    owner: Optional[str] = None
    is_owner: bool = Field(False, alias="isOwner")
    contract_address: str = Field(..., alias="contractAddress")
    historical_loading: bool = Field(False, alias="historicalLoading")
    live_subscribed: bool = Field(False, alias="liveSubscribed")
    memo_count: int = Field(0, alias="memoCount")
