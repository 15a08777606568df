"""Event schema definitions for Anky session lifecycle events.

Every chain log is delivered in a common envelope:
{
    "block_number": 24905600,
    "block_timestamp": 1732800000,
    "tx_hash": "0x...",
    "tx_from": "0x...",
    "log_index": 3,
    "args": { ... decoded event arguments, camelCase as in the contract ABI ... }
}

``parse_event`` validates the envelope and folds the arguments it needs into
one flat, typed event per kind. Integer arguments may arrive as decimal
strings (uint256 values do not fit JSON numbers safely).
"""

from __future__ import annotations

from enum import Enum
from typing import Any, ClassVar, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Ids and epoch values land in BIGINT columns.
MAX_INT64 = 2**63 - 1


class EventType(str, Enum):
    """All consumed contract event kinds."""

    SESSION_STARTED = "session_started"
    SESSION_ENDED_ABRUPTLY = "session_ended_abruptly"
    SESSION_ENDED = "session_ended"
    ANKY_WRITTEN = "anky_written"
    ANKY_MINTED = "anky_minted"


class EventEnvelope(BaseModel):
    """Block/transaction context shared by all events."""

    block_number: int = Field(0, ge=0, le=MAX_INT64)
    block_timestamp: int = Field(ge=0, le=MAX_INT64)
    tx_hash: str = ""
    tx_from: str = ""
    log_index: int = 0
    args: dict[str, Any] = Field(default_factory=dict)


class _LifecycleEvent(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    kind: ClassVar[EventType]


class SessionStarted(_LifecycleEvent):
    kind: ClassVar[EventType] = EventType.SESSION_STARTED

    fid: int = Field(ge=0, le=MAX_INT64)
    session_id: str = Field(alias="sessionId")
    start_time: int = Field(alias="startTime", ge=0, le=MAX_INT64)


class SessionEndedAbruptly(_LifecycleEvent):
    kind: ClassVar[EventType] = EventType.SESSION_ENDED_ABRUPTLY

    fid: int = Field(ge=0, le=MAX_INT64)
    session_id: str = Field(alias="sessionId")
    block_timestamp: int


class SessionEnded(_LifecycleEvent):
    kind: ClassVar[EventType] = EventType.SESSION_ENDED

    fid: int = Field(ge=0, le=MAX_INT64)
    is_anky: bool = Field(alias="isAnky")
    block_timestamp: int
    block_number: int | None = None


class AnkyWritten(_LifecycleEvent):
    kind: ClassVar[EventType] = EventType.ANKY_WRITTEN

    fid: int = Field(ge=0, le=MAX_INT64)
    session_id: str = Field(alias="sessionId")
    ipfs_hash: str = Field(alias="ipfsHash")
    written_at: int = Field(alias="writtenAt", ge=0, le=MAX_INT64)


class AnkyMinted(_LifecycleEvent):
    kind: ClassVar[EventType] = EventType.ANKY_MINTED

    fid: int = Field(ge=0, le=MAX_INT64)
    metadata_ipfs_hash: str = Field(alias="ipfsHash")
    token_id: str = Field(alias="tokenId")
    tx_from: str
    block_timestamp: int

    @field_validator("token_id", mode="before")
    @classmethod
    def _token_id_decimal(cls, value: Any) -> str:
        """Normalize int/str token ids to a canonical decimal string."""
        if isinstance(value, bool):
            raise ValueError("tokenId must be an integer")
        try:
            number = int(str(value), 0) if isinstance(value, str) else int(value)
        except (TypeError, ValueError) as e:
            raise ValueError(f"tokenId is not an integer: {value!r}") from e
        if number < 0:
            raise ValueError("tokenId must be non-negative")
        return str(number)


LifecycleEvent = Union[SessionStarted, SessionEndedAbruptly, SessionEnded, AnkyWritten, AnkyMinted]

EVENT_MODELS: dict[EventType, type[_LifecycleEvent]] = {
    EventType.SESSION_STARTED: SessionStarted,
    EventType.SESSION_ENDED_ABRUPTLY: SessionEndedAbruptly,
    EventType.SESSION_ENDED: SessionEnded,
    EventType.ANKY_WRITTEN: AnkyWritten,
    EventType.ANKY_MINTED: AnkyMinted,
}


def parse_event(kind: str | EventType, payload: dict[str, Any]) -> LifecycleEvent:
    """Validate an envelope payload into the typed event for ``kind``.

    Raises:
        ValueError: unknown event kind.
        pydantic.ValidationError: malformed envelope or arguments.
    """
    event_type = EventType(kind)
    envelope = EventEnvelope.model_validate(payload)
    fields = {
        "block_number": envelope.block_number or None,
        "block_timestamp": envelope.block_timestamp,
        "tx_from": envelope.tx_from,
        **envelope.args,
    }
    return EVENT_MODELS[event_type].model_validate(fields)  # type: ignore[return-value]
