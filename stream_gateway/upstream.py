"""Models for the upstream provider's Messages API.

Streaming events are a closed set of payload shapes discriminated by their
``type`` field. Event kinds this gateway does not know about parse into
UnknownEvent instead of failing, so new upstream event kinds pass through
the translator as no-ops.
"""

from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator


class UpstreamUsage(BaseModel):
    """Token counts as reported by the provider."""

    input_tokens: int = 0
    output_tokens: int = 0
    cache_creation_input_tokens: int = 0
    cache_read_input_tokens: int = 0

    @field_validator("*", mode="before")
    @classmethod
    def _null_as_zero(cls, value: Any) -> Any:
        return 0 if value is None else value


class UpstreamContentBlock(BaseModel):
    """A content block of a provider message (text, thinking, tool use...)."""

    model_config = ConfigDict(extra="allow")

    type: str
    text: Optional[str] = None
    thinking: Optional[str] = None
    signature: Optional[str] = None
    data: Optional[str] = None
    id: Optional[str] = None
    name: Optional[str] = None
    input: Optional[Any] = None


class UpstreamMessage(BaseModel):
    """A complete (or initial, when streaming) provider message."""

    model_config = ConfigDict(extra="allow")

    id: str = ""
    type: str = "message"
    role: str = "assistant"
    model: str = ""
    content: List[UpstreamContentBlock] = Field(default_factory=list)
    stop_reason: Optional[str] = None
    stop_sequence: Optional[str] = None
    usage: UpstreamUsage = Field(default_factory=UpstreamUsage)


class UpstreamDelta(BaseModel):
    """An incremental update to one content block."""

    type: str
    text: Optional[str] = None
    thinking: Optional[str] = None
    signature: Optional[str] = None
    partial_json: Optional[str] = None

    @property
    def kind(self) -> str:
        """Block kind the delta applies to (``thinking_delta`` -> ``thinking``)."""
        if self.type.endswith("_delta"):
            return self.type[: -len("_delta")]
        return self.type


class MessageStart(BaseModel):
    type: Literal["message_start"] = "message_start"
    message: UpstreamMessage


class ContentBlockStart(BaseModel):
    type: Literal["content_block_start"] = "content_block_start"
    index: int = 0
    content_block: UpstreamContentBlock


class ContentBlockDelta(BaseModel):
    type: Literal["content_block_delta"] = "content_block_delta"
    index: int = 0
    delta: UpstreamDelta


class ContentBlockStop(BaseModel):
    type: Literal["content_block_stop"] = "content_block_stop"
    index: int = 0


class MessageDelta(BaseModel):
    type: Literal["message_delta"] = "message_delta"
    delta: Dict[str, Any] = Field(default_factory=dict)
    usage: Optional[UpstreamUsage] = None


class MessageStop(BaseModel):
    type: Literal["message_stop"] = "message_stop"


class Ping(BaseModel):
    type: Literal["ping"] = "ping"


class UnknownEvent(BaseModel):
    """Any event kind not modelled above."""

    type: str
    payload: Dict[str, Any] = Field(default_factory=dict)


KnownEvent = Annotated[
    Union[
        MessageStart,
        ContentBlockStart,
        ContentBlockDelta,
        ContentBlockStop,
        MessageDelta,
        MessageStop,
        Ping,
    ],
    Field(discriminator="type"),
]

UpstreamEvent = Union[
    MessageStart,
    ContentBlockStart,
    ContentBlockDelta,
    ContentBlockStop,
    MessageDelta,
    MessageStop,
    Ping,
    UnknownEvent,
]

_KNOWN_EVENT_ADAPTER: TypeAdapter = TypeAdapter(KnownEvent)

KNOWN_EVENT_TYPES = frozenset(
    [
        "message_start",
        "content_block_start",
        "content_block_delta",
        "content_block_stop",
        "message_delta",
        "message_stop",
        "ping",
    ]
)


def parse_upstream_event(payload: Dict[str, Any]) -> UpstreamEvent:
    """Parse one decoded stream payload into its event model.

    Raises:
        pydantic.ValidationError: If a known event kind has a malformed body.
    """
    event_type = payload.get("type")
    if event_type not in KNOWN_EVENT_TYPES:
        return UnknownEvent(type=str(event_type), payload=payload)
    return _KNOWN_EVENT_ADAPTER.validate_python(payload)
