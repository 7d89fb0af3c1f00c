"""Request, response and stream event models for the gateway."""

from datetime import datetime
from typing import Any, ClassVar, Dict, List, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from stream_gateway.pricing import UsageRecord, format_cost


class ChatMessage(BaseModel):
    """A single message in a chat conversation."""

    model_config = ConfigDict(frozen=True)

    role: str
    content: str


class ProviderConfig(BaseModel):
    """Provider-specific pass-through: extra request headers and body fields."""

    model_config = ConfigDict(frozen=True)

    headers: Dict[str, str] = Field(default_factory=dict)
    body: Dict[str, Any] = Field(default_factory=dict)


class ChatRequest(BaseModel):
    """Incoming chat request from the client."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    messages: List[ChatMessage] = Field(
        ..., min_length=1, description="Conversation messages"
    )
    system: Optional[str] = Field(default=None, description="System prompt")
    stream: bool = False
    verbose: bool = Field(
        default=False, description="Attach the raw provider response"
    )
    provider_config: ProviderConfig = Field(
        default_factory=ProviderConfig,
        validation_alias=AliasChoices("provider_config", "anthropic_config"),
    )

    def validate_system_prompt(self) -> bool:
        """Return True if the system prompt is placed legally.

        A system-role message may appear at most once, only as the first
        message, and never together with the top-level ``system`` field.
        """
        positions = [i for i, m in enumerate(self.messages) if m.role == "system"]
        if not positions:
            return True
        if self.system is not None:
            return False
        return positions == [0]

    def get_system_prompt(self) -> Optional[str]:
        if self.system is not None:
            return self.system
        if self.messages[0].role == "system":
            return self.messages[0].content
        return None

    def get_conversation(self) -> List[ChatMessage]:
        """Return the messages to forward upstream, without system entries."""
        return [m for m in self.messages if m.role != "system"]


class ContentBlock(BaseModel):
    """One unit of generated output.

    ``text`` is always present (empty when unused). ``thinking``,
    ``signature`` and ``data`` are omitted from the wire when unused.
    """

    content_type: str
    text: str = ""
    thinking: Optional[str] = None
    signature: Optional[str] = None
    data: Optional[str] = None


class UsageBreakdown(BaseModel):
    """Token counts and cost for the upstream call."""

    input_tokens: int = 0
    output_tokens: int = 0
    cached_write_tokens: int = 0
    cached_read_tokens: int = 0
    total_tokens: int = 0
    total_cost: str = "$0.000"


class CombinedUsage(BaseModel):
    """Usage object returned to the client."""

    total_cost: str
    breakdown: UsageBreakdown

    @classmethod
    def from_record(cls, record: UsageRecord) -> "CombinedUsage":
        cost = format_cost(record.total_cost)
        return cls(
            total_cost=cost,
            breakdown=UsageBreakdown(
                input_tokens=record.input_tokens,
                output_tokens=record.output_tokens,
                cached_write_tokens=record.cache_write_tokens,
                cached_read_tokens=record.cache_read_tokens,
                total_tokens=record.total_tokens,
                total_cost=cost,
            ),
        )


class ExternalApiResponse(BaseModel):
    """Raw upstream response, attached when the caller asks for verbose output."""

    status: int
    headers: Dict[str, str] = Field(default_factory=dict)
    body: Any = None


class ChatResponse(BaseModel):
    """Aggregated non-streaming response."""

    created: datetime
    content: List[ContentBlock]
    provider_response: Optional[ExternalApiResponse] = None
    usage: CombinedUsage


class ErrorDetail(BaseModel):
    """Structured error detail."""

    type: str
    message: str


class ErrorResponse(BaseModel):
    """Error response envelope."""

    error: ErrorDetail


# --- Downstream stream events ---


class _StreamEventBase(BaseModel):
    type: str
    terminal: ClassVar[bool] = False

    def to_sse(self) -> Dict[str, str]:
        """Render as an sse-starlette event dict (event name + JSON data)."""
        return {
            "event": self.type,
            "data": self.model_dump_json(exclude_none=True),
        }


class StartEvent(_StreamEventBase):
    type: Literal["start"] = "start"
    created: datetime


class ContentEvent(_StreamEventBase):
    type: Literal["content"] = "content"
    content: List[ContentBlock]


class UsageEvent(_StreamEventBase):
    type: Literal["usage"] = "usage"
    usage: CombinedUsage


class MessageStopEvent(_StreamEventBase):
    type: Literal["message_stop"] = "message_stop"


class ErrorEvent(_StreamEventBase):
    type: Literal["error"] = "error"
    terminal: ClassVar[bool] = True
    message: str
    code: int = 500


class DoneEvent(_StreamEventBase):
    type: Literal["done"] = "done"
    terminal: ClassVar[bool] = True


StreamEvent = Union[
    StartEvent, ContentEvent, UsageEvent, MessageStopEvent, ErrorEvent, DoneEvent
]
