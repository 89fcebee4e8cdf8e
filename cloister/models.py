"""Pydantic models matching the frontend session types."""
from __future__ import annotations

from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

MessageType = Literal["user", "assistant"]
SessionStatus = Literal["awaiting", "working", "idle"]
WatcherEventType = Literal["message", "status", "error"]

# ── Content blocks ──────────────────────────────────────────────────


class _Block(BaseModel):
    model_config = ConfigDict(frozen=True)


class TextBlock(_Block):
    type: Literal["text"] = "text"
    text: str


class ToolUseBlock(_Block):
    type: Literal["tool_use"] = "tool_use"
    id: str = ""
    name: str = ""
    input: dict[str, Any] = Field(default_factory=dict)


class ToolResultBlock(_Block):
    type: Literal["tool_result"] = "tool_result"
    tool_use_id: str = ""
    content: Union[str, list[TextBlock]] = ""
    is_error: bool = False


class ThinkingBlock(_Block):
    type: Literal["thinking"] = "thinking"
    thinking: str = ""


ContentBlock = Annotated[
    Union[TextBlock, ToolUseBlock, ToolResultBlock, ThinkingBlock],
    Field(discriminator="type"),
]

# ── Session-related models ──────────────────────────────────────────


class Message(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    type: MessageType  # speaker role
    timestamp: str
    content: list[ContentBlock] = Field(default_factory=list)


class Session(BaseModel):
    id: str
    project: str
    projectName: str
    title: str
    timestamp: str
    lastModified: str
    messageCount: int = 0
    tags: list[str] = Field(default_factory=list)
    status: SessionStatus = "idle"
    filePath: str
    # Chain information for related sessions
    chainId: Optional[str] = None
    chainIndex: Optional[int] = None  # 0 = most recent (head)
    chainLength: Optional[int] = None

    @model_validator(mode="after")
    def _chain_fields_together(self) -> "Session":
        present = [v is not None for v in (self.chainId, self.chainIndex, self.chainLength)]
        if any(present) and not all(present):
            raise ValueError("chainId, chainIndex and chainLength must be set together")
        return self


class SessionDetail(Session):
    messages: list[Message] = Field(default_factory=list)


class ProjectSummary(BaseModel):
    name: str
    path: str
    count: int = 0


# ── Live updates ───────────────────────────────────────────────────


class WatcherEvent(BaseModel):
    sessionId: str
    type: WatcherEventType
    data: Any = None  # Message | status label | error text

    def payload(self) -> Any:
        """JSON-ready body for the event stream."""
        if isinstance(self.data, BaseModel):
            return self.data.model_dump(mode="json")
        if self.type == "status":
            return {"status": self.data}
        if self.type == "error":
            return {"error": self.data}
        return self.data
