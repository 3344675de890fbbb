from pydantic import BaseModel, ConfigDict, Field
from typing import List, Literal, Optional


class ChatMessage(BaseModel):
    role: str
    content: str = ""


class ChatRequestContext(BaseModel):
    model_config = ConfigDict(extra="allow")

    sessionId: Optional[str] = None
    userId: Optional[str] = None


class ChatRequest(BaseModel):
    """Body of POST /api/chats/stream (AI chat protocol shape)."""
    messages: List[ChatMessage] = Field(default_factory=list)
    context: Optional[ChatRequestContext] = None

    @property
    def question(self) -> str:
        return self.messages[-1].content if self.messages else ""

    @property
    def session_id(self) -> Optional[str]:
        return self.context.sessionId if self.context else None


class ChatDelta(BaseModel):
    content: str
    role: Literal["assistant"] = "assistant"


class ChatDeltaContext(BaseModel):
    sessionId: str


class ChatCompletionDelta(BaseModel):
    """One NDJSON line of the streamed chat response."""
    delta: ChatDelta
    context: ChatDeltaContext

    @classmethod
    def build(cls, session_id: str, content: str) -> "ChatCompletionDelta":
        return cls(delta=ChatDelta(content=content), context=ChatDeltaContext(sessionId=session_id))

    def to_ndjson(self) -> str:
        return self.model_dump_json() + "\n"


class ChatSessionItem(BaseModel):
    id: str
    title: Optional[str] = None


class ChatSessionMessage(BaseModel):
    role: str
    content: str
