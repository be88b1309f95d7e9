# learning_assistant_schemas.py
# Description: Pydantic models for the learning assistant endpoint.
#
# The endpoint accepts two body shapes: chat mode (a non-empty ``messages``
# list) and the legacy direct mode (a single ``message``). Fields are parsed
# leniently; wrongly typed optional fields are treated as absent.
#
from typing import Any, List, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, field_validator

from learning_assistant_API.app.core.RAG.rag_service.types import ContextItem, ConversationMessage, PageInfo

MAX_MESSAGES_PER_REQUEST: int = 50


def _as_text(value: Any) -> str:
    if value is None or isinstance(value, (dict, list)):
        return ""
    return str(value)


# --- Request Sub-Models ---
class ChatMessage(BaseModel):
    role: str = "user"
    content: str = ""

    @field_validator("role", mode="before")
    @classmethod
    def _normalize_role(cls, value: Any) -> str:
        role = _as_text(value).strip().lower()
        return role if role in ("user", "assistant") else "user"

    @field_validator("content", mode="before")
    @classmethod
    def _content_text(cls, value: Any) -> str:
        return _as_text(value)

    def to_conversation(self) -> ConversationMessage:
        return ConversationMessage(role=self.role, content=self.content)


class ClientContextItem(BaseModel):
    model_config = ConfigDict(extra="ignore")

    title: str = ""
    url: str = ""
    snippet: str = ""
    description: str = ""

    @field_validator("title", "url", "snippet", "description", mode="before")
    @classmethod
    def _text(cls, value: Any) -> str:
        return _as_text(value)

    def to_context_item(self) -> ContextItem:
        return ContextItem(title=self.title, url=self.url, snippet=self.snippet or self.description)


class PageModel(BaseModel):
    model_config = ConfigDict(extra="ignore")

    title: str = ""
    url: str = ""

    @field_validator("title", "url", mode="before")
    @classmethod
    def _text(cls, value: Any) -> str:
        return _as_text(value)

    def to_page_info(self) -> PageInfo:
        return PageInfo(title=self.title, url=self.url)


# --- Request Model ---
class LearningAssistantRequest(BaseModel):
    """
    Body of ``POST /api/learning-assistant``.

    Chat mode: ``{messages, context?: [{title, url, snippet}], page?: {title, url}}``
    Direct mode: ``{message, context?: str, systemPrompt?: str, maxTokens?: int}``
    """
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    messages: List[ChatMessage] = Field(default_factory=list)
    context: Union[List[ClientContextItem], str, None] = None
    page: Optional[PageModel] = None
    message: str = ""
    system_prompt: str = Field("", alias="systemPrompt")
    max_tokens: Optional[Any] = Field(None, alias="maxTokens")

    @field_validator("messages", mode="before")
    @classmethod
    def _bounded_messages(cls, value: Any) -> List[Any]:
        if not isinstance(value, list):
            return []
        return [item for item in value if isinstance(item, dict)][-MAX_MESSAGES_PER_REQUEST:]

    @field_validator("context", mode="before")
    @classmethod
    def _context_shape(cls, value: Any) -> Any:
        if isinstance(value, list):
            return [item for item in value if isinstance(item, dict)]
        if isinstance(value, str):
            return value
        return None

    @field_validator("page", mode="before")
    @classmethod
    def _page_shape(cls, value: Any) -> Any:
        return value if isinstance(value, dict) else None

    @field_validator("message", "system_prompt", mode="before")
    @classmethod
    def _text(cls, value: Any) -> str:
        return _as_text(value)

    @property
    def is_chat_mode(self) -> bool:
        return len(self.messages) > 0

    def conversation(self) -> List[ConversationMessage]:
        return [message.to_conversation() for message in self.messages]

    def client_context(self) -> List[ContextItem]:
        if isinstance(self.context, list):
            return [item.to_context_item() for item in self.context]
        return []

    def direct_context(self) -> str:
        return self.context if isinstance(self.context, str) else ""

    def page_info(self) -> Optional[PageInfo]:
        return self.page.to_page_info() if self.page else None


# --- Response Models ---
class SourceItem(BaseModel):
    title: str
    url: str
    snippet: str


class RetrievalDiagnosticsModel(BaseModel):
    cyclesUsed: int
    candidateCount: int
    sourceCount: int
    usedClientFallback: bool


class LearningAssistantResponse(BaseModel):
    reply: str
    response: str
    text: str
    message: str
    sources: List[SourceItem]
    retrieval: RetrievalDiagnosticsModel
    cache: Literal["HIT", "MISS"]


class ErrorResponse(BaseModel):
    error: str
    details: Optional[str] = None
    retryAfterSeconds: Optional[int] = None
