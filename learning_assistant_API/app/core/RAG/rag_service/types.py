"""
Type definitions for the learning assistant RAG service.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Dict, Any, Protocol


class DocumentType(str, Enum):
    """Kinds of corpus entries, one per source file."""
    PROMPT = "prompt"
    ASSET = "asset"
    STAGE = "stage"
    ACADEMY = "academy"
    ACADEMY_WEEK = "academy-week"
    INDEX = "index-fallback"


@dataclass(frozen=True)
class Document:
    """
    A searchable corpus entry.

    All source kinds are normalized to this shape when the corpus is built.
    Documents never change after load.
    """
    id: str
    title: str
    url: str
    full_text: str
    snippet: str = ""
    keywords: str = ""
    type: str = ""

    @property
    def identity(self) -> str:
        """Key used to merge candidates across cycles."""
        return f"{self.id}|{self.url}"


@dataclass
class SearchCycle:
    """One lexical matching pass with its own tokens and score threshold."""
    name: str
    phrase: str
    tokens: List[str]
    min_score: int

    @property
    def is_empty(self) -> bool:
        return not self.phrase and not self.tokens


@dataclass
class ScoredCandidate:
    """A document that met at least one cycle's threshold."""
    document: Document
    score: int
    origin_cycle: str
    final_score: int = 0


@dataclass
class ConversationMessage:
    role: str
    content: str

    @property
    def is_user(self) -> bool:
        return self.role.lower() == "user"


@dataclass
class ContextItem:
    """A source passed to the prompt and echoed back to the caller."""
    title: str
    url: str
    snippet: str

    def to_dict(self) -> Dict[str, str]:
        return {"title": self.title, "url": self.url, "snippet": self.snippet}


@dataclass
class PageInfo:
    title: str = ""
    url: str = ""


@dataclass
class RetrievalDiagnostics:
    cycles_used: int = 0
    candidate_count: int = 0
    source_count: int = 0
    used_client_fallback: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cyclesUsed": self.cycles_used,
            "candidateCount": self.candidate_count,
            "sourceCount": self.source_count,
            "usedClientFallback": self.used_client_fallback,
        }


@dataclass
class RetrievalResult:
    context: List[ContextItem]
    diagnostics: RetrievalDiagnostics


@dataclass
class AssistantReply:
    """
    A successful gateway answer.

    ``body`` is what gets cached; ``cache_status`` is stamped per response.
    """
    reply: str
    sources: List[ContextItem] = field(default_factory=list)
    diagnostics: RetrievalDiagnostics = field(default_factory=RetrievalDiagnostics)
    cache_status: str = "MISS"

    def body(self) -> Dict[str, Any]:
        return {
            "reply": self.reply,
            "response": self.reply,
            "text": self.reply,
            "message": self.reply,
            "sources": [item.to_dict() for item in self.sources],
            "retrieval": self.diagnostics.to_dict(),
        }

    def to_response_body(self) -> Dict[str, Any]:
        payload = self.body()
        payload["cache"] = self.cache_status
        return payload


# Protocol definitions for the injected services

class ModelClient(Protocol):
    """Protocol for the upstream model provider."""
    async def generate(self, api_key: str, model: str, payload: Dict[str, Any]) -> str:
        """Return the reply text for a provider-ready payload."""
        ...

    async def aclose(self) -> None:
        ...
