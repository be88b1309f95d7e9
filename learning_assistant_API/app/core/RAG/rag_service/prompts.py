"""
Prompt construction for the learning assistant.

Chat mode grounds the model in the retrieved sources; direct mode is the
legacy single-turn form with optional free-text context.
"""

from typing import Any, Dict, Optional, Sequence

from .text import clean_text
from .types import ContextItem, ConversationMessage, PageInfo


CHAT_SYSTEM_FRAMING = "\n".join([
    "You are the GBS EMEA Learning Assistant.",
    "You help employees learn and apply AI tools and recruiting best practices.",
    "Rules:",
    "- Use the provided sources first. If the answer is not covered, say so and offer general guidance.",
    "- Do not request or infer personal data. Avoid sensitive or confidential info.",
    "- Keep responses concise, structured, and practical.",
    '- When using sources, cite them inline as [1], [2], etc and end with a "Sources:" list.',
    "- If no sources apply, omit the Sources section.",
])

MAX_SOURCES = 5
MAX_TURNS = 10

# Length bounds applied before interpolation
PAGE_TITLE_MAX = 120
PAGE_URL_MAX = 200
SOURCE_TITLE_MAX = 120
SOURCE_URL_MAX = 240
SOURCE_SNIPPET_MAX = 800
TURN_CONTENT_MAX = 1200
DIRECT_MESSAGE_MAX = 6000
DIRECT_CONTEXT_MAX = 4000
SYSTEM_PROMPT_MAX = 5000


def _page_line(page: Optional[PageInfo]) -> str:
    if page is None or not (page.title or page.url):
        return ""
    return f"Current page: {clean_text(page.title, PAGE_TITLE_MAX)} ({clean_text(page.url, PAGE_URL_MAX)})"


def _sources_block(context: Sequence[ContextItem]) -> str:
    entries = []
    for index, item in enumerate(list(context)[:MAX_SOURCES], start=1):
        entries.append(
            f"Source {index}:\n"
            f"Title: {clean_text(item.title, SOURCE_TITLE_MAX)}\n"
            f"URL: {clean_text(item.url, SOURCE_URL_MAX)}\n"
            f"Snippet: {clean_text(item.snippet, SOURCE_SNIPPET_MAX)}"
        )
    return "\n\n".join(entries)


def _conversation_block(messages: Sequence[ConversationMessage]) -> str:
    return "\n".join(
        f"{(message.role or 'user').upper()}: {clean_text(message.content, TURN_CONTENT_MAX)}"
        for message in list(messages)[-MAX_TURNS:]
    )


def build_chat_prompt(
    messages: Sequence[ConversationMessage],
    context: Sequence[ContextItem],
    page: Optional[PageInfo] = None
) -> str:
    """
    Assemble the grounded chat prompt.

    Layout: framing and rules, optional current-page line, numbered sources
    (rank order, at most five), then the last ten turns as ``ROLE: content``.
    Empty sections are left out entirely.
    """
    sources_text = _sources_block(context)
    parts = [
        CHAT_SYSTEM_FRAMING,
        _page_line(page),
        f"Sources:\n{sources_text}" if sources_text else "",
        "Conversation:",
        _conversation_block(messages),
    ]
    return "\n\n".join(part for part in parts if part)


def build_direct_prompt(message: str, context: Optional[str] = None) -> str:
    message_part = clean_text(message, DIRECT_MESSAGE_MAX)
    context_part = clean_text(context, DIRECT_CONTEXT_MAX)
    if not context_part:
        return message_part
    return f"Context:\n{context_part}\n\nRequest:\n{message_part}"


def clamp_max_tokens(value: Any, default: int = 2048, minimum: int = 128, maximum: int = 4096) -> int:
    """Coerce a caller-supplied token budget into ``[minimum, maximum]``."""
    try:
        requested = int(float(value))
    except (TypeError, ValueError, OverflowError):
        requested = 0
    if requested == 0:
        requested = default
    return min(maximum, max(minimum, requested))


def build_generation_payload(
    prompt: str,
    max_output_tokens: int,
    system_prompt: Optional[str] = None,
    temperature: float = 0.4,
    top_k: int = 40,
    top_p: float = 0.9
) -> Dict[str, Any]:
    """Wrap a prompt in the provider's generateContent request body."""
    payload: Dict[str, Any] = {
        "contents": [{"role": "user", "parts": [{"text": prompt}]}],
        "generationConfig": {
            "temperature": temperature,
            "topK": top_k,
            "topP": top_p,
            "maxOutputTokens": max_output_tokens,
        },
    }
    if system_prompt:
        payload["systemInstruction"] = {"parts": [{"text": system_prompt}]}
    return payload
