"""
Text normalization helpers shared by the corpus loader, retriever and prompt
builder.

Every string that comes from outside the process goes through one of the
sanitizers here before it is tokenized, scored, or echoed back.
"""

import re
import unicodedata
from typing import Any, Iterable, List, Optional


STOP_WORDS = frozenset({
    'a', 'an', 'and', 'are', 'as', 'at', 'be', 'by', 'for', 'from', 'how', 'i',
    'in', 'is', 'it', 'of', 'on', 'or', 'that', 'the', 'to', 'was', 'what', 'when',
    'where', 'which', 'who', 'why', 'with', 'you', 'your',
})

# Static domain vocabulary used to widen recall beyond the literal query.
TERM_EXPANSIONS = {
    'ai': ['artificial intelligence', 'genai', 'llm'],
    'prompt': ['prompts', 'template', 'templates'],
    'sourcing': ['source', 'boolean', 'talent search'],
    'screen': ['screening', 'truth check', 'pre-hm'],
    'submission': ['confidence pack', 'shortlist'],
    'governance': ['policy', 'compliance', 'gdpr'],
    'training': ['academy', 'program', 'learning'],
    'metrics': ['telemetry', 'analytics', 'kpi'],
}

_WHITESPACE_RE = re.compile(r"\s+")
_CONTROL_RE = re.compile(r"[\x00-\x1f\x7f]")
_UNSAFE_QUERY_CHARS_RE = re.compile(r"[<>`\"'\\]")
_URL_SCHEME_RE = re.compile(r"^https?://", re.IGNORECASE)


def clean_text(value: Any, max_len: Optional[int] = None) -> str:
    """Collapse whitespace, trim, and truncate. ``None`` becomes an empty string."""
    if value is None:
        return ""
    text = _WHITESPACE_RE.sub(" ", str(value)).strip()
    if max_len and len(text) > max_len:
        return text[:max_len]
    return text


def sanitize_query(value: Any, max_len: int = 180) -> str:
    """
    Make an external string safe to tokenize, score, and echo back.

    Args:
        value: Raw input (anything; ``None`` yields "")
        max_len: Maximum length of the result

    Returns:
        NFKC-normalized text with control and markup-significant characters
        replaced by spaces, whitespace collapsed, trimmed and truncated.
    """
    text = unicodedata.normalize("NFKC", str(value or ""))
    text = _CONTROL_RE.sub(" ", text)
    text = _UNSAFE_QUERY_CHARS_RE.sub(" ", text)
    text = _WHITESPACE_RE.sub(" ", text).strip()
    return text[:max_len]


def tokenize(text: Any) -> List[str]:
    """Lower-case, keep letters and digits only, split, drop 1-char tokens."""
    lowered = str(text or "").lower()
    # \w also matches "_", which is punctuation here
    stripped = "".join(ch if ch.isalnum() or ch.isspace() else " " for ch in lowered)
    return [token for token in stripped.split() if len(token) > 1]


def remove_stop_words(tokens: Iterable[str]) -> List[str]:
    return [token for token in tokens if token not in STOP_WORDS]


def expand_tokens(tokens: Iterable[str]) -> List[str]:
    """
    Union the tokens with the tokenized synonyms of any token in the expansion
    table. Original tokens are always kept and order is preserved.
    """
    tokens = list(tokens)
    expanded = dict.fromkeys(tokens)
    for token in tokens:
        for term in TERM_EXPANSIONS.get(token, ()):
            for extra in tokenize(term):
                expanded.setdefault(extra)
    return list(expanded)


def normalize_url(url: Any) -> str:
    """Keep site-relative and http(s) URLs; anything else becomes ""."""
    raw = clean_text(url, 240)
    if not raw:
        return ""
    if raw.startswith("/"):
        return raw
    if _URL_SCHEME_RE.match(raw):
        return raw
    return ""


def make_snippet(text: Any, max_len: int = 800) -> str:
    flat = clean_text(text, max_len + 50)
    if len(flat) <= max_len:
        return flat
    return f"{flat[:max_len].strip()}..."
