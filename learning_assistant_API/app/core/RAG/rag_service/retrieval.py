"""
Lexical retrieval for the learning assistant.

Retrieval runs successive matching "cycles" over the in-memory corpus, from
strict (literal phrase and query tokens) to relaxed (expanded vocabulary and
recent conversation). Candidates from every cycle are merged, re-scored
against the literal query, and the best few become the prompt's sources.
When nothing qualifies, the context the client sent along is used instead.
"""

import math
from typing import Dict, Iterable, List, Optional, Sequence

from loguru import logger

from .config import RetrievalConfig
from .corpus import CorpusLoader
from .text import (
    clean_text, expand_tokens, make_snippet, normalize_url, remove_stop_words,
    sanitize_query, tokenize
)
from .types import (
    ContextItem, ConversationMessage, Document, RetrievalDiagnostics,
    RetrievalResult, ScoredCandidate, SearchCycle
)


# Score weights
PHRASE_MIN_LENGTH = 4
PHRASE_TITLE_WEIGHT = 8
PHRASE_BODY_WEIGHT = 5
TOKEN_TITLE_WEIGHT = 4
TOKEN_KEYWORDS_WEIGHT = 3
TOKEN_SNIPPET_WEIGHT = 2
TOKEN_BODY_WEIGHT = 1


def latest_user_text(messages: Sequence[ConversationMessage]) -> str:
    for message in reversed(messages):
        if message.is_user:
            return clean_text(message.content, 1200)
    return ""


def sanitize_client_context(context: Optional[Iterable[ContextItem]], limit: int = 5) -> List[ContextItem]:
    """
    Bound and clean context items supplied by the caller.

    Only the first ``limit`` items are considered; items left with neither a
    usable URL nor a snippet are dropped.
    """
    if not context:
        return []
    sanitized = []
    for item in list(context)[:limit]:
        cleaned = ContextItem(
            title=clean_text(item.title, 140) or "Untitled",
            url=normalize_url(item.url),
            snippet=make_snippet(item.snippet, 800),
        )
        if cleaned.url or cleaned.snippet:
            sanitized.append(cleaned)
    return sanitized


def score_document(document: Document, cycle: SearchCycle) -> int:
    """
    Score one document against one cycle.

    A phrase of at least four characters earns +8 in the title and +5 in the
    body or snippet. Each token earns +4 (title), +3 (keywords), +2 (snippet)
    and +1 (body). All matches are case-insensitive substring matches.
    """
    title = document.title.lower()
    text = document.full_text.lower()
    if not title and not text:
        return 0
    keywords = document.keywords.lower()
    snippet = document.snippet.lower()

    score = 0
    phrase = cycle.phrase
    if phrase and len(phrase) >= PHRASE_MIN_LENGTH:
        if phrase in title:
            score += PHRASE_TITLE_WEIGHT
        if phrase in text or phrase in snippet:
            score += PHRASE_BODY_WEIGHT

    for token in cycle.tokens:
        if token in title:
            score += TOKEN_TITLE_WEIGHT
        if token in keywords:
            score += TOKEN_KEYWORDS_WEIGHT
        if token in snippet:
            score += TOKEN_SNIPPET_WEIGHT
        if token in text:
            score += TOKEN_BODY_WEIGHT

    return score


class LexicalRetriever:
    """
    Multi-cycle lexical retriever over the memoized corpus.

    The retriever holds no per-request state; the corpus loader it wraps is
    shared for the lifetime of the process.
    """

    def __init__(self, corpus: CorpusLoader, config: Optional[RetrievalConfig] = None):
        self.corpus = corpus
        self.config = config or RetrievalConfig()

    def build_cycles(self, query: str, messages: Sequence[ConversationMessage]) -> List[SearchCycle]:
        """Build the strict, expanded and blended cycles, skipping empty ones."""
        phrase = sanitize_query(query, self.config.max_query_length).lower()
        base_tokens = remove_stop_words(tokenize(phrase))
        expanded = expand_tokens(base_tokens)

        recent_user_turns = [m for m in messages if m.is_user][-self.config.conversation_turns:]
        recent_text = " ".join(clean_text(m.content, 200) for m in recent_user_turns)
        conversation_tokens = remove_stop_words(tokenize(recent_text))
        blended = list(dict.fromkeys(expanded + conversation_tokens))

        cycles = [
            SearchCycle("strict", phrase, base_tokens, self.config.strict_min_score),
            SearchCycle("expanded", "", expanded, self.config.expanded_min_score),
            SearchCycle("blended", "", blended, self.config.blended_min_score),
        ]
        return [cycle for cycle in cycles if not cycle.is_empty]

    def run_cycle(self, documents: Sequence[Document], cycle: SearchCycle) -> List[ScoredCandidate]:
        hits = []
        for document in documents:
            score = score_document(document, cycle)
            if score >= cycle.min_score:
                hits.append(ScoredCandidate(document=document, score=score, origin_cycle=cycle.name))
        hits.sort(key=lambda hit: hit.score, reverse=True)
        return hits[:self.config.candidate_limit]

    def rank(self, candidates: Iterable[ScoredCandidate], strict_cycle: SearchCycle) -> List[ScoredCandidate]:
        """Add the literal-query tie-break bonus and keep the best ``source_limit``."""
        ranked = []
        for candidate in candidates:
            recheck = score_document(candidate.document, strict_cycle)
            candidate.final_score = candidate.score + math.floor(recheck * self.config.recheck_weight)
            ranked.append(candidate)
        ranked.sort(key=lambda candidate: candidate.final_score, reverse=True)
        return ranked[:self.config.source_limit]

    async def retrieve(
        self,
        query: Optional[str],
        messages: Sequence[ConversationMessage] = (),
        client_context: Optional[Iterable[ContextItem]] = None
    ) -> RetrievalResult:
        """
        Find the sources for a question.

        Args:
            query: Explicit query; falls back to the latest user message
            messages: Conversation so far, oldest first
            client_context: Context items the caller supplied, used when
                retrieval finds nothing

        Returns:
            RetrievalResult with at most ``source_limit`` context items and
            the diagnostics the response echoes back
        """
        limit = self.config.source_limit
        safe_query = sanitize_query(query or latest_user_text(messages), self.config.max_query_length)
        fallback = sanitize_client_context(client_context, limit)

        if not safe_query:
            logger.debug(f"Empty retrieval query; using {len(fallback)} client context item(s)")
            return RetrievalResult(
                context=fallback,
                diagnostics=RetrievalDiagnostics(
                    cycles_used=0,
                    candidate_count=0,
                    source_count=len(fallback),
                    used_client_fallback=len(fallback) > 0,
                ),
            )

        documents = await self.corpus.get_documents()
        cycles = self.build_cycles(safe_query, messages)
        candidates: Dict[str, ScoredCandidate] = {}
        cycles_used = 0

        for cycle in cycles:
            cycles_used += 1
            for hit in self.run_cycle(documents, cycle):
                key = hit.document.identity
                current = candidates.get(key)
                if current is None or hit.score > current.score:
                    candidates[key] = hit

            if len(candidates) >= self.config.cycle_exit_threshold:
                break

        strict_cycle = cycles[0] if cycles else SearchCycle("strict", safe_query.lower(), tokenize(safe_query), 1)
        ranked = []
        for candidate in self.rank(candidates.values(), strict_cycle):
            item = ContextItem(
                title=clean_text(candidate.document.title, 140),
                url=normalize_url(candidate.document.url),
                snippet=make_snippet(candidate.document.snippet or candidate.document.full_text, 800),
            )
            if item.url or item.snippet:
                ranked.append(item)

        context = ranked or fallback
        diagnostics = RetrievalDiagnostics(
            cycles_used=cycles_used,
            candidate_count=len(candidates),
            source_count=len(context),
            used_client_fallback=not ranked and len(fallback) > 0,
        )
        logger.debug(
            f"Retrieval for '{safe_query[:60]}': cycles={diagnostics.cycles_used} "
            f"candidates={diagnostics.candidate_count} sources={diagnostics.source_count} "
            f"fallback={diagnostics.used_client_fallback}"
        )
        return RetrievalResult(context=context, diagnostics=diagnostics)
