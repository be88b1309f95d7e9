"""
Main application class that orchestrates the learning assistant.

``LearningAssistantApplication`` owns the process-wide services (corpus
loader, retriever, rate limiter, response cache and provider client). It is
constructed once at start-up and handed to every request.
"""

import os
from typing import Any, Dict, List, Optional, Sequence

from loguru import logger

from ..exceptions import ClientError, ConfigError, ConfigurationError, RateLimitedError
from learning_assistant_API.app.core.RateLimiting.Rate_Limit import (
    REQUEST_NAMESPACE, SEARCH_NAMESPACE, FixedWindowRateLimiter, limiter_key
)
from .cache import ResponseCache, make_cache_key
from .config import AssistantConfig
from .corpus import CorpusLoader
from .generation import GeminiClient
from .prompts import (
    SYSTEM_PROMPT_MAX, build_chat_prompt, build_direct_prompt, build_generation_payload,
    clamp_max_tokens
)
from .retrieval import LexicalRetriever, latest_user_text
from .text import clean_text
from .types import (
    AssistantReply, ContextItem, ConversationMessage, ModelClient, PageInfo,
    RetrievalDiagnostics
)


class LearningAssistantApplication:
    """
    Request pipeline for the learning assistant.

    Chat mode: search limit -> retrieval -> prompt -> cache -> provider.
    Direct mode: prompt -> cache -> provider.
    The endpoint-wide limit and the API key check are exposed separately so
    the HTTP layer can run them in its own order.
    """

    def __init__(
        self,
        config: Optional[AssistantConfig] = None,
        corpus: Optional[CorpusLoader] = None,
        model_client: Optional[ModelClient] = None,
        rate_limiter: Optional[FixedWindowRateLimiter] = None,
        cache: Optional[ResponseCache] = None
    ):
        """
        Initialize the application.

        Args:
            config: Pre-built configuration (defaults plus environment)
            corpus: Corpus loader; built from ``config.corpus`` when omitted
            model_client: Provider client; a ``GeminiClient`` when omitted
            rate_limiter: Shared limiter for both namespaces
            cache: Response cache; built from ``config.cache`` when omitted
        """
        if config is None:
            config = AssistantConfig.from_env()

        validation_errors = config.validate()
        if validation_errors:
            raise ConfigurationError(f"Invalid configuration: {', '.join(validation_errors)}")

        self.config = config
        # Injected services may be empty (and so falsy); compare against None
        self.corpus = corpus if corpus is not None else CorpusLoader(config.corpus)
        self.retriever = LexicalRetriever(self.corpus, config.retrieval)
        self.rate_limiter = rate_limiter if rate_limiter is not None else FixedWindowRateLimiter()
        if cache is None:
            cache = ResponseCache(
                max_size=config.cache.max_cache_size,
                ttl=config.cache.cache_ttl
            )
        self.cache = cache
        if model_client is None:
            model_client = GeminiClient(
                base_url=config.generator.base_url,
                timeout_seconds=config.generator.timeout_seconds
            )
        self.model_client: ModelClient = model_client

        logger.info(f"Learning assistant initialized (model={self.model})")

    @property
    def model(self) -> str:
        return clean_text(self.config.generator.model, 80)

    # --- Gates -------------------------------------------------------------

    def require_api_key(self) -> str:
        """Return the provider API key, or raise ConfigError (500) if none is set."""
        api_key = self.config.generator.api_key or os.environ.get("GEMINI_API_KEY")
        if not api_key:
            raise ConfigError("GEMINI_API_KEY is not configured")
        return api_key

    def check_request_limit(self, client_id: str) -> None:
        limits = self.config.rate_limit
        decision = self.rate_limiter.check(
            limiter_key(REQUEST_NAMESPACE, client_id),
            limits.request_max,
            limits.request_window_seconds
        )
        if not decision.allowed:
            raise RateLimitedError("Rate limit exceeded", decision.retry_after_seconds)

    def check_search_limit(self, client_id: str) -> None:
        limits = self.config.rate_limit
        decision = self.rate_limiter.check(
            limiter_key(SEARCH_NAMESPACE, client_id),
            limits.search_max,
            limits.search_window_seconds
        )
        if not decision.allowed:
            raise RateLimitedError("Search rate limit exceeded", decision.retry_after_seconds)

    # --- Modes -------------------------------------------------------------

    async def handle_chat(
        self,
        client_id: str,
        messages: Sequence[ConversationMessage],
        client_context: Optional[List[ContextItem]] = None,
        page: Optional[PageInfo] = None
    ) -> AssistantReply:
        """Answer a conversation, grounded in retrieved sources."""
        api_key = self.require_api_key()
        self.check_search_limit(client_id)

        retrieval = await self.retriever.retrieve(
            query=latest_user_text(messages),
            messages=messages,
            client_context=client_context
        )

        prompt = build_chat_prompt(messages, retrieval.context, page)
        cache_key = make_cache_key({"mode": "chat", "model": self.model, "prompt": prompt})
        cached = self._cached_reply(cache_key)
        if cached is not None:
            return cached

        generator = self.config.generator
        payload = build_generation_payload(
            prompt,
            max_output_tokens=generator.chat_max_output_tokens,
            temperature=generator.temperature,
            top_k=generator.top_k,
            top_p=generator.top_p
        )
        reply_text = await self.model_client.generate(api_key, self.model, payload)

        reply = AssistantReply(reply=reply_text, sources=retrieval.context, diagnostics=retrieval.diagnostics)
        self._store(cache_key, reply)
        return reply

    async def handle_direct(
        self,
        message: str,
        context: Optional[str] = None,
        system_prompt: Optional[str] = None,
        max_tokens: Any = None
    ) -> AssistantReply:
        """Answer a single legacy-style message with optional free-text context."""
        api_key = self.require_api_key()

        message = clean_text(message, 6000)
        if not message:
            raise ClientError("Messages or message are required")

        generator = self.config.generator
        system_prompt = clean_text(system_prompt, SYSTEM_PROMPT_MAX)
        max_output_tokens = clamp_max_tokens(
            max_tokens,
            default=generator.direct_default_max_tokens,
            minimum=generator.direct_min_tokens,
            maximum=generator.direct_max_tokens
        )
        prompt = build_direct_prompt(message, context)
        cache_key = make_cache_key({
            "mode": "direct",
            "model": self.model,
            "prompt": prompt,
            "system_prompt": system_prompt,
            "max_tokens": max_output_tokens,
        })
        cached = self._cached_reply(cache_key)
        if cached is not None:
            return cached

        payload = build_generation_payload(
            prompt,
            max_output_tokens=max_output_tokens,
            system_prompt=system_prompt or None,
            temperature=generator.temperature,
            top_k=generator.top_k,
            top_p=generator.top_p
        )
        reply_text = await self.model_client.generate(api_key, self.model, payload)

        reply = AssistantReply(reply=reply_text, diagnostics=RetrievalDiagnostics())
        self._store(cache_key, reply)
        return reply

    # --- Cache helpers -----------------------------------------------------

    def _cached_reply(self, cache_key: str) -> Optional[AssistantReply]:
        if not self.config.cache.enable_cache:
            return None
        cached = self.cache.get(cache_key)
        if cached is None:
            logger.debug(f"Cache miss: {cache_key[:12]}")
            return None
        logger.debug(f"Cache hit: {cache_key[:12]}")
        return AssistantReply(
            reply=cached.reply,
            sources=list(cached.sources),
            diagnostics=cached.diagnostics,
            cache_status="HIT"
        )

    def _store(self, cache_key: str, reply: AssistantReply) -> None:
        if self.config.cache.enable_cache:
            self.cache.set(cache_key, reply)

    # --- Lifecycle ---------------------------------------------------------

    def health(self) -> Dict[str, Any]:
        return {
            "status": "ok",
            "model": self.model,
            "documents": self.corpus.document_count,
            "cache": self.cache.get_stats(),
            "rate_limit_keys": len(self.rate_limiter),
        }

    async def aclose(self) -> None:
        await self.model_client.aclose()
        logger.info("Learning assistant shut down")
