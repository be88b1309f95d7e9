"""
Configuration management for the learning assistant service.

Defaults reproduce the production gateway. An optional TOML file can adjust
them (``[learning_assistant]`` section), and environment variables override
both.
"""

import os
from pathlib import Path
from typing import Dict, Any, Optional, List
from dataclasses import dataclass, field, asdict
import tomli
from loguru import logger


DEFAULT_MODEL = "gemini-2.5-flash"
DEFAULT_CORPUS_ROOT = Path(".")  # site root holding prompts/, library/, stages/, ...


def parse_list(value: Optional[str]) -> List[str]:
    """Split a comma separated env value into trimmed, non-empty items."""
    if not value or not isinstance(value, str):
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass
class RetrievalConfig:
    """Configuration for the lexical retrieval engine."""
    source_limit: int = 5
    candidate_limit: int = 30
    cycle_exit_multiplier: int = 3  # stop cycling at source_limit * multiplier candidates
    strict_min_score: int = 3
    expanded_min_score: int = 2
    blended_min_score: int = 1
    recheck_weight: float = 0.5
    conversation_turns: int = 2
    max_query_length: int = 180

    @property
    def cycle_exit_threshold(self) -> int:
        return self.source_limit * self.cycle_exit_multiplier


@dataclass
class RateLimitConfig:
    """Fixed-window budgets, per client identity."""
    request_max: int = 10
    request_window_seconds: float = 60.0
    search_max: int = 20
    search_window_seconds: float = 60.0


@dataclass
class CacheConfig:
    """Configuration for the response cache."""
    enable_cache: bool = True
    cache_ttl: float = 300.0  # 5 minutes
    max_cache_size: int = 200


@dataclass
class GeneratorConfig:
    """Configuration for the upstream model provider."""
    api_key: Optional[str] = None
    model: str = DEFAULT_MODEL
    base_url: str = "https://generativelanguage.googleapis.com/v1"
    timeout_seconds: float = 20.0
    temperature: float = 0.4
    top_k: int = 40
    top_p: float = 0.9
    chat_max_output_tokens: int = 1200
    direct_default_max_tokens: int = 2048
    direct_min_tokens: int = 128
    direct_max_tokens: int = 4096


@dataclass
class CorpusConfig:
    """Where the static corpus JSON files live."""
    root: Path = DEFAULT_CORPUS_ROOT
    prompts_path: str = "prompts/prompts.json"
    assets_path: str = "library/assets.json"
    stages_path: str = "stages/stages.json"
    academy_path: str = "academy/academy.json"
    search_index_path: str = "shared/search-index.json"


@dataclass
class AssistantConfig:
    """Main configuration class for the learning assistant."""
    retrieval: RetrievalConfig = field(default_factory=RetrievalConfig)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    generator: GeneratorConfig = field(default_factory=GeneratorConfig)
    corpus: CorpusConfig = field(default_factory=CorpusConfig)
    allowed_origins: List[str] = field(default_factory=list)

    # Logging
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> 'AssistantConfig':
        """Build defaults and apply environment overrides."""
        config = cls()
        config._apply_env_overrides()
        return config

    @classmethod
    def from_toml(cls, config_path: Optional[Path] = None) -> 'AssistantConfig':
        """
        Load configuration from TOML file.

        Args:
            config_path: Path to config file. If None, ``LEARNING_ASSISTANT_CONFIG``
                is consulted, then ``./config.toml``.

        Returns:
            AssistantConfig instance with environment overrides applied
        """
        if config_path is None:
            env_path = os.environ.get("LEARNING_ASSISTANT_CONFIG")
            possible_paths = [Path(env_path)] if env_path else []
            possible_paths.append(Path("config.toml"))

            for path in possible_paths:
                if path.exists():
                    config_path = path
                    break
            else:
                logger.info("No config file found, using defaults")
                return cls.from_env()

        logger.info(f"Loading learning assistant config from: {config_path}")

        try:
            with open(config_path, "rb") as f:
                toml_data = tomli.load(f)

            section = toml_data.get("learning_assistant", {})
            corpus_section = dict(section.get("corpus", {}))
            if "root" in corpus_section:
                corpus_section["root"] = Path(corpus_section["root"])

            config = cls(
                retrieval=RetrievalConfig(**section.get("retrieval", {})),
                rate_limit=RateLimitConfig(**section.get("rate_limit", {})),
                cache=CacheConfig(**section.get("cache", {})),
                generator=GeneratorConfig(**section.get("generator", {})),
                corpus=CorpusConfig(**corpus_section),
            )

            if "allowed_origins" in section:
                config.allowed_origins = list(section["allowed_origins"])
            if "log_level" in section:
                config.log_level = section["log_level"]

        except Exception as e:
            logger.error(f"Error loading config from {config_path}: {e}")
            logger.warning("Using default configuration")
            config = cls()

        config._apply_env_overrides()
        return config

    def _apply_env_overrides(self):
        """Apply environment variable overrides."""
        env_mappings = {
            "GEMINI_API_KEY": ("generator", "api_key", str),
            "GEMINI_MODEL": ("generator", "model", lambda x: " ".join(x.split())[:80]),
            "GEMINI_BASE_URL": ("generator", "base_url", str),
            "GEMINI_TIMEOUT_SECONDS": ("generator", "timeout_seconds", float),
            "LEARNING_ASSISTANT_CORPUS_ROOT": ("corpus", "root", Path),
            "LEARNING_ASSISTANT_CACHE_TTL": ("cache", "cache_ttl", float),
            "LEARNING_ASSISTANT_CACHE_MAX": ("cache", "max_cache_size", int),
            "RATE_LIMIT_MAX": ("rate_limit", "request_max", int),
            "SEARCH_RATE_LIMIT_MAX": ("rate_limit", "search_max", int),
        }

        for env_var, (section, attr, converter) in env_mappings.items():
            value = os.environ.get(env_var)
            if value is not None and value.strip():
                try:
                    section_obj = getattr(self, section)
                    setattr(section_obj, attr, converter(value.strip()))
                    if env_var != "GEMINI_API_KEY":
                        logger.debug(f"Override from env: {env_var} -> {section}.{attr} = {value}")
                except Exception as e:
                    logger.warning(f"Failed to apply env override {env_var}: {e}")

        origins = parse_list(os.environ.get("ALLOWED_ORIGINS"))
        if origins:
            self.allowed_origins = origins

        log_level = os.environ.get("LOG_LEVEL")
        if log_level:
            self.log_level = log_level.upper()

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary, without the API key."""
        data = asdict(self)
        data["generator"]["api_key"] = "***" if self.generator.api_key else None
        data["corpus"]["root"] = str(self.corpus.root)
        return data

    def validate(self) -> List[str]:
        """
        Validate configuration settings.

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []

        if self.retrieval.source_limit < 1:
            errors.append("retrieval.source_limit must be >= 1")
        if self.retrieval.candidate_limit < self.retrieval.source_limit:
            errors.append("retrieval.candidate_limit must be >= retrieval.source_limit")
        if self.retrieval.cycle_exit_multiplier < 1:
            errors.append("retrieval.cycle_exit_multiplier must be >= 1")
        if not 0 <= self.retrieval.recheck_weight <= 1:
            errors.append("retrieval.recheck_weight must be between 0 and 1")

        if self.rate_limit.request_max < 1 or self.rate_limit.search_max < 1:
            errors.append("rate_limit maximums must be >= 1")
        if self.rate_limit.request_window_seconds <= 0 or self.rate_limit.search_window_seconds <= 0:
            errors.append("rate_limit windows must be > 0")

        if self.cache.cache_ttl < 0:
            errors.append("cache.cache_ttl must be >= 0")
        if self.cache.max_cache_size < 1:
            errors.append("cache.max_cache_size must be >= 1")

        if self.generator.timeout_seconds <= 0:
            errors.append("generator.timeout_seconds must be > 0")
        if not self.generator.model:
            errors.append("generator.model must not be empty")
        if not 0 <= self.generator.temperature <= 2:
            errors.append("generator.temperature should be between 0 and 2")
        if self.generator.direct_min_tokens > self.generator.direct_max_tokens:
            errors.append("generator.direct_min_tokens must be <= generator.direct_max_tokens")

        return errors
