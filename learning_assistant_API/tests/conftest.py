"""
Pytest fixtures shared by the learning assistant tests.

Provides a small sample corpus (as raw source payloads, as files on disk, and
as built documents), a controllable clock, a mocked model client, and a
factory for fully wired application instances.
"""

import json
from pathlib import Path
from typing import Any, Dict, List

import pytest
from unittest.mock import AsyncMock

from learning_assistant_API.app.core.RAG.rag_service.app import LearningAssistantApplication
from learning_assistant_API.app.core.RAG.rag_service.cache import ResponseCache
from learning_assistant_API.app.core.RAG.rag_service.config import AssistantConfig, CorpusConfig
from learning_assistant_API.app.core.RAG.rag_service.corpus import CorpusLoader, build_documents
from learning_assistant_API.app.core.RAG.rag_service.types import Document
from learning_assistant_API.app.core.RateLimiting.Rate_Limit import FixedWindowRateLimiter


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# Corpus fixtures

@pytest.fixture
def sample_sources() -> Dict[str, Any]:
    """Raw payloads for each corpus source, keyed like ``build_documents`` arguments."""
    return {
        "prompts": [
            {
                "id": "p1",
                "title": "Boolean Sourcing Prompt",
                "preview": "Build boolean strings for sourcing",
                "content": "Use this prompt to generate boolean search strings from a job description.",
                "usageNotes": "Paste the job description first",
                "stageTitle": "Sourcing",
                "type": "sourcing",
            },
            {
                "id": "p1",
                "title": "Boolean Sourcing Prompt (copy)",
                "preview": "Duplicate entry",
                "content": "Duplicate entry with the same id",
            },
            {
                "id": "p2",
                "title": "Screening Questions",
                "preview": "Draft screening questions",
                "content": "Generate truth check questions for a pre-HM screen.",
                "stageTitle": "Screening",
            },
            "not a record",
        ],
        "assets": [
            {
                "id": "a1",
                "title": "Confidence Pack Template",
                "description": "Shortlist submission template",
                "content": "Structure for a submission confidence pack.",
                "category": "template",
                "stageLabel": "Submission",
            },
        ],
        "stages": [
            {
                "id": "s1",
                "title": "Sourcing",
                "subtitle": "Find talent with AI",
                "whatAIDoes": ["Generates boolean strings", None],
                "agentBehavior": ["Suggests channels"],
                "metrics": ["Time to shortlist"],
                "teamAdvantage": "Faster search",
                "cluster": "attract",
                "slug": "sourcing",
            },
        ],
        "academy": {
            "program": {
                "title": "AI Academy",
                "subtitle": "Six weeks of practice",
                "description": "Hands-on GenAI training for recruiters",
            },
            "weeks": [
                {
                    "id": "w1",
                    "title": "Prompting Basics",
                    "shortLabel": "Week 1",
                    "outcome": "Write reliable prompts",
                    "focus": "Prompt structure",
                    "deliverable": "A personal prompt library",
                    "howToRun": "Two-hour workshop",
                    "exercises": ["Rewrite a prompt", "Compare outputs"],
                },
            ],
        },
        "search_index": {
            "searchIndex": [
                {
                    "id": "governance",
                    "title": "AI Governance",
                    "url": "/governance/",
                    "description": "Policy and GDPR guidance",
                    "keywords": "policy compliance",
                    "content": "Rules for responsible AI use.",
                },
                {
                    "id": "bad",
                    "title": "Bad link",
                    "url": "javascript:alert(1)",
                    "content": "Never indexed",
                },
            ],
        },
    }


@pytest.fixture
def sample_documents(sample_sources) -> List[Document]:
    return build_documents(**sample_sources)


@pytest.fixture
def corpus_root(tmp_path, sample_sources) -> Path:
    """Write the sample sources to disk in the site layout."""
    config = CorpusConfig(root=tmp_path)
    files = {
        config.prompts_path: sample_sources["prompts"],
        config.assets_path: sample_sources["assets"],
        config.stages_path: sample_sources["stages"],
        config.academy_path: sample_sources["academy"],
        config.search_index_path: sample_sources["search_index"],
    }
    for relative_path, payload in files.items():
        path = tmp_path / relative_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(payload), encoding="utf-8")
    return tmp_path


# Service fixtures

@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def assistant_config():
    config = AssistantConfig()
    config.generator.api_key = "test-api-key"
    return config


@pytest.fixture
def mock_model_client():
    """Model client double; ``generate`` answers with a fixed grounded reply."""
    client = AsyncMock()
    client.generate.return_value = "Start from the boolean prompt [1].\n\nSources:\n[1] Boolean Sourcing Prompt"
    return client


@pytest.fixture
def make_assistant(assistant_config, sample_documents, mock_model_client, fake_clock):
    """Factory for an application wired to the sample corpus and the fake clock."""
    def _make(config=None, model_client=None):
        config = config if config is not None else assistant_config
        return LearningAssistantApplication(
            config=config,
            corpus=CorpusLoader(documents=sample_documents),
            model_client=model_client if model_client is not None else mock_model_client,
            rate_limiter=FixedWindowRateLimiter(clock=fake_clock),
            cache=ResponseCache(
                max_size=config.cache.max_cache_size,
                ttl=config.cache.cache_ttl,
                clock=fake_clock,
            ),
        )
    return _make
