"""
Learning assistant RAG service

Retrieval-and-orchestration core of the learning assistant gateway.

Main components:
- app.py: LearningAssistantApplication, which owns the shared services and runs the request pipeline
- config.py: Configuration management with TOML and environment overrides
- corpus.py: Builds the in-memory corpus from the site's JSON sources
- retrieval.py: Multi-cycle lexical retrieval and re-ranking
- cache.py: Bounded TTL response cache
- prompts.py: Chat and direct prompt construction
- generation.py: Gemini provider client
- text.py: Tokenization, term expansion and input sanitizing
"""

from .app import LearningAssistantApplication
from .config import AssistantConfig

__all__ = ['LearningAssistantApplication', 'AssistantConfig']
