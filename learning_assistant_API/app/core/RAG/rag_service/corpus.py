"""
Corpus loading for the learning assistant.

The searchable corpus is assembled from the site's static JSON files (prompt
library, asset library, pipeline stages, academy program, and the generic
search index). Each source kind has its own record model; a single mapping
per kind turns records into the common ``Document`` shape.

The corpus is built once per process. Concurrent first callers share the same
in-flight build instead of each reading the files.
"""

import asyncio
import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Set

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError, ValidationInfo, field_validator

from .config import CorpusConfig
from .text import clean_text, make_snippet, normalize_url
from .types import Document, DocumentType


#######################################################################################################################
#
# Source record models

class SourceRecord(BaseModel):
    """
    Base for the per-source record shapes.

    Absent or null fields become "" (or [] for list fields) so that mapping
    code never has to guard against missing values.
    """
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    @field_validator("*", mode="before")
    @classmethod
    def _absent_as_empty(cls, value: Any, info: ValidationInfo) -> Any:
        annotation = cls.model_fields[info.field_name].annotation
        if annotation is str:
            if value is None or isinstance(value, (dict, list)):
                return ""
            return str(value)
        if annotation == List[str]:
            if not isinstance(value, list):
                return []
            return [str(item) for item in value if item]
        return value


class PromptRecord(SourceRecord):
    id: str = ""
    title: str = ""
    preview: str = ""
    content: str = ""
    usage_notes: str = Field("", alias="usageNotes")
    stage_title: str = Field("", alias="stageTitle")
    stage: str = ""
    type: str = ""


class AssetRecord(SourceRecord):
    id: str = ""
    title: str = ""
    description: str = ""
    content: str = ""
    category: str = ""
    stage_label: str = Field("", alias="stageLabel")


class StageRecord(SourceRecord):
    id: str = ""
    title: str = ""
    subtitle: str = ""
    what_ai_does: List[str] = Field(default_factory=list, alias="whatAIDoes")
    agent_behavior: List[str] = Field(default_factory=list, alias="agentBehavior")
    metrics: List[str] = Field(default_factory=list)
    team_advantage: str = Field("", alias="teamAdvantage")
    cluster: str = ""
    slug: str = ""


class AcademyProgramRecord(SourceRecord):
    title: str = ""
    subtitle: str = ""
    description: str = ""


class AcademyWeekRecord(SourceRecord):
    id: str = ""
    title: str = ""
    short_label: str = Field("", alias="shortLabel")
    outcome: str = ""
    focus: str = ""
    deliverable: str = ""
    how_to_run: str = Field("", alias="howToRun")
    exercises: List[str] = Field(default_factory=list)


class IndexRecord(SourceRecord):
    id: str = ""
    title: str = ""
    url: str = ""
    description: str = ""
    keywords: str = ""
    content: str = ""


#######################################################################################################################
#
# Document store

def _join(*parts: Any) -> str:
    return " ".join(str(part) for part in parts if part)


class DocumentStore:
    """Accumulates documents, dropping incomplete entries and duplicates."""

    def __init__(self):
        self._documents: List[Document] = []
        self._seen: Set[str] = set()
        self.dropped = 0

    def add(
        self,
        id: str,
        title: str,
        url: str,
        text: str,
        snippet: str = "",
        keywords: str = "",
        type: str = ""
    ) -> Optional[Document]:
        """
        Normalize and add one entry.

        Returns:
            The stored Document, or None when the entry was incomplete or a
            duplicate of an earlier ``(id or title)|url`` key.
        """
        doc_id = clean_text(id, 120)
        doc_title = clean_text(title, 180)
        doc_url = normalize_url(url)
        doc_text = clean_text(text, 6000)

        if not doc_title or not doc_url or not doc_text:
            self.dropped += 1
            return None

        key = f"{doc_id or doc_title}|{doc_url}"
        if key in self._seen:
            self.dropped += 1
            return None
        self._seen.add(key)

        document = Document(
            id=doc_id or key,
            title=doc_title,
            url=doc_url,
            full_text=doc_text,
            snippet=make_snippet(snippet or text or "", 1000),
            keywords=clean_text(keywords, 300),
            type=clean_text(type, 80),
        )
        self._documents.append(document)
        return document

    @property
    def documents(self) -> List[Document]:
        return list(self._documents)

    def __len__(self) -> int:
        return len(self._documents)


def _records(payload: Any, model: type) -> List[Any]:
    """Validate each list item against ``model``; unusable items are skipped."""
    if not isinstance(payload, list):
        return []
    records = []
    for item in payload:
        try:
            records.append(model.model_validate(item))
        except ValidationError as e:
            logger.debug(f"Skipping malformed {model.__name__}: {e.error_count()} error(s)")
    return records


def add_prompts(store: DocumentStore, payload: Any) -> None:
    for item in _records(payload, PromptRecord):
        store.add(
            id=f"prompt-{item.id}",
            title=item.title or "Prompt",
            url="/prompts/",
            text=_join(item.title, item.preview, item.content, item.usage_notes, item.stage_title),
            snippet=item.preview or item.content,
            keywords=_join(item.type, item.stage_title, item.stage),
            type=DocumentType.PROMPT.value,
        )


def add_assets(store: DocumentStore, payload: Any) -> None:
    for item in _records(payload, AssetRecord):
        store.add(
            id=f"asset-{item.id}",
            title=item.title or "Asset",
            url="/library/",
            text=_join(item.title, item.description, item.content, item.stage_label),
            snippet=item.description or item.content,
            keywords=_join(item.category, item.stage_label),
            type=DocumentType.ASSET.value,
        )


def add_stages(store: DocumentStore, payload: Any) -> None:
    for item in _records(payload, StageRecord):
        store.add(
            id=f"stage-{item.id}",
            title=item.title or f"Stage {item.id}",
            url="/stages/",
            text=_join(
                item.title,
                item.subtitle,
                *item.what_ai_does,
                *item.agent_behavior,
                *item.metrics,
                item.team_advantage,
            ),
            snippet=item.subtitle or item.team_advantage,
            keywords=_join(item.cluster, item.slug),
            type=DocumentType.STAGE.value,
        )


def add_academy(store: DocumentStore, payload: Any) -> None:
    if not isinstance(payload, dict):
        return

    program_payload = payload.get("program")
    if program_payload:
        try:
            program = AcademyProgramRecord.model_validate(program_payload)
        except ValidationError as e:
            logger.debug(f"Skipping malformed academy program: {e.error_count()} error(s)")
        else:
            store.add(
                id="academy-program",
                title=clean_text(program.title or "Academy Program", 160),
                url="/academy/",
                text=_join(program.title, program.subtitle, program.description),
                snippet=program.description,
                keywords="academy learning program",
                type=DocumentType.ACADEMY.value,
            )

    for week in _records(payload.get("weeks"), AcademyWeekRecord):
        store.add(
            id=f"academy-week-{week.id}",
            title=week.title or f"Academy Week {week.id}",
            url="/academy/",
            text=_join(
                week.title,
                week.outcome,
                week.focus,
                week.deliverable,
                week.how_to_run,
                *week.exercises,
            ),
            snippet=week.outcome or week.focus,
            keywords=_join(week.short_label, "academy"),
            type=DocumentType.ACADEMY_WEEK.value,
        )


def add_search_index(store: DocumentStore, payload: Any) -> None:
    if not isinstance(payload, dict):
        return
    for item in _records(payload.get("searchIndex"), IndexRecord):
        store.add(
            id=f"index-{item.id}",
            title=item.title or "Page",
            url=item.url,
            text=_join(item.title, item.description, item.keywords, item.content),
            snippet=item.description or item.content,
            keywords=item.keywords,
            type=DocumentType.INDEX.value,
        )


def build_documents(
    prompts: Any = None,
    assets: Any = None,
    stages: Any = None,
    academy: Any = None,
    search_index: Any = None
) -> List[Document]:
    """
    Map already-parsed source payloads to the deduplicated document list.

    Sources are added in a fixed order, so on an identity collision the
    earlier source wins.
    """
    store = DocumentStore()
    add_prompts(store, prompts)
    add_assets(store, assets)
    add_stages(store, stages)
    add_academy(store, academy)
    add_search_index(store, search_index)
    logger.debug(f"Corpus built: {len(store)} documents ({store.dropped} dropped)")
    return store.documents


def read_json_source(path: Path) -> Any:
    """Read one JSON source file. Any failure yields ``None`` (an empty source)."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except FileNotFoundError:
        logger.warning(f"Corpus source not found: {path}")
    except (OSError, ValueError) as e:
        logger.warning(f"Failed to load corpus source {path}: {e}")
    return None


#######################################################################################################################
#
# Loader

class CorpusLoader:
    """
    Lazily builds and memoizes the in-memory corpus.

    The first call to ``get_documents`` starts the build; every caller that
    arrives while it is running awaits the same task. Once built, the list is
    returned directly. A build that raises is forgotten so the next call can
    retry.
    """

    def __init__(self, config: Optional[CorpusConfig] = None, documents: Optional[List[Document]] = None):
        self.config = config or CorpusConfig()
        self._documents: Optional[List[Document]] = list(documents) if documents is not None else None
        self._pending: Optional[asyncio.Future] = None
        self.build_count = 0

    @property
    def is_loaded(self) -> bool:
        return self._documents is not None

    @property
    def document_count(self) -> Optional[int]:
        return len(self._documents) if self._documents is not None else None

    async def get_documents(self) -> List[Document]:
        if self._documents is not None:
            return self._documents

        if self._pending is None:
            self._pending = asyncio.ensure_future(self._build())

        pending = self._pending
        try:
            # shield: a cancelled waiter must not cancel the shared build
            documents = await asyncio.shield(pending)
        except Exception:
            if self._pending is pending:
                self._pending = None
            raise

        self._documents = documents
        self._pending = None
        return documents

    def _source_paths(self) -> Dict[str, Path]:
        root = Path(self.config.root)
        return {
            "prompts": root / self.config.prompts_path,
            "assets": root / self.config.assets_path,
            "stages": root / self.config.stages_path,
            "academy": root / self.config.academy_path,
            "search_index": root / self.config.search_index_path,
        }

    async def _build(self) -> List[Document]:
        self.build_count += 1
        paths = self._source_paths()
        logger.info(f"Building retrieval corpus from {self.config.root}")

        payloads = await asyncio.gather(
            *(asyncio.to_thread(read_json_source, path) for path in paths.values())
        )
        documents = build_documents(**dict(zip(paths.keys(), payloads)))

        logger.info(f"Retrieval corpus ready: {len(documents)} documents")
        return documents
