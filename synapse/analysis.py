# synapse/analysis.py
"""
Document analysis pipeline:
 - read the stored file
 - extract text (see synapse.extract)
 - ask the text generator for a JSON summary of the text
 - strip code fences, parse and normalize the JSON
 - write every AI field plus status in one UPDATE

Both entry points (the Celery task fired on document creation and the
analyzeDocument callable) go through run_analysis. Every failure is terminal
for the run and is recorded on the document as status=failed plus error text;
nothing is retried.
"""
import re
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from sqlalchemy import update
from sqlalchemy.ext.asyncio import async_sessionmaker

from synapse.extract import UnsupportedFileType, extract_text, is_supported
from synapse.gemini import GenerationError, generate_with_timeout
from synapse.models import Document, DocumentStatus
from synapse.storage import Storage, StorageError

logger = logging.getLogger(__name__)

READ_ERROR = "Failed to read file from storage"
UNSUPPORTED_ERROR = "Unsupported file type"
EMPTY_TEXT_ERROR = "Could not extract text from document"
MODEL_ERROR = "AI analysis failed"
PARSE_ERROR = "AI analysis or data parsing failed"

AI_FIELDS = ("summary", "key_points", "action_items", "alerts", "ai_score", "insights", "analyzed_at")

DEFAULT_MAX_PROMPT_CHARS = 10_000
DEFAULT_MODEL_TIMEOUT = 60.0

# statuses a run may claim; archived is never claimable
CLAIMABLE = (DocumentStatus.UPLOADED, DocumentStatus.PROCESSING)
RECLAIMABLE = CLAIMABLE + (DocumentStatus.ANALYZED, DocumentStatus.FAILED)

ANALYSIS_PROMPT = """You are an assistant for Kochi Metro Rail Limited (KMRL) staff.
Analyze the following document and respond with ONLY a JSON object, no other text, with these keys:
- "summary": a concise summary of the document (string)
- "keyPoints": the most important points (list of strings)
- "actionItems": follow-up actions, each {{"priority": "high" | "medium" | "low", "item": string, "department": string}}
- "alerts": risks or notices, each {{"type": "warning" | "info", "message": string}}
- "confidence": how confident you are in this analysis, a number from 0 to 100

Document:
\"\"\"
{text}
\"\"\"
"""

_FENCED = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.IGNORECASE | re.DOTALL)
_OPEN_FENCE = re.compile(r"```(?:json)?\s*", re.IGNORECASE)
_CLOSE_FENCE = re.compile(r"\s*```\s*$")


class AnalysisFailure(Exception):
    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class DocumentNotFound(LookupError):
    pass


class ActionItem(BaseModel):
    priority: Literal["high", "medium", "low"] = "medium"
    item: str = ""
    department: str = ""

    @model_validator(mode="before")
    def _from_string(cls, data):
        # older prompts produced plain strings
        if isinstance(data, str):
            return {"item": data}
        return data

    @field_validator("priority", mode="before")
    def _lower(cls, v):
        return str(v).strip().lower() if v is not None else "medium"

    @field_validator("item", "department", mode="before")
    def _null_to_empty(cls, v):
        return "" if v is None else v


class Alert(BaseModel):
    type: Literal["warning", "info"] = "info"
    message: str = ""

    @model_validator(mode="before")
    def _from_string(cls, data):
        if isinstance(data, str):
            return {"message": data}
        return data

    @field_validator("type", mode="before")
    def _lower(cls, v):
        return str(v).strip().lower() if v is not None else "info"

    @field_validator("message", mode="before")
    def _null_to_empty(cls, v):
        return "" if v is None else v


class AnalysisResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    summary: str = ""
    key_points: List[str] = Field(default_factory=list, alias="keyPoints")
    action_items: List[ActionItem] = Field(default_factory=list, alias="actionItems")
    alerts: List[Alert] = Field(default_factory=list)
    confidence: int = 0

    @field_validator("*", mode="before")
    def _null_to_default(cls, v, info):
        if v is None:
            return cls.model_fields[info.field_name].get_default(call_default_factory=True)
        return v

    @field_validator("confidence", mode="before")
    def _clamp_confidence(cls, v):
        if v is None:
            return 0
        if isinstance(v, bool):
            raise ValueError("confidence must be a number")
        try:
            v = float(v)
        except (TypeError, ValueError):
            raise ValueError(f"confidence must be a number, got {v!r}")
        return int(round(min(max(v, 0.0), 100.0)))

    @property
    def insights(self) -> int:
        return len(self.key_points) + len(self.action_items) + len(self.alerts)

    def record_fields(self) -> Dict[str, Any]:
        return {
            "summary": self.summary,
            "key_points": list(self.key_points),
            "action_items": [a.model_dump() for a in self.action_items],
            "alerts": [a.model_dump() for a in self.alerts],
            "ai_score": self.confidence,
            "insights": self.insights,
        }


@dataclass
class AnalysisOutcome:
    document_id: str
    status: str                      # analyzed | failed | skipped
    error: Optional[str] = None
    result: Optional[AnalysisResult] = None

    @property
    def ok(self) -> bool:
        return self.status == DocumentStatus.ANALYZED.value


def build_prompt(text: str, max_chars: int = DEFAULT_MAX_PROMPT_CHARS) -> str:
    return ANALYSIS_PROMPT.format(text=text[:max_chars])


def strip_code_fences(raw: str) -> str:
    text = (raw or "").strip()
    m = _FENCED.search(text)
    if m:
        return m.group(1).strip()
    # a reply cut off mid-block has an opener but no closer, or the reverse
    text = _CLOSE_FENCE.sub("", text)
    opener = _OPEN_FENCE.search(text)
    if opener:
        text = text[opener.end():]
    return text.strip()


def parse_analysis(raw: str) -> AnalysisResult:
    cleaned = strip_code_fences(raw)
    try:
        data = json.loads(cleaned)
        if not isinstance(data, dict):
            raise ValueError(f"expected a JSON object, got {type(data).__name__}")
        return AnalysisResult.model_validate(data)
    except (ValueError, ValidationError) as e:
        logger.warning("Could not parse model output: %s; body snippet: %.300s", e, cleaned)
        raise AnalysisFailure(PARSE_ERROR) from e


async def analyze_content(
    data: bytes,
    content_type: str,
    generator,
    max_chars: int = DEFAULT_MAX_PROMPT_CHARS,
    timeout: float = DEFAULT_MODEL_TIMEOUT,
) -> AnalysisResult:
    """
    File bytes + declared type -> structured insights. No database access;
    raises AnalysisFailure carrying the error text to record.
    """
    if not is_supported(content_type):
        raise AnalysisFailure(UNSUPPORTED_ERROR)
    try:
        text = extract_text(data, content_type)
    except UnsupportedFileType as e:
        raise AnalysisFailure(UNSUPPORTED_ERROR) from e
    except Exception as e:
        logger.warning("Text extraction failed for %s: %s", content_type, e)
        raise AnalysisFailure(EMPTY_TEXT_ERROR) from e
    if not text.strip():
        raise AnalysisFailure(EMPTY_TEXT_ERROR)

    prompt = build_prompt(text, max_chars)
    try:
        raw = await generate_with_timeout(generator, prompt, timeout)
    except GenerationError as e:
        raise AnalysisFailure(MODEL_ERROR) from e
    return parse_analysis(raw)


async def _finish(session_factory: async_sessionmaker, document_id: str, fields: Dict[str, Any]) -> bool:
    # only a run that still sees status=processing may write
    async with session_factory() as session:
        res = await session.execute(
            update(Document)
            .where(Document.id == document_id, Document.status == DocumentStatus.PROCESSING.value)
            .values(**fields)
            .execution_options(synchronize_session=False)
        )
        await session.commit()
    return res.rowcount > 0


async def run_analysis(
    document_id: str,
    session_factory: async_sessionmaker,
    storage: Storage,
    generator,
    max_chars: int = DEFAULT_MAX_PROMPT_CHARS,
    timeout: float = DEFAULT_MODEL_TIMEOUT,
    reanalyze: bool = False,
) -> AnalysisOutcome:
    """
    Claim the document, run the pipeline, record the outcome.

    Raises DocumentNotFound when the record or its storage locator is missing.
    Returns a 'skipped' outcome without touching the record when the status
    is not claimable, or when a concurrent run reached a terminal state first.
    """
    claimable = RECLAIMABLE if reanalyze else CLAIMABLE
    async with session_factory() as session:
        doc = await session.get(Document, document_id)
        if doc is None:
            raise DocumentNotFound(f"document {document_id} not found")
        if not doc.storage_path:
            raise DocumentNotFound(f"document {document_id} has no stored file")
        locator, content_type = doc.storage_path, doc.content_type

        res = await session.execute(
            update(Document)
            .where(Document.id == document_id, Document.status.in_([s.value for s in claimable]))
            .values(status=DocumentStatus.PROCESSING.value, error=None)
            .execution_options(synchronize_session=False)
        )
        await session.commit()
        if res.rowcount == 0:
            logger.info("Skipping analysis for doc_id=%s (status=%s)", document_id, doc.status)
            return AnalysisOutcome(document_id, "skipped")

    logger.info("Started analysis for doc_id=%s type=%s", document_id, content_type)

    async def fail(message: str) -> AnalysisOutcome:
        # a re-claimed document must not keep the outputs of an earlier run
        fields = dict.fromkeys(AI_FIELDS)
        fields.update(status=DocumentStatus.FAILED.value, error=message)
        if not await _finish(session_factory, document_id, fields):
            logger.info("doc_id=%s reached a terminal state in another run; dropping failure %r", document_id, message)
            return AnalysisOutcome(document_id, "skipped")
        logger.warning("Analysis failed for doc_id=%s: %s", document_id, message)
        return AnalysisOutcome(document_id, DocumentStatus.FAILED.value, error=message)

    try:
        data = await storage.read(locator)
    except StorageError:
        logger.exception("Storage read failed for doc_id=%s locator=%s", document_id, locator)
        return await fail(READ_ERROR)

    try:
        result = await analyze_content(data, content_type, generator, max_chars=max_chars, timeout=timeout)
    except AnalysisFailure as f:
        return await fail(f.message)

    fields = result.record_fields()
    fields.update(
        status=DocumentStatus.ANALYZED.value,
        error=None,
        analyzed_at=datetime.now(timezone.utc),
    )
    if not await _finish(session_factory, document_id, fields):
        logger.info("doc_id=%s reached a terminal state in another run; result dropped", document_id)
        return AnalysisOutcome(document_id, "skipped")

    logger.info("Completed analysis for doc_id=%s (insights=%d, confidence=%d)", document_id, result.insights, result.confidence)
    return AnalysisOutcome(document_id, DocumentStatus.ANALYZED.value, result=result)
