# synapse/tasks.py
import asyncio
import logging

from synapse.analysis import AnalysisOutcome, DocumentNotFound, run_analysis
from synapse.celery_app import celery_app
from synapse.config import settings
from synapse.db import create_engine_and_sessionmaker
from synapse.gemini import GeminiClient
from synapse.storage import build_storage

logger = logging.getLogger(__name__)


async def _analyze(document_id: str) -> AnalysisOutcome:
    # fresh engine and http client per task: asyncio.run gives every task its own loop
    engine, session_factory = create_engine_and_sessionmaker(settings.database_url)
    generator = GeminiClient.from_settings(settings)
    try:
        return await run_analysis(
            document_id,
            session_factory,
            build_storage(settings),
            generator,
            max_chars=settings.max_prompt_chars,
            timeout=settings.model_timeout,
        )
    finally:
        await generator.aclose()
        await engine.dispose()


@celery_app.task(bind=True, name="synapse.tasks.analyze_document_task")
def analyze_document_task(self, document_id: str):
    """Fired when a document record is created. Failures are recorded on the document, never retried."""
    try:
        outcome = asyncio.run(_analyze(document_id))
    except DocumentNotFound as e:
        logger.warning("analyze_document_task: %s", e)
        return {"status": "not_found", "doc_id": document_id}
    return {"status": outcome.status, "doc_id": document_id, "error": outcome.error}
