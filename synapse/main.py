# synapse/main.py
import logging
import time
from typing import Callable, List, Optional
from pathlib import Path

from fastapi import FastAPI, UploadFile, File, HTTPException, Response, Request, Depends, Query
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import select, text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from prometheus_client import generate_latest, CONTENT_TYPE_LATEST, Counter

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from synapse.config import settings
from synapse.analysis import DocumentNotFound, run_analysis
from synapse.analytics import compute_analytics
from synapse.auth import CurrentUser, get_current_user, require_user
from synapse.chat import add_message, list_messages, relay_chat_message, validate_chat_request
from synapse.db import init_models, close_engine, get_async_session, get_sessionmaker
from synapse.errors import CallableError, callable_error_handler
from synapse.gemini import GeminiClient
from synapse.models import Document, DocumentStatus
from synapse.schemas import (
    AnalyticsOut,
    AnalyzeRequest,
    AnalyzeResponse,
    ChatRequest,
    ChatResponse,
    DocumentOut,
    MessageCreate,
    MessageOut,
)
from synapse.storage import Storage, StorageError, build_storage
from synapse.tasks import analyze_document_task

logger = logging.getLogger("uvicorn.error")
logging.getLogger("synapse").setLevel(settings.log_level.upper())

app = FastAPI(title="KMRL Synapse", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_exception_handler(CallableError, callable_error_handler)

# Prometheus counters
uploads_total = Counter("synapse_uploads_total", "Total uploads")
analyses_total = Counter("synapse_analyses_total", "Analyses started")
analyses_failed = Counter("synapse_analyses_failed", "Failed analyzeDocument callable runs")
chat_requests_total = Counter("synapse_chat_requests_total", "AI chat requests")
model_errors_total = Counter("synapse_model_errors_total", "Text generation errors")

# Redis helper
_redis = None
def get_redis():
    global _redis
    if _redis is None:
        _redis = aioredis.from_url(settings.redis_url, decode_responses=True)
    return _redis

@app.on_event("startup")
async def startup():
    if settings.create_tables:
        await init_models()
    app.state.generator = GeminiClient.from_settings(settings)
    app.state.storage = build_storage(settings)
    logger.info("Synapse started (storage=%s, model=%s)", settings.storage_backend, settings.gemini_model)

@app.on_event("shutdown")
async def shutdown():
    global _redis
    generator = getattr(app.state, "generator", None)
    if generator is not None:
        try:
            await generator.aclose()
        except Exception:
            logger.exception("Failed to close text generator on shutdown")
    if _redis is not None:
        try:
            await _redis.close()
        except Exception:
            logger.exception("Failed to close redis on shutdown")
    await close_engine()


# Collaborator dependencies (overridden in tests)
def get_text_generator(request: Request):
    return request.app.state.generator

def get_storage(request: Request) -> Storage:
    return request.app.state.storage

def enqueue_analysis(document_id: str) -> None:
    analyze_document_task.apply_async(args=[document_id], queue=settings.celery_queue)

def get_dispatcher() -> Callable[[str], None]:
    return enqueue_analysis


async def allow_request(key: str, limit: int, period: int = 60) -> bool:
    r = get_redis()
    now = int(time.time())
    bucket_key = f"rate:{key}:{now // period}"
    val = await r.incr(bucket_key)
    if val == 1:
        await r.expire(bucket_key, period + 1)
    return val <= limit


@app.get("/healthz")
async def healthz(session: AsyncSession = Depends(get_async_session)):
    ok = {"redis": False, "database": False}
    try:
        await get_redis().ping()
        ok["redis"] = True
    except Exception:
        logger.exception("Redis ping failed")
    try:
        await session.execute(text("SELECT 1"))
        ok["database"] = True
    except Exception:
        logger.exception("Database health check failed")
    status = 200 if all(ok.values()) else 503
    return JSONResponse(ok, status_code=status)

@app.get("/metrics")
def metrics():
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

@app.exception_handler(HTTPException)
def http_exception_handler(request: Request, exc: HTTPException):
    return JSONResponse({"detail": exc.detail}, status_code=exc.status_code)


# ---------- documents ----------
@app.post("/upload", status_code=202, response_model=DocumentOut)
async def upload(
    file: UploadFile = File(...),
    user: CurrentUser = Depends(require_user),
    session: AsyncSession = Depends(get_async_session),
    storage: Storage = Depends(get_storage),
    dispatch: Callable[[str], None] = Depends(get_dispatcher),
):
    uploads_total.inc()
    filename = Path(file.filename or "uploaded").name
    ext = Path(filename).suffix.lower()
    if settings.allowed_extensions and ext not in settings.allowed_extensions:
        raise HTTPException(status_code=400, detail="Invalid file extension")

    max_size = settings.max_upload_size
    data = bytearray()
    while True:
        chunk = await file.read(1024 * 64)
        if not chunk:
            break
        data.extend(chunk)
        if len(data) > max_size:
            raise HTTPException(status_code=413, detail="Payload too large")

    content_type = file.content_type or "application/octet-stream"
    try:
        locator = await storage.save(bytes(data), filename, user.uid, content_type)
    except StorageError:
        logger.exception("Failed to store uploaded file %s", filename)
        raise HTTPException(status_code=500, detail="Failed to save file")

    doc = Document(
        user_id=user.uid,
        title=filename,
        content_type=content_type,
        size=len(data),
        storage_path=locator,
        status=DocumentStatus.UPLOADED.value,
    )
    session.add(doc)
    await session.commit()
    await session.refresh(doc)
    logger.info("Stored upload doc_id=%s user=%s bytes=%d", doc.id, user.uid, len(data))

    if settings.auto_analyze:
        try:
            dispatch(doc.id)
            analyses_total.inc()
        except Exception:
            # document stays 'uploaded'; analyzeDocument can still pick it up
            logger.exception("Failed to enqueue analysis for doc_id=%s", doc.id)
    return doc

@app.get("/documents", response_model=List[DocumentOut])
async def list_documents(
    status: Optional[str] = None,
    q: Optional[str] = None,
    limit: int = Query(100, ge=1, le=500),
    user: CurrentUser = Depends(require_user),
    session: AsyncSession = Depends(get_async_session),
):
    stmt = select(Document).where(Document.user_id == user.uid)
    if status:
        if status not in {s.value for s in DocumentStatus}:
            raise HTTPException(status_code=400, detail="Unknown status")
        stmt = stmt.where(Document.status == status)
    if q:
        stmt = stmt.where(Document.title.ilike(f"%{q}%"))
    res = await session.execute(stmt.order_by(Document.uploaded_at.desc()).limit(limit))
    return res.scalars().all()

async def _owned_document(session: AsyncSession, doc_id: str, user: CurrentUser) -> Document:
    doc = await session.get(Document, doc_id)
    if doc is None or doc.user_id != user.uid:
        raise HTTPException(status_code=404, detail="Document not found")
    return doc

@app.get("/documents/{doc_id}", response_model=DocumentOut)
async def get_document(
    doc_id: str,
    user: CurrentUser = Depends(require_user),
    session: AsyncSession = Depends(get_async_session),
):
    return await _owned_document(session, doc_id, user)

@app.post("/documents/{doc_id}/archive", response_model=DocumentOut)
async def archive_document(
    doc_id: str,
    user: CurrentUser = Depends(require_user),
    session: AsyncSession = Depends(get_async_session),
):
    doc = await _owned_document(session, doc_id, user)
    doc.status = DocumentStatus.ARCHIVED.value
    await session.commit()
    await session.refresh(doc)
    logger.info("Archived doc_id=%s", doc_id)
    return doc

@app.get("/analytics", response_model=AnalyticsOut)
async def analytics(
    mine: bool = False,
    user: CurrentUser = Depends(require_user),
    session: AsyncSession = Depends(get_async_session),
):
    stmt = select(Document)
    if mine:
        stmt = stmt.where(Document.user_id == user.uid)
    res = await session.execute(stmt)
    return compute_analytics(res.scalars().all())


# ---------- callables ----------
@app.post("/callable/analyzeDocument", response_model=AnalyzeResponse)
async def analyze_document(
    body: Optional[AnalyzeRequest] = None,
    user: Optional[CurrentUser] = Depends(get_current_user),
    session_factory: async_sessionmaker = Depends(get_sessionmaker),
    storage: Storage = Depends(get_storage),
    generator=Depends(get_text_generator),
):
    if user is None:
        raise CallableError("unauthenticated", "The function must be called while authenticated.")
    doc_id = body.documentId if body is not None else None
    if not isinstance(doc_id, str) or not doc_id.strip():
        raise CallableError("invalid-argument", 'The function must be called with a "documentId" string.')

    async with session_factory() as session:
        doc = await session.get(Document, doc_id)
        if doc is None or doc.user_id != user.uid:
            raise CallableError("not-found", "Document not found.")

    analyses_total.inc()
    try:
        outcome = await run_analysis(
            doc_id,
            session_factory,
            storage,
            generator,
            max_chars=settings.max_prompt_chars,
            timeout=settings.model_timeout,
            reanalyze=settings.allow_reanalysis,
        )
    except DocumentNotFound as e:
        raise CallableError("not-found", str(e))

    if outcome.status == DocumentStatus.FAILED.value:
        analyses_failed.inc()
        raise CallableError("internal", outcome.error or "Analysis failed")
    if outcome.status == "skipped":
        return {"status": "skipped"}
    return {"status": "success"}

@app.post("/callable/chatWithAI", response_model=ChatResponse)
async def chat_with_ai(
    body: Optional[ChatRequest] = None,
    user: Optional[CurrentUser] = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
    generator=Depends(get_text_generator),
):
    chat_requests_total.inc()
    message = body.message if body is not None else None
    chat_id = (body.chatId if body is not None else None) or settings.ai_chat_id
    validate_chat_request(user, message)

    if settings.chat_rate_limit > 0:
        try:
            allowed = await allow_request(f"chat:{user.uid}", limit=settings.chat_rate_limit, period=settings.chat_rate_period)
        except RedisError:
            # limiter unavailable: let the request through
            logger.exception("Rate limiter check failed for user=%s", user.uid)
            allowed = True
        if not allowed:
            raise CallableError("resource-exhausted", "Too many requests")

    try:
        reply = await relay_chat_message(user, message, generator, session, chat_id, timeout=settings.model_timeout)
    except CallableError as e:
        if e.code == "internal":
            model_errors_total.inc()
        raise
    return {"response": reply}


# ---------- chat messages ----------
@app.get("/chats/{chat_id}/messages", response_model=List[MessageOut])
async def get_messages(
    chat_id: str,
    limit: int = Query(100, ge=1, le=500),
    user: CurrentUser = Depends(require_user),
    session: AsyncSession = Depends(get_async_session),
):
    return await list_messages(session, chat_id, limit=limit)

@app.post("/chats/{chat_id}/messages", status_code=201, response_model=MessageOut)
async def post_message(
    chat_id: str,
    body: MessageCreate,
    user: CurrentUser = Depends(require_user),
    session: AsyncSession = Depends(get_async_session),
):
    return await add_message(session, chat_id, user.uid, user.name, body.content)
