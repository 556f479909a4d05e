import os
import tempfile

# settings are read at import time
os.environ["GEMINI_API_KEY"] = "test-key"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["SECRET_KEY"] = "test-secret"
os.environ["CHAT_RATE_LIMIT"] = "0"
os.environ["CREATE_TABLES"] = "false"
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="synapse-test-")

import asyncio
import json

import httpx
import jwt
import pytest

from synapse.db import create_engine_and_sessionmaker, init_models
from synapse.models import Document
from synapse.storage import Storage

VALID_REPLY = json.dumps({
    "summary": "S",
    "keyPoints": ["a", "b"],
    "actionItems": [],
    "alerts": [{"type": "warning", "message": "m"}],
    "confidence": 80,
})


class FakeGenerator:
    def __init__(self, reply=VALID_REPLY, error=None, delay=0.0):
        self.reply = reply
        self.error = error
        self.delay = delay
        self.prompts = []

    @property
    def calls(self):
        return len(self.prompts)

    async def generate(self, prompt):
        self.prompts.append(prompt)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.reply


class FakeStorage(Storage):
    def __init__(self):
        self.objects = {}

    async def save(self, data, filename, owner, content_type="application/octet-stream"):
        locator = f"mem/{owner}/{len(self.objects)}__{filename}"
        self.objects[locator] = bytes(data)
        return locator

    async def _read_object(self, locator):
        return self.objects[locator]


def make_token(uid, name=None):
    claims = {"sub": uid}
    if name:
        claims["name"] = name
    return jwt.encode(claims, "test-secret", algorithm="HS256")


def auth_headers(uid="user-1", name="Arjun Nair"):
    return {"Authorization": f"Bearer {make_token(uid, name)}"}


@pytest.fixture
async def session_factory(tmp_path):
    engine, factory = create_engine_and_sessionmaker(f"sqlite+aiosqlite:///{tmp_path}/synapse.db")
    await init_models(engine)
    yield factory
    await engine.dispose()


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def generator():
    return FakeGenerator()


@pytest.fixture
def make_document(session_factory, storage):
    async def _make(content=b"Metro extension budget is 2450 crores.", content_type="text/plain",
                    status="uploaded", user_id="user-1", title="proposal.txt", stored=True, **fields):
        locator = await storage.save(content, title, user_id, content_type) if stored else None
        async with session_factory() as session:
            doc = Document(
                user_id=user_id,
                title=title,
                content_type=content_type,
                size=len(content),
                storage_path=locator,
                status=status,
                **fields,
            )
            session.add(doc)
            await session.commit()
            return doc.id
    return _make


@pytest.fixture
def load_document(session_factory):
    async def _load(doc_id):
        async with session_factory() as session:
            return await session.get(Document, doc_id)
    return _load


@pytest.fixture
def dispatched():
    return []


@pytest.fixture
async def client(session_factory, storage, generator, dispatched):
    from synapse import main
    from synapse.db import get_async_session, get_sessionmaker

    async def _session():
        async with session_factory() as session:
            yield session

    main.app.dependency_overrides[get_sessionmaker] = lambda: session_factory
    main.app.dependency_overrides[get_async_session] = _session
    main.app.dependency_overrides[main.get_storage] = lambda: storage
    main.app.dependency_overrides[main.get_text_generator] = lambda: generator
    main.app.dependency_overrides[main.get_dispatcher] = lambda: dispatched.append

    transport = httpx.ASGITransport(app=main.app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    main.app.dependency_overrides.clear()
