import os
import tempfile

# Settings and the history engine are built at import time; point them at scratch locations first
_TMP_DIR = tempfile.mkdtemp(prefix="governed-chat-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TMP_DIR}/history.sqlite"
os.environ["MODEL_BACKEND"] = "local"
os.environ["QDRANT_LOCAL_PATH"] = os.path.join(_TMP_DIR, "qdrant")
os.environ["DOCUMENTS_STORAGE_DIR"] = os.path.join(_TMP_DIR, "documents")
os.environ["AZURE_AD_API_ID"] = "app-id-123"
os.environ["AZURE_AD_API_SECRET"] = "secret"
os.environ["PURVIEW_ACCEPTED_ACCESS_RIGHTS"] = "view,default"

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import jwt
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.modules.governedchat.services.policy.gateway import ContentDecision, EvaluationResult
from app.modules.governedchat.services.policy.state import (
    InMemoryKeyValueStore,
    PolicyScopeCache,
    PolicyScopeEntry,
    SessionSequenceCounter,
)
from app.modules.governedchat.services.retrieval.retriever import RetrievedDocument
from app.modules.governedchat.services.token_broker import PurviewTokens
from app.services.memory.history import SqlSessionHistoryStore
from app.services.memory.models import Base
from core.config import Settings


def make_jwt(claims: dict) -> str:
    return jwt.encode(claims, "unit-test-signing-key-0123456789abcdef", algorithm="HS256")


def evaluation(action: str = "default", scope_state=None) -> EvaluationResult:
    return EvaluationResult(decision=ContentDecision(action=action, scope_state=scope_state))


@pytest.fixture
def config() -> Settings:
    return Settings()


@pytest.fixture
def tokens() -> PurviewTokens:
    return PurviewTokens(obo_token="obo-token", app_token="app-token", user_name="alice@contoso.com")


@pytest.fixture
def token_broker(tokens):
    broker = MagicMock()
    broker.acquire_tokens = AsyncMock(return_value=tokens)
    return broker


@pytest.fixture
def gateway():
    """Policy gateway fake: default scope, allow-all evaluations, labels granting 'view'."""
    gw = MagicMock()
    gw.get_scope = AsyncMock(return_value=PolicyScopeEntry(etag="etag-1", activity_execution_map={}))
    gw.evaluate_content = AsyncMock(return_value=evaluation())
    gw.get_label_info = AsyncMock(return_value={"value": [{"rights": {"value": "VIEW"}}]})
    gw.enqueue_offline = MagicMock(return_value="queued")
    gw.process_content_body = MagicMock(
        side_effect=lambda text, sequence, session_id, activity: {
            "text": text,
            "sequence": sequence,
            "session_id": session_id,
            "activity": activity,
        }
    )
    return gw


@pytest.fixture
def documents():
    return [
        RetrievedDocument(content="Rent is due on the 1st.", source="doc1.pdf", label_id="lbl-1", label_name="General"),
        RetrievedDocument(content="Parties end at 10pm.", source="doc2.txt", label_id="lbl-2", label_name="Confidential"),
    ]


async def _stream(*parts):
    for part in parts:
        yield part


@pytest.fixture
def backend(documents):
    chat_model = MagicMock()
    chat_model.stream = MagicMock(side_effect=lambda messages: _stream("Rent is due on the 1st ", "[doc1.pdf]."))
    chat_model.complete = AsyncMock(return_value='"Rent due date"')
    retriever = MagicMock()
    retriever.retrieve = AsyncMock(return_value=documents)
    return SimpleNamespace(
        kind="local",
        chat_model=chat_model,
        retriever=retriever,
        embeddings=MagicMock(),
        vector_store=MagicMock(close=AsyncMock()),
    )


@pytest.fixture
def scope_cache():
    return PolicyScopeCache(InMemoryKeyValueStore())


@pytest.fixture
def sequence_counter():
    return SessionSequenceCounter(InMemoryKeyValueStore())


@pytest_asyncio.fixture
async def history_store(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path}/history.sqlite")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield SqlSessionHistoryStore(async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession))
    await engine.dispose()
