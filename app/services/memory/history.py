"""
Session history store used by the chat pipeline and the /api/chats endpoints.

Conversations are owned: every read and write is keyed by (session id, user
id), so a session id supplied by another user opens a separate, empty
conversation instead of the owner's.

Each call opens its own AsyncSession and commits before returning, so the
store can be shared across concurrent requests.
"""

from typing import Dict, List, Optional, Protocol
import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .db import SessionLocal
from .repo import (
    add_message,
    delete_conversation,
    ensure_conversation,
    get_conversation,
    last_messages,
    list_conversations,
    set_title_once,
)

logger = logging.getLogger(__name__)


class SessionHistoryStore(Protocol):
    async def get_messages(self, session_id: str, user_id: str, limit: int = 50) -> List[Dict[str, str]]: ...

    async def append_turn(self, session_id: str, user_id: str, question: str, answer: str) -> None: ...

    async def get_title(self, session_id: str, user_id: str) -> Optional[str]: ...

    async def set_title(self, session_id: str, user_id: str, title: str) -> bool: ...


class SqlSessionHistoryStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession] = SessionLocal):
        self._session_factory = session_factory

    async def get_messages(self, session_id: str, user_id: str, limit: int = 50) -> List[Dict[str, str]]:
        async with self._session_factory() as db:
            rows = await last_messages(db, session_id, user_id, limit=limit)
            return [{"role": r.role, "content": r.content} for r in rows]

    async def append_turn(self, session_id: str, user_id: str, question: str, answer: str) -> None:
        """Persist the user question and assistant answer together."""
        async with self._session_factory() as db:
            await ensure_conversation(db, user_id, session_id)
            await add_message(db, session_id, user_id, "user", question)
            await add_message(db, session_id, user_id, "assistant", answer)
            await db.commit()

    async def get_title(self, session_id: str, user_id: str) -> Optional[str]:
        async with self._session_factory() as db:
            conv = await get_conversation(db, session_id, user_id)
            return conv.title if conv else None

    async def set_title(self, session_id: str, user_id: str, title: str) -> bool:
        async with self._session_factory() as db:
            await ensure_conversation(db, user_id, session_id)
            changed = await set_title_once(db, session_id, user_id, title)
            await db.commit()
            return changed

    async def list_sessions(self, user_id: str) -> List[Dict[str, Optional[str]]]:
        async with self._session_factory() as db:
            rows = await list_conversations(db, user_id)
            return [{"id": r.id, "title": r.title} for r in rows]

    async def get_session_messages(self, session_id: str, user_id: str) -> Optional[List[Dict[str, str]]]:
        """Messages of a session owned by ``user_id``; None when it does not exist."""
        async with self._session_factory() as db:
            if await get_conversation(db, session_id, user_id) is None:
                return None
            rows = await last_messages(db, session_id, user_id, limit=1000)
            return [{"role": r.role, "content": r.content} for r in rows]

    async def delete_session(self, session_id: str, user_id: str) -> bool:
        async with self._session_factory() as db:
            deleted = await delete_conversation(db, session_id, user_id)
            await db.commit()
            if deleted:
                logger.info(f"Deleted session {session_id} for user {user_id}")
            return deleted
