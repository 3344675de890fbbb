from typing import List, Optional
from sqlalchemy import select, delete, update
from sqlalchemy.ext.asyncio import AsyncSession
from .models import Conversation, ChatMessage

# every lookup is scoped by (conversation_id, user_id); a session id alone never identifies a conversation


async def get_conversation(db: AsyncSession, conversation_id: str, user_id: str) -> Optional[Conversation]:
    return await db.get(Conversation, (conversation_id, user_id))


async def ensure_conversation(db: AsyncSession, user_id: str, conversation_id: str) -> Conversation:
    row = await get_conversation(db, conversation_id, user_id)
    if row:
        return row
    conv = Conversation(id=conversation_id, user_id=user_id)
    db.add(conv)
    await db.flush()
    return conv


async def add_message(db: AsyncSession, conversation_id: str, user_id: str, role: str, content: str) -> ChatMessage:
    msg = ChatMessage(conversation_id=conversation_id, user_id=user_id, role=role, content=content)
    db.add(msg)
    await db.flush()
    return msg


async def last_messages(db: AsyncSession, conversation_id: str, user_id: str, limit: int = 50) -> List[ChatMessage]:
    q = (
        select(ChatMessage)
        .where(ChatMessage.conversation_id == conversation_id, ChatMessage.user_id == user_id)
        .order_by(ChatMessage.id.desc())
        .limit(limit)
    )
    res = await db.execute(q)
    return list(reversed(res.scalars().all()))


async def list_conversations(db: AsyncSession, user_id: str, limit: int = 50) -> List[Conversation]:
    q = (
        select(Conversation)
        .where(Conversation.user_id == user_id)
        .order_by(Conversation.created_at.desc())
        .limit(limit)
    )
    res = await db.execute(q)
    return list(res.scalars().all())


async def set_title_once(db: AsyncSession, conversation_id: str, user_id: str, title: str) -> bool:
    """Set the title only if none is stored yet; returns whether a row changed."""
    res = await db.execute(
        update(Conversation)
        .where(
            Conversation.id == conversation_id,
            Conversation.user_id == user_id,
            Conversation.title.is_(None),
        )
        .values(title=title)
    )
    return (res.rowcount or 0) > 0


async def delete_conversation(db: AsyncSession, conversation_id: str, user_id: str) -> bool:
    conv = await get_conversation(db, conversation_id, user_id)
    if conv is None:
        return False
    await db.execute(
        delete(ChatMessage).where(ChatMessage.conversation_id == conversation_id, ChatMessage.user_id == user_id)
    )
    await db.execute(delete(Conversation).where(Conversation.id == conversation_id, Conversation.user_id == user_id))
    return True
