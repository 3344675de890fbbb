"""
Answer Engine
Grounds one model call in the filtered documents plus the running chat
history, then post-processes the answer text.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional
import logging

from app.modules.governedchat.services.llm import OpenAIChatModel, collect_stream
from app.modules.governedchat.services.prompts import build_rag_system_prompt
from app.modules.governedchat.services.retrieval.retriever import RetrievedDocument
from app.services.memory.history import SessionHistoryStore
from core.utils.perf import profile_stage

logger = logging.getLogger(__name__)

UNKNOWN_LABEL = "Unknown"
TITLE_MAX_CHARS = 32


@dataclass
class Answer:
    text: str
    used_documents: List[RetrievedDocument] = field(default_factory=list)


def rewrite_citations(text: str, documents: Iterable[RetrievedDocument]) -> str:
    """Turn every ``[filename]`` into ``[filename (Label: name)]`` for each known document."""
    for document in documents:
        if not document.source:
            continue
        label_name = document.label_name or UNKNOWN_LABEL
        text = text.replace(f"[{document.source}]", f"[{document.source} (Label: {label_name})]")
    return text


def clean_title(raw: str) -> str:
    title = raw.replace('"', "").strip()
    return title[:TITLE_MAX_CHARS].strip()


class AnswerEngine:
    def __init__(self, model: OpenAIChatModel, rag_system_prompt: str, title_system_prompt: str):
        self.model = model
        self.rag_system_prompt = rag_system_prompt
        self.title_system_prompt = title_system_prompt

    def build_messages(
        self,
        question: str,
        documents: List[RetrievedDocument],
        history: List[Dict[str, str]],
    ) -> List[Dict[str, str]]:
        messages = [{"role": "system", "content": build_rag_system_prompt(self.rag_system_prompt, documents)}]
        messages += [m for m in history if m.get("role") in ("user", "assistant") and m.get("content")]
        messages.append({"role": "user", "content": question})
        return messages

    @profile_stage("answer")
    async def answer(
        self,
        question: str,
        filtered_documents: List[RetrievedDocument],
        history: List[Dict[str, str]],
        candidates: Optional[List[RetrievedDocument]] = None,
    ) -> Answer:
        """
        Stream the completion, drain it fully, then rewrite citations.

        Citations are labelled from ``candidates`` (every retrieved document,
        filtered out or not) when given, else from the filtered set.
        """
        messages = self.build_messages(question, filtered_documents, history)
        raw = await collect_stream(self.model.stream(messages))
        text = rewrite_citations(raw, candidates if candidates is not None else filtered_documents)
        return Answer(text=text, used_documents=list(filtered_documents))

    async def ensure_title(self, history_store: SessionHistoryStore, session_id: str, user_id: str, question: str) -> Optional[str]:
        """Generate and persist a session title once; later calls make no model call."""
        existing = await history_store.get_title(session_id, user_id)
        if existing:
            return existing

        raw = await self.model.complete([
            {"role": "system", "content": self.title_system_prompt},
            {"role": "user", "content": question},
        ])
        title = clean_title(raw)
        if not title:
            return None
        await history_store.set_title(session_id, user_id, title)
        logger.info(f"Title for session {session_id}: {title}")
        return title
