"""Vector retrieval of labelled document chunks."""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol
import logging

from app.modules.governedchat.services.embeddings import OpenAIEmbeddings
from app.modules.governedchat.services.vector_store import VectorStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetrievedDocument:
    content: str
    source: str
    label_id: Optional[str] = None
    label_name: Optional[str] = None
    score: Optional[float] = None

    @classmethod
    def from_payload(cls, payload: Dict[str, Any], score: Optional[float] = None) -> "RetrievedDocument":
        metadata = payload.get("metadata") or {}
        label = metadata.get("label_metadata") or {}
        return cls(
            content=payload.get("text", ""),
            source=metadata.get("source", ""),
            label_id=label.get("label_id") or None,
            label_name=label.get("label_name") or None,
            score=score,
        )


class Retriever(Protocol):
    async def retrieve(self, query: str) -> List[RetrievedDocument]: ...


class QdrantRetriever:
    def __init__(self, embeddings: OpenAIEmbeddings, store: VectorStore, top_k: int = 3):
        self.embeddings = embeddings
        self.store = store
        self.top_k = top_k

    async def retrieve(self, query: str) -> List[RetrievedDocument]:
        vector = await self.embeddings.embed_text(query)
        hits = await self.store.search(vector, self.top_k)
        documents = [RetrievedDocument.from_payload(hit.payload or {}, hit.score) for hit in hits]
        logger.info(f"Retrieved {len(documents)} documents for query")
        return documents
