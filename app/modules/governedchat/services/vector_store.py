from typing import Any, Dict, List
import logging
import uuid

from qdrant_client import AsyncQdrantClient
from qdrant_client.models import (
    Distance,
    FieldCondition,
    Filter,
    FilterSelector,
    MatchValue,
    PointStruct,
    ScoredPoint,
    VectorParams,
)

from core.config import Settings
from core.utils.perf import profile_stage

logger = logging.getLogger("qdrant.client")

SOURCE_KEY = "metadata.source"


def make_qdrant_client(config: Settings, local: bool) -> AsyncQdrantClient:
    """Embedded on-disk store for the local backend, Qdrant server otherwise."""
    if local:
        return AsyncQdrantClient(path=config.QDRANT_LOCAL_PATH)
    return AsyncQdrantClient(
        url=config.QDRANT_URL,
        api_key=config.QDRANT_API_KEY or None,
        timeout=config.RETRIEVER_TIMEOUT_SECS,
    )


def _source_filter(source: str) -> Filter:
    return Filter(must=[FieldCondition(key=SOURCE_KEY, match=MatchValue(value=source))])


class VectorStore:
    """Thin async wrapper over one Qdrant collection holding document chunks."""

    def __init__(self, client: AsyncQdrantClient, collection: str, dim: int):
        self.client = client
        self.collection = collection
        self.dim = dim

    async def ensure_collection(self) -> None:
        if not await self.client.collection_exists(self.collection):
            await self.client.create_collection(
                collection_name=self.collection,
                vectors_config=VectorParams(size=self.dim, distance=Distance.COSINE),
            )
            logger.info(f"Created collection {self.collection} (dim={self.dim})")

    @profile_stage("vector_search")
    async def search(self, vector: List[float], top_k: int) -> List[ScoredPoint]:
        response = await self.client.query_points(
            collection_name=self.collection,
            query=vector,
            limit=top_k,
            with_payload=True,
            with_vectors=False,
        )
        return list(response.points)

    async def upsert(self, vectors: List[List[float]], payloads: List[Dict[str, Any]]) -> int:
        if len(vectors) != len(payloads):
            raise ValueError("vectors and payloads must be the same length")
        points = [
            PointStruct(id=str(uuid.uuid4()), vector=vector, payload=payload)
            for vector, payload in zip(vectors, payloads)
        ]
        if points:
            await self.client.upsert(collection_name=self.collection, points=points, wait=True)
        return len(points)

    async def count_source(self, source: str) -> int:
        result = await self.client.count(
            collection_name=self.collection, count_filter=_source_filter(source), exact=True
        )
        return result.count

    async def delete_source(self, source: str) -> None:
        await self.client.delete(
            collection_name=self.collection,
            points_selector=FilterSelector(filter=_source_filter(source)),
            wait=True,
        )

    async def close(self) -> None:
        await self.client.close()
