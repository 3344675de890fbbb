from typing import List
import asyncio
import logging

from openai import AsyncOpenAI, OpenAIError

from app.modules.governedchat.errors import DownstreamModelError

logger = logging.getLogger(__name__)


class OpenAIEmbeddings:
    """Embeddings through any OpenAI-compatible endpoint (Azure OpenAI or Ollama)."""

    def __init__(self, client: AsyncOpenAI, model: str, batch_size: int = 16):
        self.client = client
        self.model = model
        self.batch_size = batch_size

    async def embed_text(self, text: str) -> List[float]:
        try:
            response = await self.client.embeddings.create(input=text, model=self.model)
        except OpenAIError as e:
            logger.warning(f"Embedding generation failed: {e}")
            raise DownstreamModelError("Embedding generation failed") from e
        return response.data[0].embedding

    async def embed_texts_batch(self, texts: List[str]) -> List[List[float]]:
        """Generate embeddings for multiple texts in batches."""
        if not texts:
            return []

        embeddings: List[List[float]] = []
        total_batches = (len(texts) + self.batch_size - 1) // self.batch_size
        logger.info(f"Processing {len(texts)} texts in batches of {self.batch_size}")

        for i in range(0, len(texts), self.batch_size):
            batch = texts[i:i + self.batch_size]
            batch_num = (i // self.batch_size) + 1
            if i > 0:
                await asyncio.sleep(0.1)
            try:
                response = await self.client.embeddings.create(input=batch, model=self.model)
            except OpenAIError as e:
                logger.error(f"Failed to process batch {batch_num}/{total_batches}: {e}")
                raise DownstreamModelError("Embedding generation failed") from e
            embeddings.extend(data.embedding for data in response.data)

        return embeddings
