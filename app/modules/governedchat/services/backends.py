"""
Model/vector backends selected once at startup.

  azure: Azure OpenAI (chat + embeddings deployments) with a Qdrant server
  local: Ollama's OpenAI-compatible API with an embedded on-disk Qdrant

Both expose the same retriever / embeddings / chat model interfaces.
"""

from dataclasses import dataclass
import logging

from openai import AsyncAzureOpenAI, AsyncOpenAI

from app.modules.governedchat.services.embeddings import OpenAIEmbeddings
from app.modules.governedchat.services.llm import OpenAIChatModel
from app.modules.governedchat.services.retrieval.retriever import QdrantRetriever, Retriever
from app.modules.governedchat.services.vector_store import VectorStore, make_qdrant_client
from core.config import Settings

logger = logging.getLogger(__name__)

AZURE = "azure"
LOCAL = "local"


@dataclass
class ChatBackend:
    kind: str
    embeddings: OpenAIEmbeddings
    chat_model: OpenAIChatModel
    vector_store: VectorStore
    retriever: Retriever


def _azure_client(config: Settings) -> AsyncOpenAI:
    return AsyncAzureOpenAI(
        azure_endpoint=config.AZURE_OPENAI_API_ENDPOINT,
        api_key=config.AZURE_OPENAI_API_KEY,
        api_version=config.AZURE_OPENAI_API_VERSION,
        timeout=config.MODEL_TIMEOUT_SECS,
        max_retries=2,
    )


def _ollama_client(config: Settings) -> AsyncOpenAI:
    # Ollama ignores the key but the SDK requires one
    return AsyncOpenAI(
        base_url=config.OLLAMA_BASE_URL,
        api_key="ollama",
        timeout=config.MODEL_TIMEOUT_SECS,
        max_retries=2,
    )


def build_backend(config: Settings) -> ChatBackend:
    kind = config.resolved_backend()
    if kind == AZURE:
        if not config.AZURE_OPENAI_API_ENDPOINT:
            raise ValueError("MODEL_BACKEND=azure requires AZURE_OPENAI_API_ENDPOINT")
        client = _azure_client(config)
        embeddings = OpenAIEmbeddings(client, config.AZURE_OPENAI_EMBEDDINGS_DEPLOYMENT)
        chat_model = OpenAIChatModel(client, config.AZURE_OPENAI_CHAT_DEPLOYMENT, config.LLM_TEMPERATURE)
        store = VectorStore(make_qdrant_client(config, local=False), config.QDRANT_COLLECTION, config.EMBEDDING_DIMENSIONS)
    elif kind == LOCAL:
        logger.info("No Azure OpenAI endpoint set, using Ollama models and local vector store")
        client = _ollama_client(config)
        embeddings = OpenAIEmbeddings(client, config.OLLAMA_EMBEDDINGS_MODEL)
        chat_model = OpenAIChatModel(client, config.OLLAMA_CHAT_MODEL, config.LLM_TEMPERATURE)
        store = VectorStore(make_qdrant_client(config, local=True), config.QDRANT_COLLECTION, config.LOCAL_EMBEDDING_DIMENSIONS)
    else:
        raise ValueError(f"Unknown model backend: {kind}")

    return ChatBackend(
        kind=kind,
        embeddings=embeddings,
        chat_model=chat_model,
        vector_store=store,
        retriever=QdrantRetriever(embeddings, store, top_k=config.RETRIEVER_TOP_K),
    )
