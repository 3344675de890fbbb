"""
Core Configuration and Services
Consolidated configuration settings and service wiring for the governed RAG chat API
"""

import logging
from functools import lru_cache
from typing import List, Literal, Optional

from fastapi import FastAPI
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

RAG_SYSTEM_PROMPT = """Assistant helps the Consto Real Estate company customers with questions and support requests. Be brief in your answers. Answer only plain text, DO NOT use Markdown.
Answer ONLY with information from the sources below. If there isn't enough information in the sources, say you don't know. Do not generate answers that don't use the sources. If asking a clarifying question to the user would help, ask the question.
If the user question is not in English, answer in the language used in the question.

Each source has the format "[filename]: information". ALWAYS reference the source filename for every part used in the answer. Use the format "[filename]" to reference a source, for example: [info1.txt]. List each source separately, for example: [info1.txt][info2.pdf].

Generate 3 very brief follow-up questions that the user would likely ask next.
Enclose the follow-up questions in double angle brackets. Example:
<<Am I allowed to invite friends for a party?>>
<<How can I ask for a refund?>>
<<What If I break something?>>

Do no repeat questions that have already been asked.
Make sure the last question ends with ">>".

SOURCES:
{context}"""

TITLE_SYSTEM_PROMPT = (
    "Create a title for this chat session, based on the user question. "
    "The title should be less than 32 characters. Do NOT use double-quotes."
)

BLOCKED_MESSAGE = "This action has been blocked due to the security policies enforced by your organization."

SERVICE_UNAVAILABLE_MESSAGE = "Service temporarily unavailable. Please try again later."


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    PROJECT_NAME: str = "Governed RAG Chat"
    LOG_LEVEL: str = "INFO"

    # Identity (app registration used for OBO + client credentials)
    AZURE_AD_API_ID: str = ""
    AZURE_AD_API_SECRET: str = ""
    AZURE_AD_AUTHORITY_HOST: str = "https://login.microsoftonline.com"
    AZURE_AD_TENANT_ID: str = "organizations"
    AZURE_AD_GRAPH_SCOPE: str = "https://graph.microsoft.com/.default"
    AZURE_AD_APP_SCOPE: str = "https://graph.microsoft.com/.default"
    TOKEN_BROKER_TIMEOUT_SECS: float = 10.0

    # Policy service
    PURVIEW_API_BASE_URL: str = "https://graph.microsoft.com"
    PURVIEW_APP_NAME: str = "BuildDemo-P4AI"
    PURVIEW_APP_VERSION: str = "1.0"
    PURVIEW_ACCEPTED_ACCESS_RIGHTS: str = "default"
    POLICY_API_TIMEOUT_SECS: float = 15.0

    # Model backend: "azure" | "local"; None means decide once from AZURE_OPENAI_API_ENDPOINT
    MODEL_BACKEND: Optional[Literal["azure", "local"]] = None
    AZURE_OPENAI_API_ENDPOINT: Optional[str] = None
    AZURE_OPENAI_API_KEY: Optional[str] = None
    AZURE_OPENAI_API_VERSION: str = "2024-10-21"
    AZURE_OPENAI_CHAT_DEPLOYMENT: str = "gpt-4o-mini"
    AZURE_OPENAI_EMBEDDINGS_DEPLOYMENT: str = "text-embedding-3-small"
    OLLAMA_BASE_URL: str = "http://localhost:11434/v1"
    OLLAMA_CHAT_MODEL: str = "llama3.1:latest"
    OLLAMA_EMBEDDINGS_MODEL: str = "nomic-embed-text:latest"
    LLM_TEMPERATURE: float = 0.7
    MODEL_TIMEOUT_SECS: float = 60.0

    # Qdrant
    QDRANT_URL: str = "http://localhost:6333"
    QDRANT_API_KEY: Optional[str] = None
    QDRANT_LOCAL_PATH: str = "./.qdrant"
    QDRANT_COLLECTION: str = "documents"
    EMBEDDING_DIMENSIONS: int = 1536
    LOCAL_EMBEDDING_DIMENSIONS: int = 768
    RETRIEVER_TOP_K: int = 3
    RETRIEVER_TIMEOUT_SECS: int = 10

    # Chat history
    DATABASE_URL: str = "sqlite+aiosqlite:///./chat_history.sqlite"

    # Documents
    DOCUMENTS_STORAGE_DIR: str = "./data/documents"
    CHUNK_SIZE: int = 1500
    CHUNK_OVERLAP: int = 100

    # Prompts are part of the contract with the model
    RAG_SYSTEM_PROMPT: str = RAG_SYSTEM_PROMPT
    TITLE_SYSTEM_PROMPT: str = TITLE_SYSTEM_PROMPT
    BLOCKED_MESSAGE: str = BLOCKED_MESSAGE

    # CORS Configuration
    CORS_ALLOW_ORIGINS: List[str] = ["*"]

    @property
    def graph_scopes(self) -> List[str]:
        return [scope.strip() for scope in self.AZURE_AD_GRAPH_SCOPE.split(" ") if scope.strip()]

    @property
    def accepted_access_rights(self) -> str:
        return (self.PURVIEW_ACCEPTED_ACCESS_RIGHTS or "default").lower()

    def resolved_backend(self) -> str:
        """Backend kind chosen once at startup."""
        if self.MODEL_BACKEND:
            return self.MODEL_BACKEND
        return "azure" if self.AZURE_OPENAI_API_ENDPOINT else "local"


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()


def wire_services(app: FastAPI, config: Optional[Settings] = None) -> None:
    """Wire all singleton services into app.state on startup."""
    from app.modules.governedchat.services.backends import build_backend
    from app.modules.governedchat.services.orchestrator import ChatOrchestrator
    from app.modules.governedchat.services.policy.gateway import PolicyGateway
    from app.modules.governedchat.services.policy.state import (
        InMemoryKeyValueStore,
        PolicyScopeCache,
        SessionSequenceCounter,
    )
    from app.modules.governedchat.services.token_broker import TokenBroker
    from app.services.memory.history import SqlSessionHistoryStore

    config = config or settings
    logger.info("Wiring global services...")

    app.state.settings = config
    app.state.backend = build_backend(config)
    logger.info("Model backend selected: %s", app.state.backend.kind)

    app.state.history_store = SqlSessionHistoryStore()
    app.state.token_broker = TokenBroker(config)
    app.state.policy_gateway = PolicyGateway(config)
    app.state.scope_cache = PolicyScopeCache(InMemoryKeyValueStore())
    app.state.sequence_counter = SessionSequenceCounter(InMemoryKeyValueStore())

    app.state.orchestrator = ChatOrchestrator(
        config=config,
        token_broker=app.state.token_broker,
        gateway=app.state.policy_gateway,
        scope_cache=app.state.scope_cache,
        sequence_counter=app.state.sequence_counter,
        backend=app.state.backend,
        history_store=app.state.history_store,
    )

    logger.info("Service container wiring completed successfully")


async def perform_warmup(app: FastAPI) -> None:
    """Ensure the vector collection exists (call this from startup event)."""
    try:
        await app.state.backend.vector_store.ensure_collection()
        logger.info("Qdrant collection initialized successfully")
    except Exception as warmup_error:
        logger.warning(f"Qdrant collection initialization failed (non-critical): {warmup_error}")

