"""
Document Service Module
Handles document ingestion (replace-by-filename) and retrieval of stored originals
"""

from pathlib import Path
from typing import Optional
import logging

import aiofiles

from app.modules.governedchat.schema.documents import DocumentLabel, DocumentUploadResponse
from app.modules.governedchat.services.backends import ChatBackend
from app.modules.governedchat.services.ingestion.document_processor import (
    SUPPORTED_EXTENSIONS,
    chunk_payloads,
    extract_text,
    split_document,
)
from core.config import Settings
from core.utils.perf import profile_stage

logger = logging.getLogger(__name__)

UPLOAD_SUCCESS_MESSAGE = "PDF file uploaded successfully."


def safe_filename(filename: Optional[str]) -> Optional[str]:
    """Strip any directory part; None when nothing usable remains."""
    if not filename:
        return None
    name = Path(filename.replace("\\", "/")).name
    return name if name and name not in (".", "..") else None


def is_supported(filename: str) -> bool:
    return Path(filename).suffix.lower() in SUPPORTED_EXTENSIONS


class DocumentService:
    def __init__(self, config: Settings, backend: ChatBackend):
        self.config = config
        self.backend = backend
        self.storage_dir = Path(config.DOCUMENTS_STORAGE_DIR)

    @profile_stage("document_ingest")
    async def ingest(self, filename: str, data: bytes, label: DocumentLabel) -> DocumentUploadResponse:
        store = self.backend.vector_store
        await store.ensure_collection()

        if await store.count_source(filename) > 0:
            logger.info(f'Document "{filename}" already exists. Replacing it with new label information.')
            await store.delete_source(filename)

        text = extract_text(filename, data)
        if not text.strip():
            raise ValueError(f"No text content extracted from {filename}")

        chunks = split_document(text, filename, label, self.config.CHUNK_SIZE, self.config.CHUNK_OVERLAP)
        vectors = await self.backend.embeddings.embed_texts_batch([c.page_content for c in chunks])
        stored = await store.upsert(vectors, chunk_payloads(chunks))

        await self._save_original(filename, data)
        logger.info(f"Indexed {filename}: {stored} chunks (label {label.label_name})")
        return DocumentUploadResponse(message=UPLOAD_SUCCESS_MESSAGE, chunks=stored, filename=filename)

    async def _save_original(self, filename: str, data: bytes) -> None:
        self.storage_dir.mkdir(parents=True, exist_ok=True)
        async with aiofiles.open(self.storage_dir / filename, "wb") as f:
            await f.write(data)

    def stored_path(self, filename: str) -> Optional[Path]:
        name = safe_filename(filename)
        if name is None:
            return None
        path = self.storage_dir / name
        return path if path.is_file() else None
