"""Text extraction and chunking for uploaded PDF and TXT documents."""

from typing import List
import io
import logging
import re
import unicodedata
from pathlib import Path

import PyPDF2
from langchain_core.documents import Document
from langchain_text_splitters import RecursiveCharacterTextSplitter

from app.modules.governedchat.schema.documents import DocumentLabel

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = {".pdf", ".txt"}


def _clean_text(text: str) -> str:
    """Normalize Unicode and drop characters that break JSON payloads."""
    if not text:
        return text
    text = unicodedata.normalize("NFKC", text)
    text = re.sub(r"[\ud800-\udfff]", "", text)
    text = re.sub(r"[\ufffe\uffff]", "", text)
    text = text.replace("\x00", "")
    return text.encode("utf-8", errors="ignore").decode("utf-8")


def _extract_from_pdf(data: bytes) -> str:
    reader = PyPDF2.PdfReader(io.BytesIO(data))
    pages = []
    for page in reader.pages:
        page_text = page.extract_text()
        if page_text:
            pages.append(page_text)
    return "\n".join(pages)


def _extract_from_txt(data: bytes) -> str:
    for encoding in ("utf-8", "utf-16", "cp1252", "iso-8859-1"):
        try:
            return data.decode(encoding)
        except UnicodeDecodeError:
            continue
    raise ValueError("Could not decode text file with any supported encoding")


def extract_text(filename: str, data: bytes) -> str:
    suffix = Path(filename).suffix.lower()
    if suffix == ".pdf":
        text = _extract_from_pdf(data)
    elif suffix == ".txt":
        text = _extract_from_txt(data)
    else:
        raise ValueError(f"Unsupported file type: {suffix}")
    return _clean_text(text)


def split_document(
    text: str,
    filename: str,
    label: DocumentLabel,
    chunk_size: int = 1500,
    chunk_overlap: int = 100,
) -> List[Document]:
    """Split one document into chunks that all carry its source and label metadata."""
    splitter = RecursiveCharacterTextSplitter(chunk_size=chunk_size, chunk_overlap=chunk_overlap)
    chunks = splitter.create_documents(
        texts=[text],
        metadatas=[{
            "source": filename,
            "label_metadata": {"label_id": label.label_id, "label_name": label.label_name},
        }],
    )
    chunks = [c for c in chunks if c.page_content.strip()]
    logger.info(f"Split {filename} into {len(chunks)} chunks")
    return chunks


def chunk_payloads(chunks: List[Document]) -> List[dict]:
    return [{"text": c.page_content, "metadata": c.metadata} for c in chunks]
