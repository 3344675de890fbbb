from pydantic import BaseModel, field_validator
from typing import Optional

DEFAULT_LABEL_ID = "123456789"
DEFAULT_LABEL_NAME = "General"


class DocumentLabel(BaseModel):
    """Governance label attached to a document at ingestion time."""
    label_id: str = DEFAULT_LABEL_ID
    label_name: str = DEFAULT_LABEL_NAME

    @field_validator("label_id", "label_name", mode="before")
    @classmethod
    def default_when_blank(cls, v: Optional[str], info) -> str:
        if v is None or not str(v).strip():
            return DEFAULT_LABEL_ID if info.field_name == "label_id" else DEFAULT_LABEL_NAME
        return str(v).strip()


class DocumentUploadResponse(BaseModel):
    message: str
    chunks: int = 0
    filename: Optional[str] = None
