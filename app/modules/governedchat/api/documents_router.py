from typing import Optional
import logging

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from fastapi.responses import FileResponse, JSONResponse

from app.modules.governedchat.api.chats_router import bad_request, service_unavailable
from app.modules.governedchat.api.dependencies import get_backend, get_settings_dep
from app.modules.governedchat.schema.documents import DocumentLabel, DocumentUploadResponse
from app.modules.governedchat.services.document_service import DocumentService, is_supported, safe_filename

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/documents", tags=["Documents"])

MAX_UPLOAD_BYTES = 50 * 1024 * 1024


def get_document_service(request: Request) -> DocumentService:
    service = getattr(request.app.state, "document_service", None)
    if service is None:
        service = DocumentService(get_settings_dep(request), get_backend(request))
        request.app.state.document_service = service
    return service


@router.post("", response_model=DocumentUploadResponse)
async def upload_document(
    file: Optional[UploadFile] = File(default=None),
    labelId: Optional[str] = Form(default=None),
    labelName: Optional[str] = Form(default=None),
    service: DocumentService = Depends(get_document_service),
):
    """Upload a document, index its chunks with their governance label and keep the original."""
    if file is None:
        return bad_request('Required field "file" is missing from form data.')

    filename = safe_filename(file.filename)
    if not filename:
        return bad_request("File must have a filename")
    if not is_supported(filename):
        return bad_request("Invalid file type. Allowed types: .pdf, .txt")

    data = await file.read()
    if not data:
        return bad_request("Uploaded file is empty")
    if len(data) > MAX_UPLOAD_BYTES:
        return bad_request("Uploaded file is too large")

    label = DocumentLabel(label_id=labelId, label_name=labelName)
    try:
        return await service.ingest(filename, data, label)
    except ValueError as e:
        logger.warning(f"Rejected document {filename}: {e}")
        return bad_request(str(e))
    except Exception as e:
        logger.error(f"Error when processing document-post request: {e}", exc_info=True)
        return service_unavailable()


@router.get("/{filename}")
async def get_document(
    filename: str,
    service: DocumentService = Depends(get_document_service),
):
    path = service.stored_path(filename)
    if path is None:
        return JSONResponse(status_code=404, content={"error": f"Document {filename} not found"})
    media_type = "application/pdf" if path.suffix.lower() == ".pdf" else "text/plain"
    return FileResponse(path, media_type=media_type, filename=path.name)
