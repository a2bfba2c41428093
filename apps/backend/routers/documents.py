"""
Documents Router
================
Upload, review and generation of legal document templates.

Uploads follow the Write-Ahead Log pattern:
1. Generate UUID
2. Write to DB (status=uploaded)
3. Commit
4. Write file to disk
5. Queue background parsing
"""

from pathlib import Path
from typing import List, Optional
from uuid import UUID, uuid4

from fastapi import APIRouter, BackgroundTasks, Depends, File, HTTPException, Query, UploadFile
from fastapi.responses import FileResponse

from config import get_settings
from database import DocumentModel, DocumentStatus
from dependencies import get_current_user
from exceptions import (
    DocumentNotFoundError,
    StorageError,
    UnsupportedFileTypeError,
    ValidationError,
)
from logging_config import get_logger
from schemas import (
    DocumentResponse,
    FillSuggestionResponse,
    LinkCompanyRequest,
    PlaceholderLocationResponse,
    UpdateDocumentDataRequest,
    UpdateDocumentTitleRequest,
    UploadResponse,
)
from services.chat_service import ChatService
from services.company_service import CompanyService
from services.document_generator import generate_filled_document
from services.document_service import DocumentService
from services.parser import extract_fields_from_document
from services.placeholder_locator import locate_placeholder
from services.reconciliation import merge_company_data, suggest_company_fills
from services.storage import delete_files, save_file, upload_path
from services.text_extraction import resolve_mime_type, validate_upload

logger = get_logger(__name__)

router = APIRouter()


def _document_response(doc: DocumentModel) -> DocumentResponse:
    return DocumentResponse(**doc.to_dict())


async def _owned_document(documents: DocumentService, doc_id: UUID, user_id: str) -> DocumentModel:
    """Documents of other users are reported as missing."""
    doc = await documents.require_document(doc_id)
    if doc.uploaded_by_id != user_id:
        raise DocumentNotFoundError(doc_id)
    return doc


# =============================================================================
# Background Workers
# =============================================================================

async def delete_document_background(doc_id: UUID) -> None:
    """Delete the chat thread, the stored files and finally the record."""
    async with DocumentService() as documents:
        doc = await documents.get_document(doc_id)
        if doc is None:
            logger.warning("Document already deleted", document_id=str(doc_id))
            return
        thread_id = doc.thread_id
        paths = [doc.file_path] + list(doc.generated_file_paths or [])

    if thread_id:
        async with ChatService() as chat:
            await chat.delete_thread(thread_id)

    deleted_files = delete_files(paths)

    async with DocumentService() as documents:
        await documents.delete_document(doc_id)

    logger.info("Document deleted", document_id=str(doc_id), deleted_files=deleted_files)


# =============================================================================
# API Endpoints
# =============================================================================

@router.post("/documents/upload", status_code=202, response_model=UploadResponse)
async def upload_document(
    background_tasks: BackgroundTasks,
    file: UploadFile = File(...),
    user_id: str = Depends(get_current_user),
):
    """
    Upload a legal document template (PDF or DOCX).

    Returns 202 Accepted immediately; parsing runs in the background.
    Poll GET /api/v1/documents/{id} for the status.
    """
    settings = get_settings()
    # Never buffer more than one byte past the limit
    if file.size is not None and file.size > settings.max_upload_bytes:
        size = file.size
        content = b""
    else:
        content = await file.read(settings.max_upload_bytes + 1)
        size = len(content)

    error = validate_upload(file.filename, file.content_type, size, settings.max_upload_bytes)
    if error:
        if size > settings.max_upload_bytes:
            raise ValidationError(error, field="file", value=size)
        raise UnsupportedFileTypeError(error, filename=file.filename, mime_type=file.content_type)

    doc_id = uuid4()
    file_path = upload_path(doc_id, file.filename, settings.upload_dir)

    async with DocumentService() as documents:
        await documents.create_document(
            file_name=file.filename or file_path.name,
            file_path=str(file_path),
            uploaded_by_id=user_id,
            mime_type=resolve_mime_type(file.filename, file.content_type),
            document_id=doc_id,
        )

    try:
        await save_file(file_path, content)
    except StorageError:
        async with DocumentService() as documents:
            await documents.update_status(doc_id, DocumentStatus.ERROR, error_message="Failed to save file")
        raise

    background_tasks.add_task(extract_fields_from_document, doc_id)

    return UploadResponse(
        id=str(doc_id),
        status=DocumentStatus.UPLOADED.value,
        message=f"Upload accepted. Poll /api/v1/documents/{doc_id} for progress.",
    )


@router.get("/documents", response_model=List[DocumentResponse])
async def list_documents(
    company_id: Optional[UUID] = None,
    user_id: str = Depends(get_current_user),
):
    """Documents uploaded by the caller, newest first."""
    async with DocumentService() as documents:
        docs = await documents.list_documents(uploaded_by_id=user_id, company_id=company_id)
    return [_document_response(doc) for doc in docs]


@router.get("/documents/{doc_id}", response_model=DocumentResponse)
async def get_document(doc_id: UUID, user_id: str = Depends(get_current_user)):
    async with DocumentService() as documents:
        doc = await _owned_document(documents, doc_id, user_id)
    return _document_response(doc)


@router.patch("/documents/{doc_id}/title", response_model=DocumentResponse)
async def update_document_title(
    doc_id: UUID,
    request: UpdateDocumentTitleRequest,
    user_id: str = Depends(get_current_user),
):
    async with DocumentService() as documents:
        await _owned_document(documents, doc_id, user_id)
        doc = await documents.update_title(doc_id, request.title)
    return _document_response(doc)


@router.put("/documents/{doc_id}/data", response_model=DocumentResponse)
async def update_document_data(
    doc_id: UUID,
    request: UpdateDocumentDataRequest,
    user_id: str = Depends(get_current_user),
):
    """Upsert placeholders by label; placeholders not sent are kept."""
    async with DocumentService() as documents:
        await _owned_document(documents, doc_id, user_id)
        doc = await documents.update_data(
            doc_id,
            [item.model_dump(exclude_none=True) for item in request.data],
        )
    return _document_response(doc)


@router.put("/documents/{doc_id}/company", response_model=DocumentResponse)
async def link_document_company(
    doc_id: UUID,
    request: LinkCompanyRequest,
    user_id: str = Depends(get_current_user),
):
    async with DocumentService() as documents:
        await _owned_document(documents, doc_id, user_id)
        doc = await documents.link_company(doc_id, request.company_id)
    return _document_response(doc)


@router.get("/documents/{doc_id}/suggestions", response_model=List[FillSuggestionResponse])
async def get_fill_suggestions(doc_id: UUID, user_id: str = Depends(get_current_user)):
    """Values the linked company can provide for unfilled placeholders."""
    async with DocumentService() as documents:
        doc = await _owned_document(documents, doc_id, user_id)
        if doc.company_id is None:
            return []
        companies = CompanyService.from_session(documents.session)
        company = await companies.require_company(doc.company_id)
        aggregated, _ = await companies.aggregate_company_data(company.id)
        known = merge_company_data(company.data, aggregated)

    return [
        FillSuggestionResponse(**suggestion.to_dict())
        for suggestion in suggest_company_fills(doc.placeholders, known)
    ]


@router.get(
    "/documents/{doc_id}/placeholders/{label}/location",
    response_model=PlaceholderLocationResponse,
)
async def get_placeholder_location(
    doc_id: UUID,
    label: str,
    padding: Optional[int] = Query(default=None, ge=0, le=1000),
    user_id: str = Depends(get_current_user),
):
    """Where a placeholder sits in the extracted text, with surrounding context."""
    settings = get_settings()
    async with DocumentService() as documents:
        doc = await _owned_document(documents, doc_id, user_id)

    location = locate_placeholder(
        doc.raw_text or "",
        label,
        padding=settings.placeholder_padding if padding is None else padding,
        fuzzy_threshold=settings.fuzzy_match_threshold,
    )
    if location is None:
        raise HTTPException(status_code=404, detail=f"Placeholder '{label}' not found in document text")
    return PlaceholderLocationResponse(**location.to_dict())


@router.post("/documents/{doc_id}/generate", response_model=DocumentResponse)
async def generate_document(doc_id: UUID, user_id: str = Depends(get_current_user)):
    """Generate the filled document; the newest file is the last index."""
    async with DocumentService() as documents:
        await _owned_document(documents, doc_id, user_id)

    await generate_filled_document(doc_id)

    async with DocumentService() as documents:
        doc = await documents.require_document(doc_id)
    return _document_response(doc)


@router.get("/documents/{doc_id}/files/{index}")
async def download_generated_file(doc_id: UUID, index: int, user_id: str = Depends(get_current_user)):
    async with DocumentService() as documents:
        doc = await _owned_document(documents, doc_id, user_id)

    paths = list(doc.generated_file_paths or [])
    if index < 0 or index >= len(paths) or not Path(paths[index]).exists():
        raise HTTPException(status_code=404, detail="Generated file not found")

    stem = Path(doc.file_name or "document").stem
    return FileResponse(
        paths[index],
        media_type="application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        filename=f"{stem}_filled_{index + 1}.docx",
    )


@router.delete("/documents/{doc_id}", status_code=202)
async def delete_document(
    doc_id: UUID,
    background_tasks: BackgroundTasks,
    user_id: str = Depends(get_current_user),
):
    """Schedule deletion of a document, its files and its chat thread."""
    async with DocumentService() as documents:
        await _owned_document(documents, doc_id, user_id)

    background_tasks.add_task(delete_document_background, doc_id)
    return {"id": str(doc_id), "status": "deleting"}
