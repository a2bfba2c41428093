"""
Document Service
================
Database-centric document operations.
The database is the source of truth, not the filesystem.
"""

import os
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional
from uuid import UUID

from sqlalchemy import select

from database import CompanyModel, DocumentModel, DocumentStatus
from exceptions import CompanyNotFoundError, DocumentNotFoundError
from logging_config import get_logger
from services.base import DatabaseService, coerce_uuid
from services.reconciliation import merge_placeholder_fields

logger = get_logger(__name__)

STUCK_STATUSES = (DocumentStatus.UPLOADED, DocumentStatus.PARSING)


class DocumentService(DatabaseService):
    """
    CRUD operations for document records plus self-healing consistency
    checks between the database and the upload directory.

    Usage:
        async with DocumentService() as service:
            docs = await service.list_documents(uploaded_by_id=user_id)
    """

    # =========================================================================
    # Queries
    # =========================================================================

    async def get_document(self, doc_id: Any) -> Optional[DocumentModel]:
        stmt = select(DocumentModel).where(DocumentModel.id == coerce_uuid(doc_id, "document_id"))
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def require_document(self, doc_id: Any) -> DocumentModel:
        """Like get_document, but raises DocumentNotFoundError."""
        doc = await self.get_document(doc_id)
        if doc is None:
            raise DocumentNotFoundError(doc_id)
        return doc

    async def list_documents(
        self,
        uploaded_by_id: Optional[str] = None,
        company_id: Optional[Any] = None,
    ) -> List[DocumentModel]:
        """
        Query documents, newest first.

        Args:
            uploaded_by_id: Only documents uploaded by this user.
            company_id: Only documents linked to this company.
        """
        stmt = select(DocumentModel)
        if uploaded_by_id is not None:
            stmt = stmt.where(DocumentModel.uploaded_by_id == uploaded_by_id)
        if company_id is not None:
            stmt = stmt.where(DocumentModel.company_id == coerce_uuid(company_id, "company_id"))
        stmt = stmt.order_by(DocumentModel.created_at.desc())

        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    # =========================================================================
    # Mutations
    # =========================================================================

    async def create_document(
        self,
        file_name: str,
        file_path: str,
        uploaded_by_id: str,
        mime_type: Optional[str] = None,
        document_id: Optional[UUID] = None,
    ) -> DocumentModel:
        """
        Create an UPLOADED document record before the file is processed.

        This is called FIRST in the upload pipeline so the database knows
        about the document even if storing the file fails.
        """
        doc = DocumentModel(
            file_name=file_name,
            file_path=file_path,
            mime_type=mime_type,
            uploaded_by_id=uploaded_by_id,
            status=DocumentStatus.UPLOADED,
            data=[],
            generated_file_paths=[],
        )
        if document_id is not None:
            doc.id = coerce_uuid(document_id, "document_id")

        self.session.add(doc)
        await self.session.flush()

        logger.info("Created document record", document_id=str(doc.id), file_name=file_name)
        return doc

    async def update_title(self, doc_id: Any, title: Optional[str]) -> DocumentModel:
        doc = await self.require_document(doc_id)
        doc.title = title.strip() if title and title.strip() else None
        await self.session.flush()
        return doc

    async def update_data(self, doc_id: Any, updates: Iterable[Any]) -> DocumentModel:
        """Per-label upsert of placeholders (see merge_placeholder_fields)."""
        doc = await self.require_document(doc_id)
        updates = list(updates or [])
        if not updates:
            return doc

        # JSON columns are not mutation-tracked: always assign a new list
        doc.data = merge_placeholder_fields(doc.placeholders, updates)
        await self.session.flush()

        logger.info("Updated document data", document_id=str(doc.id), updated_labels=len(updates))
        return doc

    async def store_extraction(
        self,
        doc_id: Any,
        title: Optional[str],
        description: Optional[str],
        placeholders: Iterable[Any],
    ) -> DocumentModel:
        """Persist the parse result; a title set by the user is kept."""
        doc = await self.require_document(doc_id)
        if not doc.title and title:
            doc.title = title.strip()
        if description:
            doc.description = description.strip()
        doc.data = merge_placeholder_fields(doc.placeholders, placeholders)
        await self.session.flush()
        return doc

    async def update_raw_text(self, doc_id: Any, raw_text: str) -> DocumentModel:
        doc = await self.require_document(doc_id)
        doc.raw_text = raw_text
        await self.session.flush()
        return doc

    async def update_status(
        self,
        doc_id: Any,
        status: DocumentStatus,
        error_message: Optional[str] = None,
    ) -> DocumentModel:
        """
        Move a document to a new lifecycle status.

        The error message is cleared on every transition except to ERROR.
        """
        doc = await self.require_document(doc_id)
        doc.status = status
        if status == DocumentStatus.ERROR:
            doc.error_message = error_message or doc.error_message
        else:
            doc.error_message = None
        await self.session.flush()

        logger.info(
            "Updated document status",
            document_id=str(doc.id),
            status=status.value,
            error=error_message,
        )
        return doc

    async def update_error_message(self, doc_id: Any, error_message: Optional[str]) -> DocumentModel:
        doc = await self.require_document(doc_id)
        doc.error_message = error_message
        await self.session.flush()
        return doc

    async def update_thread(self, doc_id: Any, thread_id: str) -> DocumentModel:
        doc = await self.require_document(doc_id)
        doc.thread_id = thread_id
        await self.session.flush()
        return doc

    async def link_company(self, doc_id: Any, company_id: Any) -> DocumentModel:
        """Associate a document with an existing company."""
        doc = await self.require_document(doc_id)
        company_uuid = coerce_uuid(company_id, "company_id")

        company = await self.session.get(CompanyModel, company_uuid)
        if company is None:
            raise CompanyNotFoundError(company_id)

        doc.company_id = company_uuid
        await self.session.flush()

        logger.info("Linked company to document", document_id=str(doc.id), company_id=str(company_uuid))
        return doc

    async def add_generated_file(self, doc_id: Any, file_path: str) -> DocumentModel:
        doc = await self.require_document(doc_id)
        doc.generated_file_paths = list(doc.generated_file_paths or []) + [file_path]
        await self.session.flush()
        return doc

    async def delete_document(self, doc_id: Any) -> bool:
        """
        Delete a document record.

        Returns:
            True if the document was found and deleted, False otherwise.
        """
        doc = await self.get_document(doc_id)
        if doc is None:
            return False
        await self.session.delete(doc)
        await self.session.flush()
        logger.info("Deleted document record", document_id=str(doc_id))
        return True

    # =========================================================================
    # Consistency Check (Self-Healing)
    # =========================================================================

    async def sync_storage_consistency(self) -> Dict[str, Any]:
        """
        Mark documents whose original file vanished from disk as ERROR.

        Returns:
            Dict with checked / healthy / corrupted counts and error details.
        """
        stats = {"checked": 0, "healthy": 0, "corrupted": 0, "errors": []}

        stmt = select(DocumentModel).where(DocumentModel.status != DocumentStatus.ERROR)
        result = await self.session.execute(stmt)
        documents = list(result.scalars().all())
        stats["checked"] = len(documents)

        for doc in documents:
            if os.path.exists(doc.file_path):
                stats["healthy"] += 1
                continue

            error_msg = "Data Corruption: File missing"
            doc.status = DocumentStatus.ERROR
            doc.error_message = error_msg
            stats["corrupted"] += 1
            stats["errors"].append({
                "doc_id": str(doc.id),
                "file_name": doc.file_name,
                "file_path": doc.file_path,
                "error": error_msg,
            })
            logger.warning("Storage consistency check failed", document_id=str(doc.id), file_path=doc.file_path)

        await self.session.flush()
        logger.info(
            "Storage consistency check complete",
            checked=stats["checked"],
            healthy=stats["healthy"],
            corrupted=stats["corrupted"],
        )
        return stats

    async def rescue_stuck_documents(self, max_age_minutes: int = 30) -> Dict[str, Any]:
        """
        Fail documents left in UPLOADED or PARSING by a crash or restart.

        Only documents older than `max_age_minutes` are touched; parsing is
        not retried automatically.
        """
        cutoff_time = datetime.utcnow() - timedelta(minutes=max_age_minutes)
        stats = {"checked": 0, "rescued": 0, "missing_file": 0}

        stmt = (
            select(DocumentModel)
            .where(DocumentModel.status.in_(STUCK_STATUSES))
            .where(DocumentModel.updated_at < cutoff_time)
        )
        result = await self.session.execute(stmt)
        documents = list(result.scalars().all())
        stats["checked"] = len(documents)

        for doc in documents:
            if os.path.exists(doc.file_path):
                doc.error_message = "Processing was interrupted. Please upload the document again."
            else:
                doc.error_message = "Data Corruption: File missing"
                stats["missing_file"] += 1
            doc.status = DocumentStatus.ERROR
            stats["rescued"] += 1
            logger.warning("Rescued stuck document", document_id=str(doc.id), error=doc.error_message)

        await self.session.flush()
        return stats
