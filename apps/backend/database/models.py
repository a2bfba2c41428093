"""
Database Models
===============
SQLAlchemy models for documents, companies and chat threads.
The database is the source of truth, not the filesystem.
"""

import enum
from datetime import datetime
from uuid import uuid4

from sqlalchemy import (
    Column,
    String,
    DateTime,
    ForeignKey,
    Integer,
    Text,
    Enum,
    Index,
    JSON,
)
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


class DocumentStatus(str, enum.Enum):
    """
    Document lifecycle status.

    UPLOADED: Record created, file saved, parsing not started
    PARSING: Text extraction and placeholder extraction are running
    REVIEW: Placeholders extracted, the lawyer is filling them
    COMPLETED: A filled document has been generated
    ERROR: Parsing failed (see error_message)
    """
    UPLOADED = "uploaded"
    PARSING = "parsing"
    REVIEW = "review"
    COMPLETED = "completed"
    ERROR = "error"


class CompanyModel(Base):
    """
    Company record with company-level data reused across documents.

    `data` holds canonical keys (see services.reconciliation.normalize_key)
    once it has been populated from documents; manual keys are normalized
    on the next populate.
    """
    __tablename__ = "companies"

    id = Column(PGUUID(as_uuid=True), primary_key=True, default=uuid4)
    name = Column(String(255), nullable=False)
    data = Column(JSON, nullable=False, default=dict)
    handler_id = Column(
        String(255),
        nullable=False,
        index=True,
        doc="The user who is currently handling the company"
    )
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    documents = relationship("DocumentModel", back_populates="company")

    def __repr__(self) -> str:
        return f"<CompanyModel(id={self.id}, name='{self.name}')>"

    def to_dict(self) -> dict:
        """Convert to dictionary for API responses and agent tools."""
        return {
            "id": str(self.id),
            "name": self.name,
            "data": dict(self.data or {}),
            "handler_id": self.handler_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class DocumentModel(Base):
    """
    Legal document draft being processed.

    Attributes:
        id: Unique document identifier (UUID)
        title: Title generated during parsing (or set by the user)
        file_name: Original filename as uploaded
        file_path: Absolute path to stored file on disk
        uploaded_by_id: The user who uploaded the document
        company_id: Optional company this document belongs to
        thread_id: Chat thread used for parsing and filling
        status: Current document lifecycle state
        data: Placeholder list [{label, description, value, pattern}]
        raw_text: Text extracted from the original file
        generated_file_paths: Filled documents produced so far
    """
    __tablename__ = "documents"

    id = Column(PGUUID(as_uuid=True), primary_key=True, default=uuid4)

    title = Column(String(512), nullable=True)
    description = Column(Text, nullable=True)
    file_name = Column(String(512), nullable=True)
    file_path = Column(String(1024), nullable=False)
    mime_type = Column(String(255), nullable=True)

    uploaded_by_id = Column(String(255), nullable=False)
    company_id = Column(
        PGUUID(as_uuid=True),
        ForeignKey("companies.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    thread_id = Column(String(64), nullable=True)

    status = Column(
        Enum(DocumentStatus),
        nullable=False,
        default=DocumentStatus.UPLOADED,
        server_default=DocumentStatus.UPLOADED.name,
        index=True,
    )

    data = Column(JSON, nullable=True)
    raw_text = Column(Text, nullable=True)
    generated_file_paths = Column(JSON, nullable=False, default=list)
    error_message = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    company = relationship("CompanyModel", back_populates="documents")

    __table_args__ = (
        Index("ix_documents_company_status", "company_id", "status"),
    )

    def __repr__(self) -> str:
        return (
            f"<DocumentModel("
            f"id={self.id}, "
            f"file_name='{self.file_name}', "
            f"status={self.status.value if self.status else None}"
            f")>"
        )

    @property
    def placeholders(self) -> list:
        return list(self.data or [])

    def to_dict(self) -> dict:
        """Convert to dictionary for API responses and agent tools."""
        placeholders = self.placeholders
        return {
            "id": str(self.id),
            "title": self.title,
            "description": self.description,
            "file_name": self.file_name,
            "mime_type": self.mime_type,
            "uploaded_by_id": self.uploaded_by_id,
            "company_id": str(self.company_id) if self.company_id else None,
            "thread_id": self.thread_id,
            "status": self.status.value if self.status else None,
            "data": placeholders,
            "generated_file_count": len(self.generated_file_paths or []),
            "error_message": self.error_message,
            "filled_count": sum(
                1 for item in placeholders if (item.get("value") or "").strip()
            ),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class ChatThreadModel(Base):
    """Conversation between the lawyer and the document agent."""
    __tablename__ = "chat_threads"

    id = Column(String(64), primary_key=True, default=lambda: uuid4().hex)
    user_id = Column(String(255), nullable=False, index=True)
    title = Column(String(512), nullable=True)
    summary = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    messages = relationship(
        "ChatMessageModel",
        back_populates="thread",
        cascade="all, delete-orphan",
        order_by="ChatMessageModel.position",
    )

    def __repr__(self) -> str:
        return f"<ChatThreadModel(id={self.id}, title='{self.title}')>"


class ChatMessageModel(Base):
    """
    Single message of a thread, in OpenAI chat format.

    Assistant messages may carry `tool_calls`; tool results carry the
    `tool_call_id` they answer.
    """
    __tablename__ = "chat_messages"

    id = Column(String(64), primary_key=True, default=lambda: uuid4().hex)
    thread_id = Column(
        String(64),
        ForeignKey("chat_threads.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    position = Column(Integer, nullable=False)
    role = Column(String(32), nullable=False)
    content = Column(Text, nullable=True)
    tool_calls = Column(JSON, nullable=True)
    tool_call_id = Column(String(128), nullable=True)
    name = Column(String(128), nullable=True)
    user_id = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    thread = relationship("ChatThreadModel", back_populates="messages")

    __table_args__ = (
        Index("ix_chat_messages_thread_position", "thread_id", "position", unique=True),
    )

    def to_openai(self) -> dict:
        """Render as an OpenAI chat completion message."""
        message = {"role": self.role, "content": self.content}
        if self.tool_calls:
            message["tool_calls"] = self.tool_calls
        if self.tool_call_id:
            message["tool_call_id"] = self.tool_call_id
        if self.name and self.role == "tool":
            message["name"] = self.name
        return message
