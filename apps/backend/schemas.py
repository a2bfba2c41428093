"""
LexFill - Data Schemas
======================
Pydantic models for strict type enforcement across the drafting pipeline.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# Placeholder Models
# =============================================================================

class PlaceholderField(BaseModel):
    """A dynamic field of a legal document template."""

    label: str = Field(..., min_length=1, description="Clear, human-readable label")
    description: str = Field(default="", description="What information is needed and why")
    value: Optional[str] = Field(default=None, description="Value provided by the lawyer")
    pattern: Optional[str] = Field(
        default=None,
        description="Literal text of the placeholder inside the document, when located"
    )

    @property
    def is_filled(self) -> bool:
        return bool(self.value and self.value.strip())


class ExtractedPlaceholder(BaseModel):
    """Placeholder as returned by the extraction prompt."""

    label: str = Field(..., min_length=1)
    description: str = Field(default="")


class PlaceholderExtraction(BaseModel):
    """
    Structured output schema for placeholder extraction.

    The JSON schema of this model is embedded into the extraction prompt.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {
                    "title": "Simple Agreement for Future Equity",
                    "description": "Post-money SAFE between a company and an investor.",
                    "placeholders": [
                        {"label": "Company Name", "description": "Legal name of the issuing company"},
                        {"label": "Investor Name", "description": "Legal name of the investor"},
                    ],
                }
            ]
        }
    )

    title: str = Field(..., description="Document title")
    description: str = Field(default="", description="Succinct description of the document")
    placeholders: List[ExtractedPlaceholder] = Field(default_factory=list)

    @property
    def placeholder_count(self) -> int:
        return len(self.placeholders)


class PlaceholderLocationResponse(BaseModel):
    """Where a placeholder sits inside the raw document text."""

    label: str
    pattern: str
    start: int
    end: int
    strategy: str
    score: float
    context: str


class FillSuggestionResponse(BaseModel):
    """Company value proposed for an unfilled placeholder."""

    label: str
    key: str
    value: Any


# =============================================================================
# Company Models
# =============================================================================

class CompanyCreate(BaseModel):
    """Request schema for creating a company."""

    name: str = Field(..., min_length=1, max_length=255)
    data: Dict[str, Any] = Field(default_factory=dict, description="Company data as key-value pairs")
    handler_id: Optional[str] = Field(
        default=None,
        description="User currently handling the company (defaults to the caller)"
    )


class CompanyUpdate(BaseModel):
    """Request schema for updating a company."""

    name: str = Field(..., min_length=1, max_length=255)
    data: Dict[str, Any] = Field(default_factory=dict)
    handler_id: str = Field(..., min_length=1)


class CompanyResponse(BaseModel):
    """Response schema for company details."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    data: Dict[str, Any] = Field(default_factory=dict)
    handler_id: str
    created_at: datetime


class AggregatedCompanyDataResponse(BaseModel):
    """Company-level data aggregated from every linked document."""

    company_id: UUID
    data: Dict[str, Any]
    document_count: int


# =============================================================================
# Document Models
# =============================================================================

class UploadResponse(BaseModel):
    """Response from document upload endpoint."""

    id: str
    status: str
    message: str


class DocumentResponse(BaseModel):
    """Response schema for a document record."""

    id: str
    title: Optional[str] = None
    description: Optional[str] = None
    file_name: Optional[str] = None
    mime_type: Optional[str] = None
    uploaded_by_id: str
    company_id: Optional[str] = None
    thread_id: Optional[str] = None
    status: str
    data: List[PlaceholderField] = Field(default_factory=list)
    generated_file_count: int = 0
    error_message: Optional[str] = None
    filled_count: int = 0
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class UpdateDocumentTitleRequest(BaseModel):
    title: Optional[str] = Field(default=None, max_length=512)


class UpdateDocumentDataRequest(BaseModel):
    """Per-label upsert of placeholder values."""

    data: List[PlaceholderField] = Field(default_factory=list)


class LinkCompanyRequest(BaseModel):
    company_id: UUID


# =============================================================================
# Chat Models
# =============================================================================

class ChatRequest(BaseModel):
    """Request schema for sending a chat message about a document."""

    document_id: UUID
    thread_id: str = Field(..., min_length=1)
    prompt: str = Field(..., min_length=1, description="User's message")


class ChatMessageAccepted(BaseModel):
    message_id: str
    thread_id: str
    status: str = "accepted"


class UIMessage(BaseModel):
    """Chat message as shown to the lawyer."""

    id: str
    role: str
    content: str
    position: int
    created_at: Optional[datetime] = None


class MessagesPage(BaseModel):
    """One page of thread messages."""

    page: List[UIMessage]
    offset: int
    limit: int
    is_done: bool
