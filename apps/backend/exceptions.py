"""
LexFill - Custom Exceptions
===========================
Centralized exception hierarchy for structured error handling.
"""

from typing import Optional, Dict, Any


class LexFillBaseException(Exception):
    """Base exception for all LexFill errors."""

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None
    ):
        super().__init__(message)
        self.message = message
        self.context = context or {}
        self.original_error = original_error

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/API responses."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
        }
        if self.original_error:
            result["original_error"] = str(self.original_error)
        return result


# =============================================================================
# Lookup Errors
# =============================================================================

class NotFoundError(LexFillBaseException):
    """Base class for missing records."""
    pass


class DocumentNotFoundError(NotFoundError):
    """Document record does not exist."""

    def __init__(self, document_id: Any, message: str = "Document not found"):
        super().__init__(message, {"document_id": str(document_id)})


class CompanyNotFoundError(NotFoundError):
    """Company record does not exist."""

    def __init__(self, company_id: Any, message: str = "Company not found"):
        super().__init__(message, {"company_id": str(company_id)})


class ThreadNotFoundError(NotFoundError):
    """Chat thread does not exist."""

    def __init__(self, thread_id: Any, message: str = "Thread not found"):
        super().__init__(message, {"thread_id": str(thread_id)})


# =============================================================================
# Processing Errors
# =============================================================================

class UnsupportedFileTypeError(LexFillBaseException):
    """File type cannot be turned into text."""

    def __init__(
        self,
        message: str,
        filename: Optional[str] = None,
        mime_type: Optional[str] = None,
    ):
        context = {}
        if filename:
            context["filename"] = filename
        if mime_type:
            context["mime_type"] = mime_type
        super().__init__(message, context)


class ParsingError(LexFillBaseException):
    """Document parsing pipeline failure."""

    def __init__(
        self,
        message: str,
        document_id: Optional[str] = None,
        stage: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        context = {}
        if document_id:
            context["document_id"] = document_id
        if stage:
            context["stage"] = stage
        super().__init__(message, context, original_error)


class LLMServiceError(LexFillBaseException):
    """LLM service failure (extraction, chat, etc.)."""

    def __init__(
        self,
        message: str,
        model: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        context = {"model": model} if model else {}
        super().__init__(message, context, original_error)


class LLMBusyError(LLMServiceError):
    """Raised when the LLM server returns 503 (busy/overloaded)."""
    pass


class LLMValidationError(LLMServiceError):
    """Raised when an LLM response fails Pydantic validation."""
    pass


class StorageError(LexFillBaseException):
    """File storage failure."""

    def __init__(
        self,
        message: str,
        path: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        context = {"path": path} if path else {}
        super().__init__(message, context, original_error)


# =============================================================================
# Validation Errors
# =============================================================================

class ValidationError(LexFillBaseException):
    """Input validation failure."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None
    ):
        context = {}
        if field:
            context["field"] = field
        if value is not None:
            context["value"] = str(value)[:100]  # Truncate
        super().__init__(message, context)
