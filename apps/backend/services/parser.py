"""
LexFill - Parsing Pipeline
==========================
Background processing of an uploaded template:

1. status -> parsing
2. raw text extraction (pypdf / python-docx)
3. chat thread creation
4. placeholder extraction by the LLM
5. placeholder patterns located in the raw text
6. first question from the document agent
7. status -> review

Any failure moves the document to status `error` with a message the
lawyer can read.
"""

import time
from pathlib import Path
from typing import Any, Dict, List, Optional

from config import Settings, get_settings
from database import DocumentStatus
from exceptions import DocumentNotFoundError, LexFillBaseException, ParsingError
from logging_config import get_logger
from metrics import (
    parsing_attempts_total,
    parsing_duration_seconds,
    parsing_failures_total,
    placeholders_extracted_total,
)
from schemas import PlaceholderExtraction
from services.agent import DocumentAgent
from services.chat_service import ChatService
from services.document_service import DocumentService
from services.llm_factory import LLMService, get_llm_service
from services.placeholder_locator import locate_fields
from services.text_extraction import DocumentParser, get_file_extension

logger = get_logger(__name__)

FIRST_QUESTION_INSTRUCTION = """Ask the user to fill in the missing data for the document. Start with just the first placeholder.
The placeholders are:
{placeholders}

Rules for the response:
- Phrase the response as a question about the missing data to the user.
- Respond concisely and to the point. Remove any fluff or extra words.
- Do not include the placeholder label in the question."""


def build_placeholder_records(
    extraction: PlaceholderExtraction,
    raw_text: str,
    padding: int = 40,
    fuzzy_threshold: float = 0.75,
) -> List[Dict[str, Any]]:
    """
    Placeholder dicts for storage, with the literal `pattern` of every
    placeholder that could be located in the raw text.

    Labels repeated by the LLM are kept once.
    """
    records = []
    seen = set()
    for placeholder in extraction.placeholders:
        label = placeholder.label.strip()
        if not label or label in seen:
            continue
        seen.add(label)
        records.append({"label": label, "description": placeholder.description.strip()})

    locations = locate_fields(raw_text, [record["label"] for record in records], padding, fuzzy_threshold)
    for record in records:
        location = locations.get(record["label"])
        if location is not None:
            record["pattern"] = location.pattern
    return records


def describe_placeholders(placeholders: List[Dict[str, Any]]) -> str:
    lines = []
    for placeholder in placeholders:
        line = f"- {placeholder['label']}: {placeholder.get('description', '')}"
        if placeholder.get("value"):
            line += f" (Value: {placeholder['value']})"
        lines.append(line)
    return "\n".join(lines)


async def _mark_failed(database_url: str, document_id: Any, message: str) -> None:
    try:
        async with DocumentService(database_url) as documents:
            await documents.update_status(document_id, DocumentStatus.ERROR, error_message=message)
    except DocumentNotFoundError:
        logger.warning("Document deleted before its failure was recorded", document_id=str(document_id))


async def extract_fields_from_document(
    document_id: Any,
    llm: Optional[LLMService] = None,
    settings: Optional[Settings] = None,
) -> None:
    """
    Run the parsing pipeline for one document.

    Errors are recorded on the document instead of being raised, since
    this runs as a background task.
    """
    settings = settings or get_settings()
    database_url = settings.database_url
    owns_llm = llm is None
    llm = llm or get_llm_service(settings)

    stage = "load"
    file_type = "unknown"
    start_time = time.perf_counter()

    try:
        async with DocumentService(database_url) as documents:
            doc = await documents.require_document(document_id)
            await documents.update_status(document_id, DocumentStatus.PARSING)
            file_path = Path(doc.file_path)
            file_name = doc.file_name
            mime_type = doc.mime_type
            user_id = doc.uploaded_by_id

        file_type = get_file_extension(file_name or file_path.name).lower() or "unknown"
        parsing_attempts_total.labels(file_type=file_type).inc()

        stage = "text_extraction"
        if not file_path.exists():
            raise ParsingError("The uploaded file could not be found", str(document_id), stage)
        raw_text = await DocumentParser.extract_text(file_path, mime_type)
        if not raw_text.strip():
            raise ParsingError(
                "No text could be extracted from the document. Scanned documents are not supported.",
                str(document_id),
                stage,
            )

        stage = "thread"
        async with ChatService(database_url) as chat:
            thread = await chat.create_thread(
                user_id,
                title=f"Document: {file_name or 'Untitled'}",
                summary="Parsing legal document to extract placeholders",
            )
            thread_id = thread.id

        async with DocumentService(database_url) as documents:
            await documents.update_thread(document_id, thread_id)
            await documents.update_raw_text(document_id, raw_text)

        stage = "placeholder_extraction"
        extraction = await llm.extract_placeholders(raw_text, file_name, document_id)
        placeholders = build_placeholder_records(
            extraction,
            raw_text,
            settings.placeholder_padding,
            settings.fuzzy_match_threshold,
        )
        placeholders_extracted_total.inc(len(placeholders))

        async with DocumentService(database_url) as documents:
            doc = await documents.store_extraction(
                document_id,
                extraction.title,
                extraction.description,
                placeholders,
            )
            stored = doc.placeholders

        stage = "first_question"
        agent = DocumentAgent(document_id, llm=llm, settings=settings)
        await agent.run(
            thread_id,
            instruction=FIRST_QUESTION_INSTRUCTION.format(placeholders=describe_placeholders(stored)),
        )

        async with DocumentService(database_url) as documents:
            await documents.update_status(document_id, DocumentStatus.REVIEW)

        parsing_duration_seconds.labels(file_type=file_type).observe(time.perf_counter() - start_time)
        logger.info(
            "Document parsed",
            document_id=str(document_id),
            placeholder_count=len(stored),
            located=sum(1 for item in stored if item.get("pattern")),
        )

    except LexFillBaseException as e:
        parsing_failures_total.labels(file_type=file_type, stage=stage).inc()
        logger.error("Document parsing failed", document_id=str(document_id), stage=stage, **e.to_dict())
        await _mark_failed(database_url, document_id, e.message)
    except Exception as e:
        parsing_failures_total.labels(file_type=file_type, stage=stage).inc()
        logger.exception("Unexpected document parsing failure", document_id=str(document_id), stage=stage)
        await _mark_failed(database_url, document_id, f"Document processing failed: {e}")
    finally:
        if owns_llm:
            await llm.close()
