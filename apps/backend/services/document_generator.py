"""
LexFill - Document Generation
=============================
Produces the filled version of a template as a DOCX file.

DOCX sources are edited in place (body paragraphs, table cells, headers
and footers) so their formatting survives. PDF sources are rebuilt as a
DOCX from the filled raw text.
"""

import asyncio
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import docx

from config import Settings, get_settings
from database import DocumentStatus
from exceptions import ValidationError
from logging_config import get_logger
from metrics import documents_generated_total
from services.document_service import DocumentService
from services.placeholder_locator import fill_text
from services.storage import generated_path
from services.text_extraction import DOCX_MIME, PDF_MIME, DocumentParser, resolve_mime_type

logger = get_logger(__name__)

GENERATABLE_STATUSES = (DocumentStatus.REVIEW, DocumentStatus.COMPLETED)


def _fill_paragraph(paragraph, fields: List[Dict[str, Any]], padding: int, fuzzy_threshold: float) -> bool:
    """Replace placeholders in one paragraph; the first run keeps the formatting."""
    original = paragraph.text
    if not original:
        return False
    filled = fill_text(original, fields, padding, fuzzy_threshold)
    if filled == original:
        return False

    runs = paragraph.runs
    if not runs:
        paragraph.add_run(filled)
        return True
    runs[0].text = filled
    for run in runs[1:]:
        run.text = ""
    return True


def _iter_paragraphs(document) -> Iterable:
    yield from document.paragraphs
    for table in document.tables:
        for row in table.rows:
            for cell in row.cells:
                yield from cell.paragraphs
    for section in document.sections:
        for part in (section.header, section.footer):
            # Reading an undefined header would add one to the document
            if not part.is_linked_to_previous:
                yield from part.paragraphs


def fill_docx(
    source: Path,
    target: Path,
    fields: List[Dict[str, Any]],
    padding: int = 40,
    fuzzy_threshold: float = 0.75,
) -> int:
    """
    Fill a DOCX template into `target`.

    Returns:
        Number of paragraphs changed
    """
    document = docx.Document(str(source))
    changed = 0
    seen = set()
    for paragraph in _iter_paragraphs(document):
        # Merged table cells share their paragraphs
        if id(paragraph._p) in seen:
            continue
        seen.add(id(paragraph._p))
        if _fill_paragraph(paragraph, fields, padding, fuzzy_threshold):
            changed += 1

    target.parent.mkdir(parents=True, exist_ok=True)
    document.save(str(target))
    return changed


def build_docx_from_text(
    text: str,
    target: Path,
    fields: List[Dict[str, Any]],
    title: Optional[str] = None,
    padding: int = 40,
    fuzzy_threshold: float = 0.75,
) -> None:
    """Write the filled text into a fresh DOCX, one paragraph per line."""
    document = docx.Document()
    if title:
        document.add_heading(title, level=1)
    for line in fill_text(text, fields, padding, fuzzy_threshold).splitlines():
        document.add_paragraph(line)

    target.parent.mkdir(parents=True, exist_ok=True)
    document.save(str(target))


async def generate_filled_document(document_id: Any, settings: Optional[Settings] = None) -> Path:
    """
    Generate the filled document, record its path and mark the document
    as completed.

    Raises:
        DocumentNotFoundError: unknown document
        ValidationError: document has not been parsed yet
    """
    settings = settings or get_settings()

    async with DocumentService(settings.database_url) as documents:
        doc = await documents.require_document(document_id)
        if doc.status not in GENERATABLE_STATUSES:
            raise ValidationError(
                "Document is not ready for generation",
                field="status",
                value=doc.status.value,
            )
        source = Path(doc.file_path)
        mime_type = resolve_mime_type(doc.file_name or source.name, doc.mime_type)
        fields = doc.placeholders
        raw_text = doc.raw_text
        title = doc.title

    target = generated_path(document_id, settings.upload_dir)
    loop = asyncio.get_running_loop()

    if mime_type == DOCX_MIME:
        await loop.run_in_executor(
            None,
            fill_docx,
            source,
            target,
            fields,
            settings.placeholder_padding,
            settings.fuzzy_match_threshold,
        )
        source_type = "docx"
    elif mime_type == PDF_MIME:
        if not raw_text:
            raw_text = await DocumentParser.extract_text(source, mime_type)
        await loop.run_in_executor(
            None,
            build_docx_from_text,
            raw_text,
            target,
            fields,
            title,
            settings.placeholder_padding,
            settings.fuzzy_match_threshold,
        )
        source_type = "pdf"
    else:
        raise ValidationError("Only PDF and DOCX documents can be generated", field="mime_type", value=mime_type)

    async with DocumentService(settings.database_url) as documents:
        await documents.add_generated_file(document_id, str(target))
        await documents.update_status(document_id, DocumentStatus.COMPLETED)

    documents_generated_total.labels(source_type=source_type).inc()
    logger.info("Generated filled document", document_id=str(document_id), path=str(target))
    return target
