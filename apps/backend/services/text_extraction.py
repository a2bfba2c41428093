"""
LexFill - Text Extraction
=========================
Upload validation and raw text extraction for PDF and DOCX templates.
"""

import asyncio
import math
import re
from pathlib import Path
from typing import Optional

import docx
import pypdf

from exceptions import UnsupportedFileTypeError
from logging_config import get_logger

logger = get_logger(__name__)


PDF_MIME = "application/pdf"
DOC_MIME = "application/msword"
DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"

ACCEPTED_FILE_TYPES = (PDF_MIME, DOC_MIME, DOCX_MIME)
ACCEPTED_EXTENSIONS = (".pdf", ".doc", ".docx")
MAX_UPLOAD_BYTES = 50 * 1024 * 1024

EXTENSION_MIME_TYPES = {
    ".pdf": PDF_MIME,
    ".doc": DOC_MIME,
    ".docx": DOCX_MIME,
}

EMPTY_LINE_RE = re.compile(r"^\s*$\n?", re.MULTILINE)


def validate_upload(
    filename: Optional[str],
    content_type: Optional[str],
    size: int,
    max_bytes: int = MAX_UPLOAD_BYTES,
) -> Optional[str]:
    """
    Check an upload before it is stored.

    Returns a user facing error message, or None when the file is accepted.
    """
    extension = Path(filename or "").suffix.lower()
    if content_type not in ACCEPTED_FILE_TYPES and extension not in ACCEPTED_EXTENSIONS:
        return f"File type not supported. Please upload: {', '.join(ACCEPTED_EXTENSIONS)}"

    if size > max_bytes:
        return f"File size exceeds {format_file_size(max_bytes)} limit"

    return None


def resolve_mime_type(filename: Optional[str], content_type: Optional[str]) -> Optional[str]:
    """Prefer the declared type; fall back to the extension for generic uploads."""
    if content_type in ACCEPTED_FILE_TYPES:
        return content_type
    return EXTENSION_MIME_TYPES.get(Path(filename or "").suffix.lower(), content_type)


def format_file_size(num_bytes: int) -> str:
    """Human readable size: 1536 -> "1.5 KB"."""
    if num_bytes <= 0:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB"]
    exponent = min(int(math.floor(math.log(num_bytes, 1024))), len(units) - 1)
    value = round(num_bytes / 1024 ** exponent, 2)
    if value == int(value):
        value = int(value)
    return f"{value} {units[exponent]}"


def get_file_extension(file_name: str) -> str:
    """Upper-cased extension without the dot ("contract.docx" -> "DOCX")."""
    if not file_name or "." not in file_name:
        return ""
    return file_name.rsplit(".", 1)[-1].upper()


def remove_empty_lines(text: str) -> str:
    return EMPTY_LINE_RE.sub("", text or "")


class DocumentParser:
    """Parse legal document templates into raw text."""

    @staticmethod
    async def parse_pdf(file_path: Path) -> str:
        """
        Extract text from a PDF file.

        Note:
            Uses `pypdf`; scanned PDFs without a text layer yield "".
        """
        def _read_pdf() -> str:
            reader = pypdf.PdfReader(str(file_path))
            pages = []
            for page in reader.pages:
                extract = page.extract_text()
                if extract:
                    pages.append(extract)
            return "\n".join(pages)

        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, _read_pdf)

    @staticmethod
    async def parse_docx(file_path: Path) -> str:
        """Extract paragraph and table cell text from a DOCX file, in body order."""
        def _read_docx() -> str:
            document = docx.Document(str(file_path))
            lines = [paragraph.text for paragraph in document.paragraphs]
            for table in document.tables:
                for row in table.rows:
                    seen_cells = set()
                    for cell in row.cells:
                        # Merged cells are repeated by python-docx
                        if id(cell._tc) in seen_cells:
                            continue
                        seen_cells.add(id(cell._tc))
                        lines.append(cell.text)
            return "\n".join(lines)

        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, _read_docx)

    @classmethod
    async def extract_text(cls, file_path: Path, mime_type: Optional[str]) -> str:
        """
        Extract raw text and remove empty lines.

        Raises:
            UnsupportedFileTypeError: legacy .doc or any other type
        """
        file_path = Path(file_path)
        mime_type = resolve_mime_type(file_path.name, mime_type)

        if mime_type == PDF_MIME:
            text = await cls.parse_pdf(file_path)
        elif mime_type == DOCX_MIME:
            text = await cls.parse_docx(file_path)
        elif mime_type == DOC_MIME:
            raise UnsupportedFileTypeError(
                "Legacy .doc files cannot be read. Please save the document as .docx or PDF and upload it again.",
                filename=file_path.name,
                mime_type=mime_type,
            )
        else:
            raise UnsupportedFileTypeError(
                f"File type not supported. Please upload: {', '.join(ACCEPTED_EXTENSIONS)}",
                filename=file_path.name,
                mime_type=mime_type,
            )

        text = remove_empty_lines(text)
        logger.info(
            "Text extracted",
            file_name=file_path.name,
            mime_type=mime_type,
            characters=len(text),
        )
        return text
