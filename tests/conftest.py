"""
LexFill - Test Configuration
============================
Pytest fixtures and markers.

Service tests run against a throwaway SQLite database per test; the LLM
is always mocked.
"""

import sys
from pathlib import Path
from typing import List
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

# Add backend to path for imports
BACKEND_PATH = Path(__file__).parent.parent / "apps" / "backend"
sys.path.insert(0, str(BACKEND_PATH))


# =============================================================================
# Test Run Configuration
# =============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "unit: Fast, no I/O, mocks only"
    )
    config.addinivalue_line(
        "markers", "integration: Mocks the LLM but uses a real SQLite database"
    )


# =============================================================================
# Settings & Database
# =============================================================================

@pytest.fixture
def test_settings(tmp_path: Path, monkeypatch):
    """Settings pointing at a temporary database and upload directory."""
    from config import get_settings

    monkeypatch.setenv("DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'lexfill-test.db'}")
    monkeypatch.setenv("UPLOAD_DIR", str(tmp_path / "uploads"))
    monkeypatch.setenv("ENVIRONMENT", "development")
    monkeypatch.setenv("LLM_API_KEY", "test-key")
    monkeypatch.setenv("LLM_BASE_URL", "http://llm.test/v1")
    monkeypatch.setenv("LLM_MODEL", "test-model")

    get_settings.cache_clear()
    yield get_settings()
    get_settings.cache_clear()


@pytest_asyncio.fixture
async def database(test_settings):
    """Create all tables in the temporary database and return its URL."""
    from database import init_models

    await init_models(test_settings.database_url)
    return test_settings.database_url


# =============================================================================
# Sample Data Fixtures
# =============================================================================

SAFE_TEXT = (
    "SIMPLE AGREEMENT FOR FUTURE EQUITY\n"
    "THIS CERTIFIES THAT in exchange for the payment by [Investor Name] (the \"Investor\") "
    "of $[Purchase Amount] (the \"Purchase Amount\") on or about [Date of Safe], "
    "[Company Name], a Delaware corporation (the \"Company\"), issues to the Investor "
    "the right to certain shares of the Company's Capital Stock.\n"
    "Registered Office: ____________\n"
    "The \"Post-Money Valuation Cap\" is $[Post-money Valuation Cap].\n"
)


@pytest.fixture
def safe_text() -> str:
    return SAFE_TEXT


@pytest.fixture
def sample_placeholders() -> List[dict]:
    return [
        {"label": "Investor Name", "description": "Legal name of the investor"},
        {"label": "Purchase Amount", "description": "Amount invested"},
        {"label": "Date of Safe", "description": "Date the SAFE is signed"},
        {"label": "Company Name", "description": "Legal name of the company"},
        {"label": "Registered Office", "description": "Registered office address of the company"},
    ]


@pytest.fixture
def sample_extraction(sample_placeholders):
    from schemas import PlaceholderExtraction

    return PlaceholderExtraction(
        title="Simple Agreement for Future Equity",
        description="Post-money SAFE between a company and an investor.",
        placeholders=sample_placeholders,
    )


@pytest.fixture
def sample_docx(tmp_path: Path) -> Path:
    """A small DOCX template with body and table placeholders."""
    import docx

    path = tmp_path / "safe.docx"
    document = docx.Document()
    document.add_heading("SIMPLE AGREEMENT FOR FUTURE EQUITY", level=1)
    document.add_paragraph(
        "THIS CERTIFIES THAT in exchange for the payment by [Investor Name] "
        "of $[Purchase Amount] on or about [Date of Safe], [Company Name] issues shares."
    )
    document.add_paragraph("")
    document.add_paragraph("Registered Office: ____________")
    table = document.add_table(rows=1, cols=2)
    table.cell(0, 0).text = "Company:"
    table.cell(0, 1).text = "[Company Name]"
    document.save(str(path))
    return path


# =============================================================================
# Mock LLM Service
# =============================================================================

@pytest.fixture
def mock_llm_service(sample_extraction):
    """Mock LLM that extracts the sample placeholders and answers with text."""
    service = AsyncMock()
    service.extract_placeholders.return_value = sample_extraction
    service.complete_with_tools.return_value = {
        "role": "assistant",
        "content": "What is the legal name of the investor?",
    }
    service.generate.return_value = "Test response"
    return service


@pytest.fixture
def make_tool_call():
    """Build OpenAI tool calls as returned by the chat completions API."""

    def _make(call_id: str, name: str, arguments: str = "{}") -> dict:
        return {
            "id": call_id,
            "type": "function",
            "function": {"name": name, "arguments": arguments},
        }

    return _make


# =============================================================================
# HTTP Test Client
# =============================================================================

@pytest.fixture
def api_client(test_settings):
    """TestClient running the startup event against the temporary database."""
    from fastapi.testclient import TestClient
    from main import app

    with TestClient(app) as client:
        yield client


@pytest.fixture
def auth_headers() -> dict:
    return {"X-User-Id": "lawyer-1"}


@pytest.fixture
def parsed_document(api_client, auth_headers, sample_docx, mock_llm_service, monkeypatch) -> dict:
    """Upload the sample DOCX and run the parsing pipeline with the mock LLM."""
    from services.parser import extract_fields_from_document
    from services.text_extraction import DOCX_MIME

    async def parse(document_id):
        await extract_fields_from_document(document_id, llm=mock_llm_service)

    monkeypatch.setattr("routers.documents.extract_fields_from_document", parse)

    files = {"file": ("safe.docx", sample_docx.read_bytes(), DOCX_MIME)}
    response = api_client.post("/api/v1/documents/upload", files=files, headers=auth_headers)
    assert response.status_code == 202

    document = api_client.get(f"/api/v1/documents/{response.json()['id']}", headers=auth_headers)
    return document.json()
