"""
Unit Tests - Pydantic Schema Validation
=======================================
Test strict validation of data models.
"""

import uuid

import pytest
from pydantic import ValidationError


class TestPlaceholderField:
    """Tests for the PlaceholderField model."""

    def test_defaults(self):
        from schemas import PlaceholderField

        field = PlaceholderField(label="Company Name")

        assert field.description == ""
        assert field.value is None
        assert field.pattern is None
        assert not field.is_filled

    def test_blank_value_is_not_filled(self):
        from schemas import PlaceholderField

        assert not PlaceholderField(label="A", value="   ").is_filled
        assert PlaceholderField(label="A", value="Acme").is_filled

    def test_empty_label_fails(self):
        from schemas import PlaceholderField

        with pytest.raises(ValidationError) as exc_info:
            PlaceholderField(label="")

        errors = exc_info.value.errors()
        assert any(e["loc"] == ("label",) for e in errors)


class TestPlaceholderExtraction:
    """Tests for the structured extraction output."""

    def test_valid_extraction(self, sample_placeholders):
        from schemas import PlaceholderExtraction

        result = PlaceholderExtraction(title="SAFE", placeholders=sample_placeholders)

        assert result.placeholder_count == 5
        assert result.description == ""

    def test_missing_title_fails(self):
        from schemas import PlaceholderExtraction

        with pytest.raises(ValidationError) as exc_info:
            PlaceholderExtraction(placeholders=[])

        errors = exc_info.value.errors()
        assert any(e["loc"] == ("title",) for e in errors)

    def test_placeholder_without_label_fails(self):
        from schemas import PlaceholderExtraction

        with pytest.raises(ValidationError):
            PlaceholderExtraction(title="SAFE", placeholders=[{"description": "no label"}])

    def test_schema_lists_placeholders(self):
        from schemas import PlaceholderExtraction

        schema = PlaceholderExtraction.model_json_schema()
        assert "placeholders" in schema["properties"]
        assert schema["required"] == ["title"]


class TestCompanySchemas:

    def test_create_defaults(self):
        from schemas import CompanyCreate

        company = CompanyCreate(name="Acme")
        assert company.data == {}
        assert company.handler_id is None

    def test_name_length(self):
        from schemas import CompanyCreate

        with pytest.raises(ValidationError):
            CompanyCreate(name="")
        with pytest.raises(ValidationError):
            CompanyCreate(name="x" * 256)

    def test_update_requires_handler(self):
        from schemas import CompanyUpdate

        with pytest.raises(ValidationError):
            CompanyUpdate(name="Acme", data={})


class TestChatRequest:

    def test_valid_request(self):
        from schemas import ChatRequest

        document_id = uuid.uuid4()
        request = ChatRequest(document_id=str(document_id), thread_id="t-1", prompt="Hello")
        assert request.document_id == document_id

    def test_invalid_document_id_fails(self):
        from schemas import ChatRequest

        with pytest.raises(ValidationError):
            ChatRequest(document_id="not-a-uuid", thread_id="t-1", prompt="Hello")

    def test_empty_prompt_fails(self):
        from schemas import ChatRequest

        with pytest.raises(ValidationError):
            ChatRequest(document_id=str(uuid.uuid4()), thread_id="t-1", prompt="")
