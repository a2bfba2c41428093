"""
Unit Tests - Company Data Reconciliation
========================================
Key normalization, field classification and deterministic merging.
"""

import itertools
from datetime import datetime

import pytest

from database import DocumentStatus
from schemas import PlaceholderField
from services.reconciliation import (
    DocumentSnapshot,
    FieldScope,
    FillSuggestion,
    aggregate_company_data,
    classify_field,
    extract_company_fields,
    format_label,
    is_company_field,
    merge_company_data,
    merge_placeholder_fields,
    normalize_key,
    suggest_company_fills,
)


class TestNormalizeKey:

    @pytest.mark.unit
    @pytest.mark.parametrize("label, expected", [
        ("[Company's Name]", "company_name"),
        ("Name of the Company", "company_name"),
        ("{{COMPANY_NAME}}", "company_name"),
        ("<<Company Legal Name>>", "company_name"),
        ("EIN", "tax_id"),
        ("Registered Office Address", "company_address"),
        ("Incorporation Date", "date_of_incorporation"),
        ("Investor Name", "investor_name"),
        ("Société Générale", "societe_generale"),
        ("  Purchase   Amount ", "purchase_amount"),
    ])
    def test_maps_labels_to_canonical_keys(self, label, expected):
        assert normalize_key(label) == expected

    @pytest.mark.unit
    def test_empty_input(self):
        assert normalize_key("") == ""
        assert normalize_key(None) == ""
        assert normalize_key("[ ]") == ""

    @pytest.mark.unit
    @pytest.mark.parametrize("label", [
        "[Company's Name]",
        "Name of the Company",
        "Total Shares",
        "Date of Safe",
        "__Registered   Office__",
    ])
    def test_is_idempotent(self, label):
        once = normalize_key(label)
        assert normalize_key(once) == once


class TestFormatLabel:

    @pytest.mark.unit
    def test_formats_keys_for_display(self):
        assert format_label("company_name") == "Company Name"
        assert format_label("tax-id") == "Tax Id"
        assert format_label("") == ""


class TestClassifyField:

    @pytest.mark.unit
    @pytest.mark.parametrize("label", [
        "Company Name",
        "Date of Incorporation",
        "Authorized Share Capital",
        "Headquarters City",
        "Registration Number",
        "State of Incorporation",
    ])
    def test_company_fields(self, label):
        assert classify_field(label) is FieldScope.COMPANY
        assert is_company_field(label)

    @pytest.mark.unit
    @pytest.mark.parametrize("label", [
        "Effective Date",
        "Investor Name",
        "Purchase Amount",
        "Company Signatory Name",
        "Number of Shares Issued to Investor",
        "Governing Law",
        "Favorite Color",
    ])
    def test_document_fields(self, label):
        assert classify_field(label) is FieldScope.DOCUMENT
        assert not is_company_field(label)

    @pytest.mark.unit
    def test_description_used_when_label_is_neutral(self):
        assert classify_field("Name", "Legal name of the company") is FieldScope.COMPANY
        assert classify_field("Name", "") is FieldScope.DOCUMENT

    @pytest.mark.unit
    def test_label_wins_over_description(self):
        assert classify_field("Company Address", "Address of the counterparty") is FieldScope.COMPANY


class TestExtractCompanyFields:

    @pytest.mark.unit
    def test_only_filled_company_fields(self):
        fields = [
            {"label": "Company Name", "value": "  Acme Inc. "},
            {"label": "Name of the Company", "value": "Other"},
            {"label": "Investor Name", "value": "Jane"},
            {"label": "Company Address", "value": ""},
            {"label": "EIN", "value": "12-3456789"},
        ]
        assert extract_company_fields(fields) == {
            "company_name": "Acme Inc.",
            "tax_id": "12-3456789",
        }

    @pytest.mark.unit
    def test_accepts_placeholder_models(self):
        fields = [PlaceholderField(label="Company Name", value="Acme")]
        assert extract_company_fields(fields) == {"company_name": "Acme"}


class TestAggregateCompanyData:

    @pytest.fixture
    def documents(self):
        return [
            DocumentSnapshot(
                id="a",
                status=DocumentStatus.COMPLETED,
                created_at=datetime(2024, 1, 1),
                data=[
                    {"label": "Company Name", "value": "Acme Completed"},
                    {"label": "Company Address", "value": "1 Old St"},
                ],
            ),
            DocumentSnapshot(
                id="b",
                status="review",
                created_at=datetime(2024, 6, 1),
                data=[
                    {"label": "Company Name", "value": "Acme Review"},
                    {"label": "Registration Number", "value": "R-1"},
                ],
            ),
            DocumentSnapshot(
                id="c",
                status="error",
                created_at=datetime(2025, 1, 1),
                data=[{"label": "Company Name", "value": "Acme Error"}],
            ),
        ]

    @pytest.mark.unit
    def test_status_precedence(self, documents):
        assert aggregate_company_data(documents) == {
            "company_address": "1 Old St",
            "company_name": "Acme Completed",
            "registration_number": "R-1",
        }

    @pytest.mark.unit
    def test_independent_of_input_order(self, documents):
        expected = aggregate_company_data(documents)
        for permutation in itertools.permutations(documents):
            assert aggregate_company_data(list(permutation)) == expected

    @pytest.mark.unit
    def test_keys_are_sorted(self, documents):
        result = aggregate_company_data(documents)
        assert list(result) == sorted(result)

    @pytest.mark.unit
    def test_newer_document_wins_within_same_status(self):
        older = DocumentSnapshot(
            id="z", status="completed", created_at=datetime(2024, 1, 1),
            data=[{"label": "Company Name", "value": "Old"}],
        )
        newer = DocumentSnapshot(
            id="a", status="completed", created_at=datetime(2024, 2, 1),
            data=[{"label": "Company Name", "value": "New"}],
        )
        assert aggregate_company_data([newer, older]) == {"company_name": "New"}

    @pytest.mark.unit
    def test_no_documents(self):
        assert aggregate_company_data([]) == {}


class TestMergeCompanyData:

    @pytest.mark.unit
    def test_incoming_overrides_and_keys_normalize(self):
        existing = {"Company Name": "Acme", "company_name": "", "Address": "1 St"}
        incoming = {"company_name": "Acme Inc", "tax_id": "", "EIN": "12"}

        assert merge_company_data(existing, incoming) == {
            "address": "1 St",
            "company_name": "Acme Inc",
            "tax_id": "12",
        }

    @pytest.mark.unit
    def test_is_idempotent(self):
        existing = {"Company Name": "Acme", "Address": "1 St"}
        incoming = {"company_name": "Acme Inc", "EIN": "12"}

        once = merge_company_data(existing, incoming)
        assert merge_company_data(once, incoming) == once

    @pytest.mark.unit
    def test_collision_resolved_by_sorted_original_key(self):
        existing = {"company_name": "B", "Company Name": "A"}
        assert merge_company_data(existing, {}) == {"company_name": "A"}

    @pytest.mark.unit
    def test_empty_incoming_never_deletes(self):
        assert merge_company_data({"company_name": "Acme"}, {"company_name": ""}) == {"company_name": "Acme"}
        assert merge_company_data({"company_name": "Acme"}, {"company_name": None}) == {"company_name": "Acme"}

    @pytest.mark.unit
    def test_missing_mappings(self):
        assert merge_company_data(None, None) == {}


class TestMergePlaceholderFields:

    @pytest.mark.unit
    def test_upsert_by_label(self):
        existing = [
            {"label": "A", "description": "a"},
            {"label": "B", "description": "b", "value": "old", "pattern": "[B]"},
            {"label": "C", "description": "c"},
        ]
        updates = [
            {"label": "B", "description": "b2", "value": "new"},
            {"label": "D", "description": "d"},
            {"label": "D", "description": "d2", "value": "x"},
        ]

        assert merge_placeholder_fields(existing, updates) == [
            {"label": "A", "description": "a"},
            {"label": "B", "description": "b2", "value": "new", "pattern": "[B]"},
            {"label": "C", "description": "c"},
            {"label": "D", "description": "d"},
        ]

    @pytest.mark.unit
    def test_repeated_new_label_keeps_first_entry(self):
        updates = [{"label": "A", "description": "first"}, {"label": "A", "description": "second"}]
        assert merge_placeholder_fields([], updates) == [{"label": "A", "description": "first"}]

    @pytest.mark.unit
    def test_repeated_existing_label_takes_last_entry(self):
        existing = [{"label": "A", "description": "a"}]
        updates = [{"label": "A", "description": "first"}, {"label": "A", "description": "second"}]
        assert merge_placeholder_fields(existing, updates) == [{"label": "A", "description": "second"}]

    @pytest.mark.unit
    def test_empty_update_is_noop(self):
        existing = [{"label": "A", "description": "a", "value": "1"}]
        assert merge_placeholder_fields(existing, []) == existing

    @pytest.mark.unit
    def test_accepts_placeholder_models(self):
        merged = merge_placeholder_fields(
            [PlaceholderField(label="A", description="a")],
            [PlaceholderField(label="A", description="a", value="filled")],
        )
        assert merged == [{"label": "A", "description": "a", "value": "filled"}]


class TestSuggestCompanyFills:

    @pytest.mark.unit
    def test_suggests_unfilled_company_fields(self):
        fields = [
            {"label": "Company Name", "description": ""},
            {"label": "Registered Office", "description": ""},
            {"label": "Investor Name", "description": ""},
            {"label": "EIN", "description": "", "value": "x"},
            {"label": "Company Phone", "description": ""},
        ]
        company_data = {
            "Company Name": "Acme",
            "company_address": "1 Main St",
            "investor_name": "Jane",
        }

        assert suggest_company_fills(fields, company_data) == [
            FillSuggestion(label="Company Name", key="company_name", value="Acme"),
            FillSuggestion(label="Registered Office", key="company_address", value="1 Main St"),
        ]

    @pytest.mark.unit
    def test_no_company_data(self):
        assert suggest_company_fills([{"label": "Company Name"}], {}) == []
