"""
Unit Tests - Company Name Matching
==================================
"""

from types import SimpleNamespace

import pytest

from services.company_matching import score_company_name, search_companies


class TestScoreCompanyName:

    @pytest.mark.unit
    @pytest.mark.parametrize("term, name, expected", [
        ("Acme Inc", "acme   inc", 1.0),
        ("acme", "Acme Corp", 0.8),
        ("Acme Corporation", "acme", 0.8),
        ("acme", "acne", 0.75),
        ("xyz", "acme", 0.0),
        ("", "Acme", 0.0),
        ("Acme", "", 0.0),
    ])
    def test_scores(self, term, name, expected):
        assert score_company_name(term, name) == pytest.approx(expected)


class TestSearchCompanies:

    @pytest.fixture
    def companies(self):
        return [
            {"id": 1, "name": "Globex"},
            {"id": 2, "name": "Acme Holdings"},
            {"id": 3, "name": "acme"},
            {"id": 4, "name": "Acme Labs"},
        ]

    @pytest.mark.unit
    def test_best_first_and_ties_keep_order(self, companies):
        result = search_companies(companies, "Acme")
        assert [company["id"] for company in result] == [3, 2, 4]

    @pytest.mark.unit
    def test_limit(self, companies):
        assert [company["id"] for company in search_companies(companies, "acme", limit=1)] == [3]

    @pytest.mark.unit
    def test_threshold_is_exclusive(self, companies):
        assert search_companies(companies, "acme", threshold=0.8) == [companies[2]]

    @pytest.mark.unit
    def test_empty_term_matches_nothing(self, companies):
        assert search_companies(companies, "") == []

    @pytest.mark.unit
    def test_accepts_objects(self):
        companies = [SimpleNamespace(name="Initech"), SimpleNamespace(name=None)]
        assert search_companies(companies, "initech") == [companies[0]]
