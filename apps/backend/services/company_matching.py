"""
LexFill - Company Name Matching
===============================
Lightweight relevance scoring for company lookups by name.
"""

from typing import Any, List, Sequence


def _normalize_name(name: str) -> str:
    return " ".join((name or "").lower().split())


def score_company_name(search_term: str, name: str) -> float:
    """
    Relevance of `name` for `search_term` in [0.0, 1.0].

    1.0 for an exact match (case and whitespace insensitive), 0.8 when one
    contains the other, otherwise the share of positions holding the same
    character relative to the longer string.
    """
    search = _normalize_name(search_term)
    candidate = _normalize_name(name)

    if not search or not candidate:
        return 0.0
    if search == candidate:
        return 1.0
    if search in candidate or candidate in search:
        return 0.8

    same_positions = sum(1 for a, b in zip(search, candidate) if a == b)
    return same_positions / max(len(search), len(candidate))


def _company_name(company: Any) -> str:
    if isinstance(company, dict):
        return company.get("name") or ""
    return getattr(company, "name", "") or ""


def search_companies(
    companies: Sequence[Any],
    search_term: str,
    threshold: float = 0.3,
    limit: int = 10,
) -> List[Any]:
    """
    Companies whose name scores strictly above `threshold`, best first.

    Ties keep the input order.
    """
    scored = [
        (score_company_name(search_term, _company_name(company)), company)
        for company in companies
    ]
    matches = [item for item in scored if item[0] > threshold]
    matches.sort(key=lambda item: item[0], reverse=True)
    return [company for _, company in matches[:limit]]
