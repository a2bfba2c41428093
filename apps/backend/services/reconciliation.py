"""
LexFill - Company Data Reconciliation
=====================================
Turns placeholder labels into canonical keys, separates company-level
fields from document-specific ones and merges values across the documents
of a company.

Everything here is a pure function. Persistence lives in
services.company_service and services.document_service.
"""

import enum
import re
import unicodedata
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional


# =============================================================================
# Canonical Key Space
# =============================================================================

MARKER_CHARS_RE = re.compile(r"[{}\[\]<>]")
POSSESSIVE_RE = re.compile(r"['’]s\b")
NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")
FILLER_TOKENS = frozenset({"the"})

# canonical key -> normalized variants that mean the same company field
CANONICAL_ALIASES: Dict[str, tuple] = {
    "company_name": (
        "company",
        "company_legal_name",
        "company_full_name",
        "legal_name_of_company",
        "full_legal_name_of_company",
        "name_of_company",
        "corporation_name",
        "name_of_corporation",
        "entity_name",
        "legal_entity_name",
        "issuer",
        "issuer_name",
    ),
    "company_address": (
        "address_of_company",
        "company_registered_address",
        "registered_address",
        "registered_office",
        "registered_office_address",
        "principal_office_address",
        "principal_place_of_business",
        "business_address",
        "headquarters_address",
        "company_headquarters",
    ),
    "registration_number": (
        "company_registration_number",
        "company_registration_no",
        "company_reg_number",
        "company_number",
        "registration_no",
        "crn",
    ),
    "tax_id": (
        "company_tax_id",
        "tax_identification_number",
        "employer_identification_number",
        "ein",
        "tin",
        "vat_number",
        "vat_id",
    ),
    "state_of_incorporation": (
        "jurisdiction_of_incorporation",
        "incorporation_state",
        "company_state_of_incorporation",
        "state_of_organization",
    ),
    "date_of_incorporation": (
        "incorporation_date",
        "company_incorporation_date",
    ),
    "total_number_of_shares": (
        "total_shares",
        "total_share_count",
        "shares_outstanding",
        "total_outstanding_shares",
        "number_of_shares_outstanding",
    ),
    "company_email": (
        "company_email_address",
        "email_of_company",
    ),
    "company_phone": (
        "company_phone_number",
        "company_telephone",
    ),
    "company_website": (
        "company_url",
        "company_web_site",
    ),
}

_ALIAS_INDEX: Dict[str, str] = {
    alias: canonical
    for canonical, aliases in CANONICAL_ALIASES.items()
    for alias in aliases
}

COMPANY_KEYS = frozenset(CANONICAL_ALIASES)


def normalize_key(label: Any) -> str:
    """
    Map a placeholder label (or a company data key) onto the canonical key space.

    "[Company's Name]", "Name of the Company" and "company_name" all
    become "company_name". Unknown labels keep their snake_case form.
    Applying the function twice gives the same result as applying it once.
    """
    if label is None:
        return ""

    text = POSSESSIVE_RE.sub("", str(label))
    text = MARKER_CHARS_RE.sub(" ", text)
    text = unicodedata.normalize("NFKD", text).encode("ascii", "ignore").decode("ascii")

    tokens = [
        token for token in NON_ALNUM_RE.split(text.lower())
        if token and token not in FILLER_TOKENS
    ]
    key = "_".join(tokens)
    return _ALIAS_INDEX.get(key, key)


def format_label(key: str) -> str:
    """Display form of a data key: "company_name" -> "Company Name"."""
    text = re.sub(r"[_-]+", " ", key or "")
    text = re.sub(r"\s+", " ", text).strip()
    return re.sub(r"\b\w", lambda match: match.group(0).upper(), text)


# =============================================================================
# Field Classification
# =============================================================================

class FieldScope(str, enum.Enum):
    """Whether a field belongs to the company or to one document."""
    COMPANY = "company"
    DOCUMENT = "document"


def _keyword_re(fragments: Iterable[str]) -> re.Pattern:
    return re.compile(r"\b(?:" + "|".join(fragments) + r")", re.IGNORECASE)


# Checked before document keywords: "Date of Incorporation" is company data
STRONG_COMPANY_RE = _keyword_re([
    r"incorporat\w*",
    r"registration (?:number|no)\b",
    r"registered (?:office|address)\b",
    r"company (?:number|reg)\w*",
    r"tax (?:id|identification)\w*",
    r"employer identification",
    r"vat (?:number|id)\b",
    r"total (?:number of )?shares\b",
    r"shares outstanding\b",
    r"share capital\b",
])

DOCUMENT_RE = _keyword_re([
    r"dates?\b",
    r"day\b",
    r"terms?\b",
    r"terminat\w*",
    r"agreements?\b",
    r"effective\b",
    r"signing\b",
    r"signat\w*",
    r"execut\w*",
    r"expir\w*",
    r"duration\b",
    r"period\b",
    r"investors?\b",
    r"purchasers?\b",
    r"buyers?\b",
    r"sellers?\b",
    r"lenders?\b",
    r"borrowers?\b",
    r"employees?\b",
    r"counterpart\w*",
    r"amounts?\b",
    r"prices?\b",
    r"consideration\b",
    r"payments?\b",
    r"fees?\b",
    r"salary\b",
    r"valuation\b",
    r"discount\b",
    r"witness\w*",
    r"governing law\b",
])

COMPANY_RE = _keyword_re([
    r"company\b",
    r"corporation\b",
    r"corporate\b",
    r"entity\b",
    r"issuer\b",
    r"business\b",
    r"registered\b",
    r"registration\b",
    r"address\b",
    r"headquarters?\b",
    r"office\b",
    r"tax\b",
    r"ein\b",
    r"vat\b",
    r"shares?\b",
    r"stock\b",
    r"capital\b",
    r"jurisdiction\b",
])


def _searchable(text: str) -> str:
    text = MARKER_CHARS_RE.sub(" ", text or "")
    text = re.sub(r"[_\s]+", " ", text)
    return text.strip().lower()


def _scope_from_text(text: str) -> Optional[FieldScope]:
    if STRONG_COMPANY_RE.search(text):
        return FieldScope.COMPANY
    if DOCUMENT_RE.search(text):
        return FieldScope.DOCUMENT
    if COMPANY_RE.search(text):
        return FieldScope.COMPANY
    return None


def classify_field(label: str, description: str = "") -> FieldScope:
    """
    Decide whether a placeholder holds company-level data.

    The label decides first; the description is only consulted when the
    label matches no keyword at all. Unrecognized fields are treated as
    document-specific so they never leak into company records.
    """
    if normalize_key(label) in COMPANY_KEYS:
        return FieldScope.COMPANY

    for text in (_searchable(label), _searchable(description)):
        if not text:
            continue
        scope = _scope_from_text(text)
        if scope is not None:
            return scope

    return FieldScope.DOCUMENT


def is_company_field(label: str, description: str = "") -> bool:
    return classify_field(label, description) is FieldScope.COMPANY


# =============================================================================
# Merging & Aggregation
# =============================================================================

# Higher wins; every other status ranks 0
STATUS_PRECEDENCE: Dict[str, int] = {
    "completed": 2,
    "review": 1,
}


@dataclass(frozen=True)
class DocumentSnapshot:
    """Minimal view of a document needed for aggregation."""
    id: str
    status: Optional[str] = None
    created_at: Optional[datetime] = None
    data: List[Any] = field(default_factory=list)


@dataclass(frozen=True)
class FillSuggestion:
    """Company value that can fill an unfilled placeholder."""
    label: str
    key: str
    value: Any

    def to_dict(self) -> dict:
        return {"label": self.label, "key": self.key, "value": self.value}


def is_empty_value(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, dict, set)):
        return len(value) == 0
    return False


def _clean_value(value: Any) -> Any:
    return value.strip() if isinstance(value, str) else value


def _field_attr(item: Any, name: str, default: Any = None) -> Any:
    if isinstance(item, Mapping):
        return item.get(name, default)
    return getattr(item, name, default)


def as_field_dict(item: Any) -> Dict[str, Any]:
    """Placeholder as a plain dict {label, description[, value][, pattern]}."""
    result = {
        "label": _field_attr(item, "label"),
        "description": _field_attr(item, "description") or "",
    }
    for optional in ("value", "pattern"):
        value = _field_attr(item, optional)
        if value is not None:
            result[optional] = value
    return result


def extract_company_fields(fields: Iterable[Any]) -> Dict[str, Any]:
    """
    Company-level values of one document, keyed by canonical key.

    When two placeholders collide on the same key, the first filled one
    in document order wins.
    """
    result: Dict[str, Any] = {}
    for item in fields or []:
        label = _field_attr(item, "label")
        value = _field_attr(item, "value")
        if not label or is_empty_value(value):
            continue
        if not is_company_field(label, _field_attr(item, "description") or ""):
            continue

        key = normalize_key(label)
        if not key or key in result:
            continue
        result[key] = _clean_value(value)
    return result


def document_precedence(document: Any) -> tuple:
    """Sort key: status rank, then creation time, then id."""
    status = _field_attr(document, "status")
    status = getattr(status, "value", status)
    created_at = _field_attr(document, "created_at") or datetime.min
    return (
        STATUS_PRECEDENCE.get(status, 0),
        created_at,
        str(_field_attr(document, "id", "")),
    )


def aggregate_company_data(documents: Iterable[Any]) -> Dict[str, Any]:
    """
    Company-level data aggregated from all documents of a company.

    Documents are applied from lowest to highest precedence, so the value
    from the highest ranked document that filled a key wins. The result
    does not depend on the order of `documents`.
    """
    aggregated: Dict[str, Any] = {}
    for document in sorted(documents, key=document_precedence):
        fields = _field_attr(document, "data") or []
        aggregated.update(extract_company_fields(fields))
    return dict(sorted(aggregated.items()))


def normalize_company_data(data: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """
    Re-key a company data mapping into canonical keys.

    Empty values are dropped. When several original keys collide, the
    first non-empty value in sorted original-key order wins.
    """
    normalized: Dict[str, Any] = {}
    for original_key in sorted(data or {}, key=str):
        value = data[original_key]
        key = normalize_key(original_key)
        if not key or is_empty_value(value) or key in normalized:
            continue
        normalized[key] = _clean_value(value)
    return normalized


def merge_company_data(
    existing: Optional[Mapping[str, Any]],
    incoming: Optional[Mapping[str, Any]],
) -> Dict[str, Any]:
    """
    Overlay `incoming` onto `existing`.

    Non-empty incoming values override; keys missing from `incoming` are
    kept. Merging the same incoming data twice changes nothing.
    """
    merged = normalize_company_data(existing)
    merged.update(normalize_company_data(incoming))
    return dict(sorted(merged.items()))


def merge_placeholder_fields(existing: Iterable[Any], updates: Iterable[Any]) -> List[Dict[str, Any]]:
    """
    Upsert placeholders by label.

    Existing placeholders keep their order and replaced ones keep their
    slot, taking the last update for their label. Labels not seen before
    are appended once, in update order, as their first update. A
    replacement without a `pattern` inherits the one already stored.
    """
    existing_items = [as_field_dict(item) for item in existing or []]
    update_items = [as_field_dict(item) for item in updates or []]

    if not update_items:
        return existing_items

    updates_by_label: Dict[str, Dict[str, Any]] = {}
    for item in update_items:
        updates_by_label[item["label"]] = item

    merged: List[Dict[str, Any]] = []
    seen = set()

    for item in existing_items:
        replacement = updates_by_label.get(item["label"])
        if replacement is None:
            merged.append(item)
            continue
        replacement = dict(replacement)
        if "pattern" not in replacement and "pattern" in item:
            replacement["pattern"] = item["pattern"]
        merged.append(replacement)
        seen.add(item["label"])

    for item in update_items:
        label = item["label"]
        if label in seen:
            continue
        merged.append(item)
        seen.add(label)

    return merged


def suggest_company_fills(
    fields: Iterable[Any],
    company_data: Optional[Mapping[str, Any]],
) -> List[FillSuggestion]:
    """Unfilled company-level placeholders that the company data can answer."""
    available = normalize_company_data(company_data)
    if not available:
        return []

    suggestions: List[FillSuggestion] = []
    for item in fields or []:
        label = _field_attr(item, "label")
        if not label or not is_empty_value(_field_attr(item, "value")):
            continue
        if not is_company_field(label, _field_attr(item, "description") or ""):
            continue

        key = normalize_key(label)
        if key in available:
            suggestions.append(FillSuggestion(label=label, key=key, value=available[key]))
    return suggestions
