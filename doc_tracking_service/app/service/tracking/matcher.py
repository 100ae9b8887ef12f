# Document-type catalogue and the checklist matcher
#
# The classifier emits type codes such as "pay_stub" or "t4"; checklist entries
# carry human names such as "Recent paystub (within 30 days)" or
# "T4 - Current year". find_matching_checklist_doc bridges the two.
import logging
from typing import Dict, Iterable, List, Optional, Tuple

from doc_tracking_service.app.service.tracking.codec import MissingDocEntry

logger = logging.getLogger(__name__)

GENERIC_DOC_TYPE = "other"

# Canonical display label per classifier type code
DOC_TYPE_LABELS: Dict[str, str] = {
    "photo_id": "ID",
    "second_id": "Second ID",
    "void_cheque": "Void Cheque",
    "pay_stub": "Pay Stub",
    "loe": "LOE",
    "t4": "T4",
    "noa": "NOA",
    "t1": "T1",
    "t2": "T2",
    "articles_of_incorporation": "Articles of Incorporation",
    "financial_statement": "Financial Statement",
    "pension_letter": "Pension Letter",
    "t4a": "T4A",
    "employment_contract": "Employment Contract",
    "commission_statement": "Commission Statement",
    "lease_agreement": "Lease Agreement",
    "bank_statement": "Bank Statement",
    "rrsp_statement": "RRSP Statement",
    "tfsa_statement": "TFSA Statement",
    "fhsa_statement": "FHSA Statement",
    "gift_letter": "Gift Letter",
    "purchase_agreement": "Purchase Agreement",
    "mls_listing": "MLS",
    "mortgage_statement": "Mortgage Statement",
    "property_tax_bill": "Property Tax",
    "home_insurance": "Home Insurance",
    "t5": "T5",
    "cra_statement_of_account": "CRA Statement",
    "t4rif": "T4RIF",
    "separation_agreement": "Separation Agreement",
    "divorce_decree": "Divorce Decree",
    "discharge_certificate": "Discharge Certificate",
    "pr_card": "PR Card",
    "passport": "Passport",
    "work_permit": "Work Permit",
    GENERIC_DOC_TYPE: "Document",
}

DOCUMENT_TYPES: Tuple[str, ...] = tuple(DOC_TYPE_LABELS)

# Substrings expected inside checklist names when the label itself does not appear
KNOWN_ALIASES: Dict[str, List[str]] = {
    "pay_stub": ["paystub", "pay stub"],
    "loe": ["letter of employment", "employment letter"],
    "noa": ["notice of assessment", "NOA"],
    "t1": ["T1 General"],
    "photo_id": ["photo ID", "government-issued"],
    "second_id": ["second form of ID", "second ID"],
    "void_cheque": ["void cheque", "direct deposit"],
    "bank_statement": ["bank statement", "90-day bank"],
    "purchase_agreement": ["purchase agreement", "agreement of purchase"],
    "pr_card": ["PR card", "permanent resident"],
    "financial_statement": ["financial statement"],
    "articles_of_incorporation": ["articles of incorporation"],
    "pension_letter": ["pension letter", "pension benefit"],
    "employment_contract": ["employment contract"],
    "commission_statement": ["commission statement"],
    "lease_agreement": ["lease agreement"],
    "property_tax_bill": ["property tax"],
    "mortgage_statement": ["mortgage statement"],
    "home_insurance": ["home insurance"],
    "separation_agreement": ["separation agreement", "separation/divorce"],
    "discharge_certificate": ["discharge certificate", "bankruptcy discharge"],
    "passport": ["passport"],
    "work_permit": ["work permit"],
}

# Valid for exactly one deal; everything else may be reused across a borrower's deals
PROPERTY_SPECIFIC_TYPES = frozenset({
    "purchase_agreement",
    "mls_listing",
    "property_tax_bill",
    "home_insurance",
    "gift_letter",
    "lease_agreement",
    "mortgage_statement",
})

MIN_CONTAINS_LENGTH = 3


def is_property_specific(document_type: str) -> bool:
    return document_type in PROPERTY_SPECIFIC_TYPES


def find_matching_checklist_doc(
    document_type: str,
    missing_docs: List[MissingDocEntry],
    received_docs: Optional[Iterable[str]] = None,
) -> Optional[MissingDocEntry]:
    """
    Finds the outstanding checklist entry satisfied by a classified document.

    Strategies, first hit wins, entries scanned in checklist order:
      1. exact, then prefix match of the type's label (case-insensitive)
      2. substring match in either direction, only for labels of 3+ characters
         so that a label like "ID" cannot land inside "Dividend"
      3. alias substrings from KNOWN_ALIASES

    Entries already listed in `received_docs` are never candidates. Returns None
    for the generic type, for unknown types, and when no outstanding entry matches.
    """
    if document_type == GENERIC_DOC_TYPE:
        return None
    label = DOC_TYPE_LABELS.get(document_type)
    if not label:
        logger.debug(f"No label for document type '{document_type}'.")
        return None

    received = set(received_docs or ())
    outstanding = [doc for doc in missing_docs if doc.name not in received]
    match = _match_entry(document_type, label.lower(), outstanding)
    if match is None and len(outstanding) < len(missing_docs):
        if _match_entry(document_type, label.lower(), missing_docs) is not None:
            logger.info(f"Checklist entry for '{document_type}' already received; nothing to match.")
    return match


def _match_entry(document_type: str, label: str, missing_docs: List[MissingDocEntry]) -> Optional[MissingDocEntry]:
    for doc in missing_docs:
        if doc.name.lower() == label:
            return doc
    for doc in missing_docs:
        if doc.name.lower().startswith(label):
            return doc

    if len(label) >= MIN_CONTAINS_LENGTH:
        for doc in missing_docs:
            name = doc.name.lower()
            if label in name or (len(name) >= MIN_CONTAINS_LENGTH and name in label):
                return doc

    for alias in KNOWN_ALIASES.get(document_type, []):
        alias_lower = alias.lower()
        for doc in missing_docs:
            if alias_lower in doc.name.lower():
                return doc
    return None
