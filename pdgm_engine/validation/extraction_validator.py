"""
Extraction grounding validator.

The AI extraction step is untrusted: models fill OASIS templates with
plausible-looking items that never appeared in the document. Every item the
extraction reports is checked against the literal source text before it can
reach a biller, and anything that can't be grounded is dropped.

Rules per clinical domain:
- functionalStatus: the item's leading code token (text before " - ", e.g.
  "M1845") must appear verbatim in the source. Recognized OASIS forms are
  exempt, since their functional section may be laid out as a grid the text
  extraction flattens beyond recognition.
- medications: kept when the current value is real, or when the label is a
  real value that reads like a drug rather than a template slot.
- every other domain: dropped only when the label is empty or a placeholder.

The validator is a pure filter: it removes items, never edits or adds them,
and running it twice gives the same result as running it once.
"""

import logging
import re

from pdgm_engine.models import CLINICAL_DOMAINS, ClinicalItem, DroppedItem, OasisAnalysisResult

logger = logging.getLogger(__name__)

# Literal markers that identify an OASIS assessment form
OASIS_FORM_MARKERS = ("OASIS", "M1800", "M1810", "Functional Status")

# Values the extraction emits when it has nothing real to report. "None"
# is not one of them: "Pain: None" or "Edema: None" is a documented finding.
PLACEHOLDER_VALUES = frozenset({
    "",
    "not found",
    "not visible",
    "n/a",
    "unknown",
    "not documented",
    "not available",
})

# Template slots the model copies from the prompt instead of real drug names
_TEMPLATE_MEDICATION = re.compile(
    r"^(?:medication|med|drug|rx)\s*(?:name)?\s*#?\s*\d*$"
    r"|^[\[<{(].*[\]>})]$"
    r"|^\.{2,}$"
    r"|^(?:none|no medications?)$"
    r"|^(?:example|sample|placeholder|tbd|xxx+)\b",
    re.IGNORECASE,
)

# Drug name + strength, e.g. "Metformin 500 mg", "Lasix 40mg"
_DRUG_DOSE = re.compile(
    r"\b([A-Za-z][\w-]+)\s*(\d+(?:\.\d+)?\s*(?:mg|mcg|ml|units?|g|meq|%)\b)",
    re.IGNORECASE,
)

_CODE_SEPARATOR = " - "


def is_placeholder(value: str | None) -> bool:
    """True for blank values and the sentinels the extraction uses for 'nothing here'."""
    if value is None:
        return True
    return value.strip().lower() in PLACEHOLDER_VALUES


def is_oasis_form(source_text: str) -> bool:
    return any(marker in source_text for marker in OASIS_FORM_MARKERS)


def item_code(label: str) -> str:
    """Leading code token of a functional item label: 'M1830 - Bathing' -> 'M1830'."""
    return label.split(_CODE_SEPARATOR, 1)[0].strip()


def looks_like_medication(label: str) -> bool:
    """
    Heuristic: does this label name an actual drug?

    Accepts anything with a drug+strength pattern, and otherwise any label
    with at least one alphabetic word of 3+ letters that isn't a template
    slot like 'Medication 1' or '[drug name]'.
    """
    text = label.strip()
    if is_placeholder(text):
        return False
    if _DRUG_DOSE.search(text):
        return True
    if _TEMPLATE_MEDICATION.match(text):
        return False
    return re.search(r"[A-Za-z]{3,}", text) is not None


def _check_functional_item(item: ClinicalItem, source_text: str, oasis_form: bool) -> str | None:
    code = item_code(item.item)
    if code in source_text or oasis_form:
        return None
    return f"code '{code}' not found in source document"


def _check_medication(item: ClinicalItem) -> str | None:
    if not is_placeholder(item.current_value):
        return None
    if looks_like_medication(item.item):
        return None
    if is_placeholder(item.item):
        return "placeholder label with no current value"
    return "label is a template placeholder, not a medication"


def _check_generic_item(item: ClinicalItem) -> str | None:
    if is_placeholder(item.item):
        return "empty or placeholder label"
    return None


def _rejection_reason(domain: str, item: ClinicalItem, source_text: str, oasis_form: bool) -> str | None:
    if domain == "functional_status":
        return _check_functional_item(item, source_text, oasis_form)
    if domain == "medications":
        return _check_medication(item)
    return _check_generic_item(item)


def audit_extraction_accuracy(
    analysis: OasisAnalysisResult, source_text: str
) -> tuple[OasisAnalysisResult, list[DroppedItem]]:
    """
    Filter every clinical domain against the source document.

    Returns a new analysis with ungrounded items removed, plus an audit
    record for each removal. The input analysis is left untouched.
    """
    source_text = source_text or ""
    oasis_form = is_oasis_form(source_text)

    updates: dict[str, list[ClinicalItem]] = {}
    dropped: list[DroppedItem] = []

    for domain in CLINICAL_DOMAINS:
        kept = []
        for item in getattr(analysis, domain):
            reason = _rejection_reason(domain, item, source_text, oasis_form)
            if reason is None:
                kept.append(item)
                continue
            logger.info(f"Dropped ungrounded {domain} item '{item.item}': {reason}")
            dropped.append(DroppedItem(domain=domain, item=item.item, reason=reason))
        updates[domain] = kept

    if dropped:
        logger.warning(
            f"Extraction validation removed {len(dropped)} item(s) "
            f"(oasis_form={oasis_form})"
        )

    return analysis.model_copy(update=updates), dropped


def validate_extraction_accuracy(analysis: OasisAnalysisResult, source_text: str) -> OasisAnalysisResult:
    """Return the analysis with every item not grounded in source_text removed."""
    validated, _dropped = audit_extraction_accuracy(analysis, source_text)
    return validated
