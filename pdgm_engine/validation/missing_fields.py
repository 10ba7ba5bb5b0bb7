"""
Missing-field detector.

Walks a fixed checklist of required and recommended OASIS fields over a
validated extraction, then inspects every individual item that survived
validation and flags those whose value is blank or a placeholder. Each gap
becomes a MissingFieldEntry telling the reviewer where to look on the form,
what the gap costs, and how to fix it.

The detector is the single source of truth for missingInformation: anything
the AI proposed for that field is discarded, never merged. The model has no
way to know what it failed to extract, so its guesses are not trusted.

completenessScore = max(0, 100 - 10 x number of gaps)
"""

import logging
from datetime import datetime

from pdgm_engine.models import (
    CLINICAL_DOMAINS,
    MissingFieldEntry,
    OasisAnalysisResult,
)
from pdgm_engine.validation.extraction_validator import is_placeholder

logger = logging.getLogger(__name__)

POINTS_PER_GAP = 10

# Names the extraction falls back to when the patient header is unreadable
_PLACEHOLDER_PATIENT_NAMES = frozenset({"unknown patient", "analysis error", "patient"})

_DATE_FORMATS = (
    "%Y-%m-%d",
    "%m/%d/%Y",
    "%m/%d/%y",
    "%m-%d-%Y",
    "%B %d, %Y",
    "%b %d, %Y",
    "%d %B %Y",
)

# domain attribute -> (display name, form location)
DOMAIN_SECTIONS = {
    "functional_status": ("Functional Status", "Section GG / M1800-M1870 (ADL/IADL), page 8-10"),
    "medications": ("Medications", "Section N / M2001-M2030 (Medication Profile), page 14"),
    "pain_status": ("Pain Status", "Section J / J0510-J0530 (Pain Assessment), page 7"),
    "integumentary_status": ("Integumentary Status", "Section M / M1306-M1342 (Skin & Wounds), page 11"),
    "respiratory_status": ("Respiratory Status", "Section J / M1400 (Respiratory), page 12"),
    "cardiac_status": ("Cardiac Status", "Cardiopulmonary assessment (vitals, edema, rhythm), page 12"),
    "elimination_status": ("Elimination Status", "Section H / M1600-M1630 (Elimination), page 13"),
    "neuro_emotional_behavioral_status": (
        "Neuro/Emotional/Behavioral Status",
        "Sections C, D, E / M1700-M1745 (Cognition, Mood, Behavior), page 6",
    ),
    "emotional_status": ("Emotional Status", "Section D / D0150-D0160 (Mood), page 6"),
    "behavioral_status": ("Behavioral Status", "Section E / M1740-M1745 (Behavior), page 6"),
}

# Recommended domains checked for presence; emotional and behavioral are
# accepted in place of the combined neuro section
_RECOMMENDED_DOMAINS = (
    (
        "pain_status",
        "Pain frequency and interference not documented; affects the pain quality measure.",
        "Complete J0510-J0530 with patient-reported pain frequency and effect on activity.",
    ),
    (
        "integumentary_status",
        "Skin/wound status not documented; unhealed pressure ulcers can change the clinical group.",
        "Document skin integrity, any pressure ulcers or wounds with stage and location.",
    ),
    (
        "respiratory_status",
        "Dyspnea level not documented; affects respiratory outcome measures.",
        "Complete M1400 (when is the patient dyspneic) and oxygen use.",
    ),
    (
        "cardiac_status",
        "Cardiac findings not documented; supports Complex Nursing grouping for cardiac diagnoses.",
        "Record vitals, edema, heart rhythm and cardiac symptoms.",
    ),
    (
        "elimination_status",
        "Urinary/bowel status not documented; affects incontinence and UTI quality measures.",
        "Complete M1600-M1630 (UTI, urinary and bowel incontinence, ostomy).",
    ),
)


def _entry(field: str, location: str, impact: str, recommendation: str, required: bool) -> MissingFieldEntry:
    return MissingFieldEntry(
        field=field,
        location=location,
        impact=impact,
        recommendation=recommendation,
        required=required,
    )


def parse_visit_date(value: str | None) -> datetime | None:
    """Parse a visit date in any format the extraction commonly returns; None if invalid."""
    if is_placeholder(value):
        return None
    text = value.strip()
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        pass
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    logger.debug(f"Unparseable visit date: {value!r}")
    return None


def _real_diagnoses(analysis: OasisAnalysisResult) -> list:
    return [dx for dx in analysis.secondary_diagnoses if not is_placeholder(dx.code)]


def _check_required_fields(analysis: OasisAnalysisResult) -> list[MissingFieldEntry]:
    entries = []
    patient = analysis.patient_info

    if is_placeholder(analysis.primary_diagnosis.code):
        entries.append(_entry(
            "Primary Diagnosis (M1021)",
            "Section I / M1021 (Primary Diagnosis), page 3",
            "CRITICAL: Without a primary ICD-10 code the clinical group and HIPPS code cannot be "
            "determined; the claim cannot be billed.",
            "Enter the primary diagnosis ICD-10 code with description, coded to highest specificity.",
            True,
        ))

    if not _real_diagnoses(analysis):
        entries.append(_entry(
            "Secondary Diagnoses (M1023)",
            "Section I / M1023 (Other Diagnoses), page 3",
            "No secondary diagnoses documented; the comorbidity adjustment defaults to none and "
            "may understate payment.",
            "Review the referral and history for active comorbidities and code them in M1023.",
            False,
        ))

    if not analysis.functional_status:
        entries.append(_entry(
            "Functional Status (M1800-M1870)",
            DOMAIN_SECTIONS["functional_status"][1],
            "CRITICAL: Functional impairment level cannot be scored; HIPPS position 4 defaults "
            "to low impairment.",
            "Complete all 9 functional items (M1800, M1810, M1820, M1830, M1840, M1845, M1850, "
            "M1860, M1870).",
            True,
        ))

    name = patient.name
    if is_placeholder(name) or name.strip().lower() in _PLACEHOLDER_PATIENT_NAMES:
        entries.append(_entry(
            "Patient Name",
            "Section A / M0040 (Patient Name), page 1",
            "CRITICAL: Assessment cannot be matched to a patient record or claim.",
            "Enter the patient's legal name exactly as it appears on the Medicare card.",
            True,
        ))

    if is_placeholder(patient.mrn):
        entries.append(_entry(
            "Medical Record Number (MRN)",
            "Section A / M0020 (Patient ID Number), page 1",
            "Assessment cannot be linked to the agency chart.",
            "Enter the agency medical record number.",
            True,
        ))

    if is_placeholder(patient.visit_type):
        entries.append(_entry(
            "Visit Type (M0100)",
            "Section A / M0100 (Reason for Assessment), page 1",
            "Reason for assessment (SOC, ROC, recert, discharge) unknown; episode timing cannot "
            "be confirmed.",
            "Select the reason for assessment in M0100.",
            True,
        ))

    if parse_visit_date(patient.visit_date) is None:
        entries.append(_entry(
            "Visit Date (M0090)",
            "Section A / M0090 (Date Assessment Completed), page 1",
            "CRITICAL: Missing or invalid assessment date; episode timing and timely-submission "
            "compliance cannot be established.",
            "Enter the date the assessment was completed (MM/DD/YYYY).",
            True,
        ))

    if is_placeholder(patient.payor):
        entries.append(_entry(
            "Payor (M0150)",
            "Section A / M0150 (Current Payment Sources), page 2",
            "Payment source unknown; PDGM applies to Medicare fee-for-service only.",
            "Mark all current payment sources in M0150.",
            True,
        ))

    if is_placeholder(patient.clinician):
        entries.append(_entry(
            "Clinician Signature",
            "Signature block, final page",
            "Unsigned assessment is not valid for billing or survey purposes.",
            "Obtain the assessing clinician's signature, credentials and date.",
            True,
        ))

    return entries


def _check_recommended_domains(analysis: OasisAnalysisResult) -> list[MissingFieldEntry]:
    entries = []
    for domain, impact, recommendation in _RECOMMENDED_DOMAINS:
        if getattr(analysis, domain):
            continue
        name, location = DOMAIN_SECTIONS[domain]
        entries.append(_entry(name, location, impact, recommendation, False))

    if not (
        analysis.neuro_emotional_behavioral_status
        or analysis.emotional_status
        or analysis.behavioral_status
    ):
        name, location = DOMAIN_SECTIONS["neuro_emotional_behavioral_status"]
        entries.append(_entry(
            name,
            location,
            "Cognitive, mood and behavioral status not documented; affects safety planning and "
            "the depression screening measure.",
            "Complete cognitive function, PHQ-2/9 mood screening and behavior items (M1700-M1745).",
            False,
        ))
    return entries


def _check_item_values(analysis: OasisAnalysisResult) -> list[MissingFieldEntry]:
    entries = []
    for domain in CLINICAL_DOMAINS:
        name, location = DOMAIN_SECTIONS[domain]
        for item in getattr(analysis, domain):
            if not is_placeholder(item.current_value):
                continue
            label = item.item.strip() or "(unlabeled item)"
            entries.append(_entry(
                f"{name}: {label}",
                location,
                f"{label} is present on the form but has no documented value.",
                f"Document the current value for {label}.",
                # blank functional items directly change the HIPPS code
                domain == "functional_status",
            ))
    return entries


def dedupe_entries(entries: list[MissingFieldEntry]) -> list[MissingFieldEntry]:
    """Keep the first entry for each field name, preserving order."""
    seen = set()
    unique = []
    for entry in entries:
        if entry.field in seen:
            continue
        seen.add(entry.field)
        unique.append(entry)
    return unique


def completeness_score(gap_count: int) -> int:
    return max(0, 100 - POINTS_PER_GAP * gap_count)


def find_missing_fields(analysis: OasisAnalysisResult) -> list[MissingFieldEntry]:
    """All gaps in the analysis, deduplicated by field name."""
    entries = (
        _check_required_fields(analysis)
        + _check_recommended_domains(analysis)
        + _check_item_values(analysis)
    )
    return dedupe_entries(entries)


def detect_missing_required_fields(analysis: OasisAnalysisResult) -> OasisAnalysisResult:
    """
    Return the analysis annotated with missingInformation and completenessScore.

    Any missingInformation already on the input (e.g. proposed by the AI)
    is replaced, not merged.
    """
    if analysis.missing_information:
        logger.debug(
            f"Discarding {len(analysis.missing_information)} AI-proposed missing-information entries"
        )

    entries = find_missing_fields(analysis)
    score = completeness_score(len(entries))
    required = sum(1 for e in entries if e.required)
    logger.info(f"Missing-field check: {len(entries)} gap(s), {required} required, completeness {score}")

    return analysis.model_copy(update={
        "missing_information": entries,
        "completeness_score": score,
    })
