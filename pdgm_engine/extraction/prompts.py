"""
Extraction prompts for the OASIS document reader.

The prompt asks for every clinical domain as an item array and tells the
model to write "Not visible" rather than guess. The model still guesses
sometimes, which is why its output always goes through the extraction
validator before anyone sees it.
"""

SYSTEM_PROMPT = """You are an OASIS home health assessment abstractor. You read OCR text from OASIS-E forms and transcribe what is documented into structured JSON.

Only report what is written in the document. If a field is blank or unreadable, write "Not visible". Never infer a value that is not documented."""


EXTRACTION_PROMPT = """Extract the structured assessment data from this OASIS document.

## Document Text
{source_text}
{doctor_order}

## Instructions
Return ONLY a JSON object (no markdown, no explanations) with these keys:

- "patientInfo": {{"name", "mrn", "visitType", "payor", "visitDate", "clinician"}}
- "primaryDiagnosis": {{"code", "description", "confidence"}} - ICD-10 code from M1021
- "secondaryDiagnoses": [{{"code", "description", "confidence"}}] - from M1023
- "functionalStatus": one item per M1800-M1870 question present in the document
- "medications", "painStatus", "integumentaryStatus", "respiratoryStatus",
  "cardiacStatus", "eliminationStatus", "neuroEmotionalBehavioralStatus",
  "emotionalStatus", "behavioralStatus": item arrays for each domain

Every item has this shape:
{{
    "item": "M1830 - Bathing",
    "currentValue": "3",
    "currentDescription": "Able to participate in bathing self in shower or tub, but requires presence of another person",
    "suggestedValue": "4",
    "suggestedDescription": "Unable to use the shower or tub, but able to bathe self independently with or without the use of devices at the sink",
    "clinicalRationale": "Narrative notes patient cannot step into tub without maximal assist"
}}

For functional items the "item" label MUST start with the OASIS item number
followed by " - " (e.g. "M1800 - Grooming"). Only include a suggestedValue when the
clinical narrative in the document supports a different score than the one marked.

Also include "flaggedIssues" [{{"issue", "severity", "location", "suggestion", "category"}}],
"inconsistencies" [{{"sectionA", "sectionB", "conflictType", "severity", "recommendation", "clinicalImpact"}}],
"suggestedCodes" [{{"code", "description", "reason", "revenueImpact", "confidence"}}] - ICD-10 codes the
  narrative supports but M1021/M1023 do not list,
"corrections" [{{"field", "current", "suggested", "reason", "impact", "revenueChange"}}] - answers the
  documentation contradicts (compare against the doctor order when one is given),
"riskFactors" [{{"factor", "severity", "recommendation"}}] - fall, hospitalization and infection risks,
"recommendations" [{{"category", "recommendation", "priority", "expectedImpact"}}],
"qualityScore" (0-100) and "confidenceScore" (0-100).

Use "Not visible" for anything missing. JSON only."""


DOCTOR_ORDER_SECTION = """
## Doctor Order
{doctor_order_text}

Report any disagreement between the order and the assessment (diagnoses,
frequency, homebound status) as a correction or inconsistency."""
