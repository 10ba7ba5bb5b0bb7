"""Tests for the extraction client parsing and the end-to-end document pipeline."""

import json
import sys
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import MagicMock

sys.path.insert(0, str(Path(__file__).parent.parent))

import anthropic
import httpx
import pytest

from pdgm_engine.errors import ExtractionError
from pdgm_engine.extraction import extractor
from pdgm_engine.extraction.extractor import extract_oasis_analysis, parse_analysis_response
from pdgm_engine.models import (
    ClinicalItem,
    Diagnosis,
    DocumentInput,
    EpisodeParams,
    FlaggedIssue,
    Inconsistency,
    OasisAnalysisResult,
    PatientInfo,
)
from pdgm_engine.pipeline import (
    analyze_document,
    episode_for,
    functional_scores_from_items,
    run_pipeline,
)
from pdgm_engine.qapi import COP_REGULATION, build_qapi_audit

OASIS_TEXT = """OASIS-E Start of Care
M0040 Patient: Jane Doe   M0020 MRN: MR-104233
M1021 Primary diagnosis: I50.9 Heart failure
M1800 Grooming: 2   M1830 Bathing: 4"""


def _analysis(**overrides):
    fields = dict(
        patient_info=PatientInfo(
            name="Jane Doe",
            mrn="MR-104233",
            visit_type="Start of Care",
            payor="Medicare",
            visit_date="2025-03-15",
            clinician="A. Smith, RN",
        ),
        primary_diagnosis=Diagnosis(code="I50.9"),
        secondary_diagnoses=[Diagnosis(code="E11.9")],
        functional_status=[
            ClinicalItem(item="M1800 - Grooming", current_value="2", suggested_value="3"),
            ClinicalItem(item="M1830 - Bathing", current_value="4 - Requires assistance", suggested_value="Not visible"),
        ],
    )
    fields.update(overrides)
    return OasisAnalysisResult(**fields)


def _response(text):
    return SimpleNamespace(content=[SimpleNamespace(text=text)])


def _client(reply=None, error=None):
    """Mock anthropic.Anthropic returning a canned reply or raising."""
    client = MagicMock()
    client.messages.create.return_value = reply
    client.messages.create.side_effect = error
    return client


@pytest.fixture(autouse=True)
def no_rate_limit(monkeypatch):
    monkeypatch.setattr(extractor, "wait_for_rate_limit", lambda: None)


# --- response parsing -------------------------------------------------------

def test_parse_plain_json():
    assert parse_analysis_response('{"qualityScore": 80}') == {"qualityScore": 80}


def test_parse_fenced_json_with_chatter():
    text = 'Here is the analysis:\n```json\n{"primaryDiagnosis": {"code": "I50.9"}}\n```\nDone.'
    assert parse_analysis_response(text)["primaryDiagnosis"]["code"] == "I50.9"


def test_parse_recovers_trailing_commas():
    text = '{"functionalStatus": [{"item": "M1800 - Grooming", "currentValue": "2",},],}'
    data = parse_analysis_response(text)
    assert data["functionalStatus"][0]["currentValue"] == "2"


def test_parse_without_json_raises():
    with pytest.raises(ExtractionError):
        parse_analysis_response("I could not read this document.")


def test_parse_unrecoverable_json_raises():
    with pytest.raises(ExtractionError):
        parse_analysis_response('{"patientInfo": {"name": "Jane}')


# --- extraction client ------------------------------------------------------

def test_extract_builds_analysis():
    payload = {
        "patientInfo": {"name": "Jane Doe", "mrn": 104233},
        "functionalStatus": [{"item": "M1830 - Bathing", "currentValue": 4}],
        "missingInformation": [],
    }
    client = _client(reply=_response(json.dumps(payload)))

    analysis = extract_oasis_analysis(OASIS_TEXT, client=client, model="test-model")

    assert analysis.patient_info.mrn == "104233"
    assert analysis.functional_status[0].current_value == "4"
    assert client.messages.create.call_args.kwargs["model"] == "test-model"
    assert client.messages.create.call_args.kwargs["temperature"] == 0.0
    assert OASIS_TEXT in client.messages.create.call_args.kwargs["messages"][0]["content"]


def test_extract_timeout_raises_extraction_error():
    request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
    client = _client(error=anthropic.APITimeoutError(request=request))

    with pytest.raises(ExtractionError, match="timed out"):
        extract_oasis_analysis(OASIS_TEXT, client=client)


def test_extract_api_error_raises_extraction_error():
    request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
    client = _client(error=anthropic.APIConnectionError(request=request))

    with pytest.raises(ExtractionError):
        extract_oasis_analysis(OASIS_TEXT, client=client)


def test_extract_empty_content_raises():
    client = _client(reply=SimpleNamespace(content=[]))
    with pytest.raises(ExtractionError):
        extract_oasis_analysis(OASIS_TEXT, client=client)


def test_extract_schema_mismatch_raises():
    client = _client(reply=_response('{"functionalStatus": "none"}'))
    with pytest.raises(ExtractionError):
        extract_oasis_analysis(OASIS_TEXT, client=client)


# --- stage helpers ----------------------------------------------------------

def test_functional_scores_from_items():
    items = _analysis().functional_status + [
        ClinicalItem(item="M1400 - Dyspnea", current_value="2"),
        ClinicalItem(item="M1860 - Ambulation", current_value="Not visible"),
    ]

    assert functional_scores_from_items(items) == {"M1800_Grooming": 2, "M1830_Bathing": 4}
    # suggested value where given, current value otherwise
    assert functional_scores_from_items(items, use_suggested=True) == {"M1800_Grooming": 3, "M1830_Bathing": 4}


def test_episode_for_fills_diagnosis_fields():
    episode = episode_for(_analysis(), EpisodeParams(admission_source="institutional"))
    assert episode.primary_diagnosis == "I50.9"
    assert episode.secondary_diagnoses_count == 1
    assert episode.admission_source == "institutional"


def test_episode_for_keeps_explicit_values():
    explicit = EpisodeParams(primary_diagnosis="L89.154", secondary_diagnoses_count=3)
    assert episode_for(_analysis(), explicit) == explicit


# --- QAPI audit -------------------------------------------------------------

def test_qapi_audit_mapping():
    analysis = _analysis(
        flagged_issues=[
            FlaggedIssue(issue="Unsigned assessment", severity="high", category="compliance"),
            FlaggedIssue(issue="Bathing vs ambulation", category="inconsistency", location="M1830 vs M1860"),
            FlaggedIssue(issue="Add fall risk plan", severity="low", category="Safety"),
        ],
        inconsistencies=[Inconsistency(section_a="M1800", section_b="Narrative", conflict_type="Score conflict")],
    )
    annotated = analysis.model_copy(update={"missing_information": []})

    audit = build_qapi_audit(annotated)

    assert len(audit.regulatory_deficiencies) == 1
    assert audit.regulatory_deficiencies[0].regulation == COP_REGULATION
    assert audit.regulatory_deficiencies[0].severity == "high"
    assert [c.element_a for c in audit.contradictory_elements] == ["M1800", "M1830"]
    assert audit.contradictory_elements[1].element_b == "M1860"
    assert audit.recommendations[0].priority == "medium"
    assert audit.incomplete_elements == []


def test_qapi_audit_empty():
    assert build_qapi_audit(OasisAnalysisResult()).recommendations == []
    assert build_qapi_audit(_analysis()).is_empty()


# --- pipeline ---------------------------------------------------------------

def test_analyze_document_with_provided_analysis():
    """Validation, missing fields, revenue and QAPI all run without an extraction call."""
    document = DocumentInput(document_id="doc-1", source_text=OASIS_TEXT, analysis=_analysis())

    def fail(_text, _order):
        raise AssertionError("extraction should not run")

    report = analyze_document(document, extract=fail)

    assert report.error is None
    assert report.dropped_items == []
    # no pain/skin/respiratory/cardiac/elimination/neuro sections
    assert report.analysis.completeness_score == 40
    assert report.revenue.current.hipps_code == "1HD12"
    assert report.revenue.current.functional_score == 6
    assert report.revenue.current.revenue == 2398.58
    assert report.revenue.optimized.functional_score == 7
    assert report.revenue.increase == 0
    assert len(report.qapi_audit.incomplete_elements) == 6


def test_analyze_document_uses_extractor():
    calls = []

    def fake_extract(text, doctor_order_text):
        calls.append((text, doctor_order_text))
        return _analysis()

    document = DocumentInput(document_id="doc-2", source_text=OASIS_TEXT, doctor_order_text="SN 2w4 for CHF")
    report = analyze_document(document, extract=fake_extract)

    assert calls == [(OASIS_TEXT, "SN 2w4 for CHF")]
    assert report.revenue is not None


def test_analyze_document_drops_ungrounded_items_before_scoring():
    """A hallucinated functional item never reaches the HIPPS calculation."""
    analysis = _analysis(functional_status=[
        ClinicalItem(item="M1830 - Bathing", current_value="4"),
        ClinicalItem(item="M1860 - Ambulation", current_value="6"),
    ])
    document = DocumentInput(
        document_id="doc-3",
        source_text="Visit note. M1830 bathing needs help.",
        analysis=analysis,
    )

    report = analyze_document(document)

    assert [d.item for d in report.dropped_items] == ["M1860 - Ambulation"]
    assert report.revenue.current.functional_score == 4


def test_out_of_range_score_recorded_on_report():
    analysis = _analysis(functional_status=[ClinicalItem(item="M1800 - Grooming", current_value="7")])
    document = DocumentInput(document_id="doc-4", source_text=OASIS_TEXT, analysis=analysis)

    report = analyze_document(document)

    assert report.revenue is None
    assert "M1800_Grooming" in report.error
    assert report.analysis is not None
    assert report.analysis.completeness_score is not None


def test_run_pipeline_continues_after_extraction_failure(tmp_path):
    """One failing document does not abort the batch."""

    def flaky_extract(text, _order):
        if "broken" in text:
            raise ExtractionError("Extraction call timed out")
        return _analysis()

    documents = [
        DocumentInput(document_id="ok-1", source_text=OASIS_TEXT),
        DocumentInput(document_id="bad", source_text="broken scan"),
        DocumentInput(document_id="ok-2", source_text=OASIS_TEXT),
    ]
    progress = []

    batch = run_pipeline(
        documents,
        tmp_path,
        extract=flaky_extract,
        progress_callback=lambda i, n, doc_id: progress.append((i, n, doc_id)),
    )

    assert batch.total_documents == 3
    assert batch.failed_documents == 1
    assert [r.document_id for r in batch.reports] == ["ok-1", "bad", "ok-2"]
    assert batch.reports[1].analysis is None
    assert "timed out" in batch.reports[1].error
    assert batch.hipps_distribution == {"1HD12": 2}
    assert batch.total_current_revenue == 4797.16
    assert progress[-1] == (3, 3, "ok-2")

    results = json.loads((tmp_path / "results.json").read_text())
    assert results["reports"][0]["analysis"]["completenessScore"] == 40
    summary = json.loads((tmp_path / "summary.json").read_text())
    assert summary["failed_documents"] == 1
    assert summary["top_missing_fields"][0]["count"] == 2


def test_extractor_exception_becomes_extraction_error():
    """Any failure inside the extractor is reported as a failed extraction."""

    def hung(_text, _order):
        raise TimeoutError("upstream hung")

    document = DocumentInput(document_id="doc-5", source_text=OASIS_TEXT)

    with pytest.raises(ExtractionError, match="TimeoutError: upstream hung") as exc:
        analyze_document(document, extract=hung)
    assert isinstance(exc.value.__cause__, TimeoutError)


def test_run_pipeline_survives_non_engine_errors(tmp_path):
    """A plain exception from the extractor fails only its own document."""

    def extract(text, _order):
        if "hang" in text:
            raise TimeoutError("upstream hung")
        return _analysis()

    documents = [
        DocumentInput(document_id="ok-1", source_text=OASIS_TEXT),
        DocumentInput(document_id="hung", source_text="hang forever"),
        DocumentInput(document_id="ok-2", source_text=OASIS_TEXT),
    ]

    batch = run_pipeline(documents, tmp_path, extract=extract, progress_callback=lambda *a: None)

    assert batch.total_documents == 3
    assert batch.failed_documents == 1
    assert "upstream hung" in batch.reports[1].error
    assert batch.reports[2].revenue is not None
    assert (tmp_path / "results.json").exists()


def test_run_pipeline_isolates_malformed_input(tmp_path):
    """Raw documents are validated one at a time; a bad entry does not stop the run."""
    documents = [
        {"document_id": "ok", "source_text": OASIS_TEXT, "analysis": _analysis().model_dump(by_alias=True)},
        {"document_id": "no-text"},
        {"source_text": OASIS_TEXT, "episode": {"timing": "someday"}},
    ]

    batch = run_pipeline(documents, tmp_path, extract=lambda text, order: _analysis(), progress_callback=lambda *a: None)

    assert [r.document_id for r in batch.reports] == ["ok", "no-text", "document-3"]
    assert batch.failed_documents == 2
    assert batch.reports[0].revenue.current.hipps_code == "1HD12"
    assert batch.reports[1].error.startswith("Invalid document")
    assert batch.reports[2].error.startswith("Invalid document")


def test_explicit_zero_secondaries_kept():
    """An explicit count of 0 is not overwritten by the analysis."""
    assert EpisodeParams().secondary_diagnoses_count is None

    episode = episode_for(_analysis(), EpisodeParams(secondary_diagnoses_count=0))
    assert episode.secondary_diagnoses_count == 0

    document = DocumentInput(
        document_id="doc-6",
        source_text=OASIS_TEXT,
        analysis=_analysis(),
        episode=EpisodeParams(secondary_diagnoses_count=0),
    )
    assert analyze_document(document).revenue.current.hipps_code == "1HD11"


def test_extract_includes_doctor_order():
    client = _client(reply=_response("{}"))

    extract_oasis_analysis(OASIS_TEXT, "Skilled nursing 2w4, PT eval", client=client)

    prompt = client.messages.create.call_args.kwargs["messages"][0]["content"]
    assert "## Doctor Order" in prompt
    assert "Skilled nursing 2w4, PT eval" in prompt


def test_extract_without_doctor_order():
    client = _client(reply=_response("{}"))
    extract_oasis_analysis(OASIS_TEXT, client=client)
    prompt = client.messages.create.call_args.kwargs["messages"][0]["content"]
    assert "## Doctor Order" not in prompt


def test_extract_keeps_codes_corrections_and_risks():
    payload = {
        "suggestedCodes": [{"code": "E11.9", "description": "Type 2 diabetes", "revenueImpact": 150, "confidence": 85}],
        "corrections": [{"field": "M1830", "current": 2, "suggested": 4, "reason": "needs assist", "revenueChange": 100}],
        "riskFactors": [{"factor": "Fall risk", "severity": "high", "recommendation": "Home safety eval"}],
    }
    client = _client(reply=_response(json.dumps(payload)))

    analysis = extract_oasis_analysis(OASIS_TEXT, client=client)

    assert analysis.suggested_codes[0].code == "E11.9"
    assert analysis.suggested_codes[0].revenue_impact == 150
    assert analysis.corrections[0].current == "2"
    assert analysis.corrections[0].suggested == "4"
    assert analysis.risk_factors[0].severity == "high"
    assert "suggestedCodes" in analysis.model_dump(by_alias=True)


def test_qapi_audit_includes_risks_and_corrections():
    analysis = OasisAnalysisResult.model_validate({
        "riskFactors": [{"factor": "Fall risk", "severity": "high", "recommendation": "Home safety eval"}],
        "corrections": [{"field": "M1830", "current": "2", "suggested": "4", "reason": "needs assist", "revenueChange": 100}],
    })

    audit = build_qapi_audit(analysis)

    assert [(r.category, r.priority) for r in audit.recommendations] == [
        ("Risk Mitigation", "high"),
        ("Documentation Correction", "high"),
    ]
    assert audit.recommendations[0].recommendation == "Home safety eval"
    assert audit.recommendations[1].recommendation == "M1830: 2 -> 4 (needs assist)"
