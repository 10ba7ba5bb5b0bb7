"""
Analysis pipeline orchestrator.

Ties together all stages for one OASIS document:
1. AI extraction (only when the document has no analysis yet)
2. Extraction validator - drop items not grounded in the source text
3. Missing-field detector - annotate gaps and completeness
4. HIPPS + revenue - as-documented vs AI-suggested functional scores
5. QAPI audit

Each stage returns a new value; nothing is edited in place. Documents are
processed sequentially, one independent call chain each, so a malformed
document only fails its own report - the batch always completes.
"""

import json
import logging
import re
import time
from collections.abc import Callable
from pathlib import Path

from pydantic import ValidationError

from pdgm_engine.errors import (
    ExtractionError,
    FunctionalScoreError,
    PDGMEngineError,
    ZeroBaselineRevenueError,
)
from pdgm_engine.extraction.extractor import extract_oasis_analysis
from pdgm_engine.models import (
    BatchReport,
    ClinicalItem,
    DocumentInput,
    DocumentReport,
    EpisodeParams,
    OasisAnalysisResult,
)
from pdgm_engine.pdgm.hipps import calculate_optimized_revenue, round_half_up
from pdgm_engine.pdgm.pdgm_data import FUNCTIONAL_ITEM_RANGES
from pdgm_engine.pdgm.tables import PaymentTables
from pdgm_engine.qapi import build_qapi_audit
from pdgm_engine.validation.extraction_validator import audit_extraction_accuracy, is_placeholder, item_code
from pdgm_engine.validation.missing_fields import detect_missing_required_fields

logger = logging.getLogger(__name__)

# (source_text, doctor_order_text) -> raw analysis
Extractor = Callable[[str, str | None], OasisAnalysisResult]

# "M1830" -> "M1830_Bathing"
_ITEM_KEYS = {key.split("_", 1)[0]: key for key in FUNCTIONAL_ITEM_RANGES}

_LEADING_INT = re.compile(r"^\s*(\d+)")


def _score_value(value: str | None) -> int | None:
    """'3', '3 - Requires assistance', '03' -> 3; placeholders -> None."""
    if is_placeholder(value):
        return None
    match = _LEADING_INT.match(value)
    return int(match.group(1)) if match else None


def functional_scores_from_items(items: list[ClinicalItem], use_suggested: bool = False) -> dict[str, int]:
    """
    Convert extracted functional items into scorer input.

    With use_suggested, an item's suggested value replaces its current value
    where one was given. Items that aren't M1800-M1870 or carry no numeric
    value are skipped. Out-of-range values are passed through for the
    scorer to reject.
    """
    scores = {}
    for item in items:
        key = _ITEM_KEYS.get(item_code(item.item).upper())
        if key is None:
            continue
        value = None
        if use_suggested:
            value = _score_value(item.suggested_value)
        if value is None:
            value = _score_value(item.current_value)
        if value is not None:
            scores[key] = value
    return scores


def episode_for(analysis: OasisAnalysisResult, episode: EpisodeParams) -> EpisodeParams:
    """Fill diagnosis-derived episode attributes from the validated analysis."""
    updates = {}
    if not episode.primary_diagnosis and not is_placeholder(analysis.primary_diagnosis.code):
        updates["primary_diagnosis"] = analysis.primary_diagnosis.code
    if episode.secondary_diagnoses_count is None:
        updates["secondary_diagnoses_count"] = sum(
            1 for dx in analysis.secondary_diagnoses if not is_placeholder(dx.code)
        )
    return episode.model_copy(update=updates) if updates else episode


def _extract(document: DocumentInput, extract: Extractor) -> OasisAnalysisResult:
    """Run the extractor; anything it raises counts as a failed extraction."""
    try:
        return extract(document.source_text, document.doctor_order_text)
    except ExtractionError:
        raise
    except Exception as e:
        raise ExtractionError(
            f"Extraction failed: {type(e).__name__}: {e}",
            {"document_id": document.document_id},
        ) from e


def analyze_document(
    document: DocumentInput,
    extract: Extractor | None = None,
    tables: PaymentTables | None = None,
) -> DocumentReport:
    """
    Run one document through every stage.

    Raises ExtractionError when extraction is needed and fails. Scoring
    errors (out-of-range functional items, zero baseline revenue) are
    recorded on the report, which still carries the validated analysis.
    """
    analysis = document.analysis
    if analysis is None:
        analysis = _extract(document, extract or extract_oasis_analysis)

    validated, dropped = audit_extraction_accuracy(analysis, document.source_text)
    annotated = detect_missing_required_fields(validated)

    episode = episode_for(annotated, document.episode)
    revenue = None
    error = None
    try:
        revenue = calculate_optimized_revenue(
            functional_scores_from_items(annotated.functional_status),
            functional_scores_from_items(annotated.functional_status, use_suggested=True),
            episode,
            tables,
        )
    except (FunctionalScoreError, ZeroBaselineRevenueError) as e:
        logger.warning(f"Revenue calculation failed for {document.document_id}: {e}")
        error = str(e)

    return DocumentReport(
        document_id=document.document_id,
        analysis=annotated,
        dropped_items=dropped,
        revenue=revenue,
        qapi_audit=build_qapi_audit(annotated),
        error=error,
    )


def _document_id(raw: DocumentInput | dict, index: int) -> str:
    if isinstance(raw, DocumentInput):
        return raw.document_id
    if isinstance(raw, dict) and raw.get("document_id"):
        return str(raw["document_id"])
    return f"document-{index + 1}"


def run_pipeline(
    documents: list[DocumentInput | dict],
    output_dir: Path,
    extract: Extractor | None = None,
    tables: PaymentTables | None = None,
    progress_callback=None,
) -> BatchReport:
    """
    Run the full analysis pipeline on a batch of documents.

    A document that fails (malformed input, extraction failure, any other
    error) gets a report carrying the error; the rest of the batch still runs.

    Args:
        documents: Documents to analyze, as models or raw JSON dicts
        output_dir: Where to write results
        extract: Extraction function for documents without an analysis
        tables: Payment tables (process defaults if omitted)
        progress_callback: Optional fn(current, total, document_id) for progress

    Returns:
        BatchReport with all results and aggregate stats
    """
    output_dir.mkdir(parents=True, exist_ok=True)

    reports = []
    for i, raw in enumerate(documents):
        start = time.time()
        document_id = _document_id(raw, i)
        if progress_callback:
            progress_callback(i + 1, len(documents), document_id)
        else:
            print(f"  [{i+1}/{len(documents)}] Analyzing {document_id}...", end=" ", flush=True)

        try:
            document = raw if isinstance(raw, DocumentInput) else DocumentInput.model_validate(raw)
            report = analyze_document(document, extract=extract, tables=tables)
        except ValidationError as e:
            logger.error(f"Invalid document {document_id}: {e}")
            print(f"ERROR: invalid document ({e.error_count()} errors)")
            reports.append(DocumentReport(document_id=document_id, error=f"Invalid document: {e}"))
            continue
        except PDGMEngineError as e:
            logger.error(f"Analysis failed for {document_id}: {e}")
            print(f"ERROR: {e}")
            reports.append(DocumentReport(document_id=document_id, error=str(e)))
            continue
        except Exception as e:
            logger.exception(f"Unexpected error analyzing {document_id}")
            print(f"ERROR: {e}")
            reports.append(DocumentReport(document_id=document_id, error=f"{type(e).__name__}: {e}"))
            continue

        reports.append(report)
        elapsed = time.time() - start
        hipps = report.revenue.current.hipps_code if report.revenue else "n/a"
        print(f"done ({elapsed:.1f}s) - hipps={hipps}, completeness={report.analysis.completeness_score}")

    batch = _build_batch_report(reports)

    results_path = output_dir / "results.json"
    with open(results_path, "w", encoding="utf-8") as f:
        f.write(batch.model_dump_json(indent=2, by_alias=True))
    print(f"\nResults saved to {results_path}")

    summary_path = output_dir / "summary.json"
    with open(summary_path, "w", encoding="utf-8") as f:
        json.dump(_build_summary(batch), f, indent=2)
    print(f"Summary saved to {summary_path}")

    return batch


def _build_batch_report(reports: list[DocumentReport]) -> BatchReport:
    """Compute aggregate statistics from individual reports."""
    failed = 0
    completeness = []
    total_dropped = 0
    total_missing = 0
    current_total = 0.0
    optimized_total = 0.0
    hipps_dist = {}
    missing_counts = {}

    for r in reports:
        if r.error:
            failed += 1
        total_dropped += len(r.dropped_items)

        if r.analysis is not None:
            completeness.append(r.analysis.completeness_score or 0)
            total_missing += len(r.analysis.missing_information)
            for gap in r.analysis.missing_information:
                entry = missing_counts.setdefault(gap.field, {"field": gap.field, "count": 0, "required": gap.required})
                entry["count"] += 1

        if r.revenue is not None:
            current_total += r.revenue.current.revenue
            optimized_total += r.revenue.optimized.revenue
            code = r.revenue.current.hipps_code
            hipps_dist[code] = hipps_dist.get(code, 0) + 1

    avg_completeness = sum(completeness) / len(completeness) if completeness else 0

    sorted_missing = sorted(missing_counts.values(), key=lambda x: x["count"], reverse=True)

    return BatchReport(
        total_documents=len(reports),
        reports=reports,
        failed_documents=failed,
        avg_completeness_score=round(avg_completeness, 1),
        total_dropped_items=total_dropped,
        total_missing_fields=total_missing,
        total_current_revenue=round_half_up(current_total),
        total_optimized_revenue=round_half_up(optimized_total),
        total_revenue_increase=round_half_up(optimized_total - current_total),
        hipps_distribution=hipps_dist,
        most_common_missing_fields=sorted_missing[:10],
    )


def _build_summary(batch: BatchReport) -> dict:
    """Build a human-readable summary for the dashboard header."""
    return {
        "total_documents": batch.total_documents,
        "failed_documents": batch.failed_documents,
        "avg_completeness_score": batch.avg_completeness_score,
        "total_dropped_items": batch.total_dropped_items,
        "total_missing_fields": batch.total_missing_fields,
        "total_current_revenue": batch.total_current_revenue,
        "total_optimized_revenue": batch.total_optimized_revenue,
        "total_revenue_increase": batch.total_revenue_increase,
        "hipps_distribution": batch.hipps_distribution,
        "top_missing_fields": batch.most_common_missing_fields,
    }
