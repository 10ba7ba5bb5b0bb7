"""
HIPPS code generation and case-mix revenue.

Position semantics are fixed by Medicare PDGM policy:
    1  admission source   '1' community, '2' institutional
    2  timing             'H' early (days 1-30), 'J' late (days 31-60)
    3  clinical group     'A'-'G' from the primary diagnosis
    4  functional level   '1'-'3'
    5  comorbidity        '1'-'4'

Revenue is the base rate times the case-mix weight, rounded half-up to
cents. HIPPS codes absent from the weight table are paid at weight 1.0;
the shipped table is a sample, so this happens routinely.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from decimal import ROUND_HALF_UP, Decimal

from pdgm_engine.errors import ZeroBaselineRevenueError
from pdgm_engine.models import (
    AdmissionSource,
    EpisodeParams,
    EpisodeTiming,
    FunctionalStatusScores,
    HIPPSResult,
    OptimizedRevenue,
    RevenueResult,
)
from pdgm_engine.pdgm.classifier import get_clinical_group
from pdgm_engine.pdgm.scoring import (
    calculate_functional_score,
    get_comorbidity_level,
    get_functional_level,
)
from pdgm_engine.pdgm.tables import PaymentTables, get_tables

logger = logging.getLogger(__name__)

DEFAULT_CASE_MIX_WEIGHT = 1.0

_CENTS = Decimal("0.01")

ADMISSION_SOURCE_LABELS = {
    AdmissionSource.COMMUNITY: "Community",
    AdmissionSource.INSTITUTIONAL: "Institutional",
}
TIMING_LABELS = {
    EpisodeTiming.EARLY: "Early (1-30 days)",
    EpisodeTiming.LATE: "Late (31-60 days)",
}

Scores = FunctionalStatusScores | Mapping[str, int | None]


def round_half_up(value: float | Decimal, places: Decimal = _CENTS) -> float:
    """Round like a biller would (2.345 -> 2.35), not banker's rounding."""
    return float(Decimal(str(value)).quantize(places, rounding=ROUND_HALF_UP))


def generate_hipps_code(
    admission_source: AdmissionSource | str,
    timing: EpisodeTiming | str,
    primary_diagnosis: str,
    functional_score: int,
    comorbidity_level: str,
    tables: PaymentTables | None = None,
) -> str:
    """Assemble the 5-character HIPPS code. Inputs are not re-validated here."""
    source = "2" if AdmissionSource(admission_source) == AdmissionSource.INSTITUTIONAL else "1"
    timing_code = "J" if EpisodeTiming(timing) == EpisodeTiming.LATE else "H"
    clinical_group = get_clinical_group(primary_diagnosis, tables)
    functional_level = get_functional_level(functional_score, tables)

    return f"{source}{timing_code}{clinical_group.code}{functional_level.code}{comorbidity_level}"


def decompose_hipps_code(hipps_code: str) -> dict[str, str]:
    """Split a HIPPS code back into its five positions."""
    if len(hipps_code) != 5:
        raise ValueError(f"HIPPS code must be 5 characters, got '{hipps_code}'")
    return {
        "admission_source": hipps_code[0],
        "timing": hipps_code[1],
        "clinical_group": hipps_code[2],
        "functional_level": hipps_code[3],
        "comorbidity_level": hipps_code[4],
    }


def calculate_revenue(
    hipps_code: str,
    base_rate: float | None = None,
    tables: PaymentTables | None = None,
) -> RevenueResult:
    """Case-mix weight for the code and the resulting episode payment."""
    tables = tables or get_tables()
    if base_rate is None:
        base_rate = tables.base_rate

    weight = tables.lookup_weight(hipps_code)
    if weight is None:
        logger.debug(f"No case-mix weight for {hipps_code}, using {DEFAULT_CASE_MIX_WEIGHT}")
        weight = DEFAULT_CASE_MIX_WEIGHT

    revenue = round_half_up(Decimal(str(base_rate)) * Decimal(str(weight)))
    return RevenueResult(case_mix_weight=weight, revenue=revenue)


def calculate_hipps(
    admission_source: AdmissionSource | str,
    timing: EpisodeTiming | str,
    primary_diagnosis: str,
    functional_scores: Scores,
    secondary_diagnoses_count: int,
    has_high_risk_dx: bool = False,
    tables: PaymentTables | None = None,
) -> HIPPSResult:
    """
    Full HIPPS classification with revenue for one episode.

    Raises FunctionalScoreError if any functional item is out of range.
    """
    tables = tables or get_tables()
    admission_source = AdmissionSource(admission_source)
    timing = EpisodeTiming(timing)

    functional_score = calculate_functional_score(functional_scores, tables)
    functional_level = get_functional_level(functional_score, tables)
    clinical_group = get_clinical_group(primary_diagnosis, tables)
    comorbidity = get_comorbidity_level(secondary_diagnoses_count, has_high_risk_dx)

    hipps_code = generate_hipps_code(
        admission_source,
        timing,
        primary_diagnosis,
        functional_score,
        comorbidity.code,
        tables,
    )
    revenue = calculate_revenue(hipps_code, tables=tables)

    return HIPPSResult(
        hipps_code=hipps_code,
        admission_source=ADMISSION_SOURCE_LABELS[admission_source],
        timing=TIMING_LABELS[timing],
        clinical_group=clinical_group.code,
        clinical_group_name=clinical_group.name,
        functional_score=functional_score,
        functional_level=functional_level.name,
        comorbidity_level=comorbidity.name,
        case_mix_weight=revenue.case_mix_weight,
        base_rate=tables.base_rate,
        revenue=revenue.revenue,
    )


def calculate_optimized_revenue(
    current_scores: Scores,
    suggested_scores: Scores,
    params: EpisodeParams,
    tables: PaymentTables | None = None,
) -> OptimizedRevenue:
    """
    Compare payment for the functional scores as documented against the
    AI-suggested scores, all other episode attributes held fixed.

    Raises ZeroBaselineRevenueError when the current revenue is zero, since
    a percent increase over nothing is undefined.
    """
    shared = dict(
        admission_source=params.admission_source,
        timing=params.timing,
        primary_diagnosis=params.primary_diagnosis,
        secondary_diagnoses_count=params.secondary_diagnoses_count or 0,
        has_high_risk_dx=params.has_high_risk_dx,
        tables=tables,
    )
    current = calculate_hipps(functional_scores=current_scores, **shared)
    optimized = calculate_hipps(functional_scores=suggested_scores, **shared)

    if current.revenue == 0:
        raise ZeroBaselineRevenueError(
            "Cannot compute percent increase over zero current revenue",
            {"hipps_code": current.hipps_code},
        )

    increase = Decimal(str(optimized.revenue)) - Decimal(str(current.revenue))
    percent = increase / Decimal(str(current.revenue)) * 100

    return OptimizedRevenue(
        current=current,
        optimized=optimized,
        increase=round_half_up(increase),
        percent_increase=round_half_up(percent),
    )
