"""
Functional impairment and comorbidity scoring.

The functional score is the sum of whichever OASIS M1800-M1870 items the
document provides - not every source form carries all nine - capped at 38.
Items outside their valid range are a caller error and raise.
"""

from collections.abc import Mapping

from pdgm_engine.errors import FunctionalScoreError
from pdgm_engine.models import FunctionalStatusScores, LevelResult
from pdgm_engine.pdgm.pdgm_data import COMORBIDITY_LEVELS, FUNCTIONAL_ITEM_RANGES
from pdgm_engine.pdgm.tables import PaymentTables, get_tables


def _present_items(scores: FunctionalStatusScores | Mapping[str, int | None]) -> dict[str, int]:
    if isinstance(scores, FunctionalStatusScores):
        return scores.present_items()

    items = {}
    for name, value in scores.items():
        if name not in FUNCTIONAL_ITEM_RANGES:
            raise FunctionalScoreError(name, value)
        if value is None:
            continue
        low, high = FUNCTIONAL_ITEM_RANGES[name]
        if isinstance(value, bool) or not isinstance(value, int) or not low <= value <= high:
            raise FunctionalScoreError(name, value, (low, high))
        items[name] = value
    return items


def calculate_functional_score(
    scores: FunctionalStatusScores | Mapping[str, int | None],
    tables: PaymentTables | None = None,
) -> int:
    """Sum the documented functional items, clamped to [0, cap]."""
    tables = tables or get_tables()
    total = sum(_present_items(scores).values())
    return max(0, min(total, tables.functional_score_cap))


def get_functional_level(score: int, tables: PaymentTables | None = None) -> LevelResult:
    """Band a functional score into Low / Medium / High impairment."""
    tables = tables or get_tables()
    if score >= 0:
        for band in tables.functional_level_bands:
            if score <= band.max_score:
                return LevelResult(code=band.code, name=band.name)
    return tables.high_functional_level


def get_comorbidity_level(secondary_count: int, has_high_risk_dx: bool = False) -> LevelResult:
    """
    Comorbidity tier from the number of secondary diagnoses.

    Simplified from the CMS comorbidity interaction tables: any high-risk
    diagnosis or 4+ secondaries is High.
    """
    if has_high_risk_dx or secondary_count >= 4:
        level = COMORBIDITY_LEVELS["high"]
    elif secondary_count >= 3:
        level = COMORBIDITY_LEVELS["medium"]
    elif secondary_count >= 1:
        level = COMORBIDITY_LEVELS["low"]
    else:
        level = COMORBIDITY_LEVELS["none"]
    return LevelResult(**level)
