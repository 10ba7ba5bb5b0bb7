"""
Injectable payment tables.

The shipped clinical-group and case-mix tables cover only a sample of the
CMS tables. PaymentTables bundles them with the base rate and functional
banding so callers can pass an extended set (e.g. loaded from the full CMS
weight file) without touching code.

JSON override format (every key optional, merged over the defaults):

    {
        "base_rate": 2100.50,
        "clinical_groups": {"K5": {"code": "D", "name": "Complex Nursing - GI"}},
        "case_mix_weights": {"1JC11": 0.8012},
        "functional_score_cap": 38,
        "functional_level_bands": [{"max_score": 23, "code": "1", "name": "Low Impairment"}, ...]
    }
"""

from __future__ import annotations

import json
import logging
from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from pdgm_engine import config
from pdgm_engine.errors import TableConfigurationError
from pdgm_engine.models import ClinicalGroup, LevelResult
from pdgm_engine.pdgm.pdgm_data import (
    CASE_MIX_WEIGHTS,
    CLINICAL_GROUPS,
    DEFAULT_CLINICAL_GROUP,
    FUNCTIONAL_LEVEL_BANDS,
    FUNCTIONAL_SCORE_CAP,
    HIGH_FUNCTIONAL_LEVEL,
    MEDICARE_BASE_RATE_2025,
)

logger = logging.getLogger(__name__)


class FunctionalBand(BaseModel):
    model_config = ConfigDict(frozen=True)

    max_score: int
    code: str
    name: str


class PaymentTables(BaseModel):
    """Read-only lookup data shared by every calculation."""
    model_config = ConfigDict(frozen=True)

    base_rate: float = Field(default=MEDICARE_BASE_RATE_2025, gt=0)
    clinical_groups: dict[str, ClinicalGroup]
    default_clinical_group: ClinicalGroup
    case_mix_weights: dict[str, float]
    functional_score_cap: int = FUNCTIONAL_SCORE_CAP
    functional_level_bands: list[FunctionalBand]
    high_functional_level: LevelResult

    def lookup_clinical_group(self, prefix: str) -> ClinicalGroup | None:
        return self.clinical_groups.get(prefix)

    def lookup_weight(self, hipps_code: str) -> float | None:
        return self.case_mix_weights.get(hipps_code)


def default_tables(base_rate: float | None = None) -> PaymentTables:
    """The tables shipped with the package."""
    return PaymentTables(
        base_rate=base_rate if base_rate is not None else config.PDGM_BASE_RATE,
        clinical_groups=CLINICAL_GROUPS,
        default_clinical_group=DEFAULT_CLINICAL_GROUP,
        case_mix_weights=CASE_MIX_WEIGHTS,
        functional_score_cap=FUNCTIONAL_SCORE_CAP,
        functional_level_bands=FUNCTIONAL_LEVEL_BANDS,
        high_functional_level=HIGH_FUNCTIONAL_LEVEL,
    )


def load_tables(path: str | Path, base: PaymentTables | None = None) -> PaymentTables:
    """
    Merge a JSON override file over the default (or given) tables.

    Dict tables are merged key by key; scalar and list values replace.
    """
    base = base or default_tables()
    path = Path(path)
    try:
        with open(path, encoding="utf-8") as f:
            overrides = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise TableConfigurationError(f"Cannot read payment tables: {e}", {"path": str(path)}) from e

    if not isinstance(overrides, dict):
        raise TableConfigurationError("Payment tables file must hold a JSON object", {"path": str(path)})

    data = base.model_dump()
    for key, value in overrides.items():
        if key not in data:
            logger.warning(f"Ignoring unknown payment table key '{key}' in {path}")
            continue
        if isinstance(data[key], dict) and isinstance(value, dict) and key != "default_clinical_group":
            data[key] = {**data[key], **value}
        else:
            data[key] = value

    try:
        tables = PaymentTables.model_validate(data)
    except ValidationError as e:
        raise TableConfigurationError(f"Invalid payment tables: {e}", {"path": str(path)}) from e

    logger.info(
        f"Loaded payment tables from {path}: {len(tables.clinical_groups)} clinical group prefixes, "
        f"{len(tables.case_mix_weights)} case-mix weights"
    )
    return tables


@lru_cache(maxsize=1)
def get_tables() -> PaymentTables:
    """Process-wide tables: defaults, extended by PDGM_TABLES_PATH when set."""
    if config.PDGM_TABLES_PATH:
        return load_tables(config.PDGM_TABLES_PATH)
    return default_tables()
