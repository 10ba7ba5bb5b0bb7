"""
Clinical group classifier.

Maps the primary ICD-10 diagnosis to one of the 7 PDGM clinical groups
(A-G). The 2-character prefix is tried first, then the first character;
anything unmatched falls into group G "Other". That fallback is policy,
not an error - malformed or empty codes simply land in G.
"""

from pdgm_engine.models import ClinicalGroup
from pdgm_engine.pdgm.tables import PaymentTables, get_tables


def get_clinical_group(icd10: str | None, tables: PaymentTables | None = None) -> ClinicalGroup:
    """Classify an ICD-10 code (e.g. 'I50.9' or 'I509') into its clinical group."""
    tables = tables or get_tables()
    if not icd10:
        return tables.default_clinical_group

    code = icd10.strip().upper()
    return (
        tables.lookup_clinical_group(code[:2])
        or tables.lookup_clinical_group(code[:1])
        or tables.default_clinical_group
    )
