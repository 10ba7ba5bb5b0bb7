"""
PDGM reference data.

In a production system, this would pull from CMS's published HH PPS
case-mix weight file (432 HIPPS codes) and the full PDGM ICD-10 clinical
grouping crosswalk. For this engine we ship a curated sample: the clinical
groups keyed by ICD-10 prefix and the case-mix weights for the most common
early-episode codes. Codes missing from the sample are paid at weight 1.0.

Both tables can be extended without code changes, see pdgm/tables.py.
"""

# Medicare PDGM HIPPS code structure (5 characters):
# Position 1: Admission source (1=Community, 2=Institutional)
# Position 2: Timing (H=Early [1-30 days], J=Late [31-60 days])
# Position 3: Clinical group (A-G from primary diagnosis ICD-10)
# Position 4: Functional impairment level (1=Low 0-23, 2=Medium 24-42, 3=High 43+)
# Position 5: Comorbidity adjustment (1=None, 2=Low, 3=Medium, 4=High)

MEDICARE_BASE_RATE_2025 = 2058.16

DEFAULT_CLINICAL_GROUP = {"code": "G", "name": "Other"}

# Keyed by 1- or 2-character ICD-10 prefix; 2-character keys win
CLINICAL_GROUPS = {
    # MMTA - Musculoskeletal rehabilitation
    "M": {"code": "A", "name": "MMTA - Musculoskeletal Rehab"},
    **{f"S{d}": {"code": "A", "name": "MMTA - Musculoskeletal Rehab"} for d in range(10)},

    # Neuro/Rehab
    "G": {"code": "B", "name": "Neuro/Rehab"},
    "I6": {"code": "B", "name": "Neuro/Rehab"},

    # Wounds
    "L": {"code": "C", "name": "Wounds/Skin"},

    # Complex nursing
    "I2": {"code": "D", "name": "Complex Nursing - CHF"},
    "I5": {"code": "D", "name": "Complex Nursing - Cardiac"},
    "I1": {"code": "D", "name": "Complex Nursing - Cardiac"},
    "J": {"code": "D", "name": "Complex Nursing - Respiratory"},

    # Behavioral health
    "F": {"code": "E", "name": "Behavioral Health"},

    # MMTA - Cardiac/Other
    "Z": {"code": "F", "name": "MMTA - Cardiac/Other"},
}


def _grid(prefix: str, weights: list[float]) -> dict[str, float]:
    """Expand 12 weights into functional level 1-3 x comorbidity 1-4 codes."""
    codes = [f"{prefix}{level}{comorbidity}" for level in (1, 2, 3) for comorbidity in (1, 2, 3, 4)]
    return dict(zip(codes, weights))


# Medicare case-mix weights (2024-2025), sample of common codes
CASE_MIX_WEIGHTS = {
    # Community - Early
    **_grid("1HA", [0.9876, 1.0543, 1.1234, 1.1987, 1.1234, 1.2012, 1.2876, 1.3654,
                    1.2543, 1.3421, 1.4398, 1.5287]),
    **_grid("1HB", [1.0234, 1.0987, 1.1876, 1.2654, 1.1876, 1.2765, 1.3654, 1.4543,
                    1.3543, 1.4521, 1.5598, 1.6587]),
    **_grid("1HC", [1.0543, 1.1321, 1.2198, 1.2987, 1.2198, 1.3087, 1.3976, 1.4865,
                    1.3876, 1.4854, 1.5932, 1.6921]),
    **_grid("1HD", [1.0876, 1.1654, 1.2543, 1.3321, 1.2543, 1.3432, 1.4321, 1.5198,
                    1.4198, 1.5187, 1.6276, 1.7254]),
    **_grid("1HE", [0.9543, 1.0321, 1.1198, 1.1987, 1.1198, 1.2087, 1.2976, 1.3865,
                    1.2876, 1.3854, 1.4932, 1.5921]),
    **_grid("1HG", [0.9876, 1.0543, 1.1234, 1.1987, 1.1234, 1.2012, 1.2876, 1.3654,
                    1.2543, 1.3421, 1.4398, 1.5287]),

    # Institutional - Early
    **_grid("2HA", [1.1876, 1.2654, 1.3543, 1.4321, 1.3543, 1.4432, 1.5321, 1.6198,
                    1.5198, 1.6187, 1.7276, 1.8254]),
    **_grid("2HB", [1.2234, 1.3012, 1.3901, 1.4679, 1.3901, 1.4790, 1.5679, 1.6568,
                    1.5568, 1.6546, 1.7623, 1.8612]),
    **_grid("2HC", [1.2568, 1.3346, 1.4223, 1.5012, 1.4223, 1.5112, 1.6001, 1.6890,
                    1.5901, 1.6879, 1.7957, 1.8946]),
    **_grid("2HD", [1.2901, 1.3679, 1.4568, 1.5346, 1.4568, 1.5457, 1.6346, 1.7223,
                    1.6223, 1.7212, 1.8301, 1.9279]),
    **_grid("2HG", [1.1876, 1.2654, 1.3543, 1.4321, 1.3543, 1.4432, 1.5321, 1.6198,
                    1.5198, 1.6187, 1.7276, 1.8254]),

    # Late timing (J) - generally lower rates
    "1JA11": 0.7876, "1JA21": 0.9234, "1JA31": 1.0543,
    "1JB11": 0.8234, "1JB21": 0.9876, "1JB31": 1.1543,
    "2JA11": 0.9876, "2JA21": 1.1543, "2JA31": 1.3198,
    "2JB11": 1.0234, "2JB21": 1.1901, "2JB31": 1.3568,
}

# Valid score range per OASIS functional item
FUNCTIONAL_ITEM_RANGES = {
    "M1800_Grooming": (0, 3),
    "M1810_DressUpper": (0, 3),
    "M1820_DressLower": (0, 3),
    "M1830_Bathing": (0, 6),
    "M1840_ToiletTransfer": (0, 4),
    "M1845_ToiletingHygiene": (0, 3),
    "M1850_Transferring": (0, 5),
    "M1860_Ambulation": (0, 6),
    "M1870_Feeding": (0, 5),
}

# Equal to the sum of the item maxima above
FUNCTIONAL_SCORE_CAP = 38

# Inclusive upper bound of each band; anything above the last is level 3
FUNCTIONAL_LEVEL_BANDS = [
    {"max_score": 23, "code": "1", "name": "Low Impairment"},
    {"max_score": 42, "code": "2", "name": "Medium Impairment"},
]
HIGH_FUNCTIONAL_LEVEL = {"code": "3", "name": "High Impairment"}

COMORBIDITY_LEVELS = {
    "none": {"code": "1", "name": "No Comorbidity Adjustment"},
    "low": {"code": "2", "name": "Low Comorbidity"},
    "medium": {"code": "3", "name": "Medium Comorbidity"},
    "high": {"code": "4", "name": "High Comorbidity"},
}
