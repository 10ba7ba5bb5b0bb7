"""Shared configuration for the PDGM engine.

This module centralizes environment variable access and default values
to prevent drift between modules.
"""

import os

# Medicare home health national standardized 60-day episode payment (2024-2025)
PDGM_BASE_RATE = float(os.getenv("PDGM_BASE_RATE", "2058.16"))

# Optional JSON file extending/overriding the shipped clinical-group and
# case-mix weight tables
PDGM_TABLES_PATH = os.getenv("PDGM_TABLES_PATH")

# Upstream AI extraction
EXTRACTION_MODEL = os.getenv("EXTRACTION_MODEL", "claude-sonnet-4-6")
EXTRACTION_MAX_TOKENS = int(os.getenv("EXTRACTION_MAX_TOKENS", "8000"))
EXTRACTION_TIMEOUT_SECONDS = float(os.getenv("EXTRACTION_TIMEOUT_SECONDS", "120"))
EXTRACTION_REQUESTS_PER_MINUTE = int(os.getenv("EXTRACTION_REQUESTS_PER_MINUTE", "45"))
# Characters of source text sent to the model
EXTRACTION_MAX_SOURCE_CHARS = int(os.getenv("EXTRACTION_MAX_SOURCE_CHARS", "60000"))
EXTRACTION_MAX_ORDER_CHARS = int(os.getenv("EXTRACTION_MAX_ORDER_CHARS", "5000"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
