"""
Domain exceptions for the PDGM engine.

Exception hierarchy:
    PDGMEngineError (base)
    ├── FunctionalScoreError       → OASIS item unknown or outside its range
    ├── ZeroBaselineRevenueError   → percent increase over a zero baseline
    ├── ExtractionError            → upstream AI extraction failed
    └── TableConfigurationError    → malformed payment-tables file

Policy fallbacks (unknown ICD-10 prefix → group G, unknown HIPPS code →
weight 1.0) and data-quality gaps are not errors and never raise.
"""


class PDGMEngineError(Exception):
    """Base class for all engine errors, with optional debugging context."""

    def __init__(self, message: str, context: dict | None = None):
        self.message = message
        self.context = context or {}
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} [{context_str}]"
        return self.message


class FunctionalScoreError(PDGMEngineError, ValueError):
    """A functional-status item is unknown or outside its valid range."""

    def __init__(self, item: str, value, valid_range: tuple[int, int] | None = None):
        self.item = item
        self.value = value
        self.valid_range = valid_range
        if valid_range is None:
            message = f"Unknown functional status item '{item}'"
        else:
            message = (
                f"Functional status item '{item}' = {value!r} is outside "
                f"{valid_range[0]}-{valid_range[1]}"
            )
        super().__init__(message, {"item": item})


class ZeroBaselineRevenueError(PDGMEngineError, ZeroDivisionError):
    """Percent increase requested against a current revenue of zero."""


class ExtractionError(PDGMEngineError):
    """The AI extraction call failed, timed out, or returned unusable output."""


class TableConfigurationError(PDGMEngineError):
    """A payment-tables override file could not be loaded."""
