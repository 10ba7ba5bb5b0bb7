"""
OASIS extraction client - uses Claude to read an OASIS document into an
OasisAnalysisResult.

This is the one slow, fallible dependency of the engine. Design decisions:
- Temperature 0 for reproducibility
- Hard request timeout; the SDK's own retries are disabled, retry policy
  belongs to whoever schedules the document
- Every failure (network, timeout, refusal, unparseable JSON) surfaces as
  ExtractionError so callers can report "extraction failed" for that
  document and move on
- Output is untrusted: callers must run it through the extraction
  validator before use
"""

import json
import logging
import re

import anthropic
from pydantic import ValidationError

from pdgm_engine import config
from pdgm_engine.errors import ExtractionError
from pdgm_engine.extraction.prompts import DOCTOR_ORDER_SECTION, EXTRACTION_PROMPT, SYSTEM_PROMPT
from pdgm_engine.models import OasisAnalysisResult
from pdgm_engine.rate_limiter import wait_for_rate_limit

logger = logging.getLogger(__name__)


def parse_analysis_response(response_text: str) -> dict:
    """
    Extract the JSON object from a model response.

    Handles markdown code fences and chatter around the object, and retries
    once after stripping trailing commas, which models emit often enough to
    matter.
    """
    text = response_text.strip()
    text = re.sub(r"```(?:json)?\s*", "", text)

    start = text.find("{")
    end = text.rfind("}") + 1
    if start == -1 or end == 0:
        raise ExtractionError("No JSON object found in AI response", {"preview": text[:200]})
    text = text[start:end]

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        logger.warning(f"Failed to parse extraction response ({e}), retrying after cleanup")
        cleaned = re.sub(r",\s*([}\]])", r"\1", text)
        cleaned = cleaned.replace("\r", "").replace("\n", " ")
        try:
            data = json.loads(cleaned)
        except json.JSONDecodeError as e2:
            raise ExtractionError(f"AI response is not valid JSON: {e2}", {"preview": text[:200]}) from e2

    if not isinstance(data, dict):
        raise ExtractionError("AI response JSON is not an object")
    return data


def extract_oasis_analysis(
    source_text: str,
    doctor_order_text: str | None = None,
    client: anthropic.Anthropic | None = None,
    model: str | None = None,
    timeout: float | None = None,
) -> OasisAnalysisResult:
    """
    Run the AI extraction over one document's text.

    Args:
        source_text: OCR/plain text of the OASIS document
        doctor_order_text: optional physician order text to check the assessment against
        client: Anthropic client (built from ANTHROPIC_API_KEY if omitted)
        model: Claude model ID, defaults to EXTRACTION_MODEL
        timeout: request timeout in seconds, defaults to EXTRACTION_TIMEOUT_SECONDS

    Returns:
        The raw (unvalidated) OasisAnalysisResult

    Raises:
        ExtractionError on any failure of the call or its output
    """
    if client is None:
        client = anthropic.Anthropic(
            timeout=timeout or config.EXTRACTION_TIMEOUT_SECONDS,
            max_retries=0,
        )
    model = model or config.EXTRACTION_MODEL

    doctor_order = ""
    if doctor_order_text and doctor_order_text.strip():
        doctor_order = DOCTOR_ORDER_SECTION.format(
            doctor_order_text=doctor_order_text[:config.EXTRACTION_MAX_ORDER_CHARS],
        )
    prompt = EXTRACTION_PROMPT.format(
        source_text=source_text[:config.EXTRACTION_MAX_SOURCE_CHARS],
        doctor_order=doctor_order,
    )

    wait_for_rate_limit()
    try:
        response = client.messages.create(
            model=model,
            max_tokens=config.EXTRACTION_MAX_TOKENS,
            temperature=0.0,
            system=SYSTEM_PROMPT,
            messages=[{"role": "user", "content": prompt}],
        )
    except anthropic.APITimeoutError as e:
        raise ExtractionError("Extraction call timed out", {"model": model}) from e
    except anthropic.APIError as e:
        raise ExtractionError(f"Extraction call failed: {e}", {"model": model}) from e

    if not response.content:
        raise ExtractionError("Empty response content from extraction call", {"model": model})

    response_text = response.content[0].text
    logger.info(f"Extraction response received ({len(response_text)} chars)")

    data = parse_analysis_response(response_text)
    try:
        return OasisAnalysisResult.model_validate(data)
    except ValidationError as e:
        raise ExtractionError(f"AI response does not match the analysis schema: {e}") from e
