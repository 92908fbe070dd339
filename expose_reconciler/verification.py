"""
Verification report intake.

The verification pass is an LLM answering in prose that *should* contain a
JSON object, sometimes fenced in a markdown code block. Whatever arrives is
either turned into a VerificationReport or treated as "no corrections
available". A bad report never aborts reconciliation.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from .exceptions import VerificationParseError
from .models import VerificationReport

logger = logging.getLogger(__name__)

_FENCED_JSON = re.compile(r"```(?:json)?\s*(\{[\s\S]*\})\s*```")
_BARE_JSON = re.compile(r"(\{[\s\S]*\})")


def load_verification_report(raw: Any) -> VerificationReport:
    """Strictly parse a verification report.

    Accepts a VerificationReport, a mapping, or model text (optionally
    wrapped in a ```json fence).

    Raises:
        VerificationParseError: If the input is not a structured report.
    """
    if isinstance(raw, VerificationReport):
        return raw

    if isinstance(raw, (str, bytes)):
        raw = _decode_text(raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw)

    if not isinstance(raw, Mapping):
        raise VerificationParseError(
            f"Verification report must be an object, got {type(raw).__name__}",
            {"type": type(raw).__name__},
        )

    if "error" in raw and "verification_summary" not in raw and "field_verifications" not in raw:
        raise VerificationParseError(
            f"Verification pass reported an error: {raw['error']}", {"error": str(raw["error"])}
        )

    try:
        return VerificationReport.model_validate(dict(raw))
    except ValidationError as e:
        raise VerificationParseError(
            "Verification report does not match the expected structure",
            {"errors": e.errors(include_url=False, include_context=False, include_input=False)},
        ) from e


def parse_verification_report(raw: Any) -> VerificationReport | None:
    """Lenient variant: None when the report is absent or unusable."""
    if raw is None:
        return None
    try:
        return load_verification_report(raw)
    except VerificationParseError as e:
        logger.warning("Failed to parse verification result: %s", e)
        return None


def _decode_text(text: str) -> Any:
    match = _FENCED_JSON.search(text) or _BARE_JSON.search(text)
    candidate = match.group(1) if match else text
    try:
        return json.loads(candidate)
    except json.JSONDecodeError as e:
        raise VerificationParseError(
            f"Verification text is not valid JSON: {e.msg}", {"position": e.pos}
        ) from e
