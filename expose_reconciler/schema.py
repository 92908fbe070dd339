"""
Schema shape validation and number sanitization.

A lightweight structural check: required sections exist and hold plausible
primitive types. It is not a JSON-Schema validator. Only a missing identity
section (or an unrecognizable record) is an error; every other gap is a
warning.
"""

from __future__ import annotations

import copy
import re
from collections.abc import Mapping
from datetime import date
from typing import Any

from .exceptions import RecordShapeError
from .models import PropertyType, SchemaValidation
from .values import is_number

VALID_USAGE_KEYS: frozenset[str] = frozenset({
    "office_sqm", "retail_sqm", "gastronomy_sqm", "residential_sqm", "parking_sqm", "other_sqm",
})

_LEADING_FLOAT = re.compile(r"^\s*[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")
_LEADING_INT = re.compile(r"^\s*[+-]?\d+")


# ─── Shape Tag ───────────────────────────────────────────────────────


def infer_property_type(record: Any) -> PropertyType:
    """Shape tag for a record that arrived without one.

    Raises:
        RecordShapeError: If the record is neither an object nor an array.
    """
    if isinstance(record, list):
        return PropertyType.PORTFOLIO
    if isinstance(record, Mapping):
        return PropertyType.SINGLE
    raise RecordShapeError(
        "Data must be an object (single property) or array (portfolio)",
        {"record_type": type(record).__name__},
    )


# ─── Validation ──────────────────────────────────────────────────────


def validate_schema(record: Any, *, current_year: int | None = None) -> SchemaValidation:
    """Check structure and primitive types of an extracted record."""
    if current_year is None:
        current_year = date.today().year

    if isinstance(record, list):
        return _validate_portfolio(record, current_year)
    if isinstance(record, Mapping):
        return _validate_single(record, current_year)
    return SchemaValidation(
        valid=False,
        errors=["Data must be an object (single property) or array (portfolio)"],
    )


def _validate_single(prop: Mapping, current_year: int) -> SchemaValidation:
    errors: list[str] = []
    warnings: list[str] = []

    identity = prop.get("property_identity")
    if not isinstance(identity, Mapping):
        errors.append("Missing property_identity section")
    else:
        if not identity.get("city"):
            warnings.append("Missing city in property_identity")
        if not identity.get("postal_code"):
            warnings.append("Missing postal_code in property_identity")
        if not identity.get("streets"):
            warnings.append("Missing or empty streets array in property_identity")

    metrics = prop.get("property_metrics")
    if not isinstance(metrics, Mapping):
        warnings.append("Missing property_metrics section")
    else:
        if not is_number(metrics.get("total_usable_area_sqm")):
            warnings.append("total_usable_area_sqm should be a number")
        breakdown = metrics.get("breakdown_by_use")
        if isinstance(breakdown, Mapping):
            for key in breakdown:
                if key not in VALID_USAGE_KEYS:
                    warnings.append(f"Unknown usage type in breakdown: {key}")

    financial = prop.get("financial")
    if not isinstance(financial, Mapping):
        warnings.append("Missing financial section")
    elif not is_number(financial.get("total_rental_income_annual_eur")):
        warnings.append("total_rental_income_annual_eur should be a number")

    usage = prop.get("usage_details")
    if isinstance(usage, Mapping):
        occupancy = usage.get("overall_occupancy_percent")
        if is_number(occupancy) and not 0 <= occupancy <= 100:
            warnings.append(f"Invalid occupancy rate: {occupancy}% (should be 0-100)")

    project = prop.get("project_details")
    if isinstance(project, Mapping):
        year = project.get("original_year_built")
        if is_number(year) and not 1800 <= year <= current_year + 10:
            warnings.append(f"Unlikely year_built value: {year}")

    return SchemaValidation(valid=not errors, errors=errors, warnings=warnings)


def _validate_portfolio(portfolio: list, current_year: int) -> SchemaValidation:
    warnings: list[str] = []

    if not portfolio:
        warnings.append("Portfolio array is empty")

    for index, prop in enumerate(portfolio):
        if not isinstance(prop, Mapping):
            warnings.append(f"Property at index {index} is not an object")
            continue

        for required in ("name_id", "city", "postal_code", "street"):
            if not prop.get(required):
                warnings.append(f"Property at index {index} missing {required}")

        label = prop.get("name_id") or index

        income = prop.get("rental_income_annual_eur")
        if income is not None and not is_number(income):
            warnings.append(f'Property "{label}" has invalid rental_income_annual_eur')

        occupancy = prop.get("occupancy_rate_percent")
        if is_number(occupancy) and not 0 <= occupancy <= 100:
            warnings.append(f'Property "{label}" has invalid occupancy: {occupancy}%')

        year = prop.get("year_built")
        if is_number(year) and not 1800 <= year <= current_year + 10:
            warnings.append(f'Property "{label}" has unlikely year_built: {year}')

    return SchemaValidation(valid=True, warnings=warnings)


# ─── Sanitization ────────────────────────────────────────────────────


def sanitize_number(value: Any) -> float | int | None:
    """Normalize a number that may be written in German format.

    "1.234,56" → 1234.56, "450 m²" → 450.0. Numbers pass through unchanged;
    anything unparseable becomes None.
    """
    if is_number(value):
        return value
    if isinstance(value, str):
        german = value.replace(".", "").replace(",", ".", 1)
        match = _LEADING_FLOAT.match(german)
        return float(match.group(0)) if match else None
    return None


def _sanitize_year(value: Any) -> int | None:
    if is_number(value):
        return int(value)
    if isinstance(value, str):
        match = _LEADING_INT.match(value)
        return int(match.group(0)) if match else None
    return None


def sanitize_record(record: Any) -> Any:
    """Return a copy of the record with its numeric fields normalized.

    Used by ``ReconciliationPipeline.run(..., sanitize=True)``; also usable
    on its own before comparing two raw extractions.
    """
    if isinstance(record, list):
        return [_sanitize_portfolio_entry(p) if isinstance(p, Mapping) else p for p in record]
    if isinstance(record, Mapping):
        return _sanitize_single(record)
    return copy.deepcopy(record)


def _sanitize_portfolio_entry(prop: Mapping) -> dict:
    sanitized = copy.deepcopy(dict(prop))

    for field in ("land_area_sqm", "usable_area_sqm", "rental_income_annual_eur", "occupancy_rate_percent"):
        if field in sanitized:
            sanitized[field] = sanitize_number(sanitized[field])

    if sanitized.get("year_built") is not None:
        sanitized["year_built"] = _sanitize_year(sanitized["year_built"])

    return sanitized


def _sanitize_single(prop: Mapping) -> dict:
    sanitized = copy.deepcopy(dict(prop))

    for section, fields in (
        ("property_metrics", ("land_area_sqm", "total_usable_area_sqm")),
        ("financial", ("total_rental_income_annual_eur", "potential_rental_income_annual_eur")),
    ):
        data = sanitized.get(section)
        if not isinstance(data, dict):
            continue
        for field in fields:
            if field in data:
                data[field] = sanitize_number(data[field])
        breakdown = data.get("breakdown_by_use")
        if isinstance(breakdown, dict):
            for key in breakdown:
                breakdown[key] = sanitize_number(breakdown[key])

    return sanitized
