"""Variable resolution — finds a scorecard variable's value in an input record.

Records come from API payloads and parsed CSV rows, so field names drift:
``monthly_income`` may arrive as ``monthlyIncome``, ``Monthly Income`` or
``salary``. Resolution never raises; a field that cannot be found or used
resolves to the ``NOT_FOUND`` sentinel.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Iterable, Mapping

from pydantic.alias_generators import to_camel, to_snake

from scoreforge.schemas import VariableConfig, VariableType

logger = logging.getLogger(__name__)


class _NotFound:
    """Sentinel for a variable with no usable value in the record."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "NOT_FOUND"

    def __reduce__(self):
        return (_NotFound, ())


NOT_FOUND = _NotFound()


# Groups of field names that mean the same thing across data sources.
SYNONYM_GROUPS: tuple[tuple[str, ...], ...] = (
    ("credit_score", "score", "bureau_score", "cibil_score", "fico_score", "credit_rating"),
    ("monthly_income", "income", "salary", "salary_amount", "monthly_salary", "net_monthly_income"),
    ("annual_income", "yearly_income", "gross_annual_income"),
    ("debt_to_income", "dti", "dti_ratio", "debt_to_income_ratio", "debt_ratio"),
    ("loan_amount", "loan_amount_requested", "amount_requested", "requested_amount"),
    ("existing_debt", "outstanding_debt", "total_debt"),
    ("years_employed", "employment_years", "employment_tenure"),
    ("employment_type", "employment_status"),
    ("age", "applicant_age"),
)


def _squash(name: str) -> str:
    """Lower-case and drop separators: ``Monthly_Income`` → ``monthlyincome``."""
    return re.sub(r"[^0-9a-z]", "", name.lower())


_SYNONYM_INDEX: dict[str, tuple[str, ...]] = {
    _squash(member): group for group in SYNONYM_GROUPS for member in group
}


@dataclass
class Resolution:
    """Outcome of resolving one variable against one record."""
    variable: str
    key: str | None      # record field that supplied the value
    raw: Any             # value as it appeared in the record
    value: Any           # coerced value or NOT_FOUND
    status: str          # "found" | "missing" | "invalid"


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _direct_candidates(name: str) -> list[str]:
    seen: list[str] = []
    for candidate in (name, to_snake(name), to_camel(name), name.lower()):
        if candidate not in seen:
            seen.append(candidate)
    return seen


def lookup(record: Mapping[str, Any], name: str, aliases: Iterable[str] = ()) -> tuple[str | None, Any]:
    """Find the raw value for ``name`` in ``record``.

    Tries, in order: the exact name and its aliases, snake/camel variants,
    a separator- and case-insensitive match, then the synonym table.
    Returns ``(matched_key, raw_value)`` or ``(None, NOT_FOUND)``.
    """
    names = [name, *aliases]

    for candidate in names:
        for key in _direct_candidates(candidate):
            if key in record and not _is_blank(record[key]):
                return key, record[key]

    squashed_index: dict[str, str] = {}
    for key in record:
        if isinstance(key, str):
            squashed_index.setdefault(_squash(key), key)

    for candidate in names:
        key = squashed_index.get(_squash(candidate))
        if key is not None and not _is_blank(record[key]):
            return key, record[key]

    for candidate in names:
        for synonym in _SYNONYM_INDEX.get(_squash(candidate), ()):
            key = squashed_index.get(_squash(synonym))
            if key is not None and not _is_blank(record[key]):
                logger.debug("Resolved '%s' through synonym field '%s'", name, key)
                return key, record[key]

    return None, NOT_FOUND


def coerce(raw: Any, var_type: VariableType | str) -> Any:
    """Convert a raw record value to the variable's type, or NOT_FOUND."""
    if raw is NOT_FOUND or _is_blank(raw):
        return NOT_FOUND

    if VariableType(var_type) == VariableType.CATEGORICAL:
        if isinstance(raw, float) and raw.is_integer():
            return str(int(raw))
        return str(raw).strip()

    if isinstance(raw, bool):
        return NOT_FOUND
    if isinstance(raw, (int, float, Decimal)):
        try:
            number = float(raw)
        except (OverflowError, ValueError):
            return NOT_FOUND
    elif isinstance(raw, str):
        try:
            number = float(raw.strip().replace(",", ""))
        except ValueError:
            return NOT_FOUND
    else:
        return NOT_FOUND
    if math.isnan(number) or math.isinf(number):
        return NOT_FOUND
    return number


def resolve_variable(record: Mapping[str, Any], variable: VariableConfig) -> Resolution:
    """Resolve and coerce a variable, keeping enough detail for explanations."""
    key, raw = lookup(record, variable.name, variable.aliases)
    if key is None:
        return Resolution(variable.name, None, None, NOT_FOUND, "missing")
    value = coerce(raw, variable.type)
    if value is NOT_FOUND:
        return Resolution(variable.name, key, raw, NOT_FOUND, "invalid")
    return Resolution(variable.name, key, raw, value, "found")


def resolve(record: Mapping[str, Any], variable: VariableConfig) -> Any:
    """Return the variable's coerced value, or NOT_FOUND."""
    return resolve_variable(record, variable).value


def field_value(record: Mapping[str, Any], name: str) -> Any:
    """Raw value for a rule condition's field reference; None when absent."""
    key, raw = lookup(record, name)
    return None if key is None else raw
