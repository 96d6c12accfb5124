"""Pydantic schemas for scorecard configurations.

Configurations arrive as JSON blobs from the configuration editor. They are
loaded once into these closed, frozen models so that unknown shapes are
rejected before any scoring happens. The camelCase keys used by the editor
(``bucketMapping``, ``isActive`` ...) are accepted alongside snake_case.
"""

from __future__ import annotations

import enum
import re
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, field_validator, model_validator
from pydantic.alias_generators import to_camel

from scoreforge.config import settings
from scoreforge.services.decision_engine.conditions import ConditionSyntaxError, compile_condition

_MODEL_CONFIG = ConfigDict(
    alias_generator=to_camel,
    populate_by_name=True,
    extra="forbid",
    frozen=True,
)

_CATCH_ALL_LABELS = ("*", "other", "others", "default", "else", "any", "all others", "missing/default")
_NUMBER = r"-?\d+(?:\.\d+)?"


# ── Enums ──────────────────────────────────────────────────────────

class VariableType(str, enum.Enum):
    CONTINUOUS = "continuous"    # numeric, scored by bands or linear normalisation
    CATEGORICAL = "categorical"  # text, scored by bands only


class Decision(str, enum.Enum):
    APPROVE = "approve"
    REVIEW = "review"
    DECLINE = "decline"


class RuleAction(str, enum.Enum):
    ADJUST = "adjust"    # add points only
    APPROVE = "approve"  # hard approve
    DECLINE = "decline"  # hard decline
    REVIEW = "review"    # flag for manual review


_ACTION_SYNONYMS = {
    "auto_approve": "approve",
    "auto_decline": "decline",
    "manual_review": "review",
    "refer": "review",
    "points": "adjust",
}


# ── Variables ──────────────────────────────────────────────────────

def parse_range_label(text: str) -> dict[str, Any]:
    """Infer band bounds from a range label such as ``"550-649"`` or ``"750+"``.

    Integer ranges are inclusive on both ends, so ``"550-649"`` becomes
    ``min=550, max=650`` with the usual exclusive upper bound.
    """
    label = text.strip()
    lowered = label.lower()
    compact = label.replace(",", "").replace(" ", "")

    if lowered in _CATCH_ALL_LABELS:
        return {}

    m = re.fullmatch(rf"({_NUMBER})[-–]({_NUMBER})", compact)
    if m:
        low, high = m.group(1), m.group(2)
        max_v = float(high) + 1 if "." not in low + high else float(high)
        return {"min": float(low), "max": max_v}

    m = re.fullmatch(rf"<({_NUMBER})", compact)
    if m:
        return {"max": float(m.group(1))}

    m = re.fullmatch(rf"(?:>=({_NUMBER})|({_NUMBER})\+)", compact)
    if m:
        return {"min": float(m.group(1) or m.group(2))}

    return {"values": [label]}


class VariableBand(BaseModel):
    """One row of a variable's lookup table.

    Numeric bands match ``min <= value < max`` (either bound open), categorical
    bands match any of ``values``; a band with neither is a catch-all.
    """
    model_config = _MODEL_CONFIG

    label: Optional[str] = None
    range: Optional[str] = None
    min: Optional[float] = None
    max: Optional[float] = None
    values: Optional[list[str]] = None
    score: float

    @model_validator(mode="before")
    @classmethod
    def _expand_range(cls, data: Any) -> Any:
        if not isinstance(data, dict) or not isinstance(data.get("range"), str):
            return data
        bounds = parse_range_label(data["range"])
        expanded = dict(data)
        for key, value in bounds.items():
            expanded.setdefault(key, value)
        expanded.setdefault("label", data["range"])
        return expanded

    @property
    def is_catch_all(self) -> bool:
        return self.min is None and self.max is None and not self.values

    @property
    def is_categorical(self) -> bool:
        return bool(self.values)

    @property
    def display_label(self) -> str:
        if self.label:
            return self.label
        if self.values:
            return "/".join(self.values)
        if self.is_catch_all:
            return "Other"
        if self.min is None:
            return f"< {self.max:g}"
        if self.max is None:
            return f"{self.min:g}+"
        return f"{self.min:g} to < {self.max:g}"


class VariableConfig(BaseModel):
    model_config = _MODEL_CONFIG

    name: str = Field(min_length=1)
    weight: float
    type: VariableType = VariableType.CONTINUOUS
    bands: Optional[list[VariableBand]] = None
    min_value: float = 0
    max_value: float = 100
    higher_is_better: bool = True
    aliases: list[str] = Field(default_factory=list)
    description: Optional[str] = None

    @property
    def uses_bands(self) -> bool:
        return bool(self.bands)


class CategoryConfig(BaseModel):
    model_config = _MODEL_CONFIG

    weight: float
    variables: list[VariableConfig] = Field(default_factory=list)
    is_active: bool = True
    description: Optional[str] = None


# ── Buckets & rules ────────────────────────────────────────────────

class BandConfig(BaseModel):
    """A grade's score range, e.g. ``A: 85-100``."""
    model_config = _MODEL_CONFIG

    min: float
    max: float
    description: str = ""
    approval_rate: Optional[float] = None
    default_rate: Optional[float] = None
    decision: Optional[Decision] = None


class Rule(BaseModel):
    model_config = _MODEL_CONFIG

    id: str
    condition: str
    points: int = 0
    is_active: bool = True
    priority: int = 100
    action: RuleAction = RuleAction.ADJUST
    description: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        return str(value) if isinstance(value, (int, float)) else value

    @field_validator("action", mode="before")
    @classmethod
    def _normalize_action(cls, value: Any) -> Any:
        if isinstance(value, str):
            key = value.strip().lower()
            return _ACTION_SYNONYMS.get(key, key)
        return value

    @property
    def reason(self) -> str:
        return self.description or f"Rule {self.id}: {self.condition}"


# ── Scorecard ──────────────────────────────────────────────────────

class ScorecardConfiguration(BaseModel):
    """A finished scorecard. Read-only for the whole of every evaluation."""
    model_config = _MODEL_CONFIG

    name: str = "Scorecard"
    version: str = "1"
    max_score: float = Field(default=100, gt=0)
    band_increment: Optional[float] = Field(default=None, gt=0)
    categories: dict[str, CategoryConfig]
    bucket_mapping: dict[str, BandConfig]
    rules: list[Rule] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)

    # Parsed rule conditions, aligned with ``rules``; exceptions mark bad syntax.
    _compiled_rules: list[Any] = PrivateAttr(default_factory=list)
    # ValidationResult cache, filled by ``ensure_valid``.
    _validation: Any = PrivateAttr(default=None)

    @model_validator(mode="before")
    @classmethod
    def _assign_rule_ids(cls, data: Any) -> Any:
        if not isinstance(data, dict) or not isinstance(data.get("rules"), list):
            return data
        rules = []
        for i, rule in enumerate(data["rules"]):
            if isinstance(rule, dict) and rule.get("id") in (None, ""):
                rule = {**rule, "id": f"R{i + 1:02d}"}
            rules.append(rule)
        return {**data, "rules": rules}

    @field_validator("version", mode="before")
    @classmethod
    def _coerce_version(cls, value: Any) -> Any:
        return str(value) if isinstance(value, (int, float)) else value

    def model_post_init(self, __context: Any) -> None:
        compiled: list[Any] = []
        for rule in self.rules:
            try:
                compiled.append(compile_condition(rule.condition))
            except ConditionSyntaxError as exc:
                compiled.append(exc)
        self._compiled_rules = compiled

    @property
    def compiled_rules(self) -> list[Any]:
        return self._compiled_rules

    @property
    def increment(self) -> float:
        return self.band_increment or settings.default_band_increment

    @property
    def active_categories(self) -> list[tuple[str, CategoryConfig]]:
        return [(name, cat) for name, cat in self.categories.items() if cat.is_active]

    @property
    def target_approval_rate(self) -> float | None:
        for key in ("target_approval_rate", "targetApprovalRate"):
            value = self.metadata.get(key)
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                try:
                    return float(value)
                except OverflowError:
                    return None
        return None


def load_configuration(data: Any) -> ScorecardConfiguration:
    """Build a configuration from a dict, JSON text, or an existing instance.

    Raises pydantic.ValidationError for shapes the engine does not understand.
    """
    if isinstance(data, ScorecardConfiguration):
        return data
    if isinstance(data, (str, bytes)):
        return ScorecardConfiguration.model_validate_json(data)
    return ScorecardConfiguration.model_validate(data)
