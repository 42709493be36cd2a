"""Settings for one report invocation.

Settings are plain JSON documents validated with pydantic and converted
into the frozen dataclasses the core operates on. Nothing is read from
the environment; the as-of date and analysis periods are explicit values.
"""

from __future__ import annotations

import json
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field

from customer_lifecycle.analyses.lifecycle import ClassificationConfig
from customer_lifecycle.analyses.qualification import (
    DEFAULT_TOP_CUSTOMERS,
    QualificationRule,
)
from customer_lifecycle.analyses.ranking import DEFAULT_TOP_N
from customer_lifecycle.foundation.calendar import PeriodGranularity
from customer_lifecycle.foundation.events import (
    DEFAULT_EXCLUDED_CATEGORIES,
    DEFAULT_EXCLUDED_CHANNELS,
    ExclusionPolicy,
)

MAX_SETTINGS_BYTES = 1024 * 1024


class ExclusionSettings(BaseModel):
    """Which orders, lines and identities are left out of every report."""

    excluded_channels: list[str] = Field(
        default_factory=lambda: list(DEFAULT_EXCLUDED_CHANNELS),
        description="Channel substrings; one matching line excludes the whole order",
    )
    excluded_categories: list[str] = Field(
        default_factory=lambda: list(DEFAULT_EXCLUDED_CATEGORIES),
        description="Category names excluded at line level",
    )
    excluded_identity_patterns: list[str] = Field(
        default_factory=list,
        description="Identity substrings to drop (internal domains, relay addresses)",
    )
    excluded_identities: list[str] = Field(
        default_factory=list, description="Exact identities to drop"
    )
    drop_invalid_identities: bool = Field(
        default=False, description="Drop identities that are not valid e-mail addresses"
    )
    include_cancelled: bool = Field(default=False, description="Keep cancelled lines")
    include_returns: bool = Field(
        default=True, description="Keep return lines as negative contributions"
    )
    positive_amounts_only: bool = Field(
        default=False, description="Drop lines with a non-positive amount"
    )

    def to_policy(self) -> ExclusionPolicy:
        return ExclusionPolicy(
            excluded_channels=tuple(self.excluded_channels),
            excluded_categories=tuple(self.excluded_categories),
            excluded_identity_patterns=tuple(self.excluded_identity_patterns),
            excluded_identities=frozenset(self.excluded_identities),
            drop_invalid_identities=self.drop_invalid_identities,
            include_cancelled=self.include_cancelled,
            include_returns=self.include_returns,
            positive_amounts_only=self.positive_amounts_only,
        )


class ClassificationSettings(BaseModel):
    """Lifecycle classification parameters."""

    granularity: Literal["week", "month", "year"] = Field(
        default="month", description="Period granularity to classify at"
    )
    retention_window: int = Field(
        default=1, ge=1, description="Periods before the current one that count as recent"
    )
    reactivation_gap: int = Field(
        default=2,
        ge=1,
        description="Minimum inactive periods before a returning customer is Reactivated",
    )
    shared_history: bool = Field(
        default=False,
        description="Track first purchase across all segments instead of per segment",
    )
    segmented: bool = Field(
        default=True, description="Split results by Retail / Direct channel"
    )

    def to_classification_config(self) -> ClassificationConfig:
        return ClassificationConfig(
            granularity=PeriodGranularity(self.granularity),
            retention_window=self.retention_window,
            reactivation_gap=self.reactivation_gap,
            shared_history=self.shared_history,
        )


class QualificationRuleSettings(BaseModel):
    """Thresholds an identity must meet in one period to qualify."""

    period: int = Field(description="Period ordinal (fiscal year by default)")
    min_spend: Decimal | None = Field(default=None, ge=0)
    min_orders: int | None = Field(default=None, ge=0)
    max_orders: int | None = Field(default=None, ge=0)

    def to_rule(self) -> QualificationRule:
        return QualificationRule(
            period=self.period,
            min_spend=self.min_spend,
            min_orders=self.min_orders,
            max_orders=self.max_orders,
        )


class ReportSettings(BaseModel):
    """Everything one report run needs besides the input snapshot."""

    exclusions: ExclusionSettings = Field(default_factory=ExclusionSettings)
    classification: ClassificationSettings = Field(
        default_factory=ClassificationSettings
    )
    qualification_rules: list[QualificationRuleSettings] = Field(
        default_factory=list,
        description="Rules combined with logical AND for the top customers report",
    )
    as_of: date | None = Field(
        default=None, description="Reporting date; the period containing it is excluded"
    )
    window: int | None = Field(
        default=None, ge=1, description="Number of periods before as_of to report on"
    )
    analysis_year: int | None = Field(
        default=None, description="Year analysed by the class tenure report"
    )
    category: str | None = Field(
        default=None, description="Category filter for the class tenure report"
    )
    top_n: int = Field(default=DEFAULT_TOP_N, ge=1, description="Size of the Top N flag")
    limit: int = Field(
        default=DEFAULT_TOP_CUSTOMERS,
        ge=1,
        description="Maximum customers returned by the top customers report",
    )

    @classmethod
    def from_file(cls, path: str | Path) -> "ReportSettings":
        path = Path(path)
        size = path.stat().st_size
        if size > MAX_SETTINGS_BYTES:
            raise ValueError(
                f"Settings file {path} is {size} bytes; exceeds limit of "
                f"{MAX_SETTINGS_BYTES} bytes"
            )
        with path.open("r", encoding="utf-8") as fh:
            payload = json.load(fh)
        return cls(**payload)

    def to_policy(self) -> ExclusionPolicy:
        return self.exclusions.to_policy()

    def to_classification_config(self) -> ClassificationConfig:
        return self.classification.to_classification_config()

    def to_rules(self) -> list[QualificationRule]:
        return [rule.to_rule() for rule in self.qualification_rules]
