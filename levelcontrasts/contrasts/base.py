# File: levelcontrasts/contrasts/base.py
# Location: levelcontrasts/levelcontrasts/contrasts/base.py
"""
Core abstractions for the pairwise contrast engine.

Defines the immutable record types passed between the engine components
(ContrastRecord, CorrectedContrast, EffectScale, BaselineEstimate), the
fitting service contract (FitOptions, FitResult, ModelFamily) and the
ContrastConfig dataclass holding runtime settings.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Hashable
from dataclasses import dataclass, field, fields
from typing import Any

import pandas as pd

logger = logging.getLogger("levelcontrasts")

# Columns of FitResult.coefficients, in order.
COEFFICIENT_COLUMNS = ["response", "term", "estimate", "stderr", "statistic", "pvalue"]


@dataclass(frozen=True)
class ContrastRecord:
    """
    Effect of level ``other`` relative to level ``base`` on the model's native scale.

    Fields
    ------
    other : Hashable
        Level whose effect is estimated.
    base : Hashable
        Reference level of the refit that produced this record.
    estimate : float
        Coefficient on the native (log or log2 log-ratio) scale.
    stderr : float
        Standard error of ``estimate``.
    statistic : float
        Test statistic reported by the fitting service.
    pvalue : float
        Raw (uncorrected) p-value.
    response : str | None
        Response the coefficient belongs to. Single-response families use the
        outcome name; the compositional family uses the feature name.
    """

    other: Hashable
    base: Hashable
    estimate: float
    stderr: float
    statistic: float
    pvalue: float
    response: str | None = None

    def __post_init__(self) -> None:
        if self.other == self.base:
            raise ValueError(f"Contrast of level '{self.other}' against itself")

    @property
    def pair(self) -> frozenset:
        """Unordered {base, other} pair."""
        return frozenset((self.base, self.other))

    @property
    def label(self) -> str:
        return f"{self.other}_vs_{self.base}"

    def inverted(self) -> ContrastRecord:
        """Return the algebraic inverse: base and other swapped, log-scale estimate negated."""
        return ContrastRecord(
            other=self.base,
            base=self.other,
            estimate=-self.estimate,
            stderr=self.stderr,
            statistic=-self.statistic,
            pvalue=self.pvalue,
            response=self.response,
        )


@dataclass(frozen=True)
class EffectScale:
    """Effect estimate and 95% interval on the scale reported to users."""

    fold_change: float
    lower: float
    upper: float
    is_log2: bool = False

    @property
    def scale_name(self) -> str:
        return "log2_fold_change" if self.is_log2 else "fold_change"


@dataclass(frozen=True)
class CorrectedContrast:
    """
    A ContrastRecord after multiple testing correction.

    ``effect`` is None until the Scale Transformer has been applied; the engine
    builds a new CorrectedContrast with the effect filled in rather than
    mutating this one.
    """

    record: ContrastRecord
    adjusted_pvalue: float
    significant: bool
    effect: EffectScale | None = None

    @property
    def pair_label(self) -> str:
        return self.record.label


@dataclass(frozen=True)
class BaselineEstimate:
    """Model intercept with ``base`` as the reference level."""

    base: Hashable
    estimate: float
    stderr: float
    derived: EffectScale
    response: str | None = None


@dataclass(frozen=True)
class FitOptions:
    """
    Options forwarded to a ModelFamily on every fit.

    Fields
    ------
    prevalence_filter : float
        Minimum fraction of samples in which a feature must be non-zero to be
        modelled (compositional family). 0.0 keeps every feature.
    winsorize : bool
        Winsorize each transformed feature before fitting (compositional family).
    outlier_pct : float
        Fraction clipped in each tail when ``winsorize`` is set.
    offset_column : str | None
        Exposure column; ``log(offset_column)`` enters the count model as offset.
    feature_columns : tuple of str
        Count columns forming the composition (compositional family).
    pseudocount : float | None
        Value substituted for zero proportions before the log transform.
        None means half of the smallest non-zero proportion.
    """

    prevalence_filter: float = 0.0
    winsorize: bool = False
    outlier_pct: float = 0.01
    offset_column: str | None = None
    feature_columns: tuple[str, ...] = ()
    pseudocount: float | None = None


@dataclass(frozen=True)
class FitResult:
    """
    Output of one fitting service call.

    ``coefficients`` has the columns in COEFFICIENT_COLUMNS, one row per
    (response, term). ``term_levels`` maps a term name to the (column, level)
    it encodes, so callers never parse term names.
    """

    family: str
    coefficients: pd.DataFrame
    term_levels: dict[str, tuple[str, Hashable]]
    intercept_term: str | None = "Intercept"
    n_obs: int = 0


class ModelFamily(ABC):
    """
    Abstract base class for fitting services.

    A family turns (formula, data, options) into a FitResult and never keeps
    state between calls: every fit receives its own releveled dataset view.

    Methods
    -------
    name : str (property)
        Registry identifier (e.g. "count_log").
    link_scale : str (property)
        "log" or "log2"; selects the Scale Transformer rule.
    fit(formula, data, options) -> FitResult
        Fit the model. Raises FitError on any failure.
    check_dependencies() -> None
        Raise ImportError if required optional libraries are missing.
    """

    parallel_safe: bool = True

    @property
    @abstractmethod
    def name(self) -> str:
        """Short lowercase identifier for this family."""
        ...

    @property
    @abstractmethod
    def link_scale(self) -> str:
        """Native effect scale of the coefficients ("log" or "log2")."""
        ...

    @abstractmethod
    def fit(self, formula: str, data: pd.DataFrame, options: FitOptions) -> FitResult:
        """
        Fit ``formula`` on ``data``.

        Raises
        ------
        FitError
            On non-convergence, rank problems or formula/data errors.
        """
        ...

    def check_dependencies(self) -> None:  # noqa: B027
        """
        Verify that required optional dependencies are available.

        Raises
        ------
        ImportError
            If a required library is not installed. Called eagerly at engine
            construction so users get a clear error before fitting begins.
        """


@dataclass
class ContrastConfig:
    """
    Configuration for the contrast engine.

    Fields
    ------
    family : str
        Registry name of the model family. Default: "count_log".
    correction_method : str
        "fdr" (Benjamini-Hochberg) or "bonferroni". Default: "fdr".
    alpha : float
        Significance threshold on adjusted p-values. Default: 0.05.
    correction_scope : str
        "all" (default) pools every response of the Level Set into one family;
        "response" corrects each response's non-redundant set separately.
    """

    family: str = "count_log"
    correction_method: str = "fdr"
    alpha: float = 0.05
    correction_scope: str = "all"

    prevalence_filter: float = 0.0
    """Minimum non-zero fraction per feature (compositional family)."""

    winsorize: bool = False
    """Winsorize transformed features before fitting (compositional family)."""

    outlier_pct: float = 0.01
    """Tail fraction clipped when winsorizing."""

    offset_column: str | None = None
    """Exposure column for the count model offset. None = no offset."""

    feature_columns: list[str] = field(default_factory=list)
    """Count columns of the composition (compositional family)."""

    pseudocount: float | None = None
    """Zero replacement before the log transform. None = half the smallest non-zero proportion."""

    workers: int = 1
    """Parallel refits. 1 = sequential, -1 = os.cpu_count()."""

    executor: str = "thread"
    """"thread" (ThreadPoolExecutor) or "process" (ProcessPoolExecutor)."""

    @classmethod
    def from_dict(cls, cfg: dict[str, Any]) -> ContrastConfig:
        """Build a config from a loaded JSON dict, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(k for k in cfg if k not in known)
        if unknown:
            logger.warning(f"Ignoring unknown configuration keys: {unknown}")
        return cls(**{k: v for k, v in cfg.items() if k in known})

    def fit_options(self) -> FitOptions:
        return FitOptions(
            prevalence_filter=self.prevalence_filter,
            winsorize=self.winsorize,
            outlier_pct=self.outlier_pct,
            offset_column=self.offset_column,
            feature_columns=tuple(self.feature_columns),
            pseudocount=self.pseudocount,
        )
