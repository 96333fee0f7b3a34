# File: levelcontrasts/contrasts/engine.py
# Location: levelcontrasts/levelcontrasts/contrasts/engine.py
"""
ContrastEngine: orchestrator for pairwise categorical contrasts.

For a categorical column with k levels the engine:

1. validates the caller's DirectionTable against the Level Set (before any
   fitting),
2. refits the model k times, once per reference level,
3. extracts k-1 contrasts per fit (the Directed Contrast Set, k*(k-1)
   records per response),
4. keeps the C(k,2) directions named in the DirectionTable,
5. applies a single round of multiple testing correction to that
   deduplicated set,
6. converts every estimate to the family's effect scale.

Any FitError or MissingTermError aborts the batch: the correction is only
valid over the complete set of comparisons, so no partial table is produced.

Output columns (ContrastResult.to_frame()):
  response, pair, base, other, estimate, stderr, statistic, effect_scale,
  fold_change, ci_lower, ci_upper, pvalue, adjusted_pvalue, significant
"""

from __future__ import annotations

import logging
from collections.abc import Hashable, Sequence
from dataclasses import dataclass, field, replace
from typing import Any

import pandas as pd

from levelcontrasts.contrasts.base import (
    BaselineEstimate,
    ContrastConfig,
    ContrastRecord,
    CorrectedContrast,
    ModelFamily,
)
from levelcontrasts.contrasts.baseline import estimate_baselines
from levelcontrasts.contrasts.correction import correct_contrasts
from levelcontrasts.contrasts.directions import DirectionTable, select_non_redundant
from levelcontrasts.contrasts.errors import InvalidLevelError
from levelcontrasts.contrasts.extraction import extract_contrasts
from levelcontrasts.contrasts.refit import run_refits
from levelcontrasts.contrasts.relevel import level_set
from levelcontrasts.contrasts.scale import to_effect_scale

logger = logging.getLogger("levelcontrasts")

CONTRAST_COLUMNS = [
    "response",
    "pair",
    "base",
    "other",
    "estimate",
    "stderr",
    "statistic",
    "effect_scale",
    "fold_change",
    "ci_lower",
    "ci_upper",
    "pvalue",
    "adjusted_pvalue",
    "significant",
]

BASELINE_COLUMNS = ["response", "base", "estimate", "stderr", "value", "ci_lower", "ci_upper"]


def _build_registry() -> dict[str, type[ModelFamily]]:
    """Build the family registry lazily to avoid importing the model families at module load."""
    from levelcontrasts.contrasts.families.compositional import CompositionalFamily
    from levelcontrasts.contrasts.families.quasi_poisson import QuasiPoissonFamily

    return {
        "count_log": QuasiPoissonFamily,
        "compositional_log_ratio": CompositionalFamily,
    }


@dataclass(frozen=True)
class ContrastResult:
    """
    Output of one ContrastEngine.run() call.

    Fields
    ------
    column : str
        Categorical column the contrasts belong to.
    levels : tuple
        Level Set used for the refits.
    family : str
        Registry name of the fitting family.
    contrasts : tuple of CorrectedContrast
        C(k,2) corrected contrasts per response, effect scale filled in.
    n_fits : int
        Number of model fits performed (k).
    n_directed : int
        Size of the Directed Contrast Set.
    """

    column: str
    levels: tuple
    family: str
    contrasts: tuple[CorrectedContrast, ...]
    n_fits: int
    n_directed: int
    config: dict[str, Any] = field(default_factory=dict)

    def to_frame(self) -> pd.DataFrame:
        """Reporting table, one row per corrected contrast."""
        return contrasts_to_frame(self.contrasts)


def contrasts_to_frame(contrasts: Sequence[CorrectedContrast]) -> pd.DataFrame:
    """Build the reporting DataFrame for corrected contrasts."""
    rows = []
    for c in contrasts:
        rec = c.record
        effect = c.effect
        rows.append(
            {
                "response": rec.response,
                "pair": c.pair_label,
                "base": rec.base,
                "other": rec.other,
                "estimate": rec.estimate,
                "stderr": rec.stderr,
                "statistic": rec.statistic,
                "effect_scale": effect.scale_name if effect is not None else None,
                "fold_change": effect.fold_change if effect is not None else None,
                "ci_lower": effect.lower if effect is not None else None,
                "ci_upper": effect.upper if effect is not None else None,
                "pvalue": rec.pvalue,
                "adjusted_pvalue": c.adjusted_pvalue,
                "significant": c.significant,
            }
        )
    return pd.DataFrame(rows, columns=CONTRAST_COLUMNS)


def baselines_to_frame(baselines: Sequence[BaselineEstimate]) -> pd.DataFrame:
    """Build the reporting DataFrame for baseline estimates."""
    rows = [
        {
            "response": b.response,
            "base": b.base,
            "estimate": b.estimate,
            "stderr": b.stderr,
            "value": b.derived.fold_change,
            "ci_lower": b.derived.lower,
            "ci_upper": b.derived.upper,
        }
        for b in baselines
    ]
    return pd.DataFrame(rows, columns=BASELINE_COLUMNS)


class ContrastEngine:
    """
    Runs every non-redundant pairwise contrast of a categorical column.

    Usage
    -----
    >>> config = ContrastConfig(family="count_log")
    >>> engine = ContrastEngine.from_names("count_log", config)
    >>> table = DirectionTable.from_order(["X", "Y", "Z"])
    >>> result = engine.run(df, "events ~ group + age", "group", table)
    >>> result.to_frame()

    Parameters
    ----------
    family : ModelFamily
        Fitting service. Use from_names() for the registered families.
    config : ContrastConfig
        Correction, fit-option and parallelism settings.
    """

    def __init__(self, family: ModelFamily, config: ContrastConfig) -> None:
        self._family = family
        self._config = config

    @classmethod
    def from_names(cls, family_name: str, config: ContrastConfig) -> ContrastEngine:
        """
        Construct an engine from a registered family name.

        Raises
        ------
        ValueError
            If ``family_name`` is not in the registry. The message lists the
            available families.
        ImportError
            If the family's dependencies are not installed. Raised eagerly
            (before any data processing) by check_dependencies().
        """
        registry = _build_registry()
        if family_name not in registry:
            raise ValueError(
                f"Family '{family_name}' is not available. "
                f"Available families: {', '.join(sorted(registry))}"
            )
        family = registry[family_name]()
        family.check_dependencies()
        return cls(family, config)

    @property
    def family(self) -> ModelFamily:
        return self._family

    def _levels(
        self, data: pd.DataFrame, column: str, order: Sequence[Hashable] | None
    ) -> list[Hashable]:
        levels = level_set(data, column)
        if order is None:
            return levels
        order = list(order)
        if len(order) != len(levels) or set(order) != set(levels):
            raise InvalidLevelError(
                f"Level order {order} is not a permutation of the levels of '{column}': {levels}",
                column=column,
            )
        return order

    def fit_directed(
        self,
        data: pd.DataFrame,
        formula: str,
        column: str,
        order: Sequence[Hashable] | None = None,
    ) -> list[ContrastRecord]:
        """
        Refit once per level and return the Directed Contrast Set.

        Returns
        -------
        list of ContrastRecord
            k*(k-1) records per response, grouped by reference level in
            ``order``.

        Raises
        ------
        FitError, MissingTermError
            From the first failing refit.
        """
        levels = self._levels(data, column, order)
        return self._fit_directed(data, formula, column, levels)

    def _fit_directed(
        self, data: pd.DataFrame, formula: str, column: str, levels: list[Hashable]
    ) -> list[ContrastRecord]:
        logger.info(
            f"Fitting {self._family.name} model {len(levels)} time(s), "
            f"once per level of '{column}': {levels}"
        )
        fits = run_refits(
            self._family,
            formula,
            data,
            column,
            levels,
            self._config.fit_options(),
            self._config.workers,
            self._config.executor,
        )
        directed: list[ContrastRecord] = []
        for reference, fit_result in zip(levels, fits, strict=True):
            directed.extend(extract_contrasts(fit_result, column, reference, levels))
        logger.info(f"Directed contrast set: {len(directed)} record(s) from {len(fits)} fit(s)")
        return directed

    def run(
        self,
        data: pd.DataFrame,
        formula: str,
        column: str,
        directions: DirectionTable,
        order: Sequence[Hashable] | None = None,
    ) -> ContrastResult:
        """
        Run the full contrast pipeline for one categorical column.

        Parameters
        ----------
        data : pd.DataFrame
            Dataset. Not modified.
        formula : str
            Model formula containing ``column``.
        column : str
            Categorical column whose levels are compared.
        directions : DirectionTable
            Reporting direction for every pair; validated before fitting.
        order : sequence, optional
            Level order for the releveled views. Defaults to the Level Set order.

        Returns
        -------
        ContrastResult

        Raises
        ------
        InvalidLevelError, IncompleteDirectionTableError, DirectionTableError
            Configuration errors, raised before any fit.
        FitError, MissingTermError, AmbiguousPairError
            Raised during the batch; nothing is returned.
        """
        levels = self._levels(data, column, order)
        directions.validate(levels)

        directed = self._fit_directed(data, formula, column, levels)
        selected = select_non_redundant(directed, directions, levels)
        corrected = correct_contrasts(
            selected,
            method=self._config.correction_method,
            alpha=self._config.alpha,
            scope=self._config.correction_scope,
        )
        link_scale = self._family.link_scale
        contrasts = tuple(
            replace(
                c,
                effect=to_effect_scale(c.record.estimate, c.record.stderr, link_scale),
            )
            for c in corrected
        )

        n_sig = sum(c.significant for c in contrasts)
        logger.info(
            f"Contrast analysis of '{column}' complete: {len(contrasts)} contrast(s), "
            f"{n_sig} significant (adjusted p <= {self._config.alpha})"
        )
        return ContrastResult(
            column=column,
            levels=tuple(levels),
            family=self._family.name,
            contrasts=contrasts,
            n_fits=len(levels),
            n_directed=len(directed),
            config={
                "correction_method": self._config.correction_method,
                "correction_scope": self._config.correction_scope,
                "alpha": self._config.alpha,
            },
        )

    def baselines(
        self,
        data: pd.DataFrame,
        formula: str,
        column: str,
        order: Sequence[Hashable] | None = None,
    ) -> list[BaselineEstimate]:
        """Estimate the intercept per level of ``column`` (see estimate_baselines())."""
        levels = self._levels(data, column, order)
        return estimate_baselines(
            data,
            formula,
            column,
            levels,
            self._family,
            self._config.fit_options(),
            self._config.workers,
            self._config.executor,
        )
