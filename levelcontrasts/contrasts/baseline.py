# File: levelcontrasts/contrasts/baseline.py
# Location: levelcontrasts/levelcontrasts/contrasts/baseline.py
"""
Baseline estimation per level.

With level ``b`` as reference, the model intercept is the expected outcome
for ``b`` at covariate value zero. Numeric covariates must be standardized
beforehand (see ``standardize_covariates()``) for that point to be the
covariate average; this module only warns when they look unstandardized.

Intercepts are transformed with the count model's log rule.
"""

from __future__ import annotations

import logging
from collections.abc import Hashable, Sequence

import pandas as pd

from levelcontrasts.contrasts.base import BaselineEstimate, FitOptions, FitResult, ModelFamily
from levelcontrasts.contrasts.covariates import unstandardized_covariates
from levelcontrasts.contrasts.extraction import extract_intercepts
from levelcontrasts.contrasts.families._utils import formula_variables
from levelcontrasts.contrasts.refit import run_refits
from levelcontrasts.contrasts.scale import to_effect_scale

logger = logging.getLogger("levelcontrasts")


def baselines_from_fit(fit_result: FitResult, reference_level: Hashable) -> list[BaselineEstimate]:
    """Turn the intercept row(s) of one fit into BaselineEstimate records."""
    return [
        BaselineEstimate(
            base=reference_level,
            estimate=row.estimate,
            stderr=row.stderr,
            derived=to_effect_scale(row.estimate, row.stderr, "log"),
            response=row.response,
        )
        for row in extract_intercepts(fit_result, reference_level)
    ]


def estimate_baselines(
    data: pd.DataFrame,
    formula: str,
    column: str,
    levels: Sequence[Hashable],
    family: ModelFamily,
    options: FitOptions | None = None,
    workers: int = 1,
    executor: str = "thread",
) -> list[BaselineEstimate]:
    """
    Estimate the intercept with each level of ``column`` as reference.

    Parameters
    ----------
    data : pd.DataFrame
        Dataset with numeric covariates already standardized.
    formula : str
        Model formula containing ``column``.
    column : str
        Categorical column.
    levels : sequence
        Level Set of ``column``.
    family : ModelFamily
        Fitting service.
    options : FitOptions, optional
        Forwarded to every fit.
    workers, executor
        Parallelism settings forwarded to run_refits().

    Returns
    -------
    list of BaselineEstimate
        One per level (per response), in ``levels`` order.

    Raises
    ------
    FitError, MissingTermError
        From any refit; no partial list is returned.
    """
    options = options or FitOptions()

    if family.link_scale != "log":
        logger.warning(
            f"Baseline estimates use the log rule, but family '{family.name}' has "
            f"link scale '{family.link_scale}'; derived values are exp(intercept)."
        )

    excluded = {column, options.offset_column, *options.feature_columns}
    covariates = [c for c in formula_variables(formula, data) if c not in excluded]
    flagged = unstandardized_covariates(data, covariates)
    if flagged:
        logger.warning(
            f"Covariate(s) {flagged} do not look standardized; baseline intercepts are "
            "evaluated at covariate value zero, not at the covariate average."
        )

    fits = run_refits(family, formula, data, column, levels, options, workers, executor)
    baselines: list[BaselineEstimate] = []
    for level, fit_result in zip(levels, fits, strict=True):
        baselines.extend(baselines_from_fit(fit_result, level))

    logger.info(f"Baseline estimates: {len(baselines)} record(s) for {len(levels)} level(s)")
    return baselines
