# File: levelcontrasts/contrasts/families/quasi_poisson.py
# Location: levelcontrasts/levelcontrasts/contrasts/families/quasi_poisson.py
"""
Quasi-Poisson count regression.

Fits ``formula`` with a statsmodels Poisson GLM (log link) and estimates the
dispersion from the Pearson chi-square (``scale="X2"``), which gives the
quasi-Poisson standard errors. Inference uses the t distribution
(``use_t=True``), as quasi-likelihood models do.

Coefficients are on the natural log scale; contrasts are reported as fold
changes.

Failure modes
-------------
Each of these raises FitError, which aborts the whole contrast batch:

- formula or data errors (unknown column, NaN-only response, negative counts)
- IRLS non-convergence (``result.converged`` is False)
- non-finite estimates or standard errors (rank deficiency, zero dispersion)
"""

from __future__ import annotations

import logging
import warnings

import numpy as np
import pandas as pd

from levelcontrasts.contrasts.base import COEFFICIENT_COLUMNS, FitOptions, FitResult, ModelFamily
from levelcontrasts.contrasts.errors import FitError
from levelcontrasts.contrasts.families._utils import (
    coefficient_frame,
    drop_unused_levels,
    term_level_map,
)

logger = logging.getLogger("levelcontrasts")


class QuasiPoissonFamily(ModelFamily):
    """
    Count model: Poisson GLM with Pearson dispersion.

    Options used: ``offset_column`` (exposure; its log enters as an offset).
    """

    parallel_safe = True

    @property
    def name(self) -> str:
        return "count_log"

    @property
    def link_scale(self) -> str:
        return "log"

    def check_dependencies(self) -> None:
        """Raise ImportError if statsmodels or patsy is not installed."""
        try:
            import patsy  # noqa: F401
            import statsmodels.api  # noqa: F401
        except ImportError as exc:
            raise ImportError(
                "QuasiPoissonFamily requires statsmodels and patsy: pip install statsmodels patsy"
            ) from exc

    def fit(self, formula: str, data: pd.DataFrame, options: FitOptions) -> FitResult:
        import patsy
        import statsmodels.api as sm
        from statsmodels.tools.sm_exceptions import ConvergenceWarning

        if "~" not in formula or not formula.split("~", 1)[0].strip():
            raise FitError(
                f"Count model formula needs a response: '{formula}'", family=self.name
            )

        view = drop_unused_levels(data)
        if options.offset_column is not None and options.offset_column not in view.columns:
            raise FitError(f"Offset column '{options.offset_column}' not found", family=self.name)

        try:
            y, design = patsy.dmatrices(formula, view, return_type="dataframe")
        except patsy.PatsyError as exc:
            raise FitError(f"Count model fit failed: {exc}", family=self.name) from exc
        if y.shape[1] != 1:
            raise FitError(
                f"Count model needs a single response column, got {list(y.columns)}",
                family=self.name,
            )

        offset = None
        if options.offset_column is not None:
            # patsy drops rows with missing values; keep the exposure aligned
            exposure = view.loc[design.index, options.offset_column].astype(float)
            if not np.isfinite(exposure).all() or (exposure <= 0).any():
                raise FitError(
                    f"Offset column '{options.offset_column}' must be strictly positive",
                    family=self.name,
                )
            offset = np.log(exposure)

        try:
            with warnings.catch_warnings():
                warnings.simplefilter("ignore", ConvergenceWarning)
                model = sm.GLM(y, design, family=sm.families.Poisson(), offset=offset)
                result = model.fit(scale="X2", use_t=True)
        except (ValueError, np.linalg.LinAlgError) as exc:
            raise FitError(f"Count model fit failed: {exc}", family=self.name) from exc

        if not getattr(result, "converged", True):
            raise FitError("Count model IRLS did not converge", family=self.name)

        coefficients = coefficient_frame(str(y.columns[0]), result)
        numeric = coefficients[["estimate", "stderr"]].to_numpy()
        if not np.isfinite(numeric).all():
            bad = coefficients.loc[~np.isfinite(numeric).all(axis=1), "term"].tolist()
            raise FitError(
                f"Count model produced non-finite estimates for term(s) {bad}",
                family=self.name,
            )

        term_levels = term_level_map(design.design_info)
        logger.debug(
            f"Count model: n={int(result.nobs)}, dispersion={float(result.scale):.4g}, "
            f"{len(coefficients)} term(s)"
        )
        return FitResult(
            family=self.name,
            coefficients=coefficients[COEFFICIENT_COLUMNS],
            term_levels=term_levels,
            intercept_term="Intercept" if "Intercept" in set(coefficients["term"]) else None,
            n_obs=int(result.nobs),
        )
