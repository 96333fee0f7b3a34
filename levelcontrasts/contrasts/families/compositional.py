# File: levelcontrasts/contrasts/families/compositional.py
# Location: levelcontrasts/levelcontrasts/contrasts/families/compositional.py
"""
Compositional log-ratio regression.

Models a composition (a set of non-negative count columns per sample) against
the right-hand side of ``formula``. Every feature gets its own linear model,
all sharing one design matrix:

1. Total-sum scaling: counts -> proportions per sample (all features, before
   filtering, so proportions stay relative to the full composition).
2. Prevalence filter: keep features non-zero in at least
   ``prevalence_filter`` of the samples.
3. Zero replacement: zero proportions become ``pseudocount`` (default: half
   the smallest non-zero proportion in the table).
4. Centred log-ratio in log2 units: log2(p) minus the per-sample mean over
   the kept features.
5. Optional winsorization of each feature at ``outlier_pct`` in both tails
   (``scipy.stats.mstats.winsorize``).
6. OLS per feature.

Coefficients are differences in log2 relative abundance, i.e. log2 fold
changes, and are reported on that scale.
"""

from __future__ import annotations

import logging

import numpy as np
import pandas as pd

from levelcontrasts.contrasts.base import COEFFICIENT_COLUMNS, FitOptions, FitResult, ModelFamily
from levelcontrasts.contrasts.errors import FitError
from levelcontrasts.contrasts.families._utils import (
    coefficient_frame,
    drop_unused_levels,
    formula_rhs,
    term_level_map,
)

logger = logging.getLogger("levelcontrasts")


def log_ratio_transform(
    counts: pd.DataFrame,
    prevalence_filter: float = 0.0,
    pseudocount: float | None = None,
) -> pd.DataFrame:
    """
    Scale, filter and CLR-transform a count table (steps 1-4).

    Parameters
    ----------
    counts : pd.DataFrame
        Samples x features, non-negative.
    prevalence_filter : float
        Minimum fraction of samples with a non-zero value per kept feature.
    pseudocount : float, optional
        Replacement for zero proportions. None = half the smallest non-zero
        proportion.

    Returns
    -------
    pd.DataFrame
        Samples x kept features, log2 centred log-ratios.

    Raises
    ------
    ValueError
        On negative or non-finite counts, samples with zero total, or when no
        feature passes the prevalence filter.
    """
    values = counts.to_numpy(dtype=float)
    if not np.isfinite(values).all() or (values < 0).any():
        raise ValueError("Feature counts must be finite and non-negative")

    totals = values.sum(axis=1)
    if (totals <= 0).any():
        n_empty = int((totals <= 0).sum())
        raise ValueError(f"{n_empty} sample(s) have a zero total across all features")
    proportions = values / totals[:, None]

    prevalence = (values > 0).mean(axis=0)
    keep = prevalence >= prevalence_filter
    n_dropped = int((~keep).sum())
    if n_dropped:
        logger.debug(
            f"Prevalence filter {prevalence_filter:.3g}: dropped {n_dropped} of "
            f"{len(keep)} feature(s)"
        )
    if not keep.any():
        raise ValueError(f"No feature is present in >= {prevalence_filter:.3g} of samples")
    proportions = proportions[:, keep]

    if pseudocount is None:
        nonzero = proportions[proportions > 0]
        pseudocount = float(nonzero.min()) / 2.0
    proportions = np.where(proportions > 0, proportions, pseudocount)

    log2p = np.log2(proportions)
    clr = log2p - log2p.mean(axis=1, keepdims=True)
    return pd.DataFrame(clr, index=counts.index, columns=counts.columns[keep])


def winsorize_features(transformed: pd.DataFrame, outlier_pct: float) -> pd.DataFrame:
    """Clip each feature at ``outlier_pct`` in both tails."""
    from scipy.stats import mstats

    if outlier_pct <= 0:
        return transformed
    if outlier_pct >= 0.5:
        raise ValueError(f"outlier_pct must be < 0.5, got {outlier_pct}")

    clipped = {
        col: np.asarray(
            mstats.winsorize(transformed[col].to_numpy(), limits=(outlier_pct, outlier_pct))
        )
        for col in transformed.columns
    }
    return pd.DataFrame(clipped, index=transformed.index)[list(transformed.columns)]


class CompositionalFamily(ModelFamily):
    """
    Multivariate compositional model with log2 CLR responses.

    Options used: ``feature_columns`` (required), ``prevalence_filter``,
    ``pseudocount``, ``winsorize``, ``outlier_pct``.
    """

    parallel_safe = True

    @property
    def name(self) -> str:
        return "compositional_log_ratio"

    @property
    def link_scale(self) -> str:
        return "log2"

    def check_dependencies(self) -> None:
        """Raise ImportError if statsmodels, patsy or scipy is not installed."""
        try:
            import patsy  # noqa: F401
            import scipy.stats  # noqa: F401
            import statsmodels.api  # noqa: F401
        except ImportError as exc:
            raise ImportError(
                "CompositionalFamily requires statsmodels, patsy and scipy: "
                "pip install statsmodels patsy scipy"
            ) from exc

    def fit(self, formula: str, data: pd.DataFrame, options: FitOptions) -> FitResult:
        import patsy
        import statsmodels.api as sm

        features = list(options.feature_columns)
        if not features:
            raise FitError("Compositional model needs feature_columns", family=self.name)
        missing = [f for f in features if f not in data.columns]
        if missing:
            raise FitError(f"Feature column(s) not found: {missing}", family=self.name)

        view = drop_unused_levels(data)
        rhs = formula_rhs(formula)
        try:
            design = patsy.dmatrix(rhs, view, return_type="dataframe")
        except patsy.PatsyError as exc:
            raise FitError(f"Compositional design failed: {exc}", family=self.name) from exc

        # patsy drops rows with missing covariates; align the composition
        counts = view.loc[design.index, features]
        try:
            transformed = log_ratio_transform(
                counts, options.prevalence_filter, options.pseudocount
            )
            if options.winsorize:
                transformed = winsorize_features(transformed, options.outlier_pct)
        except ValueError as exc:
            raise FitError(f"Compositional transform failed: {exc}", family=self.name) from exc

        if np.linalg.matrix_rank(design.to_numpy()) < design.shape[1]:
            raise FitError(
                f"Compositional design matrix is rank deficient ({design.shape[1]} columns)",
                family=self.name,
            )

        frames = []
        for feature in transformed.columns:
            try:
                result = sm.OLS(transformed[feature], design).fit()
            except (ValueError, np.linalg.LinAlgError) as exc:
                raise FitError(
                    f"Compositional fit failed for feature '{feature}': {exc}", family=self.name
                ) from exc
            frames.append(coefficient_frame(str(feature), result))

        coefficients = pd.concat(frames, ignore_index=True)[COEFFICIENT_COLUMNS]
        if not np.isfinite(coefficients[["estimate", "stderr"]].to_numpy()).all():
            raise FitError("Compositional model produced non-finite estimates", family=self.name)

        logger.debug(
            f"Compositional model: n={len(design)}, {len(transformed.columns)} of "
            f"{len(features)} feature(s) kept, {design.shape[1]} term(s)"
        )
        return FitResult(
            family=self.name,
            coefficients=coefficients,
            term_levels=term_level_map(design.design_info),
            intercept_term="Intercept" if "Intercept" in design.columns else None,
            n_obs=len(design),
        )
