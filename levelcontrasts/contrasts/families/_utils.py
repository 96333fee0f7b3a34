# File: levelcontrasts/contrasts/families/_utils.py
# Location: levelcontrasts/levelcontrasts/contrasts/families/_utils.py
"""
Shared utilities for model family implementations.

The term-to-level mapping is read from the patsy DesignInfo that statsmodels
attaches to formula-built models, instead of parsing coefficient names such
as ``group[T.B]``. This keeps extraction independent of patsy's naming
convention.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Hashable

import numpy as np
import pandas as pd

logger = logging.getLogger("levelcontrasts")

_IDENTIFIER = re.compile(r"[A-Za-z_][A-Za-z0-9_.]*")
# C(col, ...) and Q("col") wrappers around a column name
_C_WRAPPER = re.compile(r"^C\(\s*(.+?)\s*(?:,.*)?\)$", re.DOTALL)
_Q_WRAPPER = re.compile(r"^Q\(\s*(['\"])(.+)\1\s*\)$", re.DOTALL)


def factor_column(factor_name: str) -> str:
    """
    Return the data column a patsy factor reads.

    Examples
    --------
    >>> factor_column("group")
    'group'
    >>> factor_column("C(group)")
    'group'
    >>> factor_column("C(Q('my group'))")
    'my group'
    """
    name = factor_name.strip()
    match = _C_WRAPPER.match(name)
    if match:
        name = match.group(1)
    match = _Q_WRAPPER.match(name)
    if match:
        name = match.group(2)
    return name


def term_level_map(design_info) -> dict[str, tuple[str, Hashable]]:
    """
    Map design-matrix column names to the (column, level) they encode.

    Only single-factor categorical terms are mapped; interaction terms and
    numeric covariates are skipped. A design column belongs to a level when
    its contrast-matrix column has exactly one non-zero entry, equal to 1, in
    that level's row (Treatment coding and full-rank indicator coding).

    Parameters
    ----------
    design_info : patsy.DesignInfo

    Returns
    -------
    dict
        ``{design column name: (data column, level)}``.
    """
    mapping: dict[str, tuple[str, Hashable]] = {}
    for term, subterms in design_info.term_codings.items():
        if len(term.factors) != 1:
            continue
        factor = term.factors[0]
        info = design_info.factor_infos[factor]
        if info.type != "categorical":
            continue

        column = factor_column(factor.name())
        for subterm in subterms:
            contrast = subterm.contrast_matrices.get(factor)
            if contrast is None:
                continue
            matrix = np.asarray(contrast.matrix)
            for j, suffix in enumerate(contrast.column_suffixes):
                nonzero = np.flatnonzero(matrix[:, j])
                if len(nonzero) != 1 or matrix[nonzero[0], j] != 1:
                    continue
                mapping[f"{factor.name()}{suffix}"] = (column, info.categories[nonzero[0]])
    return mapping


def formula_rhs(formula: str) -> str:
    """Return the right-hand side of ``formula`` (the whole string when there is no ``~``)."""
    return formula.split("~", 1)[1].strip() if "~" in formula else formula.strip()


def formula_variables(formula: str, data: pd.DataFrame) -> list[str]:
    """Return the data columns named on the right-hand side of ``formula``."""
    tokens = set(_IDENTIFIER.findall(formula_rhs(formula)))
    return [col for col in data.columns if col in tokens]


def drop_unused_levels(data: pd.DataFrame) -> pd.DataFrame:
    """Remove unobserved categories from every Categorical column, returning a new frame."""
    unused = {}
    for col in data.columns:
        series = data[col]
        if isinstance(series.dtype, pd.CategoricalDtype):
            observed = series.cat.remove_unused_categories()
            if len(observed.cat.categories) != len(series.cat.categories):
                dropped = sorted(
                    set(series.cat.categories) - set(observed.cat.categories), key=str
                )
                logger.debug(f"Column '{col}': dropping unobserved level(s) {dropped}")
                unused[col] = observed
    return data.assign(**unused) if unused else data


def coefficient_frame(response: str, result) -> pd.DataFrame:
    """Build COEFFICIENT_COLUMNS rows from a fitted statsmodels results object."""
    return pd.DataFrame(
        {
            "response": response,
            "term": list(result.params.index),
            "estimate": np.asarray(result.params, dtype=float),
            "stderr": np.asarray(result.bse, dtype=float),
            "statistic": np.asarray(result.tvalues, dtype=float),
            "pvalue": np.asarray(result.pvalues, dtype=float),
        }
    )
