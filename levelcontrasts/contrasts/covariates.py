# File: levelcontrasts/contrasts/covariates.py
# Location: levelcontrasts/levelcontrasts/contrasts/covariates.py
"""
Table loading and covariate standardization.

Provides ``load_table()`` which reads a delimited file with the delimiter
detected from the extension, and ``standardize_covariates()`` which centres
and scales numeric covariates.

Standardization matters for baseline estimation: the model intercept is the
expected outcome at covariate value zero, which only corresponds to the
covariate-average point after centring. The Baseline Estimator does not
standardize on its own; callers use this helper before fitting.
"""

from __future__ import annotations

import csv
import logging
import os
from collections.abc import Sequence
from typing import Any

import numpy as np
import pandas as pd

logger = logging.getLogger("levelcontrasts")

# |mean| or |sd - 1| above these suggests a covariate was not standardized
_UNSTANDARDIZED_MEAN_TOLERANCE = 1e-6
_UNSTANDARDIZED_SD_TOLERANCE = 1e-3


def _detect_separator(filepath: str) -> str:
    ext = os.path.splitext(filepath)[1].lower()
    if ext in (".tsv", ".tab", ".txt"):
        return "\t"
    if ext == ".csv":
        return ","
    with open(filepath) as fh:
        sample_text = fh.read(2048)
    try:
        return csv.Sniffer().sniff(sample_text, delimiters="\t,;").delimiter
    except csv.Error:
        logger.debug(f"Could not sniff delimiter of {filepath}; assuming tab")
        return "\t"


def load_table(filepath: str, **read_kwargs: Any) -> pd.DataFrame:
    """
    Load a delimited table.

    Parameters
    ----------
    filepath : str
        Path to a file with a header row. Delimiter is auto-detected from file
        extension (.tsv/.tab/.txt -> tab, .csv -> comma) with csv.Sniffer fallback.
    **read_kwargs
        Forwarded to ``pd.read_csv``.

    Returns
    -------
    pd.DataFrame

    Raises
    ------
    FileNotFoundError
        If ``filepath`` does not exist.
    ValueError
        If the file holds no rows.
    """
    if not os.path.exists(filepath):
        raise FileNotFoundError(f"Input file '{filepath}' not found.")

    sep = _detect_separator(filepath)
    df = pd.read_csv(filepath, sep=sep, **read_kwargs)
    if df.empty:
        raise ValueError(f"Input file '{filepath}' contains no rows.")

    logger.info(f"Loaded {len(df)} row(s) x {len(df.columns)} column(s) from {filepath}")
    return df


def standardize_covariates(data: pd.DataFrame, columns: Sequence[str]) -> pd.DataFrame:
    """
    Centre and scale numeric covariates to zero mean and unit variance.

    Uses the sample standard deviation (ddof=1). Returns a new frame; the
    input is not modified.

    Raises
    ------
    ValueError
        If a column is missing, non-numeric, or has zero variance.
    """
    missing = [c for c in columns if c not in data.columns]
    if missing:
        raise ValueError(
            f"Covariate column(s) not found: {missing}. Available columns: {list(data.columns)}"
        )

    scaled: dict[str, pd.Series] = {}
    for col in columns:
        series = data[col]
        if not pd.api.types.is_numeric_dtype(series):
            raise ValueError(f"Covariate '{col}' is not numeric and cannot be standardized")
        sd = series.std(ddof=1)
        if not np.isfinite(sd) or sd == 0:
            raise ValueError(f"Covariate '{col}' has zero variance and cannot be standardized")
        scaled[col] = (series - series.mean()) / sd

    logger.debug(f"Standardized covariates: {list(columns)}")
    return data.assign(**scaled)


def unstandardized_covariates(data: pd.DataFrame, columns: Sequence[str]) -> list[str]:
    """
    Return numeric ``columns`` that do not look standardized.

    Used for a warning only: a non-standardized covariate still yields a
    valid intercept, just not one at the covariate-average point.
    """
    flagged = []
    for col in columns:
        if col not in data.columns or not pd.api.types.is_numeric_dtype(data[col]):
            continue
        series = data[col].dropna()
        if len(series) < 2:
            continue
        if (
            abs(series.mean()) > _UNSTANDARDIZED_MEAN_TOLERANCE
            or abs(series.std(ddof=1) - 1.0) > _UNSTANDARDIZED_SD_TOLERANCE
        ):
            flagged.append(col)
    return flagged
