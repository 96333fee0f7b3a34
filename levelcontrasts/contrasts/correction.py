# File: levelcontrasts/contrasts/correction.py
# Location: levelcontrasts/levelcontrasts/contrasts/correction.py
"""
Multiple testing correction for pairwise contrasts.

Provides:
- apply_correction(): wrapper around statsmodels multipletests for
  FDR (Benjamini-Hochberg) or Bonferroni correction.
- correct_contrasts(): corrects a deduplicated contrast set and flags
  significance.

The correction family is always the non-redundant set for one Level Set.
Correcting the directed set (both A-vs-B and B-vs-A) would count every
hypothesis twice, so correct_contrasts() refuses input that still contains
both directions of a pair.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

import numpy as np
import statsmodels.stats.multitest as smm

from levelcontrasts.contrasts.base import ContrastRecord, CorrectedContrast
from levelcontrasts.contrasts.errors import CorrectionFamilyError

logger = logging.getLogger("levelcontrasts")

_SCOPES = ("response", "all")


def apply_correction(
    pvals: list[float] | np.ndarray,
    method: str = "fdr",
) -> np.ndarray:
    """
    Apply multiple testing correction to a sequence of p-values.

    Parameters
    ----------
    pvals : list of float or np.ndarray
        Raw p-values to correct. Must be in [0, 1].
    method : str
        Correction method: "fdr" (Benjamini-Hochberg, default) or
        "bonferroni". Any other value is treated as "fdr".

    Returns
    -------
    np.ndarray
        Corrected p-values in the same order as input.
    """
    pvals_array = np.asarray(pvals, dtype=float)

    if len(pvals_array) == 0:
        return pvals_array

    if method == "bonferroni":
        corrected: np.ndarray = smm.multipletests(pvals_array, method="bonferroni")[1]
    else:
        if method != "fdr":
            logger.warning(f"Unknown correction method '{method}'; using FDR (Benjamini-Hochberg).")
        corrected = smm.multipletests(pvals_array, method="fdr_bh")[1]

    return corrected


def correct_contrasts(
    records: Sequence[ContrastRecord],
    method: str = "fdr",
    alpha: float = 0.05,
    scope: str = "all",
) -> list[CorrectedContrast]:
    """
    Correct the p-values of a non-redundant contrast set.

    Parameters
    ----------
    records : sequence of ContrastRecord
        Output of select_non_redundant() for one Level Set.
    method : str
        "fdr" (default) or "bonferroni".
    alpha : float
        A contrast is significant when its adjusted p-value is <= alpha.
    scope : str
        "all" (default): all records form a single family.
        "response": each response's records form one family.

    Returns
    -------
    list of CorrectedContrast
        In input order, with ``effect`` unset.

    Raises
    ------
    CorrectionFamilyError
        If a family contains the same unordered pair twice, contains NaN
        p-values, or ``scope`` is unknown.
    """
    if scope not in _SCOPES:
        raise CorrectionFamilyError(
            f"Unknown correction scope '{scope}'. Available scopes: {', '.join(_SCOPES)}"
        )

    families: dict[str | None, list[int]] = {}
    for i, rec in enumerate(records):
        key = rec.response if scope == "response" else None
        families.setdefault(key, []).append(i)

    adjusted = np.full(len(records), np.nan)
    for key, idx in families.items():
        seen: set[tuple[str | None, frozenset]] = set()
        for i in idx:
            rec = records[i]
            pair_key = (rec.response, rec.pair)
            if pair_key in seen:
                raise CorrectionFamilyError(
                    f"Pair {rec.label} appears more than once in the correction family"
                    + (f" of response '{key}'" if key is not None else "")
                    + "; deduplicate with select_non_redundant() before correcting",
                    {"pair": (rec.base, rec.other), "response": rec.response},
                )
            seen.add(pair_key)

        pvals = np.array([records[i].pvalue for i in idx], dtype=float)
        if np.isnan(pvals).any():
            raise CorrectionFamilyError(
                "NaN p-value in correction family"
                + (f" of response '{key}'" if key is not None else ""),
                {"response": key},
            )
        adjusted[idx] = apply_correction(pvals, method)

    corrected = [
        CorrectedContrast(
            record=rec,
            adjusted_pvalue=float(adjusted[i]),
            significant=bool(adjusted[i] <= alpha),
        )
        for i, rec in enumerate(records)
    ]

    n_sig = sum(c.significant for c in corrected)
    logger.info(
        f"Multiple testing correction ({method}, scope={scope}): "
        f"{len(families)} famil{'y' if len(families) == 1 else 'ies'}, "
        f"{len(records)} contrast(s), {n_sig} with adjusted p <= {alpha}"
    )
    return corrected
