# File: levelcontrasts/contrasts/extraction.py
# Location: levelcontrasts/levelcontrasts/contrasts/extraction.py
"""
Contrast extraction from fitting service output.

A fit run with ``column`` releveled to reference ``b`` carries one term per
non-reference level. ``extract_contrasts()`` selects those terms through the
explicit ``FitResult.term_levels`` mapping and turns each into a
ContrastRecord with ``base = b``. Running it once per level of the Level Set
yields the Directed Contrast Set of k*(k-1) records per response.

``extract_intercepts()`` applies the intercept rule used by the Baseline
Estimator instead.
"""

from __future__ import annotations

import logging
from collections.abc import Hashable, Sequence
from dataclasses import dataclass

from levelcontrasts.contrasts.base import ContrastRecord, FitResult
from levelcontrasts.contrasts.errors import MissingTermError

logger = logging.getLogger("levelcontrasts")


@dataclass(frozen=True)
class InterceptRow:
    """Intercept coefficient of one response."""

    response: str | None
    estimate: float
    stderr: float


def extract_contrasts(
    fit_result: FitResult,
    column: str,
    reference_level: Hashable,
    levels: Sequence[Hashable],
) -> list[ContrastRecord]:
    """
    Extract the level contrasts of ``column`` from one fit.

    Parameters
    ----------
    fit_result : FitResult
        Output of a fit where ``column`` was releveled to ``reference_level``.
    column : str
        Categorical column whose level terms are extracted.
    reference_level : Hashable
        Reference level of the fit; becomes ``base`` of every record.
    levels : sequence
        The full Level Set of ``column``.

    Returns
    -------
    list of ContrastRecord
        k-1 records per response, ordered by response then by level order.

    Raises
    ------
    MissingTermError
        If a response does not have exactly k-1 level terms, or a term maps
        to the reference level or to a level outside the Level Set.
    """
    expected = len(levels) - 1
    level_rank = {lvl: i for i, lvl in enumerate(levels)}
    level_terms = {
        term: level for term, (col, level) in fit_result.term_levels.items() if col == column
    }

    coefficients = fit_result.coefficients
    if coefficients.empty:
        raise MissingTermError(column, reference_level, expected, 0)

    records: list[ContrastRecord] = []
    for response, rows in coefficients.groupby("response", sort=False):
        found: list[ContrastRecord] = []
        level_rows = rows[rows["term"].isin(level_terms)]
        for row in level_rows.itertuples(index=False):
            level = level_terms[row.term]
            if level == reference_level or level not in level_rank:
                # The fit was not coded against the requested reference
                raise MissingTermError(
                    column, reference_level, expected, len(level_rows), response
                )
            found.append(
                ContrastRecord(
                    other=level,
                    base=reference_level,
                    estimate=float(row.estimate),
                    stderr=float(row.stderr),
                    statistic=float(row.statistic),
                    pvalue=float(row.pvalue),
                    response=response,
                )
            )

        distinct = {rec.other for rec in found}
        if len(found) != expected or len(distinct) != expected:
            raise MissingTermError(column, reference_level, expected, len(found), response)

        found.sort(key=lambda rec: level_rank[rec.other])
        records.extend(found)

    logger.debug(
        f"Extracted {len(records)} contrast(s) for '{column}' with reference '{reference_level}'"
    )
    return records


def extract_intercepts(fit_result: FitResult, reference_level: Hashable) -> list[InterceptRow]:
    """
    Extract the intercept row of every response.

    Raises
    ------
    MissingTermError
        If the fit has no intercept term, or a response lacks the intercept row.
    """
    term = fit_result.intercept_term
    coefficients = fit_result.coefficients
    responses = list(dict.fromkeys(coefficients["response"]))
    if term is None or not responses:
        raise MissingTermError("(Intercept)", reference_level, 1, 0)

    rows: list[InterceptRow] = []
    for response in responses:
        match = coefficients[
            (coefficients["response"] == response) & (coefficients["term"] == term)
        ]
        if len(match) != 1:
            raise MissingTermError("(Intercept)", reference_level, 1, len(match), response)
        row = match.iloc[0]
        rows.append(
            InterceptRow(
                response=response,
                estimate=float(row["estimate"]),
                stderr=float(row["stderr"]),
            )
        )
    return rows
