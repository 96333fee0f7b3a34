# File: levelcontrasts/contrasts/relevel.py
# Location: levelcontrasts/levelcontrasts/contrasts/relevel.py
"""
Releveling of categorical columns.

``relevel()`` returns a new DataFrame in which one column is a pandas
Categorical whose first category is the requested reference level. Patsy uses
the first category as the Treatment-coding baseline, so every non-reference
level becomes a term contrasted directly against the reference.

The input frame is never modified; each call produces an independent view.
"""

from __future__ import annotations

import logging
from collections.abc import Hashable, Sequence

import pandas as pd

from levelcontrasts.contrasts.errors import InvalidLevelError

logger = logging.getLogger("levelcontrasts")


def level_set(data: pd.DataFrame, column: str) -> list[Hashable]:
    """
    Return the Level Set of ``column``.

    Categorical columns keep their category order; any other column yields its
    sorted unique non-null values. Values that do not compare with each other
    (mixed numbers and strings) are ordered by their string form.

    Raises
    ------
    InvalidLevelError
        If the column is missing or has fewer than two levels.
    """
    if column not in data.columns:
        raise InvalidLevelError(f"Column '{column}' not found in data", column=column)

    series = data[column]
    if isinstance(series.dtype, pd.CategoricalDtype):
        levels = list(series.cat.categories)
    else:
        levels = series.dropna().unique().tolist()
        try:
            levels = sorted(levels)
        except TypeError:
            levels = sorted(levels, key=str)

    if len(levels) < 2:
        raise InvalidLevelError(
            f"Column '{column}' has {len(levels)} level(s); at least 2 are required",
            column=column,
        )
    return levels


def reference_order(levels: Sequence[Hashable], reference_level: Hashable) -> list[Hashable]:
    """Return ``levels`` reordered so that ``reference_level`` comes first."""
    return [reference_level] + [lvl for lvl in levels if lvl != reference_level]


def relevel(
    data: pd.DataFrame,
    column: str,
    reference_level: Hashable,
    order: Sequence[Hashable] | None = None,
) -> pd.DataFrame:
    """
    Make ``reference_level`` the baseline category of ``column``.

    Parameters
    ----------
    data : pd.DataFrame
        Input dataset. Not modified.
    column : str
        Categorical column to relevel.
    reference_level : Hashable
        Level to use as the baseline.
    order : sequence, optional
        Total ordering of the Level Set with ``reference_level`` first. Defaults
        to the reference followed by the remaining levels in Level Set order.

    Returns
    -------
    pd.DataFrame
        A new frame whose ``column`` is Categorical with categories ``order``.

    Raises
    ------
    InvalidLevelError
        If ``reference_level`` is not a level of ``column``, if ``order`` is not
        a permutation of the Level Set, or if ``order`` does not start with
        ``reference_level``.
    """
    levels = level_set(data, column)

    if reference_level not in levels:
        raise InvalidLevelError(
            f"Reference level '{reference_level}' is not a level of '{column}'. "
            f"Available levels: {levels}",
            column=column,
            level=reference_level,
        )

    if order is None:
        order = reference_order(levels, reference_level)
    else:
        order = list(order)
        if len(order) != len(levels) or set(order) != set(levels):
            raise InvalidLevelError(
                f"Level order {order} is not a permutation of the levels of '{column}': {levels}",
                column=column,
            )
        if order[0] != reference_level:
            raise InvalidLevelError(
                f"Level order must start with the reference level '{reference_level}', "
                f"got '{order[0]}'",
                column=column,
                level=reference_level,
            )

    releveled = pd.Categorical(data[column].astype(object), categories=order)
    logger.debug(f"Releveled '{column}' with reference '{reference_level}': {order}")
    return data.assign(**{column: releveled})
