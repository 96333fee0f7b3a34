# File: levelcontrasts/contrasts/refit.py
# Location: levelcontrasts/levelcontrasts/contrasts/refit.py
"""
One model fit per reference level.

``run_refits()`` relevels the dataset to every level of the Level Set and
fits the model once per level. The fits share no state: each worker receives
its own releveled view, so they can run sequentially, on a thread pool, or on
a process pool with identical results. Results are returned in Level Set
order regardless of completion order.

The first failure aborts the batch; no partial list of fits is returned.
"""

from __future__ import annotations

import concurrent.futures
import logging
import os
from collections.abc import Hashable, Sequence

import pandas as pd

from levelcontrasts.contrasts.base import FitOptions, FitResult, ModelFamily
from levelcontrasts.contrasts.errors import FitError
from levelcontrasts.contrasts.relevel import reference_order, relevel

logger = logging.getLogger("levelcontrasts")

_EXECUTORS = ("thread", "process")


def _worker_initializer() -> None:
    """Set BLAS thread counts to 1 in worker processes to prevent oversubscription."""
    os.environ["OPENBLAS_NUM_THREADS"] = "1"
    os.environ["MKL_NUM_THREADS"] = "1"
    os.environ["OMP_NUM_THREADS"] = "1"


def fit_reference(
    args: tuple[ModelFamily, str, pd.DataFrame, str, Hashable, Sequence[Hashable], FitOptions],
) -> FitResult:
    """
    Relevel to one reference and fit.

    Parameters
    ----------
    args : tuple
        (family, formula, data, column, reference_level, level_order, options)

    Raises
    ------
    FitError
        If the family fails; the message names the reference level.
    """
    family, formula, data, column, reference, levels, options = args
    view = relevel(data, column, reference, reference_order(levels, reference))
    try:
        result = family.fit(formula, view, options)
    except FitError as exc:
        raise FitError(
            f"Refit with reference '{reference}' failed: {exc.message}",
            family=family.name,
            reference=reference,
        ) from exc
    logger.debug(f"Fit {family.name} with reference '{reference}': n={result.n_obs}")
    return result


def run_refits(
    family: ModelFamily,
    formula: str,
    data: pd.DataFrame,
    column: str,
    levels: Sequence[Hashable],
    options: FitOptions,
    workers: int = 1,
    executor: str = "thread",
) -> list[FitResult]:
    """
    Fit ``formula`` once per level of ``levels`` with that level as reference.

    Parameters
    ----------
    family : ModelFamily
        Fitting service.
    formula : str
        Model formula; ``column`` must appear as a categorical term.
    data : pd.DataFrame
        Dataset. Not modified.
    column : str
        Categorical column to relevel.
    levels : sequence
        Level Set, in the order used for every releveled view.
    options : FitOptions
        Forwarded to every fit.
    workers : int
        1 = sequential (default), -1 = os.cpu_count(), N = pool size.
    executor : str
        "thread" or "process". Ignored when running sequentially.

    Returns
    -------
    list of FitResult
        One per level, in ``levels`` order.

    Raises
    ------
    FitError
        From the first failing refit.
    ValueError
        If ``executor`` is unknown.
    """
    if executor not in _EXECUTORS:
        raise ValueError(
            f"Executor '{executor}' is not available. Available executors: {', '.join(_EXECUTORS)}"
        )

    levels = list(levels)
    args_list = [(family, formula, data, column, level, levels, options) for level in levels]

    use_parallel = workers != 1 and getattr(family, "parallel_safe", False) and len(levels) > 1
    if workers != 1 and not getattr(family, "parallel_safe", False):
        logger.warning(
            "workers=%d requested but family '%s' is not parallel_safe "
            "(falling back to sequential)",
            workers,
            family.name,
        )

    if not use_parallel:
        return [fit_reference(args) for args in args_list]

    actual_workers = (os.cpu_count() or 1) if workers == -1 else workers
    actual_workers = max(1, min(actual_workers, len(levels)))
    logger.info(f"Parallel refits: {actual_workers} {executor} worker(s) for {len(levels)} levels")

    if executor == "process":
        pool: concurrent.futures.Executor = concurrent.futures.ProcessPoolExecutor(
            max_workers=actual_workers,
            initializer=_worker_initializer,
        )
    else:
        pool = concurrent.futures.ThreadPoolExecutor(max_workers=actual_workers)

    with pool:
        # map() re-raises the first worker exception while iterating
        return list(pool.map(fit_reference, args_list))
