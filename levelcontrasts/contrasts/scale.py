# File: levelcontrasts/contrasts/scale.py
# Location: levelcontrasts/levelcontrasts/contrasts/scale.py
"""
Conversion of native-scale estimates to the reported effect scale.

Count models estimate on the natural log scale and are reported as fold
changes. Compositional models already estimate log2 fold changes and are
reported on that scale, flagged so consumers label the axis correctly.
Intervals are fixed 95% two-sided normal-approximation intervals.
"""

from __future__ import annotations

import math

from levelcontrasts.contrasts.base import EffectScale

Z_95 = 1.96

LINK_SCALES = ("log", "log2")


def to_effect_scale(estimate: float, stderr: float, link_scale: str) -> EffectScale:
    """
    Convert an estimate and its standard error to fold-change form.

    Parameters
    ----------
    estimate : float
        Coefficient on the native scale.
    stderr : float
        Standard error of ``estimate``.
    link_scale : str
        "log": exponentiate estimate and interval bounds.
        "log2": keep values on the log2 scale and set ``is_log2``.

    Returns
    -------
    EffectScale

    Raises
    ------
    ValueError
        If ``link_scale`` is not one of LINK_SCALES.
    """
    lower = estimate - Z_95 * stderr
    upper = estimate + Z_95 * stderr
    if link_scale == "log":
        return EffectScale(
            fold_change=math.exp(estimate),
            lower=math.exp(lower),
            upper=math.exp(upper),
            is_log2=False,
        )
    if link_scale == "log2":
        return EffectScale(fold_change=estimate, lower=lower, upper=upper, is_log2=True)
    raise ValueError(f"Unknown link scale '{link_scale}'. Available: {', '.join(LINK_SCALES)}")
