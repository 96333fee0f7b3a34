# File: levelcontrasts/contrasts/families/__init__.py
# Location: levelcontrasts/levelcontrasts/contrasts/families/__init__.py
"""
Model family (fitting service) implementations.

Families are loaded lazily so that patsy, scipy and the statsmodels model
APIs are only imported when a specific family is actually used.
"""

from __future__ import annotations


def __getattr__(name: str) -> object:
    if name == "QuasiPoissonFamily":
        from levelcontrasts.contrasts.families.quasi_poisson import QuasiPoissonFamily

        return QuasiPoissonFamily
    if name == "CompositionalFamily":
        from levelcontrasts.contrasts.families.compositional import CompositionalFamily

        return CompositionalFamily
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    "CompositionalFamily",
    "QuasiPoissonFamily",
]
