"""Shared pytest fixtures for all test modules."""

import numpy as np
import pandas as pd
import pytest

from levelcontrasts.contrasts.base import COEFFICIENT_COLUMNS, FitResult, ModelFamily
from levelcontrasts.contrasts.errors import FitError


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast tests of a single module")
    config.addinivalue_line("markers", "integration: end-to-end tests through the CLI")


# Log-scale effect of each level, relative to the log rate at covariate zero
COUNT_EFFECTS = {"X": 0.0, "Y": 0.6, "Z": -0.4}


@pytest.fixture
def count_data() -> pd.DataFrame:
    """Three-level count dataset with one standardized covariate."""
    rng = np.random.default_rng(20240611)
    n_per_level = 100
    group = np.repeat(list(COUNT_EFFECTS), n_per_level)
    age = rng.normal(50.0, 10.0, size=len(group))
    age_z = (age - age.mean()) / age.std(ddof=1)
    rate = np.exp(1.5 + np.array([COUNT_EFFECTS[g] for g in group]) + 0.2 * age_z)
    events = rng.poisson(rate)
    return pd.DataFrame(
        {"sample": range(len(group)), "group": group, "age_z": age_z, "events": events}
    )


@pytest.fixture
def composition_data() -> pd.DataFrame:
    """Three-level dataset with a four-feature count composition."""
    rng = np.random.default_rng(7)
    n_per_level = 40
    group = np.repeat(["X", "Y", "Z"], n_per_level)
    base = np.array([0.4, 0.3, 0.2, 0.1])
    shift = {
        "X": np.zeros(4),
        "Y": np.array([0.8, 0.0, 0.0, -0.5]),
        "Z": np.array([-0.6, 0.3, 0.0, 0.0]),
    }
    rows = []
    for g in group:
        weights = base * np.exp(shift[g] + rng.normal(0.0, 0.2, size=4))
        rows.append(rng.multinomial(500, weights / weights.sum()))
    counts = pd.DataFrame(rows, columns=["A", "B", "C", "D"])
    counts.insert(0, "group", group)
    return counts


class FakeFamily(ModelFamily):
    """
    Deterministic fitting service for engine tests.

    Each level has a fixed log-scale value; a fit with reference ``b`` reports
    ``value[other] - value[b]`` for every other level and ``value[b]`` as the
    intercept. Raises FitError when the reference is ``fail_on``.
    """

    def __init__(self, column="group", values=None, fail_on=None, link="log"):
        self.column = column
        self.values = values or {"X": 0.0, "Y": 0.7, "Z": 0.1}
        self.fail_on = fail_on
        self.link = link
        self.calls = []

    @property
    def name(self):
        return "fake"

    @property
    def link_scale(self):
        return self.link

    def fit(self, formula, data, options):
        categories = list(data[self.column].cat.categories)
        reference = categories[0]
        self.calls.append(reference)
        if reference == self.fail_on:
            raise FitError("design matrix is singular", family=self.name)

        rows = [("y", "Intercept", self.values[reference], 0.1, 1.0, 0.3)]
        term_levels = {}
        for level in categories[1:]:
            estimate = self.values[level] - self.values[reference]
            pvalue = 0.001 if abs(estimate) > 0.4 else 0.6
            rows.append(("y", f"g[{level}]", estimate, 0.2, estimate / 0.2, pvalue))
            term_levels[f"g[{level}]"] = (self.column, level)
        return FitResult(
            family=self.name,
            coefficients=pd.DataFrame(rows, columns=COEFFICIENT_COLUMNS),
            term_levels=term_levels,
            n_obs=len(data),
        )


@pytest.fixture
def fake_family() -> FakeFamily:
    return FakeFamily()


@pytest.fixture
def level_data() -> pd.DataFrame:
    """Small frame with a three-level string column, for fake-family runs."""
    return pd.DataFrame({"group": ["X", "Y", "Z", "Y", "X", "Z"], "y": [1, 2, 3, 4, 5, 6]})


@pytest.fixture
def make_family():
    """Factory for FakeFamily instances with custom values or failures."""
    return FakeFamily
