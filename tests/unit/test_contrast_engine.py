"""
Unit tests for ContrastEngine.

Uses a deterministic fake family for the orchestration properties (fit
count, selection, batch abort) and the quasi-Poisson and compositional
families for the numerical invariants that hold between refits.
"""

from __future__ import annotations

import math

import numpy as np
import pytest

from levelcontrasts.contrasts.base import ContrastConfig
from levelcontrasts.contrasts.directions import DirectionTable
from levelcontrasts.contrasts.engine import CONTRAST_COLUMNS, ContrastEngine
from levelcontrasts.contrasts.errors import (
    FitError,
    IncompleteDirectionTableError,
    InvalidLevelError,
    MissingTermError,
)

LEVELS = ["X", "Y", "Z"]


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------


@pytest.mark.unit
class TestFromNames:
    def test_registered_families(self):
        assert ContrastEngine.from_names("count_log", ContrastConfig()).family.name == "count_log"
        engine = ContrastEngine.from_names("compositional_log_ratio", ContrastConfig())
        assert engine.family.link_scale == "log2"

    def test_unknown_family_lists_available(self):
        with pytest.raises(ValueError, match="Available families: compositional_log_ratio"):
            ContrastEngine.from_names("negative_binomial", ContrastConfig())


# ---------------------------------------------------------------------------
# Orchestration with a fake family
# ---------------------------------------------------------------------------


@pytest.mark.unit
class TestEngineOrchestration:
    def test_k3_fit_counts(self, fake_family, level_data):
        engine = ContrastEngine(fake_family, ContrastConfig())
        result = engine.run(level_data, "y ~ group", "group", DirectionTable.from_order(LEVELS))
        assert result.n_fits == 3
        assert result.n_directed == 6
        assert len(result.contrasts) == 3
        assert fake_family.calls == LEVELS

    def test_selected_directions_and_values(self, fake_family, level_data):
        engine = ContrastEngine(fake_family, ContrastConfig())
        table = DirectionTable([("X", "Y"), ("Z", "X"), ("Y", "Z")])
        result = engine.run(level_data, "y ~ group", "group", table)
        labels = [c.pair_label for c in result.contrasts]
        assert labels == ["Y_vs_X", "X_vs_Z", "Z_vs_Y"]
        estimates = [c.record.estimate for c in result.contrasts]
        np.testing.assert_allclose(estimates, [0.7, -0.1, -0.6])

    def test_effect_scale_applied(self, fake_family, level_data):
        engine = ContrastEngine(fake_family, ContrastConfig())
        result = engine.run(level_data, "y ~ group", "group", DirectionTable.from_order(LEVELS))
        first = result.contrasts[0]
        assert first.effect is not None
        assert first.effect.fold_change == pytest.approx(math.exp(0.7))

    def test_log2_family_left_on_log2_scale(self, make_family, level_data):
        engine = ContrastEngine(make_family(link="log2"), ContrastConfig())
        result = engine.run(level_data, "y ~ group", "group", DirectionTable.from_order(LEVELS))
        first = result.contrasts[0]
        assert first.effect.is_log2 is True
        assert first.effect.fold_change == pytest.approx(0.7)

    def test_correction_applied_to_selected_set(self, fake_family, level_data):
        engine = ContrastEngine(fake_family, ContrastConfig(correction_method="bonferroni"))
        result = engine.run(level_data, "y ~ group", "group", DirectionTable.from_order(LEVELS))
        raw = [c.record.pvalue for c in result.contrasts]
        adjusted = [c.adjusted_pvalue for c in result.contrasts]
        np.testing.assert_allclose(adjusted, np.minimum(np.array(raw) * 3, 1.0))
        assert [c.significant for c in result.contrasts] == [True, False, True]

    def test_to_frame_columns(self, fake_family, level_data):
        engine = ContrastEngine(fake_family, ContrastConfig())
        frame = engine.run(
            level_data, "y ~ group", "group", DirectionTable.from_order(LEVELS)
        ).to_frame()
        assert list(frame.columns) == CONTRAST_COLUMNS
        assert len(frame) == 3
        assert frame["pair"].tolist() == ["Y_vs_X", "Z_vs_X", "Z_vs_Y"]
        assert set(frame["effect_scale"]) == {"fold_change"}

    def test_incomplete_table_rejected_before_fitting(self, fake_family, level_data):
        engine = ContrastEngine(fake_family, ContrastConfig())
        with pytest.raises(IncompleteDirectionTableError):
            engine.run(level_data, "y ~ group", "group", DirectionTable([("X", "Y")]))
        assert fake_family.calls == []

    def test_order_must_be_permutation(self, fake_family, level_data):
        engine = ContrastEngine(fake_family, ContrastConfig())
        with pytest.raises(InvalidLevelError, match="permutation"):
            engine.run(
                level_data,
                "y ~ group",
                "group",
                DirectionTable.from_order(LEVELS),
                order=["X", "Y", "W"],
            )

    def test_custom_order_sets_refit_order(self, fake_family, level_data):
        engine = ContrastEngine(fake_family, ContrastConfig())
        result = engine.run(
            level_data,
            "y ~ group",
            "group",
            DirectionTable.from_order(LEVELS),
            order=["Z", "X", "Y"],
        )
        assert fake_family.calls == ["Z", "X", "Y"]
        assert result.levels == ("Z", "X", "Y")

    def test_fit_error_aborts_batch(self, make_family, level_data):
        engine = ContrastEngine(make_family(fail_on="Z"), ContrastConfig())
        with pytest.raises(FitError, match="Refit with reference 'Z' failed") as exc_info:
            engine.run(level_data, "y ~ group", "group", DirectionTable.from_order(LEVELS))
        assert exc_info.value.reference == "Z"

    def test_fit_error_aborts_batch_with_threads(self, make_family, level_data):
        config = ContrastConfig(workers=3, executor="thread")
        engine = ContrastEngine(make_family(fail_on="Y"), config)
        with pytest.raises(FitError, match="reference 'Y'"):
            engine.run(level_data, "y ~ group", "group", DirectionTable.from_order(LEVELS))

    def test_thread_pool_matches_sequential(self, make_family, level_data):
        table = DirectionTable.from_order(LEVELS)
        sequential = ContrastEngine(make_family(), ContrastConfig()).run(
            level_data, "y ~ group", "group", table
        )
        threaded = ContrastEngine(
            make_family(), ContrastConfig(workers=2, executor="thread")
        ).run(level_data, "y ~ group", "group", table)
        assert sequential.contrasts == threaded.contrasts

    def test_unknown_executor_raises(self, fake_family, level_data):
        engine = ContrastEngine(fake_family, ContrastConfig(workers=2, executor="gpu"))
        with pytest.raises(ValueError, match="Executor 'gpu'"):
            engine.run(level_data, "y ~ group", "group", DirectionTable.from_order(LEVELS))

    def test_fit_directed_returns_all_directions(self, fake_family, level_data):
        engine = ContrastEngine(fake_family, ContrastConfig())
        directed = engine.fit_directed(level_data, "y ~ group", "group")
        assert {(r.base, r.other) for r in directed} == {
            ("X", "Y"),
            ("X", "Z"),
            ("Y", "X"),
            ("Y", "Z"),
            ("Z", "X"),
            ("Z", "Y"),
        }


# ---------------------------------------------------------------------------
# Invariants with real families
# ---------------------------------------------------------------------------


@pytest.mark.unit
class TestRefitInvariants:
    def test_count_model_antisymmetry(self, count_data):
        engine = ContrastEngine.from_names("count_log", ContrastConfig())
        directed = engine.fit_directed(count_data, "events ~ group + age_z", "group")
        by_pair = {(r.base, r.other): r for r in directed}
        for (base, other), rec in by_pair.items():
            reverse = by_pair[(other, base)]
            assert rec.estimate == pytest.approx(-reverse.estimate, abs=1e-5)
            assert rec.stderr == pytest.approx(reverse.stderr, rel=1e-4)
            assert rec.pvalue == pytest.approx(reverse.pvalue, rel=1e-3, abs=1e-12)

    def test_count_model_fold_change_reciprocity(self, count_data):
        engine = ContrastEngine.from_names("count_log", ContrastConfig())
        forward = engine.run(
            count_data, "events ~ group + age_z", "group", DirectionTable.from_order(LEVELS)
        )
        backward = engine.run(
            count_data,
            "events ~ group + age_z",
            "group",
            DirectionTable([("Y", "X"), ("Z", "X"), ("Z", "Y")]),
        )
        for f, b in zip(forward.contrasts, backward.contrasts):
            assert f.effect.fold_change * b.effect.fold_change == pytest.approx(1.0, rel=1e-4)
            assert f.adjusted_pvalue == pytest.approx(b.adjusted_pvalue, rel=1e-3)

    def test_count_model_detects_effects(self, count_data):
        engine = ContrastEngine.from_names("count_log", ContrastConfig())
        result = engine.run(
            count_data, "events ~ group + age_z", "group", DirectionTable.from_order(LEVELS)
        )
        frame = result.to_frame().set_index("pair")
        assert frame.loc["Y_vs_X", "fold_change"] > 1.0
        assert frame.loc["Z_vs_X", "fold_change"] < 1.0
        assert bool(frame.loc["Z_vs_Y", "significant"]) is True

    def test_compositional_antisymmetry(self, composition_data):
        config = ContrastConfig(
            family="compositional_log_ratio", feature_columns=["A", "B", "C", "D"]
        )
        engine = ContrastEngine.from_names("compositional_log_ratio", config)
        directed = engine.fit_directed(composition_data, "~ group", "group")
        assert len(directed) == 6 * 4
        by_key = {(r.response, r.base, r.other): r for r in directed}
        for (response, base, other), rec in by_key.items():
            reverse = by_key[(response, other, base)]
            assert rec.estimate == pytest.approx(-reverse.estimate, abs=1e-8)

    def test_compositional_run_per_feature(self, composition_data):
        config = ContrastConfig(
            family="compositional_log_ratio", feature_columns=["A", "B", "C", "D"]
        )
        engine = ContrastEngine.from_names("compositional_log_ratio", config)
        frame = engine.run(
            composition_data, "~ group", "group", DirectionTable.from_order(LEVELS)
        ).to_frame()
        assert len(frame) == 12
        assert frame.groupby("response").size().tolist() == [3, 3, 3, 3]
        assert set(frame["effect_scale"]) == {"log2_fold_change"}

    def test_compositional_default_correction_pools_features(self, composition_data):
        from statsmodels.stats.multitest import multipletests

        config = ContrastConfig(
            family="compositional_log_ratio", feature_columns=["A", "B", "C", "D"]
        )
        assert config.correction_scope == "all"
        engine = ContrastEngine.from_names("compositional_log_ratio", config)
        frame = engine.run(
            composition_data, "~ group", "group", DirectionTable.from_order(LEVELS)
        ).to_frame()
        _, expected, _, _ = multipletests(frame["pvalue"].to_numpy(), method="fdr_bh")
        np.testing.assert_allclose(frame["adjusted_pvalue"].to_numpy(), expected, rtol=1e-12)

        per_feature = ContrastEngine.from_names(
            "compositional_log_ratio",
            ContrastConfig(
                family="compositional_log_ratio",
                feature_columns=["A", "B", "C", "D"],
                correction_scope="response",
            ),
        ).run(composition_data, "~ group", "group", DirectionTable.from_order(LEVELS))
        for _, rows in per_feature.to_frame().groupby("response", sort=False):
            _, within, _, _ = multipletests(rows["pvalue"].to_numpy(), method="fdr_bh")
            np.testing.assert_allclose(rows["adjusted_pvalue"].to_numpy(), within, rtol=1e-12)

    def test_unobserved_level_raises_missing_term(self, count_data):
        import pandas as pd

        data = count_data.assign(
            group=pd.Categorical(count_data["group"], categories=["X", "Y", "Z", "W"])
        )
        engine = ContrastEngine.from_names("count_log", ContrastConfig())
        with pytest.raises(MissingTermError):
            engine.run(
                data, "events ~ group", "group", DirectionTable.from_order(["X", "Y", "Z", "W"])
            )

    def test_process_pool_matches_sequential(self, count_data):
        table = DirectionTable.from_order(LEVELS)
        sequential = ContrastEngine.from_names("count_log", ContrastConfig()).run(
            count_data, "events ~ group", "group", table
        )
        pooled = ContrastEngine.from_names(
            "count_log", ContrastConfig(workers=2, executor="process")
        ).run(count_data, "events ~ group", "group", table)
        for a, b in zip(sequential.contrasts, pooled.contrasts):
            assert a.record.estimate == pytest.approx(b.record.estimate, abs=1e-10)
            assert a.adjusted_pvalue == pytest.approx(b.adjusted_pvalue, abs=1e-10)
