"""
Unit tests for DirectionTable and select_non_redundant().

Covers table construction and validation against a Level Set, and the
reduction of a Directed Contrast Set to one record per unordered pair.
"""

from __future__ import annotations

from itertools import permutations

import pytest

from levelcontrasts.contrasts.base import ContrastRecord
from levelcontrasts.contrasts.directions import DirectionTable, select_non_redundant
from levelcontrasts.contrasts.errors import (
    AmbiguousPairError,
    DirectionTableError,
    IncompleteDirectionTableError,
    InvalidLevelError,
)

LEVELS = ["X", "Y", "Z"]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _directed(levels=LEVELS, responses=("y",)):
    """Full directed set with estimate = rank(other) - rank(base)."""
    rank = {lvl: i for i, lvl in enumerate(levels)}
    records = []
    for response in responses:
        for base, other in permutations(levels, 2):
            est = float(rank[other] - rank[base])
            records.append(ContrastRecord(other, base, est, 0.1, est / 0.1, 0.01, response))
    return records


# ---------------------------------------------------------------------------
# DirectionTable construction
# ---------------------------------------------------------------------------


@pytest.mark.unit
class TestDirectionTable:
    def test_from_order_earlier_level_is_base(self):
        table = DirectionTable.from_order(LEVELS)
        assert list(table) == [("X", "Y"), ("X", "Z"), ("Y", "Z")]
        assert len(table) == 3

    def test_from_order_flip(self):
        table = DirectionTable.from_order(LEVELS, flip=[("Z", "Y")])
        assert list(table) == [("X", "Y"), ("X", "Z"), ("Z", "Y")]

    def test_from_order_flip_unknown_pair_raises(self):
        with pytest.raises(InvalidLevelError, match="Cannot flip"):
            DirectionTable.from_order(LEVELS, flip=[("X", "Q")])

    def test_direction_lookup_either_orientation(self):
        table = DirectionTable([("Z", "X")])
        assert table.direction("X", "Z") == ("Z", "X")
        assert table.direction("Z", "X") == ("Z", "X")
        assert table.direction("X", "Y") is None

    def test_self_pair_raises(self):
        with pytest.raises(InvalidLevelError, match="itself"):
            DirectionTable([("X", "X")])

    def test_duplicate_pair_raises(self):
        with pytest.raises(DirectionTableError, match="more than once"):
            DirectionTable([("X", "Y"), ("Y", "X")])

    def test_from_mapping(self):
        table = DirectionTable.from_mapping({("X", "Y"): ("Y", "X")})
        assert list(table) == [("Y", "X")]

    def test_from_mapping_mismatched_pair_raises(self):
        with pytest.raises(DirectionTableError, match="does not match"):
            DirectionTable.from_mapping({("X", "Y"): ("X", "Z")})

    def test_from_file(self, tmp_path):
        path = tmp_path / "directions.tsv"
        path.write_text("base\tother\nX\tY\nZ\tX\nY\tZ\n")
        table = DirectionTable.from_file(str(path))
        assert list(table) == [("X", "Y"), ("Z", "X"), ("Y", "Z")]

    def test_from_file_csv_strips_whitespace(self, tmp_path):
        path = tmp_path / "directions.csv"
        path.write_text("base,other\n X ,Y\n")
        assert list(DirectionTable.from_file(str(path))) == [("X", "Y")]

    def test_from_file_missing_columns_raises(self, tmp_path):
        path = tmp_path / "directions.tsv"
        path.write_text("from\tto\nX\tY\n")
        with pytest.raises(DirectionTableError, match="lacks column"):
            DirectionTable.from_file(str(path))


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


@pytest.mark.unit
class TestValidate:
    def test_complete_table_passes(self):
        DirectionTable.from_order(LEVELS).validate(LEVELS)

    def test_missing_pair_raises(self):
        table = DirectionTable([("X", "Y"), ("X", "Z")])
        with pytest.raises(IncompleteDirectionTableError) as exc_info:
            table.validate(LEVELS)
        assert exc_info.value.missing == [("Y", "Z")]
        assert "{Y, Z}" in str(exc_info.value)

    def test_unknown_level_raises(self):
        table = DirectionTable([("X", "Y"), ("X", "Z"), ("Y", "Z"), ("W", "X")])
        with pytest.raises(InvalidLevelError, match="unknown level 'W'"):
            table.validate(LEVELS)

    def test_incomplete_is_a_direction_table_error(self):
        with pytest.raises(DirectionTableError):
            DirectionTable([]).validate(LEVELS)


# ---------------------------------------------------------------------------
# select_non_redundant
# ---------------------------------------------------------------------------


@pytest.mark.unit
class TestSelectNonRedundant:
    def test_k3_keeps_three_of_six(self):
        directed = _directed()
        assert len(directed) == 6
        selected = select_non_redundant(directed, DirectionTable.from_order(LEVELS), LEVELS)
        assert [(r.base, r.other) for r in selected] == [("X", "Y"), ("X", "Z"), ("Y", "Z")]

    def test_one_record_per_unordered_pair(self):
        levels = ["a", "b", "c", "d", "e"]
        selected = select_non_redundant(
            _directed(levels), DirectionTable.from_order(levels), levels
        )
        pairs = [r.pair for r in selected]
        assert len(pairs) == 10
        assert len(set(pairs)) == 10

    def test_follows_table_direction(self):
        table = DirectionTable([("Z", "X"), ("Y", "X"), ("Z", "Y")])
        selected = select_non_redundant(_directed(), table, LEVELS)
        assert [r.label for r in selected] == ["X_vs_Z", "X_vs_Y", "Y_vs_Z"]
        assert selected[0].estimate == pytest.approx(-2.0)

    def test_per_response(self):
        directed = _directed(responses=("A", "B"))
        selected = select_non_redundant(directed, DirectionTable.from_order(LEVELS), LEVELS)
        assert [r.response for r in selected] == ["A"] * 3 + ["B"] * 3

    def test_levels_inferred_when_omitted(self):
        selected = select_non_redundant(_directed(), DirectionTable.from_order(LEVELS))
        assert len(selected) == 3

    def test_incomplete_table_raises(self):
        with pytest.raises(IncompleteDirectionTableError):
            select_non_redundant(_directed(), DirectionTable([("X", "Y")]), LEVELS)

    def test_missing_directed_record_raises(self):
        directed = [r for r in _directed() if r.base != "Y"]
        with pytest.raises(AmbiguousPairError) as exc_info:
            select_non_redundant(directed, DirectionTable.from_order(LEVELS), LEVELS)
        assert exc_info.value.base == "Y"
        assert exc_info.value.other == "Z"

    def test_empty_directed_set_raises(self):
        with pytest.raises(AmbiguousPairError):
            select_non_redundant([], DirectionTable.from_order(LEVELS), LEVELS)
