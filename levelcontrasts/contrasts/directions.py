# File: levelcontrasts/contrasts/directions.py
# Location: levelcontrasts/levelcontrasts/contrasts/directions.py
"""
Pair-direction tables and non-redundant contrast selection.

Refitting once per reference level produces both A-vs-B and B-vs-A for every
pair. They carry the same statistical content, so only one is reported. Which
one is a reporting decision made by the caller and recorded in a
DirectionTable: an explicit mapping from each unordered pair to its
``(base, other)`` ordering.

The table is validated against the Level Set before any model is fitted.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Hashable, Iterable, Mapping, Sequence
from itertools import combinations

from levelcontrasts.contrasts.base import ContrastRecord
from levelcontrasts.contrasts.errors import (
    AmbiguousPairError,
    DirectionTableError,
    IncompleteDirectionTableError,
    InvalidLevelError,
)

logger = logging.getLogger("levelcontrasts")


class DirectionTable:
    """
    Explicit ``(base, other)`` direction for each unordered level pair.

    Parameters
    ----------
    entries : iterable of (base, other)
        One entry per unordered pair, in reporting order.

    Raises
    ------
    InvalidLevelError
        If an entry compares a level with itself.
    DirectionTableError
        If the same unordered pair is listed more than once.
    """

    def __init__(self, entries: Iterable[tuple[Hashable, Hashable]]) -> None:
        self._entries: list[tuple[Hashable, Hashable]] = []
        self._by_pair: dict[frozenset, tuple[Hashable, Hashable]] = {}
        for base, other in entries:
            if base == other:
                raise InvalidLevelError(
                    f"Direction table compares level '{base}' with itself", level=base
                )
            pair = frozenset((base, other))
            if pair in self._by_pair:
                raise DirectionTableError(
                    f"Pair {{{base}, {other}}} is listed more than once in the direction table",
                    {"pair": (base, other)},
                )
            self._by_pair[pair] = (base, other)
            self._entries.append((base, other))

    @classmethod
    def from_order(
        cls,
        order: Sequence[Hashable],
        flip: Iterable[tuple[Hashable, Hashable]] = (),
    ) -> DirectionTable:
        """
        Generate all C(k,2) pairs with the earlier level in ``order`` as base.

        Pairs listed in ``flip`` (in either orientation) are reversed so that
        the later level becomes the base.
        """
        flipped = {frozenset(pair) for pair in flip}
        entries = []
        for base, other in combinations(order, 2):
            if frozenset((base, other)) in flipped:
                flipped.discard(frozenset((base, other)))
                base, other = other, base
            entries.append((base, other))
        if flipped:
            unknown = [tuple(pair) for pair in flipped]
            raise InvalidLevelError(
                f"Cannot flip pairs not generated from {list(order)}: {unknown}"
            )
        return cls(entries)

    @classmethod
    def from_mapping(
        cls, mapping: Mapping[Iterable[Hashable], tuple[Hashable, Hashable]]
    ) -> DirectionTable:
        """Build from ``{pair: (base, other)}`` where ``pair`` holds the same two levels."""
        entries = []
        for pair, (base, other) in mapping.items():
            if frozenset(pair) != frozenset((base, other)):
                raise DirectionTableError(
                    f"Direction ({base}, {other}) does not match pair {sorted(map(str, pair))}",
                    {"pair": tuple(pair)},
                )
            entries.append((base, other))
        return cls(entries)

    @classmethod
    def from_file(cls, filepath: str) -> DirectionTable:
        """
        Read a delimited file with ``base`` and ``other`` columns.

        Levels are read as strings.
        """
        from levelcontrasts.contrasts.covariates import load_table

        df = load_table(filepath, dtype=str)
        missing = {"base", "other"} - set(df.columns)
        if missing:
            raise DirectionTableError(
                f"Direction file '{filepath}' lacks column(s) {sorted(missing)}. "
                f"Available columns: {list(df.columns)}"
            )
        table = cls(zip(df["base"].str.strip(), df["other"].str.strip()))
        logger.info(f"Loaded {len(table)} pair direction(s) from {os.path.basename(filepath)}")
        return table

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self):
        return iter(self._entries)

    def __repr__(self) -> str:
        return f"DirectionTable({self._entries!r})"

    def direction(self, a: Hashable, b: Hashable) -> tuple[Hashable, Hashable] | None:
        """Return the (base, other) assigned to pair {a, b}, or None."""
        return self._by_pair.get(frozenset((a, b)))

    def validate(self, levels: Sequence[Hashable]) -> None:
        """
        Check the table against a Level Set.

        Raises
        ------
        InvalidLevelError
            If an entry names a level outside ``levels``.
        IncompleteDirectionTableError
            If any of the C(k,2) pairs has no entry.
        """
        known = set(levels)
        for base, other in self._entries:
            for level in (base, other):
                if level not in known:
                    raise InvalidLevelError(
                        f"Direction table names unknown level '{level}'. "
                        f"Available levels: {list(levels)}",
                        level=level,
                    )

        missing = [(a, b) for a, b in combinations(levels, 2) if self.direction(a, b) is None]
        if missing:
            raise IncompleteDirectionTableError(missing)


def select_non_redundant(
    directed: Sequence[ContrastRecord],
    table: DirectionTable,
    levels: Sequence[Hashable] | None = None,
) -> list[ContrastRecord]:
    """
    Keep exactly one directed contrast per unordered pair and response.

    Parameters
    ----------
    directed : sequence of ContrastRecord
        Directed Contrast Set from k refits.
    table : DirectionTable
        Caller-assigned direction for each pair.
    levels : sequence, optional
        Level Set to validate against. Defaults to every level that appears in
        ``directed`` or in ``table``.

    Returns
    -------
    list of ContrastRecord
        C(k,2) records per response, grouped by response in first-seen order
        and ordered by the table within a response.

    Raises
    ------
    IncompleteDirectionTableError
        If the table does not cover every pair of the Level Set.
    AmbiguousPairError
        If the record for an assigned direction is absent from ``directed``.
    """
    if levels is None:
        seen: dict[Hashable, None] = {}
        for rec in directed:
            seen.setdefault(rec.base)
            seen.setdefault(rec.other)
        for base, other in table:
            seen.setdefault(base)
            seen.setdefault(other)
        levels = list(seen)
    table.validate(levels)

    index: dict[tuple[str | None, Hashable, Hashable], ContrastRecord] = {}
    responses: dict[str | None, None] = {}
    for rec in directed:
        index[(rec.response, rec.base, rec.other)] = rec
        responses.setdefault(rec.response)
    if not responses:
        responses[None] = None

    selected: list[ContrastRecord] = []
    for response in responses:
        for base, other in table:
            rec = index.get((response, base, other))
            if rec is None:
                raise AmbiguousPairError(base, other, response)
            selected.append(rec)

    logger.debug(
        f"Selected {len(selected)} non-redundant contrast(s) from {len(directed)} directed"
    )
    return selected
