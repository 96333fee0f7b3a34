# File: levelcontrasts/contrasts/errors.py
# Location: levelcontrasts/levelcontrasts/contrasts/errors.py
"""
Exception hierarchy for the pairwise contrast engine.

Every error raised by the engine derives from ContrastError. None of them is
recovered locally: the correction step is only valid when every expected
comparison is present, so any of these aborts the whole batch.
"""

from __future__ import annotations

from collections.abc import Hashable, Iterable
from typing import Any


class ContrastError(Exception):
    """Base exception for all contrast engine errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        """Initialize contrast error.

        Parameters
        ----------
        message : str
            Error message
        details : dict, optional
            Additional error details
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}


class InvalidLevelError(ContrastError):
    """Raised when a reference level or level ordering is not valid for the Level Set."""

    def __init__(self, message: str, column: str | None = None, level: Hashable | None = None):
        """Initialize invalid level error."""
        super().__init__(message, {"column": column, "level": level})
        self.column = column
        self.level = level


class MissingTermError(ContrastError):
    """Raised when a fit does not contain the expected k-1 level terms."""

    def __init__(
        self,
        column: str,
        reference: Hashable,
        expected: int,
        found: int,
        response: str | None = None,
    ):
        """Initialize missing term error."""
        where = f" (response '{response}')" if response is not None else ""
        message = (
            f"Expected {expected} term(s) for '{column}' with reference '{reference}'{where}, "
            f"found {found}. A level may have no observations in this refit, or the "
            "term coding does not match the releveled column."
        )
        super().__init__(
            message,
            {
                "column": column,
                "reference": reference,
                "expected": expected,
                "found": found,
                "response": response,
            },
        )
        self.column = column
        self.reference = reference
        self.expected = expected
        self.found = found
        self.response = response

    def __reduce__(self):
        """Custom pickling to handle multiprocessing correctly."""
        return (
            self.__class__,
            (self.column, self.reference, self.expected, self.found, self.response),
            self.__dict__,
        )


class DirectionTableError(ContrastError):
    """Raised when a pair-direction table is malformed."""


class IncompleteDirectionTableError(DirectionTableError):
    """Raised when one or more unordered level pairs have no assigned direction."""

    def __init__(self, missing: Iterable[tuple[Hashable, Hashable]]):
        """Initialize incomplete direction table error."""
        self.missing = list(missing)
        shown = ", ".join(f"{{{a}, {b}}}" for a, b in self.missing[:10])
        n_more = len(self.missing) - 10
        if n_more > 0:
            shown += f" and {n_more} more"
        super().__init__(
            f"Direction table has no entry for {len(self.missing)} pair(s): {shown}",
            {"missing": self.missing},
        )

    def __reduce__(self):
        """Custom pickling to handle multiprocessing correctly."""
        return (self.__class__, (self.missing,), self.__dict__)


class AmbiguousPairError(ContrastError):
    """Raised when the contrast for a pair's assigned direction was never produced."""

    def __init__(self, base: Hashable, other: Hashable, response: str | None = None):
        """Initialize ambiguous pair error."""
        where = f" for response '{response}'" if response is not None else ""
        super().__init__(
            f"No directed contrast '{other}' vs base '{base}'{where}. "
            f"Was the refit with reference '{base}' run?",
            {"base": base, "other": other, "response": response},
        )
        self.base = base
        self.other = other
        self.response = response

    def __reduce__(self):
        """Custom pickling to handle multiprocessing correctly."""
        return (self.__class__, (self.base, self.other, self.response), self.__dict__)


class CorrectionFamilyError(ContrastError):
    """Raised when a correction family is not a single deduplicated contrast set."""


class FitError(ContrastError):
    """Raised when the fitting service cannot produce a coefficient table."""

    def __init__(
        self,
        message: str,
        family: str | None = None,
        reference: Hashable | None = None,
    ):
        """Initialize fit error."""
        super().__init__(message, {"family": family, "reference": reference})
        self.family = family
        self.reference = reference

    def __reduce__(self):
        """Custom pickling to handle multiprocessing correctly."""
        return (self.__class__, (self.message, self.family, self.reference), self.__dict__)
