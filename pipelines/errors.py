"""Error types raised while normalizing and reconciling case records."""

from __future__ import annotations

from typing import Any


class CaseDataError(ValueError):
    """Base class for problems with upstream case data."""


class MissingDateError(CaseDataError):
    """A raw record carries no usable date and cannot be placed on the timeline."""

    def __init__(self, object_id: int | None = None) -> None:
        super().__init__(f"Record {object_id!r} has no date.")
        self.object_id = object_id


class MalformedFieldError(CaseDataError):
    """A numeric or date field could not be parsed from its upstream representation."""

    def __init__(self, field: str, value: Any, object_id: int | None = None) -> None:
        super().__init__(
            f"Could not parse field {field!r} (value={value!r}) of record {object_id!r}."
        )
        self.field = field
        self.value = value
        self.object_id = object_id


class InvalidPopulationError(CaseDataError):
    """The population denominator is not a positive, finite number."""

    def __init__(self, population: Any) -> None:
        super().__init__(f"Population must be a positive number, got {population!r}.")
        self.population = population


class CacheUnavailableError(RuntimeError):
    """Cache-only mode was requested but no cached data could be read.

    Not a ``CaseDataError``: it describes local state, not upstream data.
    """


__all__ = [
    "CaseDataError",
    "MissingDateError",
    "MalformedFieldError",
    "InvalidPopulationError",
    "CacheUnavailableError",
]
