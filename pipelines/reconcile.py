"""Reconciliation engine.

Walks date-ordered ``NormalizedRecord`` instances once, carrying running
totals per metric group and a 7-day window of reported cases, and emits
``FinalizedDataPoint`` instances that always hold a consistent total/increase
pair and a trailing 7-day incidence.
"""

from __future__ import annotations

import logging
import math
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Sequence

from pipelines.errors import InvalidPopulationError
from pipelines.model import METRIC_GROUPS, FinalizedDataPoint, NormalizedRecord

logger = logging.getLogger(__name__)

WINDOW_DAYS = 7
PER_INHABITANTS = 100_000


class IncreasePolicy(str, Enum):
    """How an increase is derived from an authoritative total."""

    SATURATING = "saturating"
    SIGNED = "signed"


@dataclass(frozen=True)
class ResumeState:
    """Accumulated state at the end of an earlier pass, used to continue it."""

    cases: int = 0
    deaths: int = 0
    recoveries: int = 0
    hospitalisations: int = 0
    window: tuple[int, ...] = (0,) * WINDOW_DAYS

    def __post_init__(self) -> None:
        if len(self.window) != WINDOW_DAYS:
            raise ValueError(
                f"Resume window must hold exactly {WINDOW_DAYS} values, got {len(self.window)}."
            )

    @classmethod
    def from_points(cls, points: Sequence[FinalizedDataPoint]) -> "ResumeState":
        """Rebuild the state from the tail of previously finalized output."""

        if not points:
            return cls()
        last = points[-1]
        reported = [point.cases.reported for point in points[-WINDOW_DAYS:]]
        padded = [0] * (WINDOW_DAYS - len(reported)) + reported
        return cls(
            cases=last.cases.total,
            deaths=last.deaths.total,
            recoveries=last.recoveries.total,
            hospitalisations=last.hospitalisations.total,
            window=tuple(padded),
        )


@dataclass
class ReconciliationState:
    """Mutable accumulator for a single reconciliation pass."""

    counters: dict[str, int] = field(
        default_factory=lambda: {group: 0 for group in METRIC_GROUPS}
    )
    window: deque[int] = field(
        default_factory=lambda: deque([0] * WINDOW_DAYS, maxlen=WINDOW_DAYS)
    )

    @classmethod
    def from_resume(cls, seed: ResumeState | None) -> "ReconciliationState":
        if seed is None:
            return cls()
        return cls(
            counters={group: getattr(seed, group) for group in METRIC_GROUPS},
            window=deque(seed.window, maxlen=WINDOW_DAYS),
        )

    def window_sum(self) -> int:
        return sum(self.window)

    def admit(self, reported: int) -> None:
        # maxlen drops the oldest slot on append
        self.window.append(reported)

    def to_resume(self) -> ResumeState:
        return ResumeState(window=tuple(self.window), **self.counters)


def validate_population(population: float) -> float:
    try:
        value = float(population)
    except (TypeError, ValueError) as exc:
        raise InvalidPopulationError(population) from exc
    if not math.isfinite(value) or value <= 0:
        raise InvalidPopulationError(population)
    return value


def incidence_for(window_sum: int, population: float) -> float:
    return window_sum * PER_INHABITANTS / population


def _reconcile_group(
    total: int, increase: int, running: int, policy: IncreasePolicy
) -> tuple[int, int, int]:
    """Return ``(total, increase, new_running)`` for one metric group."""

    if total != 0:
        delta = total - running
        if policy is IncreasePolicy.SATURATING:
            delta = max(delta, 0)
        return total, delta, total
    running = running + increase
    return running, increase, running


def finalize_record(
    record: NormalizedRecord,
    state: ReconciliationState,
    population: float,
    policy: IncreasePolicy = IncreasePolicy.SATURATING,
) -> FinalizedDataPoint:
    """Advance ``state`` by one record and return the finalized point."""

    incidence = incidence_for(state.window_sum(), population)
    state.admit(record.cases.reported)

    updates: dict[str, object] = {}
    for group in METRIC_GROUPS:
        counts = getattr(record, group)
        total, increase, state.counters[group] = _reconcile_group(
            counts.total, counts.increase, state.counters[group], policy
        )
        updates[group] = counts.model_copy(update={"total": total, "increase": increase})

    return FinalizedDataPoint(
        **record.model_dump(exclude={*METRIC_GROUPS, "incidence"}),
        incidence=incidence,
        **updates,
    )


def reconcile(
    records: Iterable[NormalizedRecord],
    population: float,
    *,
    seed: ResumeState | None = None,
    policy: IncreasePolicy = IncreasePolicy.SATURATING,
) -> list[FinalizedDataPoint]:
    """Reconcile date-ordered records into finalized data points.

    ``records`` must be in ascending date order with overlapping dates already
    removed. ``seed`` continues an earlier pass instead of starting from zero.
    """

    denominator = validate_population(population)
    state = ReconciliationState.from_resume(seed)
    points = [finalize_record(record, state, denominator, policy) for record in records]
    logger.debug(
        "Reconciled %s records (population=%s, policy=%s).",
        len(points),
        denominator,
        policy.value,
    )
    return points


__all__ = [
    "IncreasePolicy",
    "PER_INHABITANTS",
    "ReconciliationState",
    "ResumeState",
    "WINDOW_DAYS",
    "finalize_record",
    "incidence_for",
    "reconcile",
    "validate_population",
]
