"""Sanity gates on a finished rating run.

Checked after ratings are written and read back:

    Gate A      std(power_rating) > min_std
                (the model hasn't collapsed to a near-constant)
    Gate B      share of power ratings exactly 0.0 < max_zero_pct
                (most teams got a real signal, not a fallback default)
    Readback    |std(persisted) - std(pre-write)| <= tolerance and the
                persisted row count matches what was written

Gates A and B run on the read-back values when available, otherwise on the
in-memory ratings. Any failure logs the top-N ratings by |power_rating|.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional, Sequence

import numpy as np

from cfb_power.data.rating_store import TeamRating

logger = logging.getLogger(__name__)


class SanityGateError(Exception):
    """Raised when a finished rating run fails a sanity gate."""

    def __init__(self, message: str, report: Optional["GateReport"] = None, result=None):
        super().__init__(message)
        self.report = report
        self.result = result  # RunResult, attached by the engine


@dataclass(frozen=True)
class GateThresholds:
    min_std: float = 0.5
    max_zero_pct: float = 0.02
    readback_tolerance: float = 1e-6
    top_n: int = 10

    @classmethod
    def from_settings(cls, settings) -> "GateThresholds":
        return cls(
            min_std=settings.gate_min_std,
            max_zero_pct=settings.gate_max_zero_pct,
            readback_tolerance=settings.readback_tolerance,
            top_n=settings.gate_top_n,
        )


@dataclass
class GateResult:
    name: str
    passed: bool
    value: float
    threshold: float
    message: str


@dataclass
class GateReport:
    """Outcome of every gate for one run."""

    gates: list[GateResult] = field(default_factory=list)
    offenders: list[tuple[str, float]] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return all(g.passed for g in self.gates)

    @property
    def failures(self) -> list[GateResult]:
        return [g for g in self.gates if not g.passed]

    def get(self, name: str) -> Optional[GateResult]:
        for gate in self.gates:
            if gate.name == name:
                return gate
        return None

    def raise_for_failures(self) -> None:
        if self.passed:
            return
        names = ", ".join(g.name for g in self.failures)
        raise SanityGateError(f"Sanity gate(s) failed: {names}", report=self)


def population_std(values: Sequence[float]) -> float:
    if len(values) == 0:
        return 0.0
    return float(np.std(np.asarray(values, dtype=float), ddof=0))


def zero_fraction(values: Sequence[float]) -> float:
    if len(values) == 0:
        return 0.0
    arr = np.asarray(values, dtype=float)
    return float(np.count_nonzero(arr == 0.0)) / arr.size


def top_offenders(ratings: Sequence[TeamRating], n: int = 10) -> list[tuple[str, float]]:
    """Teams with the largest |power_rating|."""
    ranked = sorted(ratings, key=lambda r: abs(r.power_rating), reverse=True)
    return [(r.team_id, r.power_rating) for r in ranked[:n]]


def check_sanity_gates(
    ratings: Sequence[TeamRating],
    readback: Optional[Sequence[TeamRating]] = None,
    pre_write_std: Optional[float] = None,
    thresholds: GateThresholds = GateThresholds(),
) -> GateReport:
    """Run all gates over a set of final ratings.

    Args:
        ratings: Ratings as computed (pre-write)
        readback: Ratings re-read from storage; enables the integrity check
        pre_write_std: Stddev of power before writing (default: from ratings)
        thresholds: Gate thresholds

    Returns:
        GateReport. Call raise_for_failures() to turn failures into an error.
    """
    checked = readback if readback is not None else ratings
    powers = [r.power_rating for r in checked]
    report = GateReport()

    std = population_std(powers)
    report.gates.append(
        GateResult(
            name="gate_a_stddev",
            passed=std > thresholds.min_std,
            value=std,
            threshold=thresholds.min_std,
            message=f"power rating std {std:.4f} (floor {thresholds.min_std})",
        )
    )

    zero_pct = zero_fraction(powers)
    report.gates.append(
        GateResult(
            name="gate_b_zeros",
            passed=zero_pct < thresholds.max_zero_pct,
            value=zero_pct,
            threshold=thresholds.max_zero_pct,
            message=f"{zero_pct:.1%} of power ratings exactly 0 (ceiling {thresholds.max_zero_pct:.1%})",
        )
    )

    if readback is not None:
        if pre_write_std is None:
            pre_write_std = population_std([r.power_rating for r in ratings])
        drift = abs(std - pre_write_std)
        count_ok = len(readback) == len(ratings)
        report.gates.append(
            GateResult(
                name="readback_integrity",
                passed=drift <= thresholds.readback_tolerance and count_ok,
                value=drift,
                threshold=thresholds.readback_tolerance,
                message=(
                    f"readback std {std:.6f} vs pre-write {pre_write_std:.6f} "
                    f"(drift {drift:.2e}); rows {len(readback)}/{len(ratings)}"
                ),
            )
        )

    for gate in report.gates:
        status = "PASS" if gate.passed else "FAIL"
        log = logger.info if gate.passed else logger.error
        log(f"{status}: {gate.name}: {gate.message}")

    if not report.passed:
        report.offenders = top_offenders(checked, thresholds.top_n)
        logger.error(f"Top {len(report.offenders)} ratings by |power|:")
        for team_id, power in report.offenders:
            logger.error(f"  {team_id:<25} {power:+.3f}")

    return report
