"""Per-stage distribution stats for a rating run.

Each pipeline stage ("raw baseline", "SoS iteration N", "pre-shrinkage",
"post-shrinkage", "post-calibration", "readback") appends one StageStats
record to the run's StageLog. The log is the audit trail for a run and the
input the sanity gates and reports read.
"""

import logging
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Iterable, Optional

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StageStats:
    """Distribution summary of power ratings at one stage."""

    stage: str
    count: int
    mean: float
    std: float  # Population stddev
    min: float
    max: float
    zero_count: int  # Exactly 0.0
    zero_pct: float

    @classmethod
    def from_values(cls, stage: str, values: Iterable[float]) -> "StageStats":
        arr = np.asarray([float(v) for v in values], dtype=float)
        if arr.size == 0:
            return cls(stage, 0, 0.0, 0.0, 0.0, 0.0, 0, 0.0)
        zero_count = int(np.count_nonzero(arr == 0.0))
        return cls(
            stage=stage,
            count=int(arr.size),
            mean=float(arr.mean()),
            std=float(arr.std(ddof=0)),
            min=float(arr.min()),
            max=float(arr.max()),
            zero_count=zero_count,
            zero_pct=zero_count / arr.size,
        )


class StageLog:
    """Ordered, append-only log of StageStats for one run."""

    COLUMNS = ["stage", "count", "mean", "std", "min", "max", "zero_count", "zero_pct"]

    def __init__(self) -> None:
        self._records: list[StageStats] = []

    def record(self, stage: str, values: Iterable[float]) -> StageStats:
        """Summarize values and append them under a stage name."""
        stats = StageStats.from_values(stage, values)
        self._records.append(stats)
        logger.info(
            f"[{stage}] n={stats.count} mean={stats.mean:.3f} std={stats.std:.3f} "
            f"min={stats.min:.3f} max={stats.max:.3f} zeros={stats.zero_count} ({stats.zero_pct:.1%})"
        )
        return stats

    @property
    def records(self) -> list[StageStats]:
        return list(self._records)

    def get(self, stage: str) -> Optional[StageStats]:
        """Latest record for a stage name."""
        for stats in reversed(self._records):
            if stats.stage == stage:
                return stats
        return None

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self):
        return iter(self._records)

    def to_dataframe(self) -> pd.DataFrame:
        if not self._records:
            return pd.DataFrame(columns=self.COLUMNS)
        return pd.DataFrame([asdict(s) for s in self._records], columns=self.COLUMNS)

    def to_csv(self, path: str | Path) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        self.to_dataframe().to_csv(path, index=False)
        logger.info(f"Stage stats written to {path}")
        return path
