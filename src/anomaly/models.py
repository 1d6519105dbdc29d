"""
Data models and configuration for the k-means minus-minus anomaly loop.
"""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any

from src.core.errors import InvalidArgumentError


class LoopState(Enum):
    """States of the anomaly loop"""

    INIT = "init"
    CLUSTERING = "clustering"
    CONVERGED = "converged"
    EXHAUSTED = "exhausted"

    @property
    def is_terminal(self) -> bool:
        return self in (LoopState.CONVERGED, LoopState.EXHAUSTED)


@dataclass
class AnomalyConfig:
    """Configuration for the anomaly loop"""

    k: int = 5  # centroids per round
    anomaly_count: int = 10  # l, anomalies extracted per round
    jaccard_threshold: float = 0.8  # stop once consecutive sets are this similar
    max_iterations: int = 10
    distance_field: str = "distance"  # rows with distance >= cutoff are filtered out
    cluster_args: dict[str, Any] = field(default_factory=dict)

    def validate(self) -> None:
        """Check parameter ranges

        Raises:
            InvalidArgumentError: If any parameter is out of range
        """
        if self.k < 1:
            raise InvalidArgumentError(f"k must be >= 1, got {self.k}")
        if self.anomaly_count < 1:
            raise InvalidArgumentError(
                f"anomaly_count must be >= 1, got {self.anomaly_count}"
            )
        if not 0.0 <= self.jaccard_threshold <= 1.0:
            raise InvalidArgumentError(
                f"jaccard_threshold must be in [0, 1], got {self.jaccard_threshold}"
            )
        if self.max_iterations < 1:
            raise InvalidArgumentError(
                f"max_iterations must be >= 1, got {self.max_iterations}"
            )


@dataclass
class AnomalyRow:
    """A row of the original dataset flagged as anomaly candidate"""

    row_id: int
    distance: float
    values: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class RoundResult:
    """Outcome of one clustering + scoring pass"""

    cluster_id: str
    dataset_id: str  # centroid-scored dataset
    anomalies: list[AnomalyRow]

    @property
    def row_ids(self) -> frozenset[int]:
        return frozenset(row.row_id for row in self.anomalies)

    @property
    def cutoff(self) -> float:
        """Distance of the least distant anomaly"""
        return self.anomalies[-1].distance


@dataclass
class RoundState:
    """Mutable state carried from one iteration to the next"""

    dataset_id: str
    iteration: int = 1
    previous_anomalies: frozenset[int] = frozenset()
    similarities: list[float] = field(default_factory=list)
    state: LoopState = LoopState.INIT
    last_round: RoundResult | None = None


@dataclass
class AnomalyResult:
    """Terminal output of the anomaly loop"""

    cluster_id: str
    dataset_id: str
    anomalies: list[AnomalyRow]
    similarities: list[float]
    iterations: int
    state: LoopState

    @property
    def row_ids(self) -> list[int]:
        return [row.row_id for row in self.anomalies]

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization"""
        return {
            "cluster_id": self.cluster_id,
            "dataset_id": self.dataset_id,
            "anomalies": [row.to_dict() for row in self.anomalies],
            "similarities": list(self.similarities),
            "iterations": self.iterations,
            "state": self.state.value,
        }
