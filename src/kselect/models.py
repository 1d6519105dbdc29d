"""
Data models and configuration for best-k selection.
"""

from dataclasses import asdict, dataclass, field
from typing import Any

from src.core.errors import InvalidArgumentError


@dataclass
class KSelectionConfig:
    """Configuration for the k search"""

    k_min: int = 2
    k_max: int = 10
    search_args: dict[str, Any] = field(default_factory=dict)
    final_args: dict[str, Any] | None = None  # None: reuse the search cluster
    clean: bool = True  # delete candidate clusters that are not returned
    log_evaluations: bool = False

    def validate(self) -> None:
        """Check parameter ranges

        Raises:
            InvalidArgumentError: If any parameter is out of range
        """
        if self.k_min < 1:
            raise InvalidArgumentError(f"k_min must be >= 1, got {self.k_min}")
        if self.k_max < self.k_min:
            raise InvalidArgumentError(
                f"k_max ({self.k_max}) must be >= k_min ({self.k_min})"
            )

    @property
    def rebuild_final(self) -> bool:
        """True when the returned cluster must be built with its own arguments"""
        return self.final_args is not None and self.final_args != self.search_args


@dataclass
class EvaluationRecord:
    """Pham-Dimov-Nguyen evaluation of one candidate k"""

    cluster_id: str
    k: int
    n: int  # covariate count
    within_ss: float | None
    total_ss: float | None
    score: float

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class SelectionResult:
    """Outcome of the k search"""

    cluster_id: str
    k: int
    evaluations: list[EvaluationRecord]
    rebuilt: bool = False

    @property
    def best(self) -> EvaluationRecord:
        return next(record for record in self.evaluations if record.k == self.k)

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization"""
        return {
            "cluster_id": self.cluster_id,
            "k": self.k,
            "rebuilt": self.rebuilt,
            "evaluations": [record.to_dict() for record in self.evaluations],
        }
