"""
Best-k selection for k-means (Pham, Dimov & Nguyen, 2005).

Builds one cluster per candidate k, scores each with the weighted ratio of
successive within-cluster sums of squares and keeps the lowest score.

Usage:
    python -m src.kselect.best_k --input data.csv --k-min 2 --k-max 10
"""

from .evaluator import KEvaluator, alpha, evaluation_score
from .generator import KCandidateGenerator
from .models import EvaluationRecord, KSelectionConfig, SelectionResult
from .selector import KSelector, pick_best, select_k

__all__ = [
    "EvaluationRecord",
    "KCandidateGenerator",
    "KEvaluator",
    "KSelectionConfig",
    "KSelector",
    "SelectionResult",
    "alpha",
    "evaluation_score",
    "pick_best",
    "select_k",
]
