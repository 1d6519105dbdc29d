"""
K-means minus-minus anomaly detection.

Clusters a dataset, flags the rows farthest from their centroid, removes them
and clusters again until two consecutive anomaly sets agree.

Usage:
    python -m src.anomaly.detect --input data.csv --k 3 --anomalies 5
"""

from .loop import AnomalyLoop, find_anomalies, jaccard_similarity
from .models import AnomalyConfig, AnomalyResult, AnomalyRow, LoopState, RoundResult, RoundState
from .round import AnomalyRound

__all__ = [
    "AnomalyConfig",
    "AnomalyLoop",
    "AnomalyResult",
    "AnomalyRound",
    "AnomalyRow",
    "LoopState",
    "RoundResult",
    "RoundState",
    "find_anomalies",
    "jaccard_similarity",
]
