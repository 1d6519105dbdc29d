"""
Core utilities shared by the anomaly and k-selection loops.
"""

from .cleanup import ResourceTracker, safe_delete
from .errors import (
    CleanupFailure,
    ClusteringError,
    ErrorKind,
    InvalidArgumentError,
    ResourceExhaustedError,
    ServiceFailure,
)
from .logger import setup_logging
from .service import BatchScore, ModelingService, Predicate, Sample, SampledRow

__all__ = [
    "BatchScore",
    "CleanupFailure",
    "ClusteringError",
    "ErrorKind",
    "InvalidArgumentError",
    "ModelingService",
    "Predicate",
    "ResourceExhaustedError",
    "ResourceTracker",
    "Sample",
    "SampledRow",
    "ServiceFailure",
    "safe_delete",
    "setup_logging",
]
