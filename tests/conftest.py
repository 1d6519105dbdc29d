"""
Pytest configuration and shared fixtures.
"""

import time
from unittest.mock import MagicMock

import numpy as np
import pandas as pd
import pytest

from src.anomaly.models import AnomalyConfig
from src.core.service import ModelingService
from src.kselect.models import KSelectionConfig
from src.services.local import LocalModelingService

BLOB_CENTERS = [(0.0, 0.0), (10.0, 10.0), (0.0, 10.0)]
BLOB_SIZES = [32, 32, 31]

# Far from every blob, but not far enough to deserve a centroid of their own
OUTLIERS = [(5.0, -8.0), (18.0, 10.0), (-8.0, 14.0), (10.0, 0.0), (-8.0, -6.0)]


def make_blobs(with_outliers: bool = True) -> pd.DataFrame:
    rng = np.random.default_rng(7)
    points = [
        rng.normal(loc=center, scale=0.5, size=(size, 2))
        for center, size in zip(BLOB_CENTERS, BLOB_SIZES)
    ]
    labels = [f"blob-{i}" for i, size in enumerate(BLOB_SIZES) for _ in range(size)]
    if with_outliers:
        points.append(np.array(OUTLIERS))
        labels += ["outlier"] * len(OUTLIERS)

    frame = pd.DataFrame(np.vstack(points), columns=["x", "y"])
    frame["label"] = labels
    return frame


# Data fixtures
@pytest.fixture
def blobs_frame():
    """100 rows: three tight blobs (rows 0-94) and five outliers (rows 95-99)."""
    return make_blobs(with_outliers=True)


@pytest.fixture
def clean_blobs_frame():
    """95 rows: three tight blobs, no outliers."""
    return make_blobs(with_outliers=False)


# Service fixtures
@pytest.fixture
def local_service():
    """Local modeling service, closed after the test."""
    service = LocalModelingService({"max_workers": 4, "seed": 42})
    yield service
    service.close()


class DelayedLocalService(LocalModelingService):
    """Local service whose jobs sit in the queue for a while before running."""

    delay = 0.2

    def _run_job(self, resource, build):
        time.sleep(self.delay)
        super()._run_job(resource, build)


@pytest.fixture
def delayed_service():
    """Local service with slow job start, closed after the test."""
    service = DelayedLocalService({"max_workers": 2, "seed": 42})
    yield service
    service.close()


@pytest.fixture
def blobs_dataset(local_service, blobs_frame):
    """Dataset id of the blobs frame registered in the local service."""
    return local_service.create_dataset(blobs_frame, name="blobs")


@pytest.fixture
def mock_service():
    """Modeling service double with the full capability interface."""
    service = MagicMock(spec=ModelingService)
    service.delete.return_value = True
    return service


# Config fixtures
@pytest.fixture
def anomaly_config():
    """Anomaly loop configuration matching the 100-row scenario."""
    return AnomalyConfig(k=3, anomaly_count=5, jaccard_threshold=0.8, max_iterations=5)


@pytest.fixture
def selection_config():
    """K search over [2, 4] that keeps only the winner."""
    return KSelectionConfig(k_min=2, k_max=4, clean=True)
