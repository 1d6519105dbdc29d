"""
Builds one candidate cluster per k, all requests submitted before any wait.
"""

import time

import structlog

from src.core.cleanup import ResourceTracker
from src.core.errors import InvalidArgumentError
from src.core.service import ModelingService

logger = structlog.get_logger(__name__)


class KCandidateGenerator:
    """Fans out cluster builds over a k range and waits for the whole batch"""

    def __init__(self, service: ModelingService):
        self.service = service

    def generate(
        self,
        dataset_id: str,
        k_min: int,
        k_max: int,
        args: dict | None = None,
        tracker: ResourceTracker | None = None,
    ) -> list[dict]:
        """Create and wait for clusters k_min..k_max (inclusive)

        Args:
            dataset_id: Dataset to cluster
            k_min: Smallest candidate k
            k_max: Largest candidate k
            args: Cluster arguments shared by every candidate
            tracker: Receives every created id, so a failed batch can be
                cleaned up by the caller

        Returns:
            Cluster metadata, one dict per k in ascending order

        Raises:
            ServiceFailure: If any build fails; no partial results
        """
        if k_min < 1 or k_max < k_min:
            raise InvalidArgumentError(f"Invalid k range [{k_min}, {k_max}]")

        dataset_name = self.service.fetch(dataset_id).get("name", dataset_id)

        start_time = time.time()
        cluster_ids = []
        for k in range(k_min, k_max + 1):
            cluster_id = self.service.create_cluster(
                dataset_id, k, args=args, name=f"{dataset_name} - k={k}"
            )
            if tracker is not None:
                tracker.track(cluster_id)
            cluster_ids.append(cluster_id)

        logger.info(
            "Candidate clusters submitted",
            dataset_id=dataset_id,
            k_min=k_min,
            k_max=k_max,
            count=len(cluster_ids),
        )

        self.service.wait_all(cluster_ids)

        clusters = []
        for cluster_id in cluster_ids:
            metadata = dict(self.service.fetch(cluster_id))
            metadata["id"] = cluster_id
            clusters.append(metadata)

        logger.info(
            "Candidate clusters ready",
            count=len(clusters),
            elapsed_sec=round(time.time() - start_time, 2),
        )
        return clusters
