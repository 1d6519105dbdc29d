"""
One pass of the anomaly loop: cluster, score the original data, take the top-l.
"""

import structlog

from src.core.cleanup import ResourceTracker, safe_delete
from src.core.errors import ServiceFailure
from src.core.service import ModelingService

from .models import AnomalyRow, RoundResult

logger = structlog.get_logger(__name__)


class AnomalyRound:
    """Runs a single clustering and scoring pass against the modeling service"""

    def __init__(
        self,
        service: ModelingService,
        distance_field: str = "distance",
        cluster_args: dict | None = None,
    ):
        self.service = service
        self.distance_field = distance_field
        self.cluster_args = dict(cluster_args or {})

    def run(
        self,
        dataset_id: str,
        original_dataset_id: str,
        k: int,
        anomaly_count: int,
        tracker: ResourceTracker | None = None,
        iteration: int | None = None,
    ) -> RoundResult:
        """Cluster the working dataset and extract the most distant rows

        Args:
            dataset_id: Working dataset to build the cluster on
            original_dataset_id: Full dataset scored against the cluster
            k: Number of centroids
            anomaly_count: Number of anomaly candidates (l) to extract
            tracker: Records the cluster and scored dataset handles
            iteration: Loop iteration, used in resource names

        Returns:
            RoundResult with the anomalies ordered by descending distance
        """
        tracker = tracker or ResourceTracker(self.service, teardown_on_error=False)
        suffix = f" (round {iteration})" if iteration is not None else ""

        # 1. Cluster the working dataset
        cluster_id = tracker.track(
            self.service.create_cluster(
                dataset_id, k, args=self.cluster_args, name=f"k-means-- k={k}{suffix}"
            )
        )
        self.service.wait(cluster_id)

        # 2. Score the original dataset
        batch = self.service.score_dataset(
            cluster_id,
            original_dataset_id,
            all_fields=True,
            distance=True,
            output_dataset=True,
        )
        scored_id = tracker.track(batch.output_dataset_id)
        try:
            if scored_id is None:
                raise ServiceFailure("Batch scoring produced no dataset", resource_id=batch.id)
            self.service.wait(scored_id)

            # 3. Top-l rows by distance
            sample = self.service.sample_rows(
                scored_id,
                order_by=self.distance_field,
                row_count=anomaly_count,
                order="desc",
                mode="linear",
                include_index=True,
            )
        finally:
            # 4. The scoring job handle is never part of the result
            safe_delete(self.service, batch.id)

        safe_delete(self.service, sample.id)

        anomalies = [
            AnomalyRow(
                row_id=row.index,
                distance=float(row.values[self.distance_field]),
                values=row.values,
            )
            for row in sample.rows
        ]
        if len(anomalies) < anomaly_count:
            raise ServiceFailure(
                f"Sample returned {len(anomalies)} rows, expected {anomaly_count}",
                resource_id=scored_id,
            )

        logger.debug(
            "Round finished",
            iteration=iteration,
            cluster_id=cluster_id,
            scored_dataset_id=scored_id,
            max_distance=round(anomalies[0].distance, 4),
            cutoff=round(anomalies[-1].distance, 4),
        )
        return RoundResult(cluster_id=cluster_id, dataset_id=scored_id, anomalies=anomalies)
