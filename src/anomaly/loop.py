"""
K-means minus-minus: iterative anomaly detection on top of a modeling service.

Each iteration clusters the working dataset, scores the full dataset against
the new centroids and takes the l most distant rows as anomaly candidates.
Rows at or beyond the least distant candidate are filtered out before the
next clustering, so the anomalies stop pulling the centroids. The loop stops
when two consecutive candidate sets are similar enough (Jaccard index above
the threshold) or when the iteration budget runs out.

State machine:
    INIT -> CLUSTERING -> (CLUSTERING)* -> CONVERGED | EXHAUSTED
"""

import structlog

from src.core.cleanup import ResourceTracker
from src.core.service import ModelingService, Predicate

from .models import AnomalyConfig, AnomalyResult, LoopState, RoundState
from .round import AnomalyRound

logger = structlog.get_logger(__name__)


def jaccard_similarity(first: frozenset | set, second: frozenset | set) -> float:
    """Jaccard index |A ∩ B| / |A ∪ B|; two empty sets are identical"""
    union = len(first | second)
    if union == 0:
        return 1.0
    return len(first & second) / union


class AnomalyLoop:
    """Drives repeated anomaly rounds until the candidate set stabilizes"""

    def __init__(self, service: ModelingService, config: AnomalyConfig):
        config.validate()
        self.service = service
        self.config = config
        self.round = AnomalyRound(
            service,
            distance_field=config.distance_field,
            cluster_args=config.cluster_args,
        )

        self.original_dataset_id: str | None = None
        self.input_fields: list[str] | None = None
        self.state: RoundState | None = None
        self.tracker: ResourceTracker | None = None

    def start(self, dataset_id: str) -> RoundState:
        """INIT -> CLUSTERING"""
        metadata = self.service.fetch(dataset_id)
        self.original_dataset_id = dataset_id
        self.input_fields = metadata.get("input_fields")
        self.tracker = ResourceTracker(self.service)
        self.state = RoundState(dataset_id=dataset_id, state=LoopState.CLUSTERING)

        logger.info(
            "Anomaly loop started",
            dataset_id=dataset_id,
            k=self.config.k,
            anomaly_count=self.config.anomaly_count,
            threshold=self.config.jaccard_threshold,
            max_iterations=self.config.max_iterations,
        )
        return self.state

    def step(self) -> RoundState:
        """Run one clustering step and apply the stop policy"""
        state = self.state
        if state is None or state.state is not LoopState.CLUSTERING:
            raise RuntimeError("step() called outside the CLUSTERING state")

        result = self.round.run(
            state.dataset_id,
            self.original_dataset_id,
            self.config.k,
            self.config.anomaly_count,
            tracker=self.tracker,
            iteration=state.iteration,
        )
        current = result.row_ids

        if state.previous_anomalies:
            similarity = jaccard_similarity(state.previous_anomalies, current)
        else:
            # first comparison: union is the candidate count, intersection is empty
            similarity = 0 / self.config.anomaly_count
        state.similarities.append(similarity)

        filtered_id = self.tracker.track(
            self.service.filter_dataset(
                result.dataset_id,
                Predicate(self.config.distance_field, "<", result.cutoff),
                input_fields=self.input_fields,
                name=f"k-means-- filtered (round {state.iteration})",
            )
        )

        state.last_round = result

        logger.info(
            "Anomaly round completed",
            iteration=state.iteration,
            similarity=round(similarity, 4),
            cutoff=round(result.cutoff, 4),
            cluster_id=result.cluster_id,
        )

        if state.iteration >= self.config.max_iterations:
            self.tracker.release(filtered_id)
            state.state = LoopState.EXHAUSTED
        elif similarity > self.config.jaccard_threshold:
            self.tracker.release(filtered_id)
            state.state = LoopState.CONVERGED
        else:
            # the filtered dataset must be built before its source goes away
            self.service.wait(filtered_id)
            self.tracker.release(result.cluster_id)
            self.tracker.release(result.dataset_id)
            if state.dataset_id != self.original_dataset_id:
                self.tracker.release(state.dataset_id)

            state.iteration += 1
            state.dataset_id = filtered_id
            state.previous_anomalies = current

        return state

    def finish(self) -> AnomalyResult:
        """Release leftovers and build the terminal output"""
        state = self.state
        if state is None or not state.state.is_terminal:
            raise RuntimeError("finish() called before the loop terminated")

        last = state.last_round
        self.tracker.keep(last.cluster_id)
        self.tracker.keep(last.dataset_id)
        self.tracker.release_all()

        logger.info(
            "Anomaly loop finished",
            state=state.state.value,
            iterations=state.iteration,
            similarities=[round(s, 4) for s in state.similarities],
            anomalies=len(last.anomalies),
        )
        return AnomalyResult(
            cluster_id=last.cluster_id,
            dataset_id=last.dataset_id,
            anomalies=last.anomalies,
            similarities=list(state.similarities),
            iterations=state.iteration,
            state=state.state,
        )

    def run(self, dataset_id: str) -> AnomalyResult:
        """Run the loop to completion

        Any failure releases every resource created so far before the error
        propagates; the caller's dataset is never deleted.
        """
        self.start(dataset_id)
        with self.tracker:
            for _ in range(self.config.max_iterations):
                self.step()
                if self.state.state.is_terminal:
                    break
            return self.finish()


def find_anomalies(
    service: ModelingService, dataset_id: str, config: AnomalyConfig | None = None
) -> AnomalyResult:
    """Detect anomalies in a dataset with k-means minus-minus"""
    return AnomalyLoop(service, config or AnomalyConfig()).run(dataset_id)
