"""
Best-k selection: generate candidates, evaluate them, keep the minimum f(k).
"""

import pandas as pd
import structlog

from src.core.cleanup import ResourceTracker
from src.core.service import ModelingService

from .evaluator import KEvaluator
from .generator import KCandidateGenerator
from .models import EvaluationRecord, KSelectionConfig, SelectionResult

logger = structlog.get_logger(__name__)


def pick_best(evaluations: list[EvaluationRecord]) -> EvaluationRecord:
    """Record with the lowest score; ties go to the smallest k"""
    if not evaluations:
        raise RuntimeError("No evaluations to choose from")
    return min(evaluations, key=lambda record: record.score)


class KSelector:
    """Pham-Dimov-Nguyen k search over a modeling service"""

    def __init__(self, service: ModelingService, config: KSelectionConfig):
        config.validate()
        self.service = service
        self.config = config
        self.generator = KCandidateGenerator(service)
        self.evaluator = KEvaluator()

    def select(self, dataset_id: str) -> SelectionResult:
        """Find the best k for a dataset and return its cluster

        Every candidate cluster is released if the search fails part way.
        """
        config = self.config

        with ResourceTracker(self.service) as tracker:
            clusters = self.generator.generate(
                dataset_id,
                config.k_min,
                config.k_max,
                args=config.search_args,
                tracker=tracker,
            )
            evaluations = self.evaluator.evaluate(clusters)
            best = pick_best(evaluations)

            if config.rebuild_final:
                cluster_id = tracker.track(
                    self.service.create_cluster(
                        dataset_id,
                        best.k,
                        args=config.final_args,
                        name=f"{self._dataset_name(dataset_id)} - final k={best.k}",
                    )
                )
                self.service.wait(cluster_id)
            else:
                cluster_id = best.cluster_id

            tracker.keep(cluster_id)
            if config.clean:
                tracker.release_all()

        result = SelectionResult(
            cluster_id=cluster_id,
            k=best.k,
            evaluations=evaluations,
            rebuilt=config.rebuild_final,
        )
        if config.log_evaluations:
            self._log_evaluations(result)
        return result

    def _dataset_name(self, dataset_id: str) -> str:
        return self.service.fetch(dataset_id).get("name", dataset_id)

    def _log_evaluations(self, result: SelectionResult):
        """Best-effort report of the evaluation table"""
        try:
            table = pd.DataFrame([record.to_dict() for record in result.evaluations])
            logger.info(
                "K evaluations",
                evaluations="\n" + table[["k", "n", "within_ss", "total_ss", "score"]].to_string(
                    index=False
                ),
            )
            logger.info(
                "Best k selected",
                k=result.k,
                score=round(result.best.score, 4),
                cluster_id=result.cluster_id,
                rebuilt=result.rebuilt,
            )
        except Exception as e:
            logger.warning("Failed to log evaluations", error=str(e))


def select_k(
    service: ModelingService, dataset_id: str, config: KSelectionConfig | None = None
) -> SelectionResult:
    """Pick the number of clusters for a dataset"""
    return KSelector(service, config or KSelectionConfig()).select(dataset_id)
