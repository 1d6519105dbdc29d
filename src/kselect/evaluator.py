"""
Pham-Dimov-Nguyen evaluation function for choosing k.

For a clustering with k centroids over n covariates, with S_k the
within-cluster sum of squares:

    alpha(2, n) = 1 - 3 / (4n)
    alpha(k, n) = (5/6)^(k-2) * alpha(2, n) + (1 - (5/6)^(k-2))    k > 2

    f(k) = 1                                 k <= 1 or S_{k-1} missing / 0
    f(k) = S_k / (alpha(k, n) * S_{k-1})     otherwise

S_1 is the total sum of squares of the dataset. Values of f(k) well below 1
mean the k-th centroid explains more variance than expected by chance.

Reference: D T Pham, S S Dimov, C D Nguyen, "Selection of K in K-means
clustering", Proc. IMechE Part C, 2005.
"""

import structlog

from .models import EvaluationRecord

logger = structlog.get_logger(__name__)

DECAY = 5 / 6


def alpha(k: int, n: int) -> float:
    """Weight of the expected within-cluster variance drop at k"""
    if n < 1:
        raise ValueError(f"Covariate count must be >= 1, got {n}")
    alpha_2 = 1 - 3 / (4 * n)
    if k <= 2:
        return alpha_2
    weight = DECAY ** (k - 2)
    return weight * alpha_2 + (1 - weight)


def evaluation_score(k: int, n: int, within_ss: float | None, previous_ss: float | None) -> float:
    """f(k) for a candidate, given S_k and S_{k-1}"""
    if k <= 1 or not previous_ss:
        return 1.0
    if within_ss is None:
        return 1.0
    return within_ss / (alpha(k, n) * previous_ss)


class KEvaluator:
    """Computes an EvaluationRecord per candidate cluster, in ascending k"""

    def evaluate(self, clusters: list[dict]) -> list[EvaluationRecord]:
        """Score k-ordered cluster metadata

        Args:
            clusters: Metadata dicts with id, k, input_fields, within_ss, total_ss

        Returns:
            One record per cluster, same order

        Raises:
            ValueError: If the clusters are not strictly ascending in k
        """
        records: list[EvaluationRecord] = []
        previous: EvaluationRecord | None = None

        for cluster in clusters:
            k = int(cluster["k"])
            n = len(cluster.get("input_fields") or [])
            within_ss = cluster.get("within_ss")
            total_ss = cluster.get("total_ss")

            if previous is not None and k <= previous.k:
                raise ValueError(f"Clusters must be ordered by increasing k ({previous.k}, {k})")

            if k == 2:
                previous_ss = total_ss
            elif previous is not None and previous.k == k - 1:
                previous_ss = previous.within_ss
            else:
                previous_ss = None

            record = EvaluationRecord(
                cluster_id=cluster["id"],
                k=k,
                n=n,
                within_ss=within_ss,
                total_ss=total_ss,
                score=evaluation_score(k, n, within_ss, previous_ss),
            )
            records.append(record)
            previous = record

            logger.debug("Candidate evaluated", k=k, n=n, score=round(record.score, 4))

        return records
