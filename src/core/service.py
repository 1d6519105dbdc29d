"""
Capability interface of the modeling service.

The control loops never cluster, score or sample data themselves. They talk to
a ModelingService implementation which must provide:
- asynchronous resource creation (clusters, filtered datasets)
- batch centroid scoring with per-row distances
- ordered sampling of rows
- metadata fetch, completion wait and idempotent delete
"""

import operator
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from typing import Any

from .errors import InvalidArgumentError

OPERATORS = {
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "==": operator.eq,
    "!=": operator.ne,
}


@dataclass(frozen=True)
class Predicate:
    """Scalar predicate used to filter a dataset, e.g. distance < 4.2"""

    field: str
    operator: str
    value: float

    def __post_init__(self):
        if self.operator not in OPERATORS:
            raise InvalidArgumentError(
                f"Unsupported operator '{self.operator}'",
                available=list(OPERATORS),
            )

    def evaluate(self, values):
        """Apply the predicate to a scalar or a vector of values"""
        return OPERATORS[self.operator](values, self.value)

    def __str__(self) -> str:
        return f"{self.field} {self.operator} {self.value}"


@dataclass
class SampledRow:
    """One sampled row: its index in the sampled dataset and its field values"""

    index: int | None
    values: dict[str, Any]


@dataclass
class Sample:
    """Result of a sampling request; id is None when the backend keeps no handle"""

    id: str | None
    rows: list[SampledRow] = field(default_factory=list)


@dataclass
class BatchScore:
    """Completed batch centroid job and the dataset it materialized"""

    id: str
    output_dataset_id: str | None

    def to_dict(self) -> dict:
        return asdict(self)


class ModelingService(ABC):
    """Abstract base class for modeling service backends

    Create calls return as soon as the request is accepted; use wait() or
    wait_all() to block until the resource reaches a terminal state. A
    resource that ends in a failed state makes wait() raise ServiceFailure.
    """

    @abstractmethod
    def create_cluster(
        self,
        dataset_id: str,
        k: int,
        args: dict[str, Any] | None = None,
        name: str | None = None,
    ) -> str:
        """Request a k-means cluster over a dataset

        Args:
            dataset_id: Dataset to cluster
            k: Number of centroids
            args: Extra build arguments (seed, input_fields, ...)
            name: Human readable resource name

        Returns:
            Id of the cluster being built
        """
        pass

    @abstractmethod
    def score_dataset(
        self,
        cluster_id: str,
        dataset_id: str,
        all_fields: bool = True,
        distance: bool = True,
        output_dataset: bool = True,
    ) -> BatchScore:
        """Score every row of a dataset against a cluster and block until done"""
        pass

    @abstractmethod
    def sample_rows(
        self,
        dataset_id: str,
        order_by: str,
        row_count: int,
        order: str = "desc",
        mode: str = "linear",
        include_index: bool = True,
    ) -> Sample:
        """Return row_count rows of a dataset ordered by a field"""
        pass

    @abstractmethod
    def filter_dataset(
        self,
        source_dataset_id: str,
        predicate: Predicate,
        input_fields: list[str] | None = None,
        name: str | None = None,
    ) -> str:
        """Request a dataset holding the rows of source that satisfy predicate"""
        pass

    @abstractmethod
    def fetch(self, resource_id: str) -> dict[str, Any]:
        """Get the current metadata of a resource"""
        pass

    @abstractmethod
    def wait(self, resource_id: str) -> dict[str, Any]:
        """Block until a resource is finished and return its metadata"""
        pass

    @abstractmethod
    def delete(self, resource_id: str) -> bool:
        """Delete a resource; deleting a missing resource is a no-op"""
        pass

    def wait_all(self, resource_ids: list[str]) -> list[str]:
        """Barrier: block until every resource in the batch has finished

        Returns:
            The resource ids, in the order given
        """
        for resource_id in resource_ids:
            self.wait(resource_id)
        return list(resource_ids)

    def close(self):
        """Release backend connections"""
        pass

    @property
    @abstractmethod
    def name(self) -> str:
        """Name of the backend"""
        pass

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r})"
