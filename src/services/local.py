"""
In-process modeling service backed by pandas and scikit-learn.

Datasets are held as DataFrames, clusters are fitted with sklearn's KMeans and
every create request runs as a job on a thread pool, so callers get the same
submit-then-wait behaviour as with a remote service.

Resource ids follow the "<kind>/<hex>" convention:
- dataset/...       DataFrame + field metadata
- cluster/...       fitted KMeans + within/total sum of squares
- batchcentroid/... scoring job handle
- sample/...        sampling handle
"""

import threading
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable

import numpy as np
import pandas as pd
import structlog
from sklearn.cluster import KMeans

from src.core.errors import (
    ClusteringError,
    InvalidArgumentError,
    ResourceExhaustedError,
    ServiceFailure,
)
from src.core.service import BatchScore, ModelingService, Predicate, Sample, SampledRow

logger = structlog.get_logger(__name__)

CLUSTER_FIELD = "cluster"
DISTANCE_FIELD = "distance"

QUEUED = "queued"
FINISHED = "finished"
FAULTY = "faulty"


@dataclass
class LocalServiceConfig:
    """Configuration for the local backend"""

    max_workers: int = 4
    seed: int | None = 42  # default KMeans random_state
    n_init: int | str = 10
    max_iter: int = 300


@dataclass
class _Resource:
    kind: str
    meta: dict[str, Any]
    frame: pd.DataFrame | None = None
    model: KMeans | None = None
    future: Future | None = None
    error: Exception | None = field(default=None, repr=False)


class LocalModelingService(ModelingService):
    """Modeling service running entirely in the current process"""

    def __init__(self, config: dict | None = None):
        """Initialize with configuration

        Args:
            config: Dictionary with keys matching LocalServiceConfig fields
        """
        self.config = LocalServiceConfig(**(config or {}))
        self._name = "local"
        self._resources: dict[str, _Resource] = {}
        self._lock = threading.Lock()
        self._executor = ThreadPoolExecutor(
            max_workers=self.config.max_workers, thread_name_prefix="modeling-job"
        )

        logger.info(
            "Local modeling service initialized",
            max_workers=self.config.max_workers,
            seed=self.config.seed,
        )

    @property
    def name(self) -> str:
        return self._name

    # ------------------------------------------------------------------
    # Datasets
    # ------------------------------------------------------------------

    def create_dataset(
        self,
        frame: pd.DataFrame,
        name: str = "dataset",
        input_fields: list[str] | None = None,
    ) -> str:
        """Register a DataFrame as a finished dataset

        Args:
            frame: Source data; rows are re-indexed 0..n-1
            name: Dataset name
            input_fields: Fields used for clustering (default: numeric columns)

        Returns:
            Id of the new dataset
        """
        if frame.empty:
            raise InvalidArgumentError("Cannot create a dataset from an empty frame")

        frame = frame.reset_index(drop=True)
        if input_fields is None:
            input_fields = frame.select_dtypes(include="number").columns.tolist()

        missing = set(input_fields) - set(frame.columns)
        if missing:
            raise InvalidArgumentError(f"Input fields not in frame: {sorted(missing)}")
        if not input_fields:
            raise InvalidArgumentError("Dataset has no numeric input fields")

        resource_id = self._new_id("dataset")
        self._register(
            resource_id,
            _Resource(
                kind="dataset",
                meta=self._dataset_meta(resource_id, name, frame, input_fields),
                frame=frame,
            ),
        )
        logger.info("Dataset created", dataset_id=resource_id, name=name, rows=len(frame))
        return resource_id

    def load_csv(self, path: str, name: str | None = None, **read_kwargs) -> str:
        """Read a CSV file into a new dataset"""
        frame = pd.read_csv(path, **read_kwargs)
        return self.create_dataset(frame, name=name or str(path))

    def get_frame(self, dataset_id: str) -> pd.DataFrame:
        """Return a copy of a finished dataset's rows"""
        self.wait(dataset_id)
        resource = self._get(dataset_id)
        if resource.frame is None:
            raise ServiceFailure(f"{dataset_id} is not a dataset", resource_id=dataset_id)
        return resource.frame.copy()

    def filter_dataset(
        self,
        source_dataset_id: str,
        predicate: Predicate,
        input_fields: list[str] | None = None,
        name: str | None = None,
    ) -> str:
        source_meta = self.wait(source_dataset_id)
        name = name or f"{source_meta['name']} [{predicate}]"
        fields = input_fields or source_meta["input_fields"]
        frame = self._get(source_dataset_id).frame

        def build(resource: _Resource):
            if predicate.field not in frame.columns:
                raise ServiceFailure(
                    f"Field '{predicate.field}' not in {source_dataset_id}",
                    resource_id=source_dataset_id,
                )
            filtered = frame[predicate.evaluate(frame[predicate.field])]
            resource.frame = filtered
            return self._dataset_meta(resource.meta["id"], name, filtered, fields)

        resource_id = self._submit("dataset", {"name": name, "origin": source_dataset_id}, build)
        logger.debug(
            "Filter requested",
            dataset_id=resource_id,
            source=source_dataset_id,
            predicate=str(predicate),
        )
        return resource_id

    # ------------------------------------------------------------------
    # Clusters and scoring
    # ------------------------------------------------------------------

    def create_cluster(
        self,
        dataset_id: str,
        k: int,
        args: dict[str, Any] | None = None,
        name: str | None = None,
    ) -> str:
        if not isinstance(k, (int, np.integer)) or k < 1:
            raise InvalidArgumentError(f"k must be a positive integer, got {k!r}")

        args = dict(args or {})
        dataset_meta = self.wait(dataset_id)
        frame = self._get(dataset_id).frame
        fields = args.get("input_fields") or dataset_meta["input_fields"]
        name = name or f"cluster k={k}"

        def build(resource: _Resource):
            X = frame[fields].to_numpy(dtype=float)

            if len(X) < k:
                raise ResourceExhaustedError(
                    f"Dataset {dataset_id} has {len(X)} rows, fewer than k={k}",
                    resource_id=dataset_id,
                )

            model = KMeans(
                n_clusters=int(k),
                random_state=args.get("seed", self.config.seed),
                n_init=args.get("n_init", self.config.n_init),
                max_iter=args.get("max_iter", self.config.max_iter),
            ).fit(X)
            resource.model = model

            return {
                "k": int(k),
                "input_fields": list(fields),
                "within_ss": float(model.inertia_),
                "total_ss": float(((X - X.mean(axis=0)) ** 2).sum()),
                "rows": len(X),
                "centroids": model.cluster_centers_.tolist(),
            }

        resource_id = self._submit(
            "cluster", {"name": name, "dataset": dataset_id, "args": args}, build
        )
        logger.debug("Cluster requested", cluster_id=resource_id, dataset_id=dataset_id, k=k)
        return resource_id

    def score_dataset(
        self,
        cluster_id: str,
        dataset_id: str,
        all_fields: bool = True,
        distance: bool = True,
        output_dataset: bool = True,
    ) -> BatchScore:
        cluster_meta = self.wait(cluster_id)
        dataset_meta = self.wait(dataset_id)
        frame = self._get(dataset_id).frame
        model = self._get(cluster_id).model

        def build(resource: _Resource):
            X = frame[cluster_meta["input_fields"]].to_numpy(dtype=float)

            labels = model.predict(X)
            scored = frame.copy() if all_fields else pd.DataFrame(index=frame.index)
            scored[CLUSTER_FIELD] = labels
            if distance:
                scored[DISTANCE_FIELD] = model.transform(X)[np.arange(len(X)), labels]

            output_id = None
            if output_dataset:
                output_id = self.create_dataset_from(
                    scored,
                    name=f"{dataset_meta['name']} - centroids",
                    input_fields=dataset_meta["input_fields"],
                )
            return {"output_dataset": output_id, "rows": len(scored)}

        batch_id = self._submit(
            "batchcentroid", {"cluster": cluster_id, "dataset": dataset_id}, build
        )
        meta = self.wait(batch_id)
        return BatchScore(id=batch_id, output_dataset_id=meta["output_dataset"])

    def create_dataset_from(
        self, frame: pd.DataFrame, name: str, input_fields: list[str]
    ) -> str:
        """Register a derived frame, keeping its row index"""
        resource_id = self._new_id("dataset")
        self._register(
            resource_id,
            _Resource(
                kind="dataset",
                meta=self._dataset_meta(resource_id, name, frame, input_fields),
                frame=frame,
            ),
        )
        return resource_id

    # ------------------------------------------------------------------
    # Sampling
    # ------------------------------------------------------------------

    def sample_rows(
        self,
        dataset_id: str,
        order_by: str,
        row_count: int,
        order: str = "desc",
        mode: str = "linear",
        include_index: bool = True,
    ) -> Sample:
        if order not in ("asc", "desc"):
            raise InvalidArgumentError(f"order must be 'asc' or 'desc', got {order!r}")
        if mode != "linear":
            raise InvalidArgumentError(f"Unsupported sampling mode {mode!r}")
        if row_count < 1:
            raise InvalidArgumentError(f"row_count must be >= 1, got {row_count}")

        frame = self.get_frame(dataset_id)
        if order_by not in frame.columns:
            raise ServiceFailure(f"Field '{order_by}' not in {dataset_id}", resource_id=dataset_id)
        if len(frame) < row_count:
            raise ResourceExhaustedError(
                f"Dataset {dataset_id} has {len(frame)} rows, fewer than {row_count}",
                resource_id=dataset_id,
            )

        ordered = frame.sort_values(order_by, ascending=(order == "asc"), kind="stable")
        rows = [
            SampledRow(
                index=int(index) if include_index else None,
                values={key: _to_python(value) for key, value in row.items()},
            )
            for index, row in ordered.head(row_count).iterrows()
        ]

        sample_id = self._new_id("sample")
        self._register(
            sample_id,
            _Resource(kind="sample", meta={"id": sample_id, "dataset": dataset_id, "status": FINISHED}),
        )
        return Sample(id=sample_id, rows=rows)

    # ------------------------------------------------------------------
    # Generic resource operations
    # ------------------------------------------------------------------

    def fetch(self, resource_id: str) -> dict[str, Any]:
        resource = self._get(resource_id)
        with self._lock:
            return dict(resource.meta)

    def wait(self, resource_id: str) -> dict[str, Any]:
        resource = self._get(resource_id)
        if resource.future is not None:
            resource.future.result()

        if resource.meta["status"] == FAULTY:
            error = resource.error
            if isinstance(error, ServiceFailure):
                raise error
            raise ServiceFailure(
                f"{resource_id} failed: {resource.meta.get('error')}", resource_id=resource_id
            )
        return self.fetch(resource_id)

    def delete(self, resource_id: str) -> bool:
        with self._lock:
            resource = self._resources.pop(resource_id, None)

        if resource is None:
            logger.debug("Resource already deleted", resource_id=resource_id)
            return True

        if resource.future is not None:
            resource.future.cancel()
        return True

    def list_resources(self, kind: str | None = None) -> list[str]:
        """Ids of live resources, optionally restricted to one kind"""
        with self._lock:
            return [rid for rid, res in self._resources.items() if kind in (None, res.kind)]

    def close(self):
        """Stop the job pool"""
        self._executor.shutdown(wait=True)
        logger.info("Local modeling service closed", resources=len(self._resources))

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _submit(self, kind: str, meta: dict, build: Callable[[_Resource], dict]) -> str:
        resource_id = self._new_id(kind)
        resource = _Resource(kind=kind, meta={"id": resource_id, "status": QUEUED, **meta})
        self._register(resource_id, resource)
        resource.future = self._executor.submit(self._run_job, resource, build)
        return resource_id

    def _run_job(self, resource: _Resource, build: Callable[[_Resource], dict]):
        resource_id = resource.meta["id"]
        try:
            result = build(resource)
        except Exception as e:
            logger.error(
                "Job failed",
                resource_id=resource_id,
                error=str(e),
                structured=isinstance(e, ClusteringError),
            )
            with self._lock:
                resource.error = e
                resource.meta.update(status=FAULTY, error=str(e))
            return

        with self._lock:
            resource.meta.update(result)
            resource.meta["status"] = FINISHED

    def _get(self, resource_id: str) -> _Resource:
        with self._lock:
            resource = self._resources.get(resource_id)
        if resource is None:
            raise ServiceFailure(f"Resource {resource_id} not found", resource_id=resource_id)
        return resource

    def _register(self, resource_id: str, resource: _Resource):
        with self._lock:
            self._resources[resource_id] = resource

    @staticmethod
    def _new_id(kind: str) -> str:
        return f"{kind}/{uuid.uuid4().hex[:24]}"

    @staticmethod
    def _dataset_meta(
        resource_id: str, name: str, frame: pd.DataFrame, input_fields: list[str]
    ) -> dict[str, Any]:
        return {
            "id": resource_id,
            "name": name,
            "rows": len(frame),
            "fields": frame.columns.tolist(),
            "input_fields": list(input_fields),
            "status": FINISHED,
        }


def _to_python(value):
    """Convert numpy scalars to plain Python values"""
    return value.item() if isinstance(value, np.generic) else value
