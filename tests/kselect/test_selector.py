"""
Tests for KSelector and best-k selection.
"""

from unittest.mock import patch

import pytest

from src.core.errors import InvalidArgumentError, ServiceFailure
from src.kselect.evaluator import alpha
from src.kselect.models import EvaluationRecord, KSelectionConfig, SelectionResult
from src.kselect.selector import KSelector, pick_best, select_k

# within_ss per k; k=3 gives the largest relative drop
WITHIN_SS = {2: 60.0, 3: 12.0, 4: 10.0}


@pytest.fixture
def selector_service(mock_service):
    """Service double with deterministic candidate clusters."""
    counter = {"final": 0}

    def create_cluster(dataset_id, k, args=None, name=None):
        if name and "final" in name:
            counter["final"] += 1
            return f"cluster/final-{k}"
        return f"cluster/{k}"

    def fetch(resource_id):
        if resource_id.startswith("dataset/"):
            return {"name": "blobs"}
        k = int(resource_id.rsplit("-", 1)[-1].split("/")[-1])
        return {
            "name": f"blobs - k={k}",
            "k": k,
            "input_fields": ["x", "y"],
            "within_ss": WITHIN_SS[k],
            "total_ss": 100.0,
        }

    mock_service.create_cluster.side_effect = create_cluster
    mock_service.fetch.side_effect = fetch
    mock_service.wait_all.side_effect = lambda ids: list(ids)
    return mock_service


def deleted_ids(service):
    return [c.args[0] for c in service.delete.call_args_list]


class TestPickBest:
    """Tests for pick_best."""

    def test_minimum_score(self):
        records = [
            EvaluationRecord("cluster/2", 2, 2, 60.0, 100.0, 0.96),
            EvaluationRecord("cluster/3", 3, 2, 12.0, 100.0, 0.29),
            EvaluationRecord("cluster/4", 4, 2, 10.0, 100.0, 1.13),
        ]
        assert pick_best(records).k == 3

    def test_ties_go_to_smallest_k(self):
        records = [
            EvaluationRecord("cluster/2", 2, 2, 1.0, 1.0, 0.5),
            EvaluationRecord("cluster/3", 3, 2, 1.0, 1.0, 0.5),
        ]
        assert pick_best(records).cluster_id == "cluster/2"

    def test_empty_is_a_programming_error(self):
        with pytest.raises(RuntimeError):
            pick_best([])


class TestKSelectionConfig:
    """Tests for KSelectionConfig."""

    @pytest.mark.parametrize("k_min,k_max", [(0, 3), (4, 3)])
    def test_invalid_range(self, k_min, k_max):
        with pytest.raises(InvalidArgumentError):
            KSelectionConfig(k_min=k_min, k_max=k_max).validate()

    @pytest.mark.parametrize(
        "search_args,final_args,rebuild",
        [
            ({"seed": 1}, None, False),
            ({"seed": 1}, {"seed": 1}, False),
            ({"seed": 1}, {"seed": 1, "n_init": 20}, True),
        ],
    )
    def test_rebuild_final(self, search_args, final_args, rebuild):
        config = KSelectionConfig(search_args=search_args, final_args=final_args)
        assert config.rebuild_final is rebuild


class TestKSelector:
    """Tests for KSelector.select against a service double."""

    def test_selects_minimum(self, selector_service, selection_config):
        """Test that the lowest f(k) wins."""
        result = KSelector(selector_service, selection_config).select("dataset/1")

        assert result.k == 3
        assert result.cluster_id == "cluster/3"
        assert [r.k for r in result.evaluations] == [2, 3, 4]
        assert result.best.score == pytest.approx(12.0 / (alpha(3, 2) * 60.0))
        assert result.rebuilt is False

    def test_same_args_reuse_winner_and_clean(self, selector_service):
        """Test that identical search and final args reuse the winner and delete the rest."""
        config = KSelectionConfig(
            k_min=2, k_max=4, search_args={"seed": 1}, final_args={"seed": 1}, clean=True
        )

        result = KSelector(selector_service, config).select("dataset/1")

        assert result.cluster_id == "cluster/3"
        assert sorted(deleted_ids(selector_service)) == ["cluster/2", "cluster/4"]
        assert selector_service.create_cluster.call_count == 3

    def test_different_final_args_rebuild(self, selector_service):
        """Test that different final args build a fresh cluster at the best k."""
        config = KSelectionConfig(
            k_min=2, k_max=4, search_args={"n_init": 1}, final_args={"n_init": 20}, clean=True
        )

        result = KSelector(selector_service, config).select("dataset/1")

        assert result.cluster_id == "cluster/final-3"
        assert result.k == 3
        assert result.rebuilt is True
        final_call = selector_service.create_cluster.call_args
        assert final_call.args == ("dataset/1", 3)
        assert final_call.kwargs["args"] == {"n_init": 20}
        selector_service.wait.assert_called_once_with("cluster/final-3")
        assert sorted(deleted_ids(selector_service)) == ["cluster/2", "cluster/3", "cluster/4"]

    def test_no_clean_keeps_candidates(self, selector_service):
        """Test that candidates survive when clean is off."""
        config = KSelectionConfig(k_min=2, k_max=4, clean=False)

        KSelector(selector_service, config).select("dataset/1")

        selector_service.delete.assert_not_called()

    def test_never_returns_a_deleted_cluster(self, selector_service, selection_config):
        """Test that the returned id is not among the deleted ones."""
        result = KSelector(selector_service, selection_config).select("dataset/1")

        assert result.cluster_id not in deleted_ids(selector_service)

    def test_failure_releases_candidates(self, selector_service, selection_config):
        """Test teardown when a candidate build fails."""
        selector_service.wait_all.side_effect = ServiceFailure("build failed", "cluster/3")

        with pytest.raises(ServiceFailure):
            KSelector(selector_service, selection_config).select("dataset/1")

        assert sorted(deleted_ids(selector_service)) == ["cluster/2", "cluster/3", "cluster/4"]

    def test_invalid_config_fails_fast(self, selector_service):
        """Test that a bad range never reaches the service."""
        with pytest.raises(InvalidArgumentError):
            KSelector(selector_service, KSelectionConfig(k_min=5, k_max=2))

        assert selector_service.method_calls == []

    def test_logging_failure_does_not_change_result(self, selector_service):
        """Test that the log side channel is best effort."""
        config = KSelectionConfig(k_min=2, k_max=4, log_evaluations=True)

        with patch("src.kselect.selector.pd.DataFrame", side_effect=Exception("no pandas")):
            result = KSelector(selector_service, config).select("dataset/1")

        assert result.k == 3
        assert result.cluster_id == "cluster/3"

    def test_log_evaluations(self, selector_service):
        """Test that logging the evaluations keeps the result intact."""
        config = KSelectionConfig(k_min=2, k_max=4, log_evaluations=True)

        with patch("src.kselect.selector.logger") as mock_logger:
            result = KSelector(selector_service, config).select("dataset/1")

        events = [c.args[0] for c in mock_logger.info.call_args_list]
        assert events == ["K evaluations", "Best k selected"]
        assert result.k == 3


class TestSelectionResult:
    """Tests for SelectionResult."""

    def test_to_dict(self):
        record = EvaluationRecord("cluster/2", 2, 2, 60.0, 100.0, 0.96)
        result = SelectionResult(cluster_id="cluster/2", k=2, evaluations=[record])

        assert result.to_dict() == {
            "cluster_id": "cluster/2",
            "k": 2,
            "rebuilt": False,
            "evaluations": [
                {
                    "cluster_id": "cluster/2",
                    "k": 2,
                    "n": 2,
                    "within_ss": 60.0,
                    "total_ss": 100.0,
                    "score": 0.96,
                }
            ],
        }


class TestSelectKEndToEnd:
    """Tests against the local modeling service."""

    def test_single_candidate(self, local_service, blobs_dataset):
        """Test k_min == k_max == 2: one candidate scored against total_ss."""
        config = KSelectionConfig(k_min=2, k_max=2, clean=True)

        result = select_k(local_service, blobs_dataset, config)

        assert result.k == 2
        assert len(result.evaluations) == 1
        record = result.evaluations[0]
        assert record.score == pytest.approx(
            record.within_ss / (alpha(2, 2) * record.total_ss)
        )
        assert result.cluster_id == record.cluster_id

    def test_finds_three_blobs(self, local_service, clean_blobs_frame):
        """Test that three separated blobs give k = 3."""
        dataset_id = local_service.create_dataset(clean_blobs_frame, name="clean")
        config = KSelectionConfig(k_min=2, k_max=6, clean=True)

        result = select_k(local_service, dataset_id, config)

        assert result.k == 3
        assert local_service.list_resources("cluster") == [result.cluster_id]

    def test_clean_with_same_args(self, local_service, blobs_dataset):
        """Test that only the winning candidate survives and is not rebuilt."""
        config = KSelectionConfig(
            k_min=2, k_max=4, search_args={"seed": 3}, final_args={"seed": 3}, clean=True
        )

        result = select_k(local_service, blobs_dataset, config)

        assert result.rebuilt is False
        assert result.cluster_id == result.best.cluster_id
        assert local_service.list_resources("cluster") == [result.cluster_id]

    def test_rebuild_with_final_args(self, local_service, blobs_dataset):
        """Test that a final cluster with its own args replaces the candidates."""
        config = KSelectionConfig(
            k_min=2, k_max=4, search_args={"n_init": 1}, final_args={"n_init": 5}, clean=True
        )

        result = select_k(local_service, blobs_dataset, config)

        assert result.rebuilt is True
        assert result.cluster_id not in [r.cluster_id for r in result.evaluations]
        assert local_service.list_resources("cluster") == [result.cluster_id]
        assert local_service.fetch(result.cluster_id)["k"] == result.k
