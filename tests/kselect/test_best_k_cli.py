"""
Tests for the best-k CLI.
"""

import json
from unittest.mock import patch

import pytest

from src.kselect.best_k import build_config, main, parse_arguments


@pytest.fixture
def blobs_csv(tmp_path, clean_blobs_frame):
    path = tmp_path / "blobs.csv"
    clean_blobs_frame.to_csv(path, index=False)
    return path


class TestBestKCli:
    """Tests for the best-k entry point."""

    def test_build_config_same_args(self):
        """Test that without final settings the search cluster is reused."""
        config = build_config(parse_arguments(["--input", "x.csv", "--seed", "1"]))

        assert config.search_args == {"seed": 1}
        assert config.final_args is None
        assert config.rebuild_final is False
        assert config.clean is True
        assert config.log_evaluations is False

    def test_build_config_final_args(self):
        """Test separate search and final settings."""
        args = parse_arguments(
            [
                "--input", "x.csv",
                "--seed", "1",
                "--search-n-init", "1",
                "--final-n-init", "20",
                "--no-clean",
                "--log-evaluations",
            ]
        )
        config = build_config(args)

        assert config.search_args == {"seed": 1, "n_init": 1}
        assert config.final_args == {"seed": 1, "n_init": 20}
        assert config.rebuild_final is True
        assert config.clean is False
        assert config.log_evaluations is True

    def test_main_writes_result(self, blobs_csv, tmp_path):
        """Test a full run writing JSON output."""
        output = tmp_path / "result.json"

        exit_code = main(
            ["--input", str(blobs_csv), "--k-min", "2", "--k-max", "5", "--output", str(output)]
        )

        assert exit_code == 0
        payload = json.loads(output.read_text())
        assert payload["k"] == 3
        assert [r["k"] for r in payload["evaluations"]] == [2, 3, 4, 5]

    def test_main_invalid_range(self, blobs_csv):
        """Test that k_max < k_min exits with an error code."""
        assert main(["--input", str(blobs_csv), "--k-min", "5", "--k-max", "2"]) == 1

    def test_main_missing_file(self, tmp_path):
        """Test that an unreadable input exits with an error code."""
        assert main(["--input", str(tmp_path / "missing.csv")]) == 1

    def test_main_interrupted(self, blobs_csv):
        """Test that an interrupt exits cleanly."""
        with patch("src.kselect.best_k.select_k", side_effect=KeyboardInterrupt):
            assert main(["--input", str(blobs_csv)]) == 0
