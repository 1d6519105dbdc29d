"""
CLI for k-means minus-minus anomaly detection.

Usage:
    python -m src.anomaly.detect --input data.csv [options]
"""

import argparse
import json
import logging
import os
import sys

import structlog

from src.core.logger import setup_logging
from src.services import get_service, list_services

from .loop import find_anomalies
from .models import AnomalyConfig

logger = structlog.get_logger(__name__)


def parse_arguments(argv=None):
    """Parse command-line arguments"""
    parser = argparse.ArgumentParser(
        description="Detect anomalies with iterative k-means (k-means minus-minus)",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
        Examples:
        # Basic usage
        python -m src.anomaly.detect --input data/iris.csv

        # Custom configuration
        python -m src.anomaly.detect --input data/iris.csv \\
            --k 3 \\
            --anomalies 5 \\
            --threshold 0.8 \\
            --max-iterations 5
        """,
    )

    parser.add_argument("--input", required=True, help="CSV file with the rows to analyze")
    parser.add_argument(
        "--service",
        default=os.getenv("MODELING_SERVICE", "local"),
        choices=list_services(),
        help="Modeling service backend (default: local)",
    )

    # Loop parameters
    parser.add_argument(
        "--k",
        type=int,
        default=int(os.getenv("KMEANS_K", "5")),
        help="Number of centroids per round (default: 5)",
    )
    parser.add_argument(
        "--anomalies",
        type=int,
        default=int(os.getenv("KMEANS_ANOMALIES", "10")),
        help="Anomalies extracted per round (default: 10)",
    )
    parser.add_argument(
        "--threshold",
        type=float,
        default=float(os.getenv("KMEANS_JACCARD_THRESHOLD", "0.8")),
        help="Jaccard similarity that ends the loop (default: 0.8)",
    )
    parser.add_argument(
        "--max-iterations",
        type=int,
        default=int(os.getenv("KMEANS_MAX_ITERATIONS", "10")),
        help="Maximum number of rounds (default: 10)",
    )
    parser.add_argument("--seed", type=int, help="Seed for the clustering builds")

    # Output
    parser.add_argument("--output", help="Write the JSON result to this file (default: stdout)")

    # Logging
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=os.getenv("LOG_LEVEL", "INFO"),
        help="Logging level (default: INFO)",
    )

    return parser.parse_args(argv)


def build_config(args) -> AnomalyConfig:
    """Build configuration from arguments"""
    cluster_args = {}
    if args.seed is not None:
        cluster_args["seed"] = args.seed

    return AnomalyConfig(
        k=args.k,
        anomaly_count=args.anomalies,
        jaccard_threshold=args.threshold,
        max_iterations=args.max_iterations,
        cluster_args=cluster_args,
    )


def write_output(payload: dict, path: str | None):
    text = json.dumps(payload, indent=2, default=str)
    if path:
        with open(path, "w", encoding="utf-8") as fh:
            fh.write(text)
        logger.info("Result written", path=path)
    else:
        print(text)


def main(argv=None):
    """Main entry point"""
    args = parse_arguments(argv)

    # Setup logging
    log_level = getattr(logging, args.log_level)
    setup_logging(level=log_level)

    logger.info("Starting anomaly detection", input=args.input, service=args.service)

    service = None
    try:
        config = build_config(args)
        config.validate()

        service = get_service(args.service)
        dataset_id = service.load_csv(args.input)

        result = find_anomalies(service, dataset_id, config)
        write_output(result.to_dict(), args.output)

        logger.info(
            "Anomaly detection completed",
            state=result.state.value,
            iterations=result.iterations,
            anomalies=result.row_ids,
        )
        return 0

    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 0

    except Exception as e:
        logger.error("Anomaly detection failed", error=str(e), exc_info=True)
        return 1

    finally:
        if service is not None:
            service.close()


if __name__ == "__main__":
    sys.exit(main())
