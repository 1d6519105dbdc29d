"""
CLI for best-k selection.

Usage:
    python -m src.kselect.best_k --input data.csv [options]
"""

import argparse
import json
import logging
import os
import sys

import structlog

from src.core.logger import setup_logging
from src.services import get_service, list_services

from .models import KSelectionConfig
from .selector import select_k

logger = structlog.get_logger(__name__)


def parse_arguments(argv=None):
    """Parse command-line arguments"""
    parser = argparse.ArgumentParser(
        description="Choose k for k-means with the Pham-Dimov-Nguyen evaluation function",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
        Examples:
        # Search k in [2, 10] and keep the winner
        python -m src.kselect.best_k --input data/iris.csv

        # Cheap search, thorough final cluster, keep all candidates
        python -m src.kselect.best_k --input data/iris.csv \\
            --k-min 2 --k-max 8 \\
            --search-n-init 1 --final-n-init 20 \\
            --no-clean --log-evaluations
        """,
    )

    parser.add_argument("--input", required=True, help="CSV file with the rows to cluster")
    parser.add_argument(
        "--service",
        default=os.getenv("MODELING_SERVICE", "local"),
        choices=list_services(),
        help="Modeling service backend (default: local)",
    )

    # Search range
    parser.add_argument(
        "--k-min",
        type=int,
        default=int(os.getenv("KMEANS_K_MIN", "2")),
        help="Smallest candidate k (default: 2)",
    )
    parser.add_argument(
        "--k-max",
        type=int,
        default=int(os.getenv("KMEANS_K_MAX", "10")),
        help="Largest candidate k (default: 10)",
    )

    # Cluster arguments
    parser.add_argument("--seed", type=int, help="Seed shared by every build")
    parser.add_argument("--search-n-init", type=int, help="KMeans restarts for candidates")
    parser.add_argument("--final-n-init", type=int, help="KMeans restarts for the final cluster")

    # Behaviour
    parser.add_argument(
        "--no-clean",
        dest="clean",
        action="store_false",
        help="Keep every candidate cluster (default: delete non-winners)",
    )
    parser.add_argument(
        "--log-evaluations",
        action="store_true",
        help="Log the evaluation table and the winner",
    )

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


def build_config(args) -> KSelectionConfig:
    """Build configuration from arguments"""
    search_args = {}
    if args.seed is not None:
        search_args["seed"] = args.seed
    if args.search_n_init is not None:
        search_args["n_init"] = args.search_n_init

    final_args = None
    if args.final_n_init is not None:
        final_args = {**search_args, "n_init": args.final_n_init}

    return KSelectionConfig(
        k_min=args.k_min,
        k_max=args.k_max,
        search_args=search_args,
        final_args=final_args,
        clean=args.clean,
        log_evaluations=args.log_evaluations,
    )


def main(argv=None):
    """Main entry point"""
    args = parse_arguments(argv)

    # Setup logging
    log_level = getattr(logging, args.log_level)
    setup_logging(level=log_level)

    logger.info("Starting k selection", input=args.input, service=args.service)

    service = None
    try:
        config = build_config(args)
        config.validate()

        service = get_service(args.service)
        dataset_id = service.load_csv(args.input)

        result = select_k(service, dataset_id, config)

        text = json.dumps(result.to_dict(), indent=2, default=str)
        if args.output:
            with open(args.output, "w", encoding="utf-8") as fh:
                fh.write(text)
            logger.info("Result written", path=args.output)
        else:
            print(text)

        logger.info("K selection completed", k=result.k, cluster_id=result.cluster_id)
        return 0

    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 0

    except Exception as e:
        logger.error("K selection failed", error=str(e), exc_info=True)
        return 1

    finally:
        if service is not None:
            service.close()


if __name__ == "__main__":
    sys.exit(main())
