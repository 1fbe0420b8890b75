"""
Prediction Pass Script
======================

Run one full collection and prediction pass from the command line and
optionally save the result set as JSON.

Usage:
    python scripts/run_pass.py --token <token>
    python scripts/run_pass.py --token <token> --output predictions.json
    python scripts/run_pass.py --token <token> --save
"""

import argparse
import asyncio
import os
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from loguru import logger

from config import get_config, OUTPUTS_DIR
from runinsight.cache import PassResult, ResultCache
from runinsight.utils import get_timestamp, setup_logging


def parse_args():
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Run one churn prediction pass")

    parser.add_argument(
        "--token",
        type=str,
        default=os.getenv("RUNINSIGHT_TOKEN"),
        help="Gateway credential (defaults to $RUNINSIGHT_TOKEN)"
    )
    parser.add_argument(
        "--output",
        type=str,
        default=None,
        help="Path of the JSON file to write"
    )
    parser.add_argument(
        "--save",
        action="store_true",
        help="Write the result to outputs/ with a timestamped name"
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level"
    )

    return parser.parse_args()


async def run_pass(config: dict, token: str) -> PassResult:
    result_cache = ResultCache.from_config(config)
    try:
        return await result_cache.refresh(token)
    finally:
        await result_cache.aclose()


def main():
    """Main pass function."""
    args = parse_args()

    setup_logging(level=args.log_level, log_file="pass.log")

    if not args.token:
        logger.error("A gateway token is required (--token or RUNINSIGHT_TOKEN)")
        sys.exit(1)

    config = get_config()
    result = asyncio.run(run_pass(config, args.token))

    metadata = result.metadata
    logger.info(f"Users scored: {metadata.total_users}")
    logger.info(
        f"Risk tiers: {metadata.high_risk_users} high, "
        f"{metadata.medium_risk_users} medium, {metadata.low_risk_users} low"
    )
    logger.info(f"Model predictions: {metadata.model_predictions}, fallback: {metadata.fallback_predictions}")

    for error in result.collection_errors:
        logger.warning(f"Collection error [{error.category}/{error.kind}] user={error.user_id}: {error.error}")
    for error in result.prediction_errors:
        logger.warning(f"Prediction error user={error.user_id}: {error.error}")

    output_path = None
    if args.output:
        output_path = Path(args.output)
    elif args.save:
        output_path = OUTPUTS_DIR / f"predictions_{get_timestamp()}.json"

    if output_path is not None:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(result.model_dump_json(indent=2))
        logger.info(f"Saved result set to {output_path}")


if __name__ == "__main__":
    main()
