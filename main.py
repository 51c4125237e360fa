# -----------------------------------------------------------------------------
# Author: Frank Campbell Bogle
# Created: 2026-10-12
# Description: main.py
# -----------------------------------------------------------------------------
import argparse
import asyncio
import sys

import settings
from utility.logging_utils import get_logger

logger = get_logger("main")


async def _label_batch(limit: int) -> int:
    from app.AppContainer import get_container

    container = get_container()
    try:
        result = await container.label_batch.run(limit=limit)
    finally:
        await container.aclose()

    print("\n=== Label Batch ===")
    for key, value in result.summary().items():
        print(f"{key}: {value}")
    return 0 if result.failed == 0 else 1


async def _health() -> int:
    from app.AppContainer import get_container

    container = get_container()
    try:
        results = await container.test_runner.run_all()
    finally:
        await container.aclose()

    print("\n=== Smoke Test Results ===")
    for name, ok in results.items():
        print(f"{name}: {'PASS' if ok else 'FAIL'}")

    overall_ok = all(results.values())
    print(f"\nOverall smoke test result: {'PASS' if overall_ok else 'FAIL'}")
    return 0 if overall_ok else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Recommendation engine batch entry point")
    sub = parser.add_subparsers(dest="command", required=True)

    label = sub.add_parser("label-batch", help="Assign canonical labels to selected missions")
    label.add_argument("--limit", type=int, default=settings.LABEL_BATCH_SIZE)

    sub.add_parser("health", help="Run smoke checks against every external dependency")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logger.info("Command: %s", args.command)

    if args.command == "label-batch":
        return asyncio.run(_label_batch(args.limit))
    return asyncio.run(_health())


if __name__ == "__main__":
    sys.exit(main())
