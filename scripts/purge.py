#!/usr/bin/env python3
"""
Purge Runner

Sends invalidations to the Section proxy from the command line.

Usage:
    # Configure the purger first (or use a .env file):
    export SECTION_PURGER_ACCOUNT=1234
    export SECTION_PURGER_APPLICATION=5678
    export SECTION_PURGER_USERNAME=me@example.com
    export SECTION_PURGER_PASSWORD_KEY=section_api
    export SECTION_PURGER_KEY_SECTION_API=secret

    # Invalidate tags (bundled into one request):
    python scripts/purge.py tag node:1 node:2 config:system.site

    # Invalidate a path, one request per item:
    python scripts/purge.py path "news/*" --single

    # Show the ban expression without sending it:
    python scripts/purge.py url https://example.com/news/1 --dry-run
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv

from section_purger.purge import (
    ExpressionCompiler,
    InvalidExpressionError,
    Invalidation,
    InvalidationState,
    InvalidationType,
    PurgerSettings,
    create_purger,
    process,
)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)
logging.getLogger("httpx").setLevel(logging.WARNING)


def print_expressions(settings: PurgerSettings, invalidations) -> int:
    """Print the compiled ban expressions."""
    compiler = ExpressionCompiler(site_name=settings.site_name, tags_header=settings.tags_header)
    failures = 0
    for invalidation in invalidations:
        try:
            invalidation.validate_expression()
            print(compiler.compile(invalidation.type, invalidation.expression))
        except InvalidExpressionError as e:
            failures += 1
            print(f"INVALID {invalidation.expression!r}: {e}", file=sys.stderr)
    return 1 if failures else 0


async def run_purge(invalidation_type: str, expressions, single: bool, dry_run: bool) -> int:
    """Process invalidations and print their final states."""
    load_dotenv()
    settings = PurgerSettings()

    if not expressions:
        expressions = [None]
    invalidations = [Invalidation(InvalidationType(invalidation_type), e) for e in expressions]

    if dry_run:
        return print_expressions(settings, invalidations)

    purger = create_purger(settings, bundled=not single)
    logger.info(
        f"Purging {len(invalidations)} {invalidation_type} invalidations via {purger.label} "
        f"({settings.scheme}://{settings.hostname})"
    )

    await process(purger, invalidations)

    failed = 0
    for invalidation in invalidations:
        print(f"{invalidation.state.value:<10} {invalidation.expression or ''}")
        if invalidation.state is not InvalidationState.SUCCEEDED:
            failed += 1

    if purger.get_cooldown_time():
        logger.info(f"Cooldown: wait {purger.get_cooldown_time()}s before purging again")

    return 1 if failed else 0


def main():
    parser = argparse.ArgumentParser(description="Send cache invalidations to Section")
    parser.add_argument(
        "type",
        choices=[t.value for t in InvalidationType],
        help="Invalidation type",
    )
    parser.add_argument("expressions", nargs="*", help="Expressions (tags, URLs, paths, ...)")
    parser.add_argument(
        "--single",
        action="store_true",
        help="Send one request per invalidation instead of bundling",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print the ban expressions without sending them",
    )

    args = parser.parse_args()
    sys.exit(asyncio.run(run_purge(args.type, args.expressions, args.single, args.dry_run)))


if __name__ == "__main__":
    main()
