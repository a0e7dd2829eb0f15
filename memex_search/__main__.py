"""CLI entry point for querying the search store.

Usage:
    python -m memex_search [options] {blank,terms,stats} ...

Options:
    --config PATH        Path to config.yaml (default: ./config.yaml)
    --state-dir PATH     Path to state directory (overrides config)
    --log-level LEVEL    Log level (default: WARNING)
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from memex_search.config import ConfigManager, SearchConfig, apply_env_overrides
from memex_search.engine import UnifiedSearchEngine
from memex_search.models import SearchError
from memex_search.store import SQLiteStore

logger = logging.getLogger(__name__)


def parse_args(args: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments.

    Args:
        args: Command line arguments (defaults to sys.argv[1:]).

    Returns:
        Parsed arguments namespace.
    """
    parser = argparse.ArgumentParser(
        prog="memex_search",
        description="Memex Search - unified blank and terms search",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Most recent day of activity
    python -m memex_search blank

    # Next page, continuing from the previous result's nextUntilWhen
    python -m memex_search blank --until-when 1711310400000

    # Pages and highlights mentioning both words and an exact phrase
    python -m memex_search terms 'memex "associative trails"' --domain example.com

    # Bookmarked pages about memex that do not mention wikipedia
    python -m memex_search terms memex --bookmarks-only --exclude-term wikipedia
""",
    )

    parser.add_argument(
        "--config",
        type=Path,
        default=Path("config.yaml"),
        help="Path to config.yaml (default: ./config.yaml)",
    )
    parser.add_argument(
        "--state-dir",
        type=Path,
        default=None,
        help="Path to state directory (default: from config)",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level (default: WARNING)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    blank = subparsers.add_parser("blank", help="Recency search without a query")
    blank.add_argument("--from-when", type=int, default=0, help="Lower bound, epoch ms")
    blank.add_argument("--until-when", type=int, default=None, help="Upper bound, epoch ms")
    blank.add_argument("--days", type=int, default=None, help="Window size in days")

    terms = subparsers.add_parser("terms", help="Search by terms and quoted phrases")
    terms.add_argument("query", help="Search query")
    terms.add_argument("--from-when", type=int, default=None, help="Lower bound, epoch ms")
    terms.add_argument("--until-when", type=int, default=None, help="Upper bound, epoch ms")
    terms.add_argument(
        "--domain", dest="domains", action="append", default=[], help="Include domain"
    )
    terms.add_argument(
        "--exclude-domain",
        dest="domains_exclude",
        action="append",
        default=[],
        help="Exclude domain",
    )
    terms.add_argument(
        "--exclude-term",
        dest="terms_exclude",
        action="append",
        default=[],
        help="Drop results containing this term",
    )
    terms.add_argument(
        "--bookmarks-only",
        action="store_true",
        help="Only bookmarked pages and their annotations",
    )
    terms.add_argument(
        "--prefix",
        action="store_true",
        default=None,
        help="Prefix-match page terms",
    )
    terms.add_argument("--limit", type=int, default=None, help="Max results")
    terms.add_argument("--skip", type=int, default=0, help="Results to skip")

    subparsers.add_parser("stats", help="Show store row counts")

    return parser.parse_args(args)


def setup_logging(level: str) -> None:
    """Configure logging.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
    """
    logging.basicConfig(
        level=getattr(logging, level),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )


def load_config(parsed: argparse.Namespace) -> SearchConfig:
    """Load config from file, then apply environment and CLI overrides."""
    config = apply_env_overrides(ConfigManager(parsed.config.absolute()).load())
    if parsed.state_dir is not None:
        config.state_dir = parsed.state_dir.absolute()
    return config


async def run_command(parsed: argparse.Namespace, config: SearchConfig) -> dict:
    """Open the store, run the requested command and return its JSON payload."""
    store = SQLiteStore(config.state_dir)
    await store.initialize()
    try:
        if parsed.command == "stats":
            return await store.get_stats()

        engine = UnifiedSearchEngine(store, config=config)
        async with store.read_snapshot():
            if parsed.command == "blank":
                result = await engine.unified_blank_search(
                    from_when=parsed.from_when,
                    until_when=parsed.until_when,
                    days_to_search=parsed.days,
                )
            else:
                result = await engine.unified_terms_search(
                    parsed.query,
                    from_when=parsed.from_when,
                    until_when=parsed.until_when,
                    domains=parsed.domains,
                    domains_exclude=parsed.domains_exclude,
                    bookmarks_only=parsed.bookmarks_only,
                    terms_exclude=parsed.terms_exclude,
                    starts_with_matching=parsed.prefix,
                    limit=parsed.limit,
                    skip=parsed.skip,
                )
        return result.to_dict()
    finally:
        await store.close()


def main(args: list[str] | None = None) -> int:
    """Main entry point.

    Args:
        args: Command line arguments (defaults to sys.argv[1:]).

    Returns:
        Exit code (0 for success, 2 for invalid parameters, 1 for other errors).
    """
    parsed = parse_args(args)
    setup_logging(parsed.log_level)

    try:
        config = load_config(parsed)
        payload = asyncio.run(run_command(parsed, config))
    except (SearchError, ValueError) as e:
        logger.error(f"Invalid search parameters: {e}")
        return 2
    except Exception as e:
        logger.error(f"Search failed: {e}")
        return 1

    print(json.dumps(payload, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
