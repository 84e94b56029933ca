"""
Command-line entry point.

    python main.py "tacos" --cuisine mexican --diet vegan --count 3
    python main.py "curry" --cuisine thai --stream
"""

import argparse
import asyncio
import json
import sys
from typing import Any, Dict, List, Optional

from config import PipelineConfig, configure_logging
from search.errors import InvalidRequestError
from search.orchestrator import (
    PipelineOptions,
    run_discovery_pipeline,
    stream_discovery_pipeline,
)


def build_request(args: argparse.Namespace) -> Dict[str, Any]:
    """Map CLI arguments onto a search request payload."""
    return {
        "topic": args.topic,
        "cuisine": args.cuisine,
        "country": args.country,
        "dietary_restrictions": args.diet or [],
        "include_ingredients": args.include or [],
        "exclude_ingredients": args.exclude or [],
        "max_time_minutes": args.max_time,
        "difficulty": args.difficulty,
        "count": args.count,
    }


async def _run(request: Dict[str, Any], options: PipelineOptions, stream: bool) -> int:
    if stream:
        async for event in stream_discovery_pipeline(request, options):
            print(json.dumps(event.to_dict()), flush=True)
        return 0

    result = await run_discovery_pipeline(request, options)
    print(json.dumps(result.to_dict(), indent=2))
    return 1 if not result.records else 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Discover and extract recipes from the web.")
    parser.add_argument("topic", nargs="?", default="", help="Dish or topic, e.g. 'tacos'.")
    parser.add_argument("--cuisine", help="Cuisine tag, e.g. 'mexican'.")
    parser.add_argument("--country", help="Country or region.")
    parser.add_argument("--diet", action="append", help="Dietary restriction (repeatable).")
    parser.add_argument("--include", action="append", help="Required ingredient (repeatable).")
    parser.add_argument("--exclude", action="append", help="Excluded ingredient (repeatable).")
    parser.add_argument("--max-time", type=int, help="Time budget in minutes.")
    parser.add_argument("--difficulty", choices=["easy", "moderate", "advanced"])
    parser.add_argument("--count", type=int, default=3, help="Number of recipes (1-10).")
    parser.add_argument("--stream", action="store_true", help="Print progress events as JSON lines.")
    parser.add_argument("--env-file", help="Path to a .env file.")
    parser.add_argument("--log-level", help="Logging level (default from LOG_LEVEL or INFO).")

    args = parser.parse_args(argv)
    configure_logging(args.log_level)
    options = PipelineOptions(config=PipelineConfig.from_env(args.env_file))

    try:
        return asyncio.run(_run(build_request(args), options, args.stream))
    except InvalidRequestError as exc:
        print(f"Invalid request: {exc}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
