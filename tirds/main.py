"""
Command-line entry point.

Reads a TradeProposal (JSON) from --input or stdin, evaluates it and writes
the TradeDecision JSON to stdout. Logs go to stderr.

Exit codes:
  0 - decision written
  1 - unexpected error, or the inference CLI is unavailable (--check-cli)
  2 - malformed configuration
  3 - invalid proposal
  4 - evaluation aborted (cache unavailable)
  5 - all specialists failed
  6 - synthesis failed
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

from .agents.claude_cli import check_cli_available
from .cache.reader import CacheReader
from .config import DEFAULT_CONFIG_PATH, TirdsSettings, load_config
from .errors import InvalidProposal, TirdsError, exit_code_for
from .schemas import TradeDecision, TradeProposal
from .service import build_orchestrator, configure_logging

logger = logging.getLogger("tirds.main")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="tirds",
        description="Evaluate a trade proposal against cached market intelligence",
    )
    parser.add_argument(
        "--config",
        help=f"TOML configuration file (default: {DEFAULT_CONFIG_PATH} if present)",
    )
    parser.add_argument(
        "--input", "-i",
        type=Path,
        help="Read the TradeProposal JSON from this file instead of stdin",
    )
    parser.add_argument(
        "--pretty",
        action="store_true",
        help="Pretty-print the decision JSON",
    )
    parser.add_argument(
        "--log-level",
        help="Override the configured log level",
    )
    parser.add_argument(
        "--check-cli",
        action="store_true",
        help="Only check that the inference CLI is installed",
    )
    parser.add_argument(
        "--serve",
        action="store_true",
        help="Run the HTTP service instead of a single evaluation",
    )
    return parser.parse_args(argv)


def read_proposal(path: Optional[Path]) -> TradeProposal:
    try:
        text = path.read_text(encoding="utf-8") if path else sys.stdin.read()
    except OSError as e:
        raise InvalidProposal(f"cannot read {path}: {e}") from e
    if not text.strip():
        raise InvalidProposal("empty input")
    try:
        return TradeProposal.model_validate_json(text)
    except ValidationError as e:
        raise InvalidProposal(f"invalid trade proposal: {e}") from e


async def run_evaluation(settings: TirdsSettings, proposal: TradeProposal) -> TradeDecision:
    cache = CacheReader(settings.cache)
    try:
        orchestrator = build_orchestrator(settings, cache)
        return await orchestrator.evaluate(proposal)
    finally:
        cache.close()


def _report_error(err: TirdsError) -> int:
    logger.error(f"{err.tag}: {err.message}")
    sys.stderr.write(json.dumps(err.to_dict()) + "\n")
    return exit_code_for(err)


def _serve(settings: TirdsSettings) -> int:
    import uvicorn

    from . import api

    api.init_service(settings)
    uvicorn.run(
        api.app,
        host=settings.server.host,
        port=settings.server.port,
        log_level=settings.log_level.lower(),
    )
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for CLI."""
    args = parse_args(argv)

    try:
        if args.config is None:
            settings = load_config(DEFAULT_CONFIG_PATH, required=False)
        else:
            settings = load_config(args.config)
    except TirdsError as e:
        configure_logging(args.log_level or "INFO")
        return _report_error(e)

    configure_logging(args.log_level or settings.log_level)

    if args.check_cli:
        available = asyncio.run(check_cli_available(settings.agents.cli_command))
        return 0 if available else 1

    if args.serve:
        return _serve(settings)

    try:
        proposal = read_proposal(args.input)
        decision = asyncio.run(run_evaluation(settings, proposal))
    except TirdsError as e:
        return _report_error(e)

    sys.stdout.write(decision.model_dump_json(indent=2 if args.pretty else None) + "\n")
    sys.stdout.flush()
    return 0


if __name__ == "__main__":
    sys.exit(main())
