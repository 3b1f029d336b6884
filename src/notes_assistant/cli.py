"""
Command-line front end for the literature pipeline.

Searches Scopus for papers related to a prompt, streams a citation for every
summarized paper, and renders the resulting literature review in the terminal.
Needs OPENAI_API_KEY and SCOPUS_API_KEY in the environment.
"""
import argparse
import asyncio
import logging
import sys
from typing import List

from rich.console import Console

from . import constants
from .config import AssistantConfig, ConfigError
from .interface_adapter import TerminalAdapter
from .literature import ResearchStage
from .logging_config import configure_logging
from .models import get_default_model
from .provider import TextGenerationProvider
from .workflow import ResearchRunner

logger = logging.getLogger(__name__)


def parse_arguments(args: List[str] = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Args:
        args: List of command-line arguments (for testing). If None, uses sys.argv.

    Returns:
        Parsed arguments namespace
    """
    parser = argparse.ArgumentParser(
        description="Write a literature review for a prompt from Scopus search results"
    )

    parser.add_argument(
        '--papers',
        type=int,
        default=constants.DEFAULT_N_PAPERS,
        help=f'Number of search results to sample papers from (default: {constants.DEFAULT_N_PAPERS})'
    )

    parser.add_argument(
        '--paper-tokens',
        type=float,
        default=constants.DEFAULT_PAPER_TOKENS_PERCENT,
        help=f'Share of max tokens, in percent, used for paper summaries '
             f'(default: {constants.DEFAULT_PAPER_TOKENS_PERCENT})'
    )

    parser.add_argument(
        '--only-search',
        action='store_true',
        help='List the papers and their summaries without writing a review'
    )

    parser.add_argument(
        '--loglevel',
        type=str,
        choices=['ERROR', 'WARNING', 'INFO', 'DEBUG'],
        default=None,
        help='Log to the terminal at this level'
    )

    parser.add_argument(
        '--logfile',
        type=str,
        default=None,
        help='Also write log messages to this file'
    )

    parser.add_argument(
        'prompt',
        type=str,
        help='The research prompt'
    )

    return parser.parse_args(args)


def validate_arguments(args: argparse.Namespace) -> None:
    """
    Validate parsed command-line arguments.

    Raises:
        SystemExit: If validation fails (exits with status 1)
    """
    if args.papers < 1:
        print("❌ Error: --papers must be at least 1", file=sys.stderr)
        sys.exit(1)
    if not (0.0 < args.paper_tokens <= 100.0):
        print("❌ Error: --paper-tokens must be between 0 and 100", file=sys.stderr)
        sys.exit(1)
    if not args.prompt.strip():
        print("❌ Error: the prompt is empty", file=sys.stderr)
        sys.exit(1)


def main() -> None:
    """Main entry point of the notes-research command."""
    args = parse_arguments()
    validate_arguments(args)
    configure_logging(loglevel=args.loglevel, logfile=args.logfile)

    console = Console()
    interface = TerminalAdapter(console)
    try:
        config = AssistantConfig.from_env()
        provider = TextGenerationProvider(get_default_model(), interface)
    except ConfigError as e:
        print(f"❌ Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    runner = ResearchRunner(provider, interface, config)
    try:
        result = asyncio.run(runner.research(args.prompt, n_papers=args.papers,
                                             paper_tokens_percent=args.paper_tokens,
                                             only_search=args.only_search))
    except KeyboardInterrupt:
        print("\nGoodbye!")
        sys.exit(1)

    if result.stage == ResearchStage.ABORTED:
        sys.exit(1)


if __name__ == "__main__":
    main()
