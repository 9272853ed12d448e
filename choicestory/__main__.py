"""
Choice Story CLI entry point.

Provides command-line access to text generation and the prompt-length guard.
"""

import argparse
import asyncio
import sys
from pathlib import Path

from pydantic import ValidationError

from choicestory import __version__
from choicestory.config.logging import get_logger, setup_logging
from choicestory.config.settings import Settings, load_settings
from choicestory.textgen.components import TextGenerationComponents


def create_parser() -> argparse.ArgumentParser:
    """Create and configure argument parser."""
    parser = argparse.ArgumentParser(
        prog="choicestory",
        description="Story text generation with provider fallback",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"Choice Story {__version__}",
    )

    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Path to .env file (default: .env in current directory)",
    )

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=None,
        help="Override logging level from config",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser(
        "config",
        help="Show current configuration",
    )

    generate_parser = subparsers.add_parser(
        "generate",
        help="Generate text for a prompt (Gemini first, OpenAI as fallback)",
    )
    generate_parser.add_argument(
        "prompt",
        help='Prompt text, e.g. "Tell a story about a fox"',
    )
    generate_parser.add_argument(
        "--max-tokens",
        type=int,
        default=None,
        help="Cap on generated tokens (default: provider default)",
    )
    generate_parser.add_argument(
        "--no-guard",
        action="store_true",
        help="Skip the prompt-length guard",
    )

    shorten_parser = subparsers.add_parser(
        "shorten",
        help="Condense a prompt to the configured length ceiling",
    )
    shorten_parser.add_argument(
        "prompt",
        nargs="?",
        default=None,
        help="Prompt text to condense",
    )
    shorten_parser.add_argument(
        "--file",
        type=Path,
        default=None,
        help="Read the prompt from a file",
    )

    return parser


def cmd_config(settings: Settings) -> int:
    """Show current configuration."""
    logger = get_logger(__name__)

    logger.info("\n=== Choice Story Configuration ===\n")
    logger.info(f"Environment: {settings.environment}")
    logger.info(f"Log Level: {settings.log_level}")
    logger.info(f"Log File: {settings.log_file or 'None (console only)'}")
    logger.info(f"\nGemini Models: {', '.join(settings.gemini.models)}")
    logger.info(f"Gemini API Key: {'Set' if settings.gemini.api_key else 'Not set'}")
    logger.info(f"\nOpenAI Model: {settings.openai.model}")
    logger.info(f"OpenAI Temperature: {settings.openai.temperature}")
    logger.info(f"OpenAI API Key: {'Set' if settings.openai.api_key else 'Not set'}")
    logger.info(f"\nRetry Attempts: {settings.retry.max_attempts}")
    logger.info(f"Retry Initial Delay: {settings.retry.initial_delay_ms}ms")
    logger.info(f"\nPrompt Max Length: {settings.prompt_guard.max_length}")
    logger.info(f"Prompt Summary Target: {settings.prompt_guard.target_length}")
    logger.info(f"Prompt Summary Attempts: {settings.prompt_guard.max_attempts}")

    return 0


async def cmd_generate(args, settings: Settings) -> int:
    """
    Generate text for a prompt and print it.

    Returns:
        Exit code (0 for success, 1 for error)
    """
    logger = get_logger(__name__)

    factory = TextGenerationComponents(settings)
    orchestrator = factory.create_orchestrator(with_prompt_guard=not args.no_guard)

    try:
        outcome = await orchestrator.generate_text(args.prompt, max_output_tokens=args.max_tokens)
    except ValidationError as e:
        logger.error(f"Invalid input: {e}")
        return 1

    if not outcome.success:
        print(f"\n{outcome.message}", file=sys.stderr)
        if outcome.is_auth_failure:
            print(
                f"Tip: Set {outcome.provider_name.upper()}_API_KEY in your .env file.",
                file=sys.stderr,
            )
        return 1

    print(f"\n=== {outcome.provider_name} / {outcome.model} ===\n")
    print(outcome.text)
    return 0


async def cmd_shorten(args, settings: Settings) -> int:
    """
    Run the prompt-length guard and print the result.

    Returns:
        Exit code (0 for success, 1 for error)
    """
    logger = get_logger(__name__)

    if (args.file is None) == (args.prompt is None):
        logger.error("Provide exactly one of PROMPT or --file")
        return 1

    if args.file is not None:
        if not args.file.exists():
            logger.error(f"Prompt file does not exist: {args.file}")
            return 1
        prompt = args.file.read_text(encoding="utf-8").strip()
    else:
        prompt = args.prompt

    guard = TextGenerationComponents(settings).create_prompt_guard()
    result = await guard.ensure_length(prompt)

    print(result)
    print(f"\n--- {len(prompt)} -> {len(result)} characters (limit {guard.max_length}) ---")
    return 0


def main() -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args()

    try:
        settings = load_settings(env_file=args.env_file)
    except Exception as e:
        print(f"Error loading settings: {e}", file=sys.stderr)
        return 1

    if args.log_level:
        settings.log_level = args.log_level

    setup_logging(settings)

    if args.command == "config":
        return cmd_config(settings)
    elif args.command == "generate":
        return asyncio.run(cmd_generate(args, settings))
    elif args.command == "shorten":
        return asyncio.run(cmd_shorten(args, settings))
    else:
        parser.print_help()
        return 0


if __name__ == "__main__":
    sys.exit(main())
