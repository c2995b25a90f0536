"""Main CLI entry point."""

import asyncio
import sys
from typing import List, Optional

from rich.console import Console

from wiremail.utils.config import LoggingConfig
from wiremail.utils.console import get_console, print_error, print_failure, print_warning
from wiremail.utils.errors import ErrorHandler, WiremailError
from wiremail.utils.logging import async_log_call, get_logger, init_logging

from .commands import COMMAND_HANDLERS
from .parser import setup_argument_parser

logger = get_logger(__name__)


@async_log_call
async def dispatch_command(args, console: Console) -> int:
    """Run the handler for ``args.command``.

    Args:
        args: Parsed arguments
        console: Rich console

    Returns:
        Exit code (0 = success, 1 = error)
    """
    handler = COMMAND_HANDLERS.get(args.command)
    if handler is None:
        print_error(f"Error: unknown command {args.command}", console)
        return 1

    try:
        success = await handler(args, console)
        return 0 if success else 1

    except WiremailError as e:
        logger.error(f"Command {args.command} failed: {e.message}", extra=e.details)
        print_failure(e, console)
        return 1

    except Exception as e:
        ErrorHandler.handle(e, f"Command {args.command} failed unexpectedly")
        print_failure(e, console)
        return 1


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point.

    Returns:
        Exit code
    """
    console = get_console()

    try:
        parser = setup_argument_parser()
        args = parser.parse_args(argv)

        try:
            logging_config = LoggingConfig.from_env()
        except WiremailError as e:
            print_error(f"Configuration error: {e.message}", console)
            return 1

        init_logging(
            "DEBUG" if args.debug else logging_config.log_level,
            log_to_file=logging_config.log_to_file,
        )

        return asyncio.run(dispatch_command(args, console))

    except KeyboardInterrupt:
        console.print()
        print_warning("Interrupted by user", console)
        return 130  # Standard SIGINT exit code


if __name__ == "__main__":
    sys.exit(main())
