"""CLI entry point for appwatch: watches an app folder and pushes on change."""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from appwatch import __version__
from appwatch.controller import WatchController
from appwatch.push import PushOptions
from appwatch_core.exceptions import WatchStartupError
from appwatch_core.notifier import LoggingNotifier

LOG_FORMAT = "%(asctime)s %(message)s"


def configure_logging(verbose: bool) -> None:
    """Set up stdlib logging for the CLI."""
    logging.basicConfig(format=LOG_FORMAT, level=logging.INFO)
    level = logging.DEBUG if verbose else logging.INFO
    logging.getLogger("appwatch").setLevel(level)
    logging.getLogger("appwatch_core").setLevel(level)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Returns:
        Parsed arguments namespace
    """
    parser = argparse.ArgumentParser(
        prog="appwatch",
        description="Watch an app folder and push it whenever files change.",
        epilog="Examples:\n"
        "  appwatch watch                    # Watch the current folder\n"
        "  appwatch watch ./my-app --local   # Push to the local frontend\n"
        "  appwatch -v watch --noBrowser     # Verbose, never open a browser",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Log every file event and HTTP exchange",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    watch = subparsers.add_parser(
        "watch",
        help="Watches the current directory for changes, and pushes on any change.",
    )
    watch.add_argument(
        "appPath",
        nargs="?",
        default=".",
        help="path to the App folder (default: current folder)",
    )
    watch.add_argument(
        "--noBrowser",
        dest="no_browser",
        action="store_true",
        help="Don't open the frontend in the browser after the initial push.",
    )
    watch.add_argument(
        "--local",
        action="store_true",
        help="Upload to the local frontend instead of the remote one.",
    )
    watch.add_argument(
        "--timeout",
        type=int,
        default=10,
        help="Set the maximum timeout for the request in seconds (default: 10)",
    )

    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    """
    Main entry point for the appwatch CLI.

    Handles:
    - Argument parsing
    - Validating the app folder
    - Running the watch session
    - Error handling and exit codes
    """
    args = parse_args(argv)
    configure_logging(args.verbose)

    app_path = Path(args.appPath)
    if not app_path.is_dir():
        print(f"Error: App folder not found: {app_path}", file=sys.stderr)
        sys.exit(1)

    options = PushOptions(
        no_browser=args.no_browser,
        verbose=args.verbose,
        request_timeout=float(args.timeout),
        use_local_frontend=args.local,
    )
    controller = WatchController(app_path, options, notifier=LoggingNotifier())

    try:
        asyncio.run(controller.run())
    except KeyboardInterrupt:
        # Ctrl+C is the normal way to stop watching
        sys.exit(130)
    except WatchStartupError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
