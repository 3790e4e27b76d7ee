#!/usr/bin/env python3
"""
Carrier Relay CLI Entry Point
Provides command-line interface for journal ingestion and carrier state.
Run with: python -m carrier_relay <command> [args]
"""

import argparse
import json
import sys

from .core import get_utc_timestamp


def output_json(data: dict, indent: int = 2) -> None:
    """Print JSON output to stdout."""
    print(json.dumps(data, indent=indent))


def output_error(message: str, exit_code: int = 1, **kwargs) -> None:
    """Print error JSON and exit."""
    error_data = {
        "error": kwargs.pop("error_type", "error"),
        "message": message,
        "query_timestamp": get_utc_timestamp(),
    }
    error_data.update(kwargs)
    output_json(error_data)
    sys.exit(exit_code)


# =============================================================================
# Built-in Commands
# =============================================================================


def cmd_help(args: argparse.Namespace) -> dict:
    """Show help message."""
    help_text = """
═══════════════════════════════════════════════════════════════════
Carrier Relay
───────────────────────────────────────────────────────────────────

Journal Commands:
  journal-ingest [opts]      Ingest journal files and watch for changes
                             --once (existing files only, then exit)
                             --journal-path <dir>
  journal-reprocess [opts]   Replay stored entries through the handlers
                             --event-type <Event> (repeatable)
  journal-status             Event store statistics and configuration

Carrier Commands:
  carrier-list               List known carriers
  carrier-show <callsign>    Full carrier state (finance, services)
  carrier-watch <callsign>   Stream live deltas as JSON lines

System Commands:
  help                       Show this help message
  version                    Show version

Environment:
  CARRIER_RELAY_JOURNAL_PATH Journal directory (ED_JOURNAL_PATH also read)
  CARRIER_RELAY_DB_PATH      Database file (default: cache/carrier.db)
  CARRIER_RELAY_LOG_LEVEL    DEBUG, INFO, WARNING (default), ERROR

Examples:
  carrier-relay journal-ingest --once
  carrier-relay journal-reprocess --event-type CarrierJump
  carrier-relay carrier-show XX-001
  carrier-relay carrier-watch XX-001

Usage:
  python3 -m carrier_relay <command> [args]
═══════════════════════════════════════════════════════════════════
"""
    print(help_text)
    return {}


def cmd_version(args: argparse.Namespace) -> dict:
    """Show version."""
    from . import __version__

    return {
        "version": __version__,
        "query_timestamp": get_utc_timestamp(),
    }


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with all subcommands."""
    parser = argparse.ArgumentParser(
        prog="carrier-relay",
        description="Carrier Relay - fleet carrier journal ingestion",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Built-in commands
    help_parser = subparsers.add_parser("help", help="Show help message")
    help_parser.set_defaults(func=cmd_help)

    version_parser = subparsers.add_parser("version", help="Show version")
    version_parser.set_defaults(func=cmd_version)

    from .commands import carrier, journal

    journal.register_parsers(subparsers)
    carrier.register_parsers(subparsers)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    # Default to help if no command
    if not args.command:
        cmd_help(args)
        return 0

    if not hasattr(args, "func"):
        output_error(
            f"Unknown command: {args.command}",
            error_type="unknown_command",
            hint="Run 'carrier-relay help' for usage",
        )

    # Execute command
    try:
        result = args.func(args)

        # Output result if it's a dict (JSON response)
        if isinstance(result, dict) and result:
            output_json(result)

            # Return non-zero exit code if result contains error
            if "error" in result:
                return 1

        return 0

    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        return 130
    except Exception as e:
        output_error(str(e), error_type="command_error", command=args.command)
        return 1


if __name__ == "__main__":
    sys.exit(main())
