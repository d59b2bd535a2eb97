#!/usr/bin/env python3
"""Command-line interface for VaultGate.

This module provides the CLI for checking and managing vault access rules:
- Argument parsing and validation
- Configuration loading (system file, --config file, environment, arguments)
- Logging setup
- Help and version information

Example:
    >>> from vaultgate.cli import parse_arguments
    >>> args = parse_arguments(["--vault", "~/Notes", "check", "Private/a.md"])
"""

import argparse
import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from vaultgate.core.constants import VAULTGATE_VERSION, ConfigKey, HttpMethod, Limits, MatcherKind, RuleMode
from vaultgate.infrastructure.config_manager import ConfigError, ConfigManager, ConfigSource, set_global_config
from vaultgate.infrastructure.logger import Logger, set_global_logger

# Version information
VERSION = VAULTGATE_VERSION
DESCRIPTION = "VaultGate - Rule-based access control for note vaults"

SYSTEM_CONFIG_PATH = "/etc/vaultgate/config.yaml"

# Exit codes
EXIT_OK = 0
EXIT_DENIED = 1
EXIT_ERROR = 2
EXIT_INTERRUPTED = 130

METHOD_CHOICES = [m.value for m in HttpMethod]


class CLIError(Exception):
    """Exception raised for CLI-related errors."""

    pass


def _method(value: str) -> str:
    method = value.strip().upper()
    if method not in METHOD_CHOICES:
        raise argparse.ArgumentTypeError(f"invalid method: {value} (choose from {', '.join(METHOD_CHOICES)})")
    return method


def _line_number(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid line number: {value}")
    if number < 1:
        raise argparse.ArgumentTypeError(f"line numbers start at 1: {value}")
    return number


def parse_arguments(args: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Args:
        args: Argument list to parse (defaults to sys.argv[1:])

    Returns:
        Parsed arguments namespace

    Raises:
        SystemExit: On invalid arguments or --help/--version
        CLIError: If a referenced file or directory is invalid
    """
    parser = argparse.ArgumentParser(
        prog="vaultgate",
        description=DESCRIPTION,
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Check whether paths may be read
  vaultgate --vault ~/Notes check Private/diary.md Public/index.md

  # Check a write
  vaultgate --vault ~/Notes check -m PUT Projects/plan.md

  # Filter a listing from another tool
  find . -name '*.md' | vaultgate --vault ~/Notes filter

  # List every readable file in the vault
  vaultgate --vault ~/Notes filter --all

  # Create the rules file and add a rule
  vaultgate --vault ~/Notes init
  vaultgate --vault ~/Notes rules add deny folder "Private/**"

  # Keep rules loaded and hot-reload on change
  vaultgate --config vaultgate.yaml watch --debug
        """,
    )

    # Version
    parser.add_argument(
        "-v",
        "--version",
        action="version",
        version=f"%(prog)s {VERSION}",
    )

    # Configuration file
    parser.add_argument(
        "-c",
        "--config",
        metavar="FILE",
        type=str,
        help="Configuration file path (YAML format)",
    )

    parser.add_argument(
        "--vault",
        metavar="DIR",
        type=str,
        help="Vault root directory (default: from configuration, else current directory)",
    )

    parser.add_argument(
        "--rules",
        metavar="FILE",
        type=str,
        help="Rules file (default: access-rules.conf inside the vault)",
    )

    # Logging options
    log_group = parser.add_argument_group("logging options")

    log_group.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )

    log_group.add_argument(
        "--log-file",
        metavar="FILE",
        type=str,
        help="Also write logs to this file",
    )

    commands = parser.add_subparsers(dest="command", metavar="COMMAND")
    commands.required = True

    check = commands.add_parser("check", help="Show the access decision for paths")
    check.add_argument("paths", nargs="+", metavar="PATH", help="Vault-relative paths")
    check.add_argument("-m", "--method", type=_method, default=HttpMethod.GET.value, help="Method (default: GET)")

    filter_cmd = commands.add_parser("filter", help="Print the allowed paths read from stdin or found in the vault")
    filter_cmd.add_argument("-m", "--method", type=_method, default=HttpMethod.GET.value, help="Method (default: GET)")
    filter_cmd.add_argument("--all", action="store_true", help="Filter every file in the vault instead of stdin")

    init = commands.add_parser("init", help="Write the default rules file template")
    init.add_argument("--force", action="store_true", help="Overwrite an existing rules file")

    rules = commands.add_parser("rules", help="Inspect and edit the rules file")
    rules_commands = rules.add_subparsers(dest="rules_command", metavar="ACTION")
    rules_commands.required = True

    rules_commands.add_parser("list", help="List rules with their line numbers")
    rules_commands.add_parser("lint", help="Report malformed lines")

    add = rules_commands.add_parser("add", help="Append a rule")
    add.add_argument("mode", choices=[m.value for m in RuleMode])
    add.add_argument("kind", choices=[k.value for k in MatcherKind])
    add.add_argument("pattern", help="Glob, or ~regex with optional /flags")
    add.add_argument("--methods", metavar="M[,M...]", help="Restrict the rule to these methods")
    add.add_argument("--disabled", action="store_true", help="Add the rule disabled")

    for name, help_text in (
        ("remove", "Delete the rule on a line"),
        ("enable", "Enable the rule on a line"),
        ("disable", "Disable the rule on a line"),
    ):
        action = rules_commands.add_parser(name, help=help_text)
        action.add_argument("line", type=_line_number, metavar="LINE", help="1-based line number")

    watch = commands.add_parser("watch", help="Keep rules loaded and reload them on change")
    watch.add_argument(
        "--interval",
        type=float,
        default=Limits.DEFAULT_WATCH_INTERVAL,
        metavar="SECONDS",
        help=f"Polling interval (default: {Limits.DEFAULT_WATCH_INTERVAL})",
    )

    # Parse arguments
    parsed = parser.parse_args(args)

    # Validate arguments
    _validate_arguments(parsed)

    return parsed


def _validate_arguments(args: argparse.Namespace) -> None:
    """
    Validate parsed arguments.

    Args:
        args: Parsed arguments namespace

    Raises:
        CLIError: If validation fails
    """
    if args.config:
        config_path = Path(args.config)

        if not config_path.exists():
            raise CLIError(f"Configuration file does not exist: {args.config}")

        if not config_path.is_file():
            raise CLIError(f"Configuration path is not a file: {args.config}")

    if args.vault:
        vault_path = Path(args.vault).expanduser()

        if not vault_path.exists():
            raise CLIError(f"Vault directory does not exist: {args.vault}")

        if not vault_path.is_dir():
            raise CLIError(f"Vault is not a directory: {args.vault}")

    if args.rules and Path(args.rules).expanduser().is_dir():
        raise CLIError(f"Rules path is a directory: {args.rules}")

    if getattr(args, "methods", None):
        for token in args.methods.split(","):
            if token.strip() and token.strip().upper() not in METHOD_CHOICES:
                raise CLIError(f"Unknown method in --methods: {token}")

    if getattr(args, "interval", 1.0) <= 0:
        raise CLIError(f"Watch interval must be positive: {args.interval}")


def build_config_from_args(args: argparse.Namespace) -> Dict[str, Any]:
    """
    Build the settings section overridden by command-line arguments.

    Args:
        args: Parsed arguments namespace

    Returns:
        Settings dictionary for the CLI_ARGS configuration level
    """
    config: Dict[str, Any] = {}

    if args.vault:
        config[ConfigKey.VAULT_PATH] = os.path.abspath(os.path.expanduser(args.vault))

    if args.rules:
        config[ConfigKey.RULES_FILE] = os.path.abspath(os.path.expanduser(args.rules))

    logging_config: Dict[str, Any] = {}
    if args.debug:
        logging_config[ConfigKey.LOG_LEVEL] = "DEBUG"
    if args.log_file:
        logging_config[ConfigKey.LOG_FILE] = args.log_file
    if logging_config:
        config[ConfigKey.LOGGING] = logging_config

    return config


def build_config_manager(args: argparse.Namespace, system_config: str = SYSTEM_CONFIG_PATH) -> ConfigManager:
    """
    Assemble the configuration hierarchy for a CLI run.

    Args:
        args: Parsed arguments namespace
        system_config: System-wide configuration file, loaded when present

    Returns:
        Validated configuration manager

    Raises:
        CLIError: If a configuration file is invalid or a setting fails validation
    """
    try:
        config = ConfigManager()

        if Path(system_config).is_file():
            config.load_file(system_config, ConfigSource.SYSTEM_CONFIG)

        if args.config:
            config.load_file(args.config, ConfigSource.USER_CONFIG)

        config.load_dict(build_config_from_args(args), ConfigSource.CLI_ARGS)
        config.validate()
        return config

    except ConfigError as e:
        raise CLIError(e.message)


def setup_logging(args: argparse.Namespace, settings: Dict[str, Any]) -> Logger:
    """
    Setup logging based on arguments and configuration.

    Args:
        args: Parsed arguments namespace
        settings: Merged ``vaultgate`` settings

    Returns:
        Configured logger instance, also installed as the global logger
    """
    logging_settings = dict(settings.get(ConfigKey.LOGGING) or {})
    if args.debug:
        logging_settings[ConfigKey.LOG_LEVEL] = "DEBUG"
    if args.log_file:
        logging_settings[ConfigKey.LOG_FILE] = args.log_file

    logger = Logger.from_settings("vaultgate", logging_settings)
    set_global_logger(logger)
    return logger


def print_banner(logger: Logger) -> None:
    """
    Print startup banner with version information.

    Args:
        logger: Logger instance
    """
    logger.info("=" * 60)
    logger.info(f"VaultGate v{VERSION}")
    logger.info(DESCRIPTION)
    logger.info("=" * 60)


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main CLI entry point.

    Handles argument parsing, configuration and logging, then passes
    control to ``vaultgate.main`` to run the command.
    """
    try:
        # Parse arguments
        args = parse_arguments(argv)

        # Load configuration
        config = build_config_manager(args)
        set_global_config(config)

        # Setup logging
        logger = setup_logging(args, config.settings())

        if args.command == "watch":
            print_banner(logger)

        # Import and run main
        from vaultgate.main import run_vaultgate

        return run_vaultgate(args, config, logger)

    except CLIError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_ERROR

    except KeyboardInterrupt:
        print("\nInterrupted by user", file=sys.stderr)
        return EXIT_INTERRUPTED


if __name__ == "__main__":
    sys.exit(main())
