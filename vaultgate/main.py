#!/usr/bin/env python3
"""Main entry point for VaultGate commands.

This module handles:
- Component initialization (FilesystemVault, PolicyEngine, rules file)
- Running the check, filter, init, rules and watch commands
- Hot reload of the rules file and configuration
- Signal handling for graceful shutdown
- Cleanup on exit

Example:
    >>> from vaultgate.main import run_vaultgate
    >>> run_vaultgate(args, config, logger)
"""

import argparse
import asyncio
import signal
import sys
import threading
import traceback
from pathlib import Path
from typing import Any, Dict, List, Optional, TextIO

from vaultgate.cli import EXIT_DENIED, EXIT_ERROR, EXIT_INTERRUPTED, EXIT_OK, CLIError
from vaultgate.core.constants import ConfigKey, ErrorCode
from vaultgate.core.validators import ValidationError, validate_settings
from vaultgate.infrastructure.config_manager import ConfigManager
from vaultgate.infrastructure.logger import Logger
from vaultgate.providers.filesystem import FilesystemVault
from vaultgate.rules.engine import PolicyEngine, PolicySnapshot
from vaultgate.rules.models import Decision
from vaultgate.rules.patterns import compile_pattern
from vaultgate.rules.rules_file import (
    RuleSyntaxError,
    RulesFileError,
    append_rule,
    generate_default_rules_file,
    load_rules_file,
    make_rule,
    remove_rule_by_line,
    serialize_rule,
    toggle_rule_by_line,
)


class VaultGateMain:
    """
    Main class for VaultGate command execution.

    Handles component lifecycle, command dispatch and shutdown.
    """

    def __init__(
        self,
        args: argparse.Namespace,
        config: ConfigManager,
        logger: Logger,
        stdin: Optional[TextIO] = None,
        stdout: Optional[TextIO] = None,
    ):
        """
        Initialize VaultGate main controller.

        Args:
            args: Parsed command-line arguments
            config: Configuration manager
            logger: Logger instance
            stdin: Input stream for the filter command
            stdout: Output stream for command results
        """
        self.args = args
        self.config = config
        self.logger = logger
        self.stdin = stdin or sys.stdin
        self.stdout = stdout or sys.stdout
        self.shutdown_event = threading.Event()

        # Components
        self.vault: Optional[FilesystemVault] = None
        self.engine: Optional[PolicyEngine] = None
        self.rules_path: Optional[Path] = None

    def initialize_components(self) -> None:
        """
        Initialize all VaultGate components.

        Creates and configures:
        - FilesystemVault
        - PolicyEngine with a snapshot of the current settings
        - Rules loaded from the rules file

        Raises:
            RulesFileError: If the rules file exists but cannot be read
        """
        self.logger.info("Initializing components...")
        settings = self.config.settings()

        self.logger.debug("Creating FilesystemVault")
        self.vault = FilesystemVault(settings.get(ConfigKey.VAULT_PATH) or ".")

        rules_file = Path(settings.get(ConfigKey.RULES_FILE)).expanduser()
        self.rules_path = rules_file if rules_file.is_absolute() else self.vault.root / rules_file

        self.logger.debug("Creating PolicyEngine")
        self.engine = PolicyEngine(
            self.vault,
            snapshot=PolicySnapshot.from_settings(settings),
            bulk_concurrency=settings.get(ConfigKey.BULK_CONCURRENCY),
            logger=self.logger,
        )

        if self.args.command != "init":
            warnings = self.engine.reload_from_file(self.rules_path)
            for warning in warnings:
                self.logger.warning("Rules file warning", detail=str(warning))

        self.logger.info(
            "All components initialized successfully",
            vault=str(self.vault.root),
            rules=len(self.engine),
        )

    def _print(self, text: str = "") -> None:
        print(text, file=self.stdout)

    def _format_decision(self, path: str, decision: Decision) -> str:
        verdict = "ALLOW" if decision.allowed else "DENY"
        return f"{verdict:<5}  {path}  ({decision.reason})"

    # Commands

    def cmd_check(self) -> int:
        """Print the decision for each path; non-zero if any is denied."""
        paths: List[str] = self.args.paths

        async def evaluate_all() -> List[Decision]:
            return await asyncio.gather(*(self.engine.evaluate(p, self.args.method) for p in paths))

        decisions = asyncio.run(evaluate_all())
        for path, decision in zip(paths, decisions):
            self._print(self._format_decision(path, decision))

        return EXIT_OK if all(d.allowed for d in decisions) else EXIT_DENIED

    def cmd_filter(self) -> int:
        """Print the allowed paths among those read from stdin, or every vault file with --all."""
        if self.args.all:
            paths = self.vault.list_files()
        else:
            paths = [line.strip() for line in self.stdin if line.strip()]
        allowed = asyncio.run(self.engine.filter_paths(paths, self.args.method))
        for path in allowed:
            self._print(path)
        return EXIT_OK

    def cmd_init(self) -> int:
        """Write the default rules file template."""
        if self.rules_path.exists() and not self.args.force:
            raise CLIError(f"Rules file already exists: {self.rules_path} (use --force to overwrite)")

        self.rules_path.parent.mkdir(parents=True, exist_ok=True)
        self.rules_path.write_text(generate_default_rules_file(), encoding="utf-8")
        self.logger.info("Wrote rules file template", file=str(self.rules_path))
        self._print(f"Created {self.rules_path}")
        return EXIT_OK

    def cmd_rules(self) -> int:
        """Dispatch a ``rules`` sub-action."""
        handlers = {
            "list": self._rules_list,
            "lint": self._rules_lint,
            "add": self._rules_add,
            "remove": self._rules_remove,
            "enable": self._rules_enable,
            "disable": self._rules_disable,
        }
        return handlers[self.args.rules_command]()

    def _rules_list(self) -> int:
        entries = self.engine.get_entries()
        if not entries:
            self._print(f"No rules in {self.rules_path}")
            return EXIT_OK

        for entry in entries:
            self._print(f"{entry.line_number + 1:>4}  {serialize_rule(entry.kind, entry.rule)}")
        return EXIT_OK

    def _rules_lint(self) -> int:
        parsed = load_rules_file(self.rules_path)
        if parsed is None:
            raise CLIError(f"Rules file not found: {self.rules_path}")

        for warning in parsed.warnings:
            self._print(str(warning))

        self._print(f"{len(parsed.entries)} rules, {len(parsed.warnings)} warnings")
        return EXIT_DENIED if parsed.warnings else EXIT_OK

    def _rules_add(self) -> int:
        try:
            entry = make_rule(
                self.args.mode,
                self.args.kind,
                self.args.pattern,
                self.args.methods or "",
                enabled=not self.args.disabled,
            )
        except RuleSyntaxError as e:
            raise CLIError(f"Invalid rule: {e}")

        rule = entry.rule
        if rule.is_regex and not compile_pattern(rule.pattern, True, rule.regex_flags).valid:
            raise CLIError(f"Invalid regular expression: {rule.pattern}")

        append_rule(self.rules_path, entry.kind, rule)
        self._print(f"Added: {serialize_rule(entry.kind, rule)}")
        return EXIT_OK

    def _entry_at(self, line: int):
        for entry in self.engine.get_entries():
            if entry.line_number == line - 1:
                return entry
        raise CLIError(f"No rule on line {line} of {self.rules_path}")

    def _rules_remove(self) -> int:
        entry = self._entry_at(self.args.line)
        remove_rule_by_line(self.rules_path, entry.line_number)
        self._print(f"Removed: {serialize_rule(entry.kind, entry.rule)}")
        return EXIT_OK

    def _rules_enable(self) -> int:
        entry = self._entry_at(self.args.line)
        toggle_rule_by_line(self.rules_path, entry.line_number, True)
        self._print(f"Enabled line {self.args.line}")
        return EXIT_OK

    def _rules_disable(self) -> int:
        entry = self._entry_at(self.args.line)
        toggle_rule_by_line(self.rules_path, entry.line_number, False)
        self._print(f"Disabled line {self.args.line}")
        return EXIT_OK

    def cmd_watch(self) -> int:
        """Keep the engine loaded, reloading rules and configuration on change."""
        interval = self.args.interval

        self.config.watch_file(str(self.rules_path), interval, callback=self.on_rules_changed)
        if self.args.config:
            self.config.watch_file(self.args.config, interval)
        self.config.add_watcher(self.on_config_changed)

        self.setup_signal_handlers()
        self.logger.info("Watching for changes", rules=str(self.rules_path), interval=interval)

        while not self.shutdown_event.wait(interval):
            pass

        return EXIT_OK

    # Reload hooks

    def on_rules_changed(self, file_path: str) -> None:
        """
        Reload the rules file after a change.

        Raises:
            RulesFileError: If the file cannot be read; the previous rules stay
        """
        warnings = self.engine.reload_from_file(file_path)
        for warning in warnings:
            self.logger.warning("Rules file warning", detail=str(warning))
        self.logger.info("Rules reloaded", file=file_path, rules=len(self.engine))

    def on_config_changed(self, merged: Dict[str, Any]) -> None:
        """Apply changed settings, keeping the previous ones if invalid."""
        settings = merged.get(ConfigKey.ROOT, {})
        try:
            validate_settings(settings)
            self.engine.update_settings(settings)
        except ValidationError as e:
            self.logger.error("Ignoring invalid configuration", error=str(e))
            return

        level = (settings.get(ConfigKey.LOGGING) or {}).get(ConfigKey.LOG_LEVEL)
        if level and not self.args.debug:
            self.logger.set_level(level)
        self.logger.info("Configuration reloaded")

    def setup_signal_handlers(self) -> None:
        """
        Setup signal handlers for graceful shutdown.

        Handles:
        - SIGTERM: Graceful shutdown
        - SIGINT: Graceful shutdown (Ctrl+C)
        """

        def signal_handler(signum, frame):
            """Handle shutdown signals."""
            sig_name = signal.Signals(signum).name
            self.logger.info(f"Received signal {sig_name}, shutting down...")
            self.shutdown_event.set()

        signal.signal(signal.SIGTERM, signal_handler)
        signal.signal(signal.SIGINT, signal_handler)

        self.logger.debug("Signal handlers registered")

    def cleanup(self) -> None:
        """Stop file watching."""
        self.config.stop_watching()
        self.logger.debug("Cleanup complete")

    def run(self) -> int:
        """
        Run the selected command.

        Returns:
            Exit code (0 for success, non-zero for failure)
        """
        commands = {
            "check": self.cmd_check,
            "filter": self.cmd_filter,
            "init": self.cmd_init,
            "rules": self.cmd_rules,
            "watch": self.cmd_watch,
        }

        try:
            self.initialize_components()
            return commands[self.args.command]()

        except CLIError as e:
            print(f"Error: {e}", file=sys.stderr)
            return EXIT_ERROR

        except RulesFileError as e:
            self.logger.error("Rules file error", error=str(e), code=ErrorCode(e.error_code).name)
            print(f"Error: {e}", file=sys.stderr)
            return EXIT_ERROR

        except KeyboardInterrupt:
            self.logger.info("Interrupted by user")
            return EXIT_INTERRUPTED

        except Exception as e:
            self.logger.error(f"Fatal error: {e}")
            traceback.print_exc()
            return EXIT_ERROR

        finally:
            self.cleanup()


def run_vaultgate(args: argparse.Namespace, config: ConfigManager, logger: Logger) -> int:
    """
    Main entry point for running a VaultGate command.

    Args:
        args: Parsed command-line arguments
        config: Configuration manager
        logger: Logger instance

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    main = VaultGateMain(args, config, logger)
    return main.run()


def main():
    """
    Entry point when run as standalone script.

    Typically called via cli.py, but can be run directly for testing.
    """
    from vaultgate.cli import main as cli_main

    return cli_main()


if __name__ == "__main__":
    sys.exit(main())
