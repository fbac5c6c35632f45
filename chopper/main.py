# chopper/main.py
"""
Chopper - Main Entry Point

Two ways in:
- Direct mode: `chopper <alias> [--] [args...]`
- Symlink mode: a link named after the alias pointing at chopper

In direct mode a few built-ins are answered without resolving anything
(--help, --version, --print-config-dir, --print-cache-dir, --list-aliases,
--print-exec, --print-bashcomp-mode, --check). Everything else resolves the
alias and replaces this process with the target command.
"""

import logging
import os
import re
import sys
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from . import __version__
from .config import Settings, get_settings
from .diagnostics import missing_target_warnings, scan_extension_warnings
from .errors import ResolutionError, exit_code_for
from .manifest import AliasIdentifier, ResolvedCommand
from .resolver import AliasResolver
from .validation import is_absolute_path, reject_nul

logger = logging.getLogger(__name__)

console = Console()
err_console = Console(stderr=True)

DIRECT_NAME = "chopper"
WINDOWS_LAUNCHER_SUFFIXES = (".exe", ".cmd", ".bat", ".com")

SINGLE_FLAGS = {
    "-h": "help",
    "--help": "help",
    "-V": "version",
    "--version": "version",
    "--print-config-dir": "print-config-dir",
    "--print-cache-dir": "print-cache-dir",
    "--list-aliases": "list-aliases",
}
ALIAS_FLAGS = {
    "--print-exec": "print-exec",
    "--print-bashcomp-mode": "print-bashcomp-mode",
    "--check": "check",
}

HELP_TEXT = """Usage:
  chopper <alias> [args...]
  chopper <alias> -- [args...]
  <symlinked-alias> [args...]

Built-ins:
  -h, --help                    Show this help
  -V, --version                 Show version
  --print-config-dir            Print resolved config root
  --print-cache-dir             Print resolved cache root
  --list-aliases                List configured aliases
  --print-exec <alias>          Print resolved exec path for alias
  --print-bashcomp-mode <alias> Print bashcomp mode for alias
  --check <alias>               Parse and validate an alias config

Environment overrides:
  CHOPPER_CONFIG_DIR=/path/to/config-root
  CHOPPER_CACHE_DIR=/path/to/cache-root
  CHOPPER_DISABLE_CACHE=<truthy>       # 1,true,yes,on
  CHOPPER_DISABLE_RECONCILE=<truthy>   # 1,true,yes,on
  CHOPPER_LOG_LEVEL=DEBUG|INFO|WARNING|ERROR"""


# =============================================================================
# Invocation parsing
# =============================================================================

@dataclass(frozen=True)
class Invocation:
    alias: str
    runtime_args: List[str]


def invocation_name(argv0: Optional[str]) -> str:
    """Basename of argv[0]; `/` and `\\` both separate components."""
    raw = (argv0 or "").rstrip("/\\")
    name = re.split(r"[/\\]", raw)[-1] if raw else ""
    if name in ("", ".", ".."):
        return DIRECT_NAME
    return name


def is_direct_invocation(argv0: Optional[str]) -> bool:
    name = invocation_name(argv0).lower()
    for suffix in WINDOWS_LAUNCHER_SUFFIXES:
        if name.endswith(suffix):
            name = name[: -len(suffix)]
            break
    return name == DIRECT_NAME


def strip_separator(args: Sequence[str]) -> List[str]:
    """Drop one leading `--` from runtime arguments."""
    if args and args[0] == "--":
        return list(args[1:])
    return list(args)


def detect_builtin(argv: Sequence[str]) -> Optional[Tuple[str, Optional[str]]]:
    """Return (action, alias) for a built-in, or None for a normal invocation."""
    if not is_direct_invocation(argv[0] if argv else None):
        return None
    if len(argv) <= 1:
        return ("help", None)
    flag = argv[1]
    if len(argv) == 2 and flag in SINGLE_FLAGS:
        return (SINGLE_FLAGS[flag], None)
    if len(argv) == 3 and flag in ALIAS_FLAGS:
        return (ALIAS_FLAGS[flag], argv[2])
    return None


def parse_invocation(argv: Sequence[str]) -> Invocation:
    """
    Split argv into alias and runtime arguments.

    Raises:
        ResolutionError: Missing alias in direct mode
        ValidationError: Invalid alias name or NUL in a runtime argument
    """
    if is_direct_invocation(argv[0] if argv else None):
        if len(argv) < 2:
            raise ResolutionError(
                "missing alias name; use `chopper <alias> [args...]` or `chopper --help`",
                field="alias",
            )
        alias, rest = argv[1], argv[2:]
    else:
        alias, rest = invocation_name(argv[0]), argv[1:]

    AliasIdentifier(alias)
    runtime_args = strip_separator(rest)
    for arg in runtime_args:
        reject_nul(arg, "runtime_args")
    return Invocation(alias=alias, runtime_args=runtime_args)


# =============================================================================
# Output helpers
# =============================================================================

def _emit(line: str) -> None:
    console.print(line, markup=False, highlight=False, emoji=False, soft_wrap=True)


def _warn(message: str) -> None:
    err_console.print(f"warning: {message}", style="yellow", markup=False, highlight=False, emoji=False, soft_wrap=True)


def _fail(message: str) -> None:
    err_console.print(f"chopper: {message}", style="bold red", markup=False, highlight=False, emoji=False, soft_wrap=True)


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.WARNING),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


# =============================================================================
# Built-ins
# =============================================================================

def run_builtin(action: str, alias: Optional[str], resolver: AliasResolver) -> int:
    settings = resolver.settings

    if action == "help":
        _emit(HELP_TEXT)
    elif action == "version":
        _emit(f"chopper {__version__}")
    elif action == "print-config-dir":
        _emit(str(settings.config_root))
    elif action == "print-cache-dir":
        _emit(str(settings.cache_root))
    elif action == "list-aliases":
        for warning in scan_extension_warnings(settings.config_root):
            _warn(warning)
        for name in resolver.list_aliases():
            _emit(name)
    elif action == "print-exec":
        try:
            manifest = resolver.manifest_for(alias)
        except ResolutionError as e:
            logger.debug(f"[CLI] --print-exec {alias!r} failed: {e}")
            return 1
        _emit(manifest.exec)
    elif action == "print-bashcomp-mode":
        _emit(_bashcomp_mode(resolver, alias))
    elif action == "check":
        return check_alias(resolver, alias)
    return 0


def _bashcomp_mode(resolver: AliasResolver, alias: Optional[str]) -> str:
    # Completion must keep working when a config is broken
    try:
        locator = resolver.find_source(alias)
        if locator is None:
            return "normal"
        manifest = resolver.load_manifest(alias, locator)
    except ResolutionError as e:
        logger.debug(f"[CLI] bashcomp mode for {alias!r} defaulted: {e}")
        return "normal"
    return manifest.bashcomp.mode if manifest.bashcomp else "normal"


def check_alias(resolver: AliasResolver, alias: Optional[str]) -> int:
    """Parse and validate an alias document without touching the cache."""
    try:
        locator = resolver.find_source(alias)
        if locator is None:
            raise ResolutionError(
                f"no config for alias `{alias}` under {resolver.settings.config_root}",
                field="alias",
            )
        manifest = resolver.validate(locator)
    except ResolutionError as e:
        _fail(str(e))
        return exit_code_for(e)

    rows = [
        ("source", str(locator.path)),
        ("exec", manifest.exec),
        ("args", " ".join(manifest.args) or "-"),
        ("env", ", ".join(sorted(manifest.env)) or "-"),
        ("env_remove", ", ".join(manifest.env_remove) or "-"),
        ("journal", manifest.journal.namespace if manifest.journal else "-"),
        (
            "reconcile",
            f"{manifest.reconcile.script}::{manifest.reconcile.function}" if manifest.reconcile else "-",
        ),
        ("bashcomp", manifest.bashcomp.mode if manifest.bashcomp else "normal"),
    ]
    table = Table(title=f"Alias: {escape(alias)}", show_header=True)
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="green")
    for name, value in rows:
        # Values come from user documents and may contain [markup]
        table.add_row(name, escape(value))
    console.print(table, emoji=False)

    for warning in missing_target_warnings(manifest):
        _warn(warning)
    _emit(f"ok: {alias}")
    return 0


# =============================================================================
# Launch
# =============================================================================

def launch(command: ResolvedCommand) -> None:
    """Replace the current process with the resolved command."""
    if is_absolute_path(command.exec):
        os.execve(command.exec, command.argv, dict(command.env))
    else:
        os.execvpe(command.exec, command.argv, dict(command.env))


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point. Returns a process exit status."""
    argv = list(sys.argv if argv is None else argv)
    settings = get_settings()
    configure_logging(settings)
    resolver = AliasResolver(settings=settings)

    builtin = detect_builtin(argv)
    if builtin is not None:
        action, alias = builtin
        return run_builtin(action, alias, resolver)

    try:
        invocation = parse_invocation(argv)
        command = resolver.resolve_alias(invocation.alias, invocation.runtime_args)
    except ResolutionError as e:
        _fail(str(e))
        return exit_code_for(e)

    try:
        launch(command)
    except FileNotFoundError as e:
        _fail(f"failed to execute {command.exec}: {e}")
        return 127
    except OSError as e:
        _fail(f"failed to execute {command.exec}: {e}")
        return 126
    return 0


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
