# chopper/__init__.py
"""
Chopper - alias manifest resolution for a command launcher.

This package provides:
- Validator: pure field checks shared by parser, cache and patch handling
- Document Parser: TOML alias documents -> validated Manifest
- CacheManager: fingerprinted, self-healing manifest cache
- Merge Engine: Manifest + runtime inputs + patch -> ResolvedCommand
- AliasResolver: discovery and the resolve() entry point
"""

__version__ = "0.1.0"

from .errors import (
    Violation,
    ResolutionError,
    ValidationError,
    ParseError,
    CacheError,
    PatchError,
    EXIT_CODES,
    exit_code_for,
)

from .manifest import (
    AliasIdentifier,
    SourceLocator,
    JournalConfig,
    ReconcileConfig,
    BashcompConfig,
    Manifest,
    ReconcilePatch,
    ResolvedCommand,
)

from .parser import (
    parse_document,
    parse_file,
)

from .cache import (
    CacheManager,
    CacheOutcome,
    CacheStatus,
    Fingerprint,
    LoadResult,
)

from .reconcile import (
    PatchProvider,
    build_context,
    parse_patch,
    run_reconcile,
)

from .merge import (
    merge_args,
    merge_env,
    build_command,
)

from .config import (
    Settings,
    get_settings,
)

from .resolver import (
    AliasResolver,
    get_resolver,
    resolve,
)

__all__ = [
    # Errors
    "Violation",
    "ResolutionError",
    "ValidationError",
    "ParseError",
    "CacheError",
    "PatchError",
    "EXIT_CODES",
    "exit_code_for",
    # Data model
    "AliasIdentifier",
    "SourceLocator",
    "JournalConfig",
    "ReconcileConfig",
    "BashcompConfig",
    "Manifest",
    "ReconcilePatch",
    "ResolvedCommand",
    # Parser
    "parse_document",
    "parse_file",
    # Cache
    "CacheManager",
    "CacheOutcome",
    "CacheStatus",
    "Fingerprint",
    "LoadResult",
    # Reconcile
    "PatchProvider",
    "build_context",
    "parse_patch",
    "run_reconcile",
    # Merge
    "merge_args",
    "merge_env",
    "build_command",
    # Config
    "Settings",
    "get_settings",
    # Resolver
    "AliasResolver",
    "get_resolver",
    "resolve",
]
