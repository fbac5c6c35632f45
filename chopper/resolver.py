# chopper/resolver.py
"""
Alias resolution entry point.

AliasResolver ties the pipeline together for one launcher process:

    validate -> load-or-heal cache -> reconcile patch -> merge

It also owns alias discovery under the config directory, which the CLI and
introspection commands share:
- <config_dir>/aliases/<alias>.toml
- <config_dir>/<alias>.toml
- otherwise a PATH lookup of the alias name itself
"""

import logging
import os
import shutil
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import List, Optional, Union

from .cache import CacheManager
from .config import Settings, get_settings
from .errors import CacheError, ResolutionError, ValidationError
from .manifest import AliasIdentifier, Manifest, ResolvedCommand, SourceLocator
from .merge import build_command
from .parser import parse_file
from .reconcile import PatchProvider, run_reconcile
from .validation import validate_arg_values, validate_process_env

logger = logging.getLogger(__name__)

CONFIG_EXTENSION = ".toml"

AliasLike = Union[str, AliasIdentifier]


def _as_alias(alias: AliasLike) -> AliasIdentifier:
    return alias if isinstance(alias, AliasIdentifier) else AliasIdentifier(alias)


class AliasResolver:
    """
    Resolve aliases into ResolvedCommand values.

    Usage:
        resolver = AliasResolver()
        command = resolver.resolve_alias("deploy", ["--dry-run"])
        os.execve(command.exec, command.argv, command.env)
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        patch_provider: Optional[PatchProvider] = None,
        cache: Optional[CacheManager] = None,
    ):
        self.settings = settings or get_settings()
        self.patch_provider = patch_provider
        self.cache = cache or CacheManager(self.settings.cache_root)
        # Persistence failures seen so far; they never fail a resolution
        self.cache_errors: List[CacheError] = []

    # ========================================================================
    # Discovery
    # ========================================================================

    def source_candidates(self, alias: AliasLike) -> List[Path]:
        name = f"{_as_alias(alias).value}{CONFIG_EXTENSION}"
        return [self.settings.aliases_dir / name, self.settings.config_root / name]

    def find_source(self, alias: AliasLike) -> Optional[SourceLocator]:
        """Locate the alias document; symlinks to regular files count."""
        for candidate in self.source_candidates(alias):
            if candidate.is_file():
                return SourceLocator.from_path(candidate)
        return None

    def list_aliases(self) -> List[str]:
        """Sorted names of every alias document in the config directory."""
        names = set()
        for root in (self.settings.aliases_dir, self.settings.config_root):
            if not root.is_dir():
                continue
            for path in root.iterdir():
                if path.suffix.lower() != CONFIG_EXTENSION or not path.is_file():
                    continue
                try:
                    names.add(AliasIdentifier(path.stem).value)
                except ValidationError:
                    logger.debug(f"[RESOLVER] Skipping {path}: not a valid alias name")
        return sorted(names)

    # ========================================================================
    # Manifests
    # ========================================================================

    def load_manifest(self, alias: AliasLike, locator: SourceLocator) -> Manifest:
        """Serve the manifest from cache, re-parsing and re-storing when needed."""
        alias = _as_alias(alias)
        if self.settings.disable_cache:
            logger.debug(f"[RESOLVER] Cache disabled, parsing {locator.path}")
            return parse_file(locator)

        result = self.cache.load_or_heal(alias, locator)
        if result.cache_error is not None:
            self.cache_errors.append(result.cache_error)
        return result.manifest

    def validate(self, locator: SourceLocator) -> Manifest:
        """Parse and validate only: no cache access, no patch, no merge."""
        return parse_file(locator)

    def manifest_for(self, alias: AliasLike) -> Manifest:
        """
        Manifest for an alias by name. Without a document the alias name is
        looked up on PATH and an exec-only manifest is returned.

        Raises:
            ResolutionError: No document and nothing on PATH
        """
        alias = _as_alias(alias)
        locator = self.find_source(alias)
        if locator is not None:
            return self.load_manifest(alias, locator)

        executable = shutil.which(alias.value)
        if executable is None:
            raise ResolutionError(
                f"alias `{alias}` has no config in {self.settings.config_root} "
                f"and no executable of that name is on PATH",
                field="alias",
            )
        logger.debug(f"[RESOLVER] No config for '{alias}', using {executable}")
        return Manifest.simple(executable)

    # ========================================================================
    # Resolution
    # ========================================================================

    def resolve(
        self,
        alias: AliasLike,
        locator: SourceLocator,
        runtime_args: Sequence[str],
        process_env: Mapping[str, str],
        patch_provider: Optional[PatchProvider] = None,
    ) -> ResolvedCommand:
        """
        Resolve one invocation.

        Args:
            alias: Alias name
            locator: Alias document location
            runtime_args: Arguments supplied at invocation time
            process_env: Snapshot of the inherited environment
            patch_provider: Overrides the resolver's provider for this call

        Raises:
            ValidationError / ParseError: The document, runtime args or process env
                are invalid
            PatchError: The runtime patch failed; nothing was merged
        """
        alias = _as_alias(alias)
        runtime_args = validate_arg_values(runtime_args, "runtime_args")
        process_env = validate_process_env(process_env, "process_env")
        manifest = self.load_manifest(alias, locator)
        return self._finish(manifest, runtime_args, process_env, patch_provider)

    def resolve_alias(
        self,
        alias: AliasLike,
        runtime_args: Sequence[str] = (),
        process_env: Optional[Mapping[str, str]] = None,
        patch_provider: Optional[PatchProvider] = None,
    ) -> ResolvedCommand:
        """Discover the alias document, then resolve against os.environ by default."""
        alias = _as_alias(alias)
        runtime_args = validate_arg_values(runtime_args, "runtime_args")
        if process_env is None:
            env = dict(os.environ)
        else:
            env = validate_process_env(process_env, "process_env")
        manifest = self.manifest_for(alias)
        return self._finish(manifest, runtime_args, env, patch_provider)

    def _finish(
        self,
        manifest: Manifest,
        runtime_args: Sequence[str],
        process_env: Mapping[str, str],
        patch_provider: Optional[PatchProvider],
    ) -> ResolvedCommand:
        patch = run_reconcile(
            manifest,
            runtime_args,
            process_env,
            provider=patch_provider or self.patch_provider,
            disabled=self.settings.disable_reconcile,
        )
        command = build_command(manifest, runtime_args, process_env, patch)
        logger.debug(f"[RESOLVER] Resolved {command.exec} with {len(command.args)} args")
        return command

    def invalidate(self, alias: AliasLike) -> List[Path]:
        """Drop cached entries for an alias so the next resolution re-parses."""
        return self.cache.invalidate(_as_alias(alias))


# =============================================================================
# Global Resolver Instance
# =============================================================================

_global_resolver: Optional[AliasResolver] = None


def get_resolver(
    settings: Optional[Settings] = None,
    patch_provider: Optional[PatchProvider] = None,
    reload: bool = False,
) -> AliasResolver:
    """Get or create the global AliasResolver instance."""
    global _global_resolver

    if _global_resolver is None or reload:
        _global_resolver = AliasResolver(settings=settings, patch_provider=patch_provider)

    return _global_resolver


def resolve(
    alias: AliasLike,
    locator: SourceLocator,
    runtime_args: Sequence[str],
    process_env: Mapping[str, str],
    patch_provider: Optional[PatchProvider] = None,
) -> ResolvedCommand:
    """Resolve one invocation with the global resolver."""
    return get_resolver().resolve(alias, locator, runtime_args, process_env, patch_provider)
