# chopper/cache.py
"""
Fingerprinted, self-healing manifest cache.

Maps an alias to a stored (Fingerprint, Manifest) entry under
<cache_dir>/manifests/:
- Filename-safe aliases use `<alias>.json`
- Other aliases use `<sanitized>-<sha256 prefix>.json`; an older
  `<sanitized>.json` entry is still read, migrated and removed

A stored entry is served only when it decodes, its fingerprint matches the
source file, and its manifest passes every parse-time check again (the
Manifest constructor runs them). Anything else is pruned and reported as
a Miss or Invalid outcome, which heal() handles like a cold cache.

Writes go to a private temporary file in the same directory and are
published with os.replace, so a reader never sees a partial entry. No lock
is taken: concurrent writers race, the last one wins, and staleness is
re-detected by the fingerprint on the next read.
"""

import hashlib
import json
import logging
import os
import tempfile
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from .errors import CacheError, ParseError, ValidationError
from .manifest import AliasIdentifier, Manifest, SourceLocator
from .parser import parse_file
from .validation import require_type

logger = logging.getLogger(__name__)

CACHE_ENTRY_VERSION = 1
ENTRY_SUFFIX = ".json"
TEMP_SUFFIX = ".tmp"


# =============================================================================
# Fingerprint
# =============================================================================

@dataclass(frozen=True)
class Fingerprint:
    """Source file metadata captured when an entry was written."""
    source_path: str
    size: int
    modified_ns: int
    changed_ns: int = 0
    device: int = 0
    inode: int = 0

    @classmethod
    def current(cls, locator: SourceLocator) -> "Fingerprint":
        """Stat the source file now. Raises OSError if it cannot be read."""
        stat = os.stat(locator.path)
        if os.name == "nt":
            # st_ctime is creation time there, and st_dev/st_ino are not stable
            return cls(str(locator.path), stat.st_size, stat.st_mtime_ns)
        return cls(
            source_path=str(locator.path),
            size=stat.st_size,
            modified_ns=stat.st_mtime_ns,
            changed_ns=stat.st_ctime_ns,
            device=stat.st_dev,
            inode=stat.st_ino,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source_path": self.source_path,
            "size": self.size,
            "modified_ns": self.modified_ns,
            "changed_ns": self.changed_ns,
            "device": self.device,
            "inode": self.inode,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "Fingerprint":
        require_type(data, dict, "fingerprint")
        require_type(data.get("source_path"), str, "fingerprint.source_path")
        for name in ("size", "modified_ns", "changed_ns", "device", "inode"):
            require_type(data.get(name), int, f"fingerprint.{name}")
        return cls(
            source_path=data["source_path"],
            size=data["size"],
            modified_ns=data["modified_ns"],
            changed_ns=data["changed_ns"],
            device=data["device"],
            inode=data["inode"],
        )


# =============================================================================
# Outcomes
# =============================================================================

class CacheStatus(Enum):
    """Result of a cache lookup."""
    HIT = "hit"          # Entry matches the source and re-validated
    MISS = "miss"        # No usable entry (absent, stale, belongs to another alias)
    INVALID = "invalid"  # Entry existed but was corrupt, outdated or failed validation


@dataclass(frozen=True)
class CacheOutcome:
    status: CacheStatus
    manifest: Optional[Manifest] = None
    path: Optional[Path] = None
    reason: str = ""

    @property
    def is_hit(self) -> bool:
        return self.status is CacheStatus.HIT

    @classmethod
    def hit(cls, manifest: Manifest, path: Path) -> "CacheOutcome":
        return cls(CacheStatus.HIT, manifest=manifest, path=path)

    @classmethod
    def miss(cls, reason: str, path: Optional[Path] = None) -> "CacheOutcome":
        return cls(CacheStatus.MISS, path=path, reason=reason)

    @classmethod
    def invalid(cls, reason: str, path: Optional[Path] = None) -> "CacheOutcome":
        return cls(CacheStatus.INVALID, path=path, reason=reason)


@dataclass(frozen=True)
class LoadResult:
    """
    Manifest for the current invocation plus how it was obtained.

    cache_error is set when the fresh manifest could not be persisted; the
    manifest itself is still valid and usable.
    """
    manifest: Manifest
    outcome: CacheOutcome
    healed: bool = False
    cache_error: Optional[CacheError] = None


# =============================================================================
# Cache Manager
# =============================================================================

class CacheManager:
    """
    Load, store and self-heal manifest cache entries.

    Usage:
        cache = CacheManager(Path("~/.cache/chopper").expanduser())
        result = cache.load_or_heal(AliasIdentifier("deploy"), locator)
        result.manifest.exec
    """

    def __init__(
        self,
        cache_dir: Path,
        parse: Callable[[SourceLocator], Manifest] = parse_file,
    ):
        """
        Args:
            cache_dir: Cache root; entries live in its `manifests/` subdirectory
            parse: Document parser used by heal()
        """
        self.cache_dir = Path(cache_dir)
        self._parse = parse

    @property
    def manifests_dir(self) -> Path:
        return self.cache_dir / "manifests"

    # ========================================================================
    # Addressing
    # ========================================================================

    def entry_path(self, alias: AliasIdentifier) -> Path:
        if alias.is_filename_safe:
            return self.manifests_dir / f"{alias.value}{ENTRY_SUFFIX}"
        digest = hashlib.sha256(alias.value.encode("utf-8")).hexdigest()[:16]
        return self.manifests_dir / f"{alias.sanitized()}-{digest}{ENTRY_SUFFIX}"

    def legacy_entry_path(self, alias: AliasIdentifier) -> Path:
        """Pre-hash location; identical to entry_path for filename-safe aliases."""
        return self.manifests_dir / f"{alias.sanitized()}{ENTRY_SUFFIX}"

    # ========================================================================
    # Load
    # ========================================================================

    def load(
        self,
        alias: AliasIdentifier,
        locator: SourceLocator,
        fingerprint: Optional[Fingerprint] = None,
    ) -> CacheOutcome:
        """
        Look up the entry for an alias.

        Returns a HIT only if the entry decodes, its fingerprint equals the
        source file's current fingerprint and its manifest re-validates.
        """
        if fingerprint is None:
            try:
                fingerprint = Fingerprint.current(locator)
            except OSError as e:
                return CacheOutcome.miss(f"source unavailable: {e}")

        primary_path = self.entry_path(alias)
        outcome = self._read_entry(primary_path, alias, fingerprint)
        legacy_path = self.legacy_entry_path(alias)

        if outcome.is_hit:
            if legacy_path != primary_path:
                self._discard_if_owned(legacy_path, alias)
            logger.debug(f"[CACHE] Hit for '{alias}' at {primary_path}")
            return outcome

        if legacy_path != primary_path:
            legacy = self._read_entry(legacy_path, alias, fingerprint)
            if legacy.is_hit:
                try:
                    self.store(alias, locator, legacy.manifest, fingerprint)
                except CacheError as e:
                    logger.warning(f"[CACHE] Could not migrate legacy entry for '{alias}': {e}")
                else:
                    self._discard(legacy_path)
                logger.debug(f"[CACHE] Legacy hit for '{alias}' at {legacy_path}")
                return legacy

        logger.debug(f"[CACHE] {outcome.status.value} for '{alias}': {outcome.reason}")
        return outcome

    def _read_entry(
        self, path: Path, alias: AliasIdentifier, fingerprint: Fingerprint
    ) -> CacheOutcome:
        try:
            raw = path.read_bytes()
        except FileNotFoundError:
            return CacheOutcome.miss("no entry", path)
        except OSError as e:
            logger.warning(f"[CACHE] Cannot read {path}: {e}")
            return CacheOutcome.invalid(f"unreadable entry: {e}", path)

        try:
            entry = json.loads(raw)
        except (ValueError, RecursionError) as e:
            return self._prune(path, f"corrupt entry: {e}")
        if not isinstance(entry, dict):
            return self._prune(path, "corrupt entry: not an object")

        version = entry.get("version")
        if isinstance(version, bool) or version != CACHE_ENTRY_VERSION:
            return self._prune(path, f"unsupported entry version {version!r}")

        # A legacy name can be shared by several exotic aliases
        if entry.get("alias") != alias.value:
            return CacheOutcome.miss("entry belongs to another alias", path)

        try:
            stored = Fingerprint.from_dict(entry.get("fingerprint"))
        except ValidationError as e:
            return self._prune(path, f"corrupt fingerprint: {e}")
        if stored != fingerprint:
            self._discard(path)
            return CacheOutcome.miss("stale entry", path)

        try:
            manifest = Manifest.from_dict(entry.get("manifest"))
        except ValidationError as e:
            return self._prune(path, f"cached manifest failed validation: {e}")

        return CacheOutcome.hit(manifest, path)

    def _prune(self, path: Path, reason: str) -> CacheOutcome:
        logger.warning(f"[CACHE] Pruning {path}: {reason}")
        self._discard(path)
        return CacheOutcome.invalid(reason, path)

    # ========================================================================
    # Store
    # ========================================================================

    def store(
        self,
        alias: AliasIdentifier,
        locator: SourceLocator,
        manifest: Manifest,
        fingerprint: Optional[Fingerprint] = None,
    ) -> Path:
        """
        Persist a manifest atomically.

        Args:
            fingerprint: Fingerprint taken before the source was parsed;
                         defaults to the source file's current fingerprint

        Returns:
            Path of the published entry

        Raises:
            CacheError: The entry could not be written, or the manifest no
                        longer passes validation
        """
        path = self.entry_path(alias)
        if fingerprint is None:
            try:
                fingerprint = Fingerprint.current(locator)
            except OSError as e:
                raise CacheError(path, f"failed to stat alias config {locator.path}: {e}") from e

        # The loader's check runs on the exact payload before it is published
        try:
            checked = Manifest.from_dict(manifest.to_dict())
        except ValidationError as e:
            raise CacheError(path, f"refusing to store invalid manifest: {e}") from e

        entry = {
            "version": CACHE_ENTRY_VERSION,
            "alias": alias.value,
            "fingerprint": fingerprint.to_dict(),
            "manifest": checked.to_dict(),
        }
        # Key order is kept so a hit yields env in document order
        payload = json.dumps(entry, ensure_ascii=False).encode("utf-8")

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise CacheError(path, f"failed to create cache directory: {e}") from e

        self._write_atomically(path, payload)
        logger.debug(f"[CACHE] Stored entry for '{alias}' at {path}")
        return path

    def _write_atomically(self, path: Path, payload: bytes) -> None:
        try:
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{path.name}.", suffix=TEMP_SUFFIX, dir=path.parent
            )
        except OSError as e:
            raise CacheError(path, f"failed to create temporary cache file: {e}") from e

        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(payload)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_path, path)
        except OSError as e:
            self._discard(tmp_path)
            raise CacheError(path, f"failed to write cache entry: {e}") from e

    # ========================================================================
    # Heal
    # ========================================================================

    def heal(
        self,
        alias: AliasIdentifier,
        locator: SourceLocator,
        outcome: Optional[CacheOutcome] = None,
    ) -> LoadResult:
        """
        Re-parse the source and replace the entry for an alias.

        A document that fails to parse raises and nothing is written. A
        failure to persist is returned in LoadResult.cache_error; the fresh
        manifest is still returned.
        """
        outcome = outcome or CacheOutcome.miss("heal requested")
        if outcome.status is CacheStatus.INVALID and outcome.path is not None:
            self._discard(outcome.path)

        try:
            fingerprint = Fingerprint.current(locator)
        except OSError as e:
            raise ParseError(locator.path, f"failed to stat alias config: {e}") from e

        manifest = self._parse(locator)

        cache_error = None
        try:
            self.store(alias, locator, manifest, fingerprint)
        except CacheError as e:
            logger.warning(f"[CACHE] Persisting '{alias}' failed, continuing uncached: {e}")
            cache_error = e

        return LoadResult(manifest=manifest, outcome=outcome, healed=True, cache_error=cache_error)

    def load_or_heal(self, alias: AliasIdentifier, locator: SourceLocator) -> LoadResult:
        """Serve a cache hit, or fall back to heal() on any other outcome."""
        outcome = self.load(alias, locator)
        if outcome.is_hit:
            return LoadResult(manifest=outcome.manifest, outcome=outcome)
        return self.heal(alias, locator, outcome)

    # ========================================================================
    # Invalidation
    # ========================================================================

    def invalidate(self, alias: AliasIdentifier) -> List[Path]:
        """Remove every entry stored for an alias. Returns removed paths."""
        removed = []
        primary_path = self.entry_path(alias)
        if self._discard(primary_path):
            removed.append(primary_path)
        legacy_path = self.legacy_entry_path(alias)
        if legacy_path != primary_path and self._discard_if_owned(legacy_path, alias):
            removed.append(legacy_path)
        if removed:
            logger.info(f"[CACHE] Invalidated '{alias}': {[str(p) for p in removed]}")
        return removed

    def _discard_if_owned(self, path: Path, alias: AliasIdentifier) -> bool:
        """Delete an entry only when it records this alias as its owner."""
        try:
            entry = json.loads(path.read_bytes())
        except (OSError, ValueError, RecursionError):
            return False
        if isinstance(entry, dict) and entry.get("alias") == alias.value:
            return self._discard(path)
        return False

    def _discard(self, path: Path) -> bool:
        """Best-effort delete; a failure leaves the file for the next heal."""
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.debug(f"[CACHE] Could not remove {path}: {e}")
            return False
        return True
