# chopper/diagnostics.py
"""
Non-fatal configuration diagnostics.

Warnings only; nothing here changes how an alias resolves.
"""

from pathlib import Path
from typing import List

from .manifest import Manifest
from .validation import is_absolute_path, looks_like_relative_path

KNOWN_EXTENSIONS = frozenset({".toml", ".rhai"})


def scan_extension_warnings(config_root: Path) -> List[str]:
    """Flag files in the config roots whose extension is neither .toml nor .rhai."""
    warnings: List[str] = []
    for directory in (config_root / "aliases", config_root):
        warnings.extend(_extension_warnings(directory))
    return sorted(set(warnings))


def _extension_warnings(directory: Path) -> List[str]:
    try:
        entries = list(directory.iterdir())
    except FileNotFoundError:
        return []
    except OSError as e:
        return [f"could not scan {directory}: {e}"]

    warnings = []
    for path in entries:
        if not path.is_file() or not path.suffix:
            continue
        if path.suffix.lower() not in KNOWN_EXTENSIONS:
            warnings.append(f"suspicious config file extension (expected .toml/.rhai): {path}")
    return warnings


def missing_target_warnings(manifest: Manifest) -> List[str]:
    """
    Flag referenced files that do not exist. A bare exec name that was not
    found on PATH is not an explicit path and is not reported.
    """
    warnings = []
    exec_is_explicit = is_absolute_path(manifest.exec) or looks_like_relative_path(manifest.exec)
    if exec_is_explicit and not Path(manifest.exec).exists():
        warnings.append(f"exec target does not exist: {manifest.exec}")

    if manifest.reconcile is not None and not Path(manifest.reconcile.script).exists():
        warnings.append(f"reconcile script does not exist: {manifest.reconcile.script}")

    bashcomp = manifest.bashcomp
    if bashcomp is not None:
        if bashcomp.script is not None and not Path(bashcomp.script).exists():
            warnings.append(f"bash completion script does not exist: {bashcomp.script}")
        if bashcomp.rhai_script is not None and not Path(bashcomp.rhai_script).exists():
            warnings.append(f"bash completion Rhai script does not exist: {bashcomp.rhai_script}")
    return warnings
