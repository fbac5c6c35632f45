# chopper/reconcile.py
"""
Runtime patch contract.

An alias may name a reconcile script. The script engine is an external
collaborator: chopper hands it a context and gets back a plain mapping.
This module owns both ends of that call:
- build_context(): the read-only snapshot the provider sees
- parse_patch(): closed four-key schema, validated with chopper.validation
- run_reconcile(): the guarded call itself

Any provider failure or malformed output becomes a PatchError, raised
before the merge engine runs.
"""

import logging
from collections.abc import Mapping, Sequence
from typing import Any, Dict, List, Optional, Protocol

from pydantic import BaseModel, ConfigDict, StrictStr
from pydantic import ValidationError as SchemaError

from .errors import PatchError, ValidationError, Violation
from .manifest import Manifest, ReconcileConfig, ReconcilePatch
from .validation import dedupe_first_seen, normalize_env_map, validate_arg_values

logger = logging.getLogger(__name__)

PATCH_KEYS = ("append_args", "replace_args", "set_env", "remove_env")


class PatchProvider(Protocol):
    """Callable that runs a reconcile script and returns its raw output."""

    def __call__(
        self, config: ReconcileConfig, context: Mapping[str, Any]
    ) -> Optional[Mapping[str, Any]]:
        ...


class _RawPatch(BaseModel):
    model_config = ConfigDict(extra="forbid")

    append_args: Optional[List[StrictStr]] = None
    replace_args: Optional[List[StrictStr]] = None
    set_env: Optional[Dict[StrictStr, StrictStr]] = None
    remove_env: Optional[List[StrictStr]] = None


# =============================================================================
# Context
# =============================================================================

def build_context(
    manifest: Manifest,
    runtime_args: Sequence[str],
    runtime_env: Mapping[str, str],
) -> Dict[str, Any]:
    """Snapshot handed to the provider. Copies, so the provider cannot mutate inputs."""
    return {
        "runtime_args": list(runtime_args),
        "runtime_env": dict(runtime_env),
        "alias_args": list(manifest.args),
        "alias_env": dict(manifest.env),
    }


# =============================================================================
# Patch validation
# =============================================================================

def parse_patch(raw: Any) -> Optional[ReconcilePatch]:
    """
    Validate raw provider output into a ReconcilePatch.

    None (or an empty mapping) means no patch. Keys outside the four
    recognized ones are rejected rather than ignored.

    Raises:
        PatchError: Output is not a mapping, has an unknown key, a wrong
                    value type, or a value failing validation
    """
    if raw is None:
        return None
    if not isinstance(raw, Mapping):
        raise PatchError(
            f"reconcile output must be a map, got {type(raw).__name__}",
            violation=Violation.WRONG_TYPE,
        )

    unknown = sorted(str(key) for key in raw if key not in PATCH_KEYS)
    if unknown:
        raise PatchError(
            f"reconcile output has unsupported key `{unknown[0]}`; "
            f"supported keys: {', '.join(PATCH_KEYS)}",
            field=unknown[0],
            violation=Violation.UNKNOWN_KEY,
        )

    try:
        document = _RawPatch.model_validate(dict(raw))
    except SchemaError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first["loc"])
        raise PatchError(
            f"reconcile output field `{field}`: {first['msg']}",
            field=field,
            violation=Violation.WRONG_TYPE,
        ) from e

    try:
        patch = ReconcilePatch(
            append_args=tuple(validate_arg_values(document.append_args or [], "append_args")),
            replace_args=(
                tuple(validate_arg_values(document.replace_args, "replace_args"))
                if document.replace_args is not None
                else None
            ),
            set_env=normalize_env_map(document.set_env or {}, "set_env"),
            remove_env=tuple(dedupe_first_seen(document.remove_env or [], "remove_env")),
        )
    except ValidationError as e:
        raise PatchError(
            f"invalid reconcile output: {e.message}", field=e.field, violation=e.violation
        ) from e

    return None if patch.is_empty else patch


# =============================================================================
# Invocation
# =============================================================================

def run_reconcile(
    manifest: Manifest,
    runtime_args: Sequence[str],
    runtime_env: Mapping[str, str],
    provider: Optional[PatchProvider] = None,
    disabled: bool = False,
) -> Optional[ReconcilePatch]:
    """
    Run the manifest's reconcile script through the provider, if any.

    Returns None when the alias has no reconcile section, reconcile is
    disabled, no provider is available, or the provider asked for nothing.
    """
    config = manifest.reconcile
    if config is None:
        return None
    if disabled:
        logger.debug(f"[RECONCILE] Disabled, skipping {config.script}")
        return None
    if provider is None:
        logger.warning(
            f"[RECONCILE] No patch provider available, skipping {config.script}::{config.function}"
        )
        return None

    context = build_context(manifest, runtime_args, runtime_env)
    try:
        raw = provider(config, context)
    except PatchError as e:
        raise e.with_source(config.script)
    except Exception as e:
        raise PatchError(
            f"reconcile function `{config.function}` failed: {e}", source=config.script
        ) from e

    try:
        patch = parse_patch(raw)
    except PatchError as e:
        raise e.with_source(config.script)

    logger.debug(f"[RECONCILE] {config.script}::{config.function} -> {patch}")
    return patch
