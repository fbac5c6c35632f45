# chopper/merge.py
"""
Merge engine.

Combines a Manifest, the invocation arguments, a snapshot of the inherited
environment and an optional ReconcilePatch into a ResolvedCommand.

Every input has already been validated, so these functions are total and
never raise. They never read or write os.environ.
"""

from collections.abc import Mapping, Sequence
from typing import Dict, List, Optional

from .manifest import Manifest, ReconcilePatch, ResolvedCommand


def merge_args(
    manifest: Manifest,
    runtime_args: Sequence[str],
    patch: Optional[ReconcilePatch] = None,
) -> List[str]:
    """
    Alias args, then runtime args. A patch may replace the whole sequence
    and then append to it.
    """
    args = [*manifest.args, *runtime_args]
    if patch is not None:
        if patch.replace_args is not None:
            args = list(patch.replace_args)
        args.extend(patch.append_args)
    return args


def merge_env(
    manifest: Manifest,
    inherited_env: Mapping[str, str],
    patch: Optional[ReconcilePatch] = None,
) -> Dict[str, str]:
    """Later steps win: inherited, alias env, env_remove, set_env, remove_env."""
    env = dict(inherited_env)
    env.update(manifest.env)
    for key in manifest.env_remove:
        env.pop(key, None)
    if patch is not None:
        env.update(patch.set_env)
        for key in patch.remove_env:
            env.pop(key, None)
    return env


def build_command(
    manifest: Manifest,
    runtime_args: Sequence[str],
    inherited_env: Mapping[str, str],
    patch: Optional[ReconcilePatch] = None,
) -> ResolvedCommand:
    return ResolvedCommand(
        exec=manifest.exec,
        args=tuple(merge_args(manifest, runtime_args, patch)),
        env=merge_env(manifest, inherited_env, patch),
    )
