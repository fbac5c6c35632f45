# chopper/manifest.py
"""
Data model for the alias resolution pipeline.

Provides:
- AliasIdentifier: validated logical alias name
- SourceLocator: symlink-resolved source document path and its directory
- Manifest: normalized, validated form of one alias document
- JournalConfig / ReconcileConfig / BashcompConfig: optional sub-records
- ReconcilePatch: validated runtime patch
- ResolvedCommand: final exec/args/env handed to the launcher

Every record validates itself in __post_init__ with the functions from
chopper.validation, so an invalid Manifest never exists as a value. The
same check runs when a manifest is rebuilt from a cache entry.
"""

from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from .errors import ValidationError, Violation
from .validation import (
    dedupe_first_seen,
    normalize_optional_identifier,
    require_canonical,
    require_non_blank_nul_free,
    require_positive,
    require_str_list,
    require_str_map,
    require_type,
    validate_alias_identifier,
    validate_arg_values,
    validate_env_value,
    validate_map_key,
    validate_max_use,
    validate_optional_path_like,
    validate_path_like,
)

FILENAME_SAFE_PUNCTUATION = frozenset("._-")


def _get(data: Mapping[str, Any], key: str, default: Any, field_name: str) -> Any:
    value = data.get(key, default)
    if value is None and default is not None:
        raise ValidationError(field_name, Violation.WRONG_TYPE, f"`{field_name}` cannot be null")
    return value


def _require_key(data: Mapping[str, Any], key: str, field_name: str) -> Any:
    if key not in data:
        raise ValidationError(field_name, Violation.MISSING, f"`{field_name}` is required")
    return data[key]


# =============================================================================
# Identity
# =============================================================================

@dataclass(frozen=True)
class AliasIdentifier:
    """A validated alias name. Unicode is allowed, path shapes are not."""
    value: str

    def __post_init__(self):
        require_type(self.value, str, "alias")
        validate_alias_identifier(self.value)

    def __str__(self) -> str:
        return self.value

    @property
    def is_filename_safe(self) -> bool:
        """True when the name can be used as a cache filename verbatim."""
        return all(
            (ch.isascii() and ch.isalnum()) or ch in FILENAME_SAFE_PUNCTUATION
            for ch in self.value
        )

    def sanitized(self) -> str:
        """Replace every character that is not filename-safe with `_`."""
        return "".join(
            ch if (ch.isascii() and ch.isalnum()) or ch in FILENAME_SAFE_PUNCTUATION else "_"
            for ch in self.value
        )


@dataclass(frozen=True)
class SourceLocator:
    """Absolute, symlink-resolved path of an alias document plus its directory."""
    path: Path
    directory: Path

    @classmethod
    def from_path(cls, path: Union[str, Path]) -> "SourceLocator":
        candidate = Path(path).expanduser()
        if not candidate.is_absolute():
            candidate = Path.cwd() / candidate
        resolved = candidate.resolve()
        return cls(path=resolved, directory=resolved.parent)

    def __str__(self) -> str:
        return str(self.path)


# =============================================================================
# Sub-records
# =============================================================================

@dataclass(frozen=True)
class JournalConfig:
    """Stderr routing settings consumed by the process launcher."""
    namespace: str
    stderr: bool = True
    identifier: Optional[str] = None
    user_scope: bool = True
    ensure: bool = False
    max_use: Optional[str] = None
    rate_limit_interval_usec: Optional[int] = None
    rate_limit_burst: Optional[int] = None

    def __post_init__(self):
        require_type(self.namespace, str, "journal.namespace")
        require_canonical(
            self.namespace,
            lambda v: require_non_blank_nul_free(v, "journal.namespace"),
            "journal.namespace",
        )
        for flag in ("stderr", "user_scope", "ensure"):
            require_type(getattr(self, flag), bool, f"journal.{flag}")
        if self.identifier is not None:
            require_type(self.identifier, str, "journal.identifier")
            require_canonical(
                self.identifier,
                lambda v: normalize_optional_identifier(v, "journal.identifier", blank_as_unset=False),
                "journal.identifier",
            )
        if self.max_use is not None:
            require_type(self.max_use, str, "journal.max_use")
            require_canonical(
                self.max_use, lambda v: validate_max_use(v, "journal.max_use"), "journal.max_use"
            )
        for limit in ("rate_limit_interval_usec", "rate_limit_burst"):
            value = getattr(self, limit)
            if value is not None:
                require_type(value, int, f"journal.{limit}")
                require_positive(value, f"journal.{limit}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "namespace": self.namespace,
            "stderr": self.stderr,
            "identifier": self.identifier,
            "user_scope": self.user_scope,
            "ensure": self.ensure,
            "max_use": self.max_use,
            "rate_limit_interval_usec": self.rate_limit_interval_usec,
            "rate_limit_burst": self.rate_limit_burst,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "JournalConfig":
        require_type(data, dict, "journal")
        return cls(
            namespace=_require_key(data, "namespace", "journal.namespace"),
            stderr=_get(data, "stderr", True, "journal.stderr"),
            identifier=data.get("identifier"),
            user_scope=_get(data, "user_scope", True, "journal.user_scope"),
            ensure=_get(data, "ensure", False, "journal.ensure"),
            max_use=data.get("max_use"),
            rate_limit_interval_usec=data.get("rate_limit_interval_usec"),
            rate_limit_burst=data.get("rate_limit_burst"),
        )


@dataclass(frozen=True)
class ReconcileConfig:
    """Script artifact and entry point of the runtime patch provider."""
    script: str
    function: str = "reconcile"

    def __post_init__(self):
        require_type(self.script, str, "reconcile.script")
        require_canonical(
            self.script, lambda v: validate_path_like(v, "reconcile.script"), "reconcile.script"
        )
        require_type(self.function, str, "reconcile.function")
        require_canonical(
            self.function,
            lambda v: require_non_blank_nul_free(v, "reconcile.function"),
            "reconcile.function",
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"script": self.script, "function": self.function}

    @classmethod
    def from_dict(cls, data: Any) -> "ReconcileConfig":
        require_type(data, dict, "reconcile")
        return cls(
            script=_require_key(data, "script", "reconcile.script"),
            function=_get(data, "function", "reconcile", "reconcile.function"),
        )


@dataclass(frozen=True)
class BashcompConfig:
    """Settings for the external shell-completion subsystem."""
    disabled: bool = False
    passthrough: bool = False
    script: Optional[str] = None
    rhai_script: Optional[str] = None
    rhai_function: Optional[str] = None

    def __post_init__(self):
        require_type(self.disabled, bool, "bashcomp.disabled")
        require_type(self.passthrough, bool, "bashcomp.passthrough")
        for name in ("script", "rhai_script"):
            value = getattr(self, name)
            if value is not None:
                require_type(value, str, f"bashcomp.{name}")
                require_canonical(
                    value,
                    lambda v, n=name: validate_optional_path_like(v, f"bashcomp.{n}"),
                    f"bashcomp.{name}",
                )
        if self.rhai_function is not None:
            require_type(self.rhai_function, str, "bashcomp.rhai_function")
            require_canonical(
                self.rhai_function,
                lambda v: normalize_optional_identifier(v, "bashcomp.rhai_function", blank_as_unset=True),
                "bashcomp.rhai_function",
            )
            if self.rhai_script is None:
                raise ValidationError(
                    "bashcomp.rhai_function",
                    Violation.REQUIRES_FIELD,
                    "`bashcomp.rhai_function` requires `bashcomp.rhai_script` to be set",
                )

    @property
    def mode(self) -> str:
        """Completion mode: disabled, custom, rhai, passthrough or normal."""
        if self.disabled:
            return "disabled"
        if self.script is not None:
            return "custom"
        if self.rhai_script is not None:
            return "rhai"
        if self.passthrough:
            return "passthrough"
        return "normal"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "disabled": self.disabled,
            "passthrough": self.passthrough,
            "script": self.script,
            "rhai_script": self.rhai_script,
            "rhai_function": self.rhai_function,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "BashcompConfig":
        require_type(data, dict, "bashcomp")
        return cls(
            disabled=_get(data, "disabled", False, "bashcomp.disabled"),
            passthrough=_get(data, "passthrough", False, "bashcomp.passthrough"),
            script=data.get("script"),
            rhai_script=data.get("rhai_script"),
            rhai_function=data.get("rhai_function"),
        )


# =============================================================================
# Manifest
# =============================================================================

@dataclass(frozen=True)
class Manifest:
    """
    Normalized, validated result of parsing one alias document.

    Construction is all-or-nothing: __post_init__ re-runs every field check
    and raises ValidationError on the first failure. env is a read-only view.
    """
    exec: str
    args: Tuple[str, ...] = ()
    env: Mapping[str, str] = field(default_factory=dict)
    env_remove: Tuple[str, ...] = ()
    journal: Optional[JournalConfig] = None
    reconcile: Optional[ReconcileConfig] = None
    bashcomp: Optional[BashcompConfig] = None

    def __post_init__(self):
        require_type(self.exec, str, "exec")
        require_canonical(self.exec, lambda v: validate_path_like(v, "exec"), "exec")

        args = require_str_list(self.args, "args")
        object.__setattr__(self, "args", tuple(validate_arg_values(args, "args")))

        env = require_str_map(self.env, "env")
        for key, value in env.items():
            require_canonical(key, lambda k: validate_map_key(k, "env"), "env")
            validate_env_value(value, "env", key)
        object.__setattr__(self, "env", MappingProxyType(env))

        env_remove = require_str_list(self.env_remove, "env_remove")
        require_canonical(env_remove, lambda keys: dedupe_first_seen(keys, "env_remove"), "env_remove")
        object.__setattr__(self, "env_remove", tuple(env_remove))

        if self.journal is not None:
            require_type(self.journal, JournalConfig, "journal")
        if self.reconcile is not None:
            require_type(self.reconcile, ReconcileConfig, "reconcile")
        if self.bashcomp is not None:
            require_type(self.bashcomp, BashcompConfig, "bashcomp")

    @classmethod
    def simple(cls, exec_path: Union[str, Path]) -> "Manifest":
        """Manifest with only an executable, used when no alias document exists."""
        return cls(exec=str(exec_path))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-compatible dictionary."""
        return {
            "exec": self.exec,
            "args": list(self.args),
            "env": dict(self.env),
            "env_remove": list(self.env_remove),
            "journal": self.journal.to_dict() if self.journal else None,
            "reconcile": self.reconcile.to_dict() if self.reconcile else None,
            "bashcomp": self.bashcomp.to_dict() if self.bashcomp else None,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "Manifest":
        """Rebuild a manifest from to_dict() output; raises ValidationError."""
        require_type(data, dict, "manifest")
        journal = data.get("journal")
        reconcile = data.get("reconcile")
        bashcomp = data.get("bashcomp")
        return cls(
            exec=_require_key(data, "exec", "exec"),
            args=_get(data, "args", [], "args"),
            env=_get(data, "env", {}, "env"),
            env_remove=_get(data, "env_remove", [], "env_remove"),
            journal=JournalConfig.from_dict(journal) if journal is not None else None,
            reconcile=ReconcileConfig.from_dict(reconcile) if reconcile is not None else None,
            bashcomp=BashcompConfig.from_dict(bashcomp) if bashcomp is not None else None,
        )


# =============================================================================
# Runtime patch and final command
# =============================================================================

@dataclass(frozen=True)
class ReconcilePatch:
    """
    Validated output of the runtime patch provider.

    replace_args is None when the provider did not ask for a replacement,
    which is different from asking to replace with an empty list.
    """
    append_args: Tuple[str, ...] = ()
    replace_args: Optional[Tuple[str, ...]] = None
    set_env: Mapping[str, str] = field(default_factory=dict)
    remove_env: Tuple[str, ...] = ()

    def __post_init__(self):
        append_args = require_str_list(self.append_args, "append_args")
        object.__setattr__(self, "append_args", tuple(validate_arg_values(append_args, "append_args")))

        if self.replace_args is not None:
            replace_args = require_str_list(self.replace_args, "replace_args")
            object.__setattr__(
                self, "replace_args", tuple(validate_arg_values(replace_args, "replace_args"))
            )

        set_env = require_str_map(self.set_env, "set_env")
        for key, value in set_env.items():
            require_canonical(key, lambda k: validate_map_key(k, "set_env"), "set_env")
            validate_env_value(value, "set_env", key)
        object.__setattr__(self, "set_env", MappingProxyType(set_env))

        remove_env = require_str_list(self.remove_env, "remove_env")
        require_canonical(remove_env, lambda keys: dedupe_first_seen(keys, "remove_env"), "remove_env")
        object.__setattr__(self, "remove_env", tuple(remove_env))

    @property
    def is_empty(self) -> bool:
        return (
            not self.append_args
            and self.replace_args is None
            and not self.set_env
            and not self.remove_env
        )


@dataclass(frozen=True)
class ResolvedCommand:
    """Final executable, argument sequence and environment for one invocation."""
    exec: str
    args: Tuple[str, ...]
    env: Mapping[str, str]

    def __post_init__(self):
        object.__setattr__(self, "args", tuple(self.args))
        object.__setattr__(self, "env", MappingProxyType(dict(self.env)))

    @property
    def argv(self) -> List[str]:
        """argv as the launcher passes it: the executable followed by args."""
        return [self.exec, *self.args]

    def to_dict(self) -> Dict[str, Any]:
        return {"exec": self.exec, "args": list(self.args), "env": dict(self.env)}


__all__ = [
    "AliasIdentifier",
    "SourceLocator",
    "JournalConfig",
    "ReconcileConfig",
    "BashcompConfig",
    "Manifest",
    "ReconcilePatch",
    "ResolvedCommand",
]
