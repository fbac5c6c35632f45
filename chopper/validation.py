# chopper/validation.py
"""
Structural validators for alias manifests.

These are the single source of truth for every field check. The document
parser, the cache loader and the runtime patch parser all call the same
functions, so a manifest that is valid from a fresh parse is valid when it
is read back from the cache.

Every function is pure: it returns a normalized value or raises
ValidationError naming the offending field. No function performs I/O.
"""

import re
from collections.abc import Callable, Iterable, Mapping
from pathlib import PurePosixPath, PureWindowsPath
from typing import Any, TypeVar

from .errors import ValidationError, Violation

T = TypeVar("T")

PATH_SEPARATORS = ("/", "\\")
MAX_USE_PATTERN = re.compile(r"^[0-9]+[KMGTPE]?$", re.IGNORECASE)


# =============================================================================
# String checks
# =============================================================================

def reject_nul(value: str, field: str) -> str:
    """Fail if the value contains an embedded NUL byte."""
    if "\0" in value:
        raise ValidationError(field, Violation.NUL_BYTE, f"`{field}` cannot contain NUL bytes")
    return value


def require_non_blank_nul_free(value: str, field: str) -> str:
    """Return the trimmed value; fail on NUL bytes or when nothing is left."""
    reject_nul(value, field)
    trimmed = value.strip()
    if not trimmed:
        raise ValidationError(field, Violation.BLANK, f"`{field}` cannot be blank")
    return trimmed


def validate_arg_values(values: Iterable[str], field: str) -> list[str]:
    """Check argument entries for NUL bytes; order and shape are untouched."""
    checked = []
    for value in values:
        reject_nul(value, field)
        checked.append(value)
    return checked


# =============================================================================
# Map keys and environment
# =============================================================================

def validate_map_key(key: str, field: str) -> str:
    """Trim an environment key and reject blank, NUL or `=` shapes."""
    trimmed = key.strip()
    if not trimmed:
        raise ValidationError(field, Violation.BLANK, f"`{field}` cannot contain empty keys")
    if "=" in trimmed:
        raise ValidationError(
            field, Violation.CONTAINS_EQUALS, f"`{field}` keys cannot contain `=`: `{trimmed}`"
        )
    if "\0" in trimmed:
        raise ValidationError(field, Violation.NUL_BYTE, f"`{field}` keys cannot contain NUL bytes")
    return trimmed


def validate_env_value(value: str, field: str, key: str) -> str:
    if "\0" in value:
        raise ValidationError(
            field,
            Violation.NUL_BYTE,
            f"`{field}` values cannot contain NUL bytes for key `{key}`",
        )
    return value


def normalize_env_map(env: Mapping[str, str], field: str) -> dict[str, str]:
    """Trim keys, validate keys and values, reject keys colliding after trim."""
    normalized: dict[str, str] = {}
    for key, value in env.items():
        normalized_key = validate_map_key(key, field)
        validate_env_value(value, field, normalized_key)
        if normalized_key in normalized:
            raise ValidationError(
                field,
                Violation.DUPLICATE_KEY,
                f"`{field}` contains duplicate keys after trimming: `{normalized_key}`",
            )
        normalized[normalized_key] = value
    return normalized


def validate_process_env(env: Mapping[str, str], field: str) -> dict[str, str]:
    """
    Check an inherited environment snapshot without trimming it.

    Keys must be non-empty and free of `=` and NUL; values must be NUL-free.
    """
    require_type(env, Mapping, field)
    snapshot: dict[str, str] = {}
    for key, value in env.items():
        require_type(key, str, field)
        require_type(value, str, field)
        if not key:
            raise ValidationError(field, Violation.BLANK, f"`{field}` cannot contain empty keys")
        if "=" in key:
            raise ValidationError(
                field, Violation.CONTAINS_EQUALS, f"`{field}` keys cannot contain `=`: `{key}`"
            )
        if "\0" in key:
            raise ValidationError(field, Violation.NUL_BYTE, f"`{field}` keys cannot contain NUL bytes")
        validate_env_value(value, field, key)
        snapshot[key] = value
    return snapshot


def dedupe_first_seen(keys: Iterable[str], field: str) -> list[str]:
    """
    Trim keys, drop blanks and keep the first occurrence of each key.

    Used identically for manifest `env_remove` and patch `remove_env`.
    """
    seen: set[str] = set()
    normalized: list[str] = []
    for key in keys:
        if not key.strip():
            continue
        normalized_key = validate_map_key(key, field)
        if normalized_key not in seen:
            seen.add(normalized_key)
            normalized.append(normalized_key)
    return normalized


# =============================================================================
# Path shapes
# =============================================================================

def _split_segments(value: str) -> list[str]:
    return re.split(r"[/\\]", value)


def is_absolute_path(value: str) -> bool:
    return PurePosixPath(value).is_absolute() or PureWindowsPath(value).is_absolute()


def looks_like_relative_path(value: str) -> bool:
    """True when a non-absolute value carries a path separator."""
    return not is_absolute_path(value) and any(sep in value for sep in PATH_SEPARATORS)


def has_meaningful_relative_segment(value: str) -> bool:
    return any(segment not in ("", ".", "..") for segment in _split_segments(value))


def ends_with_dot_component(value: str) -> bool:
    trimmed = value.rstrip("/\\")
    return _split_segments(trimmed)[-1] in (".", "..")


def validate_path_like(value: str, field: str) -> str:
    """
    Return the trimmed path; fail on NUL, blank, `.`/`..`, a trailing
    separator, a trailing `.`/`..` component, or a relative form such as
    `./` that names no real file segment.
    """
    trimmed = require_non_blank_nul_free(value, field)
    if trimmed in (".", ".."):
        raise ValidationError(field, Violation.DOT_TOKEN, f"`{field}` cannot be `.` or `..`")
    if trimmed.endswith(PATH_SEPARATORS):
        raise ValidationError(
            field, Violation.TRAILING_SEPARATOR, f"`{field}` cannot end with a path separator"
        )
    if ends_with_dot_component(trimmed):
        raise ValidationError(
            field,
            Violation.TRAILING_DOT_COMPONENT,
            f"`{field}` cannot end with `.` or `..` path components",
        )
    if not is_absolute_path(trimmed) and not has_meaningful_relative_segment(trimmed):
        raise ValidationError(
            field,
            Violation.MISSING_PATH_SEGMENT,
            f"`{field}` must include a file path when using relative path notation",
        )
    return trimmed


def validate_optional_path_like(value: str | None, field: str) -> str | None:
    """Blank optional paths are treated as unset."""
    if value is None:
        return None
    reject_nul(value, field)
    if not value.strip():
        return None
    return validate_path_like(value, field)


# =============================================================================
# Alias identifiers
# =============================================================================

def validate_alias_identifier(alias: str, field: str = "alias") -> str:
    """Check a logical alias name; unicode is permitted, the value is not trimmed."""
    if not alias.strip():
        raise ValidationError(field, Violation.BLANK, "alias name cannot be empty")
    if "\0" in alias:
        raise ValidationError(field, Violation.NUL_BYTE, "alias name cannot contain NUL bytes")
    if alias == "--":
        raise ValidationError(
            field,
            Violation.IS_SEPARATOR,
            "alias name cannot be `--`; expected `chopper <alias> -- [args...]`",
        )
    if alias.startswith("-"):
        raise ValidationError(
            field,
            Violation.STARTS_WITH_DASH,
            "alias name cannot start with `-`; choose a non-flag alias name",
        )
    if any(ch.isspace() for ch in alias):
        raise ValidationError(
            field, Violation.CONTAINS_WHITESPACE, "alias name cannot contain whitespace"
        )
    if alias in (".", ".."):
        raise ValidationError(field, Violation.DOT_TOKEN, "alias name cannot be `.` or `..`")
    if any(sep in alias for sep in PATH_SEPARATORS):
        raise ValidationError(
            field, Violation.PATH_SEPARATOR, "alias name cannot contain path separators"
        )
    return alias


# =============================================================================
# Journal fields
# =============================================================================

def normalize_optional_identifier(
    value: str | None, field: str, blank_as_unset: bool
) -> str | None:
    """
    Trim an optional identifier.

    Documents treat a blank identifier as unset; stored manifests must never
    carry one, so cache validation passes blank_as_unset=False.
    """
    if value is None:
        return None
    reject_nul(value, field)
    trimmed = value.strip()
    if not trimmed:
        if blank_as_unset:
            return None
        raise ValidationError(field, Violation.BLANK, f"`{field}` cannot be blank when provided")
    return trimmed


def validate_max_use(value: str, field: str) -> str:
    """Sizes look like `512K`, `256M`, `1G`."""
    trimmed = require_non_blank_nul_free(value, field)
    if not MAX_USE_PATTERN.match(trimmed):
        raise ValidationError(
            field,
            Violation.INVALID_FORMAT,
            f"`{field}` must be a valid size (e.g. 256M, 1G)",
        )
    return trimmed


def require_positive(value: int | None, field: str) -> int | None:
    if value is not None and value <= 0:
        raise ValidationError(field, Violation.NOT_POSITIVE, f"`{field}` must be > 0")
    return value


# =============================================================================
# Canonical form and type checks
# =============================================================================

def require_canonical(value: T, normalize: Callable[[T], T], field: str) -> T:
    """
    Run a normalizer and demand it is a no-op.

    Stored values were normalized once at parse time; a value that still
    changes under its own normalizer was not produced by the parser.
    """
    normalized = normalize(value)
    if normalized != value:
        raise ValidationError(
            field,
            Violation.NOT_CANONICAL,
            f"`{field}` is not in normalized form (surrounding whitespace, blanks or duplicates)",
        )
    return value


def require_type(value: Any, expected: type | tuple[type, ...], field: str) -> Any:
    expected_types = expected if isinstance(expected, tuple) else (expected,)
    # bool is an int subclass
    is_stray_bool = isinstance(value, bool) and bool not in expected_types
    if is_stray_bool or not isinstance(value, expected_types):
        raise ValidationError(field, Violation.WRONG_TYPE, f"`{field}` has the wrong type")
    return value


def require_str_list(value: Any, field: str) -> list[str]:
    require_type(value, (list, tuple), field)
    for item in value:
        require_type(item, str, field)
    return list(value)


def require_str_map(value: Any, field: str) -> dict[str, str]:
    require_type(value, Mapping, field)
    for key, item in value.items():
        require_type(key, str, field)
        require_type(item, str, field)
    return dict(value)
