# chopper/parser.py
"""
Alias document parser.

Turns the raw bytes of a TOML alias document into a validated Manifest:
1. Strip a UTF-8 byte-order mark and decode
2. Decode TOML into a generic table (tomllib)
3. Check value types against the raw document schema (pydantic)
4. Run every field through chopper.validation, fail-fast
5. Resolve relative exec/script paths against the source file's real directory

Unknown top-level keys are ignored so older launchers can read newer
documents. A failure always propagates; nothing is retried.
"""

import logging
import shutil
import tomllib
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictInt, StrictStr
from pydantic import ValidationError as SchemaError

from .errors import ParseError, ResolutionError, ValidationError, Violation
from .manifest import BashcompConfig, JournalConfig, Manifest, ReconcileConfig, SourceLocator
from .validation import (
    dedupe_first_seen,
    is_absolute_path,
    looks_like_relative_path,
    normalize_env_map,
    normalize_optional_identifier,
    require_non_blank_nul_free,
    require_positive,
    validate_arg_values,
    validate_max_use,
    validate_optional_path_like,
    validate_path_like,
)

logger = logging.getLogger(__name__)

UTF8_BOM = b"\xef\xbb\xbf"
DEFAULT_RECONCILE_FUNCTION = "reconcile"


# =============================================================================
# Raw document schema
# =============================================================================

class _JournalTable(BaseModel):
    model_config = ConfigDict(extra="ignore")

    namespace: StrictStr
    stderr: StrictBool = True
    identifier: Optional[StrictStr] = None
    user_scope: StrictBool = True
    ensure: StrictBool = False
    max_use: Optional[StrictStr] = None
    rate_limit_interval_usec: Optional[StrictInt] = None
    rate_limit_burst: Optional[StrictInt] = None


class _ReconcileTable(BaseModel):
    model_config = ConfigDict(extra="ignore")

    script: StrictStr
    function: Optional[StrictStr] = None


class _BashcompTable(BaseModel):
    model_config = ConfigDict(extra="ignore")

    disabled: StrictBool = False
    passthrough: StrictBool = False
    script: Optional[StrictStr] = None
    rhai_script: Optional[StrictStr] = None
    rhai_function: Optional[StrictStr] = None


class _AliasDocument(BaseModel):
    model_config = ConfigDict(extra="ignore")

    exec: StrictStr
    args: List[StrictStr] = Field(default_factory=list)
    env: Dict[StrictStr, StrictStr] = Field(default_factory=dict)
    env_remove: List[StrictStr] = Field(default_factory=list)
    journal: Optional[_JournalTable] = None
    reconcile: Optional[_ReconcileTable] = None
    bashcomp: Optional[_BashcompTable] = None


def _schema_violation(error: SchemaError) -> ValidationError:
    """Translate the first pydantic error into a ValidationError."""
    first = error.errors()[0]
    field = ".".join(str(part) for part in first["loc"]) or "document"
    if first["type"] == "missing":
        return ValidationError(field, Violation.MISSING, f"field `{field}` is required")
    return ValidationError(field, Violation.WRONG_TYPE, f"field `{field}`: {first['msg']}")


# =============================================================================
# Path resolution
# =============================================================================

def resolve_script_path(base_dir: Path, script: str) -> str:
    if is_absolute_path(script):
        return script
    return str(base_dir / script)


def resolve_exec_path(base_dir: Path, exec_value: str) -> str:
    """
    Absolute paths are kept, relative paths join the source directory and
    bare command names are looked up on PATH (kept verbatim if not found).
    """
    if is_absolute_path(exec_value):
        return exec_value
    if looks_like_relative_path(exec_value):
        return str(base_dir / exec_value)
    return shutil.which(exec_value) or exec_value


# =============================================================================
# Parsing
# =============================================================================

def decode_document(content: bytes, path: Path) -> dict:
    """Strip a BOM, decode UTF-8 and parse TOML into a plain table."""
    if content.startswith(UTF8_BOM):
        content = content[len(UTF8_BOM):]
    try:
        text = content.decode("utf-8")
    except UnicodeDecodeError as e:
        raise ParseError(path, f"alias config is not valid UTF-8: {e}") from e
    try:
        return tomllib.loads(text)
    except tomllib.TOMLDecodeError as e:
        raise ParseError(path, f"invalid TOML: {e}") from e


def parse_document(content: bytes, locator: SourceLocator) -> Manifest:
    """
    Parse raw document bytes into a Manifest.

    Args:
        content: Raw bytes of the alias document
        locator: Where the bytes came from; relative paths resolve against
                 locator.directory

    Returns:
        Validated Manifest

    Raises:
        ParseError: Bytes are not UTF-8 TOML
        ValidationError: A field failed validation (names the field)
    """
    table = decode_document(content, locator.path)
    try:
        document = _AliasDocument.model_validate(table)
        manifest = _build_manifest(document, locator.directory)
    except SchemaError as e:
        raise _schema_violation(e).with_source(locator.path) from e
    except ResolutionError as e:
        raise e.with_source(locator.path)

    logger.debug(f"[PARSER] Parsed alias config {locator.path} -> exec={manifest.exec}")
    return manifest


def parse_file(locator: SourceLocator) -> Manifest:
    """Read and parse an alias document; only `.toml` files are accepted."""
    if locator.path.suffix.lower() != ".toml":
        raise ParseError(
            locator.path, "unsupported alias config format; expected a .toml file"
        )
    try:
        content = locator.path.read_bytes()
    except OSError as e:
        raise ParseError(locator.path, f"failed to read alias config: {e}") from e
    return parse_document(content, locator)


def _build_manifest(document: _AliasDocument, base_dir: Path) -> Manifest:
    exec_value = validate_path_like(document.exec, "exec")
    args = validate_arg_values(document.args, "args")
    env = normalize_env_map(document.env, "env")
    env_remove = dedupe_first_seen(document.env_remove, "env_remove")

    journal = _build_journal(document.journal) if document.journal else None
    reconcile = _build_reconcile(document.reconcile, base_dir) if document.reconcile else None
    bashcomp = _build_bashcomp(document.bashcomp, base_dir) if document.bashcomp else None

    return Manifest(
        exec=resolve_exec_path(base_dir, exec_value),
        args=tuple(args),
        env=env,
        env_remove=tuple(env_remove),
        journal=journal,
        reconcile=reconcile,
        bashcomp=bashcomp,
    )


def _build_journal(table: _JournalTable) -> JournalConfig:
    max_use = None
    if table.max_use is not None:
        max_use = validate_max_use(table.max_use, "journal.max_use")
    return JournalConfig(
        namespace=require_non_blank_nul_free(table.namespace, "journal.namespace"),
        stderr=table.stderr,
        identifier=normalize_optional_identifier(
            table.identifier, "journal.identifier", blank_as_unset=True
        ),
        user_scope=table.user_scope,
        ensure=table.ensure,
        max_use=max_use,
        rate_limit_interval_usec=require_positive(
            table.rate_limit_interval_usec, "journal.rate_limit_interval_usec"
        ),
        rate_limit_burst=require_positive(table.rate_limit_burst, "journal.rate_limit_burst"),
    )


def _build_reconcile(table: _ReconcileTable, base_dir: Path) -> ReconcileConfig:
    script = validate_path_like(table.script, "reconcile.script")
    function = normalize_optional_identifier(
        table.function, "reconcile.function", blank_as_unset=True
    )
    return ReconcileConfig(
        script=resolve_script_path(base_dir, script),
        function=function or DEFAULT_RECONCILE_FUNCTION,
    )


def _build_bashcomp(table: _BashcompTable, base_dir: Path) -> BashcompConfig:
    script = validate_optional_path_like(table.script, "bashcomp.script")
    rhai_script = validate_optional_path_like(table.rhai_script, "bashcomp.rhai_script")
    rhai_function = normalize_optional_identifier(
        table.rhai_function, "bashcomp.rhai_function", blank_as_unset=True
    )
    return BashcompConfig(
        disabled=table.disabled,
        passthrough=table.passthrough,
        script=resolve_script_path(base_dir, script) if script else None,
        rhai_script=resolve_script_path(base_dir, rhai_script) if rhai_script else None,
        rhai_function=rhai_function,
    )
