# chopper/errors.py
"""
Error taxonomy for the alias resolution pipeline.

Every failure the core can produce is a ResolutionError subclass:
- ValidationError: a field failed a structural check (blank, NUL, `=`, path shape...)
- ParseError: the source document could not be read or decoded
- CacheError: reading or writing a cache entry failed
- PatchError: the runtime patch provider failed or returned a malformed patch

Front ends map the kinds to distinct exit codes via EXIT_CODES.
"""

from enum import Enum
from pathlib import Path
from typing import Optional, Union


class Violation(Enum):
    """Structural checks a value can fail."""
    MISSING = "missing"                          # Required field absent
    WRONG_TYPE = "wrong_type"                    # Field has the wrong value type
    BLANK = "blank"                              # Empty after trimming
    NUL_BYTE = "nul_byte"                        # Contains an embedded NUL
    CONTAINS_EQUALS = "contains_equals"          # Map key contains `=`
    DUPLICATE_KEY = "duplicate_key"              # Two keys collide after trimming
    UNKNOWN_KEY = "unknown_key"                  # Key outside a closed schema
    DOT_TOKEN = "dot_token"                      # Value is exactly `.` or `..`
    TRAILING_SEPARATOR = "trailing_separator"    # Path ends with `/` or `\`
    TRAILING_DOT_COMPONENT = "trailing_dot_component"  # Path ends with `/.` or `/..`
    MISSING_PATH_SEGMENT = "missing_path_segment"      # Relative path with no real segment
    NOT_CANONICAL = "not_canonical"              # Stored value differs from its normalized form
    STARTS_WITH_DASH = "starts_with_dash"        # Alias looks like a flag
    IS_SEPARATOR = "is_separator"                # Alias is `--`
    CONTAINS_WHITESPACE = "contains_whitespace"  # Alias contains whitespace
    PATH_SEPARATOR = "path_separator"            # Alias contains `/` or `\`
    INVALID_FORMAT = "invalid_format"            # Value does not match its format
    NOT_POSITIVE = "not_positive"                # Number must be > 0
    REQUIRES_FIELD = "requires_field"            # Field needs a sibling field set


class ResolutionError(Exception):
    """Base class for every error raised by the resolution pipeline."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        source: Optional[Union[str, Path]] = None,
    ):
        self.message = message
        self.field = field
        self.source = str(source) if source is not None else None
        super().__init__(self._render())

    def _render(self) -> str:
        if self.source:
            return f"{self.message} ({self.source})"
        return self.message

    def with_source(self, source: Union[str, Path]) -> "ResolutionError":
        """Attach the source document path if none is recorded yet."""
        if self.source is None:
            self.source = str(source)
            self.args = (self._render(),)
        return self


class ValidationError(ResolutionError):
    """Raised when a value fails a Validator check."""

    def __init__(
        self,
        field: str,
        violation: Violation,
        message: str,
        source: Optional[Union[str, Path]] = None,
    ):
        self.violation = violation
        super().__init__(message, field=field, source=source)


class ParseError(ResolutionError):
    """Raised when a source document cannot be read, decoded or is not TOML."""

    def __init__(self, path: Union[str, Path], reason: str):
        self.reason = reason
        super().__init__(f"failed to parse alias config: {reason}", source=path)


class CacheError(ResolutionError):
    """Raised when a cache entry cannot be read or persisted."""

    def __init__(self, path: Union[str, Path], reason: str):
        self.path = str(path)
        self.reason = reason
        super().__init__(f"alias cache failure: {reason}", source=path)


class PatchError(ResolutionError):
    """Raised when the runtime patch provider fails or returns a bad patch."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        violation: Optional[Violation] = None,
        source: Optional[Union[str, Path]] = None,
    ):
        self.violation = violation
        super().__init__(message, field=field, source=source)


EXIT_CODES = {
    ValidationError: 2,
    ParseError: 3,
    PatchError: 4,
    CacheError: 5,
    ResolutionError: 1,
}


def exit_code_for(error: ResolutionError) -> int:
    """Return the process exit status a front end should use for an error."""
    for error_type in type(error).__mro__:
        if error_type in EXIT_CODES:
            return EXIT_CODES[error_type]
    return 1
