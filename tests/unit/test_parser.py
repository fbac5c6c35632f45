"""
Tests for the alias document parser.

Covers:
- Minimal and full documents
- BOM stripping, invalid UTF-8 and invalid TOML
- Schema type errors naming the dotted field
- Relative path resolution against the real source directory
- Exec lookup on PATH
- Unknown top-level keys ignored
"""

import os
import stat

import pytest

from chopper.errors import ParseError, ValidationError, Violation
from chopper.manifest import SourceLocator
from chopper.parser import parse_document, parse_file, resolve_exec_path


def _write(path, text: str):
    path.write_text(text, encoding="utf-8")
    return SourceLocator.from_path(path)


@pytest.fixture
def config_dir(tmp_path):
    directory = tmp_path / "config"
    directory.mkdir()
    return directory


# =============================================================================
# Happy paths
# =============================================================================

class TestParseDocuments:
    def test_minimal(self, config_dir):
        locator = _write(config_dir / "tool.toml", 'exec = "/usr/bin/env"\n')
        manifest = parse_file(locator)
        assert manifest.exec == "/usr/bin/env"
        assert manifest.args == ()
        assert manifest.journal is None

    def test_full_document(self, config_dir):
        locator = _write(config_dir / "kpods.toml", """
exec = "/usr/bin/kubectl"
args = ["get", "pods", "get"]
env_remove = [" DEBUG", "", "DEBUG", "TRACE"]
future_key = "ignored"

[env]
" KUBECONFIG " = "/etc/kube/prod"

[journal]
namespace = " ops "
identifier = "  "
max_use = "1G"
rate_limit_interval_usec = 1000

[reconcile]
script = "kpods.rhai"
function = "  "

[bashcomp]
rhai_script = "./comp/kpods.rhai"
rhai_function = "complete"
script = ""
""")
        manifest = parse_file(locator)
        base = locator.directory

        assert manifest.args == ("get", "pods", "get")
        assert manifest.env == {"KUBECONFIG": "/etc/kube/prod"}
        assert manifest.env_remove == ("DEBUG", "TRACE")
        assert manifest.journal.namespace == "ops"
        assert manifest.journal.identifier is None
        assert manifest.journal.stderr is True
        assert manifest.journal.max_use == "1G"
        assert manifest.reconcile.script == str(base / "kpods.rhai")
        assert manifest.reconcile.function == "reconcile"
        assert manifest.bashcomp.script is None
        assert manifest.bashcomp.rhai_script == str(base / "./comp/kpods.rhai")
        assert manifest.bashcomp.mode == "rhai"

    def test_bom_stripped(self, config_dir):
        path = config_dir / "bom.toml"
        path.write_bytes(b"\xef\xbb\xbfexec = \"/bin/true\"\n")
        assert parse_file(SourceLocator.from_path(path)).exec == "/bin/true"

    def test_parse_document_from_bytes(self, config_dir):
        locator = SourceLocator.from_path(config_dir / "virtual.toml")
        manifest = parse_document(b'exec = "./bin/tool"\n', locator)
        assert manifest.exec == str(config_dir.resolve() / "./bin/tool")


# =============================================================================
# Path resolution
# =============================================================================

class TestPathResolution:
    def test_relative_exec_joins_real_directory(self, tmp_path):
        real_dir = tmp_path / "real"
        real_dir.mkdir()
        source = real_dir / "tool.toml"
        source.write_text('exec = "bin/tool"\n')
        link = tmp_path / "tool.toml"
        os.symlink(source, link)

        manifest = parse_file(SourceLocator.from_path(link))
        assert manifest.exec == str(real_dir.resolve() / "bin/tool")

    def test_bare_exec_found_on_path(self, tmp_path, monkeypatch):
        bin_dir = tmp_path / "bin"
        bin_dir.mkdir()
        program = bin_dir / "mytool"
        program.write_text("#!/bin/sh\n")
        program.chmod(program.stat().st_mode | stat.S_IEXEC)
        monkeypatch.setenv("PATH", str(bin_dir))

        assert resolve_exec_path(tmp_path, "mytool") == str(program)

    def test_bare_exec_kept_when_not_found(self, tmp_path, monkeypatch):
        monkeypatch.setenv("PATH", str(tmp_path / "empty"))
        assert resolve_exec_path(tmp_path, "no-such-tool-xyz") == "no-such-tool-xyz"

    def test_absolute_exec_kept(self, tmp_path):
        assert resolve_exec_path(tmp_path, "/opt/x") == "/opt/x"


# =============================================================================
# Failures
# =============================================================================

class TestParseFailures:
    def test_invalid_toml(self, config_dir):
        locator = _write(config_dir / "bad.toml", "exec = \n")
        with pytest.raises(ParseError) as exc_info:
            parse_file(locator)
        assert exc_info.value.source == str(locator.path)

    def test_invalid_utf8(self, config_dir):
        path = config_dir / "bin.toml"
        path.write_bytes(b"exec = \"\xff\"\n")
        with pytest.raises(ParseError):
            parse_file(SourceLocator.from_path(path))

    def test_non_toml_extension(self, config_dir):
        locator = _write(config_dir / "tool.yaml", 'exec = "/bin/true"\n')
        with pytest.raises(ParseError):
            parse_file(locator)

    def test_missing_file(self, config_dir):
        with pytest.raises(ParseError):
            parse_file(SourceLocator.from_path(config_dir / "absent.toml"))

    def test_missing_exec(self, config_dir):
        locator = _write(config_dir / "t.toml", 'args = ["a"]\n')
        with pytest.raises(ValidationError) as exc_info:
            parse_file(locator)
        assert exc_info.value.field == "exec"
        assert exc_info.value.violation is Violation.MISSING

    def test_wrong_type_names_nested_field(self, config_dir):
        locator = _write(config_dir / "t.toml", 'exec = "/bin/true"\n[journal]\nnamespace = "ops"\nstderr = "yes"\n')
        with pytest.raises(ValidationError) as exc_info:
            parse_file(locator)
        assert exc_info.value.field == "journal.stderr"
        assert exc_info.value.violation is Violation.WRONG_TYPE

    def test_int_arg_rejected(self, config_dir):
        locator = _write(config_dir / "t.toml", 'exec = "/bin/true"\nargs = [1]\n')
        with pytest.raises(ValidationError) as exc_info:
            parse_file(locator)
        assert exc_info.value.field.startswith("args")

    @pytest.mark.parametrize("body, field, violation", [
        ('exec = "bin/.."', "exec", Violation.TRAILING_DOT_COMPONENT),
        ('exec = "  "', "exec", Violation.BLANK),
        ('exec = "/bin/true"\n[env]\n"A=B" = "1"', "env", Violation.CONTAINS_EQUALS),
        ('exec = "/bin/true"\n[env]\nA = "1"\n" A" = "2"', "env", Violation.DUPLICATE_KEY),
        ('exec = "/bin/true"\nargs = ["a\\u0000"]', "args", Violation.NUL_BYTE),
        ('exec = "/bin/true"\nenv_remove = ["A\\u0000"]', "env_remove", Violation.NUL_BYTE),
        ('exec = "/bin/true"\n[env]\nA = "x\\u0000"', "env", Violation.NUL_BYTE),
        ('exec = "/bin/\\u0000true"', "exec", Violation.NUL_BYTE),
        ('exec = "/bin/true"\n[journal]\nnamespace = "  "', "journal.namespace", Violation.BLANK),
        ('exec = "/bin/true"\n[journal]\nnamespace = "o\\u0000"', "journal.namespace", Violation.NUL_BYTE),
        ('exec = "/bin/true"\n[journal]\nnamespace = "o"\nmax_use = "lots"', "journal.max_use", Violation.INVALID_FORMAT),
        ('exec = "/bin/true"\n[journal]\nnamespace = "o"\nrate_limit_burst = 0', "journal.rate_limit_burst", Violation.NOT_POSITIVE),
        ('exec = "/bin/true"\n[reconcile]\nscript = "./"', "reconcile.script", Violation.TRAILING_SEPARATOR),
        ('exec = "/bin/true"\n[bashcomp]\nrhai_function = "f"', "bashcomp.rhai_function", Violation.REQUIRES_FIELD),
    ])
    def test_field_rejections(self, config_dir, body, field, violation):
        locator = _write(config_dir / "t.toml", body + "\n")
        with pytest.raises(ValidationError) as exc_info:
            parse_file(locator)
        assert exc_info.value.field == field
        assert exc_info.value.violation is violation
        assert exc_info.value.source == str(locator.path)
