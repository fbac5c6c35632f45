"""
Tests for the manifest data model.

Covers:
- AliasIdentifier validation and filename helpers
- SourceLocator symlink resolution
- All-or-nothing Manifest construction
- to_dict / from_dict for cache storage
- ReconcilePatch validation
- Bashcomp mode precedence
"""

import os

import pytest

from chopper.errors import ValidationError, Violation
from chopper.manifest import (
    AliasIdentifier,
    BashcompConfig,
    JournalConfig,
    Manifest,
    ReconcileConfig,
    ReconcilePatch,
    ResolvedCommand,
    SourceLocator,
)


@pytest.fixture
def full_manifest() -> Manifest:
    return Manifest(
        exec="/usr/bin/kubectl",
        args=("get", "pods"),
        env={"KUBECONFIG": "/etc/kube/prod", "EMPTY": ""},
        env_remove=("DEBUG", "TRACE"),
        journal=JournalConfig(namespace="ops", identifier="kpods", max_use="256M", rate_limit_burst=10),
        reconcile=ReconcileConfig(script="/etc/chopper/kpods.rhai"),
        bashcomp=BashcompConfig(passthrough=True),
    )


# =============================================================================
# Identity
# =============================================================================

class TestAliasIdentifier:
    def test_valid(self):
        assert str(AliasIdentifier("kpods")) == "kpods"

    def test_invalid_raises(self):
        with pytest.raises(ValidationError):
            AliasIdentifier("-flag")

    def test_non_string_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            AliasIdentifier(42)
        assert exc_info.value.violation is Violation.WRONG_TYPE

    def test_filename_safe(self):
        assert AliasIdentifier("build.release-1_x").is_filename_safe
        assert not AliasIdentifier("déploy").is_filename_safe
        assert not AliasIdentifier("a:b").is_filename_safe

    def test_sanitized(self):
        assert AliasIdentifier("déploy:prod").sanitized() == "d_ploy_prod"


class TestSourceLocator:
    def test_resolves_symlink_directory(self, tmp_path):
        real_dir = tmp_path / "real"
        real_dir.mkdir()
        target = real_dir / "tool.toml"
        target.write_text('exec = "x"\n')
        link_dir = tmp_path / "links"
        link_dir.mkdir()
        link = link_dir / "tool.toml"
        os.symlink(target, link)

        locator = SourceLocator.from_path(link)
        assert locator.path == target.resolve()
        assert locator.directory == real_dir.resolve()

    def test_relative_path_made_absolute(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        locator = SourceLocator.from_path("alias.toml")
        assert locator.path.is_absolute()
        assert locator.directory == tmp_path.resolve()


# =============================================================================
# Manifest
# =============================================================================

class TestManifestConstruction:
    """A manifest that fails a check never exists."""

    def test_simple(self):
        manifest = Manifest.simple("/bin/echo")
        assert manifest.exec == "/bin/echo"
        assert manifest.args == ()
        assert manifest.env == {}

    def test_lists_coerced_to_tuples(self):
        manifest = Manifest(exec="/bin/echo", args=["a"], env_remove=["B"])
        assert manifest.args == ("a",)
        assert manifest.env_remove == ("B",)

    @pytest.mark.parametrize("kwargs, field", [
        ({"exec": "bin/.."}, "exec"),
        ({"exec": " /bin/echo"}, "exec"),
        ({"exec": "/bin/echo", "args": ["a\0"]}, "args"),
        ({"exec": "/bin/echo", "env": {"A=B": "1"}}, "env"),
        ({"exec": "/bin/echo", "env": {" A": "1"}}, "env"),
        ({"exec": "/bin/echo", "env": {"A": "\0"}}, "env"),
        ({"exec": "/bin/echo", "env_remove": ["A", "A"]}, "env_remove"),
        ({"exec": "/bin/echo", "env_remove": [""]}, "env_remove"),
    ])
    def test_rejects_invalid(self, kwargs, field):
        with pytest.raises(ValidationError) as exc_info:
            Manifest(**kwargs)
        assert exc_info.value.field == field

    def test_journal_rejects_blank_identifier(self):
        with pytest.raises(ValidationError):
            JournalConfig(namespace="ops", identifier=" ")

    def test_journal_rejects_zero_burst(self):
        with pytest.raises(ValidationError) as exc_info:
            JournalConfig(namespace="ops", rate_limit_burst=0)
        assert exc_info.value.violation is Violation.NOT_POSITIVE

    def test_bashcomp_rhai_function_requires_script(self):
        with pytest.raises(ValidationError) as exc_info:
            BashcompConfig(rhai_function="complete")
        assert exc_info.value.violation is Violation.REQUIRES_FIELD


class TestManifestDict:
    def test_round_trip(self, full_manifest):
        assert Manifest.from_dict(full_manifest.to_dict()) == full_manifest

    def test_missing_exec(self):
        with pytest.raises(ValidationError) as exc_info:
            Manifest.from_dict({"args": []})
        assert exc_info.value.violation is Violation.MISSING

    def test_not_a_dict(self):
        with pytest.raises(ValidationError):
            Manifest.from_dict(["exec"])

    def test_tampered_env_rejected(self, full_manifest):
        data = full_manifest.to_dict()
        data["env"]["A=B"] = "x"
        with pytest.raises(ValidationError) as exc_info:
            Manifest.from_dict(data)
        assert exc_info.value.violation is Violation.CONTAINS_EQUALS

    def test_null_args_rejected(self, full_manifest):
        data = full_manifest.to_dict()
        data["args"] = None
        with pytest.raises(ValidationError):
            Manifest.from_dict(data)


class TestBashcompMode:
    @pytest.mark.parametrize("config, mode", [
        (BashcompConfig(disabled=True, script="/c.bash", passthrough=True), "disabled"),
        (BashcompConfig(script="/c.bash", rhai_script="/c.rhai"), "custom"),
        (BashcompConfig(rhai_script="/c.rhai", passthrough=True), "rhai"),
        (BashcompConfig(passthrough=True), "passthrough"),
        (BashcompConfig(), "normal"),
    ])
    def test_precedence(self, config, mode):
        assert config.mode == mode


# =============================================================================
# Patch and command
# =============================================================================

class TestReconcilePatch:
    def test_empty(self):
        assert ReconcilePatch().is_empty

    def test_empty_replace_is_not_empty(self):
        patch = ReconcilePatch(replace_args=[])
        assert patch.replace_args == ()
        assert not patch.is_empty

    def test_rejects_nul_in_append(self):
        with pytest.raises(ValidationError):
            ReconcilePatch(append_args=["\0"])

    def test_rejects_untrimmed_set_env_key(self):
        with pytest.raises(ValidationError):
            ReconcilePatch(set_env={" K": "v"})


class TestResolvedCommand:
    def test_argv(self):
        command = ResolvedCommand(exec="/bin/echo", args=("a", "b"), env={})
        assert command.argv == ["/bin/echo", "a", "b"]

    def test_env_is_read_only(self):
        source = {"PATH": "/bin"}
        command = ResolvedCommand(exec="/bin/echo", args=["a"], env=source)
        source["PATH"] = "/changed"

        assert command.env == {"PATH": "/bin"}
        assert command.args == ("a",)
        with pytest.raises(TypeError):
            command.env["EXTRA"] = "1"


class TestMappingsFrozen:
    def test_manifest_env_cannot_be_mutated(self):
        manifest = Manifest(exec="/bin/true", env={"K": "1"})
        with pytest.raises(TypeError):
            manifest.env["A=B"] = "x\0"
        assert manifest.env == {"K": "1"}

    def test_manifest_keeps_no_reference_to_input(self):
        source = {"K": "1"}
        manifest = Manifest(exec="/bin/true", env=source)
        source["A=B"] = "x"
        assert manifest.env == {"K": "1"}

    def test_patch_set_env_cannot_be_mutated(self):
        patch = ReconcilePatch(set_env={"K": "2"})
        with pytest.raises(TypeError):
            patch.set_env["K"] = "3"

    def test_manifest_rebuilt_from_read_only_env(self):
        manifest = Manifest(exec="/bin/true", env={"K": "1"})
        assert Manifest(exec="/bin/false", env=manifest.env).env == {"K": "1"}
