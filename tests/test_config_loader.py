"""Tests for config_loader, config_schema and credentials."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from upgit.config_loader import (
    ConfigError,
    _deep_merge,
    _env_to_config_key,
    _get_project_config_dir,
    _get_user_config_dir,
    ensure_config_dir,
    get_config_paths,
    load_config,
)
from upgit.config_schema import TransportConfig, UpgitConfig
from upgit.credentials import get_github_token, get_ssh_key_path, load_credentials, secure_file_permissions
from upgit.transport import SshAgentCredential, SshKeyCredential, TokenCredential


BASE_TOML = """
[source]
name = "svc"
repo_url = "git@github.com:octo/svc.git"
file_path = ".eslintrc.json"

[target]
name = "shared"
repo_url = "git@github.com:octo/shared.git"
file_path = "eslint/.eslintrc.json"

[author]
name = "bot"
email = "bot@example.com"

[github]
user = "octo"
"""


def _write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)
    return path


@pytest.fixture
def user_config(isolated_env):
    return _write(isolated_env / ".upgit" / "config.toml", BASE_TOML)


@pytest.fixture
def project(tmp_path):
    root = tmp_path / "project"
    (root / "sub" / "deeper").mkdir(parents=True)
    return root


class TestDeepMerge:
    """Tests for _deep_merge function."""

    def test_nested_merge(self):
        base = {"source": {"name": "a", "file_path": "x"}}
        override = {"source": {"name": "b"}}
        assert _deep_merge(base, override) == {"source": {"name": "b", "file_path": "x"}}

    def test_list_replacement(self):
        assert _deep_merge({"items": [1, 2]}, {"items": [3]}) == {"items": [3]}

    def test_base_unchanged(self):
        base = {"a": 1}
        _deep_merge(base, {"a": 2})
        assert base == {"a": 1}


class TestEnvToConfigKey:
    """Tests for _env_to_config_key function."""

    def test_section_key(self):
        assert _env_to_config_key("UPGIT_SOURCE_BASE_BRANCH") == (["source"], "base_branch")

    def test_transport_key(self):
        assert _env_to_config_key("UPGIT_GIT_SSH_KEY") == (["transport"], "ssh_key")

    def test_unknown_var(self):
        assert _env_to_config_key("UPGIT_UNKNOWN") == ([], "UPGIT_UNKNOWN")


class TestDiscovery:
    """Tests for config directory discovery."""

    def test_user_config_dir(self, isolated_env):
        assert _get_user_config_dir() == isolated_env / ".upgit"

    def test_project_dir_found_upward(self, project):
        (project / ".upgit").mkdir()
        assert _get_project_config_dir(project / "sub" / "deeper") == project / ".upgit"

    def test_project_dir_missing(self, project):
        assert _get_project_config_dir(project / "sub") is None

    def test_user_dir_is_not_a_project_dir(self, isolated_env):
        (isolated_env / ".upgit").mkdir()
        (isolated_env / "work").mkdir()
        assert _get_project_config_dir(isolated_env / "work") is None

    def test_get_config_paths(self, isolated_env, project, tmp_path):
        (project / ".upgit").mkdir()
        paths = get_config_paths(tmp_path / "extra.toml", project)
        assert paths == {
            "user_config": isolated_env / ".upgit" / "config.toml",
            "project_config": project / ".upgit" / "config.toml",
            "explicit_config": tmp_path / "extra.toml",
        }

    def test_ensure_config_dir(self, isolated_env, project):
        assert ensure_config_dir() == isolated_env / ".upgit"
        assert ensure_config_dir(user=False, project_path=project) == project / ".upgit"
        assert (project / ".upgit").is_dir()


class TestLoadConfig:
    """Tests for load_config layering and validation."""

    def test_user_config_only(self, user_config, project):
        config = load_config(project_path=project)
        assert isinstance(config, UpgitConfig)
        assert config.source.name == "svc"
        assert config.source.base_branch == "master"
        assert config.github.user == "octo"
        assert config.github.token == ""
        assert config.transport == TransportConfig()

    def test_project_overrides_user(self, user_config, project):
        _write(project / ".upgit" / "config.toml", '[source]\nbase_branch = "main"\n')
        config = load_config(project_path=project / "sub")
        assert config.source.base_branch == "main"
        assert config.source.name == "svc"

    def test_explicit_overrides_project(self, user_config, project, tmp_path):
        _write(project / ".upgit" / "config.toml", '[source]\nbase_branch = "main"\n')
        extra = _write(tmp_path / "extra.toml", '[source]\nbase_branch = "release"\n')
        config = load_config(extra, project)
        assert config.source.base_branch == "release"

    def test_env_overrides_files(self, user_config, project, monkeypatch):
        monkeypatch.setenv("UPGIT_SOURCE_BASE_BRANCH", "develop")
        monkeypatch.setenv("UPGIT_ACCEPT_UNKNOWN_HOSTS", "false")
        config = load_config(project_path=project)
        assert config.source.base_branch == "develop"
        assert config.transport.accept_unknown_hosts is False

    def test_skip_env(self, user_config, project, monkeypatch):
        monkeypatch.setenv("UPGIT_SOURCE_BASE_BRANCH", "develop")
        assert load_config(project_path=project, skip_env=True).source.base_branch == "master"

    def test_env_alone_is_enough(self, project, monkeypatch):
        for key, value in {
            "UPGIT_SOURCE_NAME": "svc",
            "UPGIT_SOURCE_REPO_URL": "/srv/svc.git",
            "UPGIT_SOURCE_FILE_PATH": "a.txt",
            "UPGIT_TARGET_NAME": "shared",
            "UPGIT_TARGET_REPO_URL": "/srv/shared.git",
            "UPGIT_TARGET_FILE_PATH": "a.txt",
            "UPGIT_AUTHOR_NAME": "bot",
            "UPGIT_AUTHOR_EMAIL": "bot@example.com",
            "UPGIT_GITHUB_USER": "octo",
        }.items():
            monkeypatch.setenv(key, value)
        config = load_config(project_path=project)
        assert config.target.repo_url == "/srv/shared.git"

    def test_missing_sections_fail_validation(self, project):
        with pytest.raises(ConfigError, match="validation failed"):
            load_config(project_path=project)

    def test_invalid_field_fails_validation(self, user_config, project, monkeypatch):
        monkeypatch.setenv("UPGIT_SOURCE_FILE_PATH", "../escape")
        with pytest.raises(ConfigError):
            load_config(project_path=project)

    def test_invalid_user_config_warns(self, isolated_env, project, tmp_path):
        _write(isolated_env / ".upgit" / "config.toml", "not = [valid")
        extra = _write(tmp_path / "extra.toml", BASE_TOML)
        with pytest.warns(UserWarning, match="Skipping invalid user config"):
            config = load_config(extra, project)
        assert config.source.name == "svc"

    def test_invalid_project_config_raises(self, user_config, project):
        _write(project / ".upgit" / "config.toml", "not = [valid")
        with pytest.raises(ConfigError, match="Invalid project config"):
            load_config(project_path=project)

    def test_missing_explicit_config_raises(self, user_config, project, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            load_config(tmp_path / "missing.toml", project)


class TestCredentials:
    """Tests for token and key fallbacks."""

    def test_token_from_github_token(self, user_config, project, monkeypatch):
        monkeypatch.setenv("GH_TOKEN", "gh")
        monkeypatch.setenv("GITHUB_TOKEN", "github")
        assert load_config(project_path=project).github.token == "github"

    def test_token_from_gh_token(self, monkeypatch):
        monkeypatch.setenv("GH_TOKEN", "gh")
        assert get_github_token() == "gh"

    def test_configured_token_wins(self, user_config, project, monkeypatch):
        monkeypatch.setenv("GITHUB_TOKEN", "github")
        monkeypatch.setenv("UPGIT_GITHUB_TOKEN", "explicit")
        assert load_config(project_path=project).github.token == "explicit"

    def test_credentials_file(self, isolated_env, user_config, project):
        key = _write(isolated_env / ".ssh" / "id_ed25519", "key")
        _write(
            isolated_env / ".upgit" / "credentials.toml",
            f'[github]\ntoken = "from-file"\nssh_key = "{key}"\n',
        )
        assert load_credentials().github.token == "from-file"
        assert get_ssh_key_path() == key
        config = load_config(project_path=project)
        assert config.github.token == "from-file"
        assert config.transport.ssh_key == str(key)

    def test_unreadable_credentials_warn(self, isolated_env):
        _write(isolated_env / ".upgit" / "credentials.toml", "broken = [")
        with pytest.warns(UserWarning, match="Error loading credentials"):
            creds = load_credentials()
        assert creds.github.token == ""

    def test_no_credentials(self):
        assert get_github_token() is None
        assert get_ssh_key_path() is None

    @pytest.mark.skipif(os.name != "posix", reason="POSIX permissions")
    def test_secure_file_permissions(self, tmp_path):
        path = _write(tmp_path / "secret.toml", "x")
        path.chmod(0o644)
        secure_file_permissions(path)
        assert path.stat().st_mode & 0o777 == 0o600




class TestSchema:
    """Tests for UpgitConfig helpers."""

    def _config(self, tmp_path) -> UpgitConfig:
        extra = _write(tmp_path / "extra.toml", BASE_TOML)
        return load_config(extra, tmp_path)

    def test_redacted_masks_token(self, tmp_path, monkeypatch):
        monkeypatch.setenv("GITHUB_TOKEN", "secret")
        data = self._config(tmp_path).redacted()
        assert data["github"]["token"] == "***"
        assert data["source"]["name"] == "svc"

    def test_redacted_leaves_empty_token(self, tmp_path):
        assert self._config(tmp_path).redacted()["github"]["token"] == ""

    def test_default_transport_options(self):
        options = TransportConfig().build_options()
        assert options.certificate_check("github.com") is True
        assert options.credentials("git@github.com:o/r.git", "git") == SshAgentCredential("git")

    def test_strict_host_keys(self):
        options = TransportConfig(accept_unknown_hosts=False).build_options()
        assert options.certificate_check("github.com") is False

    def test_ssh_key_transport(self, tmp_path):
        key = _write(tmp_path / "id_ed25519", "key")
        options = TransportConfig(ssh_key=str(key)).build_options()
        assert options.credentials("git@github.com:o/r.git", "git") == SshKeyCredential("git", key)

    def test_missing_ssh_key_warns(self, tmp_path):
        with pytest.warns(UserWarning, match="does not exist"):
            TransportConfig(ssh_key=str(tmp_path / "nope"))

    def test_https_token_transport(self):
        options = TransportConfig(https_token=True).build_options("tok")
        assert options.credentials("https://github.com/o/r.git", None) == TokenCredential("tok")
        assert options.credentials("git@github.com:o/r.git", "git") == SshAgentCredential("git")

    def test_https_token_ignored_without_token(self):
        options = TransportConfig(https_token=True).build_options("")
        assert options.credentials("https://github.com/o/r.git", None) == SshAgentCredential("git")

    def test_build_updater(self, tmp_path, monkeypatch):
        monkeypatch.setenv("GITHUB_TOKEN", "tok")
        config = self._config(tmp_path)
        config = config.model_copy(
            update={"transport": TransportConfig(tmp_root=str(tmp_path / "clones"))}
        )
        updater = config.build_updater()
        try:
            assert updater.tmp_root == tmp_path / "clones"
            assert updater.github_user == "octo"
            assert updater.id.endswith("-svc")
            assert updater.gh.http.headers["Authorization"] == "Bearer tok"
        finally:
            updater.gh.close()

    def test_build_updater_explicit_tmp_root_wins(self, tmp_path):
        config = self._config(tmp_path)
        updater = config.build_updater(tmp_root=tmp_path / "explicit")
        try:
            assert updater.tmp_root == tmp_path / "explicit"
        finally:
            updater.gh.close()
