"""
Tests for configuration — context validation and hops.yml loading.
"""

import textwrap
from pathlib import Path

import pytest
from pydantic import ValidationError

from hops.core.config.loader import (
    HOPS_CONFIG_ENV,
    HOPS_CONFIG_FILE,
    find_config_file,
    load_context,
    read_config,
)
from hops.core.errors import ConfigurationDefect, ContextError
from hops.core.models.context import ConfigurationContext


def _values(tmp_path: Path, **overrides) -> dict:
    values = {
        "puid": 1000,
        "pgid": 1000,
        "timezone": "Europe/London",
        "data_root": tmp_path / "data",
        "config_root": tmp_path / "config",
        "install_root": tmp_path / "homelab",
    }
    values.update(overrides)
    return values


class TestConfigurationContext:
    def test_valid(self, tmp_path: Path):
        ctx = ConfigurationContext(**_values(tmp_path))
        assert ctx.puid == 1000
        assert ctx.manifest_path == tmp_path / "homelab" / "docker-compose.yml"
        assert ctx.service_config_dir("sonarr") == tmp_path / "config" / "sonarr"

    def test_numeric_string_accepted(self, tmp_path: Path):
        ctx = ConfigurationContext(**_values(tmp_path, puid="1001", pgid=" 100 "))
        assert ctx.puid == 1001
        assert ctx.pgid == 100

    @pytest.mark.parametrize("bad", ["abc", "", "-1", True, 70000, -5, 1.5])
    def test_rejects_bad_ids(self, tmp_path: Path, bad):
        with pytest.raises(ValidationError):
            ConfigurationContext(**_values(tmp_path, puid=bad))

    def test_rejects_relative_path(self, tmp_path: Path):
        with pytest.raises(ValidationError):
            ConfigurationContext(**_values(tmp_path, data_root=Path("media")))

    def test_rejects_traversal(self, tmp_path: Path):
        with pytest.raises(ValidationError):
            ConfigurationContext(**_values(tmp_path, config_root=tmp_path / ".." / "etc"))

    @pytest.mark.parametrize("tz", ["Europe/London", "UTC", "America/Argentina/Buenos_Aires", "Etc/GMT+5"])
    def test_timezones_accepted(self, tmp_path: Path, tz: str):
        assert ConfigurationContext(**_values(tmp_path, timezone=tz)).timezone == tz

    @pytest.mark.parametrize("tz", ["", "Europe London", "../etc/passwd", "$(id)"])
    def test_timezones_rejected(self, tmp_path: Path, tz: str):
        with pytest.raises(ValidationError):
            ConfigurationContext(**_values(tmp_path, timezone=tz))

    def test_domain_and_email(self, tmp_path: Path):
        ctx = ConfigurationContext(
            **_values(tmp_path, domain="home.example.org", acme_email="admin@example.org"),
        )
        assert ctx.domain == "home.example.org"

        with pytest.raises(ValidationError):
            ConfigurationContext(**_values(tmp_path, domain="bad domain"))
        with pytest.raises(ValidationError):
            ConfigurationContext(**_values(tmp_path, acme_email="not-an-email"))

    def test_credential_names(self, tmp_path: Path):
        with pytest.raises(ValidationError):
            ConfigurationContext(**_values(tmp_path, credentials={"db-password": "x"}))

    def test_credentials_hidden_from_repr(self, tmp_path: Path):
        ctx = ConfigurationContext(**_values(tmp_path, credentials={"DB_PASSWORD": "s3cret"}))
        assert "s3cret" not in repr(ctx)

    def test_frozen(self, tmp_path: Path):
        ctx = ConfigurationContext(**_values(tmp_path))
        with pytest.raises(ValidationError):
            ctx.puid = 0

    def test_template_vars(self, tmp_path: Path):
        ctx = ConfigurationContext(**_values(tmp_path, credentials={"DB_PASSWORD": "pw"}))
        variables = ctx.template_vars()
        assert variables["PUID"] == "1000"
        assert variables["TZ"] == "Europe/London"
        assert variables["CONFIG_ROOT"] == str(tmp_path / "config")
        assert variables["DB_PASSWORD"] == "pw"
        assert "DOMAIN" not in variables

    def test_template_vars_with_domain(self, tmp_path: Path):
        ctx = ConfigurationContext(**_values(tmp_path, domain="example.org"))
        assert ctx.template_vars()["DOMAIN"] == "example.org"


class TestReadConfig:
    def test_flat(self, tmp_path: Path):
        config = tmp_path / HOPS_CONFIG_FILE
        config.write_text(textwrap.dedent("""\
            puid: 1000
            TZ: Europe/Paris
            media_dir: /srv/media
        """))
        values = read_config(config)
        assert values == {"puid": 1000, "timezone": "Europe/Paris", "data_root": "/srv/media"}

    def test_wrapped(self, tmp_path: Path):
        config = tmp_path / HOPS_CONFIG_FILE
        config.write_text(textwrap.dedent("""\
            hops:
              uid: 1001
              gid: 1002
        """))
        assert read_config(config) == {"puid": 1001, "pgid": 1002}

    def test_empty_file(self, tmp_path: Path):
        config = tmp_path / HOPS_CONFIG_FILE
        config.write_text("")
        assert read_config(config) == {}

    def test_missing(self, tmp_path: Path):
        with pytest.raises(ContextError, match="not found"):
            read_config(tmp_path / "nope.yml")

    def test_invalid_yaml(self, tmp_path: Path):
        config = tmp_path / HOPS_CONFIG_FILE
        config.write_text("puid: [unclosed\n")
        with pytest.raises(ContextError, match="Invalid YAML"):
            read_config(config)

    def test_not_a_mapping(self, tmp_path: Path):
        config = tmp_path / HOPS_CONFIG_FILE
        config.write_text("- a\n- b\n")
        with pytest.raises(ContextError, match="Expected a YAML mapping"):
            read_config(config)


class TestFindConfigFile:
    def test_walks_upward(self, tmp_path: Path, monkeypatch):
        monkeypatch.delenv(HOPS_CONFIG_ENV, raising=False)
        config = tmp_path / HOPS_CONFIG_FILE
        config.write_text("puid: 1000\n")
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)
        assert find_config_file(nested) == config.resolve()

    def test_env_wins(self, tmp_path: Path, monkeypatch):
        explicit = tmp_path / "elsewhere.yml"
        monkeypatch.setenv(HOPS_CONFIG_ENV, str(explicit))
        (tmp_path / HOPS_CONFIG_FILE).write_text("puid: 1000\n")
        assert find_config_file(tmp_path) == explicit


class TestLoadContext:
    def _write(self, tmp_path: Path) -> Path:
        config = tmp_path / HOPS_CONFIG_FILE
        config.write_text(textwrap.dedent(f"""\
            hops:
              puid: 1000
              pgid: 1000
              tz: Europe/London
              data_root: {tmp_path / "data"}
              config_root: {tmp_path / "config"}
              install_root: {tmp_path / "homelab"}
        """))
        return config

    def test_from_file(self, tmp_path: Path):
        ctx = load_context(self._write(tmp_path))
        assert ctx.timezone == "Europe/London"
        assert ctx.install_root == tmp_path / "homelab"

    def test_overrides_win(self, tmp_path: Path):
        ctx = load_context(self._write(tmp_path), {"puid": "1005", "tz": "UTC", "pgid": None})
        assert ctx.puid == 1005
        assert ctx.pgid == 1000
        assert ctx.timezone == "UTC"

    def test_overrides_only(self, tmp_path: Path, monkeypatch):
        monkeypatch.delenv(HOPS_CONFIG_ENV, raising=False)
        monkeypatch.chdir(tmp_path)
        ctx = load_context(overrides=_values(tmp_path))
        assert ctx.data_root == tmp_path / "data"

    def test_expands_home(self, tmp_path: Path, monkeypatch):
        monkeypatch.setenv("HOME", str(tmp_path))
        ctx = load_context(
            self._write(tmp_path), {"install_root": "~/stack"},
        )
        assert ctx.install_root == tmp_path / "stack"

    def test_invalid_values(self, tmp_path: Path):
        with pytest.raises(ContextError) as exc:
            load_context(self._write(tmp_path), {"puid": "abc"})
        assert "puid" in str(exc.value)
        assert isinstance(exc.value, ConfigurationDefect)

    def test_missing_values(self, tmp_path: Path, monkeypatch):
        monkeypatch.delenv(HOPS_CONFIG_ENV, raising=False)
        monkeypatch.chdir(tmp_path)
        with pytest.raises(ContextError, match="timezone"):
            load_context(overrides={"puid": 1000, "pgid": 1000})
