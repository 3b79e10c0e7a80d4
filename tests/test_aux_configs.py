"""
Tests for auxiliary config generation — database bootstrap, auth, proxy.
"""

from pathlib import Path

import yaml

from hops.core.models.context import ConfigurationContext
from hops.core.services.aux_configs import (
    FALLBACK_DOMAIN,
    plan_aux_files,
    supported_services,
)
from hops.core.services.catalog import Catalog
from hops.core.services.resolver import resolve


def _files(catalog: Catalog, ctx: ConfigurationContext, *ids: str) -> dict:
    return {f.service_id: f for f in plan_aux_files(catalog, resolve(catalog, ids), ctx)}


def _yaml_body(content: str) -> dict:
    return yaml.safe_load(content)


class TestPlanAuxFiles:
    def test_nothing_for_plain_services(self, catalog: Catalog, context: ConfigurationContext):
        assert _files(catalog, context, "sonarr", "jellyfin") == {}

    def test_supported(self):
        assert supported_services() == ["authelia", "postgres", "traefik"]

    def test_selection_order(self, catalog: Catalog, context: ConfigurationContext):
        files = plan_aux_files(
            catalog, resolve(catalog, ["postgres", "traefik", "authelia"]), context,
        )
        assert [f.service_id for f in files] == ["traefik", "authelia", "postgres"]
        assert all(not f.overwrite for f in files)
        assert all(Path(f.path).is_absolute() for f in files)


class TestPostgresInit:
    def test_database_per_dependent(self, catalog: Catalog, context: ConfigurationContext):
        init = _files(catalog, context, "jellystat")["postgres"]
        assert init.path == str(
            context.config_root / "postgres" / "init" / "01-hops-databases.sql"
        )
        assert 'CREATE DATABASE "jellystat" OWNER hops;' in init.content

    def test_no_dependents(self, catalog: Catalog, context: ConfigurationContext):
        init = _files(catalog, context, "postgres")["postgres"]
        assert "CREATE DATABASE" not in init.content
        assert "No selected service" in init.content


class TestAutheliaConfig:
    def test_default_deny(self, catalog: Catalog, context: ConfigurationContext):
        config = _files(catalog, context, "authelia")["authelia"]
        assert config.path == str(context.config_root / "authelia" / "configuration.yml")

        body = _yaml_body(config.content)
        assert body["access_control"]["default_policy"] == "deny"
        assert body["access_control"]["rules"] == [
            {"domain": f"auth.{FALLBACK_DOMAIN}", "policy": "bypass"},
            {"domain": f"*.{FALLBACK_DOMAIN}", "policy": "one_factor"},
        ]

    def test_redis_session(self, catalog: Catalog, context: ConfigurationContext):
        # authelia depends on redis, so redis is always selected with it
        body = _yaml_body(_files(catalog, context, "authelia")["authelia"].content)
        assert body["session"]["redis"] == {"host": "redis", "port": 6379}

    def test_configured_domain(self, catalog: Catalog, context: ConfigurationContext):
        ctx = context.model_copy(update={"domain": "example.org"})
        body = _yaml_body(_files(catalog, ctx, "authelia")["authelia"].content)
        assert body["session"]["cookies"][0]["domain"] == "example.org"
        assert body["access_control"]["rules"][1]["domain"] == "*.example.org"


class TestTraefikConfig:
    def test_entry_points(self, catalog: Catalog, context: ConfigurationContext):
        config = _files(catalog, context, "traefik")["traefik"]
        assert config.path == str(context.config_root / "traefik" / "traefik.yml")

        body = _yaml_body(config.content)
        assert body["entryPoints"]["web"]["address"] == ":80"
        assert body["providers"]["docker"]["exposedByDefault"] is False
        assert "certificatesResolvers" not in body

    def test_acme_when_email_given(self, catalog: Catalog, context: ConfigurationContext):
        ctx = context.model_copy(update={"acme_email": "admin@example.org"})
        body = _yaml_body(_files(catalog, ctx, "traefik")["traefik"].content)
        acme = body["certificatesResolvers"]["letsencrypt"]["acme"]
        assert acme["email"] == "admin@example.org"
