"""
Tests for use cases — catalog check, planning, and the install flow.
"""

import textwrap
from pathlib import Path

import pytest

from hops.adapters.mock import MockEngine, StaticPortProbe
from hops.core.models.context import ConfigurationContext
from hops.core.persistence.event_log import EventLog
from hops.core.persistence.run_lock import RunLock
from hops.core.reliability.retry import RetryPolicy
from hops.core.services.catalog import Catalog
from hops.core.use_cases.catalog_check import catalog_listing, check_catalog
from hops.core.use_cases.install import run_install
from hops.core.use_cases.plan import build_plan, check_request_ports, resolve_request


@pytest.fixture(autouse=True)
def _no_chown(monkeypatch):
    monkeypatch.setattr("hops.core.engine.orchestrator.os.chown", lambda *a: None)


class TestCheckCatalog:
    def test_bundled(self):
        result = check_catalog()
        assert result.valid
        assert result.errors == []
        assert any(w.startswith("watchtower:") for w in result.warnings)
        assert result.to_dict()["service_count"] == 26

    def test_broken_file(self, tmp_path: Path):
        path = tmp_path / "catalog.yml"
        path.write_text(textwrap.dedent("""\
            services:
              - id: a
                image: example/a
                category: monitoring
                dependencies: [ghost]
        """))
        result = check_catalog(path)
        assert not result.valid
        assert result.catalog is None
        assert any("failed validation" in e for e in result.errors)
        assert any("[floating_tag] a:" in e for e in result.errors)
        assert any("[unknown_dependency] a:" in e for e in result.errors)


class TestCatalogListing:
    def test_rows(self, catalog: Catalog):
        rows = catalog_listing(catalog)
        assert len(rows) == 26
        sonarr = rows[0]
        assert sonarr["id"] == "sonarr"
        assert sonarr["category"] == "media-management"
        assert sonarr["port"] == 8989
        jellyseerr = next(r for r in rows if r["id"] == "jellyseerr")
        assert jellyseerr["port"] == 5056
        watchtower = next(r for r in rows if r["id"] == "watchtower")
        assert watchtower["port"] is None


class TestResolveRequest:
    def test_ok(self, catalog: Catalog):
        result = resolve_request(catalog, ["jellystat"])
        assert result.ok
        assert result.selection.implicit == ("postgres",)
        assert result.advisories == ["Jellyfin (jellyfin) is recommended for: jellystat"]

    def test_unknown(self, catalog: Catalog):
        result = resolve_request(catalog, ["nope"])
        assert not result.ok
        assert result.error == "Unknown service(s): nope"
        assert result.to_dict()["selection"] is None

    def test_empty(self, catalog: Catalog):
        assert resolve_request(catalog, []).error == "No services requested"


class TestCheckRequestPorts:
    def test_host_warning(self, catalog: Catalog):
        probe = StaticPortProbe(bound={(8989, "tcp")})
        result = check_request_ports(catalog, ["sonarr"], probe)
        assert result.ok
        assert len(result.report.warnings) == 1

    def test_internal_error(self, catalog: Catalog):
        result = check_request_ports(catalog, ["jellyfin", "emby"])
        assert not result.ok
        assert result.to_dict()["ports"]["errors"][0]["port"] == 8096


class TestBuildPlan:
    def test_plan_contents(self, catalog: Catalog, context: ConfigurationContext):
        result = build_plan(catalog, ["jellystat", "traefik"], context)
        assert result.ok
        plan = result.plan
        assert plan.manifest_path == context.manifest_path
        assert list(plan.selection.ids) == ["jellystat", "traefik", "postgres"]
        assert set(plan.readiness) == {"jellystat", "traefik"}
        assert plan.readiness["traefik"].host_port == 80
        assert [f.service_id for f in plan.aux_files] == ["traefik", "postgres"]
        assert context.config_root / "jellystat" / "backup-data" in plan.directories

    def test_env_requirements(self, catalog: Catalog, context: ConfigurationContext):
        plan = build_plan(catalog, ["jellystat"], context).plan
        assert plan.env_path == context.install_root / ".env"
        assert plan.env_secrets == ["DB_PASSWORD", "JELLYSTAT_JWT_SECRET"]
        assert plan.env_blanks == []
        assert not plan.manifest_private

    def test_unset_token_advised(self, catalog: Catalog, context: ConfigurationContext):
        result = build_plan(catalog, ["plex"], context)
        assert result.plan.env_blanks == ["PLEX_CLAIM_TOKEN"]
        assert any(
            a.startswith("${PLEX_CLAIM_TOKEN} has no value") and str(context.env_path) in a
            for a in result.advisories
        )
        assert result.to_dict()["env_names"] == ["PLEX_CLAIM_TOKEN"]

    def test_deterministic(self, catalog: Catalog, context: ConfigurationContext):
        a = build_plan(catalog, ["traefik", "jellystat"], context).plan
        b = build_plan(catalog, ["jellystat", "traefik"], context).plan
        assert a.manifest_text == b.manifest_text

    def test_internal_conflict(self, catalog: Catalog, context: ConfigurationContext):
        result = build_plan(catalog, ["traefik", "nginx-proxy-manager"], context)
        assert not result.ok
        assert result.plan is None
        assert result.error.startswith("Port conflicts within selection")
        assert result.port_report.has_errors

    def test_host_conflicts_left_as_warnings(self, catalog: Catalog, context: ConfigurationContext):
        probe = StaticPortProbe(bound={(80, "tcp")})
        result = build_plan(catalog, ["traefik"], context, probe=probe)
        assert result.ok
        assert len(result.plan.port_report.warnings) == 1

    def test_to_dict(self, catalog: Catalog, context: ConfigurationContext):
        data = build_plan(catalog, ["sonarr"], context).to_dict()
        assert data["ok"] is True
        assert data["manifest_path"] == str(context.manifest_path)
        assert "sonarr:" in data["manifest"]


class TestRunInstall:
    def _install(self, catalog: Catalog, context: ConfigurationContext, *ids: str, **kwargs):
        kwargs.setdefault("engine", MockEngine())
        kwargs.setdefault("retry", RetryPolicy(attempts=2, delay=0))
        kwargs.setdefault("readiness_timeout", 0)
        kwargs.setdefault("poll_interval", 0)
        kwargs.setdefault("sleep", lambda s: None)
        engine = kwargs.pop("engine")
        return run_install(catalog, ids, context, engine, **kwargs)

    def test_success(self, catalog: Catalog, context: ConfigurationContext):
        run = self._install(catalog, context, "sonarr", "jellystat", probe=StaticPortProbe())
        assert run.ok
        assert run.error == ""
        assert run.result.ok
        assert run.health.status == "unknown"  # postgres has no probe
        assert context.manifest_path.is_file()
        assert run.to_dict()["result"]["rolled_back"] == []

    def test_events_logged(self, catalog: Catalog, context: ConfigurationContext):
        seen = []
        run = self._install(catalog, context, "sonarr", on_event=seen.append)
        records = EventLog(path=run.event_log).read_all()
        assert len(records) == len(seen) == len(run.result.events)
        assert records[-1].event.step == "done"
        assert records[0].services == ["sonarr"]

    def test_lock_released(self, catalog: Catalog, context: ConfigurationContext):
        self._install(catalog, context, "sonarr")
        assert not (context.install_root / ".hops" / "install.lock").exists()

    def test_unknown_service(self, catalog: Catalog, context: ConfigurationContext):
        engine = MockEngine()
        run = self._install(catalog, context, "nope", engine=engine)
        assert not run.ok
        assert run.result is None
        assert run.error == "Unknown service(s): nope"
        assert engine.call_log == []

    def test_host_conflict_stops_before_changes(self, catalog: Catalog, context: ConfigurationContext):
        engine = MockEngine()
        probe = StaticPortProbe(bound={(8989, "tcp")})
        run = self._install(catalog, context, "sonarr", engine=engine, probe=probe)
        assert not run.ok
        assert run.error.startswith("Ports already in use: 8989/tcp (sonarr)")
        assert engine.call_log == []
        assert not context.install_root.exists()

    def test_host_conflict_allowed(self, catalog: Catalog, context: ConfigurationContext):
        probe = StaticPortProbe(bound={(8989, "tcp")})
        run = self._install(
            catalog, context, "sonarr", probe=probe, allow_host_conflicts=True,
        )
        assert run.ok

    def test_concurrent_run_refused(self, catalog: Catalog, context: ConfigurationContext):
        engine = MockEngine()
        with RunLock(context.install_root / ".hops" / "install.lock"):
            run = self._install(catalog, context, "sonarr", engine=engine)
        assert not run.ok
        assert "already in progress" in run.error
        assert engine.call_log == []

    def test_failure_reported(self, catalog: Catalog, context: ConfigurationContext):
        engine = MockEngine()
        engine.set_failure("pull", "registry timeout")
        run = self._install(catalog, context, "sonarr", engine=engine)
        assert not run.ok
        assert run.error == ""
        assert run.result.failed_at == "images_pulled"
        assert run.health.status == "unhealthy"
        assert not context.manifest_path.exists()
        # the state directory pre-dates the orchestrator run and is kept
        assert (context.install_root / ".hops").is_dir()
