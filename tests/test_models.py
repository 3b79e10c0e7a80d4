"""
Tests for core models — service descriptors, selections, reports, state.
"""

from pathlib import Path

import pytest
from pydantic import ValidationError

from hops.core.errors import PortConflictError
from hops.core.models import (
    Category,
    InstallationState,
    InstallPhase,
    InstallResult,
    Manifest,
    ManifestNetwork,
    ManifestService,
    PortConflict,
    PortReport,
    PortSpec,
    Receipt,
    ResolvedSelection,
    RollbackAction,
)

from helpers import make_service


class TestPortSpec:
    def test_host_defaults_to_container(self):
        port = PortSpec(container=8989)
        assert port.host_port == 8989
        assert port.key == (8989, "tcp")
        assert port.compose_spec() == "8989:8989"

    def test_remapped_host_port(self):
        port = PortSpec(container=5055, host=5056)
        assert port.host_port == 5056
        assert port.compose_spec() == "5056:5055"

    def test_udp_suffix(self):
        port = PortSpec(container=7359, protocol="udp")
        assert port.compose_spec() == "7359:7359/udp"
        assert port.key == (7359, "udp")

    def test_rejects_unknown_protocol(self):
        with pytest.raises(ValidationError):
            PortSpec(container=80, protocol="sctp")


class TestServiceDescriptor:
    def test_minimal(self):
        desc = make_service("sonarr")
        assert desc.display_name == "sonarr"
        assert desc.primary_port is None
        assert not desc.is_database

    def test_id_pattern(self):
        with pytest.raises(ValidationError):
            make_service("Not Valid")

    def test_volume_kinds(self):
        desc = make_service(
            "portainer",
            volumes=[
                {"source": "/var/run/docker.sock", "target": "/var/run/docker.sock", "kind": "file"},
                {"source": "portainer-data", "target": "/data", "kind": "named"},
                {"source": "${CONFIG_ROOT}/portainer", "target": "/config"},
            ],
        )
        assert [v.source for v in desc.bind_volumes()] == ["${CONFIG_ROOT}/portainer"]
        assert [v.source for v in desc.named_volumes()] == ["portainer-data"]

    def test_database_flag(self):
        desc = make_service("postgres", special="database", category="database")
        assert desc.is_database

    def test_frozen(self):
        desc = make_service("sonarr")
        with pytest.raises(ValidationError):
            desc.image = "other:1"

    def test_category_label(self):
        assert Category.MEDIA_MANAGEMENT.label == "Media Management"


class TestResolvedSelection:
    def test_membership_and_dict(self):
        sel = ResolvedSelection(
            ids=("jellystat", "postgres"),
            requested=frozenset({"jellystat"}),
            implicit=("postgres",),
        )
        assert len(sel) == 2
        assert "postgres" in sel
        assert "redis" not in sel
        assert sel.is_implicit("postgres")
        assert not sel.is_implicit("jellystat")
        assert sel.to_dict() == {
            "services": ["jellystat", "postgres"],
            "requested": ["jellystat"],
            "implicit": ["postgres"],
        }


class TestPortReport:
    def _internal(self) -> PortConflict:
        return PortConflict(
            port=8096, service_ids=("jellyfin", "emby"), kind="internal", severity="error",
        )

    def _host(self) -> PortConflict:
        return PortConflict(port=80, service_ids=("traefik",), kind="host", severity="warning")

    def test_split_by_severity(self):
        report = PortReport(conflicts=[self._internal(), self._host()])
        assert report.has_errors
        assert not report.clean
        assert len(report.errors) == 1
        assert len(report.warnings) == 1

    def test_describe(self):
        assert self._internal().describe() == "8096/tcp claimed by jellyfin, emby"
        assert self._host().describe() == "80/tcp (traefik) already in use on host"

    def test_raise_for_errors(self):
        with pytest.raises(PortConflictError) as exc:
            PortReport(conflicts=[self._internal()]).raise_for_errors()
        assert "8096/tcp claimed by jellyfin, emby" in str(exc.value)
        assert exc.value.conflicts[0].port == 8096

    def test_warnings_do_not_raise(self):
        PortReport(conflicts=[self._host()]).raise_for_errors()

    def test_empty_is_clean(self):
        report = PortReport()
        assert report.clean
        assert report.to_dict() == {"errors": [], "warnings": []}


class TestManifestModel:
    def test_compose_key_order(self):
        svc = ManifestService(
            name="sonarr",
            image="lscr.io/linuxserver/sonarr:4.0.10",
            container_name="sonarr",
            ports=["8989:8989"],
            environment={"TZ": "UTC"},
            networks=["homelab"],
        )
        assert list(svc.compose_spec()) == [
            "image", "container_name", "restart", "environment", "ports", "networks",
        ]

    def test_empty_sections_omitted(self):
        manifest = Manifest()
        assert manifest.to_compose() == {"name": "hops", "services": {}}

    def test_image_refs_distinct_and_sorted(self):
        manifest = Manifest(services={
            "b": ManifestService(name="b", image="z:1", container_name="b"),
            "a": ManifestService(name="a", image="a:1", container_name="a"),
            "c": ManifestService(name="c", image="z:1", container_name="c"),
        })
        assert manifest.image_refs() == ["a:1", "z:1"]

    def test_internal_network(self):
        net = ManifestNetwork(name="database", internal=True)
        assert net.compose_spec() == {"name": "database", "driver": "bridge", "internal": True}


class TestReceipt:
    def test_success(self):
        r = Receipt.success("docker", "pull", output="done")
        assert r.ok
        assert not r.failed
        assert r.error is None

    def test_failure(self):
        r = Receipt.failure("docker", "check_daemon", "permission denied", fatal=True)
        assert r.failed
        assert r.fatal
        assert r.error == "permission denied"

    def test_skip(self):
        r = Receipt.skip("docker", "remove_images", "nothing to remove")
        assert r.status == "skipped"
        assert not r.ok
        assert not r.failed


class TestInstallationState:
    def test_mark_completed_then_failed(self):
        state = InstallationState()
        state.mark_completed(InstallPhase.DIRECTORIES_CREATED)
        assert state.has_completed(InstallPhase.DIRECTORIES_CREATED)
        assert state.phase == InstallPhase.DIRECTORIES_CREATED

        state.mark_failed(InstallPhase.MANIFEST_WRITTEN, "disk full")
        assert state.phase == InstallPhase.FAILED
        assert state.failed_at == InstallPhase.MANIFEST_WRITTEN
        assert state.completed == [InstallPhase.DIRECTORIES_CREATED]


class TestInstallResult:
    def test_rolled_back_excludes_failed_steps(self):
        state = InstallationState()
        state.rollback = [
            RollbackAction(step=InstallPhase.MANIFEST_WRITTEN, action="delete a"),
            RollbackAction(step=InstallPhase.DIRECTORIES_CREATED, action="remove x"),
            RollbackAction(
                step=InstallPhase.DIRECTORIES_CREATED, action="remove y",
                ok=False, error="busy",
            ),
        ]
        result = InstallResult.from_state(state, Path("/srv/homelab/docker-compose.yml"))
        assert result.rolled_back == [InstallPhase.MANIFEST_WRITTEN]
        assert result.to_dict()["rolled_back"] == ["manifest_written"]

    def test_backup_hidden_after_restore(self):
        state = InstallationState(manifest_backup=Path("/srv/m.yml.bak"))
        state.rollback = [
            RollbackAction(step=InstallPhase.MANIFEST_WRITTEN, action="restore /srv/m.yml"),
        ]
        result = InstallResult.from_state(state, Path("/srv/m.yml"))
        assert result.manifest_backup is None

    def test_backup_reported_when_kept(self):
        state = InstallationState(phase=InstallPhase.DONE, manifest_backup=Path("/srv/m.yml.bak"))
        result = InstallResult.from_state(state, Path("/srv/m.yml"))
        assert result.ok
        assert result.manifest_backup == "/srv/m.yml.bak"
