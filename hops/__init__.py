"""HOPS — Homelab Orchestration Provisioning Script."""

__version__ = "3.1.0"
