"""Configuration for the coop approval service."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class ServerConfig:
    """HTTP server configuration."""
    host: str = "0.0.0.0"
    port: int = 8060
    workers: int = 1
    reload: bool = False


@dataclass
class StoreConfig:
    """Request store configuration."""
    backend: str = "memory"  # memory | sqlite
    db_path: str = "coop_requests.db"

    # YAML snapshot for the in-memory backend (loaded at startup, saved after writes)
    snapshot_path: str | None = None

    # One YAML file per domain book. Unset: "<store stem>_ledger/" beside the
    # SQLite file or the snapshot; with neither, the books live in memory only.
    ledger_dir: str | None = None


@dataclass
class WorkflowConfig:
    """Approval workflow configuration."""
    default_page_size: int = 10
    max_page_size: int = 100

    # amount >= threshold -> priority
    priority_thresholds: dict[str, float] = field(default_factory=lambda: {
        "HIGH": 1_000_000,
        "MEDIUM": 100_000,
    })

    # Per-type chain overrides: {TYPE: [{level, approver_role, notes}, ...]}
    chains: dict[str, list[dict[str, Any]]] = field(default_factory=dict)


@dataclass
class MetricsConfig:
    """Dashboard metrics configuration."""
    refresh_interval_seconds: float = 30.0


@dataclass
class NotificationsConfig:
    """Notification configuration."""
    enabled: bool = True
    sink: str = "log"  # console | log | memory
    sink_config: dict[str, Any] = field(default_factory=dict)


@dataclass
class IdentityConfig:
    """Caller identity configuration."""
    actor_header: str = "X-Actor-ID"
    jwt_actor_claim: str = "sub"


@dataclass
class RolesConfig:
    """Roles configuration."""
    # Path to role definitions and actor assignments (YAML)
    definition_file: str | None = None


@dataclass
class Config:
    """Main configuration container."""
    server: ServerConfig = field(default_factory=ServerConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    workflow: WorkflowConfig = field(default_factory=WorkflowConfig)
    metrics: MetricsConfig = field(default_factory=MetricsConfig)
    notifications: NotificationsConfig = field(default_factory=NotificationsConfig)
    identity: IdentityConfig = field(default_factory=IdentityConfig)
    roles: RolesConfig = field(default_factory=RolesConfig)

    @classmethod
    def from_dict(cls, data: dict) -> Config:
        """Create config from dictionary."""
        return cls(
            server=ServerConfig(**data.get("server", {})),
            store=StoreConfig(**data.get("store", {})),
            workflow=WorkflowConfig(**data.get("workflow", {})),
            metrics=MetricsConfig(**data.get("metrics", {})),
            notifications=NotificationsConfig(**data.get("notifications", {})),
            identity=IdentityConfig(**data.get("identity", {})),
            roles=RolesConfig(**data.get("roles", {})),
        )

    @classmethod
    def from_yaml(cls, path: str) -> Config:
        """Load config from YAML file."""
        import yaml
        with open(path, "r") as f:
            data = yaml.safe_load(f)
        return cls.from_dict(data or {})

    @classmethod
    def from_json(cls, path: str) -> Config:
        """Load config from JSON file."""
        import json
        with open(path, "r") as f:
            data = json.load(f)
        return cls.from_dict(data)
