"""Component construction shared by the app entry point and tests."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from .adapters.registry import AdapterRegistry, default_registry
from .config import Config
from .identity.extractor import IdentityExtractor
from .ledger.loader import attach_yaml_file
from .metrics.projection import ApprovalMetrics
from .notifications.dispatcher import NotificationDispatcher
from .notifications.sinks import create_sink
from .policy.roles import RoleDirectory, load_roles_from_yaml
from .requests.chains import ChainCatalog
from .requests.loader import load_requests_from_yaml
from .requests.registry import InMemoryRequestStore
from .requests.sqlite_store import SqliteRequestStore
from .requests.store import RequestStore
from .workflow.engine import ApprovalEngine

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "COOP_CONFIG"


@dataclass
class Services:
    """Everything the HTTP layer needs, wired together."""
    config: Config
    store: RequestStore
    adapters: AdapterRegistry
    roles: RoleDirectory
    notifier: NotificationDispatcher
    metrics: ApprovalMetrics
    engine: ApprovalEngine
    extractor: IdentityExtractor
    snapshot_path: str | None = None

    def close(self) -> None:
        self.notifier.close()
        self.store.close()


def load_config() -> tuple[Config, Path | None]:
    """Load config from ``COOP_CONFIG`` (YAML or JSON), else defaults."""
    raw = os.environ.get(CONFIG_ENV_VAR)
    if not raw:
        logger.info("No COOP_CONFIG set, using default configuration")
        return Config(), None

    path = Path(raw)
    if path.suffix.lower() == ".json":
        config = Config.from_json(str(path))
    else:
        config = Config.from_yaml(str(path))
    logger.info(f"Loaded configuration from {path}")
    return config, path


def _resolve(path: str | None, base: Path | None) -> str | None:
    """Resolve a config-relative path."""
    if not path:
        return None
    p = Path(path)
    if not p.is_absolute() and base is not None:
        p = base.parent / p
    return str(p)


def build_request_store(config: Config, config_path: Path | None = None) -> tuple[RequestStore, str | None]:
    """Create the request store; returns the YAML snapshot path for auto-save (memory backend only)."""
    backend = config.store.backend
    max_page_size = config.workflow.max_page_size

    if backend == "sqlite":
        db_path = config.store.db_path
        if db_path != ":memory:":
            db_path = _resolve(db_path, config_path)
        logger.info(f"Using SQLite request store at {db_path}")
        return SqliteRequestStore(db_path, max_page_size=max_page_size), None

    if backend != "memory":
        raise ValueError(f"Unknown store backend: {backend}")

    store = InMemoryRequestStore(max_page_size=max_page_size)
    snapshot_path = _resolve(config.store.snapshot_path, config_path)
    if snapshot_path:
        load_requests_from_yaml(snapshot_path, store)
    return store, snapshot_path


def ledger_dir(config: Config, config_path: Path | None = None) -> str | None:
    """Where the domain books are kept: explicit, else beside the request store."""
    explicit = _resolve(config.store.ledger_dir, config_path)
    if explicit:
        return explicit

    if config.store.backend == "sqlite":
        if config.store.db_path == ":memory:":
            return None
        anchor = _resolve(config.store.db_path, config_path)
    else:
        anchor = _resolve(config.store.snapshot_path, config_path)
    if not anchor:
        return None
    p = Path(anchor)
    return str(p.with_name(f"{p.stem}_ledger"))


def build_adapters(config: Config, config_path: Path | None = None) -> AdapterRegistry:
    """Built-in domain adapters, with their books persisted when the requests are."""
    adapters = default_registry()
    directory = ledger_dir(config, config_path)
    if directory is None:
        logger.info("Domain books are in memory only")
        return adapters

    for adapter in adapters.all_adapters():
        book = getattr(adapter, "book", None)
        if book is not None:
            attach_yaml_file(book, Path(directory) / f"{adapter.domain_module}.yaml")
    logger.info(f"Domain books persisted under {directory}")
    return adapters


def build_role_directory(config: Config, config_path: Path | None = None) -> RoleDirectory:
    """Default roles, plus roles and assignments from the definition file."""
    definition_file = _resolve(config.roles.definition_file, config_path)
    if definition_file:
        return load_roles_from_yaml(definition_file)
    return RoleDirectory()


def build_notifier(config: Config) -> NotificationDispatcher:
    settings = config.notifications
    sink = create_sink(settings.sink, **settings.sink_config)
    return NotificationDispatcher(sinks=[sink], enabled=settings.enabled)


def build_services(config: Config | None = None, config_path: Path | None = None) -> Services:
    """Wire store, roles, adapters, notifications, metrics and the engine."""
    config = config or Config()

    store, snapshot_path = build_request_store(config, config_path)
    roles = build_role_directory(config, config_path)
    adapters = build_adapters(config, config_path)
    notifier = build_notifier(config)
    metrics = ApprovalMetrics(store, refresh_interval_seconds=config.metrics.refresh_interval_seconds)

    engine = ApprovalEngine(
        store=store,
        adapters=adapters,
        roles=roles,
        chains=ChainCatalog(config.workflow.chains),
        notifier=notifier,
        metrics=metrics,
        priority_thresholds=config.workflow.priority_thresholds,
        default_page_size=config.workflow.default_page_size,
    )
    extractor = IdentityExtractor(
        actor_header=config.identity.actor_header,
        jwt_actor_claim=config.identity.jwt_actor_claim,
    )

    logger.info(
        f"Approval engine ready: store={config.store.backend}, "
        f"domain modules={adapters.all_modules()}, roles={roles.role_names()}"
    )
    return Services(
        config=config,
        store=store,
        adapters=adapters,
        roles=roles,
        notifier=notifier,
        metrics=metrics,
        engine=engine,
        extractor=extractor,
        snapshot_path=snapshot_path,
    )
