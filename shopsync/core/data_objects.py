"""Per data object configuration.

Each kind of record the engine moves (products, inventory, orders and so
on) has a static ``DataObjectConfig``. Built-in defaults can be
overridden by a JSON file whose top-level keys are kind names; overrides are
deep-merged so a file only needs to name the fields it changes.
"""

import json
import logging
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError, field_validator

from shopsync.core.exceptions import ConfigurationError, DependencyCycleError

logger = logging.getLogger(__name__)


class DataObjectKind(str, Enum):
    """Kinds of record kept in sync."""

    PRODUCTS = "products"
    INVENTORY = "inventory"
    ORDERS = "orders"
    FULFILLMENTS = "fulfillments"
    CATALOGS = "catalogs"
    METAOBJECTS = "metaobjects"
    DISCOUNTS = "discounts"
    GIFT_CARDS = "gift_cards"
    CUSTOMERS = "customers"


class SyncDirection(str, Enum):
    TO_REMOTE = "to_remote"
    FROM_REMOTE = "from_remote"
    BIDIRECTIONAL = "bidirectional"


class SyncTrigger(str, Enum):
    CRON = "cron"
    WEBHOOK = "webhook"


class SyncMode(str, Enum):
    """``sync`` mirrors deletions, ``overwrite`` only creates and updates."""

    SYNC = "sync"
    OVERWRITE = "overwrite"


class ExistingDataBehavior(str, Enum):
    """What to do with remote records the engine did not create."""

    IGNORE = "ignore"
    ADOPT = "adopt"
    ADOPT_AND_ARCHIVE = "adopt_and_archive"


class Schedule(BaseModel):
    """Cron expressions per run mode."""

    production: str
    demo: str

    def for_mode(self, run_mode: str) -> str:
        return self.demo if run_mode == "demo" else self.production


class DataObjectConfig(BaseModel):
    """Static configuration of one data object kind."""

    enabled: bool = True
    direction: SyncDirection
    trigger: SyncTrigger
    schedule: Schedule | None = None
    webhook_topics: list[str] = Field(default_factory=list)
    mode: SyncMode = SyncMode.SYNC
    sheet_name: str = ""
    external_id_field: str | None = None
    existing_data_behavior: ExistingDataBehavior = ExistingDataBehavior.IGNORE
    dependencies: list[DataObjectKind] = Field(default_factory=list)
    settings: dict[str, Any] = Field(default_factory=dict)

    @field_validator("direction", mode="before")
    @classmethod
    def accept_legacy_direction(cls, v: Any) -> Any:
        """Accept ``to_shopify``/``from_shopify`` spellings."""
        if isinstance(v, str):
            return v.replace("shopify", "remote")
        return v


DataObjectsConfig = dict[DataObjectKind, DataObjectConfig]


DEFAULT_DATA_OBJECTS: dict[str, dict[str, Any]] = {
    "products": {
        "enabled": True,
        "direction": "to_remote",
        "trigger": "cron",
        "schedule": {"production": "*/15 * * * *", "demo": "*/1 * * * *"},
        "mode": "sync",
        "sheet_name": "Products",
        "external_id_field": "sku",
        "existing_data_behavior": "ignore",
        "settings": {"include_variants": True},
    },
    "inventory": {
        "enabled": True,
        "direction": "to_remote",
        "trigger": "cron",
        "schedule": {"production": "*/5 * * * *", "demo": "*/1 * * * *"},
        "mode": "sync",
        "sheet_name": "Inventory",
        "external_id_field": "sku",
        "existing_data_behavior": "ignore",
        "dependencies": ["products"],
        "settings": {"default_location_name": None},
    },
    "orders": {
        "enabled": True,
        "direction": "from_remote",
        "trigger": "webhook",
        "webhook_topics": ["orders/create", "orders/updated"],
        "mode": "sync",
        "sheet_name": "Orders",
        "external_id_field": "order_number",
        "existing_data_behavior": "ignore",
        "settings": {"include_line_items": True, "include_customer": True},
    },
    "fulfillments": {
        "enabled": True,
        "direction": "to_remote",
        "trigger": "cron",
        "schedule": {"production": "*/10 * * * *", "demo": "*/1 * * * *"},
        "mode": "sync",
        "sheet_name": "Fulfillments",
        "external_id_field": "order_number",
        "existing_data_behavior": "ignore",
        "dependencies": ["orders"],
        "settings": {"notify_customer": True},
    },
    "catalogs": {
        "enabled": True,
        "direction": "to_remote",
        "trigger": "cron",
        "schedule": {"production": "0 * * * *", "demo": "*/2 * * * *"},
        "mode": "sync",
        "sheet_name": "Catalogs",
        "external_id_field": "name",
        "existing_data_behavior": "ignore",
        "settings": {"create_if_not_exists": True},
    },
    "metaobjects": {
        "enabled": True,
        "direction": "to_remote",
        "trigger": "cron",
        "schedule": {"production": "*/30 * * * *", "demo": "*/1 * * * *"},
        "mode": "sync",
        "sheet_name": "Content",
        "external_id_field": "handle",
        "existing_data_behavior": "ignore",
        "settings": {"definition_type": "custom_content"},
    },
    "discounts": {
        "enabled": False,
        "direction": "to_remote",
        "trigger": "cron",
        "schedule": {"production": "0 */6 * * *", "demo": "*/5 * * * *"},
        "mode": "overwrite",
        "sheet_name": "Discounts",
        "external_id_field": "code",
        "existing_data_behavior": "ignore",
        "settings": {},
    },
    "gift_cards": {
        "enabled": False,
        "direction": "bidirectional",
        "trigger": "cron",
        "schedule": {"production": "*/30 * * * *", "demo": "*/2 * * * *"},
        "mode": "sync",
        "sheet_name": "GiftCards",
        "external_id_field": "code",
        "existing_data_behavior": "ignore",
        "settings": {"create_enabled": True},
    },
    "customers": {
        "enabled": True,
        "direction": "from_remote",
        "trigger": "webhook",
        "webhook_topics": ["customers/create", "customers/update"],
        "mode": "sync",
        "sheet_name": "Customers",
        "external_id_field": "email",
        "existing_data_behavior": "ignore",
        "settings": {"include_addresses": True},
    },
}


def deep_merge(target: dict[str, Any], source: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge ``source`` into a copy of ``target``.

    Lists and scalars from ``source`` replace the target value.
    """
    result = dict(target)
    for key, value in source.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = deep_merge(result[key], value)
        elif value is not None:
            result[key] = value
    return result


def load_data_objects(
    overrides: dict[str, Any] | None = None,
    path: str | None = None,
) -> DataObjectsConfig:
    """Build the data object configuration.

    Args:
        overrides: Optional in-memory overrides keyed by kind name
        path: Optional JSON file with overrides keyed by kind name

    Returns:
        Validated configuration for every known kind

    Raises:
        ConfigurationError: If the file is unreadable or the result is invalid
    """
    raw: dict[str, Any] = {name: dict(cfg) for name, cfg in DEFAULT_DATA_OBJECTS.items()}

    if path:
        file_path = Path(path)
        if not file_path.exists():
            raise ConfigurationError(f"Data objects file not found: {path}")
        try:
            file_overrides = json.loads(file_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON in {path}: {e}") from e
        logger.info(f"Loaded data object overrides from {path}")
        raw = _apply_overrides(raw, file_overrides)

    if overrides:
        raw = _apply_overrides(raw, overrides)

    config: DataObjectsConfig = {}
    problems = []
    for name, values in raw.items():
        try:
            config[DataObjectKind(name)] = DataObjectConfig.model_validate(values)
        except ValidationError as e:
            problems.append(f"{name}: {e.errors()[0]['msg']}")
    if problems:
        raise ConfigurationError("Configuration validation failed", problems)

    validate_data_objects(config)
    return config


KIND_ALIASES = {"giftCards": "gift_cards"}


def _apply_overrides(raw: dict[str, Any], overrides: dict[str, Any]) -> dict[str, Any]:
    overrides = {KIND_ALIASES.get(name, name): values for name, values in overrides.items()}
    known = {kind.value for kind in DataObjectKind}
    unknown = sorted(set(overrides) - known)
    if unknown:
        raise ConfigurationError("Unknown data objects", unknown)
    return {name: deep_merge(values, overrides.get(name, {})) for name, values in raw.items()}


def validate_data_objects(config: DataObjectsConfig) -> None:
    """Check cross-field rules and the dependency graph.

    Raises:
        ConfigurationError: Listing every problem found
        DependencyCycleError: If enabled kinds depend on each other in a cycle
    """
    problems = []
    for kind, cfg in config.items():
        if not cfg.enabled:
            continue
        if cfg.trigger == SyncTrigger.CRON and cfg.schedule is None:
            problems.append(f"{kind.value}: cron trigger requires a schedule")
        if cfg.trigger == SyncTrigger.WEBHOOK and not cfg.webhook_topics:
            problems.append(f"{kind.value}: webhook trigger requires webhook_topics")
        if not cfg.sheet_name:
            problems.append(f"{kind.value}: sheet_name is required")
        if cfg.direction == SyncDirection.TO_REMOTE and not cfg.external_id_field:
            problems.append(f"{kind.value}: external_id_field is required for to_remote sync")
        for dep in cfg.dependencies:
            if dep not in config:
                problems.append(f"{kind.value}: unknown dependency {dep.value}")
    if problems:
        raise ConfigurationError("Configuration validation failed", problems)

    error = topological_order(config, list(config))[1]
    if error:
        raise error


def topological_order(
    config: DataObjectsConfig,
    kinds: list[DataObjectKind],
) -> tuple[list[DataObjectKind], DependencyCycleError | None]:
    """Order ``kinds`` so every kind comes after its dependencies.

    Iterative depth-first search with explicit visited/visiting sets.
    Dependencies outside ``kinds`` are followed but not emitted.

    Returns:
        (ordered kinds, None) or ([], DependencyCycleError) on a back edge
    """
    wanted = set(kinds)
    visited: set[DataObjectKind] = set()
    visiting: set[DataObjectKind] = set()
    order: list[DataObjectKind] = []

    for root in kinds:
        if root in visited:
            continue
        path: list[DataObjectKind] = [root]
        stack: list[tuple[DataObjectKind, int]] = [(root, 0)]
        visiting.add(root)
        while stack:
            node, index = stack[-1]
            deps = config[node].dependencies if node in config else []
            if index < len(deps):
                stack[-1] = (node, index + 1)
                dep = deps[index]
                if dep in visited:
                    continue
                if dep in visiting:
                    cycle = path[path.index(dep):] + [dep]
                    return [], DependencyCycleError([k.value for k in cycle])
                visiting.add(dep)
                path.append(dep)
                stack.append((dep, 0))
            else:
                stack.pop()
                path.pop()
                visiting.discard(node)
                visited.add(node)
                if node in wanted:
                    order.append(node)

    return order, None


def enabled_kinds(config: DataObjectsConfig) -> list[DataObjectKind]:
    """Enabled kinds in dependency order."""
    order, error = topological_order(
        config, [kind for kind, cfg in config.items() if cfg.enabled]
    )
    if error:
        raise error
    return order


def active_schedule(config: DataObjectsConfig, kind: DataObjectKind, run_mode: str) -> str | None:
    """Cron expression for ``kind`` in the given run mode."""
    cfg = config[kind]
    if cfg.schedule is None:
        return None
    return cfg.schedule.for_mode(run_mode)


def kind_for_topic(config: DataObjectsConfig, topic: str) -> DataObjectKind | None:
    """Map a webhook topic to the kind that handles it."""
    for kind, cfg in config.items():
        if topic in cfg.webhook_topics:
            return kind
    return TOPIC_PREFIXES.get(topic.split("/", 1)[0])


TOPIC_PREFIXES: dict[str, DataObjectKind] = {
    "orders": DataObjectKind.ORDERS,
    "customers": DataObjectKind.CUSTOMERS,
    "products": DataObjectKind.PRODUCTS,
    "inventory_levels": DataObjectKind.INVENTORY,
    "fulfillments": DataObjectKind.FULFILLMENTS,
    "gift_cards": DataObjectKind.GIFT_CARDS,
}


def kind_value(kind: DataObjectKind | str) -> str:
    """Plain string name of a kind, as stored in the database."""
    return kind.value if isinstance(kind, DataObjectKind) else str(kind)
