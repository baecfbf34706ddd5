"""
Adapter factory for config-driven adapter creation.

Source modules register their adapter class with ``@register_adapter``;
the orchestrator looks names up here and builds adapters from the
``sources`` section of ingestion.yaml.

Usage:
    from event_ingest.ingestion.factory import create_adapter

    whatson = create_adapter("whatson", source_config)
"""

from __future__ import annotations

import logging
from typing import Any

from event_ingest.ingestion.adapters.base_adapter import (
    AdapterConfig,
    BaseSourceAdapter,
    SourceType,
)
from event_ingest.ingestion.errors import SourceNotFoundError

logger = logging.getLogger(__name__)

ADAPTER_REGISTRY: dict[str, type[BaseSourceAdapter]] = {}

# Keys of a source block that map onto AdapterConfig fields
_CONFIG_KEYS = ("base_url", "request_timeout", "max_retries", "headers")


def register_adapter(source_name: str):
    """
    Decorate an adapter class to register it under a source name.

    Usage:
        @register_adapter("whatson")
        class WhatsOnAdapter(ScraperAdapter):
            ...
    """

    def decorator(cls: type[BaseSourceAdapter]) -> type[BaseSourceAdapter]:
        ADAPTER_REGISTRY[source_name] = cls
        return cls

    return decorator


def get_adapter_class(source_name: str) -> type[BaseSourceAdapter]:
    """
    Look up a registered adapter class.

    Raises:
        SourceNotFoundError: If nothing is registered under the name
    """
    _load_sources()
    try:
        return ADAPTER_REGISTRY[source_name]
    except KeyError:
        raise SourceNotFoundError(source_name) from None


def available_sources() -> list[str]:
    """Names of every registered source."""
    _load_sources()
    return sorted(ADAPTER_REGISTRY)


def build_adapter_config(source_name: str, source_config: dict[str, Any] | None = None) -> AdapterConfig:
    """
    Turn a YAML source block into an AdapterConfig.

    Args:
        source_name: Source identity
        source_config: The block under ``sources.<name>`` (may be None)

    Returns:
        AdapterConfig with options in ``default_options`` and every
        unrecognised key in ``custom_config``
    """
    cls = get_adapter_class(source_name)
    source_config = dict(source_config or {})

    raw_type = source_config.pop("type", None)
    source_type = SourceType(raw_type) if raw_type else cls.SOURCE_TYPE

    kwargs: dict[str, Any] = {k: source_config.pop(k) for k in _CONFIG_KEYS if k in source_config}
    options = source_config.pop("options", None) or {}
    source_config.pop("enabled", None)

    return AdapterConfig(
        source_id=source_name,
        source_type=source_type,
        default_options=dict(options),
        custom_config=source_config,
        **kwargs,
    )


def create_adapter(
    source_name: str,
    source_config: dict[str, Any] | None = None,
    **adapter_kwargs: Any,
) -> BaseSourceAdapter:
    """
    Build a registered adapter from its YAML block.

    Args:
        source_name: Registered source name
        source_config: YAML source block
        **adapter_kwargs: Passed to the adapter (client, compliance, driver, ...)
    """
    cls = get_adapter_class(source_name)
    config = build_adapter_config(source_name, source_config)
    logger.debug(f"Creating {cls.__name__} for '{source_name}'")
    return cls(config, **adapter_kwargs)


def _load_sources() -> None:
    # Importing the package runs every @register_adapter decorator
    import event_ingest.ingestion.sources  # noqa: F401
