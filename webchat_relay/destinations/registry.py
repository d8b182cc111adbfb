"""
Destination registry.

Adapters register themselves at import time with @DestinationRegistry.register.
The registry keys them by config.name and hands out one shared instance per
destination (adapters are stateless; per-attempt state lives on the capture
session).

Example:
    >>> @DestinationRegistry.register
    ... class MyAdapter:
    ...     config = DestinationConfig(name="mychat", display_name="MyChat",
    ...                                url="https://my.chat/", login_url="https://my.chat/login")
    ...     # ... implement the DestinationAdapter capabilities ...
    >>> adapter = DestinationRegistry.get("mychat")
"""

import logging

from webchat_relay.exceptions import UnknownDestinationError

from .base import DestinationAdapter

logger = logging.getLogger(__name__)

REQUIRED_ATTRIBUTES = (
    "config",
    "noise",
    "supports_attachments",
    "has_side_channel_sources",
    "is_logged_in",
    "submit_prompt",
    "attach_files",
    "snapshot_turn",
    "fetch_sources",
    "format_response",
    "is_verification_visible",
    "is_headless_blocked",
)


class DestinationRegistry:
    """
    Central registry mapping destination names to adapters.

    Class attributes:
        _adapters: Destination name -> adapter class
        _instances: Destination name -> shared adapter instance
    """

    _adapters: dict[str, type] = {}
    _instances: dict[str, DestinationAdapter] = {}

    @classmethod
    def register(cls, adapter_class: type) -> type:
        """
        Decorator to register an adapter class.

        Raises:
            AttributeError: If the class is missing a required capability
        """
        for attribute in REQUIRED_ATTRIBUTES:
            if not hasattr(adapter_class, attribute):
                raise AttributeError(
                    f"Adapter {adapter_class.__name__} missing required attribute: {attribute}"
                )

        name = adapter_class.config.name
        if name in cls._adapters:
            logger.warning(
                f"Destination '{name}' already registered. "
                f"Overwriting with {adapter_class.__name__}"
            )

        cls._adapters[name] = adapter_class
        cls._instances.pop(name, None)
        logger.debug(f"Registered destination adapter: {name} ({adapter_class.__name__})")
        return adapter_class

    @classmethod
    def get(cls, name: str) -> DestinationAdapter:
        """
        Return the shared adapter instance for a destination.

        Raises:
            UnknownDestinationError: If no adapter is registered under name
        """
        key = name.strip().lower()
        if key not in cls._adapters:
            available = ", ".join(sorted(cls._adapters)) or "none"
            raise UnknownDestinationError(
                f"Unknown destination: '{name}'. Available destinations: {available}"
            )
        if key not in cls._instances:
            cls._instances[key] = cls._adapters[key]()
        return cls._instances[key]

    @classmethod
    def names(cls) -> list[str]:
        return sorted(cls._adapters)

    @classmethod
    def is_registered(cls, name: str) -> bool:
        return name.strip().lower() in cls._adapters

    @classmethod
    def list_destinations(cls) -> list[dict]:
        """
        List registered destinations with metadata for the CLI.

        Returns:
            list[dict]: name, display_name, url, supports_attachments,
                has_side_channel_sources
        """
        return [
            {
                "name": name,
                "display_name": adapter.config.display_name,
                "url": adapter.config.url,
                "supports_attachments": adapter.supports_attachments,
                "has_side_channel_sources": adapter.has_side_channel_sources,
            }
            for name, adapter in sorted(cls._adapters.items())
        ]
