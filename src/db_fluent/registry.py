"""Provider registry: provider name -> factory that opens a Database."""

import logging
import threading
from typing import Any, Awaitable, Callable

from db_fluent.core.session import Database
from db_fluent.errors import ConfigurationError, DuplicateProviderError, ProviderNotFoundError

logger = logging.getLogger(__name__)

ProviderFactory = Callable[..., Awaitable[Database]]
"""``async factory(driver, dsn, **options) -> Database``"""


class ProviderRegistry:
    """Lock-guarded mapping of provider names to factories.

    Applications and tests can build their own registry; the module-level
    ``default_registry`` is the one ``register_provider``/``open`` use.
    """

    def __init__(self):
        self._factories: dict[str, ProviderFactory] = {}
        self._lock = threading.Lock()

    def register(self, name: str, factory: ProviderFactory) -> None:
        """
        Register ``factory`` under ``name``.

        Raises:
            DuplicateProviderError: If ``name`` is already registered
            ConfigurationError: If ``name`` is blank or ``factory`` is not callable
        """
        if not name:
            raise ConfigurationError("provider name is required")
        if not callable(factory):
            raise ConfigurationError(f"provider factory for {name!r} is not callable")

        with self._lock:
            if name in self._factories:
                raise DuplicateProviderError(f"provider already registered: {name}")
            self._factories[name] = factory
        logger.info(f"Registered provider {name}")

    def unregister(self, name: str) -> None:
        """Remove ``name``; raises ProviderNotFoundError if absent."""
        with self._lock:
            if self._factories.pop(name, None) is None:
                raise ProviderNotFoundError(name)

    def get(self, name: str) -> ProviderFactory:
        """Look up the factory for ``name``."""
        with self._lock:
            factory = self._factories.get(name)
        if factory is None:
            raise ProviderNotFoundError(name)
        return factory

    def providers(self) -> list[str]:
        """Registered provider names, sorted."""
        with self._lock:
            return sorted(self._factories)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._factories

    async def open(self, provider: str, driver: str, dsn: str, **options: Any) -> Database:
        """
        Open a database through the named provider.

        Args:
            provider: Registered provider name
            driver: Driver identifier understood by the provider
            dsn: Data source locator
            **options: Provider-specific options

        Raises:
            ProviderNotFoundError: If no provider is registered under ``provider``
        """
        factory = self.get(provider)
        logger.debug(f"Opening {driver} database through provider {provider}")
        return await factory(driver, dsn, **options)


default_registry = ProviderRegistry()


def register_provider(name: str, factory: ProviderFactory) -> None:
    """Register a provider in the default registry."""
    default_registry.register(name, factory)


async def open(provider: str, driver: str, dsn: str, **options: Any) -> Database:
    """Open a database through a provider of the default registry."""
    return await default_registry.open(provider, driver, dsn, **options)
