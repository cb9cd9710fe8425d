"""
Dependency injection container using dependency-injector.
Wires the process-wide collaborators (cache, rate limiter, registry clients,
notifier, export store) that per-request services are built around.
"""

import asyncio

from dependency_injector import containers, providers

from ledgercrm.controllers.health_controller import HealthController
from ledgercrm.core.cache import InMemoryCache, RedisCache
from ledgercrm.core.config import settings
from ledgercrm.core.integrations.notifications import LoggingPortalNotifier
from ledgercrm.core.integrations.vies_client import ViesClient
from ledgercrm.core.integrations.whitelist_client import WhitelistClient
from ledgercrm.core.rate_limiter import FixedWindowRateLimiter
from ledgercrm.services.contact_service import ClientLockRegistry
from ledgercrm.services.health_service import HealthService
from ledgercrm.services.timeline_export_service import ExportStore
from ledgercrm.utils.clock import utcnow


class Container(containers.DeclarativeContainer):
    """Dependency injection container."""

    # Configuration
    config = providers.Configuration()

    # Cache shared by the verification services and the outbound rate limiter
    cache = providers.Selector(
        config.cache_backend,
        redis=providers.Singleton(RedisCache, redis_url=config.redis_url),
        memory=providers.Singleton(InMemoryCache),
    )

    vat_rate_limiter = providers.Singleton(
        FixedWindowRateLimiter,
        cache=cache,
        limit=config.vat_rate_limit_per_minute,
        window_seconds=60,
        key_prefix="ratelimit:vies",
    )

    # External registries
    vat_registry = providers.Singleton(ViesClient)
    whitelist_registry = providers.Singleton(WhitelistClient)

    portal_notifier = providers.Singleton(LoggingPortalNotifier, portal_base_url=config.portal_base_url)

    export_store = providers.Singleton(
        ExportStore,
        directory=config.export_dir,
        ttl_seconds=config.export_link_ttl_seconds,
    )

    client_locks = providers.Singleton(ClientLockRegistry)

    clock = providers.Object(utcnow)
    sleep = providers.Object(asyncio.sleep)

    # Services
    health_service = providers.Singleton(HealthService, cache=cache)

    # Controllers
    health_controller = providers.Factory(HealthController, health_service=health_service)


def settings_config() -> dict:
    return {
        "cache_backend": settings.CACHE_BACKEND,
        "redis_url": settings.REDIS_URL,
        "vat_rate_limit_per_minute": settings.VAT_RATE_LIMIT_PER_MINUTE,
        "portal_base_url": settings.PORTAL_BASE_URL,
        "export_dir": settings.EXPORT_DIR,
        "export_link_ttl_seconds": settings.EXPORT_LINK_TTL_SECONDS,
    }


# Global container instance
_container: Container = None


def get_container() -> Container:
    """Get the global dependency injection container."""
    global _container
    if _container is None:
        _container = Container()
        _container.config.from_dict(settings_config())
    return _container


def set_container(container: Container) -> None:
    """Replace the global container (application startup, tests)."""
    global _container
    _container = container
