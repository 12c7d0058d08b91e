"""Dependency injection container for the helm_calendar server and CLI."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

logger = logging.getLogger(__name__)


@dataclass
class AppDependencies:
    """Shared objects needed by the routes, the scheduler and the CLI."""

    # Configuration
    config: Any

    # Data
    source: Any
    service: Any

    # Infrastructure
    health_tracker: Any
    time_provider: Any
    scheduler: Optional[Any] = None


class DependencyContainer:
    """Factory for building application dependencies."""

    @staticmethod
    def build_source(config: Any) -> Any:
        """Pick the data source: HTTP backend when configured, else the JSON store."""
        from helm_calendar.core.config_manager import get_config_value
        from helm_calendar.store.http_source import HttpItemSource
        from helm_calendar.store.json_store import JsonItemStore

        backend_url = get_config_value(config, "backend_url")
        if backend_url:
            logger.info("Using HTTP data source at %s", backend_url)
            return HttpItemSource(backend_url)
        store_path = get_config_value(config, "store_path")
        logger.info("Using JSON item store at %s", store_path)
        return JsonItemStore(store_path)

    @staticmethod
    def build_dependencies(
        config: Any,
        source: Any = None,
        sink: Any = None,
        with_scheduler: bool = False,
    ) -> AppDependencies:
        """Build all application dependencies.

        Args:
            config: Application configuration
            source: Data source; built from config when omitted
            sink: Notification sink; logging sink when omitted
            with_scheduler: Also build the notification scheduler

        Returns:
            AppDependencies container with all dependencies initialized
        """
        from helm_calendar.core.config_manager import (
            DEFAULT_NOTIFY_INTERVAL_SECONDS,
            get_config_value,
        )
        from helm_calendar.core.health_tracker import HealthTracker
        from helm_calendar.core.time_provider import TimeProvider
        from helm_calendar.domain.scheduler import NotificationScheduler
        from helm_calendar.domain.service import CalendarService

        time_provider = TimeProvider(get_config_value(config, "timezone"))
        health_tracker = HealthTracker()
        source = source if source is not None else DependencyContainer.build_source(config)

        service = CalendarService(
            source,
            config,
            today_provider=time_provider.today_local,
            now_provider=time_provider.now_local,
            sink=sink,
            health_tracker=health_tracker,
        )

        scheduler = None
        if with_scheduler:
            scheduler = NotificationScheduler(
                service.feed,
                interval_seconds=int(
                    get_config_value(
                        config, "notify_interval_seconds", DEFAULT_NOTIFY_INTERVAL_SECONDS
                    )
                ),
                health_tracker=health_tracker,
            )

        return AppDependencies(
            config=config,
            source=source,
            service=service,
            health_tracker=health_tracker,
            time_provider=time_provider,
            scheduler=scheduler,
        )
