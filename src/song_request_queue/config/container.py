"""Dependency Injection Container

Manages the application's dependency graph, providing lazy initialization
and lifecycle management for the engine, the hub and their collaborators.
Components are created on-demand and cached for reuse throughout the application.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING

from ..domain.shared.messages import LogTemplates

logger = logging.getLogger(__name__)

if TYPE_CHECKING:
    from ..application.interfaces.metadata_resolver import MetadataResolver
    from ..application.services.broadcast_hub import BroadcastHub
    from ..application.services.ingestion_service import IngestionService
    from ..application.services.queue_engine import QueueEngine
    from ..application.services.statistics_service import StatisticsService
    from ..application.services.stats_broadcaster import StatsBroadcaster
    from ..domain.requests.policies import RequestPolicy
    from ..domain.requests.repository import MetadataCacheRepository, RequestRepository
    from ..domain.shared.events import EventBus
    from ..infrastructure.persistence.database import Database
    from .settings import Settings


@dataclass
class Container:
    """Dependency injection container.

    Components are lazily initialized when first accessed. Tests can hand in
    a repository or resolver to replace the SQLite / HTTP ones.
    """

    settings: Settings

    # Persistence layer
    _database: Database | None = None
    _request_repository: RequestRepository | None = None
    _metadata_cache: MetadataCacheRepository | None = None

    # Infrastructure adapters
    _metadata_resolver: MetadataResolver | None = None

    # Core
    _event_bus: EventBus | None = None
    _policy: RequestPolicy | None = None
    _engine: QueueEngine | None = None
    _hub: BroadcastHub | None = None

    # Application services
    _statistics: StatisticsService | None = None
    _ingestion: IngestionService | None = None

    # Background jobs
    _stats_broadcaster: StatsBroadcaster | None = None

    # === Database ===

    @property
    def database(self) -> Database:
        """Get the database connection manager."""
        if self._database is None:
            from ..infrastructure.persistence.database import Database

            self._database = Database(self.settings.database.url, settings=self.settings.database)
        return self._database

    # === Repositories ===

    @property
    def request_repository(self) -> RequestRepository:
        if self._request_repository is None:
            from ..infrastructure.persistence.repositories.request_repository import (
                SQLiteRequestRepository,
            )

            self._request_repository = SQLiteRequestRepository(self.database)
        return self._request_repository

    @property
    def metadata_cache(self) -> MetadataCacheRepository:
        if self._metadata_cache is None:
            from ..infrastructure.persistence.repositories.metadata_cache_repository import (
                SQLiteMetadataCacheRepository,
            )

            self._metadata_cache = SQLiteMetadataCacheRepository(self.database)
        return self._metadata_cache

    # === Infrastructure Adapters ===

    @property
    def metadata_resolver(self) -> MetadataResolver | None:
        """oEmbed resolver, or None when lookups are switched off."""
        if self._metadata_resolver is None and self.settings.server.resolve_metadata:
            from ..infrastructure.metadata.oembed_resolver import OEmbedMetadataResolver

            self._metadata_resolver = OEmbedMetadataResolver()
        return self._metadata_resolver

    # === Core ===

    @property
    def event_bus(self) -> EventBus:
        if self._event_bus is None:
            from ..domain.shared.events import EventBus

            self._event_bus = EventBus()
        return self._event_bus

    @property
    def policy(self) -> RequestPolicy:
        if self._policy is None:
            from ..domain.requests.policies import DurationLimits, RequestPolicy

            limits = self.settings.limits
            self._policy = RequestPolicy(
                limits=DurationLimits(
                    donation_max_s=limits.donation_max_duration_s,
                    channel_points_max_s=limits.channel_points_max_duration_s,
                ),
                duplicate_cooldown=timedelta(minutes=self.settings.queue.duplicate_cooldown_minutes),
                channel_points_one_in_queue=limits.channel_points_one_in_queue,
            )
        return self._policy

    @property
    def engine(self) -> QueueEngine:
        """Get the queue engine."""
        if self._engine is None:
            from ..application.services.queue_engine import QueueEngine

            queue = self.settings.queue
            self._engine = QueueEngine(
                repository=self.request_repository,
                event_bus=self.event_bus,
                policy=self.policy,
                history_window=queue.history_window,
                retry_attempts=queue.persist_retry_attempts,
                retry_delay_s=queue.persist_retry_delay_s,
            )
        return self._engine

    @property
    def hub(self) -> BroadcastHub:
        """Get the broadcast hub."""
        if self._hub is None:
            from ..application.services.broadcast_hub import BroadcastHub

            self._hub = BroadcastHub(
                engine=self.engine,
                event_bus=self.event_bus,
                statistics=self.statistics,
                buffer_size=self.settings.broadcast.observer_buffer_size,
            )
        return self._hub

    # === Application Services ===

    @property
    def statistics(self) -> StatisticsService:
        if self._statistics is None:
            from ..application.services.statistics_service import StatisticsService

            self._statistics = StatisticsService(
                engine=self.engine,
                repository=self.request_repository,
                timezone=self.settings.zone,
            )
        return self._statistics

    @property
    def ingestion(self) -> IngestionService:
        if self._ingestion is None:
            from ..application.services.ingestion_service import IngestionService

            self._ingestion = IngestionService(
                engine=self.engine,
                resolver=self.metadata_resolver,
                cache_repository=self.metadata_cache,
            )
        return self._ingestion

    # === Background Jobs ===

    @property
    def stats_broadcaster(self) -> StatsBroadcaster:
        if self._stats_broadcaster is None:
            from ..application.services.stats_broadcaster import StatsBroadcaster

            self._stats_broadcaster = StatsBroadcaster(
                hub=self.hub,
                statistics=self.statistics,
                event_bus=self.event_bus,
                interval_s=self.settings.broadcast.stats_interval_s,
            )
        return self._stats_broadcaster

    # === Lifecycle ===

    async def initialize(self) -> None:
        """Initialize all async resources."""
        await self.database.initialize()
        await self.engine.start()
        self.hub.attach()
        self.stats_broadcaster.start()
        logger.info(LogTemplates.CONTAINER_INITIALIZED)

    async def shutdown(self) -> None:
        """Shutdown and cleanup all resources."""
        if self._stats_broadcaster is not None:
            await self._stats_broadcaster.stop()

        if self._hub is not None:
            self._hub.close_all()
            self._hub.detach()

        if self._metadata_resolver is not None:
            try:
                await self._metadata_resolver.close()
            except Exception as exc:
                logger.warning("Failed closing metadata resolver: %r", exc)

        if self._database is not None:
            await self._database.close()

        logger.info(LogTemplates.CONTAINER_SHUTDOWN)


def create_container(settings: Settings) -> Container:
    """Create a new dependency injection container."""
    return Container(settings)
