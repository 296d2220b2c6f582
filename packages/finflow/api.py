"""Public API: wire the pipeline components from :class:`~finflow.config.Settings`.

Hosts (the CLI, a web service, a worker) build one :class:`Finflow` per
process and use its members; nothing here runs at import time.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from db.client import session_scope

from .categorize import CategorizationEngine
from .classifier import Classifier, build_classifier
from .config import Settings
from .duplicates import DuplicateStats, duplicate_stats
from .events import EventPublisher, EventSubscriber, MessageChannel, SqlEventChannel
from .ingestion import IngestionService
from .models import Category
from .persistence import recategorize
from .projection import SqlProjection, resync_projection
from .queries import QueryService
from .storage import LocalObjectStore, ObjectStore

# Consumer group used by the analytics projection.
PROJECTION_GROUP = "analytics-projection"


@dataclass(frozen=True, slots=True)
class Finflow:
    settings: Settings
    classifier: Classifier
    channel: MessageChannel
    publisher: EventPublisher
    ingestion: IngestionService
    queries: QueryService
    projection: SqlProjection

    def projection_subscriber(self, *, group: str = PROJECTION_GROUP) -> EventSubscriber:
        return EventSubscriber(
            self.channel,
            self.projection.apply,
            group=group,
            topic=self.publisher.topic,
        )

    def resync(self, user_id: str) -> int:
        return resync_projection(user_id=user_id, database_url=self.settings.database_url)

    def duplicate_stats(self, user_id: str) -> DuplicateStats:
        with session_scope(database_url=self.settings.database_url) as session:
            return duplicate_stats(session, user_id=user_id)

    def recategorize(self, user_id: str, transaction_id: str, category: Category) -> None:
        """Manually set a ledger category, then refresh the user's projection."""

        with session_scope(database_url=self.settings.database_url) as session:
            recategorize(
                session, user_id=user_id, transaction_id=transaction_id, category=category
            )
        self.resync(user_id)

    def close(self) -> None:
        self.ingestion.shutdown(wait=True)


def build_finflow(
    settings: Settings,
    *,
    store: ObjectStore | None = None,
    channel: MessageChannel | None = None,
    openai_client: Any | None = None,
) -> Finflow:
    """Assemble every component for ``settings``.

    ``store``, ``channel`` and ``openai_client`` override the defaults (local
    directory store, SQL event log, SDK client) for tests and embedding hosts.
    """

    classifier = build_classifier(settings, client=openai_client)
    engine = CategorizationEngine(classifier, concurrency=settings.classifier_concurrency)
    channel = channel or SqlEventChannel(database_url=settings.database_url)
    publisher = EventPublisher(channel, topic=settings.events_topic)
    ingestion = IngestionService(
        store=store or LocalObjectStore(settings.storage_dir),
        engine=engine,
        publisher=publisher,
        database_url=settings.database_url,
        skip_duplicates=settings.skip_duplicates,
        max_workers=settings.ingest_workers,
    )
    return Finflow(
        settings=settings,
        classifier=classifier,
        channel=channel,
        publisher=publisher,
        ingestion=ingestion,
        queries=QueryService(database_url=settings.database_url),
        projection=SqlProjection(database_url=settings.database_url),
    )


__all__ = ["Finflow", "PROJECTION_GROUP", "build_finflow"]
