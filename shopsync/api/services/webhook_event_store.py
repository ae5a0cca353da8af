"""Storage for raw inbound webhook events."""

import json
import logging
from datetime import timedelta
from typing import Any

from sqlalchemy import delete
from sqlalchemy.orm import sessionmaker

from shopsync.core.database import SessionLocal, session_scope, utcnow
from shopsync.models.webhook_event import WebhookEvent

logger = logging.getLogger(__name__)


class WebhookEventStore:
    def __init__(self, session_factory: sessionmaker = SessionLocal):
        self._session_factory = session_factory

    def store(self, topic: str, remote_id: str | None, payload: Any) -> int:
        """Persist a verified event and return its id."""
        with session_scope(self._session_factory) as db:
            event = WebhookEvent(topic=topic, remote_id=remote_id, payload=json.dumps(payload))
            db.add(event)
            db.flush()
            return event.id

    def mark_processed(self, event_id: int) -> None:
        with session_scope(self._session_factory) as db:
            event = db.get(WebhookEvent, event_id)
            if event is None:
                logger.warning(f"Webhook event {event_id} not found")
                return
            event.processed = True
            event.processed_at = utcnow()

    def unprocessed(self, topics: list[str] | None = None, limit: int = 100) -> list[dict]:
        """Oldest unprocessed events, optionally filtered by topic."""
        with session_scope(self._session_factory) as db:
            query = db.query(WebhookEvent).filter(WebhookEvent.processed.is_(False))
            if topics:
                query = query.filter(WebhookEvent.topic.in_(topics))
            events = query.order_by(WebhookEvent.id).limit(limit).all()
            return [
                {
                    "event_id": e.id,
                    "topic": e.topic,
                    "remote_id": e.remote_id,
                    "data": json.loads(e.payload),
                }
                for e in events
            ]

    def cleanup(self, older_than_days: int = 7) -> int:
        """Delete processed events older than the retention window."""
        cutoff = utcnow() - timedelta(days=older_than_days)
        with session_scope(self._session_factory) as db:
            result = db.execute(
                delete(WebhookEvent).where(
                    WebhookEvent.processed.is_(True),
                    WebhookEvent.processed_at < cutoff,
                )
            )
            removed = result.rowcount or 0
        if removed:
            logger.info(f"Removed {removed} webhook events older than {older_than_days} days")
        return removed
