"""Database models."""

from shopsync.models.id_mapping import IdMapping
from shopsync.models.job_log import JobLog
from shopsync.models.sync_state import SyncState
from shopsync.models.webhook_event import WebhookEvent

__all__ = ["IdMapping", "JobLog", "SyncState", "WebhookEvent"]
