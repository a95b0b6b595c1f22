"""Record store, event log, and reference lookups."""

from tradedesk.store.activity import ActivityLogger
from tradedesk.store.event_log import EventLog
from tradedesk.store.records import INDEXES, RecordStore, SQLiteRecordStore
from tradedesk.store.references import ReferenceResolver
from tradedesk.store.schema import close_database, init_database

__all__ = [
    "INDEXES",
    "ActivityLogger",
    "EventLog",
    "RecordStore",
    "ReferenceResolver",
    "SQLiteRecordStore",
    "close_database",
    "init_database",
]
