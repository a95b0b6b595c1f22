"""Tests for the append-only event log, the activity logger and reference lookups."""

import pytest

from tradedesk.domain.models import (
    ActivityLogEntry,
    Correction,
    ExpandableItem,
    FieldChange,
)
from tradedesk.domain.types import EntityType
from tradedesk.store.activity import ActivityLogger, status_tag
from tradedesk.store.event_log import EventLog
from tradedesk.store.references import ReferenceResolver


def _entry(entity_id: str, timestamp: int, action: str = "updated") -> ActivityLogEntry:
    return ActivityLogEntry(
        entity_type=EntityType.NEGOTIATION,
        entity_id=entity_id,
        action=action,
        timestamp=timestamp,
    )


class TestEventLog:
    """Tests for appending and reading activity entries."""

    def test_round_trip_preserves_payload(self, event_log: EventLog):
        entry = ActivityLogEntry(
            entity_type=EntityType.CONTRACT,
            entity_id="k1",
            action="created",
            description="Created contract CP10001",
            timestamp=10,
            status=status_tag(EntityType.CONTRACT, "draft"),
            expandable=[ExpandableItem(label="Freight Rate", value="$15.20/mt")],
            metadata={"number": "CP10001"},
            user_id="u1",
        )
        row_id = event_log.append(entry)

        [stored] = event_log.query_by_entity(EntityType.CONTRACT, "k1")
        assert stored == entry.model_copy(update={"id": row_id})

    def test_query_orders_by_timestamp(self, event_log: EventLog):
        event_log.append(_entry("n1", 30, "third"))
        event_log.append(_entry("n1", 10, "first"))
        event_log.append(_entry("n1", 20, "second"))

        actions = [e.action for e in event_log.query_by_entity(EntityType.NEGOTIATION, "n1")]
        assert actions == ["first", "second", "third"]

    def test_equal_timestamps_keep_append_order(self, event_log: EventLog):
        event_log.append(_entry("n1", 10, "a"))
        event_log.append(_entry("n1", 10, "b"))

        actions = [e.action for e in event_log.query_by_entity(EntityType.NEGOTIATION, "n1")]
        assert actions == ["a", "b"]

    def test_query_filters_by_entity(self, event_log: EventLog):
        event_log.append(_entry("n1", 10))
        event_log.append(_entry("n2", 10))

        assert len(event_log.query_by_entity(EntityType.NEGOTIATION, "n1")) == 1
        assert event_log.query_by_entity(EntityType.CONTRACT, "n1") == []

    def test_recent_is_newest_first(self, event_log: EventLog):
        for ts in (10, 30, 20):
            event_log.append(_entry("n1", ts))

        assert [e.timestamp for e in event_log.recent(limit=2)] == [30, 20]


class TestFieldChanges:
    """Tests for the field change log."""

    def test_newest_first(self, event_log: EventLog):
        for ts, new in ((10, "$15"), (20, "$16")):
            event_log.append_field_change(
                FieldChange(
                    entity_type=EntityType.NEGOTIATION,
                    entity_id="n1",
                    field_name="freight_rate",
                    old_value=None,
                    new_value=new,
                    timestamp=ts,
                    change_reason="counter",
                )
            )

        changes = event_log.field_changes(EntityType.NEGOTIATION, "n1")
        assert [c.new_value for c in changes] == ["$16", "$15"]
        assert changes[0].change_reason == "counter"


class TestActivityLogger:
    """Tests for the typed activity helpers."""

    def test_status_tag(self):
        tag = status_tag(EntityType.RECAP_MANAGER, "fully-fixed")
        assert tag.value == "recap-manager-fully-fixed"
        assert tag.label == "Fully fixed"

    def test_log_created(self, event_log: EventLog):
        ActivityLogger(event_log).log_created(
            EntityType.NEGOTIATION, "n1", "NEG12345", 10, status="indicative-offer"
        )

        [entry] = event_log.query_by_entity(EntityType.NEGOTIATION, "n1")
        assert entry.action == "created"
        assert entry.description == "Created negotiation NEG12345"
        assert entry.status.value == "negotiation-indicative-offer"
        assert entry.expandable is None

    def test_log_status_change_records_corrections(self, event_log: EventLog):
        correction = Correction(
            rule="fixed_negotiation_requires_final_contract",
            entity_type=EntityType.CONTRACT,
            entity_id="k1",
            changes={"status": "final"},
            previous={"status": "draft"},
            message="upgraded",
        )
        ActivityLogger(event_log).log_status_change(
            EntityType.NEGOTIATION, "n1", "firm", "fixed", 20, corrections=[correction]
        )

        [entry] = event_log.query_by_entity(EntityType.NEGOTIATION, "n1")
        assert entry.metadata["from_status"] == "firm"
        assert entry.metadata["to_status"] == "fixed"
        assert entry.metadata["corrections"][0]["entity_id"] == "k1"
        assert entry.status.value == "negotiation-fixed"

    def test_log_updated_sorts_fields(self, event_log: EventLog):
        ActivityLogger(event_log).log_updated(
            EntityType.CONTRACT, "k1", ["vessel_id", "freight_rate"], 5
        )

        [entry] = event_log.query_by_entity(EntityType.CONTRACT, "k1")
        assert entry.metadata == {"changed_fields": ["freight_rate", "vessel_id"]}
        assert entry.description == "Updated freight_rate, vessel_id"


class TestReferenceResolver:
    """Tests for reference id to display token lookups."""

    def test_vessel_name_and_imo(self, store, refs):
        tokens = ReferenceResolver(store).display_tokens(EntityType.VESSEL, refs["vessel"])
        assert tokens == ["Nordic Star", "9387421"]

    def test_port_name_and_country(self, store, refs):
        tokens = ReferenceResolver(store).display_tokens(EntityType.PORT, refs["load_port"])
        assert tokens == ["Ras Tanura", "Saudi Arabia"]

    def test_company_name(self, store, refs):
        tokens = ReferenceResolver(store).display_tokens(EntityType.COMPANY, refs["owner"])
        assert tokens == ["Frontline Shipping"]

    def test_missing_reference_resolves_to_nothing(self, store):
        assert ReferenceResolver(store).display_tokens(EntityType.VESSEL, "gone") == []

    def test_non_reference_kind_raises(self, store):
        with pytest.raises(ValueError, match="not a reference type"):
            ReferenceResolver(store).display_tokens(EntityType.FIXTURE, "f1")
