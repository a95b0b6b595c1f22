"""Tests for rate analytics mined from a negotiation's activity history."""

from __future__ import annotations

from decimal import Decimal

import pytest

from tradedesk.domain.models import ActivityLogEntry, ExpandableItem, Negotiation
from tradedesk.domain.types import EntityType
from tradedesk.lifecycle.analytics import (
    HOUR_MS,
    RateSample,
    extract_series,
    parse_rate,
    summarize_negotiation_history,
    summarize_series,
)


def _negotiation(**extra) -> Negotiation:
    return Negotiation(
        id="n1",
        created_at=1,
        negotiation_number="NEG10001",
        order_id="o1",
        counterparty_id="cp1",
        **extra,
    )


def _entry(timestamp: int, *items: tuple[str, str]) -> ActivityLogEntry:
    return ActivityLogEntry(
        entity_type=EntityType.NEGOTIATION,
        entity_id="n1",
        action="updated",
        timestamp=timestamp,
        expandable=[ExpandableItem(label=label, value=value) for label, value in items] or None,
    )


class TestParseRate:
    """Free-text rates parse to their first numeric run."""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("$15.20/mt", Decimal("15.20")),
            ("1,250", Decimal("1250")),
            ("WS 120.5", Decimal("120.5")),
            ("USD 25000 pdpr", Decimal("25000")),
            (".75", Decimal(".75")),
        ],
    )
    def test_parses(self, raw, expected):
        assert parse_rate(raw) == expected

    @pytest.mark.parametrize("raw", [None, "", "TBA", "$/mt"])
    def test_unparseable(self, raw):
        assert parse_rate(raw) is None


class TestExtractSeries:
    """Labels route values into the freight and demurrage series."""

    def test_labels_route_values(self):
        entries = [
            _entry(10, ("Freight Rate", "$15.20/mt"), ("Demurrage", "$25,000 pdpr")),
            _entry(20, ("Laycan", "2024-03-01 to 2024-03-05")),
        ]

        freight, demurrage = extract_series(_negotiation(), entries)

        assert freight == [RateSample(Decimal("15.20"), 10)]
        assert demurrage == [RateSample(Decimal("25000"), 10)]

    def test_demurrage_rate_label_feeds_both_series(self):
        freight, demurrage = extract_series(
            _negotiation(), [_entry(10, ("Demurrage Rate", "30000"))]
        )

        assert [s.value for s in freight] == [Decimal("30000")]
        assert [s.value for s in demurrage] == [Decimal("30000")]

    def test_unparseable_values_are_skipped(self):
        freight, _ = extract_series(_negotiation(), [_entry(10, ("Freight Rate", "TBA"))])
        assert freight == []

    def test_empty_series_seeded_from_negotiation_fields(self):
        negotiation = _negotiation(freight_rate="$14/mt", demurrage_rate="20000")
        entries = [_entry(10), _entry(20), _entry(30, ("Freight Rate", "$15/mt"))]

        freight, demurrage = extract_series(negotiation, entries)

        assert freight == [RateSample(Decimal("14"), 10), RateSample(Decimal("15"), 30)]
        assert demurrage == [RateSample(Decimal("20000"), 10)]

    def test_no_entries_means_no_samples(self):
        freight, demurrage = extract_series(_negotiation(freight_rate="$14/mt"), [])
        assert freight == [] and demurrage == []


class TestSummarizeSeries:
    """Overall and trailing-window statistics."""

    def test_empty_series(self):
        summary = summarize_series([])
        assert summary.first is None
        assert summary.highest_last_day is None

    def test_window_is_anchored_on_last_sample(self):
        samples = [
            RateSample(Decimal("20"), 0),
            RateSample(Decimal("12"), 25 * HOUR_MS),
            RateSample(Decimal("10"), 26 * HOUR_MS),
        ]

        summary = summarize_series(samples, window_hours=24)

        assert (summary.first, summary.highest, summary.lowest) == (
            Decimal("20"),
            Decimal("20"),
            Decimal("10"),
        )
        assert summary.first_last_day == Decimal("12")
        assert summary.highest_last_day == Decimal("12")
        assert summary.lowest_last_day == Decimal("10")

    def test_window_boundary_is_inclusive(self):
        samples = [RateSample(Decimal("5"), 0), RateSample(Decimal("7"), 24 * HOUR_MS)]

        summary = summarize_series(samples, window_hours=24)

        assert summary.first_last_day == Decimal("5")

    def test_window_width_is_configurable(self):
        samples = [RateSample(Decimal("5"), 0), RateSample(Decimal("7"), 2 * HOUR_MS)]

        summary = summarize_series(samples, window_hours=1)

        assert summary.first_last_day == Decimal("7")
        assert summary.lowest_last_day == Decimal("7")


class TestSummarizeNegotiationHistory:
    """End-to-end analytics from activity entries."""

    def test_two_rates_within_a_day(self):
        entries = [
            _entry(10, ("Freight Rate", "$15.20/mt")),
            _entry(10 + 23 * HOUR_MS, ("Freight Rate", "$16.00/mt")),
        ]

        analytics = summarize_negotiation_history(_negotiation(), entries)

        assert analytics.freight_rates_found == 2
        assert analytics.first_freight_rate_indication == Decimal("15.20")
        assert analytics.highest_freight_rate_indication == Decimal("16.00")
        assert analytics.lowest_freight_rate_indication == Decimal("15.20")
        assert analytics.highest_freight_rate_last_day == Decimal("16.00")
        assert analytics.first_freight_rate_last_day == Decimal("15.20")
        assert analytics.demurrage_rates_found == 0
        assert analytics.highest_demurrage_indication is None

    def test_replay_is_deterministic(self):
        entries = [
            _entry(10, ("Freight Rate", "$15.20/mt"), ("Demurrage", "25000")),
            _entry(5 * HOUR_MS, ("Freight Rate", "$14.80/mt")),
            _entry(40 * HOUR_MS, ("Demurrage", "27500")),
        ]

        first = summarize_negotiation_history(_negotiation(), entries)
        second = summarize_negotiation_history(_negotiation(), list(entries))

        assert first == second
