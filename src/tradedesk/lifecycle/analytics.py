"""Analytics Extractor: rate statistics mined from a Negotiation's history.

The extractor folds the Negotiation's activity entries (oldest first) into two
sample series, freight and demurrage, then summarizes each series.  The
"last day" window is anchored on the series' own last sample rather than the
wall clock, so replaying the same history always gives the same summary.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from tradedesk.domain.models import ActivityLogEntry, Negotiation, NegotiationAnalytics

_NON_NUMERIC = re.compile(r"[^0-9.]")
_LEADING_NUMBER = re.compile(r"\d+(?:\.\d*)?|\.\d+")

HOUR_MS = 60 * 60 * 1000


@dataclass(frozen=True)
class RateSample:
    value: Decimal
    timestamp: int


@dataclass(frozen=True)
class SeriesSummary:
    first: Decimal | None = None
    highest: Decimal | None = None
    lowest: Decimal | None = None
    first_last_day: Decimal | None = None
    highest_last_day: Decimal | None = None
    lowest_last_day: Decimal | None = None


def parse_rate(raw: str | None) -> Decimal | None:
    """Parse the first numeric run out of a free-text rate.

    Every character other than digits and ``.`` is dropped first, so
    ``"$15.20/mt"`` parses as ``15.20`` and ``"1,250"`` as ``1250``.

    Returns:
        The value, or ``None`` if nothing numeric remains.
    """
    if not raw:
        return None
    match = _LEADING_NUMBER.match(_NON_NUMERIC.sub("", raw))
    if match is None:
        return None
    try:
        return Decimal(match.group(0))
    except InvalidOperation:
        return None


def is_freight_label(label: str) -> bool:
    lowered = label.lower()
    return "freight" in lowered or "rate" in lowered


def is_demurrage_label(label: str) -> bool:
    return "demurrage" in label.lower()


def extract_series(
    negotiation: Negotiation, entries: Iterable[ActivityLogEntry]
) -> tuple[list[RateSample], list[RateSample]]:
    """Collect freight and demurrage samples from activity entries.

    A label may feed both series (``"Demurrage Rate"`` does).  After each
    entry, a series that is still empty is seeded from the Negotiation's own
    rate field at that entry's timestamp, which covers histories written
    before entries carried structured payloads.

    Args:
        negotiation: The Negotiation whose history this is.
        entries: Its activity entries in ascending timestamp order.

    Returns:
        ``(freight_samples, demurrage_samples)`` in history order.
    """
    freight: list[RateSample] = []
    demurrage: list[RateSample] = []
    fallback_freight = parse_rate(negotiation.freight_rate)
    fallback_demurrage = parse_rate(negotiation.demurrage_rate)

    for entry in entries:
        for item in entry.expandable or ():
            value = parse_rate(item.value)
            if value is None:
                continue
            if is_freight_label(item.label):
                freight.append(RateSample(value, entry.timestamp))
            if is_demurrage_label(item.label):
                demurrage.append(RateSample(value, entry.timestamp))

        if not freight and fallback_freight is not None:
            freight.append(RateSample(fallback_freight, entry.timestamp))
        if not demurrage and fallback_demurrage is not None:
            demurrage.append(RateSample(fallback_demurrage, entry.timestamp))

    return freight, demurrage


def summarize_series(samples: Sequence[RateSample], window_hours: int = 24) -> SeriesSummary:
    """Summarize one series overall and over its trailing window.

    The window holds every sample no older than ``window_hours`` before the
    series' last sample, inclusive.
    """
    if not samples:
        return SeriesSummary()

    values = [s.value for s in samples]
    cutoff = samples[-1].timestamp - window_hours * HOUR_MS
    recent = [s.value for s in samples if s.timestamp >= cutoff]

    return SeriesSummary(
        first=values[0],
        highest=max(values),
        lowest=min(values),
        first_last_day=recent[0],
        highest_last_day=max(recent),
        lowest_last_day=min(recent),
    )


def summarize_negotiation_history(
    negotiation: Negotiation,
    entries: Iterable[ActivityLogEntry],
    window_hours: int = 24,
) -> NegotiationAnalytics:
    """Fold a Negotiation's activity history into its rate analytics.

    Args:
        negotiation: The Negotiation snapshot (for fallback rate fields).
        entries: Its activity entries, oldest first.
        window_hours: Width of the trailing window.

    Returns:
        The analytics summary.  Statistics of an empty series are ``None``.
    """
    freight_samples, demurrage_samples = extract_series(negotiation, entries)
    freight = summarize_series(freight_samples, window_hours)
    demurrage = summarize_series(demurrage_samples, window_hours)

    return NegotiationAnalytics(
        freight_rates_found=len(freight_samples),
        demurrage_rates_found=len(demurrage_samples),
        first_freight_rate_indication=freight.first,
        highest_freight_rate_indication=freight.highest,
        lowest_freight_rate_indication=freight.lowest,
        first_freight_rate_last_day=freight.first_last_day,
        highest_freight_rate_last_day=freight.highest_last_day,
        lowest_freight_rate_last_day=freight.lowest_last_day,
        first_demurrage_indication=demurrage.first,
        highest_demurrage_indication=demurrage.highest,
        lowest_demurrage_indication=demurrage.lowest,
        first_demurrage_last_day=demurrage.first_last_day,
        highest_demurrage_last_day=demurrage.highest_last_day,
        lowest_demurrage_last_day=demurrage.lowest_last_day,
    )
