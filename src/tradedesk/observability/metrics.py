"""Prometheus counters for the lifecycle engine.

Provides:
- ``CORRECTIONS_APPLIED``: status corrections persisted, by rule name.
- ``ROLLUPS_RECOMPUTED``: Fixture rollup writes, by kind (``freshness`` or
  ``search_index``).
- ``SAGA_STEP_FAILURES``: post-write steps that exhausted their retries.

Counters are incremented where the fact happens (not by polling the store).
"""

from __future__ import annotations

from prometheus_client import Counter

CORRECTIONS_APPLIED: Counter = Counter(
    "tradedesk_corrections_total",
    "Status consistency corrections persisted",
    ["rule"],
)

ROLLUPS_RECOMPUTED: Counter = Counter(
    "tradedesk_rollups_total",
    "Fixture rollup recomputations written",
    ["kind"],
)

SAGA_STEP_FAILURES: Counter = Counter(
    "tradedesk_saga_step_failures_total",
    "Post-write saga steps that failed after all retries",
    ["step"],
)
