"""Rollup Aggregator: a Fixture's freshness timestamp and search index.

The two derived Fixture fields are recomputed from scratch by walking the
Fixture's reference graph:

    Fixture -> Contracts, RecapManagers            (direct, ``by_fixture``)
    Fixture -> Order -> Negotiations               (trade-desk path only)
    each of the above -> Vessel / Company / Port / CargoType / User

``compute_freshness`` and ``build_search_text`` are pure functions over a
loaded :class:`FixtureGraph`.  :class:`RollupAggregator` binds them to a
record store and writes only ``last_updated`` and ``search_text``.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field

import structlog

from tradedesk.domain.errors import RecordNotFoundError
from tradedesk.domain.models import (
    Contract,
    Fixture,
    Negotiation,
    Order,
    RecapManager,
)
from tradedesk.domain.types import EntityType
from tradedesk.observability.metrics import ROLLUPS_RECOMPUTED
from tradedesk.store.records import RecordStore
from tradedesk.store.references import ReferenceResolver

logger = structlog.get_logger()

# A search token is either a literal string or a (reference kind, id) pair
# that resolves one hop further to display strings.
Token = str | tuple[EntityType, str]
Resolve = Callable[[EntityType, str], list[str]]


@dataclass(frozen=True)
class FixtureGraph:
    """Everything reachable from one Fixture that feeds its rollups."""

    fixture: Fixture
    order: Order | None = None
    contracts: tuple[Contract, ...] = field(default=())
    recap_managers: tuple[RecapManager, ...] = field(default=())
    negotiations: tuple[Negotiation, ...] = field(default=())
    linked_orders: dict[str, Order] = field(default_factory=dict)


def compute_freshness(graph: FixtureGraph) -> int:
    """Return the newest timestamp across the Fixture and its linked records.

    The Fixture contributes both its own timestamps.  Contracts and
    RecapManagers contribute their ``updated_at`` (or ``created_at`` if never
    updated); Negotiations only count when the Fixture is Order-linked.
    """
    fixture = graph.fixture
    candidates = [fixture.created_at, fixture.updated_at or 0]
    candidates.extend(c.freshness for c in graph.contracts)
    candidates.extend(r.freshness for r in graph.recap_managers)
    if graph.order is not None:
        candidates.extend(n.freshness for n in graph.negotiations)
    return max(candidates)


def _refs(pairs: Iterable[tuple[EntityType, str | None]]) -> list[Token]:
    return [(kind, ref_id) for kind, ref_id in pairs if ref_id]


def _literals(*values: str | None) -> list[Token]:
    return [v for v in values if v]


def collect_search_tokens(graph: FixtureGraph) -> list[Token]:
    """Gather raw search tokens from a Fixture graph.

    Args:
        graph: The loaded Fixture graph.

    Returns:
        Literal strings and unresolved ``(kind, id)`` reference pairs, in
        traversal order.  Duplicates are kept; ``build_search_text`` removes
        them.
    """
    fixture = graph.fixture
    tokens: list[Token] = _literals(fixture.fixture_number, fixture.title)

    for contract in graph.contracts:
        tokens += _literals(
            contract.contract_number,
            contract.contract_type,
            contract.load_delivery_type,
            contract.discharge_redelivery_type,
        )
        if contract.order_id in graph.linked_orders:
            tokens.append(graph.linked_orders[contract.order_id].order_number)
        tokens += _refs(
            [
                (EntityType.VESSEL, contract.vessel_id),
                (EntityType.COMPANY, contract.owner_id),
                (EntityType.COMPANY, contract.charterer_id),
                (EntityType.COMPANY, contract.broker_id),
                (EntityType.PORT, contract.load_port_id),
                (EntityType.PORT, contract.discharge_port_id),
                (EntityType.CARGO_TYPE, contract.cargo_type_id),
            ]
        )

    for recap in graph.recap_managers:
        tokens += _literals(recap.recap_number, recap.contract_type)
        tokens += _refs(
            [
                (EntityType.VESSEL, recap.vessel_id),
                (EntityType.COMPANY, recap.owner_id),
                (EntityType.COMPANY, recap.charterer_id),
                (EntityType.COMPANY, recap.broker_id),
                (EntityType.PORT, recap.load_port_id),
                (EntityType.PORT, recap.discharge_port_id),
                (EntityType.CARGO_TYPE, recap.cargo_type_id),
            ]
        )

    for negotiation in graph.negotiations:
        tokens += _literals(
            negotiation.negotiation_number,
            negotiation.market_index_name,
            negotiation.load_delivery_type,
            negotiation.discharge_redelivery_type,
        )
        tokens += _refs(
            [
                (EntityType.VESSEL, negotiation.vessel_id),
                (EntityType.COMPANY, negotiation.counterparty_id),
                (EntityType.COMPANY, negotiation.broker_id),
                (EntityType.USER, negotiation.deal_capture_user_id),
            ]
        )

    order = graph.order
    if order is not None:
        tokens += _literals(order.order_number)
        tokens += _refs(
            [
                (EntityType.USER, order.created_by_user_id),
                (EntityType.PORT, order.load_port_id),
                (EntityType.PORT, order.discharge_port_id),
                (EntityType.CARGO_TYPE, order.cargo_type_id),
            ]
        )

    return tokens


def build_search_text(tokens: Iterable[Token], resolve: Resolve) -> str:
    """Resolve, normalize, deduplicate and sort tokens into one string.

    Args:
        tokens: Output of ``collect_search_tokens``.
        resolve: Maps a ``(kind, id)`` reference to its display strings.

    Returns:
        Lowercased unique tokens in sorted order, joined by single spaces.
    """
    words: set[str] = set()
    for token in tokens:
        values = resolve(*token) if isinstance(token, tuple) else [token]
        for value in values:
            normalized = " ".join(str(value).lower().split())
            if normalized:
                words.add(normalized)
    return " ".join(sorted(words))


class RollupAggregator:
    """Recompute and persist a Fixture's derived fields.

    This is the only writer of ``Fixture.last_updated`` and
    ``Fixture.search_text``.  Every method re-reads the linked records, so
    calling it again with no intervening writes produces the same values.

    Args:
        store: The record store.
        references: Resolver for Vessel/Company/Port/CargoType/User ids.
    """

    def __init__(self, store: RecordStore, references: ReferenceResolver | None = None) -> None:
        self._store = store
        self._references = references or ReferenceResolver(store)

    # ------------------------------------------------------------------
    # Graph loading
    # ------------------------------------------------------------------

    def load_graph(self, fixture_id: str) -> FixtureGraph:
        """Load a Fixture and every record its rollups depend on.

        Raises:
            RecordNotFoundError: If the Fixture does not exist.
        """
        body = self._store.get(EntityType.FIXTURE, fixture_id)
        if body is None:
            raise RecordNotFoundError(EntityType.FIXTURE.value, fixture_id)
        fixture = Fixture.model_validate(body)

        contracts = tuple(
            Contract.model_validate(b)
            for b in self._store.query_by_index(EntityType.CONTRACT, "by_fixture", fixture_id)
        )
        recaps = tuple(
            RecapManager.model_validate(b)
            for b in self._store.query_by_index(
                EntityType.RECAP_MANAGER, "by_fixture", fixture_id
            )
        )

        order: Order | None = None
        negotiations: tuple[Negotiation, ...] = ()
        if fixture.order_id:
            order_body = self._store.get(EntityType.ORDER, fixture.order_id)
            if order_body is not None:
                order = Order.model_validate(order_body)
                negotiations = tuple(
                    Negotiation.model_validate(b)
                    for b in self._store.query_by_index(
                        EntityType.NEGOTIATION, "by_order", order.id
                    )
                )

        linked_orders: dict[str, Order] = {}
        if order is not None:
            linked_orders[order.id] = order
        for contract in contracts:
            if contract.order_id and contract.order_id not in linked_orders:
                order_body = self._store.get(EntityType.ORDER, contract.order_id)
                if order_body is not None:
                    linked_orders[contract.order_id] = Order.model_validate(order_body)

        return FixtureGraph(
            fixture=fixture,
            order=order,
            contracts=contracts,
            recap_managers=recaps,
            negotiations=negotiations,
            linked_orders=linked_orders,
        )

    # ------------------------------------------------------------------
    # Recompute
    # ------------------------------------------------------------------

    def recompute_freshness(self, fixture_id: str) -> int:
        """Recompute and persist ``last_updated``; return the new value."""
        graph = self.load_graph(fixture_id)
        last_updated = compute_freshness(graph)
        self._store.put(EntityType.FIXTURE, fixture_id, {"last_updated": last_updated})
        ROLLUPS_RECOMPUTED.labels(kind="freshness").inc()
        return last_updated

    def recompute_search_index(self, fixture_id: str) -> str:
        """Recompute and persist ``search_text``; return the new value."""
        graph = self.load_graph(fixture_id)
        search_text = build_search_text(
            collect_search_tokens(graph), self._references.display_tokens
        )
        self._store.put(EntityType.FIXTURE, fixture_id, {"search_text": search_text})
        ROLLUPS_RECOMPUTED.labels(kind="search_index").inc()
        return search_text

    def recompute(self, fixture_id: str) -> Fixture:
        """Recompute both derived fields from one graph load and return the Fixture."""
        graph = self.load_graph(fixture_id)
        derived = {
            "last_updated": compute_freshness(graph),
            "search_text": build_search_text(
                collect_search_tokens(graph), self._references.display_tokens
            ),
        }
        self._store.put(EntityType.FIXTURE, fixture_id, derived)
        ROLLUPS_RECOMPUTED.labels(kind="freshness").inc()
        ROLLUPS_RECOMPUTED.labels(kind="search_index").inc()
        logger.debug("fixture_rollups_recomputed", fixture_id=fixture_id, **derived)
        return graph.fixture.model_copy(update=derived)

    # ------------------------------------------------------------------
    # Owning Fixture resolution
    # ------------------------------------------------------------------

    def fixture_for_order(self, order_id: str | None) -> str | None:
        """Return the id of the Fixture created for *order_id*, if any."""
        if not order_id:
            return None
        fixtures = self._store.query_by_index(EntityType.FIXTURE, "by_order", order_id)
        return fixtures[0]["id"] if fixtures else None

    def fixtures_for_contract(self, contract: Contract) -> list[str]:
        """Fixtures whose rollups read *contract*: its own and its Order's."""
        return _unique([contract.fixture_id, self.fixture_for_order(contract.order_id)])

    def fixtures_for_recap(self, recap: RecapManager) -> list[str]:
        """Fixtures whose rollups read *recap*: its own and its Order's."""
        return _unique([recap.fixture_id, self.fixture_for_order(recap.order_id)])

    def fixtures_for_negotiation(self, negotiation: Negotiation) -> list[str]:
        """Fixtures whose rollups read *negotiation*, always via its Order."""
        return _unique([self.fixture_for_order(negotiation.order_id)])


def _unique(ids: Iterable[str | None]) -> list[str]:
    seen: list[str] = []
    for fixture_id in ids:
        if fixture_id and fixture_id not in seen:
            seen.append(fixture_id)
    return seen
