"""Lifecycle consistency and rollup engine."""

from tradedesk.lifecycle.corrector import RULES, Reconciliation, reconcile
from tradedesk.lifecycle.facade import TradeDesk
from tradedesk.lifecycle.rollup import RollupAggregator
from tradedesk.lifecycle.saga import SagaContext, SagaRunner, SagaStep
from tradedesk.lifecycle.workflow import ContractWorkflow

__all__ = [
    "RULES",
    "ContractWorkflow",
    "Reconciliation",
    "RollupAggregator",
    "SagaContext",
    "SagaRunner",
    "SagaStep",
    "TradeDesk",
    "reconcile",
]
