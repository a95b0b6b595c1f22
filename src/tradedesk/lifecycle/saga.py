"""Post-write saga: independently retried, idempotent follow-up steps.

A façade call is a primary write followed by steps (reconcile, rollups,
analytics, event append).  The primary write is not retried and its failure
propagates, so nothing runs after a failed primary write.  Each follow-up
step is retried with tenacity unless it raised a ``TradeDeskError``, which
would fail the same way again; a step that still fails is recorded with a
repair hint and the remaining steps still run.  Recovery is by re-running the
idempotent repair operation named in the hint, never by compensation.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

import structlog
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from tradedesk.domain.errors import TradeDeskError
from tradedesk.domain.models import (
    Correction,
    IntegrityWarning,
    NegotiationAnalytics,
    StepFailure,
)
from tradedesk.observability.metrics import SAGA_STEP_FAILURES

logger = structlog.get_logger()


@dataclass
class SagaContext:
    """Mutable state shared by the steps of one façade call."""

    record_id: str = ""
    corrections: list[Correction] = field(default_factory=list)
    warnings: list[IntegrityWarning] = field(default_factory=list)
    fixture_ids: list[str] = field(default_factory=list)
    failed_steps: list[StepFailure] = field(default_factory=list)
    analytics: NegotiationAnalytics | None = None
    data: dict[str, Any] = field(default_factory=dict)

    def add_fixtures(self, fixture_ids: Sequence[str]) -> None:
        for fixture_id in fixture_ids:
            if fixture_id not in self.fixture_ids:
                self.fixture_ids.append(fixture_id)


@dataclass(frozen=True)
class SagaStep:
    """One follow-up step.

    Attributes:
        name: Identifier used in logs, metrics and ``StepFailure.step``.
        action: Callable receiving the shared context.  Must be idempotent.
        repair_hint: The repair operation that recovers from this step failing.
    """

    name: str
    action: Callable[[SagaContext], None]
    repair_hint: str


def _before_sleep_log(retry_state: RetryCallState) -> None:
    """Log a warning before each step retry."""
    exception = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "saga_step_retrying",
        step=getattr(retry_state.fn, "_step_name", "unknown"),
        attempt=retry_state.attempt_number,
        wait=retry_state.next_action.sleep if retry_state.next_action else 0,
        exception=str(exception),
    )


class SagaRunner:
    """Run a primary write and its follow-up steps.

    Args:
        attempts: Attempts per step, including the first.
        wait_seconds: Exponential backoff multiplier between attempts.
    """

    def __init__(self, attempts: int = 3, wait_seconds: float = 0.5) -> None:
        self._attempts = attempts
        self._wait_seconds = wait_seconds

    def _retrying(self) -> Retrying:
        return Retrying(
            stop=stop_after_attempt(self._attempts),
            retry=retry_if_not_exception_type(TradeDeskError),
            wait=wait_exponential(multiplier=self._wait_seconds, max=30),
            before_sleep=_before_sleep_log,
            reraise=True,
        )

    def run_step(self, step: SagaStep, ctx: SagaContext) -> bool:
        """Run one step with retries.

        Returns:
            True if the step eventually succeeded, False if it was recorded
            as failed.
        """

        def attempt() -> None:
            step.action(ctx)

        attempt._step_name = step.name  # type: ignore[attr-defined]

        retrying = self._retrying()
        try:
            retrying(attempt)
        except Exception as exc:
            logger.error(
                "saga_step_failed",
                step=step.name,
                record_id=ctx.record_id,
                attempts=retrying.statistics.get("attempt_number", self._attempts),
                exception=str(exc),
                repair_hint=step.repair_hint,
            )
            SAGA_STEP_FAILURES.labels(step=step.name).inc()
            ctx.failed_steps.append(
                StepFailure(step=step.name, error=str(exc), repair_hint=step.repair_hint)
            )
            return False
        return True

    def run(
        self,
        primary: Callable[[SagaContext], str],
        steps: Sequence[SagaStep],
        ctx: SagaContext | None = None,
    ) -> SagaContext:
        """Run *primary* once, then every step in order.

        Args:
            primary: The primary write.  Returns the primary record id.  Any
                exception it raises propagates unchanged.
            steps: Follow-up steps.
            ctx: Pre-populated context, or ``None`` for a fresh one.

        Returns:
            The context after all steps ran.
        """
        ctx = ctx or SagaContext()
        ctx.record_id = primary(ctx)
        for step in steps:
            self.run_step(step, ctx)
        return ctx
