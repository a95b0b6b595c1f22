"""Tests for the post-write saga runner."""

from __future__ import annotations

import pytest
from prometheus_client import REGISTRY

from tradedesk.domain.errors import RecordNotFoundError
from tradedesk.lifecycle.saga import SagaContext, SagaRunner, SagaStep


def _failures(step: str) -> float:
    return REGISTRY.get_sample_value("tradedesk_saga_step_failures_total", {"step": step}) or 0.0


@pytest.fixture
def runner() -> SagaRunner:
    return SagaRunner(attempts=3, wait_seconds=0)


class TestSagaRunner:
    """Primary writes propagate errors; follow-up steps are retried and reported."""

    def test_steps_run_in_order_after_primary(self, runner):
        calls: list[str] = []

        def primary(ctx: SagaContext) -> str:
            calls.append("primary")
            return "rec-1"

        def step(name: str) -> SagaStep:
            return SagaStep(name, lambda ctx: calls.append(name), f"repair {name}")

        ctx = runner.run(primary, [step("a"), step("b")])

        assert calls == ["primary", "a", "b"]
        assert ctx.record_id == "rec-1"
        assert ctx.failed_steps == []

    def test_primary_failure_propagates_and_skips_steps(self, runner):
        ran: list[str] = []

        def primary(ctx: SagaContext) -> str:
            raise LookupError("order missing")

        with pytest.raises(LookupError, match="order missing"):
            runner.run(primary, [SagaStep("a", lambda ctx: ran.append("a"), "repair a")])

        assert ran == []

    def test_transient_step_failure_is_retried(self, runner, log_output):
        attempts = {"n": 0}

        def flaky(ctx: SagaContext) -> None:
            attempts["n"] += 1
            if attempts["n"] < 3:
                raise RuntimeError("database is locked")

        ctx = runner.run(lambda ctx: "rec-1", [SagaStep("flaky", flaky, "repair flaky")])

        assert attempts["n"] == 3
        assert ctx.failed_steps == []
        retries = [e for e in log_output if e["event"] == "saga_step_retrying"]
        assert [e["attempt"] for e in retries] == [1, 2]
        assert retries[0]["step"] == "flaky"

    def test_exhausted_step_is_recorded_and_later_steps_run(self, runner, log_output):
        before = _failures("always_fails")
        ran: list[str] = []

        def always_fails(ctx: SagaContext) -> None:
            raise RuntimeError("boom")

        ctx = runner.run(
            lambda ctx: "rec-1",
            [
                SagaStep("always_fails", always_fails, "repair_fixture_rollups"),
                SagaStep("after", lambda ctx: ran.append("after"), "repair after"),
            ],
        )

        [failure] = ctx.failed_steps
        assert failure.step == "always_fails"
        assert failure.error == "boom"
        assert failure.repair_hint == "repair_fixture_rollups"
        assert ran == ["after"]
        assert _failures("always_fails") == before + 1

        [logged] = [e for e in log_output if e["event"] == "saga_step_failed"]
        assert logged["record_id"] == "rec-1"
        assert logged["repair_hint"] == "repair_fixture_rollups"
        assert logged["log_level"] == "error"

    def test_domain_errors_are_not_retried(self, runner, log_output):
        attempts = {"n": 0}

        def missing(ctx: SagaContext) -> None:
            attempts["n"] += 1
            raise RecordNotFoundError("fixture", "fx-404")

        ctx = runner.run(lambda ctx: "rec-1", [SagaStep("missing", missing, "repair missing")])

        assert attempts["n"] == 1
        [failure] = ctx.failed_steps
        assert failure.step == "missing"
        assert not [e for e in log_output if e["event"] == "saga_step_retrying"]
        [logged] = [e for e in log_output if e["event"] == "saga_step_failed"]
        assert logged["attempts"] == 1

    def test_attempts_are_bounded(self):
        attempts = {"n": 0}

        def always_fails(ctx: SagaContext) -> None:
            attempts["n"] += 1
            raise RuntimeError("boom")

        SagaRunner(attempts=2, wait_seconds=0).run_step(
            SagaStep("bounded", always_fails, "repair"), SagaContext()
        )

        assert attempts["n"] == 2

    def test_prepopulated_context_is_used(self, runner):
        ctx = SagaContext(data={"seed": 1})

        result = runner.run(lambda c: "rec-9", [], ctx)

        assert result is ctx
        assert result.data == {"seed": 1}
        assert result.record_id == "rec-9"


class TestSagaContext:
    def test_add_fixtures_deduplicates_in_order(self):
        ctx = SagaContext()
        ctx.add_fixtures(["f2", "f1"])
        ctx.add_fixtures(["f1", "f3"])
        assert ctx.fixture_ids == ["f2", "f1", "f3"]
