"""Tests for the saga runner."""

import pytest

from app.services.saga import Saga, SagaFailed, SagaStep, StepPolicy


class Recorder:
    def __init__(self):
        self.calls: list[str] = []

    def action(self, name: str, result=None, fail: bool = False):
        def run(ctx):
            self.calls.append(f"do:{name}")
            if fail:
                raise RuntimeError(f"{name} failed")
            return result

        return run

    def undo(self, name: str, fail: bool = False):
        def run(ctx):
            self.calls.append(f"undo:{name}")
            if fail:
                raise RuntimeError(f"undo {name} failed")

        return run


def test_saga_runs_steps_in_order_and_stores_results():
    rec = Recorder()
    saga = Saga(
        "signup",
        [
            SagaStep("create", rec.action("create", result="user-1"), rec.undo("create")),
            SagaStep("send", rec.action("send", result=True)),
        ],
    )

    ctx = saga.run({"email": "a@example.com"})

    assert rec.calls == ["do:create", "do:send"]
    assert ctx["create"] == "user-1"
    assert ctx["send"] is True
    assert ctx["email"] == "a@example.com"
    assert ctx["tolerated_failures"] == []


def test_abort_step_compensates_completed_steps_in_reverse():
    """A failing step undoes the completed ones, newest first, and skips itself."""
    rec = Recorder()
    saga = Saga(
        "signup",
        [
            SagaStep("create", rec.action("create"), rec.undo("create")),
            SagaStep("store", rec.action("store"), rec.undo("store")),
            SagaStep("send", rec.action("send", fail=True), rec.undo("send")),
            SagaStep("never", rec.action("never")),
        ],
    )

    with pytest.raises(SagaFailed) as exc_info:
        saga.run()

    assert rec.calls == ["do:create", "do:store", "do:send", "undo:store", "undo:create"]
    failure = exc_info.value
    assert failure.step == "send"
    assert isinstance(failure.cause, RuntimeError)
    assert failure.__cause__ is failure.cause
    assert failure.fully_compensated


def test_tolerated_step_failure_does_not_stop_the_saga():
    rec = Recorder()
    saga = Saga(
        "signup",
        [
            SagaStep("create", rec.action("create"), rec.undo("create")),
            SagaStep("profile", rec.action("profile", fail=True), policy=StepPolicy.TOLERATE),
            SagaStep("send", rec.action("send")),
        ],
    )

    ctx = saga.run()

    assert rec.calls == ["do:create", "do:profile", "do:send"]
    assert ctx["tolerated_failures"] == ["profile"]
    assert "profile" not in ctx


def test_tolerated_step_is_not_compensated_on_later_abort():
    rec = Recorder()
    saga = Saga(
        "signup",
        [
            SagaStep("create", rec.action("create"), rec.undo("create")),
            SagaStep(
                "profile", rec.action("profile", fail=True), rec.undo("profile"), StepPolicy.TOLERATE
            ),
            SagaStep("send", rec.action("send", fail=True)),
        ],
    )

    with pytest.raises(SagaFailed):
        saga.run()

    assert "undo:profile" not in rec.calls
    assert rec.calls[-1] == "undo:create"


def test_failing_compensation_is_reported_and_others_still_run():
    rec = Recorder()
    saga = Saga(
        "signup",
        [
            SagaStep("create", rec.action("create"), rec.undo("create")),
            SagaStep("store", rec.action("store"), rec.undo("store", fail=True)),
            SagaStep("send", rec.action("send", fail=True)),
        ],
    )

    with pytest.raises(SagaFailed) as exc_info:
        saga.run()

    assert rec.calls[-2:] == ["undo:store", "undo:create"]
    failure = exc_info.value
    assert not failure.fully_compensated
    assert [f.step for f in failure.compensation_failures] == ["store"]


def test_first_step_failure_has_nothing_to_compensate():
    rec = Recorder()
    saga = Saga("signup", [SagaStep("create", rec.action("create", fail=True), rec.undo("create"))])

    with pytest.raises(SagaFailed) as exc_info:
        saga.run()

    assert rec.calls == ["do:create"]
    assert exc_info.value.compensation_failures == []


def test_steps_share_context():
    saga = Saga(
        "chain",
        [
            SagaStep("first", lambda ctx: 2),
            SagaStep("second", lambda ctx: ctx["first"] * 10),
        ],
    )

    assert saga.run()["second"] == 20
