"""Sequential steps with compensating actions.

A saga runs its steps in order. When an ``ABORT`` step fails, the
compensations of the steps that already completed run in reverse order and
``SagaFailed`` is raised. A ``TOLERATE`` step may fail without stopping the
saga; the failure is logged and recorded on the context.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

from app.core.logging import get_logger

logger = get_logger(__name__)


class StepPolicy(str, Enum):
    """What a step failure does to the saga."""

    ABORT = "abort"
    TOLERATE = "tolerate"


@dataclass(frozen=True)
class SagaStep:
    """One step: an action and the compensation that undoes it."""

    name: str
    action: Callable[[dict[str, Any]], Any]
    compensation: Callable[[dict[str, Any]], None] | None = None
    policy: StepPolicy = StepPolicy.ABORT


@dataclass
class CompensationFailure:
    step: str
    error: BaseException


class SagaFailed(Exception):
    """An ``ABORT`` step failed; compensations have been attempted."""

    def __init__(
        self,
        step: str,
        cause: BaseException,
        compensation_failures: list[CompensationFailure] | None = None,
    ):
        super().__init__(f"Saga step {step!r} failed: {cause!r}")
        self.step = step
        self.cause = cause
        self.compensation_failures = compensation_failures or []

    @property
    def fully_compensated(self) -> bool:
        return not self.compensation_failures


@dataclass
class Saga:
    """An ordered list of steps, run with :meth:`run`."""

    name: str
    steps: list[SagaStep] = field(default_factory=list)

    def run(self, context: dict[str, Any] | None = None) -> dict[str, Any]:
        """
        Execute every step in order.

        Each action receives the shared context; its return value is stored
        under the step's name.

        Returns:
            The context after the last step.

        Raises:
            SagaFailed: an ``ABORT`` step raised
        """
        context = {} if context is None else context
        context.setdefault("tolerated_failures", [])
        completed: list[SagaStep] = []

        for step in self.steps:
            try:
                context[step.name] = step.action(context)
            except Exception as exc:
                if step.policy is StepPolicy.TOLERATE:
                    logger.warning(
                        "Saga step failed, continuing",
                        extra={"saga": self.name, "step": step.name, "error": repr(exc)},
                    )
                    context["tolerated_failures"].append(step.name)
                    continue

                logger.warning(
                    "Saga step failed, compensating",
                    extra={"saga": self.name, "step": step.name, "error_type": type(exc).__name__},
                )
                failures = self._compensate(completed, context)
                raise SagaFailed(step.name, exc, failures) from exc
            completed.append(step)

        return context

    def _compensate(
        self, completed: list[SagaStep], context: dict[str, Any]
    ) -> list[CompensationFailure]:
        failures: list[CompensationFailure] = []
        for step in reversed(completed):
            if step.compensation is None:
                continue
            try:
                step.compensation(context)
            except Exception as exc:
                # Left for the unconfirmed-account sweep
                logger.error(
                    "Saga compensation failed",
                    extra={"saga": self.name, "step": step.name, "error": repr(exc)},
                    exc_info=exc,
                )
                failures.append(CompensationFailure(step=step.name, error=exc))
        return failures
