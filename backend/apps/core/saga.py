"""
Saga runner - ordered steps with compensating actions.

Used for workflows that span independent subsystems (identity, tenancy,
ledger) where a single database transaction cannot cover every step.

Usage:
    saga = Saga(
        "provision_tenant",
        [
            SagaStep("create_organization", create_org, delete_org),
            SagaStep("create_user", create_user, delete_user),
        ],
    )
    context = saga.run({"business_name": "Acme"})

Each action receives the shared context dict and may add keys to it.
Compensations receive the same context and must be idempotent: undoing a
step whose effect is already gone is a no-op, not an error.
"""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from apps.core.logging import get_logger

logger = get_logger(__name__)

SagaContext = dict[str, Any]


class SagaStepError(Exception):
    """Raised when a saga step fails. Completed steps have been compensated."""

    def __init__(self, saga: str, step: str, cause: BaseException):
        super().__init__(f"{saga}: step '{step}' failed: {cause}")
        self.saga = saga
        self.step = step
        self.cause = cause
        self.compensation_failures: list[str] = []


@dataclass(frozen=True)
class SagaStep:
    """A forward action paired with the action that undoes it."""

    name: str
    action: Callable[[SagaContext], None]
    compensate: Callable[[SagaContext], None] | None = None


class Saga:
    """Executes steps in order and unwinds completed steps on first failure."""

    def __init__(self, name: str, steps: list[SagaStep]):
        self.name = name
        self.steps = steps

    def run(self, context: SagaContext | None = None) -> SagaContext:
        """
        Run every step in order.

        Returns:
            The context after all steps have run.

        Raises:
            SagaStepError: A step raised. Compensations for the steps that had
                completed were run in reverse order before raising.
        """
        context = context if context is not None else {}
        completed: list[SagaStep] = []

        for step in self.steps:
            try:
                step.action(context)
            except Exception as e:
                logger.warning(
                    "saga_step_failed",
                    saga=self.name,
                    step=step.name,
                    error=str(e),
                )
                error = SagaStepError(self.name, step.name, e)
                error.compensation_failures = self._compensate(completed, context)
                raise error from e

            completed.append(step)
            logger.debug("saga_step_completed", saga=self.name, step=step.name)

        return context

    def _compensate(self, completed: list[SagaStep], context: SagaContext) -> list[str]:
        """
        Undo completed steps in strict reverse order.

        A failing compensation is logged and the unwind continues, so one
        stuck cleanup cannot leave earlier steps in place.
        """
        failures: list[str] = []
        for step in reversed(completed):
            if step.compensate is None:
                continue
            try:
                step.compensate(context)
                logger.info("saga_step_compensated", saga=self.name, step=step.name)
            except Exception:
                logger.exception("saga_compensation_failed", saga=self.name, step=step.name)
                failures.append(step.name)
        return failures
