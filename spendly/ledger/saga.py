"""
Two-Phase Steps

The store has no multi-statement transactions, so every ledger operation
that writes more than once is a sequence of independent calls that can
fail half way. Each write is modelled as a step with apply() and
compensate(); the Saga runs steps in order and, when one fails, undoes
the completed ones in reverse before reporting the failure.

A step may declare itself non-compensable. Its effect then stays in
place on failure and the caller has to surface that.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional
from uuid import UUID

from spendly.ledger.errors import CompensationError, LedgerError
from spendly.log import get_logger
from spendly.services.storage.interface import StorageError


class SagaStep(ABC):
    """One write of a multi-step operation."""

    name: str = "step"
    compensable: bool = True

    @abstractmethod
    async def apply(self) -> Any:
        """Perform the write. Raise StorageError/LedgerError on failure."""
        pass

    async def compensate(self) -> None:
        """Undo what apply() did."""
        pass


class Saga:
    """
    Runs steps in order with reverse-order compensation.

    On failure of step k:
    - steps k-1..1 that are compensable are undone, each attempted even
      when an earlier undo failed
    - the failing step's error is re-raised
    - if any undo fails, CompensationError(primary, secondary) is raised
      instead, listing every step left in place
    """

    def __init__(
        self,
        name: str,
        steps: list[SagaStep],
        correlation_id: Optional[UUID] = None,
    ):
        self._name = name
        self._steps = steps
        self._logger = get_logger(__name__, correlation_id)

    async def run(self) -> list[Any]:
        completed: list[SagaStep] = []
        results = []

        for step in self._steps:
            try:
                result = await step.apply()
            except (StorageError, LedgerError) as e:
                self._logger.warning(
                    "saga_step_failed",
                    saga=self._name,
                    step=step.name,
                    error_type=type(e).__name__,
                    error=str(e),
                )
                await self._compensate(completed, e)
                raise

            self._logger.info("saga_step_applied", saga=self._name, step=step.name)
            completed.append(step)
            results.append(result)

        return results

    async def _compensate(self, completed: list[SagaStep], primary: Exception) -> None:
        failures: list[tuple[str, Exception]] = []

        for step in reversed(completed):
            if not step.compensable:
                self._logger.warning(
                    "saga_step_left_applied",
                    saga=self._name,
                    step=step.name,
                )
                continue

            try:
                await step.compensate()
            except (StorageError, LedgerError) as secondary:
                self._logger.error(
                    "saga_compensation_failed",
                    saga=self._name,
                    step=step.name,
                    primary_error=str(primary),
                    error=str(secondary),
                )
                failures.append((step.name, secondary))
                continue

            self._logger.info("saga_step_compensated", saga=self._name, step=step.name)

        if failures:
            names = ", ".join(name for name, _ in failures)
            raise CompensationError(
                f"{self._name}: {names} could not be undone after failure: {primary}",
                primary=primary,
                secondary=failures[0][1],
                failures=failures,
            ) from failures[0][1]
