"""
Sequential batch execution over an ordered set of targets.

This module runs one operation per target, strictly one at a time, and
records a result for every target whether its remote call succeeded or not.
"""

import asyncio
import inspect
from typing import List, Callable, Awaitable, Optional, Union, Any, Dict
from datetime import datetime, timezone
from pydantic import BaseModel, Field

from adbatch.errors import ErrorCategory, ErrorDetail, describe_exception
from adbatch.models import BatchJob, BatchStatus, TargetDescriptor, TargetResult, TargetStatus
from adbatch.batch.aggregator import ResultAggregator
from adbatch.utils.logging import setup_logger

logger = setup_logger(__name__)

class OperationOutcome(BaseModel):
    """Successful result of one target operation."""
    remote_entity_id: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)

TargetOperation = Callable[[TargetDescriptor], Awaitable[Union[OperationOutcome, str, None]]]
ProgressListener = Callable[[BatchJob, TargetResult], Any]

class CancellationToken:
    """Cooperative cancellation checked between targets."""

    def __init__(self):
        self._event = asyncio.Event()
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "Batch cancelled by user") -> None:
        self.reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

class BatchTargetExecutor:
    """Runs an operation once per target, in order, one at a time."""

    def __init__(
        self,
        listeners: Optional[List[ProgressListener]] = None,
        cancellation: Optional[CancellationToken] = None,
        aggregator: Optional[ResultAggregator] = None
    ):
        """
        Initialize the executor.

        Args:
            listeners: Called with a job snapshot and the changed result after every transition
            cancellation: Token checked before each target starts
            aggregator: Aggregator used to derive the final job status
        """
        self.listeners = list(listeners or [])
        self.cancellation = cancellation or CancellationToken()
        self.aggregator = aggregator or ResultAggregator()

    def add_listener(self, listener: ProgressListener) -> None:
        self.listeners.append(listener)

    async def _notify(self, job: BatchJob, position: int) -> None:
        snapshot = job.snapshot()
        changed = snapshot.results[position]
        for listener in self.listeners:
            try:
                outcome = listener(snapshot, changed)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as e:
                logger.error(f"Progress listener failed for job {job.job_id}: {e}", exc_info=True)

    @staticmethod
    def _normalize(outcome: Union[OperationOutcome, str, None]) -> OperationOutcome:
        if isinstance(outcome, OperationOutcome):
            return outcome
        return OperationOutcome(remote_entity_id=outcome)

    async def _run_target(self, job: BatchJob, position: int, op: TargetOperation) -> None:
        """Execute the operation for one target and record its outcome."""
        result = job.results[position]
        result.transition(TargetStatus.PROCESSING)
        await self._notify(job, position)

        try:
            outcome = self._normalize(await op(result.target))
            result.succeed(outcome.remote_entity_id, outcome.details)
            logger.info(
                f"Job {job.job_id}: target {result.target_id} succeeded "
                f"(remote id {outcome.remote_entity_id})",
                extra={"job_id": job.job_id, "target_id": result.target_id}
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            detail = describe_exception(e, operation=job.kind.value)
            result.fail(detail)
            logger.error(
                f"Job {job.job_id}: target {result.target_id} failed: {detail.message}",
                extra={"job_id": job.job_id, "target_id": result.target_id}
            )

        await self._notify(job, position)

    async def run(self, job: BatchJob, op: TargetOperation) -> List[TargetResult]:
        """
        Execute a job sequentially.

        A failed target never stops the loop; every target ends SUCCESS or FAILED.

        Args:
            job: Job to execute, owned by the executor until this returns
            op: Async operation applied to each target

        Returns:
            List[TargetResult]: One result per target, in target order
        """
        if len(job.results) != len(job.targets):
            job.reset_results()

        job.status = BatchStatus.RUNNING
        job.started_at = datetime.now(timezone.utc)
        logger.info(f"Starting job {job.job_id} ({job.kind.value}) over {len(job.targets)} targets")

        for position, result in enumerate(job.results):
            if result.status.is_terminal:
                continue

            if self.cancellation.cancelled:
                result.fail(ErrorDetail(
                    message=self.cancellation.reason or "Batch cancelled",
                    category=ErrorCategory.CANCELLED,
                    operation=job.kind.value
                ))
                await self._notify(job, position)
                continue

            await self._run_target(job, position, op)

        summary = self.aggregator.summarize(job.results)
        job.status = summary.status
        job.finished_at = datetime.now(timezone.utc)
        logger.info(
            f"Finished job {job.job_id}: {summary.succeeded} succeeded, "
            f"{summary.failed} failed ({job.status.value})"
        )
        return job.results
