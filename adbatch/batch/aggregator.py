"""
Result aggregation for batch operations.

Reduces per-target and per-file outcomes into a BatchSummary. Every reduction
here is pure: the same results always yield the same summary.
"""

from typing import List, Optional, Sequence, TYPE_CHECKING

from adbatch.config import batch_config
from adbatch.models import (
    BatchKind, BatchStatus, BatchSummary, FailedDetail, TargetResult, TargetStatus
)

if TYPE_CHECKING:
    from adbatch.upload.models import UploadBatchResult

_DUPLICATE_KINDS = {BatchKind.DUPLICATE_CAMPAIGN, BatchKind.DUPLICATE_AD_SET}

class ResultAggregator:
    """Builds summaries from batch results."""

    def __init__(self, max_error_details: Optional[int] = None):
        """
        Initialize the aggregator.

        Args:
            max_error_details: Failures listed individually, the rest are counted
        """
        self.max_error_details = batch_config.max_error_details if max_error_details is None else max_error_details

    @staticmethod
    def resolve_status(succeeded: int, failed: int, pending: int = 0) -> BatchStatus:
        """
        Derive the job status from outcome counts.

        Args:
            succeeded: Number of successful items
            failed: Number of failed items
            pending: Number of items not yet terminal

        Returns:
            BatchStatus for the counts
        """
        if pending:
            return BatchStatus.RUNNING
        if failed == 0:
            return BatchStatus.COMPLETED
        if succeeded == 0:
            return BatchStatus.FAILED
        return BatchStatus.PARTIALLY_COMPLETED

    def _build(
        self,
        total: int,
        succeeded: int,
        failures: List[FailedDetail],
        notices: Optional[List[str]] = None
    ) -> BatchSummary:
        failed = len(failures)
        pending = total - succeeded - failed
        listed = failures[:self.max_error_details]
        return BatchSummary(
            total=total,
            succeeded=succeeded,
            failed=failed,
            pending=pending,
            status=self.resolve_status(succeeded, failed, pending),
            failed_details=listed,
            omitted_failures=failed - len(listed),
            notices=notices or []
        )

    def summarize(
        self,
        results: Sequence[TargetResult],
        kind: Optional[BatchKind] = None
    ) -> BatchSummary:
        """
        Summarize target results.

        Args:
            results: Final (or in-progress) results, in display order
            kind: Batch kind, used to attach kind-specific notices

        Returns:
            BatchSummary with counts and the first failure messages
        """
        succeeded = 0
        failures: List[FailedDetail] = []
        for result in results:
            if result.status == TargetStatus.SUCCESS:
                succeeded += 1
            elif result.status == TargetStatus.FAILED:
                failures.append(FailedDetail(
                    target_id=result.target_id,
                    name=result.target.name,
                    error=result.error.message if result.error else "Operation failed"
                ))

        notices = []
        if kind in _DUPLICATE_KINDS and succeeded:
            notices.append(batch_config.duplicate_notice)

        return self._build(len(results), succeeded, failures, notices)

    def summarize_uploads(self, result: "UploadBatchResult") -> BatchSummary:
        """
        Summarize an upload batch.

        Args:
            result: Combined outcome of every dispatched file group

        Returns:
            BatchSummary keyed by file name
        """
        failures = [
            FailedDetail(target_id=failure.file, name=failure.file, error=failure.error)
            for failure in result.failures
        ]
        notices = []
        if result.skipped:
            notices.append(
                "Skipped unsupported files (only images and videos are supported): "
                + ", ".join(result.skipped)
            )
        total = len(result.assets) + len(failures)
        return self._build(total, len(result.assets), failures, notices)

def summarize(results: Sequence[TargetResult], max_error_details: Optional[int] = None) -> BatchSummary:
    """Summarize target results with a default aggregator."""
    return ResultAggregator(max_error_details).summarize(results)
