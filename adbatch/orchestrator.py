"""
Batch orchestration.

This module is the boundary the batch dialog talks to. It validates the
selection, runs the job target by target, uploads creatives and hands the
summary back to the dialog.
"""

import inspect
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from adbatch.config import Settings, settings as app_settings
from adbatch.errors import PreconditionError
from adbatch.gateway.client import AdsGatewayClient
from adbatch.models import (
    BatchJob, BatchKind, BatchStatus, BatchSummary, CampaignMetadata,
    TargetDescriptor, ValidationReport
)
from adbatch.batch.aggregator import ResultAggregator
from adbatch.batch.executor import BatchTargetExecutor, CancellationToken, ProgressListener, TargetOperation
from adbatch.batch.operations import build_operation
from adbatch.batch.validators import CompatibilityValidator
from adbatch.progress.channel import CompletionCallback
from adbatch.progress.events import FileError
from adbatch.progress.tracker import ProgressTracker, FileListener
from adbatch.upload.coordinator import UploadSessionCoordinator
from adbatch.upload.models import CreativeFile, UploadBatchResult
from adbatch.utils.logging import setup_logger

logger = setup_logger(__name__)

CompletionListener = Callable[[BatchSummary], Any]
CampaignSource = Union[Mapping[str, CampaignMetadata], Iterable[CampaignMetadata], None]

def _index_campaigns(campaigns: CampaignSource) -> Dict[str, CampaignMetadata]:
    if campaigns is None:
        return {}
    if isinstance(campaigns, Mapping):
        return dict(campaigns)
    return {campaign.id: campaign for campaign in campaigns}

class BatchContext:
    """State of one open batch dialog."""

    def __init__(
        self,
        gateway: AdsGatewayClient,
        settings: Optional[Settings] = None,
        campaigns: CampaignSource = None
    ):
        self.settings = settings or app_settings
        self.gateway = gateway
        self.campaigns = _index_campaigns(campaigns)
        self.job: Optional[BatchJob] = None
        self.report: Optional[ValidationReport] = None
        self.summary: Optional[BatchSummary] = None
        self.upload_result: Optional[UploadBatchResult] = None
        self.cancellation = CancellationToken()
        self.tracker = ProgressTracker(self.settings.upload.progress_cleanup_delay)
        self.progress_listeners: List[ProgressListener] = []
        self.completion_listeners: List[CompletionListener] = []
        self.upload_progress_listeners: List[CompletionCallback] = []

class BatchOrchestrator:
    """Drives batch jobs and creative uploads for one dialog."""

    def __init__(self, context: BatchContext):
        self.context = context
        self.aggregator = ResultAggregator(context.settings.batch.max_error_details)

    @property
    def job(self) -> Optional[BatchJob]:
        return self.context.job

    @property
    def summary(self) -> Optional[BatchSummary]:
        return self.context.summary

    def on_target_progress(self, callback: ProgressListener) -> None:
        """Register a callback invoked with a job snapshot after every target transition."""
        self.context.progress_listeners.append(callback)

    def on_batch_complete(self, callback: CompletionListener) -> None:
        """Register a callback invoked with the summary when a batch finishes."""
        self.context.completion_listeners.append(callback)

    def on_file_progress(self, callback: FileListener) -> None:
        """Register a callback invoked with a file's progress state during uploads."""
        self.context.tracker.on_update(callback)

    def on_upload_progress_complete(self, callback: CompletionCallback) -> None:
        """Register a callback invoked with ``(has_errors, errors)`` when an upload session completes."""
        self.context.upload_progress_listeners.append(callback)

    def open_batch_dialog(self, kind: BatchKind, targets: Sequence[TargetDescriptor]) -> ValidationReport:
        """
        Start a new batch for a selection.

        Args:
            kind: Batch kind to run
            targets: Selected targets in display order

        Returns:
            ValidationReport for the dialog to render
        """
        kind = BatchKind(kind)
        report = CompatibilityValidator.validate(targets, kind, self.context.campaigns)
        self.context.report = report
        self.context.summary = None
        self.context.cancellation = CancellationToken()
        self.context.job = BatchJob(kind=kind, targets=list(targets)) if targets else None
        if self.context.job is not None:
            self.context.job.reset_results()
        logger.info(
            f"Opened {kind.value} batch over {len(targets)} targets "
            f"({len(report.hard_errors)} errors, {len(report.soft_warnings)} warnings)"
        )
        return report

    def _operation_params(self, kind: BatchKind, op_params: Dict[str, Any]) -> Dict[str, Any]:
        params = dict(op_params)
        # Ads are created from the assets of the last upload unless given explicitly
        if kind == BatchKind.CREATE_AD_MULTI and "assets" not in params and self.context.upload_result:
            params["assets"] = [asset.to_ad_asset() for asset in self.context.upload_result.assets]
        return params

    async def _upload_progress_complete(self, has_errors: bool, errors: List[FileError]) -> None:
        if has_errors:
            logger.warning(f"Upload session reported {len(errors)} file errors")
        for listener in self.context.upload_progress_listeners:
            try:
                outcome = listener(has_errors, list(errors))
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as e:
                logger.error(f"Upload progress listener failed: {e}", exc_info=True)

    async def _complete(self, summary: BatchSummary) -> None:
        self.context.summary = summary
        for listener in self.context.completion_listeners:
            try:
                outcome = listener(summary)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as e:
                logger.error(f"Batch completion listener failed: {e}", exc_info=True)

    async def execute(
        self,
        op: Optional[TargetOperation] = None,
        acknowledge_warnings: bool = False,
        **op_params: Any
    ) -> BatchSummary:
        """
        Run the open batch.

        Args:
            op: Operation applied to each target, built from the job kind when omitted
            acknowledge_warnings: Whether the user dismissed the soft warnings
            **op_params: Settings passed to the built operation

        Returns:
            BatchSummary of the finished job

        Raises:
            PreconditionError: If no batch is open, it already ran, or validation blocks it
        """
        job = self.context.job
        if job is None:
            raise PreconditionError("Open a batch dialog with at least one target first")
        if job.status != BatchStatus.CREATED:
            raise PreconditionError("This batch has already run. Open a new batch to run it again.")

        # The selection is checked again right before anything is sent
        report = CompatibilityValidator.validate(job.targets, job.kind, self.context.campaigns)
        self.context.report = report
        CompatibilityValidator.ensure_executable(report, acknowledged=acknowledge_warnings)

        if op is None:
            op = build_operation(job.kind, self.context.gateway, **self._operation_params(job.kind, op_params))

        executor = BatchTargetExecutor(
            listeners=list(self.context.progress_listeners),
            cancellation=self.context.cancellation,
            aggregator=self.aggregator
        )
        await executor.run(job, op)

        summary = self.aggregator.summarize(job.results, kind=job.kind)
        logger.info(f"Batch {job.job_id} finished: {summary.headline()}")
        await self._complete(summary)
        return summary

    async def upload_creatives(self, files: Sequence[CreativeFile], account_id: str) -> UploadBatchResult:
        """
        Upload creative files to an ad account.

        Args:
            files: Files selected for upload
            account_id: Ad account receiving the assets

        Returns:
            UploadBatchResult, also kept for a following ad creation batch
        """
        coordinator = UploadSessionCoordinator(
            self.context.gateway,
            config=self.context.settings.upload,
            tracker=self.context.tracker,
            on_progress_complete=self._upload_progress_complete
        )
        result = await coordinator.upload(files, account_id)
        self.context.upload_result = result

        summary = self.aggregator.summarize_uploads(result)
        logger.info(f"Upload to {account_id} finished: {summary.headline()}")
        await self._complete(summary)
        return result

    def cancel(self, reason: Optional[str] = None) -> None:
        """Stop the running batch before its next target starts."""
        if reason:
            self.context.cancellation.cancel(reason)
        else:
            self.context.cancellation.cancel()
        logger.info("Batch cancellation requested")

def create_orchestrator(
    settings: Optional[Settings] = None,
    gateway: Optional[AdsGatewayClient] = None,
    campaigns: CampaignSource = None
) -> BatchOrchestrator:
    """
    Build an orchestrator with a fresh dialog context.

    Args:
        settings: Application settings, defaults to the environment ones
        gateway: Gateway client, built from the settings when omitted
        campaigns: Already-fetched campaign metadata, as a mapping or a list

    Returns:
        BatchOrchestrator ready for open_batch_dialog()
    """
    settings = settings or app_settings
    gateway = gateway or AdsGatewayClient(settings.gateway)
    return BatchOrchestrator(BatchContext(gateway, settings=settings, campaigns=campaigns))
