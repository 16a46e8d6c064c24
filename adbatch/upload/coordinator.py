"""
Upload session coordination.

Partitions the files of one upload interaction into independently
dispatchable groups, allocates a progress session when any group reports
progress, and runs every group concurrently.
"""

import asyncio
from typing import Callable, Dict, List, Optional, Sequence

from adbatch.config import UploadConfig, upload_config
from adbatch.errors import BaseError, ErrorCategory, describe_exception
from adbatch.gateway.client import AdsGatewayClient
from adbatch.gateway.models import UploadOutcome
from adbatch.progress.channel import ProgressChannel, CompletionCallback
from adbatch.progress.tracker import ProgressTracker
from adbatch.upload.models import (
    CreativeFile, FileSource, FileGroupKind, FileGroups, UploadSession,
    GroupOutcome, UploadedAsset, FileFailure, UploadBatchResult
)
from adbatch.utils.logging import setup_logger

logger = setup_logger(__name__)

ChannelFactory = Callable[[str, ProgressTracker, Optional[CompletionCallback]], ProgressChannel]

class UploadSessionCoordinator:
    """Runs one multi-file upload interaction."""

    def __init__(
        self,
        gateway: AdsGatewayClient,
        config: Optional[UploadConfig] = None,
        channel_factory: Optional[ChannelFactory] = None,
        tracker: Optional[ProgressTracker] = None,
        on_progress_complete: Optional[CompletionCallback] = None
    ):
        """
        Initialize the coordinator.

        Args:
            gateway: Client for the advertising API gateway
            config: Upload settings, defaults to the application ones
            channel_factory: Builds the progress channel for a session
            tracker: Tracker shared with the UI, reset before each upload
            on_progress_complete: Called with ``(has_errors, errors)`` when the session completes
        """
        self.gateway = gateway
        self.config = config or upload_config
        self.channel_factory = channel_factory or self._default_channel
        self.tracker = tracker or ProgressTracker(self.config.progress_cleanup_delay)
        self.on_progress_complete = on_progress_complete

    def _default_channel(
        self,
        session_id: str,
        tracker: ProgressTracker,
        on_complete: Optional[CompletionCallback]
    ) -> ProgressChannel:
        return ProgressChannel(
            self.gateway.http,
            session_id,
            tracker=tracker,
            on_complete=on_complete,
            path_template=self.gateway.config.progress_path
        )

    @staticmethod
    def partition(files: Sequence[CreativeFile]) -> FileGroups:
        """
        Split files into dispatch groups.

        Args:
            files: Files selected for upload

        Returns:
            FileGroups with unsupported local files listed as skipped
        """
        groups = FileGroups()
        for file in files:
            if file.source == FileSource.REMOTE:
                # The server resolves the type of drive files itself
                groups.remote.append(file)
            elif file.is_image:
                groups.images.append(file)
            elif file.is_video:
                groups.videos.append(file)
            else:
                groups.skipped.append(file)
        return groups

    @staticmethod
    def needs_session(groups: FileGroups) -> bool:
        return groups.needs_session

    async def begin_session(self, total_items: int) -> UploadSession:
        """
        Allocate a progress session on the server.

        Args:
            total_items: Number of files reported on the session

        Returns:
            UploadSession with the server-issued ID
        """
        session_id = await self.gateway.create_upload_session(total_items)
        logger.info(f"Upload session {session_id} allocated for {total_items} files")
        return UploadSession(session_id=session_id, total_items=total_items)

    async def open_channel(self, session_id: str) -> ProgressChannel:
        """Connect the progress channel and let it settle before uploads start."""
        channel = self.channel_factory(session_id, self.tracker, self.on_progress_complete)
        channel.start()
        if self.config.settle_delay:
            await asyncio.sleep(self.config.settle_delay)
        return channel

    async def _dispatch_group(
        self,
        kind: FileGroupKind,
        files: List[CreativeFile],
        session_id: Optional[str],
        account_id: str
    ) -> List[UploadOutcome]:
        if kind == FileGroupKind.IMAGES:
            return await self.gateway.upload_images(files, account_id)
        if kind == FileGroupKind.VIDEOS:
            return await self.gateway.upload_videos(files, account_id, session_id)
        return await self.gateway.fetch_and_upload_remote_files(
            [f.remote_file_id for f in files], account_id, session_id
        )

    async def _run_group(
        self,
        kind: FileGroupKind,
        files: List[CreativeFile],
        session_id: Optional[str],
        account_id: str
    ) -> GroupOutcome:
        outcome = GroupOutcome(kind=kind, files=[f.name for f in files])
        try:
            outcome.outcomes = await self._dispatch_group(kind, files, session_id, account_id)
            logger.info(
                f"Uploaded {kind.value} group: {len(outcome.outcomes)} results",
                extra={"session_id": session_id}
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            outcome.error = describe_exception(e, operation=f"upload_{kind.value}")
            if outcome.error.category == ErrorCategory.UNEXPECTED:
                outcome.error.category = ErrorCategory.UPLOAD
            logger.error(
                f"Upload of {kind.value} group failed: {outcome.error.message}",
                extra={"session_id": session_id}
            )
        return outcome

    async def dispatch(
        self,
        session_id: Optional[str],
        groups: FileGroups,
        account_id: str
    ) -> Dict[FileGroupKind, GroupOutcome]:
        """
        Upload every non-empty group concurrently.

        Args:
            session_id: Progress session, None when no group reports progress
            groups: Partitioned files
            account_id: Ad account receiving the assets

        Returns:
            Dict mapping each dispatched group to its outcome
        """
        pending = groups.non_empty()
        outcomes = await asyncio.gather(*[
            self._run_group(kind, files, session_id, account_id)
            for kind, files in pending.items()
        ])
        return {outcome.kind: outcome for outcome in outcomes}

    @staticmethod
    def combine(
        session_id: Optional[str],
        groups: FileGroups,
        outcomes: Dict[FileGroupKind, GroupOutcome]
    ) -> UploadBatchResult:
        """
        Merge group outcomes into one result.

        A failed group marks each of its files failed with the group's error.
        """
        result = UploadBatchResult(
            session_id=session_id,
            skipped=[f.name for f in groups.skipped],
            groups=outcomes
        )
        for kind, group in outcomes.items():
            if group.failed:
                result.failures.extend(
                    FileFailure(file=name, error=group.error.message, group=kind)
                    for name in group.files
                )
                continue
            for outcome in group.outcomes:
                if outcome.succeeded:
                    result.assets.append(UploadedAsset.from_outcome(outcome))
                elif outcome.skipped:
                    result.skipped.append(outcome.file)
                else:
                    result.failures.append(
                        FileFailure(file=outcome.file, error=outcome.error or "Upload failed", group=kind)
                    )
        return result

    async def _close_channel(self, channel: ProgressChannel) -> None:
        finished = await channel.wait(self.config.channel_drain_timeout)
        if not finished:
            logger.warning(f"No session-complete for {channel.session_id}, closing progress channel")
        await channel.close()

    async def upload(self, files: Sequence[CreativeFile], account_id: str) -> UploadBatchResult:
        """
        Upload files to an ad account.

        Args:
            files: Files selected for upload
            account_id: Ad account receiving the assets

        Returns:
            UploadBatchResult built from the upload responses
        """
        groups = self.partition(files)
        if groups.skipped:
            logger.warning(f"Skipping unsupported files: {[f.name for f in groups.skipped]}")
        if not groups.total:
            return UploadBatchResult(skipped=[f.name for f in groups.skipped])

        self.tracker.reset()
        session_id: Optional[str] = None
        channel: Optional[ProgressChannel] = None

        if self.needs_session(groups):
            try:
                session = await self.begin_session(groups.total)
                session_id = session.session_id
                channel = await self.open_channel(session_id)
            except BaseError as e:
                # Progress is optional, the uploads still run
                logger.warning(f"Could not create upload session: {e.message}")

        try:
            outcomes = await self.dispatch(session_id, groups, account_id)
        finally:
            if channel is not None:
                await self._close_channel(channel)

        result = self.combine(session_id, groups, outcomes)
        result.progress_errors = [error.model_dump() for error in self.tracker.errors]
        logger.info(
            f"Upload finished: {len(result.assets)} uploaded, "
            f"{len(result.failures)} failed, {len(result.skipped)} skipped"
        )
        return result
