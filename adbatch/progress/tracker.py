"""
Per-file progress state driven by progress events.

Events for different files interleave arbitrarily because upload groups run
concurrently; within one file they arrive start, progress, then complete or
error. The tracker never moves a file out of a terminal stage.
"""

import asyncio
import inspect
from typing import Dict, List, Optional, Callable, Any

from adbatch.config import upload_config
from adbatch.progress.events import (
    ProgressEvent, ProgressEventType, FileStage, FileProgressState, FileError
)
from adbatch.utils.logging import setup_logger

logger = setup_logger(__name__)

FileListener = Callable[[FileProgressState], Any]

class ProgressTracker:
    """Applies progress events to per-file UI state."""

    def __init__(self, cleanup_delay: Optional[float] = None):
        """
        Initialize the tracker.

        Args:
            cleanup_delay: Seconds a completed file stays before it is dropped
        """
        self.cleanup_delay = upload_config.progress_cleanup_delay if cleanup_delay is None else cleanup_delay
        self.files: Dict[int, FileProgressState] = {}
        self.errors: List[FileError] = []
        self.completed_files: List[int] = []
        self.total: Optional[int] = None
        self.connected = False
        self.session_complete = False
        self._listeners: List[FileListener] = []
        self._cleanup_handles: Dict[int, asyncio.TimerHandle] = {}

    def on_update(self, listener: FileListener) -> None:
        """Register a callback invoked with a file's state after every change."""
        self._listeners.append(listener)

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    def _emit(self, state: FileProgressState) -> None:
        for listener in self._listeners:
            try:
                outcome = listener(state.model_copy())
                if inspect.isawaitable(outcome):
                    asyncio.ensure_future(outcome)
            except Exception as e:
                logger.error(f"File progress listener failed: {e}", exc_info=True)

    def _state(self, event: ProgressEvent) -> Optional[FileProgressState]:
        index = event.file_index
        if index is None:
            logger.warning(f"Ignoring {event.type.value} event without a usable fileIndex: {event.data}")
            return None
        state = self.files.get(index)
        if state is None:
            state = FileProgressState(file_index=index, file_name=event.file_name)
            self.files[index] = state
        elif event.file_name and not state.file_name:
            state.file_name = event.file_name
        return state

    def _schedule_cleanup(self, index: int) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        handle = self._cleanup_handles.pop(index, None)
        if handle:
            handle.cancel()
        self._cleanup_handles[index] = loop.call_later(self.cleanup_delay, self._drop, index)

    def _drop(self, index: int) -> None:
        self._cleanup_handles.pop(index, None)
        state = self.files.get(index)
        if state is not None and state.stage == FileStage.COMPLETE:
            del self.files[index]

    def handle(self, event: ProgressEvent) -> bool:
        """
        Apply one event.

        Args:
            event: Event received on the channel

        Returns:
            bool: True when the session is complete and the channel should close
        """
        if event.type == ProgressEventType.CONNECTED:
            self.connected = True
            if event.total is not None:
                self.total = event.total
            logger.info(f"Connected to upload progress: {event.data}")
            return False

        if event.type == ProgressEventType.SESSION_START:
            self.total = event.total
            logger.info(f"Upload session started: {self.total} files")
            return False

        if event.type == ProgressEventType.SESSION_COMPLETE:
            self.session_complete = True
            logger.info(f"Upload session completed with {len(self.errors)} errors")
            return True

        state = self._state(event)
        if state is None:
            return False

        if state.is_terminal:
            logger.debug(f"Ignoring {event.type.value} for finished file {state.file_index}")
            return False

        if event.type == ProgressEventType.FILE_START:
            state.stage = FileStage.QUEUED
            state.percent = 0
        elif event.type == ProgressEventType.FILE_PROGRESS:
            state.stage = FileStage.UPLOADING
            state.percent = max(state.percent, min(event.percent, 100))
            state.stage_label = event.stage
        elif event.type == ProgressEventType.FILE_COMPLETE:
            state.stage = FileStage.COMPLETE
            state.percent = 100
            self.completed_files.append(state.file_index)
            self._schedule_cleanup(state.file_index)
        elif event.type == ProgressEventType.FILE_ERROR:
            state.stage = FileStage.ERROR
            state.percent = 100
            state.message = event.message
            self.errors.append(FileError(
                file_index=state.file_index,
                file_name=state.file_name,
                message=event.message
            ))
            logger.warning(f"Upload of {state.file_name} failed: {event.message}")

        self._emit(state)
        return False

    def reset(self) -> None:
        """Forget all state before a new upload."""
        for handle in self._cleanup_handles.values():
            handle.cancel()
        self._cleanup_handles.clear()
        self.files.clear()
        self.errors.clear()
        self.completed_files.clear()
        self.total = None
        self.connected = False
        self.session_complete = False
