"""
Consumer side of the progress event channel.

One long-lived server-sent-events connection per upload session. Progress is
a UX enhancement: when the channel drops, the consumer logs it, closes and
lets the upload calls' own responses decide the outcome.
"""

import asyncio
import contextlib
import inspect
from typing import AsyncIterator, Callable, Any, List, Optional

import httpx
from httpx_sse import aconnect_sse, SSEError

from adbatch.config import gateway_config
from adbatch.errors import ChannelError
from adbatch.progress.events import ProgressEvent, FileError
from adbatch.progress.tracker import ProgressTracker
from adbatch.utils.logging import setup_logger

logger = setup_logger(__name__)

CompletionCallback = Callable[[bool, List[FileError]], Any]

async def subscribe(
    client: httpx.AsyncClient,
    session_id: str,
    path_template: Optional[str] = None
) -> AsyncIterator[ProgressEvent]:
    """
    Yield progress events for one upload session.

    Args:
        client: HTTP client pointed at the upload server
        session_id: Session to follow
        path_template: Stream path with a ``{session_id}`` placeholder

    Yields:
        ProgressEvent: Events in arrival order, unknown event names skipped

    Raises:
        ChannelError: If the stream cannot be opened or drops
    """
    path = (path_template or gateway_config.progress_path).format(session_id=session_id)
    try:
        async with aconnect_sse(client, "GET", path) as event_source:
            response = event_source.response
            if response.is_error:
                raise ChannelError(
                    f"Progress stream rejected with HTTP {response.status_code}",
                    session_id=session_id,
                    details={"status_code": response.status_code}
                )
            async for sse in event_source.aiter_sse():
                event = ProgressEvent.parse(sse.event, sse.data)
                if event is None:
                    logger.debug(f"Skipping unknown progress event {sse.event!r}")
                    continue
                yield event
    except (httpx.HTTPError, SSEError) as e:
        raise ChannelError(f"Progress stream failed: {e}", session_id=session_id) from e

class ProgressChannel:
    """Follows one session's events and feeds them to a tracker."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        session_id: str,
        tracker: Optional[ProgressTracker] = None,
        on_complete: Optional[CompletionCallback] = None,
        path_template: Optional[str] = None
    ):
        """
        Initialize the channel.

        Args:
            client: HTTP client pointed at the upload server
            session_id: Session to follow
            tracker: Tracker receiving the events
            on_complete: Called with ``(has_errors, errors)`` on session-complete
            path_template: Stream path with a ``{session_id}`` placeholder
        """
        self.client = client
        self.session_id = session_id
        self.tracker = tracker or ProgressTracker()
        self.on_complete = on_complete
        self.path_template = path_template
        self.error: Optional[ChannelError] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def is_open(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _complete(self) -> None:
        if self.on_complete is None:
            return
        try:
            outcome = self.on_complete(self.tracker.has_errors, list(self.tracker.errors))
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as e:
            logger.error(f"Upload completion callback failed: {e}", exc_info=True)

    async def consume(self) -> ProgressTracker:
        """
        Read events until session-complete or until the stream ends.

        Returns:
            ProgressTracker: The tracker, in its final state
        """
        logger.info(f"Connecting to upload progress for session {self.session_id}")
        events = subscribe(self.client, self.session_id, self.path_template)
        try:
            async for event in events:
                try:
                    done = self.tracker.handle(event)
                except Exception as e:
                    # One bad event costs that event only, the stream stays open
                    logger.warning(f"Skipping unreadable {event.type.value} event {event.data}: {e}")
                    continue
                if done:
                    break
        except ChannelError as e:
            self.error = e
            logger.warning(f"Progress channel for session {self.session_id} closed: {e.message}")
            return self.tracker
        finally:
            await events.aclose()

        if self.tracker.session_complete:
            await self._complete()
        else:
            logger.warning(f"Progress stream for session {self.session_id} ended before session-complete")
        return self.tracker

    def start(self) -> asyncio.Task:
        """Run consume() in the background."""
        if self._task is None:
            self._task = asyncio.create_task(self.consume())
        return self._task

    async def wait(self, timeout: float) -> bool:
        """
        Wait for the channel to finish on its own.

        Args:
            timeout: Seconds to wait

        Returns:
            bool: True if the channel finished within the timeout
        """
        if self._task is None:
            return True
        done, _ = await asyncio.wait({self._task}, timeout=timeout)
        return bool(done)

    async def close(self) -> None:
        """Close the connection if it is still open."""
        if self._task is None or self._task.done():
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        logger.info(f"Closed progress channel for session {self.session_id}")
