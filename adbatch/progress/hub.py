"""
Server side of the progress event channel.

Holds upload sessions in memory and fans progress events out to every
client subscribed to a session. Sessions left without subscribers are
dropped after a grace period.
"""

import asyncio
import uuid
from datetime import datetime, timezone
from typing import AsyncIterator, Dict, Any, List, Optional

from adbatch.config import upload_config
from adbatch.errors import ChannelError
from adbatch.progress.events import ProgressEvent, ProgressEventType
from adbatch.utils.logging import setup_logger

logger = setup_logger(__name__)

KEEP_ALIVE = ": keep-alive\n\n"

class HubSession:
    """In-memory state of one upload session."""

    def __init__(self, session_id: str, total_files: int = 0):
        self.session_id = session_id
        self.total_files = total_files
        self.processed_files = 0
        self.errors: List[Dict[str, Any]] = []
        self.created_at = datetime.now(timezone.utc)
        self.complete = False
        self.complete_data: Dict[str, Any] = {}
        self.subscribers: Dict[str, asyncio.Queue] = {}
        self.cleanup_handle: Optional[asyncio.TimerHandle] = None

    def describe(self) -> Dict[str, Any]:
        return {
            "id": self.session_id,
            "totalFiles": self.total_files,
            "processedFiles": self.processed_files,
            "clients": len(self.subscribers),
            "errors": len(self.errors),
            "createdAt": self.created_at.isoformat(),
        }

class ProgressHub:
    """In-process pub/sub of upload progress events, keyed by session."""

    def __init__(
        self,
        keep_alive_interval: Optional[float] = None,
        grace_period: Optional[float] = None,
        queue_size: Optional[int] = None
    ):
        self.keep_alive_interval = upload_config.keep_alive_interval if keep_alive_interval is None else keep_alive_interval
        self.grace_period = upload_config.session_grace_period if grace_period is None else grace_period
        self.queue_size = upload_config.subscriber_queue_size if queue_size is None else queue_size
        if self.keep_alive_interval <= 0:
            raise ValueError("keep_alive_interval must be positive")
        if self.queue_size < 1:
            # A zero-sized asyncio.Queue is unbounded
            raise ValueError("queue_size must be at least 1")
        self._sessions: Dict[str, HubSession] = {}

    def create_session(self, total_files: int = 0) -> str:
        """
        Allocate a new session.

        Args:
            total_files: Number of files the session will report on

        Returns:
            str: Opaque session ID
        """
        session_id = uuid.uuid4().hex
        self._sessions[session_id] = HubSession(session_id, total_files)
        logger.info(f"Created upload session: {session_id}")
        # Never subscribed sessions are dropped like abandoned ones
        self._schedule_cleanup(self._sessions[session_id])
        return session_id

    def get_session(self, session_id: str) -> Optional[HubSession]:
        return self._sessions.get(session_id)

    def delete_session(self, session_id: str) -> bool:
        """Drop a session and stop tracking its subscribers."""
        session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        if session.cleanup_handle:
            session.cleanup_handle.cancel()
        logger.info(f"Deleted session: {session_id}")
        return True

    def broadcast(self, session_id: str, event_type: ProgressEventType, data: Dict[str, Any]) -> int:
        """
        Push an event to every subscriber of a session.

        Args:
            session_id: Target session
            event_type: Event name
            data: Event payload

        Returns:
            int: Number of subscribers the event was queued for
        """
        session = self._sessions.get(session_id)
        if session is None:
            logger.warning(f"No session found for broadcast: {session_id}")
            return 0

        if event_type == ProgressEventType.SESSION_START and data.get("totalFiles") is not None:
            session.total_files = data["totalFiles"]
        elif event_type == ProgressEventType.FILE_COMPLETE:
            session.processed_files += 1
        elif event_type == ProgressEventType.FILE_ERROR:
            session.processed_files += 1
            session.errors.append(data)
        elif event_type == ProgressEventType.SESSION_COMPLETE:
            session.complete = True
            session.complete_data = dict(data)

        event = ProgressEvent(type=event_type, data=data)
        delivered = 0
        for subscriber_id, queue in session.subscribers.items():
            try:
                queue.put_nowait(event)
                delivered += 1
            except asyncio.QueueFull:
                logger.warning(f"Dropping {event_type.value} for slow subscriber {subscriber_id}")
        logger.debug(f"Broadcast {event_type.value} to {delivered} clients of {session_id}")
        return delivered

    async def subscribe(self, session_id: str) -> AsyncIterator[str]:
        """
        Stream a session's events as SSE strings.

        The first frame is always ``connected``. A keep-alive comment is sent
        whenever the session is quiet, and the stream ends after
        ``session-complete``.

        Args:
            session_id: Session to follow

        Yields:
            str: SSE formatted frames

        Raises:
            ChannelError: If the session does not exist
        """
        session = self._sessions.get(session_id)
        if session is None:
            raise ChannelError("Session not found", session_id=session_id)

        subscriber_id = uuid.uuid4().hex[:8]
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.queue_size)
        session.subscribers[subscriber_id] = queue
        if session.cleanup_handle:
            session.cleanup_handle.cancel()
            session.cleanup_handle = None
        logger.info(f"Client connected to session {session_id}. Total clients: {len(session.subscribers)}")

        try:
            yield ProgressEvent(
                type=ProgressEventType.CONNECTED,
                data={
                    "sessionId": session_id,
                    "totalFiles": session.total_files,
                    "processedFiles": session.processed_files,
                }
            ).to_sse()

            if session.complete:
                # Late subscribers still learn that the session finished
                yield ProgressEvent(
                    type=ProgressEventType.SESSION_COMPLETE,
                    data=session.complete_data
                ).to_sse()
                return

            while True:
                try:
                    event = await asyncio.wait_for(queue.get(), timeout=self.keep_alive_interval)
                except asyncio.TimeoutError:
                    yield KEEP_ALIVE
                    continue
                yield event.to_sse()
                if event.type == ProgressEventType.SESSION_COMPLETE:
                    break
        finally:
            session.subscribers.pop(subscriber_id, None)
            logger.info(
                f"Client disconnected from session {session_id}. "
                f"Remaining clients: {len(session.subscribers)}"
            )
            if not session.subscribers:
                self._schedule_cleanup(session)

    def _schedule_cleanup(self, session: HubSession) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        if session.cleanup_handle:
            session.cleanup_handle.cancel()
        session.cleanup_handle = loop.call_later(self.grace_period, self._expire, session.session_id)

    def _expire(self, session_id: str) -> None:
        session = self._sessions.get(session_id)
        if session is not None and not session.subscribers:
            del self._sessions[session_id]
            logger.info(f"Cleaned up empty session: {session_id}")

    def stats(self) -> Dict[str, Any]:
        """Session statistics for diagnostics."""
        return {
            "total": len(self._sessions),
            "sessions": [session.describe() for session in self._sessions.values()],
        }

    def clear(self) -> None:
        """Drop every session."""
        for session_id in list(self._sessions):
            self.delete_session(session_id)

# Global hub instance
progress_hub = ProgressHub()
