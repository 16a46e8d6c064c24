"""
Progress event models.

Event names and payload field names are the wire contract shared with the
upload server and must stay as they are.
"""

import json
from typing import Optional, Dict, Any
from enum import Enum
from pydantic import BaseModel, Field

def _to_int(value: Any) -> Optional[int]:
    """Read a wire number such as 3, 45.5, "45" or "45%", None when unreadable."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip().rstrip("%")
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        return None

class ProgressEventType(str, Enum):
    """Lifecycle events pushed for the files of one upload session."""
    CONNECTED = "connected"
    SESSION_START = "session-start"
    FILE_START = "file-start"
    FILE_PROGRESS = "file-progress"
    FILE_COMPLETE = "file-complete"
    FILE_ERROR = "file-error"
    SESSION_COMPLETE = "session-complete"

class ProgressEvent(BaseModel):
    """One event received on the progress channel."""
    type: ProgressEventType
    data: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def parse(cls, name: str, raw_data: str) -> Optional["ProgressEvent"]:
        """
        Parse an SSE frame into an event.

        Args:
            name: SSE event name
            raw_data: SSE data field, JSON encoded

        Returns:
            ProgressEvent, or None for event names outside the taxonomy
        """
        try:
            event_type = ProgressEventType(name)
        except ValueError:
            return None
        try:
            data = json.loads(raw_data) if raw_data else {}
        except json.JSONDecodeError:
            data = {"raw": raw_data}
        if not isinstance(data, dict):
            data = {"value": data}
        return cls(type=event_type, data=data)

    @property
    def file_index(self) -> Optional[int]:
        return _to_int(self.data.get("fileIndex"))

    @property
    def file_name(self) -> Optional[str]:
        return self.data.get("fileName")

    @property
    def percent(self) -> int:
        return _to_int(self.data.get("progress")) or 0

    @property
    def stage(self) -> Optional[str]:
        return self.data.get("stage")

    @property
    def message(self) -> str:
        return str(self.data.get("error") or self.data.get("message") or "Upload failed")

    @property
    def total(self) -> Optional[int]:
        return _to_int(self.data.get("totalFiles"))

    def to_sse(self) -> str:
        """Format as a Server-Sent Event string."""
        payload = json.dumps(self.data, default=str)
        return f"event: {self.type.value}\ndata: {payload}\n\n"

class FileStage(str, Enum):
    """UI stage of one file within a session."""
    QUEUED = "queued"
    UPLOADING = "uploading"
    COMPLETE = "complete"
    ERROR = "error"

class FileProgressState(BaseModel):
    """Ephemeral progress of one file, never persisted."""
    file_index: int
    file_name: Optional[str] = None
    stage: FileStage = FileStage.QUEUED
    percent: int = 0
    stage_label: Optional[str] = None
    message: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.stage in (FileStage.COMPLETE, FileStage.ERROR)

class FileError(BaseModel):
    """A per-file error reported on the channel."""
    file_index: Optional[int] = None
    file_name: Optional[str] = None
    message: str
