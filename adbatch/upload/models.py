"""
Upload models.

This module defines the files of one upload interaction, how they are
grouped for dispatch, and the combined outcome of a dispatch.
"""

import contextlib
import io
import mimetypes
from typing import List, Optional, Dict, Any, BinaryIO
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from pydantic import BaseModel, Field, model_validator

from adbatch.errors import ErrorDetail
from adbatch.gateway.models import UploadOutcome

class FileSource(str, Enum):
    """Where a creative file comes from."""
    LOCAL = "local"
    REMOTE = "remote"

class FileGroupKind(str, Enum):
    """Independently dispatchable group of files."""
    IMAGES = "images"
    VIDEOS = "videos"
    REMOTE = "remote"

class CreativeFile(BaseModel):
    """A creative asset selected for upload."""
    name: str = Field(..., description="Original file name")
    content_type: Optional[str] = Field(None, description="MIME type")
    source: FileSource = Field(default=FileSource.LOCAL, description="Local selection or remote drive")
    path: Optional[Path] = Field(None, description="Local path of the file")
    content: Optional[bytes] = Field(None, description="In-memory file content")
    remote_file_id: Optional[str] = Field(None, description="Drive file ID for remote files")

    @model_validator(mode="after")
    def check_source(self):
        """Validate that each source carries what it needs."""
        if self.source == FileSource.REMOTE and not self.remote_file_id:
            raise ValueError("Remote files need a remote_file_id")
        if self.source == FileSource.LOCAL and self.path is None and self.content is None:
            raise ValueError("Local files need a path or content")
        if self.content_type is None:
            guessed, _ = mimetypes.guess_type(self.name)
            self.content_type = guessed
        return self

    @property
    def is_image(self) -> bool:
        return bool(self.content_type and self.content_type.startswith("image/"))

    @property
    def is_video(self) -> bool:
        return bool(self.content_type and self.content_type.startswith("video/"))

    def open(self, stack: contextlib.ExitStack) -> BinaryIO:
        """Open the file content for a multipart upload, closed by ``stack``."""
        if self.content is not None:
            return io.BytesIO(self.content)
        return stack.enter_context(open(self.path, "rb"))

class FileGroups(BaseModel):
    """Files partitioned into dispatch groups."""
    images: List[CreativeFile] = Field(default_factory=list)
    videos: List[CreativeFile] = Field(default_factory=list)
    remote: List[CreativeFile] = Field(default_factory=list)
    skipped: List[CreativeFile] = Field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.images) + len(self.videos) + len(self.remote)

    @property
    def needs_session(self) -> bool:
        """Only videos and remote files report progress over a session."""
        return bool(self.videos or self.remote)

    def non_empty(self) -> Dict[FileGroupKind, List[CreativeFile]]:
        groups = {
            FileGroupKind.IMAGES: self.images,
            FileGroupKind.VIDEOS: self.videos,
            FileGroupKind.REMOTE: self.remote,
        }
        return {kind: files for kind, files in groups.items() if files}

class UploadSession(BaseModel):
    """Server-issued correlation ID for the files of one upload interaction."""
    session_id: str
    total_items: int
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

class GroupOutcome(BaseModel):
    """Result of dispatching one file group."""
    kind: FileGroupKind
    files: List[str] = Field(default_factory=list)
    outcomes: List[UploadOutcome] = Field(default_factory=list)
    error: Optional[ErrorDetail] = None

    @property
    def failed(self) -> bool:
        return self.error is not None

class UploadedAsset(BaseModel):
    """A creative asset available on the ad account."""
    type: str
    file: str
    image_hash: Optional[str] = None
    video_id: Optional[str] = None
    thumbnail_hash: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_outcome(cls, outcome: UploadOutcome) -> "UploadedAsset":
        return cls(
            type=outcome.type or ("video" if outcome.data else "image"),
            file=outcome.file,
            image_hash=outcome.image_hash,
            video_id=outcome.data.get("uploadVideo") or outcome.data.get("video_id"),
            thumbnail_hash=outcome.data.get("getImageHash"),
            data=outcome.data
        )

    def to_ad_asset(self) -> Dict[str, Any]:
        """Asset payload for ad creation."""
        if self.type == "video":
            return {"type": "video", "video_id": self.video_id, "thumbnailHash": self.thumbnail_hash}
        return {"type": "image", "imageHash": self.image_hash}

class FileFailure(BaseModel):
    """A file that could not be uploaded."""
    file: str
    error: str
    group: Optional[FileGroupKind] = None

class UploadBatchResult(BaseModel):
    """Combined outcome of one upload interaction."""
    session_id: Optional[str] = None
    assets: List[UploadedAsset] = Field(default_factory=list)
    failures: List[FileFailure] = Field(default_factory=list)
    skipped: List[str] = Field(default_factory=list)
    groups: Dict[FileGroupKind, GroupOutcome] = Field(default_factory=dict)
    progress_errors: List[Dict[str, Any]] = Field(default_factory=list)

    @property
    def has_failures(self) -> bool:
        return bool(self.failures)
