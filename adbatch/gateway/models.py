"""
Response models for the remote advertising API gateway.
"""

from typing import List, Optional, Dict, Any
from pydantic import BaseModel, Field

class UploadOutcome(BaseModel):
    """Per-file result returned by an upload endpoint."""
    file: str = Field(default="Unknown file", description="Original file name")
    type: Optional[str] = Field(None, description="image or video")
    status: str = Field(default="failed", description="success, failed or skipped")
    image_hash: Optional[str] = Field(None, description="Hash of an uploaded image")
    data: Dict[str, Any] = Field(default_factory=dict, description="Video upload data")
    error: Optional[str] = Field(None, description="Failure reason")

    @property
    def succeeded(self) -> bool:
        return self.status == "success"

    @property
    def skipped(self) -> bool:
        return self.status == "skipped"

    @classmethod
    def from_payload(cls, item: Dict[str, Any], default_type: Optional[str] = None) -> "UploadOutcome":
        """
        Build an outcome from one wire item.

        Items come either plain (``{"file", "status", ...}``) or wrapped as a
        settled promise (``{"status": "fulfilled", "value": {...}}`` or
        ``{"status": "rejected", "reason": ...}``).

        Args:
            item: Raw item from the response body
            default_type: Asset type assumed when the item does not carry one

        Returns:
            UploadOutcome for the item
        """
        if item.get("status") == "rejected":
            reason = item.get("reason")
            if isinstance(reason, dict):
                reason = reason.get("message") or reason.get("error")
            return cls(status="failed", type=default_type, error=str(reason or "Upload failed"))

        if item.get("status") == "fulfilled":
            item = item.get("value") or {}

        status = item.get("status") or "success"
        if status not in ("success", "failed", "skipped"):
            status = "failed"

        data = item.get("data")
        if not isinstance(data, dict):
            # Video uploads report the new video ID and thumbnail hash at top level
            data = {
                key: item[key] for key in ("uploadVideo", "getImageHash")
                if key in item
            }

        return cls(
            file=item.get("file") or item.get("fileName") or "Unknown file",
            type=item.get("type") or default_type,
            status=status,
            image_hash=item.get("imageHash"),
            data=data,
            error=(item.get("error") or "Upload failed") if status == "failed" else item.get("error")
        )

class DuplicateCampaignResult(BaseModel):
    """Response of a campaign duplication."""
    id: str
    objective: Optional[str] = None
    # The platform may copy child ad sets and ads asynchronously
    mode: Optional[str] = None
    structure: Optional[Dict[str, Any]] = None

class DuplicateAdSetResult(BaseModel):
    """Response of an ad set duplication."""
    id: str

class AdSetMultipleResult(BaseModel):
    """Response of a multi-campaign ad set creation."""
    total_created: int = 0
    total_failed: int = 0
    created_adsets: List[Dict[str, Any]] = Field(default_factory=list)
    failed_adsets: List[Dict[str, Any]] = Field(default_factory=list)

class CreativeSettlement(BaseModel):
    """Settled result of one ad creation."""
    status: str
    value: Optional[Dict[str, Any]] = None
    reason: Optional[Any] = None

    @property
    def fulfilled(self) -> bool:
        return self.status == "fulfilled"
