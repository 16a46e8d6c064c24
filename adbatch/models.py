"""
Batch operation models.

This module defines the core models shared by the validator, the executor and
the aggregator. A BatchJob lives only as long as its batch dialog; nothing
here is persisted.
"""

from typing import List, Optional, Dict, Any
from datetime import datetime, timezone
from enum import Enum
from uuid import uuid4
from pydantic import BaseModel, Field, field_validator

from adbatch.errors import ErrorDetail, InvalidTransitionError

class BatchKind(str, Enum):
    """Logical bulk operation applied to every target of a job."""
    DUPLICATE_CAMPAIGN = "duplicate_campaign"
    DUPLICATE_AD_SET = "duplicate_ad_set"
    CREATE_AD_SET_MULTI = "create_ad_set_multi"
    CREATE_AD_MULTI = "create_ad_multi"
    UPLOAD_CREATIVES = "upload_creatives"

class BatchStatus(str, Enum):
    """Lifecycle status of a batch job."""
    CREATED = "created"
    RUNNING = "running"
    COMPLETED = "completed"
    PARTIALLY_COMPLETED = "partially_completed"
    FAILED = "failed"

class TargetStatus(str, Enum):
    """Status of a single target within a job."""
    PENDING = "pending"
    PROCESSING = "processing"
    SUCCESS = "success"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (TargetStatus.SUCCESS, TargetStatus.FAILED)

# Allowed forward moves; terminal states have none
_TRANSITIONS = {
    TargetStatus.PENDING: {TargetStatus.PROCESSING, TargetStatus.FAILED},
    TargetStatus.PROCESSING: {TargetStatus.SUCCESS, TargetStatus.FAILED},
    TargetStatus.SUCCESS: set(),
    TargetStatus.FAILED: set(),
}

class TargetScope(str, Enum):
    """Level of the entity a target addresses."""
    ACCOUNT = "account"
    CAMPAIGN = "campaign"
    AD_SET = "ad_set"

class TargetDescriptor(BaseModel):
    """One addressable account, campaign or ad set."""
    account_id: str = Field(..., description="Owning ad account")
    campaign_id: Optional[str] = Field(None, description="Campaign, for campaign or ad set targets")
    ad_set_id: Optional[str] = Field(None, description="Ad set, for ad set targets")
    name: Optional[str] = Field(None, description="Display name of the target")

    model_config = {"frozen": True}

    @property
    def target_id(self) -> str:
        return self.ad_set_id or self.campaign_id or self.account_id

    @property
    def scope(self) -> TargetScope:
        if self.ad_set_id:
            return TargetScope.AD_SET
        if self.campaign_id:
            return TargetScope.CAMPAIGN
        return TargetScope.ACCOUNT

    @property
    def display_name(self) -> str:
        return self.name or self.target_id

class TargetResult(BaseModel):
    """Outcome for one target within a batch job."""
    target_id: str
    target: TargetDescriptor
    status: TargetStatus = TargetStatus.PENDING
    remote_entity_id: Optional[str] = None
    error: Optional[ErrorDetail] = None
    details: Dict[str, Any] = Field(default_factory=dict)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @classmethod
    def pending(cls, target: TargetDescriptor) -> "TargetResult":
        return cls(target_id=target.target_id, target=target)

    def transition(self, status: TargetStatus) -> None:
        """
        Move to a new status, refusing any backward move.

        Args:
            status: Status to move to

        Raises:
            InvalidTransitionError: If the move is not a forward one
        """
        if status not in _TRANSITIONS[self.status]:
            raise InvalidTransitionError(
                f"Target {self.target_id} cannot move from {self.status.value} to {status.value}",
                {"target_id": self.target_id, "from": self.status.value, "to": status.value}
            )
        self.status = status
        now = datetime.now(timezone.utc)
        if status == TargetStatus.PROCESSING:
            self.started_at = now
        elif status.is_terminal:
            self.finished_at = now

    def succeed(self, remote_entity_id: Optional[str], details: Optional[Dict[str, Any]] = None) -> None:
        self.transition(TargetStatus.SUCCESS)
        self.remote_entity_id = remote_entity_id
        if details:
            self.details.update(details)

    def fail(self, error: ErrorDetail) -> None:
        self.transition(TargetStatus.FAILED)
        self.error = error

class BatchJob(BaseModel):
    """One logical bulk operation over an ordered set of targets."""
    job_id: str = Field(default_factory=lambda: f"job_{uuid4().hex[:12]}")
    kind: BatchKind
    targets: List[TargetDescriptor]
    status: BatchStatus = BatchStatus.CREATED
    results: List[TargetResult] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @field_validator("targets")
    @classmethod
    def validate_targets(cls, v):
        """Validate targets list is not empty."""
        if not v:
            raise ValueError("Batch must contain at least one target")
        return v

    def reset_results(self) -> None:
        """Create one PENDING result per target, in display order."""
        self.results = [TargetResult.pending(target) for target in self.targets]

    @property
    def completed_count(self) -> int:
        return sum(1 for result in self.results if result.status.is_terminal)

    def snapshot(self) -> "BatchJob":
        """Return a deep copy safe to hand to the UI."""
        return self.model_copy(deep=True)

class CampaignMetadata(BaseModel):
    """Already-fetched campaign information used for compatibility checks."""
    id: str
    account_id: str
    name: Optional[str] = None
    objective: Optional[str] = None
    special_ad_categories: List[str] = Field(default_factory=list)

    @property
    def category_set(self) -> frozenset:
        """Special ad categories with the 'NONE' placeholder removed."""
        return frozenset(
            category.upper() for category in self.special_ad_categories
            if category and category.upper() != "NONE"
        )

class CompatibilityConstraint(BaseModel):
    """Derived compatibility of a target selection."""
    single_account: bool
    single_objective: bool
    special_category_consistent: bool

class ValidationReport(BaseModel):
    """Result of pre-validating a target selection."""
    hard_errors: List[str] = Field(default_factory=list)
    soft_warnings: List[str] = Field(default_factory=list)
    constraint: Optional[CompatibilityConstraint] = None

    @property
    def can_execute(self) -> bool:
        return not self.hard_errors

    @property
    def requires_acknowledgement(self) -> bool:
        return bool(self.soft_warnings)

class FailedDetail(BaseModel):
    """A failed target or file with its extracted message."""
    target_id: str
    error: str
    name: Optional[str] = None

class BatchSummary(BaseModel):
    """Aggregated outcome of a batch, ready for rendering."""
    total: int
    succeeded: int
    failed: int
    pending: int = 0
    status: BatchStatus
    failed_details: List[FailedDetail] = Field(default_factory=list)
    omitted_failures: int = 0
    notices: List[str] = Field(default_factory=list)

    @property
    def is_partial(self) -> bool:
        return self.status == BatchStatus.PARTIALLY_COMPLETED

    def headline(self) -> str:
        """Short text distinguishing full, partial and total outcomes."""
        if self.status == BatchStatus.COMPLETED:
            return f"All {self.succeeded} succeeded"
        if self.status == BatchStatus.FAILED:
            return f"All {self.failed} failed"
        if self.status == BatchStatus.PARTIALLY_COMPLETED:
            return f"Succeeded: {self.succeeded}, failed: {self.failed}"
        return f"{self.succeeded + self.failed} of {self.total} completed"
