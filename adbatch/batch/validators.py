"""
Compatibility pre-validation for batch operations.

This module checks that a target selection can be executed as one batch
before any network call is made. The checks are pure functions over
campaign metadata the caller has already fetched.
"""

from typing import List, Dict, Optional, Mapping, Sequence, Tuple

from adbatch.errors import PreconditionError
from adbatch.models import (
    BatchKind, TargetDescriptor, TargetScope, CampaignMetadata,
    CompatibilityConstraint, ValidationReport
)

_ACCOUNT_FAN_OUT_KINDS = {BatchKind.CREATE_AD_MULTI, BatchKind.UPLOAD_CREATIVES}

class CompatibilityValidator:
    """Validates target selections before a batch runs."""

    @staticmethod
    def _campaigns_for(
        targets: Sequence[TargetDescriptor],
        campaigns: Optional[Mapping[str, CampaignMetadata]]
    ) -> List[CampaignMetadata]:
        """Resolve the parent campaign metadata of each target, in order."""
        if not campaigns:
            return []
        resolved = []
        for target in targets:
            if target.campaign_id and target.campaign_id in campaigns:
                resolved.append(campaigns[target.campaign_id])
        return resolved

    @staticmethod
    def _distinct_accounts(targets: Sequence[TargetDescriptor]) -> List[str]:
        accounts: List[str] = []
        for target in targets:
            if target.account_id not in accounts:
                accounts.append(target.account_id)
        return accounts

    @classmethod
    def compute_constraint(
        cls,
        targets: Sequence[TargetDescriptor],
        campaigns: Optional[Mapping[str, CampaignMetadata]] = None
    ) -> CompatibilityConstraint:
        """
        Derive the compatibility constraint of a selection.

        Args:
            targets: Selected targets
            campaigns: Campaign metadata keyed by campaign ID

        Returns:
            CompatibilityConstraint computed fresh from the selection
        """
        resolved = cls._campaigns_for(targets, campaigns)
        objectives = {campaign.objective for campaign in resolved}
        category_sets = {campaign.category_set for campaign in resolved}

        return CompatibilityConstraint(
            single_account=len(cls._distinct_accounts(targets)) <= 1,
            single_objective=len(objectives) <= 1,
            special_category_consistent=len(category_sets) <= 1
        )

    @classmethod
    def _objective_warning(cls, resolved: List[CampaignMetadata]) -> Optional[str]:
        by_objective: Dict[str, List[str]] = {}
        for campaign in resolved:
            key = campaign.objective or "UNSET"
            by_objective.setdefault(key, []).append(campaign.name or campaign.id)
        if len(by_objective) <= 1:
            return None
        parts = [f"{objective} ({', '.join(names)})" for objective, names in by_objective.items()]
        return (
            "Selected campaigns have different objectives: "
            + "; ".join(parts)
            + ". The remote API may reject part of the batch."
        )

    @classmethod
    def _category_warning(cls, resolved: List[CampaignMetadata]) -> Optional[str]:
        flagged = [campaign for campaign in resolved if campaign.category_set]
        unflagged = [campaign for campaign in resolved if not campaign.category_set]

        if flagged and unflagged:
            return (
                "Some selected campaigns have special ad categories and others do not: "
                f"{', '.join(c.name or c.id for c in flagged)} flagged, "
                f"{', '.join(c.name or c.id for c in unflagged)} not flagged."
            )

        distinct = {campaign.category_set for campaign in flagged}
        if len(distinct) > 1:
            described = sorted(", ".join(sorted(categories)) for categories in distinct)
            return (
                "Selected campaigns have different special ad categories: "
                + " vs ".join(f"[{categories}]" for categories in described)
                + "."
            )
        return None

    @classmethod
    def validate(
        cls,
        targets: Sequence[TargetDescriptor],
        kind: BatchKind,
        campaigns: Optional[Mapping[str, CampaignMetadata]] = None
    ) -> ValidationReport:
        """
        Validate a target selection for one batch kind.

        Args:
            targets: Selected targets in display order
            kind: Batch kind to run
            campaigns: Campaign metadata keyed by campaign ID

        Returns:
            ValidationReport with blocking errors and dismissible warnings
        """
        hard_errors: List[str] = []
        soft_warnings: List[str] = []

        if not targets:
            hard_errors.append("Select at least one target")
            return ValidationReport(hard_errors=hard_errors)

        constraint = cls.compute_constraint(targets, campaigns)

        # Ad creation and uploads over whole accounts fan out one call per
        # account; every other selection has to share an account
        account_fan_out = kind in _ACCOUNT_FAN_OUT_KINDS and all(
            target.scope == TargetScope.ACCOUNT for target in targets
        )
        if not constraint.single_account and not account_fan_out:
            accounts = cls._distinct_accounts(targets)
            hard_errors.append(
                f"Selected targets belong to {len(accounts)} different ad accounts "
                f"({', '.join(accounts)}). A {kind.value.replace('_', ' ')} batch "
                "must stay within a single ad account."
            )

        resolved = cls._campaigns_for(targets, campaigns)
        for warning in (cls._objective_warning(resolved), cls._category_warning(resolved)):
            if warning:
                soft_warnings.append(warning)

        return ValidationReport(
            hard_errors=hard_errors,
            soft_warnings=soft_warnings,
            constraint=constraint
        )

    @staticmethod
    def ensure_executable(report: ValidationReport, acknowledged: bool = False) -> None:
        """
        Block execution for hard errors or unacknowledged warnings.

        Args:
            report: Report returned by validate()
            acknowledged: Whether the user dismissed the soft warnings

        Raises:
            PreconditionError: If the batch must not start
        """
        if report.hard_errors:
            raise PreconditionError(
                report.hard_errors[0],
                hard_errors=report.hard_errors,
                soft_warnings=report.soft_warnings
            )
        if report.soft_warnings and not acknowledged:
            raise PreconditionError(
                "Review the compatibility warnings before running this batch",
                soft_warnings=report.soft_warnings
            )

def validate(
    targets: Sequence[TargetDescriptor],
    kind: BatchKind,
    campaigns: Optional[Mapping[str, CampaignMetadata]] = None
) -> Tuple[List[str], List[str]]:
    """Return ``(hard_errors, soft_warnings)`` for a selection."""
    report = CompatibilityValidator.validate(targets, kind, campaigns)
    return report.hard_errors, report.soft_warnings
