"""
Target operations.

Each operation performs the one remote call a batch kind makes for a single
target and turns its response into an OperationOutcome. A target whose call
reports a failure raises PerTargetRemoteError, which the executor records
against that target.
"""

from typing import Any, Dict, List, Optional, Sequence

from adbatch.batch.executor import OperationOutcome
from adbatch.errors import PerTargetRemoteError, PreconditionError
from adbatch.gateway.client import AdsGatewayClient
from adbatch.models import BatchKind, TargetDescriptor
from adbatch.utils.logging import setup_logger

logger = setup_logger(__name__)

DEFAULT_NAME_TEMPLATE = "{name} - Copy"

def _reason(value: Any) -> str:
    """Readable message for a rejection reason of unknown shape."""
    if isinstance(value, dict):
        return str(value.get("message") or value.get("error") or "Unknown error")
    if value:
        return str(value)
    return "Unknown error"

class DuplicateCampaignOperation:
    """Duplicates one campaign per target."""

    kind = BatchKind.DUPLICATE_CAMPAIGN

    def __init__(
        self,
        gateway: AdsGatewayClient,
        name_template: str = DEFAULT_NAME_TEMPLATE,
        deep_copy: bool = True,
        status_option: str = "PAUSED"
    ):
        self.gateway = gateway
        self.name_template = name_template
        self.deep_copy = deep_copy
        self.status_option = status_option

    def new_name(self, target: TargetDescriptor) -> Optional[str]:
        if not target.name:
            return None
        return self.name_template.format(name=target.name)

    async def __call__(self, target: TargetDescriptor) -> OperationOutcome:
        if not target.campaign_id:
            raise PerTargetRemoteError(
                "Target has no campaign to duplicate",
                target_id=target.target_id,
                operation="duplicate_campaign"
            )
        result = await self.gateway.duplicate_campaign(
            campaign_id=target.campaign_id,
            new_name=self.new_name(target),
            deep_copy=self.deep_copy,
            status_option=self.status_option,
            account_id=target.account_id
        )
        logger.info(f"Duplicated campaign {target.campaign_id} as {result.id}")
        return OperationOutcome(
            remote_entity_id=result.id,
            details={"objective": result.objective, "mode": result.mode, "structure": result.structure}
        )

class DuplicateAdSetOperation(DuplicateCampaignOperation):
    """Duplicates one ad set per target."""

    kind = BatchKind.DUPLICATE_AD_SET

    def __init__(
        self,
        gateway: AdsGatewayClient,
        name_template: str = DEFAULT_NAME_TEMPLATE,
        deep_copy: bool = True,
        status_option: str = "INHERITED_FROM_SOURCE"
    ):
        super().__init__(gateway, name_template, deep_copy, status_option)

    async def __call__(self, target: TargetDescriptor) -> OperationOutcome:
        if not target.ad_set_id:
            raise PerTargetRemoteError(
                "Target has no ad set to duplicate",
                target_id=target.target_id,
                operation="duplicate_ad_set"
            )
        result = await self.gateway.duplicate_ad_set(
            ad_set_id=target.ad_set_id,
            new_name=self.new_name(target),
            deep_copy=self.deep_copy,
            status_option=self.status_option,
            campaign_id=target.campaign_id,
            account_id=target.account_id
        )
        logger.info(f"Duplicated ad set {target.ad_set_id} as {result.id}")
        return OperationOutcome(remote_entity_id=result.id)

class CreateAdSetOperation:
    """Creates the same ad set under each target campaign."""

    kind = BatchKind.CREATE_AD_SET_MULTI

    def __init__(self, gateway: AdsGatewayClient, adset_fields: Optional[Dict[str, Any]] = None):
        self.gateway = gateway
        self.adset_fields = dict(adset_fields or {})

    async def __call__(self, target: TargetDescriptor) -> OperationOutcome:
        if not target.campaign_id:
            raise PerTargetRemoteError(
                "Target has no campaign to create the ad set in",
                target_id=target.target_id,
                operation="create_ad_set_multiple"
            )
        fields = {"account_id": target.account_id, **self.adset_fields}
        result = await self.gateway.create_ad_set_multiple([target.campaign_id], **fields)

        if result.failed_adsets or result.total_failed or not result.created_adsets:
            first = result.failed_adsets[0] if result.failed_adsets else {}
            raise PerTargetRemoteError(
                _reason(first.get("error") or first.get("message")) if first else "No ad set was created",
                target_id=target.target_id,
                operation="create_ad_set_multiple",
                details={"failed_adsets": result.failed_adsets}
            )

        created = result.created_adsets[0]
        return OperationOutcome(
            remote_entity_id=str(created.get("id") or created.get("adset_id") or ""),
            details={"created_adsets": result.created_adsets}
        )

class CreateAdOperation:
    """Creates one ad per asset under each target ad set."""

    kind = BatchKind.CREATE_AD_MULTI

    def __init__(
        self,
        gateway: AdsGatewayClient,
        ad_copy: Optional[Dict[str, Any]] = None,
        assets: Optional[Sequence[Dict[str, Any]]] = None,
        adset_id: Optional[str] = None
    ):
        """
        Initialize the operation.

        Args:
            gateway: Client for the advertising API gateway
            ad_copy: Headline, body, link and other copy shared by every ad
            assets: Uploaded assets, one ad is created per asset
            adset_id: Ad set used for account-scoped targets
        """
        self.gateway = gateway
        self.ad_copy = dict(ad_copy or {})
        self.assets: List[Dict[str, Any]] = list(assets or [])
        self.adset_id = adset_id

    async def __call__(self, target: TargetDescriptor) -> OperationOutcome:
        adset_id = target.ad_set_id or self.adset_id
        if not adset_id:
            raise PerTargetRemoteError(
                "Target has no ad set to create ads in",
                target_id=target.target_id,
                operation="create_ad_creative_multiple"
            )
        if not self.assets:
            raise PerTargetRemoteError(
                "No uploaded assets to create ads from",
                target_id=target.target_id,
                operation="create_ad_creative_multiple"
            )

        ad_copy = {"account_id": target.account_id, **self.ad_copy}
        settlements = await self.gateway.create_ad_creative_multiple(adset_id, ad_copy, self.assets)
        rejected = [s for s in settlements if not s.fulfilled]
        created_ids = [
            str(s.value.get("id")) for s in settlements
            if s.fulfilled and s.value and s.value.get("id")
        ]

        if rejected:
            reasons = list(dict.fromkeys(_reason(s.reason) for s in rejected))
            raise PerTargetRemoteError(
                f"{len(rejected)} of {len(settlements)} ads failed: {reasons[0]}",
                target_id=target.target_id,
                operation="create_ad_creative_multiple",
                details={"reasons": reasons, "created_ids": created_ids}
            )

        logger.info(f"Created {len(created_ids)} ads in ad set {adset_id}")
        return OperationOutcome(
            remote_entity_id=created_ids[0] if created_ids else None,
            details={"created_ids": created_ids}
        )

_OPERATIONS = {
    BatchKind.DUPLICATE_CAMPAIGN: DuplicateCampaignOperation,
    BatchKind.DUPLICATE_AD_SET: DuplicateAdSetOperation,
    BatchKind.CREATE_AD_SET_MULTI: CreateAdSetOperation,
    BatchKind.CREATE_AD_MULTI: CreateAdOperation,
}

def build_operation(kind: BatchKind, gateway: AdsGatewayClient, **params: Any):
    """
    Build the target operation for a batch kind.

    Args:
        kind: Batch kind
        gateway: Client for the advertising API gateway
        **params: Operation-specific settings

    Returns:
        Async callable taking a TargetDescriptor

    Raises:
        PreconditionError: If the kind has no per-target operation
    """
    operation_class = _OPERATIONS.get(BatchKind(kind))
    if operation_class is None:
        raise PreconditionError(f"{BatchKind(kind).value} batches have no per-target operation")
    return operation_class(gateway, **params)
