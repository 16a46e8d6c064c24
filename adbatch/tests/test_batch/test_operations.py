"""Tests for per-target batch operations."""

import pytest
from unittest.mock import Mock, AsyncMock

from adbatch.batch.operations import (
    DuplicateCampaignOperation, DuplicateAdSetOperation, CreateAdSetOperation,
    CreateAdOperation, build_operation
)
from adbatch.errors import PerTargetRemoteError, PreconditionError
from adbatch.gateway.client import AdsGatewayClient
from adbatch.gateway.models import (
    DuplicateCampaignResult, DuplicateAdSetResult, AdSetMultipleResult, CreativeSettlement
)
from adbatch.models import BatchKind, TargetDescriptor

@pytest.fixture
def mock_gateway():
    """Get a mock gateway client."""
    gateway = Mock(spec=AdsGatewayClient)
    gateway.duplicate_campaign = AsyncMock()
    gateway.duplicate_ad_set = AsyncMock()
    gateway.create_ad_set_multiple = AsyncMock()
    gateway.create_ad_creative_multiple = AsyncMock()
    return gateway

@pytest.fixture
def ad_set_target():
    """Get an ad set target."""
    return TargetDescriptor(account_id="act_1", campaign_id="c1", ad_set_id="as1", name="Prospecting")

class TestDuplicateOperations:
    """Test cases for duplication operations."""

    async def test_duplicate_campaign(self, mock_gateway):
        """Test campaign duplication defaults and recorded details."""
        mock_gateway.duplicate_campaign.return_value = DuplicateCampaignResult(
            id="c9", objective="OUTCOME_SALES", mode="async"
        )
        target = TargetDescriptor(account_id="act_1", campaign_id="c1", name="Spring Sale")

        outcome = await DuplicateCampaignOperation(mock_gateway)(target)

        mock_gateway.duplicate_campaign.assert_awaited_once_with(
            campaign_id="c1",
            new_name="Spring Sale - Copy",
            deep_copy=True,
            status_option="PAUSED",
            account_id="act_1"
        )
        assert outcome.remote_entity_id == "c9"
        assert outcome.details["mode"] == "async"

    async def test_duplicate_campaign_needs_campaign(self, mock_gateway):
        """Test account targets cannot be duplicated as campaigns."""
        with pytest.raises(PerTargetRemoteError):
            await DuplicateCampaignOperation(mock_gateway)(TargetDescriptor(account_id="act_1"))
        mock_gateway.duplicate_campaign.assert_not_awaited()

    async def test_duplicate_ad_set(self, mock_gateway, ad_set_target):
        """Test ad set duplication inherits status by default."""
        mock_gateway.duplicate_ad_set.return_value = DuplicateAdSetResult(id="as9")

        operation = DuplicateAdSetOperation(mock_gateway, name_template="{name} (2)", deep_copy=False)
        outcome = await operation(ad_set_target)

        mock_gateway.duplicate_ad_set.assert_awaited_once_with(
            ad_set_id="as1",
            new_name="Prospecting (2)",
            deep_copy=False,
            status_option="INHERITED_FROM_SOURCE",
            campaign_id="c1",
            account_id="act_1"
        )
        assert outcome.remote_entity_id == "as9"

class TestCreateAdSetOperation:
    """Test cases for CreateAdSetOperation."""

    async def test_created(self, mock_gateway):
        """Test a created ad set."""
        mock_gateway.create_ad_set_multiple.return_value = AdSetMultipleResult(
            total_created=1, created_adsets=[{"id": "as5", "campaign_id": "c1"}]
        )
        target = TargetDescriptor(account_id="act_1", campaign_id="c1")

        outcome = await CreateAdSetOperation(mock_gateway, {"name": "Lookalike", "daily_budget": 1000})(target)

        mock_gateway.create_ad_set_multiple.assert_awaited_once_with(
            ["c1"], account_id="act_1", name="Lookalike", daily_budget=1000
        )
        assert outcome.remote_entity_id == "as5"

    async def test_failed_ad_set_fails_target(self, mock_gateway):
        """Test a reported failure fails the target with its reason."""
        mock_gateway.create_ad_set_multiple.return_value = AdSetMultipleResult(
            total_failed=1, failed_adsets=[{"campaign_id": "c1", "error": "Invalid bid strategy"}]
        )
        target = TargetDescriptor(account_id="act_1", campaign_id="c1")

        with pytest.raises(PerTargetRemoteError) as exc_info:
            await CreateAdSetOperation(mock_gateway, {"name": "Lookalike"})(target)
        assert exc_info.value.message == "Invalid bid strategy"

class TestCreateAdOperation:
    """Test cases for CreateAdOperation."""

    async def test_all_ads_created(self, mock_gateway, ad_set_target):
        """Test one ad per asset."""
        mock_gateway.create_ad_creative_multiple.return_value = [
            CreativeSettlement(status="fulfilled", value={"id": "ad1"}),
            CreativeSettlement(status="fulfilled", value={"id": "ad2"}),
        ]
        assets = [{"type": "image", "imageHash": "h1"}, {"type": "image", "imageHash": "h2"}]

        outcome = await CreateAdOperation(mock_gateway, {"headline": "Sale"}, assets)(ad_set_target)

        mock_gateway.create_ad_creative_multiple.assert_awaited_once_with(
            "as1", {"account_id": "act_1", "headline": "Sale"}, assets
        )
        assert outcome.remote_entity_id == "ad1"
        assert outcome.details["created_ids"] == ["ad1", "ad2"]

    async def test_rejected_ad_fails_target(self, mock_gateway, ad_set_target):
        """Test any rejected ad fails the target with a count."""
        mock_gateway.create_ad_creative_multiple.return_value = [
            CreativeSettlement(status="fulfilled", value={"id": "ad1"}),
            CreativeSettlement(status="rejected", reason={"message": "Image too small"}),
            CreativeSettlement(status="rejected", reason="Image too small"),
        ]

        with pytest.raises(PerTargetRemoteError) as exc_info:
            await CreateAdOperation(mock_gateway, {}, [{"type": "image"}] * 3)(ad_set_target)

        assert exc_info.value.message == "2 of 3 ads failed: Image too small"
        assert exc_info.value.details["reasons"] == ["Image too small"]
        assert exc_info.value.details["created_ids"] == ["ad1"]

    async def test_account_target_uses_default_ad_set(self, mock_gateway):
        """Test account targets fall back to the configured ad set."""
        mock_gateway.create_ad_creative_multiple.return_value = [
            CreativeSettlement(status="fulfilled", value={"id": "ad1"})
        ]
        operation = CreateAdOperation(mock_gateway, {}, [{"type": "image"}], adset_id="as7")

        await operation(TargetDescriptor(account_id="act_2"))

        assert mock_gateway.create_ad_creative_multiple.await_args.args[0] == "as7"

    async def test_no_assets(self, mock_gateway, ad_set_target):
        """Test ads cannot be created without assets."""
        with pytest.raises(PerTargetRemoteError):
            await CreateAdOperation(mock_gateway, {})(ad_set_target)

class TestBuildOperation:
    """Test cases for build_operation."""

    def test_builds_by_kind(self, mock_gateway):
        """Test each kind maps to its operation."""
        assert isinstance(build_operation(BatchKind.DUPLICATE_CAMPAIGN, mock_gateway), DuplicateCampaignOperation)
        assert isinstance(build_operation("duplicate_ad_set", mock_gateway), DuplicateAdSetOperation)
        operation = build_operation(BatchKind.CREATE_AD_MULTI, mock_gateway, ad_copy={"headline": "x"}, assets=[])
        assert isinstance(operation, CreateAdOperation)
        assert operation.ad_copy == {"headline": "x"}

    def test_upload_kind_has_no_operation(self, mock_gateway):
        """Test uploads are not a per-target batch."""
        with pytest.raises(PreconditionError):
            build_operation(BatchKind.UPLOAD_CREATIVES, mock_gateway)
