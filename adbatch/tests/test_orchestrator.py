"""Tests for the batch orchestrator."""

import json

import httpx
import pytest
from unittest.mock import AsyncMock, Mock

from adbatch.config import Settings, UploadConfig
from adbatch.errors import PreconditionError
from adbatch.models import (
    BatchKind, BatchStatus, CampaignMetadata, TargetDescriptor, TargetStatus
)
from adbatch.orchestrator import BatchContext, BatchOrchestrator, create_orchestrator
from adbatch.upload.models import CreativeFile

@pytest.fixture
def settings():
    """Get settings without real waits."""
    return Settings(upload=UploadConfig(settle_delay=0, channel_drain_timeout=0.5))

@pytest.fixture
def orchestrator(settings, gateway, campaigns):
    """Get an orchestrator over the mock gateway."""
    return create_orchestrator(settings=settings, gateway=gateway, campaigns=campaigns)

def _duplicate_route(failing=()):
    def handler(request):
        body = json.loads(request.content)
        if body["campaign_id"] in failing:
            return httpx.Response(400, json={"error": {"error_user_msg": f"{body['campaign_id']} is archived"}})
        return httpx.Response(200, json={"id": f"copy_{body['campaign_id']}", "mode": "sync"})
    return handler

class TestBatchOrchestrator:
    """Test cases for BatchOrchestrator."""

    async def test_all_success(self, orchestrator, routes, requests_seen, campaign_targets):
        """Test duplicating three campaigns in display order."""
        routes["POST /api/duplicate-campaign"] = _duplicate_route()
        progress = []
        completed = []
        orchestrator.on_target_progress(lambda job, result: progress.append((result.target_id, result.status)))
        orchestrator.on_batch_complete(completed.append)

        report = orchestrator.open_batch_dialog(BatchKind.DUPLICATE_CAMPAIGN, campaign_targets)
        assert report.can_execute
        summary = await orchestrator.execute()

        assert summary.status == BatchStatus.COMPLETED
        assert summary.headline() == "All 3 succeeded"
        assert summary.notices
        assert [json.loads(r.content)["campaign_id"] for r in requests_seen] == ["c1", "c2", "c3"]
        assert json.loads(requests_seen[0].content)["name"] == "Spring Sale - Copy"
        assert [r.remote_entity_id for r in orchestrator.job.results] == ["copy_c1", "copy_c2", "copy_c3"]
        assert len(progress) == 6
        assert completed == [summary]

    async def test_partial_failure(self, orchestrator, routes, campaign_targets):
        """Test one failing campaign is reported and the others succeed."""
        routes["POST /api/duplicate-campaign"] = _duplicate_route(failing={"c2"})

        orchestrator.open_batch_dialog(BatchKind.DUPLICATE_CAMPAIGN, campaign_targets)
        summary = await orchestrator.execute()

        assert summary.status == BatchStatus.PARTIALLY_COMPLETED
        assert summary.succeeded == 2
        assert summary.failed_details[0].target_id == "c2"
        assert summary.failed_details[0].error == "c2 is archived"
        assert orchestrator.job.results[2].status == TargetStatus.SUCCESS

    async def test_cross_account_blocked(self, orchestrator, routes, requests_seen):
        """Test a cross-account selection never reaches the gateway."""
        targets = [
            TargetDescriptor(account_id="act_1", campaign_id="c1"),
            TargetDescriptor(account_id="act_2", campaign_id="c9"),
        ]
        report = orchestrator.open_batch_dialog(BatchKind.DUPLICATE_CAMPAIGN, targets)
        assert not report.can_execute

        with pytest.raises(PreconditionError):
            await orchestrator.execute(acknowledge_warnings=True)
        assert requests_seen == []

    async def test_warnings_need_acknowledgement(self, settings, gateway, routes, campaign_targets):
        """Test soft warnings block until acknowledged."""
        routes["POST /api/duplicate-campaign"] = _duplicate_route()
        campaigns = [
            CampaignMetadata(id="c1", account_id="act_1", objective="OUTCOME_SALES"),
            CampaignMetadata(id="c2", account_id="act_1", objective="OUTCOME_TRAFFIC"),
        ]
        orchestrator = create_orchestrator(settings=settings, gateway=gateway, campaigns=campaigns)

        report = orchestrator.open_batch_dialog(BatchKind.DUPLICATE_CAMPAIGN, campaign_targets)
        assert report.requires_acknowledgement
        with pytest.raises(PreconditionError):
            await orchestrator.execute()

        summary = await orchestrator.execute(acknowledge_warnings=True)
        assert summary.status == BatchStatus.COMPLETED

    async def test_execute_requires_open_dialog(self, orchestrator):
        """Test execute without a selection."""
        with pytest.raises(PreconditionError):
            await orchestrator.execute()

        report = orchestrator.open_batch_dialog(BatchKind.DUPLICATE_CAMPAIGN, [])
        assert report.hard_errors == ["Select at least one target"]
        with pytest.raises(PreconditionError):
            await orchestrator.execute()

    async def test_job_runs_once(self, orchestrator, routes, campaign_targets):
        """Test a finished job is not resubmitted."""
        routes["POST /api/duplicate-campaign"] = _duplicate_route()
        orchestrator.open_batch_dialog(BatchKind.DUPLICATE_CAMPAIGN, campaign_targets)
        await orchestrator.execute()

        with pytest.raises(PreconditionError):
            await orchestrator.execute()

    async def test_cancel(self, orchestrator, campaign_targets):
        """Test cancelling during the first target fails the rest."""
        async def op(target):
            orchestrator.cancel()
            return "n1"

        orchestrator.open_batch_dialog(BatchKind.DUPLICATE_CAMPAIGN, campaign_targets)
        summary = await orchestrator.execute(op=op)

        assert summary.succeeded == 1
        assert summary.failed == 2
        assert summary.failed_details[0].error == "Batch cancelled by user"

    async def test_upload_then_create_ads(self, orchestrator, routes, requests_seen):
        """Test uploaded assets feed the following ad creation batch."""
        routes["POST /api/upload-images"] = lambda r: httpx.Response(200, json=[
            {"file": "a.png", "type": "image", "status": "success", "imageHash": "h1"},
        ])
        routes["POST /api/create-ad-creative-multiple"] = lambda r: httpx.Response(200, json=[
            {"status": "fulfilled", "value": {"id": "ad1"}},
        ])
        completed = []
        orchestrator.on_batch_complete(completed.append)

        upload = await orchestrator.upload_creatives([CreativeFile(name="a.png", content=b"png")], "act_1")
        assert upload.assets[0].image_hash == "h1"

        targets = [TargetDescriptor(account_id="act_1", campaign_id="c1", ad_set_id="as1")]
        orchestrator.open_batch_dialog(BatchKind.CREATE_AD_MULTI, targets)
        summary = await orchestrator.execute(ad_copy={"headline": "Sale"})

        assert summary.status == BatchStatus.COMPLETED
        payload = json.loads(requests_seen[-1].content)
        assert payload["adset_id"] == "as1"
        assert payload["headline"] == "Sale"
        assert payload["assets"] == [{"type": "image", "imageHash": "h1"}]
        assert [s.headline() for s in completed] == ["All 1 succeeded", "All 1 succeeded"]

    async def test_upload_progress_complete_listener(self, orchestrator, routes, sse):
        """Test upload session completion reaches registered listeners with the file errors."""
        routes["POST /api/create-upload-session"] = lambda r: httpx.Response(200, json={"sessionId": "s1"})
        routes["GET /api/upload-progress/s1"] = lambda r: httpx.Response(
            200,
            headers={"content-type": "text/event-stream"},
            content=sse([
                ("connected", {"sessionId": "s1", "totalFiles": 1}),
                ("file-start", {"fileIndex": 0, "fileName": "promo.mp4"}),
                ("file-error", {"fileIndex": 0, "fileName": "promo.mp4", "error": "Processing timed out"}),
                ("session-complete", {"totalFiles": 1}),
            ])
        )
        routes["POST /api/upload-videos"] = lambda r: httpx.Response(200, json=[
            {"file": "promo.mp4", "status": "failed", "error": "Processing timed out"},
        ])
        received = []
        async_listener = AsyncMock()
        orchestrator.on_upload_progress_complete(lambda has_errors, errors: received.append((has_errors, errors)))
        orchestrator.on_upload_progress_complete(async_listener)

        result = await orchestrator.upload_creatives([CreativeFile(name="promo.mp4", content=b"mp4")], "act_1")

        assert result.session_id == "s1"
        has_errors, errors = received[0]
        assert has_errors is True
        assert [(e.file_name, e.message) for e in errors] == [("promo.mp4", "Processing timed out")]
        async_listener.assert_awaited_once()

    async def test_async_completion_listener(self, gateway, settings):
        """Test awaitable completion listeners and a failing one."""
        orchestrator = BatchOrchestrator(BatchContext(gateway, settings=settings))
        listener = AsyncMock()
        orchestrator.on_batch_complete(Mock(side_effect=RuntimeError("closed dialog")))
        orchestrator.on_batch_complete(listener)

        orchestrator.open_batch_dialog(BatchKind.CREATE_AD_SET_MULTI, [TargetDescriptor(account_id="act_1", campaign_id="c1")])
        summary = await orchestrator.execute(op=AsyncMock(return_value="as1"))

        listener.assert_awaited_once_with(summary)
        assert orchestrator.summary == summary
