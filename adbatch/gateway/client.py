"""HTTP client for the remote advertising API gateway.

Every mutating call here is one logical, idempotency-unsafe request: a
repeated call creates a second remote entity, so nothing is retried.
"""

import contextlib
from typing import Any, Dict, List, Optional, Sequence

import httpx

from adbatch.config import GatewayConfig, gateway_config
from adbatch.errors import RemoteAPIError, extract_error_message
from adbatch.gateway.models import (
    UploadOutcome, DuplicateCampaignResult, DuplicateAdSetResult,
    AdSetMultipleResult, CreativeSettlement
)
from adbatch.upload.models import CreativeFile
from adbatch.utils.logging import setup_logger

logger = setup_logger(__name__)

class AdsGatewayClient:
    """Async client for the advertising API gateway."""

    def __init__(
        self,
        config: Optional[GatewayConfig] = None,
        client: Optional[httpx.AsyncClient] = None
    ) -> None:
        self._config = config or gateway_config
        self._headers: Dict[str, str] = {}
        if self._config.access_token:
            self._headers["Authorization"] = f"Bearer {self._config.access_token}"
        self._owns_client = client is None
        self._http = client or httpx.AsyncClient(
            base_url=self._config.base_url.rstrip("/"),
            headers=self._headers,
            timeout=httpx.Timeout(self._config.timeout)
        )

    @property
    def config(self) -> GatewayConfig:
        return self._config

    @property
    def http(self) -> httpx.AsyncClient:
        """Underlying httpx client, shared with the progress channel."""
        return self._http

    async def close(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    async def __aenter__(self) -> "AdsGatewayClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    @staticmethod
    def _parse(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError:
            return {"error": response.text} if response.text else {}

    async def _request(self, method: str, path: str, operation: str, **kwargs) -> Any:
        """Send one request and return its parsed body.

        Raises:
            RemoteAPIError: On transport failure or a non-2xx response.
        """
        try:
            response = await self._http.request(method, path, headers=self._headers, **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"{operation}: request to {path} failed: {e}")
            raise RemoteAPIError(
                f"Could not reach the advertising API: {e}",
                operation=operation
            ) from e

        payload = self._parse(response)
        if response.is_error:
            message = extract_error_message(
                payload,
                response.status_code,
                fallback=f"{operation.replace('_', ' ').capitalize()} failed (HTTP {response.status_code})"
            )
            logger.error(f"{operation}: HTTP {response.status_code}: {payload}")
            raise RemoteAPIError(
                message,
                operation=operation,
                status_code=response.status_code,
                payload=payload if isinstance(payload, dict) else {"body": payload}
            )
        return payload

    @staticmethod
    def _outcomes(payload: Any, default_type: Optional[str] = None) -> List[UploadOutcome]:
        items = payload.get("results", []) if isinstance(payload, dict) else payload
        return [UploadOutcome.from_payload(item, default_type) for item in items or []]

    # ------------------------------------------------------------------
    # Uploads
    # ------------------------------------------------------------------

    async def create_upload_session(self, total_items: int) -> str:
        """Allocate a progress session for a multi-file upload.

        Returns:
            Opaque session identifier issued by the server.
        """
        payload = await self._request(
            "POST", self._config.create_session_path, "create_upload_session",
            json={"totalFiles": total_items}
        )
        session_id = payload.get("sessionId")
        if not session_id:
            raise RemoteAPIError(
                "Upload session created but no session ID returned",
                operation="create_upload_session",
                payload=payload
            )
        return session_id

    async def _upload_files(
        self,
        path: str,
        operation: str,
        files: Sequence[CreativeFile],
        form: Dict[str, str],
        default_type: str
    ) -> List[UploadOutcome]:
        with contextlib.ExitStack() as stack:
            parts = [
                ("file", (f.name, f.open(stack), f.content_type))
                for f in files
            ]
            payload = await self._request("POST", path, operation, data=form, files=parts)
        return self._outcomes(payload, default_type)

    async def upload_images(self, files: Sequence[CreativeFile], account_id: str) -> List[UploadOutcome]:
        """Upload local image files to an ad account."""
        return await self._upload_files(
            self._config.upload_images_path, "upload_images", files,
            {"account_id": account_id}, "image"
        )

    async def upload_videos(
        self,
        files: Sequence[CreativeFile],
        account_id: str,
        session_id: Optional[str] = None
    ) -> List[UploadOutcome]:
        """Upload local video files, reporting progress on the session."""
        form = {"account_id": account_id}
        if session_id:
            form["sessionId"] = session_id
        return await self._upload_files(
            self._config.upload_videos_path, "upload_videos", files, form, "video"
        )

    async def fetch_and_upload_remote_files(
        self,
        file_ids: Sequence[str],
        account_id: str,
        session_id: Optional[str] = None
    ) -> List[UploadOutcome]:
        """Have the server fetch drive files and upload them to the account."""
        payload = await self._request(
            "POST", self._config.remote_files_path, "fetch_and_upload_remote_files",
            json={"fileIds": list(file_ids), "account_id": account_id, "sessionId": session_id}
        )
        return self._outcomes(payload)

    # ------------------------------------------------------------------
    # Entities
    # ------------------------------------------------------------------

    async def duplicate_campaign(
        self,
        campaign_id: str,
        new_name: Optional[str],
        deep_copy: bool,
        status_option: str,
        account_id: str
    ) -> DuplicateCampaignResult:
        """Copy a campaign, optionally with its ad sets and ads."""
        payload = await self._request(
            "POST", self._config.duplicate_campaign_path, "duplicate_campaign",
            json={
                "campaign_id": campaign_id,
                "name": new_name,
                "deep_copy": deep_copy,
                "status_option": status_option,
                "account_id": account_id,
            }
        )
        return DuplicateCampaignResult(**payload)

    async def duplicate_ad_set(
        self,
        ad_set_id: str,
        new_name: Optional[str],
        deep_copy: bool,
        status_option: str,
        campaign_id: Optional[str],
        account_id: str
    ) -> DuplicateAdSetResult:
        """Copy an ad set, optionally with its ads."""
        payload = await self._request(
            "POST", self._config.duplicate_ad_set_path, "duplicate_ad_set",
            json={
                "ad_set_id": ad_set_id,
                "name": new_name,
                "deep_copy": deep_copy,
                "status_option": status_option,
                "campaign_id": campaign_id,
                "account_id": account_id,
            }
        )
        return DuplicateAdSetResult(**payload)

    async def create_ad_set_multiple(self, campaign_ids: Sequence[str], **adset_fields: Any) -> AdSetMultipleResult:
        """Create the same ad set under several campaigns."""
        payload = await self._request(
            "POST", self._config.create_ad_set_multiple_path, "create_ad_set_multiple",
            json={"campaign_ids": list(campaign_ids), **adset_fields}
        )
        return AdSetMultipleResult(**payload)

    async def create_ad_creative_multiple(
        self,
        adset_id: str,
        ad_copy: Dict[str, Any],
        assets: Sequence[Dict[str, Any]]
    ) -> List[CreativeSettlement]:
        """Create one ad per asset under an ad set."""
        payload = await self._request(
            "POST", self._config.create_ad_creative_multiple_path, "create_ad_creative_multiple",
            json={"adset_id": adset_id, **ad_copy, "assets": list(assets)}
        )
        items = payload.get("results", []) if isinstance(payload, dict) else payload
        return [CreativeSettlement(**item) for item in items or []]
