"""
Upload progress routes.

This module provides the FastAPI routes that allocate upload sessions and
stream their progress events to subscribed clients.
"""

from typing import Dict, Any

from fastapi import APIRouter, HTTPException, Depends
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from adbatch.progress.events import ProgressEventType
from adbatch.progress.hub import ProgressHub, progress_hub
from adbatch.utils.logging import setup_logger

logger = setup_logger(__name__)

# Create router
progress_router = APIRouter(prefix="/api", tags=["upload-progress"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "X-Accel-Buffering": "no",
    "Connection": "keep-alive",
}

# Request/Response Models
class CreateSessionRequest(BaseModel):
    """Request model for session creation."""
    totalFiles: int = Field(default=0, ge=0)

class CreateSessionResponse(BaseModel):
    """Response model for session creation."""
    sessionId: str

class PublishEventRequest(BaseModel):
    """Request model for a progress event sent by an upload worker."""
    event: ProgressEventType
    data: Dict[str, Any] = Field(default_factory=dict)

class PublishEventResponse(BaseModel):
    """Response model for a published event."""
    delivered: int

def get_hub() -> ProgressHub:
    """Dependency returning the process-wide progress hub."""
    return progress_hub

@progress_router.post("/create-upload-session", response_model=CreateSessionResponse)
async def create_upload_session(
    request: CreateSessionRequest,
    hub: ProgressHub = Depends(get_hub)
) -> CreateSessionResponse:
    """Allocate a session that upload handlers report progress on."""
    session_id = hub.create_session(request.totalFiles)
    return CreateSessionResponse(sessionId=session_id)

@progress_router.get("/upload-progress/{session_id}")
async def upload_progress(session_id: str, hub: ProgressHub = Depends(get_hub)):
    """Stream a session's progress events."""
    if hub.get_session(session_id) is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return StreamingResponse(
        hub.subscribe(session_id),
        media_type="text/event-stream",
        headers=SSE_HEADERS
    )

@progress_router.get("/upload-sessions")
async def upload_session_stats(hub: ProgressHub = Depends(get_hub)) -> Dict[str, Any]:
    """Report the sessions currently held in memory."""
    return hub.stats()

@progress_router.delete("/upload-sessions/{session_id}")
async def delete_upload_session(session_id: str, hub: ProgressHub = Depends(get_hub)) -> Dict[str, Any]:
    """Drop a session."""
    if not hub.delete_session(session_id):
        raise HTTPException(status_code=404, detail="Session not found")
    return {"deleted": session_id}

@progress_router.post("/upload-progress/{session_id}/events", response_model=PublishEventResponse)
async def publish_progress_event(
    session_id: str,
    request: PublishEventRequest,
    hub: ProgressHub = Depends(get_hub)
) -> PublishEventResponse:
    """Upload workers post file and session events here for the session's subscribers."""
    if hub.get_session(session_id) is None:
        raise HTTPException(status_code=404, detail="Session not found")
    if request.event == ProgressEventType.CONNECTED:
        raise HTTPException(status_code=400, detail="connected is sent by the server to each subscriber")
    delivered = hub.broadcast(session_id, request.event, request.data)
    return PublishEventResponse(delivered=delivered)
