"""
Main FastAPI application module.

This module sets up the upload progress server with its routes and middleware.
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from adbatch import __version__
from adbatch.api.routes import progress_router
from adbatch.config import server_config

# Create FastAPI app
app = FastAPI(
    title="Ad Batch Orchestrator",
    description="Upload session and progress streaming server for batch ad operations",
    version=__version__
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=server_config.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"]
)

# Include routers
app.include_router(progress_router)

# Health check endpoint
@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}

def run() -> None:
    """Serve the app with uvicorn."""
    import uvicorn

    uvicorn.run(app, host=server_config.host, port=server_config.port, reload=False)
