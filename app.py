"""
Cover Art API Server
Resolves Spotify CDN cover URLs to the best available size and serves the
image bytes straight from memory (no disk, no bucket).
"""

from fastapi import FastAPI, HTTPException
from fastapi.responses import Response
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel
import asyncio
import logging
import os
from typing import Optional
import uvicorn

# Load environment variables from .env file
from dotenv import load_dotenv
load_dotenv()  # Load .env file before any os.getenv() calls

import cover_client
from cover_client import CoverHTTPError, CoverRequestError, NoCoverURL

logger = logging.getLogger(__name__)

# ============================================================================
# CONFIGURATION
# ============================================================================

HOST = os.getenv('HOST', "0.0.0.0")
PORT = int(os.getenv('PORT', "8000"))

COVER_MEDIA_TYPE = "image/jpeg"  # i.scdn.co only serves JPEG

# ============================================================================
# ERROR MAPPING
# ============================================================================

def _to_http_exception(exc: cover_client.CoverError) -> HTTPException:
    """Map a cover download failure onto the status returned to our caller."""
    if isinstance(exc, (NoCoverURL, CoverRequestError)):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, CoverHTTPError) and exc.status_code == 404:
        return HTTPException(status_code=404, detail=str(exc))
    # transport, read and non-404 upstream failures
    return HTTPException(status_code=502, detail=str(exc))


# ============================================================================
# FASTAPI APPLICATION
# ============================================================================

app = FastAPI(
    title="Cover Art API",
    description="Resolve and download Spotify CDN cover art at the best available size",
    version="1.0.0"
)

# Enable CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Pydantic models
class ResolveResponse(BaseModel):
    url: str
    size: Optional[str] = None  # 'SMALL', 'MEDIUM', 'MAX' or None if unrecognised
    max_quality: bool


# Startup and shutdown events
@app.on_event("startup")
async def startup_event():
    """Build the cover client on startup so the first request skips session setup."""
    cover_client.get_default_client()
    logger.info(f"✓ Cover client ready (timeout={cover_client.COVER_TIMEOUT}s)")


@app.on_event("shutdown")
async def shutdown_event():
    """Release pooled connections on shutdown."""
    cover_client.close_default_client()
    logger.info("✓ Cover client closed")


# API endpoints
@app.get("/")
async def root():
    """API information."""
    return {
        "name": "Cover Art API",
        "version": "1.0.0",
        "sizes": {size.name: size.pixels for size in cover_client.CoverSize},
        "endpoints": {
            "GET /cover/resolve": "Best cover URL for ?url=&max_quality=",
            "GET /cover/download": "Cover image bytes for ?url=&max_quality=",
            "GET /health": "Health check"
        }
    }


@app.get("/cover/resolve", response_model=ResolveResponse)
async def resolve_cover(url: str, max_quality: bool = False):
    """
    Return the best cover URL for the requested quality.

    Never fails: if the max-resolution probe fails the 640x640 URL is returned.
    """
    client = cover_client.get_default_client()
    resolved = await asyncio.get_event_loop().run_in_executor(
        None, client.resolve, url, max_quality
    )
    size = cover_client.size_of(resolved)
    return ResolveResponse(
        url=resolved,
        size=size.name if size else None,
        max_quality=max_quality,
    )


@app.get("/cover/download")
async def download_cover(url: str, max_quality: bool = False):
    """Download the cover at the best available size and return the raw bytes."""
    client = cover_client.get_default_client()
    try:
        data = await asyncio.get_event_loop().run_in_executor(
            None, client.download, url, max_quality
        )
    except cover_client.CoverError as exc:
        logger.warning(f"✗ Cover download failed for {url!r}: {exc}")
        raise _to_http_exception(exc) from exc

    return Response(content=data, media_type=COVER_MEDIA_TYPE)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "client_ready": cover_client._default_client is not None,
        "timeout": cover_client.COVER_TIMEOUT
    }


# Run server
if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    print("="*60)
    print("Cover Art API Server")
    print("="*60)
    print(f"Starting server on http://{HOST}:{PORT}")
    print("="*60)

    uvicorn.run(app, host=HOST, port=PORT)
