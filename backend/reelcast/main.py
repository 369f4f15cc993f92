"""FastAPI application entry point."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from reelcast.core.config import settings
from reelcast.core.logging import setup_logging
from reelcast.modules.transcoding.router import router as transcoding_router
from reelcast.modules.video.router import router as video_router

setup_logging(level=settings.LOG_LEVEL, json_format=settings.LOG_JSON)

app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    description="""
## Adaptive video delivery API

* **Transcoding** - Rendition ladder (high / medium / low) encoding and legacy migration
* **Videos** - Rendition URLs with a network-aware starting quality
    """,
    openapi_url=f"{settings.API_V1_PREFIX}/openapi.json",
    openapi_tags=[
        {"name": "health", "description": "Health check endpoints"},
        {"name": "transcoding", "description": "Rendition encoding jobs"},
        {"name": "videos", "description": "Video rendition lookup"},
    ],
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(transcoding_router, prefix=settings.API_V1_PREFIX)
app.include_router(video_router, prefix=settings.API_V1_PREFIX)

# Renditions and thumbnails are served as plain files
app.mount(
    settings.UPLOADS_URL_ROOT,
    StaticFiles(directory=settings.UPLOADS_DIR, check_dir=False),
    name="uploads",
)


@app.get("/health", tags=["health"])
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": settings.VERSION}
