from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging

from docqa import __version__
from docqa.api.router import api_router
from docqa.core.config import settings
from docqa.core.logging import setup_logging

setup_logging()
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Document Q&A API",
    description="Question answering over uploaded documents with hybrid retrieval",
    version=__version__,
)

# Set up CORS
origins = (
    [origin.strip() for origin in settings.CORS_ORIGINS.split(",")]
    if "," in settings.CORS_ORIGINS
    else [settings.CORS_ORIGINS]
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API router
app.include_router(api_router, prefix=settings.API_PREFIX)


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Liveness probe that does not touch the database."""
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("docqa.main:app", host="0.0.0.0", port=8000, reload=True)
