import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .agents.competitor_discovery import build_pipeline
from .config import load_settings
from .routers.visibility import router as visibility_router
from .services.http_client import close_client, get_client


# Load environment variables from .env file
load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):

    # Startup
    logger.info("Starting AI Visibility service")
    logger.info("   Google Key:     %s", "Configured" if os.getenv("GOOGLE_API_KEY") else "Not set")
    logger.info("   Google CSE ID:  %s", "Configured" if os.getenv("GOOGLE_CSE_ID") else "Not set")
    logger.info("   Perplexity Key: %s", "Configured" if os.getenv("PERPLEXITY_API_KEY") else "Not set")

    # Missing credentials raise ConfigurationError and abort boot
    settings = load_settings()
    app.state.settings = settings
    app.state.pipeline = build_pipeline(settings, await get_client())
    logger.info("   Ready to discover competitors!")

    yield

    logger.info("Shutting down AI Visibility service")
    await close_client()


app = FastAPI(
    title="AI Visibility — Competitor Discovery & Visibility Aggregation",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)


app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",      # React dev server
        "http://127.0.0.1:3000",      # Alternative localhost
        "http://localhost:3001",      # Alternative port
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(visibility_router)


@app.get(
    "/",
    summary="API Root",
    description="Welcome endpoint with API information",
    tags=["General"]
)
async def root():
    """Root endpoint with API information."""
    return {
        "name": "AI Visibility",
        "version": "0.1.0",
        "description": "Competitor discovery and AI visibility scoring",
        "docs": "/docs",
        "endpoints": {
            "discover": "GET /ai-visibility/{company}?industry= - Discover competitors and score visibility",
            "analyze": "POST /ai-visibility/analyze-competitor - Score a single company",
            "health": "GET /health - Service health check"
        }
    }


@app.get(
    "/health",
    summary="Global Health Check",
    description="Check if the API server is running",
    tags=["General"]
)
async def health():
    """Global health check endpoint."""
    return {
        "status": "healthy",
        "service": "ai-visibility",
        "version": "0.1.0"
    }


@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Global exception handler for unhandled errors."""
    logger.exception("Unhandled error on %s", request.url.path)
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "Internal server error",
            "detail": str(exc) if os.getenv("DEBUG", "false").lower() == "true" else "An unexpected error occurred"
        }
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "ai_visibility.main:app",
        host=os.getenv("HOST", "127.0.0.1"),
        port=int(os.getenv("PORT", "8000")),
        reload=os.getenv("DEBUG", "true").lower() == "true",
    )
