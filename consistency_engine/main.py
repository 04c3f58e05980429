"""FastAPI application entry point."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from consistency_engine.api import router as api_router
from consistency_engine.core.session_registry import get_registry


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await get_registry().close_all()


app = FastAPI(
    title="Consistency Engine",
    description="Completion and post-edit consistency auditing for documents",
    version="0.1.0",
    lifespan=lifespan,
)


@app.get("/health")
async def health_check() -> JSONResponse:
    """Health check endpoint."""
    return JSONResponse(content={"status": "ok"}, status_code=200)


# Include v1 API router
app.include_router(api_router, prefix="/v1", tags=["v1"])
