"""FastAPI application setup for the snow-day service."""

from fastapi import FastAPI

from .api import router as api_router

app = FastAPI(title="Snow Day Calculator")


@app.get("/health")
def health():
    """Liveness probe."""
    return {"status": "ok"}


app.include_router(api_router, prefix="/v1")
