"""FastAPI server for the wellness clinic assistant.

Run with:
    uvicorn wellness_agent.server:app --reload --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from wellness_agent.api.routes import router
from wellness_agent.config import CORS_ORIGINS, SERVER_HOST, SERVER_PORT
from wellness_agent.engine import create_conversation_engine
from wellness_agent.services.metrics import metrics

# ── Logging ──────────────────────────────────────────────────────────
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
)
logger = logging.getLogger(__name__)


# ── Lifespan: initialise / tear-down shared resources ────────────────
@asynccontextmanager
async def lifespan(application: FastAPI):
    """Start-up: build the conversation engine once and store it in app state."""
    logger.info("Building conversation engine…")
    application.state.engine = create_conversation_engine()
    logger.info("Engine ready.")
    yield
    metrics.flush()


# ── FastAPI application ──────────────────────────────────────────────
app = FastAPI(
    title="Wellness Clinic Assistant",
    description=(
        "Conversational assistant for a university wellness clinic: policy "
        "questions answered from the clinic manual, appointment scheduling "
        "with slot selection and confirmation, and hand-off to staff."
    ),
    version="1.0.0",
    lifespan=lifespan,
)

# ── CORS (needed for the web client) ────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Request-ID middleware ────────────────────────────────────────────
@app.middleware("http")
async def add_request_id(request: Request, call_next) -> Response:
    """Attach a unique request ID to every request for log correlation.

    The ID is echoed back in the ``X-Request-ID`` response header.
    """
    request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
    request.state.request_id = request_id
    logger.info("[%s] %s %s", request_id, request.method, request.url.path)
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


# ── Register routes ──────────────────────────────────────────────────
app.include_router(router, prefix="/api")


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "service": "Wellness Clinic Assistant",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/api/health",
    }


# ── CLI entry point ──────────────────────────────────────────────────


def run() -> None:
    logger.info("Starting wellness agent API server on %s:%d", SERVER_HOST, SERVER_PORT)
    uvicorn.run("wellness_agent.server:app", host=SERVER_HOST, port=SERVER_PORT)


if __name__ == "__main__":
    run()
