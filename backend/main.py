from fastapi import FastAPI, WebSocket, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from fastapi.staticfiles import StaticFiles
from typing import Dict
from collections import defaultdict
import os
import time
from contextlib import asynccontextmanager
import uvicorn
import logging

import config
config.setup_logging()

from quiz_catalog import quiz_catalog
from socket_manager import session_manager

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting live quiz server")
    quiz_catalog.reload()
    yield
    logger.info("Shutting down live quiz server")
    session_manager.shutdown()


app = FastAPI(title="Live Quiz Server", lifespan=lifespan)


# In-memory rate limiter
_rate_limit_store: Dict[str, list] = defaultdict(list)


def _check_rate_limit(client_ip: str) -> bool:
    """Return True if the request is allowed, False if rate-limited."""
    now = time.time()
    window = config.HTTP_RATE_LIMIT_WINDOW
    # Prune old entries
    _rate_limit_store[client_ip] = [
        t for t in _rate_limit_store[client_ip] if now - t < window
    ]
    if len(_rate_limit_store[client_ip]) >= config.HTTP_RATE_LIMIT_MAX_REQUESTS:
        return False
    _rate_limit_store[client_ip].append(now)
    return True


@app.middleware("http")
async def rate_limit(request: Request, call_next):
    client_ip = request.client.host if request.client else "unknown"
    if not _check_rate_limit(client_ip):
        return JSONResponse(status_code=429, content={"detail": "Too many requests. Please slow down."})
    return await call_next(request)


@app.get("/api/quizzes")
async def list_quizzes():
    return {"quizzes": quiz_catalog.list_quizzes()}


@app.get("/health")
async def health():
    return {"status": "healthy", "active_games": len(session_manager.registry.rooms)}


@app.get("/host")
async def host_page():
    path = os.path.join(config.PUBLIC_DIR, "host.html")
    if not os.path.isfile(path):
        raise HTTPException(status_code=404, detail="Host page not available")
    return FileResponse(path)


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    await session_manager.connect(websocket)


# Configure CORS
if config.ALLOWED_ORIGINS.strip():
    origins = [o.strip() for o in config.ALLOWED_ORIGINS.split(",")]
    session_manager.allowed_origins = origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=False,
        allow_methods=["GET"],
        allow_headers=["Content-Type"],
    )

# Static player/host pages; mounted last so API routes take precedence
if os.path.isdir(config.PUBLIC_DIR):
    app.mount("/", StaticFiles(directory=config.PUBLIC_DIR, html=True), name="public")


if __name__ == "__main__":
    uvicorn.run("main:app", host=config.HOST, port=config.PORT, reload=True)
