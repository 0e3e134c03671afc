"""Cardflow — FastAPI app serving the card protocol over a WebSocket.

Loads config.yaml on startup and builds the shared signature registry and
tool catalog. Each WebSocket connection gets its own ClientSession; the
registry is shared so apps built on one connection are visible to all.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from pydantic import ValidationError

from cardflow.config import get_config, load_config, reload_config
from cardflow.runtime import ClientSession
from cardflow.schemas import parse_client_message
from cardflow.signatures.registry import SignatureRegistry
from cardflow.tools import default_catalog

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Load config and build the registry on startup."""
    config = load_config()
    catalog = default_catalog()
    app.state.catalog = catalog
    app.state.registry = SignatureRegistry.with_builtins(catalog)
    app.state.responder = None
    app.state.proposer = None
    app.state.builder = None
    app.state.sessions = set()
    logger.info(
        f"Cardflow started (origins={config.allowed_origins}, "
        f"auth={'enabled' if config.api_key else 'disabled'}, "
        f"mode={config.mode}, plugins={len(catalog.plugins())})"
    )
    yield
    for session in list(app.state.sessions):
        await session.close()
    logger.info("Cardflow shutting down")


# Load config early so we can read allowed_origins for CORS middleware.
_boot_config = load_config()

app = FastAPI(title="Cardflow", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_boot_config.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Auth dependency
# ---------------------------------------------------------------------------


async def verify_api_key(request: Request) -> None:
    """Validate X-API-Key header against the configured key.
    If no api_key is set in config, auth is disabled (dev mode).
    """
    config = get_config()
    if not config.api_key:
        return

    key = request.headers.get("X-API-Key")
    if key != config.api_key:
        raise HTTPException(status_code=401, detail="Invalid or missing API key")


# ---------------------------------------------------------------------------
# Card protocol endpoint
# ---------------------------------------------------------------------------


@app.websocket("/ws")
async def card_socket(websocket: WebSocket):
    """One card session per connection. Browsers cannot set headers, so the
    API key travels as the ``token`` query parameter.
    """
    config = get_config()
    if config.api_key and websocket.query_params.get("token") != config.api_key:
        await websocket.close(code=1008)
        return

    await websocket.accept()
    state = websocket.app.state

    async def send(msg):
        await websocket.send_json(msg.to_wire())

    session = ClientSession(
        send,
        config=config,
        registry=state.registry,
        catalog=state.catalog,
        responder=state.responder,
        proposer=state.proposer,
        builder=state.builder,
        session_key=websocket.query_params.get("session", "main"),
    )
    state.sessions.add(session)
    logger.info(f"Client connected (session={session.session_key})")

    try:
        await session.greet()
        while True:
            frame = await websocket.receive_text()
            try:
                msg = parse_client_message(frame)
            except ValidationError as e:
                await session.reject(f"{e.error_count()} validation error(s)")
                continue
            await session.handle(msg)
    except WebSocketDisconnect:
        logger.info(f"Client disconnected (session={session.session_key})")
    finally:
        state.sessions.discard(session)
        await session.close()


# ---------------------------------------------------------------------------
# Operational endpoints
# ---------------------------------------------------------------------------


@app.get("/health")
async def health(request: Request):
    """Liveness check."""
    return {
        "status": "healthy",
        "sessions": len(request.app.state.sessions),
        "families": len(request.app.state.registry.capabilities()),
    }


@app.get("/config")
async def get_current_config():
    """Return current config as JSON, without the API key."""
    config = get_config()
    return config.model_dump(exclude={"api_key"})


@app.get("/signatures")
async def list_signatures(request: Request):
    """Every registered signature, built-in and generated."""
    registry: SignatureRegistry = request.app.state.registry
    return [
        {
            "toolFamily": s.tool_family,
            "signatureId": s.signature_id,
            "templateId": s.template_id,
            "supportedActions": sorted(s.supported_actions),
            "coverageStatus": s.coverage_status,
        }
        for s in registry.signatures()
    ]


@app.post("/reload", dependencies=[Depends(verify_api_key)])
async def reload():
    """Hot-reload config.yaml. Open sessions keep the config they started with."""
    try:
        new_config = reload_config()
        return {
            "status": "reloaded",
            "mode": new_config.mode,
            "featured_families": len(new_config.featured_families),
        }
    except Exception as e:
        logger.error(f"Reload failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Reload failed: {e}")
