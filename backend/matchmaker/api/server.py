"""FastAPI control surface for the autonomous loop."""

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from matchmaker import __version__
from matchmaker.coordinator import AGENT_AUTO_JOINED, AGENT_MATCH_RESULT
from matchmaker.exceptions import AgentNotFoundError, ArenaError, ArenaNotFoundError
from matchmaker.models import ArenaStatus
from matchmaker.runtime import Runtime

from .websocket import ConnectionManager

logger = logging.getLogger(__name__)


class CompleteMatchRequest(BaseModel):
    winner_id: str | None = None


class MatchErrorRequest(BaseModel):
    reason: str = "reported by host"


def create_app(runtime: Runtime) -> FastAPI:
    """Build the API around an already-wired runtime."""
    connections = ConnectionManager()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        runtime.loop.add_listener(AGENT_AUTO_JOINED, connections.relay("autonomous:joined"))
        runtime.loop.add_listener(AGENT_MATCH_RESULT, connections.relay("autonomous:match_result"))

        if runtime.settings.scheduler.autostart:
            try:
                runtime.loop.start()
            except Exception as e:
                logger.error(f"[AutonomousLoop] Failed to auto-start: {e}")

        logger.info("Matchmaker API startup complete")
        yield

        logger.info("Shutting down Matchmaker API")
        runtime.loop.shutdown()
        runtime.save()

    app = FastAPI(title="Matchmaker API", version=__version__, lifespan=lifespan)
    app.state.runtime = runtime
    app.state.connections = connections

    app.add_middleware(
        CORSMiddleware,
        allow_origins=runtime.settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(AgentNotFoundError)
    @app.exception_handler(ArenaNotFoundError)
    async def not_found(request: Request, exc: Exception) -> JSONResponse:
        return JSONResponse(status_code=404, content={"error": str(exc)})

    @app.exception_handler(ArenaError)
    async def arena_conflict(request: Request, exc: ArenaError) -> JSONResponse:
        return JSONResponse(status_code=409, content={"error": str(exc)})

    @app.get("/health", tags=["Health"])
    async def health_check() -> dict[str, Any]:
        return {
            "status": "healthy",
            "service": "matchmaker",
            "version": __version__,
            "loop_running": runtime.loop.running,
            "websocket_clients": connections.get_total_connections(),
        }

    # ─── Autonomous loop ─────────────────────────────────────────────────

    @app.post("/api/autonomous/start", tags=["Autonomous"])
    async def start_loop() -> dict[str, Any]:
        runtime.loop.start()
        return {"ok": True, "status": "running"}

    @app.post("/api/autonomous/stop", tags=["Autonomous"])
    async def stop_loop() -> dict[str, Any]:
        runtime.loop.stop()
        return {"ok": True, "status": "stopped"}

    @app.get("/api/autonomous/status", tags=["Autonomous"])
    async def loop_status() -> dict[str, Any]:
        return {"ok": True, **runtime.loop.get_stats()}

    # ─── Agents ──────────────────────────────────────────────────────────

    @app.post("/api/agent/{agent_id}/activate", tags=["Agents"])
    async def activate_agent(agent_id: str) -> dict[str, Any]:
        agent = runtime.loop.activate_agent(agent_id)
        return {
            "ok": True,
            "status": agent.status,
            "message": f"{agent.name} activated. Searching for arena...",
        }

    @app.post("/api/agent/{agent_id}/deactivate", tags=["Agents"])
    async def deactivate_agent(agent_id: str) -> dict[str, Any]:
        agent = runtime.loop.deactivate_agent(agent_id)
        return {"ok": True, "status": agent.status, "message": f"{agent.name} deactivated."}

    @app.get("/api/agent/{agent_id}/status", tags=["Agents"])
    async def agent_status(agent_id: str) -> dict[str, Any]:
        return {"ok": True, **runtime.loop.get_agent_status(agent_id)}

    # ─── Arenas ──────────────────────────────────────────────────────────

    @app.get("/api/arenas", tags=["Arenas"])
    async def list_arenas(status: ArenaStatus | None = None) -> list[dict[str, Any]]:
        results = []
        for arena in runtime.arenas.list_arenas(status):
            lobby = runtime.arenas.get_lobby(arena.arena_id)
            results.append({
                **arena.model_dump(mode="json"),
                "lobby_size": lobby.count if lobby else 0,
            })
        return results

    @app.post("/api/arenas/{arena_id}/complete", tags=["Arenas"])
    async def complete_match(arena_id: str, body: CompleteMatchRequest) -> dict[str, Any]:
        result = runtime.arenas.complete_match(arena_id, body.winner_id)
        return {"ok": True, "result": result.model_dump(mode="json")}

    @app.post("/api/arenas/{arena_id}/error", tags=["Arenas"])
    async def fail_match(arena_id: str, body: MatchErrorRequest) -> dict[str, Any]:
        runtime.arenas.fail_match(arena_id, body.reason)
        return {"ok": True, "status": "error"}

    # ─── WebSocket ───────────────────────────────────────────────────────

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket):
        """
        Server sends:
        - {"type": "autonomous:joined", "agent_id": "...", "arena_id": "...", "lobby_size": 2, ...}
        - {"type": "autonomous:match_result", "agent_id": "...", "status": "won", "result": "..."}
        """
        await connections.connect(websocket)
        try:
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            connections.disconnect(websocket)

    return app
