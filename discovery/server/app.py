"""
Discovery Chat Server

FastAPI surface for the conversational search pipeline.

Endpoints:
- POST /chat: Answer a message as one JSON response
- POST /chat/stream: Answer a message as Server-Sent Events
- GET /chat/sessions: List a user's sessions, or one session with messages
- DELETE /chat/sessions: Delete a session and its messages
- GET /health: Health check
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel

from ..common.config import DiscoveryConfig, load_config
from ..common.embedding_service import get_embedding_service
from ..common.llm_client import create_llm_client
from ..common.store import InMemoryStore
from .orchestrator import ChatOrchestrator, ChatProcessingError, ChatRequestError, format_sse

logger = logging.getLogger("discovery.server.app")


# Global state
config: Optional[DiscoveryConfig] = None
orchestrator: Optional[ChatOrchestrator] = None


async def _sweep_contexts(interval: int) -> None:
    while True:
        await asyncio.sleep(interval)
        if orchestrator is not None:
            orchestrator.evict_stale_contexts()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize components on startup"""
    global config, orchestrator

    logger.info("Starting up...")
    load_dotenv()
    config = load_config()

    store = InMemoryStore()
    if config.store.data_path:
        try:
            store = InMemoryStore.load(config.store.data_path)
        except (OSError, ValueError) as e:
            logger.warning("Could not load store seed %s: %s", config.store.data_path, e)

    embedder = get_embedding_service(
        mode=config.embedding.mode,
        model=config.embedding.model,
        api_key=config.llm.openai_api_key or None,
    )
    llm = create_llm_client(config.llm)
    logger.info(
        "Embedding %s (%s), LLM %s (%s)",
        embedder.mode,
        "ready" if embedder.is_available else "unavailable",
        llm.provider,
        "ready" if llm.is_available else "unavailable",
    )

    orchestrator = ChatOrchestrator(store, embedder, llm, config=config)
    sweeper = asyncio.create_task(_sweep_contexts(config.server.sweep_interval_seconds))
    logger.info("Ready to receive messages")

    yield

    logger.info("Shutting down...")
    sweeper.cancel()


app = FastAPI(
    title="Discovery Chat",
    description="Conversational search over people, projects and posts",
    version="0.1.0",
    lifespan=lifespan,
)


# =============================================================================
# Request Models
# =============================================================================

class Mention(BaseModel):
    """A person or project tagged in the message by the client"""
    id: Optional[str] = None
    name: str
    type: str  # "person" or "project"
    start: Optional[int] = None
    end: Optional[int] = None


class ChatRequest(BaseModel):
    message: Optional[str] = None
    sessionId: Optional[str] = None
    mentions: List[Mention] = []
    userId: Optional[str] = None


def _not_ready() -> JSONResponse:
    return JSONResponse({"error": "Service not initialized"}, status_code=503)


# =============================================================================
# Endpoints
# =============================================================================

@app.get("/health")
async def health():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "service": "discovery",
        "initialized": orchestrator is not None,
        "llm_available": orchestrator.llm.is_available if orchestrator else False,
        "embedding_available": orchestrator.embedder.is_available if orchestrator else False,
    }


@app.post("/chat")
async def chat(request: ChatRequest):
    if orchestrator is None:
        return _not_ready()
    try:
        result = await orchestrator.answer(
            request.message,
            request.userId,
            session_id=request.sessionId,
            mentions=[m.model_dump() for m in request.mentions],
        )
    except ChatRequestError as e:
        return JSONResponse({"error": str(e)}, status_code=400)
    except ChatProcessingError:
        return JSONResponse({"error": "Server error."}, status_code=500)
    return result.to_dict()


@app.post("/chat/stream")
async def chat_stream(request: ChatRequest):
    """
    Stream an answer as Server-Sent Events.

    Frames are ``data: {json}\\n\\n`` with types status, token, sources,
    done, or a single error.
    """
    if orchestrator is None:
        return _not_ready()
    try:
        orchestrator.validate(request.message, request.userId)
    except ChatRequestError as e:
        return JSONResponse({"error": str(e)}, status_code=400)

    events = orchestrator.stream(
        request.message,
        request.userId,
        session_id=request.sessionId,
        mentions=[m.model_dump() for m in request.mentions],
    )

    async def frames():
        async for event in events:
            yield format_sse(event)

    return StreamingResponse(
        frames(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


@app.get("/chat/sessions")
async def get_sessions(userId: Optional[str] = None, sessionId: Optional[str] = None):
    """List a user's sessions, or return one session with its messages"""
    if orchestrator is None:
        return _not_ready()
    if not userId:
        return JSONResponse({"error": "userId is required"}, status_code=400)

    if sessionId:
        session = await orchestrator.sessions.get_session(userId, sessionId)
        if session is None:
            return JSONResponse({"error": "Session not found"}, status_code=404)
        return {"session": session}

    return {"sessions": await orchestrator.sessions.list_sessions(userId)}


@app.delete("/chat/sessions")
async def delete_session(userId: Optional[str] = None, sessionId: Optional[str] = None):
    if orchestrator is None:
        return _not_ready()
    if not userId or not sessionId:
        return JSONResponse({"error": "userId and sessionId are required"}, status_code=400)

    removed = await orchestrator.sessions.delete_session(userId, sessionId)
    if not removed:
        return JSONResponse({"error": "Session not found"}, status_code=404)
    return {"success": True}


# =============================================================================
# CLI Entry Point
# =============================================================================

def run_server():
    """Run the Discovery chat server"""
    import uvicorn

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")
    load_dotenv()
    server_config = load_config().server

    logger.info("Starting server on %s:%d", server_config.host, server_config.port)
    uvicorn.run(
        "discovery.server.app:app",
        host=server_config.host,
        port=server_config.port,
        reload=False,
    )


if __name__ == "__main__":
    run_server()
