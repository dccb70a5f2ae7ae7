"""
FastAPI HTTP Interface
======================
Exposes the after-sales assistant over HTTP.

Endpoints:
  POST /chat      → send a message; omit session_id to start a new session
  GET  /sessions  → saved session handles
  GET  /health    → liveness check

Run:
    uvicorn api:app --reload --port 8000

Example cURL flow:

    # 1. First message starts a session
    curl -X POST http://localhost:8000/chat \\
         -H "Content-Type: application/json" \\
         -d '{"message": "我的 access code 是 ABC12345，可以退款吗？"}'

    # 2. Continue it with the returned session_id
    curl -X POST http://localhost:8000/chat \\
         -H "Content-Type: application/json" \\
         -d '{"session_id": "<id>", "message": "好的，请帮我停用"}'
"""
import asyncio
import logging
from collections import OrderedDict
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from aftersales.config import configure_logging, load_settings
from aftersales.context import AppContext
from aftersales.models import Session, SessionMode
from aftersales.orchestrator import ConversationOrchestrator, ReplyKind
from aftersales.runtime import AgentRuntime, LangGraphRuntime

logger = logging.getLogger(__name__)

MAX_CONVERSATIONS = 256


# ── Live conversations ─────────────────────────────────────────────────────────

class ConversationCache:
    """
    In-process orchestrators keyed by session id, least recently used first.

    The orchestrator is what enforces one exchange at a time per session, so
    every request for a session must reach the same instance. Past `limit`,
    idle entries are dropped oldest first; a dropped session is rebuilt from
    the store on its next request.
    """

    def __init__(self, limit: int = MAX_CONVERSATIONS):
        self.limit = limit
        self._items: OrderedDict[str, ConversationOrchestrator] = OrderedDict()

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._items

    def get(self, session_id: str) -> ConversationOrchestrator | None:
        conversation = self._items.get(session_id)
        if conversation is not None:
            self._items.move_to_end(session_id)
        return conversation

    def setdefault(
        self, session_id: str, conversation: ConversationOrchestrator
    ) -> ConversationOrchestrator:
        existing = self.get(session_id)
        if existing is not None:
            return existing
        self._items[session_id] = conversation
        self._evict()
        return conversation

    def _evict(self) -> None:
        for session_id in list(self._items):
            if len(self._items) <= self.limit:
                return
            if not self._items[session_id].busy:
                del self._items[session_id]
                logger.debug("[api] Evicted conversation %s", session_id)


# ── Request / Response models ──────────────────────────────────────────────────

class ChatRequest(BaseModel):
    session_id: str | None = None
    message: str = Field(min_length=1)


class ChatResponse(BaseModel):
    session_id: str | None
    content: str
    kind: ReplyKind
    tool_names: list[str] = Field(default_factory=list)


class SessionsResponse(BaseModel):
    sessions: list[Session]


# ── App factory ────────────────────────────────────────────────────────────────

def create_app(
    context: AppContext | None = None,
    runtime: AgentRuntime | None = None,
    max_conversations: int = MAX_CONVERSATIONS,
) -> FastAPI:
    """
    Args:
        context:           Run context. Built from the environment at startup
                           if omitted.
        runtime:           Agent runtime. A LangGraphRuntime is started (and
                           stopped on shutdown) if omitted.
        max_conversations: Idle orchestrators kept in memory.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owns_context = context is None
        if owns_context:
            settings = load_settings()
            configure_logging(settings.log_level)
            ctx = AppContext.create(settings)
        else:
            ctx = context

        owns_runtime = runtime is None
        rt = runtime or LangGraphRuntime(ctx.settings, ctx.gate)
        if owns_runtime:
            await rt.start()

        app.state.context       = ctx
        app.state.runtime       = rt
        app.state.conversations = ConversationCache(max_conversations)
        logger.info("[api] Ready")
        try:
            yield
        finally:
            if owns_runtime:
                await rt.stop()
            if owns_context:
                await ctx.aclose()

    app = FastAPI(
        title="After-Sales Refund Assistant",
        description="Access-code refund support agent.",
        lifespan=lifespan,
    )

    def _conversation(session_id: str | None) -> ConversationOrchestrator:
        conversations: ConversationCache = app.state.conversations
        if session_id:
            existing = conversations.get(session_id)
            if existing is not None:
                return existing

        conversation = ConversationOrchestrator(
            app.state.runtime,
            app.state.context.store,
            mode=SessionMode.CHAT,
            resume_id=session_id,
        )
        # Registered before any await so a concurrent request for the same
        # session finds this instance and gets the busy reply.
        if conversation.session_id:
            conversation = conversations.setdefault(conversation.session_id, conversation)
        return conversation

    @app.post("/chat", response_model=ChatResponse)
    async def chat(request: ChatRequest):
        """
        Send a message to the agent.

        An unknown session_id starts a fresh session; the response always
        carries the id to use next time. A second message for a session that
        is still being answered gets kind="busy" and is not processed.
        """
        if getattr(app.state, "runtime", None) is None:
            raise HTTPException(status_code=503, detail="Agent not initialized.")

        conversation = _conversation(request.session_id)
        reply = await conversation.handle(request.message)
        if conversation.session_id:
            app.state.conversations.setdefault(conversation.session_id, conversation)

        return ChatResponse(
            session_id=reply.session_id,
            content=reply.content,
            kind=reply.kind,
            tool_names=reply.tool_names,
        )

    @app.get("/sessions", response_model=SessionsResponse)
    async def list_sessions():
        sessions = await asyncio.to_thread(app.state.context.store.load)
        return SessionsResponse(sessions=sessions)

    @app.get("/health")
    async def health():
        return {
            "status":      "ok",
            "agent_ready": getattr(app.state, "runtime", None) is not None,
        }

    return app


app = create_app()
