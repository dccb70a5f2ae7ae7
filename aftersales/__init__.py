"""
aftersales - Access-Code Refund Support Assistant
=================================================

Package layout:

    config.py         Settings from the environment, logging setup
    errors.py         ErrorKind / Failure - failures returned as values
    models.py         AccessCodeInfo, RefundEvaluation, Session, …
    client.py         AccessCodeClient - remote access-code API
    refund_policy.py  evaluate() + report rendering
    security.py       ToolSecurityGate - pre-invocation checks
    tools.py          ToolRegistry - validated, gated tool operations
    sessions.py       SessionStore - JSON-file session index
    prompts.py        System prompt, query prompt, canned replies
    state.py          AgentState TypedDict
    nodes.py          LangGraph node functions
    routing.py        Conditional-edge routing
    providers.py      LLM construction
    checkpointing.py  SQLite / memory checkpoint backends
    graph.py          build_graph()
    runtime.py        Runtime message types + LangGraphRuntime
    orchestrator.py   ConversationOrchestrator - the request/response loop
    context.py        AppContext - per-run wiring

Entry points for external callers:
"""
from .context import AppContext
from .orchestrator import ConversationOrchestrator, Reply, ReplyKind
from .refund_policy import evaluate, render_report
from .runtime import LangGraphRuntime
from .sessions import SessionStore
from .tools import ToolRegistry

__all__ = [
    "AppContext",
    "ConversationOrchestrator",
    "LangGraphRuntime",
    "Reply",
    "ReplyKind",
    "SessionStore",
    "ToolRegistry",
    "evaluate",
    "render_report",
]
