"""
Agent Runtime
=============
The language-model side of the assistant, seen by the orchestrator only
through a stream of typed messages:

    InitMessage(session_id)             the thread this run belongs to
    AssistantMessage(text, tool_names)  the agent's reply for the turn
    ErrorMessage(error)                 the run failed; no reply follows

LangGraphRuntime is the production implementation:
  - opens the checkpointer (SQLite by default, memory when in_memory=True)
  - starts the after_sales_tools MCP server over stdio and loads its tools
  - keeps only the tools the session mode allows (query sessions never see
    deactivate_access_code), then builds the ReAct graph with the security
    gate in front of every tool
  - threads the session id through as the LangGraph thread_id, so a resumed
    session sees its earlier turns

Session ids are assigned here (one per new thread), never by the orchestrator.
"""
import logging
import os
import sys
import uuid
from collections.abc import AsyncIterator, Collection
from contextlib import AsyncExitStack
from typing import Annotated, Literal, Protocol, Union

from langchain_core.messages import AIMessage, HumanMessage
from langchain_mcp_adapters.client import MultiServerMCPClient
from pydantic import BaseModel, Field

from .checkpointing import open_checkpointer
from .config import Settings
from .graph import build_graph
from .models import SessionMode
from .nodes import final_answer
from .security import ToolSecurityGate

logger = logging.getLogger(__name__)

MCP_SERVER_NAME = "after_sales_tools"

# None means every tool the MCP server exposes.
MODE_TOOLS: dict[SessionMode, frozenset[str] | None] = {
    SessionMode.QUERY: frozenset({"check_access_code_refund", "simulate_browser_access"}),
    SessionMode.CHAT:  None,
}


def tools_for_mode(mode: SessionMode) -> frozenset[str] | None:
    return MODE_TOOLS[mode]


class InitMessage(BaseModel):
    type: Literal["init"] = "init"
    session_id: str


class AssistantMessage(BaseModel):
    type: Literal["assistant"] = "assistant"
    text: str = ""
    tool_names: list[str] = Field(default_factory=list)


class ErrorMessage(BaseModel):
    type: Literal["error"] = "error"
    error: str


RuntimeMessage = Annotated[
    Union[InitMessage, AssistantMessage, ErrorMessage], Field(discriminator="type")
]


class AgentRuntime(Protocol):
    def run(self, prompt: str, *, resume: str | None = None) -> AsyncIterator[RuntimeMessage]:
        ...


def mcp_server_config() -> dict:
    """stdio launch config for mcp_server.py, forwarding the API credentials."""
    return {
        MCP_SERVER_NAME: {
            "command":   sys.executable,
            "args":      ["-m", "mcp_server"],
            "transport": "stdio",
            # The stdio transport passes only a minimal environment by default.
            "env":       dict(os.environ),
        }
    }


class LangGraphRuntime:
    """
    Args:
        settings:  Checkpoint path, LLM provider and turn limit.
        gate:      Security gate placed in front of every tool call.
        in_memory: Use MemorySaver; threads are lost when the process exits.
        allowed_tools: Tool names the model may see and call; None keeps all.

    Usage:
        runtime = LangGraphRuntime(settings, gate)
        await runtime.start()
        async for message in runtime.run("查询 ABC12345", resume=None):
            ...
        await runtime.stop()
    """

    def __init__(
        self,
        settings: Settings,
        gate: ToolSecurityGate,
        in_memory: bool = False,
        allowed_tools: Collection[str] | None = None,
    ):
        self._settings  = settings
        self._gate      = gate
        self._in_memory = in_memory
        self._allowed   = frozenset(allowed_tools) if allowed_tools is not None else None
        self._client: MultiServerMCPClient | None = None
        self._graph = None
        self._exit_stack = AsyncExitStack()

    @property
    def recursion_limit(self) -> int:
        # One agent step + one tools step per turn, plus the final answer.
        return self._settings.max_turns * 2 + 1

    async def start(self) -> None:
        checkpointer = await self._exit_stack.enter_async_context(
            open_checkpointer(self._settings.checkpoint_db_path, in_memory=self._in_memory)
        )

        self._client = MultiServerMCPClient(mcp_server_config())
        tools = await self._client.get_tools()
        if self._allowed is not None:
            tools = [t for t in tools if t.name in self._allowed]

        self._graph = build_graph(
            tools, self._gate, checkpointer=checkpointer, provider=self._settings.llm_provider
        )
        logger.info("[runtime] Ready. %d tools: %s", len(tools), [t.name for t in tools])

    async def stop(self) -> None:
        self._client = None
        self._graph  = None
        await self._exit_stack.aclose()

    async def run(
        self, prompt: str, *, resume: str | None = None
    ) -> AsyncIterator[RuntimeMessage]:
        if self._graph is None:
            yield ErrorMessage(error="runtime not started")
            return

        session_id = resume or str(uuid.uuid4())
        yield InitMessage(session_id=session_id)

        config = {
            "configurable":    {"thread_id": session_id},
            "recursion_limit": self.recursion_limit,
        }
        try:
            before = await self._graph.aget_state(config)
            seen = len(before.values.get("messages", []))
            result = await self._graph.ainvoke(
                {"messages": [HumanMessage(content=prompt)], "session_id": session_id},
                config=config,
            )
        except Exception as exc:
            logger.exception("[runtime] run failed for session %s", session_id)
            yield ErrorMessage(error=str(exc) or exc.__class__.__name__)
            return

        new_messages = list(result["messages"])[seen:]
        tool_names = [
            call["name"]
            for msg in new_messages if isinstance(msg, AIMessage)
            for call in (msg.tool_calls or [])
        ]
        yield AssistantMessage(text=final_answer(new_messages), tool_names=tool_names)
