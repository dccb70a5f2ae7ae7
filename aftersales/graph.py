"""
Graph Construction
==================
Assembles the runtime's LangGraph StateGraph.

    START
      │
      ▼
    agent ─────────────────────────────► END (final answer)
      │ tool calls                 ▲
      ▼                            │
    tools (gate → tool, per call) ─┘  (ReAct loop)

The caller owns the checkpointer lifecycle (see checkpointing.py); graph.py
does not know which backend is in use.
"""
from collections.abc import Sequence

from langchain_core.tools import BaseTool
from langgraph.checkpoint.base import BaseCheckpointSaver
from langgraph.checkpoint.memory import MemorySaver
from langgraph.graph import END, StateGraph

from .nodes import create_agent_node, create_tools_node
from .prompts import SYSTEM_PROMPT
from .providers import build_llm
from .routing import route_after_agent
from .security import ToolSecurityGate
from .state import AgentState


def build_graph(
    tools: Sequence[BaseTool],
    gate: ToolSecurityGate,
    checkpointer: BaseCheckpointSaver | None = None,
    *,
    provider: str = "",
    system_prompt: str = SYSTEM_PROMPT,
):
    """
    Build and compile the runtime graph.

    Args:
        tools:        LangChain tools, normally loaded from the MCP server.
        gate:         Evaluated before every tool call in the tools node.
        checkpointer: Any LangGraph checkpoint backend. None → MemorySaver.
        provider:     LLM provider override (see providers.py).
    """
    llm            = build_llm(provider)
    llm_with_tools = llm.bind_tools(list(tools))

    if checkpointer is None:
        checkpointer = MemorySaver()

    workflow = StateGraph(AgentState)

    workflow.add_node("agent", create_agent_node(llm_with_tools, system_prompt))
    workflow.add_node("tools", create_tools_node(tools, gate))

    workflow.set_entry_point("agent")
    workflow.add_conditional_edges("agent", route_after_agent, {"tools": "tools", END: END})
    workflow.add_edge("tools", "agent")

    return workflow.compile(checkpointer=checkpointer)
