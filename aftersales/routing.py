"""
Routing
=======
Pure function used at the graph's only conditional edge.

    agent → route_after_agent → "tools" | END

The tools node always loops back to the agent (ReAct), so the agent decides
when the turn is finished by answering without tool calls.
"""
from typing import Literal

from langgraph.graph import END

from .state import AgentState


def route_after_agent(state: AgentState) -> Literal["tools", "__end__"]:
    messages = state["messages"]
    if not messages:
        return END

    last = messages[-1]
    if getattr(last, "tool_calls", None):
        return "tools"
    return END
