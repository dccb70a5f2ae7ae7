"""
Graph Nodes
===========
  create_agent_node - the ReAct brain; answers or proposes tool calls
  create_tools_node - runs the proposed tool calls, each one behind the
                      security gate

Nodes are state transformers: they read AgentState and return the messages to
append. Routing lives in routing.py.
"""
import json
import logging
from collections.abc import Sequence

from langchain_core.messages import AIMessage, SystemMessage, ToolMessage
from langchain_core.tools import BaseTool

from .models import ToolInvocationRequest
from .prompts import SYSTEM_PROMPT
from .security import ToolSecurityGate
from .state import AgentState

logger = logging.getLogger(__name__)


def message_text(content) -> str:
    """Flatten LangChain message content (str or content blocks) to plain text."""
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for block in content:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, dict) and block.get("type") == "text":
                parts.append(str(block.get("text", "")))
        return "\n".join(p for p in parts if p)
    return json.dumps(content, ensure_ascii=False, default=str)


def create_agent_node(llm_with_tools, system_prompt: str = SYSTEM_PROMPT):
    """
    Return the agent node bound to one LLM. The system prompt is injected at
    position 0 on every call; it is not stored in the checkpointed thread.
    """
    def agent_node(state: AgentState) -> dict:
        messages = list(state["messages"])
        if not messages or not isinstance(messages[0], SystemMessage):
            messages = [SystemMessage(content=system_prompt)] + messages

        response = llm_with_tools.invoke(messages)
        return {"messages": [response]}

    return agent_node


def create_tools_node(tools: Sequence[BaseTool], gate: ToolSecurityGate):
    """
    Return the node that executes the last AIMessage's tool calls.

    For each call the gate is evaluated first. A blocked call never reaches the
    tool; the agent receives the block decision (with its stopReason) as the
    call's ToolMessage instead. Tool exceptions are reported the same way so
    the conversation can continue.
    """
    by_name = {t.name: t for t in tools}

    async def tools_node(state: AgentState) -> dict:
        last = state["messages"][-1]
        results: list[ToolMessage] = []

        for call in getattr(last, "tool_calls", None) or []:
            name = call["name"]
            args = call.get("args") or {}

            decision = gate.evaluate(ToolInvocationRequest(tool_name=name, tool_input=args))
            if decision.blocked:
                results.append(ToolMessage(
                    content=json.dumps(decision.to_wire(), ensure_ascii=False),
                    tool_call_id=call["id"], name=name, status="error",
                ))
                continue

            tool = by_name.get(name)
            if tool is None:
                results.append(ToolMessage(
                    content=f"未知工具: {name}",
                    tool_call_id=call["id"], name=name, status="error",
                ))
                continue

            try:
                output = await tool.ainvoke(args)
            except Exception as exc:
                logger.exception("[tools] %s raised", name)
                results.append(ToolMessage(
                    content=f"工具执行失败: {exc}",
                    tool_call_id=call["id"], name=name, status="error",
                ))
                continue

            results.append(ToolMessage(
                content=message_text(output), tool_call_id=call["id"], name=name,
            ))

        return {"messages": results}

    return tools_node


def final_answer(messages) -> str:
    """Text of the last AIMessage that is an answer rather than a tool call."""
    for msg in reversed(list(messages)):
        if isinstance(msg, AIMessage) and not getattr(msg, "tool_calls", None):
            text = message_text(msg.content)
            if text:
                return text
    return ""
