"""
Tests for aftersales/routing.py
===============================
Routing is pure - it takes a state dict and returns a node name.
No LLM, no graph, no async needed.

Covers:
  - route_after_agent: tool calls → "tools", plain answer → END, empty → END
"""
from langchain_core.messages import AIMessage, HumanMessage, ToolMessage
from langgraph.graph import END

from aftersales.routing import route_after_agent


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _ai_with_tool_calls(names: list[str]) -> AIMessage:
    """Return an AIMessage that looks like it has tool_calls."""
    msg = AIMessage(content="")
    msg.tool_calls = [{"name": n, "id": f"call_{i}", "args": {}} for i, n in enumerate(names)]
    return msg


def _ai_text(content: str = "查询结果如下。") -> AIMessage:
    msg = AIMessage(content=content)
    msg.tool_calls = []
    return msg


# ---------------------------------------------------------------------------
# route_after_agent
# ---------------------------------------------------------------------------

class TestRouteAfterAgent:
    def test_plain_answer_goes_to_end(self):
        state = {"messages": [HumanMessage(content="你好"), _ai_text()]}
        assert route_after_agent(state) == END

    def test_single_tool_call_goes_to_tools(self):
        state = {"messages": [_ai_with_tool_calls(["check_access_code_refund"])]}
        assert route_after_agent(state) == "tools"

    def test_write_tool_goes_to_tools(self):
        # No confirmation pause: the gate in the tools node is the only check.
        state = {"messages": [_ai_with_tool_calls(["deactivate_access_code"])]}
        assert route_after_agent(state) == "tools"

    def test_multiple_tool_calls_go_to_tools(self):
        state = {"messages": [_ai_with_tool_calls(["check_access_code_refund", "simulate_browser_access"])]}
        assert route_after_agent(state) == "tools"

    def test_tool_message_last_goes_to_end(self):
        state = {"messages": [ToolMessage(content="ok", tool_call_id="call_0")]}
        assert route_after_agent(state) == END

    def test_empty_messages_goes_to_end(self):
        assert route_after_agent({"messages": []}) == END
