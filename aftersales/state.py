"""
Agent State
===========
The state that flows through every node of the runtime graph.

add_messages is a reducer: new messages are APPENDED, so the LLM sees the
whole thread (restored from the checkpointer on resume) at every step.
"""
from typing import Annotated, Sequence

from langchain_core.messages import BaseMessage
from langgraph.graph.message import add_messages
from typing_extensions import TypedDict


class AgentState(TypedDict):
    messages: Annotated[Sequence[BaseMessage], add_messages]
    session_id: str
