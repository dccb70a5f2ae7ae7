"""
Checkpointing
=============
The LangGraph checkpoint backend that keeps each conversation thread, keyed by
session id, so a resumed session continues where it left off.

  SQLite (default) - AsyncSqliteSaver; threads survive process restarts.
  Memory           - MemorySaver; lost on exit. For tests and one-shot queries.

open_checkpointer() is an async context manager for both: the SQLite
connection lives exactly as long as the context.
"""
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from langgraph.checkpoint.base import BaseCheckpointSaver
from langgraph.checkpoint.memory import MemorySaver
from langgraph.checkpoint.sqlite.aio import AsyncSqliteSaver

logger = logging.getLogger(__name__)


@asynccontextmanager
async def open_checkpointer(
    db_path: str, in_memory: bool = False
) -> AsyncIterator[BaseCheckpointSaver]:
    """
    Args:
        db_path:   SQLite file. ":memory:" gives SQL semantics without a file.
        in_memory: Use MemorySaver and ignore db_path.
    """
    if in_memory:
        logger.info("[checkpointing] Using in-memory checkpointer (ephemeral)")
        yield MemorySaver()
        return

    logger.info("[checkpointing] Opening SQLite checkpointer at: %s", db_path)
    async with AsyncSqliteSaver.from_conn_string(db_path) as checkpointer:
        # Creates the tables on first use; safe on every start.
        await checkpointer.setup()
        yield checkpointer
